import setuptools

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setuptools.setup(
    name="HydroBEM",
    version="0.1",
    author="author",
    author_email="author@address.com",
    description="HydroBEM: frequency-domain boundary element hydrodynamics of floating bodies",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=['hydrobem'],
    install_requires=[
        "numpy",
        "scipy",
        "pyyaml",
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.6',
)
