# Test HydroBEM file input and output
#
import os
import pytest
import numpy as np
from numpy.testing import assert_allclose

from hydrobem.bem_io import (readPnl, writePnl, createOutputDirs, writeHydrostatic, readHydrostatic,
                             writeControlFile, readControlFile, writeWamit1, writeWamit3, writeWamit4,
                             writeHamsCoefficients, writeFieldOutputs, readWamit1, readWamit3)
from hydrobem.bem_forces import HydrostaticData
from hydrobem.bem_model import SweepResults, WaveCaseResult, WaveCase
from hydrobem.errors import ConfigError
from meshes import sphereMesh, boxMesh


def test_pnl(tmp_path):
    mesh = sphereMesh(radius=2.0, zc=-4.0, nTheta=6, nPhi=12, isx=1)
    fname = os.path.join(tmp_path, 'HullMesh.pnl')
    writePnl(fname, mesh)

    mesh2 = readPnl(fname)
    assert mesh2.nelem == mesh.nelem and mesh2.ntnd == mesh.ntnd
    assert (mesh2.isx, mesh2.isy) == (1, 0)
    assert mesh2.name == 'HullMesh'
    assert_allclose(mesh2.nodes, mesh.nodes, atol=1e-6)
    assert_allclose(mesh2.areas, mesh.areas, rtol=1e-5)
    assert np.all(mesh2.nverts == mesh.nverts)

    # symmetry flags can be overridden when reading
    mesh3 = readPnl(fname, isx=0, isy=0)
    assert mesh3.nsys == 1


def test_pnl_hand_written(tmp_path):
    # a HAMS-style file with comments, Fortran exponents and a triangle
    text = '''    --------------Hull Mesh File---------------

    # Number of Panels, Nodes, X-Symmetry and Y-Symmetry
         2         5         0         0

    #Start Definition of Node Coordinates     ! node_number   x   y   z
    1   0.0D0   0.0D0  -1.0D0
    2   1.0D0   0.0D0  -1.0D0
    3   1.0D0   1.0D0  -1.0D0
    4   0.0D0   1.0D0  -1.0D0
    5   2.0D0   0.0D0  -1.0D0
   #End Definition of Node Coordinates

   #Start Definition of Node Relations   ! panel_number  number_of_vertices   Vertex1_ID   Vertex2_ID   Vertex3_ID   (Vertex4_ID)
    1    4    1    2    3    4
    2    3    2    5    3
   #End Definition of Node Relations

    --------------End Hull Mesh File---------------
'''
    fname = os.path.join(tmp_path, 'hand.pnl')
    with open(fname, 'w') as f:
        f.write(text)
    mesh = readPnl(fname)
    assert mesh.nelem == 2
    assert_allclose(mesh.areas, [1.0, 0.5])
    assert list(mesh.nverts) == [4, 3]


def test_pnl_errors(tmp_path):
    with pytest.raises(ConfigError):
        readPnl(os.path.join(tmp_path, 'nothere.pnl'))

    fname = os.path.join(tmp_path, 'short.pnl')
    with open(fname, 'w') as f:
        f.write('  # header\n  2  4  0  0\n  1  0.0  0.0  -1.0\n')
    with pytest.raises(ConfigError):
        readPnl(fname)


def test_hydrostatic(tmp_path):
    mesh = boxMesh()
    hydro = HydrostaticData.fromMesh(mesh, rho=1025.0, g=9.80665, cog=[0.1, 0.0, -0.2])
    hydro.damping[2,2] = 1.5e3
    hydro.kExt[0,0] = 2.0e4
    dirs = createOutputDirs(str(tmp_path))
    assert os.path.isdir(dirs['input']) and os.path.isdir(dirs['wamit'])
    writeHydrostatic(dirs['input'], hydro)

    hydro2 = readHydrostatic(os.path.join(dirs['input'], 'Hydrostatic.in'))
    assert_allclose(hydro2.cog, hydro.cog, atol=1e-12)
    for attr in ['mass', 'damping', 'kHydro', 'kExt']:
        assert_allclose(getattr(hydro2, attr), getattr(hydro, attr), rtol=1e-5, atol=1e-8)


def test_controlFile(tmp_path):
    settings = {'water_depth': 50.0, 'input_frequency_type': 4, 'output_frequency_type': 3,
                'number_of_frequencies': 10, 'min_frequency': 0.2, 'frequency_step': 0.1,
                'headings': [0.0, 45.0, 90.0], 'reference_body_center': [0.0, 0.0, -1.0],
                'reference_body_length': 2.0, 'remove_irregular_frequencies': 1, 'num_threads': 4,
                'field_points': [[10.0, 0.0, 0.0], [0.0, -12.5, -3.0]]}
    writeControlFile(str(tmp_path), settings)
    read = readControlFile(os.path.join(tmp_path, 'ControlFile.in'))
    for key, val in settings.items():
        assert_allclose(read[key], val)

    settings = {'frequencies': [0.5, 1.0, 1.5]}
    writeControlFile(str(tmp_path), settings)
    read = readControlFile(os.path.join(tmp_path, 'ControlFile.in'))
    assert_allclose(read['frequencies'], [0.5, 1.0, 1.5])
    assert_allclose(read['water_depth'], -1.0)
    assert read['number_of_headings'] == 1
    assert not 'field_points' in read


def sampleResults():
    '''Results of two wave cases, one failed, with the zero-frequency limit.'''

    res = SweepResults([0.0, 90.0])
    rng = np.random.default_rng(0)
    for i, w in enumerate([0.5, 1.0]):
        rec = WaveCaseResult(i, w, 2)
        rec.case = WaveCase(i, w, w**2/9.80665, 2*np.pi/w, 2*np.pi*9.80665/w**2, w)
        rec.A = rng.normal(size=(6, 6))*1e4
        rec.B = rng.normal(size=(6, 6))*1e3
        rec.X = (rng.normal(size=(2, 6)) + 1j*rng.normal(size=(2, 6)))*1e5
        rec.Xi = rng.normal(size=(2, 6)) + 1j*rng.normal(size=(2, 6))
        rec.status = 'ok'
        res.append(rec)
    failed = WaveCaseResult(2, 1.5, 2)
    failed.status = 'solver failure'
    res.append(failed)

    zero = WaveCaseResult(-1, 0.0, 0, limit='zero')
    zero.case = WaveCase(-1, 0.0, 0.0, np.inf, np.inf, -1.0, limit='zero')
    zero.A = np.eye(6)*3e4
    zero.status = 'ok'
    res.limits['zero'] = zero
    return res


def test_wamit_outputs(tmp_path):
    res = sampleResults()
    rho, g, L = 1025.0, 9.80665, 2.0
    f1 = os.path.join(tmp_path, 'out.1')
    f3 = os.path.join(tmp_path, 'out.3')
    f4 = os.path.join(tmp_path, 'out.4')
    writeWamit1(f1, res, rho=rho, L=L)
    writeWamit3(f3, res, rho=rho, g=g, L=L)
    writeWamit4(f4, res, L=L)

    # failed wave cases are left out
    w, A, B, limits = readWamit1(f1)
    assert_allclose(w, [0.5, 1.0])
    k = 3 + (np.arange(6)[:,None] >= 3) + (np.arange(6)[None,:] >= 3)
    for i, rec in enumerate(res.records[:2]):
        assert_allclose(A[i], rec.A/(rho*L**k), rtol=1e-5)
        assert_allclose(B[i], rec.B/(rho*rec.case.omega*L**k), rtol=1e-5)
    assert_allclose(limits['zero'], res.limits['zero'].A/(rho*L**k), rtol=1e-5)
    assert not 'infinite' in limits

    # excitation written with the e^{+i omega t} convention
    mod, phase, re, im = readWamit3(f3)
    assert mod.shape == (2, 2, 6)
    m = 2 + (np.arange(6) >= 3)
    X = np.conj(res.X[:2])/(rho*g*L**m)
    assert_allclose(re + 1j*im, X, rtol=1e-5)
    assert_allclose(mod, np.abs(X), rtol=1e-5)

    # motions with rotations scaled by the reference length
    Xi = np.loadtxt(f4)
    assert Xi.shape == (2*2*6, 7)
    ref = np.conj(res.Xi[:2])*L**(np.arange(6) >= 3)
    assert_allclose(Xi[:,5] + 1j*Xi[:,6], ref.ravel(), rtol=1e-5)


def test_hams_outputs(tmp_path):
    res = sampleResults()
    writeHamsCoefficients(str(tmp_path), res, motions=False)
    assert not os.path.isfile(os.path.join(tmp_path, 'Motion_1.txt'))
    writeHamsCoefficients(str(tmp_path), res, motions=True, frequencyName='wave_frequency')

    for i, j in [(0, 0), (2, 4), (5, 1)]:
        A = np.loadtxt(os.path.join(tmp_path, f'AddedMass_{i+1}{j+1}.txt'))
        B = np.loadtxt(os.path.join(tmp_path, f'WaveDamping_{i+1}{j+1}.txt'))
        assert_allclose(A[:,0], [0.5, 1.0])
        assert_allclose(A[:,1], [rec.A[i,j] for rec in res.records[:2]], rtol=1e-5)
        assert_allclose(B[:,1], [rec.B[i,j] for rec in res.records[:2]], rtol=1e-5)

    X = np.loadtxt(os.path.join(tmp_path, 'Excitation_4.txt'))
    assert X.shape == (2*2, 6)
    assert_allclose(X[:,1], [0.0, 90.0, 0.0, 90.0])
    assert_allclose(X[:,4] + 1j*X[:,5], np.conj(res.X[:2,:,3]).ravel(), rtol=1e-5)
    Xi = np.loadtxt(os.path.join(tmp_path, 'Motion_2.txt'))
    assert_allclose(Xi[:,2], np.abs(res.Xi[:2,:,1]).ravel(), rtol=1e-5)


def test_field_outputs(tmp_path):
    rho, g = 1025.0, 9.80665
    points = np.array([[5.0, 0.0, 0.0], [0.0, 5.0, -2.0], [3.0, 3.0, 0.0]])
    res = SweepResults([0.0, 90.0], fieldPoints=points)
    rng = np.random.default_rng(1)
    for i, w in enumerate([0.5, 1.0]):
        rec = WaveCaseResult(i, w, 2, nField=3)
        assert rec.fieldRadiation.shape == (3, 6) and rec.fieldDiffraction.shape == (2, 3)
        rec.case = WaveCase(i, w, w**2/g, 2*np.pi/w, 2*np.pi*g/w**2, w)
        rec.fieldRadiation = rng.normal(size=(3, 6)) + 1j*rng.normal(size=(3, 6))
        rec.fieldDiffraction = rng.normal(size=(2, 3)) + 1j*rng.normal(size=(2, 3))
        rec.status = 'ok'
        res.append(rec)
    res.append(WaveCaseResult(2, 1.5, 2, nField=3))         # pending cases are left out
    writeFieldOutputs(str(tmp_path), res, rho=rho, g=g)

    w = np.array([0.5, 1.0])[:,None,None]
    rad = np.loadtxt(os.path.join(tmp_path, 'PressureElevation_Radiation.txt'))
    assert rad.shape == (2*3*6, 10)
    # per unit displacement, p = i omega rho (-i omega phi) and eta = i omega (-i omega phi)/g
    phi = res.fieldRadiation[:2]
    assert_allclose(rad[:,6] + 1j*rad[:,7], np.conj(rho*w**2*phi).ravel(), rtol=1e-5, atol=1e-8)
    assert_allclose(rad[:,8] + 1j*rad[:,9], np.conj(w**2*phi/g).ravel(), rtol=1e-5, atol=1e-8)
    assert_allclose(rad[:,5], np.tile(np.arange(1, 7), 6))

    dif = np.loadtxt(os.path.join(tmp_path, 'PressureElevation_Diffraction.txt'))
    assert dif.shape == (2*2*3, 10)
    phi = res.fieldDiffraction[:2]
    assert_allclose(dif[:,6] + 1j*dif[:,7], np.conj(1j*w*rho*phi).ravel(), rtol=1e-5, atol=1e-8)
    assert_allclose(dif[:,2], np.tile([1, 2, 3], 4))
    assert_allclose(dif[:,3:6], np.tile(points, (4, 1)), atol=1e-4)


if __name__ == '__main__':
    import tempfile
    test_pnl(tempfile.mkdtemp())
