# example script for computing the hydrodynamic coefficients of a floating box with HydroBEM

import os
import numpy as np
import yaml
import sys

current_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.append(os.path.join(current_dir, '..', 'hydrobem'))
sys.path.append(os.path.join(current_dir, '..'))
from hydrobem.bem_model import Model

# open the design YAML file and parse it into a dictionary for passing to HydroBEM
flPath = os.path.join(current_dir, 'box.yaml')
with open(flPath) as file:
    design = yaml.load(file, Loader=yaml.FullLoader)

# Create the model (reads the meshes and checks the settings)
model = Model(design, baseDir=current_dir)

# Solve the radiation and diffraction problems for every wave case
results = model.runSweep(display=1)

# Write the WAMIT-format .1, .3 and .4 files
base = model.writeOutputs()

print(" omega [rad/s]    A33 [kg]     B33 [kg/s]   |X3| [N/m]   |xi3| [m/m]")
for rec in results:
    if rec.ok:
        print(f" {rec.omega:10.3f}  {rec.A[2,2]:12.4e} {rec.B[2,2]:12.4e} {np.abs(rec.X[0,2]):12.4e} {np.abs(rec.Xi[0,2]):12.4e}")
    else:
        print(f" wave case {rec.index+1} failed: {rec.message}")
