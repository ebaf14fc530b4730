# HydroBEM's file input and output in the HAMS and WAMIT formats

import os
import numpy as np

from hydrobem.bem_mesh import Mesh
from hydrobem.bem_forces import HydrostaticData, pressureElevation
from hydrobem.helpers import frequencyTypes
from hydrobem.errors import ConfigError


def readPnl(path, xRef=[0,0,0], isx=None, isy=None, name=None):
    '''
    Read a mesh in the HAMS .pnl format

    Parameters
    ----------
    path : str
        path to the .pnl file
    xRef : list
        reference point for the rotational modes
    isx, isy : int, optional
        symmetry flags overriding those in the file header

    Returns
    -------
    mesh : Mesh

    Notes
    -----
    Node and panel numbers in the file are 1-based; the header line after the
    '# Number of Panels, Nodes, X-Symmetry and Y-Symmetry' comment holds the counts.
    '''

    if not os.path.isfile(path):
        raise ConfigError(f"Mesh file '{path}' not found.")

    with open(path, 'r') as f:
        lines = [line.split() for line in f.readlines()]
    lines = [line for line in lines if len(line) > 0]

    # first line that is all numbers is the header
    header = None
    for i, line in enumerate(lines):
        if not line[0].startswith(('#', '-')) and all(_isNumber(s) for s in line):
            header = [int(s) for s in line[:4]]
            start = i + 1
            break
    if header is None or len(header) < 4:
        raise ConfigError(f"Mesh file '{path}' has no valid header line.")
    nPanels, nNodes, fileIsx, fileIsy = header

    numeric = [line for line in lines[start:] if not line[0].startswith(('#', '-'))]
    if len(numeric) < nNodes + nPanels:
        raise ConfigError(f"Mesh file '{path}' declares {nNodes} nodes and {nPanels} panels "
                          f"but only has {len(numeric)} data lines.")

    nodeIds = {}
    nodes = np.zeros([nNodes, 3])
    for i, line in enumerate(numeric[:nNodes]):
        nodeIds[int(line[0])] = i
        nodes[i,:] = [_float(s) for s in line[1:4]]

    panels = []
    for line in numeric[nNodes:nNodes+nPanels]:
        nv = int(line[1])
        try:
            panels.append([nodeIds[int(s)] for s in line[2:2+nv]])
        except KeyError as ex:
            raise ConfigError(f"Panel {line[0]} in mesh file '{path}' refers to undefined node {ex}.")

    if name is None:
        name = os.path.splitext(os.path.basename(path))[0]

    return Mesh(nodes, panels, isx=fileIsx if isx is None else isx, isy=fileIsy if isy is None else isy,
                xRef=xRef, name=name)


def _isNumber(s):
    try:
        float(s.replace('D', 'E'))
        return True
    except ValueError:
        return False


def _float(s):
    return float(s.replace('D', 'E').replace('d', 'e'))


def writePnl(path, mesh, title='Hull Mesh'):
    '''
    Write a Mesh in the HAMS .pnl format

    Parameters
    ----------
    path : str
        path of the file to write
    mesh : Mesh
        the mesh
    title : str
        title written in the first and last lines
    '''

    with open(path, 'w') as f:
        f.write(f'    --------------{title} File---------------\n\n')
        f.write(f'    # Number of Panels, Nodes, X-Symmetry and Y-Symmetry\n')
        f.write(f'         {mesh.nelem}         {mesh.ntnd}         {mesh.isx}         {mesh.isy}\n\n')
        f.write(f'    #Start Definition of Node Coordinates     ! node_number   x   y   z\n')
        for i, node in enumerate(mesh.nodes):
            f.write(f'{i+1:>5}{node[0]:>18.6f}{node[1]:>18.6f}{node[2]:>18.6f}\n')
        f.write(f'   #End Definition of Node Coordinates\n\n')
        f.write(f'   #Start Definition of Node Relations   ! panel_number  number_of_vertices   Vertex1_ID   Vertex2_ID   Vertex3_ID   (Vertex4_ID)\n')
        for i in range(mesh.nelem):
            nv = mesh.nverts[i]
            ids = ''.join([f'{n+1:>10}' for n in mesh.ncon[i,:nv]])
            f.write(f'{i+1:>5}{nv:>5}{ids}\n')
        f.write(f'   #End Definition of Node Relations\n\n')
        f.write(f'    --------------End {title} File---------------\n')


def createOutputDirs(baseDir=None):
    '''
    Create the Input and Output directories of a run in baseDir

    Returns
    -------
    dirs : dict
        paths of the 'input' directory and of the 'hams' and 'wamit' output directories
    '''

    if baseDir is None:
        baseDir = os.getcwd()
    baseDir = os.path.normpath(baseDir)

    dirs = {'input': os.path.join(baseDir, 'Input'),
            'hams':  os.path.join(baseDir, 'Output', 'Hams_format'),
            'wamit': os.path.join(baseDir, 'Output', 'Wamit_format')}

    for d in dirs.values():
        if os.path.isdir(d) is not True:
            os.makedirs(d)

    return dirs


def _writeMatrix(f, M):
    for i in range(6):
        for j in range(6):
            f.write(f'   {M[i,j]:10.5E}')
        f.write(f'\n')


def writeHydrostatic(oDir, hydro):
    '''
    Write the Hydrostatic.in file of a body

    Parameters
    ----------
    oDir : str
        directory to save Hydrostatic.in in
    hydro : HydrostaticData
        center of gravity, mass, external damping and restoring matrices
    '''

    with open(os.path.join(oDir, 'Hydrostatic.in'), 'w') as f:
        f.write(f' Center of Gravity:\n ')
        f.write(f'  {hydro.cog[0]:10.15E}  {hydro.cog[1]:10.15E}  {hydro.cog[2]:10.15E} \n')
        f.write(f' Body Mass Matrix:\n')
        _writeMatrix(f, hydro.mass)
        f.write(f' External Damping Matrix:\n')
        _writeMatrix(f, hydro.damping)
        f.write(f' Hydrostatic Restoring Matrix:\n')
        _writeMatrix(f, hydro.kHydro)
        f.write(f' External Restoring Matrix:\n')
        _writeMatrix(f, hydro.kExt)


def readHydrostatic(path):
    '''Read a Hydrostatic.in file into a HydrostaticData object.'''

    if not os.path.isfile(path):
        raise ConfigError(f"Hydrostatic file '{path}' not found.")

    with open(path, 'r') as f:
        lines = f.readlines()

    sections = {}
    current = None
    for line in lines:
        if ':' in line:
            current = line.split(':')[0].strip().lower()
            sections[current] = []
            rest = line.split(':', 1)[1].split()
            if rest:
                sections[current].append([_float(s) for s in rest])
        elif current is not None and line.strip():
            sections[current].append([_float(s) for s in line.split()])

    def get(key, shape):
        for name, rows in sections.items():
            if name.startswith(key):
                vals = np.array([v for row in rows for v in row])
                if vals.size != np.prod(shape):
                    raise ConfigError(f"Section '{name}' of '{path}' has {vals.size} values instead of {np.prod(shape)}.")
                return vals.reshape(shape)
        raise ConfigError(f"Section '{key}' not found in hydrostatic file '{path}'.")

    return HydrostaticData(cog=get('center of gravity', 3), mass=get('body mass', [6,6]),
                           damping=get('external damping', [6,6]), kHydro=get('hydrostatic restoring', [6,6]),
                           kExt=get('external restoring', [6,6]))


def writeControlFile(oDir, settings):
    '''
    Write a HAMS ControlFile.in from a settings dictionary

    Parameters
    ----------
    oDir : str
        directory to save ControlFile.in in
    settings : dict
        the 'settings' section of a HydroBEM input, using 'min_frequency', 'frequency_step'
        and 'number_of_frequencies', or a 'frequencies' list
    '''

    waterDepth = settings.get('water_depth', -1.0)
    iFType = settings.get('input_frequency_type', 3)
    oFType = settings.get('output_frequency_type', 3)
    refBodyCenter = settings.get('reference_body_center', [0.0, 0.0, 0.0])
    fieldPoints = settings.get('field_points', None)
    fieldPoints = np.zeros([0,3]) if fieldPoints is None else np.array(fieldPoints, dtype=float).reshape(-1, 3)

    if 'headings' in settings:
        headings = list(np.atleast_1d(settings['headings']))
        numHeadings = len(headings)
    else:
        headings = None
        numHeadings = settings.get('number_of_headings', 1)

    with open(os.path.join(oDir, 'ControlFile.in'), 'w') as f:
        f.write(f'   --------------HAMS Control file---------------\n\n')
        f.write(f'   Waterdepth  {waterDepth}D0\n\n')
        f.write(f'   #Start Definition of Wave Frequencies\n')
        f.write(f'    Input_frequency_type    {iFType}\n')
        f.write(f'    Output_frequency_type   {oFType}\n')
        if 'frequencies' in settings:       # +ve count followed by the list
            freqs = np.atleast_1d(settings['frequencies'])
            f.write(f'    Number_of_frequencies   {len(freqs)}\n')
            f.write('    ' + ' '.join([f'{w}' for w in freqs]) + '\n')
        else:                               # -ve count with minimum and step
            f.write(f"    Number_of_frequencies   -{settings['number_of_frequencies']}\n")
            f.write(f"    Minimum_frequency_Wmin  {settings['min_frequency']}D0\n")
            f.write(f"    Frequency_step          {settings['frequency_step']}D0\n")
        f.write(f'   #End Definition of Wave Frequencies\n\n')
        f.write(f'   #Start Definition of Wave Headings\n')
        if headings is not None:
            f.write(f'    Number_of_headings      {numHeadings}\n')
            f.write('    ' + ' '.join([f'{b}' for b in headings]) + '\n')
        else:
            f.write(f'    Number_of_headings      -{numHeadings}\n')
            f.write(f"    Minimum_heading         {settings.get('min_heading', 0.0)}D0\n")
            f.write(f"    Heading_step            {settings.get('heading_step', 0.0)}D0\n")
        f.write(f'   #End Definition of Wave Headings\n\n')
        f.write(f'    Reference_body_center   {refBodyCenter[0]:.3f} {refBodyCenter[1]:.3f} {refBodyCenter[2]:.3f}\n')
        f.write(f"    Reference_body_length   {settings.get('reference_body_length', 1.0)}D0\n")
        f.write(f"    If_remove_irr_freq      {settings.get('remove_irregular_frequencies', 0)}\n")
        f.write(f"    Number of threads       {settings.get('num_threads', 1)}\n\n")
        f.write(f'   #Start Definition of Pressure and/or Elevation\n')
        f.write(f'    Number_of_field_points  {len(fieldPoints)} \n')
        for p in fieldPoints:
            f.write(f'    {p[0]:.6f} {p[1]:.6f} {p[2]:.6f}\n')
        f.write(f'   #End Definition of Pressure and/or Elevation\n\n')
        f.write(f'   ----------End HAMS Control file---------------\n')


def readControlFile(path):
    '''Read a HAMS ControlFile.in into a settings dictionary.'''

    if not os.path.isfile(path):
        raise ConfigError(f"Control file '{path}' not found.")

    with open(path, 'r') as f:
        lines = [line.split() for line in f.readlines()]
    lines = [line for line in lines if len(line) > 0]

    settings = {}

    def listAfter(i, n):
        vals = []
        j = i + 1
        while len(vals) < n and j < len(lines) and all(_isNumber(s) for s in lines[j]):
            vals += [_float(s) for s in lines[j]]
            j += 1
        return vals[:n]

    for i, line in enumerate(lines):
        key = line[0].lower()
        if key == 'waterdepth':
            settings['water_depth'] = _float(line[1])
        elif key == 'input_frequency_type':
            settings['input_frequency_type'] = int(line[1])
        elif key == 'output_frequency_type':
            settings['output_frequency_type'] = int(line[1])
        elif key == 'number_of_frequencies':
            n = int(line[1])
            if n > 0:
                settings['frequencies'] = listAfter(i, n)
            else:
                settings['number_of_frequencies'] = -n
        elif key == 'minimum_frequency_wmin':
            settings['min_frequency'] = _float(line[1])
        elif key == 'frequency_step':
            settings['frequency_step'] = _float(line[1])
        elif key == 'number_of_headings':
            n = int(line[1])
            if n > 0:
                settings['headings'] = listAfter(i, n)
            else:
                settings['number_of_headings'] = -n
        elif key == 'minimum_heading':
            settings['min_heading'] = _float(line[1])
        elif key == 'heading_step':
            settings['heading_step'] = _float(line[1])
        elif key == 'reference_body_center':
            settings['reference_body_center'] = [_float(s) for s in line[1:4]]
        elif key == 'reference_body_length':
            settings['reference_body_length'] = _float(line[1])
        elif key == 'if_remove_irr_freq':
            settings['remove_irregular_frequencies'] = int(line[1])
        elif key == 'number' and len(line) >= 4 and line[1].lower() == 'of' and line[2].lower() == 'threads':
            settings['num_threads'] = int(line[3])
        elif key == 'number_of_field_points':
            n = int(line[1])
            if n > 0:
                vals = listAfter(i, 3*n)
                if len(vals) < 3*n:
                    raise ConfigError(f"Control file '{path}' declares {n} field points but lists {len(vals)//3}.")
                settings['field_points'] = np.reshape(vals, (n, 3)).tolist()

    if not settings.get('input_frequency_type', 3) in frequencyTypes:
        raise ConfigError(f"Control file '{path}' has an unknown input frequency type.")

    return settings


# ----- WAMIT-format outputs -----
# Coefficients are written nondimensionalized with the reference length L, following WAMIT:
# added mass A/(rho L^k), damping B/(rho omega L^k) with k = 3, 4 or 5 by mode pair,
# excitation X/(rho g L^m) with m = 2 for forces and 3 for moments, and motions xi L^n with
# n = 0 for translations and 1 for rotations. The time dependence is e^{+i omega t} in the
# files, so complex amplitudes are written conjugated.

def _kExponent(i, j):
    return 3 + (i >= 3) + (j >= 3)


def writeWamit1(path, results, rho=1025.0, L=1.0):
    '''Write added mass and damping coefficients to a WAMIT .1 file. The zero- and
    infinite-frequency limits, when present, come first with periods -1 and 0.'''

    with open(path, 'w') as f:
        for limit, per in [('zero', -1.0), ('infinite', 0.0)]:
            rec = results.limits.get(limit, None)
            if rec is None or not rec.ok:
                continue
            for i in range(6):
                for j in range(6):
                    f.write(f'{per:14.6E} {i+1:5d} {j+1:5d} {rec.A[i,j]/(rho*L**_kExponent(i,j)):14.6E}\n')

        for rec in results.records:
            if not rec.ok:
                continue
            w = rec.case.omega
            for i in range(6):
                for j in range(6):
                    k = _kExponent(i, j)
                    f.write(f'{rec.case.label:14.6E} {i+1:5d} {j+1:5d} {rec.A[i,j]/(rho*L**k):14.6E} '
                            f'{rec.B[i,j]/(rho*w*L**k):14.6E}\n')


def writeWamit3(path, results, rho=1025.0, g=9.80665, L=1.0):
    '''Write excitation force coefficients to a WAMIT .3 file.'''

    with open(path, 'w') as f:
        for rec in results.records:
            if not rec.ok:
                continue
            for ih, beta in enumerate(results.headings):
                for i in range(6):
                    x = np.conj(rec.X[ih,i])/(rho*g*L**(2 + (i >= 3)))
                    f.write(f'{rec.case.label:14.6E} {beta:10.4f} {i+1:5d} {np.abs(x):14.6E} '
                            f'{np.degrees(np.angle(x)):14.6E} {x.real:14.6E} {x.imag:14.6E}\n')


def writeWamit4(path, results, L=1.0):
    '''Write response amplitude operators to a WAMIT .4 file.'''

    with open(path, 'w') as f:
        for rec in results.records:
            if not rec.ok:
                continue
            for ih, beta in enumerate(results.headings):
                for i in range(6):
                    x = np.conj(rec.Xi[ih,i])*L**(i >= 3)
                    f.write(f'{rec.case.label:14.6E} {beta:10.4f} {i+1:5d} {np.abs(x):14.6E} '
                            f'{np.degrees(np.angle(x)):14.6E} {x.real:14.6E} {x.imag:14.6E}\n')


# ----- HAMS-format outputs -----
# One file per mode or mode pair, dimensional, with '#' header lines so they load with np.loadtxt.
# Complex values are conjugated to the e^{+i omega t} convention like the WAMIT files.

def _complexColumns(x):
    return f'{np.abs(x):14.6E} {np.degrees(np.angle(x)):14.6E} {x.real:14.6E} {x.imag:14.6E}'


def writeHamsCoefficients(hamsDir, results, motions=False, frequencyName='frequency'):
    '''
    Write the per-mode HAMS-format result files: AddedMass_ij.txt and WaveDamping_ij.txt
    for each mode pair, Excitation_i.txt for each mode, and Motion_i.txt when the
    response amplitudes were solved.

    Parameters
    ----------
    hamsDir : str
        output directory
    results : SweepResults
        results of the sweep
    motions : bool
        whether to write the Motion files
    frequencyName : str
        name of the frequency label written in the headers
    '''

    ok = [rec for rec in results.records if rec.ok]

    for i in range(6):
        for j in range(6):
            for name, attr in [('AddedMass', 'A'), ('WaveDamping', 'B')]:
                with open(os.path.join(hamsDir, f'{name}_{i+1}{j+1}.txt'), 'w') as f:
                    f.write(f'# {name} {i+1}{j+1}\n')
                    f.write(f'# {frequencyName}  value\n')
                    for rec in ok:
                        f.write(f'{rec.case.label:14.6E} {getattr(rec, attr)[i,j]:14.6E}\n')

    for i in range(6):
        for name, attr in [('Excitation', 'X'), ('Motion', 'Xi')]:
            if attr == 'Xi' and not motions:
                continue
            with open(os.path.join(hamsDir, f'{name}_{i+1}.txt'), 'w') as f:
                f.write(f'# {name} {i+1}\n')
                f.write(f'# {frequencyName}  heading[deg]  modulus  phase[deg]  real  imaginary\n')
                for rec in ok:
                    for ih, beta in enumerate(results.headings):
                        f.write(f'{rec.case.label:14.6E} {beta:10.4f} '
                                + _complexColumns(np.conj(getattr(rec, attr)[ih,i])) + '\n')


def writeFieldOutputs(hamsDir, results, rho=1025.0, g=9.80665, frequencyName='frequency'):
    '''
    Write the hydrodynamic pressure and wave elevation at the field points.

    PressureElevation_Radiation.txt holds, for each wave case, field point and mode, the
    values per unit body displacement. PressureElevation_Diffraction.txt holds, for each
    wave case, heading and field point, the values of the total wave field per unit
    incident wave amplitude. The elevation is only meaningful for points on z=0.
    '''

    points = results.fieldPoints
    ok = [rec for rec in results.records if rec.ok]
    columns = 'pressure_real  pressure_imag  elevation_real  elevation_imag'

    with open(os.path.join(hamsDir, 'PressureElevation_Radiation.txt'), 'w') as f:
        f.write('# Radiation pressure [Pa/m] and elevation [m/m] per unit displacement of each mode\n')
        f.write(f'# {frequencyName}  point  x  y  z  mode  {columns}\n')
        for rec in ok:
            w = rec.case.omega
            p, eta = pressureElevation(-1j*w*rec.fieldRadiation, w, rho=rho, g=g)
            for m, x in enumerate(points):
                for j in range(6):
                    pc, ec = np.conj(p[m,j]), np.conj(eta[m,j])
                    f.write(f'{rec.case.label:14.6E} {m+1:5d} {x[0]:12.4f} {x[1]:12.4f} {x[2]:12.4f} {j+1:3d} '
                            f'{pc.real:14.6E} {pc.imag:14.6E} {ec.real:14.6E} {ec.imag:14.6E}\n')

    with open(os.path.join(hamsDir, 'PressureElevation_Diffraction.txt'), 'w') as f:
        f.write('# Total wave pressure [Pa/m] and elevation [m/m] per unit incident wave amplitude\n')
        f.write(f'# {frequencyName}  heading[deg]  point  x  y  z  {columns}\n')
        for rec in ok:
            w = rec.case.omega
            p, eta = pressureElevation(rec.fieldDiffraction, w, rho=rho, g=g)
            for ih, beta in enumerate(results.headings):
                for m, x in enumerate(points):
                    pc, ec = np.conj(p[ih,m]), np.conj(eta[ih,m])
                    f.write(f'{rec.case.label:14.6E} {beta:10.4f} {m+1:5d} {x[0]:12.4f} {x[1]:12.4f} {x[2]:12.4f} '
                            f'{pc.real:14.6E} {pc.imag:14.6E} {ec.real:14.6E} {ec.imag:14.6E}\n')


def readWamit1(pathWamit1):
    '''
    Read added mass and damping from .1 file (WAMIT format)

    Returns
    -------
    w : array
        frequency labels of the regular wave cases (nw)
    addedMass : array
        added mass coefficients (nw x ndof x ndof)
    damping : array
        damping coefficients (nw x ndof x ndof)
    limits : dict
        added mass coefficients at the zero (-1) and infinite (0) period rows, if present
    '''

    with open(pathWamit1) as f:
        rows = [line.split() for line in f if line.strip()]

    regular = np.array([[float(s) for s in row] for row in rows if len(row) == 5]).reshape(-1, 5)
    limits = {}
    for row in rows:
        if len(row) == 4:
            key = 'zero' if float(row[0]) < 0 else 'infinite'
            limits.setdefault(key, np.zeros([6,6]))[int(row[1])-1, int(row[2])-1] = float(row[3])

    w = regular[::36,0]
    addedMass = regular[:,3].reshape(len(w), 6, 6)
    damping = regular[:,4].reshape(len(w), 6, 6)

    return w, addedMass, damping, limits


def readWamit3(pathWamit3):
    '''
    Read excitation force coefficients from .3 file (WAMIT format)

    Returns
    -------
    mod, phase, real, imag : arrays
        nw x nheadings x 6 modulus, phase [deg], real and imaginary parts
    '''

    wamit3 = np.loadtxt(pathWamit3, ndmin=2)
    nh = len(np.unique(wamit3[:,1]))
    nw = len(wamit3)//(6*nh)
    mod = wamit3[:,3].reshape((nw, nh, 6))
    phase = wamit3[:,4].reshape((nw, nh, 6))
    real = wamit3[:,5].reshape((nw, nh, 6))
    imag = wamit3[:,6].reshape((nw, nh, 6))

    return mod, phase, real, imag
