# HydroBEM's main model class and frequency/heading sweep

import os
import time
import numpy as np
import yaml
from concurrent.futures import ThreadPoolExecutor

from hydrobem.helpers import getFromDict, isDeep, convertFrequency, frequencyLabel, frequencyTypes, \
                             translateMatrix6to6DOF, transformForce
from hydrobem.bem_mesh import Mesh
from hydrobem.bem_green import GreenFunction, KernelTable
from hydrobem.bem_assembly import getAssembler
from hydrobem.bem_solver import Solver
from hydrobem.bem_forces import incidentBlocks, radiationCoefficients, excitationForce, haskindExcitation, \
                                radiationFieldPotentials, diffractionFieldPotentials, solveMotion, HydrostaticData
from hydrobem.errors import ConfigError, NonConvergenceError, SolverFailure, AllocationFailure
import hydrobem.bem_io as bem_io


class WaveCase():
    '''One entry of the frequency sweep, with all its equivalent descriptions.'''

    def __init__(self, index, omega, k, period, wavelength, label, limit=None):
        self.index = index
        self.omega = omega          # [rad/s]
        self.k = k                  # wave number from the dispersion relation [1/m]
        self.period = period        # [s]
        self.wavelength = wavelength  # [m]
        self.label = label          # value used to label this case in the outputs
        self.limit = limit          # None, 'zero' or 'infinite'

    def __repr__(self):
        if self.limit:
            return f"WaveCase({self.index}, {self.limit} frequency)"
        return f"WaveCase({self.index}, omega={self.omega:.4f} rad/s)"


class WaveCaseResult():
    '''The results of one wave case. Written once by the sweep and not modified afterwards.'''

    def __init__(self, index, value, nHeadings, limit=None, nField=0):
        self.index = index
        self.value = value                  # frequency input value of this case
        self.limit = limit
        self.case = None                    # WaveCase, once the wave properties are known
        self.status = 'pending'
        self.message = ''

        self.A = np.full([6,6], np.nan)                         # added mass
        self.B = np.full([6,6], np.nan)                         # radiation damping
        self.X = np.full([nHeadings, 6], np.nan+0j)             # excitation per unit wave amplitude, from diffraction
        self.Xhaskind = np.full([nHeadings, 6], np.nan+0j)      # excitation from the Haskind relation
        self.Xi = np.full([nHeadings, 6], np.nan+0j)            # response amplitude operators

        self.fieldRadiation = np.full([nField, 6], np.nan+0j)           # radiation potentials per unit velocity at the field points
        self.fieldDiffraction = np.full([nHeadings, nField], np.nan+0j) # total potential per unit wave amplitude at the field points

    @property
    def ok(self):
        return self.status == 'ok'

    @property
    def omega(self):
        return np.nan if self.case is None else self.case.omega


class SweepResults():
    '''Ordered collection of WaveCaseResult records, plus the zero and infinite frequency
    limits when requested. Arrays over all cases are stacked on demand.'''

    def __init__(self, headings, xRef=np.zeros(3), fieldPoints=np.zeros([0,3])):
        self.headings = np.array(headings)      # [deg]
        self.xRef = np.array(xRef, dtype=float)
        self.fieldPoints = np.array(fieldPoints, dtype=float).reshape(-1, 3)
        self.records = []
        self.limits = {}

    def append(self, record):
        self.records.append(record)

    def __len__(self):
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    @property
    def w(self):
        return np.array([r.omega for r in self.records])

    @property
    def labels(self):
        return np.array([np.nan if r.case is None else r.case.label for r in self.records])

    @property
    def status(self):
        return [r.status for r in self.records]

    @property
    def A(self):
        return np.array([r.A for r in self.records]).reshape(-1, 6, 6)

    @property
    def B(self):
        return np.array([r.B for r in self.records]).reshape(-1, 6, 6)

    @property
    def X(self):
        return np.array([r.X for r in self.records]).reshape(-1, len(self.headings), 6)

    @property
    def Xhaskind(self):
        return np.array([r.Xhaskind for r in self.records]).reshape(-1, len(self.headings), 6)

    @property
    def Xi(self):
        return np.array([r.Xi for r in self.records]).reshape(-1, len(self.headings), 6)

    @property
    def fieldRadiation(self):
        return np.array([r.fieldRadiation for r in self.records]).reshape(len(self.records), len(self.fieldPoints), 6)

    @property
    def fieldDiffraction(self):
        return np.array([r.fieldDiffraction for r in self.records]).reshape(len(self.records), len(self.headings), len(self.fieldPoints))

    def failed(self):
        return [r for r in self.records if not r.ok]

    def translated(self, newRef):
        '''Return a copy of the coefficients about another reference point,
        as a dict of stacked arrays (A, B, X).'''

        r = np.array(newRef, dtype=float) - self.xRef
        A = np.array([translateMatrix6to6DOF(a, r) for a in self.A])
        B = np.array([translateMatrix6to6DOF(b, r) for b in self.B])
        X = np.array([[transformForce(x, offset=r) for x in xh] for xh in self.X])
        return dict(A=A, B=B, X=X)


class Model():
    '''Frequency-domain BEM model of one rigid body: the mesh, the wave cases, the
    solver settings, and the results of the sweep.'''

    def __init__(self, design, baseDir=None):
        '''
        Parameters
        ----------
        design : dict
            input dictionary with 'settings', 'mesh' and optionally 'hydrostatics' entries
        baseDir : str, optional
            directory that relative file paths in the design are taken from
        '''

        self.design = design
        self.name = design.get('name', 'hydrobem')
        self.baseDir = os.getcwd() if baseDir is None else baseDir

        # parse settings
        if not 'settings' in design or design['settings'] is None:
            design['settings'] = {}
        settings = design['settings']

        self.depth = getFromDict(settings, 'water_depth', default=-1.0)      # <=0 or inf for deep water [m]
        self.rho   = getFromDict(settings, 'rho', default=1025.0)
        self.g     = getFromDict(settings, 'g', default=9.80665)
        self.iFType = getFromDict(settings, 'input_frequency_type', dtype=int, default=3)
        self.oFType = getFromDict(settings, 'output_frequency_type', dtype=int, default=3)
        self.xRef  = getFromDict(settings, 'reference_body_center', shape=3, default=0.0)
        self.refLength = getFromDict(settings, 'reference_body_length', default=1.0)
        self.removeIrregular = bool(getFromDict(settings, 'remove_irregular_frequencies', dtype=int, default=0))
        self.nThreads = getFromDict(settings, 'num_threads', dtype=int, default=1)
        self.computeLimits = bool(getFromDict(settings, 'limits', dtype=int, default=0))
        self.rcond_min = getFromDict(settings, 'rcond_min', default=1e-12)
        self.memoryLimit = getFromDict(settings, 'memory_limit_gb', default=0.0)    # 0 for no limit [GB]
        self.outputDir = settings.get('output_dir', None)

        if self.depth == 0.0:
            self.depth = -1.0
        self.deep = isDeep(self.depth)

        for key, ftype in [('input_frequency_type', self.iFType), ('output_frequency_type', self.oFType)]:
            if not ftype in frequencyTypes:
                raise ConfigError(f"Setting '{key}' is {ftype} but must be one of {list(frequencyTypes)}.")
        if self.nThreads < 1:
            raise ConfigError(f"Setting 'num_threads' must be at least 1 (got {self.nThreads}).")
        if self.rho <= 0 or self.g <= 0 or self.refLength <= 0:
            raise ConfigError("Settings 'rho', 'g' and 'reference_body_length' must be positive.")
        if self.computeLimits and not self.deep:
            raise ConfigError("The zero-frequency limit is only available in deep water, so 'limits' "
                              "cannot be used with a finite 'water_depth'.")

        # frequencies, as given in the input frequency type
        if 'frequencies' in settings:
            self.frequencyValues = np.atleast_1d(getFromDict(settings, 'frequencies', shape=-1))
        else:
            nw   = getFromDict(settings, 'number_of_frequencies', dtype=int)
            wMin = getFromDict(settings, 'min_frequency')
            dw   = getFromDict(settings, 'frequency_step')
            self.frequencyValues = wMin + dw*np.arange(nw)
        if len(self.frequencyValues) == 0:
            raise ConfigError("At least one wave frequency must be given.")
        if np.any(self.frequencyValues <= 0):
            raise ConfigError(f"Wave {frequencyTypes[self.iFType]} values must be positive.")

        # headings [deg]
        if 'headings' in settings:
            self.headings = np.atleast_1d(getFromDict(settings, 'headings', shape=-1))
        else:
            nh   = getFromDict(settings, 'number_of_headings', dtype=int, default=1)
            hMin = getFromDict(settings, 'min_heading', default=0.0)
            dh   = getFromDict(settings, 'heading_step', default=0.0)
            self.headings = hMin + dh*np.arange(nh)
        if len(self.headings) == 0:
            raise ConfigError("At least one wave heading must be given.")

        self.nw = len(self.frequencyValues)
        self.nh = len(self.headings)

        # points in the fluid where pressure and elevation are reported
        self.fieldPoints = np.zeros([0,3])
        if settings.get('field_points', None) is not None:
            points = np.array(getFromDict(settings, 'field_points', shape=-1), dtype=float)
            if points.size % 3 != 0:
                raise ConfigError(f"Setting 'field_points' must be a list of x, y, z triplets (got {points.size} values).")
            self.fieldPoints = points.reshape(-1, 3)
        if np.any(self.fieldPoints[:,2] > 0.0):
            raise ConfigError("Field points must lie in the fluid, at or below the free surface z=0.")
        if not self.deep and np.any(self.fieldPoints[:,2] < -self.depth):
            raise ConfigError(f"Field points must lie above the seabed at z={-self.depth} m.")
        self.nField = len(self.fieldPoints)

        # meshes
        if not 'mesh' in design or design['mesh'] is None:
            raise ConfigError("A 'mesh' section is required in the input.")
        self.mesh = self.loadMesh(design['mesh'])
        self.mesh.checkHalf()
        self.mesh.checkSubmerged()
        if self.mesh.nelem == 0:
            raise ConfigError(f"Mesh '{self.mesh.name}' has no panels.")
        if not self.deep and np.any(self.mesh.nodes[self.mesh.ncon.ravel(),2] < -self.depth*(1 + 1e-6)):
            raise ConfigError(f"Mesh '{self.mesh.name}' extends below the water depth of {self.depth} m.")

        self.waterplane = self.loadWaterplane(design['mesh'])
        if self.removeIrregular and self.waterplane is None:
            raise ConfigError("Irregular frequency removal is enabled but no waterplane mesh is given.")

        # hydrostatics for the equations of motion (motions are only solved when given)
        self.hydrostatics = self.loadHydrostatics(design.get('hydrostatics', None))

        # per-run objects
        self.assembler = getAssembler(self.mesh, self.waterplane, self.removeIrregular)
        self.solver = Solver(rcond_min=self.rcond_min)
        self.results = None

        self.checkMemory()


    def loadMesh(self, meshDict):
        '''Create the body Mesh from a .pnl file or from inline nodes and panels.'''

        if 'file' in meshDict:
            return bem_io.readPnl(os.path.join(self.baseDir, meshDict['file']), xRef=self.xRef)
        elif 'nodes' in meshDict and 'panels' in meshDict:
            isx = getFromDict(meshDict, 'isx', dtype=int, default=0)
            isy = getFromDict(meshDict, 'isy', dtype=int, default=0)
            return Mesh(meshDict['nodes'], meshDict['panels'], isx=isx, isy=isy, xRef=self.xRef,
                        name=meshDict.get('name', 'hull'))
        else:
            raise ConfigError("The 'mesh' section needs either a 'file' or 'nodes' and 'panels' entries.")


    def loadWaterplane(self, meshDict):
        '''Create the waterplane Mesh used for irregular frequency removal, if given.
        It takes the symmetry flags of the body mesh.'''

        if 'waterplane_file' in meshDict:
            wp = bem_io.readPnl(os.path.join(self.baseDir, meshDict['waterplane_file']), xRef=self.xRef,
                                isx=self.mesh.isx, isy=self.mesh.isy)
        elif 'waterplane' in meshDict and meshDict['waterplane']:
            wpDict = meshDict['waterplane']
            wp = Mesh(wpDict['nodes'], wpDict['panels'], isx=self.mesh.isx, isy=self.mesh.isy,
                      xRef=self.xRef, name='waterplane')
        else:
            return None

        wp.checkWaterplane()
        wp.checkHalf()
        return wp


    def loadHydrostatics(self, hydroDict):
        '''Rigid-body mass, damping and restoring data, from a Hydrostatic.in file, from
        inline arrays, or computed from the mesh for a freely floating body.'''

        if hydroDict is None:
            return None
        if 'file' in hydroDict:
            return bem_io.readHydrostatic(os.path.join(self.baseDir, hydroDict['file']))
        if getFromDict(hydroDict, 'from_mesh', dtype=int, default=0):
            cog = getFromDict(hydroDict, 'cog', shape=3, default=0.0) if 'cog' in hydroDict else None
            mass = getFromDict(hydroDict, 'mass', default=0.0) if 'mass' in hydroDict else None
            return HydrostaticData.fromMesh(self.mesh, rho=self.rho, g=self.g, cog=cog, mass=mass)

        return HydrostaticData(cog     = getFromDict(hydroDict, 'cog', shape=3, default=0.0),
                               mass    = getFromDict(hydroDict, 'mass_matrix', shape=[6,6], default=0.0),
                               damping = getFromDict(hydroDict, 'damping', shape=[6,6], default=0.0),
                               kHydro  = getFromDict(hydroDict, 'hydrostatic_restoring', shape=[6,6], default=0.0),
                               kExt    = getFromDict(hydroDict, 'external_restoring', shape=[6,6], default=0.0))


    def memoryEstimate(self):
        '''Bytes needed by the dense per-frequency arrays, and their shapes.'''

        nsys = self.mesh.nsys
        N = self.mesh.nelem
        I = 0 if self.waterplane is None or not self.removeIrregular else self.waterplane.nelem
        T = N + I

        shapes = {'kernel table': (nsys, T, N, 4),
                  'influence matrix': (nsys, T, N),
                  'source integrals': (nsys, T, N),
                  'factored matrix': (nsys, N, N)}
        if I > 0:
            shapes['normal matrix'] = (nsys, N, N)
        if self.nField > 0:
            shapes['field kernel table'] = (nsys, self.nField, N, 4)

        nbytes = sum(16*int(np.prod(s)) for s in shapes.values())
        return nbytes, shapes


    def checkMemory(self):
        '''Raise AllocationFailure if the dense arrays exceed the configured memory limit.'''

        nbytes, shapes = self.memoryEstimate()
        if self.memoryLimit > 0 and nbytes > self.memoryLimit*1e9:
            desc = ", ".join([f"{key} {shape}" for key, shape in shapes.items()])
            raise AllocationFailure(f"The dense arrays need {nbytes/1e9:.3f} GB, more than the limit of "
                                    f"{self.memoryLimit} GB ({desc}).", nbytes=nbytes, shapes=shapes)


    def waveCase(self, index, value):
        '''Derive the wave properties of one entry of the frequency sweep.'''

        omega, k, period, wavelength = convertFrequency(value, self.iFType, self.depth, g=self.g)
        label = frequencyLabel(omega, k, self.oFType, g=self.g)
        return WaveCase(index, omega, k, period, wavelength, label)


    def runSweep(self, display=0):
        '''Solve the radiation and diffraction problems for every wave case in order,
        collecting one result record per case.

        Parameters
        ----------
        display : int
            0 for no output, 1 for a line per wave case, 2 for more details
        '''

        self.results = SweepResults(self.headings, xRef=self.xRef, fieldPoints=self.fieldPoints)

        if display > 0:
            print(f" Mesh '{self.mesh.name}': {self.mesh.nelem} panels, {self.mesh.nsys} symmetry block(s)"
                  + (f", {self.waterplane.nelem} waterplane panels" if self.removeIrregular else ""))
            print(f" Water depth: {'infinite' if self.deep else self.depth}, {self.nw} frequencies, "
                  f"{self.nh} headings, {self.nThreads} thread(s), {self.assembler.name} assembly")

        tic = time.time()

        try:
            with ThreadPoolExecutor(max_workers=self.nThreads) as executor:

                if self.computeLimits:
                    for limit in ['zero', 'infinite']:
                        self.results.limits[limit] = self.solveLimit(limit, executor, display=display)

                for iw, value in enumerate(self.frequencyValues):
                    record = self.solveCase(iw, value, executor, display=display)
                    self.results.append(record)

        except MemoryError as ex:
            nbytes, shapes = self.memoryEstimate()
            raise AllocationFailure(f"Out of memory while solving wave cases (the dense arrays need about "
                                    f"{nbytes/1e9:.3f} GB): {ex}", nbytes=nbytes, shapes=shapes)

        if display > 0:
            nFail = len(self.results.failed())
            print(f" Sweep finished in {time.time()-tic:.2f} s with {self.nw - nFail} of {self.nw} wave cases solved.")

        return self.results


    def solveCase(self, iw, value, executor=None, display=0):
        '''Run the full pipeline for one wave case. Numerical failures are recorded on the
        returned record rather than raised.'''

        record = WaveCaseResult(iw, value, self.nh, nField=self.nField)

        try:
            case = self.waveCase(iw, value)
            record.case = case
            omega = case.omega

            if display > 0:
                print(f" Wave case {iw+1:4d}: omega = {omega:8.4f} rad/s, period = {case.period:8.4f} s, "
                      f"k = {case.k:8.5f} 1/m")

            green = GreenFunction(omega*omega/self.g, case.k, self.depth, omega=omega)
            kernels = KernelTable.build(green, self.mesh, self.waterplane if self.removeIrregular else None,
                                        executor=executor)

            self.assembler.assemble(kernels)
            del kernels
            self.solver.factor(self.assembler.systemMatrix(), omega=omega)

            # radiation
            phiR = self.solver.solve(self.assembler.systemRHS(self.assembler.radiationRHS()))
            A, B = radiationCoefficients(self.mesh, phiR, omega, rho=self.rho)

            # field points see the body through their own kernel table
            fieldTable = None
            if self.nField > 0:
                fieldTable = green.kernelTable(self.mesh, self.fieldPoints, executor=executor)
                fieldR = radiationFieldPotentials(self.mesh, fieldTable, phiR)
                fieldD = np.zeros([self.nh, self.nField], dtype=complex)

            # diffraction, reusing the factorization for each heading
            X = np.zeros([self.nh, 6], dtype=complex)
            Xh = np.zeros([self.nh, 6], dtype=complex)
            for ih, beta in enumerate(np.radians(self.headings)):
                phiI, dphidn = incidentBlocks(self.mesh, beta, omega, case.k, self.depth, g=self.g)
                phiS = self.solver.solve(self.assembler.systemRHS(self.assembler.diffractionRHS(dphidn)))
                X[ih]  = excitationForce(self.mesh, phiI + phiS, omega, rho=self.rho)
                Xh[ih] = haskindExcitation(self.mesh, phiR, phiI, dphidn, omega, rho=self.rho)
                if fieldTable is not None:
                    fieldD[ih] = diffractionFieldPotentials(self.mesh, fieldTable, self.fieldPoints, phiS, dphidn,
                                                            beta, omega, case.k, self.depth, g=self.g)

            if fieldTable is not None:
                record.fieldRadiation, record.fieldDiffraction = fieldR, fieldD
                del fieldTable

            # motions
            if self.hydrostatics is not None:
                Xi = solveMotion(omega, self.hydrostatics.mass, A, B, self.hydrostatics.damping,
                                 self.hydrostatics.stiffness, X.T).T
                record.Xi = Xi

            record.A, record.B, record.X, record.Xhaskind = A, B, X, Xh
            record.status = 'ok'

            if display > 1:
                print("  A diag "+"  ".join(["{:+10.3e}"]*6).format(*np.diag(A)))
                print("  B diag "+"  ".join(["{:+10.3e}"]*6).format(*np.diag(B)))
                print(f"  rcond  {self.solver.rcond}")

        except NonConvergenceError as ex:
            record.status = 'nonconvergence'
            record.message = str(ex)
            if display > 0:
                print(f"Warning: wave case {iw+1} skipped, numerical non-convergence: {ex}")

        except SolverFailure as ex:
            record.status = 'solver failure'
            record.message = str(ex)
            if display > 0:
                print(f"Warning: wave case {iw+1} skipped, linear solve failed: {ex}")

        finally:
            self.assembler.release()
            self.solver.release()

        return record


    def solveLimit(self, limit, executor=None, display=0):
        '''Added mass at the zero or infinite frequency limit.'''

        record = WaveCaseResult(-1, 0.0 if limit == 'zero' else np.inf, 0, limit=limit)
        if limit == 'zero':
            record.case = WaveCase(-1, 0.0, 0.0, np.inf, np.inf, -1.0, limit=limit)
        else:
            record.case = WaveCase(-1, np.inf, np.inf, 0.0, 0.0, 0.0, limit=limit)

        if display > 0:
            print(f" Solving the {limit}-frequency limit")

        try:
            green = GreenFunction(0.0, 0.0, self.depth, limit=limit)
            kernels = KernelTable.build(green, self.mesh, self.waterplane if self.removeIrregular else None,
                                        executor=executor)
            self.assembler.assemble(kernels)
            del kernels
            self.solver.factor(self.assembler.systemMatrix())
            phiR = self.solver.solve(self.assembler.systemRHS(self.assembler.radiationRHS()))
            record.A, record.B = radiationCoefficients(self.mesh, phiR, 0.0, rho=self.rho, limit=limit)
            record.status = 'ok'

        except (NonConvergenceError, SolverFailure) as ex:
            record.status = 'solver failure' if isinstance(ex, SolverFailure) else 'nonconvergence'
            record.message = str(ex)
            if display > 0:
                print(f"Warning: {limit}-frequency limit skipped: {ex}")

        finally:
            self.assembler.release()
            self.solver.release()

        return record


    def writeOutputs(self, outDir=None):
        '''Write the WAMIT-format and HAMS-format result files, and the pressure and
        elevation at the field points when any are given. Returns the base path of the
        WAMIT files.'''

        if outDir is None:
            outDir = self.outputDir
        if outDir is None:
            raise ConfigError("No output directory given.")
        if self.results is None:
            raise ConfigError("The sweep must be run before writing outputs.")

        outDir = os.path.join(self.baseDir, outDir)
        dirs = bem_io.createOutputDirs(outDir)
        base = os.path.join(dirs['wamit'], self.name)

        bem_io.writeWamit1(base+'.1', self.results, rho=self.rho, L=self.refLength)
        bem_io.writeWamit3(base+'.3', self.results, rho=self.rho, g=self.g, L=self.refLength)
        if self.hydrostatics is not None:
            bem_io.writeWamit4(base+'.4', self.results, L=self.refLength)

        freqName = frequencyTypes[self.oFType].replace(' ', '_')
        bem_io.writeHamsCoefficients(dirs['hams'], self.results, motions=self.hydrostatics is not None,
                                     frequencyName=freqName)
        if self.nField > 0:
            bem_io.writeFieldOutputs(dirs['hams'], self.results, rho=self.rho, g=self.g, frequencyName=freqName)

        return base


def runBEM(input_file, display=1):
    '''
    This will set up and run HydroBEM based on a YAML input file or a design dictionary.
    '''

    if not isinstance(input_file, dict):
        print("\n\nLoading HydroBEM input file: "+input_file)
        with open(input_file) as file:
            design = yaml.load(file, Loader=yaml.FullLoader)
        baseDir = os.path.dirname(os.path.abspath(input_file))
    else:
        design = input_file
        baseDir = None
        print(f"'{design.get('name', 'hydrobem')}'")

    print(" --- making model ---")
    model = Model(design, baseDir=baseDir)
    print(" --- running frequency sweep ---")
    model.runSweep(display=display)

    if model.outputDir is not None:
        base = model.writeOutputs()
        print(f" --- results written to {base}.* ---")

    return model


if __name__ == "__main__":
    import sys
    model = runBEM(sys.argv[1])
