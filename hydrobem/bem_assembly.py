# HydroBEM's influence matrix assembly, in standard and irregular-frequency-removal variants

import numpy as np

from hydrobem.errors import ConfigError


class Assembler():
    '''Builds the influence matrix and right-hand sides of the boundary integral equation

        2 pi phi_i - sum_j D_ij phi_j = - sum_j S_ij (dphi/dn)_j

    for each symmetry block, from the kernel tables of one wave case.
    S_ij is the integral of G over panel j seen from centroid i and D_ij the integral of
    its normal derivative. Subclasses decide which rows make up the system and how it is
    reduced to a square one.
    '''

    name = 'base'

    def __init__(self, mesh, waterplane=None):
        self.mesh = mesh
        self.waterplane = waterplane
        self.matrix = None          # NSYS x rows x NELEM influence matrix of the current wave case
        self.sources = None         # NSYS x rows x NELEM single-layer integrals of the current wave case

    @property
    def nrows(self):
        return self.mesh.nelem

    def _split(self, table):
        '''Single-layer and double-layer parts of a kernel table.'''
        S = table[..., 0]
        D = np.einsum('sijk,jk->sij', table[..., 1:], self.mesh.normals)
        return S, D

    def assemble(self, kernels):
        '''Build the influence matrix for one wave case from its KernelTable.'''

        S, D = self._split(kernels.body)
        N = self.mesh.nelem
        A = -D
        idx = np.arange(N)
        A[:, idx, idx] += 2*np.pi
        self.matrix = A
        self.sources = S
        return self.matrix

    def radiationRHS(self):
        '''Right-hand sides of the six radiation problems, NSYS x rows x 6.
        The body boundary condition is dphi_j/dn = n_j.'''
        return -np.matmul(self.sources, self.mesh.generalizedNormals)

    def diffractionRHS(self, dphidn):
        '''Right-hand side of the scattering problem for one heading, NSYS x rows.

        Parameters
        ----------
        dphidn : array
            NSYS x NELEM normal derivative of the incident potential, split into its
            symmetric and antisymmetric parts
        '''
        # the scattered potential cancels the incident normal velocity
        return np.einsum('sij,sj->si', self.sources, dphidn)

    def systemMatrix(self):
        '''Square matrices to be factored, NSYS x NELEM x NELEM.'''
        return self.matrix

    def systemRHS(self, rhs):
        '''Right-hand sides matching systemMatrix.'''
        return rhs

    def release(self):
        self.matrix = None
        self.sources = None


class StandardAssembler(Assembler):
    '''One collocation equation per body panel.'''

    name = 'standard'


class IrregularAssembler(Assembler):
    '''Adds one equation per waterplane panel, expressing that the potential of the
    exterior problem produces no field inside the body:

        - sum_j D_ij phi_j = - sum_j S_ij (dphi/dn)_j

    at the waterplane panel centroids. These extra constraints remove the irregular
    frequencies of the body equation. The overdetermined system of NELEM unknowns and
    TNELEM = NELEM + INELEM equations is solved in the least-squares sense through its
    normal equations.
    '''

    name = 'irregular'

    def __init__(self, mesh, waterplane=None):
        if waterplane is None or waterplane.nelem == 0:
            raise ConfigError("Irregular frequency removal needs a waterplane mesh with at least one panel.")
        if waterplane.nsys != mesh.nsys or waterplane.isx != mesh.isx or waterplane.isy != mesh.isy:
            raise ConfigError("The waterplane mesh must use the same symmetry flags as the body mesh.")
        super().__init__(mesh, waterplane)

    @property
    def nrows(self):
        return self.mesh.nelem + self.waterplane.nelem

    def assemble(self, kernels):

        if kernels.waterplane is None:
            raise ConfigError("The waterplane kernel table is missing.")

        A = super().assemble(kernels)
        Sw, Dw = self._split(kernels.waterplane)

        self.matrix = np.concatenate([A, -Dw], axis=1)        # NSYS x TNELEM x NELEM
        self.sources = np.concatenate([self.sources, Sw], axis=1)
        return self.matrix

    def systemMatrix(self):
        AH = np.conj(np.swapaxes(self.matrix, 1, 2))
        return np.matmul(AH, self.matrix)

    def systemRHS(self, rhs):
        AH = np.conj(np.swapaxes(self.matrix, 1, 2))
        if rhs.ndim == 2:
            return np.einsum('sij,sj->si', AH, rhs)
        return np.matmul(AH, rhs)


def getAssembler(mesh, waterplane=None, removeIrregular=False):
    '''Pick the assembly strategy from the irregular frequency removal option.'''

    if removeIrregular:
        return IrregularAssembler(mesh, waterplane)
    return StandardAssembler(mesh, waterplane)
