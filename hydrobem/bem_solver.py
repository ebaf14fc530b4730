# HydroBEM's dense direct solver

import numpy as np
from scipy.linalg import lu_factor, lu_solve, get_lapack_funcs

from hydrobem.errors import SolverFailure


class Solver():
    '''LU factorization of the influence matrix of one wave case, per symmetry block,
    reused for the radiation right-hand sides and for the diffraction right-hand side
    of every heading.'''

    def __init__(self, rcond_min=1e-12):
        '''
        Parameters
        ----------
        rcond_min : float
            smallest acceptable estimate of the reciprocal 1-norm condition number
        '''
        self.rcond_min = rcond_min
        self.factors = None
        self.rcond = None
        self.omega = None
        self.nFactorizations = 0        # total factorizations done by this solver


    def factor(self, matrix, omega=None):
        '''Factor the NSYS x N x N matrix. Raises SolverFailure if a block is singular,
        badly conditioned, or not finite.'''

        self.factors = None
        self.omega = omega
        self.rcond = np.zeros(matrix.shape[0])
        factors = []

        for isys in range(matrix.shape[0]):
            a = matrix[isys]

            if not np.all(np.isfinite(a)):
                raise SolverFailure(f"Influence matrix of block {isys} has non-finite entries at omega={omega} rad/s.",
                                    omega=omega, block=isys)

            anorm = np.max(np.sum(np.abs(a), axis=0))
            lu, piv = lu_factor(a, check_finite=False)
            self.nFactorizations += 1

            if np.any(np.diag(lu) == 0.0):
                raise SolverFailure(f"Influence matrix of block {isys} is singular at omega={omega} rad/s.",
                                    omega=omega, block=isys, rcond=0.0)

            gecon, = get_lapack_funcs(('gecon',), (lu,))
            rcond, info = gecon(lu, anorm, norm='1')
            if info != 0:
                raise SolverFailure(f"Condition estimate of block {isys} failed at omega={omega} rad/s "
                                    f"(LAPACK gecon info={info}).", omega=omega, block=isys)
            self.rcond[isys] = rcond
            if rcond < self.rcond_min:
                raise SolverFailure(f"Influence matrix of block {isys} is ill-conditioned at omega={omega} rad/s "
                                    f"(rcond={rcond:.3e} < {self.rcond_min:.1e}).",
                                    omega=omega, block=isys, rcond=rcond)

            factors.append((lu, piv))

        self.factors = factors


    def solve(self, rhs):
        '''Back-substitute NSYS x N (x ncol) right-hand sides with the current factorization.'''

        if self.factors is None:
            raise SolverFailure("No factorization available, call factor first.", omega=self.omega)

        x = np.zeros(rhs.shape, dtype=complex)
        for isys, (lu, piv) in enumerate(self.factors):
            x[isys] = lu_solve((lu, piv), rhs[isys], check_finite=False)

        if not np.all(np.isfinite(x)):
            raise SolverFailure(f"Solution has non-finite values at omega={self.omega} rad/s.", omega=self.omega)

        return x


    def release(self):
        '''Drop the factorization at the end of a wave case.'''
        self.factors = None
