# HydroBEM's exception classes

class HydroBEMError(Exception):
    '''Base class for all errors raised by HydroBEM.'''
    pass


class ConfigError(HydroBEMError):
    '''Invalid or inconsistent input. Raised before any computation starts.'''
    pass


class NonConvergenceError(HydroBEMError):
    '''An iterative root search or series in the Green function failed to converge.

    Parameters
    ----------
    message : str
        description of what failed
    omega : float, optional
        wave frequency of the affected wave case [rad/s]
    '''

    def __init__(self, message, omega=None):
        super().__init__(message)
        self.omega = omega


class SolverFailure(HydroBEMError):
    '''The influence matrix of a wave case is singular or badly conditioned,
    or its solution is not finite.'''

    def __init__(self, message, omega=None, block=None, rcond=None):
        super().__init__(message)
        self.omega = omega
        self.block = block
        self.rcond = rcond


class AllocationFailure(HydroBEMError):
    '''The dense per-frequency arrays do not fit in the available memory.'''

    def __init__(self, message, nbytes=0, shapes=None):
        super().__init__(message)
        self.nbytes = nbytes
        self.shapes = shapes or {}
