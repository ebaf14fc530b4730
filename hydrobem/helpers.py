# HydroBEM's helper functions

import numpy as np

from hydrobem.errors import ConfigError, NonConvergenceError

TwoPi = 2.0*np.pi

# names of the frequency types used in the control settings and output files
frequencyTypes = {1: 'deep-water wave number', 2: 'finite-depth wave number',
                  3: 'wave frequency', 4: 'wave period', 5: 'wavelength'}


def getFromDict(dict, key, shape=0, dtype=float, default=None):
    '''
    Function to streamline getting values from the design dictionary from a YAML file,
    including error checking.

    Parameters
    ----------
    dict : dict
        the dictionary
    key : string
        the key in the dictionary
    shape : int or list, optional
        The desired shape of the output. If not provided, assuming scalar output.
        If -1, any input shape is used.
    dtype : type
        Must be a python type that can serve as a function to format the input value to the right type.
    default : number or list, optional
        The default value to fill in if the item isn't in the dictionary.
        Otherwise will raise an error if the key doesn't exist.
    '''

    if key in dict and dict[key] is not None:
        val = dict[key]
        if shape==0:                                         # scalar input expected
            if np.isscalar(val):
                return dtype(val)
            else:
                raise ConfigError(f"Value for key '{key}' is expected to be a scalar but instead is: {val}")
        elif shape==-1:                                      # any input shape accepted
            if np.isscalar(val):
                return dtype(val)
            else:
                return np.array(val, dtype=dtype)
        else:
            if np.isscalar(val):                             # a scalar given where an array is needed, so tile it
                return np.tile(dtype(val), shape)
            elif np.isscalar(shape):                         # 1D array expected
                if len(val) == shape:
                    return np.array([dtype(v) for v in val])
                else:
                    raise ConfigError(f"Value for key '{key}' is not the expected size of {shape} and is instead: {val}")
            else:                                            # multi-dimensional array expected
                vala = np.array(val, dtype=dtype)
                if list(vala.shape) == list(shape):
                    return vala
                else:
                    raise ConfigError(f"Value for key '{key}' is not a compatible size for target size of {shape} and is instead: {val}")
    else:
        if default is None:
            raise ConfigError(f"Key '{key}' not found in input file...")
        else:
            if shape==0 or shape==-1:
                return default
            else:
                return np.tile(default, shape)


def isDeep(h):
    '''True if the water depth value denotes infinite depth (zero, negative or inf).'''
    return h is None or h <= 0 or np.isinf(h)


def waveNumber(omega, h, g=9.80665, tol=1e-12, maxIter=100):
    '''Solve the linear dispersion relation omega^2 = g k tanh(k h) for the wave number k.

    Parameters
    ----------
    omega : float
        wave frequency [rad/s]
    h : float
        water depth [m]; zero, negative or inf values mean deep water
    g : float
        gravitational acceleration [m/s^2]

    Returns
    -------
    k : float
        wave number [1/m]
    '''

    K = omega*omega/g                                 # deep-water wave number

    if isDeep(h) or K == 0.0:
        return K

    if K*h > 20.0:                                    # deep enough that tanh(kh) is 1 to machine precision
        return K

    k = K/np.sqrt(np.tanh(K*h))                       # starting guess (exact in both the shallow and deep limits)

    for i in range(maxIter):
        th = np.tanh(k*h)
        f  = k*th - K
        df = th + k*h*(1.0 - th*th)
        dk = f/df
        k = k - dk
        if k <= 0.0:                                  # step went too far, go back toward the deep water value
            k = 0.5*(k + dk + K)
        if abs(dk) < tol*k:
            return k

    raise NonConvergenceError(f"Wave number iteration did not converge for omega={omega} rad/s and depth={h} m "
                              f"(last correction {dk:.3e} after {maxIter} iterations).", omega=omega)


def evanescentWaveNumbers(K, h, n, tol=1e-13, maxIter=200):
    '''Return the first n positive roots of k tan(k h) = -K, which are the wave numbers
    of the evanescent modes in finite depth.

    The n-th root lies in ((n-1/2) pi/h, n pi/h). The roots are found by bisection on
    x sin(x) + K h cos(x), which has no poles in that interval.
    '''

    n_ = np.arange(1, n+1)
    lo = (n_ - 0.5)*np.pi
    hi = n_*np.pi
    Kh = K*h

    def func(x):
        return x*np.sin(x) + Kh*np.cos(x)

    flo = func(lo)
    for i in range(maxIter):
        mid = 0.5*(lo + hi)
        fmid = func(mid)
        left = np.sign(fmid) == np.sign(flo)
        lo = np.where(left, mid, lo)
        flo = np.where(left, fmid, flo)
        hi = np.where(left, hi, mid)
        if np.max(hi - lo) < tol*np.max(hi):
            return 0.5*(lo + hi)/h

    raise NonConvergenceError(f"Evanescent wave number search did not converge for K={K} 1/m and depth={h} m.")


def convertFrequency(value, inputType, h, g=9.80665):
    '''Turn one value of the wave frequency input into the full set of wave properties.

    Parameters
    ----------
    value : float
        the input value, interpreted according to inputType
    inputType : int
        1: deep-water wave number, 2: finite-depth wave number,
        3: wave frequency, 4: wave period, 5: wavelength

    Returns
    -------
    omega, k, period, wavelength : floats
    '''

    if not inputType in frequencyTypes:
        raise ConfigError(f"Input frequency type {inputType} not recognized. It must be one of {list(frequencyTypes)}.")
    if value <= 0.0:
        raise ConfigError(f"Wave {frequencyTypes[inputType]} values must be positive (got {value}).")

    if inputType == 1:
        omega = np.sqrt(g*value)
        k = waveNumber(omega, h, g=g)
    elif inputType == 2:
        k = value
        omega = np.sqrt(g*k) if isDeep(h) else np.sqrt(g*k*np.tanh(k*h))
    elif inputType == 3:
        omega = value
        k = waveNumber(omega, h, g=g)
    elif inputType == 4:
        omega = TwoPi/value
        k = waveNumber(omega, h, g=g)
    else:
        k = TwoPi/value
        omega = np.sqrt(g*k) if isDeep(h) else np.sqrt(g*k*np.tanh(k*h))

    return omega, k, TwoPi/omega, TwoPi/k


def frequencyLabel(omega, k, outputType, g=9.80665):
    '''The value used to label a wave case in the output, according to the output frequency type.'''

    if outputType == 1:
        return omega*omega/g
    elif outputType == 2:
        return k
    elif outputType == 3:
        return omega
    elif outputType == 4:
        return TwoPi/omega
    elif outputType == 5:
        return TwoPi/k
    else:
        raise ConfigError(f"Output frequency type {outputType} not recognized. It must be one of {list(frequencyTypes)}.")


def getH(r):
    '''function gets the alternator matrix, H, that when multiplied with a vector,
    returns the cross product of r with that vector'''

    H = np.array([[ 0   ,-r[2], r[1]],
                  [ r[2], 0   ,-r[0]],
                  [-r[1], r[0], 0   ]])
    return H


def translateMatrix6to6DOF(Min, r):
    '''Transforms a 6x6 matrix to be about a translated reference point.
    r is the vector from the old reference point to the new one.'''

    # displacements at the old point are  x0 = T x1  with  T = [[I, H(r)], [0, I]]
    T = np.eye(6)
    T[:3,3:] = getH(r)

    return np.matmul(np.matmul(T.T, Min), T)


def transformForce(f_in, offset=[]):
    '''Moves a 6-DOF force/moment vector to be about a translated reference point.
    offset is the vector from the old reference point to the new one.'''

    f_out = np.array(f_in, dtype=np.asarray(f_in).dtype)
    if len(offset) > 0:
        f_out[3:] = f_out[3:] - np.cross(offset, f_out[:3])

    return f_out


def gaussLegendre(n, a=-1.0, b=1.0):
    '''Gauss-Legendre nodes and weights mapped onto the interval [a, b].'''

    x, w = np.polynomial.legendre.leggauss(n)
    return 0.5*(b - a)*x + 0.5*(b + a), 0.5*(b - a)*w
