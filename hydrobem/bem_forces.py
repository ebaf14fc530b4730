# HydroBEM's force and motion integration

import numpy as np

from hydrobem.helpers import isDeep
from hydrobem.errors import SolverFailure


def incidentWave(points, beta, omega, k, h, g=9.80665):
    '''Potential and gradient of a unit-amplitude Airy wave travelling in direction beta,

        phi_I = -(i g/omega) cosh k(z+h)/cosh kh exp(i k (x cos beta + y sin beta))

    (exp(kz) in deep water), with time dependence e^{-i omega t}.

    Parameters
    ----------
    points : array
        M x 3 points [m]
    beta : float
        wave heading [rad]

    Returns
    -------
    phi : array
        M complex potentials [m^2/s]
    grad : array
        M x 3 complex gradients [m/s]
    '''

    points = np.atleast_2d(points)
    x, y, z = points[:,0], points[:,1], points[:,2]

    if isDeep(h):
        Z  = np.exp(k*z)
        dZ = k*Z
    else:
        den = 1.0 + np.exp(-2*k*h)
        Z  =   (np.exp(k*z) + np.exp(-k*(z + 2*h)))/den
        dZ = k*(np.exp(k*z) - np.exp(-k*(z + 2*h)))/den

    ex = np.exp(1j*k*(x*np.cos(beta) + y*np.sin(beta)))
    amp = -1j*g/omega

    phi = amp*Z*ex
    grad = np.zeros([len(x), 3], dtype=complex)
    grad[:,0] = 1j*k*np.cos(beta)*phi
    grad[:,1] = 1j*k*np.sin(beta)*phi
    grad[:,2] = amp*dZ*ex

    return phi, grad


def incidentBlocks(mesh, beta, omega, k, h, g=9.80665):
    '''Incident potential and its normal derivative at the panel centroids, split into
    the parts belonging to each symmetry block.

    Returns
    -------
    phi, dphidn : arrays
        NSYS x NELEM complex arrays
    '''

    phi0, grad0 = incidentWave(mesh.centroids, beta, omega, k, h, g)
    dn0 = np.sum(grad0*mesh.normals, axis=1)

    if mesh.nsys == 1:
        return phi0[None,:], dn0[None,:]

    # values at the mirrored panels
    P = mesh.mirrorMatrix()
    phi1, grad1 = incidentWave(np.matmul(mesh.centroids, P), beta, omega, k, h, g)
    dn1 = np.sum(grad1*np.matmul(mesh.normals, P), axis=1)

    signs = mesh.blockSigns()
    phi = np.array([0.5*(phi0 + s*phi1) for s in signs])
    dphidn = np.array([0.5*(dn0 + s*dn1) for s in signs])

    return phi, dphidn


def _fullBodyWeights(mesh):
    '''For each pair of modes (i, j), the factor turning an integral over the meshed part
    into one over the full body: 2 when the product of the two modes is symmetric, 0 when
    it is antisymmetric, and 1 without symmetry.'''

    if mesh.nsys == 1:
        return np.ones([6,6])
    tau = mesh.modeParity()
    return np.where(np.outer(tau, tau) > 0, 2.0, 0.0)


def radiationCoefficients(mesh, phiR, omega, rho=1025.0, limit=None):
    '''Added mass and radiation damping from the radiation potentials,

        A_ij + (i/omega) B_ij = -rho int phi_j n_i dS

    Parameters
    ----------
    phiR : array
        NSYS x NELEM x 6 radiation potentials of each block
    limit : str, optional
        'zero' or 'infinite' for the limiting frequencies, where the damping is zero

    Returns
    -------
    A, B : arrays
        6 x 6 added mass and damping matrices about the mesh reference point
    '''

    blocks = mesh.modeBlocks()
    phi = np.array([phiR[blocks[j], :, j] for j in range(6)]).T              # NELEM x 6, each mode from its own block
    nA = mesh.generalizedNormals*mesh.areas[:,None]

    Z = -rho*_fullBodyWeights(mesh)*np.matmul(nA.T, phi)                       # [i,j]

    A = np.real(Z)
    if limit is None:
        B = omega*np.imag(Z)
    else:
        B = np.zeros([6,6])

    return A, B


def excitationForce(mesh, phiT, omega, rho=1025.0):
    '''Wave excitation force per unit wave amplitude from the total (incident plus
    scattered) potential, X_i = -i omega rho int phi n_i dS.

    Parameters
    ----------
    phiT : array
        NSYS x NELEM total potential of each block
    '''

    blocks = mesh.modeBlocks()
    nA = mesh.generalizedNormals*mesh.areas[:,None]
    f = mesh.symmetryFactor()

    X = np.zeros(6, dtype=complex)
    for i in range(6):
        X[i] = -1j*omega*rho*f*np.sum(phiT[blocks[i]]*nA[:,i])

    return X


def haskindExcitation(mesh, phiR, phiI, dphidnI, omega, rho=1025.0):
    '''Excitation force from the radiation potentials and the incident wave alone
    (Haskind relation), X_j = -i omega rho int (phi_I n_j - phi_j dphi_I/dn) dS.
    Agreement with excitationForce is a check of the diffraction solution.'''

    blocks = mesh.modeBlocks()
    n = mesh.generalizedNormals
    f = mesh.symmetryFactor()

    X = np.zeros(6, dtype=complex)
    for j in range(6):
        b = blocks[j]
        X[j] = -1j*omega*rho*f*np.sum((phiI[b]*n[:,j] - phiR[b,:,j]*dphidnI[b])*mesh.areas)

    return X


def fieldPotentials(mesh, table, phi, dphidn):
    '''Potential at points in the fluid from the body surface values, by Green's theorem

        4 pi phi(x) = sum_j D_xj phi_j - sum_j S_xj (dphi/dn)_j

    Parameters
    ----------
    table : array
        NSYS x M x NELEM x 4 kernel table of the field points against the body panels
    phi, dphidn : arrays
        NSYS x NELEM (x ncol) potential and normal derivative of each symmetry block

    Returns
    -------
    array
        M (x ncol) complex potentials, summed over the blocks
    '''

    S = table[..., 0]
    D = np.einsum('smjk,jk->smj', table[..., 1:], mesh.normals)
    return (np.einsum('smj,sj...->m...', D, phi) - np.einsum('smj,sj...->m...', S, dphidn))/(4*np.pi)


def radiationFieldPotentials(mesh, table, phiR):
    '''M x 6 radiation potentials per unit body velocity at the field points. Each mode
    only takes the block it was solved in.'''

    blocks = mesh.modeBlocks()
    n = mesh.generalizedNormals
    phi = np.zeros(phiR.shape, dtype=complex)
    q = np.zeros(phiR.shape, dtype=complex)
    for j in range(6):
        phi[blocks[j],:,j] = phiR[blocks[j],:,j]
        q[blocks[j],:,j] = n[:,j]
    return fieldPotentials(mesh, table, phi, q)


def diffractionFieldPotentials(mesh, table, points, phiS, dphidnI, beta, omega, k, h, g=9.80665):
    '''Total (incident plus scattered) potential at the field points for one heading, per
    unit wave amplitude. The scattered wave cancels the incident normal velocity on the body.'''

    phiI = incidentWave(points, beta, omega, k, h, g)[0]
    return phiI + fieldPotentials(mesh, table, phiS, -dphidnI)


def pressureElevation(phi, omega, rho=1025.0, g=9.80665):
    '''Dynamic pressure -rho dPhi/dt and free-surface elevation -(1/g) dPhi/dt of a potential
    with time dependence e^{-i omega t}. The elevation is only meaningful at points on z=0.'''
    return 1j*omega*rho*phi, 1j*omega*phi/g


def solveMotion(omega, M, A, B, Bvisc, C, F):
    '''Solve the frequency-domain equations of motion

        (-omega^2 (M + A) - i omega (B + Bvisc) + C) xi = F

    for the complex response amplitudes. F can hold one column per heading.
    '''

    Z = -omega**2*(M + A) - 1j*omega*(B + Bvisc) + C

    try:
        Xi = np.linalg.solve(Z, F)
    except np.linalg.LinAlgError:
        raise SolverFailure(f"Motion impedance matrix is singular at omega={omega} rad/s.", omega=omega)

    if np.any(np.isnan(Xi)):
        raise SolverFailure(f"NaN detected in response amplitudes at omega={omega} rad/s.", omega=omega)

    return Xi


class HydrostaticData():
    '''Rigid-body properties that enter the equations of motion but are not computed by
    the solver: center of gravity, mass matrix, external damping, and restoring.'''

    def __init__(self, cog=np.zeros(3), mass=np.zeros([6,6]), damping=np.zeros([6,6]),
                 kHydro=np.zeros([6,6]), kExt=np.zeros([6,6])):

        self.cog = np.array(cog, dtype=float).reshape(3)
        self.mass = np.array(mass, dtype=float).reshape(6,6)
        self.damping = np.array(damping, dtype=float).reshape(6,6)
        self.kHydro = np.array(kHydro, dtype=float).reshape(6,6)
        self.kExt = np.array(kExt, dtype=float).reshape(6,6)

    @property
    def stiffness(self):
        '''Total restoring matrix.'''
        return self.kHydro + self.kExt

    def hasMass(self):
        return np.any(self.mass != 0.0)

    @staticmethod
    def fromMesh(mesh, rho=1025.0, g=9.80665, cog=None, mass=None):
        '''Freely floating body in equilibrium: mass equal to the displaced mass, with
        inertias left at zero, and the hydrostatic restoring of the wetted surface.'''

        V = mesh.volume()
        m = rho*V if mass is None else mass
        cog = mesh.centerOfBuoyancy() if cog is None else np.array(cog, dtype=float)

        M = np.zeros([6,6])
        M[0,0] = M[1,1] = M[2,2] = m
        r = cog - mesh.xRef
        M[0,4] = M[4,0] =  m*r[2]
        M[0,5] = M[5,0] = -m*r[1]
        M[1,3] = M[3,1] = -m*r[2]
        M[1,5] = M[5,1] =  m*r[0]
        M[2,3] = M[3,2] =  m*r[1]
        M[2,4] = M[4,2] = -m*r[0]

        return HydrostaticData(cog=cog, mass=M, kHydro=mesh.hydrostaticStiffness(rho, g, rCG=cog, mass=m))
