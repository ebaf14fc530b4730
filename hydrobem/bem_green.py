# HydroBEM's free-surface Green function and kernel table evaluation

import numpy as np
from scipy.special import exp1, struve, j0, j1, y0, y1
from scipy.special import k0 as besselK0, k1 as besselK1

from hydrobem.helpers import isDeep, evanescentWaveNumbers, gaussLegendre
from hydrobem.bem_rankine import panelIntegrals
from hydrobem.errors import ConfigError, NonConvergenceError


def expE1(z):
    '''e^z E1(z) on the principal branch, switching to the asymptotic series for large |z|
    where e^z and E1(z) separately over/underflow.'''

    z = np.asarray(z, dtype=complex)
    out = np.empty_like(z)
    big = np.abs(z) > 30.0
    small = ~big
    out[small] = np.exp(z[small])*exp1(z[small])

    zb = z[big]
    term = 1.0/zb
    total = term.copy()
    for n in range(1, 16):
        term = -term*n/zb
        total += term
    out[big] = total

    return out


class GreenFunction():
    '''Free-surface Green function of one wave case, with time dependence e^{-i omega t}:

        G = 1/r + 1/r1 + 2K PV int_0^inf e^{kv} J0(kR)/(k-K) dk + 2 pi i K e^{Kv} J0(KR)

    in deep water, with the corresponding finite-depth form (an extra image 1/r2 about the
    seabed and the wave number integral over the finite-depth dispersion relation).
    r, r1 and r2 are the distances to the source and to its images about the free surface
    and the seabed, R is the horizontal distance and v = z + zeta.

    The singular Rankine parts are integrated analytically over each source panel; the smooth
    remainder is evaluated at the panel centroid.
    '''

    def __init__(self, K, k0, h, limit=None, nTheta=12, maxLevels=30, nk=24, rJohn=0.5, tol=1e-9, maxTerms=200,
                 omega=None):
        '''
        Parameters
        ----------
        K : float
            deep-water wave number omega^2/g [1/m]
        k0 : float
            wave number from the dispersion relation [1/m]
        h : float
            water depth [m]; zero, negative or inf values mean deep water
        limit : str, optional
            'zero' or 'infinite' for the limiting frequencies
        nTheta : int
            number of Gauss points per sub-interval of the angular integral in the deep-water wave term
        maxLevels : int
            largest number of geometrically graded sub-intervals of that integral
        nk : int
            number of Gauss points per sub-interval of the finite-depth wave number integral
        rJohn : float
            horizontal distance, relative to the depth, above which the eigenfunction series is used
        tol : float
            truncation tolerance of the series
        '''

        self.K = float(K)
        self.k0 = float(k0)
        self.deep = isDeep(h)
        self.h = np.inf if self.deep else float(h)
        self.limit = limit
        self.rJohn = rJohn
        self.tol = tol
        self.maxTerms = maxTerms
        self.omega = omega

        # coefficients of the Rankine parts 1/r, 1/r1 and 1/r2 and the smooth remainder
        if limit == 'zero':
            if not self.deep:
                raise ConfigError("The zero-frequency limit is only available in deep water.")
            self.coefs = (1.0, 1.0, 0.0)
            self.smooth = None
        elif limit == 'infinite':
            if self.deep:
                self.coefs = (1.0, -1.0, 0.0)
                self.smooth = None
            else:
                self.coefs = (1.0, -1.0, 1.0)
                self.smooth = self.imageSeries
        elif limit is None:
            if self.K <= 0.0:
                raise ConfigError("Wave cases must have a positive frequency, use the 'zero' limit instead.")
            if self.deep:
                self.coefs = (1.0, 1.0, 0.0)
                self.smooth = self.deepWave
            else:
                self.coefs = (1.0, 1.0, 1.0)
                self.smooth = self.finiteWave
        else:
            raise ConfigError(f"Frequency limit '{limit}' not recognized.")

        # reference Gauss rule of each sub-interval of the angular quadrature in the deep-water wave term
        self.xTheta, self.wRef = gaussLegendre(nTheta)
        self.maxLevels = maxLevels

        if self.smooth == self.finiteWave:
            self._setupFiniteDepth(nk)

        # rough number of operations per panel pair, used to size the work chunks
        if self.smooth is None:
            self.nodesPerPair = 8
        elif self.deep:
            self.nodesPerPair = 8 + 12*nTheta
        elif limit == 'infinite':
            self.nodesPerPair = 8 + 40
        else:
            self.nodesPerPair = 8 + 12*nTheta + len(self.kNodes)


    def _setupFiniteDepth(self, nk):
        '''Quadrature nodes of the finite-depth wave number integral and the evanescent wave numbers.'''

        K, k0, h = self.K, self.k0, self.h

        self.kMax = 2*k0 + 40.0/h                       # the remainder decays at least like e^{-kh}
        breaks = np.unique([0.0, K, k0, 2*k0, self.kMax])   # poles are break points so no node falls on them
        dkMax = min(10.0/h, 8*np.pi/(self.rJohn*h))        # resolve both the decay and the J0 oscillations

        nodes = []
        weights = []
        for a, b in zip(breaks[:-1], breaks[1:]):
            nSub = int(np.ceil((b - a)/dkMax))
            for i in range(nSub):
                x, w = gaussLegendre(nk, a + (b - a)*i/nSub, a + (b - a)*(i + 1)/nSub)
                nodes.append(x)
                weights.append(w)
        self.kNodes = np.hstack(nodes)
        self.kWeights = np.hstack(weights)

        # evanescent wave numbers for the eigenfunction expansion
        nTerms = int(np.ceil(np.log(1.0/self.tol)/(np.pi*self.rJohn))) + 2
        if nTerms > self.maxTerms:
            raise NonConvergenceError(f"The eigenfunction series needs {nTerms} terms, more than the limit of {self.maxTerms}.",
                                      omega=self.omega)
        self.kn = evanescentWaveNumbers(K, h, nTerms)


    # ----- smooth parts of the Green function -----
    # each returns the value and its derivatives with respect to R and the source depth zeta

    def thetaRule(self, R, v):
        '''Quadrature nodes and weights of the angular integral over theta in [0, pi/2], one
        rule per (R, v) pair.

        The integrand peaks at theta=pi/2 with a width of about |v|/R in phi = pi/2 - theta, so
        phi is split into [0, s], [s, 4s], [4s, 16s], ... up to pi/2 with s = |v|/R, and each
        piece gets nTheta Gauss points. When |v| >= R pi/2 there is a single interval.

        Returns
        -------
        ct : array
            cos(theta) at the nodes, shape R.shape + (nNodes,)
        wt : array
            matching weights
        '''

        half = 0.5*np.pi
        R = np.asarray(R, dtype=float)
        av = np.abs(np.asarray(v, dtype=float))
        s = np.minimum(av, half*R)/np.where(R > 0.0, R, 1.0)
        s = np.where(R > 0.0, s, half)
        s = np.maximum(s, 1e-14)

        sMin = np.min(s) if s.size > 0 else half
        nLev = int(np.ceil(np.log(half/sMin)/np.log(4.0) - 1e-12)) if sMin < half else 0
        if nLev > self.maxLevels:
            raise NonConvergenceError(f"The angular quadrature needs {nLev} graded levels for R/|v|={1/sMin:.3g}, "
                                      f"more than the limit of {self.maxLevels}.", omega=self.omega)

        breaks = np.minimum(s[...,None]*4.0**np.arange(nLev + 1), half)
        breaks[...,-1] = half
        a = np.concatenate([np.zeros(s.shape + (1,)), breaks[...,:-1]], axis=-1)
        b = breaks

        phi = 0.5*(b - a)[...,None]*self.xTheta + 0.5*(b + a)[...,None]      # R.shape x levels x nTheta
        w = 0.5*(b - a)[...,None]*self.wRef

        shape = s.shape + (-1,)
        return np.sin(phi).reshape(shape), w.reshape(shape)


    def deepPV(self, R, v):
        '''Principal-value wave term of the deep-water Green function and its derivatives.'''

        K = self.K
        ct, wt = self.thetaRule(R, v)

        # the 1/zeta part of e^zeta E1(zeta) peaks sharply near theta=pi/2 when R >> |v|,
        # so it is removed from the quadrature and its real part, -pi/(K r1), added back
        zeta = K*(v[...,None] + 1j*R[...,None]*ct)
        ee = expE1(zeta) - 1.0/zeta
        I0 = 2.0*np.sum(ee*wt, axis=-1)
        I1 = 2.0*np.sum(1j*K*ct*ee*wt, axis=-1)

        KR = K*R
        eKv = np.exp(K*v)
        r1 = np.sqrt(R*R + v*v)
        g  = (2*K/np.pi)*(I0.real - np.pi**2*eKv*struve(0, KR)) - 2.0/r1
        gR = (2*K/np.pi)*(I1.real - np.pi**2*K*eKv*(2.0/np.pi - struve(1, KR)))
        gv = 2*K/r1 + K*g

        return g, gR, gv


    def deepWave(self, R, z, zeta):
        '''Full deep-water wave term (principal value plus radiating part).'''

        K = self.K
        v = z + zeta
        g, gR, gv = self.deepPV(R, v)

        rad = 2j*np.pi*K*np.exp(K*v)
        return g + rad*j0(K*R), gR - rad*K*j1(K*R), gv + K*rad*j0(K*R)


    def _E(self, k, v, u):
        '''Exponential terms of the finite-depth integrand and their derivative factors
        with respect to zeta.'''

        h = self.h
        e1 = np.exp(k*v)
        e2 = np.exp(-k*(v + 4*h))
        e3 = np.exp(k*(u - 2*h))
        e4 = np.exp(-k*(u + 2*h))
        return e1 + e2 + e3 + e4, e1 - e2 - e3 + e4, e1


    def _dD(self, k):
        '''Derivative of D(k) = (k-K) - (k+K) e^{-2kh}.'''
        e = np.exp(-2*k*self.h)
        return 1.0 - e + 2*self.h*(k + self.K)*e


    def _residue(self, v, u):
        '''Residue of the finite-depth integrand at the propagating wave number, and its zeta derivative.'''

        K, k0 = self.K, self.k0
        E, Ez, e1 = self._E(k0, v, u)
        dD = self._dD(k0)
        return (k0 + K)*E/dD, (k0 + K)*k0*Ez/dD


    def finiteWave(self, R, z, zeta):
        '''Finite-depth smooth part: wave number integral in the near field, eigenfunction
        series in the far field.'''

        g  = np.zeros(R.shape, dtype=complex)
        gR = np.zeros(R.shape, dtype=complex)
        gz = np.zeros(R.shape, dtype=complex)

        near = R < self.rJohn*self.h
        if np.any(near):
            g[near], gR[near], gz[near] = self.finiteIntegral(R[near], z[near], zeta[near])
        far = ~near
        if np.any(far):
            g[far], gR[far], gz[far] = self.finiteSeries(R[far], z[far], zeta[far])

        return g, gR, gz


    def finiteIntegral(self, R, z, zeta):
        '''Near-field finite-depth wave term: the deep-water principal value at K, plus the
        remainder integral with both poles subtracted, plus the radiating part.'''

        K, k0, h = self.K, self.k0, self.h
        v = z + zeta
        u = z - zeta

        gd, gdR, gdz = self.deepPV(R, v)

        kk = self.kNodes
        wk = self.kWeights
        L = self.kMax

        E, Ez, e1 = self._E(kk, v[:,None], u[:,None])
        D = (kk - K) - (kk + K)*np.exp(-2*kk*h)
        pK = 1.0/(kk - K)
        p0 = 1.0/(kk - k0)
        f  = (kk + K)*(E/D - e1*pK)
        fz = (kk + K)*kk*(Ez/D - e1*pK)

        kR = kk*R[:,None]
        J0k = j0(kR)
        J1k = j1(kR)

        res0, res0z = self._residue(v, u)
        eKv = np.exp(K*v)
        resK, resKz = -2*K*eKv, -2*K*K*eKv

        c0,  cK  = res0*j0(k0*R),         resK*j0(K*R)
        c0R, cKR = -res0*k0*j1(k0*R),     -resK*K*j1(K*R)
        c0z, cKz = res0z*j0(k0*R),        resKz*j0(K*R)

        log0 = np.log((L - k0)/k0)
        logK = np.log((L - K)/K)

        rm  = np.sum(wk*( f*J0k      - c0[:,None]*p0  - cK[:,None]*pK ), axis=1) + c0*log0  + cK*logK
        rmR = np.sum(wk*(-f*kk*J1k   - c0R[:,None]*p0 - cKR[:,None]*pK), axis=1) + c0R*log0 + cKR*logK
        rmz = np.sum(wk*( fz*J0k     - c0z[:,None]*p0 - cKz[:,None]*pK), axis=1) + c0z*log0 + cKz*logK

        g  = gd  + rm  + 1j*np.pi*res0*j0(k0*R)
        gR = gdR + rmR - 1j*np.pi*res0*k0*j1(k0*R)
        gz = gdz + rmz + 1j*np.pi*res0z*j0(k0*R)

        return g, gR, gz


    def finiteSeries(self, R, z, zeta):
        '''Far-field finite-depth Green function from John's eigenfunction expansion, with
        the Rankine parts removed.'''

        K, k0, h = self.K, self.k0, self.h
        v = z + zeta
        u = z - zeta

        nTerms = int(np.ceil(h*np.log(1.0/self.tol)/(np.pi*np.min(R)))) + 1
        if nTerms > len(self.kn):
            raise NonConvergenceError(f"The eigenfunction series needs {nTerms} terms for R={np.min(R):.3g} m, "
                                      f"more than the {len(self.kn)} available.", omega=self.omega)
        kn = self.kn[:nTerms]

        res0, res0z = self._residue(v, u)
        k0R = k0*R
        J0, J1, Y0, Y1 = j0(k0R), j1(k0R), y0(k0R), y1(k0R)

        g  = np.pi*res0*(1j*J0 - Y0)
        gR = np.pi*res0*k0*(-1j*J1 + Y1)
        gz = np.pi*res0z*(1j*J0 - Y0)

        C = (kn**2 + K**2)/((kn**2 + K**2)*h - K)
        knR = kn[None,:]*R[:,None]
        cz = np.cos(kn[None,:]*(z[:,None] + h))
        cs = np.cos(kn[None,:]*(zeta[:,None] + h))
        sn = np.sin(kn[None,:]*(zeta[:,None] + h))
        K0 = besselK0(knR)
        K1 = besselK1(knR)

        g  = g  + 4*np.sum(C*cz*cs*K0, axis=1)
        gR = gR + 4*np.sum(C*cz*cs*(-kn*K1), axis=1)
        gz = gz + 4*np.sum(C*cz*(-kn*sn)*K0, axis=1)

        # remove 1/r, 1/r1 and 1/r2, which are integrated analytically over the panels
        r  = np.sqrt(R*R + u*u)
        r1 = np.sqrt(R*R + v*v)
        r2 = np.sqrt(R*R + (v + 2*h)**2)
        g  = g  - (1/r + 1/r1 + 1/r2)
        gR = gR + R*(1/r**3 + 1/r1**3 + 1/r2**3)
        gz = gz - (u/r**3 - v/r1**3 - (v + 2*h)/r2**3)

        return g, gR, gz


    def imageSeries(self, R, z, zeta, nTerms=40, nAvg=24):
        '''Infinite-frequency limit in finite depth: the alternating images of the source about
        the free surface (odd) and the seabed (even), beyond the first free-surface and seabed
        images. The slowly converging alternating sum is accelerated by repeated averaging
        of its partial sums.'''

        h = self.h
        v = (z + zeta)[...,None]
        u = (z - zeta)[...,None]
        Rm = R[...,None]
        m = np.arange(nTerms)
        sign = (-1.0)**m

        g = 0.0; gR = 0.0; gz = 0.0
        for a, az, s in [(-v + 2*h + 2*h*m, -1.0,  1.0),
                         ( v + 4*h + 2*h*m,  1.0, -1.0),
                         (2*h - u + 2*h*m,   1.0, -1.0),
                         ( u + 2*h + 2*h*m, -1.0, -1.0)]:
            rho = np.sqrt(Rm*Rm + a*a)
            g  = g  + s/rho
            gR = gR - s*Rm/rho**3
            gz = gz - s*a*az/rho**3

        out = []
        for terms in [g, gR, gz]:
            partial = np.cumsum(sign*terms, axis=-1)
            for i in range(nAvg):
                partial = 0.5*(partial[...,:-1] + partial[...,1:])
            if np.any(np.abs(partial[...,-1] - partial[...,-2]) > self.tol*(np.abs(partial[...,-1]) + 1.0/h)):
                raise NonConvergenceError("Image series of the infinite-frequency Green function did not converge.",
                                          omega=self.omega)
            out.append(partial[...,-1].astype(complex))

        return out[0], out[1], out[2]


    # ----- panel integrals -----

    def panelKernel(self, points, vertices, normals, centroids, areas, selfIndex=None):
        '''Integrals of G and of its source-point gradient over a set of source panels,
        for a set of field points.

        Returns
        -------
        S : array
            M x N complex integrals of G
        grad : array
            M x N x 3 complex integrals of dG/dxi, dG/deta, dG/dzeta
        '''

        cr, cr1, cr2 = self.coefs

        phi, gr, _ = panelIntegrals(points, vertices, normals, selfIndex)
        S = cr*phi.astype(complex)
        grad = cr*gr.astype(complex)

        if cr1 != 0.0:
            x1 = points*np.array([1.0, 1.0, -1.0])                      # image about the free surface
            phi, gr, _ = panelIntegrals(x1, vertices, normals)
            S += cr1*phi
            grad += cr1*gr

        if cr2 != 0.0:
            x2 = points.copy()
            x2[:,2] = -2*self.h - points[:,2]                           # image about the seabed
            phi, gr, _ = panelIntegrals(x2, vertices, normals)
            S += cr2*phi
            grad += cr2*gr

        if self.smooth is not None:
            dx = points[:,None,0] - centroids[None,:,0]
            dy = points[:,None,1] - centroids[None,:,1]
            R = np.hypot(dx, dy)
            z = np.broadcast_to(points[:,None,2], R.shape)
            zeta = np.broadcast_to(centroids[None,:,2], R.shape)

            g, gR, gz = self.smooth(R.ravel(), np.ascontiguousarray(z).ravel(), np.ascontiguousarray(zeta).ravel())
            g, gR, gz = g.reshape(R.shape), gR.reshape(R.shape), gz.reshape(R.shape)

            Rs = np.where(R > 0.0, R, 1.0)
            S += areas[None,:]*g
            grad[:,:,0] += areas[None,:]*(-dx/Rs)*gR                    # dR/dxi = -(x - xi)/R
            grad[:,:,1] += areas[None,:]*(-dy/Rs)*gR
            grad[:,:,2] += areas[None,:]*gz

        return S, grad


    def kernelTable(self, mesh, points, selfIndex=None, executor=None, chunkSize=None):
        '''Evaluate the kernel table of all field points against all panels of a mesh.

        The table has shape (NSYS, M, NELEM, 4), row-major within each symmetry block.
        Component 0 holds the integral of G over the source panel and components 1-3 the
        integrals of its derivatives with respect to the source coordinates. With symmetry,
        the mirrored panel's contribution is added with the sign of the block (+1 symmetric,
        -1 antisymmetric).

        Parameters
        ----------
        mesh : Mesh
            source panels
        points : array
            M x 3 field points
        selfIndex : array, optional
            source panel index coinciding with each field point (-1 for none)
        executor : concurrent.futures.Executor, optional
            pool used to evaluate chunks of field points in parallel
        '''

        points = np.asarray(points, dtype=float).reshape(-1, 3)
        M = len(points)
        N = mesh.nelem
        signs = mesh.blockSigns()

        table = np.zeros([mesh.nsys, M, N, 4], dtype=complex)

        if mesh.nsys == 2:
            P = mesh.mirrorMatrix()
            mVerts = mesh.mirroredVertices()
            mNormals = np.matmul(mesh.normals, P)
            mCentroids = np.matmul(mesh.centroids, P)

        if chunkSize is None:
            chunkSize = int(max(1, min(64, 2.0e6/(max(N, 1)*self.nodesPerPair))))

        def work(rows):
            sIdx = None if selfIndex is None else np.asarray(selfIndex)[rows]
            S, grad = self.panelKernel(points[rows], mesh.vertices, mesh.normals, mesh.centroids, mesh.areas, sIdx)

            if mesh.nsys == 2:
                Sm, gradm = self.panelKernel(points[rows], mVerts, mNormals, mCentroids, mesh.areas)
                gradm = np.matmul(gradm, P)          # bring the mirrored panel's gradient back to the original panel's frame
                for isys, sigma in enumerate(signs):
                    table[isys, rows, :, 0]  = S + sigma*Sm
                    table[isys, rows, :, 1:] = grad + sigma*gradm
            else:
                table[0, rows, :, 0]  = S
                table[0, rows, :, 1:] = grad

        chunks = [slice(i, min(i + chunkSize, M)) for i in range(0, M, chunkSize)]
        if executor is None:
            for rows in chunks:
                work(rows)
        else:
            for _ in executor.map(work, chunks):       # iterating re-raises any error from the workers
                pass

        return table


class KernelTable():
    '''The kernel tables of one wave case: body panels against body panels, and, when
    irregular frequencies are removed, waterplane panels against body panels.'''

    def __init__(self, body, waterplane=None):
        self.body = body
        self.waterplane = waterplane

    @property
    def nsys(self):
        return self.body.shape[0]

    @property
    def nelem(self):
        return self.body.shape[2]

    @property
    def inelem(self):
        return 0 if self.waterplane is None else self.waterplane.shape[1]

    @staticmethod
    def build(green, mesh, waterplane=None, executor=None):
        '''Evaluate the kernel tables of a wave case.'''

        selfIndex = np.arange(mesh.nelem)
        body = green.kernelTable(mesh, mesh.centroids, selfIndex=selfIndex, executor=executor)
        wtpl = None
        if waterplane is not None:
            wtpl = green.kernelTable(mesh, waterplane.centroids, executor=executor)
        return KernelTable(body, wtpl)
