# HydroBEM's panel mesh and symmetry class

import numpy as np

from hydrobem.errors import ConfigError


class Mesh():
    '''A surface mesh of flat triangular and quadrilateral panels with constant-strength
    unknowns, plus the geometric symmetry used to reduce the problem.

    Panel vertices are expected in counterclockwise order when viewed from the fluid,
    so that the right-hand-rule normals point out of the body into the fluid.
    '''

    def __init__(self, nodes, panels, isx=0, isy=0, xRef=[0,0,0], name='hull'):
        '''
        Parameters
        ----------
        nodes : array
            NTND x 3 node coordinates [m]
        panels : list of lists
            for each panel, the 3 or 4 (0-based) node indices of its vertices
        isx : int
            1 if the geometry is symmetric about the plane x=0 and only half of it is given
        isy : int
            1 if the geometry is symmetric about the plane y=0 and only half of it is given
        xRef : list
            reference point for the rotational modes [m]
        '''

        self.name = name
        self.nodes = np.array(nodes, dtype=float).reshape(-1, 3)
        self.isx = int(isx)
        self.isy = int(isy)
        self.xRef = np.array(xRef, dtype=float)

        if self.isx not in [0, 1] or self.isy not in [0, 1]:
            raise ConfigError(f"Symmetry flags must be 0 or 1 (got ISX={isx}, ISY={isy}) in mesh '{name}'.")
        if self.isx == 1 and self.isy == 1:
            raise ConfigError("At present, ISX and ISY cannot be simultaneously 1.")

        self.ntnd = len(self.nodes)
        self.nelem = len(panels)

        # connectivity stored with 4 entries per panel, triangles repeat their last vertex
        self.ncon = np.zeros([self.nelem, 4], dtype=int)
        self.nverts = np.zeros(self.nelem, dtype=int)
        for i, p in enumerate(panels):
            p = [int(ip) for ip in p]
            if len(p) == 4 and p[3] == p[2]:                # a quad entry that is really a triangle
                p = p[:3]
            if not len(p) in [3, 4]:
                raise ConfigError(f"Panel {i+1} of mesh '{name}' has {len(p)} vertices, but only 3 or 4 are supported.")
            if min(p) < 0 or max(p) >= self.ntnd:
                raise ConfigError(f"Panel {i+1} of mesh '{name}' refers to a node that does not exist.")
            self.nverts[i] = len(p)
            self.ncon[i,:] = p + [p[-1]]*(4 - len(p))

        self.calcGeometry()

        # symmetry info
        self.nsys = 2 if (self.isx or self.isy) else 1


    def calcGeometry(self):
        '''Compute panel vertices, centroids, normals and areas.'''

        self.vertices = self.nodes[self.ncon]               # NELEM x 4 x 3

        if self.nelem == 0:
            self.centroids = np.zeros([0, 3])
            self.normals = np.zeros([0, 3])
            self.areas = np.zeros(0)
            return

        v0, v1, v2, v3 = [self.vertices[:,i,:] for i in range(4)]

        # normal from the cross product of the diagonals (exact area for planar quads and triangles)
        cr = np.cross(v2 - v0, v3 - v1)
        norm = np.linalg.norm(cr, axis=1)
        if np.any(norm <= 0.0):
            bad = np.where(norm <= 0.0)[0] + 1
            raise ConfigError(f"Mesh '{self.name}' has panels with zero area: {bad.tolist()}")

        self.areas = 0.5*norm
        self.normals = cr/norm[:,None]

        # area-weighted centroid of the two triangles making up each panel
        a1 = 0.5*np.linalg.norm(np.cross(v1 - v0, v2 - v0), axis=1)
        a2 = 0.5*np.linalg.norm(np.cross(v2 - v0, v3 - v0), axis=1)
        c1 = (v0 + v1 + v2)/3.0
        c2 = (v0 + v2 + v3)/3.0
        self.centroids = (a1[:,None]*c1 + a2[:,None]*c2)/(a1 + a2)[:,None]


    @property
    def generalizedNormals(self):
        '''NELEM x 6 array of the normal vector and its moment about xRef, (n, (x-xRef) x n).'''
        return np.hstack([self.normals, np.cross(self.centroids - self.xRef, self.normals)])


    def mirrorMatrix(self):
        '''Reflection matrix of the symmetry plane (identity when there is no symmetry).'''
        P = np.eye(3)
        if self.isx:
            P[0,0] = -1.0
        elif self.isy:
            P[1,1] = -1.0
        return P


    def blockSigns(self):
        '''Signs of the mirrored contribution for each independent sub-problem:
        +1 for the symmetric one and -1 for the antisymmetric one.'''
        return [1.0] if self.nsys == 1 else [1.0, -1.0]


    def modeParity(self):
        '''Parity (+1 symmetric, -1 antisymmetric) of each rigid-body mode under the mirror.
        Translations follow the reflection, rotations get an extra sign flip.'''
        if self.nsys == 1:
            return np.ones(6)
        P = np.diag(self.mirrorMatrix())
        return np.hstack([P, -P])


    def modeBlocks(self):
        '''Index of the symmetry block in which each of the 6 radiation modes is solved.'''
        if self.nsys == 1:
            return np.zeros(6, dtype=int)
        return np.where(self.modeParity() > 0, 0, 1)


    def mirroredVertices(self):
        '''Panel vertices reflected by the symmetry plane, with the winding reversed
        so that the normals still point into the fluid.'''
        P = self.mirrorMatrix()
        order = np.where(self.nverts[:,None] == 3, [0, 2, 1, 1], [0, 3, 2, 1])
        verts = np.take_along_axis(self.vertices, order[:,:,None], axis=1)
        return np.matmul(verts, P)


    def fullMesh(self):
        '''Return an unreduced Mesh containing both halves of a symmetric mesh.'''

        if self.nsys == 1:
            return self

        P = self.mirrorMatrix()
        nodes = np.vstack([self.nodes, np.matmul(self.nodes, P)])
        panels = [list(self.ncon[i,:self.nverts[i]]) for i in range(self.nelem)]
        for i in range(self.nelem):
            p = list(self.ncon[i,:self.nverts[i]] + self.ntnd)
            panels.append([p[0]] + p[1:][::-1])

        return Mesh(nodes, panels, isx=0, isy=0, xRef=self.xRef, name=self.name+'_full')


    def checkHalf(self, tol=1e-6):
        '''Make sure a symmetric mesh only has panels on one side of the symmetry plane.'''

        if self.nsys == 1 or self.nelem == 0:
            return
        axis = 0 if self.isx else 1
        coord = self.centroids[:,axis]
        scale = max(np.max(np.abs(self.nodes)), 1.0)
        if np.any(coord > tol*scale) and np.any(coord < -tol*scale):
            raise ConfigError(f"Mesh '{self.name}' is declared symmetric about {'x' if self.isx else 'y'}=0 "
                              "but has panels on both sides of the symmetry plane.")


    def checkSubmerged(self, tol=1e-6):
        '''Make sure no part of the mesh lies above the mean free surface.'''

        scale = max(np.max(np.abs(self.nodes)), 1.0) if self.ntnd > 0 else 1.0
        if np.any(self.nodes[self.ncon.ravel(),2] > tol*scale):
            raise ConfigError(f"Mesh '{self.name}' has nodes above the free surface (z > 0).")


    def checkWaterplane(self, tol=1e-6):
        '''Make sure a waterplane mesh lies on z=0.'''

        scale = max(np.max(np.abs(self.nodes)), 1.0) if self.ntnd > 0 else 1.0
        if np.any(np.abs(self.nodes[self.ncon.ravel(),2]) > tol*scale):
            raise ConfigError(f"Waterplane mesh '{self.name}' must have all its nodes on z=0.")


    def symmetryFactor(self):
        '''How many copies of this mesh make the full body.'''
        return float(self.nsys)


    def volume(self):
        '''Displaced volume from the divergence theorem (z n_z integrated over the wetted surface),
        accounting for the mirrored half.'''
        return self.symmetryFactor()*np.sum(self.centroids[:,2]*self.normals[:,2]*self.areas)


    def waterplaneProperties(self):
        '''Area and first and second moments of the waterplane area of the full body,
        about the reference point, obtained from the wetted surface.

        Returns
        -------
        Awp, Sx, Sy, Sxx, Syy, Sxy : floats
        '''

        x = self.centroids[:,0] - self.xRef[0]
        y = self.centroids[:,1] - self.xRef[1]
        w = -self.normals[:,2]*self.areas

        if self.nsys == 1:
            xs = [x]; ys = [y]
        elif self.isx:
            xs = [x, -x]; ys = [y, y]
        else:
            xs = [x, x]; ys = [y, -y]

        Awp = Sx = Sy = Sxx = Syy = Sxy = 0.0
        for xi, yi in zip(xs, ys):
            Awp += np.sum(w)
            Sx  += np.sum(w*xi)
            Sy  += np.sum(w*yi)
            Sxx += np.sum(w*xi*xi)
            Syy += np.sum(w*yi*yi)
            Sxy += np.sum(w*xi*yi)

        return Awp, Sx, Sy, Sxx, Syy, Sxy


    def centerOfBuoyancy(self):
        '''Center of buoyancy of the full body relative to the global origin.'''

        V = self.volume()
        f = self.symmetryFactor()
        c = self.centroids
        nA = self.normals*self.areas[:,None]
        xB = np.sum(0.5*c[:,0]**2*nA[:,0])*f/V
        yB = np.sum(0.5*c[:,1]**2*nA[:,1])*f/V
        zB = np.sum(0.5*c[:,2]**2*nA[:,2])*f/V
        if self.isx:
            xB = 0.0
        elif self.isy:
            yB = 0.0
        return np.array([xB, yB, zB])


    def hydrostaticStiffness(self, rho=1025.0, g=9.80665, rCG=None, mass=None):
        '''Linear hydrostatic and gravitational restoring matrix about the reference point.

        Parameters
        ----------
        rCG : array, optional
            center of gravity [m]; the center of buoyancy is used if not given
        mass : float, optional
            body mass [kg]; the displaced mass is used if not given
        '''

        V = self.volume()
        rCB = self.centerOfBuoyancy() - self.xRef
        rCG = rCB if rCG is None else np.array(rCG, dtype=float) - self.xRef
        mass = rho*V if mass is None else mass
        Awp, Sx, Sy, Sxx, Syy, Sxy = self.waterplaneProperties()

        rg = rho*g
        C = np.zeros([6,6])
        C[2,2] = rg*Awp
        C[2,3] = C[3,2] = rg*Sy
        C[2,4] = C[4,2] = -rg*Sx
        C[3,3] = rg*(Syy + V*rCB[2]) - mass*g*rCG[2]
        C[3,4] = C[4,3] = -rg*Sxy
        C[3,5] = -rg*V*rCB[0] + mass*g*rCG[0]
        C[4,4] = rg*(Sxx + V*rCB[2]) - mass*g*rCG[2]
        C[4,5] = -rg*V*rCB[1] + mass*g*rCG[1]

        return C
