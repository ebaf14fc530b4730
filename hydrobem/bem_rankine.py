# Analytic integrals of the Rankine source 1/r over flat panels

import numpy as np


def panelIntegrals(points, vertices, normals, selfIndex=None):
    '''Integrate the Rankine kernel 1/|x-xi| and its source-point gradient over flat panels.

    The potential uses the edge-logarithm formula (Hess & Smith, Newman 1986) and the
    normal-dipole part uses the signed solid angle of the panel (Van Oosterom & Strackee),
    with quadrilaterals split into two triangles.

    Parameters
    ----------
    points : array
        M x 3 field points [m]
    vertices : array
        N x 4 x 3 panel vertices (triangles repeat a vertex) [m]
    normals : array
        N x 3 unit panel normals
    selfIndex : array, optional
        for each field point, the index of the panel it is the centroid of (-1 if none).
        The solid angle of those pairs is set to its principal value of zero.

    Returns
    -------
    phi : array
        M x N integrals of 1/r [m]
    grad : array
        M x N x 3 integrals of the gradient of 1/r with respect to the source point [-]
    omega : array
        M x N solid angles, i.e. the integrals of d(1/r)/dn over each panel [-]
    '''

    points = np.atleast_2d(points)
    M = points.shape[0]
    N = vertices.shape[0]

    R  = vertices[None,:,:,:] - points[:,None,None,:]          # vectors from field points to vertices, M x N x 4 x 3
    r  = np.linalg.norm(R, axis=-1)                           # M x N x 4
    r2 = np.roll(r, -1, axis=2)                               # distance to the next vertex of each edge

    edges = np.roll(vertices, -1, axis=1) - vertices          # N x 4 x 3
    s = np.linalg.norm(edges, axis=-1)                        # N x 4 edge lengths
    valid = s > 1e-12*np.max(s, axis=1, keepdims=True)        # zero-length edges of triangles
    e = np.where(valid[:,:,None], edges/np.where(valid, s, 1.0)[:,:,None], 0.0)
    m = np.cross(e, normals[:,None,:])                        # in-plane outward edge normals, N x 4 x 3

    # log term of each edge
    num = r + r2 + s[None,:,:]
    den = np.maximum(r + r2 - s[None,:,:], 1e-300)
    Q = np.where(valid[None,:,:], np.log(num/den), 0.0)       # M x N x 4

    d = np.sum(R*m[None,:,:,:], axis=-1)                      # distances from the projected point to the edge lines

    # signed solid angle of the two triangles (0,1,2) and (0,2,3)
    omega = np.zeros([M, N])
    for (i, j, k) in [(0, 1, 2), (0, 2, 3)]:
        a, b, c = R[:,:,i,:], R[:,:,j,:], R[:,:,k,:]
        ra, rb, rc = r[:,:,i], r[:,:,j], r[:,:,k]
        trip = np.sum(a*np.cross(b, c), axis=-1)
        denom = ra*rb*rc + np.sum(a*b, axis=-1)*rc + np.sum(a*c, axis=-1)*rb + np.sum(b*c, axis=-1)*ra
        omega -= 2.0*np.arctan2(trip, denom)

    if selfIndex is not None:
        selfIndex = np.asarray(selfIndex)
        rows = np.where(selfIndex >= 0)[0]
        omega[rows, selfIndex[rows]] = 0.0

    # height of the field points above each panel plane
    z = -np.sum(R[:,:,0,:]*normals[None,:,:], axis=-1)         # (x - v0).n

    phi = np.sum(d*Q, axis=-1) - z*omega
    grad = np.sum(Q[:,:,:,None]*m[None,:,:,:], axis=2) + omega[:,:,None]*normals[None,:,:]

    return phi, grad, omega
