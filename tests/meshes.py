# Simple panel meshes used by the tests

import numpy as np

from hydrobem.bem_mesh import Mesh


def sphereMesh(radius=1.0, zc=-5.0, nTheta=16, nPhi=32, thetaMin=0.0, isx=0, isy=0):
    '''Sphere (or the part below a polar angle) centered at (0, 0, zc), with outward normals.

    thetaMin is the polar angle of the top edge: 0 for a full sphere, pi/2 for a
    hemisphere cut at its equator. With isx or isy set, only the half x>=0 or y>=0 is made.
    '''

    if isx:
        phis = np.linspace(-0.5*np.pi, 0.5*np.pi, nPhi//2 + 1)
    elif isy:
        phis = np.linspace(0.0, np.pi, nPhi//2 + 1)
    else:
        phis = np.linspace(0.0, 2*np.pi, nPhi + 1)[:-1]
    closed = not (isx or isy)
    thetas = np.linspace(thetaMin, np.pi, nTheta + 1)

    nodes = []
    index = {}
    for i, th in enumerate(thetas):
        for j, ph in enumerate(phis):
            if np.sin(th) < 1e-12 and (i, 0) in index:         # single node at each pole
                index[(i, j)] = index[(i, 0)]
                continue
            index[(i, j)] = len(nodes)
            nodes.append([radius*np.sin(th)*np.cos(ph), radius*np.sin(th)*np.sin(ph), zc + radius*np.cos(th)])

    nj = len(phis) if closed else len(phis) - 1
    panels = []
    for i in range(nTheta):
        for j in range(nj):
            j1 = (j + 1) % len(phis)
            p = [index[(i, j)], index[(i+1, j)], index[(i+1, j1)], index[(i, j1)]]
            if p[0] == p[3]:              # top pole
                p = [p[0], p[1], p[2]]
            elif p[1] == p[2]:            # bottom pole
                p = [p[0], p[1], p[3]]
            panels.append(p)

    return Mesh(np.array(nodes), panels, isx=isx, isy=isy)


def _face(nodes, panels, origin, e1, e2, n1, n2):
    '''Add a rectangular grid of panels spanning origin + s*e1 + t*e2 (s, t in [0, 1]),
    with normal along e1 x e2.'''

    origin, e1, e2 = np.array(origin, dtype=float), np.array(e1, dtype=float), np.array(e2, dtype=float)
    start = len(nodes)
    for i in range(n1 + 1):
        for j in range(n2 + 1):
            nodes.append(origin + e1*i/n1 + e2*j/n2)
    for i in range(n1):
        for j in range(n2):
            a = start + i*(n2 + 1) + j
            b = start + (i + 1)*(n2 + 1) + j
            panels.append([a, b, b + 1, a + 1])


def boxMesh(L=2.0, B=2.0, T=1.0, dx=0.25, isx=0, isy=0):
    '''Floating rectangular box of length L (x), beam B (y) and draft T, centered on the z axis,
    with outward normals. With isx or isy set only the half x>=0 or y>=0 is made.'''

    x0, x1 = (0.0 if isx else -0.5*L), 0.5*L
    y0, y1 = (0.0 if isy else -0.5*B), 0.5*B
    nx = max(1, int(round((x1 - x0)/dx)))
    ny = max(1, int(round((y1 - y0)/dx)))
    nz = max(1, int(round(T/dx)))

    nodes = []
    panels = []
    _face(nodes, panels, [x0, y0, -T], [0, y1-y0, 0], [x1-x0, 0, 0], ny, nx)       # bottom, normal -z
    _face(nodes, panels, [x1, y0, -T], [0, y1-y0, 0], [0, 0, T], ny, nz)           # x = x1, normal +x
    _face(nodes, panels, [x0, y1, -T], [0, 0, T], [x1-x0, 0, 0], nz, nx)           # y = y1, normal +y
    if not isx:
        _face(nodes, panels, [x0, y0, -T], [0, 0, T], [0, y1-y0, 0], nz, ny)       # x = x0, normal -x
    if not isy:
        _face(nodes, panels, [x0, y0, -T], [x1-x0, 0, 0], [0, 0, T], nx, nz)       # y = y0, normal -y

    return Mesh(np.array(nodes), panels, isx=isx, isy=isy, name='box')


def boxWaterplane(L=2.0, B=2.0, dx=0.25, isx=0, isy=0):
    '''Panels covering the interior free surface of boxMesh.'''

    x0, x1 = (0.0 if isx else -0.5*L), 0.5*L
    y0, y1 = (0.0 if isy else -0.5*B), 0.5*B
    nx = max(1, int(round((x1 - x0)/dx)))
    ny = max(1, int(round((y1 - y0)/dx)))

    nodes = []
    panels = []
    _face(nodes, panels, [x0, y0, 0.0], [x1-x0, 0, 0], [0, y1-y0, 0], nx, ny)
    return Mesh(np.array(nodes), panels, isx=isx, isy=isy, name='waterplane')


def meshDict(mesh):
    '''Inline mesh entry of a design dictionary.'''
    return {'nodes': mesh.nodes.tolist(),
            'panels': [[int(n) for n in mesh.ncon[i,:mesh.nverts[i]]] for i in range(mesh.nelem)],
            'isx': int(mesh.isx), 'isy': int(mesh.isy), 'name': mesh.name}
