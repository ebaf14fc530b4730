# Test HydroBEM mesh, symmetry and Rankine panel integral functionality
#
import pytest
import numpy as np
from numpy.testing import assert_allclose

from hydrobem.bem_mesh import Mesh
from hydrobem.bem_rankine import panelIntegrals
from hydrobem.errors import ConfigError
from meshes import sphereMesh, boxMesh, boxWaterplane


def unitSquare(z=0.0):
    nodes = [[-0.5, -0.5, z], [0.5, -0.5, z], [0.5, 0.5, z], [-0.5, 0.5, z]]
    return Mesh(nodes, [[0, 1, 2, 3]])


def test_symmetry_flags():
    nodes = [[0, 0, -1], [1, 0, -1], [1, 1, -1]]
    with pytest.raises(ConfigError):
        Mesh(nodes, [[0, 1, 2]], isx=1, isy=1)
    with pytest.raises(ConfigError):
        Mesh(nodes, [[0, 1, 2]], isx=2)
    m = Mesh(nodes, [[0, 1, 2]], isy=1)
    assert m.nsys == 2
    assert_allclose(m.blockSigns(), [1, -1])
    assert_allclose(m.modeParity(), [1, -1, 1, -1, 1, -1])
    assert_allclose(m.modeBlocks(), [0, 1, 0, 1, 0, 1])
    m = Mesh(nodes, [[0, 1, 2]], isx=1)
    assert_allclose(m.modeParity(), [-1, 1, 1, 1, -1, -1])
    m = Mesh(nodes, [[0, 1, 2]])
    assert m.nsys == 1
    assert_allclose(m.modeParity(), np.ones(6))


def test_panel_errors():
    nodes = [[0, 0, -1], [1, 0, -1], [1, 1, -1], [0, 1, -1], [2, 2, -1]]
    with pytest.raises(ConfigError):
        Mesh(nodes, [[0, 1]])
    with pytest.raises(ConfigError):
        Mesh(nodes, [[0, 1, 7]])
    with pytest.raises(ConfigError):
        Mesh(nodes, [[0, 1, 1]])                 # zero area


def test_geometry():
    m = unitSquare(z=-1.0)
    assert_allclose(m.areas, [1.0])
    assert_allclose(m.normals, [[0, 0, 1]])
    assert_allclose(m.centroids, [[0, 0, -1]])

    # a quad with a repeated last vertex is a triangle
    m = Mesh([[0, 0, -1], [1, 0, -1], [0, 1, -1]], [[0, 1, 2, 2]])
    assert m.nverts[0] == 3
    assert_allclose(m.areas, [0.5])
    assert_allclose(m.centroids, [[1/3, 1/3, -1]])


def test_sphere_geometry():
    m = sphereMesh(radius=1.0, zc=-5.0, nTheta=20, nPhi=40)
    assert_allclose(m.volume(), 4/3*np.pi, rtol=0.02)
    assert_allclose(np.sum(m.areas), 4*np.pi, rtol=0.02)
    # normals point out of the body
    assert np.all(np.sum(m.normals*(m.centroids - [0, 0, -5.0]), axis=1) > 0)
    assert_allclose(m.centerOfBuoyancy(), [0, 0, -5.0], atol=1e-6)


@pytest.mark.parametrize('sym', [(1, 0), (0, 1)])
def test_half_mesh(sym):
    isx, isy = sym
    full = boxMesh(isx=0, isy=0)
    half = boxMesh(isx=isx, isy=isy)
    half.checkHalf()
    assert half.nelem*2 == full.nelem
    assert_allclose(half.volume(), full.volume(), rtol=1e-12)
    assert_allclose(half.volume(), 4.0, rtol=1e-12)
    assert_allclose(half.waterplaneProperties(), full.waterplaneProperties(), atol=1e-12)

    # mirrored panels keep their normals pointing out of the body
    P = half.mirrorMatrix()
    mv = half.mirroredVertices()
    cr = np.cross(mv[:,2] - mv[:,0], mv[:,3] - mv[:,1])
    nm = cr/np.linalg.norm(cr, axis=1)[:,None]
    assert_allclose(nm, np.matmul(half.normals, P), atol=1e-12)

    # expanding the half mesh gives back the full geometry
    expanded = half.fullMesh()
    assert expanded.nsys == 1
    assert_allclose(np.sum(expanded.areas), np.sum(full.areas))
    assert_allclose(expanded.volume(), full.volume())


def test_checkHalf():
    full = boxMesh()
    bad = Mesh(full.nodes, [list(full.ncon[i,:full.nverts[i]]) for i in range(full.nelem)], isy=1)
    with pytest.raises(ConfigError):
        bad.checkHalf()


def test_checks():
    with pytest.raises(ConfigError):
        unitSquare(z=1.0).checkSubmerged()
    with pytest.raises(ConfigError):
        unitSquare(z=-1.0).checkWaterplane()
    boxWaterplane().checkWaterplane()


def test_hydrostaticStiffness():
    # box of 2 x 2 x 1 floating freely with its center of gravity at the center of buoyancy
    m = boxMesh(L=2.0, B=2.0, T=1.0)
    rho, g = 1025.0, 9.80665
    C = m.hydrostaticStiffness(rho=rho, g=g)
    Iwp = 2.0*2.0**3/12
    assert_allclose(m.volume(), 4.0, rtol=1e-12)
    assert_allclose(m.centerOfBuoyancy(), [0, 0, -0.5], atol=1e-12)
    assert_allclose(C[2,2], rho*g*4.0, rtol=1e-10)
    # with the center of gravity at the center of buoyancy only the waterplane inertia remains
    assert_allclose(C[3,3], rho*g*Iwp, rtol=0.02)
    assert_allclose(C[4,4], C[3,3], rtol=1e-10)
    assert_allclose(C[2,3], 0.0, atol=1e-6)


def test_rankine_far_field():
    # far from a panel, the integrals tend to those of a point source of the panel's area
    m = unitSquare(z=-1.0)
    pts = np.array([[30.0, 10.0, 15.0], [-6.0, 5.0, -20.0]])
    phi, grad, omega = panelIntegrals(pts, m.vertices, m.normals)

    dx = pts[:,None,:] - m.centroids[None,:,:]
    r = np.linalg.norm(dx, axis=-1)
    phi2 = m.areas[None,:]/r
    grad2 = m.areas[None,:,None]*dx/(r**3)[:,:,None]
    omega2 = np.sum(grad2*m.normals[None,:,:], axis=-1)

    assert_allclose(phi, phi2, rtol=2e-3)
    assert_allclose(grad, grad2, rtol=5e-3, atol=1e-3*np.max(np.abs(grad2)))
    assert_allclose(omega, omega2, rtol=5e-3, atol=1e-3*np.max(np.abs(omega2)))


def test_rankine_self():
    # 1/r integrated over a square, seen from its center, is 4 a ln(1 + sqrt(2)) for side a
    m = unitSquare(z=-1.0)
    phi, grad, omega = panelIntegrals(m.centroids, m.vertices, m.normals, selfIndex=[0])
    assert_allclose(phi[0,0], 4*np.log(1 + np.sqrt(2)), rtol=1e-12)
    assert_allclose(omega[0,0], 0.0)
    assert_allclose(grad[0,0], [0, 0, 0], atol=1e-12)

    # just above the panel center the solid angle is 2 pi
    phi, grad, omega = panelIntegrals([[0, 0, -1.0 + 1e-9]], m.vertices, m.normals)
    assert_allclose(omega[0,0], 2*np.pi, rtol=1e-6)


def test_rankine_closed_surface():
    # the solid angles of a closed surface seen from outside sum to zero
    m = boxMesh()
    pts = np.array([[3.0, 0.5, -0.2], [0.1, 0.2, 2.0]])
    phi, grad, omega = panelIntegrals(pts, m.vertices, m.normals)
    closed = np.sum(omega, axis=1) + np.sum(panelIntegrals(pts, boxWaterplane().vertices, boxWaterplane().normals)[2], axis=1)
    assert_allclose(closed, 0.0, atol=1e-10)

    # and to -4 pi from inside the body, with outward normals
    pts = np.array([[0.1, -0.2, -0.5]])
    phi, grad, omega = panelIntegrals(pts, m.vertices, m.normals)
    wp = boxWaterplane()
    omega_wp = panelIntegrals(pts, wp.vertices, wp.normals)[2]
    assert_allclose(np.sum(omega) + np.sum(omega_wp), -4*np.pi, rtol=1e-10)


if __name__ == '__main__':
    test_symmetry_flags()
    test_geometry()
    test_rankine_self()
