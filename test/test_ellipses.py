import numpy as np
import pytest

from multishapelet.ellipses import Ellipse, EllipseCore

_cores = [
    EllipseCore(0.0, 0.0, 2.0),
    EllipseCore(0.3, -0.2, 1.5),
    EllipseCore(-0.8, 0.5, 3.0),
    EllipseCore(1e-6, 2e-6, 1.0),
]


def _numeric_jacobian(func, params, step=1e-6):
    params = np.asarray(params, dtype=float)
    columns = []
    for k in range(params.size):
        delta = np.zeros_like(params)
        delta[k] = step
        columns.append(
            (np.ravel(func(params + delta)) - np.ravel(func(params - delta)))
            / (2 * step)
        )
    return np.column_stack(columns)


def test_axes_round_trip():
    core = EllipseCore.from_axes(4.0, 2.0, 0.3)
    a, b, theta = core.get_axes()
    assert a == pytest.approx(4.0)
    assert b == pytest.approx(2.0)
    assert theta == pytest.approx(0.3)
    assert core.radius == pytest.approx(np.sqrt(8.0))


def test_axis_aligned_quadrupole():
    ixx, iyy, ixy = EllipseCore.from_axes(3.0, 1.0, 0.0).get_quadrupole()
    assert ixx == pytest.approx(9.0)
    assert iyy == pytest.approx(1.0)
    assert ixy == pytest.approx(0.0, abs=1e-12)


@pytest.mark.parametrize("core", _cores)
def test_quadrupole_round_trip(core):
    other = EllipseCore.from_quadrupole(*core.get_quadrupole())
    np.testing.assert_allclose(
        other.get_parameters(), core.get_parameters(), rtol=1e-8, atol=1e-9
    )


@pytest.mark.parametrize("core", _cores)
def test_quadrupole_jacobian(core):
    numeric = _numeric_jacobian(
        lambda p: EllipseCore(*p).get_quadrupole(), core.get_parameters()
    )
    np.testing.assert_allclose(core.get_quadrupole_jacobian(), numeric, atol=1e-6)


@pytest.mark.parametrize("core", _cores)
def test_grid_transform_whitens(core):
    matrix = core.get_grid_transform_matrix()
    whitened = matrix @ core.get_quadrupole_matrix() @ matrix.T
    np.testing.assert_allclose(whitened, np.identity(2), atol=1e-12)
    # the transform is symmetric, i.e. it contains no rotation
    np.testing.assert_allclose(matrix, matrix.T, atol=1e-14)


def test_grid_transform_maps_center_to_origin():
    ellipse = Ellipse(EllipseCore(0.2, 0.1, 2.0), (3.5, -1.0))
    transform = ellipse.get_grid_transform()
    np.testing.assert_allclose(transform @ [3.5, -1.0, 1.0], [0.0, 0.0], atol=1e-14)


@pytest.mark.parametrize("core", _cores)
def test_grid_transform_derivative(core):
    ellipse = Ellipse(core, (1.5, -2.0))

    def affine(p):
        transform = Ellipse(EllipseCore(*p[:3]), p[3:]).get_grid_transform()
        # XX, YX, XY, YY, X, Y
        return np.concatenate([transform[:, :2].ravel(order="F"), transform[:, 2]])

    numeric = _numeric_jacobian(affine, ellipse.get_parameters())
    np.testing.assert_allclose(
        ellipse.get_grid_transform_derivative(), numeric, atol=1e-6
    )


def test_convolve_adds_moments():
    a = EllipseCore(0.3, 0.1, 2.0)
    b = EllipseCore(-0.2, 0.4, 1.0)
    expected = np.add(a.get_quadrupole(), b.get_quadrupole())
    np.testing.assert_allclose(a.convolve(b).get_quadrupole(), expected)


def test_point_ellipse():
    point = EllipseCore(0.0, 0.0, 0.0)
    core = EllipseCore(0.3, 0.1, 2.0)
    assert point.get_quadrupole() == (0.0, 0.0, 0.0)
    assert EllipseCore.from_quadrupole(0.0, 0.0, 0.0) == point
    np.testing.assert_allclose(
        core.convolve(point).get_parameters(), core.get_parameters()
    )
    with pytest.raises(ZeroDivisionError):
        point.get_grid_transform_matrix()


def test_scale():
    core = EllipseCore(0.3, 0.1, 2.0)
    scaled = core.scale(3.0)
    np.testing.assert_allclose(
        scaled.get_quadrupole(), 9.0 * np.array(core.get_quadrupole())
    )


@pytest.mark.parametrize("moments", [(1.0, 1.0, 2.0), (-1.0, -2.0, 0.0), (np.nan, 1.0, 0.0)])
def test_invalid_quadrupole(moments):
    with pytest.raises(ValueError):
        EllipseCore.from_quadrupole(*moments)


def test_negative_radius():
    with pytest.raises(ValueError):
        EllipseCore(0.0, 0.0, -1.0)
