"""Ellipse geometry used to place Gaussian and shapelet profiles.

An ellipse core is parametrized by the conformal shear
``eta = (e1, e2)``, with ``|eta| = ln(a / b)`` and position angle
``theta = atan2(e2, e1) / 2``, and by the determinant radius
``r = sqrt(a * b)``.  The corresponding second-moment (quadrupole)
matrix is ``Q = r^2 exp(H)`` with ``H = [[e1, e2], [e2, -e1]]``.

A radius of zero is allowed and represents a point (delta function);
such an ellipse has a zero quadrupole but no grid transform.

"""

from dataclasses import dataclass
from math import acosh, atan2, cos, cosh, exp, hypot, log, pi, sin, sinh, sqrt

import numpy as np

# |eta| below which series expansions replace sinh(x) / x and friends
_SMALL_SHEAR = 1e-4


def _sinhc(x):
    """Return ``sinh(x) / x``."""
    if abs(x) < _SMALL_SHEAR:
        return 1.0 + x * x / 6.0
    return sinh(x) / x


def _dsinhc(x):
    """Return ``(x cosh(x) - sinh(x)) / x^3``."""
    if abs(x) < _SMALL_SHEAR:
        return 1.0 / 3.0 + x * x / 30.0
    return (x * cosh(x) - sinh(x)) / x**3


@dataclass(frozen=True)
class EllipseCore:
    """Shape and size of an ellipse, independent of its position.

    Parameters
    ----------
    e1, e2 : float
        Components of the conformal shear.
    radius : float
        Determinant radius ``sqrt(a * b)``; must be non-negative.

    """

    e1: float = 0.0
    e2: float = 0.0
    radius: float = 1.0

    def __post_init__(self):
        for name in ("e1", "e2", "radius"):
            super().__setattr__(name, float(getattr(self, name)))
        if self.radius < 0:
            raise ValueError(f"negative ellipse radius {self.radius}")

    @classmethod
    def from_quadrupole(cls, ixx, iyy, ixy):
        """Ellipse with the given second moments.

        Raises
        ------
        ValueError
            If the moments do not form a positive semi-definite matrix.

        """
        det = ixx * iyy - ixy * ixy
        trace = ixx + iyy
        if ixx == 0 and iyy == 0 and ixy == 0:
            return cls(0.0, 0.0, 0.0)
        if not (det > 0 and trace > 0):
            raise ValueError(
                f"moments ({ixx}, {iyy}, {ixy}) are not positive definite"
            )
        r2 = sqrt(det)
        eta = acosh(max(0.5 * trace / r2, 1.0))
        s = _sinhc(eta)
        return cls(0.5 * (ixx - iyy) / (r2 * s), ixy / (r2 * s), sqrt(r2))

    @classmethod
    def from_axes(cls, a, b, theta=0.0):
        """Ellipse with semi-axes ``a >= b`` and position angle ``theta``
        (radians, counter-clockwise from the x axis)."""
        if a <= 0 or b <= 0:
            raise ValueError(f"axes must be positive, got {a}, {b}")
        eta = log(a / b)
        return cls(eta * cos(2 * theta), eta * sin(2 * theta), sqrt(a * b))

    @classmethod
    def from_parameters(cls, parameters):
        e1, e2, radius = parameters
        return cls(e1, e2, radius)

    def get_parameters(self):
        return np.array([self.e1, self.e2, self.radius])

    @property
    def shear(self):
        return hypot(self.e1, self.e2)

    def get_quadrupole(self):
        """Return the moments ``(ixx, iyy, ixy)``."""
        eta = self.shear
        c = cosh(eta)
        s = _sinhc(eta)
        r2 = self.radius**2
        return (r2 * (c + s * self.e1), r2 * (c - s * self.e1), r2 * s * self.e2)

    def get_quadrupole_matrix(self):
        ixx, iyy, ixy = self.get_quadrupole()
        return np.array([[ixx, ixy], [ixy, iyy]])

    def get_quadrupole_jacobian(self):
        """Derivative of ``(ixx, iyy, ixy)`` with respect to
        ``(e1, e2, radius)`` as a 3x3 matrix."""
        e1, e2, r = self.e1, self.e2, self.radius
        eta = self.shear
        c = cosh(eta)
        s = _sinhc(eta)
        d = _dsinhc(eta)
        r2 = r * r
        jac = np.empty((3, 3))
        jac[0, 0] = r2 * (s * e1 + d * e1 * e1 + s)
        jac[0, 1] = r2 * (s * e2 + d * e1 * e2)
        jac[1, 0] = r2 * (s * e1 - d * e1 * e1 - s)
        jac[1, 1] = r2 * (s * e2 - d * e1 * e2)
        jac[2, 0] = r2 * d * e1 * e2
        jac[2, 1] = r2 * (d * e2 * e2 + s)
        jac[0, 2] = 2 * r * (c + s * e1)
        jac[1, 2] = 2 * r * (c - s * e1)
        jac[2, 2] = 2 * r * s * e2
        return jac

    def get_axes(self):
        """Return ``(a, b, theta)``."""
        eta = self.shear
        return (
            self.radius * exp(0.5 * eta),
            self.radius * exp(-0.5 * eta),
            0.5 * atan2(self.e2, self.e1),
        )

    def get_area(self):
        return pi * self.radius**2

    def scale(self, factor):
        """Return a copy with all lengths multiplied by ``factor``."""
        return EllipseCore(self.e1, self.e2, self.radius * abs(factor))

    def convolve(self, other):
        """Ellipse whose moments are the sum of both moments."""
        ixx1, iyy1, ixy1 = self.get_quadrupole()
        ixx2, iyy2, ixy2 = other.get_quadrupole()
        return EllipseCore.from_quadrupole(ixx1 + ixx2, iyy1 + iyy2, ixy1 + ixy2)

    def get_grid_transform_matrix(self):
        """Linear map ``Q^(-1/2)`` taking the ellipse to the unit circle."""
        if self.radius == 0:
            raise ZeroDivisionError("a point ellipse has no grid transform")
        m = 0.5 * self.shear
        g = _sinhc(m)
        h = np.array([[self.e1, self.e2], [self.e2, -self.e1]])
        return (cosh(m) * np.identity(2) - 0.5 * g * h) / self.radius

    def get_grid_transform_matrix_derivative(self):
        """Derivatives of :meth:`get_grid_transform_matrix` with respect
        to ``(e1, e2, radius)``, stacked along the first axis."""
        matrix = self.get_grid_transform_matrix()
        m = 0.5 * self.shear
        g = _sinhc(m)
        h = np.array([[self.e1, self.e2], [self.e2, -self.e1]])
        dh = (np.array([[1.0, 0.0], [0.0, -1.0]]), np.array([[0.0, 1.0], [1.0, 0.0]]))
        result = np.empty((3, 2, 2))
        for k, ek in enumerate((self.e1, self.e2)):
            dg = 0.25 * ek * _dsinhc(m)
            result[k] = (
                0.25 * g * ek * np.identity(2) - 0.5 * dg * h - 0.5 * g * dh[k]
            ) / self.radius
        result[2] = -matrix / self.radius
        return result


class Ellipse:
    """An :class:`EllipseCore` placed at a center position.

    Affine transforms are handled as 2x3 matrices
    ``[[XX, XY, X], [YX, YY, Y]]``; their six parameters are ordered
    ``XX, YX, XY, YY, X, Y``.  The ellipse parameters are ordered
    ``e1, e2, radius, x, y``.

    """

    def __init__(self, core, center=(0.0, 0.0)):
        self.core = core
        self.center = (float(center[0]), float(center[1]))

    def __repr__(self):
        return f"Ellipse({self.core!r}, center={self.center})"

    def get_parameters(self):
        return np.concatenate([self.core.get_parameters(), self.center])

    def get_grid_transform(self):
        """Affine transform mapping the ellipse onto the unit circle
        centered on the origin."""
        matrix = self.core.get_grid_transform_matrix()
        result = np.empty((2, 3))
        result[:, :2] = matrix
        result[:, 2] = -matrix @ np.asarray(self.center)
        return result

    def get_grid_transform_derivative(self):
        """6x5 derivative of the grid transform parameters with respect
        to the ellipse parameters."""
        center = np.asarray(self.center)
        matrix = self.core.get_grid_transform_matrix()
        dmatrix = self.core.get_grid_transform_matrix_derivative()
        result = np.zeros((6, 5))
        for k in range(3):
            result[:4, k] = dmatrix[k].ravel(order="F")
            result[4:, k] = -dmatrix[k] @ center
        result[4:, 3] = -matrix[:, 0]
        result[4:, 4] = -matrix[:, 1]
        return result
