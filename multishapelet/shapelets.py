"""Elliptical shapelet expansions and sums of them.

A shapelet function of order ``n`` on ellipse ``E`` takes the value

    f(p) = sum_i c_i psi_i(T(p))

where ``T`` is the grid transform of ``E`` and ``psi_i`` runs over the
packed Hermite basis up to order ``n``.

"""

from math import comb, pi, sqrt

import numpy as np

from multishapelet.ellipses import Ellipse
from multishapelet.errors import DimensionError
from multishapelet.hermite import HermiteEvaluator, PackedIndex


class ShapeletFunction:
    """A single elliptical shapelet expansion.

    Parameters
    ----------
    order : int
        Maximum total order of the basis.
    coefficients : array_like
        Packed coefficients, ``PackedIndex.compute_size(order)`` of them.
    ellipse : multishapelet.ellipses.Ellipse
        Ellipse defining the scale, shape and position of the basis.

    """

    def __init__(self, order, coefficients, ellipse):
        coefficients = np.array(coefficients, dtype=float)
        if coefficients.shape != (PackedIndex.compute_size(order),):
            raise DimensionError(
                f"order {order} needs {PackedIndex.compute_size(order)} "
                f"coefficients, got {coefficients.shape}"
            )
        self.order = order
        self.coefficients = coefficients
        self.ellipse = ellipse

    @classmethod
    def from_gaussian(cls, ellipse, flux):
        """Zeroth-order function integrating to ``flux``."""
        radius = ellipse.core.radius
        return cls(0, [flux / (2.0 * sqrt(pi) * radius**2)], ellipse)

    def __repr__(self):
        return (
            f"ShapeletFunction(order={self.order}, "
            f"coefficients={self.coefficients!r}, ellipse={self.ellipse!r})"
        )

    def evaluate(self, x, y):
        """Value of the function at the given pixel positions."""
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        transform = self.ellipse.get_grid_transform()
        xt = transform[0, 0] * x + transform[0, 1] * y + transform[0, 2]
        yt = transform[1, 0] * x + transform[1, 1] * y + transform[1, 2]
        basis = np.empty((xt.size, PackedIndex.compute_size(self.order)))
        HermiteEvaluator(self.order).fill_evaluation_matrix(basis, xt, yt)
        return (basis @ self.coefficients).reshape(x.shape)

    def integrate(self):
        """Total flux of the function."""
        evaluator = HermiteEvaluator(self.order)
        return self.ellipse.core.radius**2 * evaluator.sum_integration(
            self.coefficients
        )

    def convolve(self, other):
        """Convolution with another function.

        The convolution of two Gauss-Hermite expansions of orders ``n``
        and ``m`` is exactly an expansion of order ``n + m`` on the
        ellipse whose moments are the sum of both ellipses' moments.
        Its coefficients are found by matching the polynomial moments
        of the result, which are binomial sums of the moments of the
        two factors.

        Raises
        ------
        ValueError
            If either function is defined on a zero-radius ellipse.

        """
        if self.ellipse.core.radius == 0 or other.ellipse.core.radius == 0:
            raise ValueError("cannot convolve a function on a point ellipse")
        order = self.order + other.order
        core = self.ellipse.core.convolve(other.ellipse.core)
        center = (
            self.ellipse.center[0] + other.ellipse.center[0],
            self.ellipse.center[1] + other.ellipse.center[1],
        )
        a = self.compute_moments(order)
        b = other.compute_moments(order)
        moments = np.zeros(PackedIndex.compute_size(order))
        for alpha in PackedIndex.iterate(order):
            for beta in PackedIndex.iterate(alpha.order):
                if beta.x > alpha.x or beta.y > alpha.y:
                    continue
                rest = PackedIndex.compute_index(alpha.x - beta.x, alpha.y - beta.y)
                weight = comb(alpha.x, beta.x) * comb(alpha.y, beta.y)
                moments[alpha.index] += weight * a[beta.index] * b[rest]
        matrix = compute_moment_matrix(order, core, order)
        return ShapeletFunction(
            order, np.linalg.solve(matrix, moments), Ellipse(core, center)
        )

    def compute_moments(self, moment_order):
        """Moments ``int x^a y^b f(x, y)`` about the center of the
        function, packed like :class:`PackedIndex` up to ``moment_order``."""
        matrix = compute_moment_matrix(self.order, self.ellipse.core, moment_order)
        return matrix @ self.coefficients


def compute_moment_matrix(order, core, moment_order):
    """Moments of the basis functions on an ellipse centered on the origin.

    Parameters
    ----------
    order : int
        Order of the basis.
    core : multishapelet.ellipses.EllipseCore
        Ellipse of the basis; must have a non-zero radius.
    moment_order : int
        Highest total order of the moments.

    Returns
    -------
    np.ndarray
        ``M[i, k] = int x^a y^b psi_k(T p) d^2p`` where ``i`` is the
        packed index of ``(a, b)`` and ``T`` the grid transform of
        ``core``.

    """
    evaluator = HermiteEvaluator(order)
    # p = A u with A the inverse grid transform
    inverse = np.linalg.inv(core.get_grid_transform_matrix())
    unit = np.empty(evaluator.size)
    result = np.zeros((PackedIndex.compute_size(moment_order), evaluator.size))
    for alpha in PackedIndex.iterate(moment_order):
        a, b = alpha.x, alpha.y
        for i in range(a + 1):
            ci = comb(a, i) * inverse[0, 0] ** i * inverse[0, 1] ** (a - i)
            for j in range(b + 1):
                cj = comb(b, j) * inverse[1, 0] ** j * inverse[1, 1] ** (b - j)
                evaluator.fill_integration(unit, i + j, a + b - i - j)
                result[alpha.index] += ci * cj * unit
    return abs(np.linalg.det(inverse)) * result


class MultiShapeletFunction:
    """Sum of :class:`ShapeletFunction` elements."""

    def __init__(self, elements=()):
        self.elements = list(elements)

    def __len__(self):
        return len(self.elements)

    def __iter__(self):
        return iter(self.elements)

    def evaluate(self, x, y):
        x = np.asarray(x, dtype=float)
        result = np.zeros(x.shape)
        for element in self.elements:
            result += element.evaluate(x, y)
        return result

    def integrate(self):
        return sum(element.integrate() for element in self.elements)

    def normalize(self, flux=1.0):
        """Copy scaled so that it integrates to ``flux``."""
        factor = flux / self.integrate()
        return MultiShapeletFunction(
            ShapeletFunction(e.order, e.coefficients * factor, e.ellipse)
            for e in self.elements
        )

    def convolve(self, other):
        """Convolve every element with every element of ``other``."""
        return MultiShapeletFunction(
            a.convolve(b) for a in self.elements for b in other.elements
        )


class ShapeletModelBuilder:
    """Design matrix of a shapelet basis at fixed pixel positions.

    Parameters
    ----------
    x, y : array_like
        Pixel coordinates, one entry per pixel.

    """

    def __init__(self, x, y):
        self._x = np.asarray(x, dtype=float).ravel()
        self._y = np.asarray(y, dtype=float).ravel()
        if self._x.size != self._y.size:
            raise DimensionError("coordinate arrays differ in size")

    @property
    def size(self):
        return self._x.size

    def compute_matrix(self, order, ellipse):
        """Return the ``(size, compute_size(order))`` basis matrix."""
        transform = ellipse.get_grid_transform()
        xt = transform[0, 0] * self._x + transform[0, 1] * self._y + transform[0, 2]
        yt = transform[1, 0] * self._x + transform[1, 1] * self._y + transform[1, 2]
        matrix = np.empty((self.size, PackedIndex.compute_size(order)))
        return HermiteEvaluator(order).fill_evaluation_matrix(matrix, xt, yt)
