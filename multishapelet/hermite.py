"""Evaluation of the packed two-dimensional Gauss-Hermite basis.

The basis functions are products ``psi_x(u) * psi_y(v)`` of the
orthonormal one-dimensional Hermite functions

    psi_n(u) = (2^n n! sqrt(pi))^(-1/2) H_n(u) exp(-u^2 / 2)

and are stored in a triangular array ordered by total order
``n = x + y`` and, within an order, by increasing ``x`` (see
:class:`PackedIndex`).

"""

from math import exp, pi, sqrt

import numpy as np
from numba import njit

from multishapelet.errors import DimensionError

# psi_0(0); the normalization of the lowest basis function
BASIS_NORMALIZATION = pi**-0.25


class PackedIndex:
    """Position in a triangular coefficient array.

    Maps a pair of non-negative integers ``(x, y)`` to the linear index
    ``i = (x + y)(x + y + 1) / 2 + x``.  Instances are immutable; use
    :meth:`next` to obtain the following position.

    Parameters
    ----------
    x : int
        Order of the Hermite function along the first axis.
    y : int
        Order of the Hermite function along the second axis.

    """

    __slots__ = ("_order", "_index", "_x", "_y")

    def __init__(self, x=0, y=0):
        if x < 0 or y < 0:
            raise ValueError(f"negative packed index component ({x}, {y})")
        self._x = x
        self._y = y
        self._order = x + y
        self._index = self.compute_offset(self._order) + x

    @staticmethod
    def compute_offset(order):
        """Index of the first element of the given order."""
        return order * (order + 1) // 2

    @staticmethod
    def compute_index(x, y):
        return PackedIndex.compute_offset(x + y) + x

    @staticmethod
    def compute_size(order):
        """Number of coefficients of an expansion up to ``order``."""
        return PackedIndex.compute_offset(order + 1)

    @classmethod
    def from_index(cls, index):
        """Return the position with the given linear index."""
        if index < 0:
            raise ValueError(f"negative packed index {index}")
        order = int((sqrt(8 * index + 1) - 1) // 2)
        # guard against round-off in the square root
        while cls.compute_offset(order + 1) <= index:
            order += 1
        while cls.compute_offset(order) > index:
            order -= 1
        x = index - cls.compute_offset(order)
        return cls(x, order - x)

    @classmethod
    def iterate(cls, order):
        """Yield every position up to and including ``order``."""
        current = cls()
        while current.order <= order:
            yield current
            current = current.next()

    @property
    def order(self):
        return self._order

    @property
    def index(self):
        return self._index

    @property
    def x(self):
        return self._x

    @property
    def y(self):
        return self._y

    def next(self):
        """Return the position following this one in packed order."""
        if self._y == 0:
            return PackedIndex(0, self._order + 1)
        return PackedIndex(self._x + 1, self._y - 1)

    def __eq__(self, other):
        if not isinstance(other, PackedIndex):
            return NotImplemented
        return self._x == other._x and self._y == other._y

    def __hash__(self):
        return hash((self._x, self._y))

    def __repr__(self):
        return (
            f"PackedIndex(n={self._order}, i={self._index}, "
            f"x={self._x}, y={self._y})"
        )


@njit
def _fill_hermite_1d(workspace, u):
    order = workspace.size - 1
    workspace[0] = BASIS_NORMALIZATION * exp(-0.5 * u * u)
    if order > 0:
        workspace[1] = sqrt(2.0) * u * workspace[0]
    for n in range(2, order + 1):
        workspace[n] = (
            sqrt(2.0 / n) * u * workspace[n - 1]
            - sqrt((n - 1.0) / n) * workspace[n - 2]
        )


@njit
def _fill_derivative_1d(dworkspace, workspace, u):
    dworkspace[0] = -u * workspace[0]
    for n in range(1, workspace.size):
        dworkspace[n] = sqrt(2.0 * n) * workspace[n - 1] - u * workspace[n]


@njit
def _pack_outer(target, wx, wy):
    order = wx.size - 1
    i = 0
    for n in range(order + 1):
        for x in range(n + 1):
            target[i] = wx[x] * wy[n - x]
            i += 1


@njit
def _fill_evaluation_matrix(target, x, y, order):
    xw = np.empty(order + 1)
    yw = np.empty(order + 1)
    for n in range(x.size):
        _fill_hermite_1d(xw, x[n])
        _fill_hermite_1d(yw, y[n])
        _pack_outer(target[n], xw, yw)


@njit
def _moments_1d(order, moment):
    """Return ``int u^moment psi_n(u) du`` for ``n = 0..order``."""
    size = order + moment + 1
    table = np.zeros((moment + 1, size + 1))
    table[0, 0] = sqrt(2.0) * pi**0.25
    for n in range(2, size, 2):
        table[0, n] = sqrt((n - 1.0) / n) * table[0, n - 2]
    for p in range(1, moment + 1):
        for n in range(size - p):
            value = sqrt((n + 1.0) / 2.0) * table[p - 1, n + 1]
            if n > 0:
                value += sqrt(n / 2.0) * table[p - 1, n - 1]
            table[p, n] = value
    return table[moment, : order + 1].copy()


@njit
def _inner_product_1d(row_order, col_order, a, b):
    """Return ``m[p, q] = int psi_p(a u) psi_q(b u) du``."""
    a2 = a * a
    b2 = b * b
    total = a2 + b2
    result = np.zeros((row_order + 1, col_order + 1))
    result[0, 0] = sqrt(2.0 / total)
    for q in range(2, col_order + 1, 2):
        result[0, q] = sqrt((q - 1.0) / q) * (b2 - a2) / total * result[0, q - 2]
    for p in range(1, row_order + 1):
        for q in range(col_order + 1):
            value = 0.0
            if p > 1:
                value += sqrt((p - 1.0) / p) * (a2 - b2) / total * result[p - 2, q]
            if q > 0:
                value += 2.0 * a * b / total * sqrt(q / p) * result[p - 1, q - 1]
            result[p, q] = value
    return result


class HermiteEvaluator:
    """Evaluate and integrate expansions in the packed Hermite basis.

    The evaluator owns four one-dimensional workspace arrays of length
    ``order + 1`` that are overwritten on every call, so a single
    instance must not be shared between concurrent fits.

    Parameters
    ----------
    order : int
        Maximum total order of the expansions handled.

    """

    def __init__(self, order):
        if order < 0:
            raise ValueError(f"negative shapelet order {order}")
        self.order = order
        self._xw = np.empty(order + 1)
        self._yw = np.empty(order + 1)
        self._dxw = np.empty(order + 1)
        self._dyw = np.empty(order + 1)

    @property
    def size(self):
        return PackedIndex.compute_size(self.order)

    def _check(self, array, name):
        if array is not None and array.shape != (self.size,):
            raise DimensionError(
                f"{name} has shape {array.shape}, expected ({self.size},)"
            )

    def fill_evaluation(self, target, x, y, dx=None, dy=None):
        """Fill ``target`` with the basis functions evaluated at (x, y).

        Parameters
        ----------
        target : np.ndarray
            Output vector of length ``PackedIndex.compute_size(order)``;
            its dot product with a coefficient vector gives the value
            of the expansion.
        x, y : float
            Position in the unit-circle frame of the expansion.
        dx, dy : np.ndarray, optional
            When given, filled with the partial derivatives of the
            basis functions along x and y.

        """
        self._check(target, "target")
        self._check(dx, "dx")
        self._check(dy, "dy")
        _fill_hermite_1d(self._xw, float(x))
        _fill_hermite_1d(self._yw, float(y))
        _pack_outer(target, self._xw, self._yw)
        if dx is not None:
            _fill_derivative_1d(self._dxw, self._xw, float(x))
            _pack_outer(dx, self._dxw, self._yw)
        if dy is not None:
            _fill_derivative_1d(self._dyw, self._yw, float(y))
            _pack_outer(dy, self._xw, self._dyw)
        return target

    def fill_evaluation_matrix(self, target, x, y):
        """Fill row ``n`` of ``target`` with the basis functions
        evaluated at ``(x[n], y[n])``."""
        x = np.ascontiguousarray(x, dtype=float).ravel()
        y = np.ascontiguousarray(y, dtype=float).ravel()
        if x.shape != y.shape or target.shape != (x.size, self.size):
            raise DimensionError(
                f"target has shape {target.shape}, "
                f"expected ({x.size}, {self.size})"
            )
        _fill_evaluation_matrix(target, x, y, self.order)
        return target

    def fill_integration(self, target, x_moment=0, y_moment=0):
        """Fill ``target`` so that its dot product with the coefficients
        is ``int x^x_moment y^y_moment f(x, y) dx dy``."""
        self._check(target, "target")
        if x_moment < 0 or y_moment < 0:
            raise ValueError("moments must be non-negative")
        _pack_outer(
            target,
            _moments_1d(self.order, x_moment),
            _moments_1d(self.order, y_moment),
        )
        return target

    def sum_evaluation(self, coefficients, x, y, derivatives=False):
        """Value of the expansion at (x, y).

        With ``derivatives=True`` a tuple ``(value, dx, dy)`` is
        returned instead.

        """
        coefficients = np.asarray(coefficients, dtype=float)
        self._check(coefficients, "coefficients")
        target = np.empty(self.size)
        if not derivatives:
            self.fill_evaluation(target, x, y)
            return float(target @ coefficients)
        dx = np.empty(self.size)
        dy = np.empty(self.size)
        self.fill_evaluation(target, x, y, dx, dy)
        return (
            float(target @ coefficients),
            float(dx @ coefficients),
            float(dy @ coefficients),
        )

    def sum_integration(self, coefficients, x_moment=0, y_moment=0):
        coefficients = np.asarray(coefficients, dtype=float)
        self._check(coefficients, "coefficients")
        target = np.empty(self.size)
        self.fill_integration(target, x_moment, y_moment)
        return float(target @ coefficients)

    @staticmethod
    def compute_inner_product_matrix(row_order, col_order, a, b):
        """Inner products between two differently scaled bases.

        Returns the matrix ``M[i, j] = int psi_i(a r) psi_j(b r) d^2r``
        in closed form, where ``i`` runs over the packed basis up to
        ``row_order`` and ``j`` up to ``col_order``.

        """
        if a <= 0 or b <= 0:
            raise ValueError("basis scales must be positive")
        m = _inner_product_1d(row_order, col_order, float(a), float(b))
        result = np.empty(
            (
                PackedIndex.compute_size(row_order),
                PackedIndex.compute_size(col_order),
            )
        )
        for i in PackedIndex.iterate(row_order):
            for j in PackedIndex.iterate(col_order):
                result[i.index, j.index] = m[i.x, j.x] * m[i.y, j.y]
        return result
