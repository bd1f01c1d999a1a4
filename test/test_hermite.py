"""
Tests for the packed Hermite basis.
"""
import unittest

import numpy as np
import pytest

from multishapelet.errors import DimensionError
from multishapelet.hermite import HermiteEvaluator, PackedIndex


@pytest.mark.parametrize("x, y", [(0, 0), (1, 0), (0, 1), (3, 2), (0, 7), (5, 5)])
def test_packed_index_round_trip(x, y):
    index = PackedIndex(x, y)
    assert (index.x, index.y, index.order) == (x, y, x + y)
    assert index.index == (x + y) * (x + y + 1) // 2 + x
    assert PackedIndex.from_index(index.index) == index


def test_packed_index_enumeration():
    order = 6
    visited = list(PackedIndex.iterate(order))
    assert len(visited) == PackedIndex.compute_size(order)
    assert [p.index for p in visited] == list(range(len(visited)))
    for n in range(order + 1):
        in_order = [p for p in visited if p.order == n]
        assert [p.x for p in in_order] == list(range(n + 1))
    orders = [p.order for p in visited]
    assert orders == sorted(orders)


def test_packed_index_next():
    index = PackedIndex()
    assert index.next() == PackedIndex(0, 1)
    assert index.next().next() == PackedIndex(1, 0)
    assert PackedIndex(1, 0).next() == PackedIndex(0, 2)


def test_packed_index_negative():
    with pytest.raises(ValueError):
        PackedIndex(-1, 0)


def _grid(limit=10.0, step=0.05):
    u = np.arange(-limit, limit + step / 2, step)
    x, y = np.meshgrid(u, u)
    return x.ravel(), y.ravel(), step**2


class HermiteEvaluatorTest(unittest.TestCase):
    """Evaluation of a fourth-order expansion"""

    def setUp(self):
        self.order = 4
        self.evaluator = HermiteEvaluator(self.order)
        rng = np.random.default_rng(42)
        self.coefficients = rng.normal(size=PackedIndex.compute_size(self.order))

    def testLinearity(self):
        target = np.empty(self.evaluator.size)
        for x, y in [(0.0, 0.0), (0.3, -1.2), (2.5, 0.7)]:
            self.evaluator.fill_evaluation(target, x, y)
            self.assertAlmostEqual(
                self.evaluator.sum_evaluation(self.coefficients, x, y),
                target @ self.coefficients,
                places=12,
            )

    def testLowestBasisFunction(self):
        target = np.empty(self.evaluator.size)
        self.evaluator.fill_evaluation(target, 0.0, 0.0)
        self.assertAlmostEqual(target[0], 1.0 / np.sqrt(np.pi))
        # odd functions vanish at the origin
        self.assertEqual(target[PackedIndex.compute_index(1, 0)], 0.0)
        self.assertEqual(target[PackedIndex.compute_index(0, 1)], 0.0)

    def testDerivatives(self):
        x, y, h = 0.4, -0.9, 1e-6
        _, dx, dy = self.evaluator.sum_evaluation(
            self.coefficients, x, y, derivatives=True
        )
        f = self.evaluator.sum_evaluation
        c = self.coefficients
        self.assertAlmostEqual(dx, (f(c, x + h, y) - f(c, x - h, y)) / (2 * h), 6)
        self.assertAlmostEqual(dy, (f(c, x, y + h) - f(c, x, y - h)) / (2 * h), 6)

    def testEvaluationMatrix(self):
        x = np.array([0.0, 1.0, -0.5])
        y = np.array([0.2, -1.5, 0.5])
        matrix = np.empty((3, self.evaluator.size))
        self.evaluator.fill_evaluation_matrix(matrix, x, y)
        for n in range(3):
            self.assertAlmostEqual(
                matrix[n] @ self.coefficients,
                self.evaluator.sum_evaluation(self.coefficients, x[n], y[n]),
                places=12,
            )

    def testOrthonormality(self):
        x, y, area = _grid()
        matrix = np.empty((x.size, self.evaluator.size))
        self.evaluator.fill_evaluation_matrix(matrix, x, y)
        gram = matrix.T @ matrix * area
        np.testing.assert_allclose(gram, np.identity(self.evaluator.size), atol=1e-8)

    def testIntegration(self):
        x, y, area = _grid()
        matrix = np.empty((x.size, self.evaluator.size))
        self.evaluator.fill_evaluation_matrix(matrix, x, y)
        values = matrix @ self.coefficients
        for px, py in [(0, 0), (1, 0), (0, 1), (2, 0), (1, 1), (0, 2), (3, 1)]:
            expected = np.sum(values * x**px * y**py) * area
            self.assertAlmostEqual(
                self.evaluator.sum_integration(self.coefficients, px, py),
                expected,
                places=8,
            )

    def testFluxOfLowestBasisFunction(self):
        coefficients = np.zeros(self.evaluator.size)
        coefficients[0] = 1.0
        self.assertAlmostEqual(
            self.evaluator.sum_integration(coefficients), 2.0 * np.sqrt(np.pi)
        )

    def testDimensionMismatch(self):
        with self.assertRaises(DimensionError):
            self.evaluator.fill_evaluation(np.empty(3), 0.0, 0.0)
        with self.assertRaises(DimensionError):
            self.evaluator.sum_evaluation(np.ones(4), 0.0, 0.0)


def test_inner_product_identity():
    matrix = HermiteEvaluator.compute_inner_product_matrix(4, 4, 1.0, 1.0)
    np.testing.assert_allclose(matrix, np.identity(15), atol=1e-14)


@pytest.mark.parametrize("row_order, col_order, a, b", [(3, 2, 1.3, 0.8), (2, 4, 0.7, 1.0)])
def test_inner_product_quadrature(row_order, col_order, a, b):
    x, y, area = _grid()
    rows = np.empty((x.size, PackedIndex.compute_size(row_order)))
    cols = np.empty((x.size, PackedIndex.compute_size(col_order)))
    HermiteEvaluator(row_order).fill_evaluation_matrix(rows, a * x, a * y)
    HermiteEvaluator(col_order).fill_evaluation_matrix(cols, b * x, b * y)
    expected = rows.T @ cols * area
    matrix = HermiteEvaluator.compute_inner_product_matrix(row_order, col_order, a, b)
    np.testing.assert_allclose(matrix, expected, atol=1e-8)
