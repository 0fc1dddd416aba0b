import logging
from unittest import TestCase

import numpy as np
import pytest

from ctffit.exceptions import DimensionsIncompatible, WrongInput
from ctffit.optimization import CurveResidual, FunctionObjective, Objective, Simplex

logger = logging.getLogger(__name__)


class Paraboloid(Objective):
    def __init__(self, center):
        self.center = np.asarray(center, dtype=np.float64)
        self.calls = 0

    def evaluate(self, parameters):
        self.calls += 1
        d = parameters - self.center
        return float(d @ d)


class SimplexTestCase(TestCase):
    def testMinimum(self):
        objective = Paraboloid([1.0, -2.0])
        simplex = Simplex(
            objective,
            [0.0, 0.0],
            limits=[(-5, 5), (-5, 5)],
            tolerance=1e-8,
            seed=0,
        )
        R = simplex.run()
        logger.debug(f"Simplex R={R} after {simplex.cycles} cycles")

        self.assertTrue(R < 1e-8)
        np.testing.assert_allclose(simplex.parameters, [1.0, -2.0], atol=1e-3)
        self.assertTrue(objective.calls > simplex.cycles)

    def testLimits(self):
        # The unconstrained minimum at 10 lies outside the limits
        simplex = Simplex(
            FunctionObjective(lambda p: (p[0] - 10) ** 2),
            [0.0],
            limits=[(-5, 5)],
            seed=0,
        )
        simplex.run()
        self.assertTrue(simplex.parameters[0] <= 5)
        self.assertTrue(simplex.parameters[0] > 4.9)

    def testCallable(self):
        simplex = Simplex(lambda p: abs(p[0] - 3), [1.0], tolerance=1e-6, seed=0)
        self.assertIsInstance(simplex.objective, FunctionObjective)
        simplex.run()
        self.assertAlmostEqual(simplex.parameters[0], 3, places=3)

    def testReproducible(self):
        def run():
            simplex = Simplex(
                Paraboloid([0.3, 0.6, -0.2]),
                [0.0, 0.0, 0.0],
                limits=[(-1, 1)] * 3,
                tolerance=1e-4,
                seed=123,
            )
            R = simplex.run()
            return R, simplex.parameters

        R1, p1 = run()
        R2, p2 = run()
        self.assertEqual(R1, R2)
        np.testing.assert_array_equal(p1, p2)

    def testNonFinite(self):
        # Non-finite objective values never become the best vertex
        def objective(p):
            if p[0] < 0:
                return np.nan
            return (p[0] - 0.5) ** 2

        simplex = Simplex(objective, [0.9], limits=[(-1, 1)], tolerance=1e-8, seed=0)
        R = simplex.run()
        self.assertTrue(np.isfinite(R))
        self.assertTrue(simplex.parameters[0] >= 0)

    def testInvalid(self):
        with pytest.raises(WrongInput):
            Simplex(Paraboloid([]), [])
        with pytest.raises(DimensionsIncompatible):
            Simplex(Paraboloid([0, 0]), [0, 0], limits=[(0, 1)])

    def testObjectiveInterface(self):
        with pytest.raises(NotImplementedError):
            Objective().evaluate(np.zeros(1))


class CurveResidualTestCase(TestCase):
    def setUp(self):
        self.x = np.linspace(0, 1, 11)
        self.y = 2 * self.x + 1

    def testExact(self):
        residual = CurveResidual(lambda x, c: c[0] * x + c[1], self.x, self.y)
        self.assertEqual(residual.evaluate(np.array([2.0, 1.0])), 0)
        self.assertAlmostEqual(residual(np.array([2.0, 2.0])), 1.0)

    def testRelative(self):
        residual = CurveResidual(
            lambda x, c: c[0] * x + c[1], self.x, self.y, relative=True
        )
        self.assertAlmostEqual(residual(np.array([4.0, 2.0])), 1.0)

        with pytest.raises(WrongInput):
            CurveResidual(lambda x, c: x, self.x, self.x, relative=True)

    def testWeights(self):
        weights = np.zeros(11)
        weights[0] = 1
        residual = CurveResidual(
            lambda x, c: c[0] * x + c[1], self.x, self.y, weights=weights
        )
        # Only the first sample counts
        self.assertEqual(residual(np.array([5.0, 1.0])), 0)

        with pytest.raises(DimensionsIncompatible):
            CurveResidual(lambda x, c: x, self.x, self.y, weights=np.ones(3))

    def testNonFinite(self):
        residual = CurveResidual(lambda x, c: np.exp(c[0] * x), self.x, self.y)
        self.assertEqual(residual(np.array([1e6])), np.inf)
