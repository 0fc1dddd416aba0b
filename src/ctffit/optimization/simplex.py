"""
Derivative-free minimization with the Nelder-Mead downhill simplex.
"""

import logging

import numpy as np

from ctffit import config
from ctffit.exceptions import DimensionsIncompatible, WrongInput
from ctffit.utils import Random

logger = logging.getLogger(__name__)


class Objective:
    """
    A scalar function of a parameter vector, minimized by `Simplex`.
    """

    def evaluate(self, parameters):
        """
        :param parameters: 1D array of parameters.
        :return: Scalar objective value, lower is better.
        """
        raise NotImplementedError("subclasses must implement this")

    def __call__(self, parameters):
        return self.evaluate(parameters)


class FunctionObjective(Objective):
    """
    Objective wrapping a plain callable.
    """

    def __init__(self, function):
        self.function = function

    def evaluate(self, parameters):
        return float(self.function(parameters))


class CurveResidual(Objective):
    """
    Root mean square residual of a parametric curve over sample points.

    With `relative` the residual of each sample is `1 - curve / y`,
    otherwise `curve - y`.  Optional `weights` give a weighted mean.
    """

    def __init__(self, curve, x, y, relative=False, weights=None):
        """
        :param curve: Callable `curve(x, parameters)` returning an array like `x`.
        :param x: Sample abscissae.
        :param y: Sample values.
        :param relative: Use residuals relative to `y`.
        :param weights: Optional non-negative sample weights.
        """
        self.curve = curve
        self.x = np.asarray(x, dtype=np.float64)
        self.y = np.asarray(y, dtype=np.float64)
        if self.x.shape != self.y.shape:
            raise DimensionsIncompatible(
                f"Sample x {self.x.shape} and y {self.y.shape} differ in shape."
            )
        if relative and np.any(self.y == 0):
            raise WrongInput("Relative residuals require non-zero samples.")
        self.relative = relative

        self.weights = None
        if weights is not None:
            self.weights = np.asarray(weights, dtype=np.float64)
            if self.weights.shape != self.x.shape:
                raise DimensionsIncompatible(
                    f"Weights {self.weights.shape} do not match samples {self.x.shape}."
                )

    def evaluate(self, parameters):
        with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
            fit = self.curve(self.x, parameters)
            if self.relative:
                d = 1 - fit / self.y
            else:
                d = fit - self.y
            if self.weights is None:
                r = np.mean(d * d)
            else:
                r = np.sum(self.weights * d * d) / np.sum(self.weights)

        r = np.sqrt(r)
        if not np.isfinite(r):
            return np.inf
        return float(r)


class Simplex:
    """
    Nelder-Mead minimization of an `Objective` within box limits.

    Proposed coordinates falling outside the limits keep the coordinate of
    the vertex being moved.  The initial vertices are drawn within the middle
    half of each limited range, so runs with the same seed are reproducible.
    When the simplex collapses (relative spread below `tolerance / 10`) it is
    re-expanded around the best vertex up to `restarts` times.
    """

    def __init__(
        self,
        objective,
        parameters,
        limits=None,
        tolerance=1e-3,
        max_cycles=None,
        restarts=None,
        seed=None,
    ):
        """
        :param objective: `Objective` instance or a callable of the parameter vector.
        :param parameters: Initial parameter vector.
        :param limits: Optional (n, 2) array of (lower, upper) limits per parameter.
            Infinite limits leave a parameter unbounded.
        :param tolerance: Objective value considered converged.
        :param max_cycles: Iteration cap, defaults to `config.ctf.simplex.max_cycles`.
        :param restarts: Number of re-expansions of a collapsed simplex,
            defaults to `config.ctf.simplex.restarts`.
        :param seed: Random seed of the vertex initialization,
            defaults to `config.common.seed`.
        """
        if not isinstance(objective, Objective):
            objective = FunctionObjective(objective)
        self.objective = objective

        self.parameters = np.array(parameters, dtype=np.float64).ravel()
        n = self.parameters.size
        if n == 0:
            raise WrongInput("Simplex requires at least one parameter.")

        if limits is None:
            self.lower = np.full(n, -np.inf)
            self.upper = np.full(n, np.inf)
        else:
            limits = np.asarray(limits, dtype=np.float64)
            if limits.shape != (n, 2):
                raise DimensionsIncompatible(
                    f"Limits of shape {limits.shape} given for {n} parameters."
                )
            self.lower = limits.min(axis=1)
            self.upper = limits.max(axis=1)

        self.parameters = np.clip(self.parameters, self.lower, self.upper)

        self.tolerance = tolerance
        if max_cycles is None:
            max_cycles = config["ctf"]["simplex"]["max_cycles"].get(int)
        self.max_cycles = max_cycles
        if restarts is None:
            restarts = config["ctf"]["simplex"]["restarts"].get(int)
        self.restarts = restarts
        if seed is None:
            seed = config["common"]["seed"].get()
        self.seed = seed

        self.R = None
        self.cycles = 0

    @property
    def _bounded(self):
        return np.isfinite(self.lower) & np.isfinite(self.upper)

    def _evaluate(self, point):
        value = self.objective.evaluate(point)
        if not np.isfinite(value):
            return np.inf
        return value

    def _initial_vertex(self, r):
        start = self.parameters
        unbounded = np.where(start != 0, start * (0.5 + r), r - 0.5)
        point = np.where(
            self._bounded,
            self.lower + (self.upper - self.lower) * (0.25 + 0.5 * r),
            unbounded,
        )
        return np.clip(point, self.lower, self.upper)

    def _perturb(self, best, r, scale=0.1):
        span = np.where(
            self._bounded,
            self.upper - self.lower,
            np.where(best != 0, np.abs(best), 1.0),
        )
        return np.clip(best + scale * span * (r - 0.5), self.lower, self.upper)

    def _amotry(self, points, values, ihi, factor):
        """
        Move the worst vertex through the centroid of the others by `factor`,
        keeping the move when it improves on the worst vertex.
        """
        n = points.shape[1]
        centroid = (points.sum(axis=0) - points[ihi]) / n
        trial = centroid * (1 - factor) + points[ihi] * factor

        outside = (trial < self.lower) | (trial > self.upper)
        trial[outside] = points[ihi][outside]

        ytry = self._evaluate(trial)
        if ytry < values[ihi]:
            points[ihi] = trial
            values[ihi] = ytry

        return ytry

    def run(self):
        """
        Minimize the objective.

        :return: The best objective value, the best parameter vector is
            available as `parameters`.
        """
        n = self.parameters.size

        with Random(self.seed):
            points = np.empty((n + 1, n), dtype=np.float64)
            points[0] = self.parameters
            for i in range(1, n + 1):
                points[i] = self._initial_vertex(np.random.random(n))
            values = np.array([self._evaluate(p) for p in points])

            restarts = 0
            cycle = 0
            for cycle in range(1, self.max_cycles + 1):
                order = np.argsort(values, kind="stable")
                ilo, inhi, ihi = order[0], order[-2], order[-1]

                if values[ihi] < self.tolerance:
                    break
                if not np.isfinite(values[ilo]):
                    logger.debug("Simplex objective is not finite at any vertex.")
                    break

                spread = abs(values[ihi] - values[ilo])
                if spread <= abs(values[ilo]) * self.tolerance / 10:
                    if restarts >= self.restarts:
                        break
                    restarts += 1
                    for i in range(n + 1):
                        if i != ilo:
                            points[i] = self._perturb(
                                points[ilo], np.random.random(n)
                            )
                            values[i] = self._evaluate(points[i])
                    continue

                ytry = self._amotry(points, values, ihi, -1.0)
                if ytry <= values[ilo]:
                    self._amotry(points, values, ihi, 2.0)
                elif ytry >= values[inhi]:
                    ysave = values[ihi]
                    ytry = self._amotry(points, values, ihi, 0.5)
                    if ytry >= ysave:
                        for i in range(n + 1):
                            if i != ilo:
                                points[i] = 0.5 * (points[i] + points[ilo])
                                values[i] = self._evaluate(points[i])

        best = int(np.argmin(values))
        self.parameters = points[best].copy()
        self.R = float(values[best])
        self.cycles = cycle

        logger.debug(
            f"Simplex converged to R={self.R:.6g} after {self.cycles} cycles"
            f" and {restarts} restarts."
        )

        return self.R
