"""
Base class of the parametric curve families used for baselines and envelopes.
"""

import logging

import numpy as np

from ctffit.exceptions import DimensionsIncompatible
from ctffit.optimization import CurveResidual, Simplex

logger = logging.getLogger(__name__)


class CurveModel:
    """
    A curve family of spatial frequency `s` with a fixed coefficient vector.

    Instances are immutable, fitting returns a new instance.
    Subclasses define `curve`, `default_coefficients`, the fitting `limits`
    (for samples scaled to a maximum of one) and `amplitude_indices`, the
    coefficients scaling linearly with the sample intensity.
    """

    name = None
    default_coefficients = ()
    amplitude_indices = ()
    limits = None
    relative = False

    def __init__(self, coefficients=None):
        if coefficients is None:
            coefficients = self.default_coefficients
        coefficients = np.array(coefficients, dtype=np.float64).ravel()
        if coefficients.size != len(self.default_coefficients):
            raise DimensionsIncompatible(
                f"{self.__class__.__name__} takes {len(self.default_coefficients)}"
                f" coefficients, got {coefficients.size}."
            )
        coefficients.flags.writeable = False
        self.coefficients = coefficients

    @staticmethod
    def curve(s, c):
        raise NotImplementedError("subclasses must implement this")

    def __call__(self, s):
        s = np.asarray(s, dtype=np.float64)
        with np.errstate(over="ignore", invalid="ignore"):
            return self.curve(s, self.coefficients)

    def __repr__(self):
        return f"{self.__class__.__name__}({', '.join(f'{c:.6g}' for c in self.coefficients)})"

    def __eq__(self, other):
        return type(self) is type(other) and np.array_equal(
            self.coefficients, other.coefficients
        )

    def with_coefficients(self, coefficients):
        return self.__class__(coefficients)

    def equation(self):
        raise NotImplementedError("subclasses must implement this")

    def as_dict(self):
        return {"model": self.name, "coefficients": self.coefficients.tolist()}

    def _scaled(self, coefficients, factor):
        coefficients = np.array(coefficients, dtype=np.float64)
        for i in self.amplitude_indices:
            coefficients[i] *= factor
        return coefficients

    def fit_limits(self, x, y):
        """
        Fitting limits for samples `y` scaled to a maximum of one.
        """
        return np.array(self.limits, dtype=np.float64)

    def fit(self, x, y, tolerance=1e-3):
        """
        Fit the curve family to the samples with the simplex.

        The current coefficients are the starting point.

        :param x: Spatial frequencies of the samples.
        :param y: Sample values.
        :param tolerance: Simplex tolerance on the scaled residual.
        :return: (fitted model, residual), the residual being the RMS
            deviation relative to the largest sample.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)

        scale = np.max(np.abs(y)) if y.size else 0
        if scale == 0 or not np.isfinite(scale):
            logger.debug(f"No usable samples to fit {self.name}, left unchanged.")
            return self, 0.0

        scaled_y = y / scale
        limits = np.sort(self.fit_limits(x, scaled_y), axis=1)
        start = np.clip(
            self._scaled(self.coefficients, 1 / scale), limits[:, 0], limits[:, 1]
        )

        simplex = Simplex(
            CurveResidual(self.curve, x, scaled_y, relative=self.relative),
            start,
            limits=limits,
            tolerance=tolerance,
        )
        R = simplex.run()

        return self.with_coefficients(self._scaled(simplex.parameters, scale)), R
