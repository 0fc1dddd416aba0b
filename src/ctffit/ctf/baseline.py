"""
Baseline (background) curve families of radial power spectra and their fits.
"""

import logging

import numpy as np
from numpy.polynomial import polynomial

from ctffit import config
from ctffit.ctf.curve_model import CurveModel
from ctffit.exceptions import DimensionsIncompatible, UnknownModel
from ctffit.optimization import CurveResidual, Simplex
from ctffit.utils import moving_average

logger = logging.getLogger(__name__)


def bump_curve(s, bump):
    """
    Gaussian water ring bump `A * exp(w * (s0 - s)^2)` with `bump = (A, s0, w)`.
    """
    amplitude, location, width = bump
    ds = location - np.asarray(s, dtype=np.float64)
    with np.errstate(over="ignore", invalid="ignore"):
        return amplitude * np.exp(width * ds * ds)


class Baseline(CurveModel):
    """
    Smooth, non-oscillating background of a radial power spectrum.

    A baseline may carry a Gaussian bump modelling the water ring,
    given as (amplitude, location, width) and added to the curve.
    """

    def __init__(self, coefficients=None, bump=None):
        super().__init__(coefficients)
        if bump is not None:
            bump = np.array(bump, dtype=np.float64).ravel()
            if bump.size != 3:
                raise DimensionsIncompatible(
                    f"A baseline bump takes 3 coefficients, got {bump.size}."
                )
            bump.flags.writeable = False
        self.bump = bump

    @property
    def has_bump(self):
        return self.bump is not None

    def __call__(self, s):
        values = super().__call__(s)
        if self.bump is not None:
            values = values + bump_curve(s, self.bump)
        return values

    def __repr__(self):
        msg = super().__repr__()
        if self.bump is not None:
            msg += f" + bump({', '.join(f'{c:.6g}' for c in self.bump)})"
        return msg

    def __eq__(self, other):
        if not super().__eq__(other):
            return False
        if self.bump is None or other.bump is None:
            return self.bump is None and other.bump is None
        return np.array_equal(self.bump, other.bump)

    def with_coefficients(self, coefficients):
        return self.__class__(coefficients, bump=self.bump)

    def with_bump(self, bump=None):
        """
        Copy carrying `bump`, the configured default bump when None.
        """
        if bump is None:
            bump = (
                0.0,
                config["ctf"]["bump"]["location"].get(float),
                config["ctf"]["bump"]["width"].get(float),
            )
        return self.__class__(self.coefficients, bump=bump)

    def without_bump(self):
        return self.__class__(self.coefficients)

    def as_dict(self):
        d = super().as_dict()
        d["bump"] = None if self.bump is None else self.bump.tolist()
        return d

    def _bump_equation(self):
        if self.bump is None:
            return ""
        a, s0, w = self.bump
        return f" + {a:.6g}*exp({w:.6g}*({s0:.6g}-s)^2)"


class PolynomialBaseline(Baseline):
    """
    Fourth order polynomial a0 + a1 s + a2 s^2 + a3 s^3 + a4 s^4,
    fitted by linear least squares.
    """

    name = "polynomial"
    default_coefficients = (1.0, 0.0, 0.0, 0.0, 0.0)

    @staticmethod
    def curve(s, c):
        return polynomial.polyval(s, c)

    def equation(self):
        c = self.coefficients
        return (
            f"{c[0]:.6g} + {c[1]:.6g}*s + {c[2]:.6g}*s^2"
            f" + {c[3]:.6g}*s^3 + {c[4]:.6g}*s^4" + self._bump_equation()
        )

    def fit(self, x, y, tolerance=None):
        """
        Least squares polynomial fit, the order is reduced for fewer than five samples.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        if x.size == 0:
            return self, 0.0

        order = min(4, x.size - 1)
        coefficients = np.zeros(5)
        coefficients[: order + 1] = polynomial.polyfit(x, y, order)

        scale = np.max(np.abs(y))
        residual = polynomial.polyval(x, coefficients) - y
        R = np.sqrt(np.mean(residual * residual)) / scale if scale > 0 else 0.0

        return self.with_coefficients(coefficients), float(R)


class DoubleGaussianBaseline(Baseline):
    """
    a + b exp(c s^2) + d exp(e s^2)
    """

    name = "double_gaussian"
    default_coefficients = (0.0, 1.0, -10.0, 0.5, -100.0)
    amplitude_indices = (0, 1, 3)

    @staticmethod
    def curve(s, c):
        s2 = s * s
        return c[0] + c[1] * np.exp(c[2] * s2) + c[3] * np.exp(c[4] * s2)

    def equation(self):
        c = self.coefficients
        return (
            f"{c[0]:.6g} + {c[1]:.6g}*exp({c[2]:.6g}*s^2)"
            f" + {c[3]:.6g}*exp({c[4]:.6g}*s^2)" + self._bump_equation()
        )

    def fit_limits(self, x, y):
        ymin = np.min(y)
        amp = np.max(y) - ymin
        if ymin <= 0:
            a_limits = (0.0, 1.0)
        else:
            a_limits = (ymin / 2, 2 * ymin)
        if amp <= 0:
            amp = 1.0
        return np.array(
            [
                a_limits,
                (amp / 5, 5 * amp),
                (-1e3, -0.1),
                (0.0, 2 * amp),
                (-1e4, -0.01),
            ]
        )


class EmanBaseline(Baseline):
    """
    a + b exp(c sqrt(s) + d s^2), the EMAN background form.
    """

    name = "eman"
    default_coefficients = (0.0, 1.0, -1.0, -10.0)
    amplitude_indices = (0, 1)
    limits = ((0.0, 1e3), (0.0, 1e3), (-100.0, 100.0), (-100.0, 0.0))

    @staticmethod
    def curve(s, c):
        return c[0] + c[1] * np.exp(c[2] * np.sqrt(np.abs(s)) + c[3] * s * s)

    def equation(self):
        c = self.coefficients
        return (
            f"{c[0]:.6g} + {c[1]:.6g}*exp({c[2]:.6g}*sqrt(s) + {c[3]:.6g}*s^2)"
            + self._bump_equation()
        )


BASELINES = {
    cls.name: cls for cls in (PolynomialBaseline, DoubleGaussianBaseline, EmanBaseline)
}
BASELINE_NAMES = list(BASELINES)


def baseline_by_name(name, coefficients=None, bump=False):
    """
    Instantiate a baseline family by name.

    :param name: One of "polynomial", "double_gaussian", "eman".
    :param coefficients: Optional coefficients, the family defaults otherwise.
    :param bump: Add the default water ring bump.
    :return: `Baseline` instance.
    """
    try:
        cls = BASELINES[name.lower()]
    except KeyError:
        raise UnknownModel(
            f"Unknown baseline {name}, expected one of {sorted(BASELINES)}."
        )
    baseline = cls(coefficients)
    if bump:
        baseline = baseline.with_bump()
    return baseline


def baseline_anchors(profile, params, lores, hires):
    """
    Select the profile samples representing the pure background.

    With at least four CTF zeroes in the resolution range, the anchors are
    the minima of the profile around each zero.  Otherwise the range is cut
    in ten windows and the anchors are the minima of the profile with its
    moving average removed.

    :param profile: `RadialProfile`.
    :param params: `CTFParameters` locating the zeroes.
    :param lores: Low resolution limit in angstrom.
    :param hires: High resolution limit in angstrom.
    :return: (spatial frequencies, intensities) of the anchors.
    """
    n = len(profile)
    values = profile.values
    rmin = max(0, min(n - 1, int(profile.real_size / lores)))
    rmax = max(rmin, min(n - 1, int(profile.real_size / hires + 0.5)))

    zeroes = params.zeroes(1 / hires)
    zeroes = zeroes[zeroes >= 1 / lores]

    if zeroes.size >= 4:
        k = max(1, n // 100)
        anchors = []
        for j in profile.bin(zeroes):
            lo = max(0, j - k)
            hi = min(n, j + k + 1)
            if lo >= hi:
                continue
            anchors.append(lo + int(np.argmin(values[lo:hi])))
        anchors = np.unique(anchors)
    else:
        logger.debug(
            f"Only {zeroes.size} zeroes between {lores} and {hires} A,"
            " using minima of the flattened profile."
        )
        flattened = values - moving_average(values, max(3, n // 10))
        edges = np.linspace(rmin, rmax + 1, 11).astype(int)
        anchors = []
        for lo, hi in zip(edges[:-1], edges[1:]):
            if hi > lo:
                anchors.append(lo + int(np.argmin(flattened[lo:hi])))
        anchors = np.unique(anchors)

    anchors = np.asarray(anchors, dtype=np.int64)
    return anchors / profile.real_size, values[anchors]


def fit_bump(x, y, bump):
    """
    Fit the water ring bump to baseline anchors.

    The anchors inside the bump window are compared to the straight line
    through the first and last of them; the excess is fitted with a Gaussian.

    :param x: Anchor spatial frequencies.
    :param y: Anchor intensities.
    :param bump: Starting (amplitude, location, width).
    :return: Fitted (amplitude, location, width), or None without enough anchors.
    """
    lo, hi = config["ctf"]["bump"]["window"].get(list)
    sel = (x >= lo) & (x <= hi)
    xs, ys = x[sel], y[sel]
    if xs.size < 3:
        logger.debug(f"{xs.size} anchors in the bump window, no bump fitted.")
        return None

    line = ys[0] + (ys[-1] - ys[0]) * (xs - xs[0]) / (xs[-1] - xs[0])
    excess = ys - line
    scale = np.max(excess)
    if scale <= 0:
        logger.debug("No excess intensity in the bump window.")
        return np.array([0.0, bump[1], bump[2]])

    n = xs.size
    weights = 1 - np.cos(np.pi / 2 / (n - 1) * np.arange(n))
    limits = np.array(
        [
            (0.0, 2.0),
            config["ctf"]["bump"]["location_limits"].get(list),
            config["ctf"]["bump"]["width_limits"].get(list),
        ],
        dtype=np.float64,
    )
    start = np.clip([1.0, bump[1], bump[2]], limits[:, 0], limits[:, 1])

    simplex = Simplex(
        CurveResidual(bump_curve, xs, excess / scale, weights=weights),
        start,
        limits=limits,
        tolerance=config["ctf"]["simplex"]["baseline_tolerance"].get(float),
    )
    simplex.run()

    amplitude, location, width = simplex.parameters
    return np.array([amplitude * scale, location, width])


def fit_baseline(profile, params, lores, hires):
    """
    Fit the baseline of `params` to the background anchors of `profile`.

    :param profile: `RadialProfile`.
    :param params: `CTFParameters`.
    :param lores: Low resolution limit in angstrom.
    :param hires: High resolution limit in angstrom.
    :return: (updated `CTFParameters`, residual).  With fewer than two
        anchors the parameters are returned unchanged with residual 0.
    """
    x, y = baseline_anchors(profile, params, lores, hires)
    if x.size < 2:
        logger.debug(f"{x.size} baseline anchors, baseline left unchanged.")
        return params, 0.0

    baseline = params.baseline
    bump = None
    if baseline.has_bump:
        bump = fit_bump(x, y, baseline.bump)
        if bump is None:
            bump = np.array([0.0, baseline.bump[1], baseline.bump[2]])
        y = y - bump_curve(x, bump)

    fitted, R = baseline.without_bump().fit(
        x, y, tolerance=config["ctf"]["simplex"]["baseline_tolerance"].get(float)
    )
    if bump is not None:
        fitted = fitted.with_bump(bump)

    logger.debug(f"Baseline fitted to {x.size} anchors: {fitted.equation()} (R={R:.5g})")

    return params.replace(baseline=fitted), R
