"""
Envelope curve families modulating the CTF oscillation, and their fits.
"""

import logging

import numpy as np

from ctffit import config
from ctffit.ctf.curve_model import CurveModel
from ctffit.exceptions import UnknownModel

logger = logging.getLogger(__name__)


class Envelope(CurveModel):
    """
    Amplitude decay of the CTF oscillation in a power spectrum.

    Envelopes are fitted on the residual relative to the samples,
    so all samples must be positive.
    """

    relative = True


class SingleGaussianEnvelope(Envelope):
    """
    b exp(c s^2)
    """

    name = "single_gaussian"
    default_coefficients = (1.0, -10.0)
    amplitude_indices = (0,)
    limits = ((0.0, 10.0), (-1e3, 0.0))

    @staticmethod
    def curve(s, c):
        return c[0] * np.exp(c[1] * s * s)

    def equation(self):
        c = self.coefficients
        return f"{c[0]:.6g}*exp({c[1]:.6g}*s^2)"


class ConstantSingleGaussianEnvelope(Envelope):
    """
    a + b exp(c s^2)
    """

    name = "constant_single_gaussian"
    default_coefficients = (0.0, 1.0, -10.0)
    amplitude_indices = (0, 1)
    limits = ((0.0, 1.0), (0.0, 10.0), (-1e3, 0.0))

    @staticmethod
    def curve(s, c):
        return c[0] + c[1] * np.exp(c[2] * s * s)

    def equation(self):
        c = self.coefficients
        return f"{c[0]:.6g} + {c[1]:.6g}*exp({c[2]:.6g}*s^2)"


class DoubleGaussianEnvelope(Envelope):
    """
    b exp(c s^2) + d exp(f s^2)
    """

    name = "double_gaussian"
    default_coefficients = (1.0, -10.0, 0.0, -100.0)
    amplitude_indices = (0, 2)
    limits = ((0.0, 10.0), (-1e3, 0.0), (0.0, 10.0), (-1e4, 0.0))

    @staticmethod
    def curve(s, c):
        s2 = s * s
        return c[0] * np.exp(c[1] * s2) + c[2] * np.exp(c[3] * s2)

    def equation(self):
        c = self.coefficients
        return f"{c[0]:.6g}*exp({c[1]:.6g}*s^2) + {c[2]:.6g}*exp({c[3]:.6g}*s^2)"


class ConstantDoubleGaussianEnvelope(Envelope):
    """
    a + b exp(c s^2) + d exp(f s^2)
    """

    name = "constant_double_gaussian"
    default_coefficients = (0.0, 1.0, -10.0, 0.0, -100.0)
    amplitude_indices = (0, 1, 3)
    limits = ((0.0, 1.0), (0.0, 10.0), (-1e3, 0.0), (0.0, 10.0), (-1e4, 0.0))

    @staticmethod
    def curve(s, c):
        s2 = s * s
        return c[0] + c[1] * np.exp(c[2] * s2) + c[3] * np.exp(c[4] * s2)

    def equation(self):
        c = self.coefficients
        return (
            f"{c[0]:.6g} + {c[1]:.6g}*exp({c[2]:.6g}*s^2)"
            f" + {c[3]:.6g}*exp({c[4]:.6g}*s^2)"
        )


ENVELOPES = {
    cls.name: cls
    for cls in (
        SingleGaussianEnvelope,
        ConstantSingleGaussianEnvelope,
        DoubleGaussianEnvelope,
        ConstantDoubleGaussianEnvelope,
    )
}
ENVELOPE_NAMES = list(ENVELOPES)


def envelope_by_name(name, coefficients=None):
    """
    Instantiate an envelope family by name.

    :param name: One of "single_gaussian", "constant_single_gaussian",
        "double_gaussian", "constant_double_gaussian".
    :param coefficients: Optional coefficients, the family defaults otherwise.
    :return: `Envelope` instance.
    """
    try:
        cls = ENVELOPES[name.lower()]
    except KeyError:
        raise UnknownModel(
            f"Unknown envelope {name}, expected one of {sorted(ENVELOPES)}."
        )
    return cls(coefficients)


def envelope_samples(profile, params, lores, hires, min_zeroes=5):
    """
    Sample the oscillation amplitude between successive CTF zeroes.

    For each pair of zeroes with its midpoint inside the resolution range the
    sample is the maximum of the baseline subtracted profile between the two
    zeroes, placed at the midpoint.  Non-positive samples are dropped.

    :param profile: `RadialProfile`.
    :param params: `CTFParameters` providing zeroes and baseline.
    :param lores: Low resolution limit in angstrom.
    :param hires: High resolution limit in angstrom.
    :param min_zeroes: Fewer zeroes than this give no samples.
    :return: (spatial frequencies, amplitudes).
    """
    n = len(profile)
    max_s = (n - 1) / profile.real_size
    zeroes = params.zeroes(max_s)
    if zeroes.size < min_zeroes:
        logger.debug(f"Only {zeroes.size} zeroes, no envelope samples.")
        return np.empty(0), np.empty(0)

    signal = profile.values - params.calc_baseline(profile.frequencies)

    xs, ys = [], []
    for (z0, z1), (j0, j1) in zip(
        zip(zeroes[:-1], zeroes[1:]), zip(profile.bin(zeroes[:-1]), profile.bin(zeroes[1:]))
    ):
        mid = (z0 + z1) / 2
        if mid < 1 / lores or mid > 1 / hires:
            continue
        j1 = min(j1, n - 1)
        if j1 <= j0:
            continue
        peak = np.max(signal[j0 : j1 + 1])
        if peak > 0:
            xs.append(mid)
            ys.append(peak)

    return np.array(xs), np.array(ys)


def fit_envelope(profile, params, lores, hires):
    """
    Fit the envelope of `params` to the oscillation amplitudes of `profile`.

    :param profile: `RadialProfile`.
    :param params: `CTFParameters`.
    :param lores: Low resolution limit in angstrom.
    :param hires: High resolution limit in angstrom.
    :return: (updated `CTFParameters`, residual).  Without enough samples the
        parameters are returned unchanged with residual 0.
    """
    x, y = envelope_samples(profile, params, lores, hires)
    if x.size < 2:
        logger.debug(f"{x.size} envelope samples, envelope left unchanged.")
        return params, 0.0

    fitted, R = params.envelope.fit(
        x, y, tolerance=config["ctf"]["simplex"]["envelope_tolerance"].get(float)
    )

    logger.debug(f"Envelope fitted to {x.size} samples: {fitted.equation()} (R={R:.5g})")

    return params.replace(envelope=fitted), R
