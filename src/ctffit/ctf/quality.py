"""
Goodness of fit measures of CTF parameters against a power spectrum.
"""

import logging

import numpy as np
from scipy.ndimage import map_coordinates

from ctffit.exceptions import WrongInput

logger = logging.getLogger(__name__)


def fit_residual(profile, params, lores, hires):
    """
    Residual of the modelled against the measured radial profile,

        R = sqrt(sum((b + e c^2 - p)^2) / sum((b + e)^2))

    over the bins of the resolution range, with `b` baseline, `e` envelope
    and `c` CTF.

    :param profile: Astigmatism corrected `RadialProfile`.
    :param params: `CTFParameters`.
    :param lores: Low resolution limit in angstrom.
    :param hires: High resolution limit in angstrom.
    :return: R, 0 if the model vanishes over the range.
    """
    n = len(profile)
    rmin = min(int(profile.real_size / lores), n - 1)
    rmax = min(int(profile.real_size / hires + 0.5), n - 1)

    s = profile.frequencies[rmin : rmax + 1]
    p = profile.values[rmin : rmax + 1]
    b = params.calc_baseline(s)
    e = params.calc_envelope(s)
    c = params.calculate(s * s)

    d = b + e * c * c - p
    den = np.sum((b + e) ** 2)
    if den == 0:
        logger.debug("Baseline and envelope vanish, residual set to 0.")
        return 0.0

    return float(np.sqrt(np.sum(d * d) / den))


def isotropy(spectrum, params, hires, sectors=18):
    """
    Anisotropy of the Thon rings left after astigmatism correction.

    The spectrum is sampled (bilinear interpolation) at 1 degree steps over
    180 degrees along each CTF maximum, following the ellipse of the fitted
    astigmatism.  The samples are averaged within `sectors` sectors and the
    ratio of the standard deviation to the mean of the sector averages is
    computed per ring.

    :param spectrum: 2D `PowerSpectrum`.
    :param params: Fitted `CTFParameters`.
    :param hires: High resolution limit in angstrom.
    :param sectors: Number of angular sectors.
    :return: Mean std/mean ratio over the rings, 0 for a perfectly isotropic
        spectrum and 0 when there are no maxima.
    """
    if spectrum.ndim != 2:
        raise WrongInput("Isotropy is measured on 2D power spectra.")
    if 180 % sectors != 0:
        raise WrongInput(f"{sectors} sectors do not divide 180 degrees.")

    hires = max(hires, 2 * spectrum.pixel_size)
    maxima = params.maxima(1 / hires)
    if maxima.size == 0:
        return 0.0

    ox, oy = spectrum.origin
    smin = 1 - params.defocus_deviation / params.defocus_average
    smax = 1 + params.defocus_deviation / params.defocus_average

    a = np.radians(np.arange(180))
    c2 = np.cos(a - params.astigmatism_angle) ** 2
    stretch = 1 / np.sqrt(smax * c2 + smin * (1 - c2))

    data = spectrum.asnumpy()
    ratios = []
    for s in maxima:
        r = spectrum.real_size * s * stretch
        coords = [
            r * np.sin(a) * spectrum.size_y / spectrum.size_x + oy,
            r * np.cos(a) + ox,
        ]
        samples = map_coordinates(data, coords, order=1, mode="nearest")
        avg = samples.reshape(sectors, -1).mean(axis=1)
        mean = np.mean(avg)
        ratios.append(np.std(avg) / mean if mean > 0 else 0.0)
        logger.debug(f"Isotropy at {s:.4f} 1/A: mean {mean:.5g}, ratio {ratios[-1]:.5g}")

    return float(np.mean(ratios))
