"""
Coarse to fine defocus search on radial power spectrum profiles.
"""

import logging

import numpy as np

from ctffit import config
from ctffit.ctf.radial import RadialAverager
from ctffit.utils import moving_polynomial

logger = logging.getLogger(__name__)


def flatten_profile(profile, rmin):
    """
    Remove the baseline dependence of a radial profile.

    Bins below `rmin` take the value at `rmin`; the profile is then divided by
    its local quadratic trend (over a fifth of its length) and one subtracted.
    Bins with a vanishing trend are set to 0.

    :param profile: `RadialProfile`.
    :param rmin: Lowest bin used.
    :return: 1D array of relative deviations from the trend.
    """
    values = np.array(profile.values)
    values[:rmin] = values[rmin]
    trend = moving_polynomial(values, len(values) // 5, order=2)

    flattened = np.zeros_like(values)
    np.divide(values, trend, out=flattened, where=trend != 0)
    flattened[trend != 0] -= 1
    if np.any(trend == 0):
        logger.debug(f"{np.count_nonzero(trend == 0)} bins with a zero trend set to 0.")
    return flattened


def defocus_scores(params, defoci, s2, flattened):
    """
    Normalized correlation of CTF^2 - 1/2 with a flattened profile for each defocus.

    :param params: `CTFParameters` providing the microscope constants.
    :param defoci: 1D array of candidate average defoci in angstrom.
    :param s2: Squared spatial frequencies of the profile samples.
    :param flattened: Flattened profile samples, see `flatten_profile`.
    :return: 1D array of scores in [-1, 1], 0 where undefined.
    """
    defoci = np.asarray(defoci, dtype=np.float64)
    shift = np.pi * params.wavelength * (defoci - params.defocus_average)
    phase = params.phase(s2)[np.newaxis, :] - shift[:, np.newaxis] * s2[np.newaxis, :]
    c2 = np.sin(phase) ** 2 - 0.5

    num = c2 @ flattened
    den = np.sqrt(np.sum(c2 * c2, axis=1) * np.sum(flattened * flattened))
    scores = np.zeros_like(num)
    np.divide(num, den, out=scores, where=den > 0)
    return scores


def search_defocus(
    profile, params, lores, hires, def_start=None, def_end=None, def_inc=None
):
    """
    Find the average defocus best matching the oscillation of a radial profile.

    A grid of defoci from `def_start` to `def_end` spaced by `def_inc` is scored
    with `defocus_scores`; the grid is then narrowed to twice the increment
    around the best defocus, never leaving [`def_start`, `def_end`], and the
    increment divided by the shrink factor until it falls below the
    configured minimum.

    :param profile: Astigmatism corrected `RadialProfile`.
    :param params: `CTFParameters` seed.
    :param lores: Low resolution limit in angstrom.
    :param hires: High resolution limit in angstrom.
    :param def_start: Lowest defocus in angstrom, `config.ctf.defocus.min` by default.
    :param def_end: Highest defocus in angstrom, `config.ctf.defocus.max` by default.
    :param def_inc: Initial increment in angstrom, `config.ctf.defocus.increment` by default.
    :return: (updated `CTFParameters`, figure of merit)
    """
    cfg = config["ctf"]["defocus"]
    low = cfg["min"].get(float)
    high = cfg["max"].get(float)
    min_inc = cfg["min_increment"].get(float)
    shrink = cfg["shrink"].get(float)

    def_start = low if def_start is None else max(def_start, low)
    def_end = high if def_end is None else min(def_end, high)
    if def_end < def_start:
        def_start, def_end = def_end, def_start
    def_inc = cfg["increment"].get(float) if def_inc is None else def_inc
    def_inc = max(def_inc, min_inc)

    if not def_start <= params.defocus_average <= def_end:
        params = params.replace(defocus_average=(def_start + def_end) / 2)

    lores = min(lores, 100.0)
    n = len(profile)
    rmin = min(int(profile.real_size / lores), n - 1)
    rmax = min(int(profile.real_size / hires + 0.5), n - 1)
    if rmax - rmin < 3:
        logger.warning(
            f"Resolution range {lores}-{hires} A covers {rmax - rmin + 1} bins,"
            " defocus left unchanged."
        )
        return params, params.fom

    flattened = flatten_profile(profile, rmin)[rmin : rmax + 1]
    s2 = profile.frequencies[rmin : rmax + 1] ** 2

    best_defocus, best_fom = params.defocus_average, -1.0
    inc = def_inc
    start, end = def_start, def_end
    while inc >= min_inc:
        defoci = np.minimum(np.arange(start, end + inc / 2, inc), end)
        scores = defocus_scores(params, defoci, s2, flattened)
        i = int(np.argmax(scores))
        if scores[i] > best_fom:
            best_defocus, best_fom = float(defoci[i]), float(scores[i])
        logger.debug(
            f"Defocus grid {start:.1f}-{end:.1f} A by {inc:.1f} A:"
            f" best {best_defocus:.1f} A ({best_fom:.5g})"
        )
        start = max(best_defocus - 2 * inc, def_start)
        end = min(best_defocus + 2 * inc, def_end)
        inc /= shrink

    if best_fom > -1:
        params = params.replace(defocus_average=best_defocus, fom=best_fom)

    return params, best_fom


def find_defocus(spectrum, params, lores, hires, **kwargs):
    """
    Radially average `spectrum` for the astigmatism of `params` and search the defocus.

    :param spectrum: `PowerSpectrum` or `RadialAverager`.
    :return: (updated `CTFParameters`, figure of merit)
    """
    averager = spectrum
    if not isinstance(averager, RadialAverager):
        averager = RadialAverager(spectrum)
    return search_defocus(averager.average(params), params, lores, hires, **kwargs)
