"""
Refinement of the defocus deviation and astigmatism angle.
"""

import logging
from concurrent import futures
from functools import partial

import numpy as np

from ctffit import config
from ctffit.utils import num_threads_suggestion

logger = logging.getLogger(__name__)


def astigmatism_measure(profile, params, lores, hires):
    """
    Sharpness of the CTF oscillation in an astigmatism corrected profile.

    For every two successive zeroes with their midpoint inside the resolution
    range, the minima `b1`, `b2` of the baseline subtracted profile near each
    zero and its maximum `m` near the midpoint are found.  The measure is
    sum(im * (m - (b1 + b2) / 2)) / sum(im), with `im` the midpoint bin.
    It is largest for the astigmatism that sharpens the rings most.

    :param profile: `RadialProfile` averaged with the astigmatism of `params`.
    :param params: `CTFParameters`.
    :param lores: Low resolution limit in angstrom.
    :param hires: High resolution limit in angstrom.
    :return: The measure, 0 when no pair of zeroes qualifies.
    """
    n = len(profile)
    k = max(2, n // 100)
    ilo = int(profile.real_size / lores + 0.5)
    ihi = min(int(profile.real_size / hires + 0.5), n - 1)
    max_s = config["ctf"]["max_s_factor"].get(float) / profile.pixel_size

    signal = profile.values - params.calc_baseline(profile.frequencies)
    bins = profile.bin(params.zeroes(max_s))

    om = 0.0
    nn = 0
    for ib1, ib2 in zip(bins[:-1], bins[1:]):
        if ib2 + k >= n:
            break
        im = (ib1 + ib2) // 2
        if ilo <= im <= ihi:
            b1 = np.min(signal[max(ib1 - k, 0) : ib1 + k + 1])
            b2 = np.min(signal[max(ib2 - k, 0) : ib2 + k + 1])
            m = np.max(signal[max(im - k, 0) : im + k + 1])
            om += im * (m - (b1 + b2) / 2)
            nn += im

    if nn == 0:
        logger.debug("No pair of zeroes within the resolution range.")
        return 0.0

    return om / nn


def _candidate_measure(averager, params, lores, hires):
    return astigmatism_measure(averager.average(params), params, lores, hires)


def refine_astigmatism(averager, params, lores, hires, n_workers=None):
    """
    Search the defocus deviation and astigmatism angle maximizing `astigmatism_measure`.

    Each iteration evaluates a fan of angles spanning the angular window
    around the best angle, at the deviations one step below, at and above the
    current deviation.  The candidates are scored concurrently by a thread
    pool, each returning its own measure.  When the best candidate moves the
    deviation, the search continues from there; otherwise the angular window
    and the deviation step are halved.  They start from
    `config.ctf.astigmatism.angle_range` and `deviation_step`, and the search
    ends once both fall below `min_angle_step` and `min_deviation_step`,
    after `max_iterations`, or on a relative improvement below `threshold`.

    :param averager: `RadialAverager` of the power spectrum.
    :param params: `CTFParameters` with defocus and baseline.
    :param lores: Low resolution limit in angstrom.
    :param hires: High resolution limit in angstrom.
    :param n_workers: Number of threads, see `num_threads_suggestion`.
    :return: (updated `CTFParameters`, best measure)
    """
    cfg = config["ctf"]["astigmatism"]
    max_iterations = cfg["max_iterations"].get(int)
    n_angles = max(3, cfg["n_angles"].get(int))
    window = cfg["angle_range"].get(float)
    min_angle_step = cfg["min_angle_step"].get(float)
    step = cfg["deviation_step"].get(float)
    min_step = cfg["min_deviation_step"].get(float)
    threshold = cfg["threshold"].get(float)

    max_deviation = params.defocus_average / 2
    best_dev, best_ang = params.defocus_deviation, params.astigmatism_angle
    best = _candidate_measure(averager, params, lores, hires)
    center = best_dev if best_dev > 0 else cfg["initial_deviation"].get(float)

    measure = partial(_candidate_measure, averager, lores=lores, hires=hires)
    n_workers = n_workers or num_threads_suggestion()

    with futures.ThreadPoolExecutor(max_workers=n_workers) as executor:
        for iteration in range(max_iterations):
            devs = np.unique(
                np.clip([center - step, center, center + step], 0, max_deviation)
            )
            angles = best_ang + np.linspace(-window / 2, window / 2, n_angles)
            candidates = [params.astigmatism(d, a) for d in devs for a in angles]

            scores = list(executor.map(measure, candidates))

            i = int(np.argmax(scores))
            improvement = 0.0
            if scores[i] > best:
                improvement = (scores[i] - best) / abs(best) if best != 0 else np.inf
                best = scores[i]
                best_dev = candidates[i].defocus_deviation
                best_ang = candidates[i].astigmatism_angle

            logger.debug(
                f"Astigmatism iteration {iteration}: {best_dev:.1f} A"
                f" @ {np.degrees(best_ang):.2f} deg (measure {best:.6g},"
                f" window {np.degrees(window):.2f} deg, step {step:.1f} A)"
            )

            if improvement > 0 and best_dev != center:
                center = best_dev
            else:
                center = best_dev if best_dev > 0 else center
                window /= 2
                step /= 2

            if 0 < improvement < threshold:
                break
            if window / (n_angles - 1) < min_angle_step and step < min_step:
                break

    params = params.astigmatism(best_dev, best_ang)
    logger.info(
        f"Astigmatism refined: {params.defocus_average:.1f} +- {params.defocus_deviation:.1f} A"
        f" @ {np.degrees(params.astigmatism_angle):.2f} deg (measure {best:.6g})"
    )

    return params, best
