"""
Water ring diagnostics of power spectra.

Amorphous ice scatters into a ring near 3.7-3.9 angstrom (s ~ 0.26 1/A),
its strength relative to the background indicates the ice quality.
"""

import logging

import numpy as np

from ctffit import config
from ctffit.exceptions import WrongInput
from ctffit.optimization import Objective, Simplex

logger = logging.getLogger(__name__)


def water_ring_index(profile, bands=None):
    """
    Water ring index of a radial profile, wri = wp / b - 1.

    `wp` is the mean intensity of the band covering the water ring and `b`
    the mean over the two flanking bands.  With the default bands
    (0.1, 0.2, 0.3, 0.4) 1/A: background 0.1-0.2 and 0.3-0.4, ring 0.2-0.3.

    :param profile: `RadialProfile`.
    :param bands: Four increasing band edges in 1/angstrom,
        `config.ctf.water_ring.bands` by default.
    :return: The index, 0 when the ring band or the background is empty.
    """
    if bands is None:
        bands = config["ctf"]["water_ring"]["bands"].get(list)
    s1, s2, s3, s4 = bands

    s = profile.frequencies
    values = profile.values
    background = values[((s > s1) & (s < s2)) | ((s > s3) & (s < s4))]
    ring = values[(s >= s2) & (s <= s3)]

    if ring.size == 0 or background.size == 0:
        logger.debug(
            f"Water ring bands {bands} not covered by the profile"
            f" ({ring.size} ring and {background.size} background bins)."
        )
        return 0.0

    b = np.mean(background)
    if b == 0:
        return 0.0

    return float(np.mean(ring) / b - 1)


class WaterRingObjective(Objective):
    """
    Residual of a water ring model over power spectrum pixels.

    The ring radius varies with the polar angle as s0 + ds cos(2 theta) and the
    radial profile is a Gaussian of width sigma on a constant background.
    Background and ring amplitude are solved by linear least squares for each
    (s0, ds, sigma), the objective is the RMS residual relative to the mean.
    """

    def __init__(self, s, theta, values):
        self.s = s
        self.cos2 = np.cos(2 * theta)
        self.values = values
        self.scale = np.mean(np.abs(values))

    def shape(self, parameters):
        s0, ds, sigma = parameters
        d = (self.s - s0 - ds * self.cos2) / sigma
        return np.exp(-0.5 * d * d)

    def linear_terms(self, parameters):
        g = self.shape(parameters)
        design = np.stack([np.ones_like(g), g], axis=1)
        (background, amplitude), *_ = np.linalg.lstsq(design, self.values, rcond=None)
        return background, amplitude, design @ np.array([background, amplitude])

    def evaluate(self, parameters):
        *_, model = self.linear_terms(parameters)
        d = model - self.values
        return float(np.sqrt(np.mean(d * d)) / self.scale)


def fit_water_ring(spectrum, band=(0.2, 0.35)):
    """
    Fit an elliptical Gaussian ring to the water ring of a 2D power spectrum.

    :param spectrum: 2D `PowerSpectrum`.
    :param band: Spatial frequency band of the pixels fitted, in 1/angstrom.
    :return: Dictionary of location, ellipticity, width (1/A),
        background, amplitude and residual R; None if the band is not sampled.
    """
    if spectrum.ndim != 2:
        raise WrongInput("The water ring is fitted on 2D power spectra.")

    ox, oy = spectrum.origin
    y, x = np.meshgrid(
        (np.arange(spectrum.size_y) - oy) * spectrum.size_x / spectrum.size_y,
        np.arange(spectrum.size_x) - ox,
        indexing="ij",
    )
    s = np.hypot(x, y) / spectrum.real_size
    sel = (s >= band[0]) & (s <= band[1])
    if np.count_nonzero(sel) < 10 or s.max() < 0.29:
        logger.warning(
            f"Power spectrum sampled to {s.max():.3f} 1/A does not cover the water ring."
        )
        return None

    objective = WaterRingObjective(
        s[sel], np.arctan2(y[sel], x[sel]), spectrum.asnumpy()[sel]
    )
    simplex = Simplex(
        objective,
        [0.27, 0.01, 0.03],
        limits=[(0.25, 0.29), (-0.1, 0.1), (0.01, 0.05)],
        tolerance=1e-4,
    )
    R = simplex.run()
    location, ellipticity, width = simplex.parameters
    background, amplitude, _ = objective.linear_terms(simplex.parameters)

    logger.info(
        f"Water ring at {location:.4f} 1/A ({1 / location:.3f} A),"
        f" ellipticity {ellipticity:.4f}, width {width:.4f}, R={R:.5g}"
    )

    return {
        "location": float(location),
        "ellipticity": float(ellipticity),
        "width": float(width),
        "background": float(background),
        "amplitude": float(amplitude),
        "R": R,
    }
