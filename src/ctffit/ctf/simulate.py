"""
Synthetic power spectra of known CTF parameters.
"""

import logging

import numpy as np

from ctffit.ctf.radial import RadialProfile
from ctffit.exceptions import WrongInput
from ctffit.image import PowerSpectrum
from ctffit.utils import randn

logger = logging.getLogger(__name__)


def simulate_power_spectrum(params, size=256, pixel_size=1.0, noise_level=0.0, seed=None):
    """
    Power spectrum baseline(s) + envelope(s) * sin^2(chi(s, theta)).

    :param params: `CTFParameters` to simulate.
    :param size: Edge length of the square spectrum in pixels.
    :param pixel_size: Sampling in angstrom per pixel.
    :param noise_level: Standard deviation of additive Gaussian noise,
        relative to the mean of the noise-free spectrum.
    :param seed: Random seed of the noise.
    :return: Centered `PowerSpectrum` with origin at `size // 2`.
    """
    if size < 4:
        raise WrongInput(f"Spectrum size {size} too small.")

    grid = np.arange(size) - size // 2
    y, x = np.meshgrid(grid, grid, indexing="ij")
    s = np.hypot(x, y) / (size * pixel_size)
    theta = np.arctan2(y, x)

    data = params.power_spectrum(s, theta)
    if noise_level > 0:
        data = data + noise_level * np.mean(data) * randn((size, size), seed=seed)

    logger.debug(f"Simulated {size}x{size} power spectrum of {params!r}")

    return PowerSpectrum(data, pixel_size=pixel_size)


def simulate_radial_profile(params, n=128, real_size=256.0, pixel_size=None):
    """
    Radial profile baseline(s) + envelope(s) * sin^2(chi(s)) for the average defocus.

    :param params: `CTFParameters` to simulate.
    :param n: Number of bins.
    :param real_size: Field of view in angstrom, bin `i` is at `i / real_size`.
    :param pixel_size: Sampling, `real_size / (2 n)` by default.
    :return: `RadialProfile`.
    """
    if pixel_size is None:
        pixel_size = real_size / (2 * n)
    s = np.arange(n) / real_size
    return RadialProfile(params.power_spectrum(s), real_size, pixel_size=pixel_size)
