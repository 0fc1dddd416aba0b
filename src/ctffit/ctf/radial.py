"""
Astigmatism corrected radial averaging of power spectra.
"""

import logging

import numpy as np

from ctffit.exceptions import WrongInput
from ctffit.image import PowerSpectrum

logger = logging.getLogger(__name__)


class RadialProfile:
    """
    Radial average of a power spectrum.

    Bin `i` holds the intensity at spatial frequency `i / real_size`.
    """

    def __init__(self, values, real_size, pixel_size=1.0):
        """
        :param values: 1D array of intensities, one per frequency bin.
        :param real_size: Field of view of the originating image in angstrom.
        :param pixel_size: Sampling of the originating image in angstrom per pixel.
        """
        values = np.array(values, dtype=np.float64).ravel()
        if values.size == 0:
            raise WrongInput("RadialProfile requires at least one value.")
        if real_size <= 0:
            raise WrongInput(f"Invalid real space size {real_size}.")

        values.flags.writeable = False
        self.values = values
        self.real_size = float(real_size)
        self.pixel_size = float(pixel_size)

    def __len__(self):
        return self.values.size

    def __getitem__(self, item):
        return self.values[item]

    def __repr__(self):
        return (
            f"RadialProfile of {len(self)} bins,"
            f" {1 / self.real_size:.5g} 1/angstrom per bin."
        )

    @property
    def frequencies(self):
        """
        Spatial frequency of each bin in 1/angstrom.
        """
        return np.arange(len(self)) / self.real_size

    def bin(self, s):
        """
        Nearest bin index of spatial frequency `s`.
        """
        return np.floor(np.asarray(s) * self.real_size + 0.5).astype(np.int64)

    def with_values(self, values):
        """
        Profile with the same sampling and new `values`.
        """
        return RadialProfile(values, self.real_size, self.pixel_size)

    def asnumpy(self):
        return self.values


class RadialAverager:
    """
    Resamples a power spectrum into radial profiles for trial astigmatism models.

    The pixel radii and polar angles about the spectrum origin are computed once;
    each call of `average` deposits every pixel bilinearly into the two bins
    around its astigmatism corrected radius.  The averager only reads the
    spectrum, so concurrent calls are safe.
    """

    def __init__(self, spectrum):
        """
        :param spectrum: `PowerSpectrum` instance.
        """
        if spectrum is None:
            raise WrongInput("No power spectrum given to average.")
        if not isinstance(spectrum, PowerSpectrum):
            spectrum = PowerSpectrum(spectrum)

        self.spectrum = spectrum
        self.n = spectrum.size_x // 2
        if self.n < 2:
            raise WrongInput(f"Power spectrum {spectrum.size} too small to average.")

        data = spectrum.asnumpy()
        ox, oy = spectrum.origin[0], spectrum.origin[1]
        # Rectangular spectra are rescaled to the x sampling.
        scale_y = spectrum.size_x / spectrum.size_y

        if spectrum.ndim == 3:
            oz = spectrum.origin[2]
            scale_z = spectrum.size_x / spectrum.size_z
            z, y, x = np.meshgrid(
                (np.arange(spectrum.size_z) - oz) * scale_z,
                (np.arange(spectrum.size_y) - oy) * scale_y,
                np.arange(spectrum.size_x) - ox,
                indexing="ij",
            )
            self._radius = np.sqrt(x * x + y * y + z * z).ravel()
            self._theta = None
        else:
            y, x = np.meshgrid(
                (np.arange(spectrum.size_y) - oy) * scale_y,
                np.arange(spectrum.size_x) - ox,
                indexing="ij",
            )
            self._radius = np.hypot(x, y).ravel()
            self._theta = np.arctan2(y, x).ravel()

        self._values = data.ravel()

    def corrected_radius(self, params=None):
        """
        Pixel radii scaled onto the average defocus.

        :param params: Object providing `defocus_average`, `defocus_deviation`
            and `astigmatism_angle`, or None for the plain radii.
        :return: 1D array of radii in pixels, one per spectrum pixel.
        """
        if self._theta is None or params is None:
            return self._radius

        avg = params.defocus_average
        dev = params.defocus_deviation
        if abs(avg) <= 1 or dev == 0:
            return self._radius

        smin = 1 - dev / avg
        smax = 1 + dev / avg
        c2 = np.cos(self._theta - params.astigmatism_angle) ** 2
        return self._radius * np.sqrt(np.maximum(smax * c2 + smin * (1 - c2), 0))

    def average(self, params=None):
        """
        Radial profile for the astigmatism described by `params`.

        :param params: `CTFParameters` (or None for a plain radial average).
        :return: `RadialProfile` of `size_x // 2` bins.
        """
        n = self.n
        r = self.corrected_radius(params)

        i = np.floor(r).astype(np.int64)
        sel = i < n - 1
        i = i[sel]
        f = r[sel] - i
        v = self._values[sel]

        weight = np.bincount(i, weights=1 - f, minlength=n)
        weight += np.bincount(i + 1, weights=f, minlength=n)
        total = np.bincount(i, weights=(1 - f) * v, minlength=n)
        total += np.bincount(i + 1, weights=f * v, minlength=n)

        profile = np.zeros(n, dtype=np.float64)
        filled = weight > 0
        profile[filled] = total[filled] / weight[filled]

        # Empty bins repeat the previous bin.
        for j in np.flatnonzero(~filled):
            if j > 0:
                profile[j] = profile[j - 1]

        return RadialProfile(
            profile, self.spectrum.real_size, pixel_size=self.spectrum.pixel_size
        )


def radial_average(spectrum, params=None):
    """
    Astigmatism corrected radial average of `spectrum`.

    :param spectrum: `PowerSpectrum` instance.
    :param params: `CTFParameters`, or None for a plain radial average.
    :return: `RadialProfile`.
    """
    return RadialAverager(spectrum).average(params)
