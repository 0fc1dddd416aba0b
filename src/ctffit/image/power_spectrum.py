import logging
import os
from warnings import catch_warnings, simplefilter

import mrcfile
import numpy as np
from scipy.signal.windows import dpss

from ctffit.exceptions import WrongInput
from ctffit.numeric import fft
from ctffit.utils import trange

logger = logging.getLogger(__name__)


def load_mrc(filepath):
    """
    Load raw data from `.mrc` into an array.

    :param filepath: File path (string).
    :return: (numpy array of image data, pixel_size)
    """

    # mrcfile tends to yield many warnings about EMPIAR datasets being corrupt
    # These warnings generally seem benign, and the message could be clearer
    # The following code handles the warnings via our logger
    with catch_warnings(record=True) as ws:
        # Cause all warnings to always be triggered in this context
        simplefilter("always")

        with mrcfile.open(filepath, mode="r", permissive=True) as mrc:
            if mrc.data is None:
                raise WrongInput(f"{filepath} contains no data.")
            im = np.array(mrc.data)
            pixel_size = _vx_array_to_size(mrc.voxel_size)

        # Log each mrcfile warning to debug log, noting the associated file
        for w in ws:
            logger.debug(
                "In `load_mrc` mrcfile.open reports corruption for"
                f" {filepath} warning: {w.message}"
            )

        if len(ws) > 0:
            logger.warning(
                f"load_mrc of {filepath} reporting {len(ws)} corruptions."
                " Most likely this is a problem with the header contents."
                " Details written to debug log."
            )

    return im, pixel_size


def _vx_array_to_size(vx):
    """
    Convert from `mrcfile.voxel_size` to a single (float) value or None.
    """
    if isinstance(vx, np.recarray):
        if vx.x != vx.y:
            logger.warning(f"Voxel sizes are not uniform: {vx}")
        vx = vx.x
    vx = float(vx)
    # mrcfile reports 0 when the header carries no sampling
    if vx == 0:
        return None
    return vx


class PowerSpectrum:
    """
    A centered power spectrum of a micrograph tile.

    Data is held as (y, x) for a 2D spectrum or (z, y, x) for a
    rotationally averaged 3D spectrum.  The origin, given as (x, y[, z]),
    is the pixel of zero spatial frequency.
    """

    def __init__(self, data, pixel_size=1.0, origin=None):
        """
        :param data: 2D or 3D array of power spectrum values.
        :param pixel_size: Sampling of the originating image in angstrom per pixel.
        :param origin: Pixel coordinates (x, y[, z]) of the spectrum center,
            defaults to `size // 2` along each axis.
        """
        if data is None:
            raise WrongInput("PowerSpectrum requires a data array, got None.")

        data = np.asarray(data)
        if data.size == 0:
            raise WrongInput(f"PowerSpectrum data is empty, shape {data.shape}.")
        if data.ndim not in (2, 3):
            raise WrongInput(
                f"PowerSpectrum data should be 2D or 3D, got shape {data.shape}."
            )
        if not np.issubdtype(data.dtype, np.number) or np.iscomplexobj(data):
            raise WrongInput(f"PowerSpectrum data must be real, got {data.dtype}.")

        if pixel_size is None or pixel_size <= 0:
            logger.debug(f"Invalid pixel size {pixel_size}, using 1 angstrom.")
            pixel_size = 1.0

        self._data = data.astype(np.float64, copy=True)
        self.pixel_size = float(pixel_size)

        if origin is None:
            origin = tuple(n // 2 for n in self.size)
        origin = tuple(float(o) for o in origin)
        if len(origin) != self.ndim:
            raise WrongInput(
                f"Origin {origin} does not match a {self.ndim}D spectrum."
            )
        self.origin = origin

    @property
    def ndim(self):
        return self._data.ndim

    @property
    def size(self):
        """
        Size as (x, y[, z]).
        """
        return self._data.shape[::-1]

    @property
    def size_x(self):
        return self._data.shape[-1]

    @property
    def size_y(self):
        return self._data.shape[-2]

    @property
    def size_z(self):
        return self._data.shape[0] if self.ndim == 3 else 1

    @property
    def real_size(self):
        """
        Field of view along x in angstrom.
        """
        return self.size_x * self.pixel_size

    def __getitem__(self, item):
        return self._data[item]

    def __repr__(self):
        return (
            f"PowerSpectrum of size {'x'.join(str(n) for n in self.size)}"
            f" with pixel_size={self.pixel_size} angstroms, origin {self.origin}."
        )

    def asnumpy(self):
        """
        Return spectrum data as a read-only array view.

        :return: read-only ndarray view
        """

        view = self._data.view()
        view.flags.writeable = False
        return view

    def copy(self):
        return self.__class__(
            self._data.copy(), pixel_size=self.pixel_size, origin=self.origin
        )

    def save(self, mrc_filepath, overwrite=False):
        """
        Save the spectrum to disk as an mrc file.

        :param mrc_filepath: Filepath where the spectrum will be saved.
        :param overwrite: Overwrite an existing file.
        """
        with mrcfile.new(mrc_filepath, overwrite=overwrite) as mrc:
            mrc.set_data(self._data.astype(np.float32))
            # Note assigning voxel_size must come after `set_data`
            mrc.voxel_size = self.pixel_size

    @staticmethod
    def load(filepath, pixel_size=None):
        """
        Load a power spectrum from an mrc file.

        :param filepath: File path (string).
        :param pixel_size: Overrides the sampling stored in the file header.
        :return: PowerSpectrum instance.
        """
        if not os.path.exists(filepath):
            raise WrongInput(f"Power spectrum file {filepath} does not exist.")

        data, file_pixel_size = load_mrc(filepath)
        if data.ndim == 3 and data.shape[0] == 1:
            data = data[0]

        if pixel_size is None:
            pixel_size = file_pixel_size

        return PowerSpectrum(data, pixel_size=pixel_size)


def micrograph_to_tiles(micrograph, tile_size):
    """
    Partition a micrograph into half-overlapping square tiles.

    :param micrograph: 2D array, or a stack of one 2D array.
    :param tile_size: Even edge length of the tiles.
    :return: Array of tiles, (n_tiles, tile_size, tile_size).
    """
    if tile_size % 2 != 0:
        raise WrongInput(f"Tile size must be even, got {tile_size}.")

    if micrograph.ndim == 3:
        if micrograph.shape[0] != 1:
            raise WrongInput(
                f"micrograph should be 2D or stack of 1 2D image: {micrograph.shape}"
            )
        micrograph = micrograph[0]

    size_y, size_x = micrograph.shape
    step_size = tile_size // 2
    range_y = size_y // step_size - 1
    range_x = size_x // step_size - 1
    if range_x < 1 or range_y < 1:
        raise WrongInput(
            f"Micrograph of shape {micrograph.shape} is smaller than a {tile_size} tile."
        )

    tiles = [
        micrograph[
            j * step_size : (j + 2) * step_size, i * step_size : (i + 2) * step_size
        ]
        for j in range(range_y)
        for i in range(range_x)
    ]
    return np.asarray(tiles, dtype=np.float64)


def estimate_power_spectrum(micrograph, tile_size=512, pixel_size=1.0, num_tapers=2):
    """
    Estimate the power spectrum of a micrograph with the multitaper method.

    Mean-subtracted, half-overlapping tiles are multiplied by products of
    discrete prolate spheroidal sequences; the squared Fourier amplitudes
    are averaged over tapers and tiles and centered.

    :param micrograph: 2D array.
    :param tile_size: Edge length of the tiles, the size of the resulting spectrum.
    :param pixel_size: Sampling of the micrograph in angstrom per pixel.
    :param num_tapers: Number of 1D tapers along each axis.
    :return: PowerSpectrum instance.
    """
    micrograph = np.asarray(micrograph)
    if micrograph.size == 0:
        raise WrongInput("Cannot estimate a power spectrum from an empty micrograph.")

    tiles = micrograph_to_tiles(micrograph, tile_size)
    tiles -= tiles.mean(axis=(-1, -2))[:, np.newaxis, np.newaxis]

    tapers_1d = dpss(M=tile_size, NW=num_tapers / 2, Kmax=num_tapers).T

    spectrum = np.zeros((tile_size, tile_size), dtype=np.float64)
    for ax1 in trange(num_tapers, desc="Multitaper power spectrum"):
        for ax2 in range(num_tapers):
            taper_2d = np.outer(tapers_1d[:, ax1], tapers_1d[:, ax2])
            transformed = fft.fft2(tiles * taper_2d, axes=(-2, -1))
            spectrum += np.sum(np.abs(transformed) ** 2, axis=0)

    spectrum /= tiles.shape[0] * num_tapers**2
    logger.debug(
        f"Power spectrum estimated from {tiles.shape[0]} tiles of {tile_size} pixels."
    )

    return PowerSpectrum(fft.fftshift(spectrum), pixel_size=pixel_size)
