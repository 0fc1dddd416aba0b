import logging
import os
import tempfile
from unittest import TestCase

import mrcfile
import numpy as np
import pytest

from ctffit.exceptions import WrongInput
from ctffit.image import PowerSpectrum, estimate_power_spectrum, load_mrc
from ctffit.image.power_spectrum import micrograph_to_tiles
from ctffit.utils import randn

logger = logging.getLogger(__name__)


class PowerSpectrumTestCase(TestCase):
    def setUp(self):
        self.data = np.arange(48.0).reshape(6, 8)
        self.spectrum = PowerSpectrum(self.data, pixel_size=1.5)

    def testGeometry(self):
        self.assertEqual(self.spectrum.ndim, 2)
        self.assertEqual(self.spectrum.size, (8, 6))
        self.assertEqual(self.spectrum.size_x, 8)
        self.assertEqual(self.spectrum.size_y, 6)
        self.assertEqual(self.spectrum.size_z, 1)
        self.assertEqual(self.spectrum.origin, (4.0, 3.0))
        self.assertEqual(self.spectrum.real_size, 12.0)
        self.assertEqual(self.spectrum[3, 4], self.data[3, 4])

    def test3D(self):
        spectrum = PowerSpectrum(np.ones((4, 6, 8)))
        self.assertEqual(spectrum.size, (8, 6, 4))
        self.assertEqual(spectrum.size_z, 4)
        self.assertEqual(spectrum.origin, (4.0, 3.0, 2.0))

    def testReadOnly(self):
        view = self.spectrum.asnumpy()
        with pytest.raises(ValueError):
            view[0, 0] = 1
        # The spectrum holds its own copy of the data
        self.data[0, 0] = -1
        self.assertEqual(self.spectrum[0, 0], 0)

    def testCopy(self):
        copy = self.spectrum.copy()
        self.assertIsNot(copy, self.spectrum)
        np.testing.assert_array_equal(copy.asnumpy(), self.spectrum.asnumpy())
        self.assertEqual(copy.pixel_size, self.spectrum.pixel_size)

    def testInvalidPixelSize(self):
        self.assertEqual(PowerSpectrum(self.data, pixel_size=0).pixel_size, 1.0)
        self.assertEqual(PowerSpectrum(self.data, pixel_size=None).pixel_size, 1.0)

    def testInvalid(self):
        with pytest.raises(WrongInput):
            PowerSpectrum(None)
        with pytest.raises(WrongInput):
            PowerSpectrum(np.empty((0, 4)))
        with pytest.raises(WrongInput):
            PowerSpectrum(np.ones(8))
        with pytest.raises(WrongInput):
            PowerSpectrum(np.ones((4, 4), dtype=np.complex64))
        with pytest.raises(WrongInput):
            PowerSpectrum(np.ones((4, 4)), origin=(2, 2, 2))

    def testSaveLoad(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "spectrum.mrc")
            self.spectrum.save(path)

            loaded = PowerSpectrum.load(path)
            self.assertAlmostEqual(loaded.pixel_size, 1.5)
            np.testing.assert_allclose(loaded.asnumpy(), self.data)

            data, pixel_size = load_mrc(path)
            self.assertEqual(data.shape, (6, 8))

            # Explicit pixel sizes take precedence over the header
            self.assertEqual(PowerSpectrum.load(path, pixel_size=3.0).pixel_size, 3.0)

    def testLoadMissingSampling(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "bare.mrc")
            with mrcfile.new(path) as mrc:
                mrc.set_data(np.ones((8, 8), dtype=np.float32))
            self.assertEqual(PowerSpectrum.load(path).pixel_size, 1.0)

    def testLoadMissingFile(self):
        with pytest.raises(WrongInput):
            PowerSpectrum.load("/nonexistent/spectrum.mrc")


class EstimatePowerSpectrumTestCase(TestCase):
    def setUp(self):
        self.micrograph = randn((256, 192), seed=0)

    def testTiles(self):
        tiles = micrograph_to_tiles(self.micrograph, 64)
        # Half overlapping tiles, 7 along y and 5 along x
        self.assertEqual(tiles.shape, (35, 64, 64))
        np.testing.assert_array_equal(tiles[1], self.micrograph[:64, 32:96])

    def testEstimate(self):
        spectrum = estimate_power_spectrum(
            self.micrograph, tile_size=64, pixel_size=1.77, num_tapers=2
        )
        self.assertEqual(spectrum.size, (64, 64))
        self.assertEqual(spectrum.pixel_size, 1.77)
        self.assertEqual(spectrum.origin, (32.0, 32.0))
        self.assertTrue(np.all(spectrum.asnumpy() >= 0))
        # White noise of unit variance has a flat unit spectrum away from the origin
        self.assertAlmostEqual(np.median(spectrum.asnumpy()), 1.0, delta=0.2)

    def testInvalid(self):
        with pytest.raises(WrongInput):
            estimate_power_spectrum(self.micrograph, tile_size=63)
        with pytest.raises(WrongInput):
            estimate_power_spectrum(self.micrograph, tile_size=512)
        with pytest.raises(WrongInput):
            estimate_power_spectrum(np.empty((0, 0)))
