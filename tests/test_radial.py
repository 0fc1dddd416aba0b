import logging
from unittest import TestCase

import numpy as np
import pytest

from ctffit.ctf import (
    CTFParameters,
    RadialAverager,
    RadialProfile,
    SingleGaussianEnvelope,
    astigmatism_measure,
    radial_average,
    simulate_power_spectrum,
)
from ctffit.exceptions import WrongInput
from ctffit.image import PowerSpectrum

logger = logging.getLogger(__name__)


class RadialProfileTestCase(TestCase):
    def setUp(self):
        self.profile = RadialProfile(np.arange(64.0), real_size=128.0)

    def testSampling(self):
        self.assertEqual(len(self.profile), 64)
        self.assertEqual(self.profile.frequencies[2], 2 / 128)
        self.assertEqual(self.profile.bin(2 / 128), 2)
        np.testing.assert_array_equal(self.profile.bin([0.0, 0.0039, 0.0118]), [0, 0, 2])

    def testImmutable(self):
        with pytest.raises(ValueError):
            self.profile.values[0] = 1
        profile = self.profile.with_values(np.ones(64))
        self.assertEqual(self.profile[0], 0)
        self.assertEqual(profile[0], 1)
        self.assertEqual(profile.real_size, self.profile.real_size)

    def testInvalid(self):
        with pytest.raises(WrongInput):
            RadialProfile([], real_size=128.0)
        with pytest.raises(WrongInput):
            RadialProfile([1.0], real_size=0)


class RadialAverageTestCase(TestCase):
    def setUp(self):
        self.params = CTFParameters(
            voltage=300,
            cs=2.7,
            defocus_average=20000,
            defocus_deviation=1000,
            astigmatism_angle=np.radians(30),
            envelope=SingleGaussianEnvelope((1.0, -20.0)),
        )
        self.spectrum = simulate_power_spectrum(self.params, size=256, pixel_size=2.0)

    def testConstant(self):
        spectrum = PowerSpectrum(np.full((64, 64), 3.0))
        profile = radial_average(spectrum)
        self.assertEqual(len(profile), 32)
        np.testing.assert_allclose(profile.values, 3.0)

        # The astigmatism correction does not change a constant spectrum
        profile = radial_average(spectrum, self.params)
        np.testing.assert_allclose(profile.values, 3.0)

    def testConstant3D(self):
        spectrum = PowerSpectrum(np.full((16, 16, 16), 2.0))
        profile = RadialAverager(spectrum).average(self.params)
        self.assertEqual(len(profile), 8)
        np.testing.assert_allclose(profile.values, 2.0)

    def testNoAstigmatism(self):
        averager = RadialAverager(self.spectrum)
        plain = averager.average()
        # Without deviation the angle is irrelevant
        for angle in (0, 0.4, -1.2):
            profile = averager.average(self.params.astigmatism(0, angle))
            np.testing.assert_array_equal(profile.values, plain.values)

    def testCorrectionSharpensRings(self):
        averager = RadialAverager(self.spectrum)
        lores, hires = 100.0, 8.0
        corrected = astigmatism_measure(
            averager.average(self.params), self.params, lores, hires
        )
        uncorrected_params = self.params.astigmatism(0, 0)
        uncorrected = astigmatism_measure(
            averager.average(uncorrected_params), uncorrected_params, lores, hires
        )
        logger.debug(f"Measure corrected {corrected}, uncorrected {uncorrected}")
        self.assertTrue(corrected > uncorrected)

    def testSampling(self):
        profile = radial_average(self.spectrum)
        self.assertEqual(profile.real_size, 512.0)
        self.assertEqual(profile.pixel_size, 2.0)

    def testInvalid(self):
        with pytest.raises(WrongInput):
            RadialAverager(None)
        with pytest.raises(WrongInput):
            RadialAverager(np.empty((0, 0)))
        with pytest.raises(WrongInput):
            RadialAverager(np.ones((2, 2)))
