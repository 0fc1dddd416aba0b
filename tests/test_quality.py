import logging
from unittest import TestCase

import numpy as np
import pytest

from ctffit.ctf import (
    CTFParameters,
    SingleGaussianEnvelope,
    fit_residual,
    isotropy,
    simulate_power_spectrum,
    simulate_radial_profile,
)
from ctffit.exceptions import WrongInput
from ctffit.image import PowerSpectrum

logger = logging.getLogger(__name__)


class FitResidualTestCase(TestCase):
    def setUp(self):
        self.params = CTFParameters(
            voltage=300,
            cs=2.0,
            defocus_average=15000,
            envelope=SingleGaussianEnvelope((1, -10)),
        )
        self.profile = simulate_radial_profile(self.params, n=256, real_size=512.0)

    def testExact(self):
        R = fit_residual(self.profile, self.params, 50.0, 5.0)
        self.assertAlmostEqual(R, 0)

    def testWrongDefocus(self):
        R = fit_residual(
            self.profile, self.params.replace(defocus_average=16000), 50.0, 5.0
        )
        self.assertTrue(R > 0.05)


class IsotropyTestCase(TestCase):
    def setUp(self):
        self.params = CTFParameters(
            voltage=300,
            cs=2.7,
            defocus_average=20000,
            defocus_deviation=1000,
            astigmatism_angle=np.radians(30),
            envelope=SingleGaussianEnvelope((1, -20)),
        )
        self.spectrum = simulate_power_spectrum(self.params, size=256, pixel_size=2.0)

    def testIsotropic(self):
        params = self.params.astigmatism(0, 0)
        spectrum = simulate_power_spectrum(params, size=256, pixel_size=2.0)
        iso = isotropy(spectrum, params, 8.0)
        logger.debug(f"Isotropy of a round spectrum: {iso}")
        self.assertTrue(0 <= iso < 0.05)

    def testAstigmatic(self):
        fitted = isotropy(self.spectrum, self.params, 8.0)
        unfitted = isotropy(self.spectrum, self.params.astigmatism(0, 0), 8.0)
        logger.debug(f"Isotropy fitted {fitted}, without astigmatism {unfitted}")
        self.assertTrue(fitted < unfitted)

    def testInvalid(self):
        with pytest.raises(WrongInput):
            isotropy(self.spectrum, self.params, 8.0, sectors=7)
        with pytest.raises(WrongInput):
            isotropy(PowerSpectrum(np.ones((8, 8, 8))), self.params, 8.0)
