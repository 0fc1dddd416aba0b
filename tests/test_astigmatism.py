import logging
from unittest import TestCase

import numpy as np

from ctffit import config
from ctffit.ctf import (
    CTFParameters,
    RadialAverager,
    RadialProfile,
    SingleGaussianEnvelope,
    astigmatism_measure,
    refine_astigmatism,
    simulate_power_spectrum,
)

logger = logging.getLogger(__name__)


class AstigmatismTestCase(TestCase):
    @classmethod
    def setUpClass(cls):
        cls.truth = CTFParameters(
            voltage=300,
            cs=2.7,
            defocus_average=20000,
            defocus_deviation=800,
            astigmatism_angle=np.radians(30),
            envelope=SingleGaussianEnvelope((1, -20)),
        )
        cls.averager = RadialAverager(
            simulate_power_spectrum(cls.truth, size=256, pixel_size=2.0)
        )
        cls.lores, cls.hires = 50.0, 6.0

    def testMeasureWithoutZeroes(self):
        profile = RadialProfile(np.ones(128), real_size=512.0, pixel_size=2.0)
        params = self.truth.replace(defocus_average=10)
        self.assertEqual(astigmatism_measure(profile, params, self.lores, self.hires), 0)

    def testRefine(self):
        start = self.truth.astigmatism(0, 0)
        initial = astigmatism_measure(
            self.averager.average(start), start, self.lores, self.hires
        )

        params, best = refine_astigmatism(
            self.averager, start, self.lores, self.hires, n_workers=2
        )
        logger.debug(f"Refined astigmatism {params!r}, measure {best}")

        self.assertTrue(best > initial)
        self.assertTrue(600 <= params.defocus_deviation <= 1000)
        self.assertTrue(abs(np.degrees(params.astigmatism_angle) - 30) < 8)
        # Defocus and curves are kept
        self.assertEqual(params.defocus_average, start.defocus_average)
        self.assertEqual(params.envelope, start.envelope)
        # The input snapshot is untouched
        self.assertEqual(start.defocus_deviation, 0)

    def testConfiguredStep(self):
        # One iteration only reaches one configured step around the initial deviation
        config.set(
            {
                "ctf": {
                    "astigmatism": {
                        "max_iterations": 1,
                        "initial_deviation": 100.0,
                        "deviation_step": 50.0,
                    }
                }
            }
        )
        try:
            params, best = refine_astigmatism(
                self.averager,
                self.truth.astigmatism(0, 0),
                self.lores,
                self.hires,
                n_workers=2,
            )
        finally:
            config.sources.pop(0)

        self.assertIn(params.defocus_deviation, (0.0, 50.0, 100.0, 150.0))
