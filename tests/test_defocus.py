import logging
from unittest import TestCase

import numpy as np

from ctffit.ctf import (
    CTFParameters,
    PolynomialBaseline,
    RadialProfile,
    SingleGaussianEnvelope,
    find_defocus,
    search_defocus,
    simulate_power_spectrum,
    simulate_radial_profile,
)
from ctffit.ctf.defocus import defocus_scores, flatten_profile

logger = logging.getLogger(__name__)


class DefocusSearchTestCase(TestCase):
    def setUp(self):
        self.params = CTFParameters(
            voltage=300,
            cs=2.0,
            defocus_average=15000,
            baseline=PolynomialBaseline((1, -2, 0, 0, 0)),
            envelope=SingleGaussianEnvelope((1, -10)),
        )
        self.profile = simulate_radial_profile(self.params, n=256, real_size=512.0)

    def testFlatten(self):
        flattened = flatten_profile(self.profile, 10)
        self.assertEqual(flattened.shape, (256,))
        self.assertTrue(np.all(np.isfinite(flattened)))
        # The oscillation is centered on the trend
        self.assertTrue(abs(np.mean(flattened[10:103])) < 0.1)

        constant = RadialProfile(np.full(64, 5.0), real_size=128.0)
        np.testing.assert_allclose(flatten_profile(constant, 0), 0, atol=1e-12)

    def testScores(self):
        rmin, rmax = 10, 102
        flattened = flatten_profile(self.profile, rmin)[rmin : rmax + 1]
        s2 = self.profile.frequencies[rmin : rmax + 1] ** 2
        defoci = np.array([5000.0, 15000.0, 25000.0])
        scores = defocus_scores(self.params, defoci, s2, flattened)
        self.assertTrue(np.all(np.abs(scores) <= 1))
        self.assertEqual(int(np.argmax(scores)), 1)

    def testSearch(self):
        seed = self.params.replace(defocus_average=30000)
        params, fom = search_defocus(self.profile, seed, 50.0, 5.0)
        logger.debug(f"Found defocus {params.defocus_average} ({fom})")

        self.assertTrue(abs(params.defocus_average - 15000) < 200)
        self.assertTrue(fom > 0.5)
        self.assertEqual(params.fom, fom)
        # The seed snapshot is not modified
        self.assertEqual(seed.defocus_average, 30000)

    def testSearchRange(self):
        params, fom = search_defocus(
            self.profile,
            self.params,
            50.0,
            5.0,
            def_start=10000,
            def_end=20000,
            def_inc=500,
        )
        self.assertTrue(10000 <= params.defocus_average <= 20000)
        self.assertTrue(abs(params.defocus_average - 15000) < 200)

    def testSearchRangeExcludingTruth(self):
        # The refined grids stay inside the requested range
        params, fom = search_defocus(
            self.profile,
            self.params.replace(defocus_average=12000),
            50.0,
            5.0,
            def_start=10000,
            def_end=14500,
            def_inc=1000,
        )
        logger.debug(f"Found defocus {params.defocus_average} ({fom})")
        self.assertTrue(10000 <= params.defocus_average <= 14500)

    def testNarrowRange(self):
        # Too few bins between the limits leave the parameters unchanged
        params, fom = search_defocus(self.profile, self.params, 10.0, 9.8)
        self.assertIs(params, self.params)
        self.assertEqual(fom, self.params.fom)

    def testFindDefocus(self):
        spectrum = simulate_power_spectrum(self.params, size=256, pixel_size=2.0)
        params, fom = find_defocus(
            spectrum, self.params.replace(defocus_average=20000), 50.0, 6.0
        )
        self.assertTrue(abs(params.defocus_average - 15000) < 300)
