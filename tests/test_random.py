from unittest import TestCase

import numpy as np

from ctffit.utils import Random, randn, random


class UtilsRandomTestCase(TestCase):
    def testSeeded(self):
        np.testing.assert_array_equal(random(5, seed=3), random(5, seed=3))
        np.testing.assert_array_equal(randn(5, seed=3), randn(5, seed=3))
        self.assertFalse(np.array_equal(random(5, seed=3), random(5, seed=4)))

    def testZeroSeed(self):
        # Seed 0 maps onto the MATLAB default seed
        np.testing.assert_array_equal(random(3, seed=0), random(3, seed=5489))

    def testStateRestored(self):
        np.random.seed(1)
        expected = np.random.random(3)

        np.random.seed(1)
        with Random(42):
            np.random.random(10)
        np.testing.assert_array_equal(np.random.random(3), expected)
