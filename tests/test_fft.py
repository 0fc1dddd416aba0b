from unittest import TestCase

import numpy as np
import pytest

from ctffit.numeric import fft, fft_object


class FftTestCase(TestCase):
    def setUp(self):
        self.a = np.random.random((32, 32))

    def testBackendsAgree(self):
        scipy_fft = fft_object("scipy")
        numpy_fft = fft_object("numpy")
        np.testing.assert_allclose(scipy_fft.fft2(self.a), numpy_fft.fft2(self.a))
        np.testing.assert_allclose(
            scipy_fft.fftn(self.a, axes=(0, 1)), numpy_fft.fftn(self.a, axes=(0, 1))
        )

    def testShift(self):
        shifted = fft.fftshift(self.a)
        self.assertEqual(shifted[16, 16], self.a[0, 0])
        np.testing.assert_array_equal(fft.ifftshift(shifted), self.a)

    def testInvalid(self):
        with pytest.raises(RuntimeError):
            fft_object("fftw")
