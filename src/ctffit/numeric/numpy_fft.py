import numpy as np


class NumpyFFT:
    """
    Define a unified wrapper class for NumPy FFT functions

    `workers` is accepted for interface compatibility with `ScipyFFT`
    and ignored.
    """

    @staticmethod
    def fft2(x, axes=(-2, -1), workers=-1):
        return np.fft.fft2(x, axes=axes)

    @staticmethod
    def fftn(x, axes=None, workers=-1):
        return np.fft.fftn(x, axes=axes)

    @staticmethod
    def fftshift(x, axes=None):
        return np.fft.fftshift(x, axes=axes)

    @staticmethod
    def ifftshift(x, axes=None):
        return np.fft.ifftshift(x, axes=axes)
