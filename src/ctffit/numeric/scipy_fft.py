import scipy as sp
import scipy.fft  # noqa: F401


class ScipyFFT:
    """
    Define a unified wrapper class for Scipy FFT functions

    Only the transforms used for power spectra are included.
    """

    @staticmethod
    def fft2(x, axes=(-2, -1), workers=-1):
        return sp.fft.fft2(x, axes=axes, workers=workers)

    @staticmethod
    def fftn(x, axes=None, workers=-1):
        return sp.fft.fftn(x, axes=axes, workers=workers)

    @staticmethod
    def fftshift(x, axes=None):
        return sp.fft.fftshift(x, axes=axes)

    @staticmethod
    def ifftshift(x, axes=None):
        return sp.fft.ifftshift(x, axes=axes)
