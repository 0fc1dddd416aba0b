import logging

from ctffit import config

logger = logging.getLogger(__name__)


def fft_object(which):
    if which == "scipy":
        from .scipy_fft import ScipyFFT as FFTClass
    elif which == "numpy":
        from .numpy_fft import NumpyFFT as FFTClass
    else:
        raise RuntimeError(f"Invalid selection for fft class: {which}")
    return FFTClass()


fft = fft_object(config["common"]["fft"].as_str())
