from .power_spectrum import PowerSpectrum, estimate_power_spectrum, load_mrc
