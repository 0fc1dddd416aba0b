"""
Smoothing of one dimensional profiles.
"""

import logging

import numpy as np
from scipy.ndimage import uniform_filter1d
from scipy.signal import savgol_filter

logger = logging.getLogger(__name__)


def _odd_window(window, n):
    window = int(min(window, n))
    if window % 2 == 0:
        window -= 1
    return window


def moving_average(values, window):
    """
    Moving average with a window of `window` samples.

    Edges are handled by repeating the end samples.

    :param values: 1D array.
    :param window: Window length in samples.
    :return: Smoothed array of the same length as `values`.
    """
    values = np.asarray(values, dtype=np.float64)
    window = max(1, min(int(window), values.size))
    return uniform_filter1d(values, size=window, mode="nearest")


def moving_polynomial(values, window, order=2):
    """
    Local polynomial trend, each sample being the value at its own position
    of a polynomial of `order` fitted over a window of `window` samples.

    :param values: 1D array.
    :param window: Window length in samples, made odd and clipped to the data length.
    :param order: Polynomial order.
    :return: Trend array of the same length as `values`.
    """
    values = np.asarray(values, dtype=np.float64)
    window = _odd_window(window, values.size)
    if window <= order:
        logger.debug(
            f"Window of {window} samples too short for order {order}, no smoothing applied."
        )
        return values.copy()

    return savgol_filter(values, window, order, mode="interp")
