import logging
from unittest import TestCase, mock

import numpy as np
import pytest

from ctffit import __version__, config
from ctffit.utils import (
    LogFilterByCount,
    get_full_version,
    getConsoleLoggingLevel,
    mm_to_angstrom,
    moving_average,
    moving_polynomial,
    num_threads_suggestion,
    physical_core_cpu_suggestion,
    setConsoleLoggingLevel,
    tqdm,
    trange,
    virtual_core_cpu_suggestion,
    voltage_to_wavelength,
)

logger = logging.getLogger(__name__)


def test_log_filter_by_count(caplog):
    msg = "A is for Angstrom"

    # Should log.
    logger.info(msg)
    assert msg in caplog.text
    caplog.clear()

    with LogFilterByCount(logger, 1):
        # Should log.
        logger.info(msg)
        assert msg in caplog.text
        caplog.clear()

        # Should not log.
        logger.info(msg)
        assert msg not in caplog.text
        caplog.clear()

    # Should log.
    logger.info(msg)
    assert msg in caplog.text


def test_console_logging_level():
    level = getConsoleLoggingLevel()
    try:
        setConsoleLoggingLevel("warning")
        assert getConsoleLoggingLevel() == "WARNING"
        with pytest.raises(ValueError):
            setConsoleLoggingLevel("LOUD")
    finally:
        setConsoleLoggingLevel(level)


# Tabulated relativistic electron wavelengths
@pytest.mark.parametrize(
    "voltage, wavelength", [(100, 0.037014), (200, 0.025079), (300, 0.019687)]
)
def test_voltage_to_wavelength(voltage, wavelength):
    assert abs(voltage_to_wavelength(voltage) - wavelength) < 1e-5


class UtilsTestCase(TestCase):
    def testGetFullVersion(self):
        self.assertTrue(get_full_version().startswith(__version__))

    @mock.patch("subprocess.check_output")
    def testGetFullVersionUnexpected(self, p):
        p.side_effect = RuntimeError
        self.assertEqual(get_full_version(), __version__ + ".x")

    def testMmToAngstrom(self):
        self.assertAlmostEqual(mm_to_angstrom(2.7), 2.7e7)

    def testCoreSuggestions(self):
        self.assertTrue(virtual_core_cpu_suggestion() >= 1)
        self.assertTrue(num_threads_suggestion() >= 1)
        physical = physical_core_cpu_suggestion()
        self.assertTrue(physical is None or physical >= 1)


class SmoothingTestCase(TestCase):
    def setUp(self):
        self.x = np.linspace(0, 1, 50)

    def testMovingAverage(self):
        np.testing.assert_allclose(moving_average(np.full(20, 3.0), 5), 3.0)
        # Linear data is kept away from the edges
        line = 2 * self.x + 1
        np.testing.assert_allclose(moving_average(line, 5)[2:-2], line[2:-2])
        self.assertEqual(moving_average(line, 500).shape, line.shape)

    def testMovingPolynomial(self):
        quadratic = 3 * self.x**2 - self.x + 2
        np.testing.assert_allclose(moving_polynomial(quadratic, 10), quadratic)

    def testShortWindow(self):
        values = np.sin(self.x)
        np.testing.assert_array_equal(moving_polynomial(values, 2, order=2), values)


def test_progress_bars_follow_config():
    config.set({"logging": {"tqdm_disable": True}})
    try:
        assert tqdm(range(3)).disable
        bar = trange(3)
        assert bar.disable
        assert list(bar) == [0, 1, 2]
    finally:
        config.sources.pop(0)
