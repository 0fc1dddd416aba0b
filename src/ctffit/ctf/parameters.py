import itertools
import logging
import math

import numpy as np

from ctffit.ctf.baseline import Baseline, PolynomialBaseline
from ctffit.ctf.envelope import ConstantDoubleGaussianEnvelope, Envelope
from ctffit.exceptions import WrongInput
from ctffit.utils import mm_to_angstrom, voltage_to_wavelength

logger = logging.getLogger(__name__)

# Physically plausible defocus range in angstrom.
DEFOCUS_MIN = 1.0
DEFOCUS_MAX = 2e5


def normalize_astigmatism(deviation, angle):
    """
    Map an astigmatism onto a non-negative deviation and an angle in (-pi/2, pi/2].

    A negative deviation swaps the major and minor axes, so it becomes
    positive with the angle rotated by pi/2.

    :param deviation: Defocus deviation in angstrom.
    :param angle: Astigmatism angle in radians.
    :return: (deviation, angle)
    """
    deviation = float(deviation)
    angle = float(angle)
    if deviation < 0:
        deviation = -deviation
        angle += np.pi / 2
    angle -= np.pi * math.ceil((angle - np.pi / 2) / np.pi)
    return deviation, angle


class CTFParameters:
    """
    Contrast transfer function parameters of one power spectrum.

    The CTF phase at spatial frequency s (1/angstrom) and polar angle theta is

        chi = pi/2 * lambda^3 * Cs * s^4 - pi * lambda * defocus(theta) * s^2 - amp_shift
        defocus(theta) = defocus_average + defocus_deviation * cos(2 * (theta - astigmatism_angle))

    and the CTF is sin(chi).  The measured power spectrum is modelled as
    baseline(s) + envelope(s) * CTF^2.

    Instances are snapshots: every stage of a fit returns an updated copy
    through `replace` rather than modifying its input.
    """

    def __init__(
        self,
        voltage=300.0,
        cs=2.0,
        amp_shift=0.07,
        defocus_average=2e4,
        defocus_deviation=0.0,
        astigmatism_angle=0.0,
        baseline=None,
        envelope=None,
        fom=0.0,
        water_ring_index=0.0,
    ):
        """
        :param voltage: Accelerating voltage in kV.
        :param cs: Spherical aberration in mm.
        :param amp_shift: Amplitude contrast phase shift in radians.
        :param defocus_average: Average defocus in angstrom, underfocus positive.
        :param defocus_deviation: Half the difference of the principal defocus values in angstrom.
        :param astigmatism_angle: Angle of the major defocus axis in radians.
        :param baseline: `Baseline` instance, defaults to a constant polynomial.
        :param envelope: `Envelope` instance.
        :param fom: Figure of merit of the fit, higher is better.
        :param water_ring_index: Water ring index of the spectrum.
        """
        if voltage <= 0:
            raise WrongInput(f"Voltage must be positive, got {voltage} kV.")
        if cs < 0:
            raise WrongInput(f"Spherical aberration must be non-negative, got {cs} mm.")

        self.voltage = float(voltage)
        self.cs = float(cs)
        self.amp_shift = float(amp_shift)
        self.defocus_average = float(defocus_average)
        self.defocus_deviation, self.astigmatism_angle = normalize_astigmatism(
            defocus_deviation, astigmatism_angle
        )

        if baseline is None:
            baseline = PolynomialBaseline()
        if not isinstance(baseline, Baseline):
            raise WrongInput(f"Invalid baseline {baseline}.")
        self.baseline = baseline

        if envelope is None:
            envelope = ConstantDoubleGaussianEnvelope()
        if not isinstance(envelope, Envelope):
            raise WrongInput(f"Invalid envelope {envelope}.")
        self.envelope = envelope

        self.fom = float(fom)
        self.water_ring_index = float(water_ring_index)

    def as_dict(self):
        return {
            "voltage": self.voltage,
            "cs": self.cs,
            "amp_shift": self.amp_shift,
            "defocus_average": self.defocus_average,
            "defocus_deviation": self.defocus_deviation,
            "astigmatism_angle": self.astigmatism_angle,
            "baseline": self.baseline,
            "envelope": self.envelope,
            "fom": self.fom,
            "water_ring_index": self.water_ring_index,
        }

    def replace(self, **changes):
        """
        Copy of these parameters with `changes` applied.
        """
        values = self.as_dict()
        unknown = set(changes) - set(values)
        if unknown:
            raise WrongInput(f"Unknown CTF parameters {sorted(unknown)}.")
        values.update(changes)
        return CTFParameters(**values)

    def astigmatism(self, deviation, angle):
        """
        Copy of these parameters with a new astigmatism.
        """
        return self.replace(defocus_deviation=deviation, astigmatism_angle=angle)

    def __repr__(self):
        return (
            f"CTFParameters(defocus={self.defocus_average:.1f}"
            f" +- {self.defocus_deviation:.1f} A"
            f" @ {np.degrees(self.astigmatism_angle):.2f} deg,"
            f" voltage={self.voltage} kV, cs={self.cs} mm,"
            f" amp_shift={self.amp_shift}, fom={self.fom:.5g})"
        )

    def __str__(self):
        return "\n".join(
            [
                f"Voltage:                        {self.voltage} kV",
                f"Spherical aberration:           {self.cs} mm",
                f"Amplitude contrast shift:       {self.amp_shift} rad",
                f"Defocus average:                {self.defocus_average:.1f} A",
                f"Defocus deviation:              {self.defocus_deviation:.1f} A",
                f"Astigmatism angle:              {np.degrees(self.astigmatism_angle):.2f} deg",
                f"Baseline:                       {self.baseline.equation()}",
                f"Envelope:                       {self.envelope.equation()}",
                f"Figure of merit:                {self.fom:.5g}",
                f"Water ring index:               {self.water_ring_index:.5g}",
            ]
        )

    @property
    def wavelength(self):
        """
        Electron wavelength in angstrom.
        """
        return voltage_to_wavelength(self.voltage)

    def _phase_terms(self):
        lam = self.wavelength
        t1 = np.pi / 2 * lam**3 * mm_to_angstrom(self.cs)
        t2 = np.pi * lam
        return t1, t2

    def defocus(self, angle=None):
        """
        Defocus along polar `angle`, the average when `angle` is None.
        """
        if angle is None:
            return self.defocus_average
        return self.defocus_average + self.defocus_deviation * np.cos(
            2 * (np.asarray(angle) - self.astigmatism_angle)
        )

    def phase(self, s2, angle=None):
        """
        CTF phase at squared spatial frequency `s2`.

        :param s2: Squared spatial frequency in 1/angstrom^2, scalar or array.
        :param angle: Polar angle(s) broadcasting with `s2`, None for the average defocus.
        """
        t1, t2 = self._phase_terms()
        s2 = np.asarray(s2, dtype=np.float64)
        return (t1 * s2 - t2 * self.defocus(angle)) * s2 - self.amp_shift

    def calculate(self, s2, angle=None):
        """
        CTF value at squared spatial frequency `s2`.
        """
        return np.sin(self.phase(s2, angle))

    def curve(self, n, step, angle=None):
        """
        One dimensional CTF of `n` samples spaced by `step` 1/angstrom.
        """
        s = np.arange(n) * step
        return self.calculate(s * s, angle)

    def _root(self, c, angle=None):
        """
        Lowest spatial frequency where the phase equals `-(c + amp_shift)`,
        the smaller root of t1 u^2 - b u + c = 0 in u = s^2, or None.
        """
        t1, t2 = self._phase_terms()
        b = t2 * float(self.defocus(angle))
        disc = b * b - 4 * t1 * c
        if b <= 0 or disc < 0:
            return None
        # Stable form of the smaller root, valid for t1 == 0.
        u = 2 * c / (b + math.sqrt(disc))
        if u <= 0:
            return None
        return math.sqrt(u)

    def _roots(self, offset, max_s, angle=None):
        roots = []
        for n in itertools.count(1):
            s = self._root((n - offset) * np.pi - self.amp_shift, angle)
            if s is None or s > max_s:
                break
            roots.append(s)
        return np.array(roots, dtype=np.float64)

    def zeroes(self, max_s, angle=None):
        """
        Spatial frequencies of the CTF zeroes up to `max_s`.

        :param max_s: Highest spatial frequency in 1/angstrom.
        :param angle: Polar angle, None for the average defocus.
        :return: Increasing array of spatial frequencies.
        """
        if self.defocus(angle) <= 0:
            logger.debug(f"No zeroes for non-positive defocus {self.defocus(angle)}.")
        return self._roots(0, max_s, angle)

    def maxima(self, max_s, angle=None):
        """
        Spatial frequencies of the CTF maxima up to `max_s`.
        """
        return self._roots(0.5, max_s, angle)

    def first_zero(self, angle=None):
        """
        Spatial frequency of the first CTF zero, or None.
        """
        return self._root(np.pi - self.amp_shift, angle)

    def defocus_for_first_zero(self, s):
        """
        Defocus placing the first CTF zero at spatial frequency `s`.
        """
        if s <= 0:
            raise WrongInput(f"Spatial frequency must be positive, got {s}.")
        t1, t2 = self._phase_terms()
        s2 = s * s
        return (t1 * s2 * s2 + np.pi - self.amp_shift) / (t2 * s2)

    def _clamped(self, curve, s, label):
        values = np.atleast_1d(curve(s)).astype(np.float64)
        bad = ~np.isfinite(values)
        if np.any(bad):
            logger.debug(f"{np.count_nonzero(bad)} non-finite {label} values set to 0.")
            values[bad] = 0
        values = np.maximum(values, 0)
        if np.ndim(s) == 0:
            return float(values[0])
        return values

    def calc_baseline(self, s):
        """
        Baseline at spatial frequency `s`, non-negative.
        """
        return self._clamped(self.baseline, s, "baseline")

    def calc_envelope(self, s):
        """
        Envelope at spatial frequency `s`, non-negative.
        """
        return self._clamped(self.envelope, s, "envelope")

    def power_spectrum(self, s, angle=None):
        """
        Modelled power spectrum baseline + envelope * CTF^2 at spatial frequency `s`.
        """
        s = np.asarray(s, dtype=np.float64)
        ctf = self.calculate(s * s, angle)
        return self.calc_baseline(s) + self.calc_envelope(s) * ctf * ctf

    def check_defocus(self, low=DEFOCUS_MIN, high=DEFOCUS_MAX):
        """
        Copy with the average defocus clamped into [low, high].
        """
        if low <= self.defocus_average <= high:
            return self
        clamped = min(max(self.defocus_average, low), high)
        logger.warning(
            f"Defocus {self.defocus_average} outside [{low}, {high}], set to {clamped}."
        )
        return self.replace(defocus_average=clamped)
