"""
Full CTF parameter estimation of one power spectrum.
"""

import logging

import numpy as np

from ctffit import config
from ctffit.ctf.astigmatism import refine_astigmatism
from ctffit.ctf.baseline import fit_baseline
from ctffit.ctf.defocus import search_defocus
from ctffit.ctf.envelope import fit_envelope
from ctffit.ctf.parameters import DEFOCUS_MAX, DEFOCUS_MIN, CTFParameters
from ctffit.ctf.quality import fit_residual, isotropy
from ctffit.ctf.radial import RadialAverager
from ctffit.ctf.water_ring import water_ring_index

logger = logging.getLogger(__name__)


class CTFFitResult:
    """
    Outcome of `CTFFitPipeline.fit`.

    :param parameters: Fitted `CTFParameters`, including figure of merit and water ring index.
    :param residual: Residual R of the modelled against the measured profile.
    :param rounds: Number of astigmatism/defocus rounds run.
    :param converged: Whether the figure of merit settled before the round cap.
    :param profile: Final astigmatism corrected `RadialProfile`.
    :param curve: Modelled profile baseline + envelope * CTF^2 at the profile frequencies.
    :param isotropy: Ring isotropy measure, None unless requested.
    :param states: Sequence of pipeline states visited.
    """

    def __init__(
        self,
        parameters,
        residual,
        rounds,
        converged,
        profile,
        curve,
        isotropy=None,
        states=None,
    ):
        self.parameters = parameters
        self.residual = residual
        self.rounds = rounds
        self.converged = converged
        self.profile = profile
        self.curve = curve
        self.isotropy = isotropy
        self.states = states or []

    @property
    def fom(self):
        return self.parameters.fom

    @property
    def water_ring_index(self):
        return self.parameters.water_ring_index

    def __repr__(self):
        return (
            f"CTFFitResult({self.parameters!r}, R={self.residual:.5g},"
            f" wri={self.water_ring_index:.5g}, rounds={self.rounds},"
            f" converged={self.converged})"
        )


class CTFFitPipeline:
    """
    Estimates defocus, astigmatism, baseline and envelope of a power spectrum.

    States run in order Seeded, DefocusCoarse, BaselineFit, EnvelopeFit,
    then rounds of AstigmatismRefine, DefocusCoarse, BaselineFit and
    EnvelopeFit until the figure of merit changes less than the threshold or
    the round cap is reached (Converged).  Every state takes a
    `CTFParameters` snapshot and returns an updated copy.
    """

    SEEDED = "Seeded"
    DEFOCUS_COARSE = "DefocusCoarse"
    BASELINE_FIT = "BaselineFit"
    ENVELOPE_FIT = "EnvelopeFit"
    ASTIGMATISM_REFINE = "AstigmatismRefine"
    CONVERGED = "Converged"

    def __init__(
        self,
        spectrum,
        lores=None,
        hires=None,
        def_start=None,
        def_end=None,
        def_inc=None,
        max_rounds=None,
        threshold=None,
        n_workers=None,
        measure_isotropy=False,
    ):
        """
        :param spectrum: `PowerSpectrum` to fit.
        :param lores: Low resolution limit in angstrom, the field of view by default.
        :param hires: High resolution limit in angstrom, twice the pixel size at least.
        :param def_start: Lowest defocus of the first search in angstrom.
        :param def_end: Highest defocus of the first search in angstrom.
        :param def_inc: Increment of the first search in angstrom.
        :param max_rounds: Cap on refinement rounds, `config.ctf.pipeline.max_rounds` by default.
        :param threshold: Figure of merit change ending the rounds,
            `config.ctf.pipeline.threshold` by default.
        :param n_workers: Threads scoring astigmatism candidates.
        :param measure_isotropy: Also compute the ring isotropy of the fit.
        """
        # Raises `WrongInput` for a missing or empty spectrum before any stage runs.
        self.averager = RadialAverager(spectrum)
        self.spectrum = self.averager.spectrum

        real_size = self.spectrum.real_size
        min_hires = 2 * self.spectrum.pixel_size
        if hires is None or hires < min_hires:
            hires = min_hires
        if lores is None or lores < hires or lores > real_size:
            lores = real_size
        self.lores = lores
        self.hires = hires

        self.def_start = def_start
        self.def_end = def_end
        self.def_inc = def_inc

        cfg = config["ctf"]["pipeline"]
        self.max_rounds = cfg["max_rounds"].get(int) if max_rounds is None else max_rounds
        self.threshold = cfg["threshold"].get(float) if threshold is None else threshold
        self.n_workers = n_workers
        self.measure_isotropy = measure_isotropy

    def _seed(self, params):
        cfg = config["ctf"]["defocus"]
        if not DEFOCUS_MIN <= params.defocus_average <= DEFOCUS_MAX:
            seed = cfg["seed"].get(float)
            logger.info(
                f"Seed defocus {params.defocus_average} implausible, using {seed} A."
            )
            params = params.replace(defocus_average=seed)

        baseline = params.baseline
        if baseline.has_bump and self.hires > config["ctf"]["bump"]["max_hires"].get(float):
            logger.info(
                f"High resolution limit {self.hires} A excludes the water ring,"
                f" fitting {baseline.name} without bump."
            )
            baseline = baseline.without_bump()

        def_end = self.def_end or config["ctf"]["defocus"]["max"].get(float)
        best_tile_size = def_end * params.wavelength / (self.hires * self.spectrum.pixel_size)
        if self.spectrum.size_x < best_tile_size:
            logger.warning(
                f"Tile size too small! ({self.spectrum.size_x} < {best_tile_size:.0f})"
                " Change the tile size, defocus maximum or high resolution limit."
            )

        return params.replace(
            defocus_deviation=0.0, astigmatism_angle=0.0, fom=0.0, baseline=baseline
        )

    def _fit_curves(self, profile, params, states):
        states.append(self.BASELINE_FIT)
        params, _ = fit_baseline(profile, params, self.lores, self.hires)
        states.append(self.ENVELOPE_FIT)
        params, _ = fit_envelope(profile, params, self.lores, self.hires)
        return params

    def fit(self, params=None):
        """
        Run the estimation.

        :param params: Seed `CTFParameters` carrying the microscope constants,
            the seed defocus and the baseline and envelope families.
        :return: `CTFFitResult`.
        """
        if params is None:
            params = CTFParameters()

        logger.info(
            f"Fitting CTF of {self.spectrum} between {self.lores} and {self.hires} A"
        )

        states = [self.SEEDED]
        params = self._seed(params)

        states.append(self.DEFOCUS_COARSE)
        profile = self.averager.average(params)
        params, fom = search_defocus(
            profile,
            params,
            self.lores,
            self.hires,
            def_start=self.def_start,
            def_end=self.def_end,
            def_inc=self.def_inc,
        )
        logger.info(f"Coarse defocus {params.defocus_average:.1f} A ({fom:.5g})")
        params = self._fit_curves(profile, params, states)

        converged = False
        rounds = 0
        for rounds in range(1, self.max_rounds + 1):
            previous = params.fom

            states.append(self.ASTIGMATISM_REFINE)
            params, _ = refine_astigmatism(
                self.averager, params, self.lores, self.hires, n_workers=self.n_workers
            )

            states.append(self.DEFOCUS_COARSE)
            avg = params.defocus_average
            params, _ = search_defocus(
                self.averager.average(params),
                params,
                self.lores,
                self.hires,
                def_start=avg / 10,
                def_end=avg * 10,
                def_inc=avg / 10,
            )
            profile = self.averager.average(params)
            params = self._fit_curves(profile, params, states)

            logger.info(
                f"Round {rounds}: {params.defocus_average:.1f}"
                f" +- {params.defocus_deviation:.1f} A"
                f" @ {np.degrees(params.astigmatism_angle):.2f} deg ({params.fom:.5g})"
            )

            if abs(params.fom - previous) < self.threshold:
                converged = True
                break

        params = params.check_defocus()
        states.append(self.CONVERGED)
        if not converged:
            logger.info(f"Round cap of {self.max_rounds} reached, keeping best estimate.")

        residual = fit_residual(profile, params, self.lores, self.hires)
        params = params.replace(water_ring_index=water_ring_index(profile))

        iso = None
        if self.measure_isotropy and self.spectrum.ndim == 2:
            iso = isotropy(self.spectrum, params, self.hires)

        curve = params.power_spectrum(profile.frequencies)

        logger.info(
            f"Best defocus: {params.defocus_average:.1f} +- {params.defocus_deviation:.1f} A"
            f" @ {np.degrees(params.astigmatism_angle):.2f} deg ({params.fom:.5g}),"
            f" R={residual:.5g}, water ring index {params.water_ring_index:.5g}"
        )

        return CTFFitResult(
            params,
            residual,
            rounds,
            converged,
            profile,
            curve,
            isotropy=iso,
            states=states,
        )


def fit_ctf(spectrum, params=None, lores=None, hires=None, **kwargs):
    """
    Estimate the CTF parameters of `spectrum`, see `CTFFitPipeline`.

    :return: `CTFFitResult`.
    """
    return CTFFitPipeline(spectrum, lores=lores, hires=hires, **kwargs).fit(params)
