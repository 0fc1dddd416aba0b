import logging
import math

import click

# Overrides click.option with ctffit global defaults, see ./_config.py
import ctffit.commands._config  # noqa: F401
from ctffit.commands import log_level_option
from ctffit.ctf import (
    BASELINE_NAMES,
    ENVELOPE_NAMES,
    CTFParameters,
    baseline_by_name,
    envelope_by_name,
    fit_ctf,
)
from ctffit.image import PowerSpectrum, estimate_power_spectrum, load_mrc
from ctffit.utils.logging import setConsoleLoggingLevel

logger = logging.getLogger(__name__)


@click.command("fit-ctf")
@click.option(
    "--spectrum", default=None, type=click.Path(exists=True), help="Power spectrum mrc file"
)
@click.option(
    "--micrograph",
    default=None,
    type=click.Path(exists=True),
    help="Micrograph mrc file, its power spectrum is estimated first",
)
@click.option(
    "--pixel_size",
    default=None,
    type=float,
    help="Pixel size in Å (angstrom), read from the file header when omitted",
)
@click.option(
    "--voltage",
    default=300.0,
    type=float,
    help="Electron microscope Voltage in kilovolts (kV)",
)
@click.option("--cs", default=2.0, type=float, help="Spherical aberration in mm")
@click.option(
    "--amp_shift", default=0.07, type=float, help="Amplitude contrast phase shift (rad)"
)
@click.option("--defocus", default=2e4, type=float, help="Seed defocus in Å")
@click.option("--lores", default=None, type=float, help="Low resolution limit in Å")
@click.option("--hires", default=None, type=float, help="High resolution limit in Å")
@click.option("--def_start", default=None, type=float, help="Lowest defocus searched")
@click.option("--def_end", default=None, type=float, help="Highest defocus searched")
@click.option("--def_inc", default=None, type=float, help="Initial defocus increment")
@click.option(
    "--baseline",
    default="polynomial",
    type=click.Choice(BASELINE_NAMES, case_sensitive=False),
    help="Baseline curve family",
)
@click.option(
    "--bump/--no-bump", default=False, help="Model the water ring in the baseline"
)
@click.option(
    "--envelope",
    default="constant_double_gaussian",
    type=click.Choice(ENVELOPE_NAMES, case_sensitive=False),
    help="Envelope curve family",
)
@click.option(
    "--tile_size",
    default=512,
    type=int,
    help="Size of tiles for power spectrum estimation",
)
@click.option(
    "--num_tapers",
    default=2,
    type=int,
    help="Number of tapers to apply in power spectrum estimation",
)
@click.option(
    "--isotropy/--no-isotropy", default=False, help="Report the ring isotropy"
)
@log_level_option
def fit_ctf_cmd(
    spectrum,
    micrograph,
    pixel_size,
    voltage,
    cs,
    amp_shift,
    defocus,
    lores,
    hires,
    def_start,
    def_end,
    def_inc,
    baseline,
    bump,
    envelope,
    tile_size,
    num_tapers,
    isotropy,
    loglevel,
):
    """
    Estimate the CTF parameters of a power spectrum, or of a
    micrograph through its multitaper power spectrum.

    This is a Click command line interface wrapper for
    the ctffit.ctf module.
    """

    # Set desired logging option for the command line
    setConsoleLoggingLevel(loglevel)

    if (spectrum is None) == (micrograph is None):
        raise click.UsageError("Give exactly one of --spectrum or --micrograph.")

    if spectrum is not None:
        ps = PowerSpectrum.load(spectrum, pixel_size=pixel_size)
    else:
        data, file_pixel_size = load_mrc(micrograph)
        ps = estimate_power_spectrum(
            data,
            tile_size=tile_size,
            pixel_size=pixel_size or file_pixel_size or 1.0,
            num_tapers=num_tapers,
        )

    params = CTFParameters(
        voltage=voltage,
        cs=cs,
        amp_shift=amp_shift,
        defocus_average=defocus,
        baseline=baseline_by_name(baseline, bump=bump),
        envelope=envelope_by_name(envelope),
    )

    result = fit_ctf(
        ps,
        params,
        lores=lores,
        hires=hires,
        def_start=def_start,
        def_end=def_end,
        def_inc=def_inc,
        measure_isotropy=isotropy,
    )

    fitted = result.parameters
    click.echo(str(fitted))
    click.echo(
        f"Defocus U/V:                    "
        f"{fitted.defocus_average + fitted.defocus_deviation:.1f} / "
        f"{fitted.defocus_average - fitted.defocus_deviation:.1f} A"
    )
    click.echo(f"Residual:                       {result.residual:.5g}")
    click.echo(
        f"Rounds:                         {result.rounds}"
        f" (converged: {result.converged})"
    )
    if result.isotropy is not None:
        click.echo(
            f"Isotropy:                       {result.isotropy:.5g}"
            f" ({math.exp(-result.isotropy):.5g})"
        )

    return result
