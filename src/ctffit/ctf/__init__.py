from .baseline import (
    BASELINE_NAMES,
    Baseline,
    DoubleGaussianBaseline,
    EmanBaseline,
    PolynomialBaseline,
    baseline_anchors,
    baseline_by_name,
    fit_baseline,
)
from .envelope import (
    ENVELOPE_NAMES,
    ConstantDoubleGaussianEnvelope,
    ConstantSingleGaussianEnvelope,
    DoubleGaussianEnvelope,
    Envelope,
    SingleGaussianEnvelope,
    envelope_by_name,
    envelope_samples,
    fit_envelope,
)
from .parameters import CTFParameters, normalize_astigmatism
from .radial import RadialAverager, RadialProfile, radial_average
from .defocus import find_defocus, search_defocus
from .astigmatism import astigmatism_measure, refine_astigmatism
from .quality import fit_residual, isotropy
from .water_ring import fit_water_ring, water_ring_index
from .pipeline import CTFFitPipeline, CTFFitResult, fit_ctf
from .simulate import simulate_power_spectrum, simulate_radial_profile
