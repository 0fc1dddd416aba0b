from .logging import (
    LOGGING_LEVEL_NAMES,
    LogFilterByCount,
    get_full_version,
    getConsoleLoggingLevel,
    setConsoleLoggingLevel,
    tqdm,
    trange,
)
from .multiprocessing import (
    num_threads_suggestion,
    physical_core_cpu_suggestion,
    virtual_core_cpu_suggestion,
)
from .random import Random, randn, random
from .smoothing import moving_average, moving_polynomial
from .units import mm_to_angstrom, voltage_to_wavelength
