import logging

import psutil

from ctffit import config

logger = logging.getLogger(__name__)


def physical_core_cpu_suggestion():
    """
    Return the physical cores.
    """

    n = psutil.cpu_count(logical=False)
    logger.debug(f"Found {n} physical cores")
    return n


def virtual_core_cpu_suggestion():
    """
    Return the virtual cores.
    """

    n = psutil.cpu_count(logical=True)
    logger.debug(f"Found {n} logical cores")
    return n


def num_threads_suggestion():
    """
    Resolve and return the number of worker threads for parallel
    candidate evaluation.

    Uses `config.common.n_workers` when positive,
    otherwise one thread per physical core.
    """
    n = config["common"]["n_workers"].get(int)
    if n > 0:
        return n

    # psutil returns None when the core count cannot be determined.
    n = physical_core_cpu_suggestion() or virtual_core_cpu_suggestion() or 1
    logger.debug(f"Suggesting {n} threads based on physical cores.")
    return n
