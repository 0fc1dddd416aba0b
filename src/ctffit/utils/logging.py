"""
Miscellaneous Utilities that relate to logging.
"""

import logging
import os.path
import subprocess
from collections import defaultdict

import tqdm as _tqdm

from ctffit import config

logger = logging.getLogger(__name__)

LOGGING_LEVEL_NAMES = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def get_full_version():
    """
    Get as much version information as we can, including git info (if applicable)
    This method should never raise exceptions!

    :return: A version number in the form:
        <maj>.<min>.<bld>
            If we're running as a package distributed through setuptools
        <maj>.<min>.<bld>.<rev>
            If we're running as a source folder, where <rev> is
            'src' (no git information), a git tag or revision
            (possibly suffixed '-dirty') or 'x' (undetermined).
    """
    import ctffit

    full_version = ctffit.__version__
    rev = None
    try:
        path = ctffit.__path__[0]
        if os.path.isdir(path):
            try:
                rev = (
                    subprocess.check_output(
                        ["git", "describe", "--tags", "--always", "--dirty"],
                        stderr=subprocess.STDOUT,
                        cwd=path,
                    )
                    .decode("utf-8")
                    .strip()
                )
            except (FileNotFoundError, subprocess.CalledProcessError):
                # no git or not a git repo? assume 'src'
                rev = "src"
    except Exception:  # nopep8  # noqa: E722
        # Something unexpected happened - rev number defaults to 'x'
        rev = "x"

    if rev is not None:
        full_version += f".{rev}"

    return full_version


def _tqdm_disabled():
    return config["logging"]["tqdm_disable"].get(bool) or (
        getConsoleLoggingLevel() not in ["DEBUG", "INFO"]
    )


def tqdm(*args, **kwargs):
    """
    Wraps `tqdm.tqdm`, applying ctffit configuration.

    Setting `ctffit.config['logging']['tqdm_disable']`
    true/false will disable/enable tqdm progress bars.
    """

    return _tqdm.tqdm(*args, **kwargs, disable=_tqdm_disabled())


def trange(*args, **kwargs):
    """
    Wraps `tqdm.trange`, applying ctffit configuration.
    """

    return _tqdm.trange(*args, **kwargs, disable=_tqdm_disabled())


def setConsoleLoggingLevel(level_name):
    """
    Dynamically sets the console logging level by setting the level of the root logger's StreamHandler to `level_name`.
    Note this will supersede the `logging.console_level` option stored in the configuration file.

    :param level_name: One of "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL".
    """
    level_name = level_name.upper()
    if level_name not in LOGGING_LEVEL_NAMES:
        raise ValueError(
            f"{level_name} not a recognized logging level. Must be one of {LOGGING_LEVEL_NAMES}"
        )
    # handler list is ordered according to logging.conf
    stream_handler = logging.getLogger().handlers[0]
    stream_handler.setLevel(getattr(logging, level_name))


def getConsoleLoggingLevel():
    """
    Returns the Python logging level of the root logger's StreamHandler, i.e. console output.

    :return: The current console logging level name as a string. One of "DEBUG". "INFO", "WARNING",
    "ERROR", "CRITICAL".
    """
    # handler list is ordered according to logging.conf
    stream_handler = logging.getLogger().handlers[0]
    return logging.getLevelName(stream_handler.level)


class LogFilterByCount:
    """
    Provide a context manager for filtering repetitive log messages.

    The simplex and the per-stage fits log the same degenerate-input
    messages many times per fit, this keeps the log readable.
    """

    # msg_cache is shared by all instances of class.
    # msg_cache is map hash(str(msg)) ~~> count.
    msg_cache = defaultdict(int)

    def __init__(self, logger: logging.Logger, max_count: int):
        """
        Initialize context manager based on `logger` and `max_count`.

        :param logger: `Logger` instance.
        :param max_count: Global limit for count of each message
            encountered inside context.
        """

        self._logger = logger
        self._max_count = max_count

    def filter(self, record):
        """
        Increment msg_cache for `record`.

        :param record: Log record.  Will be reduced by hash(str()),
        :return: True when the message has been seen at most `max_count` times.
        """
        msg = hash(str(record.msg))

        self.msg_cache[msg] += 1
        seen = self.msg_cache[msg]

        return seen <= self._max_count

    def __enter__(self):
        self._logger.addFilter(self)

    def __exit__(self, *args):
        self._logger.removeFilter(self)
