import logging
import platform
import struct
import sys
import traceback


def handle_exception(exc_type, exc_value, exc_traceback):
    """
    Handle any top-level unhandled exception.
    Gathers and logs version and platform context, writes the
    traceback with local variables to `ctffit.err.log`, then re-raises.

    :param exc_type: Exception type object
    :param exc_value: Exception value object (an instance of type exc_type)
    :param exc_traceback: The Traceback object associated with exc_value
    :return: On return, diagnostic information has been logged, and the exception re-raised.
    """

    # Are we explicitly/interactively killing a run? Just do it.
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    from ctffit.utils import get_full_version

    lines = list()

    lines.append(f"Application version: {get_full_version()}")
    lines.append(f"Platform: {platform.platform()}")
    lines.append(f"Python version: {sys.version}")
    lines.append(f'Python 32/64 bit: {8 * struct.calcsize("P")}')

    # Walk through all traceback objects (oldest call -> most recent call), capturing frame/local variable information.
    lines.append("Exception Details (most recent call last)")
    frame_generator = traceback.walk_tb(exc_traceback)

    try:
        stack_summary = traceback.StackSummary.extract(
            frame_generator, capture_locals=True
        )
    except Exception:  # nopep8  # noqa: E722
        # The above code, while more informative, doesn't always work.
        # When it doesn't try something simpler.
        stack_summary = traceback.StackSummary.extract(
            traceback.walk_tb(exc_traceback), capture_locals=False
        )

    for s in stack_summary.format():
        lines.extend(s.split("\n"))

    try:
        with open("ctffit.err.log", "w") as f:
            f.write("\n".join(lines) + "\n")
    except OSError:
        logging.warning("Unable to write ctffit.err.log")

    try:
        # send to logger
        logging.critical(
            f"{exc_value}\nTraceback:\n"
            f'{"".join(traceback.format_tb(exc_traceback))}'
        )
        # re-raise the exception we got for the caller.
        raise exc_value
    finally:
        # cleanup - see https://cosmicpercolator.com/2016/01/13/exception-leaks-in-python-2-and-3/
        del exc_value, exc_traceback


# Useful Exception classes
class CtfFitException(Exception):
    pass


class WrongInput(CtfFitException):
    pass


class DimensionsIncompatible(CtfFitException):
    pass


class UnknownModel(CtfFitException):
    pass
