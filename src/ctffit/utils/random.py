"""
Utilities for controlling and generating random numbers.
"""

import numpy as np

# A list of random states, used as a stack
random_states = []


def random(*args, **kwargs):
    """
    Wraps numpy.random.random with the Random context manager.
    """
    seed = kwargs.pop("seed", None)

    with Random(seed):
        return np.random.random(*args, **kwargs)


def randn(*args, **kwargs):
    """
    Wraps numpy.random.standard_normal with the Random context manager.
    """
    seed = kwargs.pop("seed", None)

    with Random(seed):
        return np.random.standard_normal(*args, **kwargs)


class Random:
    """
    A context manager that pushes a random seed to the stack for reproducible results,
    and pops it on exit.
    """

    def __init__(self, seed=None):
        self.seed = seed

    def __enter__(self):
        if self.seed is not None:
            # Push current state on stack
            random_states.append(np.random.get_state())

            seed = self.seed
            # 5489 is the default seed used by MATLAB for seed 0 !
            if seed == 0:
                seed = 5489

            new_state = np.random.RandomState(seed)
            np.random.set_state(new_state.get_state())

    def __exit__(self, *args):
        if self.seed is not None:
            np.random.set_state(random_states.pop())
