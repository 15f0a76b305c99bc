"""Counter-based standard normal draws shared by every compute backend.

A draw is a pure function of (seed, trial, counter): the 32-bit seed and
the trial index are hashed into a per-trial key, and each counter value
selects two uniforms from that key for a Box-Muller transform. Any backend
that evaluates these functions gets the same draws for the same trial, in
any order and on any number of threads.

Counter layout per trial (kernel interface version 1):
    0 .. n_factors - 1                 independent systematic factors
    n_factors + i                      idiosyncratic factor of loan i

All integer arithmetic stays below 2**63, so the same expressions are exact
in numpy int64, in numba device code and in plain Python.
"""

import numpy as np

KERNEL_INTERFACE_VERSION = 1

MASK32 = 0xFFFFFFFF
HASH_MULTIPLIER = 0x45D9F3B
UNIFORM_SCALE = 1.0 / 4294967296.0
TWO_PI = 2.0 * np.pi


def mix32(x: np.ndarray) -> np.ndarray:
    """32-bit integer avalanche hash, elementwise over int64 arrays."""
    x = np.asarray(x, dtype=np.int64) & MASK32
    x = ((x >> 16) ^ x) * HASH_MULTIPLIER & MASK32
    x = ((x >> 16) ^ x) * HASH_MULTIPLIER & MASK32
    return (x >> 16) ^ x


def trial_key(seed: int, trials: np.ndarray) -> np.ndarray:
    """Per-trial stream keys."""
    return mix32(np.int64(seed & MASK32) ^ mix32(trials))


def uniform(key: np.ndarray, counter: np.ndarray) -> np.ndarray:
    """Uniform draws in (0, 1)."""
    return (mix32(key ^ mix32(counter)) + 0.5) * UNIFORM_SCALE


def standard_normal(key: np.ndarray, counter: np.ndarray) -> np.ndarray:
    """Standard normal draws; ``key`` and ``counter`` broadcast."""
    counter = np.asarray(counter, dtype=np.int64)
    u1 = uniform(key, 2 * counter)
    u2 = uniform(key, 2 * counter + 1)
    return np.sqrt(-2.0 * np.log(u1)) * np.cos(TWO_PI * u2)
