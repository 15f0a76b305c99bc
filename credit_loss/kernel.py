"""CUDA simulation kernel, interface version 1.

One work item per Monte Carlo trial. Work item t:
    1. draws one independent standard normal per region,
    2. correlates them through the flattened Cholesky factor, Y = L Z,
    3. for every loan draws its idiosyncratic shock and flags a default when
       α Y[region] + γ ε < threshold,
    4. writes the sum of EAD × LGD over defaulted loans to losses[t].

Inputs:
    loans       float64[num_loans, 7]   packed records, see portfolio.RECORD_FIELDS
    losses      float64[num_trials]     output, one slot per work item
    lower       float64[n * n]          row-major Cholesky factor
    num_loans   uint32
    seed        uint32

Draws follow counter_rng, so the kernel and the host driver agree trial by
trial.
"""

import math
from numba import cuda, float64

from .config import MAX_REGIONS
from .counter_rng import (
    MASK32, HASH_MULTIPLIER, UNIFORM_SCALE, TWO_PI,
)
from .portfolio import REGION, EAD, LGD, ALPHA, THRESHOLD, GAMMA

KERNEL_SIGNATURE = "void(float64[:, ::1], float64[::1], float64[::1], uint32, uint32)"


@cuda.jit(device=True)
def _mix32(x):
    x = x & MASK32
    x = (((x >> 16) ^ x) * HASH_MULTIPLIER) & MASK32
    x = (((x >> 16) ^ x) * HASH_MULTIPLIER) & MASK32
    return (x >> 16) ^ x


@cuda.jit(device=True)
def _uniform(key, counter):
    return (_mix32(key ^ _mix32(counter)) + 0.5) * UNIFORM_SCALE


@cuda.jit(device=True)
def _standard_normal(key, counter):
    u1 = _uniform(key, 2 * counter)
    u2 = _uniform(key, 2 * counter + 1)
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(TWO_PI * u2)


@cuda.jit
def simulation(loans, losses, lower, num_loans, seed):
    """Simulate one portfolio loss per work item."""
    t = cuda.grid(1)
    if t >= losses.shape[0]:
        return

    n_loans = int(num_loans)
    n_factors = int(math.sqrt(lower.shape[0]) + 0.5)
    key = _mix32((int(seed) & MASK32) ^ _mix32(t))

    z = cuda.local.array(MAX_REGIONS, dtype=float64)
    y = cuda.local.array(MAX_REGIONS, dtype=float64)
    for k in range(n_factors):
        z[k] = _standard_normal(key, k)
    for r in range(n_factors):
        acc = 0.0
        for k in range(r + 1):
            acc += lower[r * n_factors + k] * z[k]
        y[r] = acc

    loss = 0.0
    for i in range(n_loans):
        region = int(loans[i, REGION])
        x = loans[i, ALPHA] * y[region] + loans[i, GAMMA] * _standard_normal(key, n_factors + i)
        if x < loans[i, THRESHOLD]:
            loss += loans[i, EAD] * loans[i, LGD]
    losses[t] = loss
