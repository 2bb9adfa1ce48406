"""
Scaled forward-backward kernels.

Numba-compiled recursions for an N-state HMM whose emission likelihoods are
precomputed into a (T, N) density array. Scaling keeps every row of the
forward variables normalized to 1, so long sequences never underflow; the
scale factors recover the log-likelihood exactly.

The kernels do not raise. A non-finite scaled variable stops the recursion
and the offending (t, i) is returned; (-1, -1) means success.
"""

import numpy as np
from numba import njit


# =============================================================================
# Forward-Backward engine
# =============================================================================

@njit(nogil=True, cache=False, error_model='numpy')
def forward_pass(proba, A, dens, scalefactor, scalealpha):
    """
    Scaled forward recursion.

    Args:
        proba: (N,) initial probabilities
        A: (N, N) transition matrix
        dens: (T, N) emission likelihoods, dens[t, i] = b_i(t)
        scalefactor: (T,) output scale factors c_t
        scalealpha: (T, N) output scaled forward variables

    Returns:
        (t, i) of the first non-finite scaled variable, or (-1, -1)
    """
    T, N = dens.shape
    alpha = np.empty(N)

    # Initialization
    c = 0.0
    for i in range(N):
        alpha[i] = proba[i] * dens[0, i]
        c += alpha[i]
    scalefactor[0] = c
    for i in range(N):
        scalealpha[0, i] = alpha[i] / c
        if not np.isfinite(scalealpha[0, i]):
            return 0, i

    # Induction
    for t in range(1, T):
        c = 0.0
        for i in range(N):
            helpsum = 0.0
            for j in range(N):
                helpsum += scalealpha[t - 1, j] * A[j, i]
            alpha[i] = helpsum * dens[t, i]
            c += alpha[i]
        scalefactor[t] = c
        for i in range(N):
            scalealpha[t, i] = alpha[i] / c
            if not np.isfinite(scalealpha[t, i]):
                return t, i

    return -1, -1


@njit(nogil=True, cache=False, error_model='numpy')
def backward_pass(A, dens, scalefactor, scalebeta):
    """
    Scaled backward recursion, normalized by the forward scale factors.

    Returns:
        (t, i) of the first non-finite scaled variable, or (-1, -1)
    """
    T, N = dens.shape
    beta = np.empty(N)

    for i in range(N):
        scalebeta[T - 1, i] = 1.0 / scalefactor[T - 1]
        if not np.isfinite(scalebeta[T - 1, i]):
            return T - 1, i

    for t in range(T - 2, -1, -1):
        for i in range(N):
            beta[i] = 0.0
            for j in range(N):
                beta[i] += A[i, j] * dens[t + 1, j] * scalebeta[t + 1, j]
        for i in range(N):
            scalebeta[t, i] = beta[i] / scalefactor[t]
            if not np.isfinite(scalebeta[t, i]):
                return t, i

    return -1, -1


# =============================================================================
# Sufficient statistics and likelihood
# =============================================================================

@njit(nogil=True, cache=False, error_model='numpy')
def sumxi_row(i, scalealpha, A, dens, scalebeta, out):
    """
    Expected transitions out of state i, summed over t = 0..T-2.

    Writes only ``out`` (row i of the accumulator), so rows can be computed
    concurrently.
    """
    T, N = dens.shape
    for j in range(N):
        out[j] = 0.0
    for t in range(T - 1):
        a = scalealpha[t, i]
        for j in range(N):
            out[j] += a * A[i, j] * dens[t + 1, j] * scalebeta[t + 1, j]


def posteriors(scalealpha: np.ndarray, scalebeta: np.ndarray,
               scalefactor: np.ndarray, gamma: np.ndarray,
               sumgamma: np.ndarray):
    """
    Posterior state probabilities and occupancy sums.

    gamma[i, t] = scalealpha[t, i] * scalebeta[t, i] * c_t, which sums to 1
    over i at every t. sumgamma excludes the last position because
    transitions are only counted for t < T-1.
    """
    np.multiply(scalealpha, scalebeta, out=gamma.T)
    gamma *= scalefactor[np.newaxis, :]
    sumgamma[:] = gamma[:, :-1].sum(axis=1)


def log_likelihood(scalefactor: np.ndarray) -> float:
    """log P(sequence) as the sum of log scale factors."""
    with np.errstate(divide='ignore', invalid='ignore'):
        return float(np.sum(np.log(scalefactor)))
