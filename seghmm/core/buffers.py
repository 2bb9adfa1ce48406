"""Numeric buffers owned by one ScaleHMM instance."""

import numpy as np


class HMMBuffers:
    """
    All per-fit arrays, allocated once for a sequence of length T and N states.

    Layout:
        A, sumxi:                 (N, N)
        proba, sumgamma:          (N,)
        scalefactoralpha:         (T,)
        scalealpha, scalebeta:    (T, N)
        densities, gamma, gammaold: (N, T)  state-major
        tdensities:               (T, N)  time-major mirror, only if time_major

    Everything except A and proba is overwritten on every iteration.
    """

    def __init__(self, T: int, N: int, time_major: bool = False):
        if T < 1:
            raise ValueError(f"Sequence length must be >= 1, got {T}")
        if N < 1:
            raise ValueError(f"Number of states must be >= 1, got {N}")
        self.T = int(T)
        self.N = int(N)
        self.time_major = bool(time_major)

        self.A = np.zeros((N, N))
        self.proba = np.zeros(N)
        self.scalefactoralpha = np.zeros(T)
        self.scalealpha = np.zeros((T, N))
        self.scalebeta = np.zeros((T, N))
        self.densities = np.zeros((N, T))
        self.tdensities = np.zeros((T, N)) if self.time_major else None
        self.gamma = np.zeros((N, T))
        self.gammaold = np.zeros((N, T))
        self.sumgamma = np.zeros(N)
        self.sumxi = np.zeros((N, N))

    def sync_time_major(self):
        """Refresh the time-major mirror from the state-major density cache."""
        if self.time_major:
            self.tdensities[:] = self.densities.T

    def density_view(self) -> np.ndarray:
        """
        Density cache as a (T, N) array, indexed [t, state].

        Returns the contiguous mirror for time-major models and a transposed
        view of the state-major cache otherwise. Values are identical.
        """
        if self.time_major:
            return self.tdensities
        return self.densities.T

    def reset_statistics(self):
        """Clear the per-iteration accumulators and the previous posterior."""
        self.sumgamma[:] = 0.0
        self.sumxi[:] = 0.0
        self.gammaold[:] = 0.0
