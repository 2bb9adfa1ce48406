"""Parameter-free densities: fixed likelihoods and zero inflation."""

import numpy as np

from seghmm.densities.base import Density


class FixedDensity(Density):
    """
    Precomputed likelihood values that never change.

    Useful for plugging in externally computed emission likelihoods (the
    model then only reestimates transitions and initial probabilities).
    """

    def __init__(self, values: np.ndarray, mean: float = float('nan'),
                 variance: float = float('nan')):
        values = np.asarray(values, dtype=float)
        super().__init__(values)
        self.values = values
        self._mean = mean
        self._variance = variance

    def evaluate(self, out: np.ndarray) -> np.ndarray:
        out[:] = self.values
        return out

    def update(self, weights: np.ndarray):
        pass

    def get_mean(self) -> float:
        return float(self._mean)

    def get_variance(self) -> float:
        return float(self._variance)

    def params(self):
        return {'mean': self.get_mean(), 'variance': self.get_variance()}


class ZeroInflation(Density):
    """Point mass at zero: likelihood 1 for zero counts, 0 otherwise."""

    def __init__(self, obs: np.ndarray):
        super().__init__(obs)
        self._is_zero = (self.obs == 0).astype(float)

    def evaluate(self, out: np.ndarray) -> np.ndarray:
        out[:] = self._is_zero
        return out

    def update(self, weights: np.ndarray):
        pass

    def get_mean(self) -> float:
        return 0.0

    def get_variance(self) -> float:
        return 0.0

    def params(self):
        return {}
