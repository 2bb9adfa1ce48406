"""Gaussian emission density for continuous signals."""

import numpy as np
from scipy import stats

from seghmm.densities.base import Density, _weighted_moments


class Gaussian(Density):
    """Normal density; M-step uses weighted moments with a variance floor."""

    def __init__(self, obs: np.ndarray, mean: float = 0.0, variance: float = 1.0,
                 min_variance: float = 1e-6):
        super().__init__(obs)
        if variance <= 0:
            raise ValueError(f"variance must be > 0, got {variance}")
        self.mean = float(mean)
        self.variance = float(variance)
        self.min_variance = min_variance

    def evaluate(self, out: np.ndarray) -> np.ndarray:
        out[:] = stats.norm.pdf(self.obs, loc=self.mean, scale=np.sqrt(self.variance))
        return out

    def update(self, weights: np.ndarray):
        mean, var = _weighted_moments(self.obs, weights)
        if not np.isfinite(mean):
            return
        self.mean = mean
        self.variance = max(var, self.min_variance)

    def get_mean(self) -> float:
        return self.mean

    def get_variance(self) -> float:
        return self.variance

    def params(self):
        return {'mean': self.mean, 'variance': self.variance}
