"""
Count densities: Poisson and negative binomial.

Both evaluate the pmf once per distinct count value and scatter the result,
which is much faster than evaluating every position for typical binned
read-count signals.
"""

import warnings

import numpy as np
from scipy import special, stats

from seghmm.densities.base import Density


class _CountDensity(Density):
    """Shared handling of the distinct-value index for count data."""

    def __init__(self, obs: np.ndarray):
        super().__init__(obs)
        if np.any(self.obs < 0):
            raise ValueError("Count densities require non-negative observations")
        self._values, self._inverse = np.unique(self.obs, return_inverse=True)
        self._values = self._values.astype(float)

    def _collapse(self, weights: np.ndarray) -> np.ndarray:
        """Sum posterior weights per distinct observation value."""
        return np.bincount(self._inverse, weights=weights, minlength=len(self._values))


class Poisson(_CountDensity):
    """Poisson with rate lambda_; M-step is the weighted mean."""

    def __init__(self, obs: np.ndarray, lambda_: float = 1.0, min_lambda: float = 1e-10):
        super().__init__(obs)
        self.lambda_ = float(lambda_)
        self.min_lambda = min_lambda

    def evaluate(self, out: np.ndarray) -> np.ndarray:
        out[:] = stats.poisson.pmf(self._values, self.lambda_)[self._inverse]
        return out

    def update(self, weights: np.ndarray):
        w = self._collapse(weights)
        total = w.sum()
        if total <= 0:
            return
        self.lambda_ = max(float(np.dot(w, self._values) / total), self.min_lambda)

    def get_mean(self) -> float:
        return self.lambda_

    def get_variance(self) -> float:
        return self.lambda_

    def params(self):
        return {'lambda': self.lambda_}


class NegativeBinomial(_CountDensity):
    """
    Negative binomial with scipy's (size, prob) parameterization:
    mean = size * (1 - prob) / prob, variance = mean / prob.

    update() sets prob in closed form for the current size, then refines
    size by Newton's method on the weighted score
        F(r) = sum_x w_x * (digamma(r + x) - digamma(r) + log(prob)).
    """

    def __init__(self, obs: np.ndarray, size: float = 1.0, prob: float = 0.5,
                 max_newton: int = 20, tol: float = 1e-4, max_size: float = 1e6):
        super().__init__(obs)
        if size <= 0:
            raise ValueError(f"size must be > 0, got {size}")
        if not 0 < prob <= 1:
            raise ValueError(f"prob must be in (0, 1], got {prob}")
        self.size = float(size)
        self.prob = float(prob)
        self.max_newton = max_newton
        self.tol = tol
        self.max_size = max_size

    @classmethod
    def from_moments(cls, obs: np.ndarray, mean: float, variance: float, **kwargs):
        """Build from a target mean and variance (variance must exceed mean)."""
        mean = max(mean, 1e-3)
        if variance <= mean:
            variance = mean * 1.1 + 1e-6
        prob = mean / variance
        size = mean * prob / (1 - prob)
        return cls(obs, size=size, prob=prob, **kwargs)

    def evaluate(self, out: np.ndarray) -> np.ndarray:
        out[:] = stats.nbinom.pmf(self._values, self.size, self.prob)[self._inverse]
        return out

    def update(self, weights: np.ndarray):
        w = self._collapse(weights)
        total = w.sum()
        if total <= 0:
            return
        x = self._values
        mean_x = float(np.dot(w, x) / total)
        if mean_x <= 0:
            # all weight on zero counts
            self.prob = 1.0
            return

        r = self.size
        p = r / (r + mean_x)
        for _ in range(self.max_newton):
            F = np.dot(w, special.digamma(r + x) - special.digamma(r)) + total * np.log(p)
            dF = np.dot(w, special.polygamma(1, r + x) - special.polygamma(1, r))
            # d/dr log(p) for p = r / (r + mean)
            dF += total * mean_x / (r * (r + mean_x))
            if dF == 0 or not np.isfinite(dF):
                break
            r_new = r - F / dF
            if not np.isfinite(r_new):
                warnings.warn("NegativeBinomial size update diverged; keeping previous size")
                break
            if r_new <= 0:
                r_new = r / 2.0
            elif r_new > self.max_size:
                # underdispersed data, the fit tends to a Poisson
                r_new = self.max_size
            converged = abs(r_new - r) < self.tol
            r = r_new
            p = r / (r + mean_x)
            if converged:
                break

        self.size = float(r)
        self.prob = float(p)

    def get_mean(self) -> float:
        return self.size * (1 - self.prob) / self.prob

    def get_variance(self) -> float:
        return self.get_mean() / self.prob

    def params(self):
        return {'size': self.size, 'prob': self.prob,
                'mean': self.get_mean(), 'variance': self.get_variance()}
