"""Emission density interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict

import numpy as np


class Density(ABC):
    """
    Emission density of one hidden state over a fixed observation sequence.

    The density references (does not copy) the caller's observations. The
    model calls evaluate() once per iteration and update() with the state's
    posterior weights after each E-step.
    """

    def __init__(self, obs: np.ndarray):
        self.obs = np.asarray(obs)
        self.T = len(self.obs)

    @abstractmethod
    def evaluate(self, out: np.ndarray) -> np.ndarray:
        """Write the likelihood of every observation into out (length T)."""

    @abstractmethod
    def update(self, weights: np.ndarray):
        """Reestimate parameters from posterior weights (length T)."""

    @abstractmethod
    def get_mean(self) -> float:
        pass

    @abstractmethod
    def get_variance(self) -> float:
        pass

    def params(self) -> Dict[str, Any]:
        """Current parameters for reports."""
        return {'mean': self.get_mean(), 'variance': self.get_variance()}

    def __repr__(self):
        inner = ', '.join(f"{k}={v:.4g}" if isinstance(v, float) else f"{k}={v}"
                          for k, v in self.params().items())
        return f"{type(self).__name__}({inner})"


def _weighted_moments(obs: np.ndarray, weights: np.ndarray):
    """Weighted mean and variance; (nan, nan) if the weights sum to 0."""
    total = np.sum(weights)
    if total <= 0:
        return float('nan'), float('nan')
    mean = np.sum(weights * obs) / total
    var = np.sum(weights * (obs - mean) ** 2) / total
    return float(mean), float(var)
