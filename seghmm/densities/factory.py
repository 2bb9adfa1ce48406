"""Initial density sets for a fresh fit."""

from typing import List

import numpy as np

from seghmm.densities.base import Density
from seghmm.densities.counts import NegativeBinomial, Poisson
from seghmm.densities.gaussian import Gaussian
from seghmm.densities.simple import ZeroInflation

FAMILIES = ('negbinom', 'poisson', 'gaussian')


def build_densities(obs: np.ndarray, n_states: int, family: str = 'negbinom',
                    zero_inflation: bool = False) -> List[Density]:
    """
    Create one density per state, spread over the range of the data.

    With zero_inflation, state 0 is a ZeroInflation point mass and the
    remaining states are components of ``family``. Components are ordered by
    increasing mean: component k starts at the ((k + 0.5) / K) quantile of
    the (non-zero, if zero-inflated) observations, so state labels come out
    sorted by signal level.

    Args:
        obs: Observation sequence
        n_states: Total number of states (including the zero-inflation state)
        family: 'negbinom', 'poisson' or 'gaussian'
        zero_inflation: Reserve state 0 for exact zeros

    Returns:
        List of n_states densities
    """
    if family not in FAMILIES:
        raise ValueError(f"Unknown density family: {family} (choose from {', '.join(FAMILIES)})")
    obs = np.asarray(obs)
    n_components = n_states - 1 if zero_inflation else n_states
    if n_components < 1:
        raise ValueError("Need at least one non-zero-inflation state")
    if family != 'gaussian' and np.any(obs < 0):
        raise ValueError("Count families require non-negative observations")

    densities: List[Density] = []
    if zero_inflation:
        densities.append(ZeroInflation(obs))

    ref = obs[obs > 0] if zero_inflation and np.any(obs > 0) else obs
    ref = ref.astype(float)
    quantiles = np.quantile(ref, (np.arange(n_components) + 0.5) / n_components)
    overall_var = float(np.var(ref)) if len(ref) > 1 else 1.0

    for k in range(n_components):
        center = float(quantiles[k])
        if family == 'negbinom':
            # scale the overall dispersion to the component's level
            var = max(overall_var / n_components, center * 1.5)
            densities.append(NegativeBinomial.from_moments(obs, center, var))
        elif family == 'poisson':
            densities.append(Poisson(obs, lambda_=max(center, 1e-3)))
        else:
            var = max(overall_var / n_components, 1e-6)
            densities.append(Gaussian(obs, mean=center, variance=var))

    return densities
