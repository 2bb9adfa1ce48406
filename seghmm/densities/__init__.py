"""Emission densities: the Density interface and concrete families."""

from seghmm.densities.base import Density
from seghmm.densities.simple import FixedDensity, ZeroInflation
from seghmm.densities.counts import Poisson, NegativeBinomial
from seghmm.densities.gaussian import Gaussian
from seghmm.densities.factory import build_densities, FAMILIES

__all__ = [
    'Density',
    'FixedDensity',
    'ZeroInflation',
    'Poisson',
    'NegativeBinomial',
    'Gaussian',
    'build_densities',
    'FAMILIES',
]
