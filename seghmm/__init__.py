"""
SegHMM - Hidden Markov Model segmentation of long signals with
continuous or count emissions, trained by scaled Baum-Welch.
"""

__version__ = "1.0.0"

from seghmm.core.hmm import ScaleHMM, FitResult, FitStatus
from seghmm.core.errors import NumericDivergence, FitCancelled, DegenerateStateWarning
from seghmm.core.cancellation import CancellationToken
from seghmm.core.monitor import TrainingMonitor
from seghmm.densities import (
    Density,
    FixedDensity,
    ZeroInflation,
    Poisson,
    NegativeBinomial,
    Gaussian,
    build_densities,
)
