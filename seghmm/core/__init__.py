"""Core HMM: buffers, scaled forward-backward kernels, Baum-Welch training."""

from seghmm.core.hmm import ScaleHMM, FitResult, FitStatus
from seghmm.core.errors import NumericDivergence, FitCancelled, DegenerateStateWarning, SegHMMError
from seghmm.core.cancellation import CancellationToken
from seghmm.core.monitor import TrainingMonitor
