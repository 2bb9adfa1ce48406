"""Exceptions and warnings raised by the Baum-Welch fit."""

from typing import Optional, Tuple


class SegHMMError(Exception):
    """Base class for fit errors."""


class NumericDivergence(SegHMMError):
    """
    A scale factor, scaled forward/backward variable, log-likelihood or
    reestimated transition probability became non-finite.

    The model keeps the last valid parameter set. ``result`` holds the
    partial FitResult of the aborted run (set by ScaleHMM.baum_welch).
    """

    def __init__(self, phase: str, iteration: int,
                 index: Optional[Tuple[int, ...]] = None, value: float = float('nan')):
        self.phase = phase
        self.iteration = iteration
        self.index = index
        self.value = value
        self.result = None
        msg = f"Non-finite value in {phase} at iteration {iteration}"
        if index is not None:
            msg += f", index {index}"
        msg += f" (value = {value})"
        super().__init__(msg)


class FitCancelled(SegHMMError):
    """Cancellation requested at a phase boundary of the fit."""

    def __init__(self, phase: str = 'unknown'):
        self.phase = phase
        self.result = None
        super().__init__(f"Fit cancelled after phase '{phase}'")


class DegenerateStateWarning(UserWarning):
    """A state has zero expected occupancy; its transition row was kept."""
