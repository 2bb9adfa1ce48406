"""Training diagnostics: per-iteration records and parameter dumps."""

from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from tqdm import tqdm


HEADER_EVERY = 20


class TrainingMonitor:
    """
    Collects what happens during a Baum-Welch fit.

    Attributes:
        history: log-likelihood of every completed iteration
        records: one dict per iteration with keys iteration, log_p, dlog_p,
            state_flips, posterior_distance, elapsed
        parameter_dumps: parameter snapshots taken at the start and end of a fit
        degenerate_states: (iteration, state) pairs whose transition row was
            not reestimated because the state was never occupied

    With verbose=True, records are printed as a fixed-width table and
    parameter dumps as boxed blocks.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.history: List[float] = []
        self.records: List[Dict[str, Any]] = []
        self.parameter_dumps: List[Dict[str, Any]] = []
        self.degenerate_states: List[tuple] = []

    def _write(self, line: str):
        tqdm.write(line)

    def report_iteration(self, record: Dict[str, Any]):
        """Store one iteration record; iteration 0 is the pre-fit state."""
        self.records.append(dict(record))
        if record['iteration'] > 0:
            self.history.append(record['log_p'])
        if self.verbose:
            if record['iteration'] % HEADER_EVERY == 0:
                self._write(format_iteration_header())
            self._write(format_iteration_row(record))

    def report_parameters(self, label: str, log_p: float, proba: np.ndarray,
                          A: np.ndarray, densities: Sequence):
        """Snapshot the full parameter set."""
        dump = {
            'label': label,
            'log_p': float(log_p),
            'proba': np.array(proba, copy=True),
            'transmat': np.array(A, copy=True),
            'densities': [
                {'type': type(d).__name__, 'mean': d.get_mean(), 'variance': d.get_variance()}
                for d in densities
            ],
        }
        self.parameter_dumps.append(dump)
        if self.verbose:
            self._write(format_parameters(dump))

    def report_degenerate_state(self, iteration: int, state: int):
        self.degenerate_states.append((iteration, state))
        if self.verbose:
            self._write(f"Not reestimating A[{state}][x] because sumgamma[{state}] = 0")

    def report_message(self, message: str):
        if self.verbose:
            self._write(message)

    @property
    def last_record(self) -> Optional[Dict[str, Any]]:
        return self.records[-1] if self.records else None


def format_iteration_header() -> str:
    return (f"{'Iteration':>10}{'log(P)':>20}{'dlog(P)':>20}"
            f"{'Diff in state':>20}{'Diff in posterior':>20}{'Time in sec':>15}")


def format_iteration_row(record: Dict[str, Any]) -> str:
    return (f"{record['iteration']:>10d}{record['log_p']:>20.6f}{record['dlog_p']:>20.6f}"
            f"{record['state_flips']:>20d}{record['posterior_distance']:>20.6f}"
            f"{record['elapsed']:>15.2f}")


def format_parameters(dump: Dict[str, Any]) -> str:
    """Boxed block with logP, initial probabilities, transitions, densities."""
    width = 80
    rule = ' ' + '-' * (width - 1)
    lines = [rule, f"| {dump['label']}", f"| log(P) = {dump['log_p']:.6f}", "|"]

    lines.append("|  " + "  ".join(
        f"proba[{i}] = {p:.6f}" for i, p in enumerate(dump['proba'])))
    lines.append("|")
    A = dump['transmat']
    for i in range(A.shape[0]):
        lines.append("|  " + "  ".join(
            f"A[{i}][{j}] = {A[i, j]:.6f}" for j in range(A.shape[1])))
    lines.append("|")
    for i, d in enumerate(dump['densities']):
        lines.append(f"|  state {i} ({d['type']}): mean = {d['mean']:.2f}, var = {d['variance']:.2f}")
    lines.append(rule)
    return "\n".join(lines)
