"""
SegHMM HMM module

Provides:
1. ScaleHMM: N-state HMM with pluggable per-state emission densities
2. Scaled forward-backward (numba kernels in seghmm.core.kernels)
3. Baum-Welch training with iteration, wall-time and log-likelihood
   stopping criteria, cooperative cancellation, and per-state parallelism

The model is built for one observation sequence of length T. All numeric
buffers are allocated once at construction and reused by every iteration.
"""

import time
import warnings
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
from tqdm import tqdm

from seghmm.core.buffers import HMMBuffers
from seghmm.core.cancellation import checkpoint
from seghmm.core.errors import DegenerateStateWarning, FitCancelled, NumericDivergence
from seghmm.core.kernels import (
    backward_pass,
    forward_pass,
    log_likelihood,
    posteriors,
    sumxi_row,
)
from seghmm.core.monitor import TrainingMonitor
from seghmm.core.parallel import StatePool
from seghmm.densities.base import Density

# Default self-transition probability for generated transition matrices
DEFAULT_SELF_TRANSITION = 0.9


class FitStatus(Enum):
    """Where a Baum-Welch run ended up."""
    RUNNING = 'running'
    CONVERGED = 'converged'
    ITERATION_LIMIT = 'iteration_limit'
    TIME_LIMIT = 'time_limit'
    DIVERGED = 'diverged'
    CANCELLED = 'cancelled'


class FitResult:
    """
    Outcome of ScaleHMM.baum_welch.

    Attributes:
        n_iter: Number of iterations started
        elapsed: Wall time in seconds
        dlog_p: Last log-likelihood change
        log_p: Last valid log-likelihood
        status: FitStatus
    """

    def __init__(self):
        self.n_iter = 0
        self.elapsed = 0.0
        self.dlog_p = float('inf')
        self.log_p = float('-inf')
        self.status = FitStatus.RUNNING

    @property
    def converged(self) -> bool:
        return self.status is FitStatus.CONVERGED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_iter': self.n_iter,
            'elapsed': self.elapsed,
            'dlog_p': self.dlog_p,
            'log_p': self.log_p,
            'status': self.status.value,
        }

    def __repr__(self):
        return (f"FitResult(status={self.status.value}, n_iter={self.n_iter}, "
                f"log_p={self.log_p:.6f}, dlog_p={self.dlog_p:.3e}, elapsed={self.elapsed:.2f}s)")


class ScaleHMM:
    """
    Hidden Markov Model trained by Baum-Welch with scaled recursions.

    Args:
        T: Length of the observation sequence
        N: Number of hidden states
        densities: One Density per state (can also be assigned later to
            ``density_functions``); the model owns them
        time_major: Keep a (T, N) copy of the density cache and run the
            recursions on it instead of a transposed view
        n_jobs: Worker threads for per-state work (0 = all cores)
        reference_state: State whose hard assignment (posterior > 0.5) is
            compared between iterations for the flip-count diagnostic
            (default: last state)

    Usage:
        model = ScaleHMM(len(obs), 3, densities=build_densities(obs, 3))
        model.initialize_transition_probs()
        model.initialize_proba()
        result = model.baum_welch(max_iter=500, eps=1e-4)
        post = model.get_posteriors()
    """

    def __init__(self, T: int, N: int, densities: Optional[Sequence[Density]] = None,
                 time_major: bool = False, n_jobs: int = 1,
                 reference_state: Optional[int] = None):
        self._buf = HMMBuffers(T, N, time_major=time_major)
        self.T = self._buf.T
        self.N = self._buf.N
        self.density_functions: List[Density] = list(densities) if densities is not None else []
        self.n_jobs = n_jobs
        if reference_state is None:
            reference_state = self.N - 1
        if not 0 <= reference_state < self.N:
            raise ValueError(f"reference_state must be in [0, {self.N}), got {reference_state}")
        self.reference_state = reference_state

        self.logP = float('-inf')
        self.dlogP = float('inf')
        self.sumdiff_state = 0
        self.sumdiff_posterior = 0.0

        self.monitor_: Optional[TrainingMonitor] = None
        self.result_: Optional[FitResult] = None

    @classmethod
    def from_observations(cls, obs: np.ndarray, n_states: int, family: str = 'negbinom',
                          zero_inflation: bool = False, **kwargs) -> 'ScaleHMM':
        """Model with data-initialized densities and default A and proba."""
        from seghmm.densities.factory import build_densities

        densities = build_densities(obs, n_states, family=family, zero_inflation=zero_inflation)
        model = cls(len(obs), n_states, densities=densities, **kwargs)
        model.initialize_transition_probs()
        model.initialize_proba()
        return model

    # =========================================================================
    # Initialization
    # =========================================================================

    def initialize_transition_probs(self, initial_A: Optional[np.ndarray] = None,
                                    use_initial_params: bool = False) -> np.ndarray:
        """
        Set the transition matrix.

        With use_initial_params, A is copied from initial_A (N x N, or flat
        row-major of length N*N). Otherwise A gets DEFAULT_SELF_TRANSITION on
        the diagonal and the remainder spread evenly off the diagonal, and
        the generated matrix is written back into initial_A (if given) so
        the caller can record the exact starting point.

        Returns:
            A copy of the transition matrix in use
        """
        A = self._buf.A
        if use_initial_params:
            if initial_A is None:
                raise ValueError("initial_A is required when use_initial_params=True")
            given = np.asarray(initial_A, dtype=float).reshape(self.N, self.N)
            A[:] = given
        else:
            if self.N == 1:
                A[:] = 1.0
            else:
                other = (1.0 - DEFAULT_SELF_TRANSITION) / (self.N - 1.0)
                A[:] = other
                np.fill_diagonal(A, DEFAULT_SELF_TRANSITION)
            if initial_A is not None:
                initial_A[...] = A.reshape(np.shape(initial_A))
        return A.copy()

    def initialize_proba(self, initial_proba: Optional[np.ndarray] = None,
                         use_initial_params: bool = False) -> np.ndarray:
        """
        Set the initial state distribution.

        Copies initial_proba when use_initial_params, otherwise uses the
        uniform distribution and writes it back into initial_proba.
        """
        proba = self._buf.proba
        if use_initial_params:
            if initial_proba is None:
                raise ValueError("initial_proba is required when use_initial_params=True")
            proba[:] = np.asarray(initial_proba, dtype=float).reshape(self.N)
        else:
            proba[:] = 1.0 / self.N
            if initial_proba is not None:
                initial_proba[...] = proba.reshape(np.shape(initial_proba))
        return proba.copy()

    def _check_ready(self):
        if len(self.density_functions) != self.N:
            raise ValueError(
                f"Expected {self.N} density functions, got {len(self.density_functions)}")
        for i, d in enumerate(self.density_functions):
            n = getattr(d, 'T', self.T)
            if n != self.T:
                raise ValueError(f"Density for state {i} covers {n} observations, model has T={self.T}")
        empty_rows = np.flatnonzero(self._buf.A.sum(axis=1) == 0)
        if len(empty_rows) > 0:
            raise ValueError(f"Transition row {int(empty_rows[0])} sums to 0; "
                             f"call initialize_transition_probs() before fitting")
        if self._buf.proba.sum() == 0:
            raise ValueError("Initial probabilities sum to 0; call initialize_proba() before fitting")

    # =========================================================================
    # E-step phases
    # =========================================================================

    def _calc_densities(self, pool: StatePool):
        """Fill the density cache; states write disjoint rows."""
        buf = self._buf

        def _evaluate(i):
            self.density_functions[i].evaluate(buf.densities[i])

        pool.map_states(_evaluate, self.N)
        buf.sync_time_major()

    def _forward(self, iteration: int):
        buf = self._buf
        t, i = forward_pass(buf.proba, buf.A, buf.density_view(),
                            buf.scalefactoralpha, buf.scalealpha)
        if t >= 0:
            raise NumericDivergence('forward', iteration, (int(t), int(i)),
                                    float(buf.scalealpha[t, i]))

    def _backward(self, iteration: int):
        buf = self._buf
        t, i = backward_pass(buf.A, buf.density_view(),
                             buf.scalefactoralpha, buf.scalebeta)
        if t >= 0:
            raise NumericDivergence('backward', iteration, (int(t), int(i)),
                                    float(buf.scalebeta[t, i]))

    def _calc_loglikelihood(self) -> float:
        return log_likelihood(self._buf.scalefactoralpha)

    def _calc_sumxi(self, pool: StatePool):
        buf = self._buf
        dens = buf.density_view()

        def _row(i):
            sumxi_row(i, buf.scalealpha, buf.A, dens, buf.scalebeta, buf.sumxi[i])

        pool.map_states(_row, self.N)

    def _calc_sumgamma(self):
        buf = self._buf
        posteriors(buf.scalealpha, buf.scalebeta, buf.scalefactoralpha,
                   buf.gamma, buf.sumgamma)

    def _posterior_differences(self):
        """Flip count for the reference state and L1 distance to the last posterior."""
        buf = self._buf
        ref = self.reference_state
        current = buf.gamma[ref] > 0.5
        previous = buf.gammaold[ref] > 0.5
        self.sumdiff_state = int(np.count_nonzero(current != previous))
        self.sumdiff_posterior = float(np.abs(buf.gamma - buf.gammaold).sum())
        buf.gammaold[:] = buf.gamma

    # =========================================================================
    # M-step
    # =========================================================================

    def _reestimate(self, iteration: int, pool: StatePool):
        """
        Update proba, A and the densities from the current statistics.

        The new A is validated before anything is committed, so a divergence
        leaves the previous parameters in place.
        """
        buf = self._buf
        new_A = buf.A.copy()
        for i in range(self.N):
            if buf.sumgamma[i] == 0:
                warnings.warn(
                    f"Not reestimating A[{i}][x] because sumgamma[{i}] = 0 "
                    f"(iteration {iteration})",
                    DegenerateStateWarning,
                )
                if self.monitor_ is not None:
                    self.monitor_.report_degenerate_state(iteration, i)
                continue
            with np.errstate(divide='ignore', invalid='ignore'):
                row = buf.sumxi[i] / buf.sumgamma[i]
            bad = np.flatnonzero(~np.isfinite(row))
            if len(bad) > 0:
                j = int(bad[0])
                raise NumericDivergence('reestimation', iteration, (i, j), float(row[j]))
            new_A[i] = row

        buf.A[:] = new_A
        buf.proba[:] = buf.gamma[:, 0]

        def _update(i):
            self.density_functions[i].update(buf.gamma[i])

        pool.map_states(_update, self.N)

    def realign_states(self) -> bool:
        """
        Hook called when a fit ends normally (converged or hit a limit).

        Reserved for correcting label switching between symmetric states.
        The base model applies no relabeling; subclasses may override it
        and return True when they permuted the states.
        """
        return False

    # =========================================================================
    # Training loop
    # =========================================================================

    def _record(self, iteration: int, elapsed: float) -> Dict[str, Any]:
        return {
            'iteration': iteration,
            'log_p': self.logP,
            'dlog_p': self.dlogP,
            'state_flips': self.sumdiff_state,
            'posterior_distance': self.sumdiff_posterior,
            'elapsed': elapsed,
        }

    def baum_welch(self, max_iter: int = -1, max_time: float = -1, eps: float = 1e-5,
                   monitor: Optional[TrainingMonitor] = None,
                   cancel_check: Optional[Callable[[], bool]] = None,
                   progress: bool = False, desc: str = "EM") -> FitResult:
        """
        Train with Baum-Welch until one stopping criterion holds.

        Each iteration evaluates the densities, runs the forward and backward
        passes, computes the log-likelihood and sufficient statistics, and
        then (unless it has converged) reestimates proba, A and the
        densities. Stopping criteria, in order:

        1. log-likelihood not finite -> NumericDivergence is raised
        2. |dlogP| < eps -> converged (no reestimation on that iteration)
        3. iteration == max_iter (if max_iter >= 0)
        4. elapsed >= max_time seconds (if max_time >= 0)

        For 3 and 4 the final reestimation is still applied.

        Args:
            max_iter: Maximum iterations (negative = unlimited)
            max_time: Maximum wall time in seconds (negative = unlimited)
            eps: Convergence threshold on the log-likelihood change
            monitor: Diagnostic sink (a silent TrainingMonitor by default)
            cancel_check: Zero-argument callable polled between phases;
                returning True (or raising FitCancelled) stops the fit
            progress: Show a tqdm progress bar
            desc: Progress bar label

        Returns:
            FitResult with iteration count, elapsed time, final dlogP and status

        Raises:
            NumericDivergence: non-finite scaled variable, log-likelihood or
                transition probability; ``e.result`` has the partial result
            FitCancelled: cancellation requested; ``e.result`` has the
                partial result
        """
        self._check_ready()
        buf = self._buf
        if monitor is None:
            monitor = TrainingMonitor()
        self.monitor_ = monitor
        result = FitResult()
        self.result_ = result

        log_p_old = float('-inf')
        self.dlogP = float('inf')
        buf.reset_statistics()

        start = time.perf_counter()
        elapsed = 0.0
        iteration = 0

        monitor.report_parameters("INITIAL PARAMETERS", self.logP, buf.proba, buf.A,
                                  self.density_functions)
        monitor.report_iteration(self._record(0, elapsed))

        pbar = tqdm(total=max_iter if max_iter >= 0 else None, desc=desc,
                    leave=False, disable=not progress)
        try:
            with StatePool(self.n_jobs) as pool:
                while ((elapsed < max_time or max_time < 0)
                       and (iteration < max_iter or max_iter < 0)):
                    iteration += 1
                    result.n_iter = iteration

                    self._calc_densities(pool)
                    checkpoint(cancel_check, 'densities')

                    self._forward(iteration)
                    checkpoint(cancel_check, 'forward')

                    self._backward(iteration)
                    checkpoint(cancel_check, 'backward')

                    log_p_new = self._calc_loglikelihood()
                    if not np.isfinite(log_p_new):
                        monitor.report_message(f"logP = {log_p_new} at iteration {iteration}")
                        raise NumericDivergence('loglikelihood', iteration, value=log_p_new)
                    self.logP = log_p_new
                    self.dlogP = log_p_new - log_p_old

                    self._calc_sumxi(pool)
                    self._calc_sumgamma()
                    checkpoint(cancel_check, 'statistics')

                    self._posterior_differences()

                    elapsed = time.perf_counter() - start
                    monitor.report_iteration(self._record(iteration, elapsed))
                    pbar.update(1)
                    pbar.set_postfix({'logprob': f'{self.logP:.2e}',
                                      'delta': f'{self.dlogP:.2e}'})

                    if abs(self.dlogP) < eps:
                        result.status = FitStatus.CONVERGED
                        monitor.report_message("Convergence reached!")
                        self.realign_states()
                        break

                    limit_status = None
                    if iteration == max_iter:
                        limit_status = FitStatus.ITERATION_LIMIT
                        monitor.report_message("Maximum number of iterations reached!")
                    elif max_time >= 0 and elapsed >= max_time:
                        limit_status = FitStatus.TIME_LIMIT
                        monitor.report_message("Exceeded maximum time!")
                    log_p_old = log_p_new

                    self._reestimate(iteration, pool)

                    # realign only once the last update has been committed
                    if limit_status is not None:
                        result.status = limit_status
                        self.realign_states()

            if result.status is FitStatus.RUNNING:
                # the loop never ran
                if max_iter >= 0 and iteration >= max_iter:
                    result.status = FitStatus.ITERATION_LIMIT
                else:
                    result.status = FitStatus.TIME_LIMIT

        except NumericDivergence as e:
            result.status = FitStatus.DIVERGED
            e.result = result
            raise
        except FitCancelled as e:
            result.status = FitStatus.CANCELLED
            e.result = result
            raise
        finally:
            pbar.close()
            result.elapsed = time.perf_counter() - start
            result.dlog_p = self.dlogP
            result.log_p = self.logP
            monitor.report_parameters("FINAL ESTIMATION RESULTS", self.logP, buf.proba,
                                      buf.A, self.density_functions)

        return result

    # =========================================================================
    # Accessors
    # =========================================================================

    def calc_weights(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Mixture weight of each state: mean posterior over all T positions.

        Uses every position, including the last one that sumgamma leaves
        out, so it stays valid if states are relabeled after the fit.
        """
        if out is None:
            out = np.empty(self.N)
        out[:] = self._buf.gamma.sum(axis=1) / self.T
        return out

    def get_posteriors(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        """Posterior matrix, shape (N, T). Copied into out if given."""
        if out is None:
            return self._buf.gamma.copy()
        out[:] = self._buf.gamma
        return out

    def get_transition(self, i: int, j: int) -> float:
        return float(self._buf.A[i, j])

    def get_initial(self, i: int) -> float:
        return float(self._buf.proba[i])

    def get_log_likelihood(self) -> float:
        return self.logP

    @property
    def transmat_(self) -> np.ndarray:
        return self._buf.A.copy()

    @property
    def startprob_(self) -> np.ndarray:
        return self._buf.proba.copy()

    @property
    def time_major(self) -> bool:
        return self._buf.time_major

    def get_scaled_forward(self) -> np.ndarray:
        """Scaled forward variables of the last iteration, shape (T, N)."""
        return self._buf.scalealpha.copy()

    def get_scaled_backward(self) -> np.ndarray:
        """Scaled backward variables of the last iteration, shape (T, N)."""
        return self._buf.scalebeta.copy()

    def get_scale_factors(self) -> np.ndarray:
        return self._buf.scalefactoralpha.copy()

    def get_sufficient_statistics(self):
        """(sumxi, sumgamma) of the last iteration."""
        return self._buf.sumxi.copy(), self._buf.sumgamma.copy()

    def to_dict(self) -> Dict[str, Any]:
        """Summary of the fitted parameters (for reports)."""
        return {
            'n_states': self.N,
            'length': self.T,
            'startprob': self._buf.proba.tolist(),
            'transmat': self._buf.A.tolist(),
            'log_likelihood': self.logP,
            'weights': self.calc_weights().tolist(),
            'densities': [
                dict(type=type(d).__name__, **d.params()) for d in self.density_functions
            ],
        }
