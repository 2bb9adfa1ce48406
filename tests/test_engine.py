"""
Tests for the numeric engine pieces: buffers, kernels, the state pool,
cancellation and the training monitor.
"""
import threading

import pytest
import numpy as np

from seghmm.core.buffers import HMMBuffers
from seghmm.core.kernels import forward_pass, backward_pass, sumxi_row, posteriors, log_likelihood
from seghmm.core.parallel import StatePool, resolve_n_jobs
from seghmm.core.cancellation import CancellationToken, checkpoint
from seghmm.core.errors import FitCancelled, NumericDivergence
from seghmm.core.monitor import (
    TrainingMonitor,
    format_iteration_header,
    format_iteration_row,
    format_parameters,
)
from seghmm.densities import Gaussian


class TestBuffers:

    def test_shapes(self):
        buf = HMMBuffers(50, 3)
        assert buf.A.shape == (3, 3)
        assert buf.scalealpha.shape == (50, 3)
        assert buf.densities.shape == (3, 50)
        assert buf.gamma.shape == (3, 50)
        assert buf.tdensities is None
        assert buf.density_view().shape == (50, 3)

    def test_time_major_mirror(self):
        buf = HMMBuffers(5, 2, time_major=True)
        buf.densities[:] = np.arange(10).reshape(2, 5)
        buf.sync_time_major()
        assert buf.density_view() is buf.tdensities
        assert buf.tdensities.flags['C_CONTIGUOUS']
        np.testing.assert_array_equal(buf.density_view(), buf.densities.T)

    def test_reset_statistics(self):
        buf = HMMBuffers(4, 2)
        buf.sumxi[:] = 1
        buf.sumgamma[:] = 1
        buf.gammaold[:] = 1
        buf.A[:] = 0.5
        buf.reset_statistics()
        assert buf.sumxi.sum() == 0
        assert buf.sumgamma.sum() == 0
        assert buf.gammaold.sum() == 0
        assert buf.A.sum() == 2.0

    def test_invalid(self):
        with pytest.raises(ValueError):
            HMMBuffers(0, 1)


class TestKernels:

    def _run(self, dens, A, pi):
        T, N = dens.shape
        c = np.zeros(T)
        alpha = np.zeros((T, N))
        beta = np.zeros((T, N))
        fwd = forward_pass(pi, A, dens, c, alpha)
        bwd = backward_pass(A, dens, c, beta)
        return fwd, bwd, c, alpha, beta

    def test_success_returns_sentinel(self):
        dens = np.array([[0.5, 0.1], [0.1, 0.6], [0.4, 0.2]])
        A = np.array([[0.8, 0.2], [0.3, 0.7]])
        fwd, bwd, c, alpha, beta = self._run(dens, A, np.array([0.6, 0.4]))
        assert tuple(fwd) == (-1, -1)
        assert tuple(bwd) == (-1, -1)
        np.testing.assert_allclose(beta[-1], 1.0 / c[-1])

    def test_gamma_identity(self):
        """alpha_hat * beta_hat * c sums to 1 at every position."""
        np.random.seed(0)
        dens = np.random.uniform(0.01, 1, size=(30, 3))
        A = np.random.dirichlet(np.ones(3), size=3)
        _, _, c, alpha, beta = self._run(dens, A, np.full(3, 1 / 3))

        gamma = np.zeros((3, 30))
        sumgamma = np.zeros(3)
        posteriors(alpha, beta, c, gamma, sumgamma)
        np.testing.assert_allclose(gamma.sum(axis=0), np.ones(30), rtol=1e-12)
        np.testing.assert_allclose(sumgamma, gamma[:, :-1].sum(axis=1))

    def test_zero_scale_factor_reported(self):
        dens = np.array([[0.5, 0.5], [0.0, 0.0], [0.5, 0.5]])
        A = np.array([[0.5, 0.5], [0.5, 0.5]])
        T, N = dens.shape
        fwd = forward_pass(np.array([0.5, 0.5]), A, dens, np.zeros(T), np.zeros((T, N)))
        assert tuple(fwd) == (1, 0)

    def test_sumxi_row_only_writes_own_row(self):
        np.random.seed(1)
        dens = np.random.uniform(0.1, 1, size=(10, 2))
        A = np.array([[0.9, 0.1], [0.2, 0.8]])
        _, _, c, alpha, beta = self._run(dens, A, np.array([0.5, 0.5]))

        sumxi = np.full((2, 2), -7.0)
        sumxi_row(0, alpha, A, dens, beta, sumxi[0])
        assert np.all(sumxi[1] == -7.0)
        assert np.all(sumxi[0] > 0)

    def test_log_likelihood(self):
        assert log_likelihood(np.array([0.5, 0.25])) == pytest.approx(np.log(0.125))
        assert log_likelihood(np.array([0.5, 0.0])) == float('-inf')


class TestStatePool:

    def test_resolve(self):
        assert resolve_n_jobs(3) == 3
        assert resolve_n_jobs(0) >= 1
        assert resolve_n_jobs(-1) >= 1

    def test_inline(self):
        with StatePool(1) as pool:
            assert pool.map_states(lambda i: i * i, 4) == [0, 1, 4, 9]

    def test_threads(self):
        seen = set()
        lock = threading.Lock()

        def task(i):
            with lock:
                seen.add(threading.current_thread().name)
            return i + 1

        with StatePool(2) as pool:
            assert pool.map_states(task, 6) == [1, 2, 3, 4, 5, 6]
        assert 1 <= len(seen) <= 2
        assert pool._executor is None

    def test_exception_propagates(self):
        def task(i):
            if i == 2:
                raise RuntimeError("state 2 failed")
            return i

        with StatePool(3) as pool:
            with pytest.raises(RuntimeError, match="state 2"):
                pool.map_states(task, 4)


class TestCancellation:

    def test_token(self):
        token = CancellationToken()
        assert not token()
        token.cancel()
        assert token.cancelled
        assert token()
        token.reset()
        assert not token.cancelled

    def test_token_from_other_thread(self):
        token = CancellationToken()
        t = threading.Thread(target=token.cancel)
        t.start()
        t.join()
        with pytest.raises(FitCancelled) as excinfo:
            checkpoint(token, 'forward')
        assert excinfo.value.phase == 'forward'

    def test_no_check(self):
        checkpoint(None, 'forward')
        checkpoint(lambda: False, 'forward')

    def test_raising_check_keeps_phase(self):
        def check():
            raise FitCancelled('custom')

        with pytest.raises(FitCancelled) as excinfo:
            checkpoint(check, 'backward')
        assert excinfo.value.phase == 'custom'


class TestErrors:

    def test_divergence_message(self):
        err = NumericDivergence('forward', 3, (10, 1), float('nan'))
        assert 'forward' in str(err)
        assert 'iteration 3' in str(err)
        assert '(10, 1)' in str(err)
        assert err.result is None

    def test_cancelled_message(self):
        assert "statistics" in str(FitCancelled('statistics'))


class TestMonitor:

    def _record(self, iteration):
        return {'iteration': iteration, 'log_p': -100.0 + iteration, 'dlog_p': 1.0,
                'state_flips': 2, 'posterior_distance': 0.5, 'elapsed': 0.1}

    def test_history_skips_initial_record(self):
        monitor = TrainingMonitor()
        for it in range(3):
            monitor.report_iteration(self._record(it))
        assert monitor.history == [-99.0, -98.0]
        assert monitor.last_record['iteration'] == 2

    def test_silent_by_default(self, capsys):
        monitor = TrainingMonitor()
        monitor.report_iteration(self._record(0))
        monitor.report_message("hello")
        assert capsys.readouterr().out == ''

    def test_header_repeats(self, capsys):
        monitor = TrainingMonitor(verbose=True)
        for it in range(41):
            monitor.report_iteration(self._record(it))
        out = capsys.readouterr().out
        assert out.count('Iteration') == 3

    def test_degenerate_state(self):
        monitor = TrainingMonitor()
        monitor.report_degenerate_state(4, 1)
        assert monitor.degenerate_states == [(4, 1)]

    def test_format_row(self):
        row = format_iteration_row(self._record(7))
        assert len(row) == len(format_iteration_header())
        assert row.split()[0] == '7'

    def test_format_parameters(self):
        obs = np.arange(5.0)
        monitor = TrainingMonitor()
        monitor.report_parameters("INITIAL PARAMETERS", -12.5, np.array([0.5, 0.5]),
                                  np.array([[0.9, 0.1], [0.1, 0.9]]),
                                  [Gaussian(obs, 1.0, 2.0), Gaussian(obs, 3.0, 1.0)])
        dump = monitor.parameter_dumps[0]
        text = format_parameters(dump)
        assert 'INITIAL PARAMETERS' in text
        assert 'A[0][1] = 0.100000' in text
        assert 'state 1 (Gaussian): mean = 3.00, var = 1.00' in text
