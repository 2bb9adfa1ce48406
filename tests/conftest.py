"""
Shared pytest fixtures for SegHMM tests.
"""
import pytest
import numpy as np
import tempfile


@pytest.fixture
def hand_densities():
    """
    Fixed likelihoods for a 2-state, 4-step sequence.
    Row i holds b_i(t) for t = 0..3.
    """
    return np.array([
        [0.5, 0.1, 0.4, 0.2],
        [0.1, 0.6, 0.2, 0.3],
    ])


@pytest.fixture
def hand_transmat():
    return np.array([[0.8, 0.2], [0.3, 0.7]])


@pytest.fixture
def hand_startprob():
    return np.array([0.6, 0.4])


@pytest.fixture
def hand_model(hand_densities, hand_transmat, hand_startprob):
    """ScaleHMM on the hand-computable sequence, not yet trained."""
    from seghmm.core.hmm import ScaleHMM
    from seghmm.densities import FixedDensity

    model = ScaleHMM(4, 2, densities=[FixedDensity(row) for row in hand_densities])
    model.initialize_transition_probs(hand_transmat, use_initial_params=True)
    model.initialize_proba(hand_startprob, use_initial_params=True)
    return model


@pytest.fixture
def gaussian_observations():
    """Two-level signal with long runs: low (mean 0) and high (mean 4)."""
    np.random.seed(42)
    levels = np.repeat([0.0, 4.0, 0.0, 4.0, 0.0], [60, 40, 50, 30, 70])
    return levels + np.random.normal(0, 1.0, size=len(levels))


@pytest.fixture
def count_observations():
    """Read-count-like track: zeros, background and enriched regions."""
    np.random.seed(7)
    parts = [
        np.zeros(40, dtype=np.int64),
        np.random.poisson(3, size=120),
        np.random.poisson(20, size=60),
        np.zeros(30, dtype=np.int64),
        np.random.poisson(3, size=100),
        np.random.poisson(20, size=50),
    ]
    return np.concatenate(parts)


@pytest.fixture
def gaussian_model(gaussian_observations):
    """2-state Gaussian ScaleHMM with default A and uniform proba."""
    from seghmm.core.hmm import ScaleHMM

    return ScaleHMM.from_observations(gaussian_observations, 2, family='gaussian')


@pytest.fixture
def temp_dir():
    """Temporary directory for file operations."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir
