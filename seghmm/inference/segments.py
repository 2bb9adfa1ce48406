"""State calling and segment extraction from posterior matrices."""

from typing import Dict, Optional

import numpy as np


def call_states(posteriors: np.ndarray, threshold: Optional[float] = None) -> np.ndarray:
    """
    Most probable state at each position.

    Args:
        posteriors: (N, T) posterior matrix as returned by ScaleHMM.get_posteriors()
        threshold: If given, positions whose best posterior is below it get -1

    Returns:
        (T,) int array of state labels
    """
    states = np.argmax(posteriors, axis=0).astype(np.int32)
    if threshold is not None:
        best = np.max(posteriors, axis=0)
        states[best < threshold] = -1
    return states


def extract_segments(states: np.ndarray,
                     posteriors: Optional[np.ndarray] = None) -> Dict[str, np.ndarray]:
    """
    Collapse a state path into runs of identical labels.

    Args:
        states: (T,) state labels
        posteriors: Optional (N, T) posterior matrix; adds the mean posterior
            of each run's state as its score

    Returns:
        dict with 'starts', 'ends' (exclusive), 'states', and 'scores'
        (None without posteriors)
    """
    result = {
        'starts': np.array([], dtype=np.int64),
        'ends': np.array([], dtype=np.int64),
        'states': np.array([], dtype=np.int32),
        'scores': None,
    }
    states = np.asarray(states)
    if len(states) == 0:
        return result

    # run boundaries: positions where the label changes
    change = np.flatnonzero(np.diff(states) != 0) + 1
    starts = np.concatenate([[0], change])
    ends = np.concatenate([change, [len(states)]])

    result['starts'] = starts.astype(np.int64)
    result['ends'] = ends.astype(np.int64)
    result['states'] = states[starts].astype(np.int32)

    if posteriors is not None:
        # prefix sums give every run's mean in one pass
        scores = np.full(len(starts), np.nan, dtype=np.float64)
        for k in np.unique(result['states']):
            if k < 0:
                continue
            csum = np.concatenate([[0.0], np.cumsum(posteriors[k])])
            mask = result['states'] == k
            s = starts[mask]
            e = ends[mask]
            scores[mask] = (csum[e] - csum[s]) / (e - s)
        result['scores'] = scores

    return result
