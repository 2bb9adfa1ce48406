#!/usr/bin/env python3
"""
SegHMM fit
Fit an N-state HMM to one signal track and call states.

Input: a tab-separated file with one observation per row (e.g. binned read
counts). Output directory receives:
- posteriors.tsv: per-position state and posterior of every state
- segments.tsv: runs of identical called states with mean posterior
- fit_summary.json: fit status, starting and fitted parameters
- convergence.png (with --stats)
"""

import argparse
import json
import os
import signal
import sys

import numpy as np
import pandas as pd

from seghmm.cli.common import (
    add_convergence_args,
    add_input_args,
    add_model_args,
    add_output_args,
    add_parallel_args,
    add_stats_args,
    add_verbose_args,
    add_version_args,
)
from seghmm.core.cancellation import CancellationToken
from seghmm.core.errors import FitCancelled, NumericDivergence
from seghmm.core.hmm import ScaleHMM
from seghmm.core.monitor import TrainingMonitor
from seghmm.densities.factory import build_densities
from seghmm.inference.segments import call_states, extract_segments


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Fit a scaled Baum-Welch HMM to a signal track',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    add_input_args(parser)
    add_model_args(parser)
    add_convergence_args(parser)
    add_parallel_args(parser)
    add_output_args(parser)
    add_stats_args(parser)
    add_verbose_args(parser)
    add_version_args(parser)
    parser.add_argument('--progress', action='store_true',
                        help='Show a progress bar')
    return parser.parse_args(argv)


def load_observations(filepath: str, column=None, header: bool = True) -> np.ndarray:
    """
    Read one signal column from a tab-separated file.

    Args:
        filepath: Path to the file
        column: Column name or 0-based index (default: last column)
        header: Whether the first row is a header

    Returns:
        1D observation array
    """
    df = pd.read_csv(filepath, sep='\t', comment='#', header=0 if header else None)
    if df.empty:
        raise ValueError(f"No observations in {filepath}")

    if column is None:
        series = df.iloc[:, -1]
    elif column in df.columns:
        series = df[column]
    elif str(column).isdigit() and int(column) < df.shape[1]:
        series = df.iloc[:, int(column)]
    else:
        raise ValueError(f"Column '{column}' not found in {filepath}")

    values = pd.to_numeric(series, errors='coerce')
    if values.isna().any():
        n_bad = int(values.isna().sum())
        raise ValueError(f"{n_bad} non-numeric values in column '{series.name}' of {filepath}")
    return values.to_numpy()


def write_outputs(model: ScaleHMM, outdir: str, result, initial_A: np.ndarray,
                  initial_proba: np.ndarray):
    """Write posteriors, segments and the fit summary."""
    post = model.get_posteriors()
    states = call_states(post)

    table = pd.DataFrame({'position': np.arange(model.T), 'state': states})
    for i in range(model.N):
        table[f'P{i}'] = post[i]
    table.to_csv(os.path.join(outdir, 'posteriors.tsv'), sep='\t', index=False,
                 float_format='%.6g')

    seg = extract_segments(states, post)
    pd.DataFrame({
        'start': seg['starts'],
        'end': seg['ends'],
        'state': seg['states'],
        'score': seg['scores'],
    }).to_csv(os.path.join(outdir, 'segments.tsv'), sep='\t', index=False,
              float_format='%.4f')

    summary = {
        'fit': result.to_dict(),
        'initial': {
            'transmat': initial_A.tolist(),
            'startprob': initial_proba.tolist(),
        },
        'model': model.to_dict(),
    }
    with open(os.path.join(outdir, 'fit_summary.json'), 'w') as f:
        json.dump(summary, f, indent=2)

    return len(seg['starts'])


def plot_convergence(monitor: TrainingMonitor, outdir: str):
    """Plot log(P) and posterior distance over iterations."""
    import matplotlib
    matplotlib.use('Agg')
    import matplotlib.pyplot as plt

    records = [r for r in monitor.records if r['iteration'] > 0]
    if not records:
        print("  No iterations to plot")
        return None

    iters = [r['iteration'] for r in records]
    fig, axes = plt.subplots(3, 1, figsize=(8, 9), sharex=True)

    axes[0].plot(iters, [r['log_p'] for r in records], marker='o', ms=3)
    axes[0].set_ylabel('log(P)')

    axes[1].plot(iters, [r['posterior_distance'] for r in records], marker='o', ms=3,
                 color='tab:orange')
    axes[1].set_ylabel('Diff in posterior')

    axes[2].plot(iters, [r['state_flips'] for r in records], marker='o', ms=3,
                 color='tab:green')
    axes[2].set_ylabel('Diff in state')
    axes[2].set_xlabel('Iteration')

    plt.tight_layout()
    png_path = os.path.join(outdir, 'convergence.png')
    plt.savefig(png_path, dpi=150)
    plt.close(fig)
    return png_path


def main(argv=None):
    args = parse_args(argv)

    os.makedirs(args.output, exist_ok=True)

    print(f"Loading observations from {args.input}")
    try:
        obs = load_observations(args.input, args.column, header=not args.no_header)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    if args.density != 'gaussian':
        if np.any(obs < 0) or not np.allclose(obs, np.round(obs)):
            print(f"Error: density '{args.density}' needs non-negative integer counts")
            sys.exit(1)
        obs = np.round(obs).astype(np.int64)
    print(f"  {len(obs):,} observations")

    try:
        densities = build_densities(obs, args.n_states, family=args.density,
                                    zero_inflation=args.zero_inflation)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    model = ScaleHMM(len(obs), args.n_states, densities=densities,
                     time_major=args.time_major, n_jobs=args.cores)
    initial_A = np.zeros((args.n_states, args.n_states))
    initial_proba = np.zeros(args.n_states)
    model.initialize_transition_probs(initial_A, use_initial_params=False)
    model.initialize_proba(initial_proba, use_initial_params=False)

    # Ctrl-C stops the fit at the next phase boundary
    token = CancellationToken()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())

    monitor = TrainingMonitor(verbose=args.verbose)
    print(f"\nFitting {args.n_states}-state HMM ({args.density}"
          f"{', zero-inflated' if args.zero_inflation else ''})...")
    try:
        result = model.baum_welch(max_iter=args.max_iter, max_time=args.max_time,
                                  eps=args.eps, monitor=monitor, cancel_check=token,
                                  progress=args.progress)
    except NumericDivergence as e:
        print(f"Error: {e}")
        print("  Parameters of the last valid iteration are kept; no output written.")
        sys.exit(1)
    except FitCancelled as e:
        result = e.result
        if not monitor.history:
            print(f"Error: fit cancelled in iteration {result.n_iter} ({e.phase}) "
                  f"before any iteration completed; no output written.")
            sys.exit(1)
        print(f"\nCancelled after {result.n_iter} iterations ({e.phase}); "
              f"writing results of the last completed iteration")
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(f"  Status: {result.status.value}")
    if not monitor.history:
        print("  No iteration completed (--max-iter/--max-time of 0); no output written.")
        return
    print(f"  Iterations: {result.n_iter}, time: {result.elapsed:.1f}s")
    print(f"  log(P) = {result.log_p:.6f}, dlog(P) = {result.dlog_p:.3e}")
    weights = model.calc_weights()
    for i, d in enumerate(model.density_functions):
        print(f"  state {i}: weight = {weights[i]:.4f}, {d!r}")

    print(f"\nSaving to {args.output}")
    n_segments = write_outputs(model, args.output, result, initial_A, initial_proba)
    print(f"  Saved: posteriors.tsv, segments.tsv ({n_segments:,} segments), fit_summary.json")

    if args.stats:
        png = plot_convergence(monitor, args.output)
        if png:
            print(f"  Saved: {os.path.basename(png)}")

    print("Done!")


if __name__ == '__main__':
    main()
