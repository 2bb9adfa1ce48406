"""Shared argparse argument factories for SegHMM CLI tools.

Each function adds a group of related arguments to an ArgumentParser.
Default values can be overridden per-script where needed.
"""

import argparse

from seghmm.densities.factory import FAMILIES


def add_input_args(parser: argparse.ArgumentParser) -> None:
    """Add -i/--input, --column and --no-header."""
    parser.add_argument(
        '-i', '--input', required=True,
        help="Tab-separated file with one observation per row"
    )
    parser.add_argument(
        '--column', default=None,
        help="Column name (or 0-based index) holding the signal (default: last column)"
    )
    parser.add_argument(
        '--no-header', action='store_true',
        help="Input file has no header row"
    )


def add_model_args(parser: argparse.ArgumentParser,
                   n_states: int = 3,
                   density: str = 'negbinom') -> None:
    """Add state count and emission family arguments."""
    parser.add_argument(
        '-n', '--n-states', type=int, default=n_states,
        help=f"Number of hidden states (default: {n_states})"
    )
    parser.add_argument(
        '--density', choices=list(FAMILIES), default=density,
        help=f"Emission density family (default: {density})"
    )
    parser.add_argument(
        '--zero-inflation', action='store_true',
        help="Reserve state 0 for exact zero observations"
    )


def add_convergence_args(parser: argparse.ArgumentParser,
                         max_iter: int = -1,
                         max_time: float = -1,
                         eps: float = 1e-4) -> None:
    """Add Baum-Welch stopping criteria (--max-iter, --max-time, --eps)."""
    parser.add_argument(
        '--max-iter', type=int, default=max_iter,
        help=f"Maximum EM iterations, negative for no limit (default: {max_iter})"
    )
    parser.add_argument(
        '--max-time', type=float, default=max_time,
        help=f"Maximum fit time in seconds, negative for no limit (default: {max_time})"
    )
    parser.add_argument(
        '--eps', type=float, default=eps,
        help=f"Convergence threshold on the log-likelihood change (default: {eps})"
    )


def add_parallel_args(parser: argparse.ArgumentParser,
                      default_cores: int = 1) -> None:
    """Add --cores and --time-major."""
    parser.add_argument(
        '--cores', '-c', type=int, default=default_cores,
        help=f"Worker threads for per-state work (0=auto, default: {default_cores})"
    )
    parser.add_argument(
        '--time-major', action='store_true',
        help="Keep a time-major copy of the density cache for the recursions"
    )


def add_output_args(parser: argparse.ArgumentParser,
                    required: bool = True,
                    help_text: str = "Directory for posteriors.tsv, segments.tsv and fit_summary.json") -> None:
    """Add -o/--output (created if missing)."""
    parser.add_argument(
        '-o', '--output', required=required,
        help=help_text
    )


def add_stats_args(parser: argparse.ArgumentParser) -> None:
    """Add --stats flag."""
    parser.add_argument(
        '--stats', action='store_true',
        help="Plot log-likelihood and posterior changes per iteration"
    )


def add_verbose_args(parser: argparse.ArgumentParser) -> None:
    """Add --verbose flag."""
    parser.add_argument(
        '-v', '--verbose', action='store_true',
        help="Print iteration table and parameter summaries"
    )


def add_version_args(parser: argparse.ArgumentParser) -> None:
    """Add --version, reporting the seghmm package version."""
    from seghmm import __version__
    parser.add_argument(
        '--version', action='version',
        version=f'seghmm %(prog)s {__version__}',
        help="Show the seghmm version and exit"
    )
