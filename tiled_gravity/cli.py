"""
tiled_gravity.cli

Command-line driver::

    python -m tiled_gravity test      -N 1024 -p 16 -q 4
    python -m tiled_gravity profile   -N 1024 -p 16 -q 4
    python -m tiled_gravity benchmark --ns 4096 8192 -p 16 -q 16 --plot speedup.png
"""
from __future__ import annotations

import argparse
import logging
import sys

import numpy as np

from .benchmark import check_correctness, profile_run, sweep
from .kernels import BACKENDS, get_gpu_info
from .launch import STRATEGIES, ConfigurationError
from .particles import DEFAULT_SEED, PRECISIONS

MODES = ('test', 'profile', 'benchmark')


def _configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("tiled_gravity")
    if verbose and not logger.hasHandlers():
        handler = logging.StreamHandler()
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='tiled_gravity',
        description='Tiled direct-summation gravity: correctness, profiling and benchmarks',
    )
    parser.add_argument('mode', choices=MODES, nargs='?', default='test',
                        help='test: compare with the reference; profile: one profiled pass; '
                             'benchmark: speedup over the reference (default: test)')
    parser.add_argument('-N', '--num-particles', type=int, default=2**10,
                        help='Number of particles for test/profile (default: 1024)')
    parser.add_argument('--ns', type=int, nargs='+', default=[2**12],
                        help='Particle counts for benchmark (default: 4096)')
    parser.add_argument('-p', '--tile-size', type=int, default=16,
                        help='Tile size p, threads per tile (default: 16)')
    parser.add_argument('-q', '--num-cols', type=int, default=1,
                        help='Columns per tile q (default: 1)')
    parser.add_argument('--strategy', choices=STRATEGIES, default='columns',
                        help='Tiling strategy (default: columns)')
    parser.add_argument('--backend', choices=BACKENDS, default='auto',
                        help='Kernel backend (default: auto)')
    parser.add_argument('--precision', choices=list(PRECISIONS), default='float32',
                        help='Floating point precision (default: float32)')
    parser.add_argument('--seed', type=int, default=DEFAULT_SEED,
                        help=f'Input seed (default: {DEFAULT_SEED})')
    parser.add_argument('--rtol', type=float, default=0.0,
                        help='Relative tolerance for test mode (default: 0, machine epsilon only)')
    parser.add_argument('--n-warmup', type=int, default=1,
                        help='Warmup iterations for benchmark (default: 1)')
    parser.add_argument('--n-bench', type=int, default=5,
                        help='Timed iterations for benchmark (default: 5)')
    parser.add_argument('--save', default=None,
                        help='HDF5 file for test targets or benchmark results')
    parser.add_argument('--plot', default=None,
                        help='Image file for the benchmark speedup plot')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log launch details')
    return parser


def _print_header(args, n) -> None:
    print("=" * 80)
    print(f"No. of particles: {n}")
    print(f"Tile size, p: {args.tile_size}")
    print(f"Cols per tile, q: {args.num_cols}")
    print(f"Strategy: {args.strategy}, backend: {args.backend}, precision: {args.precision}")
    print("=" * 80)


def _run_test(args, dtype) -> int:
    _print_header(args, args.num_particles)
    report, trg, trg2 = check_correctness(
        args.num_particles, args.tile_size, args.num_cols,
        strategy=args.strategy, backend=args.backend,
        seed=args.seed, dtype=dtype, rtol=args.rtol,
    )
    if not report.matches and args.num_particles < 10:
        print(trg)
        print(trg2)
        print(np.abs(trg - trg2))
    print(report.summary())

    if args.save:
        from .io import save_particles

        save_particles(args.save, overwrite=True, reference=trg, parallel=trg2)
        print(f"Saved targets to {args.save}")
    return 0 if report.matches else 1


def _run_profile(args, dtype) -> int:
    _print_header(args, args.num_particles)
    print("Running profiler...")
    profile_run(
        args.num_particles, args.tile_size, args.num_cols,
        strategy=args.strategy, backend=args.backend, seed=args.seed, dtype=dtype,
    )
    return 0


def _run_benchmark(args, dtype) -> int:
    info = get_gpu_info()
    if info['available']:
        print(f"GPU: {info['device_name']} (cc {info['compute_capability']})")
    else:
        print("No GPU available")

    results = sweep(
        args.ns, p=args.tile_size, q=args.num_cols,
        strategy=args.strategy, backend=args.backend,
        n_warmup=args.n_warmup, n_repeat=args.n_bench,
        seed=args.seed, dtype=dtype,
    )
    for r in results:
        print(f"No. of particles: {r['n']}  (p={r['p']}, q={r['q']})")
        print(f"{r['n']} {r['speedup']}")

    if args.save:
        from .io import save_benchmark

        save_benchmark(args.save, results)
        print(f"Saved results to {args.save}")
    if args.plot:
        from .viz import plot_speedup

        plot_speedup(results, savefig=args.plot)
        print(f"Saved plot to {args.plot}")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    dtype = PRECISIONS[args.precision]

    runners = {
        'test': _run_test,
        'profile': _run_profile,
        'benchmark': _run_benchmark,
    }
    try:
        return runners[args.mode](args, dtype)
    except ConfigurationError as e:
        print(f"Invalid launch configuration: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
