"""
tiled_gravity.launch

Launch configuration for the tiled kernels.

The tiling math assumes whole tiles only: particle counts divide evenly by
the tile size ``p`` and the tile size divides evenly by the column count
``q``. A :class:`LaunchConfig` is validated once, on construction, and any
violation raises :class:`ConfigurationError` before a kernel is dispatched.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import numpy as np

# Hardware limit on threads per block for every CUDA architecture since sm_20.
MAX_THREADS_PER_BLOCK = 1024

STRATEGIES = ('global', 'tiled', 'columns')
STRATEGY_TYPES = Literal['global', 'tiled', 'columns']

__all__ = [
    "MAX_THREADS_PER_BLOCK",
    "STRATEGIES",
    "ConfigurationError",
    "check_launch",
    "LaunchConfig",
]


class ConfigurationError(ValueError):
    """A launch configuration violates a structural precondition of the tiling."""


def check_launch(
    n: int,
    p: int,
    q: int = 1,
    max_threads: int = MAX_THREADS_PER_BLOCK,
) -> None:
    """
    Check that ``(n, p, q)`` tiles cleanly.

    Parameters
    ----------
    n : int
        Particle count.
    p : int
        Tile size: sources staged per tile, targets per block.
    q : int, optional
        Columns: threads cooperating on one target.
    max_threads : int, optional
        Threads-per-block limit of the device.

    Raises
    ------
    ConfigurationError
        On the first violated condition.
    """
    for name, value in (('n', n), ('p', p), ('q', q)):
        if not isinstance(value, (int, np.integer)) or value <= 0:
            raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")

    if p > n:
        raise ConfigurationError(f"tile size p={p} exceeds particle count n={n}")
    if p * q >= max_threads:
        raise ConfigurationError(
            f"p*q={p * q} threads must stay below the block limit of {max_threads}"
        )
    if q > p:
        raise ConfigurationError(f"column count q={q} exceeds tile size p={p}")
    if n % p != 0:
        raise ConfigurationError(f"n={n} is not a multiple of tile size p={p}")
    if p % q != 0:
        raise ConfigurationError(f"tile size p={p} is not a multiple of q={q}")


@dataclass(frozen=True)
class LaunchConfig:
    """
    Validated launch configuration.

    ``n`` is the target count, ``tile_size`` is ``p`` and ``num_cols`` is
    ``q``. The ``strategy`` picks the tiling granularity:

    - ``'global'``  : one thread per target, sources read from global memory
    - ``'tiled'``   : one thread per target, sources staged per tile in
      shared memory
    - ``'columns'`` : ``q`` threads per target, each summing ``p/q`` sources
      of every tile, merged with atomic adds
    """

    n: int
    tile_size: int
    num_cols: int = 1
    strategy: STRATEGY_TYPES = 'columns'
    max_threads: int = MAX_THREADS_PER_BLOCK

    def __post_init__(self):
        if self.strategy not in STRATEGIES:
            raise ConfigurationError(
                f"strategy must be one of {list(STRATEGIES)}, got {self.strategy!r}"
            )
        check_launch(self.n, self.tile_size, self.num_cols, self.max_threads)

    @property
    def threads_per_block(self) -> int:
        if self.strategy == 'columns':
            return self.tile_size * self.num_cols
        return self.tile_size

    @property
    def blocks(self) -> int:
        return -(-self.n // self.tile_size)

    @property
    def n_tiles(self) -> int:
        return self.n // self.tile_size

    @property
    def bodies_per_col(self) -> int:
        return self.tile_size // self.num_cols

    def shared_mem_bytes(self, dtype) -> int:
        """Dynamic shared memory per block: one (x, y, z, m) slot per tile entry."""
        if self.strategy == 'global':
            return 0
        return np.dtype(dtype).itemsize * 4 * self.tile_size

    def check_sources(self, n_sources: int) -> None:
        """Apply the tile preconditions to the source count as well."""
        if self.strategy != 'global':
            check_launch(n_sources, self.tile_size, self.num_cols, self.max_threads)
