"""
tiled_gravity.emulator

Host-thread emulation of the CUDA execution model, used by the ``cpu``
backend.

Every worker is a real ``threading.Thread``. The workers of one block share a
:class:`BlockContext`, which owns the block-local staging buffer and a
full-block barrier. Blocks are independent and run on a thread pool in any
order. The kernels below mirror the CUDA sources in
:mod:`tiled_gravity.cuda_kernels` statement for statement and evaluate the
pairwise law through :func:`tiled_gravity.reference.interaction`.

This is slow. It exists so the staging/barrier/atomic protocol runs, and
can be checked, on machines without a GPU.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

import numpy as np
from numpy.typing import NDArray

from .particles import AX, AY, AZ, MASS, X, Y, Z
from .reference import interaction

logger = logging.getLogger(__name__)

__all__ = [
    "BlockContext",
    "Worker",
    "atomic_add",
    "launch",
    "gravity_global",
    "gravity_tiled",
    "gravity_columns",
    "KERNELS",
]

_ATOMIC_LOCK = threading.Lock()


def atomic_add(array: NDArray, index, value) -> Any:
    """``array[index] += value`` as one indivisible step; returns the old value."""
    with _ATOMIC_LOCK:
        old = array[index]
        array[index] = old + value
    return old


# ============================================================================
# EXECUTION CONTEXT
# ============================================================================

class BlockContext:
    """
    State shared by the workers of one block.

    Parameters
    ----------
    block_idx : int
        Position of the block in the grid.
    block_dim : int
        Workers in the block; the barrier waits for all of them.
    grid_dim : int
        Blocks in the grid.
    shared_shape : tuple of int, optional
        Shape of the block-local buffer. None for kernels without one.
    dtype : dtype, optional
        dtype of the block-local buffer.
    """

    def __init__(self, block_idx: int, block_dim: int, grid_dim: int,
                 shared_shape: tuple[int, ...] | None = None, dtype=np.float32):
        self.block_idx = block_idx
        self.block_dim = block_dim
        self.grid_dim = grid_dim
        self.shared = None if shared_shape is None else np.zeros(shared_shape, dtype=dtype)
        self._barrier = threading.Barrier(block_dim)

    def sync_threads(self) -> None:
        """Block until every worker of this block reaches the barrier."""
        self._barrier.wait()

    def abort(self) -> None:
        """Break the barrier so waiting peers raise instead of hanging."""
        self._barrier.abort()


class Worker:
    """One thread's view of the launch: its index plus its block's context."""

    __slots__ = ("thread_idx", "block")

    def __init__(self, thread_idx: int, block: BlockContext):
        self.thread_idx = thread_idx
        self.block = block

    @property
    def block_idx(self) -> int:
        return self.block.block_idx

    @property
    def block_dim(self) -> int:
        return self.block.block_dim

    @property
    def grid_dim(self) -> int:
        return self.block.grid_dim

    @property
    def shared(self) -> NDArray:
        return self.block.shared

    def sync_threads(self) -> None:
        self.block.sync_threads()


def _run_block(kernel: Callable, block_idx: int, grid: int, block: int,
               args: tuple, shared_shape, dtype) -> None:
    ctx = BlockContext(block_idx, block, grid, shared_shape, dtype)
    errors: list[BaseException] = []
    broken: list[BaseException] = []

    def body(tid: int) -> None:
        try:
            kernel(Worker(tid, ctx), *args)
        except threading.BrokenBarrierError as exc:
            broken.append(exc)
        except Exception as exc:
            errors.append(exc)
            ctx.abort()

    threads = [
        threading.Thread(target=body, args=(tid,), name=f"block{block_idx}-thread{tid}")
        for tid in range(block)
    ]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    if errors:
        raise errors[0]
    if broken:
        raise broken[0]


def launch(
    kernel: Callable,
    grid: int,
    block: int,
    args: tuple = (),
    shared_shape: tuple[int, ...] | None = None,
    dtype=np.float32,
    max_concurrent_blocks: int = 2,
) -> None:
    """
    Run *kernel* over ``grid`` blocks of ``block`` workers and wait for all.

    ``kernel(worker, *args)`` is called once per worker. A failing worker
    breaks its block's barrier; the first error is re-raised here after every
    thread of the block has been joined.
    """
    if grid <= 0 or block <= 0:
        raise ValueError(f"grid and block must be positive, got grid={grid}, block={block}")

    logger.debug("emulated launch: %s grid=%d block=%d shared=%s",
                 getattr(kernel, "__name__", kernel), grid, block, shared_shape)

    with ThreadPoolExecutor(max_workers=max(1, min(max_concurrent_blocks, grid))) as pool:
        futures = [
            pool.submit(_run_block, kernel, b, grid, block, args, shared_shape, dtype)
            for b in range(grid)
        ]
        for fut in futures:
            fut.result()


# ============================================================================
# KERNELS
# ============================================================================

def gravity_global(w: Worker, s: NDArray, t: NDArray, eps2) -> None:
    """One worker per target, every source read straight from ``s``."""
    i = w.block_idx * w.block_dim + w.thread_idx
    if i >= t.shape[1]:
        return

    tx, ty, tz = t[X, i], t[Y, i], t[Z, i]
    for j in range(s.shape[1]):
        ax, ay, az = interaction(tx, ty, tz, s[X, j], s[Y, j], s[Z, j], s[MASS, j], eps2)
        t[AX, i] += ax
        t[AY, i] += ay
        t[AZ, i] += az


def gravity_tiled(w: Worker, s: NDArray, t: NDArray, eps2) -> None:
    """One worker per target; sources staged one tile at a time in ``w.shared``."""
    ithread = w.thread_idx
    tile_dim = w.block_dim
    itarget = w.block_idx * tile_dim + ithread
    sh_mem = w.shared

    tx, ty, tz = t[X, itarget], t[Y, itarget], t[Z, itarget]
    n_tiles = s.shape[1] // tile_dim
    acc = np.zeros(3, dtype=t.dtype)

    for itile in range(n_tiles):
        sh_mem[:, ithread] = s[X:MASS + 1, itile * tile_dim + ithread]
        w.sync_threads()

        for k in range(tile_dim):
            acc += interaction(tx, ty, tz, sh_mem[0, k], sh_mem[1, k],
                               sh_mem[2, k], sh_mem[3, k], eps2)
        w.sync_threads()

    t[AX, itarget] += acc[0]
    t[AY, itarget] += acc[1]
    t[AZ, itarget] += acc[2]


def gravity_columns(w: Worker, s: NDArray, t: NDArray, num_cols: int, eps2) -> None:
    """``num_cols`` workers per target, partial sums merged with :func:`atomic_add`."""
    tile_dim = w.block_dim // num_cols
    row = w.thread_idx % tile_dim
    col = w.thread_idx // tile_dim
    itarget = w.block_idx * tile_dim + row
    sh_mem = w.shared

    tx, ty, tz = t[X, itarget], t[Y, itarget], t[Z, itarget]
    n_tiles = s.shape[1] // tile_dim
    bodies_per_col = tile_dim // num_cols
    acc = np.zeros(3, dtype=t.dtype)

    for itile in range(n_tiles):
        if col == 0:
            sh_mem[:, row] = s[X:MASS + 1, itile * tile_dim + row]
        w.sync_threads()

        for k in range(bodies_per_col):
            isource = col * bodies_per_col + k
            acc += interaction(tx, ty, tz, sh_mem[0, isource], sh_mem[1, isource],
                               sh_mem[2, isource], sh_mem[3, isource], eps2)
        w.sync_threads()

    atomic_add(t, (AX, itarget), acc[0])
    atomic_add(t, (AY, itarget), acc[1])
    atomic_add(t, (AZ, itarget), acc[2])


KERNELS = {
    'global': gravity_global,
    'tiled': gravity_tiled,
    'columns': gravity_columns,
}
