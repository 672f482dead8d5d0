"""Tests for the host-thread block emulator: barriers, shared buffers, atomics."""
from __future__ import annotations

import threading

import numpy as np
import pytest

from tiled_gravity.emulator import BlockContext, atomic_add, launch


def _rotate_kernel(w, out):
    # Each worker writes its slot, then reads its neighbour's after the barrier.
    w.shared[w.thread_idx] = w.block_idx * 100 + w.thread_idx
    w.sync_threads()
    nxt = (w.thread_idx + 1) % w.block_dim
    out[w.block_idx, w.thread_idx] = w.shared[nxt]


def _count_kernel(w, counter, n_adds):
    for _ in range(n_adds):
        atomic_add(counter, 0, 1)


def _failing_kernel(w):
    if w.thread_idx == 3:
        raise RuntimeError("worker 3 failed")
    w.sync_threads()


class TestBlockContext:

    def test_shared_buffer(self):
        ctx = BlockContext(2, 8, 4, shared_shape=(4, 8), dtype=np.float64)
        assert ctx.shared.shape == (4, 8)
        assert ctx.shared.dtype == np.float64
        assert not ctx.shared.any()

    def test_no_shared_buffer(self):
        ctx = BlockContext(0, 4, 1)
        assert ctx.shared is None

    def test_abort_breaks_waiters(self):
        ctx = BlockContext(0, 2, 1)
        ctx.abort()
        with pytest.raises(threading.BrokenBarrierError):
            ctx.sync_threads()


class TestLaunch:

    def test_barrier_makes_writes_visible(self):
        grid, block = 3, 16
        out = np.full((grid, block), -1.0)
        launch(_rotate_kernel, grid, block, (out,), shared_shape=(block,), dtype=np.float64)
        for b in range(grid):
            expected = b * 100 + (np.arange(block) + 1) % block
            np.testing.assert_array_equal(out[b], expected)

    def test_blocks_have_private_buffers(self):
        out = np.zeros((4, 8))
        launch(_rotate_kernel, 4, 8, (out,), shared_shape=(8,), dtype=np.float64,
               max_concurrent_blocks=4)
        assert np.all(out // 100 == np.arange(4)[:, None])

    def test_atomic_add_loses_no_updates(self):
        counter = np.zeros(1, dtype=np.int64)
        launch(_count_kernel, 4, 32, (counter, 200), max_concurrent_blocks=4)
        assert counter[0] == 4 * 32 * 200

    def test_atomic_add_returns_old_value(self):
        arr = np.array([1.5, 2.0])
        old = atomic_add(arr, 1, 3.0)
        assert old == 2.0
        assert arr[1] == 5.0

    def test_worker_error_propagates_without_deadlock(self):
        with pytest.raises(RuntimeError, match="worker 3"):
            launch(_failing_kernel, 2, 8)

    def test_invalid_geometry(self):
        with pytest.raises(ValueError):
            launch(_count_kernel, 0, 4)
