"""Tests for the HDF5 particle/benchmark store."""
from __future__ import annotations

import h5py
import numpy as np
import pytest

from tiled_gravity.io import (
    FIELD_NAMES,
    load_benchmark,
    load_particles,
    save_benchmark,
    save_particles,
)
from tiled_gravity.particles import make_inputs


class TestParticles:

    def test_round_trip(self, tmp_path):
        src, trg, _, _ = make_inputs(32, seed=9)
        path = save_particles(tmp_path / "run.h5", source=src, target=trg)
        loaded = load_particles(path)
        assert set(loaded) == {"source", "target"}
        np.testing.assert_array_equal(loaded["source"], src)
        assert loaded["target"].dtype == trg.dtype

    def test_field_names_attribute(self, tmp_path):
        src, _, _, _ = make_inputs(4)
        path = save_particles(tmp_path / "a.h5", source=src)
        with h5py.File(path, "r") as f:
            fields = [s.decode() for s in f["particles/source"].attrs["fields"]]
        assert tuple(fields) == FIELD_NAMES

    def test_no_silent_overwrite(self, tmp_path):
        src, _, _, _ = make_inputs(4)
        path = save_particles(tmp_path / "a.h5", source=src)
        with pytest.raises(FileExistsError):
            save_particles(path, source=src)
        src[0] = 5.0
        save_particles(path, overwrite=True, source=src)
        assert np.all(load_particles(path, ["source"])["source"][0] == 5.0)

    def test_rejects_bad_layout(self, tmp_path):
        with pytest.raises(ValueError):
            save_particles(tmp_path / "b.h5", bad=np.zeros((3, 4), dtype=np.float32))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_particles(tmp_path / "nope.h5")

    def test_nothing_to_save(self, tmp_path):
        with pytest.raises(ValueError):
            save_particles(tmp_path / "c.h5")


class TestBenchmark:

    def test_round_trip(self, tmp_path):
        results = [
            {'n': 16, 'p': 8, 'strategy': 'columns', 'speedup': 1.5},
            {'n': 32, 'p': 8, 'strategy': 'columns', 'speedup': 2.5},
        ]
        path = save_benchmark(tmp_path / "bench.h5", results)
        loaded = load_benchmark(path)
        assert loaded == results

    def test_empty(self, tmp_path):
        with pytest.raises(ValueError):
            save_benchmark(tmp_path / "bench.h5", [])
