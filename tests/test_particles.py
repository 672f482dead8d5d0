"""Tests for ``tiled_gravity.particles`` (layout, construction, validation)."""
from __future__ import annotations

import numpy as np
import pytest

from tiled_gravity.particles import (
    ACCELERATION,
    MASS,
    NFIELDS,
    POSITION,
    duplicate,
    make_inputs,
    make_particles,
    validate_pair,
    validate_particles,
    zero_accelerations,
)


class TestMakeParticles:

    def test_layout(self):
        pos = np.arange(12, dtype=float).reshape(4, 3)
        mass = np.array([1.0, 2.0, 3.0, 4.0])
        p = make_particles(pos, mass)
        assert p.shape == (NFIELDS, 4)
        assert p.dtype == np.float32
        np.testing.assert_array_equal(p[POSITION], pos.T)
        np.testing.assert_array_equal(p[MASS], mass)
        assert not np.any(p[ACCELERATION])

    def test_scalar_mass_broadcast(self):
        p = make_particles(np.zeros((5, 3)), 2.5, dtype='float64')
        assert p.dtype == np.float64
        np.testing.assert_array_equal(p[MASS], np.full(5, 2.5))

    def test_bad_pos_shape(self):
        with pytest.raises(ValueError, match="pos"):
            make_particles(np.zeros((5, 2)), 1.0)

    def test_bad_mass_length(self):
        with pytest.raises(ValueError, match="mass length"):
            make_particles(np.zeros((5, 3)), np.ones(4))

    def test_unsupported_dtype(self):
        with pytest.raises(ValueError, match="dtype"):
            make_particles(np.zeros((5, 3)), 1.0, dtype=np.int32)


class TestMakeInputs:

    def test_reproducible(self):
        a = make_inputs(32, seed=7)
        b = make_inputs(32, seed=7)
        for x, y in zip(a, b):
            np.testing.assert_array_equal(x, y)

    def test_seed_changes_data(self):
        src_a, *_ = make_inputs(32, seed=1)
        src_b, *_ = make_inputs(32, seed=2)
        assert not np.array_equal(src_a, src_b)

    def test_duplicates_are_independent(self):
        src, trg, src2, trg2 = make_inputs(16)
        np.testing.assert_array_equal(trg, trg2)
        trg2[4, 0] = 99.0
        assert trg[4, 0] == 0.0
        assert not np.shares_memory(src, src2)

    def test_accelerations_zeroed(self):
        _, trg, _, _ = make_inputs(16, dtype=np.float64)
        assert trg.dtype == np.float64
        assert not np.any(trg[ACCELERATION])
        assert np.all((trg[POSITION] >= 0) & (trg[POSITION] < 1))

    def test_non_positive(self):
        with pytest.raises(ValueError):
            make_inputs(0)


class TestValidation:

    def test_wrong_rows(self):
        with pytest.raises(ValueError, match=r"\(7, N\)"):
            validate_particles(np.zeros((6, 4), dtype=np.float32))

    def test_not_array(self):
        with pytest.raises(ValueError, match="numpy"):
            validate_particles([[0.0] * 4] * 7)

    def test_dtype_mismatch(self):
        a = np.zeros((7, 4), dtype=np.float32)
        b = np.zeros((7, 4), dtype=np.float64)
        with pytest.raises(ValueError, match="dtype"):
            validate_pair(a, b)

    def test_zero_accelerations(self):
        p = np.ones((7, 3), dtype=np.float32)
        zero_accelerations(p)
        assert not np.any(p[ACCELERATION])
        assert np.all(p[:4] == 1)

    def test_duplicate(self):
        p = np.ones((7, 3), dtype=np.float32)
        q = duplicate(p)
        q[0, 0] = 5
        assert p[0, 0] == 1
