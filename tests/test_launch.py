"""Tests for launch-configuration validation."""
from __future__ import annotations

import numpy as np
import pytest

from tiled_gravity.launch import (
    MAX_THREADS_PER_BLOCK,
    ConfigurationError,
    LaunchConfig,
    check_launch,
)


class TestCheckLaunch:

    @pytest.mark.parametrize("n, p, q, match", [
        (10, 3, 1, "multiple of tile size"),
        (16, 8, 3, "multiple of q"),
        (16, 8, 9, "exceeds tile size"),
        (8, 16, 1, "exceeds particle count"),
        (1024, 32, 32, "block limit"),
        (0, 1, 1, "positive"),
        (16, 0, 1, "positive"),
        (16, 4, -1, "positive"),
    ])
    def test_rejected(self, n, p, q, match):
        with pytest.raises(ConfigurationError, match=match):
            check_launch(n, p, q)

    @pytest.mark.parametrize("n, p, q", [
        (1024, 1, 1),
        (4096, 16, 16),
        (64, 64, 1),
        (48, 16, 4),
        (np.int64(32), np.int64(8), np.int64(2)),
    ])
    def test_accepted(self, n, p, q):
        assert check_launch(n, p, q) is None

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            check_launch(10, 3)

    def test_custom_thread_limit(self):
        check_launch(64, 16, 2, max_threads=64)
        with pytest.raises(ConfigurationError):
            check_launch(64, 16, 4, max_threads=64)


class TestLaunchConfig:

    def test_columns_geometry(self):
        cfg = LaunchConfig(64, 16, 4, 'columns')
        assert cfg.threads_per_block == 64
        assert cfg.blocks == 4
        assert cfg.n_tiles == 4
        assert cfg.bodies_per_col == 4
        assert cfg.shared_mem_bytes(np.float32) == 4 * 4 * 16
        assert cfg.shared_mem_bytes(np.float64) == 8 * 4 * 16

    def test_tiled_geometry(self):
        cfg = LaunchConfig(64, 16, strategy='tiled')
        assert cfg.threads_per_block == 16
        assert cfg.blocks == 4

    def test_global_has_no_shared_memory(self):
        cfg = LaunchConfig(64, 32, strategy='global')
        assert cfg.threads_per_block == 32
        assert cfg.shared_mem_bytes(np.float32) == 0

    def test_rejected_on_construction(self):
        with pytest.raises(ConfigurationError):
            LaunchConfig(10, 3)

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError, match="strategy"):
            LaunchConfig(16, 4, strategy='tree')

    def test_frozen(self):
        cfg = LaunchConfig(16, 4)
        with pytest.raises(AttributeError):
            cfg.tile_size = 8

    def test_check_sources(self):
        cfg = LaunchConfig(32, 8, 2)
        cfg.check_sources(64)
        with pytest.raises(ConfigurationError):
            cfg.check_sources(36)
        # the global kernel never tiles the sources
        LaunchConfig(32, 8, strategy='global').check_sources(37)

    def test_default_limit(self):
        assert MAX_THREADS_PER_BLOCK == 1024
