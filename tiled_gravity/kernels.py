#!/usr/bin/env python3
"""
tiled_gravity.kernels
Dispatch of the tiled direct-summation kernels on the GPU (CuPy) or on the
host-thread block emulator.

Requirements
------------
- NumPy, Numba
- CuPy (optional, for the ``cuda`` backend): https://cupy.dev/

Examples
--------
>>> from tiled_gravity import make_inputs, cpu_gravity, compute_gravity
>>> from tiled_gravity import compare_accelerations
>>> src, trg, src2, trg2 = make_inputs(1024)
>>> cpu_gravity(src, trg)
>>> compute_gravity(src2, trg2, tile_size=16, num_cols=4, strategy='columns')
>>> print(compare_accelerations(trg, trg2, rtol=1e-5).summary())

Notes
-----
- Inputs are copied to kernel-visible storage before launch, so the caller's
  arrays are never aliased by a running kernel.
- Only rows 4-6 of the target are written back; rows 0-3 are untouched.
- Launches are synchronous: the call returns once every block has finished.
"""
from __future__ import annotations

import logging
import warnings
from typing import Literal

import numpy as np
from numpy.typing import NDArray

from . import emulator
from .cuda_kernels import KERNEL_CONFIG, TYPE_SPECS
from .launch import STRATEGY_TYPES, LaunchConfig
from .particles import ACCELERATION, SOURCE_FIELDS, validate_pair
from .reference import EPS2

try:
    import cupy as cp
    CUPY_AVAILABLE = True
except ImportError:
    CUPY_AVAILABLE = False
    warnings.warn(
        "CuPy not available. GPU backend disabled. "
        "Install with: pip install cupy-cudaxxx",
        ImportWarning
    )

logger = logging.getLogger(__name__)

BACKEND_TYPES = Literal['auto', 'cuda', 'cpu']
BACKENDS = ('auto', 'cuda', 'cpu')

# Compiled kernels, keyed by (strategy, precision)
_KERNEL_CACHE = {}

__all__ = [
    "CUPY_AVAILABLE",
    "BACKENDS",
    "compute_gravity",
    "to_device",
    "transfer_accelerations",
    "resolve_backend",
    "synchronize",
    "benchmark1",
    "benchmark2",
    "benchmark3",
    "get_gpu_info",
]

# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def _gpu_present() -> bool:
    if not CUPY_AVAILABLE:
        return False
    try:
        return cp.cuda.runtime.getDeviceCount() > 0
    except RuntimeError:
        return False


def resolve_backend(backend: str) -> str:
    """Turn ``'auto'`` into ``'cuda'`` or ``'cpu'`` and check the choice."""
    backend = backend.lower()
    if backend not in BACKENDS:
        raise ValueError(f"backend must be one of {list(BACKENDS)}, got {backend!r}")
    if backend == 'auto':
        backend = 'cuda' if _gpu_present() else 'cpu'
    if backend == 'cuda' and not CUPY_AVAILABLE:
        raise ImportError("CuPy required")
    return backend


def synchronize(backend: str) -> None:
    """Wait for outstanding device work (no-op on the cpu backend)."""
    if backend == 'cuda':
        cp.cuda.Stream.null.synchronize()


def _get_kernel(strategy: str, precision: str):
    """
    Compile (once) and return the CUDA kernel for a strategy and precision.

    Returns
    -------
    kernel : cp.RawKernel
    """
    cache_key = (strategy, precision)
    if cache_key in _KERNEL_CACHE:
        return _KERNEL_CACHE[cache_key]

    if strategy not in KERNEL_CONFIG:
        raise ValueError(f"No kernel for strategy {strategy!r}")
    if precision not in TYPE_SPECS:
        raise ValueError(f"precision must be 'float32' or 'float64', got {precision}")

    template, kernel_name = KERNEL_CONFIG[strategy]
    source = template.format(**TYPE_SPECS[precision])

    # Find architecture of the current device automatically
    cc = cp.cuda.Device().compute_capability
    options = (
        '-O3',
        f'-arch=sm_{cc}',
        # keep a*b+c unfused so results track the sequential reference
        '--fmad=false',
    )

    logger.info("compiling %s (%s) for sm_%s", kernel_name, precision, cc)
    kernel = cp.RawKernel(source, kernel_name, options=options, backend='nvcc')

    _KERNEL_CACHE[cache_key] = kernel
    return kernel


# ============================================================================
# HOST <-> KERNEL STORAGE
# ============================================================================

def to_device(source: NDArray, target: NDArray, backend: str = 'cpu'):
    """
    Copy inputs into storage the kernels may write to.

    Returns
    -------
    s_d, t_d : array
        Contiguous copy of source rows 0-3, shape (4, Ns), and a full copy
        of the target. CuPy arrays on ``cuda``, NumPy arrays on ``cpu``.
    """
    if backend == 'cuda':
        s_d = cp.ascontiguousarray(cp.asarray(source[SOURCE_FIELDS]))
        t_d = cp.array(target, order='C')
    else:
        s_d = np.array(source[SOURCE_FIELDS], order='C', copy=True)
        t_d = np.array(target, order='C', copy=True)
    return s_d, t_d


def transfer_accelerations(t_d, target: NDArray) -> NDArray:
    """Copy the acceleration rows of kernel storage back into *target*."""
    if CUPY_AVAILABLE and isinstance(t_d, cp.ndarray):
        target[ACCELERATION] = cp.asnumpy(t_d[ACCELERATION])
    else:
        target[ACCELERATION] = t_d[ACCELERATION]
    return target


# ============================================================================
# LAUNCHERS
# ============================================================================

def _launch_cuda(config: LaunchConfig, s_d, t_d, eps2) -> None:
    dtype = t_d.dtype
    kernel = _get_kernel(config.strategy, dtype.name)

    args = [s_d, t_d, np.int32(s_d.shape[1]), np.int32(t_d.shape[1])]
    if config.strategy == 'columns':
        args.append(np.int32(config.num_cols))
    args.append(dtype.type(eps2))

    kernel(
        (config.blocks,), (config.threads_per_block,), tuple(args),
        shared_mem=config.shared_mem_bytes(dtype),
    )
    cp.cuda.Stream.null.synchronize()


def _launch_cpu(config: LaunchConfig, s_d, t_d, eps2, max_concurrent_blocks: int) -> None:
    dtype = t_d.dtype
    args = (s_d, t_d)
    if config.strategy == 'columns':
        args += (config.num_cols,)
    args += (dtype.type(eps2),)

    shared_shape = None if config.strategy == 'global' else (4, config.tile_size)
    emulator.launch(
        emulator.KERNELS[config.strategy],
        config.blocks, config.threads_per_block, args,
        shared_shape=shared_shape, dtype=dtype,
        max_concurrent_blocks=max_concurrent_blocks,
    )


# ============================================================================
# PUBLIC API
# ============================================================================

def compute_gravity(
    source: NDArray,
    target: NDArray,
    config: LaunchConfig | None = None,
    *,
    tile_size: int | None = None,
    num_cols: int = 1,
    strategy: STRATEGY_TYPES = 'columns',
    backend: BACKEND_TYPES = 'auto',
    eps2: float = EPS2,
    max_concurrent_blocks: int = 2,
) -> NDArray:
    """
    Accumulate source gravity into the target with a tiled parallel kernel.

    Parameters
    ----------
    source : np.ndarray, shape (7, Ns)
        Rows 0-3 are read.
    target : np.ndarray, shape (7, Nt)
        Rows 0-2 are read; rows 4-6 receive the accumulated acceleration.
        Rows 4-6 should be zero beforehand.
    config : LaunchConfig, optional
        Pre-validated configuration. When omitted one is built from
        ``tile_size``, ``num_cols`` and ``strategy``.
    tile_size : int, optional
        Tile size ``p``. Defaults to ``min(Nt, 16)`` when no config is given.
    num_cols : int, optional
        Columns ``q`` (threads per target) for ``strategy='columns'``.
    strategy : {'global', 'tiled', 'columns'}, optional
        Tiling granularity. Default is ``'columns'``.
    backend : {'auto', 'cuda', 'cpu'}, optional
        ``'auto'`` picks CUDA when CuPy and a device are present.
    eps2 : float, optional
        Softening constant; must equal the reference value for comparisons.
    max_concurrent_blocks : int, optional
        Blocks the cpu emulator runs at once.

    Returns
    -------
    target : np.ndarray
        The caller's target, with rows 4-6 updated.

    Raises
    ------
    ConfigurationError
        If ``(n, p, q)`` does not tile the target or source count.
    ValueError
        If the particle arrays are malformed or have different dtypes.
    ImportError
        If ``backend='cuda'`` and CuPy is missing.
    """
    validate_pair(source, target)
    n_targets = target.shape[1]

    if config is None:
        if tile_size is None:
            tile_size = min(n_targets, 16)
        config = LaunchConfig(n_targets, tile_size, num_cols, strategy)
    elif config.n != n_targets:
        raise ValueError(
            f"config was built for n={config.n}, target has {n_targets} particles"
        )
    config.check_sources(source.shape[1])

    backend = resolve_backend(backend)
    logger.debug(
        "%s launch (%s): blocks=%d threads=%d p=%d q=%d",
        config.strategy, backend, config.blocks, config.threads_per_block,
        config.tile_size, config.num_cols,
    )

    s_d, t_d = to_device(source, target, backend)
    if backend == 'cuda':
        _launch_cuda(config, s_d, t_d, eps2)
    else:
        _launch_cpu(config, s_d, t_d, eps2, max_concurrent_blocks)

    return transfer_accelerations(t_d, target)


def benchmark1(source: NDArray, target: NDArray, backend: BACKEND_TYPES = 'auto') -> NDArray:
    """Global-memory kernel, one thread per target."""
    p = min(target.shape[1], 256)
    while target.shape[1] % p:
        p -= 1
    return compute_gravity(source, target, tile_size=p, strategy='global', backend=backend)


def benchmark2(source: NDArray, target: NDArray, p: int,
               backend: BACKEND_TYPES = 'auto') -> NDArray:
    """Shared-memory tiles of ``p`` sources, one thread per target."""
    return compute_gravity(source, target, tile_size=p, strategy='tiled', backend=backend)


def benchmark3(source: NDArray, target: NDArray, p: int, q: int,
               backend: BACKEND_TYPES = 'auto') -> NDArray:
    """Shared-memory tiles of ``p`` sources, ``q`` threads per target."""
    return compute_gravity(source, target, tile_size=p, num_cols=q,
                           strategy='columns', backend=backend)


def get_gpu_info() -> dict:
    """
    Get information about the current GPU.

    Returns
    -------
    info : dict
        ``available`` plus, when a device is found, ``device_name``,
        ``compute_capability``, ``max_threads_per_block``,
        ``shared_mem_per_block``, ``memory_total`` and ``memory_free``.
    """
    if not CUPY_AVAILABLE:
        return {'available': False}

    try:
        device = cp.cuda.Device()
        props = cp.cuda.runtime.getDeviceProperties(device.id)
        mem_info = cp.cuda.runtime.memGetInfo()
        return {
            'available': True,
            'device_name': props['name'].decode('utf-8'),
            'compute_capability': device.compute_capability,
            'max_threads_per_block': props['maxThreadsPerBlock'],
            'shared_mem_per_block': props['sharedMemPerBlock'],
            'memory_total': mem_info[1],
            'memory_free': mem_info[0],
        }
    except RuntimeError as e:
        logger.warning("GPU query failed: %s", e)
        return {'available': False, 'error': str(e)}
