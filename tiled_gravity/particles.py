"""
tiled_gravity.particles
=======================

Particle buffer layout shared by the reference engine and every parallel
kernel.

A particle array is a ``(7, N)`` NumPy matrix. Each column is one particle
and the rows are fixed::

    0  x      position          (read-only during force evaluation)
    1  y
    2  z
    3  mass   source weight     (read-only)
    4  ax     acceleration      (accumulated with ``+=``)
    5  ay
    6  az

Source arrays provide rows 0-3, target arrays provide rows 0-2 as query
points and accumulate into rows 4-6. Acceleration rows must be zero before
an accumulation pass; callers own that reset (see :func:`zero_accelerations`).
"""
from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

# ---------------------------------------------------------------------------
# Field layout
# ---------------------------------------------------------------------------
X, Y, Z, MASS, AX, AY, AZ = range(7)
NFIELDS = 7

POSITION = slice(X, Z + 1)
SOURCE_FIELDS = slice(X, MASS + 1)
ACCELERATION = slice(AX, AZ + 1)

PRECISIONS = {
    'float32': np.float32,
    'float64': np.float64,
}

DEFAULT_SEED = 1234

__all__ = [
    "X", "Y", "Z", "MASS", "AX", "AY", "AZ",
    "NFIELDS", "POSITION", "SOURCE_FIELDS", "ACCELERATION",
    "PRECISIONS", "DEFAULT_SEED",
    "make_particles",
    "make_inputs",
    "validate_particles",
    "validate_pair",
    "zero_accelerations",
    "duplicate",
    "positions",
    "masses",
    "accelerations",
]


def _resolve_dtype(dtype) -> np.dtype:
    """Map a precision string or dtype-like to a supported NumPy dtype."""
    if isinstance(dtype, str) and dtype.lower() in PRECISIONS:
        dtype = PRECISIONS[dtype.lower()]
    dtype = np.dtype(dtype)
    if dtype.type not in PRECISIONS.values():
        raise ValueError(
            f"dtype must be one of {list(PRECISIONS.keys())}, got {dtype}"
        )
    return dtype


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def make_particles(
    pos: ArrayLike,
    mass: ArrayLike | float,
    dtype=np.float32,
) -> NDArray:
    """Build a ``(7, N)`` particle array from positions and masses.

    Parameters
    ----------
    pos : array_like, shape (N, 3)
        Cartesian positions.
    mass : array_like, shape (N,) or scalar
        Masses. A scalar is broadcast to every particle.
    dtype : {'float32', 'float64'} or dtype, optional
        Storage precision. Default is single precision.

    Returns
    -------
    particles : np.ndarray, shape (7, N)
        Acceleration rows are zero.
    """
    dtype = _resolve_dtype(dtype)
    pos = np.asarray(pos, dtype=dtype)
    if pos.ndim != 2 or pos.shape[1] != 3:
        raise ValueError(f"pos must have shape (N, 3), got {pos.shape}")
    n = pos.shape[0]

    mass = np.asarray(mass, dtype=dtype)
    if mass.ndim == 0:
        mass = np.full(n, mass, dtype=dtype)
    elif mass.shape != (n,):
        raise ValueError(
            f"mass length ({mass.shape[0]}) does not match number of "
            f"particles ({n})"
        )

    particles = np.zeros((NFIELDS, n), dtype=dtype)
    particles[POSITION] = pos.T
    particles[MASS] = mass
    return particles


def make_inputs(
    nparticles: int,
    seed: int = DEFAULT_SEED,
    dtype=np.float32,
) -> tuple[NDArray, NDArray, NDArray, NDArray]:
    """Reproducible random source/target arrays and independent duplicates.

    Positions and masses are drawn uniformly from ``[0, 1)`` with a fresh
    generator seeded by *seed*, so repeated calls return identical data.

    Returns
    -------
    src, trg, src2, trg2 : np.ndarray, shape (7, nparticles)
        ``src2``/``trg2`` are deep copies of ``src``/``trg``, meant for the
        parallel pass while the originals feed the reference pass.
    """
    if nparticles <= 0:
        raise ValueError("nparticles must be positive.")
    dtype = _resolve_dtype(dtype)
    rng = np.random.default_rng(seed)

    src = rng.random((NFIELDS, nparticles)).astype(dtype)
    trg = rng.random((NFIELDS, nparticles)).astype(dtype)
    zero_accelerations(src)
    zero_accelerations(trg)

    return src, trg, duplicate(src), duplicate(trg)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_particles(arr, name: str = "particles") -> NDArray:
    """Raise ``ValueError`` unless *arr* is a ``(7, N)`` float32/float64 array."""
    if not isinstance(arr, np.ndarray):
        raise ValueError(f"{name} must be a numpy.ndarray, got {type(arr).__name__}")
    if arr.ndim != 2 or arr.shape[0] != NFIELDS:
        raise ValueError(f"{name} must have shape (7, N), got {arr.shape}")
    if arr.shape[1] == 0:
        raise ValueError(f"{name} must contain at least one particle")
    _resolve_dtype(arr.dtype)
    return arr


def validate_pair(source, target) -> np.dtype:
    """Validate a source/target pair and return their common dtype."""
    validate_particles(source, "source")
    validate_particles(target, "target")
    if source.dtype != target.dtype:
        raise ValueError(
            f"source and target must share a dtype, got {source.dtype} "
            f"and {target.dtype}"
        )
    return target.dtype


# ---------------------------------------------------------------------------
# Field access
# ---------------------------------------------------------------------------

def zero_accelerations(arr: NDArray) -> NDArray:
    """Reset the acceleration rows in place and return *arr*."""
    arr[ACCELERATION] = 0
    return arr


def duplicate(arr: NDArray) -> NDArray:
    """Independent deep copy of a particle array."""
    return np.array(arr, copy=True, order='C')


def positions(arr: NDArray) -> NDArray:
    return arr[POSITION]


def masses(arr: NDArray) -> NDArray:
    return arr[MASS]


def accelerations(arr: NDArray) -> NDArray:
    return arr[ACCELERATION]
