"""
tiled_gravity.reference
Sequential direct-summation gravity, used as the correctness oracle for the
parallel kernels.

The pairwise force law lives in :func:`interaction`, a pure Numba function
shared with the CPU block emulator so both paths evaluate the exact same
floating-point expression.
"""
from __future__ import annotations

import logging

import numpy as np
from numba import njit
from numpy.typing import NDArray

from .particles import AX, AY, AZ, MASS, X, Y, Z, validate_pair

logger = logging.getLogger(__name__)

# Softening added to the squared separation. Part of the numeric contract
# between the reference and parallel paths.
EPS2 = 1e-6

__all__ = ["EPS2", "interaction", "cpu_gravity", "accumulate"]


@njit(cache=True)
def interaction(tx, ty, tz, sx, sy, sz, sm, eps2):
    """
    Acceleration that one source (sx, sy, sz, sm) induces at (tx, ty, tz).

    Returns ``r * m / (|r|^2 + eps2)^(3/2)`` with ``r = source - target``
    as a 3-tuple. All arguments should share the particle dtype so no
    promotion happens.
    """
    r_1 = sx - tx
    r_2 = sy - ty
    r_3 = sz - tz
    r_sqr = r_1 * r_1 + r_2 * r_2 + r_3 * r_3 + eps2
    r_cube = r_sqr * r_sqr * r_sqr
    mag = sm / np.sqrt(r_cube)
    return r_1 * mag, r_2 * mag, r_3 * mag


# No parallel/fastmath: summation order must stay fixed (j ascending).
@njit(cache=True)
def _cpu_gravity(s, t, eps2):
    for i in range(t.shape[1]):
        for j in range(s.shape[1]):
            ax, ay, az = interaction(
                t[X, i], t[Y, i], t[Z, i],
                s[X, j], s[Y, j], s[Z, j], s[MASS, j],
                eps2,
            )
            t[AX, i] += ax
            t[AY, i] += ay
            t[AZ, i] += az


def cpu_gravity(source: NDArray, target: NDArray, eps2: float = EPS2) -> NDArray:
    """
    Accumulate the acceleration of every source on every target, in order.

    Parameters
    ----------
    source : np.ndarray, shape (7, Ns)
        Rows 0-3 (position, mass) are read.
    target : np.ndarray, shape (7, Nt)
        Rows 0-2 are read, rows 4-6 are incremented in place.
    eps2 : float, optional
        Softening constant, cast to the particle dtype.

    Returns
    -------
    target : np.ndarray
        The same array, for chaining.

    Notes
    -----
    Accumulation is ``+=``. Running twice into the same target without
    zeroing its acceleration rows doubles the result. There is no self
    exclusion: a coincident source contributes a finite softened term.
    """
    dtype = validate_pair(source, target)
    logger.debug(
        "reference pass: %d sources -> %d targets (%s)",
        source.shape[1], target.shape[1], dtype,
    )
    _cpu_gravity(source, target, dtype.type(eps2))
    return target


accumulate = cpu_gravity
