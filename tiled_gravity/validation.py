"""
tiled_gravity.validation

Elementwise comparison of two accumulated target arrays. A mismatch is a
diagnostic outcome, reported and never raised.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .particles import ACCELERATION

__all__ = ["ValidationReport", "compare_accelerations"]


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of :func:`compare_accelerations`."""

    matches: bool
    n_mismatch: int
    n_total: int
    error_norm: float
    max_abs_diff: float
    tolerance: float

    def summary(self) -> str:
        if self.matches:
            return "MATCHES"
        return (
            f"{self.n_mismatch} of {self.n_total} elements DO NOT MATCH\n"
            f"Error norm: {self.error_norm}"
        )

    def __bool__(self) -> bool:
        return self.matches


def compare_accelerations(
    reference: NDArray,
    candidate: NDArray,
    atol: float | None = None,
    rtol: float = 0.0,
) -> ValidationReport:
    """
    Compare the acceleration rows of two target arrays.

    Parameters
    ----------
    reference : np.ndarray, shape (7, N)
        Target filled by the reference engine.
    candidate : np.ndarray, shape (7, N)
        Target filled by a parallel kernel.
    atol : float, optional
        Absolute tolerance. Defaults to machine epsilon of the reference
        dtype.
    rtol : float, optional
        Relative tolerance on ``|reference|``. Default 0, i.e. a purely
        absolute check.

    Returns
    -------
    ValidationReport
        An element matches when ``|ref - cand| < atol + rtol*|ref|``.
        ``error_norm`` is the RMS of the absolute differences.
    """
    reference = np.asarray(reference)
    candidate = np.asarray(candidate)
    if reference.shape != candidate.shape:
        raise ValueError(
            f"reference and candidate shapes differ: {reference.shape} vs {candidate.shape}"
        )

    ref_acc = reference[ACCELERATION]
    if atol is None:
        atol = float(np.finfo(ref_acc.dtype).eps)

    diff = np.abs(ref_acc - candidate[ACCELERATION])
    err_norm = float(np.sqrt(np.sum(np.abs(diff) ** 2) / diff.size))
    diff_bool = diff < atol + rtol * np.abs(ref_acc)

    n_total = int(diff.size)
    n_mismatch = int(n_total - np.count_nonzero(diff_bool))

    return ValidationReport(
        matches=n_mismatch == 0,
        n_mismatch=n_mismatch,
        n_total=n_total,
        error_norm=err_norm,
        max_abs_diff=float(diff.max()),
        tolerance=float(atol),
    )
