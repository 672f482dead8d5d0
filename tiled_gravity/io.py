"""
tiled_gravity.io

HDF5 storage for particle arrays and benchmark results.

File layout::

    /particles/<name>   (7, N) datasets, attribute ``fields``
    /benchmark/<key>    one 1-D dataset per result column
"""
from __future__ import annotations

from pathlib import Path

import h5py
import numpy as np

from .particles import NFIELDS, validate_particles

FIELD_NAMES = ('x', 'y', 'z', 'mass', 'ax', 'ay', 'az')

__all__ = ["FIELD_NAMES", "save_particles", "load_particles", "save_benchmark", "load_benchmark"]


def save_particles(path: str | Path, overwrite: bool = False, **arrays) -> Path:
    """
    Write named ``(7, N)`` particle arrays to ``/particles`` of an HDF5 file.

    >>> save_particles("run.h5", source=src, target=trg)
    """
    if not arrays:
        raise ValueError("Nothing to save: pass arrays as keyword arguments.")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with h5py.File(path, "a") as f:
        grp = f.require_group("particles")
        for name, arr in arrays.items():
            validate_particles(arr, name)
            if name in grp:
                if not overwrite:
                    raise FileExistsError(f"/particles/{name} already exists in {path}")
                del grp[name]
            dset = grp.create_dataset(name, data=arr, compression="gzip")
            dset.attrs["fields"] = np.array(FIELD_NAMES, dtype="S")
    return path


def load_particles(path: str | Path, names=None) -> dict[str, np.ndarray]:
    """Read particle arrays written by :func:`save_particles`."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"No such file: {path}")

    with h5py.File(path, "r") as f:
        if "particles" not in f:
            raise KeyError(f"{path} has no /particles group")
        grp = f["particles"]
        names = list(grp.keys()) if names is None else list(names)
        out = {}
        for name in names:
            arr = grp[name][...]
            if arr.ndim != 2 or arr.shape[0] != NFIELDS:
                raise ValueError(f"/particles/{name} has shape {arr.shape}, expected (7, N)")
            out[name] = arr
    return out


def save_benchmark(path: str | Path, results: list[dict]) -> Path:
    """Store a list of benchmark result dicts column-wise under ``/benchmark``."""
    if not results:
        raise ValueError("results is empty")
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with h5py.File(path, "a") as f:
        if "benchmark" in f:
            del f["benchmark"]
        grp = f.create_group("benchmark")
        for key in results[0]:
            values = [r[key] for r in results]
            if isinstance(values[0], str):
                grp.create_dataset(key, data=np.array(values, dtype="S"))
            else:
                grp.create_dataset(key, data=np.asarray(values))
    return path


def load_benchmark(path: str | Path) -> list[dict]:
    """Inverse of :func:`save_benchmark`."""
    with h5py.File(path, "r") as f:
        grp = f["benchmark"]
        columns = {}
        for key in grp:
            data = grp[key][...]
            if data.dtype.kind == "S":
                data = np.char.decode(data, "utf-8")
            columns[key] = data.tolist()
    n = len(next(iter(columns.values())))
    return [{key: col[i] for key, col in columns.items()} for i in range(n)]
