"""Plotting helpers for benchmark sweeps."""

from __future__ import annotations

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

__all__ = ["plot_speedup"]


def plot_speedup(
    results: list[dict],
    ax=None,
    label: str | None = None,
    savefig: str | None = None,
) -> Figure:
    """
    Speedup of the parallel path over the reference against particle count.

    Parameters
    ----------
    results : list of dict
        Output of :func:`tiled_gravity.benchmark.sweep`; needs ``n`` and
        ``speedup`` keys.
    ax : matplotlib.axes.Axes, optional
        Axes to draw on. A new figure is created when None.
    label : str, optional
        Legend label. Defaults to ``"<strategy> p=<p> q=<q>"``.
    savefig : str, optional
        Path to save the figure to.

    Returns
    -------
    Figure
    """
    if not results:
        raise ValueError("results is empty")

    ns = np.array([r['n'] for r in results], dtype=float)
    speedup = np.array([r['speedup'] for r in results], dtype=float)
    order = np.argsort(ns)

    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 4))
    else:
        fig = ax.figure

    if label is None:
        first = results[0]
        label = f"{first.get('strategy', '')} p={first.get('p', '?')} q={first.get('q', '?')}"

    ax.plot(ns[order], speedup[order], marker='o', label=label)
    ax.axhline(1.0, color='0.5', lw=0.8, ls='--')
    ax.set_xscale('log', base=2)
    ax.set_xlabel('No. of particles')
    ax.set_ylabel('Speedup over reference')
    ax.legend(frameon=False)
    fig.tight_layout()

    if savefig is not None:
        fig.savefig(savefig, dpi=150)
    return fig
