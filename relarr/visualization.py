"""
Visualization utilities for relarr runs.

Provides:
- record section of windowed records relative to the predicted arrival
- dendrogram of the clustering linkage with the cutoff marked
- aligned record section after applying solved time shifts

The figures back the interactive selectors and, with ``plot`` enabled,
are saved alongside the diagnostic reports.
"""

import os
import numpy as np
import matplotlib.pyplot as plt
from scipy.cluster.hierarchy import dendrogram


def plot_record_section(records, times, names=None, ax=None, colors=None,
                        title=None, xlabel='Time relative to predicted arrival (s)'):
    """
    Plot normalized records stacked vertically.

    Parameters
    ----------
    records : ndarray, shape (npts, nrecs)
        Samples, one record per column
    times : ndarray, shape (npts,) or (npts, nrecs)
        Time axis shared by all records, or one per record
    names : list of str, optional
        Record labels for the y axis
    ax : matplotlib Axes, optional
    colors : sequence of colors, optional
        One color per record

    Returns
    -------
    ax : matplotlib Axes
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(10, max(3, 0.4 * records.shape[1] + 1)))

    nrecs = records.shape[1]
    times = np.asarray(times)
    for k in range(nrecs):
        data = records[:, k]
        peak = np.max(np.abs(data)) if data.size else 0.0
        if peak > 0:
            data = data / peak
        t = times[:, k] if times.ndim == 2 else times
        color = colors[k] if colors is not None else 'k'
        ax.plot(t, 0.45 * data + k, color=color, lw=0.8)

    ax.set_yticks(np.arange(nrecs))
    if names is not None:
        ax.set_yticklabels(names, fontsize=7)
    ax.set_ylim(-1, nrecs)
    ax.set_xlabel(xlabel)
    if title:
        ax.set_title(title)
    return ax


def plot_dendrogram(Z, cutoff=None, labels=None, ax=None, title=None):
    """
    Plot a linkage tree with the cluster cutoff marked.

    Returns
    -------
    ax : matplotlib Axes
    info : dict
        scipy dendrogram output (leaf order, colors)
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(10, 5))

    info = dendrogram(Z, ax=ax, labels=labels, orientation='top',
                      color_threshold=cutoff if cutoff is not None else None)
    if cutoff is not None:
        ax.axhline(cutoff, color='r', ls='--', lw=1)
    ax.set_ylabel('Dissimilarity (1 - correlation coefficient)')
    if title:
        ax.set_title(title)
    return ax, info


def plot_alignment(matrix, alignment, clusters, outpath, window_start=0.0, title=None):
    """
    Save a before/after record section for one filter trial.

    Parameters
    ----------
    matrix : RecordMatrix
        Windowed records used for correlation
    alignment : AlignmentResult
    clusters : ClusterResult
    outpath : str
        Figure file to write
    window_start : float
        Window start relative to the predicted arrival (s)
    """
    out_dir = os.path.dirname(outpath)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    npts, nrecs = matrix.data.shape
    base = np.arange(npts) * matrix.delta
    before = window_start + base[:, None] + matrix.offsets[None, :]
    shifts = np.nan_to_num(alignment.shifts, nan=0.0)
    after = before - shifts[None, :]

    colors = [clusters.colors[c - 1] if c > 0 and len(clusters.colors) else 'k'
              for c in clusters.labels]

    fig, axes = plt.subplots(1, 2, figsize=(14, max(4, 0.4 * nrecs + 1)), sharey=True)
    plot_record_section(matrix.data, before, names=matrix.names, ax=axes[0],
                        colors=colors, title='Predicted')
    plot_record_section(matrix.data * np.where(alignment.polarities < 0, -1.0, 1.0),
                        after, names=matrix.names, ax=axes[1], colors=colors,
                        title='Aligned', xlabel='Time relative to solved arrival (s)')
    if title:
        fig.suptitle(title)
    fig.tight_layout()
    fig.savefig(outpath, dpi=120)
    plt.close(fig)
    return outpath
