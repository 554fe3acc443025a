"""
Selection boundary between the pipeline and a user.

The pipeline never polls input devices.  It asks a selector for a
decision and blocks until it gets one:

- request_window(matrix, window_start, default) -> (start, end)
- request_cluster_cutoff(Z, default) -> distance

A selector that is cancelled (figure closed, too few clicks) returns the
default it was given.
"""

import logging
from typing import Protocol, Tuple

import numpy as np
import matplotlib.pyplot as plt

from .visualization import plot_record_section, plot_dendrogram

logger = logging.getLogger(__name__)


class Selector(Protocol):

    def request_window(self, matrix, window_start: float,
                       default: Tuple[float, float]) -> Tuple[float, float]:
        ...

    def request_cluster_cutoff(self, Z: np.ndarray, default: float) -> float:
        ...


class ConfiguredSelector:
    """Non-interactive selector that always returns the configured defaults."""

    def request_window(self, matrix, window_start, default):
        return tuple(default)

    def request_cluster_cutoff(self, Z, default):
        return float(default)


class MatplotlibSelector:
    """
    Mouse-driven selector using matplotlib figures.

    Parameters
    ----------
    timeout : float
        Seconds to wait for clicks (0 waits indefinitely)
    """

    def __init__(self, timeout=0):
        self.timeout = timeout

    def request_window(self, matrix, window_start, default):
        """Show the record section and take two clicks as the window."""
        npts = matrix.data.shape[0]
        times = window_start + np.arange(npts)[:, None] * matrix.delta + matrix.offsets[None, :]

        _, ax = plt.subplots(figsize=(10, max(3, 0.4 * matrix.nrecs + 1)))
        plot_record_section(matrix.data, times, names=matrix.names, ax=ax,
                            title='Click window start and end (close to keep default)')
        for t in default:
            ax.axvline(t, color='g', ls='--', lw=1)
        points = plt.ginput(2, timeout=self.timeout)
        plt.close(ax.figure)

        if len(points) < 2:
            logger.info(f"No window selected, keeping {tuple(default)}")
            return tuple(default)
        start, end = sorted(p[0] for p in points)
        if end <= start:
            logger.warning("Empty window selected, keeping default")
            return tuple(default)
        return float(start), float(end)

    def request_cluster_cutoff(self, Z, default):
        """Show the dendrogram and take one click as the cutoff distance."""
        ax, _ = plot_dendrogram(Z, cutoff=default,
                                title='Click the cluster cutoff (close to keep default)')
        points = plt.ginput(1, timeout=self.timeout)
        plt.close(ax.figure)

        if len(points) < 1 or points[0][1] <= 0:
            logger.info(f"No cutoff selected, keeping {default}")
            return float(default)
        return float(points[0][1])


def make_selector(interactive):
    """Selector for a run: matplotlib when interactive, configured defaults otherwise."""
    return MatplotlibSelector() if interactive else ConfiguredSelector()
