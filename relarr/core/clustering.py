"""
Hierarchical clustering of records by waveform similarity.

The first-peak correlation coefficients are turned into the dissimilarity
1 - coefficient, linked with scipy's hierarchical clustering and cut at a
distance threshold into flat clusters numbered 1..k.
"""

import logging
from dataclasses import dataclass

import numpy as np
from matplotlib import colormaps
from scipy.cluster.hierarchy import linkage, fcluster

logger = logging.getLogger(__name__)


@dataclass
class ClusterResult:
    labels: np.ndarray        # cluster id per record (1..k)
    linkage: np.ndarray       # scipy linkage matrix, (nrecs-1) x 4
    cutoff: float             # distance the tree was cut at
    colors: np.ndarray        # RGB per cluster id, row k-1 is cluster k

    @property
    def nclusters(self):
        return int(self.labels.max()) if self.labels.size else 0

    def members(self, cluster_id):
        return np.flatnonzero(self.labels == cluster_id)


def red2green(m):
    """Colormap running from red through white to green (m x 3)."""
    if m <= 0:
        return np.zeros((0, 3))
    if m == 1:
        return np.array([[1.0, 0.0, 0.0]])
    n = int(np.ceil(0.5 * m))
    up = np.arange(n) / ((n - 1) if m % 2 else n)
    down = np.arange(m - n - 1, -1, -1) / (m - n)
    top = np.column_stack((np.ones(n), up, up))
    bottom = np.column_stack((down, np.ones(m - n), down))
    return np.vstack((top, bottom))


def _matplotlib_map(name):
    def build(m):
        if m <= 0:
            return np.zeros((0, 3))
        cmap = colormaps[name]
        return cmap(np.linspace(0.0, 1.0, m))[:, :3]
    return build


# closed registry of group colorings
GROUP_COLORMAPS = {
    'red2green': red2green,
    'hsv': _matplotlib_map('hsv'),
    'jet': _matplotlib_map('jet'),
    'viridis': _matplotlib_map('viridis'),
}


def group_colors(ngroups, name='red2green'):
    """
    One RGB color per cluster.

    Parameters
    ----------
    ngroups : int
        Number of clusters
    name : str
        Key of GROUP_COLORMAPS

    Returns
    -------
    colors : ndarray, shape (ngroups, 3)
    """
    try:
        builder = GROUP_COLORMAPS[name]
    except KeyError:
        raise ValueError(f"Unknown group colormap: {name}")
    return builder(int(ngroups))


def linkage_from_correlation(coefficients, method='average'):
    """
    Build a linkage tree from condensed pairwise correlation coefficients.

    Parameters
    ----------
    coefficients : ndarray, shape (npairs,)
        First-peak coefficient per record pair (condensed order)
    method : str
        scipy linkage method

    Returns
    -------
    Z : ndarray
        scipy linkage matrix
    """
    dissimilarity = np.clip(1.0 - np.asarray(coefficients, dtype=float), 0.0, None)
    dissimilarity = np.nan_to_num(dissimilarity, nan=1.0)
    return linkage(dissimilarity, method=method)


def cluster_records(coefficients, nrecs, method='average', cutoff=0.2,
                    selector=None, colormap='red2green'):
    """
    Group records into clusters of similar waveforms.

    Parameters
    ----------
    coefficients : ndarray, shape (npairs,)
        First-peak coefficient per record pair (condensed order)
    nrecs : int
        Number of records
    method : str
        scipy linkage method
    cutoff : float
        Distance (1 - coefficient) at which the tree is cut
    selector : Selector, optional
        If given, asked for the cutoff via request_cluster_cutoff
    colormap : str
        Group coloring name (see GROUP_COLORMAPS)

    Returns
    -------
    result : ClusterResult
        Every record gets exactly one cluster id; ids are 1..k
    """
    if nrecs == 0:
        return ClusterResult(np.zeros(0, dtype=int), np.zeros((0, 4)), cutoff,
                             group_colors(0, colormap))
    if nrecs == 1:
        return ClusterResult(np.ones(1, dtype=int), np.zeros((0, 4)), cutoff,
                             group_colors(1, colormap))

    Z = linkage_from_correlation(coefficients, method=method)

    if selector is not None:
        cutoff = float(selector.request_cluster_cutoff(Z, cutoff))

    labels = fcluster(Z, t=cutoff, criterion='distance').astype(int)
    colors = group_colors(labels.max(), colormap)

    logger.info(f"Clustering ({method}, cutoff {cutoff:.3f}): {nrecs} records "
                f"-> {labels.max()} clusters")
    return ClusterResult(labels, Z, cutoff, colors)
