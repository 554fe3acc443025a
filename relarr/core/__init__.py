"""
Core algorithms for relative arrival determination.

This module provides:
- Earthquake-station geometry and record culling
- Filter bank generation
- Signal preprocessing (filtering, SNR, windowing, tapering)
- Pairwise cross-correlation
- Hierarchical clustering
- Relative arrival/amplitude solving
"""

from .geometry import record_geometry, cut_by_geometry
from .filterbank import filter_bank, iter_bands, FilterBand
from .timeutils import is_leap_year, days_in_year, parse_event_dirname
from .correlation import records_to_matrix, correlate_records, correlate_pair, pair_indices
from .clustering import cluster_records, linkage_from_correlation, group_colors
from .solver import solve_cluster, preen_cluster, align_clusters

__all__ = [
    'record_geometry',
    'cut_by_geometry',
    'filter_bank',
    'iter_bands',
    'FilterBand',
    'is_leap_year',
    'days_in_year',
    'parse_event_dirname',
    'records_to_matrix',
    'correlate_records',
    'correlate_pair',
    'pair_indices',
    'cluster_records',
    'linkage_from_correlation',
    'group_colors',
    'solve_cluster',
    'preen_cluster',
    'align_clusters',
]
