"""
relarr - Relative Arrival-time and Amplitude Determination

Measures relative phase arrival times and amplitudes across the records
of one earthquake by waveform cross-correlation.

This package provides:
- SAC record loading, geometry culling and predicted arrivals
- Narrow-band filter banks and per-record preprocessing
- Pairwise cross-correlation with top-N peak picking
- Hierarchical clustering of records by waveform similarity
- A least-squares relative arrival/amplitude solver with outlier preening
- Plain-text diagnostic reports for every stage
"""

__version__ = "0.1.0"
__author__ = "relarr Development Team"

from . import core
from . import io
from .config import RelarrConfig, load_config
from .exceptions import (
    RelarrError,
    ConfigError,
    ValidationError,
    DataError,
    UnderdeterminedError,
)

__all__ = [
    'core',
    'io',
    'RelarrConfig',
    'load_config',
    'RelarrError',
    'ConfigError',
    'ValidationError',
    'DataError',
    'UnderdeterminedError',
]
