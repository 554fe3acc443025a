"""
I/O modules for relarr.

Provides:
- SAC record loading for one event directory
- Predicted arrival times (header picks or TauP)
- Diagnostic report writers
"""

from .waveform_loader import RecordLoader, load_event_records
from .arrivals import annotate_arrivals, get_arrival, predict_arrival, arrival_time

__all__ = [
    'RecordLoader',
    'load_event_records',
    'annotate_arrivals',
    'get_arrival',
    'predict_arrival',
    'arrival_time',
]
