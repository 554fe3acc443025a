"""
Phase arrival times for relarr records.

Arrivals come either from picks stored in the SAC header (kt0..kt9 phase
names with t0..t9 times) or from a TauP travel-time model.  Times in the
header are seconds relative to the record's SAC reference time.
"""

import logging
from functools import lru_cache

import numpy as np
from obspy import Stream
from obspy.core.util import AttribDict
from obspy.io.sac.util import get_sac_reftime
from obspy.taup import TauPyModel
from obspy.taup.helper_classes import TauModelError

from ..exceptions import DataError, ValidationError
from ..core.geometry import SAC_UNDEFINED, record_geometry

logger = logging.getLogger(__name__)

PICK_SLOTS = 10

_REFTIME_FIELDS = ('nzyear', 'nzjday', 'nzhour', 'nzmin', 'nzsec', 'nzmsec')


def reference_time(trace):
    """
    SAC reference time of a record.

    The value cached in ``stats.reftime`` by annotate_arrivals is used
    first, so records stay consistent after trimming.  Otherwise it is
    read from the nz* fields, falling back to ``starttime - b``.
    """
    cached = trace.stats.get('reftime')
    if cached is not None:
        return cached
    sac = trace.stats.get('sac', {})
    if all(sac.get(k) is not None and sac.get(k) != -12345 for k in _REFTIME_FIELDS):
        return get_sac_reftime(sac)
    return trace.stats.starttime - float(sac.get('b', 0.0))


def arrival_time(trace, ttfield):
    """Absolute time of the arrival stored in ``stats.sac[ttfield]``."""
    return reference_time(trace) + float(trace.stats.sac[ttfield])


def get_arrival(trace, phase):
    """
    Stored arrival time of a phase from the header picks.

    Searches kt0..kt9 for ``phase`` (case sensitive); the lowest
    matching slot wins.

    Returns
    -------
    time : float
        The matching t<n> value, or NaN if the phase is not found
    """
    sac = trace.stats.get('sac', {})
    for n in range(PICK_SLOTS):
        name = sac.get(f'kt{n}')
        if name is not None and str(name).strip() == phase:
            value = sac.get(f't{n}')
            if value is None or float(value) == SAC_UNDEFINED:
                continue
            return float(value)

    logger.warning(f"Could not find phase {phase} for record {trace.id}")
    return np.nan


@lru_cache(maxsize=4)
def _taup_model(model):
    return TauPyModel(model=model)


def check_taup_phase(phase, model='iasp91'):
    """
    Check that a TauP model loads and understands a phase name.

    Raises
    ------
    ValidationError
        If the model cannot be loaded or the phase name cannot be parsed.
    """
    try:
        taup = _taup_model(model)
    except (OSError, ValueError) as e:
        raise ValidationError(f"Unknown TauP model {model!r}: {e}") from e
    try:
        taup.get_travel_times(source_depth_in_km=0.0, distance_in_degree=30.0,
                              phase_list=[phase])
    except (TauModelError, ValueError) as e:
        raise ValidationError(f"Phase {phase!r} not understood by TauP model {model}: {e}") from e


def predict_arrival(trace, phase, model='iasp91'):
    """
    Predicted arrival time of a phase from a TauP model.

    Uses the record's great-circle distance and event depth (evdp, km)
    and adds the origin time offset (o) when set.

    Returns
    -------
    time : float
        Seconds relative to the SAC reference time, NaN if the phase
        does not exist at this distance
    """
    sac = trace.stats.get('sac', {})
    gcarc = record_geometry(trace)[0]
    depth = float(sac.get('evdp', 0.0))
    if depth == SAC_UNDEFINED:
        depth = 0.0
    origin = float(sac.get('o', 0.0))
    if origin == SAC_UNDEFINED:
        origin = 0.0

    try:
        arrivals = _taup_model(model).get_travel_times(
            source_depth_in_km=depth, distance_in_degree=gcarc, phase_list=[phase])
    except (TauModelError, ValueError) as e:
        raise DataError(f"{trace.id}: TauP could not compute {phase} in {model} ({e})") from e
    if not arrivals:
        logger.warning(f"No {phase} arrival in {model} for record {trace.id} at {gcarc:.2f} deg")
        return np.nan
    return origin + float(arrivals[0].time)


def annotate_arrivals(stream, phase, ttfield, pullarr=True, model='iasp91'):
    """
    Attach predicted phase arrival times to each record.

    Parameters
    ----------
    stream : obspy.Stream
        Input records
    phase : str
        Phase name
    ttfield : str
        SAC header field receiving the arrival time
    pullarr : bool
        Use header picks (True) or a TauP model (False)
    model : str
        TauP model name

    Returns
    -------
    annotated : obspy.Stream
        Records with a defined arrival; others are dropped with a warning
    """
    annotated = Stream()
    for tr in stream:
        try:
            if pullarr:
                t = get_arrival(tr, phase)
            else:
                t = predict_arrival(tr, phase, model)
        except DataError as e:
            logger.warning(f"{e}; removing")
            continue

        if not np.isfinite(t):
            logger.warning(f"{tr.id}: no {phase} arrival, removing")
            continue
        if 'sac' not in tr.stats:
            tr.stats.sac = AttribDict()
        tr.stats.reftime = reference_time(tr)
        tr.stats.sac[ttfield] = t
        annotated.append(tr)

    logger.info(f"Arrivals for {phase}: {len(annotated)} of {len(stream)} records")
    return annotated
