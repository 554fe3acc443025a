"""
Earthquake-station geometry module for relarr.

Provides:
- Great-circle distance, distance in km, azimuth and backazimuth per record
- Record culling by distance/azimuth windows
"""

import logging

import numpy as np
from obspy import Stream
from obspy.geodetics import gps2dist_azimuth, locations2degrees

from ..exceptions import DataError

logger = logging.getLogger(__name__)

# SAC header "undefined" sentinel
SAC_UNDEFINED = -12345.0

GEOMETRY_FIELDS = ('gcarc', 'dist', 'az', 'baz')


def _header_value(sac, key):
    value = sac.get(key) if sac is not None else None
    if value is None:
        return None
    value = float(value)
    if value == SAC_UNDEFINED or not np.isfinite(value):
        return None
    return value


def record_geometry(trace):
    """
    Get the earthquake-station geometry of a record.

    Header values (gcarc, dist, az, baz) are used when all are set,
    otherwise they are computed from the station/event coordinates.

    Parameters
    ----------
    trace : obspy.Trace
        Record with a SAC header in ``trace.stats.sac``

    Returns
    -------
    gcarc, dist, az, baz : float
        Distance in degrees, distance in km, azimuth and backazimuth in degrees

    Raises
    ------
    DataError
        If neither the geometry fields nor the coordinates are available.
    """
    sac = trace.stats.get('sac')
    values = [_header_value(sac, key) for key in GEOMETRY_FIELDS]
    if all(v is not None for v in values):
        return tuple(values)

    coords = [_header_value(sac, key) for key in ('evla', 'evlo', 'stla', 'stlo')]
    if any(c is None for c in coords):
        raise DataError(f"{trace.id}: no geometry header fields or coordinates")

    evla, evlo, stla, stlo = coords
    dist_m, az, baz = gps2dist_azimuth(evla, evlo, stla, stlo)
    gcarc = locations2degrees(evla, evlo, stla, stlo)
    return float(gcarc), dist_m / 1000.0, float(az), float(baz)


def _inside(value, bounds):
    return bounds[0] <= value <= bounds[1]


def cut_by_geometry(stream, gccut=(0.0, 180.0), kmcut=(0.0, np.inf),
                    azicut=(0.0, 360.0), bazicut=(0.0, 360.0)):
    """
    Keep records within all of the given distance/azimuth windows.

    Bounds are inclusive.  Order among surviving records is preserved and
    an empty result is valid.  Records lacking geometry are dropped with
    a warning.

    Parameters
    ----------
    stream : obspy.Stream
        Input records
    gccut : (float, float)
        Great-circle distance window (degrees)
    kmcut : (float, float)
        Distance window (km)
    azicut : (float, float)
        Azimuth window (degrees)
    bazicut : (float, float)
        Backazimuth window (degrees)

    Returns
    -------
    kept : obspy.Stream
        New stream holding the surviving traces (not copies)
    """
    kept = Stream()
    ncut = 0

    for tr in stream:
        try:
            gcarc, dist, az, baz = record_geometry(tr)
        except DataError as e:
            logger.warning(f"{e}; removing")
            ncut += 1
            continue

        if (_inside(gcarc, gccut) and _inside(dist, kmcut)
                and _inside(az, azicut) and _inside(baz, bazicut)):
            kept.append(tr)
        else:
            logger.debug(f"{tr.id}: outside geometry window "
                         f"(gcarc={gcarc:.2f}, dist={dist:.1f}, az={az:.1f}, baz={baz:.1f})")
            ncut += 1

    logger.info(f"Geometry cut: {len(stream)} -> {len(kept)} records ({ncut} removed)")
    return kept
