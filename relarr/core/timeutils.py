"""
Calendar helpers (Gregorian calendar only).
"""

import re
import numpy as np

from obspy import UTCDateTime

from ..exceptions import ValidationError

_EVENT_DIR = re.compile(
    r'^(?P<year>\d{4})\.(?P<doy>\d{1,3})\.(?P<hour>\d{1,2})\.(?P<minute>\d{1,2})'
    r'\.(?P<second>\d{1,2})(?:\.(?P<frac>\d+))?$')


def is_leap_year(years):
    """
    True where ``years`` are leap years.

    Every 4th year is a leap year unless it falls on a century, except
    every 400th year.  Non-integer years are floored.  Only valid for
    1+ AD.

    Parameters
    ----------
    years : int or array-like
        Year(s) to test

    Returns
    -------
    isleap : bool or ndarray of bool
        Scalar for scalar input, array otherwise
    """
    arr = np.asarray(years)
    if arr.dtype.kind not in 'iuf':
        raise ValidationError("years must be numeric")

    arr = np.floor(arr).astype(np.int64)
    isleap = (arr % 4 == 0) & ((arr % 100 != 0) | (arr % 400 == 0))

    if isleap.ndim == 0:
        return bool(isleap)
    return isleap


def days_in_year(years):
    """Number of days in each year (365 or 366)."""
    leap = is_leap_year(years)
    return np.where(leap, 366, 365) if isinstance(leap, np.ndarray) else (366 if leap else 365)


def parse_event_dirname(name):
    """
    Parse an event directory name of the form ``YYYY.DDD.HH.MM.SS[.FFF]``.

    Parameters
    ----------
    name : str
        Directory name (a trailing path separator is ignored)

    Returns
    -------
    origin : obspy.UTCDateTime
    """
    base = str(name).rstrip('/\\').split('/')[-1]
    m = _EVENT_DIR.match(base)
    if m is None:
        raise ValidationError(f"Event directory name not understood: {name!r}")

    year = int(m.group('year'))
    doy = int(m.group('doy'))
    if not 1 <= doy <= days_in_year(year):
        raise ValidationError(f"Day of year {doy} out of range for {year}")

    hour, minute, second = int(m.group('hour')), int(m.group('minute')), int(m.group('second'))
    if hour > 23 or minute > 59 or second > 60:
        raise ValidationError(f"Time of day out of range in {name!r}")

    frac = m.group('frac')
    microsecond = int(round(float('0.' + frac) * 1e6)) if frac else 0
    origin = UTCDateTime(year=year, julday=doy, hour=hour, minute=minute)
    return origin + second + microsecond / 1e6
