"""
Narrow-band filter bank generation.

A bank is an (nbands, 3) array.  Each row is one bandpass filter given
as (center, low corner, high corner) in Hz.
"""

import logging
from collections import namedtuple

import numpy as np

from ..exceptions import ValidationError

logger = logging.getLogger(__name__)

FilterBand = namedtuple('FilterBand', ['center', 'low', 'high'])

# float slack when deciding whether the last constant-mode center is in range
_RANGE_TOL = 1e-9


def _check_positive_scalar(value, name):
    if isinstance(value, bool) or not np.isscalar(value) or not isinstance(value, (int, float, np.number)):
        raise ValidationError(f"Filter {name} must be a positive scalar")
    if not np.isfinite(value) or value <= 0:
        raise ValidationError(f"Filter {name} must be > 0")


def filter_bank(frange, option, width, offset):
    """
    Make a set of narrow-band bandpass filters.

    Parameters
    ----------
    frange : sequence of 2 floats
        Frequency range (Hz) covered by the bank centers
    option : {'constant', 'variable'}
        'constant': width and offset are in Hz and stay fixed.
        'variable': width and offset are fractions of the center frequency.
    width : float
        Filter width
    offset : float
        Spacing between adjacent centers

    Returns
    -------
    bank : ndarray, shape (nbands, 3)
        Columns are center, low corner and high corner frequency

    Examples
    --------
    Filters over 0.01-0.1 Hz, 20% of the center frequency wide, each 10%
    above the previous one:

    >>> bank = filter_bank([0.01, 0.1], 'variable', 0.2, 0.1)
    """
    try:
        frange = np.asarray(frange, dtype=float).ravel()
    except (TypeError, ValueError):
        raise ValidationError("Range must be an array of 2 positive frequencies (Hz)")
    if frange.size != 2 or not np.all(np.isfinite(frange)) or np.any(frange <= 0):
        raise ValidationError("Range must be an array of 2 positive frequencies (Hz)")
    _check_positive_scalar(width, 'width')
    _check_positive_scalar(offset, 'offset')

    lo, hi = np.sort(frange)

    if option == 'constant':
        nbands = int(np.floor((hi - lo) / offset + _RANGE_TOL)) + 1
        centers = lo + offset * np.arange(nbands)
        bank = np.column_stack((centers, centers - width / 2.0, centers + width / 2.0))
    elif option == 'variable':
        rows = []
        center = lo
        while center <= hi:
            rows.append((center, center * (1 - width / 2.0), center * (1 + width / 2.0)))
            center = center * (1 + offset)
        bank = np.array(rows, dtype=float).reshape(-1, 3)
    else:
        raise ValidationError(f"Unknown option: {option}")

    logger.debug(f"Filter bank ({option}): {len(bank)} bands over {lo}-{hi} Hz")
    return bank


def iter_bands(bank):
    """Yield each row of a bank as a FilterBand."""
    for row in np.asarray(bank, dtype=float).reshape(-1, 3):
        yield FilterBand(float(row[0]), float(row[1]), float(row[2]))
