import numpy as np
import pytest

from relarr.core.timeutils import is_leap_year, days_in_year, parse_event_dirname
from relarr.exceptions import ValidationError


def test_leap_year_century_rules():
    assert is_leap_year(1900) is False
    assert is_leap_year(1904) is True
    assert is_leap_year(2000) is True
    assert is_leap_year(2004) is True


def test_leap_year_array_matches_rule():
    years = np.arange(1, 4001)
    expected = (years % 4 == 0) & ((years % 100 != 0) | (years % 400 == 0))
    np.testing.assert_array_equal(is_leap_year(years), expected)
    np.testing.assert_array_equal(is_leap_year([1900, 1904, 2000, 2004]), [False, True, True, True])


def test_leap_year_floors_and_rejects_non_numeric():
    assert is_leap_year(2000.7) is True
    with pytest.raises(ValidationError):
        is_leap_year('2000')


def test_days_in_year():
    assert days_in_year(2001) == 365
    assert days_in_year(2000) == 366
    np.testing.assert_array_equal(days_in_year([1900, 2000]), [365, 366])


def test_parse_event_dirname():
    t = parse_event_dirname('2009.123.04.05.06')
    assert (t.year, t.julday, t.hour, t.minute, t.second) == (2009, 123, 4, 5, 6)

    t = parse_event_dirname('/data/events/2008.366.23.59.59.500/')
    assert t.julday == 366
    assert abs(t.microsecond - 500000) < 1


def test_parse_event_dirname_rejects_bad_day_of_year():
    with pytest.raises(ValidationError):
        parse_event_dirname('2009.366.00.00.00')
    with pytest.raises(ValidationError):
        parse_event_dirname('not-an-event')
