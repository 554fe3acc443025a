import numpy as np
import pytest
from obspy import Stream, Trace
from obspy.core.util import AttribDict

from relarr.core.geometry import cut_by_geometry, record_geometry, SAC_UNDEFINED
from relarr.exceptions import DataError


def _make_record(station, gcarc, dist, az, baz):
    tr = Trace(np.zeros(10))
    tr.stats.station = station
    tr.stats.sac = AttribDict({'gcarc': gcarc, 'dist': dist, 'az': az, 'baz': baz})
    return tr


def _make_stream():
    return Stream([
        _make_record('A', 30.0, 3335.8, 10.0, 190.0),
        _make_record('B', 60.0, 6671.7, 90.0, 270.0),
        _make_record('C', 95.0, 10563.5, 180.0, 0.0),
        _make_record('D', 120.0, 13343.4, 300.0, 120.0),
    ])


def test_cut_is_inclusive_and_keeps_order():
    st = cut_by_geometry(_make_stream(), gccut=(30.0, 95.0))
    assert [tr.stats.station for tr in st] == ['A', 'B', 'C']

    st = cut_by_geometry(_make_stream(), azicut=(90.0, 360.0), bazicut=(0.0, 200.0))
    assert [tr.stats.station for tr in st] == ['C', 'D']

    st = cut_by_geometry(_make_stream(), kmcut=(5000.0, 11000.0))
    assert [tr.stats.station for tr in st] == ['B', 'C']


def test_cut_is_idempotent():
    once = cut_by_geometry(_make_stream(), gccut=(50.0, 130.0), azicut=(0.0, 200.0))
    twice = cut_by_geometry(once, gccut=(50.0, 130.0), azicut=(0.0, 200.0))
    assert [tr.id for tr in once] == [tr.id for tr in twice]


def test_cut_can_empty_the_stream():
    assert len(cut_by_geometry(_make_stream(), gccut=(150.0, 180.0))) == 0
    assert len(cut_by_geometry(Stream())) == 0


def test_geometry_from_coordinates():
    tr = _make_record('E', SAC_UNDEFINED, SAC_UNDEFINED, SAC_UNDEFINED, SAC_UNDEFINED)
    tr.stats.sac.update({'evla': 0.0, 'evlo': 0.0, 'stla': 0.0, 'stlo': 10.0})
    gcarc, dist, az, baz = record_geometry(tr)
    assert gcarc == pytest.approx(10.0, abs=1e-6)
    assert dist == pytest.approx(1113.2, rel=1e-2)
    assert az == pytest.approx(90.0, abs=1e-3)
    assert baz == pytest.approx(270.0, abs=1e-3)


def test_missing_geometry_is_dropped():
    tr = Trace(np.zeros(10))
    tr.stats.station = 'X'
    tr.stats.sac = AttribDict({'gcarc': 40.0})
    with pytest.raises(DataError):
        record_geometry(tr)

    st = _make_stream()
    st.append(tr)
    assert 'X' not in [t.stats.station for t in cut_by_geometry(st)]
