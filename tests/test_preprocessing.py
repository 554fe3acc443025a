import numpy as np
import pytest
from obspy import Stream, Trace, UTCDateTime
from obspy.core.util import AttribDict

from relarr.core.filterbank import FilterBand
from relarr.core.preprocessing import (
    apply_taper_to_trace,
    bandpass_filter,
    filter_stream,
    prefilter_prep,
    quick_snr,
    remove_dead,
    snr_cut,
    window_records,
)
from relarr.exceptions import ValidationError

T0 = UTCDateTime(2009, 5, 3, 4, 5, 6)


def _make_trace(data, delta=1.0, station='A'):
    return Trace(np.asarray(data, dtype=float),
                 header={'delta': delta, 'starttime': T0, 'station': station})


def test_bandpass_keeps_passband():
    fs = 20.0
    t = np.arange(0, 60, 1 / fs)
    inband = np.sin(2 * np.pi * 1.0 * t)
    outband = np.sin(2 * np.pi * 5.0 * t)
    y = bandpass_filter(inband + outband, fs, 0.5, 1.5, corners=4, zerophase=True)
    mid = slice(400, 800)
    np.testing.assert_allclose(y[mid], inband[mid], atol=0.05)


def test_bandpass_unit_gain_in_narrow_low_band():
    fs = 40.0
    t = np.arange(0, 12000, 1 / fs)
    x = np.sin(2 * np.pi * 0.01 * t)
    y = bandpass_filter(x, fs, 0.009, 0.011)
    mid = slice(int(4000 * fs), int(8000 * fs))
    assert np.std(y[mid]) / np.std(x[mid]) == pytest.approx(1.0, abs=0.1)


@pytest.mark.parametrize("freqmin, freqmax", [
    (0.0, 1.0),
    (-0.5, 1.0),
    (1.0, 10.0),
    (1.0, 12.0),
    (2.0, 1.0),
])
def test_bandpass_rejects_corners_outside_nyquist(freqmin, freqmax):
    with pytest.raises(ValidationError):
        bandpass_filter(np.ones(100), 20.0, freqmin, freqmax)


def test_filter_stream():
    fs = 20.0
    t = np.arange(0, 60, 1 / fs)
    st = Stream([_make_trace(np.sin(2 * np.pi * 5.0 * t), delta=1 / fs)])
    filter_stream(st, FilterBand(1.0, 0.5, 1.5))
    assert np.max(np.abs(st[0].data[400:800])) < 0.05


def test_prefilter_prep_removes_mean_and_trend():
    st = Stream([_make_trace(np.arange(100) * 2 + 7)])
    st[0].data = st[0].data.astype(np.int32)
    prefilter_prep(st, detrend=True, pretaper=0.0)
    assert st[0].data.dtype == np.float64
    np.testing.assert_allclose(st[0].data, 0.0, atol=1e-9)

    st = Stream([_make_trace(np.ones(100) * 3 + np.sin(np.arange(100)))])
    prefilter_prep(st, detrend=False, pretaper=0.1)
    assert st[0].data[0] == pytest.approx(0.0)


def test_quick_snr():
    data = np.zeros(100)
    data[20], data[30] = 1.0, -1.0
    data[55], data[60] = 5.0, -5.0
    tr = _make_trace(data)
    arrival = T0 + 50
    assert quick_snr(tr, arrival, (-40, -10), (-5, 20)) == pytest.approx(5.0)

    # windows outside the record
    assert np.isnan(quick_snr(tr, T0 + 500, (-40, -10), (-5, 20)))

    quiet = np.zeros(100)
    quiet[60] = 1.0
    assert quick_snr(_make_trace(quiet), arrival, (-40, -10), (-5, 20)) == np.inf


def test_snr_cut():
    st = Stream([_make_trace(np.zeros(10), station=s) for s in 'ABC'])
    for tr, snr in zip(st, (10.0, 1.0, np.nan)):
        tr.stats.sac = AttribDict({'user1': snr})
    kept, cut = snr_cut(st, 'user1', 2.0)
    assert [tr.stats.station for tr in kept] == ['A']
    np.testing.assert_array_equal(cut, [False, True, True])


def test_window_records():
    st = Stream([_make_trace(np.arange(100.0), station='A'),
                 _make_trace(np.arange(100.0), station='B')])
    out = window_records(st, [T0 + 50, T0 + 95], (-10, 10), fill=True, filler=-1.0)
    assert [tr.stats.npts for tr in out] == [21, 21]
    assert out[0].data[0] == 40.0
    assert out[0].stats.window_offset == pytest.approx(0.0)
    assert not np.ma.isMaskedArray(out[1].data)
    np.testing.assert_array_equal(out[1].data[-6:], -1.0)

    st = Stream([_make_trace(np.arange(100.0))])
    out = window_records(st, [T0 + 95], (-10, 10), fill=False)
    assert out[0].stats.npts == 15


def test_window_offset_tracks_sample_snapping():
    st = Stream([_make_trace(np.arange(100.0))])
    out = window_records(st, [T0 + 50.4], (-10, 10))
    assert out[0].stats.window_offset == pytest.approx(-0.4)


def test_window_outside_record_is_dropped():
    st = Stream([_make_trace(np.arange(100.0))])
    assert len(window_records(st, [T0 + 500], (-10, 10), fill=False)) == 0


def test_remove_dead():
    st = Stream([_make_trace(np.ones(10), station='A'),
                 _make_trace(np.arange(10.0), station='B'),
                 _make_trace(np.zeros(0), station='C')])
    assert [tr.stats.station for tr in remove_dead(st)] == ['B']


@pytest.mark.parametrize('taper_type', ['hann', 'hamming', 'blackman', 'bartlett', 'cosine'])
def test_taper_shapes(taper_type):
    tr = apply_taper_to_trace(_make_trace(np.ones(100)), max_percentage=0.1,
                              taper_type=taper_type)
    assert tr.data[0] < 0.2
    assert tr.data[-1] < 0.2
    np.testing.assert_allclose(tr.data[10:90], 1.0)


def test_unknown_taper():
    with pytest.raises(ValueError):
        apply_taper_to_trace(_make_trace(np.ones(10)), taper_type='kaiser')
