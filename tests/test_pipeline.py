import matplotlib
matplotlib.use('Agg')

import os

import numpy as np
import pytest
from obspy import Stream, Trace, UTCDateTime
from obspy.core.util import AttribDict

import relarr.interactive as interactive
from relarr.config import load_config
from relarr.interactive import MatplotlibSelector
from relarr.pipeline import run_relarr, inject_corrections, prepare_records

T0 = UTCDateTime(2009, 5, 3, 4, 5, 6)
FS = 20.0
SHIFTS = np.array([0.0, 0.25, -0.5, 0.75, 0.1, -0.3])
SIGNS = np.array([1, 1, 1, -1, 1, 1])


def _wavelet(t, center):
    return np.exp(-((t - center) / 0.5) ** 2) * np.cos(2 * np.pi * (t - center))


def _make_event_stream(shifts=SHIFTS, signs=SIGNS, noise_only=1, seed=0):
    """Records with a 1 Hz wavelet arriving at 100 s + shift, plus pure-noise records."""
    rng = np.random.default_rng(seed)
    t = np.arange(4000) / FS
    st = Stream()
    for k in range(len(shifts) + noise_only):
        data = 0.01 * rng.standard_normal(t.size)
        if k < len(shifts):
            data += signs[k] * _wavelet(t, 100.0 + shifts[k])
        tr = Trace(data, header={'network': 'XX', 'station': f'S{k:02d}',
                                 'delta': 1 / FS, 'starttime': T0})
        tr.stats.filename = f'S{k:02d}.sac' if k < len(shifts) else 'NOISE.sac'
        tr.stats.sac = AttribDict({'kt1': 'P', 't1': 100.0, 'gcarc': 30.0 + k,
                                   'dist': 3335.8 + 111.2 * k, 'az': 10.0 * k,
                                   'baz': 180.0 + 10.0 * k})
        st.append(tr)
    return st


def _make_config(tmp_path, **overrides):
    opts = dict(datedir='2009.123.04.05.06', outputdir=str(tmp_path), run_id='1',
                filter_range=(1.0, 1.0), filter_option='constant',
                filter_width=1.0, filter_offset=1.0,
                sigwin=(-10.0, 10.0), noiswin=(-60.0, -20.0), qcksnrcut=3.0)
    opts.update(overrides)
    return load_config(**opts)


def test_recovers_relative_arrivals(tmp_path):
    cfg = _make_config(tmp_path)
    result = run_relarr(cfg, stream=_make_event_stream())

    assert len(result.trials) == 1
    trial = result.trials[0]
    assert trial.tag is None
    assert trial.names == [f'S{k:02d}.sac' for k in range(6)]
    assert trial.clusters.nclusters == 1

    alignment = trial.alignment
    assert np.all(alignment.aligned)
    np.testing.assert_allclose(alignment.shifts, SHIFTS - SHIFTS.mean(), atol=1e-6)
    np.testing.assert_allclose(alignment.arrivals, 100.0 + SHIFTS - SHIFTS.mean(), atol=1e-6)
    np.testing.assert_array_equal(alignment.polarities, SIGNS)

    base = tmp_path / 'P.event2009123040506.run1'
    for suffix in ('qcksnr', 'window', 'taper', 'cluster', 'linkage', 'align'):
        assert os.path.exists(f'{base}.{suffix}')
        assert trial.report_files[suffix] == f'{base}.{suffix}'

    snr_lines = open(f'{base}.qcksnr').read().splitlines()
    noise_row = [line for line in snr_lines if line.startswith('NOISE.sac')][0]
    assert noise_row.split('\t')[2] == 'X'
    assert 'number cut = 1' in snr_lines


def test_prepared_records_are_not_modified(tmp_path):
    cfg = _make_config(tmp_path)
    stream = _make_event_stream()
    result = run_relarr(cfg, stream=stream)
    assert all(tr.stats.sac.user0 == 100.0 for tr in result.records)
    assert len(result.records) == 7


def test_filter_bank_and_trials_are_tagged(tmp_path):
    cfg = _make_config(tmp_path, filter_range=(0.8, 1.2), filter_offset=0.4, ntrials=2)
    result = run_relarr(cfg, stream=_make_event_stream())

    assert [t.tag for t in result.trials] == ['filter01.trial01', 'filter01.trial02',
                                              'filter02.trial01', 'filter02.trial02']
    base = tmp_path / 'P.event2009123040506.run1'
    assert os.path.exists(f'{base}.filter02.trial02.align')
    assert not os.path.exists(f'{base}.align')

    # the second trial starts from the first trial's corrected arrivals
    np.testing.assert_allclose(result.trials[1].alignment.shifts, 0.0, atol=1e-6)
    # bands do not chain by default
    np.testing.assert_allclose(result.trials[2].alignment.shifts, SHIFTS - SHIFTS.mean(), atol=1e-6)


def test_chain_filters(tmp_path):
    cfg = _make_config(tmp_path, filter_range=(0.8, 1.2), filter_offset=0.4, chain_filters=True)
    result = run_relarr(cfg, stream=_make_event_stream())
    assert [t.tag for t in result.trials] == ['filter01', 'filter02']
    np.testing.assert_allclose(result.trials[1].alignment.shifts, 0.0, atol=1e-6)


def test_no_records(tmp_path):
    result = run_relarr(_make_config(tmp_path), stream=Stream())
    trial = result.trials[0]
    assert trial.nrecs == 0
    assert trial.alignment.nrecs == 0
    assert trial.clusters.nclusters == 0
    assert os.path.exists(trial.report_files['align'])


def test_interactive_cancel_falls_back_to_configured_values(tmp_path, monkeypatch):
    monkeypatch.setattr(interactive.plt, 'ginput', lambda n, timeout=0: [])
    cfg = _make_config(tmp_path, userwin=True, usercluster=True)
    result = run_relarr(cfg, selector=MatplotlibSelector(), stream=_make_event_stream())

    trial = result.trials[0]
    assert trial.window == (-10.0, 10.0)
    assert trial.clusters.cutoff == pytest.approx(0.2)
    np.testing.assert_allclose(trial.alignment.shifts, SHIFTS - SHIFTS.mean(), atol=1e-6)


def test_plot_written(tmp_path):
    cfg = _make_config(tmp_path, plot=True)
    run_relarr(cfg, stream=_make_event_stream())
    assert os.path.exists(tmp_path / 'P.event2009123040506.run1.png')


def test_inject_corrections(tmp_path):
    cfg = _make_config(tmp_path)
    records = prepare_records(cfg, _make_event_stream())
    result = run_relarr(cfg, stream=_make_event_stream())
    inject_corrections(records, result.trials[0].alignment, cfg.ttfield)

    corrected = {tr.stats.filename: tr.stats.sac.user0 for tr in records}
    assert corrected['NOISE.sac'] == 100.0
    assert corrected['S03.sac'] == pytest.approx(100.0 + SHIFTS[3] - SHIFTS.mean(), abs=1e-6)
