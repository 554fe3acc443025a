import numpy as np
from obspy import Stream, Trace, UTCDateTime

from relarr.core.clustering import cluster_records
from relarr.core.filterbank import FilterBand
from relarr.core.solver import AlignmentResult
from relarr.io import reports


def test_report_path():
    assert reports.report_path('out/P.event1.run2', 'align') == 'out/P.event1.run2.align'
    assert reports.report_path('out/P.event1.run2', 'align', 'filter03') == 'out/P.event1.run2.filter03.align'


def test_snr_report(tmp_path):
    base = str(tmp_path / 'P.event2009123040506.run1')
    path = reports.write_snr_report(base, ['a.sac', 'b.sac'], [12.5, 0.8], [False, True], 2.0)
    assert path == base + '.qcksnr'
    text = open(path).read()
    lines = text.splitlines()
    assert lines[0] == 'snr cut = 2'
    assert lines[1] == 'number cut = 1'
    assert lines[2] == ''
    assert lines[3].split('\t') == ['FILENAME', 'SNR', 'CUT']
    assert lines[5].split('\t')[0] == 'b.sac'
    assert lines[5].split('\t')[2] == 'X'


def test_report_overwrites(tmp_path):
    base = str(tmp_path / 'run')
    reports.write_taper_report(base, 'hann', 0.05, ['a', 'b', 'c'])
    path = reports.write_taper_report(base, 'hamming', 0.1, ['a'])
    text = open(path).read()
    assert 'taper type = hamming' in text
    assert 'records tapered = 1' in text


def test_cluster_and_linkage_reports(tmp_path):
    base = str(tmp_path / 'sub' / 'run')
    clusters = cluster_records(np.array([0.95, 0.1, 0.1]), 3, cutoff=0.2)
    path = reports.write_cluster_report(base, ['a', 'b', 'c'], clusters, 'average', False, tag='filter01')
    assert path.endswith('run.filter01.cluster')
    assert 'number of clusters = 2' in open(path).read()

    path = reports.write_linkage_report(base, clusters)
    assert np.loadtxt(path).shape == (2, 4)


def test_window_report_is_relative_to_reference_time(tmp_path):
    tr = Trace(np.zeros(41), header={'delta': 0.5, 'starttime': UTCDateTime(2009, 5, 3, 4, 5, 6)})
    tr.stats.sac = {'b': -10.0}
    tr.stats.filename = 'a.sac'
    path = reports.write_window_report(str(tmp_path / 'run'), Stream([tr]), (-10.0, 10.0), False)
    lines = open(path).read().splitlines()
    assert 'times relative to = reference time' in lines
    assert lines[5].split('\t') == ['FILENAME', 'BEGIN', 'END', 'DELTA', 'NPTS']
    assert lines[6].split('\t') == ['a.sac', '-10', '10', '0.5', '41']


def test_alignment_report(tmp_path):
    alignment = AlignmentResult(
        names=['a', 'b'], clusters=np.array([1, 1]), shifts=np.array([-0.1, 0.1]),
        arrivals=np.array([99.9, 100.1]), amplitudes=np.array([1.0, -1.0]),
        polarities=np.array([1.0, -1.0]), residuals=np.array([0.0, 0.0]),
        status=np.array(['aligned', 'aligned']), cluster_scores={1: 0.0})
    path = reports.write_alignment_report(str(tmp_path / 'run'), alignment, FilterBand(1.0, 0.5, 1.5))
    text = open(path).read()
    assert 'filter = 1 0.5 1.5' in text
    assert 'cluster 1 score = 0' in text
    assert 'FILENAME\tCLUSTER_ID\tSTATUS' in text


def test_unwritable_report_returns_none(tmp_path):
    blocker = tmp_path / 'blocker'
    blocker.write_text('not a directory')
    base = str(blocker / 'run')
    assert reports.write_taper_report(base, 'hann', 0.05, ['a']) is None
    clusters = cluster_records(np.array([0.95, 0.1, 0.1]), 3)
    assert reports.write_linkage_report(base, clusters) is None
