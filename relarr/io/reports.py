"""
Diagnostic report files for relarr runs.

Each report is plain text: a block of ``key = value`` lines recording
the parameters of a stage, a blank line, then a tab-delimited per-record
table.  Reports are observational only; a failed write is logged and the
run carries on.
"""

import os
import logging

import numpy as np
import pandas as pd

from .arrivals import reference_time

logger = logging.getLogger(__name__)


def report_path(basename, suffix, tag=None):
    """``<basename>[.<tag>].<suffix>``"""
    if tag:
        return f"{basename}.{tag}.{suffix}"
    return f"{basename}.{suffix}"


def _fmt(value):
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, (tuple, list, np.ndarray)):
        return ' '.join(_fmt(v) for v in value)
    if isinstance(value, (float, np.floating)):
        return f"{value:g}"
    return str(value)


def write_report(path, header, table=None):
    """
    Write one report file, replacing any existing one.

    Parameters
    ----------
    path : str
        Output file
    header : dict
        Parameters written as ``key = value`` lines
    table : pandas.DataFrame, optional
        Per-record table

    Returns
    -------
    path : str or None
        None when the file could not be written
    """
    try:
        out_dir = os.path.dirname(path)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        with open(path, 'w') as fh:
            for key, value in header.items():
                fh.write(f"{key} = {_fmt(value)}\n")
            if table is not None:
                fh.write("\n")
                table.to_csv(fh, sep='\t', index=False, float_format='%.6g')
    except OSError as e:
        logger.error(f"Could not write report {path}: {e}")
        return None

    logger.debug(f"Wrote {path}")
    return path


def write_snr_report(basename, names, snr, cut, threshold, tag=None):
    table = pd.DataFrame({
        'FILENAME': names,
        'SNR': np.asarray(snr, dtype=float),
        'CUT': np.where(np.asarray(cut, dtype=bool), 'X', ''),
    })
    header = {'snr cut': threshold, 'number cut': int(np.count_nonzero(cut))}
    return write_report(report_path(basename, 'qcksnr', tag), header, table)


def write_window_report(basename, stream, window, interactive, tag=None):
    """Window table; BEGIN and END are seconds from each record's reference time."""
    table = pd.DataFrame({
        'FILENAME': [tr.stats.get('filename', tr.id) for tr in stream],
        'BEGIN': [float(tr.stats.starttime - reference_time(tr)) for tr in stream],
        'END': [float(tr.stats.endtime - reference_time(tr)) for tr in stream],
        'DELTA': [tr.stats.delta for tr in stream],
        'NPTS': [tr.stats.npts for tr in stream],
    })
    header = {'interactive': interactive, 'window': window,
              'length': window[1] - window[0], 'times relative to': 'reference time'}
    return write_report(report_path(basename, 'window', tag), header, table)


def write_taper_report(basename, taper_type, halfwidth, names, tag=None):
    table = pd.DataFrame({'FILENAME': list(names)})
    header = {'taper type': taper_type, 'taper halfwidth': halfwidth,
              'records tapered': len(table)}
    return write_report(report_path(basename, 'taper', tag), header, table)


def write_cluster_report(basename, names, clusters, method, interactive, tag=None):
    table = pd.DataFrame({'FILENAME': list(names), 'CLUSTER_ID': clusters.labels})
    header = {'clustering method': method, 'interactive': interactive,
              'clustering distance': clusters.cutoff,
              'number of clusters': clusters.nclusters}
    return write_report(report_path(basename, 'cluster', tag), header, table)


def write_linkage_report(basename, clusters, tag=None):
    path = report_path(basename, 'linkage', tag)
    try:
        out_dir = os.path.dirname(path)
        if out_dir:
            os.makedirs(out_dir, exist_ok=True)
        np.savetxt(path, clusters.linkage, fmt='%.6g')
    except OSError as e:
        logger.error(f"Could not write report {path}: {e}")
        return None
    return path


def write_alignment_report(basename, alignment, band, tag=None):
    header = {'filter': (band.center, band.low, band.high)}
    for cid, score in sorted(alignment.cluster_scores.items()):
        header[f'cluster {cid} score'] = score
    return write_report(report_path(basename, 'align', tag), header, alignment.to_frame())
