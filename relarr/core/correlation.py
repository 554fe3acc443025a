"""
Pairwise waveform cross-correlation for relarr.

For every unordered record pair (i < j) the strongest peaks of the
normalized cross-correlogram are picked, giving per pair and peak rank:
- correlation coefficient
- lag (seconds, delay of record j relative to record i)
- polarity (+1/-1; -1 marks a trough when picking peaks and troughs)
- amplitude ratio (least-squares scale of record j onto record i)

Pairs are laid out in the condensed order used by scipy.spatial.distance,
so a coefficient column can go straight into scipy's linkage.
"""

import logging
import multiprocessing as mp
from dataclasses import dataclass
from functools import partial

import numpy as np
from scipy.fft import rfft, irfft
from scipy.signal import find_peaks

from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class RecordMatrix:
    """Windowed records stacked column-wise (npts x nrecs)."""
    data: np.ndarray
    delta: float
    offsets: np.ndarray
    names: list

    @property
    def nrecs(self):
        return self.data.shape[1]


@dataclass
class CorrelationSet:
    """Top-N correlation peaks for all record pairs (arrays are npairs x npeaks)."""
    coefficients: np.ndarray
    lags: np.ndarray
    polarities: np.ndarray
    ratios: np.ndarray
    nrecs: int

    @property
    def npairs(self):
        return self.coefficients.shape[0]

    @property
    def npeaks(self):
        return self.coefficients.shape[1]

    def pairs(self):
        return pair_indices(self.nrecs)


def pair_indices(nrecs):
    """
    Record index pairs (i, j), i < j, in condensed-distance order.

    Returns
    -------
    pairs : ndarray, shape (npairs, 2)
    """
    i, j = np.triu_indices(nrecs, k=1)
    return np.column_stack((i, j)).astype(int)


def records_to_matrix(stream, cube=False):
    """
    Stack records into a matrix for correlation.

    Records shorter than the longest are zero-padded at the end.

    Parameters
    ----------
    stream : obspy.Stream
        Windowed records, all with the same sample interval
    cube : bool
        Cube the samples (emphasizes large amplitudes)

    Returns
    -------
    matrix : RecordMatrix

    Raises
    ------
    ValidationError
        If the records do not share one sample interval.
    """
    names = [tr.stats.get('filename', tr.id) for tr in stream]
    if len(stream) == 0:
        return RecordMatrix(np.zeros((0, 0)), np.nan, np.zeros(0), names)

    deltas = np.array([tr.stats.delta for tr in stream])
    if not np.allclose(deltas, deltas[0], rtol=1e-6, atol=0):
        raise ValidationError("All records must share the same sample interval for correlation")

    npts = max(tr.stats.npts for tr in stream)
    data = np.zeros((npts, len(stream)), dtype=np.float64)
    for k, tr in enumerate(stream):
        data[:tr.stats.npts, k] = np.asarray(tr.data, dtype=np.float64)
    if cube:
        data = data ** 3

    offsets = np.array([float(tr.stats.get('window_offset', 0.0)) for tr in stream])
    return RecordMatrix(data, float(deltas[0]), offsets, names)


def _fft_length(n, pow2pad):
    if pow2pad <= 0:
        return n
    return 2 ** (int(np.ceil(np.log2(n))) + pow2pad - 1)


def correlate_pair(a, b, npeaks=1, spacing=1, normxc=True, absxc=True, pow2pad=1):
    """
    Cross-correlate two records and pick the strongest correlogram peaks.

    Parameters
    ----------
    a, b : ndarray
        Records i and j
    npeaks : int
        Number of peaks to return
    spacing : int
        Minimum separation between picked peaks (samples)
    normxc : bool
        Normalize the correlogram to correlation coefficients
    absxc : bool
        Pick on the absolute correlogram (peaks and troughs)
    pow2pad : int
        0 for no padding, k >= 1 pads the FFT to 2**(nextpow2+k-1)

    Returns
    -------
    coef, lag, polarity, ratio : ndarray, shape (npeaks,)
        Lags are in samples, positive when ``b`` is delayed relative to ``a``.
        Unfilled peak slots hold 0, NaN, 0, NaN.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    na, nb = len(a), len(b)

    coef = np.zeros(npeaks)
    lag = np.full(npeaks, np.nan)
    polarity = np.zeros(npeaks)
    ratio = np.full(npeaks, np.nan)

    energy_a = np.dot(a, a)
    energy_b = np.dot(b, b)
    if na == 0 or nb == 0 or energy_a == 0 or energy_b == 0:
        return coef, lag, polarity, ratio

    n = na + nb - 1
    nfft = _fft_length(n, pow2pad)
    r = irfft(rfft(b, nfft) * np.conj(rfft(a, nfft)), nfft)
    # lags -(na-1) .. (nb-1)
    xc = np.concatenate((r[nfft - (na - 1):], r[:nb])) if na > 1 else r[:nb].copy()
    lags = np.arange(-(na - 1), nb)

    raw = xc.copy()
    if normxc:
        xc = xc / np.sqrt(energy_a * energy_b)

    picker = np.abs(xc) if absxc else xc
    padded = np.concatenate(([-np.inf], picker, [-np.inf]))
    idx, _ = find_peaks(padded, distance=max(1, int(spacing)))
    idx = idx - 1
    if idx.size == 0:
        idx = np.array([int(np.argmax(picker))])

    # strongest first; ties (to FFT roundoff) go to the smaller |lag|, then the earlier lag
    strength = np.round(picker[idx], 12)
    order = np.lexsort((lags[idx], np.abs(lags[idx]), -strength))
    idx = idx[order][:npeaks]

    k = idx.size
    coef[:k] = picker[idx]
    lag[:k] = lags[idx]
    polarity[:k] = np.where(xc[idx] < 0, -1.0, 1.0)
    ratio[:k] = raw[idx] / energy_a
    return coef, lag, polarity, ratio


def _correlate_pairs(data, pairs, **kwargs):
    return [correlate_pair(data[:, i], data[:, j], **kwargs) for i, j in pairs]


def correlate_records(matrix, npeaks=1, spacing=1, normxc=True, absxc=True,
                      pow2pad=1, workers=1):
    """
    Correlate every record pair of a record matrix.

    Parameters
    ----------
    matrix : RecordMatrix
        Windowed, tapered records
    npeaks, spacing, normxc, absxc, pow2pad
        See correlate_pair
    workers : int
        Number of processes; pairs are split into chunks and reassembled
        in pair order, so output does not depend on this value

    Returns
    -------
    correlation : CorrelationSet
        Lags are converted to seconds and corrected for window offsets
    """
    nrecs = matrix.nrecs
    pairs = pair_indices(nrecs)
    npairs = len(pairs)

    cv = np.zeros((npairs, npeaks))
    lv = np.full((npairs, npeaks), np.nan)
    pv = np.zeros((npairs, npeaks))
    av = np.full((npairs, npeaks), np.nan)

    if npairs == 0:
        return CorrelationSet(cv, lv, pv, av, nrecs)

    opts = dict(npeaks=npeaks, spacing=spacing, normxc=normxc, absxc=absxc, pow2pad=pow2pad)
    logger.info(f"Correlating {nrecs} records ({npairs} pairs, {npeaks} peaks each)")

    if workers > 1 and npairs > 1:
        chunks = [c for c in np.array_split(pairs, min(workers * 4, npairs)) if len(c)]
        with mp.Pool(processes=workers) as pool:
            parts = pool.map(partial(_correlate_pairs, matrix.data, **opts), chunks)
        results = [res for part in parts for res in part]
    else:
        results = _correlate_pairs(matrix.data, pairs, **opts)

    for p, (coef, lag, pol, ratio) in enumerate(results):
        cv[p] = coef
        lv[p] = lag
        pv[p] = pol
        av[p] = ratio

    # samples -> seconds, relative to each record's predicted arrival
    lv = lv * matrix.delta
    lv += (matrix.offsets[pairs[:, 1]] - matrix.offsets[pairs[:, 0]])[:, None]

    return CorrelationSet(cv, lv, pv, av, nrecs)
