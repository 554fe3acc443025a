"""
Signal preprocessing module for relarr.

Provides the per-record processing stages applied before correlation:
- Pre-filter preparation (mean/trend removal, edge taper)
- Bandpass filtering
- Quick signal-to-noise ratio and SNR cut
- Windowing around the predicted arrival
- Dead record removal
- Tapering
"""

import logging

import numpy as np
from obspy import Stream
from scipy.signal import butter, sosfilt, sosfiltfilt, detrend as _detrend

from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


def _sine_window(n):
    return np.sin(np.pi * (np.arange(n) + 0.5) / n)


# closed set of taper shapes; each builds a full symmetric window of n points
TAPER_WINDOWS = {
    'hann': np.hanning,
    'hamming': np.hamming,
    'blackman': np.blackman,
    'bartlett': np.bartlett,
    'cosine': _sine_window,
}


def bandpass_filter(data, sampling_rate, freqmin, freqmax, corners=4, zerophase=True):
    """
    Apply a Butterworth bandpass filter.

    Parameters
    ----------
    data : ndarray
        Input data array
    sampling_rate : float
        Sampling rate in Hz
    freqmin : float
        Minimum frequency (Hz)
    freqmax : float
        Maximum frequency (Hz)
    corners : int
        Number of filter corners (order)
    zerophase : bool
        Filter forward and backward (zero phase shift)

    Returns
    -------
    filtered : ndarray
        Bandpass filtered data

    Raises
    ------
    ValidationError
        If the corners are not 0 < freqmin < freqmax < Nyquist.
    """
    nyquist = 0.5 * sampling_rate
    if not 0 < freqmin < freqmax < nyquist:
        raise ValidationError(f"Bandpass corners {freqmin}-{freqmax} Hz must lie "
                              f"strictly between 0 and Nyquist ({nyquist} Hz)")

    sos = butter(corners, [freqmin / nyquist, freqmax / nyquist], btype='band', output='sos')
    if zerophase:
        return sosfiltfilt(sos, data)
    return sosfilt(sos, data)


def prefilter_prep(stream, detrend=True, pretaper=0.05):
    """
    Prepare records for filtering: float samples, mean/trend removed, edges tapered.

    Parameters
    ----------
    stream : obspy.Stream
        Input stream (modified in-place)
    detrend : bool
        Remove a linear trend in addition to the mean
    pretaper : float
        Taper half-width as a fraction of record length (0 disables)

    Returns
    -------
    stream : obspy.Stream
    """
    for tr in stream:
        data = np.asarray(tr.data, dtype=np.float64)
        data = data - np.mean(data) if data.size else data
        if detrend and data.size > 1:
            data = _detrend(data, type='linear')
        tr.data = data
        if pretaper > 0:
            apply_taper_to_trace(tr, max_percentage=pretaper)
    return stream


def filter_stream(stream, band, corners=4, zerophase=True):
    """
    Bandpass filter every record in a stream.

    Parameters
    ----------
    stream : obspy.Stream
        Input stream (modified in-place)
    band : FilterBand
        Filter to apply (low/high corners are used)
    """
    for tr in stream:
        if tr.stats.npts < 2:
            continue
        tr.data = bandpass_filter(tr.data, tr.stats.sampling_rate,
                                  band.low, band.high, corners=corners,
                                  zerophase=zerophase)
    return stream


def _window_slice(tr, arrival, window):
    """Samples of ``tr`` within [arrival + window[0], arrival + window[1]]."""
    delta = tr.stats.delta
    t0 = (arrival + window[0]) - tr.stats.starttime
    t1 = (arrival + window[1]) - tr.stats.starttime
    i0 = max(0, int(np.ceil(t0 / delta - 1e-9)))
    i1 = min(tr.stats.npts, int(np.floor(t1 / delta + 1e-9)) + 1)
    if i1 <= i0:
        return np.array([])
    return np.asarray(tr.data[i0:i1])


def quick_snr(trace, arrival, noisewin, sigwin):
    """
    Quick signal-to-noise ratio of a record around an arrival.

    Computed as the peak-to-peak amplitude in the signal window over the
    peak-to-peak amplitude in the noise window.

    Parameters
    ----------
    trace : obspy.Trace
        Input record
    arrival : obspy.UTCDateTime
        Arrival time the windows are relative to
    noisewin, sigwin : (float, float)
        Noise and signal windows in seconds relative to the arrival

    Returns
    -------
    snr : float
        NaN if either window holds no samples
    """
    noise = _window_slice(trace, arrival, noisewin)
    signal = _window_slice(trace, arrival, sigwin)
    if noise.size == 0 or signal.size == 0:
        return np.nan

    noise_p2p = np.ptp(noise)
    signal_p2p = np.ptp(signal)
    if noise_p2p == 0:
        return np.inf if signal_p2p > 0 else np.nan
    return float(signal_p2p / noise_p2p)


def snr_cut(stream, snrfield, threshold):
    """
    Remove records with SNR below a threshold.

    Records with undefined (NaN) SNR are cut as well.

    Parameters
    ----------
    stream : obspy.Stream
        Records with SNR stored in ``stats.sac[snrfield]``
    snrfield : str
        SAC header field holding the SNR
    threshold : float
        Minimum SNR to keep

    Returns
    -------
    kept : obspy.Stream
    cut : ndarray of bool
        True for each input record that was removed
    """
    kept = Stream()
    cut = np.zeros(len(stream), dtype=bool)
    for i, tr in enumerate(stream):
        snr = float(tr.stats.sac.get(snrfield, np.nan))
        if np.isnan(snr) or snr < threshold:
            logger.warning(f"{tr.id}: SNR {snr:.2f} below {threshold}, removing")
            cut[i] = True
        else:
            kept.append(tr)
    return kept, cut


def window_records(stream, arrivals, window, fill=True, filler=0.0):
    """
    Cut each record to a window around its arrival.

    Parameters
    ----------
    stream : obspy.Stream
        Input records (traces are replaced in-place by their cut versions)
    arrivals : sequence of obspy.UTCDateTime
        Arrival time for each record
    window : (float, float)
        Window start and end in seconds relative to the arrival
    fill : bool
        Pad records that do not span the whole window
    filler : float
        Value used for padding

    Returns
    -------
    windowed : obspy.Stream
        Records with ``stats.window_offset`` giving the first sample time
        relative to ``arrival + window[0]``.  Records left empty are dropped.
    """
    windowed = Stream()
    for tr, arrival in zip(stream, arrivals):
        start = arrival + window[0]
        end = arrival + window[1]
        tr.trim(start, end, pad=fill, fill_value=filler if fill else None,
                nearest_sample=True)
        if fill and np.ma.isMaskedArray(tr.data):
            tr.data = tr.data.filled(filler)
        if tr.stats.npts == 0:
            logger.warning(f"{tr.id}: no data inside window, removing")
            continue
        tr.stats.window_offset = float(tr.stats.starttime - start)
        windowed.append(tr)
    return windowed


def remove_dead(stream):
    """
    Remove records with no variation (all samples equal or no samples).
    """
    live = Stream()
    for tr in stream:
        if tr.stats.npts == 0 or np.ptp(tr.data) == 0:
            logger.warning(f"{tr.id}: dead record, removing")
            continue
        live.append(tr)
    return live


def apply_taper_to_trace(trace, max_percentage=0.05, taper_type='hann'):
    """
    Taper both ends of a single obspy.Trace.

    Parameters
    ----------
    trace : obspy.Trace
        Input trace (modified in-place)
    max_percentage : float
        Fraction of trace length tapered at each end (default 0.05)
    taper_type : str
        One of TAPER_WINDOWS
    """
    try:
        window_func = TAPER_WINDOWS[taper_type]
    except KeyError:
        raise ValueError(f"Unknown taper type: {taper_type}")

    n = len(trace.data)
    if n <= 0:
        return trace

    win_len = int(round(max_percentage * n))
    if win_len <= 0:
        return trace

    w = np.ones(n, dtype=np.float64)
    taper = window_func(2 * win_len)
    w[:win_len] = taper[:win_len]
    w[-win_len:] = taper[-win_len:]

    # Ensure float dtype
    if trace.data.dtype.kind == 'i':
        trace.data = trace.data.astype(np.float64)

    trace.data = trace.data * w
    return trace


def apply_taper_to_stream(stream, max_percentage=0.05, taper_type='hann'):
    """
    Apply taper to each trace in an obspy.Stream.
    """
    for tr in stream:
        apply_taper_to_trace(tr, max_percentage=max_percentage, taper_type=taper_type)
    return stream
