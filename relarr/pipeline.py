"""
Relative phase arrival and amplitude determination pipeline.

Stages (all driven by one RelarrConfig):
  1. read records, drop non-timeseries files
  2. cut by earthquake-station geometry
  3. attach predicted arrival times
  4. pre-filter processing and filter bank selection
  5. per filter band and trial: filter, quick SNR (+cut), window,
     remove dead, taper, correlate
  6. cluster on correlation coefficients
  7. solve relative times/amplitudes, preen outliers
  8. write per-stage reports

Trials within one band reuse the arrival corrections of the previous
trial.  Bands only reuse each other's corrections with ``chain_filters``.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from obspy import Stream

from .core.filterbank import filter_bank, iter_bands, FilterBand
from .core.geometry import cut_by_geometry
from .core.preprocessing import (
    prefilter_prep,
    filter_stream,
    quick_snr,
    snr_cut,
    window_records,
    remove_dead,
    apply_taper_to_stream,
)
from .core.correlation import records_to_matrix, correlate_records, CorrelationSet, RecordMatrix
from .core.clustering import cluster_records, ClusterResult
from .core.solver import align_clusters, AlignmentResult
from .io.waveform_loader import load_event_records
from .io.arrivals import annotate_arrivals, arrival_time
from .io import reports
from .interactive import make_selector

logger = logging.getLogger(__name__)


@dataclass
class TrialResult:
    band: FilterBand
    trial: int
    tag: Optional[str]
    window: tuple
    names: List[str]
    matrix: RecordMatrix
    correlation: CorrelationSet
    clusters: ClusterResult
    alignment: AlignmentResult
    report_files: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def nrecs(self):
        return len(self.names)


@dataclass
class RunResult:
    config: object
    bank: np.ndarray
    records: Stream
    trials: List[TrialResult] = field(default_factory=list)


def _names(stream):
    return [tr.stats.get('filename', tr.id) for tr in stream]


def _join_tags(*parts):
    parts = [p for p in parts if p]
    return '.'.join(parts) if parts else None


def _common_sampling(stream):
    """Drop records whose sample interval differs from the most common one."""
    if len(stream) == 0:
        return stream
    deltas = Counter(round(tr.stats.delta, 9) for tr in stream)
    delta = deltas.most_common(1)[0][0]
    kept = Stream()
    for tr in stream:
        if round(tr.stats.delta, 9) == delta:
            kept.append(tr)
        else:
            logger.warning(f"{tr.id}: sample interval {tr.stats.delta} differs from {delta}, removing")
    return kept


def inject_corrections(stream, alignment, ttfield):
    """
    Shift header arrivals in ``stream`` by the solved corrections.

    Records are matched to the alignment by name, so ``stream`` may hold
    more records than were aligned.
    """
    shifts = {name: shift for name, shift, ok in
              zip(alignment.names, alignment.shifts, alignment.aligned) if ok}
    for tr in stream:
        shift = shifts.get(tr.stats.get('filename', tr.id))
        if shift is not None and np.isfinite(shift):
            tr.stats.sac[ttfield] = float(tr.stats.sac[ttfield]) + float(shift)
    return stream


def prepare_records(config, stream=None):
    """
    Ingestion, geometry cut, arrivals and pre-filter processing.

    Parameters
    ----------
    config : RelarrConfig
    stream : obspy.Stream, optional
        Records to use instead of reading the configured directory

    Returns
    -------
    stream : obspy.Stream
    """
    if stream is None:
        logger.info("READING IN DATA HEADERS")
        stream = load_event_records(config)

    logger.info("LIMITING DATA BY EARTHQUAKE-STATION GEOMETRY")
    stream = cut_by_geometry(stream, gccut=config.gccut, kmcut=config.kmcut,
                             azicut=config.azicut, bazicut=config.bazicut)

    logger.info("GETTING PREDICTED ARRIVALS")
    stream = annotate_arrivals(stream, config.phase, config.ttfield,
                               pullarr=config.pullarr, model=config.model)

    logger.info("PERFORMING PRE-FILTER PROCESSING")
    stream = _common_sampling(stream)
    return prefilter_prep(stream, detrend=config.detrend, pretaper=config.pretaper)


def run_trial(stream, band, config, selector, trial=0, tag=None):
    """
    Run one filter trial on a copy of the prepared records.

    Parameters
    ----------
    stream : obspy.Stream
        Prepared records (consumed; pass a copy)
    band : FilterBand
    config : RelarrConfig
    selector : Selector
        Consulted when ``userwin`` / ``usercluster`` are set

    Returns
    -------
    result : TrialResult
    """
    basename = config.output_basename
    report_files = {}

    logger.info(f"FILTERING DATA ({band.low:.4g}-{band.high:.4g} Hz)")
    filter_stream(stream, band, corners=config.filter_corners,
                  zerophase=config.filter_zerophase)

    if config.qcksnr:
        logger.info("CALCULATING SNR")
        for tr in stream:
            tr.stats.sac[config.snrfield] = quick_snr(
                tr, arrival_time(tr, config.ttfield), config.noiswin, config.sigwin)
        names = _names(stream)
        snr = [tr.stats.sac[config.snrfield] for tr in stream]
        cut = np.zeros(len(stream), dtype=bool)
        if config.qcksnrcut:
            stream, cut = snr_cut(stream, config.snrfield, config.qcksnrcut)
        report_files['qcksnr'] = reports.write_snr_report(
            basename, names, snr, cut, config.qcksnrcut, tag=tag)

    window = tuple(config.sigwin)
    if config.window:
        logger.info("WINDOWING DATA")
        if config.userwin:
            preview = window_records(stream.copy(),
                                     [arrival_time(tr, config.ttfield) for tr in stream],
                                     config.intwin, fill=True, filler=config.filler)
            window = tuple(selector.request_window(
                records_to_matrix(preview), config.intwin[0], config.sigwin))
        arrivals = [arrival_time(tr, config.ttfield) for tr in stream]
        stream = window_records(stream, arrivals, window, fill=config.fill, filler=config.filler)
        report_files['window'] = reports.write_window_report(
            basename, stream, window, config.userwin, tag=tag)

    stream = remove_dead(stream)

    if config.taper:
        logger.info("TAPERING DATA")
        apply_taper_to_stream(stream, max_percentage=config.taperhw, taper_type=config.tapertype)
        report_files['taper'] = reports.write_taper_report(
            basename, config.tapertype, config.taperhw, _names(stream), tag=tag)

    logger.info("CORRELATING")
    matrix = records_to_matrix(stream, cube=config.cube)
    correlation = correlate_records(matrix, npeaks=config.npeaks, spacing=config.spacing,
                                    normxc=config.normxc, absxc=config.absxc,
                                    pow2pad=config.pow2pad, workers=config.workers)

    names = _names(stream)
    nrecs = len(stream)
    if config.cluster:
        logger.info("CLUSTERING")
        clusters = cluster_records(
            correlation.coefficients[:, 0], nrecs, method=config.cmethod,
            cutoff=config.globaldist,
            selector=selector if config.usercluster else None,
            colormap=config.treecolormap)
        report_files['cluster'] = reports.write_cluster_report(
            basename, names, clusters, config.cmethod, config.usercluster, tag=tag)
        if nrecs > 1:
            report_files['linkage'] = reports.write_linkage_report(basename, clusters, tag=tag)
    else:
        clusters = cluster_records(np.ones(correlation.npairs), nrecs, cutoff=np.inf,
                                   colormap=config.treecolormap)
    for tr, cid in zip(stream, clusters.labels):
        tr.stats.sac[config.clusterfield] = int(cid)

    logger.info("SOLVING RELATIVE ARRIVALS")
    predicted = np.array([float(tr.stats.sac[config.ttfield]) for tr in stream])
    alignment = align_clusters(clusters.labels, correlation, names=names, predicted=predicted,
                               preen=config.preen, min_records=config.preen_min_records,
                               tolerance=config.preen_tolerance, max_iter=config.preen_max_iter)
    report_files['align'] = reports.write_alignment_report(basename, alignment, band, tag=tag)

    if config.plot and nrecs:
        from .visualization import plot_alignment
        plot_alignment(matrix, alignment, clusters,
                       reports.report_path(basename, 'png', tag),
                       window_start=window[0],
                       title=f"{config.phase} {band.low:.4g}-{band.high:.4g} Hz")

    return TrialResult(band, trial, tag, window, names, matrix, correlation,
                       clusters, alignment, report_files)


def run_relarr(config, selector=None, stream=None):
    """
    Run the full relative arrival pipeline.

    Parameters
    ----------
    config : RelarrConfig
    selector : Selector, optional
        Defaults to a matplotlib selector when ``userwin`` or
        ``usercluster`` is set, otherwise the configured values are used
    stream : obspy.Stream, optional
        Records to use instead of reading ``config.input_dir``

    Returns
    -------
    result : RunResult
    """
    if selector is None:
        selector = make_selector(config.userwin or config.usercluster)

    records = prepare_records(config, stream)

    logger.info("SELECTING FILTER BANK")
    bank = filter_bank(config.filter_range, config.filter_option,
                       config.filter_width, config.filter_offset)
    bands = list(iter_bands(bank))
    result = RunResult(config, bank, records)

    base = records
    for k, band in enumerate(bands):
        band_tag = f"filter{k + 1:02d}" if len(bands) > 1 else None
        band_base = base.copy()
        for t in range(config.ntrials):
            tag = _join_tags(band_tag, f"trial{t + 1:02d}" if config.ntrials > 1 else None)
            trial = run_trial(band_base.copy(), band, config, selector, trial=t, tag=tag)
            result.trials.append(trial)
            inject_corrections(band_base, trial.alignment, config.ttfield)
        if config.chain_filters:
            base = band_base

    logger.info(f"Finished {len(result.trials)} trial(s) over {len(bands)} filter(s)")
    return result
