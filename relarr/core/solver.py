"""
Relative arrival-time and amplitude solver.

Model
-----
Each correlated record pair (i, j) in a cluster gives one observation of
the delay of record j relative to record i.  With one unknown time shift
s_k per record:

    s_j - s_i = lag_ij

This is overdetermined (one row per pair, one unknown per record) and is
solved by weighted least squares, weighting each row by its correlation
coefficient.  A zero-mean row pins the otherwise free reference time, so
shifts are relative to the cluster mean.

Amplitudes use the same system on log amplitude ratios:

    log|A_j| - log|A_i| = log|ratio_ij|

Record polarities come from the principal eigenvector of the signed
similarity matrix (coefficient * pair polarity).  Pairs whose observed
polarity disagrees with the solved record polarities are left out.

Clusters are solved independently.  A cluster that cannot be solved is
reported as unaligned rather than failing the run.
"""

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from scipy.linalg import lstsq, eigh
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from ..exceptions import UnderdeterminedError
from .correlation import pair_indices

logger = logging.getLogger(__name__)

ALIGNED = 'aligned'
PREENED = 'preened'
UNALIGNED = 'unaligned'

# relative score change below which preening is considered converged
PREEN_STABLE = 1e-3


@dataclass
class ClusterSolution:
    indices: np.ndarray       # record indices (into the full record list)
    shifts: np.ndarray        # time shift per record (s), zero mean
    amplitudes: np.ndarray    # signed relative amplitude per record
    polarities: np.ndarray    # +1 / -1 per record
    residuals: np.ndarray     # weighted RMS time residual per record (s)
    score: float              # weighted RMS time residual over all pairs (s)
    npairs: int


@dataclass
class AlignmentResult:
    names: list
    clusters: np.ndarray
    shifts: np.ndarray
    arrivals: np.ndarray
    amplitudes: np.ndarray
    polarities: np.ndarray
    residuals: np.ndarray
    status: np.ndarray
    cluster_scores: dict = field(default_factory=dict)

    @property
    def nrecs(self):
        return len(self.status)

    @property
    def aligned(self):
        return self.status == ALIGNED

    def to_frame(self):
        """Per-record table of the alignment."""
        return pd.DataFrame({
            'FILENAME': self.names,
            'CLUSTER_ID': self.clusters,
            'STATUS': self.status,
            'TIME_SHIFT': self.shifts,
            'ARRIVAL': self.arrivals,
            'AMPLITUDE': self.amplitudes,
            'POLARITY': self.polarities,
            'RESIDUAL': self.residuals,
        })


def _record_polarities(n, local_pairs, coefficients, polarities):
    """Solve +1/-1 record polarities from pairwise polarity flags."""
    M = np.eye(n)
    for (a, b), c, p in zip(local_pairs, coefficients, polarities):
        M[a, b] = M[b, a] = c * p
    _, vecs = eigh(M)
    pol = np.where(vecs[:, -1] < 0, -1.0, 1.0)
    # fix the arbitrary eigenvector sign: majority positive, then first record positive
    total = pol.sum()
    if total < 0 or (total == 0 and pol[0] < 0):
        pol = -pol
    return pol


def _solve_differences(n, local_pairs, values, weights):
    """Weighted least squares for x_j - x_i = value with sum(x) = 0."""
    m = len(local_pairs)
    G = np.zeros((m + 1, n))
    rows = np.arange(m)
    G[rows, local_pairs[:, 0]] = -1.0
    G[rows, local_pairs[:, 1]] = 1.0
    G[m, :] = 1.0

    w = np.append(weights, 1.0)
    d = np.append(values, 0.0)
    x = lstsq(G * w[:, None], d * w)[0]
    return x, G[:m] @ x - values


def solve_cluster(indices, correlation, peak=0):
    """
    Solve relative time shifts and amplitudes for one cluster.

    Parameters
    ----------
    indices : array-like of int
        Record indices belonging to the cluster
    correlation : CorrelationSet
        Pairwise correlation results for all records
    peak : int
        Peak rank used (0 = strongest)

    Returns
    -------
    solution : ClusterSolution

    Raises
    ------
    UnderdeterminedError
        If fewer than 2 records, or the usable pairs do not connect all records.
    """
    indices = np.asarray(indices, dtype=int)
    n = len(indices)
    if n < 2:
        raise UnderdeterminedError(f"cluster has {n} record(s); at least 2 are needed")

    pairs = pair_indices(correlation.nrecs)
    local = -np.ones(correlation.nrecs, dtype=int)
    local[indices] = np.arange(n)

    inside = (local[pairs[:, 0]] >= 0) & (local[pairs[:, 1]] >= 0)
    coef = correlation.coefficients[inside, peak]
    lag = correlation.lags[inside, peak]
    pol = correlation.polarities[inside, peak]
    ratio = correlation.ratios[inside, peak]
    local_pairs = local[pairs[inside]]

    usable = np.isfinite(lag) & np.isfinite(coef) & (coef > 0) & (pol != 0)
    if not np.any(usable):
        raise UnderdeterminedError("no usable correlation pairs in cluster")

    polarities = _record_polarities(n, local_pairs[usable], coef[usable], pol[usable])

    # drop pairs inconsistent with the solved record polarities
    consistent = pol * polarities[local_pairs[:, 0]] * polarities[local_pairs[:, 1]] > 0
    usable &= consistent
    nconflict = int(np.count_nonzero(~consistent & (pol != 0)))
    if nconflict:
        logger.debug(f"{nconflict} pair(s) with conflicting polarity excluded")

    lp = local_pairs[usable]
    graph = coo_matrix((np.ones(len(lp)), (lp[:, 0], lp[:, 1])), shape=(n, n))
    ncomp, _ = connected_components(graph, directed=False)
    if len(lp) == 0 or ncomp > 1:
        raise UnderdeterminedError("usable correlation pairs do not connect all records in cluster")

    w = coef[usable]
    shifts, res = _solve_differences(n, lp, lag[usable], w)

    wres2 = w * res ** 2
    num = np.bincount(lp[:, 0], wres2, n) + np.bincount(lp[:, 1], wres2, n)
    den = np.bincount(lp[:, 0], w, n) + np.bincount(lp[:, 1], w, n)
    residuals = np.sqrt(num / den)
    score = float(np.sqrt(wres2.sum() / w.sum()))

    amplitudes = np.full(n, np.nan)
    amp_ok = np.isfinite(ratio[usable]) & (ratio[usable] != 0)
    if np.any(amp_ok):
        ap = lp[amp_ok]
        graph = coo_matrix((np.ones(len(ap)), (ap[:, 0], ap[:, 1])), shape=(n, n))
        if connected_components(graph, directed=False)[0] == 1:
            logamp, _ = _solve_differences(n, ap, np.log(np.abs(ratio[usable][amp_ok])), w[amp_ok])
            amplitudes = polarities * np.exp(logamp)

    return ClusterSolution(indices, shifts, amplitudes, polarities, residuals, score, len(lp))


def preen_cluster(indices, correlation, min_records=3, tolerance=0.1, max_iter=10, peak=0):
    """
    Iteratively drop the worst-fitting record and re-solve.

    Stops when the largest record residual is within ``tolerance``, when
    dropping a record no longer improves the score, when fewer than
    ``min_records`` would remain, or after ``max_iter`` drops.

    Returns
    -------
    solution : ClusterSolution
        Solution for the retained records
    dropped : list of int
        Record indices removed, in removal order
    """
    solution = solve_cluster(indices, correlation, peak=peak)
    dropped = []

    for _ in range(max_iter):
        worst = int(np.argmax(solution.residuals))
        if solution.residuals[worst] <= tolerance:
            break
        if len(solution.indices) - 1 < max(2, min_records):
            break

        remaining = np.delete(solution.indices, worst)
        try:
            trial = solve_cluster(remaining, correlation, peak=peak)
        except UnderdeterminedError:
            break

        if solution.score - trial.score <= PREEN_STABLE * max(solution.score, np.finfo(float).tiny):
            break

        logger.debug(f"Preen: dropped record {solution.indices[worst]} "
                     f"(residual {solution.residuals[worst]:.4f} s), "
                     f"score {solution.score:.4f} -> {trial.score:.4f}")
        dropped.append(int(solution.indices[worst]))
        solution = trial

    return solution, dropped


def align_clusters(labels, correlation, names=None, predicted=None, preen=True,
                   min_records=3, tolerance=0.1, max_iter=10, peak=0):
    """
    Solve every cluster and collect a per-record alignment.

    Parameters
    ----------
    labels : ndarray of int
        Cluster id per record
    correlation : CorrelationSet
        Pairwise correlation results
    names : list of str, optional
        Record names for reporting
    predicted : ndarray, optional
        Predicted arrival per record; corrected arrivals are predicted + shift
    preen : bool
        Run outlier rejection on each cluster

    Returns
    -------
    result : AlignmentResult
    """
    labels = np.asarray(labels, dtype=int)
    nrecs = len(labels)
    if names is None:
        names = [str(k) for k in range(nrecs)]
    if predicted is None:
        predicted = np.zeros(nrecs)

    shifts = np.full(nrecs, np.nan)
    amplitudes = np.full(nrecs, np.nan)
    polarities = np.zeros(nrecs)
    residuals = np.full(nrecs, np.nan)
    status = np.full(nrecs, UNALIGNED, dtype=object)
    scores = {}

    for cid in np.unique(labels):
        members = np.flatnonzero(labels == cid)
        try:
            if preen:
                solution, dropped = preen_cluster(members, correlation, min_records=min_records,
                                                  tolerance=tolerance, max_iter=max_iter, peak=peak)
            else:
                solution, dropped = solve_cluster(members, correlation, peak=peak), []
        except UnderdeterminedError as e:
            logger.warning(f"Cluster {cid} ({len(members)} records) left unaligned: {e}")
            scores[int(cid)] = np.nan
            continue

        idx = solution.indices
        shifts[idx] = solution.shifts
        amplitudes[idx] = solution.amplitudes
        polarities[idx] = solution.polarities
        residuals[idx] = solution.residuals
        status[idx] = ALIGNED
        status[dropped] = PREENED
        scores[int(cid)] = solution.score
        logger.info(f"Cluster {cid}: {len(idx)} aligned, {len(dropped)} preened, "
                    f"score {solution.score:.4f} s")

    return AlignmentResult(list(names), labels, shifts, np.asarray(predicted, dtype=float) + shifts,
                           amplitudes, polarities, residuals, status.astype(str), scores)

