"""
Hierarchical clustering of genes for rnadiff.

Average-linkage clustering on correlation distance, with the number of
clusters chosen by the mean silhouette width.
"""

import threading
import warnings

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import cut_tree, linkage
from scipy.spatial.distance import squareform
from sklearn.metrics import silhouette_samples

from .classes import ClusterResult
from .errors import InsufficientDataError, NumericDegeneracyWarning
from .parallel import check_cancel, map_ordered

K_MAX = 20


def correlation_distance(expr):
    """``1 - Pearson correlation`` between rows, in [0, 2].

    Rows with zero variance have no defined correlation; it is taken as 0
    (distance 1) with a warning.

    Parameters
    ----------
    expr : DataFrame or ndarray
        Expression matrix (genes x samples).

    Returns
    -------
    DataFrame (genes x genes).
    """
    if isinstance(expr, pd.DataFrame):
        labels = expr.index
        values = expr.to_numpy(dtype=np.float64)
    else:
        values = np.asarray(expr, dtype=np.float64)
        labels = pd.RangeIndex(values.shape[0])

    with np.errstate(divide='ignore', invalid='ignore'):
        corr = np.atleast_2d(np.corrcoef(values))
    undefined = ~np.isfinite(corr)
    np.fill_diagonal(undefined, False)
    if np.any(undefined):
        warnings.warn("correlation undefined for genes with constant expression; "
                      "treating it as 0", NumericDegeneracyWarning, stacklevel=2)
        corr[undefined] = 0.0

    dist = np.clip(1.0 - corr, 0.0, 2.0)
    dist = (dist + dist.T) / 2
    np.fill_diagonal(dist, 0.0)
    return pd.DataFrame(dist, index=labels, columns=labels)


class ClusterTree:
    """Average-linkage merge tree over a fixed distance matrix.

    Cuts and silhouette scores are pure functions of the tree, so scores are
    cached per k.

    Parameters
    ----------
    distance : DataFrame
        Square, symmetric distance matrix with zero diagonal.
    """

    def __init__(self, distance):
        if not isinstance(distance, pd.DataFrame):
            distance = pd.DataFrame(np.asarray(distance, dtype=np.float64))
        n = distance.shape[0]
        if n < 2:
            raise InsufficientDataError('clustering', n, "at least two genes required")
        self.distance = distance
        self.labels = distance.index
        self._dist = distance.to_numpy(dtype=np.float64)
        self.linkage = linkage(squareform(self._dist, checks=False), method='average')
        self._scores = {}
        self._lock = threading.Lock()

    @property
    def n(self):
        return len(self.labels)

    def cut(self, k):
        """Cut the tree into exactly ``k`` clusters.

        Labels run 1..k in order of first appearance along the genes.
        """
        k = int(k)
        if not 1 <= k <= self.n:
            raise ValueError(f"k must be between 1 and {self.n}")
        raw = cut_tree(self.linkage, n_clusters=k).ravel()
        codes, _ = pd.factorize(raw)
        return pd.Series(codes + 1, index=self.labels, name='cluster')

    def silhouette(self, k):
        """Mean silhouette width of the cut at ``k`` (0 for k = 1 or k = n)."""
        k = int(k)
        with self._lock:
            if k in self._scores:
                return self._scores[k]
        if k == 1 or k >= self.n:
            score = 0.0
        else:
            labels = self.cut(k).values
            if len(np.unique(labels)) < 2:
                score = 0.0
            else:
                widths = silhouette_samples(self._dist, labels, metric='precomputed')
                score = float(np.mean(widths))
        with self._lock:
            self._scores[k] = score
        return score

    def scan(self, k_max=K_MAX, n_jobs=1, cancel=None):
        """Mean silhouette width for k = 2..min(k_max, n)."""
        ks = list(range(2, min(int(k_max), self.n) + 1))
        scores = map_ordered(self.silhouette, ks, n_jobs=n_jobs, cancel=cancel)
        return pd.Series(scores, index=pd.Index(ks, name='k'), name='silhouette')

    def best_k(self, k_max=K_MAX, n_jobs=1, cancel=None):
        """k >= 2 with maximal mean silhouette; ties go to the smallest k."""
        scores = self.scan(k_max=k_max, n_jobs=n_jobs, cancel=cancel)
        if scores.empty:
            return 2
        return int(scores.index[int(np.argmax(scores.values))])


def cluster_genes(expr, k=None, k_max=K_MAX, n_jobs=1, cancel=None):
    """Cluster genes by correlation distance and average linkage.

    Parameters
    ----------
    expr : DataFrame
        Expression matrix (genes x samples), usually the log-scale
        normalized submatrix of the differentially expressed genes.
    k : int, optional
        Fixed number of clusters; chosen by silhouette scan when omitted.
        When given, no scan runs and only the silhouette at ``k`` is reported.
    k_max : int
        Largest k scanned.
    n_jobs : int
        Worker threads for the silhouette scan.
    cancel : threading.Event, optional
        Cooperative cancellation.

    Returns
    -------
    ClusterResult

    Raises
    ------
    InsufficientDataError
        Fewer than two genes.
    """
    n = expr.shape[0]
    if n < 2:
        raise InsufficientDataError('clustering', n, "at least two genes required")

    tree = ClusterTree(correlation_distance(expr))
    if k is None:
        scores = tree.scan(k_max=k_max, n_jobs=n_jobs, cancel=cancel)
        k = tree.best_k(k_max=k_max)
        assignment = tree.cut(k)
    else:
        check_cancel(cancel)
        assignment = tree.cut(k)
        scores = pd.Series([tree.silhouette(k)], index=pd.Index([int(k)], name='k'),
                           name='silhouette')

    out = ClusterResult()
    out['assignment'] = assignment
    out['k'] = int(k)
    out['silhouette'] = scores
    out['tree'] = tree
    return out
