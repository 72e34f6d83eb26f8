"""
Normalization for rnadiff.

Median-of-ratios size factors (Anders and Huber, 2010).
"""

import warnings

import numpy as np
import pandas as pd

from .errors import NumericDegeneracyWarning
from .utils import geometric_mean_rows


def estimate_size_factors(x, min_genes=1):
    """Estimate per-sample size factors by the median-of-ratios method.

    Each sample's factor is the median, over genes with a non-zero count in
    every sample, of the ratio of its count to the gene's geometric mean.

    Parameters
    ----------
    x : CountDataSet or array-like
        Counts (genes x samples).
    min_genes : int
        Minimum number of genes with all-positive counts. Below this the
        factors fall back to 1 and a NumericDegeneracyWarning is issued.

    Returns
    -------
    CountDataSet with ``samples['sizeFactor']`` and
    ``size.factors.fallback`` set (if input is a CountDataSet), otherwise
    an ndarray of size factors.
    """
    if isinstance(x, dict) and 'counts' in x:
        sf, fallback = _size_factors_default(x['counts'], min_genes)
        x['samples']['sizeFactor'] = sf
        x['size.factors.fallback'] = fallback
        return x

    sf, _ = _size_factors_default(x, min_genes)
    return sf


def _size_factors_default(counts, min_genes):
    counts = np.asarray(counts, dtype=np.float64)
    if counts.ndim == 1:
        counts = counts.reshape(-1, 1)
    nsamples = counts.shape[1]

    gm = geometric_mean_rows(counts)
    pos = gm > 0
    if np.sum(pos) < max(min_genes, 1):
        warnings.warn(
            f"only {int(np.sum(pos))} genes have non-zero counts in every sample; "
            "size factors set to 1", NumericDegeneracyWarning, stacklevel=3)
        return np.ones(nsamples), True

    ratios = counts[pos] / gm[pos, None]
    sf = np.median(ratios, axis=0)
    if np.any(~np.isfinite(sf)) or np.any(sf <= 0):
        warnings.warn("non-positive size factor estimated; size factors set to 1",
                      NumericDegeneracyWarning, stacklevel=3)
        return np.ones(nsamples), True
    return sf, False


def normalized_counts(x, size_factors=None):
    """Counts divided by their sample's size factor.

    Parameters
    ----------
    x : CountDataSet or array-like
        Counts (genes x samples).
    size_factors : array-like, optional
        Overrides the factors stored on a CountDataSet.

    Returns
    -------
    DataFrame (if input is a CountDataSet) or ndarray.
    """
    if isinstance(x, dict) and 'counts' in x:
        if size_factors is None:
            size_factors = x['samples']['sizeFactor'].values
        norm = _normalize(x['counts'], size_factors)
        return pd.DataFrame(norm, index=x['genes'], columns=x['samples'].index)
    if size_factors is None:
        raise ValueError("size_factors required for matrix input")
    return _normalize(x, size_factors)


def _normalize(counts, size_factors):
    counts = np.asarray(counts, dtype=np.float64)
    sf = np.asarray(size_factors, dtype=np.float64)
    if len(sf) != counts.shape[1]:
        raise ValueError("length of size_factors must equal number of samples")
    if np.any(sf <= 0):
        raise ValueError("size factors must be positive")
    return counts / sf[np.newaxis, :]
