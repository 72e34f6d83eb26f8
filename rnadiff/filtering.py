"""
Gene filtering for rnadiff.
"""

import numpy as np

MIN_TOTAL_COUNT = 10


def filter_by_count(y, min_total_count=MIN_TOTAL_COUNT):
    """Genes whose total count across all samples exceeds a floor.

    Parameters
    ----------
    y : array-like or CountDataSet
        Count matrix or CountDataSet.
    min_total_count : float
        Genes must have a total count strictly greater than this.

    Returns
    -------
    ndarray of bool, True for genes to keep.
    """
    if isinstance(y, dict) and 'counts' in y:
        counts = y['counts']
    else:
        counts = np.asarray(y, dtype=np.float64)

    if counts.ndim == 1:
        counts = counts.reshape(-1, 1)

    return counts.sum(axis=1) > min_total_count
