"""
Expression value computation for rnadiff.

Normalized and log-scale expression matrices handed to clustering, PCA and
external plotting.
"""

import numpy as np
import pandas as pd

from .normalization import normalized_counts


def log_expression(x, prior_count=1.0):
    """log2 of normalized counts plus a prior count.

    Parameters
    ----------
    x : CountDataSet or DataFrame
        A CountDataSet, or an already normalized DataFrame.
    prior_count : float
        Added before taking logs.

    Returns
    -------
    DataFrame (genes x samples).
    """
    if isinstance(x, dict) and 'counts' in x:
        x = normalized_counts(x)
    if prior_count < 0:
        raise ValueError("prior_count must be non-negative")
    return np.log2(x + prior_count)


def de_submatrix(x, genes, log=True, prior_count=1.0):
    """Normalized expression restricted to a gene list, in list order.

    Parameters
    ----------
    x : CountDataSet
        Counts with size factors.
    genes : list of str
        Genes to keep (e.g. the output of :func:`select_de_genes`).
    log : bool
        Return log2(normalized + prior_count) instead of normalized counts.
    prior_count : float
        Prior count for the log transform.

    Returns
    -------
    DataFrame (genes x samples).
    """
    norm = normalized_counts(x)
    missing = pd.Index(genes).difference(norm.index)
    if len(missing):
        raise KeyError(f"Genes not found: {list(missing)[:5]}")
    sub = norm.loc[list(genes)]
    if log:
        return log_expression(sub, prior_count=prior_count)
    return sub
