"""
Results processing for rnadiff.

Multiple-testing adjustment, selection of the differentially expressed gene
set, and summary tables.
"""

import numpy as np
import pandas as pd
from statsmodels.stats.multitest import multipletests

PADJ_THRESHOLD = 0.05
LFC_THRESHOLD = 1.0

_METHOD_MAP = {
    'BH': 'fdr_bh', 'fdr': 'fdr_bh', 'BY': 'fdr_by',
    'holm': 'holm', 'hochberg': 'hochberg',
    'hommel': 'hommel', 'bonferroni': 'bonferroni',
}


def p_adjust(pvalues, mask=None, method='BH'):
    """Adjust p-values for multiple testing.

    Only entries selected by ``mask`` (and finite) form the family; all
    others come back as NaN.

    Parameters
    ----------
    pvalues : array-like
        Raw p-values.
    mask : array-like of bool, optional
        Rows eligible for adjustment.
    method : str
        'BH' (default), 'BY', 'holm', 'hochberg', 'hommel', 'bonferroni'
        or 'none'.

    Returns
    -------
    ndarray of adjusted p-values.
    """
    p = np.asarray(pvalues, dtype=np.float64)
    valid = np.isfinite(p)
    if mask is not None:
        valid &= np.asarray(mask, dtype=bool)
    adj = np.full_like(p, np.nan)
    if not valid.any():
        return adj
    if method == 'none':
        adj[valid] = p[valid]
        return adj
    if method not in _METHOD_MAP:
        raise ValueError(f"method must be one of {list(_METHOD_MAP) + ['none']}")
    _, adj[valid], _, _ = multipletests(p[valid], method=_METHOD_MAP[method])
    return adj


def _tables(res, contrast):
    if isinstance(res, pd.DataFrame):
        return {contrast or '': res}
    if contrast is None:
        return res['tables']
    return {contrast: res.table(contrast)}


def select_de_genes(res, padj_threshold=PADJ_THRESHOLD, lfc_threshold=LFC_THRESHOLD,
                    contrast=None):
    """Genes with ``padj <= padj_threshold`` and ``|log2FC| > lfc_threshold``.

    Parameters
    ----------
    res : DEResults or DataFrame
        Wald test output, or a single result table.
    padj_threshold : float
        Maximum adjusted p-value (inclusive).
    lfc_threshold : float
        Minimum absolute log2 fold change (exclusive).
    contrast : str, optional
        Condition level to select on. By default a gene qualifies if it
        passes for any non-reference level.

    Returns
    -------
    list of gene identifiers in their original order.
    """
    tables = _tables(res, contrast)
    index = next(iter(tables.values())).index
    hit = np.zeros(len(index), dtype=bool)
    for tab in tables.values():
        padj = tab['padj'].values
        lfc = tab['log2FoldChange'].values
        with np.errstate(invalid='ignore'):
            hit |= (np.isfinite(padj) & (padj <= padj_threshold) &
                    (np.abs(lfc) > lfc_threshold))
    return list(index[hit])


def decide_tests(res, padj_threshold=PADJ_THRESHOLD, lfc_threshold=LFC_THRESHOLD):
    """Classify genes as up (1), down (-1) or not significant (0) per level.

    Returns
    -------
    DataFrame of int, genes x non-reference levels.
    """
    out = {}
    for level, tab in _tables(res, None).items():
        padj = tab['padj'].values
        lfc = tab['log2FoldChange'].values
        with np.errstate(invalid='ignore'):
            sig = np.isfinite(padj) & (padj <= padj_threshold) & (np.abs(lfc) > lfc_threshold)
        out[level] = np.where(sig, np.sign(lfc), 0).astype(int)
    index = next(iter(_tables(res, None).values())).index
    return pd.DataFrame(out, index=index)


def top_table(res, contrast=None, n=None, sort_by='padj', padj_threshold=1.0):
    """Result table for one level sorted by significance.

    Parameters
    ----------
    res : DEResults
        Wald test output.
    contrast : str, optional
        Condition level; defaults to the first non-reference level.
    n : int, optional
        Number of rows to return; all by default.
    sort_by : str
        'padj', 'pvalue', 'log2FoldChange' (by magnitude) or 'none'.
    padj_threshold : float
        Only rows with ``padj`` at or below this are kept (when < 1).

    Returns
    -------
    DataFrame
    """
    tab = res.table(contrast).copy()
    if sort_by in ('padj', 'pvalue'):
        alfc = -np.abs(tab['log2FoldChange'].values)
        order = np.lexsort((alfc, tab['pvalue'].values, tab[sort_by].values))
        tab = tab.iloc[order]
    elif sort_by == 'log2FoldChange':
        tab = tab.iloc[np.argsort(-np.abs(tab['log2FoldChange'].values), kind='stable')]
    elif sort_by != 'none':
        raise ValueError("sort_by must be 'padj', 'pvalue', 'log2FoldChange' or 'none'")

    if padj_threshold < 1:
        tab = tab[tab['padj'] <= padj_threshold]
    if n is not None:
        tab = tab.iloc[:n]
    return tab


def summarize(res, padj_threshold=PADJ_THRESHOLD, lfc_threshold=LFC_THRESHOLD):
    """Counts of up, down, unchanged and untested genes per level."""
    rows = {}
    decisions = decide_tests(res, padj_threshold, lfc_threshold)
    for level, tab in _tables(res, None).items():
        d = decisions[level].values
        untested = tab['padj'].isna().values
        rows[level] = {
            'up': int(np.sum(d == 1)),
            'down': int(np.sum(d == -1)),
            'unchanged': int(np.sum((d == 0) & ~untested)),
            'untested': int(np.sum(untested)),
        }
    return pd.DataFrame(rows).T
