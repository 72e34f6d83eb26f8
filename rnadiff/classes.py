"""
Core data classes for rnadiff.

Containers for the count data set and for the output of each analysis stage,
as dicts with attribute access, subsetting, and display.
"""

import numpy as np
import pandas as pd
from copy import deepcopy


class _RnadiffBase(dict):
    """Base class providing dict-like access, subsetting, and display."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError:
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

    def __setattr__(self, name, value):
        self[name] = value

    def __delattr__(self, name):
        try:
            del self[name]
        except KeyError:
            raise AttributeError(f"'{type(self).__name__}' has no attribute '{name}'")

    @property
    def shape(self):
        if 'counts' in self:
            return self['counts'].shape
        if 'table' in self and isinstance(self['table'], pd.DataFrame):
            return self['table'].shape
        return None

    def __repr__(self):
        cls = type(self).__name__
        components = list(self.keys())
        s = self.shape
        if s is not None:
            return f"{cls} with {s[0]} rows and {s[1]} columns\nComponents: {', '.join(components)}"
        return f"{cls}\nComponents: {', '.join(components)}"

    def _copy(self):
        """Deep copy of the object."""
        return deepcopy(self)

    def head(self, n=5):
        """Show first n rows."""
        if 'table' in self and isinstance(self['table'], pd.DataFrame):
            return self['table'].head(n)
        if 'counts' in self:
            return self.to_frame().head(n)
        return None

    def tail(self, n=5):
        """Show last n rows."""
        if 'table' in self and isinstance(self['table'], pd.DataFrame):
            return self['table'].tail(n)
        if 'counts' in self:
            return self.to_frame().tail(n)
        return None


def _resolve_index(idx, names):
    """Resolve index to integer array. Supports bool, int, str, slice."""
    if idx is None:
        return None
    if isinstance(idx, slice):
        return np.arange(len(names))[idx]
    if isinstance(idx, pd.Series):
        idx = idx.values
    idx = np.atleast_1d(idx)
    if idx.dtype == bool:
        if len(idx) != len(names):
            raise IndexError("boolean index has wrong length")
        return np.where(idx)[0]
    if idx.dtype.kind in ('U', 'S', 'O'):
        positions = pd.Index(names).get_indexer(idx)
        if np.any(positions < 0):
            missing = [str(n) for n, p in zip(idx, positions) if p < 0]
            raise KeyError(f"Names not found: {', '.join(missing[:5])}")
        return positions
    return idx.astype(int)


class CountDataSet(_RnadiffBase):
    """Count matrix with its sample annotation.

    Attributes
    ----------
    counts : ndarray
        Matrix of counts (genes x samples), float64 holding integers.
    genes : Index
        Gene identifiers, unique.
    samples : DataFrame
        Indexed by sample identifier with columns ``condition``
        (Categorical, reference level first) and ``sizeFactor``.
    reference : str
        Reference level of the condition factor.
    levels : list of str
        Condition levels, reference first.
    """

    def __getitem__(self, key):
        if isinstance(key, str):
            return super().__getitem__(key)
        if not (isinstance(key, tuple) and len(key) == 2):
            raise IndexError("Two subscripts required")
        i, j = key
        i_idx = _resolve_index(i, self['genes'])
        j_idx = _resolve_index(j, self['samples'].index)

        out = self._copy()
        counts = out['counts']
        if i_idx is not None:
            counts = counts[i_idx]
            out['genes'] = out['genes'][i_idx]
        if j_idx is not None:
            counts = counts[:, j_idx]
            samples = out['samples'].iloc[j_idx].copy()
            samples['condition'] = samples['condition'].cat.remove_unused_categories()
            out['samples'] = samples
            out['levels'] = [lv for lv in out['levels']
                             if lv in set(samples['condition'].astype(str))]
        out['counts'] = counts
        return out

    def to_frame(self):
        """Counts as a DataFrame labelled by gene and sample."""
        return pd.DataFrame(self['counts'], index=self['genes'],
                            columns=self['samples'].index)


class DispersionTable(_RnadiffBase):
    """Dispersion estimates for the genes passing the count floor.

    Attributes
    ----------
    table : DataFrame
        Columns baseMean, dispGeneEst, dispFit, dispMAP, dispersion,
        dispOutlier, degenerate; indexed by gene.
    fit.type : str
        'parametric' or 'mean'.
    coefficients : dict
        ``{'asymptDisp': b, 'extraPois': a}`` for the trend ``a / mean + b``.
    prior.var : float
        Prior variance of log dispersions around the trend.
    """


class DEResults(_RnadiffBase):
    """Wald test results, one table per non-reference condition level."""

    def table(self, level=None):
        """Result table for a level (the first non-reference one by default)."""
        tables = self['tables']
        if level is None:
            level = next(iter(tables))
        if level not in tables:
            raise KeyError(f"No results for level '{level}'; "
                           f"available: {list(tables)}")
        return tables[level]

    @property
    def shape(self):
        first = next(iter(self['tables'].values()), None)
        return None if first is None else first.shape


class ClusterResult(_RnadiffBase):
    """Hierarchical clustering of genes with the selected cut.

    Attributes
    ----------
    assignment : Series
        Gene -> cluster label (1..k).
    k : int
        Selected number of clusters.
    silhouette : Series
        Mean silhouette width per scanned k.
    tree : ClusterTree
        Distance matrix and merge tree, for further cuts.
    """


class EnrichmentResult(_RnadiffBase):
    """Over-represented annotation terms, ranked by p-value."""


class AnalysisResult(_RnadiffBase):
    """Outputs of every pipeline stage."""
