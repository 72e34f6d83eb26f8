"""
CountDataSet construction, validation, and accessors.

Bundles the gene x sample count matrix with the per-sample condition
assignment and checks that the two agree before any computation starts.
"""

from collections.abc import Mapping

import numpy as np
import pandas as pd

from .classes import CountDataSet
from .errors import InputShapeError


def make_dataset(counts, condition, reference=None, samples=None, genes=None,
                 sample_names=None):
    """Construct a CountDataSet from counts and condition assignments.

    Parameters
    ----------
    counts : DataFrame or array-like
        Counts (genes x samples). A DataFrame supplies gene identifiers as
        its index and sample identifiers as its columns.
    condition : sequence, Mapping, Series or str
        Condition level per sample. A sequence is taken in column order, a
        Mapping or Series is looked up by sample identifier, and a string
        names a column of ``samples``.
    reference : str, optional
        Reference level. Defaults to the first category of a Categorical
        condition, otherwise the level of the first sample.
    samples : DataFrame, optional
        Extra sample annotation indexed by sample identifier.
    genes : array-like, optional
        Gene identifiers when ``counts`` is not a DataFrame.
    sample_names : array-like, optional
        Sample identifiers when ``counts`` is not a DataFrame.

    Returns
    -------
    CountDataSet

    Raises
    ------
    InputShapeError
        On any inconsistency between counts and sample annotation, or
        invalid count values.
    """
    if isinstance(counts, pd.DataFrame):
        if genes is None:
            genes = counts.index
        if sample_names is None:
            sample_names = counts.columns
        try:
            values = counts.apply(pd.to_numeric, errors='raise').to_numpy(dtype=np.float64)
        except (ValueError, TypeError) as e:
            raise InputShapeError(f"non-numeric counts: {e}") from e
    else:
        try:
            values = np.asarray(counts, dtype=np.float64)
        except (ValueError, TypeError) as e:
            raise InputShapeError(f"non-numeric counts: {e}") from e

    if values.ndim == 1:
        values = values.reshape(-1, 1)
    if values.ndim != 2:
        raise InputShapeError("counts must be a two-dimensional matrix")
    _check_counts(values)
    ngenes, nlib = values.shape

    if genes is None:
        genes = [f"Gene{i+1}" for i in range(ngenes)]
    if sample_names is None:
        sample_names = [f"Sample{i+1}" for i in range(nlib)]
    genes = pd.Index([str(g) for g in genes], name='gene')
    sample_names = pd.Index([str(s) for s in sample_names], name='sample')

    if len(genes) != ngenes:
        raise InputShapeError(f"{len(genes)} gene identifiers for {ngenes} rows")
    if len(sample_names) != nlib:
        raise InputShapeError(f"{len(sample_names)} sample identifiers for {nlib} columns")
    if genes.has_duplicates:
        dup = genes[genes.duplicated()].unique().tolist()
        raise InputShapeError(f"duplicate gene identifiers: {dup[:5]}")
    if sample_names.has_duplicates:
        dup = sample_names[sample_names.duplicated()].unique().tolist()
        raise InputShapeError(f"duplicate sample identifiers: {dup[:5]}")

    cond = _resolve_condition(condition, sample_names, samples)
    levels = _condition_levels(cond)
    if len(levels) == 0:
        raise InputShapeError("no condition levels")
    if reference is None:
        reference = levels[0]
    reference = str(reference)
    if reference not in levels:
        raise InputShapeError(f"reference level '{reference}' not among observed "
                              f"levels {levels}")
    levels = [reference] + [lv for lv in levels if lv != reference]

    sam = pd.DataFrame(index=sample_names)
    if samples is not None:
        extra = pd.DataFrame(samples).copy()
        extra.index = extra.index.astype(str)
        extra = extra.reindex(sample_names)
        for col in extra.columns:
            if col != 'condition':
                sam[col] = extra[col].values
    sam['condition'] = pd.Categorical(cond, categories=levels)
    sam['sizeFactor'] = np.ones(nlib)

    x = CountDataSet()
    x['counts'] = values
    x['genes'] = genes
    x['samples'] = sam
    x['reference'] = reference
    x['levels'] = levels
    return x


def _check_counts(values):
    if values.size == 0:
        raise InputShapeError("'counts' must contain at least one value")
    if np.any(np.isnan(values)):
        raise InputShapeError("NA counts not allowed")
    if not np.all(np.isfinite(values)):
        raise InputShapeError("Infinite counts not allowed")
    if np.min(values) < 0:
        raise InputShapeError("Negative counts not allowed")
    if np.any(values != np.round(values)):
        raise InputShapeError("counts must be whole numbers")


def _resolve_condition(condition, sample_names, samples):
    """Condition labels as strings, in sample order."""
    if isinstance(condition, str):
        if samples is None or condition not in samples.columns:
            raise InputShapeError(f"column '{condition}' not found in samples")
        condition = samples[condition]
        if not isinstance(condition.index, pd.RangeIndex):
            condition = condition.copy()
            condition.index = condition.index.astype(str)
        else:
            condition = list(condition)

    if isinstance(condition, pd.Series) and not isinstance(condition.index, pd.RangeIndex):
        condition = condition.copy()
        condition.index = condition.index.astype(str)
        missing = sample_names.difference(condition.index)
        extra = condition.index.difference(sample_names)
        if len(missing) or len(extra):
            raise InputShapeError(
                f"condition assignment does not match samples: missing "
                f"{list(missing)[:5]}, unknown {list(extra)[:5]}")
        if condition.index.has_duplicates:
            raise InputShapeError("samples assigned to more than one condition")
        cond = condition.reindex(sample_names)
        return _as_labels(cond)

    if isinstance(condition, Mapping):
        keys = {str(k): v for k, v in condition.items()}
        missing = [s for s in sample_names if s not in keys]
        extra = [k for k in keys if k not in set(sample_names)]
        if missing or extra:
            raise InputShapeError(
                f"condition assignment does not match samples: missing "
                f"{missing[:5]}, unknown {extra[:5]}")
        return _as_labels([keys[s] for s in sample_names])

    cond = list(condition)
    if len(cond) != len(sample_names):
        raise InputShapeError(f"{len(cond)} condition labels for "
                              f"{len(sample_names)} samples")
    if isinstance(getattr(condition, 'dtype', None), pd.CategoricalDtype):
        return _as_labels(condition)
    return _as_labels(cond)


def _as_labels(cond):
    raw = list(np.asarray(cond, dtype=object))
    if any(pd.isna(v) for v in raw):
        raise InputShapeError("missing condition labels")
    values = [str(v) for v in raw]
    if isinstance(getattr(cond, 'dtype', None), pd.CategoricalDtype):
        cats = [str(c) for c in cond.dtype.categories]
        return pd.Categorical(values, categories=cats)
    return values


def _condition_levels(cond):
    if isinstance(cond, pd.Categorical):
        used = set(cond.astype(str))
        return [c for c in cond.categories if c in used]
    return list(dict.fromkeys(cond))


def get_counts(x):
    """Count matrix of a CountDataSet."""
    return np.asarray(x['counts'])


def get_size_factors(x):
    """Size factors as a Series indexed by sample."""
    return x['samples']['sizeFactor'].copy()


def get_condition(x):
    """Condition labels as a Categorical, reference level first."""
    return x['samples']['condition'].copy()
