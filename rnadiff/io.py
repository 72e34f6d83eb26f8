"""
Readers for rnadiff.

Tab-delimited count matrices and sample sheets, collated into a
CountDataSet.
"""

import os

import pandas as pd

from .errors import InputShapeError


def read_counts(path, sep='\t', gene_column=0, comment=None):
    """Read a gene x sample count matrix.

    Parameters
    ----------
    path : str or file-like
        Delimited text file. The header row holds sample identifiers; the
        ``gene_column`` column holds gene identifiers.
    sep : str
        Field separator.
    gene_column : int or str
        Column holding gene identifiers.
    comment : str, optional
        Comment character passed to pandas.

    Returns
    -------
    DataFrame of counts indexed by gene.
    """
    df = pd.read_csv(path, sep=sep, header=0, index_col=gene_column,
                     comment=comment)
    df.index = df.index.astype(str)
    df.index.name = 'gene'
    df.columns = df.columns.astype(str)
    if df.index.has_duplicates:
        dup = df.index[df.index.duplicated()].unique().tolist()
        name = path if isinstance(path, (str, os.PathLike)) else 'input'
        raise InputShapeError(f"Repeated row names in {name}: {dup[:5]}. "
                              "Row names must be unique.")
    non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise InputShapeError(f"non-numeric count columns: {non_numeric[:5]}")
    return df


def read_samples(path, sep='\t', sample_column=0, condition_column='condition'):
    """Read a sample sheet with one row per sample.

    Returns
    -------
    DataFrame indexed by sample identifier, containing at least
    ``condition_column``.
    """
    df = pd.read_csv(path, sep=sep, header=0, index_col=sample_column)
    df.index = df.index.astype(str)
    if condition_column not in df.columns:
        raise InputShapeError(f"sample sheet has no '{condition_column}' column")
    return df


def read_dataset(counts_path, samples_path=None, condition=None, reference=None,
                 sep='\t', condition_column='condition'):
    """Read counts (and optionally a sample sheet) into a CountDataSet.

    Either ``samples_path`` or ``condition`` must be given. ``condition`` is
    an ordered list of levels (one per count column) or a mapping from
    sample identifier to level.
    """
    from .dataset import make_dataset

    counts = read_counts(counts_path, sep=sep)
    if samples_path is not None:
        samples = read_samples(samples_path, sep=sep,
                               condition_column=condition_column)
        return make_dataset(counts, samples[condition_column],
                            reference=reference, samples=samples)
    if condition is None:
        raise InputShapeError("either a sample sheet or condition labels are required")
    return make_dataset(counts, condition, reference=reference)
