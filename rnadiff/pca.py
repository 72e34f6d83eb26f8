"""
Principal components of an expression submatrix.
"""

import warnings

import numpy as np
import pandas as pd

from .errors import InsufficientDataError, NumericDegeneracyWarning


def principal_components(expr, n_components=None, scale=True):
    """PCA with samples as observations and genes as variables.

    Each gene is mean-centred and, with ``scale``, divided by its standard
    deviation; genes with zero variance are dropped with a warning. The
    decomposition is a thin SVD of the scaled samples x genes matrix.

    Parameters
    ----------
    expr : DataFrame
        Expression matrix (genes x samples).
    n_components : int, optional
        Number of components to keep; all by default.
    scale : bool
        Scale genes to unit variance.

    Returns
    -------
    dict with 'x' (sample scores), 'rotation' (gene loadings), 'sdev'
    and 'variance.explained'.
    """
    if not isinstance(expr, pd.DataFrame):
        expr = pd.DataFrame(np.asarray(expr, dtype=np.float64))
    values = expr.to_numpy(dtype=np.float64)
    ngenes, nsamples = values.shape
    if nsamples < 2 or ngenes < 1:
        raise InsufficientDataError('pca', min(ngenes, nsamples),
                                    "need at least one gene and two samples")

    sd = values.std(axis=1, ddof=1)
    constant = ~(sd > 0)
    if np.any(constant):
        warnings.warn(f"dropping {int(np.sum(constant))} genes with zero variance "
                      "before PCA", NumericDegeneracyWarning, stacklevel=2)
        values = values[~constant]
        sd = sd[~constant]
        expr = expr.iloc[np.where(~constant)[0]]
    if values.shape[0] == 0:
        raise InsufficientDataError('pca', 0, "no gene varies across samples")

    centred = values - values.mean(axis=1, keepdims=True)
    if scale:
        centred = centred / sd[:, None]
    data = centred.T

    u, s, vt = np.linalg.svd(data, full_matrices=False)
    # Sign convention: largest loading of each component is positive
    signs = np.sign(vt[np.arange(len(s)), np.argmax(np.abs(vt), axis=1)])
    signs[signs == 0] = 1
    u *= signs
    vt *= signs[:, None]

    ncomp = len(s) if n_components is None else min(int(n_components), len(s))
    names = [f"PC{i+1}" for i in range(ncomp)]
    sdev = s / np.sqrt(max(nsamples - 1, 1))
    total = np.sum(sdev ** 2)
    return {
        'x': pd.DataFrame((u * s)[:, :ncomp], index=expr.columns, columns=names),
        'rotation': pd.DataFrame(vt[:ncomp].T, index=expr.index, columns=names),
        'sdev': sdev[:ncomp],
        'variance.explained': (sdev[:ncomp] ** 2 / total) if total > 0 else np.zeros(ncomp),
    }
