"""
Wald tests for differential expression.

Fits the condition factor per gene with the dispersion held fixed and tests
each non-reference level against the reference.
"""

import warnings

import numpy as np
import pandas as pd
from scipy.stats import norm

from .classes import DEResults
from .errors import InputShapeError, NumericDegeneracyWarning
from .glm import fit_nb_glm
from .results import p_adjust
from .utils import condition_design


def wald_test(x, dispersions, maxit=100, tol=1e-8, n_jobs=1, block_size=256,
              cancel=None):
    """Negative binomial Wald test of every condition level vs the reference.

    Parameters
    ----------
    x : CountDataSet
        Counts with size factors and condition annotation.
    dispersions : DispersionTable
        Output of :func:`estimate_dispersions`; its genes define the rows
        that are tested.
    maxit : int
        Maximum GLM iterations per gene.
    tol : float
        GLM convergence tolerance.
    n_jobs : int
        Worker threads for per-gene fits.
    block_size : int
        Genes per work block.
    cancel : threading.Event, optional
        Cooperative cancellation.

    Returns
    -------
    DEResults with one table per non-reference level. Columns: baseMean,
    log2FoldChange, lfcSE, stat, pvalue, padj, converged, status. Rows that
    did not converge or have degenerate dispersions keep their row with a
    missing ``padj``.
    """
    dtab = dispersions['table']
    genes = dtab.index
    samples = x['samples']
    design, coef_levels = condition_design(samples, reference=x['reference'])
    if not coef_levels:
        raise InputShapeError("condition has a single level; nothing to compare")

    sub = x[genes, :]
    sf = samples['sizeFactor'].values
    fit = fit_nb_glm(sub['counts'], design, dtab['dispersion'].values,
                     offset=np.log(sf), maxit=maxit, tol=tol,
                     n_jobs=n_jobs, block_size=block_size, cancel=cancel)

    status = fit['status'].copy()
    status[dtab['degenerate'].values] = 'degenerate'
    n_bad = int(np.sum(status != 'ok'))
    if n_bad:
        warnings.warn(f"{n_bad} genes did not yield a usable fit; their adjusted "
                      "p-values are missing", NumericDegeneracyWarning, stacklevel=2)

    tables = {}
    for c, level in enumerate(coef_levels, start=1):
        beta = fit['coefficients'][:, c]
        se = fit['se'][:, c]
        with np.errstate(divide='ignore', invalid='ignore'):
            stat = beta / se
        pvalue = 2 * norm.sf(np.abs(stat))
        testable = (status == 'ok') & np.isfinite(pvalue)
        tables[level] = pd.DataFrame({
            'baseMean': dtab['baseMean'].values,
            'log2FoldChange': beta / np.log(2),
            'lfcSE': se / np.log(2),
            'stat': stat,
            'pvalue': pvalue,
            'padj': p_adjust(pvalue, testable),
            'converged': fit['converged'],
            'status': status,
        }, index=genes)

    coef_names = ['Intercept'] + coef_levels
    out = DEResults()
    out['tables'] = tables
    out['reference'] = x['reference']
    out['levels'] = coef_levels
    out['design'] = pd.DataFrame(design, index=samples.index, columns=coef_names)
    out['coefficients'] = pd.DataFrame(fit['coefficients'], index=genes,
                                       columns=coef_names)
    out['deviance'] = pd.Series(fit['deviance'], index=genes)
    return out
