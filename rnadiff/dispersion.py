"""
Dispersion estimation for rnadiff.

Gene-wise maximum likelihood estimates, a parametric mean-dispersion trend
fitted by iteratively reweighted least squares, and empirical Bayes
shrinkage of the gene-wise estimates toward the trend.
"""

import warnings

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.special import polygamma
from scipy.stats import median_abs_deviation, trim_mean

from .classes import DispersionTable
from .errors import InsufficientDataError, NumericDegeneracyError, NumericDegeneracyWarning
from .filtering import MIN_TOTAL_COUNT, filter_by_count
from .nb_kernels import log_alpha_batch
from .parallel import check_cancel, map_gene_blocks

MIN_DISP = 1e-8


def estimate_dispersions(x, size_factors=None, min_total_count=MIN_TOTAL_COUNT,
                         fit_type='parametric', min_disp=MIN_DISP, max_disp=None,
                         min_prior_var=0.25, outlier_sd=2.0, n_grid=64, n_iter=60,
                         n_jobs=1, block_size=256, cancel=None):
    """Estimate gene-wise, trended and shrunken NB dispersions.

    Parameters
    ----------
    x : CountDataSet or array-like
        Counts (genes x samples). A CountDataSet supplies its size factors.
    size_factors : array-like, optional
        Per-sample size factors; required for matrix input.
    min_total_count : float
        Genes with total count not above this are excluded.
    fit_type : str
        'parametric' (``a / mean + b``) or 'mean' (constant trend).
    min_disp : float
        Lower bound for dispersion estimates.
    max_disp : float, optional
        Upper bound; defaults to ``max(10, n_samples)``.
    min_prior_var : float
        Floor for the prior variance of log dispersions.
    outlier_sd : float
        Gene-wise estimates more than this many prior standard deviations
        above the trend (log scale) are kept unshrunk.
    n_grid : int
        Grid points for the log-dispersion search.
    n_iter : int
        Golden-section refinement steps.
    n_jobs : int
        Worker threads for per-gene maximisation.
    block_size : int
        Genes per work block.
    cancel : threading.Event, optional
        Cooperative cancellation.

    Returns
    -------
    DispersionTable
    """
    if isinstance(x, dict) and 'counts' in x:
        counts = x['counts']
        genes = x['genes']
        if size_factors is None:
            size_factors = x['samples']['sizeFactor'].values
    else:
        counts = np.asarray(x, dtype=np.float64)
        genes = pd.Index([f"Gene{i+1}" for i in range(counts.shape[0])], name='gene')
        if size_factors is None:
            raise ValueError("size_factors required for matrix input")

    sf = np.asarray(size_factors, dtype=np.float64)
    ntags, nlibs = counts.shape
    if len(sf) != nlibs:
        raise ValueError("length of size_factors must equal number of samples")
    if nlibs < 2:
        raise InsufficientDataError('dispersion', nlibs, "at least two samples required")

    valid_fit_types = ('parametric', 'mean')
    if fit_type not in valid_fit_types:
        raise ValueError(f"fit_type must be one of {valid_fit_types}")

    if max_disp is None:
        max_disp = max(10.0, float(nlibs))

    keep = filter_by_count(counts, min_total_count)
    if not np.any(keep):
        raise InsufficientDataError('dispersion', 0,
                                    f"no genes with total count above {min_total_count}")
    y = np.ascontiguousarray(counts[keep])
    base_mean = np.mean(y / sf[None, :], axis=1)
    mu = np.ascontiguousarray(np.maximum(base_mean, 1e-8)[:, None] * sf[None, :])
    n = y.shape[0]
    lo, hi = np.log(min_disp), np.log(max_disp)

    # Gene-wise maximum likelihood
    no_prior = np.zeros(n)
    (log_gw,) = map_gene_blocks(
        lambda idx: (log_alpha_batch(y[idx], mu[idx], lo, hi, no_prior[idx],
                                     0.0, n_grid, n_iter),),
        n, n_jobs=n_jobs, block_size=block_size, cancel=cancel)
    disp_gw = np.clip(np.exp(log_gw), min_disp, max_disp)

    # Trend (global, after all gene-wise estimates)
    check_cancel(cancel)
    usable = np.isfinite(disp_gw) & (disp_gw >= 100 * min_disp)
    coefficients = None
    if fit_type == 'parametric':
        try:
            coefficients = fit_parametric_trend(base_mean[usable], disp_gw[usable])
        except NumericDegeneracyError as e:
            warnings.warn(f"parametric dispersion trend failed ({e}); "
                          "using the mean of gene-wise estimates instead",
                          NumericDegeneracyWarning, stacklevel=2)
            fit_type = 'mean'

    if fit_type == 'parametric':
        disp_fit = (coefficients['asymptDisp'] +
                    coefficients['extraPois'] / np.maximum(base_mean, 1e-8))
    else:
        if np.any(usable):
            level = float(trim_mean(disp_gw[usable], 0.001))
        else:
            warnings.warn("all gene-wise dispersion estimates are at the lower bound",
                          NumericDegeneracyWarning, stacklevel=2)
            level = min_disp
        coefficients = {'asymptDisp': level, 'extraPois': 0.0}
        disp_fit = np.full(n, level)
    disp_fit = np.clip(disp_fit, min_disp, max_disp)

    # Empirical Bayes shrinkage toward the trend
    prior_var = _prior_variance(disp_gw[usable], disp_fit[usable], nlibs, min_prior_var)
    prior_mean = np.log(disp_fit)
    (log_map,) = map_gene_blocks(
        lambda idx: (log_alpha_batch(y[idx], mu[idx], lo, hi, prior_mean[idx],
                                     prior_var, n_grid, n_iter),),
        n, n_jobs=n_jobs, block_size=block_size, cancel=cancel)
    disp_map = np.clip(np.exp(log_map), min_disp, max_disp)

    with np.errstate(invalid='ignore'):
        outlier = np.log(disp_gw) > prior_mean + outlier_sd * np.sqrt(prior_var)
    dispersion = np.where(outlier, disp_gw, disp_map)
    degenerate = ~np.isfinite(dispersion) | ~np.isfinite(disp_gw)
    dispersion[degenerate] = np.nan
    if np.any(degenerate):
        warnings.warn(f"{int(np.sum(degenerate))} genes have non-finite dispersion "
                      "estimates and will not be tested",
                      NumericDegeneracyWarning, stacklevel=2)

    table = pd.DataFrame({
        'baseMean': base_mean,
        'dispGeneEst': disp_gw,
        'dispFit': disp_fit,
        'dispMAP': disp_map,
        'dispersion': dispersion,
        'dispOutlier': outlier,
        'degenerate': degenerate,
    }, index=genes[keep])

    out = DispersionTable()
    out['table'] = table
    out['fit.type'] = fit_type
    out['coefficients'] = coefficients
    out['prior.var'] = prior_var
    out['min.total.count'] = min_total_count
    return out


def fit_parametric_trend(means, disps, maxit=10, tol=1e-6):
    """Fit ``disp = a / mean + b`` by iteratively reweighted least squares.

    Gamma-family GLM with identity link; genes whose estimate lies outside
    (1e-4, 15) times the current fit are dropped before the next pass.

    Parameters
    ----------
    means : ndarray
        Mean normalized counts.
    disps : ndarray
        Gene-wise dispersion estimates.
    maxit : int
        Maximum outer iterations.
    tol : float
        Convergence tolerance on the squared log change of the coefficients.

    Returns
    -------
    dict with 'asymptDisp' (b) and 'extraPois' (a).

    Raises
    ------
    NumericDegeneracyError
        Too few genes, a failed fit, or non-positive coefficients.
    """
    means = np.maximum(np.asarray(means, dtype=np.float64), 1e-8)
    disps = np.asarray(disps, dtype=np.float64)
    if len(disps) < 3:
        raise NumericDegeneracyError(f"only {len(disps)} genes usable for trend fitting")

    coefs = np.array([0.1, 1.0])
    use = np.ones(len(disps), dtype=bool)
    family = sm.families.Gamma(link=sm.families.links.Identity())
    for _ in range(maxit):
        if np.sum(use) < 3:
            raise NumericDegeneracyError("too few genes left after outlier removal")
        design = np.column_stack([np.ones(np.sum(use)), 1.0 / means[use]])
        try:
            with warnings.catch_warnings():
                warnings.simplefilter('ignore')
                res = sm.GLM(disps[use], design, family=family).fit(start_params=coefs)
        except (ValueError, np.linalg.LinAlgError, FloatingPointError) as e:
            raise NumericDegeneracyError(str(e)) from e
        new = np.asarray(res.params, dtype=np.float64)
        if not np.all(np.isfinite(new)) or np.any(new <= 0):
            raise NumericDegeneracyError("non-positive trend coefficients")
        ratio = disps / (new[0] + new[1] / means)
        use = (ratio > 1e-4) & (ratio < 15)
        converged = np.sum(np.log(new / coefs) ** 2) < tol
        coefs = new
        if converged:
            break
    else:
        warnings.warn("dispersion trend fit did not converge",
                      NumericDegeneracyWarning, stacklevel=2)

    return {'asymptDisp': float(coefs[0]), 'extraPois': float(coefs[1])}


def _prior_variance(disp_gw, disp_fit, nlibs, min_prior_var):
    """Variance of log dispersions around the trend, less sampling noise."""
    if len(disp_gw) < 2:
        return float(min_prior_var)
    resid = np.log(disp_gw) - np.log(disp_fit)
    var_log = median_abs_deviation(resid, scale='normal') ** 2
    expected = polygamma(1, (nlibs - 1) / 2.0)
    return float(max(var_log - expected, min_prior_var))


def get_dispersion(d):
    """Final dispersion per gene as a Series."""
    return d['table']['dispersion'].copy()
