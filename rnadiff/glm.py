"""
Negative binomial GLM fitting for rnadiff.

Gene-by-gene iteratively reweighted least squares with Levenberg damping,
treating each gene's dispersion as known.
"""

import numpy as np

from .errors import NumericDegeneracyError
from .parallel import map_gene_blocks


def fit_nb_glm(y, design, dispersion, offset=0, maxit=100, tol=1e-8,
               n_jobs=1, block_size=256, cancel=None):
    """Fit genewise negative binomial GLMs with fixed dispersions.

    Parameters
    ----------
    y : ndarray
        Count matrix (genes x samples).
    design : ndarray
        Design matrix (samples x coefficients).
    dispersion : float or ndarray
        NB dispersion per gene.
    offset : float or ndarray
        Log-scale offsets per sample (log size factors).
    maxit : int
        Maximum iterations.
    tol : float
        Convergence tolerance on the relative change in deviance.
    n_jobs : int
        Worker threads.
    block_size : int
        Genes per work block.
    cancel : threading.Event, optional
        Cooperative cancellation.

    Returns
    -------
    dict with 'coefficients', 'se', 'deviance', 'iter', 'converged' and
    'status' ('ok', 'not_converged' or 'degenerate' per gene).
    """
    y = np.asarray(y, dtype=np.float64)
    if y.ndim == 1:
        y = y.reshape(1, -1)
    ngenes, nlibs = y.shape

    design = np.asarray(design, dtype=np.float64)
    if design.ndim == 1:
        design = design.reshape(-1, 1)
    if design.shape[0] != nlibs:
        raise ValueError("design must have one row per sample")

    disp = np.broadcast_to(np.asarray(dispersion, dtype=np.float64), (ngenes,))
    offset = np.broadcast_to(np.asarray(offset, dtype=np.float64), (nlibs,))

    def fit_block(idx):
        ncoefs = design.shape[1]
        coefficients = np.full((len(idx), ncoefs), np.nan)
        se = np.full((len(idx), ncoefs), np.nan)
        deviance = np.full(len(idx), np.nan)
        n_iter = np.zeros(len(idx), dtype=int)
        converged = np.zeros(len(idx), dtype=bool)
        status = np.full(len(idx), 'degenerate', dtype=object)
        for k, g in enumerate(idx):
            try:
                beta, se_g, dev, it, conv = _fit_one(y[g], design, disp[g], offset,
                                                     maxit, tol)
            except NumericDegeneracyError:
                continue
            coefficients[k] = beta
            se[k] = se_g
            deviance[k] = dev
            n_iter[k] = it
            converged[k] = conv
            status[k] = 'ok' if conv else 'not_converged'
        return coefficients, se, deviance, n_iter, converged, status

    coefficients, se, deviance, n_iter, converged, status = map_gene_blocks(
        fit_block, ngenes, n_jobs=n_jobs, block_size=block_size, cancel=cancel)

    return {
        'coefficients': coefficients,
        'se': se,
        'deviance': deviance,
        'iter': n_iter,
        'converged': converged,
        'status': status,
    }


def _fit_one(y, design, alpha, offset, maxit, tol):
    """Levenberg-damped IRLS for one gene."""
    if not np.isfinite(alpha) or alpha < 0:
        raise NumericDegeneracyError("invalid dispersion")

    beta = _start_values(y, design, offset)
    dev = _deviance(y, _mean(design, beta, offset), alpha)
    lev = 1e-3
    converged = False
    it = 0

    for it in range(1, maxit + 1):
        mu = _mean(design, beta, offset)
        working_w = np.maximum(mu / (1 + alpha * mu), 1e-300)
        z = (y - mu) / mu

        XtWX = design.T @ (working_w[:, None] * design)
        XtWz = design.T @ (working_w * z)
        XtWX_lev = XtWX + lev * np.diag(np.diag(XtWX) + 1e-10)
        try:
            delta = np.linalg.solve(XtWX_lev, XtWz)
        except np.linalg.LinAlgError as e:
            raise NumericDegeneracyError(str(e)) from e

        beta_new = beta + delta
        dev_new = _deviance(y, _mean(design, beta_new, offset), alpha)
        if not np.isfinite(dev_new):
            raise NumericDegeneracyError("non-finite deviance")

        if dev_new <= dev:
            change = abs(dev - dev_new)
            beta, dev = beta_new, dev_new
            lev = max(lev / 10, 1e-10)
            if change < tol * (abs(dev) + 0.1):
                converged = True
                break
        else:
            if abs(dev_new - dev) < tol * (abs(dev) + 0.1):
                converged = True
                break
            lev = min(lev * 10, 1e10)
            if lev >= 1e10:
                break

    mu = _mean(design, beta, offset)
    working_w = mu / (1 + alpha * mu)
    info = design.T @ (working_w[:, None] * design)
    try:
        cov = np.linalg.inv(info)
    except np.linalg.LinAlgError as e:
        raise NumericDegeneracyError(str(e)) from e
    var = np.diag(cov)
    if np.any(~np.isfinite(var)) or np.any(var < 0) or np.any(~np.isfinite(beta)):
        raise NumericDegeneracyError("non-finite standard errors")
    return beta, np.sqrt(var), dev, it, converged


def _start_values(y, design, offset):
    """Least-squares fit of log counts as starting coefficients."""
    log_y = np.log((y + 0.1) / np.exp(offset))
    beta, *_ = np.linalg.lstsq(design, log_y, rcond=None)
    return beta


def _mean(design, beta, offset):
    eta = design @ beta + offset
    return np.maximum(np.exp(np.clip(eta, -500, 500)), 1e-300)


def _deviance(y, mu, alpha):
    return float(np.sum(nbinom_unit_deviance(y, mu, alpha)))


def nbinom_unit_deviance(y, mean, dispersion=0):
    """Unit deviance for the negative binomial distribution."""
    y = np.asarray(y, dtype=np.float64)
    mu = np.maximum(np.asarray(mean, dtype=np.float64), 1e-300)
    disp = float(dispersion)

    dev = np.zeros_like(y)
    pos = y > 0
    zero = ~pos
    if disp == 0:
        dev[pos] = 2 * (y[pos] * np.log(y[pos] / mu[pos]) - (y[pos] - mu[pos]))
        dev[zero] = 2 * mu[zero]
    else:
        dev[pos] = 2 * (y[pos] * np.log(y[pos] / mu[pos]) -
                        (y[pos] + 1 / disp) * np.log((1 + disp * y[pos]) /
                                                     (1 + disp * mu[pos])))
        dev[zero] = 2 / disp * np.log1p(disp * mu[zero])
    return np.maximum(dev, 0)
