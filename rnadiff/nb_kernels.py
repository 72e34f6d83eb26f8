"""
Numba kernels for negative binomial dispersion likelihoods.

Per-gene maximisation of the NB log-likelihood over log dispersion, with an
optional normal prior on log dispersion for the empirical Bayes step. The
kernels release the GIL so gene blocks can run on threads.
"""

import math

import numpy as np
from numba import njit


@njit(cache=True, nogil=True)
def nb_loglik(y, mu, log_alpha):
    """NB log-likelihood of one gene, up to terms free of the dispersion."""
    alpha = math.exp(log_alpha)
    r = 1.0 / alpha
    lg_r = math.lgamma(r)
    ll = 0.0
    for j in range(y.shape[0]):
        m = max(mu[j], 1e-300)
        am = alpha * m
        ll += (math.lgamma(y[j] + r) - lg_r
               + y[j] * math.log(am) - (y[j] + r) * math.log1p(am))
    return ll


@njit(cache=True, nogil=True)
def _objective(y, mu, log_alpha, prior_mean, prior_var):
    val = nb_loglik(y, mu, log_alpha)
    if prior_var > 0.0:
        d = log_alpha - prior_mean
        val -= d * d / (2.0 * prior_var)
    return val


@njit(cache=True, nogil=True)
def maximize_log_alpha(y, mu, lo, hi, prior_mean, prior_var, n_grid, n_iter):
    """Grid search on [lo, hi] followed by golden-section refinement.

    Returns NaN when the objective is nowhere finite.
    """
    step = (hi - lo) / (n_grid - 1)
    best = -1
    best_val = -np.inf
    for k in range(n_grid):
        v = _objective(y, mu, lo + k * step, prior_mean, prior_var)
        if v > best_val:
            best_val = v
            best = k
    if best < 0 or not math.isfinite(best_val):
        return np.nan

    a = lo + max(best - 1, 0) * step
    b = lo + min(best + 1, n_grid - 1) * step
    invphi = (math.sqrt(5.0) - 1.0) / 2.0
    c = b - invphi * (b - a)
    d = a + invphi * (b - a)
    fc = _objective(y, mu, c, prior_mean, prior_var)
    fd = _objective(y, mu, d, prior_mean, prior_var)
    for _ in range(n_iter):
        if fc > fd:
            b = d
            d = c
            fd = fc
            c = b - invphi * (b - a)
            fc = _objective(y, mu, c, prior_mean, prior_var)
        else:
            a = c
            c = d
            fc = fd
            d = a + invphi * (b - a)
            fd = _objective(y, mu, d, prior_mean, prior_var)
    x = 0.5 * (a + b)
    if _objective(y, mu, x, prior_mean, prior_var) < best_val:
        x = lo + best * step
    return x


@njit(cache=True, nogil=True)
def log_alpha_batch(counts, mu, lo, hi, prior_mean, prior_var, n_grid, n_iter):
    """Maximise log dispersion for every row of ``counts``.

    ``prior_var <= 0`` gives maximum likelihood estimates; otherwise each
    row is shrunk toward its ``prior_mean`` entry.
    """
    n = counts.shape[0]
    out = np.empty(n)
    for i in range(n):
        out[i] = maximize_log_alpha(counts[i], mu[i], lo, hi,
                                    prior_mean[i], prior_var, n_grid, n_iter)
    return out
