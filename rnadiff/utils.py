"""
Utility functions for rnadiff.

Design-matrix construction for a single condition factor and a small array
helper shared across modules.
"""

import numpy as np
import pandas as pd
import patsy


def condition_design(samples, reference=None, column='condition'):
    """Treatment-coded design matrix for a single condition factor.

    The reference level maps to the intercept; every other level gets one
    indicator column.

    Parameters
    ----------
    samples : DataFrame
        Sample annotation containing ``column``.
    reference : str, optional
        Reference level. Defaults to the first category.
    column : str
        Name of the condition column.

    Returns
    -------
    design : ndarray
        Design matrix (samples x coefficients), dtype float64.
    coef_levels : list of str
        The condition level each non-intercept column corresponds to.

    Examples
    --------
    >>> df = pd.DataFrame({'condition': ['B', 'A', 'A', 'B']})
    >>> design, levels = condition_design(df, reference='A')
    >>> design
    array([[1., 1.],
           [1., 0.],
           [1., 0.],
           [1., 1.]])
    >>> levels
    ['B']
    """
    cond = samples[column]
    if hasattr(cond, 'cat'):
        levels = [str(c) for c in cond.cat.categories]
    else:
        levels = list(dict.fromkeys(str(c) for c in cond))
    if reference is None:
        reference = levels[0]
    if reference not in levels:
        raise ValueError(f"reference level '{reference}' not among levels {levels}")

    data = pd.DataFrame({'condition': np.asarray(cond).astype(str)})
    formula = "~ C(condition, Treatment(reference=ref), levels=lv)"
    dm = patsy.dmatrix(formula, data=data,
                       eval_env=patsy.EvalEnvironment([{'ref': reference, 'lv': levels}]),
                       return_type='dataframe')
    coef_levels = [lv for lv in levels if lv != reference]
    return np.asarray(dm, dtype=np.float64), coef_levels


def geometric_mean_rows(x):
    """Row-wise geometric means; rows containing a zero give 0."""
    x = np.asarray(x, dtype=np.float64)
    with np.errstate(divide='ignore'):
        return np.exp(np.mean(np.log(x), axis=1))
