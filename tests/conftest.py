"""Shared fixtures for rnadiff tests."""

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def rng():
    """Seeded random number generator for reproducibility."""
    return np.random.RandomState(42)


@pytest.fixture
def nb_counts(rng):
    """400 genes x 8 samples, negative binomial with dispersion 4/mean + 0.05."""
    means = np.exp(rng.uniform(np.log(20), np.log(2000), 400))
    sf = np.array([0.8, 1.0, 1.2, 0.9, 1.1, 1.0, 0.7, 1.3])
    mu = means[:, None] * sf[None, :]
    alpha = (4.0 / means + 0.05)[:, None]
    counts = rng.negative_binomial(1 / alpha, 1 / (1 + alpha * mu)).astype(np.float64)
    return counts, sf, means


@pytest.fixture(scope="module")
def three_group_data():
    """18 samples (6 Control, 6 treatment A, 6 treatment B), 10 genes.

    Genes up1..up3 are 4x higher in treatment A only; flat1..flat7 are
    constant. Counts are Poisson, so per-sample noise is low.
    """
    rs = np.random.RandomState(42)
    condition = ['Control'] * 6 + ['treatment A'] * 6 + ['treatment B'] * 6
    base = np.array([200, 350, 150, 500, 250, 300, 400, 180, 220, 600], dtype=float)
    mu = np.tile(base[:, None], (1, 18))
    mu[:3, 6:12] *= 4
    counts = rs.poisson(mu)
    genes = [f"up{i+1}" for i in range(3)] + [f"flat{i+1}" for i in range(7)]
    samples = [f"S{j+1:02d}" for j in range(18)]
    df = pd.DataFrame(counts, index=genes, columns=samples)
    return df, condition


@pytest.fixture
def dataset3(three_group_data):
    """CountDataSet for the three-group data with Control as reference."""
    import rnadiff as rd
    df, condition = three_group_data
    return rd.make_dataset(df, condition, reference='Control')


@pytest.fixture
def two_blocks():
    """Two blocks of tightly correlated genes, anti-correlated with each other."""
    rs = np.random.RandomState(0)
    pattern = np.array([1.0, 3.0, 2.0, 5.0, 4.0, 6.0])
    rows = [pattern, 2 * pattern + 1, 0.5 * pattern + 3, 3 * pattern - 1,
            -pattern, -2 * pattern + 10, -0.5 * pattern + 4]
    values = np.vstack(rows) + rs.normal(scale=0.1, size=(7, 6))
    index = ['a1', 'a2', 'a3', 'a4', 'b1', 'b2', 'b3']
    return pd.DataFrame(values, index=index,
                        columns=[f"S{j+1}" for j in range(6)])
