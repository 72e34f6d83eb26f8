"""Tests for p-value adjustment and differential expression gene selection."""

import numpy as np
import pandas as pd
import pytest

import rnadiff as rd


def _results(tables):
    res = rd.DEResults()
    res['tables'] = tables
    res['reference'] = 'C'
    res['levels'] = list(tables)
    return res


@pytest.fixture
def two_level_results():
    index = pd.Index(['g1', 'g2', 'g3', 'g4', 'g5'], name='gene')
    a = pd.DataFrame({
        'baseMean': [100.0] * 5,
        'log2FoldChange': [2.5, -1.5, 0.5, 1.0, 3.0],
        'pvalue': [1e-6, 1e-4, 1e-5, 1e-8, 0.2],
        'padj': [1e-5, 2e-4, 5e-5, 1e-7, 0.2],
    }, index=index)
    b = pd.DataFrame({
        'baseMean': [100.0] * 5,
        'log2FoldChange': [0.1, 0.0, 1.2, 0.0, -4.0],
        'pvalue': [0.5, 0.9, 0.01, 0.9, 0.06],
        'padj': [0.9, 0.9, 0.05, 0.9, np.nan],
    }, index=index)
    return _results({'A': a, 'B': b})


# ── p_adjust ─────────────────────────────────────────────────────────

class TestPAdjust:
    """Benjamini-Hochberg over valid rows."""

    def test_known_values(self):
        p = np.array([0.01, 0.04, 0.03, 0.02])
        assert np.allclose(rd.p_adjust(p), [0.04, 0.04, 0.04, 0.04])

    def test_bounds_and_monotone(self, rng):
        p = rng.uniform(size=200) ** 3
        adj = rd.p_adjust(p)
        assert np.all(adj >= p)
        assert np.all(adj <= 1)
        order = np.argsort(p)
        assert np.all(np.diff(adj[order]) >= -1e-15)

    def test_mask_excludes_rows(self):
        p = np.array([0.01, 0.02, np.nan, 0.5])
        adj = rd.p_adjust(p, mask=[True, True, True, False])
        assert np.isnan(adj[2]) and np.isnan(adj[3])
        assert np.allclose(adj[:2], [0.02, 0.02])

    def test_all_missing(self):
        assert np.all(np.isnan(rd.p_adjust([np.nan, np.nan])))

    def test_bonferroni(self):
        assert np.allclose(rd.p_adjust([0.01, 0.2], method='bonferroni'), [0.02, 0.4])

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            rd.p_adjust([0.1], method='magic')


# ── Gene selection ───────────────────────────────────────────────────

class TestSelectDeGenes:
    """Union over levels of padj <= 0.05 and |log2FC| > 1."""

    def test_union_in_original_order(self, two_level_results):
        genes = rd.select_de_genes(two_level_results)
        # g4 has |lfc| == 1, not strictly greater; g3 passes in B only
        assert genes == ['g1', 'g2', 'g3']

    def test_every_selected_gene_passes(self, two_level_results):
        genes = rd.select_de_genes(two_level_results)
        for g in genes:
            ok = False
            for tab in two_level_results['tables'].values():
                ok |= bool(tab.loc[g, 'padj'] <= 0.05 and abs(tab.loc[g, 'log2FoldChange']) > 1)
            assert ok

    def test_single_contrast(self, two_level_results):
        assert rd.select_de_genes(two_level_results, contrast='B') == ['g3']

    def test_thresholds(self, two_level_results):
        genes = rd.select_de_genes(two_level_results, padj_threshold=1e-4,
                                   lfc_threshold=0.0)
        assert genes == ['g1', 'g3', 'g4']

    def test_missing_padj_never_selected(self, two_level_results):
        genes = rd.select_de_genes(two_level_results, padj_threshold=1.0)
        assert 'g5' in genes  # via level A
        only_b = rd.select_de_genes(two_level_results, padj_threshold=1.0, contrast='B')
        assert 'g5' not in only_b

    def test_dataframe_input(self, two_level_results):
        tab = two_level_results.table('A')
        assert rd.select_de_genes(tab) == ['g1', 'g2']

    def test_defaults(self):
        assert rd.PADJ_THRESHOLD == 0.05
        assert rd.LFC_THRESHOLD == 1.0


# ── Tables ───────────────────────────────────────────────────────────

class TestTables:
    """decide_tests, top_table and summarize."""

    def test_decide_tests(self, two_level_results):
        d = rd.decide_tests(two_level_results)
        assert list(d.columns) == ['A', 'B']
        assert d['A'].tolist() == [1, -1, 0, 0, 0]
        assert d['B'].tolist() == [0, 0, 1, 0, 0]

    def test_top_table_sorted(self, two_level_results):
        top = rd.top_table(two_level_results, contrast='A')
        assert list(top.index) == ['g4', 'g1', 'g3', 'g2', 'g5']

    def test_top_table_n_and_threshold(self, two_level_results):
        top = rd.top_table(two_level_results, contrast='A', n=2)
        assert len(top) == 2
        sig = rd.top_table(two_level_results, contrast='A', padj_threshold=1e-4)
        assert list(sig.index) == ['g4', 'g1', 'g3']

    def test_top_table_by_lfc(self, two_level_results):
        top = rd.top_table(two_level_results, contrast='B', sort_by='log2FoldChange')
        assert top.index[0] == 'g5'

    def test_unknown_level(self, two_level_results):
        with pytest.raises(KeyError):
            two_level_results.table('Z')

    def test_summarize(self, two_level_results):
        s = rd.summarize(two_level_results)
        assert s.loc['A', 'up'] == 1
        assert s.loc['A', 'down'] == 1
        assert s.loc['A', 'unchanged'] == 3
        assert s.loc['B', 'untested'] == 1
