"""Tests for CountDataSet construction, validation, subsetting and readers."""

import numpy as np
import pandas as pd
import pytest

import rnadiff as rd


# ── Construction ─────────────────────────────────────────────────────

class TestMakeDataset:
    """make_dataset with the different condition inputs."""

    def test_dataframe_input(self, three_group_data):
        df, condition = three_group_data
        d = rd.make_dataset(df, condition, reference='Control')
        assert d['counts'].shape == (10, 18)
        assert list(d['genes'][:2]) == ['up1', 'up2']
        assert list(d['samples'].index[:2]) == ['S01', 'S02']
        assert d['levels'] == ['Control', 'treatment A', 'treatment B']
        assert np.all(d['samples']['sizeFactor'] == 1)

    def test_reference_first(self, three_group_data):
        df, condition = three_group_data
        d = rd.make_dataset(df, condition, reference='treatment B')
        assert d['levels'][0] == 'treatment B'
        assert list(d['samples']['condition'].cat.categories)[0] == 'treatment B'

    def test_default_reference(self, three_group_data):
        df, condition = three_group_data
        d = rd.make_dataset(df, condition)
        assert d['reference'] == 'Control'

    def test_mapping_condition(self):
        counts = pd.DataFrame([[1, 2, 3], [4, 5, 6]], index=['g1', 'g2'],
                              columns=['a', 'b', 'c'])
        d = rd.make_dataset(counts, {'c': 'T', 'a': 'C', 'b': 'C'}, reference='C')
        assert list(d['samples']['condition'].astype(str)) == ['C', 'C', 'T']

    def test_series_condition_reordered(self):
        counts = pd.DataFrame([[1, 2, 3], [4, 5, 6]], index=['g1', 'g2'],
                              columns=['a', 'b', 'c'])
        cond = pd.Series(['T', 'C', 'C'], index=['c', 'b', 'a'])
        d = rd.make_dataset(counts, cond, reference='C')
        assert list(d['samples']['condition'].astype(str)) == ['C', 'C', 'T']

    def test_one_shot_iterable_condition(self):
        d = rd.make_dataset(np.array([[1, 2, 3], [4, 5, 6]]), iter(['T', 'C', 'T']),
                            reference='C')
        assert list(d['samples']['condition'].astype(str)) == ['T', 'C', 'T']
        assert d['levels'] == ['C', 'T']

    def test_generator_condition(self):
        d = rd.make_dataset(np.ones((2, 2)), (lv for lv in ['x', 'y']))
        assert d['reference'] == 'x'

    def test_categorical_order_kept(self):
        cond = pd.Categorical(['T', 'C'], categories=['C', 'T'])
        d = rd.make_dataset(np.ones((2, 2)), cond)
        assert d['reference'] == 'C'
        assert d['levels'] == ['C', 'T']

    def test_array_input_gets_names(self):
        d = rd.make_dataset(np.array([[1, 2], [3, 4]]), ['x', 'y'])
        assert list(d['genes']) == ['Gene1', 'Gene2']
        assert list(d['samples'].index) == ['Sample1', 'Sample2']

    def test_repr(self, dataset3):
        assert 'CountDataSet with 10 rows and 18 columns' in repr(dataset3)

    def test_accessors(self, dataset3):
        assert np.array_equal(rd.get_counts(dataset3), dataset3['counts'])
        cond = rd.get_condition(dataset3)
        assert list(cond.cat.categories) == dataset3['levels']
        assert cond.index[0] == 'S01'
        assert rd.get_size_factors(dataset3).tolist() == [1.0] * 18

    def test_head(self, dataset3):
        assert list(dataset3.head(3).index) == ['up1', 'up2', 'up3']

    def test_attribute_access(self, dataset3):
        assert dataset3.reference == 'Control'
        with pytest.raises(AttributeError):
            dataset3.nonexistent


# ── Validation ───────────────────────────────────────────────────────

class TestValidation:
    """InputShapeError for malformed input."""

    def test_negative_counts(self):
        with pytest.raises(rd.InputShapeError, match="Negative"):
            rd.make_dataset(np.array([[1, -2], [3, 4]]), ['a', 'b'])

    def test_non_integer_counts(self):
        with pytest.raises(rd.InputShapeError, match="whole"):
            rd.make_dataset(np.array([[1.5, 2], [3, 4]]), ['a', 'b'])

    def test_nan_counts(self):
        with pytest.raises(rd.InputShapeError):
            rd.make_dataset(np.array([[np.nan, 2], [3, 4]]), ['a', 'b'])

    def test_non_numeric_counts(self):
        counts = pd.DataFrame({'a': ['1', 'x'], 'b': [3, 4]}, index=['g1', 'g2'])
        with pytest.raises(rd.InputShapeError, match="non-numeric"):
            rd.make_dataset(counts, ['C', 'T'])

    def test_condition_length_mismatch(self):
        with pytest.raises(rd.InputShapeError):
            rd.make_dataset(np.ones((2, 3)), ['C', 'T'])

    def test_mapping_missing_sample(self):
        counts = pd.DataFrame([[1, 2], [3, 4]], index=['g1', 'g2'], columns=['a', 'b'])
        with pytest.raises(rd.InputShapeError, match="missing"):
            rd.make_dataset(counts, {'a': 'C'})

    def test_mapping_unknown_sample(self):
        counts = pd.DataFrame([[1, 2], [3, 4]], index=['g1', 'g2'], columns=['a', 'b'])
        with pytest.raises(rd.InputShapeError, match="unknown"):
            rd.make_dataset(counts, {'a': 'C', 'b': 'T', 'z': 'T'})

    def test_reference_not_observed(self):
        with pytest.raises(rd.InputShapeError, match="reference"):
            rd.make_dataset(np.ones((2, 2)), ['C', 'T'], reference='X')

    def test_duplicate_genes(self):
        counts = pd.DataFrame([[1, 2], [3, 4]], index=['g1', 'g1'], columns=['a', 'b'])
        with pytest.raises(rd.InputShapeError, match="duplicate gene"):
            rd.make_dataset(counts, ['C', 'T'])

    def test_duplicate_samples(self):
        counts = pd.DataFrame([[1, 2], [3, 4]], index=['g1', 'g2'], columns=['a', 'a'])
        with pytest.raises(rd.InputShapeError, match="duplicate sample"):
            rd.make_dataset(counts, ['C', 'T'])

    def test_missing_condition_label(self):
        with pytest.raises(rd.InputShapeError, match="missing"):
            rd.make_dataset(np.ones((2, 2)), ['C', None])

    def test_is_value_error(self):
        assert issubclass(rd.InputShapeError, ValueError)


# ── Subsetting ───────────────────────────────────────────────────────

class TestSubsetting:
    """CountDataSet[i, j]."""

    def test_subset_genes_by_name(self, dataset3):
        sub = dataset3[['flat2', 'up1'], :]
        assert list(sub['genes']) == ['flat2', 'up1']
        assert np.array_equal(sub['counts'][1], dataset3['counts'][0])

    def test_subset_samples_drops_levels(self, dataset3):
        sub = dataset3[:, np.arange(12)]
        assert sub['counts'].shape == (10, 12)
        assert sub['levels'] == ['Control', 'treatment A']
        assert list(sub['samples']['condition'].cat.categories) == ['Control', 'treatment A']

    def test_subset_is_copy(self, dataset3):
        sub = dataset3[['up1'], :]
        sub['counts'][0, 0] = -1
        assert dataset3['counts'][0, 0] >= 0

    def test_unknown_gene(self, dataset3):
        with pytest.raises(KeyError):
            dataset3[['nope'], :]

    def test_to_frame(self, dataset3):
        df = dataset3.to_frame()
        assert df.shape == (10, 18)
        assert df.index[0] == 'up1'


# ── Readers ──────────────────────────────────────────────────────────

class TestReaders:
    """read_counts, read_samples and read_dataset."""

    def test_read_counts(self, tmp_path):
        path = tmp_path / "counts.tsv"
        path.write_text("gene\tA\tB\ng1\t1\t2\ng2\t3\t4\n")
        df = rd.read_counts(path)
        assert list(df.columns) == ['A', 'B']
        assert list(df.index) == ['g1', 'g2']
        assert df.loc['g2', 'B'] == 4

    def test_read_counts_duplicate_rows(self, tmp_path):
        path = tmp_path / "counts.tsv"
        path.write_text("gene\tA\tB\ng1\t1\t2\ng1\t3\t4\n")
        with pytest.raises(rd.InputShapeError, match="Repeated"):
            rd.read_counts(path)

    def test_read_dataset_with_sheet(self, tmp_path):
        counts = tmp_path / "counts.tsv"
        counts.write_text("gene\tA\tB\tC\ng1\t1\t2\t3\ng2\t3\t4\t5\n")
        sheet = tmp_path / "samples.tsv"
        sheet.write_text("sample\tcondition\nC\tT\nA\tCtl\nB\tCtl\n")
        d = rd.read_dataset(counts, sheet, reference='Ctl')
        assert list(d['samples']['condition'].astype(str)) == ['Ctl', 'Ctl', 'T']
        assert d['levels'] == ['Ctl', 'T']

    def test_read_dataset_with_labels(self, tmp_path):
        counts = tmp_path / "counts.tsv"
        counts.write_text("gene\tA\tB\ng1\t1\t2\n")
        d = rd.read_dataset(counts, condition=['x', 'y'])
        assert d['reference'] == 'x'

    def test_read_dataset_needs_condition(self, tmp_path):
        counts = tmp_path / "counts.tsv"
        counts.write_text("gene\tA\tB\ng1\t1\t2\n")
        with pytest.raises(rd.InputShapeError):
            rd.read_dataset(counts)


# ── Design ───────────────────────────────────────────────────────────

class TestConditionDesign:
    """Treatment-coded design matrix."""

    def test_reference_is_intercept(self, dataset3):
        design, levels = rd.condition_design(dataset3['samples'], reference='Control')
        assert design.shape == (18, 3)
        assert levels == ['treatment A', 'treatment B']
        assert np.all(design[:, 0] == 1)
        assert np.all(design[:6, 1:] == 0)
        assert np.all(design[6:12, 1] == 1) and np.all(design[6:12, 2] == 0)
        assert np.all(design[12:, 2] == 1)

    def test_other_reference(self):
        samples = pd.DataFrame({'condition': ['B', 'A', 'A', 'B']})
        design, levels = rd.condition_design(samples, reference='B')
        assert levels == ['A']
        assert np.array_equal(design[:, 1], [0, 1, 1, 0])
