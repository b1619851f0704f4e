"""
Tests for TSV loading, batch processing and the command line.
"""
import numpy as np
import polars as pl
import pytest

from fishermc.batch import (
    RESULT_COLUMNS,
    create_contingency_table,
    load_tables,
    run_contingency_analysis,
)
from fishermc.cli import main


class TestLoading:
    """Test table loading."""

    def test_load_tables_returns_dataframe(self, tables_tsv):
        df = load_tables(str(tables_tsv))
        assert isinstance(df, pl.DataFrame)
        assert df['table_id'].n_unique() == 5

    def test_missing_columns(self, tmp_path):
        test_file = tmp_path / "bad.tsv"
        test_file.write_text("id\trow_label\tcat_a\nT1\tr1\t3\n")

        with pytest.raises(ValueError, match="Missing required columns"):
            load_tables(str(test_file))

    def test_no_count_columns(self, tmp_path):
        test_file = tmp_path / "bad.tsv"
        test_file.write_text("table_id\trow_label\nT1\tr1\n")

        with pytest.raises(ValueError, match="count column"):
            load_tables(str(test_file))

    def test_create_contingency_table_sorts_rows(self):
        data = pl.DataFrame({
            'table_id': ['T1', 'T1'],
            'row_label': ['r2', 'r1'],
            'cat_a': [7, 1],
            'cat_b': [8, 2],
        })
        table = create_contingency_table(data, ['cat_a', 'cat_b'])
        np.testing.assert_array_equal(table, [[1, 2], [7, 8]])


class TestRunContingencyAnalysis:
    """Test the batch runner."""

    def test_output_columns(self, tables_tsv):
        results = run_contingency_analysis(str(tables_tsv), n_simulations=200, random_seed=1, n_workers=1)

        assert results.columns == RESULT_COLUMNS
        assert results['table_id'].to_list() == ['T1', 'T2', 'T3', 'T4', 'T5']

    def test_methods_per_table(self, tables_tsv):
        results = run_contingency_analysis(str(tables_tsv), n_simulations=200, random_seed=1, n_workers=1)
        methods = dict(zip(results['table_id'].to_list(), results['method'].to_list()))

        assert methods['T1'] == 'fisher_exact'
        assert methods['T2'] == 'chi_square'
        assert methods['T3'] == 'fisher_monte_carlo'
        assert methods['T4'] == 'skipped'
        assert methods['T5'] == 'skipped'

    def test_removed_marginals_reported(self, tables_tsv):
        results = run_contingency_analysis(str(tables_tsv), n_simulations=200, random_seed=1, n_workers=1)
        t1 = results.filter(pl.col('table_id') == 'T1').row(0, named=True)

        assert t1['removed_cols'] == 1
        assert t1['removed_rows'] == 0
        assert t1['total'] == 8

    def test_skipped_tables_carry_errors(self, tables_tsv):
        results = run_contingency_analysis(str(tables_tsv), n_simulations=200, random_seed=1, n_workers=1)
        skipped = results.filter(pl.col('method') == 'skipped')

        errors = dict(zip(skipped['table_id'].to_list(), skipped['error'].to_list()))
        assert "negative" in errors['T4']
        assert "Empty table after cleaning" in errors['T5']

    def test_one_sided_warning_recorded(self, tables_tsv):
        results = run_contingency_analysis(
            str(tables_tsv), n_simulations=200, alternative='greater', random_seed=1, n_workers=1
        )
        t3 = results.filter(pl.col('table_id') == 'T3').row(0, named=True)

        assert t3['alternative'] == 'two-sided'
        assert "One-sided tests are only meaningful" in t3['warnings']

    def test_monte_carlo_simulation_count(self, tables_tsv):
        results = run_contingency_analysis(str(tables_tsv), n_simulations=200, random_seed=1, n_workers=1)
        t3 = results.filter(pl.col('table_id') == 'T3').row(0, named=True)
        assert t3['n_simulations'] == 200
        assert 0 <= t3['pvalue'] <= 1

    def test_parallel_processing_gives_same_results(self, tables_tsv):
        results_seq = run_contingency_analysis(
            str(tables_tsv), n_simulations=100, random_seed=42, n_workers=1
        )
        results_par = run_contingency_analysis(
            str(tables_tsv), n_simulations=100, random_seed=42, n_workers=2, batch_size=2
        )

        assert results_seq['table_id'].to_list() == results_par['table_id'].to_list()
        assert results_seq['method'].to_list() == results_par['method'].to_list()
        assert results_seq['pvalue'].to_list() == results_par['pvalue'].to_list()


class TestCli:
    """Test the command line entry point."""

    def test_main_writes_results_and_report(self, tables_tsv, tmp_path, capsys):
        output_file = tmp_path / "results.tsv"

        exit_code = main([
            str(tables_tsv), str(output_file),
            '--n-simulations', '200',
            '--n-workers', '1',
        ])

        assert exit_code == 0
        results = pl.read_csv(output_file, separator='\t')
        assert len(results) == 5

        summary_file = tmp_path / "results_summary.txt"
        report = summary_file.read_text()
        assert "SKIPPED TABLES (2 total)" in report
        assert "TABLES WITH ZERO MARGINALS REMOVED" in report

        captured = capsys.readouterr()
        assert "Total tables tested: 5" in captured.out

    def test_invalid_alternative_rejected(self, tables_tsv, tmp_path):
        with pytest.raises(SystemExit):
            main([str(tables_tsv), str(tmp_path / "out.tsv"), '--alternative', 'sideways'])
