"""
Batch analysis of many contingency tables stored in one TSV file.

The input file holds one row per table row: a ``table_id`` column, a
``row_label`` column and one column of counts per category. Every table id is
analysed independently with analyse_contingency(); tables are distributed to
worker processes in batches.
"""
import multiprocessing
import warnings
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Dict, List, Optional

import numpy as np
import polars as pl
from tqdm import tqdm

from fishermc.contingency_analysis import (
    DEFAULT_N_SIMULATIONS,
    analyse_contingency,
    analyse_matrix,
)

ID_COLUMN = 'table_id'
ROW_COLUMN = 'row_label'

RESULT_SCHEMA = {
    'table_id': pl.Utf8,
    'method': pl.Utf8,
    'statistic': pl.Float64,
    'dof': pl.Int64,
    'pvalue': pl.Float64,
    'fisher_method': pl.Utf8,
    'fisher_pvalue': pl.Float64,
    'alternative': pl.Utf8,
    'n_rows': pl.Int64,
    'n_cols': pl.Int64,
    'total': pl.Int64,
    'prop_small': pl.Float64,
    'removed_rows': pl.Int64,
    'removed_cols': pl.Int64,
    'n_simulations': pl.Int64,
    'warnings': pl.Utf8,
    'error': pl.Utf8,
}
RESULT_COLUMNS = list(RESULT_SCHEMA)


def load_tables(file_path: str) -> pl.DataFrame:
    """
    Load contingency tables from a TSV file.

    Parameters:
    -----------
    file_path : str
        Path to the TSV file. Required columns are ``table_id`` and
        ``row_label``; every other column holds counts for one category.

    Returns:
    --------
    pl.DataFrame
        DataFrame with the id, label and count columns.
    """
    df = pl.read_csv(file_path, separator='\t')

    missing_cols = [col for col in (ID_COLUMN, ROW_COLUMN) if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")

    if not count_columns(df):
        raise ValueError("Input needs at least one count column besides table_id and row_label")

    return df.with_columns(pl.col(ID_COLUMN).cast(pl.Utf8))


def count_columns(df: pl.DataFrame) -> List[str]:
    """Names of the count columns, in file order."""
    return [col for col in df.columns if col not in (ID_COLUMN, ROW_COLUMN)]


def create_contingency_table(table_data: pl.DataFrame, columns: List[str]) -> np.ndarray:
    """
    Build the count matrix for a single table.

    Rows are sorted by ``row_label`` so the same input always yields the
    same matrix regardless of line order in the file.
    """
    table_data = table_data.sort(ROW_COLUMN)
    return table_data.select(columns).to_numpy()


def _skipped_result(table_id: str, error: str, n_rows=None, n_cols=None, total=None) -> Dict:
    result = dict.fromkeys(RESULT_COLUMNS)
    result.update({
        'table_id': table_id,
        'method': 'skipped',
        'n_rows': n_rows,
        'n_cols': n_cols,
        'total': total,
        'error': error,
    })
    return result


def _process_table_core(
    table_data: pl.DataFrame,
    table_id: str,
    columns: List[str],
    n_simulations: int,
    alternative: str,
    random_seed: Optional[int],
    sampler: str
) -> Dict:
    """
    Analyse one table and flatten the outcome into a result row.

    Input errors (ValueError) do not propagate: the table is reported as
    skipped with the error message.
    """
    contingency_table = create_contingency_table(table_data, columns)
    n_rows, n_cols = contingency_table.shape

    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            summary = analyse_matrix(contingency_table)
            outcome = analyse_contingency(
                summary.cleaned_table,
                n_simulations=n_simulations,
                alternative=alternative,
                random_seed=random_seed,
                sampler=sampler,
            )
    except ValueError as e:
        total = int(contingency_table.sum()) if np.issubdtype(contingency_table.dtype, np.number) else None
        return _skipped_result(table_id, str(e), n_rows, n_cols, total)

    result = dict.fromkeys(RESULT_COLUMNS)
    result.update(outcome.to_dict())
    result.update({
        'table_id': table_id,
        'n_rows': n_rows,
        'n_cols': n_cols,
        'total': summary.total,
        'prop_small': summary.prop_small,
        'removed_rows': summary.removed_rows,
        'removed_cols': summary.removed_cols,
        'warnings': '; '.join(str(w.message) for w in caught) or None,
    })
    return result


def _process_table_batch(
    df: pl.DataFrame,
    table_ids: list,
    n_simulations: int,
    alternative: str,
    random_seed: Optional[int],
    sampler: str
) -> list:
    """
    Worker function to process a batch of tables.

    Processing several tables per subprocess keeps the multiprocessing
    overhead low for files with many small tables.
    """
    columns = count_columns(df)
    results = []
    for table_id in table_ids:
        table_data = df.filter(pl.col(ID_COLUMN) == table_id)
        results.append(_process_table_core(
            table_data, table_id, columns, n_simulations, alternative, random_seed, sampler
        ))
    return results


def format_progress_message(result: Dict, n_completed: int, n_total: int) -> str:
    """One line describing a finished table, for verbose progress output."""
    table_id = result['table_id']
    if result['method'] == 'skipped':
        return f"[{n_completed}/{n_total}] {table_id}: SKIPPED - {result.get('error', 'Unknown error')}"

    pval = result['pvalue']
    pval_str = f"{pval:.2e}" if pval < 0.0001 else f"{pval:.6f}"
    return f"[{n_completed}/{n_total}] {table_id}: p={pval_str} ({result['method']})"


def run_contingency_analysis(
    file_path: str,
    n_simulations: int = DEFAULT_N_SIMULATIONS,
    alternative: str = 'two-sided',
    random_seed: Optional[int] = None,
    n_workers: Optional[int] = None,
    show_progress: bool = False,
    verbose_progress: bool = False,
    batch_size: int = 100,
    sampler: str = 'sequential'
) -> pl.DataFrame:
    """
    Analyse every table in a TSV file.

    Parameters:
    -----------
    file_path : str
        Path to the TSV file (see load_tables()).
    n_simulations : int, optional
        Number of Monte Carlo simulations per table (default: 10000).
    alternative : str, optional
        'two-sided' (default), 'greater' or 'less'.
    random_seed : int, optional
        Seed used for every table, so results do not depend on how tables are
        distributed over workers (default: None).
    n_workers : int, optional
        Number of worker processes. None uses all CPU cores; 1 runs in the
        current process (default: None).
    show_progress : bool, optional
        Show a tqdm progress bar (default: False).
    verbose_progress : bool, optional
        Also write one line per finished table (default: False).
    batch_size : int, optional
        Number of tables handled per worker task (default: 100).
    sampler : str, optional
        Monte Carlo sampler, 'sequential' (default) or 'exact'.

    Returns:
    --------
    pl.DataFrame
        One row per table, sorted by table_id, with the columns in
        RESULT_COLUMNS.
    """
    df = load_tables(file_path)
    table_ids = df[ID_COLUMN].unique(maintain_order=True).to_list()
    n_total = len(table_ids)

    if n_workers is None:
        n_workers = multiprocessing.cpu_count()

    batches = [table_ids[i:i + batch_size] for i in range(0, n_total, batch_size)]
    results = []

    progress_bar = tqdm(
        total=n_total,
        desc="Analysing tables",
        unit="table",
        disable=not (show_progress or verbose_progress),
    )

    def _record(batch_results):
        for result in batch_results:
            results.append(result)
            progress_bar.update(1)
            if verbose_progress:
                progress_bar.write(format_progress_message(result, len(results), n_total))

    if n_workers == 1:
        for batch in batches:
            _record(_process_table_batch(df, batch, n_simulations, alternative, random_seed, sampler))
    else:
        # spawn avoids fork-related deadlocks under pytest and threaded callers
        ctx = multiprocessing.get_context('spawn')
        with ProcessPoolExecutor(max_workers=n_workers, mp_context=ctx) as executor:
            future_to_batch = {
                executor.submit(
                    _process_table_batch, df, batch, n_simulations, alternative, random_seed, sampler
                ): batch
                for batch in batches
            }
            for future in as_completed(future_to_batch):
                batch = future_to_batch[future]
                try:
                    _record(future.result())
                except Exception as exc:
                    progress_bar.write(f"WARNING: Batch processing generated an unexpected exception: {exc}")
                    _record([_skipped_result(table_id, str(exc)) for table_id in batch])

    progress_bar.close()

    return pl.DataFrame(results, schema=RESULT_SCHEMA).sort(ID_COLUMN)

