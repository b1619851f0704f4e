"""
CLI entry point for fishermc.

Usage:
    fishermc input.tsv output.tsv [options]
"""

import argparse
import logging
import multiprocessing
import time
from datetime import datetime

import polars as pl

from fishermc.batch import run_contingency_analysis
from fishermc.contingency_analysis import ALTERNATIVES, DEFAULT_N_SIMULATIONS, SAMPLERS
from fishermc.outcomes import significance_marker

METHOD_LABELS = {
    'fisher_exact': "Fisher's exact tests",
    'fisher_monte_carlo': "Monte Carlo Fisher's tests",
    'chi_square': "Chi-square tests",
    'chi_square_with_fisher': "Chi-square tests with Fisher supplement",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Select and run independence tests on contingency tables.'
    )
    parser.add_argument(
        'input_file',
        type=str,
        help='Path to the input TSV file (table_id, row_label and count columns)'
    )
    parser.add_argument(
        'output_file',
        type=str,
        help='Path to the output TSV file for results'
    )
    parser.add_argument(
        '--n-simulations',
        type=int,
        default=DEFAULT_N_SIMULATIONS,
        help=f'Number of Monte Carlo simulations (default: {DEFAULT_N_SIMULATIONS})'
    )
    parser.add_argument(
        '--alternative',
        choices=ALTERNATIVES,
        default='two-sided',
        help='Alternative hypothesis; one-sided tests apply to 2x2 tables only (default: two-sided)'
    )
    parser.add_argument(
        '--random-seed',
        type=int,
        default=42,
        help='Random seed for reproducibility (default: 42)'
    )
    parser.add_argument(
        '--n-workers',
        type=int,
        default=None,
        help='Number of parallel workers to use (default: all CPU cores)'
    )
    parser.add_argument(
        '--batch-size',
        type=int,
        default=100,
        help='Number of tables to process in each subprocess (default: 100)'
    )
    parser.add_argument(
        '--sampler',
        choices=SAMPLERS,
        default='sequential',
        help='Null distribution sampler for Monte Carlo tests (default: sequential)'
    )
    parser.add_argument(
        '--show-progress',
        action='store_true',
        help='Show a progress bar during processing'
    )
    parser.add_argument(
        '--verbose-progress',
        action='store_true',
        help='Show one line with the p-value of every table as it completes'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Log diagnostics such as removed zero rows and columns'
    )
    return parser


def write_summary_report(results: pl.DataFrame, args, elapsed_time: float) -> str:
    """Write the detailed text report next to the output file and return its path."""
    summary_file = args.output_file.replace('.tsv', '_summary.txt')
    if summary_file == args.output_file:
        summary_file = args.output_file + '_summary.txt'

    skipped = results.filter(pl.col('method') == 'skipped')
    valid_results = results.filter(pl.col('method') != 'skipped')
    cleaned = valid_results.filter((pl.col('removed_rows') > 0) | (pl.col('removed_cols') > 0))

    with open(summary_file, 'w') as f:
        f.write("=" * 80 + "\n")
        f.write("CONTINGENCY TABLE ANALYSIS - DETAILED SUMMARY REPORT\n")
        f.write("=" * 80 + "\n\n")

        f.write(f"Input file: {args.input_file}\n")
        f.write(f"Output file: {args.output_file}\n")
        f.write(f"Analysis date: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"Alternative: {args.alternative}\n")
        f.write(f"Monte Carlo simulations: {args.n_simulations} ({args.sampler} sampler)\n")
        f.write(f"Processing time: {elapsed_time:.2f} seconds\n\n")

        f.write("-" * 80 + "\n")
        f.write("OVERALL STATISTICS\n")
        f.write("-" * 80 + "\n")
        f.write(f"Total tables tested: {len(results)}\n")
        for method, label in METHOD_LABELS.items():
            f.write(f"{label}: {results.filter(pl.col('method') == method).height}\n")
        f.write(f"Skipped tables (errors): {len(skipped)}\n\n")

        if len(valid_results) > 0:
            n_significant = valid_results.filter(pl.col('pvalue') < 0.05).height
            pct = 100 * n_significant / len(valid_results)
            f.write(f"Significant results (p < 0.05): {n_significant} ({pct:.1f}%)\n\n")

        if len(cleaned) > 0:
            f.write("-" * 80 + "\n")
            f.write(f"TABLES WITH ZERO MARGINALS REMOVED ({len(cleaned)} total)\n")
            f.write("-" * 80 + "\n")
            for row in cleaned.iter_rows(named=True):
                f.write(
                    f"  - {row['table_id']}: removed {row['removed_rows']} rows"
                    f" and {row['removed_cols']} columns\n"
                )
            f.write("\n")

        if len(skipped) > 0:
            f.write("-" * 80 + "\n")
            f.write(f"SKIPPED TABLES ({len(skipped)} total)\n")
            f.write("-" * 80 + "\n")
            f.write("The following tables could not be tested:\n\n")
            for row in skipped.iter_rows(named=True):
                f.write(f"  - {row['table_id']}: {row['error']}\n")
            f.write("\n")

        significant = valid_results.filter(pl.col('pvalue') < 0.05)
        if len(significant) > 0:
            f.write("-" * 80 + "\n")
            f.write(f"SIGNIFICANT RESULTS (p < 0.05) - {len(significant)} total\n")
            f.write("-" * 80 + "\n")
            for row in significant.sort('pvalue').iter_rows(named=True):
                fisher_note = ""
                if row['fisher_pvalue'] is not None:
                    fisher_note = f", {row['fisher_method']} p={row['fisher_pvalue']:.6f}"
                f.write(
                    f"  - {row['table_id']}: p={row['pvalue']:.6f}{significance_marker(row['pvalue'])},"
                    f" method={row['method']}{fisher_note}\n"
                )
            f.write("\n")

        f.write("=" * 80 + "\n")
        f.write("END OF REPORT\n")
        f.write("=" * 80 + "\n")

    return summary_file


def main(argv=None):
    """
    Run the test selection on every table of the input file.
    """
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    print("Contingency Table Analysis (Fisher / Monte Carlo / Chi-square)")
    print("=" * 80)
    print(f"Input file: {args.input_file}")
    print(f"Output file: {args.output_file}")

    n_cpus = multiprocessing.cpu_count()
    n_workers = args.n_workers if args.n_workers else n_cpus
    print(f"Available CPU cores: {n_cpus}")
    print(f"Processing tables using {n_workers} worker(s), batch size {args.batch_size}")
    print(f"Alternative: {args.alternative}, simulations: {args.n_simulations}, sampler: {args.sampler}")
    print()

    start_time = time.time()
    results = run_contingency_analysis(
        args.input_file,
        n_simulations=args.n_simulations,
        alternative=args.alternative,
        random_seed=args.random_seed,
        n_workers=args.n_workers,
        show_progress=args.show_progress,
        verbose_progress=args.verbose_progress,
        batch_size=args.batch_size,
        sampler=args.sampler,
    )
    elapsed_time = time.time() - start_time

    print("Results:")
    print("=" * 80)
    print(results)
    print("\n")

    results.write_csv(args.output_file, separator='\t')
    print(f"Results saved to: {args.output_file}")

    print("\n" + "=" * 80)
    print("Summary:")
    print(f"Total tables tested: {len(results)}")
    for method, label in METHOD_LABELS.items():
        print(f"{label}: {results.filter(pl.col('method') == method).height}")

    warned = results.filter(pl.col('warnings').is_not_null())
    if len(warned) > 0:
        print(f"Tables with warnings: {len(warned)}")
        for row in warned.head(10).iter_rows(named=True):
            print(f"  - {row['table_id']}: {row['warnings']}")

    skipped = results.filter(pl.col('method') == 'skipped')
    if len(skipped) > 0:
        print(f"Skipped tables (errors): {len(skipped)}")
        for row in skipped.iter_rows(named=True):
            print(f"  - {row['table_id']}: {row['error']}")

    valid_results = results.filter(pl.col('method') != 'skipped')
    if len(valid_results) > 0:
        n_significant = valid_results.filter(pl.col('pvalue') < 0.05).height
        print(f"Significant results (p < 0.05): {n_significant}")

    print(f"Processing time: {elapsed_time:.2f} seconds")

    summary_file = write_summary_report(results, args, elapsed_time)
    print(f"\nDetailed summary report saved to: {summary_file}")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
