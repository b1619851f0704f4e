"""
Performance benchmark for the Monte Carlo Fisher's test.

Compares the three ways of sampling the null distribution:
1. Sequential allocation in pure Python
2. Sequential allocation compiled with numba
3. Exact sampling with scipy.stats.random_table

Usage:
    python benchmark_performance.py [n_simulations]
"""

import sys
import time

import numpy as np

from fishermc import monte_carlo_fisher

TABLES = {
    'tea (2x2, n=8)': np.array([[3, 1], [1, 3]]),
    'twins (2x2, n=30)': np.array([[2, 10], [15, 3]]),
    'job (4x4, n=96)': np.array([
        [1, 2, 1, 0],
        [3, 3, 6, 1],
        [10, 10, 14, 9],
        [6, 7, 12, 11],
    ]),
}

CONFIGURATIONS = {
    'python': {'sampler': 'sequential', 'use_numba': False},
    'numba': {'sampler': 'sequential', 'use_numba': True},
    'exact': {'sampler': 'exact'},
}


def format_time(seconds):
    """Format time in human-readable format."""
    if seconds < 1:
        return f"{seconds * 1000:.1f} ms"
    elif seconds < 60:
        return f"{seconds:.2f} s"
    else:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.1f}s"


def benchmark(n_simulations=10000):
    print("=" * 80)
    print("PERFORMANCE BENCHMARK")
    print("=" * 80)
    print(f"Monte Carlo simulations: {n_simulations}")
    print()

    # Compile the numba kernel outside the timed region
    monte_carlo_fisher(TABLES['tea (2x2, n=8)'], 10, random_seed=0, use_numba=True)

    for name, table in TABLES.items():
        print(f"{name}")
        print("-" * 80)
        baseline = None
        for label, options in CONFIGURATIONS.items():
            start = time.time()
            p_value = monte_carlo_fisher(table, n_simulations, random_seed=42, **options)
            elapsed = time.time() - start

            if baseline is None:
                baseline = elapsed
            speedup = baseline / elapsed if elapsed > 0 else float('inf')
            print(f"  {label:<8} {format_time(elapsed):>10}  p={p_value:.4f}  ({speedup:.1f}x)")
        print()


if __name__ == '__main__':
    n_simulations = int(sys.argv[1]) if len(sys.argv) > 1 else 10000
    benchmark(n_simulations)
