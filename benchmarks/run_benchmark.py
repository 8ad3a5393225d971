"""
Benchmark runner for the graph layout engine.

Lays out case graphs of increasing size to convergence and reports
ticks to settle, time per tick, residual kinetic energy and how far
the settled links are from the target link distance.

Usage:
    python -m benchmarks.run_benchmark
    python -m benchmarks.run_benchmark --sizes 7 20 50 --repeats 5
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

import numpy as np
import pandas as pd

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from risk_wizard.graph import GraphLayoutEngine, LayoutConfig, random_case_graph


def _link_error(engine: GraphLayoutEngine) -> float:
    """Mean absolute deviation of edge lengths from the link distance."""
    snapshot = engine.snapshot()
    if not snapshot.edges:
        return 0.0
    lengths = np.array(
        [np.hypot(e.x2 - e.x1, e.y2 - e.y1) for e in snapshot.edges]
    )
    return float(np.mean(np.abs(lengths - engine.config.link_distance)))


def run_benchmark(
    sizes: list[int],
    repeats: int = 3,
    seed: int = 42,
    output_dir: str = "benchmarks/results",
) -> pd.DataFrame:
    """Lay out graphs of each size ``repeats`` times.

    Args:
        sizes: Total node counts to benchmark.
        repeats: Runs per size, each with a different random graph.
        seed: Seed for graph generation.
        output_dir: Directory for the CSV report.

    Returns:
        One row per run.
    """
    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)
    rng = np.random.default_rng(seed)
    config = LayoutConfig()

    rows: list[dict] = []
    for size in sizes:
        if size < 4:
            raise ValueError(f"Graphs need at least 4 nodes, got {size}")
        n_signals = max(1, size // 7)
        n_entities = max(1, (size - 1 - n_signals) // 3)
        n_features = size - 1 - n_signals - n_entities

        for run in range(repeats):
            nodes, edges = random_case_graph(n_features, n_entities, n_signals, rng)
            engine = GraphLayoutEngine(nodes, edges, config=config, rng=rng)

            start = time.perf_counter()
            ticks = engine.run(max_ticks=2000)
            elapsed = time.perf_counter() - start

            rows.append({
                "nodes": len(nodes),
                "edges": len(edges),
                "run": run,
                "ticks": ticks,
                "ms_per_tick": 1000.0 * elapsed / max(ticks, 1),
                "kinetic_energy": engine.kinetic_energy(),
                "link_error": _link_error(engine),
            })
            engine.close()

    results = pd.DataFrame(rows)
    csv_path = output / "layout_benchmark.csv"
    results.to_csv(csv_path, index=False)
    print(f"Saved results to {csv_path}")
    return results


def main() -> int:
    parser = argparse.ArgumentParser(description="Graph layout benchmark")
    parser.add_argument(
        "--sizes",
        type=int,
        nargs="+",
        default=[7, 15, 30, 60],
        help="Node counts to benchmark (default: 7 15 30 60)",
    )
    parser.add_argument("--repeats", type=int, default=3, help="Runs per size")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument(
        "--output",
        type=str,
        default="benchmarks/results",
        help="Output directory",
    )
    args = parser.parse_args()

    try:
        results = run_benchmark(args.sizes, args.repeats, args.seed, args.output)
    except Exception as exc:
        print(f"Benchmark failed: {exc}", file=sys.stderr)
        return 1

    summary = results.groupby("nodes")[
        ["ticks", "ms_per_tick", "kinetic_energy", "link_error"]
    ].mean()
    print("\nLayout Benchmark")
    print("=" * 60)
    print(summary.round(4).to_string())
    return 0


if __name__ == "__main__":
    sys.exit(main())
