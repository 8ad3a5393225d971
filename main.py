"""
Risk Assessment Wizard — End-to-End Demo
=========================================

Runs a complete wizard session on a virtual clock: feature engineering,
model judgment, relationship-graph review with a simulated drag, and
recognition.

Usage:
    python main.py
    python main.py --model GraphSAGE --seed 7
    python main.py --output demo_output
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np

from risk_wizard.errors import StageNotReadyError
from risk_wizard.progress import FEATURE_PROGRESS
from risk_wizard.renderer import GraphRenderer
from risk_wizard.scheduler import VirtualClock
from risk_wizard.verdict import ScoringModel
from risk_wizard.wizard import FEATURE_WORK_ITEMS, Stage, WizardController


def _divider(title: str) -> None:
    """Print a section divider."""
    width = 60
    print(f"\n{'=' * width}")
    print(f"  {title}")
    print(f"{'=' * width}\n")


def run_demo(
    model: str = ScoringModel.GAT2.value,
    seed: int | None = 42,
    output_dir: str = "output",
) -> None:
    """Execute a full wizard session.

    Args:
        model: Scoring model name.
        seed: Seed for the verdict confidence and layout jitter.
        output_dir: Directory for the rendered graphs.
    """
    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)

    clock = VirtualClock()
    wizard = WizardController(clock, rng=np.random.default_rng(seed), verbose=True)

    # ------------------------------------------------------------------
    # 1. Feature Engineering
    # ------------------------------------------------------------------
    _divider("1. FEATURE ENGINEERING")

    try:
        wizard.advance_stage(Stage.MODEL_JUDGMENT)
    except StageNotReadyError as exc:
        print(f"  Next stage locked: {exc}")

    wizard.begin_feature_engineering()
    while wizard.state.feature_running:
        clock.advance_ms(FEATURE_PROGRESS.tick_interval_ms)
        info = wizard.current_sub_step()
        if info is not None:
            print(f"  {wizard.state.feature_progress:3d}%  {info.title:24s} {info.description}")

    for i, item in enumerate(FEATURE_WORK_ITEMS):
        print(f"  [{wizard.feature_item_status(i):10s}] {item.title}")

    wizard.advance_stage(Stage.MODEL_JUDGMENT)

    # ------------------------------------------------------------------
    # 2. Model Judgment
    # ------------------------------------------------------------------
    _divider("2. MODEL JUDGMENT")

    for candidate in ScoringModel:
        print(f"  {candidate.value:10s} {candidate.description}")
    print()

    wizard.select_model(model)
    wizard.run_scoring()
    clock.run_until_idle()

    verdict = wizard.state.risk_verdict
    print(f"\n{verdict.summary()}")

    wizard.advance_stage(Stage.GRAPH_REVIEW)

    # ------------------------------------------------------------------
    # 3. Relationship Graph
    # ------------------------------------------------------------------
    _divider("3. RELATIONSHIP GRAPH")

    graph = wizard.graph
    clock.run_until_idle()
    print(f"  Layout settled after {graph.ticks} ticks (alpha={graph.alpha:.4f})")

    renderer = GraphRenderer(output_dir=output)
    path = renderer.render(graph.snapshot(), filename="graph_settled.png")
    print(f"  Saved {path}")

    # Drag the risk signal to a corner, hold it, then let go.
    graph.drag_start("risk1")
    for step in range(1, 11):
        graph.drag_to("risk1", 400 + 30 * step, 250 - 15 * step)
        clock.advance_ms(graph.config.frame_interval_ms)
    graph.drag_end("risk1")
    clock.run_until_idle()
    print(f"  Resettled after drag at tick {graph.ticks}")

    path = renderer.render(graph.snapshot(), filename="graph_after_drag.png")
    print(f"  Saved {path}")

    print()
    print(graph.to_dataframe()[["id", "kind", "x", "y"]].round(1).to_string(index=False))

    wizard.complete_recognition()

    # ------------------------------------------------------------------
    # Done
    # ------------------------------------------------------------------
    _divider("ASSESSMENT COMPLETE")
    print(f"  {wizard.completion_message()}")
    print(f"  Confidence:      {verdict.confidence:.1f}%")
    print(f"  Artifacts saved: {output.resolve()}/")

    wizard.close()


def main() -> int:
    """Parse arguments and run the demo."""
    parser = argparse.ArgumentParser(
        description="Risk Assessment Wizard — End-to-End Demo",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=ScoringModel.GAT2.value,
        choices=[m.value for m in ScoringModel],
        help="Scoring model (default: GAT2)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed (default: 42)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default="output",
        help="Output directory (default: output)",
    )

    args = parser.parse_args()

    try:
        run_demo(model=args.model, seed=args.seed, output_dir=args.output)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as exc:
        print(f"\nFatal error: {exc}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
