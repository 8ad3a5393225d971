"""
Command-line interface for the risk assessment wizard.

Provides subcommands for running a full wizard session and for laying
out and rendering the relationship graph on its own.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Callable, Optional

import numpy as np

from risk_wizard.graph import GraphLayoutEngine, case_graph
from risk_wizard.renderer import GraphRenderer
from risk_wizard.scheduler import VirtualClock
from risk_wizard.verdict import ScoringModel
from risk_wizard.wizard import Stage, WizardController, WizardState


def main(argv: list[str] | None = None) -> int:
    """Entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="risk-wizard",
        description="Graph-based fraud risk assessment wizard",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- run ---
    run_parser = subparsers.add_parser("run", help="Run a full assessment session")
    run_parser.add_argument(
        "--model",
        type=str,
        default=ScoringModel.GAT2.value,
        choices=[m.value for m in ScoringModel],
        help="Scoring model (default: GAT2)",
    )
    run_parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for a reproducible verdict",
    )
    run_parser.add_argument(
        "--realtime",
        action="store_true",
        help="Run on the wall clock instead of a virtual clock",
    )
    run_parser.add_argument(
        "--output",
        type=str,
        default="output",
        help="Directory for the rendered graph (default: output)",
    )
    run_parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print wizard state transitions",
    )

    # --- graph ---
    graph_parser = subparsers.add_parser("graph", help="Lay out and render the case graph")
    graph_parser.add_argument(
        "--output",
        type=str,
        default="output",
        help="Directory for the rendered graph (default: output)",
    )
    graph_parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Seed for layout jitter (default: 0)",
    )
    graph_parser.add_argument(
        "--interactive",
        action="store_true",
        help="Open an animated window where nodes can be dragged",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "run":
            return _cmd_run(args)
        elif args.command == "graph":
            return _cmd_graph(args)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    """Walk through all three stages and report the verdict."""
    rng = np.random.default_rng(args.seed)
    if args.realtime:
        wizard = asyncio.run(_run_realtime(args.model, rng, args.verbose, args.output))
    else:
        wizard = _run_virtual(args.model, rng, args.verbose, args.output)

    state = wizard.state
    print(f"\n{state.risk_verdict.summary()}")
    print(f"\n{wizard.completion_message()}")
    wizard.close()
    return 0


def _run_virtual(
    model: str, rng: np.random.Generator, verbose: bool, output_dir: str
) -> WizardController:
    """Drive a session on a virtual clock; finishes instantly."""
    clock = VirtualClock()
    wizard = WizardController(clock, rng=rng, verbose=verbose)
    wizard.subscribe(_progress_printer())

    wizard.begin_feature_engineering()
    clock.run_until_idle()
    wizard.advance_stage(Stage.MODEL_JUDGMENT)

    wizard.select_model(model)
    wizard.run_scoring()
    clock.run_until_idle()
    wizard.advance_stage(Stage.GRAPH_REVIEW)

    clock.run_until_idle()
    print(f"  Graph layout settled after {wizard.graph.ticks} ticks")
    _render(wizard.graph, output_dir)
    wizard.complete_recognition()
    return wizard


async def _run_realtime(
    model: str, rng: np.random.Generator, verbose: bool, output_dir: str
) -> WizardController:
    """Drive a session on the running asyncio loop."""
    loop = asyncio.get_running_loop()
    wizard = WizardController(loop, rng=rng, verbose=verbose)
    wizard.subscribe(_progress_printer())

    await _until(
        wizard,
        lambda s: s.feature_progress == 100,
        wizard.begin_feature_engineering,
    )
    wizard.advance_stage(Stage.MODEL_JUDGMENT)

    wizard.select_model(model)
    await _until(wizard, lambda s: s.risk_verdict is not None, wizard.run_scoring)
    wizard.advance_stage(Stage.GRAPH_REVIEW)

    while wizard.graph.is_running:
        await asyncio.sleep(0.05)
    print(f"  Graph layout settled after {wizard.graph.ticks} ticks")
    _render(wizard.graph, output_dir)
    wizard.complete_recognition()
    return wizard


async def _until(
    wizard: WizardController,
    predicate: Callable[[WizardState], bool],
    action: Callable[[], None],
) -> WizardState:
    """Perform ``action`` and wait for a state matching ``predicate``."""
    done: asyncio.Future = asyncio.get_running_loop().create_future()

    def check(state: WizardState) -> None:
        if predicate(state) and not done.done():
            done.set_result(state)

    unsubscribe = wizard.subscribe(check)
    try:
        action()
        check(wizard.state)
        return await done
    finally:
        unsubscribe()


def _progress_printer() -> Callable[[WizardState], None]:
    """Observer printing one line per progress change."""
    last: dict[str, Optional[int]] = {"feature": None, "model": None}

    def on_state(state: WizardState) -> None:
        if state.feature_running and state.feature_progress != last["feature"]:
            last["feature"] = state.feature_progress
            step = state.process_sub_step
            print(f"  Feature engineering {state.feature_progress:3d}% | sub-step {step + 1}/5")
        elif state.feature_progress == 100 and last["feature"] != 100:
            last["feature"] = 100
            print("  Feature engineering 100% | done")
        if state.model_running and state.model_progress != last["model"]:
            last["model"] = state.model_progress
            print(f"  {state.selected_model.value} scoring {state.model_progress:3d}%")
        elif state.risk_verdict is not None and last["model"] != 100:
            last["model"] = 100
            print(f"  {state.selected_model.value} scoring 100% | done")

    return on_state


def _render(engine: GraphLayoutEngine, output_dir: str) -> None:
    renderer = GraphRenderer(output_dir=output_dir)
    path = renderer.render(engine.snapshot())
    if path is not None:
        print(f"  Relationship graph saved to {path}")


def _cmd_graph(args: argparse.Namespace) -> int:
    """Lay out the case graph and save or display it."""
    nodes, edges = case_graph()
    engine = GraphLayoutEngine(nodes, edges, rng=np.random.default_rng(args.seed))

    if args.interactive:
        import matplotlib.pyplot as plt
        from matplotlib.animation import FuncAnimation

        renderer = GraphRenderer()
        renderer.attach(engine)
        renderer.enable_drag(engine)
        # Must stay referenced until plt.show() returns.
        animation = FuncAnimation(
            renderer.figure,
            lambda _frame: engine.step(),
            interval=engine.config.frame_interval_ms,
            cache_frame_data=False,
        )
        plt.show()
        del animation
        renderer.close()
        engine.close()
        return 0

    with engine:
        ticks = engine.run()
        print(f"Layout settled after {ticks} ticks (alpha={engine.alpha:.4f})")
        print(engine.to_dataframe()[["id", "kind", "x", "y"]].round(1).to_string(index=False))
        renderer = GraphRenderer(output_dir=args.output)
        path = renderer.render(engine.snapshot())
        print(f"Saved to {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
