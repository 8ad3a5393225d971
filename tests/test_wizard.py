"""Tests for the WizardController state machine."""

from datetime import datetime, timezone

import numpy as np
import pytest

from risk_wizard.errors import (
    NoModelSelectedError,
    NotYetReviewedError,
    StageNotReadyError,
)
from risk_wizard.graph import GraphEdge, GraphNode, NodeKind
from risk_wizard.progress import ProgressConfig
from risk_wizard.scheduler import VirtualClock
from risk_wizard.verdict import ScoringModel
from risk_wizard.wizard import (
    FEATURE_SUB_STEPS,
    Stage,
    WizardConfig,
    WizardController,
    WizardState,
)

COMPLETED_AT = datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc)


def _build_wizard(
    config: WizardConfig | None = None, seed: int = 7
) -> tuple[WizardController, VirtualClock]:
    """Wizard on a virtual clock with seeded randomness and a fixed clock."""
    clock = VirtualClock()
    wizard = WizardController(
        clock,
        config=config,
        rng=np.random.default_rng(seed),
        clock=lambda: COMPLETED_AT,
    )
    return wizard, clock


def _finish_features(wizard: WizardController, clock: VirtualClock) -> None:
    wizard.begin_feature_engineering()
    clock.advance_ms(150 * 20)


def _reach_model_judgment(wizard: WizardController, clock: VirtualClock) -> None:
    _finish_features(wizard, clock)
    wizard.advance_stage(Stage.MODEL_JUDGMENT)


def _reach_verdict(wizard: WizardController, clock: VirtualClock) -> None:
    _reach_model_judgment(wizard, clock)
    wizard.run_scoring(ScoringModel.GAT2)
    clock.advance_ms(300 * 10)


# ── Initial state ────────────────────────────────────────────────────


def test_initial_state():
    wizard, _ = _build_wizard()
    state = wizard.state
    assert state.stage == Stage.FEATURE_ENGINEERING
    assert state.feature_progress == 0
    assert state.process_sub_step == -1
    assert state.selected_model is None
    assert state.model_progress == 0
    assert state.risk_verdict is None
    assert state.recognition_completed is False
    assert not state.can_advance
    assert wizard.graph is None


# ── Feature engineering ──────────────────────────────────────────────


def test_begin_feature_engineering_returns_immediately():
    wizard, clock = _build_wizard()
    wizard.begin_feature_engineering()
    assert wizard.state.feature_running
    assert wizard.state.feature_progress == 0
    clock.advance_ms(150)
    assert wizard.state.feature_progress == 5
    assert wizard.state.process_sub_step == 0


def test_begin_feature_engineering_is_idempotent_while_running():
    wizard, clock = _build_wizard()
    wizard.begin_feature_engineering()
    clock.advance_ms(150 * 4)
    wizard.begin_feature_engineering()
    assert wizard.state.feature_progress == 20
    assert clock.pending == 1


def test_begin_feature_engineering_is_noop_when_complete():
    wizard, clock = _build_wizard()
    _finish_features(wizard, clock)
    wizard.begin_feature_engineering()
    assert wizard.state.feature_progress == 100
    assert not wizard.state.feature_running
    assert clock.pending == 0


def test_feature_sub_steps_progress_through_all_five():
    wizard, clock = _build_wizard()
    wizard.begin_feature_engineering()
    seen = []
    for _ in range(20):
        clock.advance_ms(150)
        seen.append(wizard.state.process_sub_step)
    assert seen == sorted(seen)
    assert set(seen) == {0, 1, 2, 3, 4}
    assert wizard.current_sub_step() == FEATURE_SUB_STEPS[4]


def test_advance_blocked_for_every_progress_below_100():
    config = WizardConfig(feature_progress=ProgressConfig(1, 10.0, 5))
    wizard, clock = _build_wizard(config)
    wizard.begin_feature_engineering()
    for expected in range(100):
        assert wizard.state.feature_progress == expected
        with pytest.raises(StageNotReadyError):
            wizard.advance_stage(Stage.MODEL_JUDGMENT)
        assert wizard.state.stage == Stage.FEATURE_ENGINEERING
        clock.advance_ms(10)
    assert wizard.state.feature_progress == 100
    wizard.advance_stage(Stage.MODEL_JUDGMENT)
    assert wizard.state.stage == Stage.MODEL_JUDGMENT


def test_cannot_skip_to_graph_review():
    wizard, clock = _build_wizard()
    _finish_features(wizard, clock)
    with pytest.raises(StageNotReadyError, match="verdict"):
        wizard.advance_stage(Stage.GRAPH_REVIEW)
    assert wizard.state.stage == Stage.FEATURE_ENGINEERING


# ── Model judgment ───────────────────────────────────────────────────


def test_run_scoring_without_model_fails_cleanly():
    wizard, clock = _build_wizard()
    _reach_model_judgment(wizard, clock)
    with pytest.raises(NoModelSelectedError):
        wizard.run_scoring()
    clock.advance(10.0)
    state = wizard.state
    assert state.risk_verdict is None
    assert state.model_progress == 0
    assert not state.model_running
    assert clock.pending == 0


def test_run_scoring_uses_selected_model():
    wizard, clock = _build_wizard()
    _reach_model_judgment(wizard, clock)
    wizard.select_model("GraphSAGE")
    wizard.run_scoring()
    clock.advance_ms(300 * 10)
    assert wizard.state.risk_verdict.model == ScoringModel.GRAPHSAGE


def test_run_scoring_with_explicit_model_selects_it():
    wizard, clock = _build_wizard()
    _reach_model_judgment(wizard, clock)
    wizard.run_scoring("GSA")
    assert wizard.state.selected_model == ScoringModel.GSA


def test_verdict_appears_only_on_completion():
    wizard, clock = _build_wizard()
    _reach_model_judgment(wizard, clock)
    wizard.run_scoring(ScoringModel.GAT2)
    for expected in range(10, 100, 10):
        clock.advance_ms(300)
        assert wizard.state.model_progress == expected
        assert wizard.state.risk_verdict is None
    clock.advance_ms(300)
    assert wizard.state.model_progress == 100
    assert wizard.state.risk_verdict is not None
    assert wizard.state.can_advance


def test_new_run_clears_previous_verdict():
    wizard, clock = _build_wizard()
    _reach_verdict(wizard, clock)
    wizard.run_scoring(ScoringModel.GSA)
    assert wizard.state.risk_verdict is None
    assert wizard.state.model_progress == 0
    clock.advance_ms(300 * 10)
    assert wizard.state.risk_verdict.model == ScoringModel.GSA


def test_run_scoring_ignored_while_running():
    wizard, clock = _build_wizard()
    _reach_model_judgment(wizard, clock)
    wizard.run_scoring(ScoringModel.GAT2)
    clock.advance_ms(300 * 3)
    wizard.run_scoring(ScoringModel.GSA)
    assert wizard.state.model_progress == 30
    assert wizard.state.selected_model == ScoringModel.GAT2
    assert clock.pending == 1


def test_select_model_ignored_while_running():
    wizard, clock = _build_wizard()
    _reach_model_judgment(wizard, clock)
    wizard.run_scoring(ScoringModel.GAT2)
    wizard.select_model(ScoringModel.GSA)
    assert wizard.state.selected_model == ScoringModel.GAT2


def test_select_model_can_unset():
    wizard, _ = _build_wizard()
    wizard.select_model("GAT2")
    wizard.select_model(None)
    assert wizard.state.selected_model is None


def test_verdict_is_reproducible_for_same_seed():
    first, clock_a = _build_wizard(seed=11)
    second, clock_b = _build_wizard(seed=11)
    _reach_verdict(first, clock_a)
    _reach_verdict(second, clock_b)
    assert first.state.risk_verdict == second.state.risk_verdict
    assert first.state.risk_verdict.timestamp == COMPLETED_AT


def test_verdict_lists_graph_risk_signals():
    wizard, clock = _build_wizard()
    _reach_verdict(wizard, clock)
    assert wizard.state.risk_verdict.contributing_signals == ("Abnormal login",)


def test_leaving_model_judgment_cancels_scoring():
    wizard, clock = _build_wizard()
    _reach_model_judgment(wizard, clock)
    wizard.run_scoring(ScoringModel.GAT2)
    clock.advance_ms(300 * 4)
    wizard.advance_stage(Stage.FEATURE_ENGINEERING)
    clock.advance(10.0)
    state = wizard.state
    assert state.model_progress == 40
    assert not state.model_running
    assert state.risk_verdict is None
    assert clock.pending == 0


def test_run_scoring_refused_outside_model_judgment():
    wizard, clock = _build_wizard()
    _finish_features(wizard, clock)
    wizard.select_model(ScoringModel.GAT2)
    with pytest.raises(StageNotReadyError, match="Model judgment"):
        wizard.run_scoring()
    assert not wizard.state.model_running
    assert clock.pending == 0


def test_run_scoring_refused_during_graph_review():
    wizard, clock = _build_wizard()
    _reach_verdict(wizard, clock)
    wizard.advance_stage(Stage.GRAPH_REVIEW)
    verdict = wizard.state.risk_verdict
    with pytest.raises(StageNotReadyError):
        wizard.run_scoring(ScoringModel.GSA)
    state = wizard.state
    assert state.risk_verdict is verdict
    assert not state.model_running

    wizard.advance_stage(Stage.FEATURE_ENGINEERING)
    clock.advance(10.0)
    assert wizard.state.risk_verdict is verdict
    assert not wizard.state.model_running


def test_begin_feature_engineering_refused_outside_its_stage():
    wizard, clock = _build_wizard()
    _reach_verdict(wizard, clock)
    with pytest.raises(StageNotReadyError):
        wizard.begin_feature_engineering()
    assert not wizard.state.feature_running


# ── Navigation and graph lifecycle ───────────────────────────────────


def test_backward_navigation_keeps_progress():
    wizard, clock = _build_wizard()
    _reach_verdict(wizard, clock)
    verdict = wizard.state.risk_verdict
    wizard.advance_stage(Stage.GRAPH_REVIEW)
    wizard.advance_stage(Stage.FEATURE_ENGINEERING)
    state = wizard.state
    assert state.stage == Stage.FEATURE_ENGINEERING
    assert state.furthest_stage == Stage.GRAPH_REVIEW
    assert state.feature_progress == 100
    assert state.risk_verdict is verdict
    wizard.advance_stage(Stage.GRAPH_REVIEW)
    assert wizard.state.stage == Stage.GRAPH_REVIEW


def test_same_stage_transition_is_noop():
    wizard, _ = _build_wizard()
    wizard.advance_stage(Stage.FEATURE_ENGINEERING)
    assert wizard.state.stage == Stage.FEATURE_ENGINEERING


def test_advance_stage_accepts_integers():
    wizard, clock = _build_wizard()
    _finish_features(wizard, clock)
    wizard.advance_stage(2)
    assert wizard.state.stage == Stage.MODEL_JUDGMENT


def test_graph_created_on_entering_review_and_closed_on_exit():
    wizard, clock = _build_wizard()
    _reach_verdict(wizard, clock)
    wizard.advance_stage(Stage.GRAPH_REVIEW)
    engine = wizard.graph
    assert engine is not None
    assert engine.is_running

    clock.advance_ms(16 * 10)
    assert engine.ticks == 10

    wizard.advance_stage(Stage.MODEL_JUDGMENT)
    assert wizard.graph is None
    assert engine.closed
    clock.advance(30.0)
    assert engine.ticks == 10
    assert clock.pending == 0


def test_reentering_review_builds_fresh_graph():
    wizard, clock = _build_wizard()
    _reach_verdict(wizard, clock)
    wizard.advance_stage(Stage.GRAPH_REVIEW)
    first = wizard.graph
    wizard.advance_stage(Stage.MODEL_JUDGMENT)
    wizard.advance_stage(Stage.GRAPH_REVIEW)
    assert wizard.graph is not first
    assert wizard.graph.ticks == 0


def test_custom_graph_factory():
    def factory():
        nodes = [
            GraphNode("s", "Subject", NodeKind.SUBJECT),
            GraphNode("r", "Mule account", NodeKind.RISK_SIGNAL),
        ]
        return nodes, [GraphEdge("s", "r")]

    clock = VirtualClock()
    wizard = WizardController(clock, rng=np.random.default_rng(0), graph_factory=factory)
    _reach_verdict(wizard, clock)
    assert wizard.state.risk_verdict.contributing_signals == ("Mule account",)
    wizard.advance_stage(Stage.GRAPH_REVIEW)
    assert [n.id for n in wizard.graph.nodes] == ["s", "r"]


# ── Recognition ──────────────────────────────────────────────────────


def test_complete_recognition_requires_verdict():
    wizard, clock = _build_wizard()
    _reach_model_judgment(wizard, clock)
    with pytest.raises(NotYetReviewedError):
        wizard.complete_recognition()
    assert wizard.state.recognition_completed is False


def test_complete_recognition_requires_graph_review_stage():
    wizard, clock = _build_wizard()
    _reach_verdict(wizard, clock)
    assert wizard.state.stage == Stage.MODEL_JUDGMENT
    with pytest.raises(NotYetReviewedError, match="relationship graph"):
        wizard.complete_recognition()
    assert wizard.state.recognition_completed is False

    wizard.advance_stage(Stage.GRAPH_REVIEW)
    wizard.complete_recognition()
    assert wizard.state.recognition_completed is True


def test_complete_recognition_is_idempotent():
    wizard, clock = _build_wizard()
    _reach_verdict(wizard, clock)
    wizard.advance_stage(Stage.GRAPH_REVIEW)
    wizard.complete_recognition()
    first = wizard.state
    wizard.complete_recognition()
    second = wizard.state
    assert second.recognition_completed is True
    assert second.risk_verdict is first.risk_verdict
    assert second == first


def test_completion_message_names_level_and_model():
    wizard, clock = _build_wizard()
    assert wizard.completion_message() == "Recognition pending."
    _reach_verdict(wizard, clock)
    message = wizard.completion_message()
    assert "medium" in message
    assert "GAT2" in message


# ── End-to-end ───────────────────────────────────────────────────────


def test_end_to_end_session():
    wizard, clock = _build_wizard()

    wizard.begin_feature_engineering()
    for _ in range(20):
        clock.advance_ms(150)
    assert wizard.state.feature_progress == 100
    wizard.advance_stage(Stage.MODEL_JUDGMENT)

    wizard.select_model("GAT2")
    wizard.run_scoring()
    for _ in range(10):
        clock.advance_ms(300)
    state = wizard.state
    assert state.model_progress == 100
    assert state.risk_verdict.risk_level.value
    assert 85.0 <= state.risk_verdict.confidence <= 95.0

    wizard.advance_stage(Stage.GRAPH_REVIEW)
    assert wizard.state.stage == Stage.GRAPH_REVIEW

    wizard.complete_recognition()
    done = wizard.state
    assert done.recognition_completed is True
    wizard.complete_recognition()
    assert wizard.state == done

    wizard.close()
    assert clock.pending == 0


# ── Observers ────────────────────────────────────────────────────────


def test_observers_notified_on_every_tick_and_action():
    wizard, clock = _build_wizard()
    states: list[WizardState] = []
    unsubscribe = wizard.subscribe(states.append)

    wizard.begin_feature_engineering()
    clock.advance_ms(150 * 20)
    assert len(states) == 21
    assert [s.feature_progress for s in states[1:]] == list(range(5, 101, 5))

    wizard.advance_stage(Stage.MODEL_JUDGMENT)
    assert states[-1].stage == Stage.MODEL_JUDGMENT

    unsubscribe()
    wizard.select_model("GAT2")
    assert states[-1].selected_model is None


def test_state_snapshot_is_immutable():
    wizard, _ = _build_wizard()
    with pytest.raises(AttributeError):
        wizard.state.stage = Stage.GRAPH_REVIEW


# ── Presentation helpers ─────────────────────────────────────────────


def test_stage_status():
    wizard, clock = _build_wizard()
    _reach_model_judgment(wizard, clock)
    assert wizard.stage_status(Stage.FEATURE_ENGINEERING) == "completed"
    assert wizard.stage_status(Stage.MODEL_JUDGMENT) == "current"
    assert wizard.stage_status(Stage.GRAPH_REVIEW) == "pending"


def test_sub_step_status():
    wizard, clock = _build_wizard()
    assert wizard.sub_step_status(0) == "active"
    assert wizard.sub_step_status(1) == "pending"
    wizard.begin_feature_engineering()
    clock.advance_ms(150 * 5)
    assert wizard.state.process_sub_step == 1
    assert wizard.sub_step_status(0) == "completed"
    assert wizard.sub_step_status(1) == "completed"
    assert wizard.sub_step_status(2) == "active"
    assert wizard.sub_step_status(3) == "pending"


def test_feature_item_status():
    wizard, clock = _build_wizard()
    assert wizard.feature_item_status(0) == "waiting"
    wizard.begin_feature_engineering()
    clock.advance_ms(150 * 5)
    assert wizard.feature_item_status(0) == "completed"
    assert wizard.feature_item_status(1) == "processing"
    assert wizard.feature_item_status(2) == "waiting"
    clock.advance_ms(150 * 15)
    assert [wizard.feature_item_status(i) for i in range(4)] == ["completed"] * 4


def test_close_cancels_everything():
    wizard, clock = _build_wizard()
    wizard.begin_feature_engineering()
    clock.advance_ms(300)
    wizard.close()
    clock.advance(10.0)
    assert wizard.state.feature_progress == 10
    assert not wizard.state.feature_running
    assert clock.pending == 0


def test_verbose_output(capsys):
    clock = VirtualClock()
    wizard = WizardController(clock, rng=np.random.default_rng(0), verbose=True)
    wizard.begin_feature_engineering()
    clock.run_until_idle()
    out = capsys.readouterr().out
    assert "[wizard] feature engineering started" in out
    assert "[wizard] feature engineering complete" in out
