"""
Three-stage risk assessment wizard.

``WizardController`` owns the wizard state, gates forward stage
transitions on completion of the previous stage, and binds operator
actions to progress simulators, verdict generation and the lifecycle of
the relationship-graph layout shown in the final stage.

Stages::

    FEATURE_ENGINEERING --(feature progress 100)--> MODEL_JUDGMENT
    MODEL_JUDGMENT      --(verdict present)-------> GRAPH_REVIEW

Moving back is always allowed and keeps the progress already made.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Callable, Optional

import numpy as np

from risk_wizard.errors import (
    NoModelSelectedError,
    NotYetReviewedError,
    StageNotReadyError,
)
from risk_wizard.graph import (
    GraphEdge,
    GraphLayoutEngine,
    GraphNode,
    LayoutConfig,
    NodeKind,
    case_graph,
)
from risk_wizard.progress import (
    FEATURE_PROGRESS,
    MODEL_PROGRESS,
    ProgressConfig,
    ProgressSimulator,
)
from risk_wizard.scheduler import Scheduler
from risk_wizard.verdict import (
    RiskVerdict,
    ScoringModel,
    VerdictConfig,
    generate_verdict,
)


class Stage(IntEnum):
    """Top-level wizard stages, in order."""

    FEATURE_ENGINEERING = 1
    MODEL_JUDGMENT = 2
    GRAPH_REVIEW = 3

    @property
    def title(self) -> str:
        return _STAGE_TITLES[self][0]

    @property
    def subtitle(self) -> str:
        return _STAGE_TITLES[self][1]


_STAGE_TITLES = {
    Stage.FEATURE_ENGINEERING: ("Feature engineering", "Data preprocessing"),
    Stage.MODEL_JUDGMENT: ("Model judgment", "Algorithmic risk assessment"),
    Stage.GRAPH_REVIEW: ("Fraud recognition", "Relationship graph"),
}


@dataclass(frozen=True)
class SubStepInfo:
    title: str
    description: str


FEATURE_SUB_STEPS: tuple[SubStepInfo, ...] = (
    SubStepInfo("Data cleaning", "Handle missing values, outliers and duplicates"),
    SubStepInfo("Feature extraction", "Extract profile and behavioural features from raw data"),
    SubStepInfo("Feature transformation", "Encode categorical features and standardise numeric ones"),
    SubStepInfo("Feature selection", "Select the most effective feature subset"),
    SubStepInfo("Feature generation", "Generate cross and derived features"),
)

FEATURE_WORK_ITEMS: tuple[SubStepInfo, ...] = (
    SubStepInfo("Data cleaning and preprocessing", "Missing value and outlier detection, normalisation"),
    SubStepInfo("Basic feature extraction", "Profile, behaviour history, device fingerprint"),
    SubStepInfo("Graph structure features", "Social network, node centrality, clustering coefficient"),
    SubStepInfo("Temporal feature generation", "Time-series behaviour pattern analysis"),
)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WizardConfig:
    """Cadences and content used by a wizard session."""

    feature_progress: ProgressConfig = FEATURE_PROGRESS
    model_progress: ProgressConfig = MODEL_PROGRESS
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    verdict: VerdictConfig = field(default_factory=VerdictConfig)


@dataclass(frozen=True)
class WizardState:
    """Snapshot of the wizard at rest between callbacks."""

    stage: Stage
    furthest_stage: Stage
    feature_progress: int
    process_sub_step: int
    feature_running: bool
    selected_model: Optional[ScoringModel]
    model_progress: int
    model_running: bool
    risk_verdict: Optional[RiskVerdict]
    recognition_completed: bool

    @property
    def can_advance(self) -> bool:
        """Whether the forward transition out of ``stage`` is open."""
        if self.stage == Stage.FEATURE_ENGINEERING:
            return self.feature_progress == 100
        if self.stage == Stage.MODEL_JUDGMENT:
            return self.risk_verdict is not None
        return False


StateCallback = Callable[[WizardState], None]
GraphFactory = Callable[[], tuple[list[GraphNode], list[GraphEdge]]]


class WizardController:
    """State machine driving one wizard session.

    Args:
        scheduler: Timer source shared by both simulators and the graph
            frame loop (an ``asyncio`` loop or a ``VirtualClock``).
        config: Cadences, layout parameters and verdict content.
        rng: Randomness for verdict generation and layout jitter.
        clock: Returns the completion time stamped on verdicts.
        graph_factory: Supplies the case graph shown in the last stage.
        verbose: Print ``[wizard]`` progress lines.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        config: Optional[WizardConfig] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = _default_clock,
        graph_factory: GraphFactory = case_graph,
        verbose: bool = False,
    ) -> None:
        self._scheduler = scheduler
        self._config = config or WizardConfig()
        self._rng = rng if rng is not None else np.random.default_rng()
        self._clock = clock
        self._graph_factory = graph_factory
        self._verbose = verbose

        self._stage = Stage.FEATURE_ENGINEERING
        self._furthest = Stage.FEATURE_ENGINEERING
        self._feature_progress: int = 0
        self._process_sub_step: int = -1
        self._feature_started: bool = False
        self._selected_model: Optional[ScoringModel] = None
        self._model_progress: int = 0
        self._risk_verdict: Optional[RiskVerdict] = None
        self._recognition_completed: bool = False

        self._feature_sim: Optional[ProgressSimulator] = None
        self._model_sim: Optional[ProgressSimulator] = None
        self._graph: Optional[GraphLayoutEngine] = None
        self._observers: list[StateCallback] = []

    def __enter__(self) -> "WizardController":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> WizardState:
        return WizardState(
            stage=self._stage,
            furthest_stage=self._furthest,
            feature_progress=self._feature_progress,
            process_sub_step=self._process_sub_step,
            feature_running=self._feature_sim is not None and self._feature_sim.is_running,
            selected_model=self._selected_model,
            model_progress=self._model_progress,
            model_running=self._model_sim is not None and self._model_sim.is_running,
            risk_verdict=self._risk_verdict,
            recognition_completed=self._recognition_completed,
        )

    @property
    def graph(self) -> Optional[GraphLayoutEngine]:
        """Layout engine of the graph review stage, while it is shown."""
        return self._graph

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Call ``callback(state)`` after every tick and every action.

        Returns:
            A function that removes the subscription.
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def begin_feature_engineering(self) -> None:
        """Start the feature engineering run unless running or finished.

        Raises:
            StageNotReadyError: Outside the feature engineering stage.
        """
        self._require_stage(Stage.FEATURE_ENGINEERING, "start feature engineering")
        if self._feature_sim is not None and self._feature_sim.is_running:
            return
        if self._feature_progress == 100:
            return

        sim = ProgressSimulator(
            self._scheduler, self._config.feature_progress, name="feature engineering"
        )
        sim.on_tick(self._on_feature_tick)
        sim.on_complete(self._on_feature_complete)
        self._feature_sim = sim
        self._feature_started = True
        self._feature_progress = 0
        self._process_sub_step = -1
        sim.start()
        self._log("feature engineering started")
        self._notify()

    def advance_stage(self, target: Stage | int) -> None:
        """Move to ``target``.

        Forward moves require every stage passed to have met its
        completion condition; backward moves are always allowed.

        Raises:
            StageNotReadyError: If a forward gate is still closed.
        """
        target = Stage(target)
        if target == self._stage:
            return

        if target > self._stage:
            for stage in Stage:
                if self._stage <= stage < target:
                    self._check_gate(stage)

        previous = self._stage
        self._leave(previous)
        self._stage = target
        self._furthest = max(self._furthest, target)
        self._enter(target)
        self._log(f"stage {previous.title} -> {target.title}")
        self._notify()

    def select_model(self, model: Optional[ScoringModel | str]) -> None:
        """Choose the scoring strategy.  Ignored while scoring runs."""
        if self._model_running():
            self._log("model selection ignored while scoring is running")
            return
        self._selected_model = None if model is None else ScoringModel.parse(model)
        self._notify()

    def run_scoring(self, model: Optional[ScoringModel | str] = None) -> None:
        """Start a scoring run with ``model`` or the selected strategy.

        Clears the previous verdict; a new one is produced when the run
        completes.  A call while a run is active is ignored.

        Raises:
            StageNotReadyError: Outside the model judgment stage.
            NoModelSelectedError: If no strategy is given or selected.
        """
        self._require_stage(Stage.MODEL_JUDGMENT, "run the assessment")
        if model is None:
            model = self._selected_model
        if model is None:
            raise NoModelSelectedError("Select a scoring model before running the assessment")
        if self._model_running():
            self._log("scoring already running; request ignored")
            return

        chosen = ScoringModel.parse(model)
        sim = ProgressSimulator(
            self._scheduler, self._config.model_progress, name=f"{chosen.value} scoring"
        )
        sim.on_tick(self._on_model_tick)
        sim.on_complete(lambda: self._on_model_complete(chosen))

        self._selected_model = chosen
        self._risk_verdict = None
        self._model_progress = 0
        self._model_sim = sim
        sim.start()
        self._log(f"scoring with {chosen.value} started")
        self._notify()

    def complete_recognition(self) -> None:
        """Mark the assessment as recognised.  Idempotent.

        Raises:
            NotYetReviewedError: If no verdict exists yet, or the graph
                review stage is not open.
        """
        if self._risk_verdict is None:
            raise NotYetReviewedError("Run the model judgment before completing recognition")
        if self._stage != Stage.GRAPH_REVIEW:
            raise NotYetReviewedError(
                "Review the relationship graph before completing recognition"
            )
        if self._recognition_completed:
            return
        self._recognition_completed = True
        self._log(self.completion_message())
        self._notify()

    def close(self) -> None:
        """Cancel every timer and tear down the graph.  Idempotent."""
        for sim in (self._feature_sim, self._model_sim):
            if sim is not None:
                sim.cancel()
        self._feature_sim = None
        self._model_sim = None
        self._close_graph()

    # ------------------------------------------------------------------
    # Presentation helpers
    # ------------------------------------------------------------------

    def stage_status(self, stage: Stage | int) -> str:
        """``completed``, ``current`` or ``pending`` for the stage indicator."""
        stage = Stage(stage)
        if stage == self._stage:
            return "current"
        return "completed" if stage < self._stage else "pending"

    def sub_step_status(self, index: int) -> str:
        """``completed``, ``active`` or ``pending`` for a feature sub-step."""
        if self._process_sub_step >= index:
            return "completed"
        if self._process_sub_step == index - 1:
            return "active"
        return "pending"

    def feature_item_status(self, index: int) -> str:
        """``completed``, ``processing`` or ``waiting`` for a feature work item."""
        if self._feature_progress > (index + 1) * 20:
            return "completed"
        if self._feature_started and self._process_sub_step >= index:
            return "processing"
        return "waiting"

    def current_sub_step(self) -> Optional[SubStepInfo]:
        """Description of the active feature sub-step, if any."""
        if 0 <= self._process_sub_step < len(FEATURE_SUB_STEPS):
            return FEATURE_SUB_STEPS[self._process_sub_step]
        return None

    def completion_message(self) -> str:
        if self._risk_verdict is None:
            return "Recognition pending."
        return (
            f"Recognition complete. Risk level: {self._risk_verdict.risk_level.value}. "
            f"Model: {self._risk_verdict.model.value}."
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _check_gate(self, stage: Stage) -> None:
        if stage == Stage.FEATURE_ENGINEERING and self._feature_progress < 100:
            raise StageNotReadyError(
                f"Feature engineering is at {self._feature_progress}%; "
                "finish it before model judgment"
            )
        if stage == Stage.MODEL_JUDGMENT and self._risk_verdict is None:
            raise StageNotReadyError(
                "No risk verdict yet; run the model judgment before graph review"
            )

    def _require_stage(self, stage: Stage, action: str) -> None:
        if self._stage != stage:
            raise StageNotReadyError(
                f"Cannot {action} during {self._stage.title}; open {stage.title} first"
            )

    def _leave(self, stage: Stage) -> None:
        if stage == Stage.FEATURE_ENGINEERING and self._feature_sim is not None:
            self._feature_sim.cancel()
            self._feature_sim = None
        elif stage == Stage.MODEL_JUDGMENT and self._model_sim is not None:
            self._model_sim.cancel()
            self._model_sim = None
        elif stage == Stage.GRAPH_REVIEW:
            self._close_graph()

    def _enter(self, stage: Stage) -> None:
        if stage == Stage.GRAPH_REVIEW:
            nodes, edges = self._graph_factory()
            self._graph = GraphLayoutEngine(
                nodes, edges, config=self._config.layout, rng=self._rng
            )
            self._graph.start(self._scheduler)

    def _close_graph(self) -> None:
        if self._graph is not None:
            self._graph.close()
            self._graph = None

    def _model_running(self) -> bool:
        return self._model_sim is not None and self._model_sim.is_running

    def _on_feature_tick(self, percentage: int, sub_step: int) -> None:
        self._feature_progress = percentage
        self._process_sub_step = sub_step
        self._notify()

    def _on_feature_complete(self) -> None:
        self._feature_sim = None
        self._log("feature engineering complete")

    def _on_model_tick(self, percentage: int, sub_step: int) -> None:
        self._model_progress = percentage
        self._notify()

    def _on_model_complete(self, model: ScoringModel) -> None:
        self._model_sim = None
        nodes, _ = self._graph_factory()
        signals = tuple(n.name for n in nodes if n.kind == NodeKind.RISK_SIGNAL)
        self._risk_verdict = generate_verdict(
            model, self._clock(), self._rng, self._config.verdict, signals=signals
        )
        self._log(
            f"scoring complete: {self._risk_verdict.risk_level.value} "
            f"({self._risk_verdict.confidence:.1f}%)"
        )
        self._notify()

    def _notify(self) -> None:
        if not self._observers:
            return
        state = self.state
        for callback in list(self._observers):
            callback(state)

    def _log(self, message: str) -> None:
        if self._verbose:
            print(f"[wizard] {message}")
