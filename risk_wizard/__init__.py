"""
Risk Assessment Wizard
======================

A guided three-stage fraud risk assessment: timed feature engineering,
model judgment producing a risk verdict, and review of the subject's
relationship graph with a force-directed, draggable layout.

The processing stages are simulated; the package provides the state
machine, progress simulators and graph layout engine that a
presentation layer drives.
"""

__version__ = "1.0.0"

from risk_wizard.errors import (
    AlreadyRunningError,
    LayoutClosedError,
    NoModelSelectedError,
    NotYetReviewedError,
    StageNotReadyError,
    WizardError,
)
from risk_wizard.graph import (
    GraphEdge,
    GraphLayoutEngine,
    GraphNode,
    LayoutConfig,
    LayoutSnapshot,
    NodeKind,
    case_graph,
)
from risk_wizard.progress import ProgressConfig, ProgressSimulator
from risk_wizard.renderer import GraphRenderer
from risk_wizard.scheduler import VirtualClock
from risk_wizard.verdict import RiskLevel, RiskVerdict, ScoringModel, generate_verdict
from risk_wizard.wizard import Stage, WizardConfig, WizardController, WizardState

__all__ = [
    "AlreadyRunningError",
    "GraphEdge",
    "GraphLayoutEngine",
    "GraphNode",
    "GraphRenderer",
    "LayoutClosedError",
    "LayoutConfig",
    "LayoutSnapshot",
    "NoModelSelectedError",
    "NodeKind",
    "NotYetReviewedError",
    "ProgressConfig",
    "ProgressSimulator",
    "RiskLevel",
    "RiskVerdict",
    "ScoringModel",
    "Stage",
    "StageNotReadyError",
    "VirtualClock",
    "WizardConfig",
    "WizardController",
    "WizardError",
    "WizardState",
    "case_graph",
    "generate_verdict",
]
