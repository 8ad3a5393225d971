"""
Scoring strategies and risk verdicts.

The verdict produced at the end of a scoring run is a pure function of
the chosen strategy, the completion time and an injected random
generator, so a seeded ``numpy.random.Generator`` reproduces it exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import numpy as np


class ScoringModel(str, Enum):
    """Graph learning strategies the operator can choose from."""

    GRAPHSAGE = "GraphSAGE"
    GAT2 = "GAT2"
    GSA = "GSA"

    @property
    def description(self) -> str:
        return _MODEL_DESCRIPTIONS[self]

    @classmethod
    def parse(cls, value: "ScoringModel | str") -> "ScoringModel":
        """Resolve a model from its enum member, value or name (any case)."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Unknown scoring model {value!r}")
        for member in cls:
            if value.lower() in (member.value.lower(), member.name.lower()):
                return member
        choices = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown scoring model {value!r}; choose one of {choices}")


_MODEL_DESCRIPTIONS = {
    ScoringModel.GRAPHSAGE: "Sampling-based graph neural network capturing local neighbourhood features.",
    ScoringModel.GAT2: "Graph attention network weighting the most important relationships.",
    ScoringModel.GSA: "Combines structural information with an attention mechanism.",
}


class RiskLevel(str, Enum):
    """Risk classification of the evaluated subject."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class VerdictConfig:
    """Canned verdict content and the bounds of its confidence."""

    subject_id: str = "U20260315007"
    risk_level: RiskLevel = RiskLevel.MEDIUM
    confidence_range: tuple[float, float] = (85.0, 95.0)
    explanation: str = (
        "The subject shows some fraud risk characteristics; "
        "further manual review is recommended."
    )


@dataclass(frozen=True)
class RiskVerdict:
    """Result of one completed scoring run."""

    risk_level: RiskLevel
    subject_id: str
    confidence: float
    timestamp: datetime
    explanation: str
    model: ScoringModel
    contributing_signals: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "risk_level": self.risk_level.value,
            "subject_id": self.subject_id,
            "confidence": round(self.confidence, 1),
            "timestamp": self.timestamp.isoformat(),
            "explanation": self.explanation,
            "model": self.model.value,
            "contributing_signals": list(self.contributing_signals),
        }

    def summary(self) -> str:
        """Return a human-readable report."""
        lines = [
            "Risk Assessment Result",
            "=" * 40,
            f"Risk level:  {self.risk_level.value}",
            f"Subject ID:  {self.subject_id}",
            f"Model:       {self.model.value}",
            f"Assessed at: {self.timestamp.isoformat(sep=' ', timespec='seconds')}",
            f"Confidence:  {self.confidence:.1f}%",
        ]
        if self.contributing_signals:
            lines.append(f"Signals:     {', '.join(self.contributing_signals)}")
        lines.append("")
        lines.append(self.explanation)
        return "\n".join(lines)


def generate_verdict(
    model: ScoringModel | str,
    completed_at: datetime,
    rng: np.random.Generator,
    config: VerdictConfig = VerdictConfig(),
    signals: tuple[str, ...] = (),
) -> RiskVerdict:
    """Synthesize the verdict for a finished scoring run.

    Args:
        model: Strategy that produced the run.
        completed_at: When the run completed.
        rng: Randomness source; the confidence is its only consumer.
        config: Canned verdict content.
        signals: Names of risk signals attached to the subject.

    Returns:
        A new ``RiskVerdict`` with confidence drawn uniformly from
        ``config.confidence_range`` and rounded to one decimal.
    """
    low, high = config.confidence_range
    if low > high:
        raise ValueError(f"confidence_range is inverted: {config.confidence_range}")
    confidence = round(float(rng.uniform(low, high)), 1)

    return RiskVerdict(
        risk_level=config.risk_level,
        subject_id=config.subject_id,
        confidence=confidence,
        timestamp=completed_at,
        explanation=config.explanation,
        model=ScoringModel.parse(model),
        contributing_signals=tuple(signals),
    )
