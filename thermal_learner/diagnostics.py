"""
Diagnostic events emitted by the building model learner.

The learner never raises on bad data. Rejected measurements, reverted
updates, rate limiting and corrupt persisted state are reported as
`DiagnosticEvent`s to an injected `DiagnosticSink`. Sinks are fire-and-forget:
a failing sink is logged and ignored.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol


class DiagnosticKind(str, Enum):
    BASELINE_STORED = "baseline_stored"
    MEASUREMENT_REJECTED = "measurement_rejected"
    DIVERGENCE_REVERTED = "divergence_reverted"
    RATE_LIMITED = "rate_limited"
    STATE_RESTORED = "state_restored"
    STATE_REJECTED = "state_rejected"
    MILESTONE = "milestone"


class OutcomeStatus(str, Enum):
    BASELINE = "baseline"
    APPLIED = "applied"
    REJECTED = "rejected"
    REVERTED = "reverted"


@dataclass(frozen=True)
class UpdateOutcome:
    """Result of processing one measurement."""
    status: OutcomeStatus
    reason: Optional[str] = None
    rate_limited: bool = False

    @property
    def accepted(self) -> bool:
        return self.status is not OutcomeStatus.REJECTED


@dataclass(frozen=True)
class DiagnosticEvent:
    kind: DiagnosticKind
    message: str
    sample_count: int = 0
    reason: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


class DiagnosticSink(Protocol):
    def record(self, event: DiagnosticEvent) -> None:
        ...


_LOG_LEVELS = {
    DiagnosticKind.BASELINE_STORED: logging.DEBUG,
    DiagnosticKind.RATE_LIMITED: logging.DEBUG,
    DiagnosticKind.MEASUREMENT_REJECTED: logging.WARNING,
    DiagnosticKind.DIVERGENCE_REVERTED: logging.WARNING,
    DiagnosticKind.STATE_REJECTED: logging.ERROR,
    DiagnosticKind.STATE_RESTORED: logging.INFO,
    DiagnosticKind.MILESTONE: logging.INFO,
}

_LOG_MARKERS = {
    DiagnosticKind.MEASUREMENT_REJECTED: "⚠️ ",
    DiagnosticKind.DIVERGENCE_REVERTED: "🔄 ",
    DiagnosticKind.STATE_REJECTED: "❌ ",
    DiagnosticKind.STATE_RESTORED: "💾 ",
    DiagnosticKind.MILESTONE: "📊 ",
}


class LoggingDiagnosticSink:
    """Default sink: writes every event to the standard logging module."""

    def record(self, event: DiagnosticEvent) -> None:
        level = _LOG_LEVELS.get(event.kind, logging.INFO)
        marker = _LOG_MARKERS.get(event.kind, "")
        logging.log(
            level,
            f"{marker}BuildingModelLearner [{event.kind.value}] "
            f"#{event.sample_count}: {event.message}",
        )


class RecordingDiagnosticSink:
    """Keeps events in memory, optionally forwarding them to another sink."""

    def __init__(self, forward_to: Optional[DiagnosticSink] = None):
        self.events: List[DiagnosticEvent] = []
        self.forward_to = forward_to

    def record(self, event: DiagnosticEvent) -> None:
        self.events.append(event)
        if self.forward_to is not None:
            self.forward_to.record(event)

    def of_kind(self, kind: DiagnosticKind) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.kind is kind]

    def clear(self) -> None:
        self.events.clear()


def emit(sink: Optional[DiagnosticSink], event: DiagnosticEvent) -> None:
    """Deliver an event without letting sink failures reach the caller."""
    if sink is None:
        return
    try:
        sink.record(event)
    except Exception as e:
        logging.debug(f"Diagnostic sink failed for {event.kind.value}: {e}")
