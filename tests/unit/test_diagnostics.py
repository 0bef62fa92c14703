import logging

from thermal_learner.diagnostics import (
    DiagnosticEvent,
    DiagnosticKind,
    LoggingDiagnosticSink,
    OutcomeStatus,
    RecordingDiagnosticSink,
    UpdateOutcome,
    emit,
)


def _event(kind=DiagnosticKind.MEASUREMENT_REJECTED, **kwargs):
    return DiagnosticEvent(kind=kind, message="test message", sample_count=7, **kwargs)


def test_outcome_accepted():
    assert UpdateOutcome(OutcomeStatus.APPLIED).accepted
    assert UpdateOutcome(OutcomeStatus.BASELINE).accepted
    assert UpdateOutcome(OutcomeStatus.REVERTED, reason="bounds").accepted
    assert not UpdateOutcome(OutcomeStatus.REJECTED, reason="rate_of_change").accepted


def test_logging_sink_levels(caplog):
    sink = LoggingDiagnosticSink()
    with caplog.at_level(logging.DEBUG):
        sink.record(_event(DiagnosticKind.STATE_REJECTED))
        sink.record(_event(DiagnosticKind.RATE_LIMITED))

    levels = {r.levelno for r in caplog.records}
    assert levels == {logging.ERROR, logging.DEBUG}
    assert "[state_rejected] #7: test message" in caplog.text


def test_recording_sink_filters_and_forwards():
    downstream = RecordingDiagnosticSink()
    sink = RecordingDiagnosticSink(forward_to=downstream)

    sink.record(_event(DiagnosticKind.MILESTONE))
    sink.record(_event(DiagnosticKind.MEASUREMENT_REJECTED))

    assert [e.kind for e in sink.of_kind(DiagnosticKind.MILESTONE)] == [DiagnosticKind.MILESTONE]
    assert len(downstream.events) == 2
    sink.clear()
    assert sink.events == []


def test_emit_swallows_sink_failures(caplog):
    class BrokenSink:
        def record(self, event):
            raise ValueError("disk full")

    with caplog.at_level(logging.DEBUG):
        emit(BrokenSink(), _event())

    assert "disk full" in caplog.text


def test_emit_without_sink():
    emit(None, _event())
