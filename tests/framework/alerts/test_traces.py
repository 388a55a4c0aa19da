"""Tests for trace parsing and error classification."""

from __future__ import annotations

import pytest

from taproom.framework.alerts.traces import (
    FetchEvent,
    QueueEvent,
    ScheduledEvent,
    Trace,
    filter_error_traces,
    is_error_trace,
)


def _trace(**overrides) -> Trace:
    data = {"outcome": "ok", "scriptName": "taproom-worker"}
    data.update(overrides)
    return Trace.model_validate(data)


class TestIsErrorTrace:
    @pytest.mark.parametrize("outcome", ["ok", "canceled", "responseStreamDisconnected"])
    def test_benign_outcomes(self, outcome):
        assert is_error_trace(_trace(outcome=outcome)) is False

    @pytest.mark.parametrize("outcome", ["exception", "exceededCpu", "exceededMemory", "unknown"])
    def test_failing_outcomes(self, outcome):
        assert is_error_trace(_trace(outcome=outcome)) is True

    def test_ok_with_exception(self):
        trace = _trace(exceptions=[{"name": "TypeError", "message": "boom"}])
        assert is_error_trace(trace) is True

    def test_ok_with_error_log(self):
        trace = _trace(logs=[{"level": "error", "message": ["db down"], "timestamp": 0}])
        assert is_error_trace(trace) is True

    def test_ok_with_warning_log_only(self):
        trace = _trace(logs=[{"level": "warn", "message": "slow", "timestamp": 0}])
        assert is_error_trace(trace) is False

    def test_filter(self):
        traces = [_trace(), _trace(outcome="exception"), _trace(outcome="canceled")]
        assert [t.outcome for t in filter_error_traces(traces)] == ["exception"]


class TestEventTagging:
    def test_request_shape_is_fetch(self):
        trace = _trace(event={"request": {"method": "POST", "url": "https://api.example/beers"}})
        assert isinstance(trace.event, FetchEvent)
        assert trace.event.method == "POST"

    def test_queue_shape(self):
        trace = _trace(event={"queue": "beer-enrichment", "batchSize": 1})
        assert isinstance(trace.event, QueueEvent)
        assert trace.event.batch_size == 1

    def test_cron_shape(self):
        trace = _trace(event={"cron": "0 */2 * * *", "scheduledTime": 1760781600000})
        assert isinstance(trace.event, ScheduledEvent)

    def test_explicit_kind(self):
        trace = _trace(event={"kind": "queue", "queue": "description-cleanup"})
        assert isinstance(trace.event, QueueEvent)

    def test_unrecognised_event_is_dropped(self):
        assert _trace(event={"email": {}}).event is None

    def test_camel_case_fields(self):
        trace = _trace(eventTimestamp=1760781600000, cpuTime=5, wallTime=20)
        assert trace.script_name == "taproom-worker"
        assert trace.event_timestamp == 1760781600000
        assert (trace.cpu_time, trace.wall_time) == (5, 20)
