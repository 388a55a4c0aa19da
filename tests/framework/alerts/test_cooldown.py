"""Tests for alert cooldown suppression."""

from __future__ import annotations

from taproom.framework.alerts.cooldown import AlertCooldown, InMemoryCooldownStore, cooldown_key
from taproom.framework.alerts.traces import Trace

KEY = "exception:TypeError"


class TestAlertCooldown:
    def test_window_sequence(self):
        cooldown = AlertCooldown(window_seconds=300)
        assert cooldown.should_send(KEY, now=0) is True
        assert cooldown.should_send(KEY, now=1) is False
        assert cooldown.should_send(KEY, now=301) is True
        assert cooldown.drain_suppressed_count(KEY) == 1
        assert cooldown.drain_suppressed_count(KEY) == 0

    def test_boundary_is_inclusive(self):
        cooldown = AlertCooldown(window_seconds=300)
        cooldown.should_send(KEY, now=0)
        assert cooldown.should_send(KEY, now=299.9) is False
        assert cooldown.should_send(KEY, now=300) is True

    def test_keys_are_independent(self):
        cooldown = AlertCooldown()
        assert cooldown.should_send(KEY, now=0)
        assert cooldown.should_send("exceededCpu:error-logs", now=0)

    def test_unknown_key_drains_zero(self):
        assert AlertCooldown().drain_suppressed_count("never-seen") == 0

    def test_uses_clock_when_now_omitted(self, clock):
        cooldown = AlertCooldown(window_seconds=10, clock=clock)
        assert cooldown.should_send(KEY)
        clock.advance(5)
        assert not cooldown.should_send(KEY)
        clock.advance(5)
        assert cooldown.should_send(KEY)

    def test_shared_store(self):
        store = InMemoryCooldownStore()
        AlertCooldown(store).should_send(KEY, now=0)
        assert AlertCooldown(store).should_send(KEY, now=1) is False

    def test_reset(self):
        cooldown = AlertCooldown()
        cooldown.should_send(KEY, now=0)
        cooldown.reset()
        assert cooldown.should_send(KEY, now=1) is True


class TestCooldownKey:
    def test_first_exception_name(self):
        trace = Trace.model_validate(
            {"outcome": "exception", "exceptions": [{"name": "TypeError"}, {"name": "KeyError"}]}
        )
        assert cooldown_key(trace) == "exception:TypeError"

    def test_error_logs_only(self):
        trace = Trace.model_validate(
            {"outcome": "ok", "logs": [{"level": "error", "message": "x", "timestamp": 0}]}
        )
        assert cooldown_key(trace) == "ok:error-logs"
