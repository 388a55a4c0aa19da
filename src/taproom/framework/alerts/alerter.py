"""
Trace alerter: turn a batch of execution traces into at most one alert.

Flow::

    traces ─► filter errors ─► none? done
                  │
                  ▼
         key = cooldown_key(first error)
                  │
         channel.should_send(alert)? ── no ──► filtered
                  │ yes
         cooldown.should_send(key)? ── no ──► suppressed
                  │ yes
                  ▼
         drain suppressed count ─► subject + body ─► channel.send()

Any exception in that flow triggers one fallback alert naming how many
traces could not be processed; if the fallback fails too it is logged and
dropped. ``handle`` never raises.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from enum import Enum
from typing import Any

from taproom.core.logging import get_logger
from taproom.core.settings import TaproomSettings
from taproom.framework.alerts.channels import ConsoleChannel, EmailChannel
from taproom.framework.alerts.cooldown import AlertCooldown, cooldown_key
from taproom.framework.alerts.format import SUBJECT_PREFIX, build_body, build_subject
from taproom.framework.alerts.protocol import Alert, AlertChannel, AlertSeverity
from taproom.framework.alerts.traces import Trace, filter_error_traces

logger = get_logger(__name__)


class DispatchResult(str, Enum):
    NO_ERRORS = "no_errors"
    SUPPRESSED = "suppressed"
    SENT = "sent"
    FILTERED = "filtered"
    DELIVERY_FAILED = "delivery_failed"
    FALLBACK_SENT = "fallback_sent"
    DROPPED = "dropped"


class TraceAlerter:
    """Sends deduplicated failure alerts for batches of traces."""

    def __init__(
        self,
        channel: AlertChannel,
        cooldown: AlertCooldown,
        *,
        source: str = "taproom",
    ) -> None:
        self._channel = channel
        self._cooldown = cooldown
        self._source = source

    @classmethod
    def from_settings(cls, settings: TaproomSettings) -> TraceAlerter:
        """Email when recipients are configured, the console otherwise."""
        channel: AlertChannel
        if settings.alert_to:
            channel = EmailChannel.from_settings(settings)
        else:
            channel = ConsoleChannel()
        return cls(channel, AlertCooldown(window_seconds=settings.alert_cooldown_seconds))

    def handle(self, traces: Sequence[Trace | dict[str, Any]]) -> DispatchResult:
        try:
            return self._dispatch(traces)
        except Exception as e:
            logger.error("alerts.processing_failed", trace_count=len(traces), error=str(e), exc_info=True)
            return self._send_fallback(len(traces))

    def _dispatch(self, traces: Sequence[Trace | dict[str, Any]]) -> DispatchResult:
        parsed = [t if isinstance(t, Trace) else Trace.model_validate(t) for t in traces]
        errors = filter_error_traces(parsed)
        if not errors:
            return DispatchResult.NO_ERRORS

        first = errors[0]
        key = cooldown_key(first)
        alert = Alert(
            severity=AlertSeverity.ERROR,
            title=build_subject(first),
            message=build_body(errors),
            source=self._source,
            fingerprint=key,
            error_count=len(errors),
        )
        # A filtered alert leaves the cooldown window and suppressed count untouched.
        if not self._channel.should_send(alert):
            logger.info("alerts.filtered", key=key, channel=self._channel.name)
            return DispatchResult.FILTERED

        if not self._cooldown.should_send(key):
            logger.info("alerts.suppressed", key=key, error_count=len(errors))
            return DispatchResult.SUPPRESSED

        suppressed = self._cooldown.drain_suppressed_count(key)
        if suppressed:
            alert = replace(alert, message=build_body(errors, suppressed), suppressed_count=suppressed)

        result = self._channel.send(alert)
        if not result.success:
            logger.error("alerts.delivery_failed", key=key, channel=result.channel_name, error=result.message)
            return DispatchResult.DELIVERY_FAILED

        logger.info("alerts.sent", key=key, error_count=len(errors), suppressed_count=suppressed)
        return DispatchResult.SENT

    def _send_fallback(self, trace_count: int) -> DispatchResult:
        alert = Alert(
            severity=AlertSeverity.CRITICAL,
            title=f"{SUBJECT_PREFIX} Alerting failed to process {trace_count} trace(s)",
            message=(
                "The alerting pipeline encountered an error while processing traces.\n\n"
                f"Trace count: {trace_count}"
            ),
            source=self._source,
        )
        try:
            result = self._channel.send(alert)
        except Exception as e:
            logger.error("alerts.fallback_failed", error=str(e))
            return DispatchResult.DROPPED
        if not result.success:
            logger.error("alerts.fallback_failed", error=result.message)
            return DispatchResult.DROPPED
        return DispatchResult.FALLBACK_SENT
