"""
Alerting framework package.

Turns execution traces into deduplicated failure alerts and delivers them
through channels.
"""

from taproom.framework.alerts.alerter import DispatchResult, TraceAlerter
from taproom.framework.alerts.base import BaseChannel
from taproom.framework.alerts.channels import ConsoleChannel, EmailChannel
from taproom.framework.alerts.cooldown import (
    AlertCooldown,
    CooldownEntry,
    CooldownStore,
    InMemoryCooldownStore,
    cooldown_key,
)
from taproom.framework.alerts.format import build_body, build_subject
from taproom.framework.alerts.protocol import (
    Alert,
    AlertChannel,
    AlertSeverity,
    ChannelType,
    DeliveryResult,
)
from taproom.framework.alerts.traces import Trace, filter_error_traces, is_error_trace

__all__ = [
    "Alert",
    "AlertChannel",
    "AlertCooldown",
    "AlertSeverity",
    "BaseChannel",
    "ChannelType",
    "ConsoleChannel",
    "CooldownEntry",
    "CooldownStore",
    "DeliveryResult",
    "DispatchResult",
    "EmailChannel",
    "InMemoryCooldownStore",
    "Trace",
    "TraceAlerter",
    "build_body",
    "build_subject",
    "cooldown_key",
    "filter_error_traces",
    "is_error_trace",
]
