"""Shared channel behaviour: a name, a kind and a severity floor."""

from __future__ import annotations

from abc import ABC, abstractmethod

from taproom.framework.alerts.protocol import Alert, AlertSeverity, ChannelType, DeliveryResult


class BaseChannel(ABC):
    channel_type: ChannelType

    def __init__(
        self,
        name: str,
        *,
        min_severity: AlertSeverity = AlertSeverity.ERROR,
        enabled: bool = True,
    ):
        self.name = name
        self.min_severity = min_severity
        self.enabled = enabled

    def should_send(self, alert: Alert) -> bool:
        return self.enabled and alert.severity >= self.min_severity

    @abstractmethod
    def send(self, alert: Alert) -> DeliveryResult:
        """Deliver ``alert``; failures come back as ``DeliveryResult.fail``."""
