"""Console alert channel for development and local runs."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from taproom.framework.alerts.base import BaseChannel
from taproom.framework.alerts.protocol import Alert, AlertSeverity, ChannelType, DeliveryResult

_STYLES = {
    AlertSeverity.INFO: "blue",
    AlertSeverity.WARNING: "yellow",
    AlertSeverity.ERROR: "red",
    AlertSeverity.CRITICAL: "magenta",
}


class ConsoleChannel(BaseChannel):
    """Prints alerts as rich panels on stderr."""

    channel_type = ChannelType.CONSOLE

    def __init__(
        self,
        name: str = "console",
        *,
        min_severity: AlertSeverity = AlertSeverity.INFO,
        console: Console | None = None,
    ):
        super().__init__(name, min_severity=min_severity)
        self._console = console or Console(stderr=True)

    def send(self, alert: Alert) -> DeliveryResult:
        style = _STYLES[alert.severity]
        footer = f"{alert.source} · {alert.error_count} error(s)"
        if alert.suppressed_count:
            footer += f" · {alert.suppressed_count} suppressed"
        self._console.print(
            Panel(
                escape(alert.message),
                title=f"[{style}]{escape(alert.title)}[/{style}]",
                subtitle=escape(footer),
                border_style=style,
            )
        )
        return DeliveryResult.ok(self.name)
