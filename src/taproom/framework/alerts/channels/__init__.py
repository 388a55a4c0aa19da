"""Concrete alert channel implementations."""

from taproom.framework.alerts.channels.console import ConsoleChannel
from taproom.framework.alerts.channels.email import EmailChannel

__all__ = ["ConsoleChannel", "EmailChannel"]
