"""Queue transports implementing :class:`taproom.core.protocols.QueueTransport`."""

from taproom.core.transports.memory import DeadLettered, InMemoryQueue

__all__ = ["DeadLettered", "InMemoryQueue"]
