"""Realtime consumers for WebSocket communication."""

from .allocation_consumer import AllocationEventsConsumer

__all__ = [
    "AllocationEventsConsumer",
]
