"""
Realtime event channel for allocation lifecycle updates.

Events are published to per-owner rooms over the Channels layer:
    - company-<company_id>
    - driver-<driver_id>

A RealtimeChannel is passed explicitly to the allocation engine, so tests
and multiple engine instances can each use their own channel.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

# Consumer handler that relays events to sockets (AllocationEventsConsumer.allocation_event)
ALLOCATION_EVENT_MESSAGE_TYPE = "allocation.event"

ALLOCATION_EXPIRED = "allocation-expired"
ALLOCATION_ACCEPTED = "allocation-accepted"
ALLOCATION_STARTED = "allocation-started"
ALLOCATION_COMPLETED = "allocation-completed"


def company_room(company_id: int) -> str:
    return f"company-{company_id}"


def driver_room(driver_id: int) -> str:
    return f"driver-{driver_id}"


class RealtimeChannel:
    """
    Publish named events to rooms through a Channels layer.

    Emission is best effort: failures are logged and reported through the
    return value, never raised.
    """

    def __init__(self, channel_layer=None, alias: str = "default"):
        self._channel_layer = channel_layer
        self._alias = alias

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer(self._alias)
        return self._channel_layer

    def emit(self, room: str, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """
        Send an event to every socket subscribed to a room.

        Args:
            room: Room (group) name, e.g. company-12
            event: Event name, e.g. allocation-started
            payload: JSON-serializable event body

        Returns:
            True if handed to the channel layer, False otherwise
        """
        layer = self.channel_layer
        if layer is None:
            logger.warning("No channel layer available; dropping %s for %s", event, room)
            return False

        message = {
            "type": ALLOCATION_EVENT_MESSAGE_TYPE,
            "event": event,
            "payload": payload or {},
        }

        try:
            logger.debug("WS -> %s: %s %s", room, event, payload)
            async_to_sync(layer.group_send)(room, message)
        except Exception:
            logger.exception("Failed to emit %s to %s", event, room)
            return False

        return True

    def to_company(self, company_id: int, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        return self.emit(company_room(company_id), event, payload)

    def to_driver(self, driver_id: Optional[int], event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        if not driver_id:
            return False
        return self.emit(driver_room(driver_id), event, payload)
