"""WebSocket consumer relaying allocation events to companies and drivers."""

import logging
from typing import Any, Dict

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from realtime.notifications import company_room, driver_room

logger = logging.getLogger(__name__)


class AllocationEventsConsumer(AsyncJsonWebsocketConsumer):
    """
    Joins the socket to one owner's room and forwards allocation events.

    URL kwargs:
        owner_type: "company" or "driver"
        owner_id: ID of the company or driver

    The room is taken from the URL as-is: no scope["user"] check is made.
    Authenticated deployments wrap the websocket router in asgi.py with an
    auth middleware (channels.auth.AuthMiddlewareStack or a token
    BaseMiddleware) and compare scope["user"] with owner_id in connect().
    """

    async def connect(self):
        kwargs = self.scope["url_route"]["kwargs"]
        owner_id = int(kwargs["owner_id"])

        if kwargs["owner_type"] == "company":
            self.room = company_room(owner_id)
        else:
            self.room = driver_room(owner_id)

        await self.channel_layer.group_add(self.room, self.channel_name)
        await self.accept()
        await self.send_json({
            "type": "connection_established",
            "room": self.room,
        })

    async def disconnect(self, close_code):
        try:
            await self.channel_layer.group_discard(self.room, self.channel_name)
        except Exception:
            logger.exception("Error leaving room %s", getattr(self, "room", "unknown"))

    async def receive_json(self, content: Dict[str, Any], **kwargs):
        if content.get("type") == "ping":
            await self.send_json({"type": "pong"})
            return
        await self.send_json({
            "type": "error",
            "message": "This socket only delivers allocation events",
        })

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def allocation_event(self, event):
        """Forward an allocation lifecycle event (allocation-started, ...) to the client."""
        await self.send_json({
            "type": event.get("event"),
            **event.get("payload", {}),
        })
