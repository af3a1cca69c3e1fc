"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.allocation_consumer import AllocationEventsConsumer

websocket_urlpatterns = [
    # Company / driver allocation events
    # URL: ws://localhost:8000/ws/company/<id>/allocations/
    # URL: ws://localhost:8000/ws/driver/<id>/allocations/
    re_path(
        r"ws/(?P<owner_type>company|driver)/(?P<owner_id>\d+)/allocations/$",
        AllocationEventsConsumer.as_asgi(),
        name="allocation-events-ws"
    ),
]
