"""
LOGISTICS App - WebSocket Routing Configuration
"""

from django.urls import re_path
from . import consumers


websocket_urlpatterns = [
    # Courier app - ride offers
    # ws://localhost:8000/ws/courier/?token=<jwt>
    re_path(
        r'ws/courier/$',
        consumers.CourierConsumer.as_asgi()
    ),

    # Follow one ride (client, courier, admin)
    # ws://localhost:8000/ws/rides/<uuid>/?token=<jwt>
    re_path(
        r'ws/rides/(?P<ride_id>[0-9a-f-]+)/$',
        consumers.RideTrackingConsumer.as_asgi()
    ),
]
