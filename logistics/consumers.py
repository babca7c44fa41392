"""
LOGISTICS App - WebSocket Consumers

Provides real-time updates for:
- Couriers: ride offers and withdrawn offers
- Ride tracking: status changes for the client and courier of a ride

HTTP polling stays authoritative. A client that misses an event catches
up on its next poll.
"""

import logging
from typing import Any, Dict, Optional

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from logistics.events import courier_group, ride_group

logger = logging.getLogger(__name__)


class CourierConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for the courier app.

    Clients connect to: ws://host/ws/courier/?token=<jwt>

    Events received by courier:
    - ride_offer: a ride is on offer to them
    - ride_offer_withdrawn: the ride was taken, cancelled or expired
    """

    group_name = None

    async def connect(self):
        user = self.scope.get('user')
        if not await self.is_approved_courier(user):
            await self.close(code=4003)
            return

        self.group_name = courier_group(user.pk)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

        await self.send_json({
            'type': 'connection_established',
            'courier_id': str(user.pk),
            'message': 'Conectado. Você receberá as ofertas de corrida aqui.',
        })
        logger.info(f"[WS] Courier {user.phone_number} connected")

    async def disconnect(self, close_code):
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)
            logger.info(f"[WS] Courier group {self.group_name} disconnected ({close_code})")

    async def receive_json(self, content):
        if content.get('type') == 'ping':
            await self.send_json({'type': 'pong'})

    # ============================================
    # Event Handlers (called via channel_layer.group_send)
    # ============================================

    async def ride_offer(self, event):
        await self.send_json({
            'type': 'ride_offer',
            'ride_id': event['ride_id'],
            'service_kind': event['service_kind'],
            'origin': event['origin'],
            'destination': event['destination'],
            'price': event['price'],
            'exposed_at': event['exposed_at'],
        })

    async def ride_offer_withdrawn(self, event):
        await self.send_json({
            'type': 'ride_offer_withdrawn',
            'ride_id': event['ride_id'],
        })

    # ============================================
    # Database helpers
    # ============================================

    @database_sync_to_async
    def is_approved_courier(self, user) -> bool:
        return bool(
            user
            and user.is_authenticated
            and user.is_courier
            and user.is_approved
        )


class RideTrackingConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for following one ride.

    Clients connect to: ws://host/ws/rides/<ride_id>/?token=<jwt>
    Only the ride's client, its courier and admins may listen.
    """

    ride_id = None
    room_group_name = None

    async def connect(self):
        self.ride_id = self.scope['url_route']['kwargs']['ride_id']
        ride = await self.get_ride_for_user(self.scope.get('user'))
        if ride is None:
            await self.close(code=4004)
            return

        self.room_group_name = ride_group(self.ride_id)
        await self.channel_layer.group_add(self.room_group_name, self.channel_name)
        await self.accept()

        await self.send_json({
            'type': 'connection_established',
            'ride_id': self.ride_id,
            'status': ride['status'],
        })
        logger.info(f"[WS] Listener connected to ride {self.ride_id[:8]}")

    async def disconnect(self, close_code):
        if self.room_group_name:
            await self.channel_layer.group_discard(self.room_group_name, self.channel_name)

    async def receive_json(self, content):
        if content.get('type') == 'ping':
            await self.send_json({'type': 'pong'})

    async def ride_status_update(self, event):
        await self.send_json({
            'type': 'status_update',
            'status': event['status'],
            'timestamp': event['timestamp'],
            'message': event.get('message', ''),
        })

    @database_sync_to_async
    def get_ride_for_user(self, user) -> Optional[Dict[str, Any]]:
        from django.core.exceptions import ValidationError
        from core.models import UserRole
        from logistics.models import Ride

        if not user or not user.is_authenticated:
            return None
        try:
            ride = Ride.objects.get(pk=self.ride_id)
        except (Ride.DoesNotExist, ValidationError):
            return None

        if user.role != UserRole.ADMIN and user.pk not in (ride.client_id, ride.courier_id):
            return None
        return {'status': ride.status}
