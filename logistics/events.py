"""
LOGISTICS App - Real-time Event Broadcasting

Pushes ride offers and ride status changes through Django Channels.
Polling stays the source of truth; these events only save a round trip.
"""

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

logger = logging.getLogger(__name__)


def courier_group(courier_id) -> str:
    return f'courier_{courier_id}'


def ride_group(ride_id) -> str:
    return f'ride_{ride_id}'


def _send_group_event(group_name: str, event: dict) -> bool:
    """Send event to a channel group. A broken layer never breaks the caller."""
    channel_layer = get_channel_layer()
    if not channel_layer:
        return False

    try:
        async_to_sync(channel_layer.group_send)(group_name, event)
        return True
    except Exception as e:
        logger.error(f"[EVENTS] Failed to send to group {group_name}: {e}")
        return False


# ============================================
# COURIER EVENTS
# ============================================

def notify_ride_offer(exposure) -> bool:
    """Tell a courier a ride is on offer to them for the visibility window."""
    ride = exposure.ride
    return _send_group_event(
        courier_group(exposure.courier_id),
        {
            'type': 'ride_offer',
            'ride_id': str(ride.id),
            'service_kind': ride.service_kind,
            'origin': ride.origin,
            'destination': ride.destination,
            'price': str(ride.price),
            'exposed_at': exposure.exposed_at.isoformat(),
        }
    )


def notify_offer_withdrawn(courier_id, ride_id) -> bool:
    return _send_group_event(
        courier_group(courier_id),
        {
            'type': 'ride_offer_withdrawn',
            'ride_id': str(ride_id),
        }
    )


# ============================================
# RIDE EVENTS
# ============================================

def broadcast_ride_status(ride_id, new_status: str, message: str = "") -> bool:
    """Notify the client and courier watching this ride."""
    sent = _send_group_event(
        ride_group(ride_id),
        {
            'type': 'ride_status_update',
            'ride_id': str(ride_id),
            'status': new_status,
            'timestamp': timezone.now().isoformat(),
            'message': message,
        }
    )
    logger.debug(f"[EVENTS] Ride {str(ride_id)[:8]} status → {new_status}")
    return sent
