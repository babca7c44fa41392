"""
LOGISTICS App - Exposure Ledger

Which courier currently holds an offer for which ride, and the
courier-facing poll that reads it.
"""

import logging
from typing import Any, Dict

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.courier_directory import CourierNotFoundError
from core.models import CourierCategory, User, UserRole
from logistics.events import notify_offer_withdrawn
from logistics.models import RideExposure, RideStatus, SERVICE_KIND_CATEGORY

logger = logging.getLogger(__name__)


def visible_service_kinds(category: str):
    """Service kinds a courier of `category` may be offered (None = all)."""
    if category == CourierCategory.GENERAL:
        return None
    return [kind for kind, required in SERVICE_KIND_CATEGORY.items() if required == category]


def poll_for_ride(courier_id) -> Dict[str, Any]:
    """
    What should this courier see right now?

    Returns one of:
    - {'status': 'blocked', 'minutes': N}  (N rounded up)
    - {'status': 'offline'}
    - {'status': 'offer', 'ride': {...}, 'expires_in': seconds}
    - {'status': 'idle'}

    Read-only: never creates or touches exposure rows.
    """
    try:
        courier = User.objects.get(pk=courier_id, role=UserRole.COURIER)
    except User.DoesNotExist:
        raise CourierNotFoundError(courier_id)

    if courier.is_blocked:
        return {'status': 'blocked', 'minutes': courier.block_minutes_remaining}

    if not courier.is_online:
        return {'status': 'offline'}

    now = timezone.now()
    exposures = (
        RideExposure.objects.live(now)
        .filter(courier_id=courier.pk, ride__status=RideStatus.PENDING)
        .select_related('ride', 'ride__client')
        .order_by('exposed_at')
    )
    kinds = visible_service_kinds(courier.courier_category)
    if kinds is not None:
        exposures = exposures.filter(ride__service_kind__in=kinds)

    exposure = exposures.first()
    if exposure is None:
        return {'status': 'idle'}

    ride = exposure.ride
    age = (now - exposure.exposed_at).total_seconds()
    return {
        'status': 'offer',
        'expires_in': max(0, int(settings.EXPOSURE_WINDOW_SECONDS - age)),
        'ride': {
            'id': str(ride.id),
            'service_kind': ride.service_kind,
            'origin': ride.origin,
            'destination': ride.destination,
            'price': str(ride.price),
            'created_at': ride.created_at.isoformat(),
            'client_name': ride.client.full_name,
            'client_phone': ride.client.phone_number,
        },
    }


def clear_exposures(ride_id) -> int:
    """
    Drop every exposure of a ride (it left PENDING).
    Couriers still looking at the offer are told it is gone.
    """
    courier_ids = list(
        RideExposure.objects.filter(ride_id=ride_id).values_list('courier_id', flat=True)
    )
    if not courier_ids:
        return 0

    deleted, _ = RideExposure.objects.filter(ride_id=ride_id).delete()

    def _notify():
        for courier_id in courier_ids:
            notify_offer_withdrawn(courier_id, ride_id)

    transaction.on_commit(_notify)
    return deleted


def clear_stale_exposures() -> int:
    """Drop exposures whose ride is no longer PENDING."""
    deleted, _ = RideExposure.objects.exclude(ride__status=RideStatus.PENDING).delete()
    if deleted:
        logger.info(f"[EXPOSURE] Removed {deleted} exposures of rides no longer pending")
    return deleted
