"""
LOGISTICS App - Dispatch Service for Falcões

Single-offer dispatch: each pending ride is shown to exactly one courier
at a time. When that courier lets the offer lapse, the sweep calls us
again and we pick someone else.
"""

import logging
from typing import Optional

from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone

from core.courier_directory import eligible_couriers
from core.models import User
from logistics.events import notify_ride_offer
from logistics.exceptions import RideNotFoundError
from logistics.models import (
    ACTIVE_RIDE_STATUSES,
    Ride,
    RideExposure,
    RideStatus,
)

logger = logging.getLogger(__name__)


def find_candidate_couriers(ride: Ride, now=None) -> QuerySet:
    """
    Couriers who may receive an offer for `ride`.

    Filters:
    - eligible for the ride's category (approved, online, not blocked)
    - no exposure row for this ride in the current cycle
    - not busy with an active ride
    - not already looking at another ride's offer
    """
    now = now or timezone.now()

    busy = Ride.objects.filter(
        status__in=ACTIVE_RIDE_STATUSES,
        courier__isnull=False,
    ).values('courier_id')

    viewing = RideExposure.objects.live(now).exclude(ride_id=ride.pk).values('courier_id')

    return (
        eligible_couriers(ride.required_category)
        .exclude(pk__in=ride.exposures.values('courier_id'))
        .exclude(pk__in=busy)
        .exclude(pk__in=viewing)
    )


def _pick_courier(ride: Ride, now) -> Optional[User]:
    return find_candidate_couriers(ride, now).order_by('?').first()


def dispatch_ride(ride_id) -> int:
    """
    Offer a pending ride to one eligible courier.

    Args:
        ride_id: UUID of the ride

    Returns:
        Number of couriers newly exposed (0 or 1)

    Raises:
        RideNotFoundError: If the ride does not exist
    """
    now = timezone.now()

    with transaction.atomic():
        try:
            ride = Ride.objects.select_for_update().get(pk=ride_id)
        except Ride.DoesNotExist:
            raise RideNotFoundError(ride_id)

        if ride.status != RideStatus.PENDING:
            logger.debug(f"[DISPATCH] Ride {str(ride_id)[:8]} is not PENDING (status: {ride.status})")
            return 0

        if ride.required_category is None:
            logger.warning(
                f"[DISPATCH] Ride {str(ride_id)[:8]} has unknown service kind '{ride.service_kind}'"
            )
            return 0

        # Someone still holds the offer (or the sweep has not lapsed it yet)
        if ride.exposures.unlapsed().exists():
            return 0

        courier = _pick_courier(ride, now)

        if courier is None and ride.exposures.lapsed().exists():
            # Every candidate of this cycle let it lapse: start a new cycle
            ride.exposures.lapsed().delete()
            ride.dispatch_cycle += 1
            ride.save(update_fields=['dispatch_cycle'])
            logger.info(f"[DISPATCH] Ride {str(ride_id)[:8]} starting cycle {ride.dispatch_cycle}")
            courier = _pick_courier(ride, now)

        if courier is None:
            logger.info(f"[DISPATCH] No courier available for ride {str(ride_id)[:8]}")
            return 0

        exposure = RideExposure.objects.create(
            ride=ride,
            courier=courier,
            cycle=ride.dispatch_cycle,
            exposed_at=now,
        )
        transaction.on_commit(lambda: notify_ride_offer(exposure))

    logger.info(
        f"[DISPATCH] Ride {str(ride_id)[:8]} offered to courier {courier.phone_number} "
        f"(cycle {exposure.cycle})"
    )
    return 1
