"""
LOGISTICS App - Dispatch Sweep

The periodic pass that keeps pending rides moving:
1. watchdog: PENDING rides past RIDE_PENDING_TIMEOUT_MINUTES expire
2. exposures of rides that left PENDING are dropped
3. for each pending ride:
   - no open offer → dispatch (new couriers may be online)
   - every open offer aged past the window → lapse, penalize, dispatch
   - otherwise someone still has the offer: wait

Idempotent per tick. One ride failing does not stop the others.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from core.courier_directory import CourierNotFoundError, penalize
from logistics.exceptions import RideNotFoundError
from logistics.models import Ride, RideExposure, RideStatus
from logistics.services.dispatch import dispatch_ride
from logistics.services.exposure import clear_stale_exposures
from logistics.services.lifecycle import RideResult, expire_stale_rides

logger = logging.getLogger(__name__)

LAST_SWEEP_CACHE_KEY = 'logistics:last-sweep-at'


@dataclass
class SweepReport:
    expired_rides: int = 0
    cleared_exposures: int = 0
    lapsed_exposures: int = 0
    dispatched: int = 0
    failures: int = 0

    @property
    def is_empty(self) -> bool:
        return not any((
            self.expired_rides,
            self.cleared_exposures,
            self.lapsed_exposures,
            self.dispatched,
            self.failures,
        ))


def _lapse(exposure_id, courier_id, now) -> bool:
    """Mark one exposure lapsed and penalize its courier. False if someone beat us to it."""
    with transaction.atomic():
        if not RideExposure.objects.filter(pk=exposure_id, lapsed_at__isnull=True).update(lapsed_at=now):
            return False
        try:
            penalize(courier_id)
        except CourierNotFoundError:
            logger.warning(f"[SWEEP] Courier {courier_id} vanished before penalty")
    return True


def reconcile_ride(ride_id, now=None) -> Tuple[int, int]:
    """
    Bring one pending ride's offers up to date.

    Returns:
        (exposures lapsed, couriers newly exposed)
    """
    now = now or timezone.now()
    exposures = RideExposure.objects.filter(ride_id=ride_id)

    open_count = exposures.unlapsed().count()
    if open_count == 0:
        return 0, dispatch_ride(ride_id)

    aged = list(exposures.aged(now).values_list('pk', 'courier_id'))
    if len(aged) < open_count:
        return 0, 0

    lapsed = sum(1 for exposure_id, courier_id in aged if _lapse(exposure_id, courier_id, now))
    if lapsed:
        logger.info(f"[SWEEP] Ride {str(ride_id)[:8]}: {lapsed} offer(s) lapsed")
    return lapsed, dispatch_ride(ride_id)


def run_sweep(now=None) -> SweepReport:
    """One tick of the dispatch loop."""
    now = now or timezone.now()
    report = SweepReport()

    report.expired_rides = expire_stale_rides(now)
    report.cleared_exposures = clear_stale_exposures()

    pending_ids = list(
        Ride.objects.filter(status=RideStatus.PENDING)
        .order_by('created_at')
        .values_list('id', flat=True)
    )

    for ride_id in pending_ids:
        try:
            lapsed, dispatched = reconcile_ride(ride_id, now)
        except RideNotFoundError:
            continue
        except Exception:
            report.failures += 1
            logger.exception(f"[SWEEP] Ride {str(ride_id)[:8]} failed")
            continue
        report.lapsed_exposures += lapsed
        report.dispatched += dispatched

    cache.set(LAST_SWEEP_CACHE_KEY, now.isoformat(), timeout=None)

    if not report.is_empty:
        logger.info(
            f"[SWEEP] expired={report.expired_rides} cleared={report.cleared_exposures} "
            f"lapsed={report.lapsed_exposures} dispatched={report.dispatched} "
            f"failures={report.failures}"
        )
    return report


def expire_exposure(ride_id, courier) -> RideResult:
    """
    Courier's own offer screen timed out (or they declined).

    Same as the sweep lapsing this one offer, without waiting for the
    window: lapse it, penalize the courier, offer the ride to someone else.
    """
    if not Ride.objects.filter(pk=ride_id).exists():
        raise RideNotFoundError(ride_id)

    now = timezone.now()
    exposure = RideExposure.objects.filter(
        ride_id=ride_id,
        courier_id=courier.pk,
        lapsed_at__isnull=True,
    ).first()

    if exposure is None or not _lapse(exposure.pk, courier.pk, now):
        return RideResult(
            success=False,
            message="Nenhuma oferta ativa para esta corrida.",
            error_code='no_active_offer',
        )

    logger.info(f"[SWEEP] Courier {courier.phone_number} let ride {str(ride_id)[:8]} go")

    try:
        reconcile_ride(ride_id, now)
    except Exception:
        logger.exception(f"[SWEEP] Re-dispatch after expire failed for {str(ride_id)[:8]}")

    return RideResult(success=True, message="Oferta encerrada.")
