"""
Courier Directory - liveness, category and penalty rules.

A courier is eligible for an offer when:
- approved by an admin
- online (heartbeat renewed within COURIER_ONLINE_TTL_SECONDS)
- not serving a penalty (blocked_until absent or in the past)
- category matches the ride, or the courier is GENERAL
"""

import logging
import math
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.conf import settings
from django.db.models import Q, QuerySet
from django.utils import timezone

from .models import CourierCategory, User, UserRole

logger = logging.getLogger(__name__)


class CourierNotFoundError(Exception):
    """Raised when a courier id does not match any courier."""

    def __init__(self, courier_id):
        self.courier_id = courier_id
        super().__init__(f"Courier {courier_id} not found")


def _couriers() -> QuerySet:
    return User.objects.filter(role=UserRole.COURIER)


def _coordinate(value) -> Optional[Decimal]:
    """Numeric and finite, or None. Strings like "-23.5" are accepted."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    try:
        return Decimal(str(round(number, 6)))
    except InvalidOperation:
        return None


def set_online(courier_id, latitude=None, longitude=None) -> User:
    """
    Heartbeat: keep the courier online for another TTL window.

    The position is only written when both coordinates are valid, so a
    heartbeat without GPS never erases the last known position.
    """
    now = timezone.now()
    fields = {'online_until': now + timedelta(seconds=settings.COURIER_ONLINE_TTL_SECONDS)}

    lat = _coordinate(latitude)
    lng = _coordinate(longitude)
    if lat is not None and lng is not None and abs(lat) <= 90 and abs(lng) <= 180:
        fields.update(latitude=lat, longitude=lng, last_location_updated=now)

    if not _couriers().filter(pk=courier_id).update(**fields):
        raise CourierNotFoundError(courier_id)

    # Penalty already served: drop it
    _couriers().filter(pk=courier_id, blocked_until__lte=now).update(blocked_until=None)

    return User.objects.get(pk=courier_id)


def set_offline(courier_id) -> None:
    if not _couriers().filter(pk=courier_id).update(online_until=None):
        raise CourierNotFoundError(courier_id)
    logger.info(f"[COURIER] {courier_id} went offline")


def eligibility_filter(category: str, now=None) -> Q:
    """Q object matching couriers eligible for `category` at `now`."""
    now = now or timezone.now()
    return (
        Q(role=UserRole.COURIER, is_active=True, is_approved=True, online_until__gt=now)
        & (Q(blocked_until__isnull=True) | Q(blocked_until__lte=now))
        & Q(courier_category__in=[category, CourierCategory.GENERAL])
    )


def eligible_couriers(category: str) -> QuerySet:
    return User.objects.filter(eligibility_filter(category))


def is_eligible(courier_id, category: str) -> bool:
    if not _couriers().filter(pk=courier_id).exists():
        raise CourierNotFoundError(courier_id)
    return User.objects.filter(eligibility_filter(category), pk=courier_id).exists()


def penalize(courier_id, duration: Optional[timedelta] = None) -> User:
    """
    Block the courier from new offers for `duration`
    (COURIER_PENALTY_MINUTES when not given).
    """
    if duration is None:
        duration = timedelta(minutes=settings.COURIER_PENALTY_MINUTES)

    blocked_until = timezone.now() + duration
    if not _couriers().filter(pk=courier_id).update(blocked_until=blocked_until):
        raise CourierNotFoundError(courier_id)

    logger.info(f"[COURIER] {courier_id} blocked until {blocked_until:%H:%M:%S}")
    return User.objects.get(pk=courier_id)
