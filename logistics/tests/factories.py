"""
Shared builders for ride tests.
"""

from datetime import timedelta
from decimal import Decimal
from itertools import count

from django.utils import timezone

from core.models import CourierCategory, User, UserRole
from logistics.models import Ride, RideExposure, RideStatus, ServiceKind

_phones = count(1)


def next_phone() -> str:
    return f"+55119{next(_phones):08d}"


def make_client(**extra) -> User:
    extra.setdefault('full_name', 'Cliente Teste')
    return User.objects.create_user(
        phone_number=next_phone(),
        password='testpass123',
        role=UserRole.CLIENT,
        is_approved=True,
        **extra
    )


def make_courier(online=True, category=CourierCategory.GENERAL, **extra) -> User:
    extra.setdefault('full_name', 'Motoboy Teste')
    extra.setdefault('is_approved', True)
    if online:
        extra.setdefault('online_until', timezone.now() + timedelta(seconds=60))
    return User.objects.create_user(
        phone_number=next_phone(),
        password='testpass123',
        role=UserRole.COURIER,
        courier_category=category,
        **extra
    )


def make_admin() -> User:
    return User.objects.create_superuser(phone_number=next_phone(), password='testpass123')


def make_ride(client, service_kind=ServiceKind.DELIVERY, price='20.00', **extra) -> Ride:
    """A ride row only; no dispatch happens."""
    return Ride.objects.create(
        client=client,
        origin=extra.pop('origin', 'Av. Paulista, 1000'),
        destination=extra.pop('destination', 'Rua Augusta, 500'),
        service_kind=service_kind,
        price=Decimal(price),
        **extra
    )


def make_assigned_ride(client, courier, status=RideStatus.AWAITING_PAYMENT, **extra) -> Ride:
    extra.setdefault('assigned_at', timezone.now())
    return make_ride(client, courier=courier, status=status, **extra)


def expose(ride, courier, seconds_ago=0, lapsed=False) -> RideExposure:
    now = timezone.now()
    return RideExposure.objects.create(
        ride=ride,
        courier=courier,
        cycle=ride.dispatch_cycle,
        exposed_at=now - timedelta(seconds=seconds_ago),
        lapsed_at=now if lapsed else None,
    )
