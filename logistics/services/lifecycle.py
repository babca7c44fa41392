"""
Ride lifecycle operations.

PENDING → AWAITING_PAYMENT → RELEASED → IN_PROGRESS → COMPLETED
Any non-terminal state → CANCELLED. PENDING → EXPIRED (watchdog).

Every transition is a conditional UPDATE on the current status, so two
callers racing for the same ride cannot both win. Losing a race is a
normal outcome: it comes back as RideResult(success=False), not an
exception.
"""

import logging
import random
import string
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Exists
from django.utils import timezone

from core.courier_directory import penalize
from core.models import UserRole
from finance.services import settle_ride
from logistics.events import broadcast_ride_status
from logistics.exceptions import InvalidRideDataError, RideNotFoundError
from logistics.models import (
    ACTIVE_RIDE_STATUSES,
    CancelledBy,
    PaymentMethod,
    Ride,
    RideExposure,
    RideStatus,
)
from logistics.services.dispatch import dispatch_ride
from logistics.services.exposure import clear_exposures

logger = logging.getLogger(__name__)


SYSTEM_TIMEOUT_REASON = '[SYSTEM] Encerrada por timeout'

CANCELLABLE_STATUSES = (
    RideStatus.PENDING,
    RideStatus.AWAITING_PAYMENT,
    RideStatus.RELEASED,
    RideStatus.IN_PROGRESS,
)

# Guard failure codes
RIDE_UNAVAILABLE = 'ride_unavailable'
COURIER_BUSY = 'courier_busy'
INVALID_STATUS = 'invalid_status'
PAYMENT_PENDING = 'payment_pending'
NOT_YOUR_RIDE = 'not_your_ride'
WRONG_SECURITY_CODE = 'wrong_security_code'
NOT_ALLOWED = 'not_allowed'


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Ride] = None
    message: str = ""
    error_code: Optional[str] = None


def _failure(error_code: str, message: str, ride: Optional[Ride] = None) -> RideResult:
    return RideResult(success=False, ride=ride, message=message, error_code=error_code)


def get_ride(ride_id) -> Ride:
    try:
        return Ride.objects.select_related('client', 'courier').get(pk=ride_id)
    except (Ride.DoesNotExist, ValidationError, ValueError):
        raise RideNotFoundError(ride_id)


def _notify_status(ride_id, new_status: str, message: str = ""):
    transaction.on_commit(lambda: broadcast_ride_status(ride_id, new_status, message))


def generate_security_code() -> str:
    return ''.join(random.choices(string.digits, k=4))


# ===================== Client Operations =====================

def create_ride(client, origin: str, destination: str, price, service_kind: str) -> Ride:
    """
    Create a PENDING ride and offer it to a courier right away.

    Raises:
        InvalidRideDataError: Missing route, non-positive price or empty kind
    """
    origin = (origin or '').strip()
    destination = (destination or '').strip()
    service_kind = (service_kind or '').strip()

    if not origin or not destination:
        raise InvalidRideDataError("Origem e destino são obrigatórios")
    if not service_kind:
        raise InvalidRideDataError("Tipo de serviço é obrigatório")
    try:
        price = Decimal(str(price))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRideDataError("Valor inválido")
    if not price.is_finite() or price <= 0:
        raise InvalidRideDataError("Valor deve ser maior que zero")

    ride = Ride.objects.create(
        client=client,
        origin=origin,
        destination=destination,
        price=price.quantize(Decimal('0.01')),
        service_kind=service_kind,
    )
    logger.info(f"[RIDE] {str(ride.id)[:8]} created by {client.phone_number} ({service_kind}, R$ {ride.price})")

    # The sweep retries on its next tick if this fails
    try:
        dispatch_ride(ride.id)
    except Exception:
        logger.exception(f"[RIDE] Initial dispatch failed for {str(ride.id)[:8]}")

    return ride


def release_ride(ride_id, payment_method: str) -> RideResult:
    """Payment settled (or cash chosen): AWAITING_PAYMENT → RELEASED."""
    if payment_method not in PaymentMethod.values:
        raise InvalidRideDataError(f"Forma de pagamento inválida: {payment_method}")

    now = timezone.now()
    code = generate_security_code() if settings.RIDE_SECURITY_CODE_ENABLED else ''

    updated = Ride.objects.filter(
        pk=ride_id,
        status=RideStatus.AWAITING_PAYMENT,
    ).update(
        status=RideStatus.RELEASED,
        payment_method=payment_method,
        security_code=code,
        released_at=now,
    )

    ride = get_ride(ride_id)
    if not updated:
        return _failure(INVALID_STATUS, "Corrida não está aguardando pagamento.", ride)

    logger.info(f"[RIDE] {str(ride_id)[:8]} released ({payment_method})")
    _notify_status(ride_id, RideStatus.RELEASED, "Pagamento confirmado")
    return RideResult(success=True, ride=ride, message="Corrida liberada.")


# ===================== Courier Operations =====================

def assign_ride(ride_id, courier) -> RideResult:
    """
    Courier accepts a ride.

    One guarded UPDATE: the ride must still be PENDING and the courier must
    have no other active ride. The partial unique index on active rides
    backs the second condition when the same courier accepts two rides at
    once.
    """
    if not Ride.objects.filter(pk=ride_id).exists():
        raise RideNotFoundError(ride_id)

    now = timezone.now()
    busy = Ride.objects.filter(courier_id=courier.pk, status__in=ACTIVE_RIDE_STATUSES)

    try:
        with transaction.atomic():
            updated = (
                Ride.objects
                .filter(pk=ride_id, status=RideStatus.PENDING)
                .filter(~Exists(busy))
                .update(
                    status=RideStatus.AWAITING_PAYMENT,
                    courier_id=courier.pk,
                    assigned_at=now,
                )
            )
            if updated:
                clear_exposures(ride_id)
    except IntegrityError:
        updated = 0

    if not updated:
        if busy.exists():
            return _failure(COURIER_BUSY, "Você já tem uma corrida em andamento.")
        return _failure(RIDE_UNAVAILABLE, "Corrida não está mais disponível.")

    logger.info(f"[RIDE] {str(ride_id)[:8]} accepted by courier {courier.phone_number}")
    _notify_status(ride_id, RideStatus.AWAITING_PAYMENT, "Motoboy a caminho")
    return RideResult(success=True, ride=get_ride(ride_id), message="Corrida aceita!")


def start_ride(ride_id, courier) -> RideResult:
    """RELEASED → IN_PROGRESS, assigned courier only."""
    updated = Ride.objects.filter(
        pk=ride_id,
        courier_id=courier.pk,
        status=RideStatus.RELEASED,
    ).update(
        status=RideStatus.IN_PROGRESS,
        started_at=timezone.now(),
    )

    ride = get_ride(ride_id)
    if not updated:
        if ride.courier_id != courier.pk:
            return _failure(NOT_YOUR_RIDE, "Esta corrida não pertence a você.", ride)
        return _failure(PAYMENT_PENDING, "Pagamento pendente. Aguarde a liberação.", ride)

    logger.info(f"[RIDE] {str(ride_id)[:8]} started")
    _notify_status(ride_id, RideStatus.IN_PROGRESS, "Corrida iniciada")
    return RideResult(success=True, ride=ride, message="Corrida iniciada.")


def complete_ride(ride_id, courier, security_code: Optional[str] = None) -> RideResult:
    """
    Finish the ride and settle the courier's wallet in one transaction.

    Cash: the courier already holds the fare, the commission is debited.
    PIX: the platform holds the fare, the net earning is credited.
    """
    with transaction.atomic():
        ride = Ride.objects.select_for_update().filter(pk=ride_id).first()
        if ride is None:
            raise RideNotFoundError(ride_id)

        if ride.courier_id != courier.pk:
            return _failure(NOT_YOUR_RIDE, "Esta corrida não pertence a você.", ride)

        if ride.status not in (RideStatus.RELEASED, RideStatus.IN_PROGRESS):
            return _failure(INVALID_STATUS, "Corrida não pode ser finalizada neste status.", ride)

        if ride.security_code and str(security_code or '').strip() != ride.security_code:
            return _failure(WRONG_SECURITY_CODE, "Código de segurança incorreto. Peça novamente ao cliente.", ride)

        settle_ride(ride)

        ride.status = RideStatus.COMPLETED
        ride.completed_at = timezone.now()
        ride.save(update_fields=['status', 'completed_at', 'platform_fee', 'courier_earning'])

    logger.info(
        f"[RIDE] {str(ride_id)[:8]} completed | fee R$ {ride.platform_fee} | "
        f"courier R$ {ride.courier_earning}"
    )
    _notify_status(ride_id, RideStatus.COMPLETED, "Corrida finalizada")
    return RideResult(success=True, ride=ride, message="Corrida finalizada!")


# ===================== Cancellation =====================

def _actor_role(ride: Ride, actor) -> Optional[str]:
    if actor is None:
        return CancelledBy.SYSTEM
    if actor.role == UserRole.ADMIN or actor.is_staff:
        return CancelledBy.ADMIN
    if ride.courier_id and actor.pk == ride.courier_id:
        return CancelledBy.COURIER
    if actor.pk == ride.client_id:
        return CancelledBy.CLIENT
    return None


DEFAULT_CANCEL_REASONS = {
    CancelledBy.CLIENT: 'Cancelada pelo cliente',
    CancelledBy.COURIER: 'Cancelada pelo motoboy',
    CancelledBy.ADMIN: 'Cancelada pelo administrador',
    CancelledBy.SYSTEM: '[SYSTEM] Cancelada pelo sistema',
}


def cancel_ride(ride_id, reason: str = '', actor=None) -> RideResult:
    """
    Cancel a non-terminal ride.

    actor=None means the system (e.g. payment rejected). A courier who
    cancels their own ride is penalized.
    """
    ride = get_ride(ride_id)
    role = _actor_role(ride, actor)
    if role is None:
        return _failure(NOT_ALLOWED, "Você não pode cancelar esta corrida.", ride)

    rides = Ride.objects.filter(pk=ride_id, status__in=CANCELLABLE_STATUSES)
    if role == CancelledBy.COURIER:
        rides = rides.filter(courier_id=actor.pk)

    with transaction.atomic():
        updated = rides.update(
            status=RideStatus.CANCELLED,
            cancellation_reason=(reason or DEFAULT_CANCEL_REASONS[role])[:255],
            cancelled_by=role,
            cancelled_at=timezone.now(),
        )
        if updated:
            clear_exposures(ride_id)
            if role == CancelledBy.COURIER:
                penalize(actor.pk)

    if not updated:
        return _failure(RIDE_UNAVAILABLE, "Corrida não está mais disponível.", get_ride(ride_id))

    logger.info(f"[RIDE] {str(ride_id)[:8]} cancelled by {role}")
    _notify_status(ride_id, RideStatus.CANCELLED, reason)
    return RideResult(success=True, ride=get_ride(ride_id), message="Corrida cancelada.")


def expire_stale_rides(now=None) -> int:
    """
    Watchdog: PENDING rides older than RIDE_PENDING_TIMEOUT_MINUTES are
    closed as EXPIRED with a system reason.
    """
    now = now or timezone.now()
    cutoff = now - timedelta(minutes=settings.RIDE_PENDING_TIMEOUT_MINUTES)

    stale_ids = list(
        Ride.objects.filter(status=RideStatus.PENDING, created_at__lt=cutoff)
        .values_list('id', flat=True)
    )
    if not stale_ids:
        return 0

    with transaction.atomic():
        expired = Ride.objects.filter(
            pk__in=stale_ids,
            status=RideStatus.PENDING,
        ).update(
            status=RideStatus.EXPIRED,
            cancellation_reason=SYSTEM_TIMEOUT_REASON,
            cancelled_by=CancelledBy.SYSTEM,
            cancelled_at=now,
        )
        RideExposure.objects.filter(
            ride_id__in=stale_ids,
            ride__status=RideStatus.EXPIRED,
        ).delete()

    for ride_id in stale_ids:
        _notify_status(ride_id, RideStatus.EXPIRED, SYSTEM_TIMEOUT_REASON)

    logger.warning(f"[RIDE] {expired} pending rides expired by watchdog")
    return expired
