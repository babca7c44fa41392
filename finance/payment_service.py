"""
Ride Payment Service for Falcões

Maps the client's payment choice and the provider's callbacks onto the
ride lifecycle:
- CASH: ride is released immediately
- PIX: a Mercado Pago charge is created, the ride waits in
  AWAITING_PAYMENT until the webhook reports the outcome
"""

import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone

from finance.mercadopago_service import MercadoPagoService
from finance.models import RidePayment, RidePaymentStatus
from logistics.exceptions import InvalidRideDataError
from logistics.models import PaymentMethod, Ride, RideStatus
from logistics.services.lifecycle import (
    RideResult,
    cancel_ride,
    get_ride,
    release_ride,
)

logger = logging.getLogger(__name__)


PAYMENT_REJECTED_REASON = '[PAYMENT] Pagamento não aprovado'

# Mercado Pago status → our status
STATUS_MAP = {
    'approved': RidePaymentStatus.APPROVED,
    'rejected': RidePaymentStatus.REJECTED,
    'cancelled': RidePaymentStatus.CANCELLED,
    'pending': RidePaymentStatus.PENDING,
    'in_process': RidePaymentStatus.PENDING,
    'authorized': RidePaymentStatus.PENDING,
    'in_mediation': RidePaymentStatus.PENDING,
}


class PaymentProviderError(Exception):
    """The payment provider failed or timed out."""
    pass


def choose_payment(ride_id, payment_method: str) -> dict:
    """
    Client picks how to pay for an accepted ride.

    Returns:
        Dict with success, payment_method and, for PIX, the QR payload

    Raises:
        InvalidRideDataError: Unknown payment method
        PaymentProviderError: Mercado Pago failed; the ride is untouched
    """
    if payment_method == PaymentMethod.CASH:
        result = release_ride(ride_id, PaymentMethod.CASH)
        return {
            'success': result.success,
            'payment_method': PaymentMethod.CASH,
            'message': result.message,
            'error_code': result.error_code,
        }

    if payment_method == PaymentMethod.PIX:
        return start_pix_payment(ride_id)

    raise InvalidRideDataError(f"Forma de pagamento inválida: {payment_method}")


def start_pix_payment(ride_id) -> dict:
    """Create (or reuse) the PIX charge of a ride awaiting payment."""
    ride = get_ride(ride_id)

    if ride.status != RideStatus.AWAITING_PAYMENT:
        return {
            'success': False,
            'payment_method': PaymentMethod.PIX,
            'message': "Corrida não está aguardando pagamento.",
            'error_code': 'invalid_status',
        }

    payment = RidePayment.objects.filter(ride=ride, status=RidePaymentStatus.PENDING).first()

    if payment is None:
        # No DB transaction is held across the HTTP call
        result = MercadoPagoService.create_pix_payment(
            amount=ride.price,
            external_reference=str(ride.id),
            description=f"Corrida Falcões #{str(ride.id)[:8]}",
            payer_email=ride.client.email or None,
        )
        if not result.get('success'):
            raise PaymentProviderError(result.get('error', 'Mercado Pago error'))

        payment, _ = RidePayment.objects.get_or_create(
            provider_payment_id=result['payment_id'],
            defaults={
                'ride': ride,
                'amount': ride.price,
                'provider_status': result.get('status', ''),
                'qr_code': result.get('qr_code', ''),
                'qr_code_base64': result.get('qr_code_base64', ''),
            }
        )
        logger.info(f"[PAYMENT] PIX {payment.provider_payment_id} created for ride {str(ride.id)[:8]}")

    return {
        'success': True,
        'payment_method': PaymentMethod.PIX,
        'payment_id': payment.provider_payment_id,
        'pix_copia_cola': payment.qr_code,
        'pix_qr_base64': payment.qr_code_base64,
    }


def process_callback(
    ride_id,
    provider_payment_id: str,
    status: str,
    raw_data: Optional[dict] = None,
) -> Optional[RideResult]:
    """
    Apply a settlement outcome reported by the provider.

    approved → release the ride; rejected/cancelled → cancel it.
    The same outcome delivered twice is applied once: a payment already in
    a final status is left alone.

    Returns:
        The ride transition result, or None when nothing was applied
    """
    new_status = STATUS_MAP.get((status or '').lower(), RidePaymentStatus.PENDING)

    with transaction.atomic():
        ride = Ride.objects.select_for_update().filter(pk=ride_id).first()
        if ride is None:
            logger.warning(f"[PAYMENT] Callback for unknown ride {ride_id}")
            return None

        payment = RidePayment.objects.select_for_update().filter(
            provider_payment_id=provider_payment_id
        ).first()
        if payment is None:
            payment = RidePayment.objects.create(
                ride=ride,
                provider_payment_id=provider_payment_id,
                amount=ride.price,
            )

        if payment.ride_id != ride.pk:
            logger.warning(
                f"[PAYMENT] Payment {provider_payment_id} belongs to ride {payment.ride_id}, not {ride_id}"
            )
            return None

        # Already processed - idempotency check
        if payment.is_final:
            logger.info(f"[PAYMENT] Already processed: {provider_payment_id} = {payment.status}")
            return None

        payment.status = new_status
        payment.provider_status = status or ''
        payment.callback_received = True
        payment.callback_data = raw_data
        if new_status == RidePaymentStatus.APPROVED:
            payment.confirmed_at = timezone.now()
        payment.save()

        logger.info(f"[PAYMENT] Callback processed: {provider_payment_id} -> {new_status}")

        if new_status == RidePaymentStatus.APPROVED:
            result = release_ride(ride.pk, PaymentMethod.PIX)
        elif new_status in (RidePaymentStatus.REJECTED, RidePaymentStatus.CANCELLED):
            result = cancel_ride(ride.pk, reason=PAYMENT_REJECTED_REASON, actor=None)
        else:
            return None

    if not result.success:
        logger.warning(
            f"[PAYMENT] Ride {str(ride_id)[:8]} could not move on {new_status}: {result.error_code}"
        )
    return result
