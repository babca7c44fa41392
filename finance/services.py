"""
FINANCE App - Business Services for Falcões

Settlement of a completed ride on the courier's wallet.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction

from finance.models import TransactionType, WalletService

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')


def calculate_split(price: Decimal) -> tuple:
    """
    Split a fare into (platform_fee, courier_earning).

    PLATFORM_COMMISSION_PERCENT of the price goes to the platform,
    the rest to the courier.
    """
    rate = Decimal(settings.PLATFORM_COMMISSION_PERCENT) / Decimal('100')
    platform_fee = (price * rate).quantize(CENTS, rounding=ROUND_HALF_UP)
    return platform_fee, price - platform_fee


@transaction.atomic
def settle_ride(ride) -> Decimal:
    """
    Move money on the courier's wallet for a ride being completed.

    - CASH: courier kept the whole fare, platform DEBITS the commission
      (balance may go negative)
    - PIX: platform received the fare, courier is CREDITED the net earning

    Sets ride.platform_fee and ride.courier_earning; the caller saves the
    ride in the same transaction.

    Returns:
        Decimal: The courier's new wallet balance
    """
    from logistics.models import PaymentMethod

    courier = ride.courier
    if not courier:
        raise ValueError("A corrida não tem motoboy")

    platform_fee, courier_earning = calculate_split(ride.price)
    ride.platform_fee = platform_fee
    ride.courier_earning = courier_earning

    if ride.payment_method == PaymentMethod.CASH:
        if platform_fee <= 0:
            return courier.wallet_balance
        tx = WalletService.debit(
            user=courier,
            amount=platform_fee,
            transaction_type=TransactionType.COMMISSION,
            ride=ride,
            description=f"Taxa corrida {str(ride.id)[:8]}",
            allow_negative=True
        )
    else:
        if courier_earning <= 0:
            return courier.wallet_balance
        tx = WalletService.credit(
            user=courier,
            amount=courier_earning,
            transaction_type=TransactionType.RIDE_CREDIT,
            ride=ride,
            description=f"Ganho corrida {str(ride.id)[:8]}"
        )

    logger.info(
        f"[WALLET] Ride {str(ride.id)[:8]} | {ride.payment_method} | "
        f"courier {courier.phone_number} | {tx.amount:+} → R$ {tx.balance_after}"
    )
    return tx.balance_after
