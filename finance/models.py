"""
FINANCE App - Wallet & Payment Management for Falcões

Handles: Transactions, Wallet Operations, PIX payments for rides
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models, transaction


class TransactionType(models.TextChoices):
    """Transaction type enumeration."""
    # Credits (+)
    RIDE_CREDIT = 'RIDE_CREDIT', 'Ganho de corrida'

    # Debits (-)
    COMMISSION = 'COMMISSION', 'Taxa da plataforma'


class TransactionStatus(models.TextChoices):
    """Transaction status enumeration."""
    PENDING = 'PENDING', 'Pendente'
    COMPLETED = 'COMPLETED', 'Confirmada'
    FAILED = 'FAILED', 'Falhou'
    REVERSED = 'REVERSED', 'Estornada'


class Transaction(models.Model):
    """
    Financial transaction record.

    All wallet movements must create a Transaction for audit trail.
    Amount can be positive (credit) or negative (debit).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='transactions',
        verbose_name="Usuário"
    )

    # Transaction Details
    transaction_type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
        verbose_name="Tipo"
    )
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        verbose_name="Valor (R$)"
    )
    balance_before = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        verbose_name="Saldo antes"
    )
    balance_after = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        verbose_name="Saldo depois"
    )
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.COMPLETED,
        verbose_name="Status"
    )

    # Related Ride (if applicable)
    ride = models.ForeignKey(
        'logistics.Ride',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='transactions',
        verbose_name="Corrida"
    )

    # Metadata
    description = models.CharField(
        max_length=255,
        blank=True,
        verbose_name="Descrição"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Transação"
        verbose_name_plural = "Transações"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='txn_user_created_idx'),
            models.Index(fields=['transaction_type', 'status'], name='txn_type_status_idx'),
        ]

    def __str__(self):
        sign = '+' if self.amount >= 0 else ''
        return f"{self.user.phone_number} | {sign}{self.amount} BRL | {self.transaction_type}"


class WalletService:
    """
    Service class for wallet operations.
    All operations use transaction.atomic() for data integrity.
    """

    @staticmethod
    @transaction.atomic
    def credit(user, amount: Decimal, transaction_type: str,
               ride=None, description: str = "") -> Transaction:
        """
        Credit a user's wallet (add money).

        Args:
            user: User instance
            amount: Positive decimal amount
            transaction_type: TransactionType value
            ride: Optional related ride
            description: Optional description

        Returns:
            Transaction instance
        """
        if amount <= 0:
            raise ValueError("Credit amount must be positive")

        # Lock user row for update
        user = user.__class__.objects.select_for_update().get(pk=user.pk)

        balance_before = user.wallet_balance
        user.wallet_balance += amount
        user.save(update_fields=['wallet_balance'])

        return Transaction.objects.create(
            user=user,
            transaction_type=transaction_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=user.wallet_balance,
            ride=ride,
            description=description,
            status=TransactionStatus.COMPLETED
        )

    @staticmethod
    @transaction.atomic
    def debit(user, amount: Decimal, transaction_type: str,
              ride=None, description: str = "",
              allow_negative: bool = False) -> Transaction:
        """
        Debit a user's wallet (remove money).

        Couriers paid in cash owe the commission, so their balance is
        allowed to go negative.

        Raises:
            ValueError: If insufficient funds and allow_negative is False
        """
        if amount <= 0:
            raise ValueError("Debit amount must be positive")

        # Lock user row for update
        user = user.__class__.objects.select_for_update().get(pk=user.pk)

        if not allow_negative and user.wallet_balance < amount:
            raise ValueError(f"Saldo insuficiente: R$ {user.wallet_balance}")

        balance_before = user.wallet_balance
        user.wallet_balance -= amount
        user.save(update_fields=['wallet_balance'])

        return Transaction.objects.create(
            user=user,
            transaction_type=transaction_type,
            amount=-amount,  # Stored as negative
            balance_before=balance_before,
            balance_after=user.wallet_balance,
            ride=ride,
            description=description,
            status=TransactionStatus.COMPLETED
        )


# ===========================================
# PIX PAYMENTS (Mercado Pago)
# ===========================================

class RidePaymentStatus(models.TextChoices):
    """Payment status, normalized from the provider's vocabulary."""
    PENDING = 'PENDING', 'Pendente'
    APPROVED = 'APPROVED', 'Aprovado'
    REJECTED = 'REJECTED', 'Recusado'
    CANCELLED = 'CANCELLED', 'Cancelado'


FINAL_PAYMENT_STATUSES = (
    RidePaymentStatus.APPROVED,
    RidePaymentStatus.REJECTED,
    RidePaymentStatus.CANCELLED,
)


class RidePayment(models.Model):
    """
    PIX charge created with Mercado Pago for a ride.

    Once the status is final, later callbacks for the same payment are
    ignored: this row is what makes the webhook idempotent.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    ride = models.ForeignKey(
        'logistics.Ride',
        on_delete=models.CASCADE,
        related_name='payments',
        verbose_name="Corrida"
    )
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        verbose_name="Valor (R$)"
    )
    status = models.CharField(
        max_length=20,
        choices=RidePaymentStatus.choices,
        default=RidePaymentStatus.PENDING,
        verbose_name="Status"
    )

    # Provider references
    provider_payment_id = models.CharField(
        max_length=64,
        unique=True,
        verbose_name="ID do pagamento (Mercado Pago)"
    )
    provider_status = models.CharField(max_length=40, blank=True)

    # PIX payload shown to the client
    qr_code = models.TextField(blank=True, verbose_name="PIX copia e cola")
    qr_code_base64 = models.TextField(blank=True)

    # Callbacks
    callback_received = models.BooleanField(default=False)
    callback_data = models.JSONField(null=True, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Pagamento PIX"
        verbose_name_plural = "Pagamentos PIX"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['ride', 'status'], name='ridepayment_ride_status_idx'),
        ]

    def __str__(self):
        return f"PIX {self.provider_payment_id} | R$ {self.amount} | {self.status}"

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_PAYMENT_STATUSES
