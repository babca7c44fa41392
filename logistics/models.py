"""
LOGISTICS App - Rides & Dispatch for Falcões

Handles: Rides (moto-taxi and delivery), Exposure ledger, Ride chat
"""

import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.models import CourierCategory


class RideStatus(models.TextChoices):
    """Ride status enumeration."""
    PENDING = 'PENDING', 'Pendente'
    AWAITING_PAYMENT = 'AWAITING_PAYMENT', 'Aguardando pagamento'
    RELEASED = 'RELEASED', 'Liberada'
    IN_PROGRESS = 'IN_PROGRESS', 'Em andamento'
    COMPLETED = 'COMPLETED', 'Finalizada'
    CANCELLED = 'CANCELLED', 'Cancelada'
    EXPIRED = 'EXPIRED', 'Encerrada por timeout'


# A courier holding a ride in one of these states is busy
ACTIVE_RIDE_STATUSES = (
    RideStatus.AWAITING_PAYMENT,
    RideStatus.RELEASED,
    RideStatus.IN_PROGRESS,
)

TERMINAL_RIDE_STATUSES = (
    RideStatus.COMPLETED,
    RideStatus.CANCELLED,
    RideStatus.EXPIRED,
)


class ServiceKind(models.TextChoices):
    """What the client asked for."""
    MOTO_TAXI = 'moto_taxi', 'Moto-táxi'
    DELIVERY = 'delivery', 'Entrega'


# Courier category required for each service kind
SERVICE_KIND_CATEGORY = {
    ServiceKind.MOTO_TAXI: CourierCategory.PASSENGER,
    ServiceKind.DELIVERY: CourierCategory.DELIVERY,
}


class PaymentMethod(models.TextChoices):
    """Payment method enumeration."""
    CASH = 'CASH', 'Dinheiro (Cliente → Motoboy)'
    PIX = 'PIX', 'PIX (Mercado Pago)'


class CancelledBy(models.TextChoices):
    CLIENT = 'CLIENT', 'Cliente'
    COURIER = 'COURIER', 'Motoboy'
    ADMIN = 'ADMIN', 'Administrador'
    SYSTEM = 'SYSTEM', 'Sistema'


class Ride(models.Model):
    """
    One moto-taxi ride or delivery request.

    Price is frozen at creation time. The security code is generated when
    the ride is released and the client reads it to the courier at the end.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Actors
    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='requested_rides',
        verbose_name="Cliente"
    )
    courier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_rides',
        verbose_name="Motoboy"
    )

    # Route
    origin = models.CharField(max_length=255, verbose_name="Origem")
    destination = models.CharField(max_length=255, verbose_name="Destino")

    # Service
    service_kind = models.CharField(
        max_length=20,
        verbose_name="Tipo de serviço",
        help_text="moto_taxi ou delivery; outros valores não são despachados"
    )
    status = models.CharField(
        max_length=20,
        choices=RideStatus.choices,
        default=RideStatus.PENDING,
        db_index=True,
        verbose_name="Status"
    )
    dispatch_cycle = models.PositiveIntegerField(
        default=1,
        verbose_name="Ciclo de distribuição"
    )

    # Payment
    price = models.DecimalField(max_digits=10, decimal_places=2, verbose_name="Valor (R$)")
    payment_method = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        null=True,
        blank=True,
        verbose_name="Forma de pagamento"
    )
    platform_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Taxa da plataforma (R$)"
    )
    courier_earning = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Ganho do motoboy (R$)"
    )

    # Security
    security_code = models.CharField(
        max_length=4,
        blank=True,
        verbose_name="Código de segurança"
    )

    # Cancellation
    cancellation_reason = models.CharField(max_length=255, blank=True, verbose_name="Motivo do cancelamento")
    cancelled_by = models.CharField(
        max_length=10,
        choices=CancelledBy.choices,
        blank=True,
        verbose_name="Cancelada por"
    )

    # Timestamps
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    assigned_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Corrida"
        verbose_name_plural = "Corridas"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='ride_status_created_idx'),
            models.Index(fields=['courier', 'status'], name='ride_courier_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['courier'],
                condition=Q(status__in=ACTIVE_RIDE_STATUSES),
                name='one_active_ride_per_courier',
            ),
        ]

    def __str__(self):
        return f"Corrida {str(self.id)[:8]} - {self.status}"

    @property
    def required_category(self):
        return SERVICE_KIND_CATEGORY.get(self.service_kind)

    @property
    def is_pending(self) -> bool:
        return self.status == RideStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RIDE_STATUSES

    @property
    def is_prepaid(self) -> bool:
        return self.payment_method == PaymentMethod.PIX


class RideExposureQuerySet(models.QuerySet):
    """
    Exposure states:
    - live: not lapsed and younger than the visibility window
    - aged: not lapsed but the window elapsed (waiting for the sweep)
    - lapsed: lapsed_at set; courier will not see the ride again this cycle
    """

    def window_cutoff(self, now=None):
        now = now or timezone.now()
        return now - timedelta(seconds=settings.EXPOSURE_WINDOW_SECONDS)

    def unlapsed(self):
        return self.filter(lapsed_at__isnull=True)

    def live(self, now=None):
        return self.unlapsed().filter(exposed_at__gt=self.window_cutoff(now))

    def aged(self, now=None):
        return self.unlapsed().filter(exposed_at__lte=self.window_cutoff(now))

    def lapsed(self):
        return self.filter(lapsed_at__isnull=False)


class RideExposure(models.Model):
    """
    A time-boxed offer of one ride to one courier.

    At most one row per (ride, courier). Rows are removed when the ride
    leaves PENDING, or when a dispatch cycle is exhausted.
    """

    ride = models.ForeignKey(
        Ride,
        on_delete=models.CASCADE,
        related_name='exposures'
    )
    courier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ride_exposures'
    )
    cycle = models.PositiveIntegerField(default=1)
    exposed_at = models.DateTimeField(default=timezone.now)
    lapsed_at = models.DateTimeField(null=True, blank=True)

    objects = RideExposureQuerySet.as_manager()

    class Meta:
        verbose_name = "Exposição de corrida"
        verbose_name_plural = "Exposições de corridas"
        ordering = ['exposed_at']
        constraints = [
            models.UniqueConstraint(fields=['ride', 'courier'], name='unique_ride_courier_exposure'),
        ]
        indexes = [
            models.Index(fields=['courier', 'lapsed_at', 'exposed_at'], name='exposure_courier_state_idx'),
        ]

    def __str__(self):
        return f"Corrida {str(self.ride_id)[:8]} → {self.courier_id} (ciclo {self.cycle})"

    @property
    def is_lapsed(self) -> bool:
        return self.lapsed_at is not None


class RideMessage(models.Model):
    """Chat message between the ride's client and courier."""

    ride = models.ForeignKey(Ride, on_delete=models.CASCADE, related_name='messages')
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ride_messages'
    )
    text = models.TextField(max_length=1000)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Mensagem"
        verbose_name_plural = "Mensagens"
        ordering = ['created_at']

    def __str__(self):
        return f"{self.sender_id}: {self.text[:30]}"
