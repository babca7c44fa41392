"""
CORE App - Custom User Model for Falcões

Handles: Users (Clients, Couriers, Businesses, Admins)
"""

import math
import uuid
from decimal import Decimal

from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.validators import RegexValidator
from django.db import models
from django.utils import timezone


class UserRole(models.TextChoices):
    """User role enumeration."""
    ADMIN = 'ADMIN', 'Administrador'
    CLIENT = 'CLIENT', 'Cliente'
    COURIER = 'COURIER', 'Motoboy'
    BUSINESS = 'BUSINESS', 'Empresa'


class CourierCategory(models.TextChoices):
    """
    Which kind of ride a courier takes.
    GENERAL is the wildcard: it matches every service kind.
    """
    PASSENGER = 'PASSENGER', 'Passageiro'
    DELIVERY = 'DELIVERY', 'Entregas'
    GENERAL = 'GENERAL', 'Geral'


class UserManager(BaseUserManager):
    """Custom user manager for phone-based authentication."""

    def create_user(self, phone_number, password=None, **extra_fields):
        if not phone_number:
            raise ValueError('O número de telefone é obrigatório')

        user = self.model(phone_number=phone_number, **extra_fields)
        if password:
            user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, phone_number, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', UserRole.ADMIN)
        extra_fields.setdefault('is_approved', True)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(phone_number, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using phone number as primary identifier.

    Courier dispatch state lives here:
    - online_until: courier is online while now < online_until (heartbeat)
    - blocked_until: penalty window, courier gets no offers while it lasts
    - is_approved: admin gate, never reverts on its own
    - wallet_balance can be NEGATIVE (cash commission owed to the platform)
    """

    # Phone number validator for Brazil (+55, DDD + 8 or 9 digits)
    phone_regex = RegexValidator(
        regex=r'^\+55[0-9]{10,11}$',
        message="Formato: +55DDXXXXXXXXX"
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone_number = models.CharField(
        max_length=15,
        unique=True,
        validators=[phone_regex],
        verbose_name="Telefone"
    )
    email = models.EmailField(blank=True, verbose_name="E-mail")

    # Profile
    full_name = models.CharField(max_length=150, blank=True, verbose_name="Nome completo")
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CLIENT,
        verbose_name="Tipo"
    )
    is_approved = models.BooleanField(
        default=False,
        verbose_name="Aprovado",
        help_text="Motoboys e empresas só operam depois da aprovação do admin"
    )

    # Courier dispatch state
    courier_category = models.CharField(
        max_length=20,
        choices=CourierCategory.choices,
        default=CourierCategory.GENERAL,
        verbose_name="Categoria"
    )
    online_until = models.DateTimeField(null=True, blank=True, verbose_name="Online até")
    blocked_until = models.DateTimeField(null=True, blank=True, verbose_name="Bloqueado até")

    # Vehicle
    vehicle_plate = models.CharField(max_length=10, blank=True, verbose_name="Placa")
    vehicle_model = models.CharField(max_length=60, blank=True, verbose_name="Modelo da moto")
    vehicle_color = models.CharField(max_length=30, blank=True, verbose_name="Cor da moto")

    # Location (optional - last known position)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    last_location_updated = models.DateTimeField(null=True, blank=True)

    # Wallet
    wallet_balance = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Saldo (R$)"
    )

    # Django Auth Fields
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(auto_now_add=True)

    objects = UserManager()

    USERNAME_FIELD = 'phone_number'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = "Usuário"
        verbose_name_plural = "Usuários"
        ordering = ['-date_joined']
        indexes = [
            models.Index(fields=['role', 'is_approved', 'courier_category'], name='user_dispatch_idx'),
            models.Index(fields=['online_until'], name='user_online_until_idx'),
        ]

    def __str__(self):
        return f"{self.full_name or self.phone_number} ({self.role})"

    @property
    def is_courier(self) -> bool:
        return self.role == UserRole.COURIER

    @property
    def is_online(self) -> bool:
        return self.online_until is not None and self.online_until > timezone.now()

    @property
    def is_blocked(self) -> bool:
        return self.blocked_until is not None and self.blocked_until > timezone.now()

    @property
    def block_minutes_remaining(self) -> int:
        """Whole minutes left on the penalty, rounded up (0 when not blocked)."""
        if not self.is_blocked:
            return 0
        remaining = (self.blocked_until - timezone.now()).total_seconds()
        return math.ceil(remaining / 60)
