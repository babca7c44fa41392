"""
Core App Serializers - User Management
"""

from rest_framework import serializers
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password

from .models import UserRole

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model (read operations)."""

    is_online = serializers.ReadOnlyField()
    is_blocked = serializers.ReadOnlyField()

    class Meta:
        model = User
        fields = [
            'id', 'phone_number', 'email', 'full_name', 'role',
            'is_approved', 'courier_category', 'wallet_balance',
            'vehicle_plate', 'vehicle_model', 'vehicle_color',
            'is_online', 'is_blocked', 'is_active', 'date_joined'
        ]
        read_only_fields = ['id', 'role', 'is_approved', 'wallet_balance', 'date_joined']


class UserCreateSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration.

    Clients are approved right away; couriers and businesses wait for an
    admin. Nobody registers as ADMIN through the API.
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        validators=[validate_password]
    )
    role = serializers.ChoiceField(
        choices=[UserRole.CLIENT, UserRole.COURIER, UserRole.BUSINESS],
        default=UserRole.CLIENT
    )

    class Meta:
        model = User
        fields = [
            'id', 'phone_number', 'password', 'email', 'full_name', 'role',
            'courier_category', 'vehicle_plate', 'vehicle_model', 'vehicle_color',
            'is_approved'
        ]
        read_only_fields = ['id', 'is_approved']

    def create(self, validated_data):
        password = validated_data.pop('password')
        role = validated_data.get('role', UserRole.CLIENT)
        validated_data['is_approved'] = role == UserRole.CLIENT
        return User.objects.create_user(password=password, **validated_data)


class CourierProfileSerializer(serializers.ModelSerializer):
    """Courier's own profile with dispatch state."""

    is_online = serializers.ReadOnlyField()
    is_blocked = serializers.ReadOnlyField()
    block_minutes_remaining = serializers.ReadOnlyField()

    class Meta:
        model = User
        fields = [
            'id', 'phone_number', 'full_name', 'role', 'is_approved',
            'courier_category', 'wallet_balance', 'online_until', 'blocked_until',
            'is_online', 'is_blocked', 'block_minutes_remaining',
            'latitude', 'longitude', 'last_location_updated',
            'vehicle_plate', 'vehicle_model', 'vehicle_color'
        ]
        read_only_fields = fields


class CourierStatusSerializer(serializers.Serializer):
    """
    Courier heartbeat.

    Invalid or missing coordinates leave the last known position as is.
    """

    online = serializers.BooleanField()
    latitude = serializers.JSONField(required=False, allow_null=True)
    longitude = serializers.JSONField(required=False, allow_null=True)
