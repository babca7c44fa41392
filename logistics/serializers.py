"""
Logistics App Serializers - Rides & Chat
"""

from decimal import Decimal

from rest_framework import serializers

from .models import Ride, RideMessage, PaymentMethod, ServiceKind


class RideSerializer(serializers.ModelSerializer):
    """Full serializer for Ride model."""

    client_name = serializers.CharField(source='client.full_name', read_only=True)
    client_phone = serializers.CharField(source='client.phone_number', read_only=True)
    courier_name = serializers.CharField(source='courier.full_name', read_only=True, default=None)
    courier_phone = serializers.CharField(source='courier.phone_number', read_only=True, default=None)
    courier_vehicle = serializers.SerializerMethodField()
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Ride
        fields = [
            'id', 'client', 'client_name', 'client_phone',
            'courier', 'courier_name', 'courier_phone', 'courier_vehicle',
            'origin', 'destination', 'service_kind',
            'status', 'status_display', 'dispatch_cycle',
            'price', 'payment_method', 'platform_fee', 'courier_earning',
            'security_code', 'cancellation_reason', 'cancelled_by',
            'created_at', 'assigned_at', 'released_at', 'started_at',
            'completed_at', 'cancelled_at'
        ]
        read_only_fields = fields

    def get_courier_vehicle(self, obj):
        if not obj.courier:
            return None
        return {
            'plate': obj.courier.vehicle_plate,
            'model': obj.courier.vehicle_model,
            'color': obj.courier.vehicle_color,
        }

    def to_representation(self, instance):
        data = super().to_representation(instance)
        # The code is the client's proof of arrival; the courier asks for it
        request = self.context.get('request')
        viewer = getattr(request, 'user', None)
        if viewer is None or viewer.pk != instance.client_id:
            data.pop('security_code', None)
        return data


class RideCreateSerializer(serializers.Serializer):
    """Serializer for a client requesting a ride."""

    origin = serializers.CharField(max_length=255)
    destination = serializers.CharField(max_length=255)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal('0.01'))
    service_kind = serializers.ChoiceField(choices=ServiceKind.choices)


class PaymentChoiceSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)


class SecurityCodeSerializer(serializers.Serializer):
    security_code = serializers.CharField(max_length=4, required=False, allow_blank=True)


class CancelRideSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class RideMessageSerializer(serializers.ModelSerializer):
    """Chat message between client and courier."""

    sender_name = serializers.CharField(source='sender.full_name', read_only=True)
    sender_role = serializers.CharField(source='sender.role', read_only=True)

    class Meta:
        model = RideMessage
        fields = ['id', 'ride', 'sender', 'sender_name', 'sender_role', 'text', 'created_at']
        read_only_fields = ['id', 'ride', 'sender', 'created_at']
