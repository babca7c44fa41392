"""
Logistics App Views - Rides, Courier Offers & Admin Dashboard
"""

import logging

from django.db.models import Count, Sum
from django.utils import timezone
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from core.courier_directory import CourierNotFoundError
from core.models import User, UserRole
from core.permissions import IsAdminUser, IsClient, IsCourier
from finance.payment_service import PaymentProviderError, choose_payment

from .exceptions import InvalidRideDataError, RideNotFoundError
from .models import ACTIVE_RIDE_STATUSES, Ride, RideExposure, RideStatus
from .serializers import (
    CancelRideSerializer,
    PaymentChoiceSerializer,
    RideCreateSerializer,
    RideMessageSerializer,
    RideSerializer,
    SecurityCodeSerializer,
)
from .services.exposure import poll_for_ride
from .services.lifecycle import (
    NOT_ALLOWED,
    NOT_YOUR_RIDE,
    WRONG_SECURITY_CODE,
    assign_ride,
    cancel_ride,
    complete_ride,
    create_ride,
    start_ride,
)
from .services.sweep import expire_exposure

logger = logging.getLogger(__name__)

# Guard failures caused by who is asking rather than by the ride's state
FORBIDDEN_ERROR_CODES = {NOT_YOUR_RIDE, WRONG_SECURITY_CODE, NOT_ALLOWED}


class RideViewSet(mixins.ListModelMixin,
                  mixins.RetrieveModelMixin,
                  viewsets.GenericViewSet):
    """
    ViewSet for ride management.

    - Clients create rides, choose payment and follow status
    - Couriers accept, let offers expire, start and complete rides
    - Either participant may cancel and chat
    """

    serializer_class = RideSerializer
    permission_classes = [permissions.IsAuthenticated]
    lookup_value_regex = '[0-9a-f-]{36}'
    filterset_fields = ['status', 'service_kind']
    ordering_fields = ['created_at', 'price']

    def get_queryset(self):
        user = self.request.user
        rides = Ride.objects.select_related('client', 'courier')

        if user.role == UserRole.ADMIN:
            return rides
        elif user.role == UserRole.COURIER:
            return rides.filter(courier=user)
        return rides.filter(client=user)

    def get_permissions(self):
        if self.action in ('create', 'payment'):
            return [IsClient()]
        if self.action in ('accept', 'expire', 'start', 'complete'):
            return [IsCourier()]
        return super().get_permissions()

    def handle_exception(self, exc):
        if isinstance(exc, RideNotFoundError):
            return Response({'error': 'Corrida não encontrada.'}, status=status.HTTP_404_NOT_FOUND)
        if isinstance(exc, InvalidRideDataError):
            return Response({'error': str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        if isinstance(exc, PaymentProviderError):
            logger.exception(f"[PAYMENT] Provider failure: {exc}")
            return Response(
                {'error': 'Falha ao gerar o PIX. Tente novamente.'},
                status=status.HTTP_502_BAD_GATEWAY
            )
        return super().handle_exception(exc)

    def _result_response(self, result):
        if not result.success:
            http_status = (
                status.HTTP_403_FORBIDDEN
                if result.error_code in FORBIDDEN_ERROR_CODES
                else status.HTTP_409_CONFLICT
            )
            return Response({'error': result.message, 'code': result.error_code}, status=http_status)

        data = {'success': True, 'message': result.message}
        if result.ride is not None:
            data['ride'] = self.get_serializer(result.ride).data
        return Response(data)

    # ===================== Client =====================

    def create(self, request, *args, **kwargs):
        """Request a moto-taxi ride or a delivery."""
        serializer = RideCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        ride = create_ride(
            client=request.user,
            origin=data['origin'],
            destination=data['destination'],
            price=data['price'],
            service_kind=data['service_kind'],
        )
        ride.refresh_from_db()
        return Response(self.get_serializer(ride).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def payment(self, request, pk=None):
        """
        Choose how to pay an accepted ride.

        CASH releases the ride now. PIX returns the copy-and-paste code and
        QR image; the ride is released when Mercado Pago confirms.
        """
        ride = self.get_object()
        serializer = PaymentChoiceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = choose_payment(ride.pk, serializer.validated_data['payment_method'])
        if not result['success']:
            return Response(
                {'error': result.get('message'), 'code': result.get('error_code')},
                status=status.HTTP_409_CONFLICT
            )

        ride.refresh_from_db()
        result['ride'] = self.get_serializer(ride).data
        return Response(result)

    # ===================== Courier =====================

    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        return self._result_response(assign_ride(pk, request.user))

    @action(detail=True, methods=['post'])
    def expire(self, request, pk=None):
        """The offer timed out on the courier's screen (or was declined)."""
        return self._result_response(expire_exposure(pk, request.user))

    @action(detail=True, methods=['post'])
    def start(self, request, pk=None):
        return self._result_response(start_ride(pk, request.user))

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        serializer = SecurityCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._result_response(
            complete_ride(pk, request.user, serializer.validated_data.get('security_code'))
        )

    # ===================== Participants =====================

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        serializer = CancelRideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._result_response(
            cancel_ride(pk, reason=serializer.validated_data.get('reason', ''), actor=request.user)
        )

    @action(detail=True, methods=['get', 'post'])
    def messages(self, request, pk=None):
        """Chat between the ride's client and courier."""
        ride = self.get_object()

        if request.method == 'GET':
            messages = ride.messages.select_related('sender')
            return Response(RideMessageSerializer(messages, many=True).data)

        if request.user.pk not in (ride.client_id, ride.courier_id):
            return Response(
                {'error': 'Apenas o cliente e o motoboy desta corrida podem enviar mensagens.'},
                status=status.HTTP_403_FORBIDDEN
            )

        serializer = RideMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = serializer.save(ride=ride, sender=request.user)
        return Response(RideMessageSerializer(message).data, status=status.HTTP_201_CREATED)


class CourierOfferView(APIView):
    """
    Courier poll: is there a ride on offer for me?

    GET /api/courier/offer/
    """

    permission_classes = [permissions.IsAuthenticated, IsCourier]

    def get(self, request):
        try:
            return Response(poll_for_ride(request.user.pk))
        except CourierNotFoundError:
            return Response({'error': 'Motoboy não encontrado.'}, status=status.HTTP_404_NOT_FOUND)


class CourierCurrentRideView(APIView):
    """
    The ride the courier is working on, if any.

    GET /api/courier/current-ride/
    """

    permission_classes = [permissions.IsAuthenticated, IsCourier]

    def get(self, request):
        ride = (
            Ride.objects.select_related('client', 'courier')
            .filter(courier=request.user, status__in=ACTIVE_RIDE_STATUSES)
            .order_by('-assigned_at')
            .first()
        )
        if ride is None:
            return Response({'ride': None})
        return Response({'ride': RideSerializer(ride, context={'request': request}).data})


class AdminDashboardView(APIView):
    """
    Operations overview for the admin console.

    GET /api/admin/dashboard/
    """

    permission_classes = [permissions.IsAuthenticated, IsAdminUser]

    @staticmethod
    def _totals(rides):
        completed = rides.filter(status=RideStatus.COMPLETED)
        money = completed.aggregate(revenue=Sum('price'), fees=Sum('platform_fee'))
        return {
            'total': rides.count(),
            'completed': completed.count(),
            'cancelled': rides.filter(status__in=[RideStatus.CANCELLED, RideStatus.EXPIRED]).count(),
            'revenue': money['revenue'] or 0,
            'platform_fees': money['fees'] or 0,
        }

    def get(self, request):
        now = timezone.now()
        today_start = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)
        month_start = today_start.replace(day=1)

        today = Ride.objects.filter(created_at__gte=today_start)
        month = Ride.objects.filter(created_at__gte=month_start)

        by_kind = {
            row['service_kind']: row['total']
            for row in month.values('service_kind').annotate(total=Count('id')).order_by()
        }

        couriers = User.objects.filter(role=UserRole.COURIER, is_approved=True, is_active=True)
        pending_approval = User.objects.filter(
            role__in=[UserRole.COURIER, UserRole.BUSINESS],
            is_approved=False,
            is_active=True,
        ).count()

        last_rides = Ride.objects.select_related('client', 'courier').order_by('-created_at')[:10]

        return Response({
            'today': self._totals(today),
            'month': self._totals(month),
            'by_service_kind': by_kind,
            'rides_by_status': dict(
                Ride.objects.values_list('status').annotate(total=Count('id')).order_by()
            ),
            'couriers': {
                'approved': couriers.count(),
                'online': couriers.filter(online_until__gt=now).count(),
                'blocked': couriers.filter(blocked_until__gt=now).count(),
                'busy': couriers.filter(
                    assigned_rides__status__in=ACTIVE_RIDE_STATUSES
                ).distinct().count(),
            },
            'pending_approvals': pending_approval,
            'live_offers': RideExposure.objects.live(now).count(),
            'last_rides': RideSerializer(last_rides, many=True, context={'request': request}).data,
        })
