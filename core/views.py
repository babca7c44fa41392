"""
Core App Views - User Management & Courier Presence API
"""

import logging

from rest_framework import viewsets, status, permissions
from rest_framework.decorators import action
from rest_framework.response import Response
from django.contrib.auth import get_user_model
from django.utils import timezone

from . import courier_directory
from .permissions import IsAdminUser, IsCourier
from .serializers import (
    UserSerializer, UserCreateSerializer,
    CourierProfileSerializer, CourierStatusSerializer
)
from .models import UserRole

User = get_user_model()
logger = logging.getLogger(__name__)


class UserViewSet(viewsets.ModelViewSet):
    """
    ViewSet for User model.

    - List/Retrieve: Admin only
    - Create: Public (registration)
    - Update: Self only
    """

    queryset = User.objects.all()
    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']

    def get_permissions(self):
        if self.action == 'create':
            return [permissions.AllowAny()]
        elif self.action in ['list', 'destroy']:
            return [IsAdminUser()]
        # Admin-only actions declare their own permission_classes
        return super().get_permissions()

    def get_serializer_class(self):
        if self.action == 'create':
            return UserCreateSerializer
        return UserSerializer

    def get_queryset(self):
        user = self.request.user
        if user.is_authenticated and user.role == UserRole.ADMIN:
            return User.objects.all()
        # Non-admin can only see their own profile
        return User.objects.filter(pk=user.pk)

    def create(self, request, *args, **kwargs):
        response = super().create(request, *args, **kwargs)
        if response.data.get('is_approved'):
            response.data['message'] = 'Conta criada com sucesso!'
        else:
            response.data['message'] = 'Cadastro enviado! Aguarde aprovação.'
        return response

    @action(detail=False, methods=['get'])
    def me(self, request):
        """Get current user profile."""
        serializer = self.get_serializer(request.user)
        return Response(serializer.data)

    @action(detail=False, methods=['get'], permission_classes=[IsAdminUser])
    def couriers(self, request):
        """Approved couriers with online state (Admin only)."""
        couriers = User.objects.filter(
            role=UserRole.COURIER,
            is_approved=True
        ).order_by('full_name')
        serializer = self.get_serializer(couriers, many=True)
        return Response(serializer.data)

    @action(detail=False, methods=['get'], permission_classes=[IsAdminUser])
    def clients(self, request):
        """List all clients (Admin only)."""
        clients = User.objects.filter(
            role__in=[UserRole.CLIENT, UserRole.BUSINESS]
        ).order_by('full_name')
        serializer = self.get_serializer(clients, many=True)
        return Response(serializer.data)

    @action(detail=False, methods=['get'], permission_classes=[IsAdminUser])
    def pending(self, request):
        """Couriers and businesses waiting for approval (Admin only)."""
        pending = User.objects.filter(
            role__in=[UserRole.COURIER, UserRole.BUSINESS],
            is_approved=False,
            is_active=True
        ).order_by('date_joined')
        serializer = self.get_serializer(pending, many=True)
        return Response(serializer.data)

    @action(detail=True, methods=['post'], permission_classes=[IsAdminUser])
    def approve(self, request, pk=None):
        """Approve a courier or business (Admin only)."""
        user = self.get_object()
        if user.role not in (UserRole.COURIER, UserRole.BUSINESS):
            return Response(
                {'error': 'Apenas motoboys e empresas precisam de aprovação.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        user.is_approved = True
        user.is_active = True
        user.save(update_fields=['is_approved', 'is_active'])
        logger.info(f"[ADMIN] {request.user.phone_number} approved {user.phone_number}")
        return Response({'message': f'{user.full_name or user.phone_number} aprovado.'})

    @action(detail=True, methods=['post'], permission_classes=[IsAdminUser])
    def reject(self, request, pk=None):
        """Reject a registration: the account is deactivated (Admin only)."""
        user = self.get_object()
        if user.role == UserRole.ADMIN:
            return Response(
                {'error': 'Não é possível rejeitar um administrador.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        user.is_approved = False
        user.is_active = False
        user.online_until = None
        user.save(update_fields=['is_approved', 'is_active', 'online_until'])
        logger.info(f"[ADMIN] {request.user.phone_number} rejected {user.phone_number}")
        return Response({'message': f'{user.full_name or user.phone_number} rejeitado.'})


class CourierViewSet(viewsets.ViewSet):
    """
    ViewSet for courier-specific operations.
    """

    permission_classes = [permissions.IsAuthenticated, IsCourier]

    @action(detail=False, methods=['get'])
    def profile(self, request):
        """Get courier profile with dispatch state."""
        serializer = CourierProfileSerializer(request.user)
        return Response(serializer.data)

    @action(detail=False, methods=['post'])
    def update_status(self, request):
        """
        Heartbeat from the courier app.

        online=true renews the online window (and the position when valid),
        online=false takes the courier out of dispatch immediately.
        """
        serializer = CourierStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if data['online']:
            courier = courier_directory.set_online(
                request.user.pk,
                latitude=data.get('latitude'),
                longitude=data.get('longitude'),
            )
        else:
            courier_directory.set_offline(request.user.pk)
            courier = User.objects.get(pk=request.user.pk)

        return Response({
            'online': courier.is_online,
            'online_until': courier.online_until,
            'blocked': courier.is_blocked,
            'block_minutes_remaining': courier.block_minutes_remaining,
            'server_time': timezone.now(),
        })
