"""
Core App Permissions - role gates shared by every app.
"""

from rest_framework import permissions

from .models import UserRole


class IsAdminUser(permissions.BasePermission):
    """Permission for admin users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == UserRole.ADMIN


class IsCourier(permissions.BasePermission):
    """Permission for approved courier users only."""

    message = 'Apenas motoboys aprovados.'

    def has_permission(self, request, view):
        user = request.user
        return user.is_authenticated and user.role == UserRole.COURIER and user.is_approved


class IsClient(permissions.BasePermission):
    """Clients and businesses request rides."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role in (
            UserRole.CLIENT,
            UserRole.BUSINESS,
        ) and request.user.is_approved
