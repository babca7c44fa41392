"""
Logistics App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import (
    RideViewSet,
    CourierOfferView,
    CourierCurrentRideView,
    AdminDashboardView,
)

router = DefaultRouter()
router.register(r'rides', RideViewSet, basename='ride')

urlpatterns = [
    # Courier polling
    path('courier/offer/', CourierOfferView.as_view(), name='courier-offer'),
    path('courier/current-ride/', CourierCurrentRideView.as_view(), name='courier-current-ride'),

    # Admin console
    path('admin/dashboard/', AdminDashboardView.as_view(), name='admin-dashboard'),

    # Router URLs
    path('', include(router.urls)),
]
