"""
Core App URLs
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
)

from .views import UserViewSet, CourierViewSet

router = DefaultRouter()
router.register(r'users', UserViewSet, basename='user')

urlpatterns = [
    # Registration & JWT Authentication
    path('auth/register/', UserViewSet.as_view({'post': 'create'}), name='register'),
    path('auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    # Courier presence
    path('courier/profile/', CourierViewSet.as_view({'get': 'profile'}), name='courier-profile'),
    path('courier/status/', CourierViewSet.as_view({'post': 'update_status'}), name='courier-status'),

    # Router URLs
    path('', include(router.urls)),
]
