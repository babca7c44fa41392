"""
Falcões Main URL Configuration
"""

from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from core.health import health_check, readiness_check, detailed_health


# ===========================================
# ADMIN SITE CUSTOMIZATION
# ===========================================
admin.site.site_header = "🏍️ Falcões - Central de Operações"
admin.site.site_title = "Falcões Admin"
admin.site.index_title = "Corridas e Entregas"


@api_view(['GET'])
@permission_classes([AllowAny])
def api_root(request):
    """API Root endpoint with available routes."""
    return Response({
        'name': 'Falcões API',
        'version': '1.0.0',
        'endpoints': {
            'auth': {
                'register': '/api/auth/register/',
                'token': '/api/auth/token/',
                'refresh': '/api/auth/token/refresh/',
            },
            'users': '/api/users/',
            'courier': {
                'profile': '/api/courier/profile/',
                'status': '/api/courier/status/',
                'offer': '/api/courier/offer/',
                'current_ride': '/api/courier/current-ride/',
            },
            'rides': '/api/rides/',
            'wallet': {
                'balance': '/api/wallet/balance/',
                'history': '/api/wallet/history/',
            },
            'transactions': '/api/transactions/',
            'admin_dashboard': '/api/admin/dashboard/',
            'schema': '/api/schema/',
        }
    })


urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # Health checks
    path('health/', health_check, name='health'),
    path('health/ready/', readiness_check, name='health-ready'),
    path('health/detailed/', detailed_health, name='health-detailed'),

    # API Root & docs
    path('api/', api_root, name='api-root'),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),

    # App URLs
    path('api/', include('core.urls')),
    path('api/', include('logistics.urls')),
    path('api/', include('finance.urls')),
]
