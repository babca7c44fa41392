"""
ASGI config for Falcões.

HTTP goes to Django, WebSocket connections go to the logistics consumers
(courier offers and ride status tracking).
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'falcoes_core.settings')

# Initialize Django before importing anything that touches models
django_asgi_app = get_asgi_application()

from channels.auth import AuthMiddlewareStack  # noqa: E402
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from logistics.middleware import JWTQueryStringAuthMiddleware  # noqa: E402
from logistics.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter({
    'http': django_asgi_app,
    'websocket': AllowedHostsOriginValidator(
        AuthMiddlewareStack(
            JWTQueryStringAuthMiddleware(URLRouter(websocket_urlpatterns))
        )
    ),
})
