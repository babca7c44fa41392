"""
WSGI config for Falcões (HTTP only, no WebSocket).
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'falcoes_core.settings')

application = get_wsgi_application()
