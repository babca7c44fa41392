"""
LOGISTICS App - WebSocket authentication

The courier app cannot send headers on a WebSocket handshake, so it passes
its access token as ?token=<jwt>. Browsers keep using the session cookie
handled by AuthMiddlewareStack underneath.
"""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

User = get_user_model()
logger = logging.getLogger(__name__)


@database_sync_to_async
def get_user_for_token(raw_token: str):
    try:
        access = AccessToken(raw_token)
        return User.objects.get(pk=access['user_id'], is_active=True)
    except (TokenError, KeyError, User.DoesNotExist) as e:
        logger.debug(f"[WS] JWT auth failed: {e}")
        return AnonymousUser()


class JWTQueryStringAuthMiddleware(BaseMiddleware):
    """Replace scope['user'] when a ?token= query parameter is present."""

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get('query_string', b'').decode())
        token_list = params.get('token')
        if token_list:
            scope['user'] = await get_user_for_token(token_list[0])
        return await super().__call__(scope, receive, send)
