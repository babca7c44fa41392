"""
Mercado Pago webhook for Falcões

Mercado Pago notifies us that something changed; the notification itself
is never trusted. We read the payment back from the API and apply its
status to the ride.
"""

import hashlib
import hmac
import json
import logging
import uuid

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from finance.mercadopago_service import MercadoPagoService
from finance.payment_service import process_callback

logger = logging.getLogger(__name__)


def _resource_id(data: dict, params) -> str:
    """
    Payment (or merchant order) id from either notification format:
    - webhooks: {"type": "payment", "data": {"id": "123"}} or ?data.id=123
    - IPN: ?topic=payment&id=123 or {"resource": ".../123"}
    """
    nested = data.get('data')
    if isinstance(nested, dict) and nested.get('id'):
        return str(nested['id'])
    if params.get('data.id'):
        return params['data.id']
    resource = data.get('resource')
    if resource:
        return str(resource).rstrip('/').rsplit('/', 1)[-1]
    return params.get('id', '')


def _valid_signature(request, resource_id: str) -> bool:
    """
    Check the x-signature header (ts=...,v1=...) when a secret is configured.
    """
    secret = settings.MERCADOPAGO_WEBHOOK_SECRET
    if not secret:
        return True

    parts = dict(
        item.strip().split('=', 1)
        for item in request.headers.get('X-Signature', '').split(',')
        if '=' in item
    )
    ts, received = parts.get('ts'), parts.get('v1')
    if not ts or not received:
        return False

    manifest = f"id:{resource_id};request-id:{request.headers.get('X-Request-Id', '')};ts:{ts};"
    expected = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(received, expected)


@csrf_exempt
@require_http_methods(['POST'])
def mercadopago_webhook(request):
    """
    Webhook callback for Mercado Pago.

    POST /api/payments/mercadopago/webhook/

    Unknown topics and malformed notifications are acknowledged with 200 so
    Mercado Pago stops retrying them. A provider read failure answers 503
    so the notification is delivered again.
    """
    try:
        data = json.loads(request.body or b'{}')
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    topic = data.get('type') or data.get('topic') or request.GET.get('type') or request.GET.get('topic')
    resource_id = _resource_id(data, request.GET)
    logger.info(f"[MP WEBHOOK] Received {topic} {resource_id}")

    if not resource_id or topic not in ('payment', 'merchant_order'):
        return JsonResponse({'received': True, 'ignored': True})

    if not _valid_signature(request, resource_id):
        logger.warning("[MP WEBHOOK] Invalid signature")
        return JsonResponse({'error': 'Invalid signature'}, status=401)

    payment_id = resource_id
    if topic == 'merchant_order':
        order = MercadoPagoService.get_merchant_order_payment_id(resource_id)
        if not order['success']:
            return JsonResponse({'error': 'Provider unavailable'}, status=503)
        payment_id = order['payment_id']
        if not payment_id:
            return JsonResponse({'received': True, 'ignored': True})

    payment = MercadoPagoService.get_payment(payment_id)
    if not payment['success']:
        return JsonResponse({'error': 'Provider unavailable'}, status=503)

    try:
        ride_id = uuid.UUID(str(payment['external_reference']))
    except ValueError:
        logger.warning(
            f"[MP WEBHOOK] Payment {payment_id} has no ride reference: {payment['external_reference']!r}"
        )
        return JsonResponse({'received': True, 'ignored': True})

    result = process_callback(
        ride_id=ride_id,
        provider_payment_id=payment['payment_id'],
        status=payment['status'],
        raw_data=payment['raw'],
    )

    return JsonResponse({
        'received': True,
        'applied': bool(result and result.success),
    })
