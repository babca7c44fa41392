"""
Mercado Pago Service for Falcões

Creates PIX charges for rides and reads payment status back.
API Reference: https://www.mercadopago.com.br/developers/pt/reference
"""

import logging
from decimal import Decimal

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class MercadoPagoService:
    """
    Mercado Pago REST integration.

    Flow:
    1. Create a PIX payment (external_reference = ride id)
    2. Client pays with the QR code / copia e cola
    3. Mercado Pago calls our webhook; we GET the payment to read its status

    Every call is bounded by MERCADOPAGO_TIMEOUT_SECONDS.
    """

    @classmethod
    def _base_url(cls) -> str:
        return settings.MERCADOPAGO_API_URL.rstrip('/')

    @classmethod
    def _headers(cls, idempotency_key: str = None) -> dict:
        headers = {
            "Authorization": f"Bearer {settings.MERCADOPAGO_ACCESS_TOKEN}",
            "Content-Type": "application/json",
        }
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key
        return headers

    @classmethod
    def _get(cls, path: str) -> dict:
        try:
            response = requests.get(
                f"{cls._base_url()}{path}",
                headers=cls._headers(),
                timeout=settings.MERCADOPAGO_TIMEOUT_SECONDS
            )
            response.raise_for_status()
            return {'success': True, 'data': response.json()}
        except requests.RequestException as e:
            logger.error(f"[MERCADO PAGO] GET {path} failed: {e}")
            return {'success': False, 'error': str(e)}

    @classmethod
    def create_pix_payment(
        cls,
        amount: Decimal,
        external_reference: str,
        description: str,
        payer_email: str = None,
    ) -> dict:
        """
        Create a PIX payment.

        Args:
            amount: Amount in BRL
            external_reference: Our ride id, echoed back on every status read
            description: Shown on the payer's statement
            payer_email: Payer e-mail (Mercado Pago requires one)

        Returns:
            Dict with success, payment_id, status, qr_code, qr_code_base64
        """
        if not settings.MERCADOPAGO_ACCESS_TOKEN:
            logger.error("[MERCADO PAGO] Missing access token")
            return {'success': False, 'error': 'Mercado Pago not configured'}

        payload = {
            "transaction_amount": float(amount),
            "description": description,
            "payment_method_id": "pix",
            "payer": {"email": payer_email or settings.MERCADOPAGO_PAYER_EMAIL},
            "external_reference": external_reference,
            "notification_url": f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/payments/mercadopago/webhook/",
        }

        try:
            response = requests.post(
                f"{cls._base_url()}/v1/payments",
                headers=cls._headers(idempotency_key=f"ride-{external_reference}"),
                json=payload,
                timeout=settings.MERCADOPAGO_TIMEOUT_SECONDS
            )
        except requests.RequestException as e:
            logger.error(f"[MERCADO PAGO] Create payment exception: {e}")
            return {'success': False, 'error': str(e)}

        if response.status_code not in (200, 201):
            try:
                error_data = response.json()
            except ValueError:
                error_data = {}
            logger.error(f"[MERCADO PAGO] Create payment failed: {response.status_code} - {error_data}")
            return {
                'success': False,
                'error': error_data.get('message', f'HTTP {response.status_code}'),
            }

        data = response.json()
        transaction_data = (data.get('point_of_interaction') or {}).get('transaction_data') or {}

        logger.info(f"[MERCADO PAGO] PIX payment {data.get('id')} created for {external_reference}")
        return {
            'success': True,
            'payment_id': str(data.get('id')),
            'status': data.get('status', 'pending'),
            'qr_code': transaction_data.get('qr_code', ''),
            'qr_code_base64': transaction_data.get('qr_code_base64', ''),
        }

    @classmethod
    def get_payment(cls, payment_id: str) -> dict:
        """
        Read a payment.

        Returns:
            Dict with success, payment_id, status, external_reference, raw
        """
        result = cls._get(f"/v1/payments/{payment_id}")
        if not result['success']:
            return result

        data = result['data']
        metadata = data.get('metadata') or {}
        return {
            'success': True,
            'payment_id': str(data.get('id', payment_id)),
            'status': data.get('status', ''),
            'external_reference': data.get('external_reference') or metadata.get('ride_id') or '',
            'raw': data,
        }

    @classmethod
    def get_merchant_order_payment_id(cls, merchant_order_id: str) -> dict:
        """First payment id of a merchant order, if any."""
        result = cls._get(f"/merchant_orders/{merchant_order_id}")
        if not result['success']:
            return result

        payments = result['data'].get('payments') or []
        if not payments:
            return {'success': True, 'payment_id': None}
        return {'success': True, 'payment_id': str(payments[0].get('id'))}
