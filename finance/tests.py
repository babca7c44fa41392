"""
Falcões Finance Tests
=====================

Tests for:
1. WalletService (credit, debit, atomic transactions)
2. Commission split and ride settlement (cash and PIX)
3. PIX payments: charge creation and provider callbacks
4. Mercado Pago webhook
5. Courier wallet API
"""

import hashlib
import hmac
from decimal import Decimal
from unittest.mock import MagicMock, patch

import requests
from django.test import TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from finance.mercadopago_service import MercadoPagoService
from finance.models import (
    RidePayment,
    RidePaymentStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    WalletService,
)
from finance.payment_service import (
    PAYMENT_REJECTED_REASON,
    PaymentProviderError,
    process_callback,
    start_pix_payment,
)
from finance.services import calculate_split, settle_ride
from logistics.models import CancelledBy, PaymentMethod, Ride, RideStatus
from logistics.tests.factories import make_assigned_ride, make_client, make_courier

WEBHOOK_URL = '/api/payments/mercadopago/webhook/'


class TestWalletService(TestCase):
    """Tests for WalletService credit/debit operations."""

    def setUp(self):
        self.courier = make_courier(wallet_balance=Decimal('0.00'))

    def test_credit_increases_balance(self):
        tx = WalletService.credit(
            user=self.courier,
            amount=Decimal('17.00'),
            transaction_type=TransactionType.RIDE_CREDIT,
            description="Ganho"
        )

        self.courier.refresh_from_db()
        self.assertEqual(self.courier.wallet_balance, Decimal('17.00'))
        self.assertEqual(tx.balance_before, Decimal('0.00'))
        self.assertEqual(tx.balance_after, Decimal('17.00'))
        self.assertEqual(tx.status, TransactionStatus.COMPLETED)

    def test_debit_stored_as_negative(self):
        WalletService.credit(self.courier, Decimal('10.00'), TransactionType.RIDE_CREDIT)

        tx = WalletService.debit(self.courier, Decimal('4.00'), TransactionType.COMMISSION)

        self.assertEqual(tx.amount, Decimal('-4.00'))
        self.courier.refresh_from_db()
        self.assertEqual(self.courier.wallet_balance, Decimal('6.00'))

    def test_debit_insufficient_funds(self):
        with self.assertRaises(ValueError):
            WalletService.debit(self.courier, Decimal('1.00'), TransactionType.COMMISSION)
        self.assertFalse(Transaction.objects.exists())

    def test_debit_allow_negative(self):
        tx = WalletService.debit(
            self.courier, Decimal('3.00'), TransactionType.COMMISSION, allow_negative=True
        )

        self.assertEqual(tx.balance_after, Decimal('-3.00'))

    def test_non_positive_amounts_rejected(self):
        with self.assertRaises(ValueError):
            WalletService.credit(self.courier, Decimal('0'), TransactionType.RIDE_CREDIT)
        with self.assertRaises(ValueError):
            WalletService.debit(self.courier, Decimal('-1'), TransactionType.COMMISSION)


class TestSettlement(TestCase):
    """15% commission on every completed ride."""

    def setUp(self):
        self.client_user = make_client()
        self.courier = make_courier(wallet_balance=Decimal('0.00'))

    def test_calculate_split(self):
        self.assertEqual(calculate_split(Decimal('20.00')), (Decimal('3.00'), Decimal('17.00')))
        self.assertEqual(calculate_split(Decimal('12.50')), (Decimal('1.88'), Decimal('10.62')))

    @override_settings(PLATFORM_COMMISSION_PERCENT=20)
    def test_commission_follows_setting(self):
        self.assertEqual(calculate_split(Decimal('20.00')), (Decimal('4.00'), Decimal('16.00')))

    def test_cash_debits_commission(self):
        ride = make_assigned_ride(
            self.client_user, self.courier, status=RideStatus.IN_PROGRESS,
            price='20.00', payment_method=PaymentMethod.CASH,
        )

        balance = settle_ride(ride)

        self.assertEqual(balance, Decimal('-3.00'))
        self.assertEqual(ride.platform_fee, Decimal('3.00'))
        self.assertEqual(ride.courier_earning, Decimal('17.00'))
        tx = Transaction.objects.get(ride=ride)
        self.assertEqual(tx.transaction_type, TransactionType.COMMISSION)

    def test_pix_credits_net_earning(self):
        ride = make_assigned_ride(
            self.client_user, self.courier, status=RideStatus.IN_PROGRESS,
            price='20.00', payment_method=PaymentMethod.PIX,
        )

        balance = settle_ride(ride)

        self.assertEqual(balance, Decimal('17.00'))
        self.assertEqual(Transaction.objects.get(ride=ride).amount, Decimal('17.00'))

    def test_ride_without_courier_rejected(self):
        ride = make_assigned_ride(self.client_user, None, payment_method=PaymentMethod.CASH)

        with self.assertRaises(ValueError):
            settle_ride(ride)


class TestPixPayments(TestCase):

    def setUp(self):
        self.client_user = make_client()
        self.courier = make_courier()
        self.ride = make_assigned_ride(self.client_user, self.courier, price='25.00')

    def _pending_payment(self, provider_payment_id='555'):
        return RidePayment.objects.create(
            ride=self.ride,
            provider_payment_id=provider_payment_id,
            amount=self.ride.price,
            qr_code='00020126',
        )

    # ==========================================
    # Charge creation
    # ==========================================

    @patch('finance.payment_service.MercadoPagoService.create_pix_payment')
    def test_pending_payment_reused(self, mock_create):
        self._pending_payment()

        result = start_pix_payment(self.ride.id)

        mock_create.assert_not_called()
        self.assertEqual(result['payment_id'], '555')
        self.assertEqual(result['pix_copia_cola'], '00020126')

    @patch('finance.payment_service.MercadoPagoService.create_pix_payment')
    def test_provider_failure_raises(self, mock_create):
        mock_create.return_value = {'success': False, 'error': 'timeout'}

        with self.assertRaises(PaymentProviderError):
            start_pix_payment(self.ride.id)

    def test_only_rides_awaiting_payment(self):
        self.ride.status = RideStatus.PENDING
        self.ride.save()

        result = start_pix_payment(self.ride.id)

        self.assertFalse(result['success'])
        self.assertEqual(result['error_code'], 'invalid_status')

    # ==========================================
    # Provider callbacks
    # ==========================================

    def test_approved_releases_ride(self):
        self._pending_payment()

        result = process_callback(self.ride.id, '555', 'approved', {'id': 555})

        self.assertTrue(result.success)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, RideStatus.RELEASED)
        self.assertEqual(self.ride.payment_method, PaymentMethod.PIX)
        payment = RidePayment.objects.get(provider_payment_id='555')
        self.assertEqual(payment.status, RidePaymentStatus.APPROVED)
        self.assertTrue(payment.callback_received)
        self.assertIsNotNone(payment.confirmed_at)

    def test_duplicate_callback_applied_once(self):
        self._pending_payment()
        process_callback(self.ride.id, '555', 'approved')
        code = Ride.objects.get(pk=self.ride.pk).security_code

        self.assertIsNone(process_callback(self.ride.id, '555', 'approved'))

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.security_code, code)

    def test_rejected_cancels_ride_as_system(self):
        self._pending_payment()

        result = process_callback(self.ride.id, '555', 'rejected')

        self.assertTrue(result.success)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, RideStatus.CANCELLED)
        self.assertEqual(self.ride.cancelled_by, CancelledBy.SYSTEM)
        self.assertEqual(self.ride.cancellation_reason, PAYMENT_REJECTED_REASON)

    def test_pending_status_changes_nothing(self):
        self._pending_payment()

        self.assertIsNone(process_callback(self.ride.id, '555', 'in_process'))

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, RideStatus.AWAITING_PAYMENT)

    def test_unknown_payment_recorded_on_callback(self):
        result = process_callback(self.ride.id, '777', 'approved')

        self.assertTrue(result.success)
        self.assertEqual(RidePayment.objects.get(provider_payment_id='777').ride, self.ride)

    def test_payment_of_another_ride_ignored(self):
        other = make_assigned_ride(self.client_user, make_courier())
        self._pending_payment()

        self.assertIsNone(process_callback(other.id, '555', 'approved'))

        other.refresh_from_db()
        self.assertEqual(other.status, RideStatus.AWAITING_PAYMENT)


class TestMercadoPagoService(TestCase):
    """HTTP calls to Mercado Pago with requests mocked."""

    @patch('finance.mercadopago_service.requests.post')
    def test_create_pix_payment(self, mock_post):
        mock_post.return_value = MagicMock(
            status_code=201,
            json=MagicMock(return_value={
                'id': 123456,
                'status': 'pending',
                'point_of_interaction': {
                    'transaction_data': {'qr_code': '000201', 'qr_code_base64': 'iVBOR'}
                },
            })
        )

        result = MercadoPagoService.create_pix_payment(
            amount=Decimal('25.00'),
            external_reference='ride-uuid',
            description='Corrida',
        )

        self.assertTrue(result['success'])
        self.assertEqual(result['payment_id'], '123456')
        self.assertEqual(result['qr_code'], '000201')

        _, kwargs = mock_post.call_args
        self.assertEqual(kwargs['json']['transaction_amount'], 25.0)
        self.assertEqual(kwargs['json']['payment_method_id'], 'pix')
        self.assertEqual(
            kwargs['json']['notification_url'],
            'https://falcoes.test/api/payments/mercadopago/webhook/'
        )
        self.assertEqual(kwargs['headers']['X-Idempotency-Key'], 'ride-ride-uuid')
        self.assertIn('timeout', kwargs)

    @patch('finance.mercadopago_service.requests.post')
    def test_create_timeout(self, mock_post):
        mock_post.side_effect = requests.Timeout("Read timed out")

        result = MercadoPagoService.create_pix_payment(Decimal('10.00'), 'ref', 'Corrida')

        self.assertFalse(result['success'])

    @patch('finance.mercadopago_service.requests.post')
    def test_create_rejected_by_provider(self, mock_post):
        mock_post.return_value = MagicMock(
            status_code=400,
            json=MagicMock(return_value={'message': 'invalid payer'})
        )

        result = MercadoPagoService.create_pix_payment(Decimal('10.00'), 'ref', 'Corrida')

        self.assertEqual(result, {'success': False, 'error': 'invalid payer'})

    @override_settings(MERCADOPAGO_ACCESS_TOKEN='')
    @patch('finance.mercadopago_service.requests.post')
    def test_missing_token(self, mock_post):
        result = MercadoPagoService.create_pix_payment(Decimal('10.00'), 'ref', 'Corrida')

        self.assertFalse(result['success'])
        mock_post.assert_not_called()

    @patch('finance.mercadopago_service.requests.get')
    def test_get_payment(self, mock_get):
        mock_get.return_value = MagicMock(
            json=MagicMock(return_value={'id': 99, 'status': 'approved', 'external_reference': 'abc'})
        )

        result = MercadoPagoService.get_payment('99')

        self.assertEqual(result['status'], 'approved')
        self.assertEqual(result['external_reference'], 'abc')
        self.assertEqual(result['payment_id'], '99')

    @patch('finance.mercadopago_service.requests.get')
    def test_get_payment_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("down")

        self.assertFalse(MercadoPagoService.get_payment('99')['success'])


@override_settings(MERCADOPAGO_WEBHOOK_SECRET='')
class TestMercadoPagoWebhook(TestCase):

    def setUp(self):
        self.ride = make_assigned_ride(make_client(), make_courier(), price='25.00')
        RidePayment.objects.create(ride=self.ride, provider_payment_id='555', amount=self.ride.price)

    def _provider_says(self, mock_get, provider_status, reference=None):
        mock_get.return_value = {
            'success': True,
            'payment_id': '555',
            'status': provider_status,
            'external_reference': reference if reference is not None else str(self.ride.id),
            'raw': {'id': 555, 'status': provider_status},
        }

    def _post(self, body, **headers):
        return self.client.post(WEBHOOK_URL, body, content_type='application/json', **headers)

    @patch('finance.payment_api.MercadoPagoService.get_payment')
    def test_approved_payment_releases_ride(self, mock_get):
        self._provider_says(mock_get, 'approved')

        response = self._post({'type': 'payment', 'data': {'id': '555'}})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'received': True, 'applied': True})
        mock_get.assert_called_once_with('555')
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, RideStatus.RELEASED)

    @patch('finance.payment_api.MercadoPagoService.get_payment')
    def test_redelivery_is_acknowledged_but_not_reapplied(self, mock_get):
        self._provider_says(mock_get, 'approved')
        self._post({'type': 'payment', 'data': {'id': '555'}})

        response = self._post({'type': 'payment', 'data': {'id': '555'}})

        self.assertEqual(response.json(), {'received': True, 'applied': False})

    @patch('finance.payment_api.MercadoPagoService.get_payment')
    def test_ipn_query_format(self, mock_get):
        self._provider_says(mock_get, 'approved')

        response = self.client.post(f'{WEBHOOK_URL}?topic=payment&id=555')

        self.assertEqual(response.status_code, 200)
        mock_get.assert_called_once_with('555')

    @patch('finance.payment_api.MercadoPagoService.get_payment')
    @patch('finance.payment_api.MercadoPagoService.get_merchant_order_payment_id')
    def test_merchant_order_resolved_to_payment(self, mock_order, mock_get):
        mock_order.return_value = {'success': True, 'payment_id': '555'}
        self._provider_says(mock_get, 'approved')

        response = self._post({'topic': 'merchant_order', 'resource': 'https://api.mercadolibre.com/merchant_orders/42'})

        self.assertEqual(response.status_code, 200)
        mock_order.assert_called_once_with('42')
        mock_get.assert_called_once_with('555')

    @patch('finance.payment_api.MercadoPagoService.get_payment')
    def test_unknown_topic_ignored(self, mock_get):
        response = self._post({'type': 'plan', 'data': {'id': '1'}})

        self.assertEqual(response.json(), {'received': True, 'ignored': True})
        mock_get.assert_not_called()

    @patch('finance.payment_api.MercadoPagoService.get_payment')
    def test_provider_down_asks_for_retry(self, mock_get):
        mock_get.return_value = {'success': False, 'error': 'timeout'}

        response = self._post({'type': 'payment', 'data': {'id': '555'}})

        self.assertEqual(response.status_code, 503)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, RideStatus.AWAITING_PAYMENT)

    @patch('finance.payment_api.MercadoPagoService.get_payment')
    def test_payment_without_ride_reference_ignored(self, mock_get):
        self._provider_says(mock_get, 'approved', reference='pedido-123')

        response = self._post({'type': 'payment', 'data': {'id': '555'}})

        self.assertEqual(response.json(), {'received': True, 'ignored': True})

    def test_get_not_allowed(self):
        self.assertEqual(self.client.get(WEBHOOK_URL).status_code, 405)

    @override_settings(MERCADOPAGO_WEBHOOK_SECRET='s3cret')
    @patch('finance.payment_api.MercadoPagoService.get_payment')
    def test_signature_checked_when_secret_set(self, mock_get):
        self._provider_says(mock_get, 'approved')
        manifest = 'id:555;request-id:req-1;ts:1700000000;'
        digest = hmac.new(b's3cret', manifest.encode(), hashlib.sha256).hexdigest()

        bad = self._post(
            {'type': 'payment', 'data': {'id': '555'}},
            HTTP_X_SIGNATURE='ts=1700000000,v1=deadbeef',
            HTTP_X_REQUEST_ID='req-1',
        )
        good = self._post(
            {'type': 'payment', 'data': {'id': '555'}},
            HTTP_X_SIGNATURE=f'ts=1700000000,v1={digest}',
            HTTP_X_REQUEST_ID='req-1',
        )

        self.assertEqual(bad.status_code, 401)
        self.assertEqual(good.status_code, 200)
        self.assertEqual(good.json()['applied'], True)


class TestWalletAPI(TestCase):

    def setUp(self):
        self.courier = make_courier(wallet_balance=Decimal('0.00'))
        self.api = APIClient()
        self.api.force_authenticate(user=self.courier)

    def test_balance_after_cash_ride(self):
        ride = make_assigned_ride(
            make_client(), self.courier, status=RideStatus.COMPLETED,
            price='20.00', payment_method=PaymentMethod.CASH,
        )
        settle_ride(ride)
        self.courier.refresh_from_db()
        self.api.force_authenticate(user=self.courier)

        response = self.api.get('/api/wallet/balance/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(response.data['balance']), Decimal('-3.00'))
        self.assertTrue(response.data['owes_platform'])
        self.assertEqual(Decimal(response.data['total_commission_paid']), Decimal('3.00'))
        self.assertEqual(response.data['completed_rides'], 1)

    def test_history(self):
        WalletService.credit(self.courier, Decimal('17.00'), TransactionType.RIDE_CREDIT)

        response = self.api.get('/api/wallet/history/')

        self.assertEqual(len(response.data), 1)

    def test_client_has_no_wallet(self):
        api = APIClient()
        api.force_authenticate(user=make_client())

        self.assertEqual(api.get('/api/wallet/balance/').status_code, status.HTTP_403_FORBIDDEN)

    def test_transaction_summary(self):
        ride = make_assigned_ride(
            make_client(), self.courier, status=RideStatus.COMPLETED,
            price='20.00', payment_method=PaymentMethod.PIX,
        )
        settle_ride(ride)
        WalletService.debit(self.courier, Decimal('2.00'), TransactionType.COMMISSION)

        response = self.api.get('/api/transactions/summary/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_transactions'], 2)
        self.assertEqual(response.data['rides_settled'], 1)
        self.assertEqual(response.data['by_type'][TransactionType.RIDE_CREDIT]['total'], Decimal('17.00'))
        self.assertEqual(response.data['net'], Decimal('15.00'))

    def test_transactions_list_is_own_only(self):
        WalletService.credit(self.courier, Decimal('5.00'), TransactionType.RIDE_CREDIT)
        WalletService.credit(make_courier(), Decimal('5.00'), TransactionType.RIDE_CREDIT)

        response = self.api.get('/api/transactions/')

        self.assertEqual(response.data['count'], 1)
