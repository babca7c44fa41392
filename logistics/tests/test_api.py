"""
Falcões Ride API Tests
======================

End-to-end over HTTP: the client requests, the courier polls and accepts,
the client pays, the courier starts and completes with the code.
"""

import uuid
from decimal import Decimal
from unittest.mock import patch

from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from finance.models import RidePayment, Transaction, TransactionType
from logistics.models import PaymentMethod, Ride, RideExposure, RideStatus, ServiceKind

from .factories import expose, make_admin, make_assigned_ride, make_client, make_courier, make_ride


def ride_url(ride_id, action=None):
    if action:
        return f'/api/rides/{ride_id}/{action}/'
    return f'/api/rides/{ride_id}/'


class RideApiTestCase(APITestCase):

    def setUp(self):
        self.client_user = make_client(full_name='Ana Souza')
        self.courier = make_courier(full_name='Carlos Falcão', wallet_balance=Decimal('0.00'))

        self.client_api = APIClient()
        self.client_api.force_authenticate(user=self.client_user)
        self.courier_api = APIClient()
        self.courier_api.force_authenticate(user=self.courier)


class TestCashRideFlow(RideApiTestCase):

    def test_full_cash_flow(self):
        # 1. Client requests a delivery
        response = self.client_api.post('/api/rides/', {
            'origin': 'Av. Paulista, 1000',
            'destination': 'Rua Augusta, 500',
            'price': '20.00',
            'service_kind': ServiceKind.DELIVERY,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], RideStatus.PENDING)
        ride_id = response.data['id']

        # 2. Courier polls and sees the offer
        response = self.courier_api.get('/api/courier/offer/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'offer')
        self.assertEqual(response.data['ride']['id'], str(ride_id))

        # 3. Courier accepts
        response = self.courier_api.post(ride_url(ride_id, 'accept'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ride']['status'], RideStatus.AWAITING_PAYMENT)
        self.assertFalse(RideExposure.objects.filter(ride_id=ride_id).exists())

        # 4. Starting before payment is refused
        response = self.courier_api.post(ride_url(ride_id, 'start'))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'payment_pending')

        # 5. Client pays cash: ride released, client sees the code
        response = self.client_api.post(
            ride_url(ride_id, 'payment'), {'payment_method': PaymentMethod.CASH}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ride']['status'], RideStatus.RELEASED)
        code = response.data['ride']['security_code']
        self.assertRegex(code, r'^\d{4}$')

        # 6. Courier starts
        response = self.courier_api.post(ride_url(ride_id, 'start'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ride']['status'], RideStatus.IN_PROGRESS)

        # 7. Wrong code, then the right one
        wrong = '0000' if code != '0000' else '1111'
        response = self.courier_api.post(ride_url(ride_id, 'complete'), {'security_code': wrong}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'wrong_security_code')

        response = self.courier_api.post(ride_url(ride_id, 'complete'), {'security_code': code}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ride']['status'], RideStatus.COMPLETED)

        # 8. Courier owes the platform its commission
        self.courier.refresh_from_db()
        self.assertEqual(self.courier.wallet_balance, Decimal('-3.00'))
        self.assertEqual(
            Transaction.objects.get(ride_id=ride_id).transaction_type,
            TransactionType.COMMISSION
        )

    def test_create_rejects_bad_input(self):
        response = self.client_api.post('/api/rides/', {
            'origin': 'A',
            'destination': 'B',
            'price': '0',
            'service_kind': ServiceKind.DELIVERY,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Ride.objects.exists())

    def test_courier_cannot_create_ride(self):
        response = self.courier_api.post('/api/rides/', {
            'origin': 'A', 'destination': 'B', 'price': '10.00',
            'service_kind': ServiceKind.DELIVERY,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unauthenticated_is_401(self):
        response = APIClient().post('/api/rides/', {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class TestRideApiGuards(RideApiTestCase):

    def test_security_code_hidden_from_courier(self):
        ride = make_assigned_ride(
            self.client_user, self.courier, status=RideStatus.RELEASED, security_code='4321'
        )

        client_view = self.client_api.get(ride_url(ride.id))
        courier_view = self.courier_api.get(ride_url(ride.id))

        self.assertEqual(client_view.data['security_code'], '4321')
        self.assertNotIn('security_code', courier_view.data)

    def test_second_accept_is_409(self):
        ride = make_ride(self.client_user)
        other_api = APIClient()
        other_api.force_authenticate(user=make_courier())

        self.assertEqual(self.courier_api.post(ride_url(ride.id, 'accept')).status_code, status.HTTP_200_OK)
        response = other_api.post(ride_url(ride.id, 'accept'))

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'ride_unavailable')

    def test_accept_unknown_ride_is_404(self):
        response = self.courier_api.post(ride_url(uuid.uuid4(), 'accept'))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_client_cannot_accept(self):
        ride = make_ride(self.client_user)

        response = self.client_api.post(ride_url(ride.id, 'accept'))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unapproved_courier_cannot_accept(self):
        ride = make_ride(self.client_user)
        pending_api = APIClient()
        pending_api.force_authenticate(user=make_courier(is_approved=False))

        response = pending_api.post(ride_url(ride.id, 'accept'))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_start_someone_elses_ride_is_403(self):
        ride = make_assigned_ride(self.client_user, make_courier(), status=RideStatus.RELEASED)

        response = self.courier_api.post(ride_url(ride.id, 'start'))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'not_your_ride')

    def test_expire_offer(self):
        ride = make_ride(self.client_user)
        expose(ride, self.courier)

        response = self.courier_api.post(ride_url(ride.id, 'expire'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.courier.refresh_from_db()
        self.assertTrue(self.courier.is_blocked)

        response = self.courier_api.get('/api/courier/offer/')
        self.assertEqual(response.data['status'], 'blocked')

    def test_client_cancels_with_reason(self):
        ride = make_ride(self.client_user)

        response = self.client_api.post(ride_url(ride.id, 'cancel'), {'reason': 'Desisti'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ride']['status'], RideStatus.CANCELLED)
        self.assertEqual(response.data['ride']['cancellation_reason'], 'Desisti')

    def test_stranger_cancel_is_403(self):
        ride = make_ride(self.client_user)
        stranger_api = APIClient()
        stranger_api.force_authenticate(user=make_client())

        response = stranger_api.post(ride_url(ride.id, 'cancel'))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_rides_list_scoped_to_user(self):
        mine = make_ride(self.client_user)
        make_ride(make_client())

        response = self.client_api.get('/api/rides/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([r['id'] for r in response.data['results']], [str(mine.id)])


class TestCourierEndpoints(RideApiTestCase):

    def test_current_ride(self):
        self.assertEqual(self.courier_api.get('/api/courier/current-ride/').data, {'ride': None})

        ride = make_assigned_ride(self.client_user, self.courier)

        response = self.courier_api.get('/api/courier/current-ride/')
        self.assertEqual(response.data['ride']['id'], str(ride.id))

    def test_offer_poll_requires_courier(self):
        response = self.client_api.get('/api/courier/offer/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class TestRideMessages(RideApiTestCase):

    def setUp(self):
        super().setUp()
        self.ride = make_assigned_ride(self.client_user, self.courier)

    def test_participants_chat(self):
        response = self.client_api.post(
            ride_url(self.ride.id, 'messages'), {'text': 'Estou no portão azul'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.courier_api.get(ride_url(self.ride.id, 'messages'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['text'], 'Estou no portão azul')
        self.assertEqual(response.data[0]['sender_name'], 'Ana Souza')

    def test_stranger_cannot_read_chat(self):
        stranger_api = APIClient()
        stranger_api.force_authenticate(user=make_client())

        response = stranger_api.get(ride_url(self.ride.id, 'messages'))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_admin_reads_but_cannot_post(self):
        admin_api = APIClient()
        admin_api.force_authenticate(user=make_admin())

        self.assertEqual(admin_api.get(ride_url(self.ride.id, 'messages')).status_code, status.HTTP_200_OK)
        response = admin_api.post(ride_url(self.ride.id, 'messages'), {'text': 'Oi'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class TestPixPayment(RideApiTestCase):

    def setUp(self):
        super().setUp()
        self.ride = make_assigned_ride(self.client_user, self.courier, price='25.00')

    @patch('finance.payment_service.MercadoPagoService.create_pix_payment')
    def test_pix_returns_qr_and_keeps_ride_waiting(self, mock_create):
        mock_create.return_value = {
            'success': True,
            'payment_id': '98765',
            'status': 'pending',
            'qr_code': '00020126580014br.gov.bcb.pix',
            'qr_code_base64': 'iVBORw0KGgo=',
        }

        response = self.client_api.post(
            ride_url(self.ride.id, 'payment'), {'payment_method': PaymentMethod.PIX}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['payment_id'], '98765')
        self.assertEqual(response.data['pix_copia_cola'], '00020126580014br.gov.bcb.pix')
        self.assertEqual(response.data['ride']['status'], RideStatus.AWAITING_PAYMENT)
        payment = RidePayment.objects.get(provider_payment_id='98765')
        self.assertEqual(payment.amount, Decimal('25.00'))

    @patch('finance.payment_service.MercadoPagoService.create_pix_payment')
    def test_provider_failure_is_502(self, mock_create):
        mock_create.return_value = {'success': False, 'error': 'Read timed out'}

        response = self.client_api.post(
            ride_url(self.ride.id, 'payment'), {'payment_method': PaymentMethod.PIX}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, RideStatus.AWAITING_PAYMENT)
        self.assertFalse(RidePayment.objects.exists())

    def test_payment_on_released_ride_is_409(self):
        self.ride.status = RideStatus.RELEASED
        self.ride.save()

        response = self.client_api.post(
            ride_url(self.ride.id, 'payment'), {'payment_method': PaymentMethod.CASH}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)


class TestAdminDashboard(APITestCase):

    def test_admin_sees_dashboard(self):
        client_user = make_client()
        make_courier()
        make_courier(is_approved=False)
        make_ride(client_user)

        api = APIClient()
        api.force_authenticate(user=make_admin())
        response = api.get('/api/admin/dashboard/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['today']['total'], 1)
        self.assertEqual(response.data['couriers']['approved'], 1)
        self.assertEqual(response.data['couriers']['online'], 1)
        self.assertEqual(response.data['pending_approvals'], 1)
        self.assertEqual(len(response.data['last_rides']), 1)

    def test_courier_gets_403(self):
        api = APIClient()
        api.force_authenticate(user=make_courier())

        self.assertEqual(api.get('/api/admin/dashboard/').status_code, status.HTTP_403_FORBIDDEN)
