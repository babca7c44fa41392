"""
Falcões Core Tests
==================

Tests for:
1. Custom User Model (phone login, roles, courier state)
2. Courier directory (heartbeat, eligibility, penalties)
3. Courier presence API
4. Registration and admin approval
5. Health probes
"""

import uuid
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from core import courier_directory
from core.courier_directory import CourierNotFoundError
from core.models import CourierCategory, User, UserRole


def create_courier(phone='+5511990000002', **extra):
    extra.setdefault('full_name', 'Courier Test')
    extra.setdefault('is_approved', True)
    return User.objects.create_user(
        phone_number=phone,
        password='testpass123',
        role=UserRole.COURIER,
        **extra
    )


class TestUserModel(TestCase):
    """Tests for the custom User model."""

    def setUp(self):
        self.courier = create_courier()
        self.client_user = User.objects.create_user(
            phone_number='+5511990000003',
            password='testpass123',
            role=UserRole.CLIENT,
            full_name='Client Test',
        )

    # ==========================================
    # User Creation Tests
    # ==========================================

    def test_user_creation_with_phone(self):
        """User should be created with phone number as identifier."""
        self.assertEqual(self.courier.phone_number, '+5511990000002')
        self.assertTrue(self.courier.check_password('testpass123'))
        self.assertIsInstance(self.courier.pk, uuid.UUID)

    def test_phone_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(phone_number='', password='x')

    def test_superuser_is_admin(self):
        admin = User.objects.create_superuser(phone_number='+5511990000001', password='adminpass123')

        self.assertEqual(admin.role, UserRole.ADMIN)
        self.assertTrue(admin.is_staff)
        self.assertTrue(admin.is_approved)

    def test_role_helpers(self):
        self.assertTrue(self.courier.is_courier)
        self.assertFalse(self.client_user.is_courier)

    def test_defaults(self):
        self.assertEqual(self.courier.wallet_balance, Decimal('0.00'))
        self.assertEqual(self.courier.courier_category, CourierCategory.GENERAL)
        self.assertIsNone(self.courier.online_until)
        self.assertFalse(self.courier.is_online)
        self.assertFalse(self.courier.is_blocked)
        self.assertEqual(self.courier.block_minutes_remaining, 0)

    # ==========================================
    # Courier State Tests
    # ==========================================

    def test_online_until_in_future_is_online(self):
        self.courier.online_until = timezone.now() + timedelta(seconds=30)
        self.assertTrue(self.courier.is_online)

        self.courier.online_until = timezone.now() - timedelta(seconds=1)
        self.assertFalse(self.courier.is_online)

    def test_block_minutes_rounded_up(self):
        self.courier.blocked_until = timezone.now() + timedelta(seconds=61)

        self.assertTrue(self.courier.is_blocked)
        self.assertEqual(self.courier.block_minutes_remaining, 2)


class TestCourierDirectory(TestCase):
    """Heartbeat, eligibility and penalty rules."""

    def setUp(self):
        self.courier = create_courier()

    def test_set_online_renews_window(self):
        courier = courier_directory.set_online(self.courier.pk)

        self.assertTrue(courier.is_online)
        remaining = (courier.online_until - timezone.now()).total_seconds()
        self.assertTrue(55 <= remaining <= 60)

    def test_set_online_stores_valid_position(self):
        courier = courier_directory.set_online(self.courier.pk, latitude='-23.561684', longitude=-46.655981)

        self.assertEqual(courier.latitude, Decimal('-23.561684'))
        self.assertEqual(courier.longitude, Decimal('-46.655981'))
        self.assertIsNotNone(courier.last_location_updated)

    def test_invalid_position_keeps_last_known(self):
        courier_directory.set_online(self.courier.pk, latitude=-23.5, longitude=-46.6)

        for lat, lng in [(None, None), ('abc', -46.0), (float('nan'), -46.0), (95, -46.0), (True, False)]:
            with self.subTest(lat=lat, lng=lng):
                courier = courier_directory.set_online(self.courier.pk, latitude=lat, longitude=lng)
                self.assertEqual(courier.latitude, Decimal('-23.5'))
                self.assertEqual(courier.longitude, Decimal('-46.6'))

    def test_set_online_clears_served_penalty(self):
        User.objects.filter(pk=self.courier.pk).update(blocked_until=timezone.now() - timedelta(minutes=1))

        courier = courier_directory.set_online(self.courier.pk)

        self.assertIsNone(courier.blocked_until)

    def test_set_online_keeps_running_penalty(self):
        courier_directory.penalize(self.courier.pk)

        courier = courier_directory.set_online(self.courier.pk)

        self.assertTrue(courier.is_blocked)

    def test_set_offline(self):
        courier_directory.set_online(self.courier.pk)

        courier_directory.set_offline(self.courier.pk)

        self.courier.refresh_from_db()
        self.assertFalse(self.courier.is_online)

    def test_penalize_default_duration(self):
        courier = courier_directory.penalize(self.courier.pk)

        self.assertTrue(courier.is_blocked)
        self.assertEqual(courier.block_minutes_remaining, 5)

    def test_penalize_custom_duration(self):
        courier = courier_directory.penalize(self.courier.pk, timedelta(seconds=30))

        self.assertEqual(courier.block_minutes_remaining, 1)

    def test_eligibility(self):
        courier_directory.set_online(self.courier.pk)

        self.assertTrue(courier_directory.is_eligible(self.courier.pk, CourierCategory.DELIVERY))
        self.assertTrue(courier_directory.is_eligible(self.courier.pk, CourierCategory.PASSENGER))

        courier_directory.penalize(self.courier.pk)
        self.assertFalse(courier_directory.is_eligible(self.courier.pk, CourierCategory.DELIVERY))

    def test_category_restricts_eligibility(self):
        User.objects.filter(pk=self.courier.pk).update(courier_category=CourierCategory.PASSENGER)
        courier_directory.set_online(self.courier.pk)

        self.assertFalse(courier_directory.is_eligible(self.courier.pk, CourierCategory.DELIVERY))
        self.assertIn(self.courier, courier_directory.eligible_couriers(CourierCategory.PASSENGER))

    def test_unapproved_not_eligible(self):
        pending = create_courier(phone='+5511990000009', is_approved=False)
        courier_directory.set_online(pending.pk)

        self.assertFalse(courier_directory.is_eligible(pending.pk, CourierCategory.DELIVERY))

    def test_unknown_courier_raises(self):
        client_user = User.objects.create_user(phone_number='+5511990000010', password='x')

        for call in (
            lambda: courier_directory.set_online(uuid.uuid4()),
            lambda: courier_directory.set_offline(uuid.uuid4()),
            lambda: courier_directory.penalize(uuid.uuid4()),
            lambda: courier_directory.is_eligible(client_user.pk, CourierCategory.DELIVERY),
        ):
            with self.assertRaises(CourierNotFoundError):
                call()


class TestCourierPresenceAPI(TestCase):
    """POST /api/courier/status/ and GET /api/courier/profile/"""

    def setUp(self):
        self.courier = create_courier()
        self.api = APIClient()
        self.api.force_authenticate(user=self.courier)

    def test_heartbeat_online(self):
        response = self.api.post('/api/courier/status/', {
            'online': True,
            'latitude': -23.55,
            'longitude': -46.63,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['online'])
        self.assertFalse(response.data['blocked'])
        self.courier.refresh_from_db()
        self.assertEqual(self.courier.latitude, Decimal('-23.55'))

    def test_heartbeat_offline(self):
        self.api.post('/api/courier/status/', {'online': True}, format='json')

        response = self.api.post('/api/courier/status/', {'online': False}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['online'])

    def test_heartbeat_reports_penalty(self):
        courier_directory.penalize(self.courier.pk)

        response = self.api.post('/api/courier/status/', {'online': True}, format='json')

        self.assertTrue(response.data['blocked'])
        self.assertEqual(response.data['block_minutes_remaining'], 5)

    def test_profile(self):
        response = self.api.get('/api/courier/profile/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['phone_number'], self.courier.phone_number)

    def test_client_cannot_heartbeat(self):
        client_user = User.objects.create_user(phone_number='+5511990000011', password='x')
        api = APIClient()
        api.force_authenticate(user=client_user)

        response = api.post('/api/courier/status/', {'online': True}, format='json')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class TestRegistrationAndApproval(TestCase):

    def setUp(self):
        self.admin = User.objects.create_superuser(phone_number='+5511990000001', password='adminpass123')
        self.admin_api = APIClient()
        self.admin_api.force_authenticate(user=self.admin)

    def _register(self, phone, role):
        return APIClient().post('/api/auth/register/', {
            'phone_number': phone,
            'password': 'Falcao#Seguro2024',
            'full_name': 'Novo Usuário',
            'role': role,
        }, format='json')

    def test_client_registration_is_approved(self):
        response = self._register('+5511990000020', UserRole.CLIENT)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_approved'])
        self.assertEqual(response.data['message'], 'Conta criada com sucesso!')

    def test_courier_registration_waits_for_approval(self):
        response = self._register('+5511990000021', UserRole.COURIER)

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['is_approved'])
        self.assertEqual(response.data['message'], 'Cadastro enviado! Aguarde aprovação.')

    def test_cannot_register_as_admin(self):
        response = self._register('+5511990000022', UserRole.ADMIN)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_lists_and_approves_pending_courier(self):
        courier = create_courier(phone='+5511990000023', is_approved=False)

        response = self.admin_api.get('/api/users/pending/')
        self.assertEqual([u['id'] for u in response.data], [str(courier.pk)])

        response = self.admin_api.post(f'/api/users/{courier.pk}/approve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        courier.refresh_from_db()
        self.assertTrue(courier.is_approved)

    def test_reject_deactivates(self):
        courier = create_courier(phone='+5511990000024', is_approved=False)

        response = self.admin_api.post(f'/api/users/{courier.pk}/reject/')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        courier.refresh_from_db()
        self.assertFalse(courier.is_active)

    def test_approve_client_is_400(self):
        client_user = User.objects.create_user(phone_number='+5511990000025', password='x')

        response = self.admin_api.post(f'/api/users/{client_user.pk}/approve/')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_pending_is_admin_only(self):
        api = APIClient()
        api.force_authenticate(user=create_courier(phone='+5511990000026'))

        response = api.get('/api/users/pending/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_courier_cannot_approve_self(self):
        courier = create_courier(phone='+5511990000027', is_approved=False)
        api = APIClient()
        api.force_authenticate(user=courier)

        response = api.post(f'/api/users/{courier.pk}/approve/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        courier.refresh_from_db()
        self.assertFalse(courier.is_approved)

    def test_user_directories_are_admin_only(self):
        client_user = User.objects.create_user(phone_number='+5511990000028', password='x')
        api = APIClient()
        api.force_authenticate(user=client_user)

        for path in ('/api/users/couriers/', '/api/users/clients/'):
            with self.subTest(path=path):
                self.assertEqual(api.get(path).status_code, status.HTTP_403_FORBIDDEN)

        self.assertEqual(self.admin_api.get('/api/users/couriers/').status_code, status.HTTP_200_OK)

    def test_me(self):
        response = self.admin_api.get('/api/users/me/')

        self.assertEqual(response.data['role'], UserRole.ADMIN)


class TestHealthProbes(TestCase):

    def setUp(self):
        cache.clear()

    def test_liveness(self):
        response = self.client.get('/health/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'ok')

    def test_readiness_reports_missing_sweep_as_degraded(self):
        response = self.client.get('/health/ready/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['checks']['dispatch_sweep']['status'], 'degraded')

    def test_readiness_after_sweep(self):
        from logistics.services.sweep import run_sweep
        run_sweep()

        response = self.client.get('/health/ready/')

        self.assertEqual(response.json()['checks']['dispatch_sweep']['status'], 'healthy')

    def test_detailed_requires_staff(self):
        self.assertEqual(self.client.get('/health/detailed/').status_code, 403)
