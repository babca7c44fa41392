"""
Falcões Exposure Ledger Tests
=============================

The courier poll is a pure read: blocked / offline / offer / idle.
"""

import uuid
from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from core.courier_directory import CourierNotFoundError
from core.models import CourierCategory
from logistics.models import RideExposure, RideStatus, ServiceKind
from logistics.services.exposure import (
    clear_exposures,
    clear_stale_exposures,
    poll_for_ride,
    visible_service_kinds,
)

from .factories import expose, make_client, make_courier, make_ride


class TestPollForRide(TestCase):
    """poll_for_ride answers what a courier should see right now."""

    def setUp(self):
        self.client_user = make_client(full_name='Ana Souza')
        self.courier = make_courier()
        self.ride = make_ride(self.client_user, price='18.50')

    def test_offer_returned_with_ride_and_requester(self):
        expose(self.ride, self.courier, seconds_ago=10)

        result = poll_for_ride(self.courier.pk)

        self.assertEqual(result['status'], 'offer')
        self.assertEqual(result['ride']['id'], str(self.ride.id))
        self.assertEqual(result['ride']['price'], '18.50')
        self.assertEqual(result['ride']['client_name'], 'Ana Souza')
        self.assertEqual(result['ride']['client_phone'], self.client_user.phone_number)
        self.assertTrue(45 <= result['expires_in'] <= 50)

    def test_idle_without_exposure(self):
        self.assertEqual(poll_for_ride(self.courier.pk), {'status': 'idle'})

    def test_offline_courier(self):
        self.courier.online_until = None
        self.courier.save()

        self.assertEqual(poll_for_ride(self.courier.pk), {'status': 'offline'})

    def test_blocked_minutes_rounded_up(self):
        """90 seconds of penalty left reads as 2 minutes."""
        self.courier.blocked_until = timezone.now() + timedelta(seconds=90)
        self.courier.save()
        expose(self.ride, self.courier)

        self.assertEqual(poll_for_ride(self.courier.pk), {'status': 'blocked', 'minutes': 2})

    def test_blocked_takes_precedence_over_offline(self):
        self.courier.online_until = None
        self.courier.blocked_until = timezone.now() + timedelta(minutes=4, seconds=1)
        self.courier.save()

        self.assertEqual(poll_for_ride(self.courier.pk)['status'], 'blocked')

    def test_aged_exposure_not_shown(self):
        """Past the 60s window the offer is gone, even before the sweep runs."""
        expose(self.ride, self.courier, seconds_ago=61)

        self.assertEqual(poll_for_ride(self.courier.pk)['status'], 'idle')

    def test_lapsed_exposure_not_shown(self):
        expose(self.ride, self.courier, lapsed=True)

        self.assertEqual(poll_for_ride(self.courier.pk)['status'], 'idle')

    def test_ride_no_longer_pending_not_shown(self):
        expose(self.ride, self.courier)
        self.ride.status = RideStatus.CANCELLED
        self.ride.save()

        self.assertEqual(poll_for_ride(self.courier.pk)['status'], 'idle')

    def test_oldest_offer_first(self):
        newer = make_ride(self.client_user)
        expose(newer, self.courier, seconds_ago=5)
        expose(self.ride, self.courier, seconds_ago=20)

        self.assertEqual(poll_for_ride(self.courier.pk)['ride']['id'], str(self.ride.id))

    def test_category_mismatch_hidden(self):
        """A passenger courier never reads a delivery offer."""
        self.courier.courier_category = CourierCategory.PASSENGER
        self.courier.save()
        expose(self.ride, self.courier)

        self.assertEqual(poll_for_ride(self.courier.pk)['status'], 'idle')

    def test_poll_never_writes(self):
        make_courier()
        rows_before = RideExposure.objects.count()

        for _ in range(3):
            poll_for_ride(self.courier.pk)

        self.assertEqual(RideExposure.objects.count(), rows_before)

    def test_unknown_courier_raises(self):
        with self.assertRaises(CourierNotFoundError):
            poll_for_ride(uuid.uuid4())

    def test_client_is_not_a_courier(self):
        with self.assertRaises(CourierNotFoundError):
            poll_for_ride(self.client_user.pk)


class TestExposureCleanup(TestCase):

    def setUp(self):
        self.client_user = make_client()
        self.ride = make_ride(self.client_user)
        self.couriers = [make_courier(), make_courier()]
        for courier in self.couriers:
            expose(self.ride, courier)

    def test_clear_exposures_removes_every_row(self):
        self.assertEqual(clear_exposures(self.ride.id), 2)
        self.assertFalse(RideExposure.objects.filter(ride=self.ride).exists())

    def test_clear_stale_exposures_only_touches_finished_rides(self):
        pending = make_ride(self.client_user)
        expose(pending, make_courier())
        self.ride.status = RideStatus.EXPIRED
        self.ride.save()

        self.assertEqual(clear_stale_exposures(), 2)
        self.assertFalse(RideExposure.objects.filter(ride=self.ride).exists())
        self.assertTrue(RideExposure.objects.filter(ride=pending).exists())

    def test_visible_service_kinds(self):
        self.assertIsNone(visible_service_kinds(CourierCategory.GENERAL))
        self.assertEqual(visible_service_kinds(CourierCategory.DELIVERY), [ServiceKind.DELIVERY])
        self.assertEqual(visible_service_kinds(CourierCategory.PASSENGER), [ServiceKind.MOTO_TAXI])
