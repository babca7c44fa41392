"""
Falcões Dispatch Tests
======================

Tests for:
1. Single-offer dispatch on an eligible courier
2. Eligibility: approval, liveness, penalty, category
3. Busy couriers and couriers already looking at another offer
4. Dispatch cycles once every courier let the ride lapse
"""

import uuid
from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from core.models import CourierCategory
from logistics.exceptions import RideNotFoundError
from logistics.models import RideExposure, RideStatus, ServiceKind
from logistics.services.dispatch import dispatch_ride, find_candidate_couriers

from .factories import expose, make_assigned_ride, make_client, make_courier, make_ride


class TestDispatchRide(TestCase):
    """dispatch_ride offers a pending ride to exactly one courier."""

    def setUp(self):
        self.client_user = make_client()
        self.ride = make_ride(self.client_user, service_kind=ServiceKind.DELIVERY)

    # ==========================================
    # Basic offers
    # ==========================================

    def test_single_eligible_courier_gets_one_exposure(self):
        """One eligible courier online: exactly one exposure row for them."""
        courier = make_courier(category=CourierCategory.DELIVERY)

        self.assertEqual(dispatch_ride(self.ride.id), 1)

        exposures = RideExposure.objects.filter(ride=self.ride)
        self.assertEqual(exposures.count(), 1)
        self.assertEqual(exposures.get().courier, courier)
        self.assertEqual(exposures.get().cycle, 1)

    def test_only_one_exposure_with_many_couriers(self):
        """Single-offer: many eligible couriers still means one exposure."""
        for _ in range(4):
            make_courier()

        self.assertEqual(dispatch_ride(self.ride.id), 1)
        self.assertEqual(RideExposure.objects.filter(ride=self.ride).count(), 1)

    def test_no_courier_leaves_ride_without_exposure(self):
        """Nobody online: zero exposures, the sweep retries later."""
        make_courier(online=False)

        self.assertEqual(dispatch_ride(self.ride.id), 0)
        self.assertFalse(RideExposure.objects.filter(ride=self.ride).exists())

    def test_open_offer_blocks_a_second_offer(self):
        """While someone holds the offer, dispatch does nothing."""
        first = make_courier()
        make_courier()
        expose(self.ride, first)

        self.assertEqual(dispatch_ride(self.ride.id), 0)
        self.assertEqual(RideExposure.objects.filter(ride=self.ride).count(), 1)

    def test_unknown_service_kind_is_noop(self):
        """A kind with no courier category is logged and skipped."""
        make_courier()
        ride = make_ride(self.client_user, service_kind='helicopter')

        self.assertEqual(dispatch_ride(ride.id), 0)
        self.assertFalse(RideExposure.objects.filter(ride=ride).exists())

    def test_ride_not_pending_is_noop(self):
        make_courier()
        self.ride.status = RideStatus.CANCELLED
        self.ride.save()

        self.assertEqual(dispatch_ride(self.ride.id), 0)

    def test_missing_ride_raises(self):
        with self.assertRaises(RideNotFoundError):
            dispatch_ride(uuid.uuid4())

    # ==========================================
    # Eligibility
    # ==========================================

    def test_blocked_courier_never_exposed(self):
        """A courier serving a penalty gets no new offer."""
        make_courier(blocked_until=timezone.now() + timedelta(minutes=3))

        self.assertEqual(dispatch_ride(self.ride.id), 0)

    def test_served_penalty_does_not_block(self):
        courier = make_courier(blocked_until=timezone.now() - timedelta(seconds=1))

        self.assertEqual(dispatch_ride(self.ride.id), 1)
        self.assertEqual(RideExposure.objects.get(ride=self.ride).courier, courier)

    def test_unapproved_courier_not_exposed(self):
        make_courier(is_approved=False)

        self.assertEqual(dispatch_ride(self.ride.id), 0)

    def test_stale_heartbeat_counts_as_offline(self):
        make_courier(online_until=timezone.now() - timedelta(seconds=1))

        self.assertEqual(dispatch_ride(self.ride.id), 0)

    def test_category_must_match_service_kind(self):
        """Passenger couriers do not see deliveries; GENERAL sees everything."""
        passenger = make_courier(category=CourierCategory.PASSENGER)

        self.assertEqual(dispatch_ride(self.ride.id), 0)

        taxi = make_ride(self.client_user, service_kind=ServiceKind.MOTO_TAXI)
        self.assertEqual(dispatch_ride(taxi.id), 1)
        self.assertEqual(RideExposure.objects.get(ride=taxi).courier, passenger)

    def test_general_courier_gets_any_kind(self):
        courier = make_courier(category=CourierCategory.GENERAL)

        self.assertEqual(dispatch_ride(self.ride.id), 1)
        self.assertEqual(RideExposure.objects.get(ride=self.ride).courier, courier)

    # ==========================================
    # Busy couriers
    # ==========================================

    def test_busy_courier_not_candidate(self):
        """A courier with an active ride is never offered another."""
        busy = make_courier()
        make_assigned_ride(self.client_user, busy, status=RideStatus.IN_PROGRESS)

        self.assertNotIn(busy, find_candidate_couriers(self.ride))
        self.assertEqual(dispatch_ride(self.ride.id), 0)

    def test_courier_with_finished_ride_is_free(self):
        courier = make_courier()
        make_assigned_ride(self.client_user, courier, status=RideStatus.COMPLETED)

        self.assertIn(courier, find_candidate_couriers(self.ride))

    def test_courier_viewing_another_offer_not_candidate(self):
        """One live offer per courier at a time."""
        courier = make_courier()
        other_ride = make_ride(self.client_user)
        expose(other_ride, courier)

        self.assertEqual(dispatch_ride(self.ride.id), 0)

    def test_courier_with_aged_offer_elsewhere_is_candidate(self):
        courier = make_courier()
        other_ride = make_ride(self.client_user)
        expose(other_ride, courier, seconds_ago=61)

        self.assertIn(courier, find_candidate_couriers(self.ride))


class TestDispatchCycles(TestCase):
    """Lapsed couriers are skipped until every candidate had their turn."""

    def setUp(self):
        self.client_user = make_client()
        self.ride = make_ride(self.client_user)

    def test_lapsed_courier_not_offered_again_in_same_cycle(self):
        """Once lapsed for a ride, the courier waits for the next cycle."""
        lapsed = make_courier()
        fresh = make_courier()
        expose(self.ride, lapsed, seconds_ago=61, lapsed=True)

        self.assertEqual(dispatch_ride(self.ride.id), 1)

        exposure = RideExposure.objects.get(ride=self.ride, lapsed_at__isnull=True)
        self.assertEqual(exposure.courier, fresh)
        self.assertEqual(exposure.cycle, 1)

    def test_exhausted_cycle_starts_next_one(self):
        """Every candidate lapsed: lapsed rows go away and the cycle advances."""
        courier = make_courier()
        expose(self.ride, courier, seconds_ago=61, lapsed=True)

        self.assertEqual(dispatch_ride(self.ride.id), 1)

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.dispatch_cycle, 2)
        exposure = RideExposure.objects.get(ride=self.ride)
        self.assertEqual(exposure.courier, courier)
        self.assertEqual(exposure.cycle, 2)
        self.assertIsNone(exposure.lapsed_at)

    def test_exhausted_cycle_without_candidates_clears_ledger(self):
        """Lapsed courier still blocked: the ride is left with no exposure."""
        courier = make_courier(blocked_until=timezone.now() + timedelta(minutes=5))
        expose(self.ride, courier, seconds_ago=61, lapsed=True)

        self.assertEqual(dispatch_ride(self.ride.id), 0)

        self.ride.refresh_from_db()
        self.assertEqual(self.ride.dispatch_cycle, 2)
        self.assertFalse(RideExposure.objects.filter(ride=self.ride).exists())
