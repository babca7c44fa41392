"""
Falcões Dispatch Sweep Tests
============================

Lapsing aged offers, penalizing non-responders, re-dispatch and the
watchdog, driven through run_sweep, the management command and the
Celery task.
"""

import uuid
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.cache import cache
from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from logistics.exceptions import RideNotFoundError
from logistics.models import RideExposure, RideStatus
from logistics.services.lifecycle import SYSTEM_TIMEOUT_REASON
from logistics.services.sweep import (
    LAST_SWEEP_CACHE_KEY,
    expire_exposure,
    reconcile_ride,
    run_sweep,
)
from logistics.tasks import SWEEP_LOCK_KEY, run_dispatch_sweep

from .factories import expose, make_client, make_courier, make_ride


class TestRunSweep(TestCase):

    def setUp(self):
        cache.clear()
        self.client_user = make_client()
        self.ride = make_ride(self.client_user)

    def test_aged_offer_lapses_penalizes_and_moves_on(self):
        """Courier A ignores the offer for 61s: A is penalized, B gets it."""
        courier_a = make_courier()
        courier_b = make_courier()
        expose(self.ride, courier_a, seconds_ago=61)

        report = run_sweep()

        self.assertEqual(report.lapsed_exposures, 1)
        self.assertEqual(report.dispatched, 1)

        courier_a.refresh_from_db()
        self.assertTrue(courier_a.is_blocked)

        open_offer = RideExposure.objects.get(ride=self.ride, lapsed_at__isnull=True)
        self.assertEqual(open_offer.courier, courier_b)
        self.assertTrue(
            RideExposure.objects.filter(ride=self.ride, courier=courier_a, lapsed_at__isnull=False).exists()
        )

    def test_single_courier_lapses_into_next_cycle(self):
        """Only courier lapses and is blocked: no open offer, cycle advances."""
        courier = make_courier()
        expose(self.ride, courier, seconds_ago=61)

        report = run_sweep()

        self.assertEqual(report.lapsed_exposures, 1)
        self.assertEqual(report.dispatched, 0)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.dispatch_cycle, 2)
        self.assertFalse(RideExposure.objects.filter(ride=self.ride, lapsed_at__isnull=True).exists())

    def test_live_offer_left_alone(self):
        courier = make_courier()
        make_courier()
        expose(self.ride, courier, seconds_ago=30)

        report = run_sweep()

        self.assertEqual(report.lapsed_exposures, 0)
        self.assertEqual(report.dispatched, 0)
        courier.refresh_from_db()
        self.assertFalse(courier.is_blocked)
        self.assertEqual(RideExposure.objects.filter(ride=self.ride).count(), 1)

    def test_ride_without_offer_gets_dispatched(self):
        """A courier came online after the ride was created."""
        courier = make_courier()

        report = run_sweep()

        self.assertEqual(report.dispatched, 1)
        self.assertEqual(RideExposure.objects.get(ride=self.ride).courier, courier)

    def test_running_twice_is_idempotent(self):
        make_courier()
        run_sweep()

        report = run_sweep()

        self.assertEqual(report.dispatched, 0)
        self.assertEqual(RideExposure.objects.filter(ride=self.ride).count(), 1)

    def test_watchdog_expires_old_pending_ride(self):
        self.ride.created_at = timezone.now() - timedelta(minutes=16)
        self.ride.save()
        make_courier()

        report = run_sweep()

        self.assertEqual(report.expired_rides, 1)
        self.ride.refresh_from_db()
        self.assertEqual(self.ride.status, RideStatus.EXPIRED)
        self.assertEqual(self.ride.cancellation_reason, SYSTEM_TIMEOUT_REASON)
        self.assertFalse(RideExposure.objects.filter(ride=self.ride).exists())

    def test_exposures_of_finished_rides_cleared(self):
        courier = make_courier()
        expose(self.ride, courier)
        self.ride.status = RideStatus.CANCELLED
        self.ride.save()

        report = run_sweep()

        self.assertEqual(report.cleared_exposures, 1)
        self.assertFalse(RideExposure.objects.exists())

    def test_one_failing_ride_does_not_stop_others(self):
        make_courier()
        second = make_ride(self.client_user)
        real_reconcile = reconcile_ride

        def flaky(ride_id, now=None):
            if ride_id == self.ride.id:
                raise RuntimeError("boom")
            return real_reconcile(ride_id, now)

        with patch('logistics.services.sweep.reconcile_ride', side_effect=flaky):
            report = run_sweep()

        self.assertEqual(report.failures, 1)
        self.assertEqual(report.dispatched, 1)
        self.assertTrue(RideExposure.objects.filter(ride=second).exists())

    def test_records_last_run(self):
        run_sweep()

        self.assertIsNotNone(cache.get(LAST_SWEEP_CACHE_KEY))


class TestExpireExposure(TestCase):
    """The courier's own screen timing out (or a decline)."""

    def setUp(self):
        self.client_user = make_client()
        self.ride = make_ride(self.client_user)
        self.courier = make_courier()
        self.other = make_courier()
        expose(self.ride, self.courier, seconds_ago=5)

    def test_expire_penalizes_and_redispatches(self):
        result = expire_exposure(self.ride.id, self.courier)

        self.assertTrue(result.success)
        self.courier.refresh_from_db()
        self.assertTrue(self.courier.is_blocked)
        self.assertEqual(
            RideExposure.objects.get(ride=self.ride, lapsed_at__isnull=True).courier,
            self.other
        )

    def test_second_expire_has_no_active_offer(self):
        expire_exposure(self.ride.id, self.courier)

        result = expire_exposure(self.ride.id, self.courier)

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, 'no_active_offer')

    def test_courier_without_offer(self):
        result = expire_exposure(self.ride.id, self.other)

        self.assertFalse(result.success)
        self.other.refresh_from_db()
        self.assertFalse(self.other.is_blocked)

    def test_failed_penalty_keeps_offer_open(self):
        with patch('logistics.services.sweep.penalize', side_effect=RuntimeError("db down")):
            with self.assertRaises(RuntimeError):
                expire_exposure(self.ride.id, self.courier)

        exposure = RideExposure.objects.get(ride=self.ride, courier=self.courier)
        self.assertIsNone(exposure.lapsed_at)

        # The next attempt lapses and penalizes together
        result = expire_exposure(self.ride.id, self.courier)
        self.assertTrue(result.success)
        self.courier.refresh_from_db()
        self.assertTrue(self.courier.is_blocked)

    def test_unknown_ride(self):
        with self.assertRaises(RideNotFoundError):
            expire_exposure(uuid.uuid4(), self.courier)


class TestSweepEntryPoints(TestCase):

    def setUp(self):
        cache.clear()
        self.ride = make_ride(make_client())
        make_courier()

    def test_management_command_once(self):
        out = StringIO()

        call_command('run_dispatch_sweep', '--once', stdout=out)

        self.assertIn('dispatched 1', out.getvalue())
        self.assertTrue(RideExposure.objects.filter(ride=self.ride).exists())

    def test_celery_task_runs_sweep(self):
        result = run_dispatch_sweep()

        self.assertEqual(result['dispatched'], 1)
        self.assertIsNone(cache.get(SWEEP_LOCK_KEY))

    def test_celery_task_skips_when_locked(self):
        cache.add(SWEEP_LOCK_KEY, 'locked', timeout=30)

        self.assertIsNone(run_dispatch_sweep())
        self.assertFalse(RideExposure.objects.exists())
