"""
Run the dispatch sweep in a loop, without Celery beat.

Usage:
    python manage.py run_dispatch_sweep
    python manage.py run_dispatch_sweep --interval 5
    python manage.py run_dispatch_sweep --once

Stops cleanly on SIGINT/SIGTERM after the current tick.
"""

import signal
import threading

from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import close_old_connections

from logistics.services.sweep import run_sweep


class Command(BaseCommand):
    help = "Expire stale ride offers, penalize non-responders and re-dispatch, every few seconds."

    def add_arguments(self, parser):
        parser.add_argument(
            "--interval",
            type=float,
            default=settings.DISPATCH_SWEEP_INTERVAL_SECONDS,
            help="Seconds between ticks (default: DISPATCH_SWEEP_INTERVAL_SECONDS).",
        )
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run a single tick and exit.",
        )

    def handle(self, *args, **options):
        if options["once"]:
            report = run_sweep()
            self.stdout.write(self.style.SUCCESS(self._summary(report)))
            return

        interval = max(options["interval"], 0.5)
        stop = threading.Event()

        def _shutdown(signum, frame):
            self.stdout.write("Stopping dispatch sweep...")
            stop.set()

        signal.signal(signal.SIGINT, _shutdown)
        signal.signal(signal.SIGTERM, _shutdown)

        self.stdout.write(self.style.SUCCESS(f"Dispatch sweep running every {interval}s"))

        while not stop.is_set():
            close_old_connections()
            try:
                report = run_sweep()
            except Exception as e:
                # Database down or similar: try again next tick
                self.stderr.write(f"Sweep tick failed: {e}")
            else:
                if not report.is_empty:
                    self.stdout.write(self._summary(report))
            stop.wait(interval)

        close_old_connections()
        self.stdout.write(self.style.SUCCESS("Dispatch sweep stopped."))

    @staticmethod
    def _summary(report) -> str:
        return (
            f"Expired {report.expired_rides} ride(s); lapsed {report.lapsed_exposures} offer(s); "
            f"dispatched {report.dispatched}; {report.failures} failure(s)."
        )
