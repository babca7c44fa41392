"""
LOGISTICS App - Celery Tasks

The dispatch sweep, scheduled every DISPATCH_SWEEP_INTERVAL_SECONDS by
Celery beat (see CELERY_BEAT_SCHEDULE).
"""

from celery import shared_task
from django.conf import settings
from django.core.cache import cache
import logging

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = 'logistics:dispatch-sweep-lock'


@shared_task(name='logistics.tasks.run_dispatch_sweep', ignore_result=True)
def run_dispatch_sweep():
    """
    Expire stale offers, penalize non-responders and re-dispatch.

    A cache lock keeps two workers from sweeping at the same time when a
    tick runs longer than the interval.
    """
    from logistics.services.sweep import run_sweep

    lock_ttl = max(int(settings.DISPATCH_SWEEP_INTERVAL_SECONDS * 6), 30)
    if not cache.add(SWEEP_LOCK_KEY, 'locked', timeout=lock_ttl):
        logger.debug("[SWEEP TASK] Previous sweep still running, skipping tick")
        return None

    try:
        report = run_sweep()
        return {
            'expired_rides': report.expired_rides,
            'lapsed_exposures': report.lapsed_exposures,
            'dispatched': report.dispatched,
            'failures': report.failures,
        }
    except Exception as e:
        logger.error(f"[SWEEP TASK] Sweep failed: {e}")
        return None
    finally:
        cache.delete(SWEEP_LOCK_KEY)
