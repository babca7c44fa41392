"""
Falcões Monitoring & Health Check Endpoints
===========================================

Provides:
1. /health/ - Basic liveness check (for load balancers/Docker)
2. /health/ready/ - Readiness check (DB, cache, dispatch sweep)
3. /health/detailed/ - Dispatch diagnostics (staff only)
"""

import time
import logging
from datetime import timedelta

from django.conf import settings
from django.http import JsonResponse
from django.db import connection
from django.core.cache import cache
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt
from django.utils import timezone
from django.utils.dateparse import parse_datetime

logger = logging.getLogger('falcoes.monitoring')


@csrf_exempt
@require_GET
def health_check(request):
    """
    Basic liveness probe.
    Returns 200 if the Django process is alive.
    """
    return JsonResponse({
        'status': 'ok',
        'service': 'falcoes',
        'timestamp': timezone.now().isoformat(),
    })


def _sweep_check() -> dict:
    """The sweep loop records its last tick in the cache."""
    from logistics.services.sweep import LAST_SWEEP_CACHE_KEY

    last = cache.get(LAST_SWEEP_CACHE_KEY)
    if not last:
        return {'status': 'degraded', 'error': 'No sweep recorded yet'}

    last_at = parse_datetime(last)
    age = (timezone.now() - last_at).total_seconds()
    stale_after = timedelta(seconds=settings.DISPATCH_SWEEP_INTERVAL_SECONDS * 6).total_seconds()
    return {
        'status': 'healthy' if age <= stale_after else 'degraded',
        'last_tick': last,
        'age_seconds': round(age, 1),
    }


@csrf_exempt
@require_GET
def readiness_check(request):
    """
    Readiness probe - checks all critical dependencies.
    Returns 200 only if database and cache are healthy.
    A late sweep is reported as degraded, not as down.
    """
    checks = {}
    all_healthy = True

    # 1. Database Check
    try:
        start = time.time()
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        checks['database'] = {
            'status': 'healthy',
            'response_time_ms': round((time.time() - start) * 1000, 2),
            'vendor': connection.vendor,
        }
    except Exception as e:
        checks['database'] = {'status': 'unhealthy', 'error': str(e)}
        all_healthy = False
        logger.error(f"Health check - Database unhealthy: {e}")

    # 2. Cache Check
    try:
        start = time.time()
        cache_key = '_healthcheck_ping'
        cache.set(cache_key, 'pong', 10)
        if cache.get(cache_key) != 'pong':
            raise Exception("Cache read/write mismatch")
        checks['cache'] = {
            'status': 'healthy',
            'response_time_ms': round((time.time() - start) * 1000, 2),
        }
    except Exception as e:
        checks['cache'] = {'status': 'unhealthy', 'error': str(e)}
        all_healthy = False
        logger.error(f"Health check - Cache unhealthy: {e}")

    # 3. Dispatch sweep freshness
    if checks['cache']['status'] == 'healthy':
        checks['dispatch_sweep'] = _sweep_check()
        if checks['dispatch_sweep']['status'] != 'healthy':
            logger.warning("Health check - Dispatch sweep is late")

    return JsonResponse({
        'status': 'healthy' if all_healthy else 'unhealthy',
        'service': 'falcoes',
        'timestamp': timezone.now().isoformat(),
        'checks': checks,
    }, status=200 if all_healthy else 503)


@csrf_exempt
@require_GET
def detailed_health(request):
    """
    Dispatch diagnostics (staff only): couriers online, rides per status.
    """
    if not request.user.is_authenticated or not request.user.is_staff:
        return JsonResponse({
            'error': 'Unauthorized',
            'message': 'Staff access required for detailed diagnostics',
        }, status=403)

    from django.db.models import Count
    from core.models import User, UserRole
    from logistics.models import Ride, RideExposure

    now = timezone.now()
    rides_by_status = dict(
        Ride.objects.values_list('status').annotate(total=Count('id')).order_by()
    )
    couriers = User.objects.filter(role=UserRole.COURIER, is_approved=True)

    return JsonResponse({
        'status': 'ok',
        'service': 'falcoes',
        'timestamp': now.isoformat(),
        'stats': {
            'couriers': {
                'approved': couriers.count(),
                'online': couriers.filter(online_until__gt=now).count(),
                'blocked': couriers.filter(blocked_until__gt=now).count(),
            },
            'rides': rides_by_status,
            'live_offers': RideExposure.objects.live(now).count(),
        },
    })
