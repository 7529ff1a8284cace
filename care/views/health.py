import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def healthz(request):
    """Liveness probe for the load balancer; only the database round-trip is checked."""
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            alive = cursor.fetchone() == (1,)
    except DatabaseError as exc:
        logger.error('Database health check failed: %s', exc)
        return JsonResponse({'ok': False, 'db': False, 'error': str(exc)}, status=503)
    return JsonResponse({'ok': True, 'db': alive})
