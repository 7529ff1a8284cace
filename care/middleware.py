import logging
import time

logger = logging.getLogger(__name__)


class RequestLogMiddleware:
    """Log method, path, status and latency of every API request."""
    PREFIXES = ('/api/',)

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path or ''
        if not path.startswith(self.PREFIXES):
            return self.get_response(request)
        started = time.monotonic()
        response = self.get_response(request)
        elapsed_ms = (time.monotonic() - started) * 1000
        user = getattr(request, 'user', None)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, '%s %s -> %s (%.1fms) user=%s', request.method, path, response.status_code,
                   elapsed_ms, getattr(user, 'id', None))
        return response
