"""
Django middleware for request-level correlation ID tracking.
"""
import uuid

from config.logging_filters import set_correlation_id


class CorrelationIdMiddleware:
    """Generate or propagate a correlation ID for every request."""

    header = "X-Correlation-ID"

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        cid = request.headers.get(self.header) or f"req-{uuid.uuid4().hex[:8]}"
        set_correlation_id(cid)
        try:
            response = self.get_response(request)
        finally:
            set_correlation_id("")
        response[self.header] = cid
        return response
