"""Correlation ID middleware and log record filter."""

import contextvars
import logging
import re
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

CORRELATION_HEADER = "x-correlation-id"

_correlation_id = contextvars.ContextVar("correlation_id", default=None)
_VALID_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def get_correlation_id():
    return _correlation_id.get()


class CorrelationIdFilter(logging.Filter):
    """Attach the current request's correlation ID to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = _correlation_id.get() or "-"
        return True


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Add correlation ID to requests and responses."""

    async def dispatch(self, request: Request, call_next):
        """Process request with correlation ID."""
        # Untrusted header values are replaced rather than echoed back
        incoming = request.headers.get(CORRELATION_HEADER)
        correlation_id = incoming if incoming and _VALID_ID.match(incoming) else str(uuid.uuid4())

        request.state.correlation_id = correlation_id
        token = _correlation_id.set(correlation_id)
        try:
            response: Response = await call_next(request)
        finally:
            _correlation_id.reset(token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
