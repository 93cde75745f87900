import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from .errors import MediaJobError

logger = logging.getLogger(__name__)


def media_exception_handler(exc, context):
    """DRF handler that answers domain errors with their status and message."""
    if isinstance(exc, MediaJobError):
        if exc.status_code >= 500:
            logger.error("Request failed: %s", exc.message)
        return Response({"detail": exc.message}, status=exc.status_code)
    return exception_handler(exc, context)
