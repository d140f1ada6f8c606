"""Helpers for turning service-layer errors into DRF responses."""

import functools
import logging

from rest_framework.response import Response

from services.exceptions import BookingError, ValidationError

logger = logging.getLogger(__name__)


def error_response(exc: BookingError) -> Response:
    body = {'error': str(exc), 'code': exc.code}
    if isinstance(exc, ValidationError) and exc.errors:
        body['errors'] = exc.errors
    return Response(body, status=exc.status_code)


def handle_service_errors(view_func):
    """Wrap a view so service exceptions come back as JSON error responses."""

    @functools.wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except BookingError as exc:
            logger.info('%s %s -> %s: %s', request.method, request.path, exc.code, exc)
            return error_response(exc)

    return wrapper
