"""API exception handling"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def error_message(exc):
    """First human-readable message of a Django ValidationError"""
    if hasattr(exc, 'messages') and exc.messages:
        return exc.messages[0]
    return str(exc)


def error_response(message, status_code=status.HTTP_400_BAD_REQUEST, **extra):
    data = {'error': message}
    data.update(extra)
    return Response(data, status=status_code)


def api_exception_handler(exc, context):
    """DRF handler plus Django ValidationError -> 400 {'error': ...}"""
    if isinstance(exc, DjangoValidationError):
        return error_response(error_message(exc))

    response = exception_handler(exc, context)
    if response is None:
        view = context.get('view')
        logger.exception(f"Unhandled error in {view.__class__.__name__ if view else 'view'}: {exc}")
    return response
