"""DRF exception handler that keeps framework errors inside the API envelope."""
import logging

from rest_framework import exceptions
from rest_framework.views import exception_handler

from .responses import error_body

logger = logging.getLogger(__name__)

ERROR_CODES = {
    exceptions.MethodNotAllowed: 'METHOD_NOT_ALLOWED',
    exceptions.NotAuthenticated: 'NOT_AUTHENTICATED',
    exceptions.AuthenticationFailed: 'NOT_AUTHENTICATED',
    exceptions.PermissionDenied: 'ACCESS_DENIED',
    exceptions.ParseError: 'PARSE_ERROR',
    exceptions.ValidationError: 'VALIDATION_ERROR',
    exceptions.NotFound: 'NOT_FOUND',
}


def envelope_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return None

    code = ERROR_CODES.get(type(exc)) or str(getattr(exc, 'default_code', 'error')).upper()
    details = None
    if isinstance(response.data, dict) and 'detail' in response.data:
        message = str(response.data['detail'])
    else:
        message = 'Invalid request'
        details = response.data

    if code == 'METHOD_NOT_ALLOWED':
        message = f"Only {', '.join(_allowed_methods(context))} method is allowed"

    logger.warning(f"API error {response.status_code} {code}: {message}")
    response.data = error_body(code, message, details)
    return response


def _allowed_methods(context):
    view = context.get('view')
    if view is None:
        return []
    return [m for m in view.allowed_methods if m not in ('OPTIONS', 'HEAD')]
