"""
Domain errors shared by every app.

Each error is a DRF ``APIException`` so that raising it anywhere below a view
turns into the matching HTTP status without per-view plumbing:

    ValidationError     -> 400
    AuthorizationError  -> 403
    NotFoundError       -> 404
    ConflictError       -> 409
"""
import logging

from django.core.exceptions import ObjectDoesNotExist
from django.http import Http404
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ValidationError(exceptions.ValidationError):
    """Malformed payload or a violated field rule"""
    default_code = 'invalid'


class NotFoundError(exceptions.NotFound):
    """Unknown id or dangling reference"""
    default_detail = 'Requested object was not found.'
    default_code = 'not_found'


class AuthorizationError(exceptions.PermissionDenied):
    """The user's role on the target does not allow the mutation"""
    default_detail = 'Your role does not allow this operation.'
    default_code = 'forbidden'


class ConflictError(exceptions.APIException):
    """Concurrent write collision; safe to retry with a fresh read"""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'The resource was modified concurrently. Please retry.'
    default_code = 'conflict'


DOMAIN_ERRORS = (NotFoundError, AuthorizationError, ConflictError)


def api_exception_handler(exc, context):
    """
    DRF exception handler that logs handled errors and flattens domain errors
    into ``{'error': ..., 'code': ...}``.
    """
    if isinstance(exc, ObjectDoesNotExist):
        exc = NotFoundError(str(exc) or None)

    response = exception_handler(exc, context)
    view = context.get('view')
    view_name = view.__class__.__name__ if view else 'unknown'

    if response is None:
        return None

    if isinstance(exc, DOMAIN_ERRORS):
        response.data = {'error': str(exc.detail), 'code': exc.get_codes()}
    elif isinstance(exc, Http404):
        response.data = {'error': 'Not found', 'code': 'not_found'}

    if response.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"{view_name}: {exc}", exc_info=True)
    else:
        logger.warning(f"{view_name}: request rejected with {response.status_code}: {exc}")
    return response


def error_response(message, status_code=status.HTTP_400_BAD_REQUEST, code='invalid'):
    """Build an error response in the same shape the exception handler emits"""
    return Response({'error': message, 'code': code}, status=status_code)
