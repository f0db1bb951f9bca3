"""
API error taxonomy and the REST framework exception handler.

Every error body has the shape::

    {"error": "...", "code": "NOT_FOUND", "field": null, "details": ...}
"""
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError
from django.db.models import ProtectedError
from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

STATUS_CODES = {
    status.HTTP_400_BAD_REQUEST: 'VALIDATION_ERROR',
    status.HTTP_401_UNAUTHORIZED: 'UNAUTHORIZED',
    status.HTTP_403_FORBIDDEN: 'FORBIDDEN',
    status.HTTP_404_NOT_FOUND: 'NOT_FOUND',
    status.HTTP_405_METHOD_NOT_ALLOWED: 'METHOD_NOT_ALLOWED',
    status.HTTP_409_CONFLICT: 'CONFLICT',
    status.HTTP_415_UNSUPPORTED_MEDIA_TYPE: 'UNSUPPORTED_MEDIA_TYPE',
    status.HTTP_429_TOO_MANY_REQUESTS: 'THROTTLED',
    status.HTTP_502_BAD_GATEWAY: 'EXTERNAL_SERVICE_ERROR',
}


class CommerceError(APIException):
    """Base class for domain errors raised from services and views"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Internal error.'
    default_code = 'INTERNAL_ERROR'

    def __init__(self, detail=None, field=None, details=None):
        super().__init__(detail=detail, code=self.default_code)
        self.field = field
        self.details = details


class ValidationFailed(CommerceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'VALIDATION_ERROR'


class ResourceNotFound(CommerceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'NOT_FOUND'


class Conflict(CommerceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflict with the current state of the resource.'
    default_code = 'CONFLICT'


class DuplicateResource(Conflict):
    default_detail = 'Resource already exists.'
    default_code = 'DUPLICATE_ERROR'


class InsufficientStock(Conflict):
    default_detail = 'Insufficient stock.'
    default_code = 'INSUFFICIENT_STOCK'

    def __init__(self, product, requested, field='items'):
        super().__init__(
            detail=f'Insufficient stock for {product.name}: {product.stock_on_hand} available, {requested} requested',
            field=field,
            details={
                'product': product.id,
                'available': product.stock_on_hand,
                'requested': requested,
            },
        )


class ExternalServiceError(CommerceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = 'External service error.'
    default_code = 'EXTERNAL_SERVICE_ERROR'


def _first_message(detail):
    if isinstance(detail, dict):
        for value in detail.values():
            return _first_message(value)
        return None
    if isinstance(detail, (list, tuple)):
        return _first_message(detail[0]) if detail else None
    return str(detail)


def _has_code(codes, code):
    if isinstance(codes, dict):
        return any(_has_code(value, code) for value in codes.values())
    if isinstance(codes, (list, tuple)):
        return any(_has_code(value, code) for value in codes)
    return codes == code


def api_exception_handler(exc, context):
    """Wrap the default handler so every error carries a code and field"""
    if isinstance(exc, ProtectedError):
        exc = Conflict('The record is still referenced by other records and cannot be deleted.')
    elif isinstance(exc, IntegrityError):
        view = context.get('view')
        logger.warning(f"Integrity error in {view.__class__.__name__ if view else 'unknown view'}: {exc}")
        exc = Conflict('The change conflicts with existing data.')
    elif isinstance(exc, DjangoValidationError):
        exc = ValidationError(detail=exc.message_dict if hasattr(exc, 'error_dict') else exc.messages)

    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, CommerceError):
        body = {
            'error': str(exc.detail),
            'code': exc.default_code,
            'field': exc.field,
            'details': exc.details,
        }
    elif isinstance(exc, ValidationError):
        detail = response.data
        field = None
        if isinstance(detail, dict):
            field = next((key for key in detail.keys() if key != 'non_field_errors'), None)
        # Model-level unique validators surface as 409 rather than 400
        duplicate = _has_code(exc.get_codes(), 'unique')
        if duplicate:
            response.status_code = status.HTTP_409_CONFLICT
        body = {
            'error': _first_message(detail) or 'Invalid input.',
            'code': 'DUPLICATE_ERROR' if duplicate else 'VALIDATION_ERROR',
            'field': field,
            'details': detail,
        }
    else:
        data = response.data
        message = data.get('detail') if isinstance(data, dict) else _first_message(data)
        body = {
            'error': str(message) if message is not None else 'Request failed.',
            'code': STATUS_CODES.get(response.status_code, 'INTERNAL_ERROR'),
            'field': None,
            'details': None,
        }

    response.data = body
    return response
