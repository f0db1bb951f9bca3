"""Utility functions for audit logging, pagination and query params"""
import logging

from django.core.paginator import Paginator
from rest_framework.response import Response

from .exceptions import ValidationFailed
from .models import AuditLog

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, object_name=None, object_reference=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP) - optional if user is provided
        action: Action type (create, update, delete, stock_adjust, order_status, ...)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object (e.g., product name, order code)
        object_reference: Reference identifier (e.g., order code, payment reference)
    """
    if not action or not model_name or object_id is None:
        logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
        return None

    audit_user = user
    if audit_user is None and request is not None and hasattr(request, 'user'):
        audit_user = request.user

    try:
        return AuditLog.objects.create(
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            object_reference=object_reference,
            changes=changes or {},
            ip_address=get_client_ip(request),
        )
    except Exception as e:
        # Don't fail the main operation if audit logging fails
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def parse_int_param(request, name, default, minimum=1, maximum=None):
    """Read a positive integer query param, raising VALIDATION_ERROR on junk"""
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed(f'{name} must be an integer', field=name)
    if value < minimum:
        raise ValidationFailed(f'{name} must be at least {minimum}', field=name)
    if maximum is not None:
        value = min(value, maximum)
    return value


def parse_bool_param(request, name):
    """Return True/False for a boolean query param, None when absent"""
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return None
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def paginate(queryset, page, limit, serializer_class, context=None):
    """Serialize one page of ``queryset`` into the standard envelope"""
    paginator = Paginator(queryset, limit)
    page_obj = paginator.get_page(page)

    serializer = serializer_class(page_obj, many=True, context=context or {})
    return {
        'results': list(serializer.data),
        'count': paginator.count,
        'next': page_obj.next_page_number() if page_obj.has_next() else None,
        'previous': page_obj.previous_page_number() if page_obj.has_previous() else None,
        'page': page_obj.number,
        'page_size': limit,
        'total_pages': paginator.num_pages,
    }


def get_page_params(request, default_limit=DEFAULT_PAGE_SIZE):
    page = parse_int_param(request, 'page', 1)
    limit = parse_int_param(request, 'limit', default_limit, maximum=MAX_PAGE_SIZE)
    return page, limit


def paginated_response(request, queryset, serializer_class, context=None, default_limit=DEFAULT_PAGE_SIZE):
    """Paginate with ``page``/``limit`` query params"""
    page, limit = get_page_params(request, default_limit)
    return Response(paginate(queryset, page, limit, serializer_class, context or {'request': request}))
