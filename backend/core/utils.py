"""Utility functions for audit logging, document numbers and paging"""
import logging
import uuid

from django.utils import timezone

from .models import AuditLog

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


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
        action: Action type (create, update, status_change, payment, ...)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        object_name: Human-readable name of the object
        object_reference: Reference identifier (e.g., order number, ticket number)
    """
    if not action or not model_name or not object_id:
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
            ip_address=get_client_ip(request) if request else None,
        )
    except Exception as e:
        # Don't fail the main operation if audit logging fails
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def generate_document_number(prefix, hex_length=8, model=None, field=None):
    """
    Build a document number like ORD-20240131-9F2C01AB.

    When model/field are given, regenerate until the number is unused.
    """
    def build():
        return f"{prefix}-{timezone.now().strftime('%Y%m%d')}-{uuid.uuid4().hex[:hex_length].upper()}"

    number = build()
    if model is not None and field:
        while model.objects.filter(**{field: number}).exists():
            number = build()
    return number


def parse_paging(request, default_page_size=DEFAULT_PAGE_SIZE):
    """Read page/page_size query params, clamped to sane bounds"""
    try:
        page = max(int(request.query_params.get('page', 1)), 1)
    except (TypeError, ValueError):
        page = 1
    raw_size = request.query_params.get('page_size') or request.query_params.get('pageSize')
    try:
        page_size = int(raw_size) if raw_size else default_page_size
    except (TypeError, ValueError):
        page_size = default_page_size
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
    return page, page_size


def paginate_queryset(queryset, page, page_size):
    """Return (total, rows) for a 1-based page"""
    total = queryset.count()
    start = (page - 1) * page_size
    return total, list(queryset[start:start + page_size])
