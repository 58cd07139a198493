"""
Caching utilities for expensive aggregate queries (dashboards, reports)
"""
from functools import wraps
import hashlib
import logging

from .cache_service import cache_service, KEY_PREFIX

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
DASHBOARD_CACHE_TTL = 300  # 5 minutes
REPORTS_CACHE_TTL = 600  # 10 minutes

DASHBOARD_KEY_PREFIX = f"{KEY_PREFIX}reports:dashboard"
REPORTS_KEY_PREFIX = f"{KEY_PREFIX}reports:"


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    # Convert args and kwargs to a stable string representation
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(cache_ttl=300, key_prefix=DASHBOARD_KEY_PREFIX)
        def build_dashboard(date_from, date_to):
            # expensive aggregation here
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(key_prefix, *args, **kwargs)

            cached_data = cache_service.get(cache_key)
            if cached_data is not None:
                return cached_data

            result = func(*args, **kwargs)
            cache_service.set(cache_key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def invalidate_dashboard_cache():
    """Invalidate dashboard and report aggregates"""
    cache_service.remove_by_pattern(f"{REPORTS_KEY_PREFIX}*")
    logger.info("Invalidated dashboard cache")
