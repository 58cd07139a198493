"""
Cache invalidation signals
Automatically invalidate cache when data changes
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging
import threading
from contextlib import contextmanager

from .cache_service import cache_service, CacheKeys
from .cache_utils import invalidate_dashboard_cache

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()


@contextmanager
def suspend_cache_signals():
    """
    Context manager to temporarily suspend cache invalidation signals.
    Useful for bulk operations to prevent excessive cache clearing.
    Remember to manually invalidate cache after the block!
    """
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = False


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


# --- Manual Invalidation Helpers ---

def invalidate_products_cache(product_id=None):
    """Drop product detail, product lists and search results"""
    if product_id is not None:
        cache_service.remove(CacheKeys.product(product_id))
    cache_service.remove_by_pattern(CacheKeys.PRODUCTS_LIST_PATTERN)
    cache_service.remove_by_pattern(CacheKeys.SEARCH_PATTERN)


def invalidate_categories_cache():
    cache_service.remove_by_pattern(CacheKeys.CATEGORIES_PATTERN)
    invalidate_products_cache()


def invalidate_brands_cache():
    cache_service.remove_by_pattern(CacheKeys.BRANDS_PATTERN)
    invalidate_products_cache()


def invalidate_banners_cache():
    cache_service.remove_by_pattern(CacheKeys.BANNERS_PATTERN)


def invalidate_system_config_cache(key=None):
    if key:
        cache_service.remove(CacheKeys.system_config(key))
    cache_service.remove_by_pattern(CacheKeys.SYSTEM_CONFIG_PATTERN)


def invalidate_order_cache(order_id, customer_id=None):
    cache_service.remove(CacheKeys.order(order_id))
    if customer_id is not None:
        cache_service.remove(CacheKeys.customer_orders(customer_id))
    invalidate_dashboard_cache()


# --- Signal Handlers ---

@receiver([post_save, post_delete])
def invalidate_on_change(sender, instance, **kwargs):
    """Route model changes to the matching cache invalidation"""
    if is_suspended():
        return

    model_name = sender.__name__
    try:
        if model_name == 'Product':
            invalidate_products_cache(instance.pk)
        elif model_name == 'ProductReview':
            invalidate_products_cache(instance.product_id)
        elif model_name == 'Category':
            invalidate_categories_cache()
        elif model_name == 'Brand':
            invalidate_brands_cache()
        elif model_name == 'Banner':
            invalidate_banners_cache()
        elif model_name == 'SystemConfig':
            invalidate_system_config_cache(instance.key)
        elif model_name == 'Order':
            invalidate_order_cache(instance.pk, instance.customer_id)
        elif model_name in ('Invoice', 'PaymentApplication', 'WorkOrder', 'WarrantyClaim'):
            invalidate_dashboard_cache()
    except Exception as e:
        logger.warning(f"Error in cache invalidation signal for {model_name}: {e}")
