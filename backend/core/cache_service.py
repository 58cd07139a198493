"""
Cache service used by every app for read-through caching of hot queries.

Wraps Django's cache with a default TTL, glob-pattern removal and
swallow-and-log failure handling so a cache outage never fails a request.
Pattern removal goes through django-redis when Redis is the backend; on other
backends it matches against the keys this process has written.
"""
import fnmatch
import hashlib
import logging
import threading
import time

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger(__name__)

KEY_PREFIX = 'cache:'
MAX_TRACKED_KEYS = 10000


class CacheKeys:
    """Builders for every cache key the API uses"""

    # Invalidation patterns
    PRODUCTS_LIST_PATTERN = 'cache:products:list*'
    CATEGORIES_PATTERN = 'cache:categor*'
    BRANDS_PATTERN = 'cache:brand*'
    BANNERS_PATTERN = 'cache:banners*'
    SYSTEM_CONFIG_PATTERN = 'cache:systemconfig*'
    SEARCH_PATTERN = 'cache:search*'
    ALL = 'cache:*'

    @staticmethod
    def product(product_id):
        return f"{KEY_PREFIX}product:{product_id}"

    @staticmethod
    def products_list(page, page_size, category_id=None, brand_id=None, search=None):
        return (
            f"{KEY_PREFIX}products:list:{page}:{page_size}:"
            f"{category_id or 'all'}:{brand_id or 'all'}:{(search or '').strip().lower()}"
        )

    @staticmethod
    def categories():
        return f"{KEY_PREFIX}categories:all"

    @staticmethod
    def brands():
        return f"{KEY_PREFIX}brands:all"

    @staticmethod
    def banners(position=None):
        return f"{KEY_PREFIX}banners:{position or 'all'}"

    @staticmethod
    def system_configs():
        return f"{KEY_PREFIX}systemconfigs:all"

    @staticmethod
    def system_config(key):
        return f"{KEY_PREFIX}systemconfig:{key}"

    @staticmethod
    def order(order_id):
        return f"{KEY_PREFIX}order:{order_id}"

    @staticmethod
    def customer_orders(customer_id):
        return f"{KEY_PREFIX}orders:customer:{customer_id}"

    @staticmethod
    def search(query, page, page_size, filters=None):
        key = f"{KEY_PREFIX}search:{(query or '').strip().lower()}:{page}:{page_size}"
        if filters:
            # Remaining filters are hashed to keep the key short
            key_data = str(sorted(filters.items()))
            key = f"{key}:{hashlib.md5(key_data.encode()).hexdigest()}"
        return key


class CacheService:
    """get / set / remove / remove_by_pattern / exists over the default cache"""

    def __init__(self, backend=None, default_ttl=None):
        self.backend = backend or cache
        self.default_ttl = default_ttl or getattr(settings, 'CACHE_DEFAULT_TTL', 1800)
        # key -> expiry (monotonic seconds); only used when the backend cannot match patterns
        self._known_keys = {}
        self._lock = threading.Lock()

    @property
    def tracks_keys(self):
        return getattr(self.backend, 'delete_pattern', None) is None

    def _prune_expired(self, now):
        expired = [k for k, expires_at in self._known_keys.items() if expires_at <= now]
        for key in expired:
            del self._known_keys[key]

    def get(self, key):
        try:
            value = self.backend.get(key)
        except Exception as e:
            logger.warning(f"Cache get failed for {key}: {e}")
            return None
        if value is None:
            logger.debug(f"Cache MISS: {key}")
        else:
            logger.debug(f"Cache HIT: {key}")
        return value

    def set(self, key, value, ttl=None):
        try:
            self.backend.set(key, value, ttl or self.default_ttl)
        except Exception as e:
            logger.warning(f"Cache set failed for {key}: {e}")
            return
        if not self.tracks_keys:
            return
        now = time.monotonic()
        evicted = []
        with self._lock:
            self._known_keys.pop(key, None)
            if len(self._known_keys) >= MAX_TRACKED_KEYS:
                self._prune_expired(now)
            # Untracked keys could not be invalidated, so the oldest ones leave the cache too
            while len(self._known_keys) >= MAX_TRACKED_KEYS:
                oldest = next(iter(self._known_keys))
                del self._known_keys[oldest]
                evicted.append(oldest)
            self._known_keys[key] = now + (ttl or self.default_ttl)
        if evicted:
            try:
                self.backend.delete_many(evicted)
            except Exception as e:
                logger.warning(f"Cache eviction failed: {e}")

    def remove(self, key):
        try:
            self.backend.delete(key)
        except Exception as e:
            logger.warning(f"Cache remove failed for {key}: {e}")
        with self._lock:
            self._known_keys.pop(key, None)

    def exists(self, key):
        try:
            return self.backend.has_key(key)
        except Exception as e:
            logger.warning(f"Cache exists check failed for {key}: {e}")
            return False

    def get_or_set(self, key, factory, ttl=None):
        """Return the cached value, computing and storing it on a miss"""
        value = self.get(key)
        if value is not None:
            return value
        value = factory()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def remove_by_pattern(self, pattern):
        """Remove every key matching a glob pattern, returns the number removed"""
        delete_pattern = getattr(self.backend, 'delete_pattern', None)
        if delete_pattern is not None:
            # django-redis: SCAN + DEL on the server side
            try:
                removed = delete_pattern(pattern) or 0
            except Exception as e:
                logger.warning(f"Could not invalidate cache pattern {pattern}: {e}")
                return 0
            logger.info(f"Invalidated {removed} cache keys matching pattern: {pattern}")
            return removed

        with self._lock:
            self._prune_expired(time.monotonic())
            matched = [k for k in self._known_keys if fnmatch.fnmatchcase(k, pattern)]
            for key in matched:
                del self._known_keys[key]
        if matched:
            try:
                self.backend.delete_many(matched)
            except Exception as e:
                logger.warning(f"Could not invalidate cache pattern {pattern}: {e}")
                return 0
        logger.info(f"Invalidated {len(matched)} cache keys matching pattern: {pattern}")
        return len(matched)

    def clear_tracking(self):
        with self._lock:
            self._known_keys.clear()


cache_service = CacheService()
