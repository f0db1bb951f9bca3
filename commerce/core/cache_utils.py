"""
Caching utilities for storefront reads and settings
Keys are namespaced by a per-prefix generation counter so a whole family of
keys can be dropped on any cache backend (Redis in production)
"""
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
PRODUCTS_LIST_CACHE_TTL = 120  # 2 minutes
COLLECTIONS_CACHE_TTL = 300  # 5 minutes
SHIPPING_ZONES_CACHE_TTL = 300  # 5 minutes
SETTINGS_CACHE_TTL = 600  # 10 minutes

# Cache prefixes
PRODUCTS_LIST_PREFIX = 'products_list'
COLLECTIONS_PREFIX = 'collections_tree'
SHIPPING_ZONES_PREFIX = 'shipping_zones'
SETTINGS_PREFIX = 'settings'


def _generation_key(prefix):
    return f"{prefix}:generation"


def get_generation(prefix):
    """Current generation for a key family (starts at 1)"""
    generation = cache.get(_generation_key(prefix))
    if generation is None:
        generation = 1
        cache.set(_generation_key(prefix), generation, None)
    return generation


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{get_generation(prefix)}:{key_hash}"


def invalidate_prefix(prefix):
    """Drop every key built with ``prefix`` by moving to a new generation"""
    try:
        cache.incr(_generation_key(prefix))
    except ValueError:
        # Generation key missing or evicted
        cache.set(_generation_key(prefix), 2, None)
    logger.info(f"Invalidated cache keys with prefix: {prefix}")


def cached_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache expensive reads

    Usage:
        @cached_query(cache_ttl=120, key_prefix=PRODUCTS_LIST_PREFIX)
        def get_storefront_products(filters):
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(key_prefix, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            cache.set(cache_key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def invalidate_products_cache():
    """Invalidate storefront product lists"""
    invalidate_prefix(PRODUCTS_LIST_PREFIX)


def invalidate_collections_cache():
    invalidate_prefix(COLLECTIONS_PREFIX)


def invalidate_shipping_cache():
    invalidate_prefix(SHIPPING_ZONES_PREFIX)


def invalidate_settings_cache():
    invalidate_prefix(SETTINGS_PREFIX)
