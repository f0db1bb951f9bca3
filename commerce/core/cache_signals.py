"""
Cache invalidation signals
Automatically invalidate cache when data changes
"""
from contextlib import contextmanager
import logging
import threading

from django.db import transaction
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver

from . import cache_utils

logger = logging.getLogger(__name__)

# Thread-local storage to track signal suspension
_thread_locals = threading.local()


@contextmanager
def suspend_cache_signals():
    """
    Temporarily suspend cache invalidation signals.
    Used by bulk operations; invalidate manually after the block.
    """
    previous = is_suspended()
    try:
        _thread_locals.suspended = True
        yield
    finally:
        _thread_locals.suspended = previous


def is_suspended():
    return getattr(_thread_locals, 'suspended', False)


def invalidate_on_commit(*invalidators):
    """Run invalidators after the surrounding transaction commits"""
    def run():
        for invalidate in invalidators:
            try:
                invalidate()
            except Exception as e:
                logger.warning(f"Error invalidating cache with {invalidate.__name__}: {e}")
    transaction.on_commit(run)


# --- Signal Handlers ---

PRODUCT_SENDERS = ['catalog.Product', 'catalog.ProductCollection', 'catalog.Brand']
COLLECTION_SENDERS = ['catalog.Collection', 'catalog.ProductCollection']
SHIPPING_SENDERS = ['shipping.ShippingMethod', 'shipping.ShippingZone', 'shipping.ShippingCity']


def _connect(handler, senders):
    for sender in senders:
        post_save.connect(handler, sender=sender, weak=False, dispatch_uid=f'{handler.__name__}:{sender}:save')
        post_delete.connect(handler, sender=sender, weak=False, dispatch_uid=f'{handler.__name__}:{sender}:delete')


def invalidate_products_cache(sender, instance, **kwargs):
    """Invalidate storefront product lists when products change"""
    if is_suspended():
        return
    invalidate_on_commit(cache_utils.invalidate_products_cache)


def invalidate_collections_cache(sender, instance, **kwargs):
    if is_suspended():
        return
    invalidate_on_commit(cache_utils.invalidate_collections_cache, cache_utils.invalidate_products_cache)


def invalidate_shipping_cache(sender, instance, **kwargs):
    """Shipping changes also change the structured settings payload"""
    if is_suspended():
        return
    invalidate_on_commit(cache_utils.invalidate_shipping_cache, cache_utils.invalidate_settings_cache)


@receiver([post_save, post_delete], sender='core.Setting')
def invalidate_settings_cache(sender, instance, **kwargs):
    if is_suspended():
        return
    invalidate_on_commit(cache_utils.invalidate_settings_cache)


_connect(invalidate_products_cache, PRODUCT_SENDERS)
_connect(invalidate_collections_cache, COLLECTION_SENDERS)
_connect(invalidate_shipping_cache, SHIPPING_SENDERS)
