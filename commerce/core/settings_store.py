"""
Store settings persisted as flat dotted keys.

Rows like ``general.site_name = "Shop"`` are materialized into nested
dictionaries by splitting each key on "."; nested input is flattened back
into key/value pairs before it is written.
"""
from copy import deepcopy
from decimal import Decimal, InvalidOperation
import json
import logging

from django.core.cache import cache
from django.db import transaction

from . import cache_utils
from .exceptions import ResourceNotFound, ValidationFailed
from .models import Setting

logger = logging.getLogger(__name__)

SECTION_DEFAULTS = {
    'general': {
        'site_name': '',
        'site_email': '',
        'site_phone': '',
        'site_address': '',
        'default_language': 'en',
        'timezone': 'Africa/Nairobi',
        'default_currency': 'KES',
    },
    'payments': {
        'payment_methods': ['paystack'],
        'paystack_public_key': '',
        'paystack_secret_key': '',
        'paystack_enabled': False,
    },
    'roles': {
        'admin_email': '',
        'user_roles': ['SUPER_ADMIN', 'ADMIN', 'EDITOR'],
        'permissions': {},
    },
    'shipping': {
        'default_shipping_method': 'standard',
        'free_shipping_threshold': Decimal('0'),
        'handling_fee': Decimal('0'),
    },
    'taxes': {
        'tax_enabled': False,
        'default_tax_rate': Decimal('0'),
        'tax_name': 'VAT',
        'included_in_prices': False,
    },
    'policies': {
        'privacy_policy': '',
        'privacy_policy_enabled': True,
        'terms_of_service': '',
        'return_policy': '',
        'shipping_policy': '',
        'contact_required': True,
    },
}

PUBLIC_PREFIXES = ('general.', 'policies.', 'shipping.', 'taxes.')
PUBLIC_KEYS = ('payments.paystack_public_key', 'payments.paystack_enabled')


def materialize_settings(pairs):
    """
    Build a nested dict from ``(key, value)`` pairs.

    ``[("general.site_name", "Shop")]`` -> ``{"general": {"site_name": "Shop"}}``.
    When a scalar and a nested group share a path, the group wins.
    """
    result = {}
    for key, value in pairs:
        parts = [part for part in key.split('.') if part]
        if not parts:
            continue
        node = result
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        leaf = parts[-1]
        if isinstance(node.get(leaf), dict):
            continue
        node[leaf] = value
    return result


def encode_value(value):
    """Serialize a leaf value for the text column"""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str)
    return str(value)


def flatten_settings(nested, prefix=''):
    """
    Flatten a nested dict into ``(dotted_key, text_value)`` pairs.

    Dicts recurse; lists are JSON encoded. Empty dicts are kept as a JSON
    ``{}`` leaf so the key is not silently dropped.
    """
    pairs = []
    for key, value in nested.items():
        full_key = f'{prefix}.{key}' if prefix else str(key)
        if isinstance(value, dict) and value:
            pairs.extend(flatten_settings(value, full_key))
        else:
            pairs.append((full_key, encode_value(value)))
    return pairs


def coerce_value(raw, default):
    """Parse a stored text value using the type of its default"""
    if isinstance(default, bool):
        return str(raw).strip().lower() in ('true', '1', 'yes', 'on')
    if isinstance(default, (Decimal, int, float)):
        try:
            return Decimal(str(raw).strip() or '0')
        except InvalidOperation:
            logger.warning(f"Invalid numeric setting value {raw!r}, using default {default}")
            return default
    if isinstance(default, (list, dict)):
        if raw in (None, ''):
            return deepcopy(default)
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Invalid JSON setting value {raw!r}, using default")
            return deepcopy(default)
        return parsed if isinstance(parsed, type(default)) else deepcopy(default)
    return raw


def get_all_settings():
    return {s.key: s.value for s in Setting.objects.all()}


def _is_known_key(key):
    section, _, name = key.partition('.')
    return name in SECTION_DEFAULTS.get(section, {})


def build_structured_settings(stored):
    structured = {}
    for section, defaults in SECTION_DEFAULTS.items():
        values = {}
        for name, default in defaults.items():
            key = f'{section}.{name}'
            values[name] = coerce_value(stored[key], default) if key in stored else deepcopy(default)
        structured[section] = values

    # Keys outside the known fields are still exposed, materialized
    extra = materialize_settings(
        (key, value) for key, value in stored.items() if not _is_known_key(key)
    )
    for section, values in extra.items():
        if isinstance(values, dict) and isinstance(structured.get(section), dict):
            for name, value in values.items():
                structured[section].setdefault(name, value)
        else:
            structured.setdefault(section, values)
    return structured


def get_structured_settings(use_cache=True):
    """Typed settings per section, cached"""
    cache_key = cache_utils.make_cache_key(cache_utils.SETTINGS_PREFIX, 'structured')
    cached = cache.get(cache_key) if use_cache else None
    if cached is not None:
        return cached

    structured = build_structured_settings(get_all_settings())

    from commerce.shipping.models import ShippingMethod
    structured['shipping']['methods'] = [
        {'id': m.id, 'code': m.code, 'name': m.name, 'is_express': m.is_express}
        for m in ShippingMethod.objects.filter(enabled=True).order_by('name')
    ]

    cache.set(cache_key, structured, cache_utils.SETTINGS_CACHE_TTL)
    return structured


def get_section(section):
    return get_structured_settings().get(section, {})


def is_public_key(key):
    if 'secret' in key.lower():
        return False
    return key.startswith(PUBLIC_PREFIXES) or key in PUBLIC_KEYS


def get_public_settings():
    """Settings safe for anonymous storefront clients, materialized"""
    cache_key = cache_utils.make_cache_key(cache_utils.SETTINGS_PREFIX, 'public')
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    public = materialize_settings(
        (s.key, s.value) for s in Setting.objects.all() if is_public_key(s.key)
    )
    cache.set(cache_key, public, cache_utils.SETTINGS_CACHE_TTL)
    return public


def validate_key(key):
    if not key or not isinstance(key, str):
        raise ValidationFailed('Setting key is required', field='key')
    if any(not part for part in key.split('.')):
        raise ValidationFailed(f'Invalid setting key: {key}', field='key')
    return key.strip()


def upsert_setting(key, value, description=None):
    """Create or update a single setting; returns ``(setting, created)``"""
    key = validate_key(key)
    defaults = {'value': encode_value(value) if not isinstance(value, str) else value}
    if description is not None:
        defaults['description'] = description
    setting, created = Setting.objects.update_or_create(key=key, defaults=defaults)
    logger.info(f"Setting {'created' if created else 'updated'}: {key}")
    return setting, created


@transaction.atomic
def update_settings(nested, prefix=''):
    """Flatten nested input and upsert every pair in one transaction"""
    if not isinstance(nested, dict):
        raise ValidationFailed('Settings payload must be an object')
    pairs = flatten_settings(nested, prefix)
    for key, value in pairs:
        upsert_setting(key, value)
    return [key for key, _ in pairs]


def update_section(section, values):
    if section not in SECTION_DEFAULTS:
        raise ResourceNotFound(f'Unknown settings section: {section}', field='section')
    return update_settings(values, prefix=section)


def delete_setting(key):
    deleted, _ = Setting.objects.filter(key=key).delete()
    if not deleted:
        raise ResourceNotFound(f'Setting {key} not found', field='key')
    logger.info(f"Setting deleted: {key}")


def seed_defaults():
    """Insert defaults for missing keys; returns the created keys"""
    existing = set(Setting.objects.values_list('key', flat=True))
    created = []
    for section, defaults in SECTION_DEFAULTS.items():
        for key, value in flatten_settings(defaults, section):
            if key not in existing:
                Setting.objects.create(key=key, value=value)
                created.append(key)
    return created
