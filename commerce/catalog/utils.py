"""
Utility functions for catalog operations
"""
from decimal import Decimal, InvalidOperation
import csv
import io
import logging
import re
import uuid

from django.db import transaction

from commerce.core.cache_signals import suspend_cache_signals
from commerce.core.cache_utils import invalidate_products_cache

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r'[^\w\s-]')
_SEPARATORS = re.compile(r'[\s_-]+')
_SLUG_OK = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


def slugify_text(text, fallback_prefix='item'):
    """
    Lowercase, drop non-word characters and collapse separators.

    "Samsung Galaxy S24 -- Ultra!" -> "samsung-galaxy-s24-ultra"
    """
    value = _NON_WORD.sub('', str(text or '').lower().strip())
    value = _SEPARATORS.sub('-', value).strip('-')
    # \w keeps unicode letters; restrict to the URL-safe subset
    value = re.sub(r'[^a-z0-9-]', '', value)
    value = re.sub(r'-{2,}', '-', value).strip('-')
    if not value:
        value = f"{fallback_prefix}-{uuid.uuid4().hex[:8]}"
    return value


def is_valid_slug(value):
    return bool(value) and bool(_SLUG_OK.match(value))


def unique_slug(model, base, exclude_pk=None, field='slug'):
    """Append -1, -2, ... to ``base`` until no other row uses it"""
    queryset = model._default_manager.all()
    if exclude_pk is not None:
        queryset = queryset.exclude(pk=exclude_pk)

    candidate = base
    counter = 1
    while queryset.filter(**{field: candidate}).exists():
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate


def resolve_slug(model, requested=None, source=None, instance=None):
    """
    Slug for a create/update: a requested slug is normalised when it is not
    URL safe; otherwise the slug is derived from ``source``.
    Existing instances keep their slug unless a new one is requested.
    """
    if requested:
        base = requested if is_valid_slug(requested) else slugify_text(requested)
    elif instance is not None and instance.slug:
        return instance.slug
    else:
        base = slugify_text(source, fallback_prefix=model._meta.model_name)
    return unique_slug(model, base, exclude_pk=instance.pk if instance is not None else None)


# --- CSV import/export ---

PRODUCT_CSV_FIELDS = [
    'id', 'name', 'slug', 'sku', 'description', 'sale_price', 'original_price',
    'stock_on_hand', 'low_stock_threshold', 'enabled', 'condition', 'brand',
    'collections', 'shipping_method_code',
]


def export_products_csv(queryset):
    """Render products as CSV text"""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=PRODUCT_CSV_FIELDS)
    writer.writeheader()
    for product in queryset.select_related('brand').prefetch_related('collections'):
        writer.writerow({
            'id': product.id,
            'name': product.name,
            'slug': product.slug,
            'sku': product.sku or '',
            'description': product.description,
            'sale_price': product.sale_price,
            'original_price': product.original_price,
            'stock_on_hand': product.stock_on_hand,
            'low_stock_threshold': product.low_stock_threshold,
            'enabled': 'true' if product.enabled else 'false',
            'condition': product.condition,
            'brand': product.brand.name if product.brand else '',
            'collections': '|'.join(c.slug for c in product.collections.all()),
            'shipping_method_code': product.shipping_method_code,
        })
    return buffer.getvalue()


def _parse_decimal(value, name):
    try:
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{name} must be a number")
    if parsed < 0:
        raise ValueError(f"{name} cannot be negative")
    return parsed


def _parse_int(value, name):
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer")
    if parsed < 0:
        raise ValueError(f"{name} cannot be negative")
    return parsed


def _row_to_fields(row):
    from .models import Brand, Product

    name = (row.get('name') or '').strip()
    if not name:
        raise ValueError("name is required")

    fields = {'name': name}
    if row.get('description') is not None:
        fields['description'] = row['description']
    for key in ('sale_price', 'original_price'):
        if (row.get(key) or '').strip():
            fields[key] = _parse_decimal(row[key], key)
    for key in ('stock_on_hand', 'low_stock_threshold'):
        if (row.get(key) or '').strip():
            fields[key] = _parse_int(row[key], key)
    if (row.get('enabled') or '').strip():
        fields['enabled'] = row['enabled'].strip().lower() in ('true', '1', 'yes')
    condition = (row.get('condition') or '').strip().upper()
    if condition:
        if condition not in dict(Product.CONDITION_CHOICES):
            raise ValueError(f"Unknown condition: {condition}")
        fields['condition'] = condition
    if (row.get('shipping_method_code') or '').strip():
        fields['shipping_method_code'] = row['shipping_method_code'].strip()

    brand_name = (row.get('brand') or '').strip()
    if brand_name:
        brand = Brand.objects.filter(name__iexact=brand_name).first()
        if brand is None:
            brand = Brand.objects.create(name=brand_name, slug=unique_slug(Brand, slugify_text(brand_name)))
        fields['brand'] = brand
    return fields


def import_products_csv(text):
    """
    Create or update products from CSV text, matching on sku then slug.
    Each row commits on its own; failing rows are reported, not raised.
    """
    from .models import Collection, Product, ProductCollection

    reader = csv.DictReader(io.StringIO(text))
    result = {'created': 0, 'updated': 0, 'errors': []}

    with suspend_cache_signals():
        for line_number, row in enumerate(reader, start=2):
            try:
                with transaction.atomic():
                    fields = _row_to_fields(row)
                    sku = (row.get('sku') or '').strip() or None
                    slug = (row.get('slug') or '').strip()

                    product = None
                    if sku:
                        product = Product.objects.filter(sku=sku).first()
                    if product is None and slug:
                        product = Product.objects.filter(slug=slug).first()

                    if product is None:
                        product = Product(sku=sku)
                        product.slug = resolve_slug(Product, requested=slug, source=fields['name'])
                        created = True
                    else:
                        created = False
                    for key, value in fields.items():
                        setattr(product, key, value)
                    product.save()

                    collection_slugs = [s.strip() for s in (row.get('collections') or '').split('|') if s.strip()]
                    if collection_slugs:
                        collections = list(Collection.objects.filter(slug__in=collection_slugs))
                        ProductCollection.objects.filter(product=product).delete()
                        ProductCollection.objects.bulk_create([
                            ProductCollection(product=product, collection=c, sort_order=i)
                            for i, c in enumerate(collections)
                        ])
                result['created' if created else 'updated'] += 1
            except (ValueError, InvalidOperation) as e:
                result['errors'].append({'line': line_number, 'error': str(e)})
                logger.warning(f"Product import line {line_number} skipped: {e}")

    invalidate_products_cache()
    logger.info(f"Product import finished: {result['created']} created, {result['updated']} updated, {len(result['errors'])} errors")
    return result
