"""Shipping zone maintenance and price resolution"""
from decimal import Decimal
import logging

from django.db import transaction

from commerce.core.exceptions import ValidationFailed
from commerce.core.settings_store import get_section
from .models import ShippingMethod, ShippingZone, ShippingCity

logger = logging.getLogger(__name__)

DEFAULT_METHODS = [
    {'code': 'standard', 'name': 'Standard Delivery', 'description': 'Delivery within 2-5 business days', 'is_express': False},
    {'code': 'express', 'name': 'Express Delivery', 'description': 'Next business day delivery', 'is_express': True},
]


def _clean_cities(cities):
    cleaned = []
    for city in cities or []:
        name = (city.get('city_town') or '').strip()
        if not name:
            continue
        cleaned.append(ShippingCity(
            city_town=name,
            standard_price=city.get('standard_price') or Decimal('0.00'),
            express_price=city.get('express_price'),
        ))
    return cleaned


@transaction.atomic
def save_zone(method, county, cities, zone=None):
    """
    Create a zone or update one in place. The city list is replaced, and
    cities without a name are skipped.
    """
    county = (county or '').strip()
    if not county:
        raise ValidationFailed('County is required', field='county')

    if zone is None:
        zone = ShippingZone.objects.create(method=method, county=county)
    else:
        zone.method = method
        zone.county = county
        zone.save()
        zone.cities.all().delete()

    new_cities = _clean_cities(cities)
    for city in new_cities:
        city.zone = zone
    ShippingCity.objects.bulk_create(new_cities)
    logger.info(f"Shipping zone saved: id={zone.id}, county={county}, cities={len(new_cities)}")
    return zone


def resolve_shipping_method(value):
    """Find an enabled method by numeric id or by code; None when unknown"""
    if value in (None, ''):
        return None
    methods = ShippingMethod.objects.filter(enabled=True)
    if isinstance(value, int) or str(value).isdigit():
        method = methods.filter(pk=int(value)).first()
        if method is not None:
            return method
    return methods.filter(code__iexact=str(value).strip()).first()


def find_city(method, county, city):
    if not county or not city:
        return None
    return ShippingCity.objects.filter(
        zone__method=method,
        zone__county__iexact=county.strip(),
        city_town__iexact=city.strip(),
    ).select_related('zone').first()


def city_price(city, method, express=False):
    """Express price when requested and available, standard price otherwise"""
    if (express or method.is_express) and city.express_price is not None:
        return city.express_price
    return city.standard_price


def apply_shipping_rules(price, items_total=Decimal('0.00')):
    """Add the handling fee, or waive shipping once items_total reaches the free threshold"""
    shipping_settings = get_section('shipping')
    threshold = Decimal(str(shipping_settings.get('free_shipping_threshold') or 0))
    if threshold > 0 and items_total >= threshold:
        logger.info(f"Free shipping applied: items_total={items_total} >= threshold={threshold}")
        return Decimal('0.00')

    handling_fee = Decimal(str(shipping_settings.get('handling_fee') or 0))
    return price + handling_fee


def resolve_shipping_cost(method, county, city, express=False, items_total=Decimal('0.00')):
    """
    Tax inclusive shipping charge for a destination, or None when the method
    does not serve it. Adds the handling fee and applies the free shipping
    threshold from the ``shipping`` settings section.
    """
    if method is None:
        return None
    match = find_city(method, county, city)
    if match is None:
        return None

    return apply_shipping_rules(city_price(match, method, express), items_total)


def quote_options(county, city, items_total=Decimal('0.00')):
    """
    Standard and express options for one destination, across enabled methods.
    Prices are what checkout charges for the same cart total.
    """
    matches = ShippingCity.objects.filter(
        zone__method__enabled=True,
        zone__county__iexact=county.strip(),
        city_town__iexact=city.strip(),
    ).select_related('zone__method').order_by('zone__method__name')

    options = []
    for match in matches:
        method = match.zone.method
        options.append({
            'method_id': method.id,
            'method_code': method.code,
            'method_name': method.name,
            'type': 'standard',
            'price': apply_shipping_rules(match.standard_price, items_total),
        })
        if match.express_price is not None:
            options.append({
                'method_id': method.id,
                'method_code': method.code,
                'method_name': method.name,
                'type': 'express',
                'price': apply_shipping_rules(match.express_price, items_total),
            })
    return options


def ensure_default_methods():
    """Create the standard and express methods when missing"""
    created = []
    for method in DEFAULT_METHODS:
        _, was_created = ShippingMethod.objects.get_or_create(
            code=method['code'],
            defaults={k: v for k, v in method.items() if k != 'code'},
        )
        if was_created:
            created.append(method['code'])
    return created
