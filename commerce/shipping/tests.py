"""
Test suite for the shipping module
Tests: methods, zones and cities, price resolution and storefront quotes
"""
from decimal import Decimal

from django.core.management import call_command
from django.test import TestCase
from rest_framework import status

from commerce.core.models import Setting, User
from commerce.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from .models import ShippingCity, ShippingMethod, ShippingZone
from .services import ensure_default_methods, quote_options, resolve_shipping_cost, resolve_shipping_method


class ShippingServiceTests(TestCase):

    def setUp(self):
        self.standard = TestDataFactory.create_shipping_method(code='standard')
        self.express = TestDataFactory.create_shipping_method(code='express', is_express=True)
        TestDataFactory.create_shipping_zone(self.standard, county='Nairobi', cities=[
            ('Westlands', Decimal('200.00'), Decimal('450.00')),
            ('Karen', Decimal('300.00'), None),
        ])
        TestDataFactory.create_shipping_zone(self.express, county='Nairobi', cities=[
            ('Westlands', Decimal('250.00'), Decimal('500.00')),
        ])

    def test_resolve_method_by_id_or_code(self):
        self.assertEqual(resolve_shipping_method(self.standard.id), self.standard)
        self.assertEqual(resolve_shipping_method(str(self.standard.id)), self.standard)
        self.assertEqual(resolve_shipping_method('EXPRESS'), self.express)
        self.assertIsNone(resolve_shipping_method('pigeon'))
        self.assertIsNone(resolve_shipping_method(None))

    def test_disabled_method_not_resolved(self):
        self.standard.enabled = False
        self.standard.save()
        self.assertIsNone(resolve_shipping_method('standard'))

    def test_cost_matches_case_insensitively(self):
        cost = resolve_shipping_cost(self.standard, ' nairobi ', 'WESTLANDS')
        self.assertEqual(cost, Decimal('200.00'))

    def test_express_price_falls_back_to_standard(self):
        self.assertEqual(resolve_shipping_cost(self.standard, 'Nairobi', 'Westlands', express=True), Decimal('450.00'))
        self.assertEqual(resolve_shipping_cost(self.standard, 'Nairobi', 'Karen', express=True), Decimal('300.00'))
        # Express methods use the express price without the flag
        self.assertEqual(resolve_shipping_cost(self.express, 'Nairobi', 'Westlands'), Decimal('500.00'))

    def test_unknown_destination(self):
        self.assertIsNone(resolve_shipping_cost(self.standard, 'Mombasa', 'Nyali'))
        self.assertIsNone(resolve_shipping_cost(None, 'Nairobi', 'Westlands'))

    def test_handling_fee_and_free_threshold(self):
        Setting.objects.create(key='shipping.handling_fee', value='50')
        Setting.objects.create(key='shipping.free_shipping_threshold', value='5000')

        cost = resolve_shipping_cost(self.standard, 'Nairobi', 'Westlands', items_total=Decimal('4999.99'))
        self.assertEqual(cost, Decimal('250.00'))
        cost = resolve_shipping_cost(self.standard, 'Nairobi', 'Westlands', items_total=Decimal('5000.00'))
        self.assertEqual(cost, Decimal('0.00'))

    def test_quote_options(self):
        options = quote_options('Nairobi', 'Westlands')
        self.assertEqual(
            [(o['method_code'], o['type']) for o in options],
            [('express', 'standard'), ('express', 'express'), ('standard', 'standard'), ('standard', 'express')],
        )
        self.assertEqual(quote_options('Nairobi', 'Nowhere'), [])

    def test_quote_prices_match_checkout_charge(self):
        Setting.objects.create(key='shipping.handling_fee', value='50')
        Setting.objects.create(key='shipping.free_shipping_threshold', value='5000')

        options = quote_options('Nairobi', 'Westlands', items_total=Decimal('1000.00'))
        standard = next(o for o in options if o['method_code'] == 'standard' and o['type'] == 'standard')
        self.assertEqual(standard['price'], Decimal('250.00'))
        self.assertEqual(
            standard['price'],
            resolve_shipping_cost(self.standard, 'Nairobi', 'Westlands', items_total=Decimal('1000.00')),
        )

        options = quote_options('Nairobi', 'Westlands', items_total=Decimal('5000.00'))
        self.assertEqual({o['price'] for o in options}, {Decimal('0.00')})

    def test_ensure_default_methods(self):
        ShippingMethod.objects.all().delete()
        self.assertEqual(ensure_default_methods(), ['standard', 'express'])
        self.assertEqual(ensure_default_methods(), [])
        call_command('ensure_shipping_methods')
        self.assertEqual(ShippingMethod.objects.count(), 2)


class ShippingAPITests(TestCase):

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=User.ADMIN)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)
        self.method = TestDataFactory.create_shipping_method(code='standard')

    def test_editor_forbidden(self):
        editor = TestDataFactory.create_user(role=User.EDITOR)
        self.client.authenticate_user(editor)
        response = self.client.get('/api/v1/shipping/methods/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_method_code_normalised_and_unique(self):
        response = self.client.post('/api/v1/shipping/methods/', {'code': ' Pickup ', 'name': 'Pickup'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['code'], 'pickup')

        response = self.client.post('/api/v1/shipping/methods/', {'code': 'standard', 'name': 'Again'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_create_zone_skips_unnamed_cities(self):
        response = self.client.post('/api/v1/shipping/zones/', {
            'method': self.method.id,
            'county': 'Kiambu',
            'cities': [
                {'city_town': 'Thika', 'standard_price': '350.00', 'express_price': '600.00'},
                {'city_town': '   ', 'standard_price': '100.00'},
                {'city_town': 'Ruiru', 'standard_price': '300.00'},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual([c['city_town'] for c in response.data['cities']], ['Ruiru', 'Thika'])
        self.assertIsNone(response.data['cities'][0]['express_price'])

    def test_duplicate_county_is_409(self):
        TestDataFactory.create_shipping_zone(self.method, county='Nairobi')
        response = self.client.post('/api/v1/shipping/zones/', {
            'method': self.method.id, 'county': 'nairobi', 'cities': [],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'DUPLICATE_ERROR')
        self.assertEqual(response.data['field'], 'county')

    def test_update_replaces_cities(self):
        zone = TestDataFactory.create_shipping_zone(self.method, county='Nairobi')
        response = self.client.put(f'/api/v1/shipping/zones/{zone.id}/', {
            'method': self.method.id,
            'county': 'Nairobi',
            'cities': [{'city_town': 'Karen', 'standard_price': '300.00'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(list(ShippingCity.objects.filter(zone=zone).values_list('city_town', flat=True)), ['Karen'])

    def test_zone_list_and_cities(self):
        zone = TestDataFactory.create_shipping_zone(self.method, county='Nairobi', cities=[
            ('Westlands', Decimal('200.00'), None), ('Karen', Decimal('300.00'), None),
        ])
        response = self.client.get('/api/v1/shipping/zones/', {'method': 'standard'})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['city_count'], 2)

        response = self.client.get(f'/api/v1/shipping/zones/{zone.id}/cities/', {'search': 'kar'})
        self.assertEqual([c['city_town'] for c in response.data['results']], ['Karen'])

    def test_delete_zone_cascades(self):
        zone = TestDataFactory.create_shipping_zone(self.method)
        response = self.client.delete(f'/api/v1/shipping/zones/{zone.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(ShippingZone.objects.exists())
        self.assertFalse(ShippingCity.objects.exists())


class StorefrontShippingTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        method = TestDataFactory.create_shipping_method(code='standard')
        TestDataFactory.create_shipping_zone(method, county='Nairobi')
        hidden = TestDataFactory.create_shipping_method(code='hidden', enabled=False)
        TestDataFactory.create_shipping_zone(hidden, county='Nairobi')

    def test_lists_enabled_methods(self):
        response = self.client.get('/api/v1/store/shipping-zones/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        methods = response.data['methods']
        self.assertEqual([m['code'] for m in methods], ['standard'])
        self.assertEqual(methods[0]['zones'][0]['cities'][0]['city_town'], 'Westlands')

    def test_quote_for_destination(self):
        response = self.client.get('/api/v1/store/shipping-zones/', {'county': 'Nairobi', 'city': 'Westlands'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([o['type'] for o in response.data['options']], ['standard', 'express'])
        self.assertEqual(response.data['options'][0]['price'], Decimal('200.00'))

    def test_quote_uses_cart_subtotal(self):
        Setting.objects.create(key='shipping.handling_fee', value='50')
        Setting.objects.create(key='shipping.free_shipping_threshold', value='3000')

        response = self.client.get('/api/v1/store/shipping-zones/', {'county': 'Nairobi', 'city': 'Westlands'})
        self.assertEqual(response.data['options'][0]['price'], Decimal('250.00'))

        response = self.client.get('/api/v1/store/shipping-zones/',
                                   {'county': 'Nairobi', 'city': 'Westlands', 'subtotal': '3000'})
        self.assertEqual(response.data['options'][0]['price'], Decimal('0.00'))

        response = self.client.get('/api/v1/store/shipping-zones/',
                                   {'county': 'Nairobi', 'city': 'Westlands', 'subtotal': 'lots'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'subtotal')
