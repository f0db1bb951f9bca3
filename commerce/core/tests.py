"""
Test suite for the core module
Tests: roles and permissions, user management, the settings store, audit logs and the error envelope
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase, override_settings
from rest_framework import status

from commerce.catalog.models import Product
from commerce.catalog.utils import import_products_csv
from commerce.core import cache_utils, settings_store
from commerce.core.cache_signals import is_suspended, suspend_cache_signals
from commerce.core.exceptions import ResourceNotFound, ValidationFailed
from commerce.core.models import AuditLog, Setting, User
from commerce.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from commerce.core.utils import create_audit_log
from commerce.shipping.models import ShippingCity, ShippingMethod


class MaterializeSettingsTests(TestCase):
    """Flat key/value rows <-> nested objects"""

    def test_materialize_nests_on_dots(self):
        nested = settings_store.materialize_settings([
            ('general.site_name', 'Duka'),
            ('general.contact.email', 'hi@duka.test'),
            ('taxes.tax_name', 'VAT'),
        ])
        self.assertEqual(nested, {
            'general': {'site_name': 'Duka', 'contact': {'email': 'hi@duka.test'}},
            'taxes': {'tax_name': 'VAT'},
        })

    def test_dict_wins_over_scalar_in_either_order(self):
        first = settings_store.materialize_settings([('a.b', 'scalar'), ('a.b.c', 'deep')])
        second = settings_store.materialize_settings([('a.b.c', 'deep'), ('a.b', 'scalar')])
        self.assertEqual(first, {'a': {'b': {'c': 'deep'}}})
        self.assertEqual(second, {'a': {'b': {'c': 'deep'}}})

    def test_flatten_encodes_leaves(self):
        pairs = dict(settings_store.flatten_settings({
            'payments': {'paystack_enabled': True, 'payment_methods': ['paystack', 'mpesa']},
            'general': {'site_phone': None, 'timezone': 'Africa/Nairobi'},
            'roles': {'permissions': {}},
        }))
        self.assertEqual(pairs['payments.paystack_enabled'], 'true')
        self.assertEqual(pairs['payments.payment_methods'], '["paystack", "mpesa"]')
        self.assertEqual(pairs['general.site_phone'], '')
        self.assertEqual(pairs['general.timezone'], 'Africa/Nairobi')
        self.assertEqual(pairs['roles.permissions'], '{}')

    def test_coerce_value_uses_default_type(self):
        self.assertIs(settings_store.coerce_value('false', True), False)
        self.assertEqual(settings_store.coerce_value('250.50', Decimal('0')), Decimal('250.50'))
        self.assertEqual(settings_store.coerce_value('["a"]', ['x']), ['a'])
        self.assertEqual(settings_store.coerce_value('not json', ['x']), ['x'])
        self.assertEqual(settings_store.coerce_value('abc', Decimal('5')), Decimal('5'))


class SettingsStoreTests(TestCase):

    def test_structured_defaults_and_overrides(self):
        Setting.objects.create(key='general.site_name', value='Duka')
        Setting.objects.create(key='shipping.free_shipping_threshold', value='5000')
        Setting.objects.create(key='payments.paystack_enabled', value='true')
        ShippingMethod.objects.create(code='standard', name='Standard')
        ShippingMethod.objects.create(code='hidden', name='Hidden', enabled=False)

        structured = settings_store.get_structured_settings(use_cache=False)
        self.assertEqual(structured['general']['site_name'], 'Duka')
        self.assertEqual(structured['general']['default_language'], 'en')
        self.assertEqual(structured['shipping']['free_shipping_threshold'], Decimal('5000'))
        self.assertIs(structured['payments']['paystack_enabled'], True)
        self.assertEqual(structured['roles']['user_roles'], ['SUPER_ADMIN', 'ADMIN', 'EDITOR'])
        self.assertEqual([m['code'] for m in structured['shipping']['methods']], ['standard'])

    def test_update_settings_upserts_all_pairs(self):
        Setting.objects.create(key='general.site_name', value='Old')
        keys = settings_store.update_settings({'general': {'site_name': 'New', 'site_email': 'a@b.test'}})
        self.assertEqual(sorted(keys), ['general.site_email', 'general.site_name'])
        self.assertEqual(Setting.objects.get(key='general.site_name').value, 'New')
        self.assertEqual(Setting.objects.count(), 2)

    def test_update_unknown_section(self):
        with self.assertRaises(ResourceNotFound):
            settings_store.update_section('nope', {'a': 1})

    def test_invalid_key_rejected(self):
        with self.assertRaises(ValidationFailed):
            settings_store.upsert_setting('general..name', 'x')

    def test_public_settings_hide_secrets(self):
        Setting.objects.create(key='general.site_name', value='Duka')
        Setting.objects.create(key='payments.paystack_public_key', value='pk_test')
        Setting.objects.create(key='payments.paystack_secret_key', value='sk_test')
        Setting.objects.create(key='shipping.secret_rate', value='1')
        Setting.objects.create(key='roles.admin_email', value='boss@duka.test')

        public = settings_store.get_public_settings()
        self.assertEqual(public['general']['site_name'], 'Duka')
        self.assertEqual(public['payments'], {'paystack_public_key': 'pk_test'})
        self.assertNotIn('roles', public)
        self.assertNotIn('secret_rate', public.get('shipping', {}))

    def test_seed_defaults_only_adds_missing(self):
        Setting.objects.create(key='general.site_name', value='Kept')
        created = settings_store.seed_defaults()
        self.assertNotIn('general.site_name', created)
        self.assertIn('taxes.tax_name', created)
        self.assertEqual(Setting.objects.get(key='general.site_name').value, 'Kept')
        self.assertEqual(settings_store.seed_defaults(), [])


class SettingsAPITests(TestCase):

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=User.ADMIN)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_post_upserts(self):
        response = self.client.post('/api/v1/settings/', {'key': 'general.site_name', 'value': 'Duka'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post('/api/v1/settings/', {'key': 'general.site_name', 'value': 'Duka 2'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Setting.objects.get(key='general.site_name').value, 'Duka 2')

    def test_detail_by_key(self):
        Setting.objects.create(key='taxes.tax_name', value='VAT')
        response = self.client.get('/api/v1/settings/taxes.tax_name/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['value'], 'VAT')

        response = self.client.delete('/api/v1/settings/taxes.tax_name/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        response = self.client.delete('/api/v1/settings/taxes.tax_name/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'NOT_FOUND')

    def test_structured_put_and_section_patch(self):
        response = self.client.put('/api/v1/settings/structured/', {
            'general': {'site_name': 'Duka'},
            'policies': {'contact_required': False},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['general']['site_name'], 'Duka')
        self.assertIs(response.data['policies']['contact_required'], False)

        response = self.client.patch('/api/v1/settings/structured/shipping/', {'handling_fee': 50}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Decimal(str(response.data['handling_fee'])), Decimal('50'))
        self.assertTrue(AuditLog.objects.filter(action='settings_update').exists())

    def test_unknown_section_is_404(self):
        response = self.client.patch('/api/v1/settings/structured/unknown/', {'a': 1}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_public_settings_are_anonymous(self):
        Setting.objects.create(key='general.site_name', value='Duka')
        self.client.logout()
        response = self.client.get('/api/v1/store/settings/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['general']['site_name'], 'Duka')

    def test_editor_cannot_manage_settings(self):
        editor = TestDataFactory.create_user(role=User.EDITOR)
        self.client.authenticate_user(editor)
        response = self.client.get('/api/v1/settings/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['code'], 'FORBIDDEN')

    def test_anonymous_is_unauthorized(self):
        self.client.logout()
        response = self.client.get('/api/v1/settings/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['code'], 'UNAUTHORIZED')


class UserAPITests(TestCase):

    def setUp(self):
        self.super_admin = TestDataFactory.create_user(role=User.SUPER_ADMIN)
        self.admin = TestDataFactory.create_user(role=User.ADMIN)
        self.client = AuthenticatedAPIClient()

    def _new_user(self, role):
        return {
            'username': f'new_{TestDataFactory.random_string(6)}',
            'email': f'{TestDataFactory.random_string(6)}@test.com',
            'password': 'Str0ng-Passw0rd!',
            'password_confirm': 'Str0ng-Passw0rd!',
            'role': role,
        }

    def test_me_includes_capabilities(self):
        editor = TestDataFactory.create_user(role=User.EDITOR)
        self.client.authenticate_user(editor)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['role'], User.EDITOR)
        self.assertTrue(response.data['can_edit_catalog'])
        self.assertFalse(response.data['can_manage_users'])

    def test_superuser_counts_as_super_admin(self):
        root = TestDataFactory.create_user(role=User.EDITOR, is_superuser=True)
        self.client.authenticate_user(root)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.data['role'], User.SUPER_ADMIN)

    def test_admin_creates_editor(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/users/', self._new_user(User.EDITOR), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['role'], User.EDITOR)

    def test_password_confirmation_must_match(self):
        self.client.authenticate_user(self.admin)
        data = self._new_user(User.EDITOR)
        data['password_confirm'] = 'different'
        response = self.client.post('/api/v1/users/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'VALIDATION_ERROR')
        self.assertEqual(response.data['field'], 'password')

    def test_only_super_admin_grants_super_admin(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/users/', self._new_user(User.SUPER_ADMIN), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.super_admin)
        response = self.client.post('/api/v1/users/', self._new_user(User.SUPER_ADMIN), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_superuser_may_grant_super_admin(self):
        root = TestDataFactory.create_user(role=User.EDITOR, is_superuser=True)
        self.client.authenticate_user(root)
        response = self.client.post('/api/v1/users/', self._new_user(User.SUPER_ADMIN), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_admin_cannot_demote_super_admin(self):
        self.client.authenticate_user(self.admin)
        response = self.client.patch(f'/api/v1/users/{self.super_admin.id}/', {'role': User.EDITOR}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cannot_delete_self(self):
        self.client.authenticate_user(self.admin)
        response = self.client.delete(f'/api/v1/users/{self.admin.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(User.objects.filter(pk=self.admin.pk).exists())

    def test_duplicate_email_is_409(self):
        self.client.authenticate_user(self.admin)
        data = self._new_user(User.EDITOR)
        data['email'] = self.admin.email
        response = self.client.post('/api/v1/users/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'DUPLICATE_ERROR')
        self.assertEqual(response.data['field'], 'email')


class AuditLogTests(TestCase):

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=User.ADMIN)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_missing_fields_skip_log(self):
        self.assertIsNone(create_audit_log(action='create', model_name=None, object_id=1))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_list_filters_by_action(self):
        create_audit_log(action='create', model_name='Product', object_id=1, user=self.admin)
        create_audit_log(action='delete', model_name='Product', object_id=2, user=self.admin)
        response = self.client.get('/api/v1/audit-logs/', {'action': 'delete'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['object_id'], '2')

    def test_bad_page_param(self):
        response = self.client.get('/api/v1/audit-logs/', {'page': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'page')


LOCMEM_CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'commerce-cache-tests',
    }
}


@override_settings(CACHES=LOCMEM_CACHES)
class CacheInvalidationTests(TestCase):
    """Cached storefront reads are served until a write invalidates them"""

    def setUp(self):
        cache.clear()
        self.admin = TestDataFactory.create_user(role=User.ADMIN)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def _store_prices(self, **params):
        response = self.client.get('/api/v1/store/products/', params)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        return [Decimal(p['sale_price']) for p in response.data['results']]

    def test_generation_counters(self):
        self.assertEqual(cache_utils.get_generation('demo'), 1)
        first = cache_utils.make_cache_key('demo', 1)
        self.assertEqual(cache_utils.make_cache_key('demo', 1), first)

        cache_utils.invalidate_prefix('demo')
        self.assertEqual(cache_utils.get_generation('demo'), 2)
        self.assertNotEqual(cache_utils.make_cache_key('demo', 1), first)

        # An evicted counter restarts past the first generation
        cache.delete('demo:generation')
        cache_utils.invalidate_prefix('demo')
        self.assertEqual(cache_utils.get_generation('demo'), 2)

    def test_settings_write_refreshes_structured_and_public(self):
        Setting.objects.create(key='general.site_name', value='Duka')
        self.assertEqual(settings_store.get_structured_settings()['general']['site_name'], 'Duka')
        self.assertEqual(self.client.get('/api/v1/store/settings/').data['general']['site_name'], 'Duka')

        # Writes that skip signals are not seen until the next invalidation
        Setting.objects.filter(key='general.site_name').update(value='Stale')
        self.assertEqual(settings_store.get_structured_settings()['general']['site_name'], 'Duka')

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.put('/api/v1/settings/structured/', {'general': {'site_name': 'Soko'}},
                                       format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(settings_store.get_structured_settings()['general']['site_name'], 'Soko')
        self.assertEqual(self.client.get('/api/v1/store/settings/').data['general']['site_name'], 'Soko')

    def test_price_change_refreshes_store_products(self):
        product = TestDataFactory.create_product(sale_price=Decimal('1160.00'))
        self.assertEqual(self._store_prices(), [Decimal('1160.00')])

        Product.objects.filter(pk=product.pk).update(sale_price=Decimal('1.00'))
        self.assertEqual(self._store_prices(), [Decimal('1160.00')])

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.patch(f'/api/v1/products/{product.id}/', {'sale_price': '999.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self._store_prices(), [Decimal('999.00')])

    def test_collection_product_replace_refreshes_store_products(self):
        collection = TestDataFactory.create_collection(slug='phones')
        product = TestDataFactory.create_product(sale_price=Decimal('500.00'))
        self.assertEqual(self._store_prices(collection='phones'), [])

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.put(f'/api/v1/collections/{collection.id}/products/',
                                       {'product_ids': [product.id]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self._store_prices(collection='phones'), [Decimal('500.00')])

    def test_product_collection_ids_refresh_store_products(self):
        collection = TestDataFactory.create_collection(slug='tablets')
        product = TestDataFactory.create_product(sale_price=Decimal('700.00'))
        self.assertEqual(self._store_prices(collection='tablets'), [])

        with self.captureOnCommitCallbacks(execute=True):
            self.client.patch(f'/api/v1/products/{product.id}/', {'collection_ids': [collection.id]}, format='json')
        self.assertEqual(self._store_prices(collection='tablets'), [Decimal('700.00')])

    def test_shipping_change_refreshes_store_payload(self):
        method = TestDataFactory.create_shipping_method(code='standard')
        zone = TestDataFactory.create_shipping_zone(method, county='Nairobi')

        def westlands_price():
            response = self.client.get('/api/v1/store/shipping-zones/')
            return Decimal(response.data['methods'][0]['zones'][0]['cities'][0]['standard_price'])

        self.assertEqual(westlands_price(), Decimal('200.00'))
        ShippingCity.objects.filter(zone=zone).update(standard_price=Decimal('1.00'))
        self.assertEqual(westlands_price(), Decimal('200.00'))

        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.put(f'/api/v1/shipping/zones/{zone.id}/', {
                'method': method.id,
                'county': 'Nairobi',
                'cities': [{'city_town': 'Westlands', 'standard_price': '350.00'}],
            }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(westlands_price(), Decimal('350.00'))

        # Structured settings list the enabled methods
        self.assertEqual([m['code'] for m in settings_store.get_structured_settings()['shipping']['methods']],
                         ['standard'])
        with self.captureOnCommitCallbacks(execute=True):
            self.client.patch(f'/api/v1/shipping/methods/{method.id}/', {'enabled': False}, format='json')
        self.assertEqual(settings_store.get_structured_settings()['shipping']['methods'], [])

    def test_csv_import_invalidates_once(self):
        TestDataFactory.create_product(sku='SKU-1', sale_price=Decimal('1160.00'))
        self.assertEqual(self._store_prices(), [Decimal('1160.00')])
        generation = cache_utils.get_generation(cache_utils.PRODUCTS_LIST_PREFIX)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            result = import_products_csv(
                'name,sku,sale_price,stock_on_hand\n'
                'Renamed,SKU-1,500,4\n'
                'Fresh,SKU-2,250,3\n'
            )
        self.assertEqual((result['created'], result['updated']), (1, 1))
        # Row saves ran with signals suspended
        self.assertEqual(callbacks, [])
        self.assertEqual(cache_utils.get_generation(cache_utils.PRODUCTS_LIST_PREFIX), generation + 1)
        self.assertEqual(sorted(self._store_prices()), [Decimal('250.00'), Decimal('500.00')])

    def test_suspend_cache_signals_nests(self):
        product = TestDataFactory.create_product()
        with self.captureOnCommitCallbacks() as callbacks:
            with suspend_cache_signals():
                with suspend_cache_signals():
                    product.save()
                self.assertTrue(is_suspended())
            self.assertFalse(is_suspended())
        self.assertEqual(callbacks, [])

        with self.captureOnCommitCallbacks() as callbacks:
            product.save()
        self.assertEqual(len(callbacks), 1)
