"""
Test suite for the customers module
Tests: customer CRUD and search, addresses, and checkout customer matching
"""
from django.test import TestCase
from rest_framework import status

from commerce.core.models import User
from commerce.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from .models import Address, Customer
from .services import get_or_create_customer, split_name


class CustomerServiceTests(TestCase):

    def test_split_name(self):
        self.assertEqual(split_name('Jane Wanjiru Doe'), ('Jane', 'Wanjiru Doe'))
        self.assertEqual(split_name('Cher'), ('Cher', ''))
        self.assertEqual(split_name('   '), ('', ''))

    def test_creates_with_lowercase_email(self):
        customer, created = get_or_create_customer(' Jane@Example.COM ', 'Jane Doe', '0712345678')
        self.assertTrue(created)
        self.assertEqual(customer.email, 'jane@example.com')
        self.assertEqual((customer.first_name, customer.last_name), ('Jane', 'Doe'))

    def test_matches_existing_case_insensitively(self):
        existing = Customer.objects.create(email='jane@example.com', first_name='Jane')
        customer, created = get_or_create_customer('JANE@example.com', 'Someone Else', '0700000000')
        self.assertFalse(created)
        self.assertEqual(customer.pk, existing.pk)
        customer.refresh_from_db()
        self.assertEqual(customer.first_name, 'Jane')
        self.assertEqual(customer.phone_number, '0700000000')
        self.assertEqual(Customer.objects.count(), 1)


class CustomerAPITests(TestCase):

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=User.ADMIN)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_editor_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=User.EDITOR))
        response = self.client.get('/api/v1/customers/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_and_duplicate_email(self):
        response = self.client.post('/api/v1/customers/', {
            'email': 'New@Example.com', 'first_name': 'New', 'last_name': 'Person',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['email'], 'new@example.com')
        self.assertEqual(response.data['full_name'], 'New Person')
        self.assertEqual(response.data['order_count'], 0)

        response = self.client.post('/api/v1/customers/', {'email': 'NEW@example.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['field'], 'email')

    def test_search_every_word(self):
        TestDataFactory.create_customer(email='jane@example.com', first_name='Jane', last_name='Doe')
        TestDataFactory.create_customer(email='john@example.com', first_name='John', last_name='Doe')
        TestDataFactory.create_customer(email='amy@example.com', first_name='Amy', last_name='Otieno')

        response = self.client.get('/api/v1/customers/', {'search': 'doe jane'})
        self.assertEqual([c['email'] for c in response.data['results']], ['jane@example.com'])
        response = self.client.get('/api/v1/customers/', {'search': 'doe'})
        self.assertEqual(response.data['count'], 2)

    def test_detail_includes_order_count_and_addresses(self):
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_order(customer=customer)
        response = self.client.get(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['order_count'], 1)
        self.assertEqual(len(response.data['addresses']), 1)

    def test_customer_orders(self):
        customer = TestDataFactory.create_customer()
        order = TestDataFactory.create_order(customer=customer)
        TestDataFactory.create_order()
        response = self.client.get(f'/api/v1/customers/{customer.id}/orders/')
        self.assertEqual([o['code'] for o in response.data['results']], [order.code])

    def test_delete_with_orders_is_409(self):
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_order(customer=customer)
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'CONFLICT')
        self.assertTrue(Customer.objects.filter(pk=customer.pk).exists())

    def test_delete_without_orders(self):
        customer = TestDataFactory.create_customer()
        TestDataFactory.create_address(customer)
        response = self.client.delete(f'/api/v1/customers/{customer.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Address.objects.exists())


class AddressAPITests(TestCase):

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=User.ADMIN)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)
        self.customer = TestDataFactory.create_customer()

    def _address(self, **extra):
        data = {'full_name': 'Jane Doe', 'street_line1': '1 Road', 'city': 'Westlands', 'province': 'Nairobi'}
        data.update(extra)
        return data

    def test_add_defaults_to_store_country(self):
        response = self.client.post(f'/api/v1/customers/{self.customer.id}/addresses/', self._address(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['country'], 'KE')
        self.assertEqual(response.data['customer'], self.customer.id)

    def test_country_uppercased(self):
        response = self.client.post(f'/api/v1/customers/{self.customer.id}/addresses/',
                                    self._address(country='ug'), format='json')
        self.assertEqual(response.data['country'], 'UG')

    def test_single_default_shipping(self):
        url = f'/api/v1/customers/{self.customer.id}/addresses/'
        first = self.client.post(url, self._address(default_shipping=True), format='json').data
        second = self.client.post(url, self._address(default_shipping=True, city='Karen'), format='json').data
        self.assertFalse(Address.objects.get(pk=first['id']).default_shipping)
        self.assertTrue(Address.objects.get(pk=second['id']).default_shipping)

    def test_update_and_delete(self):
        address = TestDataFactory.create_address(self.customer)
        response = self.client.patch(f'/api/v1/addresses/{address.id}/', {'city': 'Karen'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['city'], 'Karen')

        response = self.client.delete(f'/api/v1/addresses/{address.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_address_used_by_order_cannot_be_deleted(self):
        order = TestDataFactory.create_order(customer=self.customer)
        response = self.client.delete(f'/api/v1/addresses/{order.shipping_address_id}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
