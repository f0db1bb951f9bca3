"""
Test suite for the orders module
Tests: checkout totals and stock, cart validation, the order state machine,
payments and the Paystack integration
"""
from decimal import Decimal
import hashlib
import hmac
import json
from unittest import mock

import requests
from django.test import TestCase, override_settings
from rest_framework import status

from commerce.catalog.models import Product
from commerce.core.exceptions import (
    Conflict, DuplicateResource, ExternalServiceError, InsufficientStock, ResourceNotFound, ValidationFailed,
)
from commerce.core.models import AuditLog, User
from commerce.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from commerce.customers.models import Address, Customer
from commerce.marketing.models import Campaign
from .models import Order, Payment
from .paystack import PaystackClient, to_subunit, verify_webhook_signature
from .services import (
    can_transition, checkout, compute_totals, generate_order_code, handle_paystack_event, initialize_payment,
    record_payment, update_order_status, validate_cart, verify_payment,
)


def checkout_data(items, **extra):
    data = {
        'items': items,
        'email': 'buyer@example.com',
        'full_name': 'Jane Doe',
        'phone_number': '0712345678',
        'shipping_address': {
            'full_name': 'Jane Doe',
            'street_line1': '1 Riverside Drive',
            'city': 'Westlands',
            'province': 'Nairobi',
        },
        'billing_address': None,
        'shipping_method': None,
        'county': '',
        'city': '',
        'express': False,
        'shipping_cost': Decimal('0.00'),
        'coupon_code': '',
        'notes': '',
    }
    data.update(extra)
    return data


class TotalsTests(TestCase):

    def test_vat_is_extracted_from_inclusive_prices(self):
        totals = compute_totals(Decimal('2900.00'), Decimal('200.00'))
        self.assertEqual(totals['sub_total'], Decimal('2500.00'))
        self.assertEqual(totals['shipping'], Decimal('172.41'))
        self.assertEqual(totals['tax'], Decimal('427.59'))
        self.assertEqual(totals['total'], Decimal('3100.00'))

    def test_totals_always_add_up(self):
        for items, shipping in [('0.01', '0'), ('99.99', '0.05'), ('100', '333.33'), ('1234.57', '89.10')]:
            totals = compute_totals(Decimal(items), Decimal(shipping))
            self.assertEqual(totals['sub_total'] + totals['shipping'] + totals['tax'], totals['total'])
            self.assertGreaterEqual(totals['tax'], Decimal('0'))

    def test_amounts_keep_cents(self):
        # Rounding each field to whole units would give 9 + 0 + 1 against a total of 11
        totals = compute_totals(Decimal('10.50'), Decimal('0'))
        self.assertEqual(totals, {
            'sub_total': Decimal('9.05'),
            'shipping': Decimal('0.00'),
            'tax': Decimal('1.45'),
            'total': Decimal('10.50'),
        })

    def test_order_code_format(self):
        code = generate_order_code()
        prefix, stamp, suffix = code.split('-')
        self.assertEqual(prefix, 'ORD')
        self.assertTrue(stamp.isalnum())
        self.assertEqual(len(suffix), 4)
        self.assertNotEqual(generate_order_code(), code)

    def test_to_subunit(self):
        self.assertEqual(to_subunit(Decimal('1234.50')), 123450)
        self.assertEqual(to_subunit(Decimal('0.01')), 1)


class CheckoutServiceTests(TestCase):

    def setUp(self):
        self.phone = TestDataFactory.create_product(name='Phone', sale_price=Decimal('1160.00'), stock_on_hand=5)
        self.case = TestDataFactory.create_product(name='Case', sale_price=Decimal('580.00'), stock_on_hand=3)
        self.method = TestDataFactory.create_shipping_method(code='standard')
        TestDataFactory.create_shipping_zone(self.method, county='Nairobi', cities=[
            ('Westlands', Decimal('200.00'), Decimal('450.00')),
        ])

    def test_checkout_creates_order_and_decrements_stock(self):
        order = checkout(checkout_data(
            [{'product': self.phone.id, 'quantity': 2}, {'product': self.case.id, 'quantity': 1}],
            shipping_method='standard',
        ))
        self.assertEqual(order.state, Order.CREATED)
        self.assertEqual(order.total, Decimal('3100.00'))
        self.assertEqual(order.sub_total, Decimal('2500.00'))
        self.assertEqual(order.shipping, Decimal('172.41'))
        self.assertEqual(order.tax, Decimal('427.59'))
        self.assertEqual(order.sub_total + order.shipping + order.tax, order.total)
        self.assertEqual(order.shipping_method, self.method)
        self.assertEqual(order.currency_code, 'KES')

        lines = list(order.lines.order_by('id'))
        self.assertEqual([(l.product_name, l.quantity, l.line_price) for l in lines],
                         [('Phone', 2, Decimal('2320.00')), ('Case', 1, Decimal('580.00'))])

        self.phone.refresh_from_db()
        self.case.refresh_from_db()
        self.assertEqual(self.phone.stock_on_hand, 3)
        self.assertEqual(self.case.stock_on_hand, 2)

    def test_repeated_items_are_merged(self):
        order = checkout(checkout_data([
            {'product': self.phone.id, 'quantity': 1}, {'product': self.phone.id, 'quantity': 2},
        ]))
        self.assertEqual(order.lines.count(), 1)
        self.assertEqual(order.lines.get().quantity, 3)

    def test_customer_and_addresses(self):
        existing = TestDataFactory.create_customer(email='buyer@example.com', first_name='Existing')
        order = checkout(checkout_data([{'product': self.phone.id, 'quantity': 1}], email='BUYER@example.com'))
        self.assertEqual(order.customer, existing)
        self.assertEqual(order.billing_address_id, order.shipping_address_id)
        self.assertEqual(order.shipping_address.country, 'KE')
        self.assertEqual(order.shipping_address.customer, existing)

        billing = {'street_line1': 'PO Box 1', 'city': 'Nairobi CBD', 'province': 'Nairobi'}
        order = checkout(checkout_data([{'product': self.phone.id, 'quantity': 1}], billing_address=billing))
        self.assertNotEqual(order.billing_address_id, order.shipping_address_id)
        self.assertEqual(order.billing_address.city, 'Nairobi CBD')

    def test_insufficient_stock_rolls_back(self):
        with self.assertRaises(InsufficientStock) as ctx:
            checkout(checkout_data([
                {'product': self.phone.id, 'quantity': 1}, {'product': self.case.id, 'quantity': 4},
            ]))
        self.assertEqual(ctx.exception.details, {'product': self.case.id, 'available': 3, 'requested': 4})
        self.assertFalse(Order.objects.exists())
        self.assertFalse(Customer.objects.exists())
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock_on_hand, 5)

    def test_unknown_or_unsellable_product(self):
        with self.assertRaises(ResourceNotFound):
            checkout(checkout_data([{'product': 999999, 'quantity': 1}]))
        self.case.soft_delete()
        with self.assertRaises(ResourceNotFound) as ctx:
            checkout(checkout_data([{'product': self.case.id, 'quantity': 1}]))
        self.assertEqual(ctx.exception.details, {'product': self.case.id})

    def test_shipping_falls_back_to_supplied_cost(self):
        order = checkout(checkout_data(
            [{'product': self.phone.id, 'quantity': 1}],
            shipping_method='standard', county='Mombasa', city='Nyali', shipping_cost=Decimal('580.00'),
        ))
        self.assertEqual(order.total, Decimal('1740.00'))
        self.assertEqual(order.shipping, Decimal('500.00'))

    def test_unknown_method_is_recorded_as_none(self):
        order = checkout(checkout_data([{'product': self.phone.id, 'quantity': 1}], shipping_method='pigeon'))
        self.assertIsNone(order.shipping_method)
        self.assertEqual(order.total, Decimal('1160.00'))

    def test_express_price(self):
        order = checkout(checkout_data(
            [{'product': self.phone.id, 'quantity': 1}], shipping_method='standard', express=True,
        ))
        self.assertEqual(order.total, Decimal('1610.00'))

    def test_coupon_discount_before_vat(self):
        TestDataFactory.create_campaign(coupon_code='SAVE10', discount_value=Decimal('10.00'))
        order = checkout(checkout_data(
            [{'product': self.phone.id, 'quantity': 2}, {'product': self.case.id, 'quantity': 1}],
            shipping_method='standard', coupon_code='save10',
        ))
        self.assertEqual(order.discount, Decimal('290.00'))
        self.assertEqual(order.coupon_code, 'SAVE10')
        self.assertEqual(order.total, Decimal('2810.00'))
        self.assertEqual(order.sub_total, Decimal('2250.00'))
        self.assertEqual(Campaign.objects.get(coupon_code='SAVE10').times_used, 1)

    def test_exhausted_coupon_rolls_back(self):
        TestDataFactory.create_campaign(coupon_code='ONCE', usage_limit=1, times_used=1)
        with self.assertRaises(ValidationFailed):
            checkout(checkout_data([{'product': self.phone.id, 'quantity': 1}], coupon_code='ONCE'))
        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock_on_hand, 5)
        self.assertFalse(Order.objects.exists())


class CartValidationTests(TestCase):

    def test_reports_each_problem(self):
        ok = TestDataFactory.create_product(stock_on_hand=5)
        low = TestDataFactory.create_product(stock_on_hand=1)
        off = TestDataFactory.create_product(enabled=False)
        result = validate_cart([
            {'product': ok.id, 'quantity': 2},
            {'product': low.id, 'quantity': 2},
            {'product': off.id, 'quantity': 1},
            {'product': 999999, 'quantity': 1},
        ])
        self.assertFalse(result['valid'])
        self.assertEqual([i['reason'] for i in result['items']], [None, 'insufficient_stock', 'disabled', 'not_found'])
        self.assertEqual(result['items'][0]['price'], Decimal('1160.00'))

    def test_valid_cart_reserves_nothing(self):
        product = TestDataFactory.create_product(stock_on_hand=2)
        result = validate_cart([{'product': product.id, 'quantity': 2}])
        self.assertTrue(result['valid'])
        product.refresh_from_db()
        self.assertEqual(product.stock_on_hand, 2)


class OrderStateTests(TestCase):

    def test_can_transition(self):
        self.assertTrue(can_transition(Order.CREATED, Order.PAYMENT_PENDING))
        self.assertTrue(can_transition(Order.CREATED, Order.SHIPPED))
        self.assertTrue(can_transition(Order.SHIPPED, Order.CANCELLED))
        self.assertFalse(can_transition(Order.SHIPPED, Order.PAYMENT_SETTLED))
        self.assertFalse(can_transition(Order.DELIVERED, Order.CANCELLED))
        self.assertFalse(can_transition(Order.CANCELLED, Order.CREATED))

    def test_same_state_is_noop(self):
        order = TestDataFactory.create_order(state=Order.SHIPPED)
        order, changed = update_order_status(order, Order.SHIPPED)
        self.assertFalse(changed)

    def test_backwards_move_is_conflict(self):
        order = TestDataFactory.create_order(state=Order.SHIPPED)
        with self.assertRaises(Conflict) as ctx:
            update_order_status(order, Order.CREATED)
        self.assertEqual(ctx.exception.details, {'from': Order.SHIPPED, 'to': Order.CREATED})

    def test_terminal_order_cannot_change(self):
        order = TestDataFactory.create_order(state=Order.DELIVERED)
        self.assertTrue(order.is_terminal)
        with self.assertRaisesMessage(Conflict, 'can no longer change state') as ctx:
            update_order_status(order, Order.CANCELLED)
        self.assertEqual(ctx.exception.details, {'from': Order.DELIVERED, 'to': Order.CANCELLED})

    def test_invalid_state(self):
        order = TestDataFactory.create_order()
        with self.assertRaises(ValidationFailed):
            update_order_status(order, 'LOST')

    def test_cancel_restocks(self):
        product = TestDataFactory.create_product(stock_on_hand=4)
        order = TestDataFactory.create_order(products=[(product, 3)])
        order, changed = update_order_status(order, Order.CANCELLED)
        self.assertTrue(changed)
        self.assertEqual(order.state, Order.CANCELLED)
        product.refresh_from_db()
        self.assertEqual(product.stock_on_hand, 7)

        with self.assertRaises(Conflict):
            update_order_status(order, Order.SHIPPED)
        product.refresh_from_db()
        self.assertEqual(product.stock_on_hand, 7)


class RecordPaymentTests(TestCase):

    def setUp(self):
        self.order = TestDataFactory.create_order(products=[(TestDataFactory.create_product(), 1)])

    def test_success_settles_order(self):
        payment = record_payment(self.order, 'MPESA-1', Decimal('1160.00'), method=Payment.MPESA,
                                 transaction_id='QWERTY')
        self.assertEqual(payment.state, Payment.SETTLED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.state, Order.PAYMENT_SETTLED)

    def test_amount_within_tolerance(self):
        record_payment(self.order, 'REF-1', Decimal('1159.00'))
        with self.assertRaises(ValidationFailed) as ctx:
            record_payment(TestDataFactory.create_order(), 'REF-2', Decimal('1158.99'))
        self.assertEqual(ctx.exception.field, 'amount')

    def test_duplicate_reference(self):
        record_payment(self.order, 'REF-1', Decimal('1160.00'))
        other = TestDataFactory.create_order()
        with self.assertRaises(DuplicateResource):
            record_payment(other, 'REF-1', Decimal('1160.00'))

    def test_failure_leaves_order_pending(self):
        payment = record_payment(self.order, 'REF-F', Decimal('1160.00'), status='failed')
        self.assertEqual(payment.state, Payment.DECLINED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.state, Order.PAYMENT_PENDING)

    def test_cancelled_order_rejects_payment(self):
        update_order_status(self.order, Order.CANCELLED)
        with self.assertRaises(Conflict):
            record_payment(self.order, 'REF-C', Decimal('1160.00'))


class PaystackClientTests(TestCase):

    def _response(self, status_code=200, body=None):
        response = mock.Mock()
        response.status_code = status_code
        response.ok = status_code < 400
        response.json.return_value = body if body is not None else {}
        return response

    def test_initialize_sends_subunits(self):
        session = mock.Mock()
        session.request.return_value = self._response(body={
            'status': True,
            'data': {'authorization_url': 'https://checkout.paystack.com/abc', 'access_code': 'abc', 'reference': 'ref-1'},
        })
        client = PaystackClient(secret_key='sk_test', base_url='https://api.paystack.co', session=session)
        data = client.initialize_transaction('a@b.test', Decimal('1160.00'), 'KES', metadata={'order_id': 1})

        self.assertEqual(data['reference'], 'ref-1')
        args, kwargs = session.request.call_args
        self.assertEqual(args, ('POST', 'https://api.paystack.co/transaction/initialize'))
        self.assertEqual(kwargs['json']['amount'], 116000)
        self.assertEqual(kwargs['headers']['Authorization'], 'Bearer sk_test')

    def test_errors_become_external_service_errors(self):
        session = mock.Mock()
        session.request.return_value = self._response(400, {'message': 'Invalid key'})
        client = PaystackClient(secret_key='sk_test', session=session)
        with self.assertRaises(ExternalServiceError):
            client.verify_transaction('ref-1')

        session.request.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(ExternalServiceError):
            client.verify_transaction('ref-1')

        with self.assertRaises(ExternalServiceError):
            PaystackClient(secret_key='', session=mock.Mock()).verify_transaction('ref-1')

    def test_webhook_signature(self):
        body = b'{"event": "charge.success"}'
        signature = hmac.new(b'sk_test', body, hashlib.sha512).hexdigest()
        self.assertTrue(verify_webhook_signature(body, signature, 'sk_test'))
        self.assertFalse(verify_webhook_signature(body, signature, 'sk_other'))
        self.assertFalse(verify_webhook_signature(body, '', 'sk_test'))
        self.assertFalse(verify_webhook_signature(body, signature, ''))


class PaystackPaymentTests(TestCase):

    def setUp(self):
        self.order = TestDataFactory.create_order(products=[(TestDataFactory.create_product(), 1)])
        self.client_mock = mock.Mock()
        self.client_mock.initialize_transaction.return_value = {
            'authorization_url': 'https://checkout.paystack.com/abc',
            'access_code': 'abc',
            'reference': 'ref-1',
        }

    def test_initialize_records_pending_payment(self):
        result = initialize_payment(self.order, 'buyer@example.com', client=self.client_mock)
        self.assertEqual(result['reference'], 'ref-1')
        payment = Payment.objects.get(reference='ref-1')
        self.assertEqual(payment.state, Payment.PENDING)
        self.assertEqual(payment.metadata['access_code'], 'abc')
        self.order.refresh_from_db()
        self.assertEqual(self.order.state, Order.PAYMENT_PENDING)

    def test_initialize_requires_unpaid_order(self):
        self.order.state = Order.SHIPPED
        self.order.save()
        with self.assertRaises(Conflict):
            initialize_payment(self.order, 'buyer@example.com', client=self.client_mock)
        self.client_mock.initialize_transaction.assert_not_called()

    def test_charge_success_is_idempotent(self):
        initialize_payment(self.order, 'buyer@example.com', client=self.client_mock)
        event = {'event': 'charge.success', 'data': {'id': 4242, 'reference': 'ref-1', 'channel': 'card'}}
        payment = handle_paystack_event(event)
        self.assertEqual(payment.state, Payment.SETTLED)
        self.assertEqual(payment.transaction_id, '4242')
        self.assertEqual(payment.metadata['channel'], 'card')
        self.order.refresh_from_db()
        self.assertEqual(self.order.state, Order.PAYMENT_SETTLED)

        again = handle_paystack_event(event)
        self.assertEqual(again.pk, payment.pk)
        self.assertEqual(Payment.objects.count(), 1)

    def test_charge_failed_keeps_order_state(self):
        initialize_payment(self.order, 'buyer@example.com', client=self.client_mock)
        payment = handle_paystack_event({
            'event': 'charge.failed', 'data': {'reference': 'ref-1', 'gateway_response': 'Declined'},
        })
        self.assertEqual(payment.state, Payment.DECLINED)
        self.assertEqual(payment.error_message, 'Declined')
        self.order.refresh_from_db()
        self.assertEqual(self.order.state, Order.PAYMENT_PENDING)

    def test_other_events_ignored(self):
        self.assertIsNone(handle_paystack_event({'event': 'transfer.success', 'data': {}}))
        with self.assertRaises(ValidationFailed):
            handle_paystack_event({'event': 'charge.success', 'data': {}})
        with self.assertRaises(ResourceNotFound):
            handle_paystack_event({'event': 'charge.success', 'data': {'reference': 'nope'}})

    def test_verify_payment(self):
        initialize_payment(self.order, 'buyer@example.com', client=self.client_mock)
        self.client_mock.verify_transaction.return_value = {'status': 'success', 'id': 77, 'reference': 'ref-1'}
        payment = verify_payment('ref-1', client=self.client_mock)
        self.assertEqual(payment.state, Payment.SETTLED)
        self.assertEqual(payment.transaction_id, '77')

    def test_verify_pending_payment_unchanged(self):
        initialize_payment(self.order, 'buyer@example.com', client=self.client_mock)
        self.client_mock.verify_transaction.return_value = {'status': 'ongoing', 'reference': 'ref-1'}
        payment = verify_payment('ref-1', client=self.client_mock)
        self.assertEqual(payment.state, Payment.PENDING)


class AdminOrderAPITests(TestCase):

    def setUp(self):
        self.admin = TestDataFactory.create_user(role=User.ADMIN)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.admin)

    def test_editor_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user(role=User.EDITOR))
        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_filters(self):
        jane = TestDataFactory.create_customer(email='jane@example.com', first_name='Jane')
        created = TestDataFactory.create_order(customer=jane)
        shipped = TestDataFactory.create_order(state=Order.SHIPPED)

        response = self.client.get('/api/v1/orders/', {'state': [Order.SHIPPED]})
        self.assertEqual([o['code'] for o in response.data['results']], [shipped.code])

        response = self.client.get('/api/v1/orders/', {'search': 'jane@example.com'})
        self.assertEqual([o['code'] for o in response.data['results']], [created.code])
        self.assertEqual(response.data['results'][0]['line_count'], 1)

        response = self.client.get('/api/v1/orders/', {'state': 'LOST'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_detail_and_notes(self):
        order = TestDataFactory.create_order()
        response = self.client.patch(f'/api/v1/orders/{order.id}/', {'notes': 'Call before delivery'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['notes'], 'Call before delivery')
        self.assertEqual(len(response.data['lines']), 1)
        self.assertEqual(response.data['shipping_address']['city'], 'Westlands')

    def test_status_endpoint(self):
        order = TestDataFactory.create_order()
        response = self.client.post(f'/api/v1/orders/{order.id}/status/', {'state': Order.SHIPPED}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['state'], Order.SHIPPED)
        self.assertTrue(AuditLog.objects.filter(action='order_status', object_reference=order.code).exists())

        response = self.client.post(f'/api/v1/orders/{order.id}/status/', {'state': Order.CREATED}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['details'], {'from': Order.SHIPPED, 'to': Order.CREATED})

    def test_cancel_endpoint(self):
        product = TestDataFactory.create_product(stock_on_hand=1)
        order = TestDataFactory.create_order(products=[(product, 2)])
        response = self.client.post(f'/api/v1/orders/{order.id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['state'], Order.CANCELLED)
        self.assertTrue(response.data['is_terminal'])
        self.assertEqual(Product.objects.get(pk=product.pk).stock_on_hand, 3)
        self.assertTrue(AuditLog.objects.filter(action='order_cancel').exists())

    def test_record_payment_endpoint(self):
        order = TestDataFactory.create_order()
        response = self.client.post(f'/api/v1/orders/{order.id}/payments/', {
            'reference': 'MPESA-9', 'amount': '1160.00', 'method': Payment.MPESA,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['state'], Payment.SETTLED)

        response = self.client.post(f'/api/v1/orders/{order.id}/payments/', {
            'reference': 'MPESA-10', 'amount': '10.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'amount')

        response = self.client.get('/api/v1/payments/', {'method': Payment.MPESA})
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['order_code'], order.code)


class StorefrontOrderAPITests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.product = TestDataFactory.create_product(sale_price=Decimal('1160.00'), stock_on_hand=2)

    def _payload(self, **extra):
        data = {
            'items': [{'product': self.product.id, 'quantity': 1}],
            'email': 'buyer@example.com',
            'full_name': 'Jane Doe',
            'shipping_address': {'street_line1': '1 Road', 'city': 'Westlands', 'province': 'Nairobi'},
        }
        data.update(extra)
        return data

    def test_checkout(self):
        response = self.client.post('/api/v1/store/checkout/', self._payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['code'].startswith('ORD-'))
        self.assertEqual(Decimal(response.data['total']), Decimal('1160.00'))
        self.assertEqual(Decimal(response.data['tax']), Decimal('160.00'))
        self.assertEqual(response.data['customer_email'], 'buyer@example.com')
        self.assertTrue(AuditLog.objects.filter(action='order_checkout').exists())

    def test_checkout_errors(self):
        response = self.client.post('/api/v1/store/checkout/', self._payload(items=[]), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'items')

        response = self.client.post('/api/v1/store/checkout/', self._payload(
            items=[{'product': self.product.id, 'quantity': 3}]), format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'INSUFFICIENT_STOCK')
        self.assertEqual(response.data['details']['available'], 2)

        response = self.client.post('/api/v1/store/checkout/', self._payload(
            items=[{'product': 999999, 'quantity': 1}]), format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.post('/api/v1/store/checkout/', self._payload(coupon_code='NOPE'), format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['field'], 'code')
        self.assertFalse(Order.objects.exists())
        self.assertFalse(Address.objects.exists())

    def test_validate_cart(self):
        response = self.client.post('/api/v1/store/cart/validate/', {
            'items': [{'product': self.product.id, 'quantity': 5}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['valid'])
        self.assertEqual(response.data['items'][0]['reason'], 'insufficient_stock')

    def test_order_lookup_requires_matching_email(self):
        order = TestDataFactory.create_order(customer=TestDataFactory.create_customer(email='jane@example.com'))
        response = self.client.get(f'/api/v1/store/orders/{order.code}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.get(f'/api/v1/store/orders/{order.code}/', {'email': 'other@example.com'})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.get(f'/api/v1/store/orders/{order.code.lower()}/', {'email': 'JANE@example.com'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['code'], order.code)

    @mock.patch('commerce.orders.services.PaystackClient')
    def test_payment_initialize(self, client_class):
        client_class.return_value.initialize_transaction.return_value = {
            'authorization_url': 'https://checkout.paystack.com/xyz', 'access_code': 'xyz', 'reference': 'ref-9',
        }
        order = TestDataFactory.create_order(customer=TestDataFactory.create_customer(email='jane@example.com'))
        response = self.client.post('/api/v1/store/payments/paystack/initialize/', {
            'order_code': order.code, 'email': 'jane@example.com',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['authorization_url'], 'https://checkout.paystack.com/xyz')
        kwargs = client_class.return_value.initialize_transaction.call_args.kwargs
        self.assertEqual(kwargs['amount'], order.total)
        self.assertEqual(kwargs['metadata'], {'order_id': order.id, 'order_code': order.code})

        response = self.client.post('/api/v1/store/payments/paystack/initialize/', {
            'order_code': order.code, 'email': 'someone@example.com',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    @mock.patch('commerce.orders.services.PaystackClient')
    def test_payment_initialize_gateway_down(self, client_class):
        client_class.return_value.initialize_transaction.side_effect = ExternalServiceError('Paystack did not respond in time')
        order = TestDataFactory.create_order(customer=TestDataFactory.create_customer(email='jane@example.com'))
        response = self.client.post('/api/v1/store/payments/paystack/initialize/', {
            'order_code': order.code, 'email': 'jane@example.com',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data['code'], 'EXTERNAL_SERVICE_ERROR')
        self.assertFalse(Payment.objects.exists())


@override_settings(PAYSTACK_SECRET_KEY='sk_test_webhook')
class PaystackWebhookTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.order = TestDataFactory.create_order(state=Order.PAYMENT_PENDING)
        Payment.objects.create(order=self.order, method=Payment.PAYSTACK, amount=self.order.total,
                               state=Payment.PENDING, reference='ref-hook')

    def _post(self, payload, secret='sk_test_webhook'):
        body = json.dumps(payload).encode('utf-8')
        signature = hmac.new(secret.encode('utf-8'), body, hashlib.sha512).hexdigest()
        return self.client.post('/api/v1/store/payments/paystack/webhook/', data=body,
                                content_type='application/json', HTTP_X_PAYSTACK_SIGNATURE=signature)

    def test_valid_signature_settles(self):
        response = self._post({'event': 'charge.success', 'data': {'id': 1, 'reference': 'ref-hook'}})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'ok')
        self.order.refresh_from_db()
        self.assertEqual(self.order.state, Order.PAYMENT_SETTLED)

    def test_invalid_signature_is_403(self):
        response = self._post({'event': 'charge.success', 'data': {'reference': 'ref-hook'}}, secret='wrong')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Payment.objects.get(reference='ref-hook').state, Payment.PENDING)

    def test_unknown_reference_is_404(self):
        response = self._post({'event': 'charge.success', 'data': {'reference': 'missing'}})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_ignored_event(self):
        response = self._post({'event': 'subscription.create', 'data': {}})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['payment'])
