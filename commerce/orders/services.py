"""
Order services: checkout, cart validation, status transitions and payments.

Prices are tax inclusive. VAT is extracted at checkout by dividing the
inclusive amounts by ``1 + COMMERCE_VAT_RATE``; ``tax`` takes the remainder
so that ``total == sub_total + shipping + tax`` holds to the cent.
"""
from decimal import Decimal, ROUND_HALF_UP
import logging
import random
import string
import time

from django.conf import settings
from django.db import transaction
from django.db.models import F

from commerce.catalog.models import Product
from commerce.core.cache_signals import invalidate_on_commit
from commerce.core.cache_utils import invalidate_products_cache
from commerce.core.exceptions import (
    Conflict, DuplicateResource, InsufficientStock, ResourceNotFound, ValidationFailed,
)
from commerce.customers.models import Address
from commerce.customers.services import get_or_create_customer
from commerce.shipping.services import resolve_shipping_cost, resolve_shipping_method
from .models import Order, OrderLine, Payment
from .paystack import PaystackClient

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
BASE36 = string.digits + string.ascii_uppercase


def money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def vat_rate():
    return Decimal(str(settings.COMMERCE_VAT_RATE))


def payment_tolerance():
    return Decimal(str(settings.COMMERCE_PAYMENT_TOLERANCE))


def _base36(number):
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36[remainder])
    return ''.join(reversed(digits)) or '0'


def generate_order_code():
    """``ORD-<base36 milliseconds>-<4 random chars>``, unique among orders"""
    while True:
        code = f"ORD-{_base36(int(time.time() * 1000))}-{''.join(random.choices(BASE36, k=4))}"
        if not Order.objects.filter(code=code).exists():
            return code


def split_vat(inclusive, rate=None):
    """Net amount of a tax inclusive amount"""
    rate = vat_rate() if rate is None else rate
    return money(Decimal(inclusive) / (Decimal('1') + rate))


def compute_totals(items_inclusive, shipping_inclusive, rate=None):
    items_inclusive = money(items_inclusive)
    shipping_inclusive = money(shipping_inclusive)
    total = items_inclusive + shipping_inclusive
    sub_total = split_vat(items_inclusive, rate)
    shipping = split_vat(shipping_inclusive, rate)
    return {
        'sub_total': sub_total,
        'shipping': shipping,
        'tax': total - sub_total - shipping,
        'total': total,
    }


def merge_items(items):
    """Sum quantities of repeated products, keeping first-seen order"""
    merged = {}
    for item in items:
        product_id = int(item['product'])
        merged[product_id] = merged.get(product_id, 0) + int(item['quantity'])
    return merged


def _lock_products(product_ids):
    products = Product.objects.select_for_update().filter(pk__in=product_ids).order_by('id')
    return {product.id: product for product in products}


def _create_address(data, customer, default_shipping=False, default_billing=False):
    return Address.objects.create(
        customer=customer,
        full_name=data.get('full_name', ''),
        street_line1=data['street_line1'],
        street_line2=data.get('street_line2', ''),
        city=data['city'],
        province=data.get('province', ''),
        postal_code=data.get('postal_code', ''),
        country=(data.get('country') or settings.COMMERCE_COUNTRY).upper(),
        phone_number=data.get('phone_number', ''),
        default_shipping=default_shipping,
        default_billing=default_billing,
    )


@transaction.atomic
def checkout(data):
    """
    Place an order from validated checkout input.

    Product rows are locked for the whole transaction; any error (unknown
    product, insufficient stock, bad coupon) rolls back every write.
    """
    quantities = merge_items(data['items'])
    products = _lock_products(quantities.keys())

    items_total = Decimal('0.00')
    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        if product is None or not product.is_sellable:
            raise ResourceNotFound(f'Product {product_id} not found', field='items',
                                   details={'product': product_id})
        if product.stock_on_hand < quantity:
            raise InsufficientStock(product, quantity)
        items_total += money(product.sale_price) * quantity

    discount = Decimal('0.00')
    coupon_code = (data.get('coupon_code') or '').strip().upper()
    if coupon_code:
        from commerce.marketing.services import redeem_coupon
        _, discount = redeem_coupon(coupon_code, items_total)
        discount = min(money(discount), items_total)
    items_inclusive = items_total - discount

    shipping_address_data = data['shipping_address']
    county = (data.get('county') or shipping_address_data.get('province') or '').strip()
    city = (data.get('city') or shipping_address_data.get('city') or '').strip()

    method_value = data.get('shipping_method')
    method = resolve_shipping_method(method_value)
    if method_value not in (None, '') and method is None:
        logger.warning(f"Checkout with unknown shipping method {method_value!r}; recording none")

    shipping_inclusive = resolve_shipping_cost(
        method, county, city, express=data.get('express', False), items_total=items_inclusive
    )
    if shipping_inclusive is None:
        shipping_inclusive = data.get('shipping_cost') or Decimal('0.00')

    totals = compute_totals(items_inclusive, shipping_inclusive)

    customer, _ = get_or_create_customer(
        data['email'], data.get('full_name', ''), data.get('phone_number', '')
    )
    shipping_address = _create_address(shipping_address_data, customer, default_shipping=True)
    billing_data = data.get('billing_address')
    if billing_data:
        billing_address = _create_address(billing_data, customer, default_billing=True)
    else:
        billing_address = shipping_address

    order = Order.objects.create(
        code=generate_order_code(),
        customer=customer,
        state=Order.CREATED,
        discount=discount,
        currency_code=settings.COMMERCE_CURRENCY,
        shipping_address=shipping_address,
        billing_address=billing_address,
        shipping_method=method,
        coupon_code=coupon_code,
        notes=data.get('notes', ''),
        **totals,
    )

    lines = []
    for product_id, quantity in quantities.items():
        product = products[product_id]
        unit_price = money(product.sale_price)
        lines.append(OrderLine(
            order=order,
            product=product,
            product_name=product.name,
            sku=product.sku or '',
            quantity=quantity,
            unit_price=unit_price,
            line_price=unit_price * quantity,
        ))
        updated = Product.objects.filter(pk=product_id, stock_on_hand__gte=quantity).update(
            stock_on_hand=F('stock_on_hand') - quantity
        )
        if not updated:
            raise InsufficientStock(product, quantity)
    OrderLine.objects.bulk_create(lines)
    invalidate_on_commit(invalidate_products_cache)

    logger.info(
        f"Order {order.code} placed: customer={customer.email}, lines={len(lines)}, "
        f"total={order.total} {order.currency_code}, shipping_method={method.code if method else None}"
    )
    return order


def validate_cart(items):
    """Check each cart item against current price and stock without reserving anything"""
    quantities = merge_items(items)
    products = Product.objects.in_bulk(list(quantities.keys()))

    results = []
    for product_id, quantity in quantities.items():
        product = products.get(product_id)
        result = {'product': product_id, 'quantity': quantity, 'valid': True, 'reason': None}
        if product is None or product.deleted_at is not None:
            result.update(valid=False, reason='not_found', message='Product not found')
        else:
            result.update(
                name=product.name,
                slug=product.slug,
                price=money(product.sale_price),
                stock_on_hand=product.stock_on_hand,
            )
            if not product.enabled:
                result.update(valid=False, reason='disabled', message='Product is not available')
            elif product.stock_on_hand < quantity:
                result.update(
                    valid=False,
                    reason='insufficient_stock',
                    message=f'Only {product.stock_on_hand} left in stock',
                )
        results.append(result)

    return {'valid': all(result['valid'] for result in results), 'items': results}


def can_transition(current, new):
    """Forward along the chain (skipping allowed) or to CANCELLED from a non-terminal state"""
    if current == new:
        return True
    if current in Order.TERMINAL_STATES:
        return False
    if new == Order.CANCELLED:
        return True
    return Order.STATE_FLOW.index(new) > Order.STATE_FLOW.index(current)


def _restock(order):
    lines = list(order.lines.all())
    # Lock in id order, like checkout, so concurrent writers cannot deadlock
    list(Product.objects.select_for_update().filter(pk__in=[line.product_id for line in lines]).order_by('id'))
    for line in lines:
        Product.objects.filter(pk=line.product_id).update(stock_on_hand=F('stock_on_hand') + line.quantity)
    invalidate_on_commit(invalidate_products_cache)
    logger.info(f"Restocked {len(lines)} lines of cancelled order {order.code}")


@transaction.atomic
def update_order_status(order, new_state):
    """
    Move ``order`` to ``new_state``; returns ``(order, changed)``.
    Cancelling puts every line's quantity back on stock.
    """
    if new_state not in dict(Order.STATE_CHOICES):
        raise ValidationFailed(f'Invalid order state: {new_state}', field='state')

    order = Order.objects.select_for_update().get(pk=order.pk)
    previous = order.state
    if previous == new_state:
        return order, False
    if order.is_terminal:
        raise Conflict(f'Order {order.code} is {previous} and can no longer change state', field='state',
                       details={'from': previous, 'to': new_state})
    if not can_transition(previous, new_state):
        raise Conflict(f'Cannot move order {order.code} from {previous} to {new_state}', field='state',
                       details={'from': previous, 'to': new_state})

    if new_state == Order.CANCELLED:
        _restock(order)

    order.state = new_state
    order.save(update_fields=['state', 'updated_at'])
    logger.info(f"Order {order.code} moved {previous} -> {new_state}")
    return order, True


def _advance(order, new_state):
    """Transition inside an existing transaction when it is a legal forward move"""
    if order.state != new_state and can_transition(order.state, new_state) and new_state != Order.CANCELLED:
        order.state = new_state
        order.save(update_fields=['state', 'updated_at'])


@transaction.atomic
def record_payment(order, reference, amount, status='success', method=Payment.MANUAL, transaction_id=None):
    """
    Record a payment reported outside Paystack's webhook (manual, M-Pesa).
    The amount must match the order total within the configured tolerance.
    """
    order = Order.objects.select_for_update().get(pk=order.pk)
    if order.state == Order.CANCELLED:
        raise Conflict(f'Order {order.code} is cancelled', field='state')

    amount = money(amount)
    if abs(amount - order.total) > payment_tolerance():
        raise ValidationFailed(
            f'Amount mismatch. Order total: {order.total}, payment amount: {amount}', field='amount'
        )
    if reference and Payment.objects.filter(reference=reference).exists():
        raise DuplicateResource(f'Payment reference {reference} already recorded', field='reference')

    succeeded = status == 'success'
    payment = Payment.objects.create(
        order=order,
        method=method,
        amount=amount,
        state=Payment.SETTLED if succeeded else Payment.DECLINED,
        reference=reference or None,
        transaction_id=transaction_id or None,
        error_message='' if succeeded else 'Payment failed',
    )
    if succeeded:
        _advance(order, Order.PAYMENT_SETTLED)
    elif order.state == Order.CREATED:
        _advance(order, Order.PAYMENT_PENDING)

    logger.info(f"Payment {payment.id} recorded for {order.code}: {amount} via {method} ({payment.state})")
    return payment


def initialize_payment(order, email, callback_url=None, client=None):
    """Start a Paystack transaction for ``order`` and record it as a pending payment"""
    if order.state not in (Order.CREATED, Order.PAYMENT_PENDING):
        raise Conflict(f'Order {order.code} is not awaiting payment', field='state')
    if order.total <= 0:
        raise ValidationFailed('Order total must be greater than 0', field='amount')

    client = client or PaystackClient()
    result = client.initialize_transaction(
        email=email,
        amount=order.total,
        currency=order.currency_code,
        callback_url=callback_url,
        metadata={'order_id': order.id, 'order_code': order.code},
    )

    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        Payment.objects.create(
            order=order,
            method=Payment.PAYSTACK,
            amount=order.total,
            state=Payment.PENDING,
            reference=result['reference'],
            metadata={
                'access_code': result.get('access_code'),
                'authorization_url': result.get('authorization_url'),
            },
        )
        _advance(order, Order.PAYMENT_PENDING)

    logger.info(f"Paystack payment initialized for {order.code}: reference={result['reference']}")
    return {
        'authorization_url': result.get('authorization_url'),
        'access_code': result.get('access_code'),
        'reference': result['reference'],
    }


@transaction.atomic
def settle_payment(reference, transaction_id=None, metadata=None):
    """Mark a Paystack payment settled and the order PAYMENT_SETTLED (idempotent)"""
    payment = Payment.objects.select_for_update().select_related('order').filter(reference=reference).first()
    if payment is None:
        raise ResourceNotFound(f'Payment with reference {reference} not found', field='reference')
    if payment.state == Payment.SETTLED:
        return payment

    payment.state = Payment.SETTLED
    payment.transaction_id = transaction_id or reference
    payment.error_message = ''
    if metadata:
        payment.metadata = {**payment.metadata, **metadata}
    payment.save()

    order = Order.objects.select_for_update().get(pk=payment.order_id)
    _advance(order, Order.PAYMENT_SETTLED)
    logger.info(f"Payment {reference} settled; order {order.code} is {order.state}")
    return payment


@transaction.atomic
def decline_payment(reference, error_message='Payment failed'):
    """Mark a payment declined; the order stays where it is so the customer can retry"""
    payment = Payment.objects.select_for_update().filter(reference=reference).first()
    if payment is None:
        raise ResourceNotFound(f'Payment with reference {reference} not found', field='reference')
    if payment.state == Payment.SETTLED:
        logger.warning(f"Ignoring failure for already settled payment {reference}")
        return payment

    payment.state = Payment.DECLINED
    payment.error_message = error_message or 'Payment failed'
    payment.save(update_fields=['state', 'error_message', 'updated_at'])
    logger.info(f"Payment {reference} declined: {payment.error_message}")
    return payment


def handle_paystack_event(payload):
    """Apply a verified webhook event; returns the payment touched or None for ignored events"""
    event = payload.get('event')
    data = payload.get('data') or {}
    reference = data.get('reference')

    if event not in ('charge.success', 'charge.failed'):
        logger.info(f"Ignoring Paystack event {event!r}")
        return None
    if not reference:
        raise ValidationFailed('Webhook payload has no reference', field='reference')

    if event == 'charge.success':
        transaction_id = str(data['id']) if data.get('id') is not None else reference
        return settle_payment(reference, transaction_id=transaction_id,
                              metadata={'channel': data.get('channel'), 'paid_at': data.get('paid_at')})
    return decline_payment(reference, data.get('gateway_response') or data.get('status') or 'Payment failed')


def verify_payment(reference, client=None):
    """Ask Paystack for the transaction outcome and apply it"""
    client = client or PaystackClient()
    data = client.verify_transaction(reference)
    if data.get('status') == 'success':
        transaction_id = str(data['id']) if data.get('id') is not None else reference
        return settle_payment(reference, transaction_id=transaction_id)
    if data.get('status') in ('failed', 'abandoned', 'reversed'):
        return decline_payment(reference, data.get('gateway_response') or data.get('status'))
    payment = Payment.objects.filter(reference=reference).first()
    if payment is None:
        raise ResourceNotFound(f'Payment with reference {reference} not found', field='reference')
    return payment
