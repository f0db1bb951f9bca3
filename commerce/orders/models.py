from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from commerce.catalog.models import Product
from commerce.customers.models import Customer, Address
from commerce.shipping.models import ShippingMethod


def default_currency():
    return settings.COMMERCE_CURRENCY


class Order(models.Model):
    """Storefront order. Amounts are stored net of VAT except ``total`` and ``discount``"""
    CREATED = 'CREATED'
    PAYMENT_PENDING = 'PAYMENT_PENDING'
    PAYMENT_AUTHORIZED = 'PAYMENT_AUTHORIZED'
    PAYMENT_SETTLED = 'PAYMENT_SETTLED'
    SHIPPED = 'SHIPPED'
    DELIVERED = 'DELIVERED'
    CANCELLED = 'CANCELLED'

    STATE_CHOICES = [
        (CREATED, 'Created'),
        (PAYMENT_PENDING, 'Payment pending'),
        (PAYMENT_AUTHORIZED, 'Payment authorized'),
        (PAYMENT_SETTLED, 'Payment settled'),
        (SHIPPED, 'Shipped'),
        (DELIVERED, 'Delivered'),
        (CANCELLED, 'Cancelled'),
    ]
    # Forward order of the fulfilment chain
    STATE_FLOW = [CREATED, PAYMENT_PENDING, PAYMENT_AUTHORIZED, PAYMENT_SETTLED, SHIPPED, DELIVERED]
    TERMINAL_STATES = (DELIVERED, CANCELLED)

    code = models.CharField(max_length=40, unique=True)
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name='orders')
    state = models.CharField(max_length=30, choices=STATE_CHOICES, default=CREATED, db_index=True)
    sub_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    shipping = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    currency_code = models.CharField(max_length=3, default=default_currency)
    shipping_address = models.ForeignKey(Address, on_delete=models.PROTECT, null=True, blank=True, related_name='shipping_orders')
    billing_address = models.ForeignKey(Address, on_delete=models.PROTECT, null=True, blank=True, related_name='billing_orders')
    shipping_method = models.ForeignKey(ShippingMethod, on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    coupon_code = models.CharField(max_length=50, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.code

    @property
    def is_terminal(self):
        return self.state in self.TERMINAL_STATES

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at', '-id']


class OrderLine(models.Model):
    """Order line with a snapshot of the product name and tax inclusive price"""
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='lines')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_lines')
    product_name = models.CharField(max_length=255)
    sku = models.CharField(max_length=100, blank=True)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    line_price = models.DecimalField(max_digits=12, decimal_places=2)

    def __str__(self):
        return f"{self.order.code} - {self.product_name} x{self.quantity}"

    class Meta:
        db_table = 'order_lines'
        ordering = ['id']


class Payment(models.Model):
    PAYSTACK = 'paystack'
    MPESA = 'mpesa'
    MANUAL = 'manual'
    METHOD_CHOICES = [
        (PAYSTACK, 'Paystack'),
        (MPESA, 'M-Pesa'),
        (MANUAL, 'Manual'),
    ]

    PENDING = 'PENDING'
    AUTHORIZED = 'AUTHORIZED'
    SETTLED = 'SETTLED'
    DECLINED = 'DECLINED'
    STATE_CHOICES = [
        (PENDING, 'Pending'),
        (AUTHORIZED, 'Authorized'),
        (SETTLED, 'Settled'),
        (DECLINED, 'Declined'),
    ]

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='payments')
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, default=MANUAL)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    state = models.CharField(max_length=20, choices=STATE_CHOICES, default=PENDING)
    transaction_id = models.CharField(max_length=100, unique=True, null=True, blank=True)
    reference = models.CharField(max_length=100, unique=True, null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    error_message = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.method} {self.amount} ({self.state}) for {self.order.code}"

    class Meta:
        db_table = 'payments'
        ordering = ['-created_at', '-id']
