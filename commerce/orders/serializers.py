from decimal import Decimal

from rest_framework import serializers

from commerce.customers.serializers import AddressSerializer
from .models import Order, OrderLine, Payment


class OrderLineSerializer(serializers.ModelSerializer):
    product_slug = serializers.CharField(source='product.slug', read_only=True)

    class Meta:
        model = OrderLine
        fields = ['id', 'product', 'product_name', 'product_slug', 'sku', 'quantity', 'unit_price', 'line_price']


class PaymentSerializer(serializers.ModelSerializer):
    order_code = serializers.CharField(source='order.code', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'order', 'order_code', 'method', 'amount', 'state', 'transaction_id', 'reference',
            'metadata', 'error_message', 'created_at', 'updated_at'
        ]


class OrderListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.full_name', read_only=True)
    customer_email = serializers.CharField(source='customer.email', read_only=True)
    line_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'code', 'state', 'customer', 'customer_name', 'customer_email', 'sub_total',
            'shipping', 'tax', 'discount', 'total', 'currency_code', 'line_count', 'created_at', 'updated_at'
        ]

    def get_line_count(self, obj):
        annotated = getattr(obj, 'line_count', None)
        return annotated if annotated is not None else obj.lines.count()


class OrderDetailSerializer(OrderListSerializer):
    lines = OrderLineSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    shipping_address = AddressSerializer(read_only=True)
    billing_address = AddressSerializer(read_only=True)
    shipping_method_code = serializers.CharField(source='shipping_method.code', read_only=True, default=None)
    shipping_method_name = serializers.CharField(source='shipping_method.name', read_only=True, default=None)
    is_terminal = serializers.BooleanField(read_only=True)

    class Meta(OrderListSerializer.Meta):
        fields = OrderListSerializer.Meta.fields + [
            'lines', 'payments', 'shipping_address', 'billing_address', 'shipping_method',
            'shipping_method_code', 'shipping_method_name', 'coupon_code', 'notes', 'is_terminal'
        ]


class OrderNotesSerializer(serializers.ModelSerializer):
    class Meta:
        model = Order
        fields = ['notes']


class CheckoutAddressSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    street_line1 = serializers.CharField(max_length=255)
    street_line2 = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    city = serializers.CharField(max_length=150)
    province = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    postal_code = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')
    country = serializers.CharField(max_length=2, required=False, allow_blank=True, default='')
    phone_number = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')


class CartItemSerializer(serializers.Serializer):
    product = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class CartSerializer(serializers.Serializer):
    items = CartItemSerializer(many=True, allow_empty=False)


class CheckoutSerializer(CartSerializer):
    email = serializers.EmailField()
    full_name = serializers.CharField(max_length=300, required=False, allow_blank=True, default='')
    phone_number = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')
    shipping_address = CheckoutAddressSerializer()
    billing_address = CheckoutAddressSerializer(required=False, allow_null=True, default=None)
    shipping_method = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True, default=None)
    county = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    city = serializers.CharField(max_length=150, required=False, allow_blank=True, default='')
    express = serializers.BooleanField(required=False, default=False)
    shipping_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.00'), required=False, default=Decimal('0.00'))
    coupon_code = serializers.CharField(max_length=50, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class OrderStatusSerializer(serializers.Serializer):
    state = serializers.ChoiceField(choices=Order.STATE_CHOICES)


class RecordPaymentSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    status = serializers.ChoiceField(choices=['success', 'failed'], default='success')
    method = serializers.ChoiceField(choices=Payment.METHOD_CHOICES, default=Payment.MANUAL)
    transaction_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class PaymentInitializeSerializer(serializers.Serializer):
    order_code = serializers.CharField(max_length=40)
    email = serializers.EmailField()
    callback_url = serializers.URLField(required=False, allow_blank=True, default='')


class PaymentVerifySerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=100)
