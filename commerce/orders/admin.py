from django.contrib import admin
from .models import Order, OrderLine, Payment


class OrderLineInline(admin.TabularInline):
    model = OrderLine
    extra = 0
    readonly_fields = ['product', 'product_name', 'sku', 'quantity', 'unit_price', 'line_price']
    can_delete = False


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    readonly_fields = ['method', 'amount', 'state', 'reference', 'transaction_id', 'created_at']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['code', 'customer', 'state', 'total', 'currency_code', 'created_at']
    list_filter = ['state', 'created_at']
    search_fields = ['code', 'customer__email', 'customer__first_name', 'customer__last_name']
    readonly_fields = ['code', 'sub_total', 'shipping', 'tax', 'total', 'discount', 'created_at', 'updated_at']
    raw_id_fields = ['customer', 'shipping_address', 'billing_address']
    inlines = [OrderLineInline, PaymentInline]
    ordering = ['-created_at']


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['order', 'method', 'amount', 'state', 'reference', 'created_at']
    list_filter = ['method', 'state']
    search_fields = ['reference', 'transaction_id', 'order__code']
    raw_id_fields = ['order']
