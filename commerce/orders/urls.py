from django.urls import path
from .views import (
    order_list, order_detail, order_status, order_cancel, order_payments, payment_list,
    store_checkout, store_validate_cart, store_order_lookup,
    store_payment_initialize, store_payment_verify, store_paystack_webhook,
)

urlpatterns = [
    path('orders/', order_list, name='order-list'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
    path('orders/<int:pk>/status/', order_status, name='order-status'),
    path('orders/<int:pk>/cancel/', order_cancel, name='order-cancel'),
    path('orders/<int:pk>/payments/', order_payments, name='order-payments'),
    path('payments/', payment_list, name='payment-list'),

    # Storefront
    path('store/checkout/', store_checkout, name='store-checkout'),
    path('store/cart/validate/', store_validate_cart, name='store-cart-validate'),
    path('store/orders/<str:code>/', store_order_lookup, name='store-order-lookup'),
    path('store/payments/paystack/initialize/', store_payment_initialize, name='store-payment-initialize'),
    path('store/payments/paystack/verify/', store_payment_verify, name='store-payment-verify'),
    path('store/payments/paystack/webhook/', store_paystack_webhook, name='store-paystack-webhook'),
]
