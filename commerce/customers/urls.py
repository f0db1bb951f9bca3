from django.urls import path
from .views import (
    customer_list_create, customer_detail, customer_orders,
    customer_addresses, address_detail,
)

urlpatterns = [
    path('customers/', customer_list_create, name='customer-list-create'),
    path('customers/<int:pk>/', customer_detail, name='customer-detail'),
    path('customers/<int:pk>/orders/', customer_orders, name='customer-orders'),
    path('customers/<int:pk>/addresses/', customer_addresses, name='customer-addresses'),
    path('addresses/<int:pk>/', address_detail, name='address-detail'),
]
