from django.urls import path
from .views import (
    method_list_create, method_detail,
    zone_list_create, zone_detail, zone_cities,
    store_shipping_zones,
)

urlpatterns = [
    path('shipping/methods/', method_list_create, name='shipping-method-list-create'),
    path('shipping/methods/<int:pk>/', method_detail, name='shipping-method-detail'),
    path('shipping/zones/', zone_list_create, name='shipping-zone-list-create'),
    path('shipping/zones/<int:pk>/', zone_detail, name='shipping-zone-detail'),
    path('shipping/zones/<int:pk>/cities/', zone_cities, name='shipping-zone-cities'),

    # Storefront
    path('store/shipping-zones/', store_shipping_zones, name='store-shipping-zones'),
]
