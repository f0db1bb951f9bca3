"""
URL configuration for the commerce project.

Admin endpoints live under ``api/v1/``; anonymous storefront endpoints
live under ``api/v1/store/`` and are declared in each app's urls module.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "Storefront Commerce Admin"
admin.site.site_title = "Storefront Commerce Admin Portal"
admin.site.index_title = "Store administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('commerce.core.urls')),
    path('api/v1/', include('commerce.catalog.urls')),
    path('api/v1/', include('commerce.shipping.urls')),
    path('api/v1/', include('commerce.customers.urls')),
    path('api/v1/', include('commerce.orders.urls')),
    path('api/v1/', include('commerce.marketing.urls')),
]
