from django.contrib import admin
from .models import ShippingMethod, ShippingZone, ShippingCity


@admin.register(ShippingMethod)
class ShippingMethodAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'enabled', 'is_express', 'created_at']
    list_filter = ['enabled', 'is_express']
    search_fields = ['name', 'code']
    ordering = ['name']


class ShippingCityInline(admin.TabularInline):
    model = ShippingCity
    extra = 0


@admin.register(ShippingZone)
class ShippingZoneAdmin(admin.ModelAdmin):
    list_display = ['county', 'method', 'created_at']
    list_filter = ['method']
    search_fields = ['county', 'cities__city_town']
    ordering = ['county']
    inlines = [ShippingCityInline]
