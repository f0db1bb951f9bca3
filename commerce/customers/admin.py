from django.contrib import admin
from .models import Customer, Address


class AddressInline(admin.TabularInline):
    model = Address
    extra = 0
    fields = ['full_name', 'street_line1', 'city', 'province', 'country', 'default_shipping', 'default_billing']


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['email', 'first_name', 'last_name', 'phone_number', 'enabled', 'created_at']
    list_filter = ['enabled', 'created_at']
    search_fields = ['email', 'first_name', 'last_name', 'phone_number']
    ordering = ['-created_at']
    inlines = [AddressInline]


@admin.register(Address)
class AddressAdmin(admin.ModelAdmin):
    list_display = ['full_name', 'street_line1', 'city', 'country', 'customer']
    list_filter = ['country']
    search_fields = ['full_name', 'street_line1', 'city', 'customer__email']
    raw_id_fields = ['customer']
