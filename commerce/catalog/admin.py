from django.contrib import admin
from .models import Brand, Collection, Product, ProductCollection


@admin.register(Brand)
class BrandAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'enabled', 'created_at']
    list_filter = ['enabled', 'created_at']
    search_fields = ['name', 'slug']
    prepopulated_fields = {'slug': ('name',)}
    ordering = ['name']


@admin.register(Collection)
class CollectionAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'parent', 'enabled', 'show_in_most_shopped', 'sort_order']
    list_filter = ['enabled', 'show_in_most_shopped']
    search_fields = ['name', 'slug']
    prepopulated_fields = {'slug': ('name',)}
    ordering = ['sort_order', 'name']


class ProductCollectionInline(admin.TabularInline):
    model = ProductCollection
    extra = 0
    autocomplete_fields = ['collection']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'brand', 'sale_price', 'stock_on_hand', 'enabled', 'deleted_at']
    list_filter = ['enabled', 'condition', 'brand', 'created_at']
    search_fields = ['name', 'sku', 'slug', 'description']
    prepopulated_fields = {'slug': ('name',)}
    ordering = ['name']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ProductCollectionInline]
