from django.urls import path
from .views import (
    brand_list_create, brand_detail,
    collection_list_create, collection_detail, collection_tree, collection_products,
    product_list_create, product_detail, product_restore, product_adjust_stock,
    inventory_list, product_export, product_import,
    store_product_list, store_product_detail, store_collection_tree,
    store_collection_products, store_brand_list,
)

urlpatterns = [
    # Brand endpoints
    path('brands/', brand_list_create, name='brand-list-create'),
    path('brands/<int:pk>/', brand_detail, name='brand-detail'),

    # Collection endpoints
    path('collections/', collection_list_create, name='collection-list-create'),
    path('collections/tree/', collection_tree, name='collection-tree'),
    path('collections/<int:pk>/', collection_detail, name='collection-detail'),
    path('collections/<int:pk>/products/', collection_products, name='collection-products'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/export/', product_export, name='product-export'),
    path('products/import/', product_import, name='product-import'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
    path('products/<int:pk>/restore/', product_restore, name='product-restore'),
    path('products/<int:pk>/adjust-stock/', product_adjust_stock, name='product-adjust-stock'),
    path('inventory/', inventory_list, name='inventory-list'),

    # Storefront endpoints
    path('store/products/', store_product_list, name='store-product-list'),
    path('store/products/<slug:slug>/', store_product_detail, name='store-product-detail'),
    path('store/collections/', store_collection_tree, name='store-collection-tree'),
    path('store/collections/<slug:slug>/products/', store_collection_products, name='store-collection-products'),
    path('store/brands/', store_brand_list, name='store-brand-list'),
]
