from django.urls import path
from .views import (
    banner_list_create, banner_detail,
    campaign_list_create, campaign_detail,
    homepage_collection_list_create, homepage_collection_detail, homepage_collection_products,
    blog_post_list_create, blog_post_detail,
    store_banners, store_homepage_collections, store_blog_posts, store_blog_categories, store_blog_post_detail,
    store_validate_coupon,
)

urlpatterns = [
    path('banners/', banner_list_create, name='banner-list-create'),
    path('banners/<int:pk>/', banner_detail, name='banner-detail'),
    path('campaigns/', campaign_list_create, name='campaign-list-create'),
    path('campaigns/<int:pk>/', campaign_detail, name='campaign-detail'),
    path('homepage-collections/', homepage_collection_list_create, name='homepage-collection-list-create'),
    path('homepage-collections/<int:pk>/', homepage_collection_detail, name='homepage-collection-detail'),
    path('homepage-collections/<int:pk>/products/', homepage_collection_products, name='homepage-collection-products'),
    path('blog-posts/', blog_post_list_create, name='blog-post-list-create'),
    path('blog-posts/<int:pk>/', blog_post_detail, name='blog-post-detail'),

    # Storefront
    path('store/banners/', store_banners, name='store-banners'),
    path('store/homepage-collections/', store_homepage_collections, name='store-homepage-collections'),
    path('store/blog/', store_blog_posts, name='store-blog-posts'),
    path('store/blog/categories/', store_blog_categories, name='store-blog-categories'),
    path('store/blog/<slug:slug>/', store_blog_post_detail, name='store-blog-post-detail'),
    path('store/coupons/validate/', store_validate_coupon, name='store-coupon-validate'),
]
