import logging

from django.db import transaction
from django.db.models import Count, Min, Prefetch, Q
from django.db.models.functions import Lower
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from commerce.catalog.models import Product
from commerce.catalog.serializers import CollectionProductsSerializer, ProductListSerializer
from commerce.core.exceptions import ValidationFailed
from commerce.core.permissions import IsEditor
from commerce.core.utils import create_audit_log, paginated_response, parse_bool_param
from .models import Banner, Campaign, HomepageCollection, HomepageCollectionProduct, BlogPost, BlogCategory
from .serializers import (
    BannerSerializer, CampaignSerializer, HomepageCollectionSerializer, StoreHomepageCollectionSerializer,
    BlogPostSerializer, BlogPostListSerializer, CouponValidateSerializer,
)
from .services import validate_coupon

logger = logging.getLogger(__name__)


def _detail(request, instance, serializer_class, label):
    """Shared GET/PUT/PATCH/DELETE handling for marketing records"""
    name = getattr(instance, 'title', None) or getattr(instance, 'name', '')

    if request.method == 'GET':
        return Response(serializer_class(instance).data)

    if request.method == 'DELETE':
        create_audit_log(request=request, action='delete', model_name=label, object_id=instance.id,
                         object_name=name, object_reference=instance.slug)
        instance.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = serializer_class(instance, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    serializer.save()
    create_audit_log(request=request, action='update', model_name=label, object_id=instance.id,
                     object_name=name, object_reference=instance.slug,
                     changes={'fields': sorted(serializer.validated_data.keys())})
    return Response(serializer.data)


def _create(request, serializer_class, label):
    serializer = serializer_class(data=request.data)
    serializer.is_valid(raise_exception=True)
    instance = serializer.save()
    create_audit_log(request=request, action='create', model_name=label, object_id=instance.id,
                     object_name=getattr(instance, 'title', None) or getattr(instance, 'name', ''),
                     object_reference=instance.slug)
    return Response(serializer_class(instance).data, status=status.HTTP_201_CREATED)


# Banner views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsEditor])
def banner_list_create(request):
    """List banners (``position``, ``enabled``) or create one"""
    if request.method == 'GET':
        banners = Banner.objects.select_related('collection').order_by('position', 'sort_order', 'id')
        position = request.query_params.get('position')
        if position:
            banners = banners.filter(position=position.upper())
        enabled = parse_bool_param(request, 'enabled')
        if enabled is not None:
            banners = banners.filter(enabled=enabled)
        return Response(BannerSerializer(banners, many=True).data)
    return _create(request, BannerSerializer, 'Banner')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsEditor])
def banner_detail(request, pk):
    return _detail(request, get_object_or_404(Banner, pk=pk), BannerSerializer, 'Banner')


# Campaign views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsEditor])
def campaign_list_create(request):
    """Paginated campaigns; filter by ``status``, ``type`` and ``search``"""
    if request.method == 'GET':
        campaigns = Campaign.objects.all().order_by('-start_date', '-id')
        for param in ('status', 'type'):
            value = request.query_params.get(param)
            if value:
                campaigns = campaigns.filter(**{param: value.upper()})
        search = request.query_params.get('search', '').strip()
        if search:
            campaigns = campaigns.filter(Q(name__icontains=search) | Q(coupon_code__icontains=search))
        return paginated_response(request, campaigns, CampaignSerializer, default_limit=20)
    return _create(request, CampaignSerializer, 'Campaign')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsEditor])
def campaign_detail(request, pk):
    return _detail(request, get_object_or_404(Campaign, pk=pk), CampaignSerializer, 'Campaign')


# Homepage collection views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsEditor])
def homepage_collection_list_create(request):
    if request.method == 'GET':
        collections = HomepageCollection.objects.annotate(product_count=Count('product_links')).order_by('sort_order', 'title')
        return Response(HomepageCollectionSerializer(collections, many=True).data)
    return _create(request, HomepageCollectionSerializer, 'HomepageCollection')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsEditor])
def homepage_collection_detail(request, pk):
    collection = get_object_or_404(HomepageCollection, pk=pk)
    return _detail(request, collection, HomepageCollectionSerializer, 'HomepageCollection')


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsEditor])
def homepage_collection_products(request, pk):
    """List or replace the ordered products of a homepage collection"""
    collection = get_object_or_404(HomepageCollection, pk=pk)

    if request.method == 'PUT':
        serializer = CollectionProductsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        products = list(dict.fromkeys(serializer.validated_data['product_ids']))
        with transaction.atomic():
            HomepageCollectionProduct.objects.filter(collection=collection).delete()
            HomepageCollectionProduct.objects.bulk_create([
                HomepageCollectionProduct(collection=collection, product=product, sort_order=index)
                for index, product in enumerate(products)
            ])
        create_audit_log(request=request, action='update', model_name='HomepageCollection', object_id=collection.id,
                         object_name=collection.title, changes={'product_ids': [p.id for p in products]})

    products = Product.objects.not_deleted().filter(
        homepage_links__collection=collection
    ).select_related('brand').order_by('homepage_links__sort_order', 'id')
    return Response(ProductListSerializer(products, many=True).data)


# Blog views
def _filter_category(request, posts):
    category = request.query_params.get('category', '').strip()
    if category:
        posts = posts.filter(categories__name__iexact=category).distinct()
    return posts


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsEditor])
def blog_post_list_create(request):
    """Paginated posts (``published``, ``search``, ``category``) or create a post"""
    if request.method == 'GET':
        posts = _filter_category(
            request, BlogPost.objects.prefetch_related('categories').order_by('-created_at', '-id')
        )
        published = parse_bool_param(request, 'published')
        if published is not None:
            posts = posts.filter(published=published)
        search = request.query_params.get('search', '').strip()
        if search:
            posts = posts.filter(Q(title__icontains=search) | Q(author__icontains=search))
        return paginated_response(request, posts, BlogPostListSerializer, default_limit=20)
    return _create(request, BlogPostSerializer, 'BlogPost')


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsEditor])
def blog_post_detail(request, pk):
    return _detail(request, get_object_or_404(BlogPost, pk=pk), BlogPostSerializer, 'BlogPost')


# Storefront views
@api_view(['GET'])
@permission_classes([AllowAny])
def store_banners(request):
    """Enabled banners, optionally for one ``position``"""
    banners = Banner.objects.filter(enabled=True).select_related('collection').order_by('position', 'sort_order', 'id')
    position = request.query_params.get('position')
    if position:
        position = position.upper()
        if position not in dict(Banner.POSITION_CHOICES):
            raise ValidationFailed(f'Unknown banner position: {position}', field='position')
        banners = banners.filter(position=position)
    return Response(BannerSerializer(banners, many=True).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def store_homepage_collections(request):
    """Enabled homepage collections with their sellable products"""
    visible_links = HomepageCollectionProduct.objects.filter(
        product__enabled=True, product__deleted_at__isnull=True
    ).select_related('product__brand').prefetch_related('product__collections').order_by('sort_order', 'id')
    collections = HomepageCollection.objects.filter(enabled=True).prefetch_related(
        Prefetch('product_links', queryset=visible_links, to_attr='visible_links')
    ).order_by('sort_order', 'title')
    return Response(StoreHomepageCollectionSerializer(collections, many=True).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def store_blog_posts(request):
    """Published posts, optionally in one ``category``"""
    posts = BlogPost.objects.filter(published=True).prefetch_related('categories').order_by('-published_at', '-id')
    posts = _filter_category(request, posts)
    return paginated_response(request, posts, BlogPostListSerializer, default_limit=12)


@api_view(['GET'])
@permission_classes([AllowAny])
def store_blog_post_detail(request, slug):
    post = get_object_or_404(BlogPost, slug=slug, published=True)
    return Response(BlogPostSerializer(post).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def store_blog_categories(request):
    """Category names used by published posts, with post counts"""
    categories = BlogCategory.objects.filter(post__published=True).annotate(
        key=Lower('name')
    ).values('key').annotate(
        name=Min('name'), post_count=Count('post', distinct=True)
    ).order_by('key')
    return Response([{'name': c['name'], 'post_count': c['post_count']} for c in categories])


@api_view(['POST'])
@permission_classes([AllowAny])
def store_validate_coupon(request):
    """Check a coupon against a cart subtotal and return the discount"""
    serializer = CouponValidateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    subtotal = serializer.validated_data['subtotal']
    campaign, discount = validate_coupon(serializer.validated_data['code'], subtotal)
    return Response({
        'code': campaign.coupon_code,
        'campaign': campaign.name,
        'discount_type': campaign.discount_type,
        'discount_value': campaign.discount_value,
        'discount': discount,
        'subtotal': subtotal,
        'total': subtotal - discount,
    })
