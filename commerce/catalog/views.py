import logging

from django.db import transaction
from django.db.models import Count, F, Prefetch, Q
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from commerce.core.cache_utils import (
    cached_query, COLLECTIONS_CACHE_TTL, COLLECTIONS_PREFIX,
    PRODUCTS_LIST_CACHE_TTL, PRODUCTS_LIST_PREFIX, invalidate_collections_cache, invalidate_products_cache,
)
from commerce.core.cache_signals import invalidate_on_commit
from commerce.core.exceptions import InsufficientStock, ValidationFailed
from commerce.core.permissions import IsEditor
from commerce.core.utils import (
    create_audit_log, get_page_params, paginate, paginated_response, parse_bool_param, parse_int_param,
)
from .filters import ProductFilter
from .models import Brand, Collection, Product, ProductCollection
from .serializers import (
    BrandSerializer, CollectionSerializer, CollectionTreeSerializer, CollectionProductsSerializer,
    ProductSerializer, ProductListSerializer, StoreProductSerializer, StockAdjustmentSerializer,
)
from .utils import export_products_csv, import_products_csv

logger = logging.getLogger(__name__)

PRODUCT_ORDERING = {
    'name': 'name', '-name': '-name',
    'price': 'sale_price', '-price': '-sale_price',
    'stock': 'stock_on_hand', '-stock': '-stock_on_hand',
    'created_at': 'created_at', '-created_at': '-created_at',
    'updated_at': 'updated_at', '-updated_at': '-updated_at',
}


def _ordering(request, default='-created_at'):
    value = request.query_params.get('ordering') or default
    if value not in PRODUCT_ORDERING:
        raise ValidationFailed(f'Unsupported ordering: {value}', field='ordering')
    return [PRODUCT_ORDERING[value], '-id']


# Brand views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsEditor])
def brand_list_create(request):
    """List all brands or create a new brand"""
    if request.method == 'GET':
        brands = Brand.objects.annotate(
            product_count=Count('products', filter=Q(products__deleted_at__isnull=True))
        ).order_by('name')
        search = request.query_params.get('search')
        if search:
            brands = brands.filter(name__icontains=search)
        return Response(BrandSerializer(brands, many=True).data)

    serializer = BrandSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    brand = serializer.save()
    create_audit_log(request=request, action='create', model_name='Brand', object_id=brand.id, object_name=brand.name)
    return Response(BrandSerializer(brand).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsEditor])
def brand_detail(request, pk):
    """Retrieve, update or delete a brand"""
    brand = get_object_or_404(Brand, pk=pk)

    if request.method == 'GET':
        return Response(BrandSerializer(brand).data)

    if request.method == 'DELETE':
        create_audit_log(request=request, action='delete', model_name='Brand', object_id=brand.id, object_name=brand.name)
        brand.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = BrandSerializer(brand, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    serializer.save()
    create_audit_log(request=request, action='update', model_name='Brand', object_id=brand.id, object_name=brand.name,
                     changes={'fields': sorted(serializer.validated_data.keys())})
    return Response(serializer.data)


# Collection views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsEditor])
def collection_list_create(request):
    """List collections (flat) or create a new collection"""
    if request.method == 'GET':
        collections = Collection.objects.select_related('parent').order_by('sort_order', 'name')
        parent = request.query_params.get('parent')
        if parent:
            collections = collections.filter(parent_id=parent)
        if parse_bool_param(request, 'top_level'):
            collections = collections.filter(parent__isnull=True)
        enabled = parse_bool_param(request, 'enabled')
        if enabled is not None:
            collections = collections.filter(enabled=enabled)
        search = request.query_params.get('search')
        if search:
            collections = collections.filter(Q(name__icontains=search) | Q(slug__icontains=search))
        return Response(CollectionSerializer(collections, many=True).data)

    serializer = CollectionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    collection = serializer.save()
    create_audit_log(request=request, action='create', model_name='Collection', object_id=collection.id,
                     object_name=collection.name)
    return Response(CollectionSerializer(collection).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsEditor])
def collection_detail(request, pk):
    """Retrieve, update or delete a collection"""
    collection = get_object_or_404(Collection, pk=pk)

    if request.method == 'GET':
        return Response(CollectionSerializer(collection).data)

    if request.method == 'DELETE':
        create_audit_log(request=request, action='delete', model_name='Collection', object_id=collection.id,
                         object_name=collection.name)
        collection.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = CollectionSerializer(collection, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    serializer.save()
    create_audit_log(request=request, action='update', model_name='Collection', object_id=collection.id,
                     object_name=collection.name, changes={'fields': sorted(serializer.validated_data.keys())})
    return Response(serializer.data)


def _collection_tree(enabled_only):
    roots = Collection.objects.filter(parent__isnull=True).prefetch_related('children').order_by('sort_order', 'name')
    if enabled_only:
        roots = roots.filter(enabled=True)
    return list(CollectionTreeSerializer(roots, many=True, context={'enabled_only': enabled_only}).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsEditor])
def collection_tree(request):
    """Top-level collections with their children"""
    return Response(_collection_tree(enabled_only=False))


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsEditor])
def collection_products(request, pk):
    """List or replace the ordered products of a collection"""
    collection = get_object_or_404(Collection, pk=pk)

    if request.method == 'PUT':
        serializer = CollectionProductsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        products = list(dict.fromkeys(serializer.validated_data['product_ids']))
        with transaction.atomic():
            ProductCollection.objects.filter(collection=collection).delete()
            ProductCollection.objects.bulk_create([
                ProductCollection(collection=collection, product=product, sort_order=index)
                for index, product in enumerate(products)
            ])
            # bulk_create sends no post_save
            invalidate_on_commit(invalidate_collections_cache, invalidate_products_cache)
        create_audit_log(request=request, action='update', model_name='Collection', object_id=collection.id,
                         object_name=collection.name, changes={'product_ids': [p.id for p in products]})

    products = Product.objects.not_deleted().filter(
        collection_links__collection=collection
    ).select_related('brand').order_by('collection_links__sort_order', 'id')
    return Response(ProductListSerializer(products, many=True).data)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsEditor])
def product_list_create(request):
    """List products with filters and pagination, or create a product"""
    if request.method == 'GET':
        queryset = Product.objects.select_related('brand')
        if not parse_bool_param(request, 'include_deleted'):
            queryset = queryset.not_deleted()
        product_filter = ProductFilter(request.query_params, queryset=queryset)
        if not product_filter.is_valid():
            raise ValidationFailed('Invalid filters', details=product_filter.errors)
        queryset = product_filter.qs.order_by(*_ordering(request))
        return paginated_response(request, queryset, ProductListSerializer)

    serializer = ProductSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    product = serializer.save()
    logger.info(f"Product created: id={product.id}, slug={product.slug}")
    create_audit_log(request=request, action='create', model_name='Product', object_id=product.id,
                     object_name=product.name, object_reference=product.sku)
    return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsEditor])
def product_detail(request, pk):
    """Retrieve, update or soft delete a product"""
    product = get_object_or_404(Product.objects.select_related('brand').prefetch_related('collections'), pk=pk)

    if request.method == 'GET':
        return Response(ProductSerializer(product).data)

    if request.method == 'DELETE':
        product.soft_delete()
        logger.info(f"Product soft deleted: id={product.id}")
        create_audit_log(request=request, action='delete', model_name='Product', object_id=product.id,
                         object_name=product.name, object_reference=product.sku)
        return Response(status=status.HTTP_204_NO_CONTENT)

    old_price = product.sale_price
    serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
    serializer.is_valid(raise_exception=True)
    product = serializer.save()
    # Drop prefetched collections so the response reflects the update
    product._prefetched_objects_cache = {}
    changes = {'fields': sorted(k for k in serializer.validated_data.keys() if k != 'collection_ids')}
    if product.sale_price != old_price:
        changes['sale_price'] = {'old': str(old_price), 'new': str(product.sale_price)}
    create_audit_log(request=request, action='price_change' if 'sale_price' in changes else 'update',
                     model_name='Product', object_id=product.id, object_name=product.name,
                     object_reference=product.sku, changes=changes)
    return Response(ProductSerializer(product).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsEditor])
def product_restore(request, pk):
    """Undo a soft delete"""
    product = get_object_or_404(Product, pk=pk, deleted_at__isnull=False)
    product.deleted_at = None
    product.save(update_fields=['deleted_at', 'updated_at'])
    create_audit_log(request=request, action='update', model_name='Product', object_id=product.id,
                     object_name=product.name, changes={'restored': True})
    return Response(ProductSerializer(product).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsEditor])
def product_adjust_stock(request, pk):
    """Apply a signed stock delta; stock never drops below zero"""
    serializer = StockAdjustmentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    quantity = serializer.validated_data['quantity']
    reason = serializer.validated_data['reason']

    with transaction.atomic():
        product = get_object_or_404(Product.objects.select_for_update().not_deleted(), pk=pk)
        before = product.stock_on_hand
        updated = Product.objects.filter(
            pk=product.pk, stock_on_hand__gte=max(-quantity, 0)
        ).update(stock_on_hand=F('stock_on_hand') + quantity, updated_at=timezone.now())
        if not updated:
            raise InsufficientStock(product, -quantity, field='quantity')
        product.refresh_from_db()
        invalidate_on_commit(invalidate_products_cache)

    logger.info(f"Stock adjusted: product={product.id}, {before} -> {product.stock_on_hand} ({reason or 'no reason'})")
    create_audit_log(request=request, action='stock_adjust', model_name='Product', object_id=product.id,
                     object_name=product.name, object_reference=product.sku,
                     changes={'before': before, 'after': product.stock_on_hand, 'quantity': quantity, 'reason': reason})
    return Response(ProductSerializer(product).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsEditor])
def inventory_list(request):
    """Products ordered by stock ascending; ``threshold`` keeps stock <= threshold"""
    queryset = Product.objects.not_deleted().select_related('brand').order_by('stock_on_hand', 'name', 'id')
    threshold = request.query_params.get('threshold')
    if threshold not in (None, ''):
        queryset = queryset.filter(stock_on_hand__lte=parse_int_param(request, 'threshold', 0, minimum=0))
    if parse_bool_param(request, 'low_stock'):
        queryset = queryset.filter(stock_on_hand__lte=F('low_stock_threshold'))
    search = request.query_params.get('search')
    if search:
        queryset = queryset.filter(Q(name__icontains=search) | Q(sku__icontains=search))
    return paginated_response(request, queryset, ProductListSerializer)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsEditor])
def product_export(request):
    """Download products as CSV"""
    queryset = Product.objects.not_deleted().order_by('id')
    response = HttpResponse(export_products_csv(queryset), content_type='text/csv')
    response['Content-Disposition'] = f'attachment; filename="products-{timezone.now():%Y%m%d}.csv"'
    return response


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsEditor])
def product_import(request):
    """Create or update products from an uploaded CSV (``file``) or ``csv`` text"""
    upload = request.FILES.get('file')
    if upload is not None:
        try:
            text = upload.read().decode('utf-8-sig')
        except UnicodeDecodeError:
            raise ValidationFailed('CSV file must be UTF-8 encoded', field='file')
    else:
        text = request.data.get('csv')
    if not text:
        raise ValidationFailed('Provide a CSV file or csv text', field='file')

    result = import_products_csv(text)
    create_audit_log(request=request, action='import', model_name='Product', object_id='csv',
                     changes={'created': result['created'], 'updated': result['updated'], 'errors': len(result['errors'])})
    return Response(result)


# Storefront views
@cached_query(cache_ttl=PRODUCTS_LIST_CACHE_TTL, key_prefix=PRODUCTS_LIST_PREFIX)
def _store_product_page(params, page, limit, ordering):
    queryset = Product.objects.sellable().select_related('brand').prefetch_related('collections')
    product_filter = ProductFilter(dict(params), queryset=queryset)
    if not product_filter.is_valid():
        raise ValidationFailed('Invalid filters', details=product_filter.errors)
    queryset = product_filter.qs.order_by(*ordering)
    return paginate(queryset, page, limit, StoreProductSerializer)


@api_view(['GET'])
@permission_classes([AllowAny])
def store_product_list(request):
    """Enabled products for the storefront"""
    allowed = ('search', 'brand', 'collection', 'condition', 'min_price', 'max_price', 'in_stock')
    params = tuple(sorted(
        (key, request.query_params.get(key)) for key in allowed if request.query_params.get(key) not in (None, '')
    ))
    page, limit = get_page_params(request, default_limit=24)
    return Response(_store_product_page(params, page, limit, tuple(_ordering(request))))


@api_view(['GET'])
@permission_classes([AllowAny])
def store_product_detail(request, slug):
    product = get_object_or_404(
        Product.objects.sellable().select_related('brand').prefetch_related('collections'), slug=slug
    )
    return Response(StoreProductSerializer(product).data)


@cached_query(cache_ttl=COLLECTIONS_CACHE_TTL, key_prefix=COLLECTIONS_PREFIX)
def _store_collection_tree():
    return _collection_tree(enabled_only=True)


@api_view(['GET'])
@permission_classes([AllowAny])
def store_collection_tree(request):
    return Response(_store_collection_tree())


@api_view(['GET'])
@permission_classes([AllowAny])
def store_collection_products(request, slug):
    """Products of a collection, including its child collections"""
    collection = get_object_or_404(Collection, slug=slug, enabled=True)
    ids = [collection.id] + list(collection.children.filter(enabled=True).values_list('id', flat=True))
    queryset = Product.objects.sellable().filter(
        collection_links__collection_id__in=ids
    ).select_related('brand').prefetch_related(
        Prefetch('collections', queryset=Collection.objects.only('id', 'name', 'slug'))
    ).distinct().order_by(*_ordering(request))
    page, limit = get_page_params(request, default_limit=24)
    data = paginate(queryset, page, limit, StoreProductSerializer)
    data['collection'] = {'id': collection.id, 'name': collection.name, 'slug': collection.slug,
                          'description': collection.description}
    return Response(data)


@api_view(['GET'])
@permission_classes([AllowAny])
def store_brand_list(request):
    brands = Brand.objects.filter(enabled=True).annotate(
        product_count=Count('products', filter=Q(products__enabled=True, products__deleted_at__isnull=True))
    ).order_by('name')
    return Response(BrandSerializer(brands, many=True).data)
