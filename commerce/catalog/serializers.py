from rest_framework import serializers
from rest_framework.validators import UniqueValidator
from django.db import transaction

from commerce.core.cache_signals import invalidate_on_commit
from commerce.core.cache_utils import invalidate_collections_cache, invalidate_products_cache
from .models import Brand, Collection, Product, ProductCollection, validate_collection_parent
from .utils import resolve_slug


class SlugResolvingMixin:
    """Fill ``slug`` from ``slug_source`` and make it unique"""
    slug_source = 'name'

    def validate(self, attrs):
        attrs = super().validate(attrs)
        source = attrs.get(self.slug_source) or getattr(self.instance, self.slug_source, None)
        attrs['slug'] = resolve_slug(
            self.Meta.model,
            requested=attrs.get('slug'),
            source=source,
            instance=self.instance,
        )
        return attrs


def slug_field(model, max_length=220):
    return serializers.CharField(
        max_length=max_length, required=False, allow_blank=True,
        validators=[UniqueValidator(queryset=model.objects.all())],
    )


class BrandSerializer(SlugResolvingMixin, serializers.ModelSerializer):
    slug = slug_field(Brand)
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = Brand
        fields = ['id', 'name', 'slug', 'description', 'logo_url', 'enabled', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_product_count(self, obj):
        annotated = getattr(obj, 'product_count', None)
        if annotated is not None:
            return annotated
        return obj.products.filter(deleted_at__isnull=True).count()


class CollectionSerializer(SlugResolvingMixin, serializers.ModelSerializer):
    slug = slug_field(Collection)
    parent_name = serializers.CharField(source='parent.name', read_only=True, default=None)

    class Meta:
        model = Collection
        fields = ['id', 'name', 'slug', 'description', 'parent', 'parent_name', 'enabled',
                  'show_in_most_shopped', 'sort_order', 'image_url', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def validate_parent(self, parent):
        validate_collection_parent(self.instance, parent)
        return parent


class CollectionTreeSerializer(serializers.ModelSerializer):
    children = serializers.SerializerMethodField()

    class Meta:
        model = Collection
        fields = ['id', 'name', 'slug', 'description', 'image_url', 'enabled', 'show_in_most_shopped', 'sort_order', 'children']

    def get_children(self, obj):
        children = [c for c in obj.children.all() if c.enabled or not self.context.get('enabled_only')]
        children.sort(key=lambda c: (c.sort_order, c.name))
        return [
            {'id': c.id, 'name': c.name, 'slug': c.slug, 'image_url': c.image_url,
             'enabled': c.enabled, 'sort_order': c.sort_order}
            for c in children
        ]


class CollectionRefSerializer(serializers.ModelSerializer):
    class Meta:
        model = Collection
        fields = ['id', 'name', 'slug']


class ProductSerializer(SlugResolvingMixin, serializers.ModelSerializer):
    slug = slug_field(Product, max_length=280)
    sku = serializers.CharField(
        max_length=100, required=False, allow_null=True, allow_blank=True,
        validators=[UniqueValidator(queryset=Product.objects.all())],
    )
    brand_name = serializers.CharField(source='brand.name', read_only=True, default=None)
    collections = CollectionRefSerializer(many=True, read_only=True)
    collection_ids = serializers.PrimaryKeyRelatedField(
        queryset=Collection.objects.all(), many=True, write_only=True, required=False
    )
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'name', 'slug', 'sku', 'description', 'sale_price', 'original_price',
                  'stock_on_hand', 'low_stock_threshold', 'is_low_stock', 'enabled', 'condition',
                  'brand', 'brand_name', 'collections', 'collection_ids', 'shipping_method_code',
                  'vat_inclusive', 'image_url', 'deleted_at', 'created_at', 'updated_at']
        read_only_fields = ['deleted_at', 'created_at', 'updated_at']

    def validate_sku(self, value):
        # Blank SKUs are stored as NULL so they never collide
        if not value or not value.strip():
            return None
        return value.strip()

    def _set_collections(self, product, collections):
        ProductCollection.objects.filter(product=product).delete()
        ProductCollection.objects.bulk_create([
            ProductCollection(product=product, collection=collection, sort_order=index)
            for index, collection in enumerate(collections)
        ])
        invalidate_on_commit(invalidate_collections_cache, invalidate_products_cache)

    @transaction.atomic
    def create(self, validated_data):
        collections = validated_data.pop('collection_ids', None)
        product = super().create(validated_data)
        if collections:
            self._set_collections(product, collections)
        return product

    @transaction.atomic
    def update(self, instance, validated_data):
        collections = validated_data.pop('collection_ids', None)
        product = super().update(instance, validated_data)
        if collections is not None:
            self._set_collections(product, collections)
        return product


class ProductListSerializer(serializers.ModelSerializer):
    brand_name = serializers.CharField(source='brand.name', read_only=True, default=None)
    is_low_stock = serializers.BooleanField(read_only=True)

    class Meta:
        model = Product
        fields = ['id', 'name', 'slug', 'sku', 'sale_price', 'original_price', 'stock_on_hand',
                  'low_stock_threshold', 'is_low_stock', 'enabled', 'condition', 'brand', 'brand_name',
                  'image_url', 'deleted_at', 'updated_at']


class StoreProductSerializer(serializers.ModelSerializer):
    """Public product representation"""
    brand = serializers.SerializerMethodField()
    collections = CollectionRefSerializer(many=True, read_only=True)
    in_stock = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ['id', 'name', 'slug', 'description', 'sale_price', 'original_price', 'stock_on_hand',
                  'in_stock', 'condition', 'brand', 'collections', 'shipping_method_code', 'vat_inclusive', 'image_url']

    def get_brand(self, obj):
        if obj.brand is None:
            return None
        return {'id': obj.brand.id, 'name': obj.brand.name, 'slug': obj.brand.slug}

    def get_in_stock(self, obj):
        return obj.stock_on_hand > 0


class StockAdjustmentSerializer(serializers.Serializer):
    quantity = serializers.IntegerField()
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')

    def validate_quantity(self, value):
        if value == 0:
            raise serializers.ValidationError('Quantity must not be zero.')
        return value


class CollectionProductsSerializer(serializers.Serializer):
    product_ids = serializers.PrimaryKeyRelatedField(queryset=Product.objects.not_deleted(), many=True)
