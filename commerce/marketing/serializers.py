from decimal import Decimal

from django.db import transaction
from rest_framework import serializers
from rest_framework.validators import UniqueValidator

from commerce.catalog.serializers import SlugResolvingMixin, slug_field, StoreProductSerializer
from .models import Banner, Campaign, HomepageCollection, BlogPost, BlogCategory


class BannerSerializer(SlugResolvingMixin, serializers.ModelSerializer):
    slug_source = 'title'
    slug = slug_field(Banner, max_length=280)
    collection_slug = serializers.CharField(source='collection.slug', read_only=True, default=None)

    class Meta:
        model = Banner
        fields = [
            'id', 'title', 'slug', 'description', 'position', 'enabled', 'sort_order',
            'desktop_image_url', 'mobile_image_url', 'collection', 'collection_slug', 'created_at', 'updated_at'
        ]
        read_only_fields = ['created_at', 'updated_at']


class CampaignSerializer(SlugResolvingMixin, serializers.ModelSerializer):
    slug = slug_field(Campaign, max_length=280)
    coupon_code = serializers.CharField(
        max_length=50, required=False, allow_blank=True, allow_null=True,
        validators=[UniqueValidator(queryset=Campaign.objects.all(), lookup='iexact',
                                    message='A campaign with this coupon code already exists.')],
    )

    class Meta:
        model = Campaign
        fields = [
            'id', 'name', 'slug', 'description', 'type', 'status', 'start_date', 'end_date', 'target_audience',
            'discount_type', 'discount_value', 'coupon_code', 'min_purchase_amount', 'max_discount_amount',
            'usage_limit', 'times_used', 'created_at', 'updated_at'
        ]
        read_only_fields = ['times_used', 'created_at', 'updated_at']

    def validate_coupon_code(self, value):
        value = (value or '').strip().upper()
        return value or None

    def validate(self, attrs):
        attrs = super().validate(attrs)

        def current(name):
            return attrs[name] if name in attrs else getattr(self.instance, name, None)

        start, end = current('start_date'), current('end_date')
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date must be after the start date.'})

        if current('type') == Campaign.DISCOUNT:
            if not current('discount_type'):
                raise serializers.ValidationError({'discount_type': 'Discount campaigns need a discount type.'})
            value = current('discount_value')
            if value is None or value <= 0:
                raise serializers.ValidationError({'discount_value': 'Discount value must be greater than 0.'})
            if current('discount_type') == Campaign.PERCENTAGE and value > Decimal('100'):
                raise serializers.ValidationError({'discount_value': 'A percentage cannot exceed 100.'})
        return attrs


class HomepageCollectionSerializer(SlugResolvingMixin, serializers.ModelSerializer):
    slug_source = 'title'
    slug = slug_field(HomepageCollection, max_length=280)
    product_count = serializers.SerializerMethodField()

    class Meta:
        model = HomepageCollection
        fields = ['id', 'title', 'slug', 'enabled', 'sort_order', 'product_count', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_product_count(self, obj):
        annotated = getattr(obj, 'product_count', None)
        return annotated if annotated is not None else obj.product_links.count()


class StoreHomepageCollectionSerializer(serializers.ModelSerializer):
    products = serializers.SerializerMethodField()

    class Meta:
        model = HomepageCollection
        fields = ['id', 'title', 'slug', 'sort_order', 'products']

    def get_products(self, obj):
        links = getattr(obj, 'visible_links', None)
        if links is None:
            links = obj.product_links.filter(
                product__enabled=True, product__deleted_at__isnull=True
            ).select_related('product__brand')
        products = [link.product for link in links]
        return StoreProductSerializer(products, many=True).data


def clean_category_names(names):
    """Strip names, drop blanks and repeats (case-insensitive), keep first spelling"""
    seen = set()
    cleaned = []
    for name in names:
        name = name.strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            cleaned.append(name)
    return cleaned


def category_names(post):
    return [category.name for category in post.categories.all()]


class BlogPostSerializer(SlugResolvingMixin, serializers.ModelSerializer):
    slug_source = 'title'
    slug = slug_field(BlogPost, max_length=280)
    categories = serializers.ListField(
        child=serializers.CharField(max_length=255, allow_blank=True), required=False, write_only=True
    )

    class Meta:
        model = BlogPost
        fields = [
            'id', 'title', 'slug', 'content', 'excerpt', 'author', 'published', 'published_at',
            'cover_image_url', 'categories', 'created_at', 'updated_at'
        ]
        read_only_fields = ['published_at', 'created_at', 'updated_at']

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['categories'] = category_names(instance)
        return data

    def _set_categories(self, post, names):
        post.categories.all().delete()
        BlogCategory.objects.bulk_create([BlogCategory(post=post, name=name) for name in clean_category_names(names)])

    @transaction.atomic
    def create(self, validated_data):
        names = validated_data.pop('categories', None)
        post = super().create(validated_data)
        if names:
            self._set_categories(post, names)
        return post

    @transaction.atomic
    def update(self, instance, validated_data):
        names = validated_data.pop('categories', None)
        post = super().update(instance, validated_data)
        if names is not None:
            self._set_categories(post, names)
        return post


class BlogPostListSerializer(serializers.ModelSerializer):
    categories = serializers.SerializerMethodField()

    class Meta:
        model = BlogPost
        fields = ['id', 'title', 'slug', 'excerpt', 'author', 'published', 'published_at', 'cover_image_url',
                  'categories']

    def get_categories(self, obj):
        return category_names(obj)


class CouponValidateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.00'))
