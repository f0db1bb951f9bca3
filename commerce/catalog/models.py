from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from decimal import Decimal


class Brand(models.Model):
    """Product brands"""
    name = models.CharField(max_length=200, unique=True)
    slug = models.SlugField(max_length=220, unique=True)
    description = models.TextField(blank=True)
    logo_url = models.CharField(max_length=500, blank=True)
    enabled = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'brands'
        ordering = ['name']


def validate_collection_parent(collection, parent):
    """Keep the hierarchy two levels deep (which also rules out cycles)"""
    if parent is None:
        return
    is_saved = collection is not None and collection.pk is not None
    if is_saved and parent.pk == collection.pk:
        raise ValidationError('A collection cannot be its own parent.')
    if parent.parent_id is not None:
        raise ValidationError('Collections can only be nested one level deep.')
    if is_saved and collection.children.exists():
        raise ValidationError('A collection with sub-collections cannot have a parent.')


class Collection(models.Model):
    """Product collections, at most two levels deep"""
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, unique=True)
    description = models.TextField(blank=True)
    parent = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='children')
    enabled = models.BooleanField(default=True)
    show_in_most_shopped = models.BooleanField(default=False)
    sort_order = models.IntegerField(default=0)
    image_url = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def clean(self):
        try:
            validate_collection_parent(self, self.parent)
        except ValidationError as e:
            raise ValidationError({'parent': e.messages})

    class Meta:
        db_table = 'collections'
        ordering = ['sort_order', 'name']


class ProductQuerySet(models.QuerySet):
    def not_deleted(self):
        return self.filter(deleted_at__isnull=True)

    def sellable(self):
        """Visible on the storefront"""
        return self.not_deleted().filter(enabled=True)


class Product(models.Model):
    """Sellable product; prices are tax inclusive"""
    CONDITION_CHOICES = [
        ('NEW', 'New'),
        ('REFURBISHED', 'Refurbished'),
        ('USED', 'Used'),
    ]

    name = models.CharField(max_length=255, db_index=True)
    slug = models.SlugField(max_length=280, unique=True)
    sku = models.CharField(max_length=100, unique=True, blank=True, null=True, db_index=True)
    description = models.TextField(blank=True)
    sale_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    original_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    # PositiveIntegerField carries a database CHECK (stock_on_hand >= 0)
    stock_on_hand = models.PositiveIntegerField(default=0)
    low_stock_threshold = models.PositiveIntegerField(default=5)
    enabled = models.BooleanField(default=True, db_index=True)
    condition = models.CharField(max_length=20, choices=CONDITION_CHOICES, default='NEW')
    brand = models.ForeignKey(Brand, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    collections = models.ManyToManyField(Collection, through='ProductCollection', related_name='products', blank=True)
    shipping_method_code = models.CharField(max_length=50, default='standard')
    vat_inclusive = models.BooleanField(default=True)
    image_url = models.CharField(max_length=500, blank=True)
    deleted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProductQuerySet.as_manager()

    def __str__(self):
        return f"{self.name} ({self.sku or 'NO-SKU'})"

    @property
    def is_sellable(self):
        return self.enabled and self.deleted_at is None

    @property
    def is_low_stock(self):
        return self.stock_on_hand <= self.low_stock_threshold

    def soft_delete(self):
        self.deleted_at = timezone.now()
        self.enabled = False
        self.save(update_fields=['deleted_at', 'enabled', 'updated_at'])

    class Meta:
        db_table = 'products'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['stock_on_hand'], name='products_stock_idx'),
            models.Index(fields=['enabled', 'deleted_at'], name='products_visible_idx'),
        ]


class ProductCollection(models.Model):
    """Ordered membership of a product in a collection"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='collection_links')
    collection = models.ForeignKey(Collection, on_delete=models.CASCADE, related_name='product_links')
    sort_order = models.IntegerField(default=0)

    class Meta:
        db_table = 'product_collections'
        ordering = ['sort_order', 'id']
        unique_together = [['product', 'collection']]
