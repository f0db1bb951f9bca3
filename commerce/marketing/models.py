from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from commerce.catalog.models import Collection, Product


class Banner(models.Model):
    """Storefront banner placed in one of the layout slots"""
    HERO = 'HERO'
    SECONDARY = 'SECONDARY'
    SIDEBAR = 'SIDEBAR'
    FOOTER = 'FOOTER'
    POSITION_CHOICES = [
        (HERO, 'Hero'),
        (SECONDARY, 'Secondary'),
        (SIDEBAR, 'Sidebar'),
        (FOOTER, 'Footer'),
    ]

    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=280, unique=True)
    description = models.TextField(blank=True)
    position = models.CharField(max_length=20, choices=POSITION_CHOICES, default=HERO)
    enabled = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)
    desktop_image_url = models.CharField(max_length=500, blank=True)
    mobile_image_url = models.CharField(max_length=500, blank=True)
    collection = models.ForeignKey(Collection, on_delete=models.SET_NULL, null=True, blank=True, related_name='banners')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'banners'
        ordering = ['position', 'sort_order', 'id']


class Campaign(models.Model):
    """Marketing campaign; DISCOUNT campaigns carry a coupon code"""
    EMAIL = 'EMAIL'
    BANNER = 'BANNER'
    DISCOUNT = 'DISCOUNT'
    SOCIAL = 'SOCIAL'
    TYPE_CHOICES = [
        (EMAIL, 'Email'),
        (BANNER, 'Banner'),
        (DISCOUNT, 'Discount'),
        (SOCIAL, 'Social'),
    ]

    DRAFT = 'DRAFT'
    SCHEDULED = 'SCHEDULED'
    ACTIVE = 'ACTIVE'
    PAUSED = 'PAUSED'
    COMPLETED = 'COMPLETED'
    STATUS_CHOICES = [
        (DRAFT, 'Draft'),
        (SCHEDULED, 'Scheduled'),
        (ACTIVE, 'Active'),
        (PAUSED, 'Paused'),
        (COMPLETED, 'Completed'),
    ]

    PERCENTAGE = 'PERCENTAGE'
    FIXED = 'FIXED'
    DISCOUNT_TYPE_CHOICES = [
        (PERCENTAGE, 'Percentage'),
        (FIXED, 'Fixed amount'),
    ]

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=280, unique=True)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=DRAFT, db_index=True)
    start_date = models.DateTimeField(default=timezone.now)
    end_date = models.DateTimeField(null=True, blank=True)
    target_audience = models.TextField(blank=True)
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPE_CHOICES, null=True, blank=True)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(Decimal('0.00'))])
    # Stored upper-case
    coupon_code = models.CharField(max_length=50, unique=True, null=True, blank=True)
    min_purchase_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    times_used = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if self.coupon_code:
            self.coupon_code = self.coupon_code.strip().upper()
        else:
            self.coupon_code = None
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'campaigns'
        ordering = ['-start_date', '-id']


class HomepageCollection(models.Model):
    """Hand-picked product row on the storefront home page"""
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=280, unique=True)
    enabled = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)
    products = models.ManyToManyField(Product, through='HomepageCollectionProduct', related_name='homepage_collections', blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'homepage_collections'
        ordering = ['sort_order', 'title']


class HomepageCollectionProduct(models.Model):
    collection = models.ForeignKey(HomepageCollection, on_delete=models.CASCADE, related_name='product_links')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='homepage_links')
    sort_order = models.IntegerField(default=0)

    class Meta:
        db_table = 'homepage_collection_products'
        unique_together = [['collection', 'product']]
        ordering = ['sort_order', 'id']


class BlogPost(models.Model):
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=280, unique=True)
    content = models.TextField()
    excerpt = models.TextField(blank=True)
    author = models.CharField(max_length=255, blank=True)
    published = models.BooleanField(default=False, db_index=True)
    published_at = models.DateTimeField(null=True, blank=True)
    cover_image_url = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        # published_at records the first publication only
        if self.published and self.published_at is None:
            self.published_at = timezone.now()
        super().save(*args, **kwargs)

    class Meta:
        db_table = 'blog_posts'
        ordering = ['-published_at', '-created_at']


class BlogCategory(models.Model):
    """Category label of a blog post; a post's labels are replaced as a set"""
    post = models.ForeignKey(BlogPost, on_delete=models.CASCADE, related_name='categories')
    name = models.CharField(max_length=255)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'blog_categories'
        unique_together = [['post', 'name']]
        ordering = ['id']
