from django.core.validators import MinValueValidator
from django.db import models
from decimal import Decimal


class ShippingMethod(models.Model):
    """Delivery method such as ``standard`` or ``express``"""
    code = models.CharField(max_length=50, unique=True)
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    enabled = models.BooleanField(default=True)
    is_express = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.code})"

    class Meta:
        db_table = 'shipping_methods'
        ordering = ['name']


class ShippingZone(models.Model):
    """A county served by a shipping method"""
    method = models.ForeignKey(ShippingMethod, on_delete=models.CASCADE, related_name='zones')
    county = models.CharField(max_length=100, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.county} - {self.method.code}"

    class Meta:
        db_table = 'shipping_zones'
        ordering = ['county']
        unique_together = [['method', 'county']]


class ShippingCity(models.Model):
    """City/town price within a zone; express price is optional"""
    zone = models.ForeignKey(ShippingZone, on_delete=models.CASCADE, related_name='cities')
    city_town = models.CharField(max_length=150)
    standard_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0.00'))])
    express_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(Decimal('0.00'))])

    def __str__(self):
        return f"{self.city_town} ({self.zone.county})"

    class Meta:
        db_table = 'shipping_cities'
        ordering = ['city_town']
        verbose_name_plural = 'shipping cities'
