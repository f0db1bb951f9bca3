from django.conf import settings
from django.db import models


def default_country():
    return settings.COMMERCE_COUNTRY


class Customer(models.Model):
    """Storefront customers, created at checkout or by an admin"""
    email = models.EmailField(unique=True)
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    phone_number = models.CharField(max_length=30, blank=True)
    enabled = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.full_name or self.email

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    class Meta:
        db_table = 'customers'
        ordering = ['-created_at']


class Address(models.Model):
    """Shipping or billing address; ``customer`` is empty for guest snapshots"""
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, null=True, blank=True, related_name='addresses')
    full_name = models.CharField(max_length=200, blank=True)
    street_line1 = models.CharField(max_length=255)
    street_line2 = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=150)
    province = models.CharField(max_length=150, blank=True)
    postal_code = models.CharField(max_length=20, blank=True)
    country = models.CharField(max_length=2, default=default_country)
    phone_number = models.CharField(max_length=30, blank=True)
    default_shipping = models.BooleanField(default=False)
    default_billing = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.full_name or 'Address'}, {self.street_line1}, {self.city}"

    class Meta:
        db_table = 'addresses'
        ordering = ['-default_shipping', '-created_at']
