from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    """Admin user with a store role"""
    SUPER_ADMIN = 'SUPER_ADMIN'
    ADMIN = 'ADMIN'
    EDITOR = 'EDITOR'
    ROLE_CHOICES = [
        (SUPER_ADMIN, 'Super Admin'),
        (ADMIN, 'Admin'),
        (EDITOR, 'Editor'),
    ]

    email = models.EmailField(unique=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=EDITOR)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'

    @property
    def effective_role(self):
        # Django superusers created from the shell act as SUPER_ADMIN
        if self.is_superuser:
            return self.SUPER_ADMIN
        return self.role

    def has_role(self, *roles):
        return self.effective_role in roles


class Setting(models.Model):
    """Store setting stored as a dotted key (e.g. ``general.site_name``)"""
    key = models.CharField(max_length=150, unique=True)
    value = models.TextField(blank=True, default='')
    description = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.key

    class Meta:
        db_table = 'settings'
        ordering = ['key']


class AuditLog(models.Model):
    """Audit log for admin mutations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('stock_adjust', 'Stock Adjustment'),
        ('price_change', 'Price Change'),
        ('order_checkout', 'Order Checkout'),
        ('order_status', 'Order Status Changed'),
        ('order_cancel', 'Order Cancelled'),
        ('payment_add', 'Payment Recorded'),
        ('settings_update', 'Settings Updated'),
        ('import', 'Import'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., product name, order code)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., order code, payment reference)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='audit_logs_created_8e1f0c_idx'),
            models.Index(fields=['action'], name='audit_logs_action_4b7a2d_idx'),
            models.Index(fields=['model_name'], name='audit_logs_model_n_9c3e51_idx'),
            models.Index(fields=['object_reference'], name='audit_logs_object__d02f77_idx'),
        ]
