"""Coupon validation and redemption for DISCOUNT campaigns"""
from decimal import Decimal, ROUND_HALF_UP
import logging

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from commerce.core.exceptions import ResourceNotFound, ValidationFailed
from .models import Campaign

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def compute_discount(campaign, subtotal):
    """Percentage of the subtotal capped by max_discount_amount, or the fixed value capped at the subtotal"""
    value = campaign.discount_value or Decimal('0.00')
    if campaign.discount_type == Campaign.PERCENTAGE:
        discount = (subtotal * value / Decimal('100')).quantize(CENT, rounding=ROUND_HALF_UP)
        if campaign.max_discount_amount is not None:
            discount = min(discount, campaign.max_discount_amount)
    else:
        discount = min(value, subtotal)
    return max(discount, Decimal('0.00'))


def _find_campaign(code, lock=False):
    code = (code or '').strip().upper()
    if not code:
        raise ValidationFailed('Coupon code is required', field='code')
    queryset = Campaign.objects.select_for_update() if lock else Campaign.objects.all()
    campaign = queryset.filter(coupon_code=code).first()
    if campaign is None or campaign.type != Campaign.DISCOUNT or campaign.status != Campaign.ACTIVE:
        raise ResourceNotFound('Invalid coupon code', field='code')
    return campaign


def check_coupon(campaign, subtotal, now=None):
    now = now or timezone.now()
    if campaign.start_date and now < campaign.start_date:
        raise ValidationFailed('Coupon is not yet active', field='code')
    if campaign.end_date and now > campaign.end_date:
        raise ValidationFailed('Coupon has expired', field='code')
    if campaign.usage_limit is not None and campaign.times_used >= campaign.usage_limit:
        raise ValidationFailed('Coupon usage limit reached', field='code')
    if campaign.min_purchase_amount is not None and subtotal < campaign.min_purchase_amount:
        raise ValidationFailed(
            f'Minimum purchase amount of {campaign.min_purchase_amount} required', field='subtotal'
        )


def validate_coupon(code, subtotal):
    """Return ``(campaign, discount)`` or raise NOT_FOUND / VALIDATION_ERROR"""
    subtotal = Decimal(subtotal)
    campaign = _find_campaign(code)
    check_coupon(campaign, subtotal)
    return campaign, compute_discount(campaign, subtotal)


@transaction.atomic
def redeem_coupon(code, subtotal):
    """Validate and count one use of a coupon; used inside checkout's transaction"""
    subtotal = Decimal(subtotal)
    campaign = _find_campaign(code, lock=True)
    check_coupon(campaign, subtotal)
    updated = Campaign.objects.filter(pk=campaign.pk).filter(
        Q(usage_limit__isnull=True) | Q(times_used__lt=F('usage_limit'))
    ).update(times_used=F('times_used') + 1, updated_at=timezone.now())
    if not updated:
        raise ValidationFailed('Coupon usage limit reached', field='code')
    logger.info(f"Coupon {campaign.coupon_code} redeemed (campaign {campaign.id})")
    return campaign, compute_discount(campaign, subtotal)
