import logging

from .models import Customer

logger = logging.getLogger(__name__)


def split_name(full_name):
    """'Jane Wanjiru Doe' -> ('Jane', 'Wanjiru Doe')"""
    parts = (full_name or '').split()
    if not parts:
        return '', ''
    return parts[0], ' '.join(parts[1:])


def get_or_create_customer(email, full_name='', phone=''):
    """
    Match an existing customer by email (case-insensitive) or create one.
    Existing customers keep their stored name; a missing phone number is filled in.
    """
    email = (email or '').strip()
    customer = Customer.objects.filter(email__iexact=email).first()
    if customer is not None:
        if phone and not customer.phone_number:
            customer.phone_number = phone
            customer.save(update_fields=['phone_number', 'updated_at'])
        return customer, False

    first_name, last_name = split_name(full_name)
    customer = Customer.objects.create(
        email=email.lower(),
        first_name=first_name,
        last_name=last_name,
        phone_number=phone or '',
    )
    logger.info(f"Customer created at checkout: id={customer.id}, email={customer.email}")
    return customer, True
