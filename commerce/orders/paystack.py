"""
Paystack client

Thin wrapper over the Paystack REST API using requests. Amounts are sent in
the currency subunit (cents), as Paystack expects.
"""
import hashlib
import hmac
import logging
from decimal import Decimal

import requests
from django.conf import settings

from commerce.core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


def to_subunit(amount):
    """Decimal major units -> integer subunits, e.g. 1234.50 -> 123450"""
    return int((Decimal(amount) * 100).quantize(Decimal('1')))


def verify_webhook_signature(payload, signature, secret_key=None):
    """Compare the ``x-paystack-signature`` header with HMAC-SHA512 of the raw body"""
    secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
    if not signature or not secret_key:
        return False
    if isinstance(payload, str):
        payload = payload.encode('utf-8')
    expected = hmac.new(secret_key.encode('utf-8'), payload, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature)


class PaystackClient:
    def __init__(self, secret_key=None, base_url=None, timeout=None, session=None):
        self.secret_key = secret_key if secret_key is not None else settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip('/')
        self.timeout = timeout or settings.PAYSTACK_TIMEOUT
        self.session = session or requests.Session()

    def _request(self, method, endpoint, payload=None):
        if not self.secret_key:
            raise ExternalServiceError('Paystack is not configured')

        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                headers={
                    'Authorization': f'Bearer {self.secret_key}',
                    'Content-Type': 'application/json',
                },
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            logger.error(f"Paystack request timed out: {method} {endpoint}")
            raise ExternalServiceError('Paystack did not respond in time')
        except requests.exceptions.RequestException as e:
            logger.error(f"Paystack request failed: {method} {endpoint}: {str(e)}")
            raise ExternalServiceError(f'Failed to call Paystack API: {str(e)}')

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            message = data.get('message') or f'HTTP {response.status_code}'
            logger.warning(f"Paystack API error on {endpoint}: {message}")
            raise ExternalServiceError(f'Paystack API error: {message}')
        return data

    def initialize_transaction(self, email, amount, currency, callback_url=None, metadata=None):
        """Start a transaction; returns ``authorization_url``, ``access_code`` and ``reference``"""
        payload = {
            'email': email,
            'amount': to_subunit(amount),
            'currency': currency,
            'metadata': metadata or {},
        }
        if callback_url:
            payload['callback_url'] = callback_url

        data = self._request('POST', '/transaction/initialize', payload)
        if not data.get('status') or not data.get('data'):
            raise ExternalServiceError('Failed to initialize payment with Paystack')
        return data['data']

    def verify_transaction(self, reference):
        data = self._request('GET', f'/transaction/verify/{reference}')
        if not data.get('status') or not data.get('data'):
            raise ExternalServiceError('Failed to verify payment with Paystack')
        return data['data']
