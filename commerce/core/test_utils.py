"""
Test utilities and factories for creating test data
"""
from datetime import timedelta
from decimal import Decimal
import random
import string

from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from commerce.catalog.models import Brand, Collection, Product, ProductCollection
from commerce.customers.models import Customer, Address
from commerce.marketing.models import Campaign
from commerce.orders.models import Order, OrderLine
from commerce.shipping.models import ShippingMethod, ShippingZone, ShippingCity

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', role=User.ADMIN, is_superuser=False):
        """Create an admin user with the given role"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            is_superuser=is_superuser,
        )

    @staticmethod
    def create_brand(name=None, enabled=True):
        if not name:
            name = f'Brand {TestDataFactory.random_string(6)}'
        return Brand.objects.create(name=name, slug=f'brand-{TestDataFactory.random_string(8)}', enabled=enabled)

    @staticmethod
    def create_collection(name=None, slug=None, parent=None, enabled=True, sort_order=0):
        if not name:
            name = f'Collection {TestDataFactory.random_string(6)}'
        if not slug:
            slug = f'collection-{TestDataFactory.random_string(8)}'
        return Collection.objects.create(name=name, slug=slug, parent=parent, enabled=enabled, sort_order=sort_order)

    @staticmethod
    def create_product(name=None, slug=None, sku=None, sale_price=Decimal('1160.00'), stock_on_hand=10,
                       enabled=True, brand=None, collections=None, low_stock_threshold=5):
        """Create a test product; prices are tax inclusive"""
        if not name:
            name = f'Product {TestDataFactory.random_string(6)}'
        if not slug:
            slug = f'product-{TestDataFactory.random_string(8)}'
        if not sku:
            sku = f'SKU-{TestDataFactory.random_string(8).upper()}'
        product = Product.objects.create(
            name=name,
            slug=slug,
            sku=sku,
            sale_price=sale_price,
            original_price=sale_price,
            stock_on_hand=stock_on_hand,
            low_stock_threshold=low_stock_threshold,
            enabled=enabled,
            brand=brand,
        )
        for index, collection in enumerate(collections or []):
            ProductCollection.objects.create(product=product, collection=collection, sort_order=index)
        return product

    @staticmethod
    def create_shipping_method(code=None, name=None, enabled=True, is_express=False):
        if not code:
            code = f'method-{TestDataFactory.random_string(6)}'
        return ShippingMethod.objects.create(
            code=code, name=name or code.title(), enabled=enabled, is_express=is_express
        )

    @staticmethod
    def create_shipping_zone(method=None, county='Nairobi', cities=None):
        """Create a zone; ``cities`` is a list of (city_town, standard_price, express_price)"""
        if method is None:
            method = TestDataFactory.create_shipping_method()
        zone = ShippingZone.objects.create(method=method, county=county)
        if cities is None:
            cities = [('Westlands', Decimal('200.00'), Decimal('450.00'))]
        for city_town, standard_price, express_price in cities:
            ShippingCity.objects.create(
                zone=zone, city_town=city_town, standard_price=standard_price, express_price=express_price
            )
        return zone

    @staticmethod
    def create_customer(email=None, first_name='Jane', last_name='Doe', phone_number=None):
        if not email:
            email = f'customer_{TestDataFactory.random_string(6)}@test.com'
        if not phone_number:
            phone_number = f'07{random.randint(10000000, 99999999)}'
        return Customer.objects.create(
            email=email, first_name=first_name, last_name=last_name, phone_number=phone_number
        )

    @staticmethod
    def create_address(customer=None, city='Westlands', province='Nairobi'):
        return Address.objects.create(
            customer=customer,
            full_name=customer.full_name if customer else 'Guest',
            street_line1='1 Test Street',
            city=city,
            province=province,
        )

    @staticmethod
    def create_order(customer=None, products=None, state=Order.CREATED, shipping=Decimal('0.00')):
        """
        Create an order directly (no stock movement). ``products`` is a list
        of (product, quantity); totals follow the checkout VAT split.
        """
        from commerce.orders.services import compute_totals

        if customer is None:
            customer = TestDataFactory.create_customer()
        if products is None:
            products = [(TestDataFactory.create_product(), 1)]
        address = TestDataFactory.create_address(customer)
        items_total = sum((product.sale_price * quantity for product, quantity in products), Decimal('0.00'))
        order = Order.objects.create(
            code=f'ORD-TEST-{TestDataFactory.random_string(6).upper()}',
            customer=customer,
            state=state,
            shipping_address=address,
            billing_address=address,
            **compute_totals(items_total, shipping),
        )
        for product, quantity in products:
            OrderLine.objects.create(
                order=order,
                product=product,
                product_name=product.name,
                sku=product.sku or '',
                quantity=quantity,
                unit_price=product.sale_price,
                line_price=product.sale_price * quantity,
            )
        return order

    @staticmethod
    def create_campaign(coupon_code='SAVE10', discount_type=Campaign.PERCENTAGE, discount_value=Decimal('10.00'),
                        status=Campaign.ACTIVE, start_date=None, end_date=None, **extra):
        return Campaign.objects.create(
            name=f'Campaign {TestDataFactory.random_string(6)}',
            slug=f'campaign-{TestDataFactory.random_string(8)}',
            type=Campaign.DISCOUNT,
            status=status,
            start_date=start_date or timezone.now() - timedelta(days=1),
            end_date=end_date,
            discount_type=discount_type,
            discount_value=discount_value,
            coupon_code=coupon_code,
            **extra,
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
