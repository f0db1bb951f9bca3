"""
Test suite for the catalog module
Tests: slugs, collection hierarchy, product CRUD and soft delete, stock adjustments,
CSV import/export and the storefront catalog
"""
from decimal import Decimal

from django.test import TestCase
from rest_framework import status

from commerce.core.models import AuditLog, User
from commerce.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from .models import Product, ProductCollection
from .utils import export_products_csv, import_products_csv, slugify_text, unique_slug


class SlugUtilsTests(TestCase):

    def test_slugify_text(self):
        self.assertEqual(slugify_text('Samsung Galaxy S24 -- Ultra!'), 'samsung-galaxy-s24-ultra')
        self.assertEqual(slugify_text('  Hello_World  '), 'hello-world')
        self.assertTrue(slugify_text('***', fallback_prefix='product').startswith('product-'))

    def test_unique_slug_appends_counter(self):
        TestDataFactory.create_product(slug='phone')
        TestDataFactory.create_product(slug='phone-1')
        self.assertEqual(unique_slug(Product, 'phone'), 'phone-2')
        self.assertEqual(unique_slug(Product, 'tablet'), 'tablet')


class CollectionAPITests(TestCase):

    def setUp(self):
        self.editor = TestDataFactory.create_user(role=User.EDITOR)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.editor)

    def test_create_derives_slug(self):
        response = self.client.post('/api/v1/collections/', {'name': 'Smart Phones'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'smart-phones')

    def test_hierarchy_is_two_levels(self):
        root = TestDataFactory.create_collection(name='Electronics')
        child = TestDataFactory.create_collection(name='Phones', parent=root)

        response = self.client.post('/api/v1/collections/', {'name': 'Android', 'parent': child.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'parent')

        response = self.client.patch(f'/api/v1/collections/{root.id}/', {'parent': root.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_tree_lists_children(self):
        root = TestDataFactory.create_collection(name='Electronics')
        TestDataFactory.create_collection(name='Phones', parent=root, sort_order=2)
        TestDataFactory.create_collection(name='Laptops', parent=root, sort_order=1)

        response = self.client.get('/api/v1/collections/tree/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual([c['name'] for c in response.data[0]['children']], ['Laptops', 'Phones'])

    def test_replace_collection_products(self):
        collection = TestDataFactory.create_collection()
        first = TestDataFactory.create_product(name='First')
        second = TestDataFactory.create_product(name='Second')
        TestDataFactory.create_product(name='Other', collections=[collection])

        response = self.client.put(f'/api/v1/collections/{collection.id}/products/',
                                   {'product_ids': [second.id, first.id]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['id'] for p in response.data], [second.id, first.id])
        self.assertEqual(ProductCollection.objects.filter(collection=collection).count(), 2)


class ProductAPITests(TestCase):

    def setUp(self):
        self.editor = TestDataFactory.create_user(role=User.EDITOR)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.editor)

    def test_anonymous_cannot_list(self):
        self.client.logout()
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_with_collections(self):
        collection = TestDataFactory.create_collection()
        brand = TestDataFactory.create_brand(name='Acme')
        response = self.client.post('/api/v1/products/', {
            'name': 'Phone X',
            'sku': 'PX-1',
            'sale_price': '11600.00',
            'stock_on_hand': 4,
            'brand': brand.id,
            'collection_ids': [collection.id],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'phone-x')
        self.assertEqual(response.data['brand_name'], 'Acme')
        self.assertEqual([c['id'] for c in response.data['collections']], [collection.id])
        self.assertTrue(AuditLog.objects.filter(model_name='Product', action='create').exists())

    def test_same_name_gets_suffixed_slug(self):
        self.client.post('/api/v1/products/', {'name': 'Phone X'}, format='json')
        response = self.client.post('/api/v1/products/', {'name': 'Phone X'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'phone-x-1')

    def test_duplicate_sku_is_409(self):
        TestDataFactory.create_product(sku='DUP-1')
        response = self.client.post('/api/v1/products/', {'name': 'Another', 'sku': 'DUP-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'DUPLICATE_ERROR')
        self.assertEqual(response.data['field'], 'sku')

    def test_blank_skus_do_not_collide(self):
        first = self.client.post('/api/v1/products/', {'name': 'A', 'sku': ''}, format='json')
        second = self.client.post('/api/v1/products/', {'name': 'B', 'sku': ''}, format='json')
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(second.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(second.data['sku'])

    def test_negative_price_rejected(self):
        response = self.client.post('/api/v1/products/', {'name': 'Bad', 'sale_price': '-1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'sale_price')

    def test_price_change_is_audited(self):
        product = TestDataFactory.create_product(sale_price=Decimal('100.00'))
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'sale_price': '120.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        log = AuditLog.objects.get(action='price_change')
        self.assertEqual(log.changes['sale_price'], {'old': '100.00', 'new': '120.00'})

    def test_soft_delete_and_restore(self):
        product = TestDataFactory.create_product()
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        product.refresh_from_db()
        self.assertIsNotNone(product.deleted_at)
        self.assertFalse(product.enabled)

        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.data['count'], 0)
        response = self.client.get('/api/v1/products/', {'include_deleted': 'true'})
        self.assertEqual(response.data['count'], 1)

        response = self.client.post(f'/api/v1/products/{product.id}/restore/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data['deleted_at'])

    def test_list_filters_and_ordering(self):
        brand = TestDataFactory.create_brand()
        TestDataFactory.create_product(name='Blue Widget', sale_price=Decimal('50.00'), brand=brand)
        TestDataFactory.create_product(name='Red Widget', sale_price=Decimal('150.00'))
        TestDataFactory.create_product(name='Gadget', sale_price=Decimal('75.00'), stock_on_hand=0)

        response = self.client.get('/api/v1/products/', {'search': 'widget red'})
        self.assertEqual([p['name'] for p in response.data['results']], ['Red Widget'])

        response = self.client.get('/api/v1/products/', {'ordering': 'price'})
        self.assertEqual([p['name'] for p in response.data['results']], ['Blue Widget', 'Gadget', 'Red Widget'])

        response = self.client.get('/api/v1/products/', {'out_of_stock': 'true'})
        self.assertEqual([p['name'] for p in response.data['results']], ['Gadget'])

        response = self.client.get('/api/v1/products/', {'brand': brand.id})
        self.assertEqual(response.data['count'], 1)

    def test_unknown_ordering_rejected(self):
        response = self.client.get('/api/v1/products/', {'ordering': 'secret'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'ordering')


class StockAdjustmentTests(TestCase):

    def setUp(self):
        self.editor = TestDataFactory.create_user(role=User.EDITOR)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.editor)
        self.product = TestDataFactory.create_product(stock_on_hand=10)

    def test_adjust_up_and_down(self):
        response = self.client.post(f'/api/v1/products/{self.product.id}/adjust-stock/',
                                    {'quantity': 5, 'reason': 'restock'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['stock_on_hand'], 15)

        response = self.client.post(f'/api/v1/products/{self.product.id}/adjust-stock/', {'quantity': -15}, format='json')
        self.assertEqual(response.data['stock_on_hand'], 0)

        log = AuditLog.objects.filter(action='stock_adjust').order_by('id').first()
        self.assertEqual(log.changes['before'], 10)
        self.assertEqual(log.changes['after'], 15)

    def test_cannot_go_negative(self):
        response = self.client.post(f'/api/v1/products/{self.product.id}/adjust-stock/', {'quantity': -11}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['code'], 'INSUFFICIENT_STOCK')
        self.assertEqual(response.data['field'], 'quantity')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_on_hand, 10)

    def test_zero_quantity_rejected(self):
        response = self.client.post(f'/api/v1/products/{self.product.id}/adjust-stock/', {'quantity': 0}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_inventory_low_stock(self):
        TestDataFactory.create_product(name='Plenty', stock_on_hand=100)
        low = TestDataFactory.create_product(name='Low', stock_on_hand=2)
        response = self.client.get('/api/v1/inventory/', {'low_stock': 'true'})
        self.assertEqual([p['id'] for p in response.data['results']], [low.id])


class ProductCSVTests(TestCase):

    def test_import_creates_updates_and_reports(self):
        TestDataFactory.create_collection(slug='phones')
        existing = TestDataFactory.create_product(name='Old name', sku='SKU-1', stock_on_hand=1)
        text = (
            'name,sku,sale_price,stock_on_hand,brand,collections,condition\n'
            'New name,SKU-1,500,7,,,\n'
            'Fresh,SKU-2,250.50,3,Acme,phones,refurbished\n'
            ',SKU-3,10,1,,,\n'
            'Bad price,SKU-4,abc,1,,,\n'
        )
        result = import_products_csv(text)
        self.assertEqual(result['created'], 1)
        self.assertEqual(result['updated'], 1)
        self.assertEqual([e['line'] for e in result['errors']], [4, 5])

        existing.refresh_from_db()
        self.assertEqual(existing.name, 'New name')
        self.assertEqual(existing.stock_on_hand, 7)

        fresh = Product.objects.get(sku='SKU-2')
        self.assertEqual(fresh.sale_price, Decimal('250.50'))
        self.assertEqual(fresh.brand.name, 'Acme')
        self.assertEqual(fresh.condition, 'REFURBISHED')
        self.assertEqual([c.slug for c in fresh.collections.all()], ['phones'])
        self.assertFalse(Product.objects.filter(sku='SKU-4').exists())

    def test_export_contains_products(self):
        TestDataFactory.create_product(name='Exported', sku='EXP-1')
        text = export_products_csv(Product.objects.all())
        self.assertTrue(text.startswith('id,name,slug,sku'))
        self.assertIn('EXP-1', text)

    def test_import_endpoint(self):
        editor = TestDataFactory.create_user(role=User.EDITOR)
        client = AuthenticatedAPIClient()
        client.authenticate_user(editor)
        response = client.post('/api/v1/products/import/', {'csv': 'name,sku\nWidget,W-1\n'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['created'], 1)

        response = client.post('/api/v1/products/import/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = client.get('/api/v1/products/export/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/csv')


class StorefrontCatalogTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.root = TestDataFactory.create_collection(name='Electronics', slug='electronics')
        self.child = TestDataFactory.create_collection(name='Phones', slug='phones', parent=self.root)
        self.hidden = TestDataFactory.create_collection(name='Hidden', slug='hidden', enabled=False)
        self.visible = TestDataFactory.create_product(name='Visible', slug='visible', collections=[self.child])
        self.disabled = TestDataFactory.create_product(name='Disabled', slug='disabled', enabled=False)
        self.deleted = TestDataFactory.create_product(name='Deleted', slug='deleted')
        self.deleted.soft_delete()

    def test_only_sellable_products_listed(self):
        response = self.client.get('/api/v1/store/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['slug'] for p in response.data['results']], ['visible'])
        self.assertTrue(response.data['results'][0]['in_stock'])

    def test_detail_hides_unsellable(self):
        self.assertEqual(self.client.get('/api/v1/store/products/visible/').status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get('/api/v1/store/products/disabled/').status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.client.get('/api/v1/store/products/deleted/').status_code, status.HTTP_404_NOT_FOUND)

    def test_parent_collection_includes_children(self):
        response = self.client.get('/api/v1/store/collections/electronics/products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['slug'] for p in response.data['results']], ['visible'])
        self.assertEqual(response.data['collection']['slug'], 'electronics')

    def test_collection_tree_skips_disabled(self):
        response = self.client.get('/api/v1/store/collections/')
        self.assertEqual([c['slug'] for c in response.data], ['electronics'])
        self.assertEqual([c['slug'] for c in response.data[0]['children']], ['phones'])
        response = self.client.get('/api/v1/store/collections/hidden/products/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
