"""
Test suite for the marketing module
Tests: coupons, campaigns, banners, homepage collections and the blog
"""
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from commerce.core.exceptions import ResourceNotFound, ValidationFailed
from commerce.core.models import User
from commerce.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from .models import Banner, BlogCategory, BlogPost, Campaign, HomepageCollection, HomepageCollectionProduct
from .services import compute_discount, redeem_coupon, validate_coupon


class CouponServiceTests(TestCase):

    def test_percentage_and_cap(self):
        campaign = TestDataFactory.create_campaign(coupon_code='PCT', discount_value=Decimal('15.00'))
        self.assertEqual(compute_discount(campaign, Decimal('1000.00')), Decimal('150.00'))
        campaign.max_discount_amount = Decimal('100.00')
        self.assertEqual(compute_discount(campaign, Decimal('1000.00')), Decimal('100.00'))

    def test_fixed_capped_at_subtotal(self):
        campaign = TestDataFactory.create_campaign(coupon_code='FIX', discount_type=Campaign.FIXED,
                                                   discount_value=Decimal('500.00'))
        self.assertEqual(compute_discount(campaign, Decimal('2000.00')), Decimal('500.00'))
        self.assertEqual(compute_discount(campaign, Decimal('300.00')), Decimal('300.00'))

    def test_code_is_case_insensitive(self):
        TestDataFactory.create_campaign(coupon_code='save10')
        campaign, discount = validate_coupon(' Save10 ', Decimal('1000.00'))
        self.assertEqual(campaign.coupon_code, 'SAVE10')
        self.assertEqual(discount, Decimal('100.00'))

    def test_unknown_or_inactive_codes(self):
        TestDataFactory.create_campaign(coupon_code='PAUSED', status=Campaign.PAUSED)
        with self.assertRaises(ResourceNotFound):
            validate_coupon('MISSING', Decimal('100'))
        with self.assertRaises(ResourceNotFound):
            validate_coupon('PAUSED', Decimal('100'))
        with self.assertRaises(ValidationFailed):
            validate_coupon('', Decimal('100'))

    def test_date_window(self):
        now = timezone.now()
        TestDataFactory.create_campaign(coupon_code='SOON', start_date=now + timedelta(days=1))
        TestDataFactory.create_campaign(coupon_code='OLD', start_date=now - timedelta(days=10),
                                        end_date=now - timedelta(days=1))
        with self.assertRaisesMessage(ValidationFailed, 'not yet active'):
            validate_coupon('SOON', Decimal('100'))
        with self.assertRaisesMessage(ValidationFailed, 'expired'):
            validate_coupon('OLD', Decimal('100'))

    def test_minimum_purchase(self):
        TestDataFactory.create_campaign(coupon_code='BIG', min_purchase_amount=Decimal('5000.00'))
        with self.assertRaises(ValidationFailed) as ctx:
            validate_coupon('BIG', Decimal('4999.99'))
        self.assertEqual(ctx.exception.field, 'subtotal')
        validate_coupon('BIG', Decimal('5000.00'))

    def test_redeem_counts_uses_up_to_limit(self):
        TestDataFactory.create_campaign(coupon_code='TWICE', usage_limit=2)
        redeem_coupon('TWICE', Decimal('100'))
        redeem_coupon('TWICE', Decimal('100'))
        with self.assertRaisesMessage(ValidationFailed, 'usage limit'):
            redeem_coupon('TWICE', Decimal('100'))
        self.assertEqual(Campaign.objects.get(coupon_code='TWICE').times_used, 2)


class CampaignAPITests(TestCase):

    def setUp(self):
        self.editor = TestDataFactory.create_user(role=User.EDITOR)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.editor)

    def _campaign(self, **extra):
        data = {
            'name': 'Easter Sale',
            'type': Campaign.DISCOUNT,
            'status': Campaign.ACTIVE,
            'discount_type': Campaign.PERCENTAGE,
            'discount_value': '20.00',
            'coupon_code': 'easter20',
        }
        data.update(extra)
        return data

    def test_create_normalises_code_and_slug(self):
        response = self.client.post('/api/v1/campaigns/', self._campaign(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['coupon_code'], 'EASTER20')
        self.assertEqual(response.data['slug'], 'easter-sale')
        self.assertEqual(response.data['times_used'], 0)

    def test_duplicate_code_is_409(self):
        TestDataFactory.create_campaign(coupon_code='EASTER20')
        response = self.client.post('/api/v1/campaigns/', self._campaign(), format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['field'], 'coupon_code')

    def test_discount_rules(self):
        response = self.client.post('/api/v1/campaigns/', self._campaign(discount_value='120'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'discount_value')

        response = self.client.post('/api/v1/campaigns/', self._campaign(discount_type=None), format='json')
        self.assertEqual(response.data['field'], 'discount_type')

        now = timezone.now()
        response = self.client.post('/api/v1/campaigns/', self._campaign(
            start_date=now.isoformat(), end_date=(now - timedelta(days=1)).isoformat()), format='json')
        self.assertEqual(response.data['field'], 'end_date')

    def test_email_campaign_needs_no_discount(self):
        response = self.client.post('/api/v1/campaigns/', {
            'name': 'Newsletter', 'type': Campaign.EMAIL, 'coupon_code': '',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNone(response.data['coupon_code'])

    def test_list_filters(self):
        TestDataFactory.create_campaign(coupon_code='A1')
        TestDataFactory.create_campaign(coupon_code='B2', status=Campaign.PAUSED)
        response = self.client.get('/api/v1/campaigns/', {'status': 'paused'})
        self.assertEqual([c['coupon_code'] for c in response.data['results']], ['B2'])


class ContentAPITests(TestCase):

    def setUp(self):
        self.editor = TestDataFactory.create_user(role=User.EDITOR)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.editor)

    def test_banner_crud(self):
        response = self.client.post('/api/v1/banners/', {'title': 'Big Sale', 'position': Banner.HERO}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        banner_id = response.data['id']

        response = self.client.patch(f'/api/v1/banners/{banner_id}/', {'enabled': False}, format='json')
        self.assertFalse(response.data['enabled'])

        response = self.client.delete(f'/api/v1/banners/{banner_id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Banner.objects.exists())

    def test_blog_published_at_set_once(self):
        response = self.client.post('/api/v1/blog-posts/', {'title': 'Hello', 'content': 'Body'}, format='json')
        post_id = response.data['id']
        self.assertIsNone(response.data['published_at'])

        response = self.client.patch(f'/api/v1/blog-posts/{post_id}/', {'published': True}, format='json')
        first_published = BlogPost.objects.get(pk=post_id).published_at
        self.assertIsNotNone(first_published)

        self.client.patch(f'/api/v1/blog-posts/{post_id}/', {'published': False}, format='json')
        self.client.patch(f'/api/v1/blog-posts/{post_id}/', {'published': True}, format='json')
        self.assertEqual(BlogPost.objects.get(pk=post_id).published_at, first_published)

    def test_blog_categories_replaced_as_a_set(self):
        response = self.client.post('/api/v1/blog-posts/', {
            'title': 'Tips', 'content': 'Body', 'categories': ['News', ' news ', 'Guides', ''],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['categories'], ['News', 'Guides'])
        post_id = response.data['id']

        response = self.client.patch(f'/api/v1/blog-posts/{post_id}/', {'title': 'More tips'}, format='json')
        self.assertEqual(response.data['categories'], ['News', 'Guides'])

        response = self.client.patch(f'/api/v1/blog-posts/{post_id}/', {'categories': ['Reviews']}, format='json')
        self.assertEqual(response.data['categories'], ['Reviews'])
        self.assertEqual(BlogCategory.objects.filter(post_id=post_id).count(), 1)

        response = self.client.get('/api/v1/blog-posts/', {'category': 'reviews'})
        self.assertEqual([p['id'] for p in response.data['results']], [post_id])
        self.assertEqual(response.data['results'][0]['categories'], ['Reviews'])

    def test_homepage_collection_products_replace(self):
        collection = HomepageCollection.objects.create(title='Featured', slug='featured')
        first = TestDataFactory.create_product(name='First')
        second = TestDataFactory.create_product(name='Second')
        HomepageCollectionProduct.objects.create(collection=collection, product=first, sort_order=0)

        response = self.client.put(f'/api/v1/homepage-collections/{collection.id}/products/',
                                   {'product_ids': [second.id, first.id, second.id]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['id'] for p in response.data], [second.id, first.id])

        response = self.client.get('/api/v1/homepage-collections/')
        self.assertEqual(response.data[0]['product_count'], 2)

    def test_anonymous_rejected(self):
        self.client.logout()
        response = self.client.get('/api/v1/banners/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class StorefrontMarketingTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_banners_by_position(self):
        Banner.objects.create(title='Hero', slug='hero', position=Banner.HERO)
        Banner.objects.create(title='Footer', slug='footer', position=Banner.FOOTER)
        Banner.objects.create(title='Off', slug='off', position=Banner.HERO, enabled=False)

        response = self.client.get('/api/v1/store/banners/', {'position': 'hero'})
        self.assertEqual([b['slug'] for b in response.data], ['hero'])
        response = self.client.get('/api/v1/store/banners/', {'position': 'nowhere'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_homepage_collections_hide_unsellable(self):
        collection = HomepageCollection.objects.create(title='Featured', slug='featured')
        HomepageCollection.objects.create(title='Hidden', slug='hidden', enabled=False)
        visible = TestDataFactory.create_product(name='Visible')
        disabled = TestDataFactory.create_product(name='Disabled', enabled=False)
        HomepageCollectionProduct.objects.create(collection=collection, product=disabled, sort_order=0)
        HomepageCollectionProduct.objects.create(collection=collection, product=visible, sort_order=1)

        response = self.client.get('/api/v1/store/homepage-collections/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([c['slug'] for c in response.data], ['featured'])
        self.assertEqual([p['name'] for p in response.data[0]['products']], ['Visible'])

    def test_blog_only_published(self):
        BlogPost.objects.create(title='Live', slug='live', content='x', published=True)
        BlogPost.objects.create(title='Draft', slug='draft', content='x')
        response = self.client.get('/api/v1/store/blog/')
        self.assertEqual([p['slug'] for p in response.data['results']], ['live'])
        self.assertEqual(self.client.get('/api/v1/store/blog/live/').status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get('/api/v1/store/blog/draft/').status_code, status.HTTP_404_NOT_FOUND)

    def test_blog_categories(self):
        live = BlogPost.objects.create(title='Live', slug='live', content='x', published=True)
        other = BlogPost.objects.create(title='Other', slug='other', content='x', published=True)
        draft = BlogPost.objects.create(title='Draft', slug='draft', content='x')
        BlogCategory.objects.create(post=live, name='News')
        BlogCategory.objects.create(post=other, name='News')
        BlogCategory.objects.create(post=other, name='Guides')
        BlogCategory.objects.create(post=draft, name='Secret')

        response = self.client.get('/api/v1/store/blog/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, [{'name': 'Guides', 'post_count': 1}, {'name': 'News', 'post_count': 2}])

        response = self.client.get('/api/v1/store/blog/', {'category': 'NEWS'})
        self.assertEqual(sorted(p['slug'] for p in response.data['results']), ['live', 'other'])
        response = self.client.get('/api/v1/store/blog/', {'category': 'secret'})
        self.assertEqual(response.data['count'], 0)

    def test_validate_coupon(self):
        TestDataFactory.create_campaign(coupon_code='SAVE10')
        response = self.client.post('/api/v1/store/coupons/validate/',
                                    {'code': 'save10', 'subtotal': '2500.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['discount'], Decimal('250.00'))
        self.assertEqual(response.data['total'], Decimal('2250.00'))

        response = self.client.post('/api/v1/store/coupons/validate/',
                                    {'code': 'nope', 'subtotal': '2500.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'NOT_FOUND')
