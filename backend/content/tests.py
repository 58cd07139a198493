"""
Test suite for Content module
Tests: Posts, CMS pages, Banners, Coupons, Flash sales, Menus, Contact messages
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.content.models import (
    Post, CMSPage, Banner, Coupon, FlashSale, Menu, MenuItem, ContactMessage, active_flash_sale_for,
)
from backend.core.permissions import ROLE_MANAGER, ROLE_CUSTOMER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class CouponModelTests(TestCase):
    """Test coupon validation and discount maths"""

    def test_code_is_normalised(self):
        coupon = TestDataFactory.create_coupon(code='  summer10 ')
        self.assertEqual(coupon.code, 'SUMMER10')

    def test_percentage_discount_is_capped(self):
        coupon = TestDataFactory.create_coupon(discount_value=Decimal('50'),
                                               max_discount_amount=Decimal('30.00'))
        self.assertEqual(coupon.calculate_discount(Decimal('200.00')), Decimal('30.00'))

    def test_fixed_discount_never_exceeds_amount(self):
        coupon = TestDataFactory.create_coupon(discount_type='fixed_amount', discount_value=Decimal('80.00'))
        self.assertEqual(coupon.calculate_discount(Decimal('50.00')), Decimal('50.00'))

    def test_validation_reasons(self):
        coupon = TestDataFactory.create_coupon(
            min_order_amount=Decimal('100.00'),
            end_date=timezone.now() - timedelta(days=1),
            usage_limit=1,
            usage_count=1,
        )
        reasons = coupon.validation_errors(Decimal('50.00'))
        self.assertIn('Coupon has expired', reasons)
        self.assertIn('Coupon usage limit reached', reasons)
        self.assertIn('Minimum order amount is 100.00', reasons)
        self.assertFalse(coupon.is_valid(Decimal('50.00')))

    def test_increment_usage(self):
        coupon = TestDataFactory.create_coupon()
        coupon.increment_usage()
        self.assertEqual(Coupon.objects.get(pk=coupon.pk).usage_count, 1)


class FlashSaleModelTests(TestCase):
    """Test flash sale lifecycle and pricing"""

    def setUp(self):
        now = timezone.now()
        self.product = TestDataFactory.create_product(price=Decimal('200.00'))
        self.sale = FlashSale.objects.create(
            name='Weekend Deal',
            discount_value=Decimal('25'),
            start_time=now - timedelta(hours=1),
            end_time=now + timedelta(hours=5),
            status=FlashSale.STATUS_ACTIVE,
            total_quantity_limit=3,
            max_quantity_per_order=2,
        )
        self.sale.products.add(self.product)

    def test_default_badge(self):
        self.assertEqual(self.sale.badge_text, '-25%')
        self.assertEqual(self.sale.badge_color, FlashSale.DEFAULT_BADGE_COLOR)

    def test_sale_price(self):
        self.assertEqual(self.sale.sale_price(self.product.price), Decimal('150.00'))
        self.assertEqual(active_flash_sale_for(self.product), self.sale)

    def test_category_scope(self):
        other = TestDataFactory.create_product()
        self.assertFalse(self.sale.applies_to(other))
        self.sale.categories.add(other.category)
        self.assertTrue(self.sale.applies_to(other))

    def test_record_sale_limits(self):
        with self.assertRaises(ValidationError):
            self.sale.record_sale(3)
        self.sale.record_sale(2)
        with self.assertRaises(ValidationError):
            self.sale.record_sale(2)
        self.sale.record_sale(1)
        self.assertTrue(self.sale.is_sold_out)
        self.assertEqual(self.sale.calculate_discount(self.product.price), Decimal('0'))

    def test_update_status_after_end(self):
        later = self.sale.end_time + timedelta(minutes=1)
        self.assertEqual(self.sale.update_status(later), FlashSale.STATUS_ENDED)

    def test_cannot_activate_ended_sale(self):
        with self.assertRaises(ValidationError):
            self.sale.activate(now=self.sale.end_time + timedelta(days=1))


class PostAndPageAPITests(TestCase):
    """Test posts and CMS pages"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client = AuthenticatedAPIClient()

    def test_manager_creates_post_with_slug(self):
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/posts/', {'title': 'Spring Launch', 'body': 'News',
                                                       'is_published': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'spring-launch')
        self.assertIsNotNone(response.data['published_at'])

    def test_duplicate_titles_get_distinct_slugs(self):
        first = Post.objects.create(title='Sale', body='a')
        second = Post.objects.create(title='Sale', body='b')
        self.assertEqual(first.slug, 'sale')
        self.assertEqual(second.slug, 'sale-2')

    def test_drafts_hidden_from_public(self):
        Post.objects.create(title='Draft', body='x')
        Post.objects.create(title='Live', body='x', is_published=True)
        response = self.client.get('/api/v1/posts/')
        self.assertEqual([p['title'] for p in response.data], ['Live'])
        response = self.client.get('/api/v1/posts/draft/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_customer_cannot_create_post(self):
        self.client.authenticate_user(TestDataFactory.create_user(roles=[ROLE_CUSTOMER]))
        response = self.client.post('/api/v1/posts/', {'title': 'X', 'body': 'Y'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_page_by_slug_counts_views(self):
        page = CMSPage.objects.create(title='Shipping Policy', content='...', is_published=True,
                                      show_in_menu=True)
        self.client.get(f'/api/v1/pages/slug/{page.slug}/')
        response = self.client.get(f'/api/v1/pages/slug/{page.slug}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['view_count'], 2)

        response = self.client.get('/api/v1/pages/menu/')
        self.assertEqual(response.data[0]['slug'], 'shipping-policy')

    def test_unpublished_page_not_found(self):
        page = CMSPage.objects.create(title='Hidden')
        response = self.client.get(f'/api/v1/pages/slug/{page.slug}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class BannerAPITests(TestCase):
    """Test banner listing and caching"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client = AuthenticatedAPIClient()

    def test_only_currently_active_banners(self):
        now = timezone.now()
        Banner.objects.create(title='Live', image_url='https://cdn.example.com/a.png')
        Banner.objects.create(title='Future', image_url='https://cdn.example.com/b.png',
                              start_date=now + timedelta(days=2))
        Banner.objects.create(title='Off', image_url='https://cdn.example.com/c.png', is_active=False)
        response = self.client.get('/api/v1/banners/')
        self.assertEqual([b['title'] for b in response.data], ['Live'])

    def test_device_filter(self):
        Banner.objects.create(title='Desktop', image_url='https://cdn.example.com/a.png', device='desktop')
        Banner.objects.create(title='Everywhere', image_url='https://cdn.example.com/b.png')
        response = self.client.get('/api/v1/banners/', {'device': 'mobile'})
        self.assertEqual([b['title'] for b in response.data], ['Everywhere'])

    def test_new_banner_invalidates_cache(self):
        self.client.get('/api/v1/banners/')
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/banners/', {
            'title': 'Fresh', 'image_url': 'https://cdn.example.com/fresh.png',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.get('/api/v1/banners/')
        self.assertEqual(len(response.data), 1)

    def test_end_before_start_rejected(self):
        now = timezone.now()
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/banners/', {
            'title': 'Bad', 'image_url': 'https://cdn.example.com/bad.png',
            'start_date': now.isoformat(), 'end_date': (now - timedelta(days=1)).isoformat(),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class CouponAPITests(TestCase):
    """Test coupon endpoints"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client = AuthenticatedAPIClient()

    def test_validate_coupon(self):
        TestDataFactory.create_coupon(code='SAVE10')
        response = self.client.post('/api/v1/coupons/validate/', {'code': 'save10', 'order_amount': '250.00'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_valid'])
        self.assertEqual(response.data['discount_amount'], '25.00')
        self.assertEqual(response.data['final_amount'], '225.00')

    def test_validate_unknown_coupon(self):
        response = self.client.post('/api/v1/coupons/validate/', {'code': 'NOPE', 'order_amount': '10'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['is_valid'])

    def test_validate_below_minimum(self):
        TestDataFactory.create_coupon(code='BIG', min_order_amount=Decimal('500.00'))
        response = self.client.post('/api/v1/coupons/validate/', {'code': 'BIG', 'order_amount': '100'},
                                    format='json')
        self.assertFalse(response.data['is_valid'])
        self.assertEqual(response.data['discount_amount'], '0')

    def test_duplicate_code_rejected(self):
        TestDataFactory.create_coupon(code='DUP')
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/coupons/', {
            'code': 'dup', 'discount_type': 'percentage', 'discount_value': '5',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_coupon_list_requires_manager(self):
        self.client.authenticate_user(TestDataFactory.create_user(roles=[ROLE_CUSTOMER]))
        response = self.client.get('/api/v1/coupons/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class FlashSaleAPITests(TestCase):
    """Test flash sale endpoints"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client = AuthenticatedAPIClient()
        self.product = TestDataFactory.create_product()

    def _payload(self, start, end):
        return {
            'name': 'Midnight',
            'discount_type': 'percentage',
            'discount_value': '20',
            'start_time': start.isoformat(),
            'end_time': end.isoformat(),
            'products': [self.product.id],
        }

    def test_create_running_sale_becomes_active(self):
        now = timezone.now()
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/flash-sales/',
                                    self._payload(now - timedelta(minutes=5), now + timedelta(hours=1)),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], FlashSale.STATUS_ACTIVE)

        self.client.logout()
        response = self.client.get('/api/v1/flash-sales/')
        self.assertEqual(len(response.data), 1)

    def test_end_before_start_rejected(self):
        now = timezone.now()
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/flash-sales/', self._payload(now, now - timedelta(hours=1)),
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cancel_then_activate(self):
        now = timezone.now()
        sale = FlashSale.objects.create(name='Later', discount_value=Decimal('10'),
                                        start_time=now + timedelta(days=1), end_time=now + timedelta(days=2))
        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/flash-sales/{sale.id}/cancel/')
        self.assertEqual(response.data['status'], FlashSale.STATUS_CANCELLED)
        response = self.client.post(f'/api/v1/flash-sales/{sale.id}/activate/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], FlashSale.STATUS_ACTIVE)

    def test_activate_ended_sale(self):
        now = timezone.now()
        sale = FlashSale.objects.create(name='Past', discount_value=Decimal('10'),
                                        start_time=now - timedelta(days=2), end_time=now - timedelta(days=1))
        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/flash-sales/{sale.id}/activate/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class MenuAndContactAPITests(TestCase):
    """Test menus and the contact form"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client = AuthenticatedAPIClient()

    def test_menu_tree(self):
        menu = Menu.objects.create(name='Header', location='header')
        parent = MenuItem.objects.create(menu=menu, title='Shop', url='/shop')
        MenuItem.objects.create(menu=menu, parent=parent, title='Laptops', url='/shop/laptops')
        response = self.client.get('/api/v1/menus/header/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['items']), 1)
        self.assertEqual(response.data['items'][0]['children'][0]['title'], 'Laptops')

    def test_parent_from_other_menu_rejected(self):
        header = Menu.objects.create(name='Header', location='header')
        footer = Menu.objects.create(name='Footer', location='footer')
        foreign = MenuItem.objects.create(menu=footer, title='About', url='/about')
        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/menus/{header.id}/items/',
                                    {'title': 'Team', 'url': '/team', 'parent': foreign.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_contact_submission_flow(self):
        response = self.client.post('/api/v1/contact/', {
            'name': 'Jane', 'email': 'jane@example.com', 'subject': 'Order', 'message': 'Where is it?',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        message_id = response.data['id']

        self.client.authenticate_user(self.manager)
        response = self.client.get(f'/api/v1/contact-messages/{message_id}/')
        self.assertEqual(response.data['status'], 'read')

        response = self.client.patch(f'/api/v1/contact-messages/{message_id}/', {'status': 'bogus'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(ContactMessage.objects.get(pk=message_id).status, 'read')

    def test_contact_messages_hidden_from_customers(self):
        self.client.authenticate_user(TestDataFactory.create_user(roles=[ROLE_CUSTOMER]))
        response = self.client.get('/api/v1/contact-messages/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
