"""
Comprehensive test suite for Catalog module
Tests: Categories, Brands, Products, search, reviews and cache behaviour
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from backend.catalog.models import Product, ProductReview
from backend.core.cache_service import cache_service, CacheKeys
from backend.core.permissions import ROLE_MANAGER, ROLE_CUSTOMER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class ProductModelTests(TestCase):
    """Test Product model helpers"""

    def test_discount_percentage(self):
        product = TestDataFactory.create_product(price=Decimal('80.00'))
        product.old_price = Decimal('100.00')
        self.assertEqual(product.discount_percentage, 20)

    def test_no_discount_without_old_price(self):
        product = TestDataFactory.create_product()
        self.assertEqual(product.discount_percentage, 0)

    def test_low_stock(self):
        product = TestDataFactory.create_product(stock_quantity=3)
        self.assertTrue(product.is_low_stock)
        product.stock_quantity = 0
        self.assertFalse(product.is_low_stock)
        self.assertFalse(product.in_stock)

    def test_stock_changes(self):
        product = TestDataFactory.create_product(stock_quantity=10)
        product.decrease_stock(4)
        self.assertEqual(product.stock_quantity, 6)
        product.increase_stock(2)
        self.assertEqual(Product.objects.get(pk=product.pk).stock_quantity, 8)

    def test_average_rating_uses_approved_reviews(self):
        product = TestDataFactory.create_product()
        ProductReview.objects.create(product=product, customer=TestDataFactory.create_user(), rating=5,
                                     is_approved=True)
        ProductReview.objects.create(product=product, customer=TestDataFactory.create_user(), rating=4,
                                     is_approved=True)
        ProductReview.objects.create(product=product, customer=TestDataFactory.create_user(), rating=1)
        self.assertEqual(product.average_rating(), 4.5)


class CategoryBrandAPITests(TestCase):
    """Test category and brand endpoints"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client = AuthenticatedAPIClient()

    def test_list_categories_anonymous(self):
        TestDataFactory.create_category(name='Laptops')
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data[0]['name'], 'Laptops')

    def test_create_category_requires_manager(self):
        self.client.authenticate_user(TestDataFactory.create_user(roles=[ROLE_CUSTOMER]))
        response = self.client.post('/api/v1/categories/', {'name': 'Phones'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_new_category_appears_after_cache(self):
        self.client.get('/api/v1/categories/')
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/categories/', {'name': 'Phones'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.get('/api/v1/categories/')
        self.assertIn('Phones', [c['name'] for c in response.data])

    def test_cannot_delete_category_with_products(self):
        product = TestDataFactory.create_product()
        self.client.authenticate_user(self.manager)
        response = self.client.delete(f'/api/v1/categories/{product.category_id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_brand_name(self):
        TestDataFactory.create_brand(name='Acme')
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/brands/', {'name': 'Acme'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ProductAPITests(TestCase):
    """Test product endpoints"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.client = AuthenticatedAPIClient()
        self.category = TestDataFactory.create_category()
        self.brand = TestDataFactory.create_brand()

    def test_create_product_generates_sku(self):
        self.client.authenticate_user(self.manager)
        data = {
            'name': 'Gaming Mouse',
            'price': '25.00',
            'category': self.category.id,
            'brand': self.brand.id,
            'stock_quantity': 10,
        }
        response = self.client.post('/api/v1/products/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['sku'].startswith('GAMI-'))

    def test_negative_price_rejected(self):
        self.client.authenticate_user(self.manager)
        response = self.client.post('/api/v1/products/', {'name': 'Bad', 'price': '-1.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_is_paged_and_hides_inactive(self):
        for _ in range(3):
            TestDataFactory.create_product(category=self.category, brand=self.brand)
        TestDataFactory.create_product(category=self.category, brand=self.brand, is_active=False)

        response = self.client.get('/api/v1/products/', {'page': 1, 'page_size': 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total'], 3)
        self.assertEqual(len(response.data['products']), 2)

    def test_list_cache_invalidated_on_create(self):
        self.client.get('/api/v1/products/')
        self.assertTrue(cache_service.exists(CacheKeys.products_list(1, 20)))
        TestDataFactory.create_product(category=self.category, brand=self.brand)
        response = self.client.get('/api/v1/products/')
        self.assertEqual(response.data['total'], 1)

    def test_inactive_product_hidden_from_public(self):
        product = TestDataFactory.create_product(is_active=False)
        response = self.client.get(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        self.client.authenticate_user(self.manager)
        response = self.client.get(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_update_price_refreshes_detail(self):
        product = TestDataFactory.create_product()
        self.client.get(f'/api/v1/products/{product.id}/')
        self.client.authenticate_user(self.manager)
        response = self.client.patch(f'/api/v1/products/{product.id}/', {'price': '150.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.get(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.data['price'], '150.00')

    def test_delete_ordered_product_deactivates(self):
        product = TestDataFactory.create_product()
        TestDataFactory.create_order(TestDataFactory.create_user(), products=[product])
        self.client.authenticate_user(self.manager)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        product.refresh_from_db()
        self.assertFalse(product.is_active)

    def test_delete_unused_product(self):
        product = TestDataFactory.create_product()
        self.client.authenticate_user(self.manager)
        response = self.client.delete(f'/api/v1/products/{product.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(Product.objects.filter(pk=product.pk).exists())


class ProductSearchTests(TestCase):
    """Test filtered product search"""

    def setUp(self):
        cache.clear()
        self.client = AuthenticatedAPIClient()
        brand = TestDataFactory.create_brand(name='Lenovo')
        self.cheap = TestDataFactory.create_product(name='ThinkPad E14', brand=brand, price=Decimal('500.00'))
        self.pricey = TestDataFactory.create_product(name='ThinkPad X1', brand=brand, price=Decimal('1500.00'))
        TestDataFactory.create_product(name='Galaxy Phone', price=Decimal('800.00'), stock_quantity=0)

    def test_every_word_must_match(self):
        response = self.client.get('/api/v1/products/search/', {'query': 'lenovo x1'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([p['id'] for p in response.data['products']], [self.pricey.id])

    def test_price_range_and_ordering(self):
        response = self.client.get('/api/v1/products/search/', {'min_price': '400', 'max_price': '1000',
                                                                 'ordering': 'price'})
        names = [p['name'] for p in response.data['products']]
        self.assertEqual(names, ['ThinkPad E14', 'Galaxy Phone'])

    def test_in_stock_filter(self):
        response = self.client.get('/api/v1/products/search/', {'in_stock': 'false'})
        self.assertEqual(response.data['total'], 1)


class ReviewAPITests(TestCase):
    """Test product reviews"""

    def setUp(self):
        cache.clear()
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.product = TestDataFactory.create_product()
        self.client = AuthenticatedAPIClient()

    def test_review_requires_authentication(self):
        response = self.client.post(f'/api/v1/products/{self.product.id}/reviews/', {'rating': 5}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_verified_purchase_flag(self):
        TestDataFactory.create_order(self.customer, products=[self.product], status='delivered')
        self.client.authenticate_user(self.customer)
        response = self.client.post(f'/api/v1/products/{self.product.id}/reviews/',
                                    {'rating': 4, 'comment': 'Solid'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_verified_purchase'])
        self.assertFalse(response.data['is_approved'])

    def test_one_review_per_customer(self):
        self.client.authenticate_user(self.customer)
        self.client.post(f'/api/v1/products/{self.product.id}/reviews/', {'rating': 4}, format='json')
        response = self.client.post(f'/api/v1/products/{self.product.id}/reviews/', {'rating': 2}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_only_approved_reviews_listed(self):
        review = ProductReview.objects.create(product=self.product, customer=self.customer, rating=5)
        response = self.client.get(f'/api/v1/products/{self.product.id}/reviews/')
        self.assertEqual(response.data['review_count'], 0)

        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/reviews/{review.id}/approve/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.get(f'/api/v1/products/{self.product.id}/reviews/')
        self.assertEqual(response.data['review_count'], 1)
        self.assertEqual(response.data['distribution']['5'], 1)
        self.assertEqual(response.data['average_rating'], 5.0)
