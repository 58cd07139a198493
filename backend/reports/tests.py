"""
Test suite for Reports module
Tests: Dashboard KPIs, Top Products, access control and cache invalidation
"""
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from rest_framework import status

from backend.core.permissions import ROLE_MANAGER, ROLE_CUSTOMER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class DashboardTests(TestCase):
    """Test the backoffice dashboard"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_customer_forbidden(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_revenue_skips_cancelled_orders(self):
        product = TestDataFactory.create_product(price=Decimal('40.00'))
        TestDataFactory.create_order(self.customer, products=[product], quantity=2, status='confirmed')
        TestDataFactory.create_order(self.customer, products=[product], status='cancelled')

        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['revenue']['today'], '80.00')
        self.assertEqual(response.data['orders']['today'], 2)
        self.assertEqual(response.data['orders']['by_status']['cancelled'], 1)
        self.assertEqual(response.data['orders']['by_status']['delivered'], 0)

    def test_low_stock_includes_sold_out(self):
        TestDataFactory.create_product(name='Sold Out', stock_quantity=0)
        TestDataFactory.create_product(name='Nearly Gone', stock_quantity=3)
        TestDataFactory.create_product(name='Plenty', stock_quantity=50)
        TestDataFactory.create_product(name='Retired', stock_quantity=0, is_active=False)

        response = self.client.get('/api/v1/reports/dashboard/')
        low_stock = response.data['low_stock']
        self.assertEqual(low_stock['count'], 2)
        self.assertEqual([p['name'] for p in low_stock['products']], ['Sold Out', 'Nearly Gone'])

    def test_outstanding_receivables(self):
        TestDataFactory.create_invoice(lines=[('Service contract', 1, Decimal('100.00'), Decimal('0'))], issue=True)
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['accounting']['receivable_outstanding'], '100.00')
        self.assertEqual(response.data['accounting']['payable_outstanding'], '0.00')

    def test_cache_refreshed_on_new_work_order(self):
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['repair']['open_work_orders'], 0)

        TestDataFactory.create_work_order()
        response = self.client.get('/api/v1/reports/dashboard/')
        self.assertEqual(response.data['repair']['open_work_orders'], 1)


class TopProductsTests(TestCase):
    """Test the best sellers report"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_ranked_by_quantity(self):
        mouse = TestDataFactory.create_product(name='Mouse', price=Decimal('10.00'))
        monitor = TestDataFactory.create_product(name='Monitor', price=Decimal('200.00'))
        TestDataFactory.create_order(self.customer, products=[mouse], quantity=5, status='delivered')
        TestDataFactory.create_order(self.customer, products=[mouse, monitor], quantity=1, status='confirmed')
        TestDataFactory.create_order(self.customer, products=[monitor], quantity=9, status='cancelled')

        response = self.client.get('/api/v1/reports/top-products/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        products = response.data['products']
        self.assertEqual([p['name'] for p in products], ['Mouse', 'Monitor'])
        self.assertEqual(products[0]['total_quantity'], 6)
        self.assertEqual(products[0]['total_revenue'], '60.00')
        self.assertEqual(products[0]['order_count'], 2)

    def test_limit_is_clamped(self):
        for _ in range(3):
            TestDataFactory.create_order(self.customer, status='confirmed')
        response = self.client.get('/api/v1/reports/top-products/', {'limit': 0})
        self.assertEqual(len(response.data['products']), 1)

    def test_bad_date(self):
        response = self.client.get('/api/v1/reports/top-products/', {'date_from': '31-01-2024'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reversed_range(self):
        response = self.client.get('/api/v1/reports/top-products/',
                                   {'date_from': '2024-02-01', 'date_to': '2024-01-01'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_period_echoed(self):
        response = self.client.get('/api/v1/reports/top-products/',
                                   {'date_from': '2024-01-01', 'date_to': '2024-01-31'})
        self.assertEqual(response.data['period'], {'from': '2024-01-01', 'to': '2024-01-31'})
        self.assertEqual(response.data['products'], [])

    def test_customer_forbidden(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/reports/top-products/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
