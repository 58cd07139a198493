"""
Comprehensive test suite for Sales module
Tests: Cart, Checkout, Orders, Returns, order status changes and stats
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from backend.catalog.models import Product
from backend.content.models import Coupon, FlashSale
from backend.core.models import AuditLog
from backend.core.permissions import ROLE_MANAGER, ROLE_CUSTOMER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.sales.models import Cart, Order, ReturnRequest
from backend.warranty.models import ProductWarranty


class CartModelTests(TestCase):
    """Test Cart model operations"""

    def setUp(self):
        self.cart = Cart.objects.create(customer=TestDataFactory.create_user())
        self.product = TestDataFactory.create_product(price=Decimal('40.00'))

    def test_add_merges_lines(self):
        self.cart.add_item(self.product, 1)
        self.cart.add_item(self.product, 2)
        self.assertEqual(self.cart.items.count(), 1)
        self.assertEqual(self.cart.item_count, 3)
        self.assertEqual(self.cart.total_amount, Decimal('120.00'))

    def test_zero_quantity_rejected(self):
        with self.assertRaises(ValidationError):
            self.cart.add_item(self.product, 0)

    def test_update_to_zero_removes_line(self):
        self.cart.add_item(self.product, 2)
        self.assertIsNone(self.cart.update_item_quantity(self.product.id, 0))
        self.assertEqual(self.cart.items.count(), 0)

    def test_remove_missing_item(self):
        with self.assertRaises(ValidationError):
            self.cart.remove_item(self.product.id)


class OrderModelTests(TestCase):
    """Test Order model rules"""

    def test_order_number_format(self):
        order = TestDataFactory.create_order(TestDataFactory.create_user())
        self.assertRegex(order.order_number, r'^ORD-\d{8}-[0-9A-F]{8}$')

    def test_set_status_stamps_time(self):
        order = TestDataFactory.create_order(TestDataFactory.create_user())
        order.set_status(Order.STATUS_SHIPPED)
        self.assertIsNotNone(order.shipped_at)

    def test_invalid_status(self):
        order = TestDataFactory.create_order(TestDataFactory.create_user())
        with self.assertRaises(ValidationError):
            order.set_status('teleported')

    def test_cannot_cancel_shipped_order(self):
        order = TestDataFactory.create_order(TestDataFactory.create_user(), status=Order.STATUS_SHIPPED)
        self.assertFalse(order.can_cancel)
        with self.assertRaises(ValidationError):
            order.cancel()

    def test_cancelled_order_is_final(self):
        order = TestDataFactory.create_order(TestDataFactory.create_user())
        order.cancel()
        with self.assertRaises(ValidationError):
            order.set_status(Order.STATUS_PENDING)
        with self.assertRaises(ValidationError):
            order.cancel()
        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_CANCELLED)


class CartAPITests(TestCase):
    """Test cart endpoints"""

    def setUp(self):
        cache.clear()
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.product = TestDataFactory.create_product(price=Decimal('100.00'), stock_quantity=3)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.customer)

    def test_cart_requires_authentication(self):
        self.client.logout()
        response = self.client.get('/api/v1/cart/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_add_item(self):
        response = self.client.post('/api/v1/cart/items/', {'product_id': self.product.id, 'quantity': 2},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['item_count'], 2)
        self.assertEqual(response.data['total_amount'], '200.00')

    def test_add_more_than_stock(self):
        self.client.post('/api/v1/cart/items/', {'product_id': self.product.id, 'quantity': 2}, format='json')
        response = self.client.post('/api/v1/cart/items/', {'product_id': self.product.id, 'quantity': 2},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('Insufficient stock', response.data['error'])

    def test_add_out_of_stock_product(self):
        empty = TestDataFactory.create_product(stock_quantity=0)
        response = self.client.post('/api/v1/cart/items/', {'product_id': empty.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_update_and_remove_item(self):
        self.client.post('/api/v1/cart/items/', {'product_id': self.product.id}, format='json')
        response = self.client.put(f'/api/v1/cart/items/{self.product.id}/', {'quantity': 3}, format='json')
        self.assertEqual(response.data['item_count'], 3)
        response = self.client.delete(f'/api/v1/cart/items/{self.product.id}/')
        self.assertEqual(response.data['items'], [])
        response = self.client.delete(f'/api/v1/cart/items/{self.product.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_apply_coupon(self):
        TestDataFactory.create_coupon(code='CART5', min_order_amount=Decimal('150.00'))
        self.client.post('/api/v1/cart/items/', {'product_id': self.product.id}, format='json')
        response = self.client.post('/api/v1/cart/coupon/', {'code': 'cart5'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.client.put(f'/api/v1/cart/items/{self.product.id}/', {'quantity': 2}, format='json')
        response = self.client.post('/api/v1/cart/coupon/', {'code': 'cart5'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['coupon_code'], 'CART5')


@override_settings(ORDER_TAX_RATE=Decimal('0.10'), ORDER_SHIPPING_FEE=Decimal('30.00'))
class CheckoutAPITests(TestCase):
    """Test checkout and customer order endpoints"""

    def setUp(self):
        cache.clear()
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.product = TestDataFactory.create_product(price=Decimal('100.00'), stock_quantity=5)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.customer)

    def test_checkout_from_cart(self):
        TestDataFactory.create_coupon(code='SAVE10')
        self.client.post('/api/v1/cart/items/', {'product_id': self.product.id, 'quantity': 2}, format='json')
        self.client.post('/api/v1/cart/coupon/', {'code': 'SAVE10'}, format='json')

        response = self.client.post('/api/v1/checkout/', {'shipping_address': '1 Main St'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        # 200 subtotal - 20 discount + 30 shipping + 20 tax
        self.assertEqual(response.data['total_amount'], '230.00')

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 3)
        self.assertEqual(Coupon.objects.get(code='SAVE10').usage_count, 1)
        self.assertFalse(Cart.objects.get(customer=self.customer).items.exists())
        self.assertTrue(AuditLog.objects.filter(action='checkout', object_id=response.data['order_id']).exists())

    def test_pickup_has_no_shipping(self):
        response = self.client.post('/api/v1/checkout/', {
            'items': [{'product_id': self.product.id, 'quantity': 1}],
            'is_pickup': True,
        }, format='json')
        order = Order.objects.get(pk=response.data['order_id'])
        self.assertEqual(order.shipping_amount, Decimal('0.00'))
        self.assertEqual(order.total_amount, Decimal('110.00'))

    def test_empty_cart(self):
        response = self.client.post('/api/v1/checkout/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Cart is empty')

    def test_insufficient_stock_rolls_back(self):
        TestDataFactory.create_coupon(code='ROLL')
        other = TestDataFactory.create_product(stock_quantity=1)
        response = self.client.post('/api/v1/checkout/', {
            'items': [
                {'product_id': self.product.id, 'quantity': 1},
                {'product_id': other.id, 'quantity': 2},
            ],
            'coupon_code': 'ROLL',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(Product.objects.get(pk=self.product.pk).stock_quantity, 5)
        self.assertEqual(Coupon.objects.get(code='ROLL').usage_count, 0)

    def test_flash_sale_price_applied(self):
        now = timezone.now()
        sale = FlashSale.objects.create(name='Hour', discount_value=Decimal('25'), status=FlashSale.STATUS_ACTIVE,
                                        start_time=now - timedelta(minutes=10), end_time=now + timedelta(hours=1))
        sale.products.add(self.product)

        response = self.client.post('/api/v1/checkout/', {
            'items': [{'product_id': self.product.id, 'quantity': 2}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        item = Order.objects.get(pk=response.data['order_id']).items.get()
        self.assertEqual(item.unit_price, Decimal('75.00'))
        self.assertEqual(item.original_price, Decimal('100.00'))
        self.assertEqual(item.flash_sale, sale)
        sale.refresh_from_db()
        self.assertEqual(sale.sold_quantity, 2)

    def test_repeated_product_lines_share_stock(self):
        response = self.client.post('/api/v1/checkout/', {
            'items': [
                {'product_id': self.product.id, 'quantity': 3},
                {'product_id': self.product.id, 'quantity': 3},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(Product.objects.get(pk=self.product.pk).stock_quantity, 5)

    def test_repeated_product_lines_merged(self):
        response = self.client.post('/api/v1/checkout/', {
            'items': [
                {'product_id': self.product.id, 'quantity': 2},
                {'product_id': self.product.id, 'quantity': 3},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        item = Order.objects.get(pk=response.data['order_id']).items.get()
        self.assertEqual(item.quantity, 5)
        self.assertEqual(Product.objects.get(pk=self.product.pk).stock_quantity, 0)

    def test_flash_sale_limit_counts_repeated_lines(self):
        now = timezone.now()
        sale = FlashSale.objects.create(name='Limited', discount_value=Decimal('10'),
                                        status=FlashSale.STATUS_ACTIVE, total_quantity_limit=4,
                                        start_time=now - timedelta(minutes=10), end_time=now + timedelta(hours=1))
        sale.products.add(self.product)

        response = self.client.post('/api/v1/checkout/', {
            'items': [
                {'product_id': self.product.id, 'quantity': 2},
                {'product_id': self.product.id, 'quantity': 3},
            ],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        sale.refresh_from_db()
        self.assertEqual(sale.sold_quantity, 0)

    def test_cancel_restores_stock(self):
        response = self.client.post('/api/v1/checkout/', {
            'items': [{'product_id': self.product.id, 'quantity': 2}],
        }, format='json')
        order_id = response.data['order_id']
        response = self.client.post(f'/api/v1/orders/{order_id}/cancel/', {'reason': 'Changed my mind'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], Order.STATUS_CANCELLED)
        self.assertEqual(Product.objects.get(pk=self.product.pk).stock_quantity, 5)

    def test_my_orders_refreshed_after_checkout(self):
        response = self.client.get('/api/v1/orders/')
        self.assertEqual(response.data, [])
        self.client.post('/api/v1/checkout/', {'items': [{'product_id': self.product.id, 'quantity': 1}]},
                         format='json')
        response = self.client.get('/api/v1/orders/')
        self.assertEqual(len(response.data), 1)

    def test_other_customers_order_hidden(self):
        order = TestDataFactory.create_order(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/orders/{order.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ReturnAPITests(TestCase):
    """Test the return request workflow"""

    def setUp(self):
        cache.clear()
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.product = TestDataFactory.create_product(price=Decimal('60.00'), stock_quantity=10)
        self.order = TestDataFactory.create_order(self.customer, products=[self.product], quantity=2,
                                                  status=Order.STATUS_DELIVERED)
        self.item = self.order.items.get()
        self.client = AuthenticatedAPIClient()

    def _request_return(self, **extra):
        self.client.authenticate_user(self.customer)
        data = {'order_item_id': self.item.id, 'reason': 'defective'}
        data.update(extra)
        return self.client.post(f'/api/v1/orders/{self.order.id}/returns/', data, format='json')

    def test_partial_return_amount(self):
        response = self._request_return(quantity=1)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['refund_amount'], '60.00')

    def test_return_needs_delivered_order(self):
        self.order.set_status(Order.STATUS_SHIPPED)
        response = self._request_return()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_return_rejected(self):
        self._request_return()
        response = self._request_return()
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_too_many_units(self):
        response = self._request_return(quantity=3)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_full_workflow_restocks(self):
        return_id = self._request_return().data['id']
        self.client.authenticate_user(self.manager)

        response = self.client.post(f'/api/v1/admin/returns/{return_id}/refund/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.client.post(f'/api/v1/admin/returns/{return_id}/approve/')
        response = self.client.post(f'/api/v1/admin/returns/{return_id}/refund/', {'refund_method': 'cash'},
                                    format='json')
        self.assertEqual(response.data['status'], ReturnRequest.STATUS_REFUNDED)
        response = self.client.post(f'/api/v1/admin/returns/{return_id}/complete/')
        self.assertEqual(response.data['status'], ReturnRequest.STATUS_COMPLETED)
        self.assertEqual(Product.objects.get(pk=self.product.pk).stock_quantity, 12)

    def test_reject_requires_reason(self):
        return_id = self._request_return().data['id']
        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/admin/returns/{return_id}/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/admin/returns/{return_id}/reject/', {'reason': 'Used'},
                                    format='json')
        self.assertEqual(response.data['status'], ReturnRequest.STATUS_REJECTED)


class AdminOrderAPITests(TestCase):
    """Test backoffice order endpoints"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.customer = TestDataFactory.create_user(username='buyer', roles=[ROLE_CUSTOMER])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_customer_forbidden(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/admin/orders/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_filters(self):
        TestDataFactory.create_order(self.customer)
        TestDataFactory.create_order(self.customer, status=Order.STATUS_PAID)
        response = self.client.get('/api/v1/admin/orders/', {'status': 'paid'})
        self.assertEqual(response.data['total'], 1)
        response = self.client.get('/api/v1/admin/orders/', {'search': 'buyer'})
        self.assertEqual(response.data['total'], 2)

    def test_invalid_status(self):
        order = TestDataFactory.create_order(self.customer)
        response = self.client.patch(f'/api/v1/admin/orders/{order.id}/status/', {'status': 'lost'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_deliver_registers_warranties(self):
        product = TestDataFactory.create_product(warranty_months=12)
        order = TestDataFactory.create_order(self.customer, products=[product], quantity=2,
                                             status=Order.STATUS_SHIPPED)
        item = order.items.get()
        response = self.client.patch(f'/api/v1/admin/orders/{order.id}/status/', {
            'status': 'delivered',
            'serial_numbers': {str(item.id): ['SN-A1', 'SN-A2']},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['warranties_registered'], 2)
        warranty = ProductWarranty.objects.get(serial_number='SN-A1')
        self.assertEqual(warranty.order_number, order.order_number)
        self.assertEqual(warranty.customer, self.customer)

    def test_deliver_with_duplicate_serial_rolls_back(self):
        product = TestDataFactory.create_product(warranty_months=12)
        TestDataFactory.create_warranty(product=product, serial_number='SN-DUP')
        order = TestDataFactory.create_order(self.customer, products=[product], status=Order.STATUS_SHIPPED)
        item = order.items.get()
        response = self.client.patch(f'/api/v1/admin/orders/{order.id}/status/', {
            'status': 'delivered',
            'serial_numbers': {str(item.id): ['SN-DUP']},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_SHIPPED)

    def test_admin_cancel_restores_stock(self):
        product = TestDataFactory.create_product(stock_quantity=4)
        order = TestDataFactory.create_order(self.customer, products=[product], quantity=3)
        response = self.client.patch(f'/api/v1/admin/orders/{order.id}/status/', {'status': 'cancelled'},
                                     format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Product.objects.get(pk=product.pk).stock_quantity, 7)

    def test_cancelled_order_cannot_be_reopened(self):
        product = TestDataFactory.create_product(stock_quantity=4)
        order = TestDataFactory.create_order(self.customer, products=[product], quantity=3)
        url = f'/api/v1/admin/orders/{order.id}/status/'
        response = self.client.patch(url, {'status': 'cancelled'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

        response = self.client.patch(url, {'status': 'pending'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.patch(url, {'status': 'cancelled'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Product.objects.get(pk=product.pk).stock_quantity, 7)

    def test_malformed_serial_numbers(self):
        product = TestDataFactory.create_product(warranty_months=12)
        order = TestDataFactory.create_order(self.customer, products=[product], status=Order.STATUS_SHIPPED)
        item = order.items.get()
        url = f'/api/v1/admin/orders/{order.id}/status/'

        response = self.client.patch(url, {'status': 'delivered', 'serial_numbers': ['SN1']}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('serial_numbers', response.data)

        response = self.client.patch(url, {
            'status': 'delivered',
            'serial_numbers': {str(item.id): [{'serial': 'SN1'}]},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.STATUS_SHIPPED)
        self.assertFalse(ProductWarranty.objects.exists())

    def test_sales_stats_exclude_cancelled_revenue(self):
        product = TestDataFactory.create_product(price=Decimal('100.00'))
        TestDataFactory.create_order(self.customer, products=[product])
        TestDataFactory.create_order(self.customer, products=[product], status=Order.STATUS_CANCELLED)
        response = self.client.get('/api/v1/admin/sales-stats/')
        self.assertEqual(response.data['total_orders'], 2)
        self.assertEqual(response.data['cancelled_orders'], 1)
        self.assertEqual(response.data['total_revenue'], '100.00')
