"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from backend.catalog.models import Category, Brand, Product
from backend.content.models import Coupon
from backend.sales.models import Order, OrderItem
from backend.accounting.models import Invoice
from backend.repair.models import Technician, WorkOrder
from backend.warranty.models import ProductWarranty
from decimal import Decimal
from datetime import timedelta
from django.utils import timezone
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False,
                    roles=None):
        """Create a test user, optionally placed in role groups"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser
        )
        for role in roles or []:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        return user

    @staticmethod
    def create_category(name=None, description=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        return Category.objects.create(
            name=name,
            description=description or f'Test category {name}'
        )

    @staticmethod
    def create_brand(name=None, description=None):
        """Create a test brand"""
        if not name:
            name = f'Brand_{TestDataFactory.random_string(6)}'
        return Brand.objects.create(
            name=name,
            description=description or f'Test brand {name}'
        )

    @staticmethod
    def create_product(name=None, sku=None, category=None, brand=None, price=None, stock_quantity=50,
                       warranty_months=0, is_active=True):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU_{TestDataFactory.random_string(8)}'
        if not category:
            category = TestDataFactory.create_category()
        if not brand:
            brand = TestDataFactory.create_brand()
        if price is None:
            price = Decimal('100.00')

        return Product.objects.create(
            name=name,
            sku=sku,
            category=category,
            brand=brand,
            price=price,
            stock_quantity=stock_quantity,
            warranty_months=warranty_months,
            is_active=is_active,
            low_stock_threshold=10
        )

    @staticmethod
    def create_coupon(code=None, discount_type='percentage', discount_value=None, **kwargs):
        """Create a test coupon"""
        if not code:
            code = f'CPN{TestDataFactory.random_string(6).upper()}'
        if discount_value is None:
            discount_value = Decimal('10.00')
        return Coupon.objects.create(
            code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            **kwargs
        )

    @staticmethod
    def create_order(customer, products=None, quantity=1, status='pending'):
        """Create an order with one line per product, bypassing checkout"""
        if products is None:
            products = [TestDataFactory.create_product()]
        order = Order.objects.create(customer=customer, status=status)
        subtotal = Decimal('0.00')
        for product in products:
            item = OrderItem.objects.create(
                order=order,
                product=product,
                product_name=product.name,
                unit_price=product.price,
                quantity=quantity
            )
            subtotal += item.subtotal
        order.subtotal = subtotal
        order.recalculate_total()
        order.save()
        return order

    @staticmethod
    def create_invoice(user=None, invoice_type='receivable', party_name=None, lines=None, issue=False,
                       due_date=None):
        """Create a test invoice; lines are (description, quantity, unit_price, vat_rate) tuples"""
        if not party_name:
            party_name = f'Party_{TestDataFactory.random_string(6)}'
        if not due_date:
            due_date = timezone.localdate() + timedelta(days=30)
        invoice = Invoice.objects.create(
            invoice_type=invoice_type,
            party_name=party_name,
            due_date=due_date,
            created_by=user
        )
        for line in lines or []:
            invoice.add_line(*line)
        if issue:
            invoice.issue()
        return invoice

    @staticmethod
    def create_technician(user=None, name=None):
        """Create a test technician"""
        if not name:
            name = f'Tech_{TestDataFactory.random_string(6)}'
        return Technician.objects.create(user=user, name=name, phone='0900000000')

    @staticmethod
    def create_work_order(customer=None, status='pending', technician=None, serial_number=None, **kwargs):
        """Create a test work order"""
        return WorkOrder.objects.create(
            customer=customer,
            customer_name=kwargs.pop('customer_name', f'Customer_{TestDataFactory.random_string(6)}'),
            customer_phone=kwargs.pop('customer_phone', '0911111111'),
            device_model=kwargs.pop('device_model', 'Laptop X1'),
            serial_number=serial_number or f'SN{TestDataFactory.random_string(8).upper()}',
            issue_description=kwargs.pop('issue_description', 'Does not power on'),
            status=status,
            technician=technician,
            **kwargs
        )

    @staticmethod
    def create_warranty(product=None, serial_number=None, customer=None, purchase_date=None, warranty_months=12,
                        order_number=''):
        """Create a test warranty"""
        if not product:
            product = TestDataFactory.create_product(warranty_months=warranty_months)
        if not serial_number:
            serial_number = f'SN{TestDataFactory.random_string(10).upper()}'
        return ProductWarranty.objects.create(
            product=product,
            serial_number=serial_number,
            customer=customer,
            customer_name=customer.username if customer else 'Walk-in',
            order_number=order_number,
            purchase_date=purchase_date or timezone.localdate(),
            warranty_months=warranty_months
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
