"""
Test suite for Warranty module
Tests: Registration dates, claims, lookups, voiding, claim review and stats
"""
from datetime import date, timedelta

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.core.permissions import ROLE_MANAGER, ROLE_CUSTOMER
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.repair.models import WorkOrder
from backend.warranty.models import ProductWarranty, WarrantyClaim, add_months, refresh_expired_warranties


class WarrantyModelTests(TestCase):
    """Test warranty dates and status"""

    def test_add_months_clamps_to_month_end(self):
        self.assertEqual(add_months(date(2024, 1, 31), 1), date(2024, 2, 29))
        self.assertEqual(add_months(date(2023, 1, 31), 1), date(2023, 2, 28))
        self.assertEqual(add_months(date(2024, 11, 15), 3), date(2025, 2, 15))

    def test_expiration_date_computed_on_save(self):
        warranty = TestDataFactory.create_warranty(purchase_date=date(2024, 3, 10), warranty_months=24)
        self.assertEqual(warranty.expiration_date, date(2026, 3, 10))

    def test_validity(self):
        today = timezone.localdate()
        warranty = TestDataFactory.create_warranty(purchase_date=today - timedelta(days=400))
        self.assertFalse(warranty.is_valid())
        self.assertTrue(warranty.is_expired())
        self.assertEqual(warranty.days_remaining, 0)

    def test_void_requires_reason(self):
        warranty = TestDataFactory.create_warranty()
        with self.assertRaises(ValidationError):
            warranty.void('')
        warranty.void('Tampered seal')
        self.assertEqual(warranty.status, ProductWarranty.STATUS_VOIDED)
        self.assertFalse(warranty.is_valid())
        with self.assertRaises(ValidationError):
            warranty.void('Again')

    def test_refresh_expired_warranties(self):
        today = timezone.localdate()
        old = TestDataFactory.create_warranty(purchase_date=today - timedelta(days=800))
        fresh = TestDataFactory.create_warranty()
        self.assertEqual(refresh_expired_warranties(), 1)
        old.refresh_from_db()
        fresh.refresh_from_db()
        self.assertEqual(old.status, ProductWarranty.STATUS_EXPIRED)
        self.assertEqual(fresh.status, ProductWarranty.STATUS_ACTIVE)


class WarrantyClaimModelTests(TestCase):
    """Test claim review transitions"""

    def setUp(self):
        self.customer = TestDataFactory.create_user()
        self.warranty = TestDataFactory.create_warranty(customer=self.customer)
        self.claim = WarrantyClaim.objects.create(
            warranty=self.warranty, serial_number=self.warranty.serial_number,
            customer=self.customer, issue_description='Battery swelling'
        )

    def test_claim_number_format(self):
        self.assertRegex(self.claim.claim_number, r'^WC-\d{8}-[0-9A-F]{6}$')

    def test_approve_opens_warranty_repair(self):
        self.claim.approve(create_work_order=True)
        self.assertEqual(self.claim.status, WarrantyClaim.STATUS_APPROVED)
        work_order = self.claim.work_order
        self.assertTrue(work_order.is_warranty_repair)
        self.assertEqual(work_order.status, WorkOrder.STATUS_PENDING)
        self.assertEqual(work_order.serial_number, self.warranty.serial_number)

    def test_resolve_requires_approval(self):
        with self.assertRaises(ValidationError):
            self.claim.resolve('Replaced')
        self.claim.approve()
        self.claim.resolve('Replaced')
        self.assertEqual(self.claim.status, WarrantyClaim.STATUS_RESOLVED)
        with self.assertRaises(ValidationError):
            self.claim.reject('Too late')


class WarrantyClaimAPITests(TestCase):
    """Test filing claims"""

    def setUp(self):
        cache.clear()
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.warranty = TestDataFactory.create_warranty(customer=self.customer, order_number='ORD-1')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.customer)

    def _claim(self, serial, issue='Screen flickers', **extra):
        data = {'serial_number': serial, 'issue_description': issue}
        data.update(extra)
        return self.client.post('/api/v1/warranty/claims/', data, format='json')

    def test_file_claim(self):
        response = self._claim(self.warranty.serial_number)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], WarrantyClaim.STATUS_PENDING)
        self.assertFalse(response.data['is_manager_override'])

    def test_blank_serial(self):
        response = self._claim('   ')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_serial(self):
        response = self._claim('NOPE-123')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_expired_warranty(self):
        expired = TestDataFactory.create_warranty(purchase_date=timezone.localdate() - timedelta(days=500))
        response = self._claim(expired.serial_number)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertTrue(response.data['is_expired'])

    def test_override_needs_manager(self):
        expired = TestDataFactory.create_warranty(purchase_date=timezone.localdate() - timedelta(days=500))
        response = self._claim(expired.serial_number, is_manager_override=True)
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.manager)
        response = self._claim(expired.serial_number, is_manager_override=True)
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['is_manager_override'])

    def test_voided_warranty(self):
        self.warranty.void('Water damage')
        response = self._claim(self.warranty.serial_number)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_duplicate_open_claim(self):
        self._claim(self.warranty.serial_number)
        response = self._claim(self.warranty.serial_number, issue='screen FLICKERS')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertIn('claim_number', response.data)

        response = self._claim(self.warranty.serial_number, issue='Hinge cracked')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_list_own_claims(self):
        self._claim(self.warranty.serial_number)
        response = self.client.get('/api/v1/warranty/claims/')
        self.assertEqual(len(response.data), 1)


class WarrantyLookupAPITests(TestCase):
    """Test warranty lookups"""

    def setUp(self):
        cache.clear()
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.warranty = TestDataFactory.create_warranty(customer=self.customer, order_number='ORD-42')
        self.client = AuthenticatedAPIClient()

    def test_lookup_by_serial(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get(f'/api/v1/warranty/lookup/serial/{self.warranty.serial_number}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['is_valid'])
        self.assertEqual(response.data['claims'], [])

    def test_lookup_by_order_limited_to_owner(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/warranty/lookup/order/ORD-42/')
        self.assertEqual(len(response.data['warranties']), 1)

        self.client.authenticate_user(TestDataFactory.create_user(roles=[ROLE_CUSTOMER]))
        response = self.client.get('/api/v1/warranty/lookup/order/ORD-42/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_lookup_requires_authentication(self):
        response = self.client.get(f'/api/v1/warranty/lookup/serial/{self.warranty.serial_number}/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class WarrantyAdminAPITests(TestCase):
    """Test backoffice warranty endpoints"""

    def setUp(self):
        cache.clear()
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.manager)

    def test_register_uses_product_period(self):
        product = TestDataFactory.create_product(warranty_months=6)
        response = self.client.post('/api/v1/warranty/warranties/', {
            'product': product.id, 'serial_number': 'MAN-001', 'purchase_date': '2024-08-31',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['warranty_months'], 6)
        self.assertEqual(response.data['expiration_date'], '2025-02-28')

    def test_register_without_period(self):
        product = TestDataFactory.create_product(warranty_months=0)
        response = self.client.post('/api/v1/warranty/warranties/', {
            'product': product.id, 'serial_number': 'MAN-002',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_cannot_register(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/warranty/warranties/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_void_endpoint(self):
        warranty = TestDataFactory.create_warranty()
        response = self.client.post(f'/api/v1/warranty/warranties/{warranty.id}/void/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/warranty/warranties/{warranty.id}/void/',
                                    {'reason': 'Unauthorized repair'}, format='json')
        self.assertEqual(response.data['status'], ProductWarranty.STATUS_VOIDED)

    def test_approve_claim_with_work_order(self):
        warranty = TestDataFactory.create_warranty(customer=self.customer)
        claim = WarrantyClaim.objects.create(warranty=warranty, serial_number=warranty.serial_number,
                                             customer=self.customer, issue_description='Keyboard dead')
        response = self.client.post(f'/api/v1/warranty/admin/claims/{claim.id}/approve/',
                                    {'create_work_order': True, 'notes': 'Send to bench'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], WarrantyClaim.STATUS_APPROVED)
        self.assertIsNotNone(response.data['work_order_ticket'])

        response = self.client.post(f'/api/v1/warranty/admin/claims/{claim.id}/approve/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_reject_claim_needs_reason(self):
        warranty = TestDataFactory.create_warranty()
        claim = WarrantyClaim.objects.create(warranty=warranty, serial_number=warranty.serial_number,
                                             issue_description='Dropped')
        response = self.client.post(f'/api/v1/warranty/admin/claims/{claim.id}/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/warranty/admin/claims/{claim.id}/reject/',
                                    {'reason': 'Physical damage'}, format='json')
        self.assertEqual(response.data['status'], WarrantyClaim.STATUS_REJECTED)

    def test_stats(self):
        TestDataFactory.create_warranty()
        TestDataFactory.create_warranty(purchase_date=timezone.localdate() - timedelta(days=500))
        warranty = TestDataFactory.create_warranty()
        WarrantyClaim.objects.create(warranty=warranty, serial_number=warranty.serial_number,
                                     issue_description='Noise', is_manager_override=True)
        response = self.client.get('/api/v1/warranty/admin/stats/')
        self.assertEqual(response.data['total_warranties'], 3)
        self.assertEqual(response.data['active_warranties'], 2)
        self.assertEqual(response.data['expired_warranties'], 1)
        self.assertEqual(response.data['pending_claims'], 1)
        self.assertEqual(response.data['override_claims'], 1)
