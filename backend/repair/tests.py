"""
Test suite for Repair module
Tests: Work order lifecycle, parts, quotes, technician actions, service bookings
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.core.permissions import ROLE_MANAGER, ROLE_CUSTOMER, ROLE_TECHNICIAN_IN_SHOP
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from backend.repair.models import WorkOrder, RepairQuote, ServiceBooking


class WorkOrderModelTests(TestCase):
    """Test the work order state machine"""

    def setUp(self):
        self.technician = TestDataFactory.create_technician()
        self.work_order = TestDataFactory.create_work_order()

    def test_ticket_number_format(self):
        self.assertRegex(self.work_order.ticket_number, r'^TKT-\d{8}-[0-9A-F]{6}$')

    def test_assign_logs_activity(self):
        self.work_order.assign(self.technician)
        self.assertEqual(self.work_order.status, WorkOrder.STATUS_ASSIGNED)
        self.assertIsNotNone(self.work_order.assigned_at)
        log = self.work_order.activity_logs.first()
        self.assertEqual(log.new_status, WorkOrder.STATUS_ASSIGNED)

    def test_inactive_technician_rejected(self):
        self.technician.is_active = False
        with self.assertRaises(ValidationError):
            self.work_order.assign(self.technician)

    def test_accept_keeps_assigned_status(self):
        self.work_order.assign(self.technician)
        self.work_order.accept()
        self.assertEqual(self.work_order.status, WorkOrder.STATUS_ASSIGNED)
        self.assertIsNotNone(self.work_order.accepted_at)

    def test_decline_unassigns(self):
        self.work_order.assign(self.technician)
        self.work_order.decline('Too busy')
        self.assertEqual(self.work_order.status, WorkOrder.STATUS_DECLINED)
        self.assertIsNone(self.work_order.technician)
        self.work_order.assign(self.technician)
        self.assertEqual(self.work_order.status, WorkOrder.STATUS_ASSIGNED)

    def test_illegal_transition(self):
        with self.assertRaises(ValidationError):
            self.work_order.complete()

    def test_cannot_cancel_completed(self):
        self.work_order.assign(self.technician)
        self.work_order.start()
        self.work_order.complete()
        with self.assertRaises(ValidationError):
            self.work_order.cancel()

    def test_parts_cost_tracks_lines(self):
        first = self.work_order.add_part('Battery', 2, Decimal('45.00'))
        self.work_order.add_part('Screw kit', 1, Decimal('5.00'))
        self.assertEqual(self.work_order.parts_cost, Decimal('95.00'))
        self.work_order.remove_part(first)
        self.assertEqual(self.work_order.parts_cost, Decimal('5.00'))

    def test_quote_replaces_pending_quote(self):
        self.work_order.assign(self.technician)
        self.work_order.diagnose('Dead battery')
        first = self.work_order.create_quote(labor_cost=Decimal('30.00'))
        second = self.work_order.create_quote(labor_cost=Decimal('40.00'))
        first.refresh_from_db()
        self.assertEqual(first.status, RepairQuote.STATUS_EXPIRED)
        self.assertEqual(self.work_order.current_quote, second)
        self.assertEqual(self.work_order.status, WorkOrder.STATUS_QUOTED)

    def test_expired_quote_cannot_be_approved(self):
        self.work_order.assign(self.technician)
        self.work_order.diagnose('Broken hinge')
        quote = self.work_order.create_quote(labor_cost=Decimal('10.00'))
        RepairQuote.objects.filter(pk=quote.pk).update(valid_until=timezone.now() - timedelta(minutes=1))
        with self.assertRaises(ValidationError):
            self.work_order.approve_quote()


class ServiceBookingModelTests(TestCase):
    """Test service booking rules"""

    def setUp(self):
        self.customer = TestDataFactory.create_user()

    def _booking(self, **kwargs):
        data = {
            'customer': self.customer,
            'customer_name': 'Jane',
            'customer_phone': '0900000001',
            'device_model': 'Phone Z',
            'issue_description': 'Cracked screen',
            'preferred_date': timezone.now() + timedelta(days=1),
        }
        data.update(kwargs)
        return ServiceBooking.objects.create(**data)

    def test_on_site_booking_gets_fee(self):
        booking = self._booking(service_type='on_site', address='12 Side St')
        self.assertEqual(booking.service_fee, Decimal('50'))

    def test_convert_requires_approval(self):
        booking = self._booking()
        with self.assertRaises(ValidationError):
            booking.convert()
        booking.approve()
        work_order = booking.convert(priority='high')
        self.assertEqual(work_order.status, WorkOrder.STATUS_PENDING)
        self.assertEqual(work_order.priority, 'high')
        self.assertEqual(booking.status, ServiceBooking.STATUS_CONVERTED)


class RepairWorkflowAPITests(TestCase):
    """Test the repair flow across customer, backoffice and technician endpoints"""

    def setUp(self):
        cache.clear()
        self.customer = TestDataFactory.create_user(roles=[ROLE_CUSTOMER])
        self.manager = TestDataFactory.create_user(roles=[ROLE_MANAGER])
        self.tech_user = TestDataFactory.create_user(roles=[ROLE_TECHNICIAN_IN_SHOP])
        self.technician = TestDataFactory.create_technician(user=self.tech_user)
        self.client = AuthenticatedAPIClient()

    def test_full_repair_flow(self):
        self.client.authenticate_user(self.customer)
        response = self.client.post('/api/v1/repair/work-orders/', {
            'device_model': 'Laptop X1', 'serial_number': 'LX1-001', 'issue_description': 'No display',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['status'], WorkOrder.STATUS_REQUESTED)
        work_order_id = response.data['id']

        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/repair/admin/work-orders/{work_order_id}/assign/',
                                    {'technician_id': self.technician.id}, format='json')
        self.assertEqual(response.data['status'], WorkOrder.STATUS_ASSIGNED)

        self.client.authenticate_user(self.tech_user)
        base = f'/api/v1/repair/tech/work-orders/{work_order_id}'
        self.client.post(f'{base}/status/', {'action': 'accept'}, format='json')
        response = self.client.post(f'{base}/status/', {'action': 'diagnose', 'diagnosis': 'Loose ribbon cable'},
                                    format='json')
        self.assertEqual(response.data['status'], WorkOrder.STATUS_DIAGNOSED)

        response = self.client.post(f'{base}/parts/', {'part_name': 'Ribbon cable', 'quantity': 2,
                                                       'unit_price': '50.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['parts_cost'], '100.00')

        response = self.client.post(f'{base}/quote/', {'labor_cost': '80.00', 'service_fee': '20.00'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['quote']['total_amount'], '200.00')
        self.assertEqual(response.data['work_order']['status'], WorkOrder.STATUS_AWAITING_APPROVAL)

        self.client.authenticate_user(self.customer)
        response = self.client.post(f'/api/v1/repair/work-orders/{work_order_id}/quote/approve/')
        self.assertEqual(response.data['status'], WorkOrder.STATUS_APPROVED)

        self.client.authenticate_user(self.tech_user)
        self.client.post(f'{base}/status/', {'action': 'start'}, format='json')
        response = self.client.post(f'{base}/status/', {'action': 'complete', 'notes': 'Replaced cable'},
                                    format='json')
        self.assertEqual(response.data['status'], WorkOrder.STATUS_COMPLETED)
        self.assertEqual(response.data['actual_cost'], '200.00')
        self.assertIn('Replaced cable', response.data['technical_notes'])

        self.client.authenticate_user(self.customer)
        response = self.client.get(f'/api/v1/repair/work-orders/{work_order_id}/logs/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertGreaterEqual(len(response.data), 6)

    def test_customer_rejects_quote(self):
        work_order = TestDataFactory.create_work_order(customer=self.customer, status=WorkOrder.STATUS_DIAGNOSED,
                                                       technician=self.technician)
        work_order.create_quote(labor_cost=Decimal('25.00'))
        self.client.authenticate_user(self.customer)
        response = self.client.post(f'/api/v1/repair/work-orders/{work_order.id}/quote/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(f'/api/v1/repair/work-orders/{work_order.id}/quote/reject/',
                                    {'reason': 'Too expensive'}, format='json')
        self.assertEqual(response.data['status'], WorkOrder.STATUS_REJECTED)

    def test_on_site_request_needs_address(self):
        self.client.authenticate_user(self.customer)
        response = self.client.post('/api/v1/repair/work-orders/', {
            'device_model': 'Printer', 'issue_description': 'Paper jam', 'service_type': 'on_site',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_logs_hidden_from_other_customers(self):
        work_order = TestDataFactory.create_work_order(customer=self.customer)
        self.client.authenticate_user(TestDataFactory.create_user(roles=[ROLE_CUSTOMER]))
        response = self.client.get(f'/api/v1/repair/work-orders/{work_order.id}/logs/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_technician_sees_only_own_work_orders(self):
        other = TestDataFactory.create_technician()
        mine = TestDataFactory.create_work_order(status=WorkOrder.STATUS_ASSIGNED, technician=self.technician)
        theirs = TestDataFactory.create_work_order(status=WorkOrder.STATUS_ASSIGNED, technician=other)
        self.client.authenticate_user(self.tech_user)
        response = self.client.get('/api/v1/repair/tech/work-orders/')
        self.assertEqual([w['id'] for w in response.data], [mine.id])
        response = self.client.post(f'/api/v1/repair/tech/work-orders/{theirs.id}/status/', {'action': 'start'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_technician_role_without_profile(self):
        self.client.authenticate_user(TestDataFactory.create_user(roles=[ROLE_TECHNICIAN_IN_SHOP]))
        response = self.client.get('/api/v1/repair/tech/work-orders/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_manager_without_profile_sees_assigned(self):
        TestDataFactory.create_work_order(status=WorkOrder.STATUS_ASSIGNED, technician=self.technician)
        TestDataFactory.create_work_order()
        self.client.authenticate_user(self.manager)
        response = self.client.get('/api/v1/repair/tech/work-orders/')
        self.assertEqual(len(response.data), 1)

    def test_invalid_tech_action(self):
        work_order = TestDataFactory.create_work_order(status=WorkOrder.STATUS_ASSIGNED, technician=self.technician)
        self.client.authenticate_user(self.tech_user)
        response = self.client.post(f'/api/v1/repair/tech/work-orders/{work_order.id}/status/', {'action': 'fly'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_admin_list_search(self):
        TestDataFactory.create_work_order(serial_number='FIND-ME-1')
        TestDataFactory.create_work_order()
        self.client.authenticate_user(self.manager)
        response = self.client.get('/api/v1/repair/admin/work-orders/', {'search': 'find-me'})
        self.assertEqual(response.data['total'], 1)

    def test_customer_cannot_use_admin_endpoints(self):
        self.client.authenticate_user(self.customer)
        response = self.client.get('/api/v1/repair/admin/work-orders/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_booking_convert_flow(self):
        self.client.authenticate_user(self.customer)
        response = self.client.post('/api/v1/repair/bookings/', {
            'customer_phone': '0900000002',
            'service_type': 'on_site',
            'device_model': 'Desktop',
            'issue_description': 'Fan noise',
            'preferred_date': (timezone.now() + timedelta(days=2)).isoformat(),
            'address': '5 Office Park',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['service_fee'], '50.00')
        booking_id = response.data['id']

        self.client.authenticate_user(self.manager)
        response = self.client.post(f'/api/v1/repair/admin/bookings/{booking_id}/convert/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.client.post(f'/api/v1/repair/admin/bookings/{booking_id}/approve/')
        response = self.client.post(f'/api/v1/repair/admin/bookings/{booking_id}/convert/', {'priority': 'urgent'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNotNone(response.data['work_order_ticket'])
        self.assertEqual(WorkOrder.objects.get(pk=response.data['work_order']).service_type, 'on_site')

    def test_retired_technician_kept(self):
        self.client.authenticate_user(self.manager)
        response = self.client.delete(f'/api/v1/repair/technicians/{self.technician.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.technician.refresh_from_db()
        self.assertFalse(self.technician.is_active)

    def test_repair_stats(self):
        TestDataFactory.create_work_order()
        TestDataFactory.create_work_order(status=WorkOrder.STATUS_CANCELLED)
        self.client.authenticate_user(self.manager)
        response = self.client.get('/api/v1/repair/admin/stats/')
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(response.data['open'], 1)
        self.assertEqual(response.data['unassigned'], 1)
