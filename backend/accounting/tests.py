"""
Test suite for Accounting module
Tests: Organization accounts, Invoices (AR/AP), payments, aging, expenses, shifts
"""
from datetime import timedelta
from decimal import Decimal

from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status

from backend.accounting.models import (
    OrganizationAccount, Invoice, Expense, ExpenseCategory, ShiftSession,
)
from backend.core.permissions import ROLE_ACCOUNTANT, ROLE_CUSTOMER, ROLE_TECHNICIAN_IN_SHOP
from backend.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class InvoiceModelTests(TestCase):
    """Test invoice totals, payments and aging"""

    def test_invoice_number_prefix(self):
        receivable = TestDataFactory.create_invoice()
        payable = TestDataFactory.create_invoice(invoice_type='payable')
        self.assertTrue(receivable.invoice_number.startswith('AR-'))
        self.assertTrue(payable.invoice_number.startswith('AP-'))

    def test_line_totals_with_vat(self):
        invoice = TestDataFactory.create_invoice(lines=[
            ('Laptop', Decimal('2'), Decimal('500.00'), Decimal('10')),
            ('Cable', Decimal('1'), Decimal('20.00'), Decimal('0')),
        ])
        self.assertEqual(invoice.subtotal, Decimal('1020.00'))
        self.assertEqual(invoice.vat_amount, Decimal('100.00'))
        self.assertEqual(invoice.total_amount, Decimal('1120.00'))

    def test_cannot_issue_empty_invoice(self):
        invoice = TestDataFactory.create_invoice()
        with self.assertRaises(ValidationError):
            invoice.issue()

    def test_lines_locked_after_issue(self):
        invoice = TestDataFactory.create_invoice(lines=[('Service', 1, 100, 0)], issue=True)
        with self.assertRaises(ValidationError):
            invoice.add_line('Extra', 1, 10)

    def test_partial_then_full_payment(self):
        invoice = TestDataFactory.create_invoice(lines=[('Service', 1, 100, 0)], issue=True)
        invoice.apply_payment(Decimal('40.00'))
        self.assertEqual(invoice.status, Invoice.STATUS_PARTIALLY_PAID)
        self.assertEqual(invoice.outstanding_amount, Decimal('60.00'))

        with self.assertRaises(ValidationError):
            invoice.apply_payment(Decimal('61.00'))

        invoice.apply_payment(Decimal('60.00'))
        self.assertEqual(invoice.status, Invoice.STATUS_PAID)
        with self.assertRaises(ValidationError):
            invoice.apply_payment(Decimal('1.00'))

    def test_payment_on_draft_rejected(self):
        invoice = TestDataFactory.create_invoice(lines=[('Service', 1, 100, 0)])
        with self.assertRaises(ValidationError):
            invoice.apply_payment(Decimal('10.00'))

    def test_cancel_with_payments_rejected(self):
        invoice = TestDataFactory.create_invoice(lines=[('Service', 1, 100, 0)], issue=True)
        invoice.apply_payment(Decimal('10.00'))
        with self.assertRaises(ValidationError):
            invoice.cancel()

    def test_aging_buckets(self):
        today = timezone.localdate()
        invoice = TestDataFactory.create_invoice(lines=[('Service', 1, 100, 0)], issue=True,
                                                 due_date=today - timedelta(days=45))
        self.assertEqual(invoice.aging_bucket(today), '31-60')
        self.assertEqual(invoice.aging_bucket(today - timedelta(days=50)), 'Current')
        self.assertEqual(invoice.aging_bucket(today + timedelta(days=60)), 'Over 90')
        self.assertTrue(invoice.refresh_overdue(today))
        self.assertEqual(invoice.status, Invoice.STATUS_OVERDUE)

    def test_aging_summary_counts_open_invoices_only(self):
        today = timezone.localdate()
        TestDataFactory.create_invoice(lines=[('A', 1, 100, 0)], issue=True, due_date=today - timedelta(days=10))
        TestDataFactory.create_invoice(lines=[('B', 1, 50, 0)], issue=True)
        TestDataFactory.create_invoice(lines=[('Draft', 1, 999, 0)])
        summary = Invoice.aging_summary(Invoice.TYPE_RECEIVABLE, today)
        buckets = {b['bucket']: b for b in summary['buckets']}
        self.assertEqual(summary['total_count'], 2)
        self.assertEqual(summary['total_outstanding'], '150.00')
        self.assertEqual(buckets['1-30']['count'], 1)
        self.assertEqual(buckets['Current']['amount'], '50.00')


class OrganizationAccountTests(TestCase):
    """Test ledger posting on organization accounts"""

    def setUp(self):
        self.account = OrganizationAccount.objects.create(name='Acme Corp', code='acme',
                                                          credit_limit=Decimal('1000.00'))

    def test_code_uppercased(self):
        self.assertEqual(self.account.code, 'ACME')

    def test_debit_and_credit(self):
        self.account.debit(Decimal('300.00'), 'Invoice')
        entry = self.account.credit(Decimal('100.00'), 'Payment')
        self.assertEqual(entry.balance_after, Decimal('200.00'))
        self.assertEqual(OrganizationAccount.objects.get(pk=self.account.pk).balance, Decimal('200.00'))
        self.assertEqual(self.account.ledger_entries.count(), 2)

    def test_credit_limit(self):
        with self.assertRaises(ValidationError):
            self.account.debit(Decimal('1000.01'))
        self.assertEqual(self.account.ledger_entries.count(), 0)

    def test_non_positive_amount(self):
        with self.assertRaises(ValidationError):
            self.account.credit(0)


class ShiftModelTests(TestCase):
    """Test shift transactions and closing variance"""

    def setUp(self):
        self.cashier = TestDataFactory.create_user()
        self.shift = ShiftSession.objects.create(cashier=self.cashier, warehouse_name='Main',
                                                 opening_balance=Decimal('100.00'))

    def test_close_computes_variance(self):
        self.shift.add_transaction('sale', Decimal('250.00'), 'Counter sale')
        self.shift.add_transaction('cash_out', Decimal('30.00'), 'Courier')
        self.shift.add_transaction('refund', Decimal('20.00'), 'Return')
        self.shift.close(Decimal('295.00'))
        self.assertEqual(self.shift.expected_balance, Decimal('300.00'))
        self.assertEqual(self.shift.cash_variance, Decimal('-5.00'))
        self.assertEqual(self.shift.status, ShiftSession.STATUS_CLOSED)

    def test_closed_shift_is_frozen(self):
        self.shift.close(Decimal('100.00'))
        with self.assertRaises(ValidationError):
            self.shift.add_transaction('cash_in', Decimal('5.00'), 'Late')
        with self.assertRaises(ValidationError):
            self.shift.close(Decimal('100.00'))

    def test_invalid_transaction_type(self):
        with self.assertRaises(ValidationError):
            self.shift.add_transaction('bribe', Decimal('5.00'), 'Nope')


class ExpenseModelTests(TestCase):
    """Test expense workflow"""

    def setUp(self):
        self.category = ExpenseCategory.objects.create(name='Utilities', code='util')

    def test_vat_and_total(self):
        expense = Expense.objects.create(category=self.category, description='Power',
                                         amount=Decimal('200.00'), vat_rate=Decimal('8'))
        self.assertEqual(expense.vat_amount, Decimal('16.00'))
        self.assertEqual(expense.total_amount, Decimal('216.00'))
        self.assertTrue(expense.expense_number.startswith('EXP-'))

    def test_pay_requires_approval(self):
        expense = Expense.objects.create(category=self.category, description='Water', amount=Decimal('50.00'))
        with self.assertRaises(ValidationError):
            expense.pay()
        expense.approve()
        expense.pay('bank_transfer')
        self.assertEqual(expense.status, Expense.STATUS_PAID)
        self.assertIsNotNone(expense.paid_at)


class AccountingAPITests(TestCase):
    """Test accounting endpoints"""

    def setUp(self):
        cache.clear()
        self.accountant = TestDataFactory.create_user(roles=[ROLE_ACCOUNTANT])
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.accountant)

    def test_non_accounting_roles_forbidden(self):
        for role in (ROLE_CUSTOMER, ROLE_TECHNICIAN_IN_SHOP):
            self.client.authenticate_user(TestDataFactory.create_user(roles=[role]))
            response = self.client.get('/api/v1/accounting/invoices/')
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_create_invoice_with_lines(self):
        response = self.client.post('/api/v1/accounting/ar/', {
            'party_name': 'Walk-in Customer',
            'due_date': str(timezone.localdate() + timedelta(days=15)),
            'lines': [{'description': 'Repair', 'quantity': '1', 'unit_price': '150.00', 'vat_rate': '10'}],
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['invoice_type'], Invoice.TYPE_RECEIVABLE)
        self.assertEqual(response.data['total_amount'], '165.00')
        self.assertEqual(response.data['status'], Invoice.STATUS_DRAFT)

    def test_due_before_issue_rejected(self):
        today = timezone.localdate()
        response = self.client.post('/api/v1/accounting/invoices/', {
            'party_name': 'Supplier', 'invoice_type': 'payable',
            'issue_date': str(today), 'due_date': str(today - timedelta(days=1)),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_issue_and_pay_through_ar(self):
        invoice = TestDataFactory.create_invoice(lines=[('Parts', 1, 100, 0)])
        response = self.client.post(f'/api/v1/accounting/invoices/{invoice.id}/issue/')
        self.assertEqual(response.data['status'], Invoice.STATUS_ISSUED)

        response = self.client.post(f'/api/v1/accounting/ar/{invoice.id}/apply-payment/',
                                    {'amount': '100.00', 'method': 'card'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['invoice']['status'], Invoice.STATUS_PAID)
        self.assertEqual(response.data['payment']['method'], 'card')

    def test_overpayment_rejected(self):
        invoice = TestDataFactory.create_invoice(lines=[('Parts', 1, 100, 0)], issue=True)
        response = self.client.post(f'/api/v1/accounting/invoices/{invoice.id}/payments/',
                                    {'amount': '150.00'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('exceeds outstanding balance', response.data['error'])

    def test_ap_detail_hides_receivables(self):
        invoice = TestDataFactory.create_invoice()
        response = self.client.get(f'/api/v1/accounting/ap/{invoice.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_list_flags_overdue(self):
        invoice = TestDataFactory.create_invoice(lines=[('Old', 1, 10, 0)], issue=True,
                                                 due_date=timezone.localdate() - timedelta(days=3))
        response = self.client.get('/api/v1/accounting/invoices/', {'status': 'overdue'})
        self.assertEqual(response.data['total'], 1)
        self.assertEqual(response.data['invoices'][0]['id'], invoice.id)

    def test_aging_summary_endpoint(self):
        TestDataFactory.create_invoice(invoice_type='payable', lines=[('Stock', 1, 70, 0)], issue=True)
        response = self.client.get('/api/v1/accounting/ap/aging-summary/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_outstanding'], '70.00')

    def test_printable_invoice(self):
        invoice = TestDataFactory.create_invoice(party_name='Printed Party', lines=[('Item', 1, 10, 0)])
        response = self.client.get(f'/api/v1/accounting/invoices/{invoice.id}/html/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn(invoice.invoice_number, response.content.decode())
        self.assertIn('Printed Party', response.content.decode())

    def test_account_ledger_posting(self):
        account = OrganizationAccount.objects.create(name='Vendor', code='VEN', account_type='supplier')
        response = self.client.post(f'/api/v1/accounting/accounts/{account.id}/debit/',
                                    {'amount': '120.00', 'description': 'Stock'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post(f'/api/v1/accounting/accounts/{account.id}/credit/',
                                    {'amount': '20.00'}, format='json')
        self.assertEqual(response.data['balance_after'], '100.00')
        response = self.client.get(f'/api/v1/accounting/accounts/{account.id}/ledger/')
        self.assertEqual(response.data['total'], 2)
        self.assertEqual(response.data['account']['balance'], '100.00')

    def test_expense_flow(self):
        category = ExpenseCategory.objects.create(name='Rent', code='RENT')
        response = self.client.post('/api/v1/accounting/expenses/', {
            'category': category.id, 'description': 'October rent', 'amount': '1000.00',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        expense_id = response.data['id']

        response = self.client.post(f'/api/v1/accounting/expenses/{expense_id}/reject/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.client.post(f'/api/v1/accounting/expenses/{expense_id}/approve/')
        response = self.client.post(f'/api/v1/accounting/expenses/{expense_id}/pay/',
                                    {'payment_method': 'bank_transfer'}, format='json')
        self.assertEqual(response.data['status'], Expense.STATUS_PAID)

        response = self.client.delete(f'/api/v1/accounting/expense-categories/{category.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_one_open_shift_per_day(self):
        payload = {'warehouse_name': 'Main', 'opening_balance': '50.00'}
        response = self.client.post('/api/v1/accounting/shifts/open/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        shift_id = response.data['id']
        response = self.client.post('/api/v1/accounting/shifts/open/', payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.client.post(f'/api/v1/accounting/shifts/{shift_id}/transactions/', {
            'transaction_type': 'sale', 'amount': '25.00', 'description': 'Cable',
        }, format='json')
        response = self.client.post(f'/api/v1/accounting/shifts/{shift_id}/close/', {'actual_cash': '75.00'},
                                    format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['cash_variance'], '0.00')

    def test_close_shift_requires_cash(self):
        shift = ShiftSession.objects.create(cashier=self.accountant, warehouse_name='Main',
                                            opening_balance=Decimal('0.00'))
        response = self.client.post(f'/api/v1/accounting/shifts/{shift.id}/close/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stats(self):
        TestDataFactory.create_invoice(lines=[('A', 1, 100, 0)], issue=True)
        TestDataFactory.create_invoice(invoice_type='payable', lines=[('B', 1, 40, 0)], issue=True)
        TestDataFactory.create_invoice()
        response = self.client.get('/api/v1/accounting/stats/')
        self.assertEqual(response.data['receivable_outstanding'], '100.00')
        self.assertEqual(response.data['payable_outstanding'], '40.00')
        self.assertEqual(response.data['draft_count'], 1)
