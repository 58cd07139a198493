from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.db.models import Sum
from django.utils import timezone

from backend.core.utils import generate_document_number

CURRENCY_CHOICES = [
    ('VND', 'Vietnamese Dong'),
    ('USD', 'US Dollar'),
]

ZERO = Decimal('0.00')


def _positive(amount, label='Amount'):
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValidationError(f'{label} must be greater than 0')
    return amount


class OrganizationAccount(models.Model):
    """Customer, supplier or internal account with a running balance"""
    ACCOUNT_TYPE_CHOICES = [
        ('customer', 'Customer'),
        ('supplier', 'Supplier'),
        ('internal', 'Internal'),
    ]

    name = models.CharField(max_length=200)
    code = models.CharField(max_length=50, unique=True)
    account_type = models.CharField(max_length=20, choices=ACCOUNT_TYPE_CHOICES, default='customer')
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='VND')
    exchange_rate = models.DecimalField(max_digits=12, decimal_places=4, default=Decimal('1.0000'))
    balance = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    credit_limit = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)
    tax_code = models.CharField(max_length=50, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.code} - {self.name}"

    class Meta:
        db_table = 'organization_accounts'
        ordering = ['name']

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)

    def _post(self, entry_type, amount, description, reference, user):
        with transaction.atomic():
            account = OrganizationAccount.objects.select_for_update().get(pk=self.pk)
            if entry_type == LedgerEntry.DEBIT:
                new_balance = account.balance + amount
                if account.credit_limit > 0 and new_balance > account.credit_limit:
                    raise ValidationError('Credit limit exceeded')
            else:
                new_balance = account.balance - amount
            account.balance = new_balance
            account.save(update_fields=['balance', 'updated_at'])
            entry = LedgerEntry.objects.create(
                account=account,
                entry_type=entry_type,
                amount=amount,
                balance_after=new_balance,
                description=description,
                reference=reference,
                created_by=user,
            )
        self.balance = new_balance
        return entry

    def debit(self, amount, description='', reference='', user=None):
        """Increase what the account owes"""
        return self._post(LedgerEntry.DEBIT, _positive(amount), description, reference, user)

    def credit(self, amount, description='', reference='', user=None):
        return self._post(LedgerEntry.CREDIT, _positive(amount), description, reference, user)


class LedgerEntry(models.Model):
    DEBIT = 'debit'
    CREDIT = 'credit'
    ENTRY_TYPE_CHOICES = [
        (DEBIT, 'Debit'),
        (CREDIT, 'Credit'),
    ]

    account = models.ForeignKey(OrganizationAccount, on_delete=models.CASCADE, related_name='ledger_entries')
    entry_type = models.CharField(max_length=10, choices=ENTRY_TYPE_CHOICES)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    balance_after = models.DecimalField(max_digits=14, decimal_places=2)
    description = models.CharField(max_length=255, blank=True)
    reference = models.CharField(max_length=100, blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='ledger_entries')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.entry_type} {self.amount} on {self.account.code}"

    class Meta:
        db_table = 'ledger_entries'
        ordering = ['-created_at', '-id']


class Invoice(models.Model):
    """Receivable (AR) or payable (AP) invoice"""
    TYPE_RECEIVABLE = 'receivable'
    TYPE_PAYABLE = 'payable'
    TYPE_CHOICES = [
        (TYPE_RECEIVABLE, 'Accounts Receivable'),
        (TYPE_PAYABLE, 'Accounts Payable'),
    ]
    NUMBER_PREFIXES = {TYPE_RECEIVABLE: 'AR', TYPE_PAYABLE: 'AP'}

    STATUS_DRAFT = 'draft'
    STATUS_ISSUED = 'issued'
    STATUS_PARTIALLY_PAID = 'partially_paid'
    STATUS_PAID = 'paid'
    STATUS_OVERDUE = 'overdue'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_ISSUED, 'Issued'),
        (STATUS_PARTIALLY_PAID, 'Partially Paid'),
        (STATUS_PAID, 'Paid'),
        (STATUS_OVERDUE, 'Overdue'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    OPEN_STATUSES = [STATUS_ISSUED, STATUS_PARTIALLY_PAID, STATUS_OVERDUE]
    AGING_BUCKETS = ['Current', '1-30', '31-60', '61-90', 'Over 90']

    invoice_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_RECEIVABLE)
    invoice_number = models.CharField(max_length=50, unique=True, blank=True)
    account = models.ForeignKey(OrganizationAccount, on_delete=models.PROTECT, null=True, blank=True, related_name='invoices')
    party_name = models.CharField(max_length=200)
    party_email = models.EmailField(blank=True)
    party_tax_code = models.CharField(max_length=50, blank=True)
    party_address = models.TextField(blank=True)
    order_reference = models.CharField(max_length=100, blank=True)
    issue_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)
    currency = models.CharField(max_length=3, choices=CURRENCY_CHOICES, default='VND')
    subtotal = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    vat_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    paid_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    notes = models.TextField(blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='invoices_created')
    issued_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.invoice_number or f"Invoice-{self.id}"

    class Meta:
        db_table = 'invoices'
        ordering = ['-issue_date', '-id']
        indexes = [
            models.Index(fields=['invoice_type', 'status'], name='idx_invoice_type_status'),
            models.Index(fields=['due_date'], name='idx_invoice_due_date'),
        ]

    def save(self, *args, **kwargs):
        if not self.invoice_number:
            prefix = self.NUMBER_PREFIXES.get(self.invoice_type, 'INV')
            self.invoice_number = generate_document_number(prefix, model=Invoice, field='invoice_number')
        super().save(*args, **kwargs)

    @property
    def outstanding_amount(self):
        return self.total_amount - self.paid_amount

    def recalculate_totals(self):
        totals = self.lines.aggregate(subtotal=Sum('line_total'), vat=Sum('vat_amount'))
        self.subtotal = totals['subtotal'] or ZERO
        self.vat_amount = totals['vat'] or ZERO
        self.total_amount = self.subtotal + self.vat_amount
        self.save(update_fields=['subtotal', 'vat_amount', 'total_amount', 'updated_at'])

    def add_line(self, description, quantity, unit_price, vat_rate=0):
        if self.status != self.STATUS_DRAFT:
            raise ValidationError('Lines can only be added to draft invoices')
        quantity = _positive(quantity, 'Quantity')
        unit_price = Decimal(str(unit_price))
        if unit_price < 0:
            raise ValidationError('Unit price cannot be negative')
        line = InvoiceLine.objects.create(
            invoice=self,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            vat_rate=Decimal(str(vat_rate)),
        )
        self.recalculate_totals()
        return line

    def issue(self):
        if self.status != self.STATUS_DRAFT:
            raise ValidationError('Only draft invoices can be issued')
        if not self.lines.exists():
            raise ValidationError('Cannot issue an invoice without lines')
        self.status = self.STATUS_ISSUED
        self.issued_at = timezone.now()
        self.save(update_fields=['status', 'issued_at', 'updated_at'])

    def apply_payment(self, amount, method='cash', reference='', user=None, paid_at=None):
        """Record a payment against the invoice and move it to paid or partially paid"""
        if self.status == self.STATUS_DRAFT:
            raise ValidationError('Cannot apply payment to a draft invoice')
        if self.status == self.STATUS_CANCELLED:
            raise ValidationError('Cannot apply payment to a cancelled invoice')
        if self.status == self.STATUS_PAID:
            raise ValidationError('Invoice is already paid')
        amount = _positive(amount, 'Payment amount')
        outstanding = self.outstanding_amount
        if amount > outstanding:
            raise ValidationError(f'Payment amount exceeds outstanding balance of {outstanding}')

        payment = PaymentApplication.objects.create(
            invoice=self,
            amount=amount,
            method=method,
            reference=reference,
            paid_at=paid_at or timezone.now(),
            recorded_by=user,
        )
        self.paid_amount += amount
        self.status = self.STATUS_PAID if self.outstanding_amount <= 0 else self.STATUS_PARTIALLY_PAID
        self.save(update_fields=['paid_amount', 'status', 'updated_at'])
        return payment

    def days_overdue(self, today=None):
        today = today or timezone.localdate()
        return (today - self.due_date).days

    def aging_bucket(self, today=None):
        if self.status in (self.STATUS_PAID, self.STATUS_CANCELLED):
            return None
        days = self.days_overdue(today)
        if days <= 0:
            return 'Current'
        if days <= 30:
            return '1-30'
        if days <= 60:
            return '31-60'
        if days <= 90:
            return '61-90'
        return 'Over 90'

    def refresh_overdue(self, today=None):
        today = today or timezone.localdate()
        if self.status in (self.STATUS_ISSUED, self.STATUS_PARTIALLY_PAID) and self.due_date < today:
            self.status = self.STATUS_OVERDUE
            self.save(update_fields=['status', 'updated_at'])
            return True
        return False

    def cancel(self, reason=''):
        if self.status == self.STATUS_CANCELLED:
            raise ValidationError('Invoice is already cancelled')
        if self.status == self.STATUS_PAID or self.paid_amount > 0:
            raise ValidationError('Cannot cancel an invoice with payments')
        self.status = self.STATUS_CANCELLED
        if reason:
            self.notes = f"{self.notes}\nCancelled: {reason}".strip()
        self.save(update_fields=['status', 'notes', 'updated_at'])

    @classmethod
    def aging_summary(cls, invoice_type, today=None):
        """Count and outstanding total per aging bucket for open invoices"""
        today = today or timezone.localdate()
        buckets = {name: {'count': 0, 'amount': ZERO} for name in cls.AGING_BUCKETS}
        for invoice in cls.objects.filter(invoice_type=invoice_type, status__in=cls.OPEN_STATUSES):
            bucket = buckets[invoice.aging_bucket(today)]
            bucket['count'] += 1
            bucket['amount'] += invoice.outstanding_amount
        return {
            'buckets': [
                {'bucket': name, 'count': data['count'], 'amount': str(data['amount'])}
                for name, data in buckets.items()
            ],
            'total_count': sum(b['count'] for b in buckets.values()),
            'total_outstanding': str(sum((b['amount'] for b in buckets.values()), ZERO)),
        }


class InvoiceLine(models.Model):
    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='lines')
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('1.00'))
    unit_price = models.DecimalField(max_digits=14, decimal_places=2)
    vat_rate = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    line_total = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    vat_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)

    def __str__(self):
        return self.description

    class Meta:
        db_table = 'invoice_lines'
        ordering = ['id']

    def save(self, *args, **kwargs):
        self.line_total = (self.quantity * self.unit_price).quantize(Decimal('0.01'))
        self.vat_amount = (self.line_total * self.vat_rate / Decimal('100')).quantize(Decimal('0.01'))
        super().save(*args, **kwargs)


class PaymentApplication(models.Model):
    METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('bank_transfer', 'Bank Transfer'),
        ('card', 'Card'),
        ('other', 'Other'),
    ]

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='payments')
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    method = models.CharField(max_length=20, choices=METHOD_CHOICES, default='cash')
    reference = models.CharField(max_length=100, blank=True)
    paid_at = models.DateTimeField(default=timezone.now)
    recorded_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='payments_recorded')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.amount} on {self.invoice.invoice_number}"

    class Meta:
        db_table = 'payment_applications'
        ordering = ['-paid_at']


class ExpenseCategory(models.Model):
    name = models.CharField(max_length=100)
    code = models.CharField(max_length=20, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.code} - {self.name}"

    class Meta:
        db_table = 'expense_categories'
        ordering = ['code']
        verbose_name_plural = 'Expense categories'

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)


class Expense(models.Model):
    """Operating expense going through approval and payment"""
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_PAID = 'paid'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_PAID, 'Paid'),
    ]

    expense_number = models.CharField(max_length=50, unique=True, blank=True)
    category = models.ForeignKey(ExpenseCategory, on_delete=models.PROTECT, related_name='expenses')
    description = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=14, decimal_places=2, validators=[MinValueValidator(Decimal('0.01'))])
    vat_rate = models.DecimalField(max_digits=5, decimal_places=2, default=ZERO)
    vat_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    expense_date = models.DateField(default=timezone.localdate)
    vendor = models.CharField(max_length=200, blank=True)
    payment_method = models.CharField(max_length=20, choices=PaymentApplication.METHOD_CHOICES, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    rejection_reason = models.TextField(blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses_created')
    approved_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='expenses_approved')
    approved_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.expense_number or f"Expense-{self.id}"

    class Meta:
        db_table = 'expenses'
        ordering = ['-expense_date', '-id']

    def save(self, *args, **kwargs):
        if not self.expense_number:
            self.expense_number = generate_document_number('EXP', model=Expense, field='expense_number')
        self.vat_amount = (self.amount * self.vat_rate / Decimal('100')).quantize(Decimal('0.01'))
        self.total_amount = self.amount + self.vat_amount
        super().save(*args, **kwargs)

    def approve(self, user=None):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending expenses can be approved')
        self.status = self.STATUS_APPROVED
        self.approved_by = user
        self.approved_at = timezone.now()
        self.save()

    def reject(self, reason, user=None):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending expenses can be rejected')
        if not reason:
            raise ValidationError('Rejection reason is required')
        self.status = self.STATUS_REJECTED
        self.rejection_reason = reason
        self.approved_by = user
        self.save()

    def pay(self, method='cash'):
        if self.status != self.STATUS_APPROVED:
            raise ValidationError('Only approved expenses can be paid')
        self.status = self.STATUS_PAID
        self.payment_method = method
        self.paid_at = timezone.now()
        self.save()


class ShiftSession(models.Model):
    """Cashier shift with opening float and end-of-day cash count"""
    STATUS_OPEN = 'open'
    STATUS_CLOSED = 'closed'
    STATUS_CHOICES = [
        (STATUS_OPEN, 'Open'),
        (STATUS_CLOSED, 'Closed'),
    ]

    cashier = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='shifts')
    warehouse_name = models.CharField(max_length=100)
    shift_date = models.DateField(default=timezone.localdate)
    opening_balance = models.DecimalField(max_digits=14, decimal_places=2, validators=[MinValueValidator(ZERO)])
    closing_balance = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    expected_balance = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    cash_variance = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_OPEN)
    opened_at = models.DateTimeField(default=timezone.now)
    closed_at = models.DateTimeField(null=True, blank=True)
    duration_minutes = models.PositiveIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True)

    def __str__(self):
        return f"{self.cashier} @ {self.warehouse_name} on {self.shift_date}"

    class Meta:
        db_table = 'shift_sessions'
        ordering = ['-opened_at']
        constraints = [
            models.UniqueConstraint(
                fields=['cashier', 'warehouse_name', 'shift_date'],
                condition=models.Q(status='open'),
                name='uniq_open_shift_per_day',
            ),
        ]

    @property
    def net_transactions(self):
        totals = {t: ZERO for t, _ in ShiftTransaction.TYPE_CHOICES}
        for row in self.transactions.order_by().values('transaction_type').annotate(total=Sum('amount')):
            totals[row['transaction_type']] = row['total']
        return totals['cash_in'] + totals['sale'] - totals['cash_out'] - totals['refund']

    def add_transaction(self, transaction_type, amount, description, reference='', user=None):
        if self.status != self.STATUS_OPEN:
            raise ValidationError('Cannot add transactions to a closed shift')
        if transaction_type not in dict(ShiftTransaction.TYPE_CHOICES):
            raise ValidationError('Invalid transaction type')
        if not description:
            raise ValidationError('Description is required')
        return ShiftTransaction.objects.create(
            shift=self,
            transaction_type=transaction_type,
            amount=_positive(amount),
            description=description,
            reference=reference,
            created_by=user,
        )

    def close(self, actual_cash, notes=''):
        if self.status != self.STATUS_OPEN:
            raise ValidationError('Shift is already closed')
        actual_cash = Decimal(str(actual_cash))
        if actual_cash < 0:
            raise ValidationError('Closing balance cannot be negative')
        net = self.net_transactions
        now = timezone.now()
        self.closing_balance = actual_cash
        self.expected_balance = self.opening_balance + net
        self.cash_variance = actual_cash - self.opening_balance - net
        self.status = self.STATUS_CLOSED
        self.closed_at = now
        self.duration_minutes = int((now - self.opened_at).total_seconds() // 60)
        if notes:
            self.notes = f"{self.notes}\n{notes}".strip()
        self.save()


class ShiftTransaction(models.Model):
    TYPE_CHOICES = [
        ('cash_in', 'Cash In'),
        ('cash_out', 'Cash Out'),
        ('sale', 'Sale'),
        ('refund', 'Refund'),
    ]

    shift = models.ForeignKey(ShiftSession, on_delete=models.CASCADE, related_name='transactions')
    transaction_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    description = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    reference = models.CharField(max_length=100, blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='shift_transactions')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.transaction_type} {self.amount}"

    class Meta:
        db_table = 'shift_transactions'
        ordering = ['-created_at', '-id']
