from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone

from backend.core.utils import generate_document_number

ZERO = Decimal('0.00')
QUOTE_VALIDITY_DAYS = 7

SERVICE_TYPE_CHOICES = [
    ('in_shop', 'In Shop'),
    ('on_site', 'On Site'),
]


def default_onsite_fee():
    return Decimal(str(getattr(settings, 'ONSITE_SERVICE_FEE', 50)))


class Technician(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='technician_profile')
    name = models.CharField(max_length=100)
    phone = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    specialty = models.CharField(max_length=100, blank=True)
    hourly_rate = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('50.00'))
    is_available = models.BooleanField(default=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'technicians'
        ordering = ['name']


class WorkOrder(models.Model):
    """Repair ticket moving through diagnosis, quote and repair"""
    STATUS_REQUESTED = 'requested'
    STATUS_PENDING = 'pending'
    STATUS_ASSIGNED = 'assigned'
    STATUS_DECLINED = 'declined'
    STATUS_DIAGNOSED = 'diagnosed'
    STATUS_QUOTED = 'quoted'
    STATUS_AWAITING_APPROVAL = 'awaiting_approval'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_ON_HOLD = 'on_hold'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_REQUESTED, 'Requested'),
        (STATUS_PENDING, 'Pending'),
        (STATUS_ASSIGNED, 'Assigned'),
        (STATUS_DECLINED, 'Declined'),
        (STATUS_DIAGNOSED, 'Diagnosed'),
        (STATUS_QUOTED, 'Quoted'),
        (STATUS_AWAITING_APPROVAL, 'Awaiting Approval'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_IN_PROGRESS, 'In Progress'),
        (STATUS_ON_HOLD, 'On Hold'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    TERMINAL_STATUSES = [STATUS_COMPLETED, STATUS_CANCELLED]
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('normal', 'Normal'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    ticket_number = models.CharField(max_length=50, unique=True, blank=True)
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='work_orders')
    customer_name = models.CharField(max_length=100)
    customer_phone = models.CharField(max_length=20, blank=True)
    customer_email = models.EmailField(blank=True)
    device_model = models.CharField(max_length=200)
    serial_number = models.CharField(max_length=100, blank=True, db_index=True)
    issue_description = models.TextField()
    service_type = models.CharField(max_length=20, choices=SERVICE_TYPE_CHOICES, default='in_shop')
    service_address = models.TextField(blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='normal')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_REQUESTED)
    technician = models.ForeignKey(Technician, on_delete=models.SET_NULL, null=True, blank=True, related_name='work_orders')
    diagnosis = models.TextField(blank=True)
    technical_notes = models.TextField(blank=True)
    estimated_cost = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    parts_cost = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    labor_cost = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    service_fee = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    actual_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_warranty_repair = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    assigned_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return self.ticket_number or f"WorkOrder-{self.id}"

    class Meta:
        db_table = 'work_orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status'], name='idx_work_order_status'),
            models.Index(fields=['technician', 'status'], name='idx_work_order_tech_status'),
        ]

    def save(self, *args, **kwargs):
        if not self.ticket_number:
            self.ticket_number = generate_document_number('TKT', hex_length=6, model=WorkOrder, field='ticket_number')
        super().save(*args, **kwargs)

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def log(self, activity_type, description, user=None, old_status='', new_status=''):
        return WorkOrderActivityLog.objects.create(
            work_order=self,
            activity_type=activity_type,
            description=description,
            old_status=old_status,
            new_status=new_status,
            user=user if user is not None and user.is_authenticated else None,
        )

    def _move(self, allowed, new_status, action, user=None, description=None, stamp=None):
        if self.status not in allowed:
            raise ValidationError(f'Cannot {action} work order in {self.status} status')
        old_status = self.status
        self.status = new_status
        if stamp:
            setattr(self, stamp, timezone.now())
        self.save()
        self.log('status_change', description or f'Status changed from {old_status} to {new_status}',
                 user, old_status, new_status)

    def assign(self, technician, user=None):
        if not technician.is_active:
            raise ValidationError('Technician is not active')
        self.technician = technician
        self._move([self.STATUS_REQUESTED, self.STATUS_PENDING, self.STATUS_DECLINED], self.STATUS_ASSIGNED,
                   'assign', user, f'Assigned to {technician.name}', 'assigned_at')

    def accept(self, user=None):
        if self.status != self.STATUS_ASSIGNED:
            raise ValidationError(f'Cannot accept work order in {self.status} status')
        self.accepted_at = timezone.now()
        self.save(update_fields=['accepted_at', 'updated_at'])
        self.log('assignment', f'Accepted by {self.technician.name if self.technician else "technician"}', user)

    def decline(self, reason='', user=None):
        if self.status != self.STATUS_ASSIGNED:
            raise ValidationError(f'Cannot decline work order in {self.status} status')
        name = self.technician.name if self.technician else 'technician'
        self.technician = None
        self.accepted_at = None
        self._move([self.STATUS_ASSIGNED], self.STATUS_DECLINED, 'decline', user,
                   f'Declined by {name}' + (f': {reason}' if reason else ''))

    def diagnose(self, diagnosis, user=None):
        if not diagnosis:
            raise ValidationError('Diagnosis is required')
        self.diagnosis = diagnosis
        self._move([self.STATUS_ASSIGNED], self.STATUS_DIAGNOSED, 'diagnose', user)

    def create_quote(self, labor_cost=ZERO, service_fee=None, notes='', user=None):
        """Price the repair from recorded parts plus labor and fee"""
        if self.status not in (self.STATUS_DIAGNOSED, self.STATUS_QUOTED):
            raise ValidationError(f'Cannot create quote for work order in {self.status} status')
        self.quotes.filter(status=RepairQuote.STATUS_PENDING).update(status=RepairQuote.STATUS_EXPIRED)
        quote = RepairQuote(
            work_order=self,
            parts_cost=self.parts_cost,
            labor_cost=Decimal(str(labor_cost)),
            service_fee=self.service_fee if service_fee is None else Decimal(str(service_fee)),
            notes=notes,
            created_by=user if user is not None and user.is_authenticated else None,
        )
        quote.update_costs(quote.parts_cost, quote.labor_cost, quote.service_fee, save=False)
        quote.save()
        self.labor_cost = quote.labor_cost
        self.service_fee = quote.service_fee
        self.estimated_cost = quote.total_amount
        if self.status == self.STATUS_DIAGNOSED:
            self._move([self.STATUS_DIAGNOSED], self.STATUS_QUOTED, 'quote', user)
        else:
            self.save()
        self.log('quote_generated', f'Quote {quote.quote_number} for {quote.total_amount}', user)
        return quote

    def await_approval(self, user=None):
        self._move([self.STATUS_QUOTED], self.STATUS_AWAITING_APPROVAL, 'request approval for', user)

    @property
    def current_quote(self):
        return self.quotes.filter(status=RepairQuote.STATUS_PENDING).order_by('-created_at').first()

    def approve_quote(self, user=None):
        if self.status not in (self.STATUS_AWAITING_APPROVAL, self.STATUS_QUOTED):
            raise ValidationError(f'Cannot approve quote for work order in {self.status} status')
        quote = self.current_quote
        if quote is None:
            raise ValidationError('No pending quote to approve')
        quote.approve()
        self.estimated_cost = quote.total_amount
        self._move([self.STATUS_AWAITING_APPROVAL, self.STATUS_QUOTED], self.STATUS_APPROVED, 'approve', user,
                   f'Quote {quote.quote_number} approved')
        return quote

    def reject_quote(self, reason, user=None):
        if self.status not in (self.STATUS_AWAITING_APPROVAL, self.STATUS_QUOTED):
            raise ValidationError(f'Cannot reject quote for work order in {self.status} status')
        quote = self.current_quote
        if quote is None:
            raise ValidationError('No pending quote to reject')
        quote.reject(reason)
        self._move([self.STATUS_AWAITING_APPROVAL, self.STATUS_QUOTED], self.STATUS_REJECTED, 'reject', user,
                   f'Quote {quote.quote_number} rejected: {reason}')
        return quote

    def start(self, user=None):
        self._move([self.STATUS_ASSIGNED, self.STATUS_APPROVED], self.STATUS_IN_PROGRESS, 'start', user,
                   stamp='started_at')

    def hold(self, reason='', user=None):
        self._move([self.STATUS_IN_PROGRESS], self.STATUS_ON_HOLD, 'hold', user,
                   'Put on hold' + (f': {reason}' if reason else ''))

    def resume(self, user=None):
        self._move([self.STATUS_ON_HOLD], self.STATUS_IN_PROGRESS, 'resume', user)

    def complete(self, user=None):
        self.actual_cost = self.parts_cost + self.labor_cost + self.service_fee
        self._move([self.STATUS_IN_PROGRESS, self.STATUS_ON_HOLD], self.STATUS_COMPLETED, 'complete', user,
                   stamp='completed_at')

    def cancel(self, reason='', user=None):
        allowed = [s for s, _ in self.STATUS_CHOICES if s not in self.TERMINAL_STATUSES]
        self._move(allowed, self.STATUS_CANCELLED, 'cancel', user,
                   'Cancelled' + (f': {reason}' if reason else ''), 'cancelled_at')

    def add_note(self, note, user=None):
        if not note:
            raise ValidationError('Note cannot be empty')
        stamp = timezone.now().strftime('%Y-%m-%d %H:%M')
        author = f' {user.username}' if user is not None and user.is_authenticated else ''
        entry = f"[{stamp}{author}] {note}"
        self.technical_notes = f"{self.technical_notes}\n{entry}".strip()
        self.save(update_fields=['technical_notes', 'updated_at'])
        self.log('note', note, user)

    def recalculate_parts_cost(self):
        self.parts_cost = self.parts.aggregate(total=Sum('total_price'))['total'] or ZERO
        self.save(update_fields=['parts_cost', 'updated_at'])

    def add_part(self, part_name, quantity, unit_price, part_number='', user=None):
        if self.is_terminal:
            raise ValidationError(f'Cannot add parts to a {self.status} work order')
        if quantity <= 0:
            raise ValidationError('Quantity must be greater than 0')
        if Decimal(str(unit_price)) < 0:
            raise ValidationError('Unit price cannot be negative')
        part = WorkOrderPart.objects.create(
            work_order=self, part_name=part_name, part_number=part_number,
            quantity=quantity, unit_price=Decimal(str(unit_price)),
        )
        self.recalculate_parts_cost()
        self.log('part_added', f'Added {quantity} x {part_name}', user)
        return part

    def remove_part(self, part, user=None):
        if self.is_terminal:
            raise ValidationError(f'Cannot remove parts from a {self.status} work order')
        name = part.part_name
        part.delete()
        self.recalculate_parts_cost()
        self.log('part_added', f'Removed {name}', user)


class WorkOrderPart(models.Model):
    work_order = models.ForeignKey(WorkOrder, on_delete=models.CASCADE, related_name='parts')
    part_name = models.CharField(max_length=200)
    part_number = models.CharField(max_length=100, blank=True)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(ZERO)])
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.part_name} x {self.quantity}"

    class Meta:
        db_table = 'work_order_parts'
        ordering = ['id']

    def save(self, *args, **kwargs):
        self.total_price = self.unit_price * self.quantity
        super().save(*args, **kwargs)


class WorkOrderActivityLog(models.Model):
    ACTIVITY_TYPE_CHOICES = [
        ('status_change', 'Status Change'),
        ('part_added', 'Parts'),
        ('quote_generated', 'Quote Generated'),
        ('note', 'Note'),
        ('assignment', 'Assignment'),
    ]

    work_order = models.ForeignKey(WorkOrder, on_delete=models.CASCADE, related_name='activity_logs')
    activity_type = models.CharField(max_length=20, choices=ACTIVITY_TYPE_CHOICES)
    description = models.TextField()
    old_status = models.CharField(max_length=20, blank=True)
    new_status = models.CharField(max_length=20, blank=True)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='work_order_activity')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.work_order.ticket_number}: {self.activity_type}"

    class Meta:
        db_table = 'work_order_activity_logs'
        ordering = ['-created_at', '-id']


def default_quote_expiry():
    return timezone.now() + timedelta(days=QUOTE_VALIDITY_DAYS)


class RepairQuote(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_EXPIRED = 'expired'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_EXPIRED, 'Expired'),
    ]

    work_order = models.ForeignKey(WorkOrder, on_delete=models.CASCADE, related_name='quotes')
    quote_number = models.CharField(max_length=50, unique=True, blank=True)
    parts_cost = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    labor_cost = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    service_fee = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    valid_until = models.DateTimeField(default=default_quote_expiry)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    notes = models.TextField(blank=True)
    rejection_reason = models.TextField(blank=True)
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='repair_quotes')
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.quote_number or f"Quote-{self.id}"

    class Meta:
        db_table = 'repair_quotes'
        ordering = ['-created_at']

    def save(self, *args, **kwargs):
        if not self.quote_number:
            self.quote_number = generate_document_number('QT', hex_length=6, model=RepairQuote, field='quote_number')
        super().save(*args, **kwargs)

    def is_expired(self, now=None):
        now = now or timezone.now()
        return self.status == self.STATUS_EXPIRED or now > self.valid_until

    def _require_open(self, action):
        if self.status != self.STATUS_PENDING:
            raise ValidationError(f'Only pending quotes can be {action}')
        if self.is_expired():
            raise ValidationError('Quote has expired')

    def approve(self):
        self._require_open('approved')
        self.status = self.STATUS_APPROVED
        self.approved_at = timezone.now()
        self.save(update_fields=['status', 'approved_at'])

    def reject(self, reason):
        if not reason:
            raise ValidationError('Rejection reason is required')
        self._require_open('rejected')
        self.status = self.STATUS_REJECTED
        self.rejection_reason = reason
        self.rejected_at = timezone.now()
        self.save(update_fields=['status', 'rejection_reason', 'rejected_at'])

    def expire(self):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending quotes can be expired')
        self.status = self.STATUS_EXPIRED
        self.save(update_fields=['status'])

    def update_costs(self, parts_cost, labor_cost, service_fee, save=True):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending quotes can be updated')
        costs = [Decimal(str(v)) for v in (parts_cost, labor_cost, service_fee)]
        if any(v < 0 for v in costs):
            raise ValidationError('Costs cannot be negative')
        self.parts_cost, self.labor_cost, self.service_fee = costs
        self.total_amount = sum(costs, ZERO)
        if save:
            self.save(update_fields=['parts_cost', 'labor_cost', 'service_fee', 'total_amount'])


class ServiceBooking(models.Model):
    """Customer request for an in-shop or on-site repair appointment"""
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_CONVERTED = 'converted'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_CONVERTED, 'Converted'),
    ]

    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='service_bookings')
    customer_name = models.CharField(max_length=100)
    customer_phone = models.CharField(max_length=20)
    service_type = models.CharField(max_length=20, choices=SERVICE_TYPE_CHOICES, default='in_shop')
    device_model = models.CharField(max_length=200)
    serial_number = models.CharField(max_length=100, blank=True)
    issue_description = models.TextField()
    preferred_date = models.DateTimeField()
    address = models.TextField(blank=True)
    service_fee = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    rejection_reason = models.TextField(blank=True)
    work_order = models.OneToOneField(WorkOrder, on_delete=models.SET_NULL, null=True, blank=True, related_name='booking')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.customer_name} - {self.device_model} ({self.status})"

    class Meta:
        db_table = 'service_bookings'
        ordering = ['-created_at']

    def clean(self):
        if self.service_type == 'on_site' and not self.address:
            raise ValidationError('Address is required for on-site service')

    def save(self, *args, **kwargs):
        if self.service_type == 'on_site' and not self.service_fee:
            self.service_fee = default_onsite_fee()
        super().save(*args, **kwargs)

    def approve(self):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending bookings can be approved')
        self.status = self.STATUS_APPROVED
        self.save(update_fields=['status', 'updated_at'])

    def reject(self, reason):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending bookings can be rejected')
        if not reason:
            raise ValidationError('Rejection reason is required')
        self.status = self.STATUS_REJECTED
        self.rejection_reason = reason
        self.save(update_fields=['status', 'rejection_reason', 'updated_at'])

    def convert(self, user=None, priority='normal'):
        """Open a work order from an approved booking"""
        if self.status != self.STATUS_APPROVED:
            raise ValidationError('Only approved bookings can be converted')
        work_order = WorkOrder.objects.create(
            customer=self.customer,
            customer_name=self.customer_name,
            customer_phone=self.customer_phone,
            customer_email=self.customer.email,
            device_model=self.device_model,
            serial_number=self.serial_number,
            issue_description=self.issue_description,
            service_type=self.service_type,
            service_address=self.address,
            service_fee=self.service_fee,
            priority=priority,
            status=WorkOrder.STATUS_PENDING,
        )
        work_order.log('status_change', f'Created from booking #{self.id}', user, '', WorkOrder.STATUS_PENDING)
        self.work_order = work_order
        self.status = self.STATUS_CONVERTED
        self.save(update_fields=['work_order', 'status', 'updated_at'])
        return work_order
