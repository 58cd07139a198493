import calendar
from datetime import date

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from backend.catalog.models import Product
from backend.core.utils import generate_document_number


def add_months(start, months):
    """Same day N months later, clamped to the end of shorter months"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class ProductWarranty(models.Model):
    """Warranty registered against one serial number"""
    STATUS_ACTIVE = 'active'
    STATUS_EXPIRED = 'expired'
    STATUS_VOIDED = 'voided'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_EXPIRED, 'Expired'),
        (STATUS_VOIDED, 'Voided'),
    ]

    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='warranties')
    serial_number = models.CharField(max_length=100, unique=True)
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='warranties')
    customer_name = models.CharField(max_length=100, blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)
    order_number = models.CharField(max_length=50, blank=True, db_index=True)
    invoice_number = models.CharField(max_length=50, blank=True, db_index=True)
    purchase_date = models.DateField(default=timezone.localdate)
    warranty_months = models.PositiveIntegerField()
    expiration_date = models.DateField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    void_reason = models.TextField(blank=True)
    voided_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.serial_number} ({self.product.name})"

    class Meta:
        db_table = 'product_warranties'
        ordering = ['-purchase_date', '-id']
        verbose_name_plural = 'Product warranties'

    def save(self, *args, **kwargs):
        self.expiration_date = add_months(self.purchase_date, self.warranty_months)
        super().save(*args, **kwargs)

    def is_valid(self, today=None):
        today = today or timezone.localdate()
        return self.status == self.STATUS_ACTIVE and today <= self.expiration_date

    def is_expired(self, today=None):
        today = today or timezone.localdate()
        return self.status == self.STATUS_EXPIRED or today > self.expiration_date

    @property
    def days_remaining(self):
        if self.status == self.STATUS_VOIDED:
            return 0
        return max((self.expiration_date - timezone.localdate()).days, 0)

    def void(self, reason):
        if self.status == self.STATUS_VOIDED:
            raise ValidationError('Warranty is already voided')
        if not reason:
            raise ValidationError('Void reason is required')
        self.status = self.STATUS_VOIDED
        self.void_reason = reason
        self.voided_at = timezone.now()
        self.save(update_fields=['status', 'void_reason', 'voided_at', 'updated_at'])


def refresh_expired_warranties(today=None):
    today = today or timezone.localdate()
    return ProductWarranty.objects.filter(
        status=ProductWarranty.STATUS_ACTIVE, expiration_date__lt=today
    ).update(status=ProductWarranty.STATUS_EXPIRED, updated_at=timezone.now())


def register_order_warranties(order, serial_numbers):
    """
    Register warranties for a delivered order.

    serial_numbers maps order item ids to the serials shipped for that line.
    Lines whose product carries no warranty are skipped.
    """
    purchase_date = timezone.localdate(order.delivered_at) if order.delivered_at else timezone.localdate()
    customer = order.customer
    items = {str(item.id): item for item in order.items.select_related('product')}
    registered = []
    for item_id, serials in serial_numbers.items():
        item = items.get(str(item_id))
        if item is None:
            raise ValidationError(f'Order item {item_id} does not belong to order {order.order_number}')
        if isinstance(serials, str):
            serials = [serials]
        if len(serials) > item.quantity:
            raise ValidationError(f'Too many serial numbers for {item.product_name}')
        if not item.product.warranty_months:
            continue
        for serial in serials:
            serial = serial.strip()
            if not serial:
                continue
            if ProductWarranty.objects.filter(serial_number=serial).exists():
                raise ValidationError(f'Serial number {serial} is already registered')
            registered.append(ProductWarranty.objects.create(
                product=item.product,
                serial_number=serial,
                customer=customer,
                customer_name=customer.get_full_name() or customer.username,
                customer_phone=customer.phone or '',
                order_number=order.order_number,
                purchase_date=purchase_date,
                warranty_months=item.product.warranty_months,
            ))
    return registered


class WarrantyClaim(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_RESOLVED = 'resolved'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_RESOLVED, 'Resolved'),
    ]
    OPEN_STATUSES = [STATUS_PENDING, STATUS_APPROVED]
    RESOLUTION_CHOICES = [
        ('repair', 'Repair'),
        ('replace', 'Replace'),
        ('refund', 'Refund'),
    ]

    claim_number = models.CharField(max_length=50, unique=True, blank=True)
    warranty = models.ForeignKey(ProductWarranty, on_delete=models.PROTECT, related_name='claims')
    serial_number = models.CharField(max_length=100, db_index=True)
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='warranty_claims')
    issue_description = models.TextField()
    preferred_resolution = models.CharField(max_length=20, choices=RESOLUTION_CHOICES, default='repair')
    attachment_urls = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    is_manager_override = models.BooleanField(default=False)
    resolution_notes = models.TextField(blank=True)
    rejection_reason = models.TextField(blank=True)
    work_order = models.ForeignKey('repair.WorkOrder', on_delete=models.SET_NULL, null=True, blank=True, related_name='warranty_claims')
    reviewed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='reviewed_warranty_claims')
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.claim_number or f"Claim-{self.id}"

    class Meta:
        db_table = 'warranty_claims'
        ordering = ['-created_at']

    def save(self, *args, **kwargs):
        if not self.claim_number:
            self.claim_number = generate_document_number('WC', hex_length=6, model=WarrantyClaim, field='claim_number')
        super().save(*args, **kwargs)

    def approve(self, user=None, notes='', create_work_order=False):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending claims can be approved')
        if create_work_order:
            from backend.repair.models import WorkOrder
            warranty = self.warranty
            self.work_order = WorkOrder.objects.create(
                customer=self.customer or warranty.customer,
                customer_name=warranty.customer_name or (self.customer.username if self.customer else 'Warranty customer'),
                customer_phone=warranty.customer_phone,
                device_model=warranty.product.name,
                serial_number=self.serial_number,
                issue_description=self.issue_description,
                status=WorkOrder.STATUS_PENDING,
                is_warranty_repair=True,
            )
            self.work_order.log('status_change', f'Opened from warranty claim {self.claim_number}', user,
                                '', WorkOrder.STATUS_PENDING)
        self.status = self.STATUS_APPROVED
        self.resolution_notes = notes or self.resolution_notes
        self.reviewed_by = user
        self.approved_at = timezone.now()
        self.save()

    def reject(self, reason, user=None):
        if self.status in (self.STATUS_REJECTED, self.STATUS_RESOLVED):
            raise ValidationError(f'Cannot reject a {self.status} claim')
        if not reason:
            raise ValidationError('Rejection reason is required')
        self.status = self.STATUS_REJECTED
        self.rejection_reason = reason
        self.reviewed_by = user
        self.rejected_at = timezone.now()
        self.save()

    def resolve(self, notes='', user=None):
        if self.status != self.STATUS_APPROVED:
            raise ValidationError('Only approved claims can be resolved')
        self.status = self.STATUS_RESOLVED
        if notes:
            self.resolution_notes = notes
        if user is not None:
            self.reviewed_by = user
        self.resolved_at = timezone.now()
        self.save()
