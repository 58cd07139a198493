from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from backend.catalog.models import Product
from backend.core.utils import generate_document_number


class Cart(models.Model):
    """One shopping cart per customer"""
    customer = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='cart')
    coupon_code = models.CharField(max_length=50, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Cart of {self.customer}"

    class Meta:
        db_table = 'carts'

    @property
    def total_amount(self):
        return sum((item.subtotal for item in self.items.all()), Decimal('0.00'))

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items.all())

    def add_item(self, product, quantity=1):
        """Add a product, merging with an existing line"""
        if quantity <= 0:
            raise ValidationError('Quantity must be greater than 0')
        item, created = CartItem.objects.get_or_create(
            cart=self, product=product,
            defaults={'product_name': product.name, 'price': product.price, 'quantity': quantity},
        )
        if not created:
            item.quantity += quantity
            item.price = product.price
            item.save(update_fields=['quantity', 'price', 'updated_at'])
        self.save(update_fields=['updated_at'])
        return item

    def update_item_quantity(self, product_id, quantity):
        """Set a line's quantity; zero or less removes the line"""
        item = self.items.filter(product_id=product_id).first()
        if item is None:
            raise ValidationError('Item not found in cart')
        if quantity <= 0:
            item.delete()
            return None
        item.quantity = quantity
        item.save(update_fields=['quantity', 'updated_at'])
        return item

    def remove_item(self, product_id):
        deleted, _ = self.items.filter(product_id=product_id).delete()
        if not deleted:
            raise ValidationError('Item not found in cart')

    def clear(self):
        self.items.all().delete()
        self.coupon_code = ''
        self.save(update_fields=['coupon_code', 'updated_at'])


class CartItem(models.Model):
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='cart_items')
    product_name = models.CharField(max_length=200)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product_name} x {self.quantity}"

    class Meta:
        db_table = 'cart_items'
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['cart', 'product'], name='uniq_cart_product'),
        ]

    @property
    def subtotal(self):
        return self.price * self.quantity


class Order(models.Model):
    """Customer order placed through checkout"""
    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_PAID = 'paid'
    STATUS_SHIPPED = 'shipped'
    STATUS_DELIVERED = 'delivered'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_PAID, 'Paid'),
        (STATUS_SHIPPED, 'Shipped'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    CANCELLABLE_STATUSES = [STATUS_PENDING, STATUS_CONFIRMED]

    # Timestamp stamped when the order enters each status
    STATUS_TIMESTAMPS = {
        STATUS_CONFIRMED: 'confirmed_at',
        STATUS_PAID: 'paid_at',
        STATUS_SHIPPED: 'shipped_at',
        STATUS_DELIVERED: 'delivered_at',
        STATUS_CANCELLED: 'cancelled_at',
    }

    order_number = models.CharField(max_length=50, unique=True, blank=True)
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    coupon_code = models.CharField(max_length=50, blank=True)
    shipping_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    shipping_address = models.TextField(blank=True)
    is_pickup = models.BooleanField(default=False)
    notes = models.TextField(blank=True)
    order_date = models.DateTimeField(default=timezone.now)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.order_number or f"Order-{self.id}"

    class Meta:
        db_table = 'orders'
        ordering = ['-order_date']
        indexes = [
            models.Index(fields=['customer', '-order_date'], name='idx_order_customer_date'),
            models.Index(fields=['status'], name='idx_order_status'),
        ]

    def save(self, *args, **kwargs):
        if not self.order_number:
            self.order_number = generate_document_number('ORD', model=Order, field='order_number')
        super().save(*args, **kwargs)

    def recalculate_total(self):
        self.total_amount = self.subtotal - self.discount_amount + self.shipping_amount + self.tax_amount
        return self.total_amount

    def set_status(self, status, now=None):
        if status not in dict(self.STATUS_CHOICES):
            raise ValidationError('Invalid status')
        if self.status == self.STATUS_CANCELLED:
            raise ValidationError('Cancelled orders cannot change status')
        now = now or timezone.now()
        self.status = status
        update_fields = ['status', 'updated_at']
        stamp = self.STATUS_TIMESTAMPS.get(status)
        if stamp:
            setattr(self, stamp, now)
            update_fields.append(stamp)
        self.save(update_fields=update_fields)

    @property
    def can_cancel(self):
        return self.status in self.CANCELLABLE_STATUSES

    def cancel(self, reason=''):
        """Cancel a pending or confirmed order and put its stock back"""
        if not self.can_cancel:
            raise ValidationError(f'Cannot cancel order in {self.status} status')
        for item in self.items.select_related('product'):
            item.product.increase_stock(item.quantity)
        if reason:
            self.notes = f"{self.notes}\nCancelled: {reason}".strip()
            self.save(update_fields=['notes', 'updated_at'])
        self.set_status(self.STATUS_CANCELLED)


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')
    product_name = models.CharField(max_length=200)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    original_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    flash_sale = models.ForeignKey('content.FlashSale', on_delete=models.SET_NULL, null=True, blank=True, related_name='order_items')
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    def __str__(self):
        return f"{self.product_name} x {self.quantity}"

    class Meta:
        db_table = 'order_items'
        ordering = ['id']

    def save(self, *args, **kwargs):
        self.subtotal = self.unit_price * self.quantity
        super().save(*args, **kwargs)


class ReturnRequest(models.Model):
    """Customer request to return a delivered order line"""
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_REFUNDED = 'refunded'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_REFUNDED, 'Refunded'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    REASON_CHOICES = [
        ('defective', 'Defective'),
        ('wrong_item', 'Wrong Item'),
        ('not_as_described', 'Not As Described'),
        ('changed_mind', 'Changed Mind'),
        ('other', 'Other'),
    ]
    REFUND_METHOD_CHOICES = [
        ('original_payment', 'Original Payment'),
        ('bank_transfer', 'Bank Transfer'),
        ('cash', 'Cash'),
        ('store_credit', 'Store Credit'),
    ]

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='return_requests')
    order_item = models.ForeignKey(OrderItem, on_delete=models.CASCADE, related_name='return_requests')
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='return_requests')
    quantity = models.PositiveIntegerField(default=1)
    reason = models.CharField(max_length=30, choices=REASON_CHOICES)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    refund_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    refund_method = models.CharField(max_length=30, choices=REFUND_METHOD_CHOICES, blank=True)
    customer_notes = models.TextField(blank=True)
    rejection_reason = models.TextField(blank=True)
    processed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='processed_returns')
    requested_at = models.DateTimeField(auto_now_add=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Return #{self.id} for {self.order.order_number}"

    class Meta:
        db_table = 'return_requests'
        ordering = ['-requested_at']

    def approve(self, user=None):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending return requests can be approved')
        self.status = self.STATUS_APPROVED
        self.approved_at = timezone.now()
        self.processed_by = user
        self.save(update_fields=['status', 'approved_at', 'processed_by'])

    def reject(self, reason, user=None):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending return requests can be rejected')
        if not reason:
            raise ValidationError('Rejection reason is required')
        self.status = self.STATUS_REJECTED
        self.rejection_reason = reason
        self.rejected_at = timezone.now()
        self.processed_by = user
        self.save(update_fields=['status', 'rejection_reason', 'rejected_at', 'processed_by'])

    def process_refund(self, refund_method='original_payment', user=None):
        if self.status != self.STATUS_APPROVED:
            raise ValidationError('Only approved return requests can be refunded')
        self.status = self.STATUS_REFUNDED
        self.refund_method = refund_method
        self.refunded_at = timezone.now()
        if user is not None:
            self.processed_by = user
        self.save(update_fields=['status', 'refund_method', 'refunded_at', 'processed_by'])

    def complete(self):
        """Close the return and put the returned units back in stock"""
        if self.status != self.STATUS_REFUNDED:
            raise ValidationError('Only refunded return requests can be completed')
        self.order_item.product.increase_stock(self.quantity)
        self.status = self.STATUS_COMPLETED
        self.completed_at = timezone.now()
        self.save(update_fields=['status', 'completed_at'])

    def cancel(self):
        if self.status != self.STATUS_PENDING:
            raise ValidationError('Only pending return requests can be cancelled')
        self.status = self.STATUS_CANCELLED
        self.save(update_fields=['status'])
