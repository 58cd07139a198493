from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Avg, F


class Category(models.Model):
    """Product categories"""
    name = models.CharField(max_length=200, db_index=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        verbose_name_plural = 'categories'
        ordering = ['name']


class Brand(models.Model):
    """Product brands"""
    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'brands'
        ordering = ['name']


class Product(models.Model):
    """Product master"""
    name = models.CharField(max_length=200, db_index=True)
    sku = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal('0'))])
    old_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    cost_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    category = models.ForeignKey(Category, on_delete=models.PROTECT, null=True, blank=True, related_name='products')
    brand = models.ForeignKey(Brand, on_delete=models.PROTECT, null=True, blank=True, related_name='products')
    stock_quantity = models.IntegerField(default=0)
    low_stock_threshold = models.IntegerField(default=5)
    specifications = models.JSONField(default=dict, blank=True)
    warranty_months = models.PositiveIntegerField(default=0)
    warranty_info = models.TextField(blank=True)
    image_url = models.URLField(max_length=500, blank=True)
    is_active = models.BooleanField(default=True)
    is_featured = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.sku})"

    class Meta:
        db_table = 'products'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_active', 'category'], name='idx_product_active_category'),
            models.Index(fields=['is_active', 'brand'], name='idx_product_active_brand'),
            models.Index(fields=['price'], name='idx_product_price'),
        ]

    @property
    def in_stock(self):
        return self.stock_quantity > 0

    @property
    def is_low_stock(self):
        return 0 < self.stock_quantity <= self.low_stock_threshold

    @property
    def discount_percentage(self):
        if self.old_price and self.old_price > self.price:
            return int((self.old_price - self.price) * 100 / self.old_price)
        return 0

    def average_rating(self):
        result = self.reviews.filter(is_approved=True).aggregate(avg=Avg('rating'))['avg']
        return round(result, 1) if result is not None else None

    def decrease_stock(self, quantity):
        """Atomically take quantity units out of stock"""
        Product.objects.filter(pk=self.pk).update(stock_quantity=F('stock_quantity') - quantity)
        self.refresh_from_db(fields=['stock_quantity'])

    def increase_stock(self, quantity):
        Product.objects.filter(pk=self.pk).update(stock_quantity=F('stock_quantity') + quantity)
        self.refresh_from_db(fields=['stock_quantity'])


class ProductReview(models.Model):
    """Customer reviews, visible once approved"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='reviews')
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='product_reviews')
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    title = models.CharField(max_length=200, blank=True)
    comment = models.TextField(blank=True)
    is_verified_purchase = models.BooleanField(default=False)
    is_approved = models.BooleanField(default=False)
    helpful_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.name} - {self.rating}/5"

    class Meta:
        db_table = 'product_reviews'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['product', 'customer'], name='uniq_review_per_customer'),
        ]

    def approve(self):
        self.is_approved = True
        self.save(update_fields=['is_approved', 'updated_at'])

    def mark_helpful(self):
        ProductReview.objects.filter(pk=self.pk).update(helpful_count=F('helpful_count') + 1)
        self.refresh_from_db(fields=['helpful_count'])
