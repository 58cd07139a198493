from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F
from django.utils import timezone
from django.utils.text import slugify

from backend.catalog.models import Product, Category

DISCOUNT_PERCENTAGE = 'percentage'
DISCOUNT_FIXED_AMOUNT = 'fixed_amount'
DISCOUNT_TYPE_CHOICES = [
    (DISCOUNT_PERCENTAGE, 'Percentage'),
    (DISCOUNT_FIXED_AMOUNT, 'Fixed Amount'),
]


def unique_slug(model, value, instance_pk=None):
    base = slugify(value)[:180] or 'item'
    slug = base
    counter = 2
    queryset = model.objects.all()
    if instance_pk:
        queryset = queryset.exclude(pk=instance_pk)
    while queryset.filter(slug=slug).exists():
        slug = f"{base}-{counter}"
        counter += 1
    return slug


class Post(models.Model):
    """News / blog posts"""
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=200, unique=True, blank=True)
    summary = models.TextField(blank=True)
    body = models.TextField()
    image_url = models.URLField(max_length=500, blank=True)
    is_published = models.BooleanField(default=False)
    published_at = models.DateTimeField(null=True, blank=True)
    author = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='posts')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'posts'
        ordering = ['-published_at', '-created_at']

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(Post, self.title, self.pk)
        if self.is_published and not self.published_at:
            self.published_at = timezone.now()
        super().save(*args, **kwargs)


class CMSPage(models.Model):
    """Static storefront pages with SEO metadata"""
    PAGE_TYPE_CHOICES = [
        ('page', 'Page'),
        ('policy', 'Policy'),
        ('landing', 'Landing'),
        ('faq', 'FAQ'),
    ]

    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=200, unique=True, blank=True)
    content = models.TextField(blank=True)
    meta_title = models.CharField(max_length=255, blank=True)
    meta_description = models.TextField(blank=True)
    meta_keywords = models.CharField(max_length=500, blank=True)
    page_type = models.CharField(max_length=20, choices=PAGE_TYPE_CHOICES, default='page')
    is_published = models.BooleanField(default=False)
    view_count = models.PositiveIntegerField(default=0)
    show_in_menu = models.BooleanField(default=False)
    menu_order = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'cms_pages'
        ordering = ['menu_order', 'title']

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = unique_slug(CMSPage, self.title, self.pk)
        super().save(*args, **kwargs)

    def increment_view_count(self):
        CMSPage.objects.filter(pk=self.pk).update(view_count=F('view_count') + 1)
        self.refresh_from_db(fields=['view_count'])


class Banner(models.Model):
    """Promotional banners by storefront position"""
    POSITION_CHOICES = [
        ('home_main', 'Home Main Slider'),
        ('home_side', 'Home Side'),
        ('category_top', 'Category Top'),
        ('product_detail', 'Product Detail'),
        ('popup', 'Popup'),
    ]
    DEVICE_CHOICES = [
        ('all', 'All Devices'),
        ('desktop', 'Desktop'),
        ('mobile', 'Mobile'),
    ]

    title = models.CharField(max_length=255)
    image_url = models.URLField(max_length=500)
    link_url = models.CharField(max_length=500, blank=True)
    position = models.CharField(max_length=30, choices=POSITION_CHOICES, default='home_main')
    device = models.CharField(max_length=20, choices=DEVICE_CHOICES, default='all')
    display_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.title} ({self.position})"

    class Meta:
        db_table = 'banners'
        ordering = ['position', 'display_order']

    def is_active_now(self, now=None):
        now = now or timezone.now()
        if not self.is_active:
            return False
        if self.start_date and now < self.start_date:
            return False
        if self.end_date and now > self.end_date:
            return False
        return True


class Coupon(models.Model):
    """Order discount codes"""
    code = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255, blank=True)
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPE_CHOICES, default=DISCOUNT_PERCENTAGE)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)
    min_order_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    start_date = models.DateTimeField(default=timezone.now)
    end_date = models.DateTimeField(null=True, blank=True)
    usage_limit = models.PositiveIntegerField(null=True, blank=True)
    usage_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.code

    class Meta:
        db_table = 'coupons'
        ordering = ['-created_at']

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)

    def validation_errors(self, order_amount, now=None):
        """Reasons this coupon cannot be applied (empty when valid)"""
        now = now or timezone.now()
        reasons = []
        if not self.is_active:
            reasons.append('Coupon is not active')
        if now < self.start_date:
            reasons.append('Coupon is not yet valid')
        if self.end_date and now > self.end_date:
            reasons.append('Coupon has expired')
        if self.usage_limit is not None and self.usage_count >= self.usage_limit:
            reasons.append('Coupon usage limit reached')
        if self.min_order_amount is not None and order_amount < self.min_order_amount:
            reasons.append(f'Minimum order amount is {self.min_order_amount}')
        return reasons

    def is_valid(self, order_amount, now=None):
        return not self.validation_errors(order_amount, now)

    def calculate_discount(self, order_amount):
        order_amount = Decimal(order_amount)
        if self.discount_type == DISCOUNT_PERCENTAGE:
            discount = (order_amount * self.discount_value / Decimal('100')).quantize(Decimal('0.01'))
            if self.max_discount_amount is not None and discount > self.max_discount_amount:
                discount = self.max_discount_amount
        else:
            discount = self.discount_value
        return min(discount, order_amount)

    def increment_usage(self):
        Coupon.objects.filter(pk=self.pk).update(usage_count=F('usage_count') + 1)
        self.refresh_from_db(fields=['usage_count'])


class FlashSale(models.Model):
    """Time-boxed price cuts on selected products"""
    STATUS_SCHEDULED = 'scheduled'
    STATUS_ACTIVE = 'active'
    STATUS_ENDED = 'ended'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_ENDED, 'Ended'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    DEFAULT_BADGE_COLOR = '#D70018'

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    image_url = models.URLField(max_length=500, blank=True)
    discount_type = models.CharField(max_length=20, choices=DISCOUNT_TYPE_CHOICES, default=DISCOUNT_PERCENTAGE)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    products = models.ManyToManyField(Product, related_name='flash_sales', blank=True)
    categories = models.ManyToManyField(Category, related_name='flash_sales', blank=True)
    apply_to_all_products = models.BooleanField(default=False)
    max_quantity_per_order = models.PositiveIntegerField(null=True, blank=True)
    total_quantity_limit = models.PositiveIntegerField(null=True, blank=True)
    sold_quantity = models.PositiveIntegerField(default=0)
    display_order = models.IntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SCHEDULED)
    is_active = models.BooleanField(default=True)
    badge_text = models.CharField(max_length=50, blank=True)
    badge_color = models.CharField(max_length=20, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'flash_sales'
        ordering = ['display_order', 'start_time']

    def save(self, *args, **kwargs):
        if not self.badge_text:
            self.badge_text = self.default_badge_text()
        if not self.badge_color:
            self.badge_color = self.DEFAULT_BADGE_COLOR
        super().save(*args, **kwargs)

    def clean(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError('End time must be after start time')

    def default_badge_text(self):
        if self.discount_type == DISCOUNT_PERCENTAGE:
            return f"-{self.discount_value:.0f}%"
        return 'SALE'

    @property
    def is_sold_out(self):
        return self.total_quantity_limit is not None and self.sold_quantity >= self.total_quantity_limit

    def has_ended(self, now=None):
        now = now or timezone.now()
        return now > self.end_time or self.status == self.STATUS_ENDED

    def is_currently_active(self, now=None):
        now = now or timezone.now()
        return (
            self.is_active
            and self.status == self.STATUS_ACTIVE
            and self.start_time <= now <= self.end_time
            and not self.is_sold_out
        )

    def applies_to(self, product):
        if self.apply_to_all_products:
            return True
        if self.products.filter(pk=product.pk).exists():
            return True
        return product.category_id is not None and self.categories.filter(pk=product.category_id).exists()

    def calculate_discount(self, price, now=None):
        if not self.is_currently_active(now):
            return Decimal('0')
        price = Decimal(price)
        if self.discount_type == DISCOUNT_PERCENTAGE:
            discount = (price * self.discount_value / Decimal('100')).quantize(Decimal('0.01'))
        else:
            discount = self.discount_value
        if self.max_discount_amount is not None and discount > self.max_discount_amount:
            discount = self.max_discount_amount
        return min(discount, price)

    def sale_price(self, price, now=None):
        return max(Decimal('0'), Decimal(price) - self.calculate_discount(price, now))

    def update_status(self, now=None):
        now = now or timezone.now()
        if not self.is_active:
            self.status = self.STATUS_CANCELLED
        elif self.is_sold_out or now > self.end_time:
            self.status = self.STATUS_ENDED
        elif self.start_time <= now <= self.end_time:
            self.status = self.STATUS_ACTIVE
        else:
            self.status = self.STATUS_SCHEDULED
        return self.status

    def activate(self, now=None):
        if self.has_ended(now):
            raise ValidationError('Cannot activate ended flash sale')
        self.status = self.STATUS_ACTIVE
        self.is_active = True
        self.save(update_fields=['status', 'is_active', 'updated_at'])

    def cancel(self):
        self.status = self.STATUS_CANCELLED
        self.is_active = False
        self.save(update_fields=['status', 'is_active', 'updated_at'])

    def record_sale(self, quantity=1):
        if self.max_quantity_per_order is not None and quantity > self.max_quantity_per_order:
            raise ValidationError(f'At most {self.max_quantity_per_order} units per order in flash sale {self.name}')
        if self.total_quantity_limit is not None and self.sold_quantity + quantity > self.total_quantity_limit:
            raise ValidationError(f'Flash sale {self.name} is sold out')
        FlashSale.objects.filter(pk=self.pk).update(sold_quantity=F('sold_quantity') + quantity)
        self.refresh_from_db(fields=['sold_quantity'])


def active_flash_sale_for(product, now=None):
    """Best currently running flash sale for a product, or None"""
    now = now or timezone.now()
    best = None
    best_discount = Decimal('0')
    candidates = FlashSale.objects.filter(
        is_active=True, status=FlashSale.STATUS_ACTIVE, start_time__lte=now, end_time__gte=now
    )
    for sale in candidates:
        if not sale.applies_to(product):
            continue
        discount = sale.calculate_discount(product.price, now)
        if discount > best_discount:
            best, best_discount = sale, discount
    return best


class Menu(models.Model):
    """Navigation menu for a storefront location"""
    name = models.CharField(max_length=100)
    location = models.CharField(max_length=50, unique=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name} ({self.location})"

    class Meta:
        db_table = 'menus'


class MenuItem(models.Model):
    menu = models.ForeignKey(Menu, on_delete=models.CASCADE, related_name='items')
    parent = models.ForeignKey('self', on_delete=models.CASCADE, null=True, blank=True, related_name='children')
    title = models.CharField(max_length=100)
    url = models.CharField(max_length=500)
    order = models.IntegerField(default=0)
    open_in_new_tab = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'menu_items'
        ordering = ['order', 'id']


class ContactMessage(models.Model):
    """Storefront contact form submissions"""
    STATUS_CHOICES = [
        ('new', 'New'),
        ('read', 'Read'),
        ('replied', 'Replied'),
    ]

    name = models.CharField(max_length=100)
    email = models.EmailField()
    phone = models.CharField(max_length=20, blank=True)
    subject = models.CharField(max_length=255, blank=True)
    message = models.TextField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='new')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.name}: {self.subject}"

    class Meta:
        db_table = 'contact_messages'
        ordering = ['-created_at']
