from django.contrib import admin
from .models import Post, CMSPage, Banner, Coupon, FlashSale, Menu, MenuItem, ContactMessage


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    list_display = ['title', 'slug', 'is_published', 'published_at', 'author']
    list_filter = ['is_published', 'created_at']
    search_fields = ['title', 'summary', 'body']
    prepopulated_fields = {'slug': ('title',)}


@admin.register(CMSPage)
class CMSPageAdmin(admin.ModelAdmin):
    list_display = ['title', 'slug', 'page_type', 'is_published', 'view_count', 'show_in_menu']
    list_filter = ['page_type', 'is_published', 'show_in_menu']
    search_fields = ['title', 'slug', 'content']
    readonly_fields = ['view_count', 'created_at', 'updated_at']


@admin.register(Banner)
class BannerAdmin(admin.ModelAdmin):
    list_display = ['title', 'position', 'device', 'display_order', 'is_active', 'start_date', 'end_date']
    list_filter = ['position', 'device', 'is_active']
    search_fields = ['title']


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ['code', 'discount_type', 'discount_value', 'usage_count', 'usage_limit', 'is_active', 'end_date']
    list_filter = ['discount_type', 'is_active']
    search_fields = ['code', 'description']
    readonly_fields = ['usage_count', 'created_at', 'updated_at']


@admin.register(FlashSale)
class FlashSaleAdmin(admin.ModelAdmin):
    list_display = ['name', 'status', 'discount_type', 'discount_value', 'start_time', 'end_time', 'sold_quantity']
    list_filter = ['status', 'is_active', 'discount_type']
    search_fields = ['name']
    filter_horizontal = ['products', 'categories']
    readonly_fields = ['sold_quantity', 'created_at', 'updated_at']


class MenuItemInline(admin.TabularInline):
    model = MenuItem
    extra = 0


@admin.register(Menu)
class MenuAdmin(admin.ModelAdmin):
    list_display = ['name', 'location', 'is_active']
    inlines = [MenuItemInline]


@admin.register(ContactMessage)
class ContactMessageAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'subject', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['name', 'email', 'subject', 'message']
