from django.contrib import admin
from .models import Cart, CartItem, Order, OrderItem, ReturnRequest


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ['customer', 'coupon_code', 'updated_at']
    search_fields = ['customer__username']
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['product', 'product_name', 'unit_price', 'original_price', 'flash_sale', 'quantity', 'subtotal']


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'customer', 'status', 'total_amount', 'is_pickup', 'order_date']
    list_filter = ['status', 'is_pickup', 'order_date']
    search_fields = ['order_number', 'customer__username', 'customer__email']
    ordering = ['-order_date']
    inlines = [OrderItemInline]
    readonly_fields = ['order_number', 'subtotal', 'discount_amount', 'tax_amount', 'total_amount']


@admin.register(ReturnRequest)
class ReturnRequestAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'customer', 'reason', 'status', 'refund_amount', 'requested_at']
    list_filter = ['status', 'reason']
    search_fields = ['order__order_number', 'customer__username']
