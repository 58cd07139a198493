from django.contrib import admin
from .models import ProductWarranty, WarrantyClaim


@admin.register(ProductWarranty)
class ProductWarrantyAdmin(admin.ModelAdmin):
    list_display = ['serial_number', 'product', 'customer_name', 'purchase_date', 'expiration_date', 'status']
    list_filter = ['status']
    search_fields = ['serial_number', 'order_number', 'invoice_number', 'customer_name', 'customer_phone']
    readonly_fields = ['expiration_date', 'voided_at']


@admin.register(WarrantyClaim)
class WarrantyClaimAdmin(admin.ModelAdmin):
    list_display = ['claim_number', 'serial_number', 'status', 'preferred_resolution', 'is_manager_override', 'created_at']
    list_filter = ['status', 'preferred_resolution', 'is_manager_override']
    search_fields = ['claim_number', 'serial_number']
    readonly_fields = ['claim_number', 'approved_at', 'rejected_at', 'resolved_at']
