from django.contrib import admin
from .models import Technician, WorkOrder, WorkOrderPart, WorkOrderActivityLog, RepairQuote, ServiceBooking


@admin.register(Technician)
class TechnicianAdmin(admin.ModelAdmin):
    list_display = ['name', 'user', 'specialty', 'hourly_rate', 'is_available', 'is_active']
    list_filter = ['is_available', 'is_active']
    search_fields = ['name', 'phone', 'email']


class WorkOrderPartInline(admin.TabularInline):
    model = WorkOrderPart
    extra = 0
    readonly_fields = ['total_price']


class RepairQuoteInline(admin.TabularInline):
    model = RepairQuote
    extra = 0
    readonly_fields = ['quote_number', 'total_amount', 'status', 'valid_until']


class WorkOrderActivityLogInline(admin.TabularInline):
    model = WorkOrderActivityLog
    extra = 0
    readonly_fields = ['activity_type', 'description', 'old_status', 'new_status', 'user', 'created_at']


@admin.register(WorkOrder)
class WorkOrderAdmin(admin.ModelAdmin):
    list_display = ['ticket_number', 'customer_name', 'device_model', 'status', 'priority', 'technician', 'created_at']
    list_filter = ['status', 'priority', 'service_type', 'technician']
    search_fields = ['ticket_number', 'customer_name', 'customer_phone', 'serial_number', 'device_model']
    readonly_fields = ['ticket_number', 'parts_cost', 'actual_cost']
    inlines = [WorkOrderPartInline, RepairQuoteInline, WorkOrderActivityLogInline]


@admin.register(ServiceBooking)
class ServiceBookingAdmin(admin.ModelAdmin):
    list_display = ['customer_name', 'device_model', 'service_type', 'preferred_date', 'status']
    list_filter = ['status', 'service_type']
    search_fields = ['customer_name', 'customer_phone', 'device_model']
