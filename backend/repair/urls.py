from django.urls import path
from .views import (
    customer_booking_list_create, customer_work_order_list_create, customer_work_order_detail,
    customer_quote_approve, customer_quote_reject, work_order_logs,
    admin_work_order_list_create, admin_work_order_detail, admin_work_order_assign, admin_work_order_start,
    admin_work_order_complete, admin_work_order_cancel, admin_repair_stats,
    admin_booking_list, admin_booking_approve, admin_booking_reject, admin_booking_convert,
    technician_list_create, technician_detail,
    tech_work_order_list, tech_work_order_status, tech_work_order_parts, tech_work_order_part_delete,
    tech_work_order_quote, tech_work_order_notes,
)

urlpatterns = [
    # Customer
    path('repair/bookings/', customer_booking_list_create, name='repair-booking-list-create'),
    path('repair/work-orders/', customer_work_order_list_create, name='repair-work-order-list-create'),
    path('repair/work-orders/<int:pk>/', customer_work_order_detail, name='repair-work-order-detail'),
    path('repair/work-orders/<int:pk>/quote/approve/', customer_quote_approve, name='repair-quote-approve'),
    path('repair/work-orders/<int:pk>/quote/reject/', customer_quote_reject, name='repair-quote-reject'),
    path('repair/work-orders/<int:pk>/logs/', work_order_logs, name='repair-work-order-logs'),

    # Backoffice
    path('repair/admin/work-orders/', admin_work_order_list_create, name='repair-admin-work-order-list'),
    path('repair/admin/work-orders/<int:pk>/', admin_work_order_detail, name='repair-admin-work-order-detail'),
    path('repair/admin/work-orders/<int:pk>/assign/', admin_work_order_assign, name='repair-admin-work-order-assign'),
    path('repair/admin/work-orders/<int:pk>/start/', admin_work_order_start, name='repair-admin-work-order-start'),
    path('repair/admin/work-orders/<int:pk>/complete/', admin_work_order_complete, name='repair-admin-work-order-complete'),
    path('repair/admin/work-orders/<int:pk>/cancel/', admin_work_order_cancel, name='repair-admin-work-order-cancel'),
    path('repair/admin/stats/', admin_repair_stats, name='repair-admin-stats'),
    path('repair/admin/bookings/', admin_booking_list, name='repair-admin-booking-list'),
    path('repair/admin/bookings/<int:pk>/approve/', admin_booking_approve, name='repair-admin-booking-approve'),
    path('repair/admin/bookings/<int:pk>/reject/', admin_booking_reject, name='repair-admin-booking-reject'),
    path('repair/admin/bookings/<int:pk>/convert/', admin_booking_convert, name='repair-admin-booking-convert'),
    path('repair/technicians/', technician_list_create, name='repair-technician-list-create'),
    path('repair/technicians/<int:pk>/', technician_detail, name='repair-technician-detail'),

    # Technician
    path('repair/tech/work-orders/', tech_work_order_list, name='repair-tech-work-order-list'),
    path('repair/tech/work-orders/<int:pk>/status/', tech_work_order_status, name='repair-tech-work-order-status'),
    path('repair/tech/work-orders/<int:pk>/parts/', tech_work_order_parts, name='repair-tech-work-order-parts'),
    path('repair/tech/work-orders/<int:pk>/parts/<int:part_id>/', tech_work_order_part_delete, name='repair-tech-work-order-part-delete'),
    path('repair/tech/work-orders/<int:pk>/quote/', tech_work_order_quote, name='repair-tech-work-order-quote'),
    path('repair/tech/work-orders/<int:pk>/notes/', tech_work_order_notes, name='repair-tech-work-order-notes'),
]
