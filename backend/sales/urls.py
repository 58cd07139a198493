from django.urls import path
from .views import (
    cart_detail, cart_add_item, cart_item_detail, cart_clear, cart_coupon, checkout,
    my_orders, my_order_detail, my_order_cancel, my_order_return, my_returns,
    admin_order_list, admin_order_detail, admin_order_status, admin_sales_stats,
    admin_return_list, admin_return_approve, admin_return_reject, admin_return_refund, admin_return_complete,
)

urlpatterns = [
    # Cart
    path('cart/', cart_detail, name='cart-detail'),
    path('cart/items/', cart_add_item, name='cart-add-item'),
    path('cart/items/<int:product_id>/', cart_item_detail, name='cart-item-detail'),
    path('cart/clear/', cart_clear, name='cart-clear'),
    path('cart/coupon/', cart_coupon, name='cart-coupon'),
    path('checkout/', checkout, name='checkout'),

    # Customer orders and returns
    path('orders/', my_orders, name='my-orders'),
    path('orders/<int:pk>/', my_order_detail, name='my-order-detail'),
    path('orders/<int:pk>/cancel/', my_order_cancel, name='my-order-cancel'),
    path('orders/<int:pk>/returns/', my_order_return, name='my-order-return'),
    path('returns/', my_returns, name='my-returns'),

    # Backoffice
    path('admin/orders/', admin_order_list, name='admin-order-list'),
    path('admin/orders/<int:pk>/', admin_order_detail, name='admin-order-detail'),
    path('admin/orders/<int:pk>/status/', admin_order_status, name='admin-order-status'),
    path('admin/sales-stats/', admin_sales_stats, name='admin-sales-stats'),
    path('admin/returns/', admin_return_list, name='admin-return-list'),
    path('admin/returns/<int:pk>/approve/', admin_return_approve, name='admin-return-approve'),
    path('admin/returns/<int:pk>/reject/', admin_return_reject, name='admin-return-reject'),
    path('admin/returns/<int:pk>/refund/', admin_return_refund, name='admin-return-refund'),
    path('admin/returns/<int:pk>/complete/', admin_return_complete, name='admin-return-complete'),
]
