from django.urls import path
from .views import (
    post_list_create, post_detail,
    page_list_create, page_detail, page_by_slug, page_menu,
    banner_list_create, banner_detail,
    coupon_list_create, coupon_detail, coupon_validate,
    flash_sale_list_create, flash_sale_detail, flash_sale_activate, flash_sale_cancel,
    menu_list_create, menu_by_location, menu_add_item,
    contact_submit, contact_message_list, contact_message_detail,
)

urlpatterns = [
    # Posts
    path('posts/', post_list_create, name='post-list-create'),
    path('posts/<slug:slug>/', post_detail, name='post-detail'),

    # CMS pages
    path('pages/', page_list_create, name='page-list-create'),
    path('pages/menu/', page_menu, name='page-menu'),
    path('pages/slug/<slug:slug>/', page_by_slug, name='page-by-slug'),
    path('pages/<int:pk>/', page_detail, name='page-detail'),

    # Banners
    path('banners/', banner_list_create, name='banner-list-create'),
    path('banners/<int:pk>/', banner_detail, name='banner-detail'),

    # Coupons
    path('coupons/', coupon_list_create, name='coupon-list-create'),
    path('coupons/validate/', coupon_validate, name='coupon-validate'),
    path('coupons/<int:pk>/', coupon_detail, name='coupon-detail'),

    # Flash sales
    path('flash-sales/', flash_sale_list_create, name='flash-sale-list-create'),
    path('flash-sales/<int:pk>/', flash_sale_detail, name='flash-sale-detail'),
    path('flash-sales/<int:pk>/activate/', flash_sale_activate, name='flash-sale-activate'),
    path('flash-sales/<int:pk>/cancel/', flash_sale_cancel, name='flash-sale-cancel'),

    # Menus
    path('menus/', menu_list_create, name='menu-list-create'),
    path('menus/<int:pk>/items/', menu_add_item, name='menu-add-item'),
    path('menus/<str:location>/', menu_by_location, name='menu-by-location'),

    # Contact
    path('contact/', contact_submit, name='contact-submit'),
    path('contact-messages/', contact_message_list, name='contact-message-list'),
    path('contact-messages/<int:pk>/', contact_message_detail, name='contact-message-detail'),
]
