from django.urls import path
from .views import (
    category_list_create, category_detail,
    brand_list_create, brand_detail,
    product_list_create, product_detail, product_search,
    product_reviews, review_helpful, review_list, review_approve, review_delete,
)

urlpatterns = [
    # Category endpoints
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<int:pk>/', category_detail, name='category-detail'),

    # Brand endpoints
    path('brands/', brand_list_create, name='brand-list-create'),
    path('brands/<int:pk>/', brand_detail, name='brand-detail'),

    # Product endpoints
    path('products/', product_list_create, name='product-list-create'),
    path('products/search/', product_search, name='product-search'),
    path('products/<int:pk>/', product_detail, name='product-detail'),
    path('products/<int:pk>/reviews/', product_reviews, name='product-reviews'),

    # Review moderation
    path('reviews/', review_list, name='review-list'),
    path('reviews/<int:pk>/', review_delete, name='review-delete'),
    path('reviews/<int:pk>/approve/', review_approve, name='review-approve'),
    path('reviews/<int:pk>/helpful/', review_helpful, name='review-helpful'),
]
