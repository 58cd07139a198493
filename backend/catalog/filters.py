import django_filters
from django.db.models import Q

from .models import Product


class ProductFilter(django_filters.FilterSet):
    """Storefront product search"""

    # Accepts both `query` and `search`
    query = django_filters.CharFilter(method='filter_search', label='Search')
    search = django_filters.CharFilter(method='filter_search', label='Search')

    category_id = django_filters.NumberFilter(field_name='category_id', lookup_expr='exact')
    brand_id = django_filters.NumberFilter(field_name='brand_id', lookup_expr='exact')
    min_price = django_filters.NumberFilter(field_name='price', lookup_expr='gte')
    max_price = django_filters.NumberFilter(field_name='price', lookup_expr='lte')
    in_stock = django_filters.BooleanFilter(method='filter_in_stock', label='In Stock')
    featured = django_filters.BooleanFilter(field_name='is_featured')

    ordering = django_filters.OrderingFilter(
        fields=(
            ('price', 'price'),
            ('name', 'name'),
            ('created_at', 'created'),
        ),
    )

    class Meta:
        model = Product
        fields = ['query', 'search', 'category_id', 'brand_id', 'min_price', 'max_price', 'in_stock', 'featured']

    def filter_search(self, queryset, name, value):
        """Every word must appear in the name, SKU, description, brand or category"""
        if not value or not value.strip():
            return queryset
        for word in value.split():
            queryset = queryset.filter(
                Q(name__icontains=word) |
                Q(sku__icontains=word) |
                Q(description__icontains=word) |
                Q(brand__name__icontains=word) |
                Q(category__name__icontains=word)
            )
        return queryset

    def filter_in_stock(self, queryset, name, value):
        if value is True:
            return queryset.filter(stock_quantity__gt=0)
        if value is False:
            return queryset.filter(stock_quantity__lte=0)
        return queryset
