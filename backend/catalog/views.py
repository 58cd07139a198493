import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Avg
from django.shortcuts import get_object_or_404

from backend.core.cache_service import cache_service, CacheKeys
from backend.core.permissions import IsManagerOrAdmin, IsManagerOrReadOnly, is_manager
from backend.core.utils import create_audit_log, parse_paging, paginate_queryset
from .filters import ProductFilter
from .models import Category, Brand, Product, ProductReview
from .serializers import (
    CategorySerializer, BrandSerializer, ProductSerializer, ProductListSerializer,
    ProductReviewSerializer
)
from .utils import generate_unique_sku

logger = logging.getLogger(__name__)

PRODUCT_CACHE_TTL = 600  # 10 minutes
PRODUCTS_LIST_CACHE_TTL = 120  # 2 minutes
SEARCH_CACHE_TTL = 120  # 2 minutes


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def category_list_create(request):
    """List active categories (cached) or create a new category"""
    if request.method == 'GET':
        def load():
            categories = Category.objects.filter(is_active=True).annotate(
                annotated_product_count=Count('products', filter=Q(products__is_active=True))
            )
            return CategorySerializer(categories, many=True).data

        return Response(cache_service.get_or_set(CacheKeys.categories(), load))
    else:  # POST
        serializer = CategorySerializer(data=request.data)
        if serializer.is_valid():
            category = serializer.save()
            create_audit_log(request=request, action='create', model_name='Category',
                             object_id=category.id, object_name=category.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)

    if request.method == 'GET':
        serializer = CategorySerializer(category)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Category',
                             object_id=category.id, object_name=category.name)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if category.products.exists():
            return Response({'error': 'Cannot delete category with existing products'},
                            status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='Category',
                         object_id=category.id, object_name=category.name)
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Brand views
@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def brand_list_create(request):
    """List active brands (cached) or create a new brand"""
    if request.method == 'GET':
        def load():
            return BrandSerializer(Brand.objects.filter(is_active=True), many=True).data

        return Response(cache_service.get_or_set(CacheKeys.brands(), load))
    else:  # POST
        serializer = BrandSerializer(data=request.data)
        if serializer.is_valid():
            brand = serializer.save()
            create_audit_log(request=request, action='create', model_name='Brand',
                             object_id=brand.id, object_name=brand.name)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def brand_detail(request, pk):
    """Retrieve, update or delete a brand"""
    brand = get_object_or_404(Brand, pk=pk)

    if request.method == 'GET':
        serializer = BrandSerializer(brand)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = BrandSerializer(brand, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='Brand',
                             object_id=brand.id, object_name=brand.name)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if brand.products.exists():
            return Response({'error': 'Cannot delete brand with existing products'},
                            status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='Brand',
                         object_id=brand.id, object_name=brand.name)
        brand.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def product_list_create(request):
    """Paged storefront listing or product creation"""
    if request.method == 'GET':
        page, page_size = parse_paging(request)
        category_id = request.query_params.get('category_id') or request.query_params.get('categoryId')
        brand_id = request.query_params.get('brand_id') or request.query_params.get('brandId')
        search = (request.query_params.get('search') or '').strip()

        cache_key = CacheKeys.products_list(page, page_size, category_id, brand_id, search)
        cached_data = cache_service.get(cache_key)
        if cached_data is not None:
            return Response(cached_data)

        queryset = Product.objects.filter(is_active=True).select_related('category', 'brand')
        if category_id:
            queryset = queryset.filter(category_id=category_id)
        if brand_id:
            queryset = queryset.filter(brand_id=brand_id)
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(sku__icontains=search) | Q(description__icontains=search)
            )
        queryset = queryset.order_by('-created_at', '-id')

        total, rows = paginate_queryset(queryset, page, page_size)
        data = {
            'total': total,
            'page': page,
            'page_size': page_size,
            'products': ProductListSerializer(rows, many=True).data,
        }
        cache_service.set(cache_key, data, PRODUCTS_LIST_CACHE_TTL)
        return Response(data)
    else:  # POST
        serializer = ProductSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        sku = serializer.validated_data.get('sku') or generate_unique_sku(serializer.validated_data['name'])
        product = serializer.save(sku=sku)
        create_audit_log(
            request=request,
            action='create',
            model_name='Product',
            object_id=product.id,
            object_name=product.name,
            object_reference=product.sku,
            changes={'name': product.name, 'price': str(product.price), 'stock_quantity': product.stock_quantity}
        )
        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    if request.method == 'GET':
        staff = is_manager(request.user)
        cache_key = CacheKeys.product(pk)
        cached_data = cache_service.get(cache_key)
        if cached_data is not None and (cached_data['is_active'] or staff):
            return Response(cached_data)

        product = Product.objects.select_related('category', 'brand').filter(pk=pk).first()
        if product is None or (not product.is_active and not staff):
            return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)

        data = ProductSerializer(product).data
        cache_service.set(cache_key, data, PRODUCT_CACHE_TTL)
        return Response(data)

    product = Product.objects.filter(pk=pk).first()
    if product is None:
        return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)

    if request.method in ('PUT', 'PATCH'):
        old_price = product.price
        serializer = ProductSerializer(product, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            if request.method == 'PUT' and not serializer.validated_data.get('sku'):
                serializer.save(sku=product.sku)
            else:
                serializer.save()
            changes = {k: str(v) for k, v in serializer.validated_data.items()}
            if product.price != old_price:
                changes['old_price'] = str(old_price)
            create_audit_log(request=request, action='update', model_name='Product',
                             object_id=product.id, object_name=product.name,
                             object_reference=product.sku, changes=changes)
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE: products referenced by orders are deactivated instead
    product_id, product_name, product_sku = product.id, product.name, product.sku
    try:
        with transaction.atomic():
            product.delete()
    except IntegrityError:
        product.is_active = False
        product.save(update_fields=['is_active', 'updated_at'])
        create_audit_log(request=request, action='update', model_name='Product',
                         object_id=product_id, object_name=product_name, object_reference=product_sku,
                         changes={'is_active': False})
        return Response({'message': 'Product is referenced by orders and was deactivated'})
    create_audit_log(request=request, action='delete', model_name='Product',
                     object_id=product_id, object_name=product_name, object_reference=product_sku)
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([AllowAny])
def product_search(request):
    """Filtered product search with price range, stock and ordering"""
    page, page_size = parse_paging(request)
    query = (request.query_params.get('query') or request.query_params.get('search') or '').strip()
    filters = {
        k: v for k, v in request.query_params.items()
        if k not in ('page', 'page_size', 'pageSize', 'query', 'search') and v != ''
    }

    cache_key = CacheKeys.search(query, page, page_size, filters)
    cached_data = cache_service.get(cache_key)
    if cached_data is not None:
        return Response(cached_data)

    queryset = Product.objects.filter(is_active=True).select_related('category', 'brand')
    filterset = ProductFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    queryset = filterset.qs
    if not request.query_params.get('ordering'):
        queryset = queryset.order_by('-created_at', '-id')

    total, rows = paginate_queryset(queryset, page, page_size)
    data = {
        'query': query,
        'total': total,
        'page': page,
        'page_size': page_size,
        'products': ProductListSerializer(rows, many=True).data,
    }
    cache_service.set(cache_key, data, SEARCH_CACHE_TTL)
    return Response(data)


# Review views
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def product_reviews(request, pk):
    """Approved reviews of a product, or post a new review"""
    product = Product.objects.filter(pk=pk, is_active=True).first()
    if product is None:
        return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)

    if request.method == 'GET':
        reviews = product.reviews.filter(is_approved=True).select_related('customer')
        summary = reviews.aggregate(average=Avg('rating'), count=Count('id'))
        distribution = {str(star): 0 for star in range(1, 6)}
        for row in reviews.values('rating').annotate(n=Count('id')):
            distribution[str(row['rating'])] = row['n']
        return Response({
            'average_rating': round(summary['average'], 1) if summary['average'] is not None else None,
            'review_count': summary['count'],
            'distribution': distribution,
            'reviews': ProductReviewSerializer(reviews, many=True).data,
        })

    if not request.user.is_authenticated:
        return Response({'error': 'Authentication required'}, status=status.HTTP_401_UNAUTHORIZED)
    if ProductReview.objects.filter(product=product, customer=request.user).exists():
        return Response({'error': 'You have already reviewed this product'}, status=status.HTTP_400_BAD_REQUEST)

    serializer = ProductReviewSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    from backend.sales.models import Order
    verified = Order.objects.filter(
        customer=request.user, status=Order.STATUS_DELIVERED, items__product=product
    ).exists()
    review = serializer.save(product=product, customer=request.user, is_verified_purchase=verified)
    return Response(ProductReviewSerializer(review).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def review_helpful(request, pk):
    """Mark a review as helpful"""
    review = get_object_or_404(ProductReview, pk=pk, is_approved=True)
    review.mark_helpful()
    return Response({'id': review.id, 'helpful_count': review.helpful_count})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def review_list(request):
    """Moderation queue"""
    reviews = ProductReview.objects.select_related('product', 'customer')
    approved = request.query_params.get('approved')
    if approved in ('true', 'false'):
        reviews = reviews.filter(is_approved=approved == 'true')
    product_id = request.query_params.get('product_id')
    if product_id:
        reviews = reviews.filter(product_id=product_id)
    return Response(ProductReviewSerializer(reviews, many=True).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def review_approve(request, pk):
    review = get_object_or_404(ProductReview, pk=pk)
    review.approve()
    create_audit_log(request=request, action='approve', model_name='ProductReview',
                     object_id=review.id, object_name=review.product.name)
    return Response(ProductReviewSerializer(review).data)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def review_delete(request, pk):
    review = get_object_or_404(ProductReview, pk=pk)
    create_audit_log(request=request, action='delete', model_name='ProductReview',
                     object_id=review.id, object_name=review.product.name)
    review.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)
