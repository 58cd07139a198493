import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone

from backend.core.cache_service import cache_service, CacheKeys
from backend.core.exceptions import error_message
from backend.core.permissions import IsManagerOrAdmin, IsManagerOrReadOnly, IsBackofficeStaff, is_manager
from backend.core.utils import create_audit_log
from .models import Post, CMSPage, Banner, Coupon, FlashSale, Menu, MenuItem, ContactMessage
from .serializers import (
    PostSerializer, CMSPageSerializer, BannerSerializer, CouponSerializer, CouponValidateSerializer,
    FlashSaleSerializer, MenuSerializer, MenuItemSerializer, ContactMessageSerializer
)

logger = logging.getLogger(__name__)

BANNERS_CACHE_TTL = 600  # 10 minutes


def _detail(request, instance, serializer_class, model_name):
    """Shared retrieve/update/delete branch for content objects"""
    if request.method == 'GET':
        return Response(serializer_class(instance).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = serializer_class(instance, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name=model_name,
                             object_id=instance.pk, object_name=str(instance))
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        create_audit_log(request=request, action='delete', model_name=model_name,
                         object_id=instance.pk, object_name=str(instance))
        instance.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Post views
@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def post_list_create(request):
    """Published posts for everyone, all posts for managers"""
    if request.method == 'GET':
        posts = Post.objects.select_related('author')
        if not is_manager(request.user):
            posts = posts.filter(is_published=True)
        search = request.query_params.get('search')
        if search:
            posts = posts.filter(Q(title__icontains=search) | Q(summary__icontains=search))
        return Response(PostSerializer(posts, many=True).data)
    else:  # POST
        serializer = PostSerializer(data=request.data)
        if serializer.is_valid():
            post = serializer.save(author=request.user)
            create_audit_log(request=request, action='create', model_name='Post',
                             object_id=post.id, object_name=post.title)
            return Response(PostSerializer(post).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def post_detail(request, slug):
    post = get_object_or_404(Post, slug=slug)
    if request.method == 'GET' and not post.is_published and not is_manager(request.user):
        return Response({'error': 'Post not found'}, status=status.HTTP_404_NOT_FOUND)
    return _detail(request, post, PostSerializer, 'Post')


# CMS page views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def page_list_create(request):
    """List all CMS pages or create one"""
    if request.method == 'GET':
        pages = CMSPage.objects.all()
        page_type = request.query_params.get('page_type')
        if page_type:
            pages = pages.filter(page_type=page_type)
        return Response(CMSPageSerializer(pages, many=True).data)
    else:  # POST
        serializer = CMSPageSerializer(data=request.data)
        if serializer.is_valid():
            page = serializer.save()
            create_audit_log(request=request, action='create', model_name='CMSPage',
                             object_id=page.id, object_name=page.title)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def page_detail(request, pk):
    page = get_object_or_404(CMSPage, pk=pk)
    return _detail(request, page, CMSPageSerializer, 'CMSPage')


@api_view(['GET'])
@permission_classes([AllowAny])
def page_by_slug(request, slug):
    """Public page view, counts the visit"""
    page = CMSPage.objects.filter(slug=slug, is_published=True).first()
    if page is None:
        return Response({'error': 'Page not found'}, status=status.HTTP_404_NOT_FOUND)
    page.increment_view_count()
    return Response(CMSPageSerializer(page).data)


@api_view(['GET'])
@permission_classes([AllowAny])
def page_menu(request):
    pages = CMSPage.objects.filter(is_published=True, show_in_menu=True).order_by('menu_order', 'title')
    return Response([{'title': p.title, 'slug': p.slug, 'menu_order': p.menu_order} for p in pages])


# Banner views
@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def banner_list_create(request):
    """Active banners by position (cached), or create a banner"""
    if request.method == 'GET':
        position = request.query_params.get('position') or None
        if is_manager(request.user) and request.query_params.get('all') == 'true':
            banners = Banner.objects.all()
            if position:
                banners = banners.filter(position=position)
            return Response(BannerSerializer(banners, many=True).data)

        def load():
            banners = Banner.objects.filter(is_active=True)
            if position:
                banners = banners.filter(position=position)
            return BannerSerializer([b for b in banners if b.is_active_now()], many=True).data

        # Short TTL so scheduled banners appear without a write
        data = cache_service.get_or_set(CacheKeys.banners(position), load, BANNERS_CACHE_TTL)
        device = request.query_params.get('device')
        if device:
            data = [b for b in data if b['device'] in ('all', device)]
        return Response(data)
    else:  # POST
        serializer = BannerSerializer(data=request.data)
        if serializer.is_valid():
            banner = serializer.save()
            create_audit_log(request=request, action='create', model_name='Banner',
                             object_id=banner.id, object_name=banner.title)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def banner_detail(request, pk):
    banner = get_object_or_404(Banner, pk=pk)
    return _detail(request, banner, BannerSerializer, 'Banner')


# Coupon views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def coupon_list_create(request):
    """List coupons (status=active|expired) or create one"""
    if request.method == 'GET':
        coupons = Coupon.objects.all()
        now = timezone.now()
        status_filter = request.query_params.get('status')
        if status_filter == 'active':
            coupons = coupons.filter(is_active=True, start_date__lte=now).filter(
                Q(end_date__isnull=True) | Q(end_date__gte=now)
            )
        elif status_filter == 'expired':
            coupons = coupons.filter(end_date__lt=now)
        search = request.query_params.get('search')
        if search:
            coupons = coupons.filter(Q(code__icontains=search) | Q(description__icontains=search))
        return Response(CouponSerializer(coupons, many=True).data)
    else:  # POST
        serializer = CouponSerializer(data=request.data)
        if serializer.is_valid():
            coupon = serializer.save()
            create_audit_log(request=request, action='create', model_name='Coupon',
                             object_id=coupon.id, object_name=coupon.code)
            return Response(serializer.data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def coupon_detail(request, pk):
    coupon = get_object_or_404(Coupon, pk=pk)
    return _detail(request, coupon, CouponSerializer, 'Coupon')


@api_view(['POST'])
@permission_classes([AllowAny])
def coupon_validate(request):
    """Check a code against an order amount and compute the discount"""
    serializer = CouponValidateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    code = serializer.validated_data['code'].strip().upper()
    order_amount = serializer.validated_data['order_amount']
    coupon = Coupon.objects.filter(code=code).first()
    if coupon is None:
        return Response({'error': 'Coupon not found', 'is_valid': False}, status=status.HTTP_404_NOT_FOUND)

    reasons = coupon.validation_errors(order_amount)
    discount = coupon.calculate_discount(order_amount) if not reasons else 0
    return Response({
        'is_valid': not reasons,
        'code': coupon.code,
        'discount_type': coupon.discount_type,
        'discount_value': str(coupon.discount_value),
        'discount_amount': str(discount),
        'final_amount': str(order_amount - discount),
        'reasons': reasons,
    })


# Flash sale views
@api_view(['GET', 'POST'])
@permission_classes([IsManagerOrReadOnly])
def flash_sale_list_create(request):
    """Running flash sales for shoppers, all of them for managers"""
    if request.method == 'GET':
        sales = FlashSale.objects.prefetch_related('products', 'categories')
        now = timezone.now()
        if is_manager(request.user):
            status_filter = request.query_params.get('status')
            if status_filter:
                sales = sales.filter(status=status_filter)
            return Response(FlashSaleSerializer(sales, many=True).data)
        sales = sales.filter(is_active=True, status=FlashSale.STATUS_ACTIVE, start_time__lte=now, end_time__gte=now)
        return Response(FlashSaleSerializer([s for s in sales if not s.is_sold_out], many=True).data)
    else:  # POST
        serializer = FlashSaleSerializer(data=request.data)
        if serializer.is_valid():
            sale = serializer.save()
            sale.update_status()
            sale.save(update_fields=['status'])
            create_audit_log(request=request, action='create', model_name='FlashSale',
                             object_id=sale.id, object_name=sale.name)
            return Response(FlashSaleSerializer(sale).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsManagerOrReadOnly])
def flash_sale_detail(request, pk):
    sale = get_object_or_404(FlashSale, pk=pk)
    return _detail(request, sale, FlashSaleSerializer, 'FlashSale')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def flash_sale_activate(request, pk):
    sale = get_object_or_404(FlashSale, pk=pk)
    try:
        sale.activate()
    except DjangoValidationError as e:
        return Response({'error': error_message(e)}, status=status.HTTP_400_BAD_REQUEST)
    create_audit_log(request=request, action='status_change', model_name='FlashSale',
                     object_id=sale.id, object_name=sale.name, changes={'status': sale.status})
    return Response(FlashSaleSerializer(sale).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def flash_sale_cancel(request, pk):
    sale = get_object_or_404(FlashSale, pk=pk)
    sale.cancel()
    create_audit_log(request=request, action='cancel', model_name='FlashSale',
                     object_id=sale.id, object_name=sale.name)
    return Response(FlashSaleSerializer(sale).data)


# Menu views
@api_view(['GET'])
@permission_classes([AllowAny])
def menu_by_location(request, location):
    menu = Menu.objects.filter(location=location, is_active=True).first()
    if menu is None:
        return Response({'error': 'Menu not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(MenuSerializer(menu).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def menu_list_create(request):
    if request.method == 'GET':
        return Response(MenuSerializer(Menu.objects.all(), many=True).data)
    serializer = MenuSerializer(data=request.data)
    if serializer.is_valid():
        menu = serializer.save()
        create_audit_log(request=request, action='create', model_name='Menu',
                         object_id=menu.id, object_name=menu.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def menu_add_item(request, pk):
    menu = get_object_or_404(Menu, pk=pk)
    serializer = MenuItemSerializer(data=request.data)
    if serializer.is_valid():
        parent = serializer.validated_data.get('parent')
        if parent is not None and parent.menu_id != menu.id:
            return Response({'error': 'Parent item belongs to another menu'}, status=status.HTTP_400_BAD_REQUEST)
        serializer.save(menu=menu)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# Contact views
@api_view(['POST'])
@permission_classes([AllowAny])
def contact_submit(request):
    serializer = ContactMessageSerializer(data=request.data)
    if serializer.is_valid():
        message = serializer.save(status='new')
        logger.info(f"Contact message {message.id} received from {message.email}")
        return Response({'id': message.id, 'message': 'Thank you, we will get back to you soon.'},
                        status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBackofficeStaff])
def contact_message_list(request):
    messages = ContactMessage.objects.all()
    status_filter = request.query_params.get('status')
    if status_filter:
        messages = messages.filter(status=status_filter)
    return Response(ContactMessageSerializer(messages, many=True).data)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsBackofficeStaff])
def contact_message_detail(request, pk):
    message = get_object_or_404(ContactMessage, pk=pk)
    if request.method == 'GET':
        if message.status == 'new':
            message.status = 'read'
            message.save(update_fields=['status', 'updated_at'])
        return Response(ContactMessageSerializer(message).data)
    new_status = request.data.get('status')
    if new_status not in dict(ContactMessage.STATUS_CHOICES):
        return Response({'error': 'Invalid status'}, status=status.HTTP_400_BAD_REQUEST)
    message.status = new_status
    message.save(update_fields=['status', 'updated_at'])
    return Response(ContactMessageSerializer(message).data)
