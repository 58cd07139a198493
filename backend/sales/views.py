import logging
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.catalog.models import Product
from backend.content.models import Coupon, FlashSale, active_flash_sale_for
from backend.core.cache_service import cache_service, CacheKeys
from backend.core.cache_signals import invalidate_products_cache
from backend.core.exceptions import error_message, error_response
from backend.core.permissions import IsManagerOrAdmin
from backend.core.utils import create_audit_log, parse_paging, paginate_queryset
from .models import Cart, Order, OrderItem, ReturnRequest
from .serializers import (
    CartSerializer, CartItemAddSerializer, CheckoutSerializer, OrderSerializer, OrderListSerializer,
    OrderStatusSerializer, ReturnRequestSerializer, ReturnRequestCreateSerializer
)

logger = logging.getLogger(__name__)

CUSTOMER_ORDERS_CACHE_TTL = 300  # 5 minutes


def _get_cart(user):
    cart, _ = Cart.objects.get_or_create(customer=user)
    return cart


def _cart_response(cart):
    cart = Cart.objects.prefetch_related('items__product').get(pk=cart.pk)
    return Response(CartSerializer(cart).data)


# Cart views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def cart_detail(request):
    return _cart_response(_get_cart(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_add_item(request):
    """Add a product to the cart (merges with an existing line)"""
    serializer = CartItemAddSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    product_id = serializer.validated_data['product_id']
    quantity = serializer.validated_data['quantity']
    product = Product.objects.filter(pk=product_id, is_active=True).first()
    if product is None:
        return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)
    if not product.in_stock:
        return Response({'error': f'{product.name} is out of stock'}, status=status.HTTP_400_BAD_REQUEST)

    cart = _get_cart(request.user)
    existing = cart.items.filter(product=product).first()
    wanted = quantity + (existing.quantity if existing else 0)
    if wanted > product.stock_quantity:
        return Response(
            {'error': f'Insufficient stock for {product.name}. Available: {product.stock_quantity}'},
            status=status.HTTP_400_BAD_REQUEST
        )
    cart.add_item(product, quantity)
    return _cart_response(cart)


@api_view(['PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart_item_detail(request, product_id):
    """Change a line's quantity (0 removes it) or remove the line"""
    cart = _get_cart(request.user)
    try:
        if request.method == 'PUT':
            try:
                quantity = int(request.data.get('quantity'))
            except (TypeError, ValueError):
                return Response({'error': 'quantity must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
            item = cart.items.select_related('product').filter(product_id=product_id).first()
            if item is not None and quantity > item.product.stock_quantity:
                return Response(
                    {'error': f'Insufficient stock for {item.product_name}. Available: {item.product.stock_quantity}'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            cart.update_item_quantity(product_id, quantity)
        else:  # DELETE
            cart.remove_item(product_id)
    except DjangoValidationError as e:
        return Response({'error': error_message(e)}, status=status.HTTP_404_NOT_FOUND)
    return _cart_response(cart)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def cart_clear(request):
    cart = _get_cart(request.user)
    cart.clear()
    return _cart_response(cart)


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def cart_coupon(request):
    """Apply or remove a coupon code on the cart"""
    cart = _get_cart(request.user)
    if request.method == 'DELETE':
        cart.coupon_code = ''
        cart.save(update_fields=['coupon_code', 'updated_at'])
        return _cart_response(cart)

    code = (request.data.get('code') or '').strip().upper()
    if not code:
        return Response({'error': 'code is required'}, status=status.HTTP_400_BAD_REQUEST)
    coupon = Coupon.objects.filter(code=code).first()
    if coupon is None:
        return Response({'error': 'Coupon not found'}, status=status.HTTP_404_NOT_FOUND)
    reasons = coupon.validation_errors(cart.total_amount)
    if reasons:
        return Response({'error': reasons[0], 'reasons': reasons}, status=status.HTTP_400_BAD_REQUEST)
    cart.coupon_code = code
    cart.save(update_fields=['coupon_code', 'updated_at'])
    return _cart_response(cart)


# Checkout
def _place_order(user, data, cart):
    """
    Create an order from explicit items or the cart.

    Raises Django ValidationError for anything the customer must fix; the
    caller's atomic block rolls back stock and coupon usage with it.
    """
    if data.get('items'):
        lines = [(line['product_id'], line['quantity']) for line in data['items']]
        from_cart = False
    else:
        lines = [(item.product_id, item.quantity) for item in cart.items.all()]
        from_cart = True
    if not lines:
        raise DjangoValidationError('Cart is empty')

    # One line per product so stock and flash sale quotas see the full quantity
    quantities = {}
    for product_id, quantity in lines:
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    now = timezone.now()
    prepared = []
    subtotal = Decimal('0.00')
    for product_id, quantity in quantities.items():
        product = Product.objects.select_for_update().filter(pk=product_id, is_active=True).first()
        if product is None:
            raise DjangoValidationError(f'Product {product_id} not found')
        if product.stock_quantity < quantity:
            raise DjangoValidationError(
                f'Insufficient stock for {product.name}. Available: {product.stock_quantity}'
            )
        flash_sale = active_flash_sale_for(product, now)
        if flash_sale:
            flash_sale = FlashSale.objects.select_for_update().get(pk=flash_sale.pk)
            flash_sale.record_sale(quantity)
        unit_price = flash_sale.sale_price(product.price, now) if flash_sale else product.price
        prepared.append((product, quantity, unit_price, flash_sale))
        subtotal += unit_price * quantity

    discount = Decimal('0.00')
    coupon_code = (data.get('coupon_code') or (cart.coupon_code if from_cart else '')).strip().upper()
    if coupon_code:
        coupon = Coupon.objects.select_for_update().filter(code=coupon_code).first()
        if coupon is None:
            raise DjangoValidationError('Invalid coupon code')
        reasons = coupon.validation_errors(subtotal, now)
        if reasons:
            raise DjangoValidationError(reasons[0])
        discount = coupon.calculate_discount(subtotal)
        coupon.increment_usage()

    is_pickup = data.get('is_pickup', False)
    order = Order(
        customer=user,
        subtotal=subtotal,
        discount_amount=discount,
        coupon_code=coupon_code,
        shipping_amount=Decimal('0.00') if is_pickup else Decimal(settings.ORDER_SHIPPING_FEE),
        tax_amount=(subtotal * Decimal(settings.ORDER_TAX_RATE)).quantize(Decimal('0.01')),
        shipping_address=data.get('shipping_address', ''),
        is_pickup=is_pickup,
        notes=data.get('notes', ''),
        order_date=now,
    )
    order.recalculate_total()
    order.save()

    for product, quantity, unit_price, flash_sale in prepared:
        OrderItem.objects.create(
            order=order,
            product=product,
            product_name=product.name,
            unit_price=unit_price,
            original_price=product.price if flash_sale else None,
            flash_sale=flash_sale,
            quantity=quantity,
        )
        product.decrease_stock(quantity)

    if from_cart:
        cart.clear()
    return order


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def checkout(request):
    serializer = CheckoutSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    cart = _get_cart(request.user)
    try:
        with transaction.atomic():
            order = _place_order(request.user, serializer.validated_data, cart)
    except DjangoValidationError as e:
        return error_response(error_message(e))

    # Stock moved through queryset updates, which skip model signals
    invalidate_products_cache()
    cache_service.remove(CacheKeys.customer_orders(request.user.id))

    create_audit_log(
        request=request, action='checkout', model_name='Order', object_id=order.id,
        object_reference=order.order_number, changes={'total_amount': str(order.total_amount)}
    )
    logger.info(f"Order {order.order_number} placed by user {request.user.id}")
    return Response({
        'order_id': order.id,
        'order_number': order.order_number,
        'total_amount': str(order.total_amount),
        'status': order.status,
    }, status=status.HTTP_201_CREATED)


# Customer order views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_orders(request):
    def load():
        orders = Order.objects.filter(customer=request.user).select_related('customer').prefetch_related('items')
        return OrderListSerializer(orders, many=True).data

    data = cache_service.get_or_set(CacheKeys.customer_orders(request.user.id), load, CUSTOMER_ORDERS_CACHE_TTL)
    return Response(data)


def _own_order(request, pk):
    return Order.objects.filter(pk=pk, customer=request.user).prefetch_related('items').first()


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_order_detail(request, pk):
    order = _own_order(request, pk)
    if order is None:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def my_order_cancel(request, pk):
    order = _own_order(request, pk)
    if order is None:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    try:
        with transaction.atomic():
            order.cancel(request.data.get('reason', ''))
    except DjangoValidationError as e:
        return error_response(error_message(e))

    invalidate_products_cache()
    create_audit_log(request=request, action='cancel', model_name='Order', object_id=order.id,
                     object_reference=order.order_number)
    return Response(OrderSerializer(order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def my_order_return(request, pk):
    """Request a return for one line of a delivered order"""
    order = _own_order(request, pk)
    if order is None:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    if order.status != Order.STATUS_DELIVERED:
        return Response({'error': 'Only delivered orders can be returned'}, status=status.HTTP_400_BAD_REQUEST)

    serializer = ReturnRequestCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    item = order.items.filter(pk=data['order_item_id']).first()
    if item is None:
        return Response({'error': 'Order item not found'}, status=status.HTTP_404_NOT_FOUND)
    quantity = data.get('quantity') or item.quantity
    if quantity > item.quantity:
        return Response({'error': 'Return quantity exceeds ordered quantity'}, status=status.HTTP_400_BAD_REQUEST)
    if item.return_requests.exclude(status__in=[ReturnRequest.STATUS_REJECTED, ReturnRequest.STATUS_CANCELLED]).exists():
        return Response({'error': 'A return request already exists for this item'}, status=status.HTTP_400_BAD_REQUEST)

    return_request = ReturnRequest.objects.create(
        order=order,
        order_item=item,
        customer=request.user,
        quantity=quantity,
        reason=data['reason'],
        description=data['description'],
        customer_notes=data['customer_notes'],
        refund_amount=item.subtotal if quantity == item.quantity else item.unit_price * quantity,
    )
    create_audit_log(request=request, action='create', model_name='ReturnRequest', object_id=return_request.id,
                     object_reference=order.order_number)
    return Response(ReturnRequestSerializer(return_request).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_returns(request):
    returns = ReturnRequest.objects.filter(customer=request.user).select_related('order', 'order_item', 'processed_by')
    return Response(ReturnRequestSerializer(returns, many=True).data)


# Backoffice order views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_order_list(request):
    """All orders, paged, with status and search filters"""
    page, page_size = parse_paging(request)
    orders = Order.objects.select_related('customer').prefetch_related('items')

    status_filter = request.query_params.get('status')
    if status_filter:
        orders = orders.filter(status=status_filter)
    search = request.query_params.get('search')
    if search:
        orders = orders.filter(
            Q(order_number__icontains=search) |
            Q(customer__username__icontains=search) |
            Q(customer__email__icontains=search) |
            Q(customer__phone__icontains=search)
        )
    date_from = request.query_params.get('date_from')
    if date_from:
        orders = orders.filter(order_date__date__gte=date_from)
    date_to = request.query_params.get('date_to')
    if date_to:
        orders = orders.filter(order_date__date__lte=date_to)

    total, rows = paginate_queryset(orders, page, page_size)
    return Response({
        'total': total,
        'page': page,
        'page_size': page_size,
        'orders': OrderListSerializer(rows, many=True).data,
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_order_detail(request, pk):
    order = Order.objects.filter(pk=pk).select_related('customer').prefetch_related('items').first()
    if order is None:
        return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(OrderSerializer(order).data)


@api_view(['PUT', 'PATCH'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_order_status(request, pk):
    """
    Move an order to a new status.

    Cancelling goes through Order.cancel so stock comes back. Delivering accepts
    optional serial_numbers ({order_item_id: [serial, ...]}) to register warranties.
    """
    order = get_object_or_404(Order, pk=pk)
    new_status = request.data.get('status')
    if new_status not in dict(Order.STATUS_CHOICES):
        return Response({'error': 'Invalid status'}, status=status.HTTP_400_BAD_REQUEST)
    serializer = OrderStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data

    old_status = order.status
    warranties = []
    try:
        with transaction.atomic():
            if new_status == Order.STATUS_CANCELLED:
                order.cancel(data['reason'])
            else:
                order.set_status(new_status)
            if new_status == Order.STATUS_DELIVERED and data.get('serial_numbers'):
                from backend.warranty.models import register_order_warranties
                warranties = register_order_warranties(order, data['serial_numbers'])
    except DjangoValidationError as e:
        return error_response(error_message(e))

    if new_status == Order.STATUS_CANCELLED:
        invalidate_products_cache()
    create_audit_log(
        request=request, action='status_change', model_name='Order', object_id=order.id,
        object_reference=order.order_number, changes={'status': {'old': old_status, 'new': new_status}}
    )
    data = OrderSerializer(order).data
    data['warranties_registered'] = len(warranties)
    return Response(data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_sales_stats(request):
    now = timezone.now()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month_start = today_start.replace(day=1)

    orders = Order.objects.all()
    revenue_orders = orders.exclude(status=Order.STATUS_CANCELLED)

    def revenue(qs):
        return qs.aggregate(total=Sum('total_amount'))['total'] or Decimal('0.00')

    return Response({
        'total_orders': orders.count(),
        'today_orders': orders.filter(order_date__gte=today_start).count(),
        'month_orders': orders.filter(order_date__gte=month_start).count(),
        'week_orders': orders.filter(order_date__gte=today_start - timedelta(days=6)).count(),
        'total_revenue': str(revenue(revenue_orders)),
        'month_revenue': str(revenue(revenue_orders.filter(order_date__gte=month_start))),
        'pending_orders': orders.filter(status=Order.STATUS_PENDING).count(),
        'delivered_orders': orders.filter(status=Order.STATUS_DELIVERED).count(),
        'cancelled_orders': orders.filter(status=Order.STATUS_CANCELLED).count(),
    })


# Backoffice return views
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_return_list(request):
    returns = ReturnRequest.objects.select_related('order', 'order_item', 'processed_by')
    status_filter = request.query_params.get('status')
    if status_filter:
        returns = returns.filter(status=status_filter)
    return Response(ReturnRequestSerializer(returns, many=True).data)


def _return_transition(request, pk, action, audit_action):
    return_request = get_object_or_404(ReturnRequest, pk=pk)
    try:
        with transaction.atomic():
            action(return_request)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action=audit_action, model_name='ReturnRequest',
                     object_id=return_request.id, object_reference=return_request.order.order_number,
                     changes={'status': return_request.status})
    return Response(ReturnRequestSerializer(return_request).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_return_approve(request, pk):
    return _return_transition(request, pk, lambda r: r.approve(request.user), 'approve')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_return_reject(request, pk):
    reason = (request.data.get('reason') or '').strip()
    return _return_transition(request, pk, lambda r: r.reject(reason, request.user), 'reject')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_return_refund(request, pk):
    method = request.data.get('refund_method') or 'original_payment'
    if method not in dict(ReturnRequest.REFUND_METHOD_CHOICES):
        return Response({'error': 'Invalid refund method'}, status=status.HTTP_400_BAD_REQUEST)
    return _return_transition(request, pk, lambda r: r.process_refund(method, request.user), 'refund')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_return_complete(request, pk):
    response = _return_transition(request, pk, lambda r: r.complete(), 'status_change')
    if response.status_code == status.HTTP_200_OK:
        invalidate_products_cache()
    return response
