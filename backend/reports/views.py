import logging
from datetime import datetime, timedelta
from decimal import Decimal

from django.db.models import Sum, Count, Q, F, DecimalField
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from backend.accounting.models import Invoice
from backend.catalog.models import Product
from backend.core.cache_utils import (
    cached_query, DASHBOARD_KEY_PREFIX, DASHBOARD_CACHE_TTL, REPORTS_KEY_PREFIX, REPORTS_CACHE_TTL
)
from backend.core.exceptions import error_response
from backend.core.permissions import IsManagerOrAdmin
from backend.repair.models import WorkOrder
from backend.sales.models import Order, OrderItem
from backend.warranty.models import WarrantyClaim

logger = logging.getLogger('backend.reports')

LOW_STOCK_LIMIT = 20


def _parse_date(value, default):
    if not value:
        return default
    return datetime.strptime(value, '%Y-%m-%d').date()


def _outstanding(invoice_type):
    return Invoice.objects.filter(
        invoice_type=invoice_type, status__in=Invoice.OPEN_STATUSES
    ).aggregate(
        total=Sum(F('total_amount') - F('paid_amount'), output_field=DecimalField(max_digits=14, decimal_places=2))
    )['total'] or Decimal('0.00')


@cached_query(cache_ttl=DASHBOARD_CACHE_TTL, key_prefix=DASHBOARD_KEY_PREFIX)
def build_dashboard(today):
    """Aggregate backoffice KPIs for the given day"""
    month_start = today.replace(day=1)
    orders = Order.objects.all()
    revenue_orders = orders.exclude(status=Order.STATUS_CANCELLED)

    def revenue(qs):
        return qs.aggregate(total=Sum('total_amount'))['total'] or Decimal('0.00')

    by_status = dict(orders.order_by().values_list('status').annotate(n=Count('id')))

    low_stock = Product.objects.filter(
        is_active=True, stock_quantity__lte=F('low_stock_threshold')
    ).order_by('stock_quantity', 'name')
    low_stock_rows = [
        {'id': p.id, 'sku': p.sku, 'name': p.name, 'stock_quantity': p.stock_quantity,
         'low_stock_threshold': p.low_stock_threshold}
        for p in low_stock[:LOW_STOCK_LIMIT]
    ]

    return {
        'date': today.isoformat(),
        'revenue': {
            'today': str(revenue(revenue_orders.filter(order_date__date=today))),
            'month': str(revenue(revenue_orders.filter(order_date__date__gte=month_start))),
        },
        'orders': {
            'today': orders.filter(order_date__date=today).count(),
            'month': orders.filter(order_date__date__gte=month_start).count(),
            'by_status': {code: by_status.get(code, 0) for code, _ in Order.STATUS_CHOICES},
        },
        'low_stock': {
            'count': low_stock.count(),
            'products': low_stock_rows,
        },
        'repair': {
            'open_work_orders': WorkOrder.objects.exclude(status__in=WorkOrder.TERMINAL_STATUSES).count(),
            'completed_today': WorkOrder.objects.filter(completed_at__date=today).count(),
        },
        'warranty': {
            'pending_claims': WarrantyClaim.objects.filter(status=WarrantyClaim.STATUS_PENDING).count(),
        },
        'accounting': {
            'receivable_outstanding': str(_outstanding(Invoice.TYPE_RECEIVABLE)),
            'payable_outstanding': str(_outstanding(Invoice.TYPE_PAYABLE)),
            'overdue_invoices': Invoice.objects.filter(status=Invoice.STATUS_OVERDUE).count(),
        },
    }


@cached_query(cache_ttl=REPORTS_CACHE_TTL, key_prefix=f"{REPORTS_KEY_PREFIX}top-products")
def build_top_products(date_from, date_to, limit):
    items = OrderItem.objects.filter(
        order__order_date__date__gte=date_from,
        order__order_date__date__lte=date_to,
    ).exclude(order__status=Order.STATUS_CANCELLED)

    rows = items.values('product_id', 'product__name', 'product__sku').annotate(
        total_quantity=Sum('quantity'),
        total_revenue=Sum('subtotal', output_field=DecimalField(max_digits=14, decimal_places=2)),
        order_count=Count('order', distinct=True),
    ).order_by('-total_quantity', '-total_revenue')[:limit]

    return [
        {
            'product_id': row['product_id'],
            'name': row['product__name'],
            'sku': row['product__sku'],
            'total_quantity': row['total_quantity'],
            'total_revenue': str(row['total_revenue'] or Decimal('0.00')),
            'order_count': row['order_count'],
        }
        for row in rows
    ]


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def dashboard(request):
    """Backoffice dashboard KPIs, cached for five minutes"""
    today = timezone.localdate()
    logger.info(f"User {request.user.username} requested dashboard for {today}")
    return Response(build_dashboard(today))


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def top_products(request):
    """Best sellers by quantity in a date range (defaults to the last 30 days)"""
    today = timezone.localdate()
    try:
        date_from = _parse_date(request.query_params.get('date_from'), today - timedelta(days=30))
        date_to = _parse_date(request.query_params.get('date_to'), today)
        limit = int(request.query_params.get('limit', 10))
    except ValueError:
        return error_response('Dates must use YYYY-MM-DD and limit must be a number')
    if date_from > date_to:
        return error_response('date_from must not be after date_to')
    limit = max(1, min(limit, 100))

    return Response({
        'period': {
            'from': date_from.isoformat(),
            'to': date_to.isoformat(),
        },
        'products': build_top_products(date_from, date_to, limit),
    })
