import logging
from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q, Count, Sum
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from backend.core.exceptions import error_message, error_response
from backend.core.permissions import IsManagerOrAdmin, IsTechnician, is_manager, is_backoffice_staff
from backend.core.utils import create_audit_log, parse_paging, paginate_queryset
from .models import Technician, WorkOrder, WorkOrderPart, ServiceBooking
from .serializers import (
    TechnicianSerializer, WorkOrderSerializer, WorkOrderListSerializer, CustomerWorkOrderSerializer,
    WorkOrderPartSerializer, WorkOrderActivityLogSerializer, RepairQuoteSerializer, ServiceBookingSerializer,
    QuoteCreateSerializer
)

logger = logging.getLogger(__name__)


def _work_order_queryset():
    return WorkOrder.objects.select_related('technician', 'customer').prefetch_related('parts', 'quotes')


def _transition(request, work_order, action, audit_action='status_change'):
    """Run a work order transition atomically and answer with the fresh work order"""
    old_status = work_order.status
    try:
        with transaction.atomic():
            action(work_order)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(
        request=request, action=audit_action, model_name='WorkOrder', object_id=work_order.id,
        object_reference=work_order.ticket_number,
        changes={'status': {'old': old_status, 'new': work_order.status}}
    )
    return Response(WorkOrderSerializer(_work_order_queryset().get(pk=work_order.pk)).data)


# Customer views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def customer_booking_list_create(request):
    if request.method == 'GET':
        bookings = ServiceBooking.objects.filter(customer=request.user).select_related('work_order')
        return Response(ServiceBookingSerializer(bookings, many=True).data)
    serializer = ServiceBookingSerializer(data=request.data)
    if serializer.is_valid():
        name = serializer.validated_data.get('customer_name') or request.user.get_full_name() or request.user.username
        booking = serializer.save(customer=request.user, customer_name=name)
        create_audit_log(request=request, action='create', model_name='ServiceBooking',
                         object_id=booking.id, object_name=booking.device_model)
        return Response(ServiceBookingSerializer(booking).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def customer_work_order_list_create(request):
    """A customer's own repair tickets, or a new repair request"""
    if request.method == 'GET':
        work_orders = WorkOrder.objects.filter(customer=request.user).select_related('technician')
        return Response(WorkOrderListSerializer(work_orders, many=True).data)
    serializer = CustomerWorkOrderSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    user = request.user
    work_order = serializer.save(
        customer=user,
        customer_name=user.get_full_name() or user.username,
        customer_phone=serializer.validated_data.get('customer_phone') or user.phone or '',
        customer_email=user.email,
        status=WorkOrder.STATUS_REQUESTED,
    )
    work_order.log('status_change', 'Repair requested by customer', user, '', WorkOrder.STATUS_REQUESTED)
    create_audit_log(request=request, action='create', model_name='WorkOrder', object_id=work_order.id,
                     object_reference=work_order.ticket_number)
    return Response(WorkOrderSerializer(_work_order_queryset().get(pk=work_order.pk)).data,
                    status=status.HTTP_201_CREATED)


def _customer_work_order(request, pk):
    return _work_order_queryset().filter(pk=pk, customer=request.user).first()


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def customer_work_order_detail(request, pk):
    work_order = _customer_work_order(request, pk)
    if work_order is None:
        return Response({'error': 'Work order not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(WorkOrderSerializer(work_order).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def customer_quote_approve(request, pk):
    work_order = _customer_work_order(request, pk)
    if work_order is None:
        return Response({'error': 'Work order not found'}, status=status.HTTP_404_NOT_FOUND)
    return _transition(request, work_order, lambda w: w.approve_quote(request.user), 'approve')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def customer_quote_reject(request, pk):
    work_order = _customer_work_order(request, pk)
    if work_order is None:
        return Response({'error': 'Work order not found'}, status=status.HTTP_404_NOT_FOUND)
    reason = (request.data.get('reason') or '').strip()
    return _transition(request, work_order, lambda w: w.reject_quote(reason, request.user), 'reject')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def work_order_logs(request, pk):
    """Activity history, visible to staff, the assigned technician and the owner"""
    work_order = get_object_or_404(WorkOrder.objects.select_related('technician'), pk=pk)
    user = request.user
    allowed = (
        is_backoffice_staff(user)
        or work_order.customer_id == user.id
        or (work_order.technician is not None and work_order.technician.user_id == user.id)
    )
    if not allowed:
        return Response({'error': 'You do not have access to this work order'}, status=status.HTTP_403_FORBIDDEN)
    logs = work_order.activity_logs.select_related('user')
    return Response(WorkOrderActivityLogSerializer(logs, many=True).data)


# Backoffice views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_work_order_list_create(request):
    if request.method == 'POST':
        serializer = WorkOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        work_order = serializer.save(status=WorkOrder.STATUS_PENDING)
        work_order.log('status_change', 'Walk-in work order created', request.user, '', WorkOrder.STATUS_PENDING)
        create_audit_log(request=request, action='create', model_name='WorkOrder', object_id=work_order.id,
                         object_reference=work_order.ticket_number)
        return Response(WorkOrderSerializer(_work_order_queryset().get(pk=work_order.pk)).data,
                        status=status.HTTP_201_CREATED)

    page, page_size = parse_paging(request)
    work_orders = WorkOrder.objects.select_related('technician')
    status_filter = request.query_params.get('status')
    if status_filter:
        work_orders = work_orders.filter(status=status_filter)
    technician_id = request.query_params.get('technician_id')
    if technician_id:
        work_orders = work_orders.filter(technician_id=technician_id)
    priority = request.query_params.get('priority')
    if priority:
        work_orders = work_orders.filter(priority=priority)
    search = request.query_params.get('search')
    if search:
        work_orders = work_orders.filter(
            Q(ticket_number__icontains=search) |
            Q(customer_name__icontains=search) |
            Q(customer_phone__icontains=search) |
            Q(serial_number__icontains=search) |
            Q(device_model__icontains=search)
        )
    total, rows = paginate_queryset(work_orders, page, page_size)
    return Response({
        'total': total,
        'page': page,
        'page_size': page_size,
        'work_orders': WorkOrderListSerializer(rows, many=True).data,
    })


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_work_order_detail(request, pk):
    work_order = get_object_or_404(_work_order_queryset(), pk=pk)
    if request.method == 'GET':
        return Response(WorkOrderSerializer(work_order).data)
    serializer = WorkOrderSerializer(work_order, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        create_audit_log(request=request, action='update', model_name='WorkOrder', object_id=work_order.id,
                         object_reference=work_order.ticket_number, changes=request.data)
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_work_order_assign(request, pk):
    work_order = get_object_or_404(WorkOrder, pk=pk)
    technician = Technician.objects.filter(pk=request.data.get('technician_id')).first()
    if technician is None:
        return Response({'error': 'Technician not found'}, status=status.HTTP_404_NOT_FOUND)
    return _transition(request, work_order, lambda w: w.assign(technician, request.user), 'assign')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_work_order_start(request, pk):
    work_order = get_object_or_404(WorkOrder, pk=pk)
    return _transition(request, work_order, lambda w: w.start(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_work_order_complete(request, pk):
    work_order = get_object_or_404(WorkOrder, pk=pk)
    return _transition(request, work_order, lambda w: w.complete(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_work_order_cancel(request, pk):
    work_order = get_object_or_404(WorkOrder, pk=pk)
    reason = (request.data.get('reason') or '').strip()
    return _transition(request, work_order, lambda w: w.cancel(reason, request.user), 'cancel')


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_repair_stats(request):
    now = timezone.now()
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    by_status = {row['status']: row['count'] for row in
                 WorkOrder.objects.order_by().values('status').annotate(count=Count('id'))}
    completed = WorkOrder.objects.filter(status=WorkOrder.STATUS_COMPLETED)
    durations = [
        (completed_at - started_at).total_seconds()
        for started_at, completed_at in completed.filter(started_at__isnull=False, completed_at__isnull=False)
        .values_list('started_at', 'completed_at')
    ]
    return Response({
        'total': sum(by_status.values()),
        'by_status': by_status,
        'open': WorkOrder.objects.exclude(status__in=WorkOrder.TERMINAL_STATUSES).count(),
        'unassigned': WorkOrder.objects.filter(
            status__in=[WorkOrder.STATUS_REQUESTED, WorkOrder.STATUS_PENDING, WorkOrder.STATUS_DECLINED]
        ).count(),
        'completed_this_month': completed.filter(completed_at__gte=month_start).count(),
        'month_revenue': str(completed.filter(completed_at__gte=month_start).aggregate(
            total=Sum('actual_cost'))['total'] or Decimal('0.00')),
        'average_repair_hours': round(sum(durations) / len(durations) / 3600, 1) if durations else None,
        'pending_bookings': ServiceBooking.objects.filter(status=ServiceBooking.STATUS_PENDING).count(),
        'available_technicians': Technician.objects.filter(is_active=True, is_available=True).count(),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_booking_list(request):
    bookings = ServiceBooking.objects.select_related('customer', 'work_order')
    status_filter = request.query_params.get('status')
    if status_filter:
        bookings = bookings.filter(status=status_filter)
    service_type = request.query_params.get('service_type')
    if service_type:
        bookings = bookings.filter(service_type=service_type)
    return Response(ServiceBookingSerializer(bookings, many=True).data)


def _booking_transition(request, pk, action, audit_action):
    booking = get_object_or_404(ServiceBooking, pk=pk)
    try:
        with transaction.atomic():
            action(booking)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action=audit_action, model_name='ServiceBooking', object_id=booking.id,
                     object_name=booking.device_model, changes={'status': booking.status})
    return Response(ServiceBookingSerializer(booking).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_booking_approve(request, pk):
    return _booking_transition(request, pk, lambda b: b.approve(), 'approve')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_booking_reject(request, pk):
    reason = (request.data.get('reason') or '').strip()
    return _booking_transition(request, pk, lambda b: b.reject(reason), 'reject')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_booking_convert(request, pk):
    priority = request.data.get('priority') or 'normal'
    if priority not in dict(WorkOrder.PRIORITY_CHOICES):
        return Response({'error': 'Invalid priority'}, status=status.HTTP_400_BAD_REQUEST)
    response = _booking_transition(request, pk, lambda b: b.convert(request.user, priority), 'status_change')
    if response.status_code == status.HTTP_200_OK:
        response.status_code = status.HTTP_201_CREATED
    return response


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def technician_list_create(request):
    if request.method == 'GET':
        technicians = Technician.objects.select_related('user')
        if request.query_params.get('available') == 'true':
            technicians = technicians.filter(is_active=True, is_available=True)
        return Response(TechnicianSerializer(technicians, many=True).data)
    serializer = TechnicianSerializer(data=request.data)
    if serializer.is_valid():
        technician = serializer.save()
        create_audit_log(request=request, action='create', model_name='Technician',
                         object_id=technician.id, object_name=technician.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def technician_detail(request, pk):
    technician = get_object_or_404(Technician, pk=pk)
    if request.method == 'GET':
        return Response(TechnicianSerializer(technician).data)
    if request.method == 'DELETE':
        # Keep history on tickets; retire instead of deleting
        technician.is_active = False
        technician.is_available = False
        technician.save(update_fields=['is_active', 'is_available', 'updated_at'])
        create_audit_log(request=request, action='delete', model_name='Technician',
                         object_id=technician.id, object_name=technician.name)
        return Response(status=status.HTTP_204_NO_CONTENT)
    serializer = TechnicianSerializer(technician, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# Technician views
def _technician_work_orders(request):
    """Work orders the caller may act on as a technician, or None when not allowed"""
    technician = Technician.objects.filter(user=request.user, is_active=True).first()
    if technician is not None:
        return _work_order_queryset().filter(technician=technician)
    if is_manager(request.user):
        return _work_order_queryset().filter(technician__isnull=False)
    return None


def _technician_work_order(request, pk):
    work_orders = _technician_work_orders(request)
    if work_orders is None:
        return None, Response({'error': 'No technician profile for this user'}, status=status.HTTP_403_FORBIDDEN)
    work_order = work_orders.filter(pk=pk).first()
    if work_order is None:
        return None, Response({'error': 'Work order not found'}, status=status.HTTP_404_NOT_FOUND)
    return work_order, None


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsTechnician])
def tech_work_order_list(request):
    work_orders = _technician_work_orders(request)
    if work_orders is None:
        return Response({'error': 'No technician profile for this user'}, status=status.HTTP_403_FORBIDDEN)
    status_filter = request.query_params.get('status')
    if status_filter:
        work_orders = work_orders.filter(status=status_filter)
    elif request.query_params.get('include_closed') != 'true':
        work_orders = work_orders.exclude(status__in=WorkOrder.TERMINAL_STATUSES)
    return Response(WorkOrderListSerializer(work_orders, many=True).data)


TECH_ACTIONS = {
    'accept': lambda w, data, user: w.accept(user),
    'decline': lambda w, data, user: w.decline(data.get('notes', ''), user),
    'diagnose': lambda w, data, user: w.diagnose(data.get('diagnosis', ''), user),
    'start': lambda w, data, user: w.start(user),
    'hold': lambda w, data, user: w.hold(data.get('notes', ''), user),
    'resume': lambda w, data, user: w.resume(user),
    'complete': lambda w, data, user: w.complete(user),
}


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsTechnician])
def tech_work_order_status(request, pk):
    work_order, error = _technician_work_order(request, pk)
    if error:
        return error
    action_name = request.data.get('action')
    handler = TECH_ACTIONS.get(action_name)
    if handler is None:
        return Response({'error': f'Invalid action. Must be one of: {", ".join(TECH_ACTIONS)}'},
                        status=status.HTTP_400_BAD_REQUEST)

    def run(w):
        handler(w, request.data, request.user)
        notes = (request.data.get('notes') or '').strip()
        if notes and action_name not in ('decline', 'hold'):
            w.add_note(notes, request.user)

    return _transition(request, work_order, run)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsTechnician])
def tech_work_order_parts(request, pk):
    work_order, error = _technician_work_order(request, pk)
    if error:
        return error
    if request.method == 'GET':
        return Response(WorkOrderPartSerializer(work_order.parts.all(), many=True).data)
    serializer = WorkOrderPartSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        with transaction.atomic():
            part = work_order.add_part(data['part_name'], data['quantity'], data['unit_price'],
                                       data.get('part_number', ''), request.user)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    return Response({
        'part': WorkOrderPartSerializer(part).data,
        'parts_cost': str(work_order.parts_cost),
    }, status=status.HTTP_201_CREATED)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated, IsTechnician])
def tech_work_order_part_delete(request, pk, part_id):
    work_order, error = _technician_work_order(request, pk)
    if error:
        return error
    part = WorkOrderPart.objects.filter(pk=part_id, work_order=work_order).first()
    if part is None:
        return Response({'error': 'Part not found'}, status=status.HTTP_404_NOT_FOUND)
    try:
        with transaction.atomic():
            work_order.remove_part(part, request.user)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsTechnician])
def tech_work_order_quote(request, pk):
    """Quote the repair and send it to the customer for approval"""
    work_order, error = _technician_work_order(request, pk)
    if error:
        return error
    serializer = QuoteCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        with transaction.atomic():
            quote = work_order.create_quote(data['labor_cost'], data.get('service_fee'), data['notes'], request.user)
            work_order.await_approval(request.user)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action='create', model_name='RepairQuote', object_id=quote.id,
                     object_reference=quote.quote_number, changes={'total_amount': str(quote.total_amount)})
    return Response({
        'quote': RepairQuoteSerializer(quote).data,
        'work_order': WorkOrderSerializer(_work_order_queryset().get(pk=work_order.pk)).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsTechnician])
def tech_work_order_notes(request, pk):
    work_order, error = _technician_work_order(request, pk)
    if error:
        return error
    try:
        work_order.add_note((request.data.get('note') or '').strip(), request.user)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    return Response({'technical_notes': work_order.technical_notes}, status=status.HTTP_201_CREATED)
