import logging
from datetime import timedelta

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q, Count
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from backend.core.exceptions import error_message, error_response
from backend.core.permissions import IsManagerOrAdmin, is_manager
from backend.core.utils import create_audit_log, parse_paging, paginate_queryset
from .models import ProductWarranty, WarrantyClaim, refresh_expired_warranties
from .serializers import (
    ProductWarrantySerializer, WarrantyClaimSerializer, WarrantyClaimCreateSerializer, WarrantyLookupSerializer
)

logger = logging.getLogger(__name__)


def _claim_queryset():
    return WarrantyClaim.objects.select_related('warranty__product', 'work_order')


# Customer views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def claim_list_create(request):
    """
    File a warranty claim against a serial number, or list the caller's claims.

    Expired warranties are only claimable with a manager override.
    """
    if request.method == 'GET':
        claims = _claim_queryset().filter(customer=request.user)
        return Response(WarrantyClaimSerializer(claims, many=True).data)

    serializer = WarrantyClaimCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    serial = data['serial_number'].strip()
    if not serial:
        return error_response('Serial number is required')
    issue = data['issue_description'].strip()
    if not issue:
        return error_response('Issue description is required')

    warranty = ProductWarranty.objects.select_related('product').filter(serial_number=serial).first()
    if warranty is None:
        return error_response('No warranty found for this serial number', status.HTTP_404_NOT_FOUND)

    override = data['is_manager_override']
    if override and not is_manager(request.user):
        return error_response('Only managers can override warranty expiration', status.HTTP_403_FORBIDDEN)
    if warranty.status == ProductWarranty.STATUS_VOIDED:
        return error_response('Warranty has been voided')
    if warranty.is_expired() and not override:
        return error_response('Warranty has expired', is_expired=True, expiration_date=warranty.expiration_date)

    duplicate = WarrantyClaim.objects.filter(
        serial_number=serial, issue_description__iexact=issue, status__in=WarrantyClaim.OPEN_STATUSES
    ).first()
    if duplicate:
        return error_response('A claim for this issue is already open', status.HTTP_409_CONFLICT,
                              claim_number=duplicate.claim_number)

    claim = WarrantyClaim.objects.create(
        warranty=warranty,
        serial_number=serial,
        customer=request.user,
        issue_description=issue,
        preferred_resolution=data['preferred_resolution'],
        attachment_urls=data['attachment_urls'],
        is_manager_override=override,
    )
    create_audit_log(request=request, action='create', model_name='WarrantyClaim', object_id=claim.id,
                     object_reference=claim.claim_number, changes={'serial_number': serial, 'override': override})
    if override:
        logger.info(f"Warranty claim {claim.claim_number} filed with manager override by {request.user.username}")
    return Response(WarrantyClaimSerializer(claim).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def lookup_by_serial(request, serial):
    warranty = ProductWarranty.objects.select_related('product').prefetch_related('claims').filter(
        serial_number=serial
    ).first()
    if warranty is None:
        return error_response('No warranty found for this serial number', status.HTTP_404_NOT_FOUND)
    return Response(WarrantyLookupSerializer(warranty).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def lookup_by_order(request, order_number):
    """Warranties registered for an order or invoice number"""
    warranties = ProductWarranty.objects.select_related('product').filter(
        Q(order_number=order_number) | Q(invoice_number=order_number)
    )
    if not is_manager(request.user):
        warranties = warranties.filter(customer=request.user)
    if not warranties.exists():
        return error_response('No warranties found for this order', status.HTTP_404_NOT_FOUND)
    return Response({
        'order_number': order_number,
        'warranties': ProductWarrantySerializer(warranties, many=True).data,
    })


# Backoffice views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def warranty_list_create(request):
    if request.method == 'GET':
        refresh_expired_warranties()
        warranties = ProductWarranty.objects.select_related('product')
        status_filter = request.query_params.get('status')
        if status_filter:
            warranties = warranties.filter(status=status_filter)
        search = request.query_params.get('search', '').strip()
        if search:
            warranties = warranties.filter(
                Q(serial_number__icontains=search) |
                Q(customer_name__icontains=search) |
                Q(customer_phone__icontains=search) |
                Q(order_number__icontains=search)
            )
        page, page_size = parse_paging(request)
        total, rows = paginate_queryset(warranties, page, page_size)
        return Response({
            'total': total,
            'page': page,
            'page_size': page_size,
            'warranties': ProductWarrantySerializer(rows, many=True).data,
        })

    serializer = ProductWarrantySerializer(data=request.data)
    if serializer.is_valid():
        warranty = serializer.save()
        create_audit_log(request=request, action='create', model_name='ProductWarranty', object_id=warranty.id,
                         object_reference=warranty.serial_number)
        return Response(ProductWarrantySerializer(warranty).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def warranty_void(request, pk):
    warranty = get_object_or_404(ProductWarranty, pk=pk)
    old_status = warranty.status
    try:
        warranty.void(request.data.get('reason', ''))
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action='status_change', model_name='ProductWarranty', object_id=warranty.id,
                     object_reference=warranty.serial_number,
                     changes={'status': {'old': old_status, 'new': warranty.status}})
    return Response(ProductWarrantySerializer(warranty).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_claim_list(request):
    claims = _claim_queryset()
    status_filter = request.query_params.get('status')
    if status_filter:
        claims = claims.filter(status=status_filter)
    serial = request.query_params.get('serial')
    if serial:
        claims = claims.filter(serial_number__icontains=serial)
    page, page_size = parse_paging(request)
    total, rows = paginate_queryset(claims, page, page_size)
    return Response({
        'total': total,
        'page': page,
        'page_size': page_size,
        'claims': WarrantyClaimSerializer(rows, many=True).data,
    })


def _claim_transition(request, pk, action, audit_action):
    claim = get_object_or_404(WarrantyClaim, pk=pk)
    old_status = claim.status
    try:
        with transaction.atomic():
            action(claim)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action=audit_action, model_name='WarrantyClaim', object_id=claim.id,
                     object_reference=claim.claim_number,
                     changes={'status': {'old': old_status, 'new': claim.status}})
    return Response(WarrantyClaimSerializer(_claim_queryset().get(pk=claim.pk)).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_claim_approve(request, pk):
    create_work_order = str(request.data.get('create_work_order', '')).lower() in ('1', 'true', 'yes')
    return _claim_transition(
        request, pk,
        lambda c: c.approve(request.user, request.data.get('notes', ''), create_work_order=create_work_order),
        'approve'
    )


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_claim_reject(request, pk):
    return _claim_transition(request, pk, lambda c: c.reject(request.data.get('reason', ''), request.user), 'reject')


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_claim_resolve(request, pk):
    return _claim_transition(request, pk, lambda c: c.resolve(request.data.get('notes', ''), request.user),
                             'status_change')


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsManagerOrAdmin])
def admin_warranty_stats(request):
    refresh_expired_warranties()
    today = timezone.localdate()
    warranty_counts = dict(
        ProductWarranty.objects.order_by().values_list('status').annotate(n=Count('id'))
    )
    claim_counts = dict(
        WarrantyClaim.objects.order_by().values_list('status').annotate(n=Count('id'))
    )
    expiring_soon = ProductWarranty.objects.filter(
        status=ProductWarranty.STATUS_ACTIVE,
        expiration_date__gte=today,
        expiration_date__lte=today + timedelta(days=30),
    ).count()
    return Response({
        'total_warranties': sum(warranty_counts.values()),
        'active_warranties': warranty_counts.get(ProductWarranty.STATUS_ACTIVE, 0),
        'expired_warranties': warranty_counts.get(ProductWarranty.STATUS_EXPIRED, 0),
        'voided_warranties': warranty_counts.get(ProductWarranty.STATUS_VOIDED, 0),
        'expiring_within_30_days': expiring_soon,
        'total_claims': sum(claim_counts.values()),
        'pending_claims': claim_counts.get(WarrantyClaim.STATUS_PENDING, 0),
        'approved_claims': claim_counts.get(WarrantyClaim.STATUS_APPROVED, 0),
        'rejected_claims': claim_counts.get(WarrantyClaim.STATUS_REJECTED, 0),
        'resolved_claims': claim_counts.get(WarrantyClaim.STATUS_RESOLVED, 0),
        'override_claims': WarrantyClaim.objects.filter(is_manager_override=True).count(),
    })
