import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError, AuthenticationFailed
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404

from .cache_service import cache_service, CacheKeys
from .models import SystemConfig, AuditLog
from .permissions import (
    IsAdminRole, ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT, ROLE_CUSTOMER,
    TECHNICIAN_ROLES, user_has_role, is_backoffice_staff,
)
from .serializers import (
    UserSerializer, UserCreateSerializer, UserRolesSerializer,
    SystemConfigSerializer, AuditLogSerializer
)
from .utils import create_audit_log

logger = logging.getLogger(__name__)

User = get_user_model()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['roles'] = list(user.groups.values_list('name', flat=True))
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that reports deleted users as an invalid token"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except ObjectDoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """Customer self-registration"""
    serializer = UserCreateSerializer(data=request.data)
    if serializer.is_valid():
        with transaction.atomic():
            user = serializer.save()
            group, _ = Group.objects.get_or_create(name=ROLE_CUSTOMER)
            user.groups.add(group)
        token = CustomTokenObtainPairSerializer.get_token(user)
        return Response({
            'user': UserSerializer(user).data,
            'access': str(token.access_token),
            'refresh': str(token),
        }, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Current user with role flags for the backoffice UI"""
    user = request.user
    user_data = UserSerializer(user).data

    user_data['is_admin'] = user_has_role(user, ROLE_ADMIN)
    user_data['is_manager'] = user_has_role(user, ROLE_ADMIN, ROLE_MANAGER)
    user_data['is_technician'] = user_has_role(user, *TECHNICIAN_ROLES) and not user.is_superuser
    user_data['can_access_backoffice'] = is_backoffice_staff(user)
    user_data['can_access_accounting'] = user_has_role(user, ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT)
    user_data['can_access_repair'] = user_has_role(user, ROLE_ADMIN, ROLE_MANAGER, *TECHNICIAN_ROLES)
    return Response(user_data)


# User views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_list_create(request):
    """List all users or create a new user"""
    if request.method == 'GET':
        users = User.objects.prefetch_related('groups').order_by('username')
        role = request.query_params.get('role')
        if role:
            users = users.filter(groups__name=role)
        search = request.query_params.get('search')
        if search:
            users = users.filter(
                Q(username__icontains=search) | Q(email__icontains=search) |
                Q(first_name__icontains=search) | Q(last_name__icontains=search)
            )
        serializer = UserSerializer(users, many=True)
        return Response(serializer.data)
    else:
        serializer = UserCreateSerializer(data=request.data)
        if serializer.is_valid():
            user = serializer.save()
            create_audit_log(request=request, action='create', model_name='User',
                             object_id=user.id, object_name=user.username)
            return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_detail(request, pk):
    """Retrieve, update or delete a user"""
    user = get_object_or_404(User, pk=pk)

    if request.method == 'GET':
        serializer = UserSerializer(user)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = UserSerializer(user, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            create_audit_log(request=request, action='update', model_name='User',
                             object_id=user.id, object_name=user.username,
                             changes={k: str(v) for k, v in serializer.validated_data.items()})
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if user.pk == request.user.pk:
            return Response({'error': 'You cannot delete your own account'}, status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='User',
                         object_id=user.id, object_name=user.username)
        user.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def user_roles(request, pk):
    """Replace the role groups of a user"""
    user = get_object_or_404(User, pk=pk)
    serializer = UserRolesSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    roles = serializer.validated_data['roles']
    with transaction.atomic():
        groups = [Group.objects.get_or_create(name=name)[0] for name in roles]
        old_roles = user.role_names
        user.groups.set(groups)
        # Django admin access follows the backoffice roles
        user.is_staff = any(name in (ROLE_ADMIN, ROLE_MANAGER) for name in roles)
        user.save(update_fields=['is_staff'])

    create_audit_log(request=request, action='role_change', model_name='User',
                     object_id=user.id, object_name=user.username,
                     changes={'old_roles': old_roles, 'new_roles': roles})
    logger.info(f"Roles of {user.username} changed from {old_roles} to {roles}")
    return Response(UserSerializer(user).data)


# System configuration views
@api_view(['GET', 'POST'])
@permission_classes([AllowAny])
def system_config_list_create(request):
    """List configuration entries (public ones for non-admins) or create one"""
    is_admin = user_has_role(request.user, ROLE_ADMIN)

    if request.method == 'GET':
        def load():
            return SystemConfigSerializer(SystemConfig.objects.all(), many=True).data

        configs = cache_service.get_or_set(CacheKeys.system_configs(), load)
        if not is_admin:
            configs = [c for c in configs if c['is_public']]
        return Response(configs)

    if not is_admin:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)
    serializer = SystemConfigSerializer(data=request.data)
    if serializer.is_valid():
        config = serializer.save()
        create_audit_log(request=request, action='create', model_name='SystemConfig',
                         object_id=config.id, object_name=config.key)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([AllowAny])
def system_config_detail(request, key):
    """Retrieve, update or delete a configuration entry by key"""
    is_admin = user_has_role(request.user, ROLE_ADMIN)

    if request.method == 'GET':
        cache_key = CacheKeys.system_config(key)
        data = cache_service.get(cache_key)
        if data is None:
            config = SystemConfig.objects.filter(key=key).first()
            if config is None:
                return Response({'error': 'Config not found'}, status=status.HTTP_404_NOT_FOUND)
            data = SystemConfigSerializer(config).data
            cache_service.set(cache_key, data)
        if not data['is_public'] and not is_admin:
            return Response({'error': 'Config not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(data)

    if not is_admin:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    config = SystemConfig.objects.filter(key=key).first()
    if config is None:
        return Response({'error': 'Config not found'}, status=status.HTTP_404_NOT_FOUND)

    if request.method == 'DELETE':
        create_audit_log(request=request, action='delete', model_name='SystemConfig',
                         object_id=config.id, object_name=config.key)
        config.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    serializer = SystemConfigSerializer(config, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        old_value = config.value
        serializer.save()
        create_audit_log(request=request, action='update', model_name='SystemConfig',
                         object_id=config.id, object_name=config.key,
                         changes={'old_value': old_value, 'new_value': config.value})
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# AuditLog views (read-only)
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_list(request):
    """List audit logs with filtering"""
    queryset = AuditLog.objects.select_related('user')

    if not user_has_role(request.user, ROLE_ADMIN):
        queryset = queryset.filter(user=request.user)

    action_filter = request.query_params.get('action', None)
    if action_filter:
        queryset = queryset.filter(action=action_filter)

    model_filter = request.query_params.get('model', None)
    if model_filter:
        queryset = queryset.filter(model_name=model_filter)

    date_from = request.query_params.get('date_from', None)
    date_to = request.query_params.get('date_to', None)
    if date_from:
        queryset = queryset.filter(created_at__date__gte=date_from)
    if date_to:
        queryset = queryset.filter(created_at__date__lte=date_to)

    queryset = queryset.order_by('-created_at')[:500]
    serializer = AuditLogSerializer(queryset, many=True)
    return Response(serializer.data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def audit_log_detail(request, pk):
    """Retrieve an audit log"""
    audit_log = get_object_or_404(AuditLog, pk=pk)

    if not user_has_role(request.user, ROLE_ADMIN) and audit_log.user_id != request.user.id:
        return Response({'error': 'Permission denied'}, status=status.HTTP_403_FORBIDDEN)

    serializer = AuditLogSerializer(audit_log)
    return Response(serializer.data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def cache_clear(request):
    """Remove cached entries matching a pattern (default: everything)"""
    pattern = request.data.get('pattern') or CacheKeys.ALL
    if not pattern.startswith('cache:'):
        return Response({'error': "Pattern must start with 'cache:'"}, status=status.HTTP_400_BAD_REQUEST)
    removed = cache_service.remove_by_pattern(pattern)
    create_audit_log(request=request, action='cache_clear', model_name='Cache',
                     object_id=pattern, changes={'removed': removed})
    return Response({'pattern': pattern, 'removed': removed})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def global_search(request):
    """Search across products, orders, work orders and invoices"""
    query = request.query_params.get('q', '').strip()

    results = {
        'products': [],
        'orders': [],
        'work_orders': [],
        'invoices': [],
    }
    if not query:
        return Response(results)

    from backend.catalog.models import Product
    from backend.sales.models import Order
    from backend.repair.models import WorkOrder
    from backend.accounting.models import Invoice

    staff = is_backoffice_staff(request.user)

    products = Product.objects.filter(Q(name__icontains=query) | Q(sku__icontains=query))
    if not staff:
        products = products.filter(is_active=True)
    results['products'] = [
        {'id': p.id, 'name': p.name, 'sku': p.sku, 'price': str(p.price)}
        for p in products.order_by('name')[:10]
    ]

    orders = Order.objects.filter(order_number__icontains=query)
    if not staff:
        orders = orders.filter(customer=request.user)
    results['orders'] = [
        {'id': o.id, 'order_number': o.order_number, 'status': o.status, 'total_amount': str(o.total_amount)}
        for o in orders.order_by('-order_date')[:10]
    ]

    work_orders = WorkOrder.objects.filter(
        Q(ticket_number__icontains=query) | Q(serial_number__icontains=query) | Q(customer_phone__icontains=query)
    )
    if not staff:
        work_orders = work_orders.filter(customer=request.user)
    results['work_orders'] = [
        {'id': w.id, 'ticket_number': w.ticket_number, 'device_model': w.device_model, 'status': w.status}
        for w in work_orders.order_by('-created_at')[:10]
    ]

    if user_has_role(request.user, ROLE_ADMIN, ROLE_MANAGER, ROLE_ACCOUNTANT):
        invoices = Invoice.objects.filter(Q(invoice_number__icontains=query) | Q(party_name__icontains=query))
        results['invoices'] = [
            {'id': i.id, 'invoice_number': i.invoice_number, 'party_name': i.party_name, 'status': i.status}
            for i in invoices.order_by('-issue_date')[:10]
        ]

    return Response(results)
