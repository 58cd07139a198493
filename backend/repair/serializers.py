from decimal import Decimal

from rest_framework import serializers
from .models import Technician, WorkOrder, WorkOrderPart, WorkOrderActivityLog, RepairQuote, ServiceBooking


class TechnicianSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True, default=None)
    active_work_orders = serializers.SerializerMethodField()

    class Meta:
        model = Technician
        fields = ['id', 'user', 'username', 'name', 'phone', 'email', 'specialty', 'hourly_rate',
                  'is_available', 'is_active', 'active_work_orders', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_active_work_orders(self, obj):
        return obj.work_orders.exclude(status__in=WorkOrder.TERMINAL_STATUSES).count()


class WorkOrderPartSerializer(serializers.ModelSerializer):
    class Meta:
        model = WorkOrderPart
        fields = ['id', 'part_name', 'part_number', 'quantity', 'unit_price', 'total_price', 'created_at']
        read_only_fields = ['total_price', 'created_at']


class WorkOrderActivityLogSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = WorkOrderActivityLog
        fields = ['id', 'activity_type', 'description', 'old_status', 'new_status', 'user', 'username', 'created_at']


class RepairQuoteSerializer(serializers.ModelSerializer):
    class Meta:
        model = RepairQuote
        fields = ['id', 'quote_number', 'parts_cost', 'labor_cost', 'service_fee', 'total_amount', 'valid_until',
                  'status', 'notes', 'rejection_reason', 'approved_at', 'rejected_at', 'created_at']
        read_only_fields = fields


class WorkOrderListSerializer(serializers.ModelSerializer):
    technician_name = serializers.CharField(source='technician.name', read_only=True, default=None)

    class Meta:
        model = WorkOrder
        fields = ['id', 'ticket_number', 'customer_name', 'customer_phone', 'device_model', 'serial_number',
                  'service_type', 'priority', 'status', 'technician', 'technician_name', 'estimated_cost',
                  'actual_cost', 'created_at', 'updated_at']


class WorkOrderSerializer(serializers.ModelSerializer):
    technician_name = serializers.CharField(source='technician.name', read_only=True, default=None)
    parts = WorkOrderPartSerializer(many=True, read_only=True)
    quotes = RepairQuoteSerializer(many=True, read_only=True)

    class Meta:
        model = WorkOrder
        fields = ['id', 'ticket_number', 'customer', 'customer_name', 'customer_phone', 'customer_email',
                  'device_model', 'serial_number', 'issue_description', 'service_type', 'service_address',
                  'priority', 'status', 'technician', 'technician_name', 'diagnosis', 'technical_notes',
                  'estimated_cost', 'parts_cost', 'labor_cost', 'service_fee', 'actual_cost', 'is_warranty_repair',
                  'parts', 'quotes', 'created_at', 'updated_at', 'assigned_at', 'accepted_at', 'started_at',
                  'completed_at', 'cancelled_at']
        read_only_fields = ['ticket_number', 'status', 'technician', 'diagnosis', 'technical_notes',
                            'parts_cost', 'actual_cost', 'created_at', 'updated_at', 'assigned_at',
                            'accepted_at', 'started_at', 'completed_at', 'cancelled_at']

    def validate(self, attrs):
        service_type = attrs.get('service_type', getattr(self.instance, 'service_type', 'in_shop'))
        address = attrs.get('service_address', getattr(self.instance, 'service_address', ''))
        if service_type == 'on_site' and not address:
            raise serializers.ValidationError({'service_address': 'Address is required for on-site service'})
        return attrs


class CustomerWorkOrderSerializer(serializers.ModelSerializer):
    """Repair request submitted by a customer"""

    class Meta:
        model = WorkOrder
        fields = ['device_model', 'serial_number', 'issue_description', 'service_type', 'service_address',
                  'customer_phone']

    def validate(self, attrs):
        if attrs.get('service_type') == 'on_site' and not attrs.get('service_address'):
            raise serializers.ValidationError({'service_address': 'Address is required for on-site service'})
        return attrs


class ServiceBookingSerializer(serializers.ModelSerializer):
    work_order_ticket = serializers.CharField(source='work_order.ticket_number', read_only=True, default=None)

    class Meta:
        model = ServiceBooking
        fields = ['id', 'customer', 'customer_name', 'customer_phone', 'service_type', 'device_model',
                  'serial_number', 'issue_description', 'preferred_date', 'address', 'service_fee', 'status',
                  'rejection_reason', 'work_order', 'work_order_ticket', 'created_at', 'updated_at']
        read_only_fields = ['customer', 'service_fee', 'status', 'rejection_reason', 'work_order',
                            'created_at', 'updated_at']
        extra_kwargs = {'customer_name': {'required': False}}

    def validate(self, attrs):
        if attrs.get('service_type') == 'on_site' and not attrs.get('address'):
            raise serializers.ValidationError({'address': 'Address is required for on-site service'})
        return attrs


class QuoteCreateSerializer(serializers.Serializer):
    labor_cost = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), default=Decimal('0'))
    service_fee = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False)
    notes = serializers.CharField(allow_blank=True, default='')
