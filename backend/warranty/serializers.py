from rest_framework import serializers
from .models import ProductWarranty, WarrantyClaim


class ProductWarrantySerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    is_valid = serializers.SerializerMethodField()
    days_remaining = serializers.IntegerField(read_only=True)

    class Meta:
        model = ProductWarranty
        fields = ['id', 'product', 'product_name', 'serial_number', 'customer', 'customer_name', 'customer_phone',
                  'order_number', 'invoice_number', 'purchase_date', 'warranty_months', 'expiration_date',
                  'status', 'is_valid', 'days_remaining', 'void_reason', 'voided_at', 'created_at', 'updated_at']
        read_only_fields = ['expiration_date', 'status', 'void_reason', 'voided_at', 'created_at', 'updated_at']
        extra_kwargs = {'warranty_months': {'required': False}}

    def get_is_valid(self, obj):
        return obj.is_valid()

    def validate(self, attrs):
        if 'warranty_months' not in attrs:
            product = attrs.get('product') or getattr(self.instance, 'product', None)
            if product is None or not product.warranty_months:
                raise serializers.ValidationError({'warranty_months': 'Product has no default warranty period'})
            attrs['warranty_months'] = product.warranty_months
        elif attrs['warranty_months'] < 1:
            raise serializers.ValidationError({'warranty_months': 'Warranty period must be at least 1 month'})
        return attrs


class WarrantyClaimSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='warranty.product.name', read_only=True)
    work_order_ticket = serializers.CharField(source='work_order.ticket_number', read_only=True, default=None)

    class Meta:
        model = WarrantyClaim
        fields = ['id', 'claim_number', 'warranty', 'serial_number', 'product_name', 'customer',
                  'issue_description', 'preferred_resolution', 'attachment_urls', 'status',
                  'is_manager_override', 'resolution_notes', 'rejection_reason', 'work_order',
                  'work_order_ticket', 'reviewed_by', 'approved_at', 'rejected_at', 'resolved_at',
                  'created_at', 'updated_at']
        read_only_fields = fields


class WarrantyClaimCreateSerializer(serializers.Serializer):
    serial_number = serializers.CharField(max_length=100, allow_blank=True, default='')
    issue_description = serializers.CharField(allow_blank=True, default='')
    preferred_resolution = serializers.ChoiceField(choices=WarrantyClaim.RESOLUTION_CHOICES, default='repair')
    attachment_urls = serializers.ListField(child=serializers.URLField(), default=list)
    is_manager_override = serializers.BooleanField(default=False)


class WarrantyLookupSerializer(ProductWarrantySerializer):
    claims = WarrantyClaimSerializer(many=True, read_only=True)

    class Meta(ProductWarrantySerializer.Meta):
        fields = ProductWarrantySerializer.Meta.fields + ['claims']
