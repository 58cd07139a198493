from rest_framework import serializers
from .models import Cart, CartItem, Order, OrderItem, ReturnRequest


class CartItemSerializer(serializers.ModelSerializer):
    product_id = serializers.IntegerField(read_only=True)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    image_url = serializers.CharField(source='product.image_url', read_only=True)
    stock_quantity = serializers.IntegerField(source='product.stock_quantity', read_only=True)

    class Meta:
        model = CartItem
        fields = ['id', 'product_id', 'product_name', 'price', 'quantity', 'subtotal', 'image_url', 'stock_quantity']


class CartSerializer(serializers.ModelSerializer):
    items = CartItemSerializer(many=True, read_only=True)
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    item_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Cart
        fields = ['id', 'items', 'total_amount', 'item_count', 'coupon_code', 'updated_at']


class CartItemAddSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, default=1)


class CheckoutItemSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1)


class CheckoutSerializer(serializers.Serializer):
    items = CheckoutItemSerializer(many=True, required=False)
    shipping_address = serializers.CharField(allow_blank=True, default='')
    is_pickup = serializers.BooleanField(default=False)
    notes = serializers.CharField(allow_blank=True, default='')
    coupon_code = serializers.CharField(allow_blank=True, default='')


class OrderStatusSerializer(serializers.Serializer):
    """Admin status change; serial_numbers maps order item ids to shipped serials"""
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES)
    reason = serializers.CharField(allow_blank=True, default='')
    serial_numbers = serializers.DictField(
        child=serializers.ListField(child=serializers.CharField(max_length=100)),
        required=False
    )


class OrderItemSerializer(serializers.ModelSerializer):
    product_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'product_id', 'product_name', 'unit_price', 'original_price', 'flash_sale',
                  'quantity', 'subtotal']


class OrderListSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.username', read_only=True)
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'customer', 'customer_name', 'status', 'total_amount',
                  'is_pickup', 'item_count', 'order_date']

    def get_item_count(self, obj):
        return len(obj.items.all())


class OrderSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.username', read_only=True)
    items = OrderItemSerializer(many=True, read_only=True)
    can_cancel = serializers.BooleanField(read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'customer', 'customer_name', 'status', 'subtotal',
                  'discount_amount', 'coupon_code', 'shipping_amount', 'tax_amount', 'total_amount',
                  'shipping_address', 'is_pickup', 'notes', 'items', 'can_cancel', 'order_date',
                  'confirmed_at', 'paid_at', 'shipped_at', 'delivered_at', 'cancelled_at']
        read_only_fields = fields


class ReturnRequestSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    product_name = serializers.CharField(source='order_item.product_name', read_only=True)
    processed_by_name = serializers.CharField(source='processed_by.username', read_only=True, default=None)

    class Meta:
        model = ReturnRequest
        fields = ['id', 'order', 'order_number', 'order_item', 'product_name', 'customer', 'quantity',
                  'reason', 'description', 'status', 'refund_amount', 'refund_method', 'customer_notes',
                  'rejection_reason', 'processed_by', 'processed_by_name', 'requested_at', 'approved_at',
                  'rejected_at', 'refunded_at', 'completed_at']
        read_only_fields = fields


class ReturnRequestCreateSerializer(serializers.Serializer):
    order_item_id = serializers.IntegerField()
    reason = serializers.ChoiceField(choices=ReturnRequest.REASON_CHOICES)
    description = serializers.CharField(allow_blank=True, default='')
    quantity = serializers.IntegerField(required=False, min_value=1)
    customer_notes = serializers.CharField(allow_blank=True, default='')
