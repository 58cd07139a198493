from rest_framework import serializers
from .models import Post, CMSPage, Banner, Coupon, FlashSale, Menu, MenuItem, ContactMessage


class PostSerializer(serializers.ModelSerializer):
    author_name = serializers.CharField(source='author.username', read_only=True, default=None)

    class Meta:
        model = Post
        fields = ['id', 'title', 'slug', 'summary', 'body', 'image_url', 'is_published', 'published_at',
                  'author', 'author_name', 'created_at', 'updated_at']
        read_only_fields = ['author', 'published_at', 'created_at', 'updated_at']
        extra_kwargs = {'slug': {'required': False}}


class CMSPageSerializer(serializers.ModelSerializer):
    class Meta:
        model = CMSPage
        fields = ['id', 'title', 'slug', 'content', 'meta_title', 'meta_description', 'meta_keywords',
                  'page_type', 'is_published', 'view_count', 'show_in_menu', 'menu_order',
                  'created_at', 'updated_at']
        read_only_fields = ['view_count', 'created_at', 'updated_at']
        extra_kwargs = {'slug': {'required': False}}


class BannerSerializer(serializers.ModelSerializer):
    is_active_now = serializers.SerializerMethodField()

    class Meta:
        model = Banner
        fields = ['id', 'title', 'image_url', 'link_url', 'position', 'device', 'display_order',
                  'is_active', 'is_active_now', 'start_date', 'end_date', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_is_active_now(self, obj):
        return obj.is_active_now()

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date must be after start date'})
        return attrs


class CouponSerializer(serializers.ModelSerializer):
    class Meta:
        model = Coupon
        fields = ['id', 'code', 'description', 'discount_type', 'discount_value', 'min_order_amount',
                  'max_discount_amount', 'start_date', 'end_date', 'usage_limit', 'usage_count',
                  'is_active', 'created_at', 'updated_at']
        read_only_fields = ['usage_count', 'created_at', 'updated_at']

    def validate_code(self, value):
        code = value.strip().upper()
        queryset = Coupon.objects.filter(code=code)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('A coupon with this code already exists')
        return code

    def validate(self, attrs):
        discount_type = attrs.get('discount_type', getattr(self.instance, 'discount_type', None))
        value = attrs.get('discount_value', getattr(self.instance, 'discount_value', None))
        if value is not None and value <= 0:
            raise serializers.ValidationError({'discount_value': 'Discount value must be greater than 0'})
        if discount_type == 'percentage' and value is not None and value > 100:
            raise serializers.ValidationError({'discount_value': 'Percentage discount cannot exceed 100'})
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date must be after start date'})
        return attrs


class CouponValidateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    order_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class FlashSaleSerializer(serializers.ModelSerializer):
    is_sold_out = serializers.BooleanField(read_only=True)
    is_currently_active = serializers.SerializerMethodField()

    class Meta:
        model = FlashSale
        fields = ['id', 'name', 'description', 'image_url', 'discount_type', 'discount_value',
                  'max_discount_amount', 'start_time', 'end_time', 'products', 'categories',
                  'apply_to_all_products', 'max_quantity_per_order', 'total_quantity_limit',
                  'sold_quantity', 'display_order', 'status', 'is_active', 'is_sold_out',
                  'is_currently_active', 'badge_text', 'badge_color', 'created_at', 'updated_at']
        read_only_fields = ['sold_quantity', 'status', 'created_at', 'updated_at']
        extra_kwargs = {
            'badge_text': {'required': False},
            'badge_color': {'required': False},
        }

    def get_is_currently_active(self, obj):
        return obj.is_currently_active()

    def validate(self, attrs):
        start = attrs.get('start_time', getattr(self.instance, 'start_time', None))
        end = attrs.get('end_time', getattr(self.instance, 'end_time', None))
        if start and end and end <= start:
            raise serializers.ValidationError({'end_time': 'End time must be after start time'})
        value = attrs.get('discount_value', getattr(self.instance, 'discount_value', None))
        if value is not None and value <= 0:
            raise serializers.ValidationError({'discount_value': 'Discount value must be greater than 0'})
        return attrs


class MenuItemSerializer(serializers.ModelSerializer):
    children = serializers.SerializerMethodField()

    class Meta:
        model = MenuItem
        fields = ['id', 'menu', 'parent', 'title', 'url', 'order', 'open_in_new_tab', 'is_active', 'children']
        read_only_fields = ['menu']

    def get_children(self, obj):
        children = [c for c in obj.children.all() if c.is_active]
        return MenuItemSerializer(children, many=True).data


class MenuSerializer(serializers.ModelSerializer):
    items = serializers.SerializerMethodField()

    class Meta:
        model = Menu
        fields = ['id', 'name', 'location', 'is_active', 'items', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def get_items(self, obj):
        roots = obj.items.filter(parent__isnull=True, is_active=True).prefetch_related('children')
        return MenuItemSerializer(roots, many=True).data


class ContactMessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = ContactMessage
        fields = ['id', 'name', 'email', 'phone', 'subject', 'message', 'status', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']
