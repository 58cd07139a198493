from decimal import Decimal

from rest_framework import serializers
from .models import (
    OrganizationAccount, LedgerEntry, Invoice, InvoiceLine, PaymentApplication,
    ExpenseCategory, Expense, ShiftSession, ShiftTransaction
)


class OrganizationAccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrganizationAccount
        fields = ['id', 'name', 'code', 'account_type', 'currency', 'exchange_rate', 'balance', 'credit_limit',
                  'contact_email', 'contact_phone', 'tax_code', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['balance', 'created_at', 'updated_at']

    def validate_code(self, value):
        code = value.strip().upper()
        queryset = OrganizationAccount.objects.filter(code=code)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('An account with this code already exists')
        return code

    def validate_credit_limit(self, value):
        if value < 0:
            raise serializers.ValidationError('Credit limit cannot be negative')
        return value


class LedgerEntrySerializer(serializers.ModelSerializer):
    created_by_name = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = LedgerEntry
        fields = ['id', 'entry_type', 'amount', 'balance_after', 'description', 'reference',
                  'created_by', 'created_by_name', 'created_at']


class LedgerPostSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    description = serializers.CharField(max_length=255, allow_blank=True, default='')
    reference = serializers.CharField(max_length=100, allow_blank=True, default='')


class InvoiceLineSerializer(serializers.ModelSerializer):
    class Meta:
        model = InvoiceLine
        fields = ['id', 'description', 'quantity', 'unit_price', 'vat_rate', 'line_total', 'vat_amount']
        read_only_fields = ['line_total', 'vat_amount']

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError('Quantity must be greater than 0')
        return value

    def validate_unit_price(self, value):
        if value < 0:
            raise serializers.ValidationError('Unit price cannot be negative')
        return value

    def validate_vat_rate(self, value):
        if value < 0 or value > 100:
            raise serializers.ValidationError('VAT rate must be between 0 and 100')
        return value


class PaymentApplicationSerializer(serializers.ModelSerializer):
    recorded_by_name = serializers.CharField(source='recorded_by.username', read_only=True, default=None)

    class Meta:
        model = PaymentApplication
        fields = ['id', 'invoice', 'amount', 'method', 'reference', 'paid_at', 'recorded_by',
                  'recorded_by_name', 'created_at']
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    method = serializers.ChoiceField(choices=PaymentApplication.METHOD_CHOICES, default='cash')
    reference = serializers.CharField(max_length=100, allow_blank=True, default='')
    paid_at = serializers.DateTimeField(required=False)


class InvoiceListSerializer(serializers.ModelSerializer):
    outstanding_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    aging_bucket = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = ['id', 'invoice_type', 'invoice_number', 'party_name', 'issue_date', 'due_date', 'status',
                  'currency', 'total_amount', 'paid_amount', 'outstanding_amount', 'aging_bucket']

    def get_aging_bucket(self, obj):
        return obj.aging_bucket()


class InvoiceSerializer(serializers.ModelSerializer):
    lines = InvoiceLineSerializer(many=True, required=False)
    payments = PaymentApplicationSerializer(many=True, read_only=True)
    outstanding_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    days_overdue = serializers.SerializerMethodField()
    aging_bucket = serializers.SerializerMethodField()
    account_code = serializers.CharField(source='account.code', read_only=True, default=None)

    class Meta:
        model = Invoice
        fields = ['id', 'invoice_type', 'invoice_number', 'account', 'account_code', 'party_name', 'party_email',
                  'party_tax_code', 'party_address', 'order_reference', 'issue_date', 'due_date', 'status',
                  'currency', 'subtotal', 'vat_amount', 'total_amount', 'paid_amount', 'outstanding_amount',
                  'days_overdue', 'aging_bucket', 'notes', 'lines', 'payments', 'issued_at',
                  'created_at', 'updated_at']
        read_only_fields = ['invoice_number', 'status', 'subtotal', 'vat_amount', 'total_amount', 'paid_amount',
                            'issued_at', 'created_at', 'updated_at']

    def get_days_overdue(self, obj):
        if obj.status not in Invoice.OPEN_STATUSES:
            return 0
        return max(obj.days_overdue(), 0)

    def get_aging_bucket(self, obj):
        return obj.aging_bucket()

    def validate(self, attrs):
        issue_date = attrs.get('issue_date', getattr(self.instance, 'issue_date', None))
        due_date = attrs.get('due_date', getattr(self.instance, 'due_date', None))
        if issue_date and due_date and due_date < issue_date:
            raise serializers.ValidationError({'due_date': 'Due date cannot be before issue date'})
        return attrs

    def create(self, validated_data):
        lines = validated_data.pop('lines', [])
        invoice = Invoice.objects.create(**validated_data)
        for line in lines:
            invoice.add_line(line['description'], line.get('quantity', Decimal('1')),
                             line['unit_price'], line.get('vat_rate', 0))
        return invoice


class ExpenseCategorySerializer(serializers.ModelSerializer):
    expense_count = serializers.SerializerMethodField()

    class Meta:
        model = ExpenseCategory
        fields = ['id', 'name', 'code', 'description', 'is_active', 'expense_count', 'created_at']
        read_only_fields = ['created_at']

    def get_expense_count(self, obj):
        return obj.expenses.count()

    def validate_code(self, value):
        code = value.strip().upper()
        queryset = ExpenseCategory.objects.filter(code=code)
        if self.instance is not None:
            queryset = queryset.exclude(pk=self.instance.pk)
        if queryset.exists():
            raise serializers.ValidationError('An expense category with this code already exists')
        return code


class ExpenseSerializer(serializers.ModelSerializer):
    category_name = serializers.CharField(source='category.name', read_only=True)
    created_by_name = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = Expense
        fields = ['id', 'expense_number', 'category', 'category_name', 'description', 'amount', 'vat_rate',
                  'vat_amount', 'total_amount', 'expense_date', 'vendor', 'payment_method', 'status',
                  'rejection_reason', 'created_by', 'created_by_name', 'approved_by', 'approved_at', 'paid_at',
                  'created_at', 'updated_at']
        read_only_fields = ['expense_number', 'vat_amount', 'total_amount', 'status', 'rejection_reason',
                            'created_by', 'approved_by', 'approved_at', 'paid_at', 'created_at', 'updated_at']

    def validate_category(self, value):
        if not value.is_active:
            raise serializers.ValidationError('Expense category is inactive')
        return value


class ShiftTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = ShiftTransaction
        fields = ['id', 'shift', 'transaction_type', 'description', 'amount', 'reference', 'created_by', 'created_at']
        read_only_fields = ['shift', 'created_by', 'created_at']


class ShiftSessionSerializer(serializers.ModelSerializer):
    cashier_name = serializers.CharField(source='cashier.username', read_only=True)
    net_transactions = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = ShiftSession
        fields = ['id', 'cashier', 'cashier_name', 'warehouse_name', 'shift_date', 'opening_balance',
                  'closing_balance', 'expected_balance', 'cash_variance', 'net_transactions', 'status',
                  'opened_at', 'closed_at', 'duration_minutes', 'notes']
        read_only_fields = ['cashier', 'closing_balance', 'expected_balance', 'cash_variance', 'status',
                            'opened_at', 'closed_at', 'duration_minutes']

    def validate_opening_balance(self, value):
        if value < 0:
            raise serializers.ValidationError('Opening balance cannot be negative')
        return value
