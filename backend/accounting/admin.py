from django.contrib import admin
from .models import (
    OrganizationAccount, LedgerEntry, Invoice, InvoiceLine, PaymentApplication,
    ExpenseCategory, Expense, ShiftSession, ShiftTransaction
)


class LedgerEntryInline(admin.TabularInline):
    model = LedgerEntry
    extra = 0
    readonly_fields = ['entry_type', 'amount', 'balance_after', 'description', 'reference', 'created_by', 'created_at']


@admin.register(OrganizationAccount)
class OrganizationAccountAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'account_type', 'currency', 'balance', 'credit_limit', 'is_active']
    list_filter = ['account_type', 'currency', 'is_active']
    search_fields = ['code', 'name', 'tax_code']
    readonly_fields = ['balance']
    inlines = [LedgerEntryInline]


class InvoiceLineInline(admin.TabularInline):
    model = InvoiceLine
    extra = 0
    readonly_fields = ['line_total', 'vat_amount']


class PaymentApplicationInline(admin.TabularInline):
    model = PaymentApplication
    extra = 0
    readonly_fields = ['amount', 'method', 'reference', 'paid_at', 'recorded_by']


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'invoice_type', 'party_name', 'status', 'total_amount', 'paid_amount', 'due_date']
    list_filter = ['invoice_type', 'status', 'currency', 'issue_date']
    search_fields = ['invoice_number', 'party_name', 'order_reference']
    readonly_fields = ['invoice_number', 'subtotal', 'vat_amount', 'total_amount', 'paid_amount', 'issued_at']
    inlines = [InvoiceLineInline, PaymentApplicationInline]


@admin.register(ExpenseCategory)
class ExpenseCategoryAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'is_active']
    search_fields = ['code', 'name']


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = ['expense_number', 'category', 'description', 'total_amount', 'status', 'expense_date']
    list_filter = ['status', 'category', 'expense_date']
    search_fields = ['expense_number', 'description', 'vendor']
    readonly_fields = ['expense_number', 'vat_amount', 'total_amount']


class ShiftTransactionInline(admin.TabularInline):
    model = ShiftTransaction
    extra = 0


@admin.register(ShiftSession)
class ShiftSessionAdmin(admin.ModelAdmin):
    list_display = ['cashier', 'warehouse_name', 'shift_date', 'status', 'opening_balance', 'closing_balance', 'cash_variance']
    list_filter = ['status', 'warehouse_name', 'shift_date']
    inlines = [ShiftTransactionInline]
