from django.urls import path
from .views import (
    account_list_create, account_detail, account_ledger, account_debit, account_credit,
    invoice_list_create, invoice_detail, invoice_add_line, invoice_issue, invoice_cancel,
    invoice_payments, invoice_html,
    ar_list, ar_detail, ar_apply_payment, ar_aging_summary,
    ap_list, ap_detail, ap_aging_summary,
    expense_category_list_create, expense_category_detail,
    expense_list_create, expense_approve, expense_reject, expense_pay,
    shift_list, shift_open, shift_detail, shift_close, shift_transactions,
    accounting_stats,
)

urlpatterns = [
    # Organization accounts
    path('accounting/accounts/', account_list_create, name='account-list-create'),
    path('accounting/accounts/<int:pk>/', account_detail, name='account-detail'),
    path('accounting/accounts/<int:pk>/ledger/', account_ledger, name='account-ledger'),
    path('accounting/accounts/<int:pk>/debit/', account_debit, name='account-debit'),
    path('accounting/accounts/<int:pk>/credit/', account_credit, name='account-credit'),

    # Invoices
    path('accounting/invoices/', invoice_list_create, name='invoice-list-create'),
    path('accounting/invoices/<int:pk>/', invoice_detail, name='invoice-detail'),
    path('accounting/invoices/<int:pk>/lines/', invoice_add_line, name='invoice-add-line'),
    path('accounting/invoices/<int:pk>/issue/', invoice_issue, name='invoice-issue'),
    path('accounting/invoices/<int:pk>/cancel/', invoice_cancel, name='invoice-cancel'),
    path('accounting/invoices/<int:pk>/payments/', invoice_payments, name='invoice-payments'),
    path('accounting/invoices/<int:pk>/html/', invoice_html, name='invoice-html'),

    # Accounts receivable
    path('accounting/ar/', ar_list, name='ar-list'),
    path('accounting/ar/aging-summary/', ar_aging_summary, name='ar-aging-summary'),
    path('accounting/ar/<int:pk>/', ar_detail, name='ar-detail'),
    path('accounting/ar/<int:pk>/apply-payment/', ar_apply_payment, name='ar-apply-payment'),

    # Accounts payable
    path('accounting/ap/', ap_list, name='ap-list'),
    path('accounting/ap/aging-summary/', ap_aging_summary, name='ap-aging-summary'),
    path('accounting/ap/<int:pk>/', ap_detail, name='ap-detail'),

    # Expenses
    path('accounting/expense-categories/', expense_category_list_create, name='expense-category-list-create'),
    path('accounting/expense-categories/<int:pk>/', expense_category_detail, name='expense-category-detail'),
    path('accounting/expenses/', expense_list_create, name='expense-list-create'),
    path('accounting/expenses/<int:pk>/approve/', expense_approve, name='expense-approve'),
    path('accounting/expenses/<int:pk>/reject/', expense_reject, name='expense-reject'),
    path('accounting/expenses/<int:pk>/pay/', expense_pay, name='expense-pay'),

    # Shifts
    path('accounting/shifts/', shift_list, name='shift-list'),
    path('accounting/shifts/open/', shift_open, name='shift-open'),
    path('accounting/shifts/<int:pk>/', shift_detail, name='shift-detail'),
    path('accounting/shifts/<int:pk>/close/', shift_close, name='shift-close'),
    path('accounting/shifts/<int:pk>/transactions/', shift_transactions, name='shift-transactions'),

    path('accounting/stats/', accounting_stats, name='accounting-stats'),
]
