import logging
from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q, Sum, F
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.template.loader import render_to_string
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from backend.core.exceptions import error_message, error_response
from backend.core.permissions import IsAccountingStaff
from backend.core.utils import create_audit_log, parse_paging, paginate_queryset
from .models import (
    OrganizationAccount, Invoice, PaymentApplication, ExpenseCategory, Expense, ShiftSession
)
from .serializers import (
    OrganizationAccountSerializer, LedgerEntrySerializer, LedgerPostSerializer, InvoiceSerializer,
    InvoiceListSerializer, InvoiceLineSerializer, PaymentApplicationSerializer, PaymentCreateSerializer,
    ExpenseCategorySerializer, ExpenseSerializer, ShiftSessionSerializer, ShiftTransactionSerializer
)

logger = logging.getLogger(__name__)

ACCOUNTING_PERMISSIONS = [IsAuthenticated, IsAccountingStaff]


def _invoice_queryset():
    return Invoice.objects.select_related('account').prefetch_related('lines', 'payments')


def _filter_invoices(request, invoices):
    status_filter = request.query_params.get('status')
    if status_filter:
        invoices = invoices.filter(status=status_filter)
    search = request.query_params.get('search')
    if search:
        invoices = invoices.filter(
            Q(invoice_number__icontains=search) |
            Q(party_name__icontains=search) |
            Q(order_reference__icontains=search)
        )
    if request.query_params.get('overdue_only') == 'true':
        invoices = invoices.filter(status__in=Invoice.OPEN_STATUSES, due_date__lt=timezone.localdate())
    return invoices


def _refresh_overdue():
    """Flag open invoices past their due date"""
    today = timezone.localdate()
    return Invoice.objects.filter(
        status__in=[Invoice.STATUS_ISSUED, Invoice.STATUS_PARTIALLY_PAID], due_date__lt=today
    ).update(status=Invoice.STATUS_OVERDUE, updated_at=timezone.now())


def _create_invoice(request, invoice_type=None):
    data = request.data.copy() if hasattr(request.data, 'copy') else dict(request.data)
    if invoice_type:
        data['invoice_type'] = invoice_type
    serializer = InvoiceSerializer(data=data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        with transaction.atomic():
            invoice = serializer.save(created_by=request.user)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action='create', model_name='Invoice', object_id=invoice.id,
                     object_reference=invoice.invoice_number, object_name=invoice.party_name)
    return Response(InvoiceSerializer(_invoice_queryset().get(pk=invoice.pk)).data, status=status.HTTP_201_CREATED)


# Organization accounts
@api_view(['GET', 'POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def account_list_create(request):
    if request.method == 'GET':
        accounts = OrganizationAccount.objects.all()
        account_type = request.query_params.get('account_type')
        if account_type:
            accounts = accounts.filter(account_type=account_type)
        search = request.query_params.get('search')
        if search:
            accounts = accounts.filter(Q(name__icontains=search) | Q(code__icontains=search))
        return Response(OrganizationAccountSerializer(accounts, many=True).data)
    serializer = OrganizationAccountSerializer(data=request.data)
    if serializer.is_valid():
        account = serializer.save()
        create_audit_log(request=request, action='create', model_name='OrganizationAccount',
                         object_id=account.id, object_name=account.name, object_reference=account.code)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PATCH'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def account_detail(request, pk):
    account = get_object_or_404(OrganizationAccount, pk=pk)
    if request.method == 'GET':
        return Response(OrganizationAccountSerializer(account).data)
    serializer = OrganizationAccountSerializer(account, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        create_audit_log(request=request, action='update', model_name='OrganizationAccount',
                         object_id=account.id, object_name=account.name, changes=request.data)
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def account_ledger(request, pk):
    account = get_object_or_404(OrganizationAccount, pk=pk)
    page, page_size = parse_paging(request)
    total, rows = paginate_queryset(account.ledger_entries.select_related('created_by'), page, page_size)
    return Response({
        'account': OrganizationAccountSerializer(account).data,
        'total': total,
        'page': page,
        'page_size': page_size,
        'entries': LedgerEntrySerializer(rows, many=True).data,
    })


def _post_ledger(request, pk, entry_type):
    account = get_object_or_404(OrganizationAccount, pk=pk)
    serializer = LedgerPostSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    post = account.debit if entry_type == 'debit' else account.credit
    try:
        entry = post(data['amount'], data['description'], data['reference'], request.user)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action='payment', model_name='OrganizationAccount', object_id=account.id,
                     object_reference=account.code,
                     changes={'entry_type': entry_type, 'amount': str(entry.amount), 'balance': str(entry.balance_after)})
    return Response(LedgerEntrySerializer(entry).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def account_debit(request, pk):
    return _post_ledger(request, pk, 'debit')


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def account_credit(request, pk):
    return _post_ledger(request, pk, 'credit')


# Invoices
@api_view(['GET', 'POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def invoice_list_create(request):
    """Paged invoice list (type, status, search) or create a draft invoice"""
    if request.method == 'POST':
        return _create_invoice(request)

    _refresh_overdue()
    page, page_size = parse_paging(request)
    invoices = Invoice.objects.select_related('account')
    invoice_type = request.query_params.get('type')
    if invoice_type:
        invoices = invoices.filter(invoice_type=invoice_type)
    invoices = _filter_invoices(request, invoices)
    total, rows = paginate_queryset(invoices, page, page_size)
    return Response({
        'total': total,
        'page': page,
        'page_size': page_size,
        'invoices': InvoiceListSerializer(rows, many=True).data,
    })


@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def invoice_detail(request, pk):
    invoice = _invoice_queryset().filter(pk=pk).first()
    if invoice is None:
        return Response({'error': 'Invoice not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(InvoiceSerializer(invoice).data)


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def invoice_add_line(request, pk):
    invoice = get_object_or_404(Invoice, pk=pk)
    serializer = InvoiceLineSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        with transaction.atomic():
            invoice.add_line(data['description'], data.get('quantity', Decimal('1')),
                             data['unit_price'], data.get('vat_rate', 0))
    except DjangoValidationError as e:
        return error_response(error_message(e))
    return Response(InvoiceSerializer(_invoice_queryset().get(pk=invoice.pk)).data, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def invoice_issue(request, pk):
    invoice = get_object_or_404(Invoice, pk=pk)
    try:
        invoice.issue()
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action='status_change', model_name='Invoice', object_id=invoice.id,
                     object_reference=invoice.invoice_number, changes={'status': invoice.status})
    return Response(InvoiceSerializer(_invoice_queryset().get(pk=invoice.pk)).data)


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def invoice_cancel(request, pk):
    invoice = get_object_or_404(Invoice, pk=pk)
    reason = (request.data.get('reason') or '').strip()
    try:
        invoice.cancel(reason)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action='cancel', model_name='Invoice', object_id=invoice.id,
                     object_reference=invoice.invoice_number, changes={'reason': reason})
    return Response(InvoiceSerializer(_invoice_queryset().get(pk=invoice.pk)).data)


def _apply_payment(request, invoice):
    serializer = PaymentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=invoice.pk)
            payment = invoice.apply_payment(
                data['amount'], data['method'], data['reference'], request.user, data.get('paid_at')
            )
    except DjangoValidationError as e:
        return error_response(error_message(e))

    create_audit_log(
        request=request, action='payment', model_name='Invoice', object_id=invoice.id,
        object_reference=invoice.invoice_number,
        changes={'amount': str(payment.amount), 'method': payment.method, 'status': invoice.status}
    )
    logger.info(f"Payment of {payment.amount} applied to invoice {invoice.invoice_number}")
    return Response({
        'payment': PaymentApplicationSerializer(payment).data,
        'invoice': InvoiceSerializer(_invoice_queryset().get(pk=invoice.pk)).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def invoice_payments(request, pk):
    invoice = get_object_or_404(Invoice, pk=pk)
    if request.method == 'GET':
        payments = invoice.payments.select_related('recorded_by')
        return Response(PaymentApplicationSerializer(payments, many=True).data)
    return _apply_payment(request, invoice)


@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def invoice_html(request, pk):
    """Printable invoice"""
    invoice = get_object_or_404(_invoice_queryset(), pk=pk)
    html = render_to_string('accounting/invoice.html', {
        'invoice': invoice,
        'lines': invoice.lines.all(),
        'payments': invoice.payments.all(),
        'outstanding': invoice.outstanding_amount,
        'printed_at': timezone.now(),
    })
    return HttpResponse(html, content_type='text/html; charset=utf-8')


# Accounts receivable / payable
def _typed_list(request, invoice_type):
    _refresh_overdue()
    invoices = _filter_invoices(request, Invoice.objects.filter(invoice_type=invoice_type).select_related('account'))
    return Response(InvoiceListSerializer(invoices, many=True).data)


def _typed_detail(pk, invoice_type):
    invoice = _invoice_queryset().filter(pk=pk, invoice_type=invoice_type).first()
    if invoice is None:
        return Response({'error': 'Invoice not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(InvoiceSerializer(invoice).data)


@api_view(['GET', 'POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def ar_list(request):
    if request.method == 'POST':
        return _create_invoice(request, Invoice.TYPE_RECEIVABLE)
    return _typed_list(request, Invoice.TYPE_RECEIVABLE)


@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def ar_detail(request, pk):
    return _typed_detail(pk, Invoice.TYPE_RECEIVABLE)


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def ar_apply_payment(request, pk):
    invoice = get_object_or_404(Invoice, pk=pk, invoice_type=Invoice.TYPE_RECEIVABLE)
    return _apply_payment(request, invoice)


@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def ar_aging_summary(request):
    _refresh_overdue()
    return Response(Invoice.aging_summary(Invoice.TYPE_RECEIVABLE))


@api_view(['GET', 'POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def ap_list(request):
    if request.method == 'POST':
        return _create_invoice(request, Invoice.TYPE_PAYABLE)
    return _typed_list(request, Invoice.TYPE_PAYABLE)


@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def ap_detail(request, pk):
    return _typed_detail(pk, Invoice.TYPE_PAYABLE)


@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def ap_aging_summary(request):
    _refresh_overdue()
    return Response(Invoice.aging_summary(Invoice.TYPE_PAYABLE))


# Expenses
@api_view(['GET', 'POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def expense_category_list_create(request):
    if request.method == 'GET':
        categories = ExpenseCategory.objects.all()
        if request.query_params.get('active_only') == 'true':
            categories = categories.filter(is_active=True)
        return Response(ExpenseCategorySerializer(categories, many=True).data)
    serializer = ExpenseCategorySerializer(data=request.data)
    if serializer.is_valid():
        category = serializer.save()
        create_audit_log(request=request, action='create', model_name='ExpenseCategory',
                         object_id=category.id, object_name=category.name)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def expense_category_detail(request, pk):
    category = get_object_or_404(ExpenseCategory, pk=pk)
    if request.method == 'GET':
        return Response(ExpenseCategorySerializer(category).data)
    if request.method == 'DELETE':
        if category.expenses.exists():
            return Response({'error': 'Cannot delete category with existing expenses'},
                            status=status.HTTP_400_BAD_REQUEST)
        create_audit_log(request=request, action='delete', model_name='ExpenseCategory',
                         object_id=category.id, object_name=category.name)
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    serializer = ExpenseCategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def expense_list_create(request):
    if request.method == 'GET':
        expenses = Expense.objects.select_related('category', 'created_by')
        status_filter = request.query_params.get('status')
        if status_filter:
            expenses = expenses.filter(status=status_filter)
        category_id = request.query_params.get('category_id')
        if category_id:
            expenses = expenses.filter(category_id=category_id)
        date_from = request.query_params.get('date_from')
        if date_from:
            expenses = expenses.filter(expense_date__gte=date_from)
        date_to = request.query_params.get('date_to')
        if date_to:
            expenses = expenses.filter(expense_date__lte=date_to)
        return Response(ExpenseSerializer(expenses, many=True).data)
    serializer = ExpenseSerializer(data=request.data)
    if serializer.is_valid():
        expense = serializer.save(created_by=request.user)
        create_audit_log(request=request, action='create', model_name='Expense', object_id=expense.id,
                         object_reference=expense.expense_number, changes={'total_amount': str(expense.total_amount)})
        return Response(ExpenseSerializer(expense).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


def _expense_transition(request, pk, action, audit_action):
    expense = get_object_or_404(Expense, pk=pk)
    try:
        action(expense)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action=audit_action, model_name='Expense', object_id=expense.id,
                     object_reference=expense.expense_number, changes={'status': expense.status})
    return Response(ExpenseSerializer(expense).data)


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def expense_approve(request, pk):
    return _expense_transition(request, pk, lambda e: e.approve(request.user), 'approve')


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def expense_reject(request, pk):
    reason = (request.data.get('reason') or '').strip()
    return _expense_transition(request, pk, lambda e: e.reject(reason, request.user), 'reject')


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def expense_pay(request, pk):
    method = request.data.get('payment_method') or 'cash'
    if method not in dict(PaymentApplication.METHOD_CHOICES):
        return Response({'error': 'Invalid payment method'}, status=status.HTTP_400_BAD_REQUEST)
    return _expense_transition(request, pk, lambda e: e.pay(method), 'payment')


# Shifts
@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def shift_list(request):
    shifts = ShiftSession.objects.select_related('cashier')
    status_filter = request.query_params.get('status')
    if status_filter:
        shifts = shifts.filter(status=status_filter)
    cashier_id = request.query_params.get('cashier_id')
    if cashier_id:
        shifts = shifts.filter(cashier_id=cashier_id)
    shift_date = request.query_params.get('date')
    if shift_date:
        shifts = shifts.filter(shift_date=shift_date)
    return Response(ShiftSessionSerializer(shifts, many=True).data)


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def shift_open(request):
    """Open a shift for the calling cashier; one open shift per warehouse and day"""
    serializer = ShiftSessionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    shift_date = data.get('shift_date') or timezone.localdate()
    if ShiftSession.objects.filter(
        cashier=request.user, warehouse_name=data['warehouse_name'],
        shift_date=shift_date, status=ShiftSession.STATUS_OPEN
    ).exists():
        return Response({'error': 'An open shift already exists for this cashier, warehouse and date'},
                        status=status.HTTP_400_BAD_REQUEST)
    shift = serializer.save(cashier=request.user, shift_date=shift_date)
    create_audit_log(request=request, action='create', model_name='ShiftSession', object_id=shift.id,
                     object_name=str(shift), changes={'opening_balance': str(shift.opening_balance)})
    return Response(ShiftSessionSerializer(shift).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def shift_detail(request, pk):
    shift = get_object_or_404(ShiftSession.objects.select_related('cashier'), pk=pk)
    data = ShiftSessionSerializer(shift).data
    data['transactions'] = ShiftTransactionSerializer(shift.transactions.all(), many=True).data
    return Response(data)


@api_view(['POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def shift_close(request, pk):
    shift = get_object_or_404(ShiftSession, pk=pk)
    actual_cash = request.data.get('actual_cash')
    if actual_cash in (None, ''):
        return Response({'error': 'actual_cash is required'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        shift.close(Decimal(str(actual_cash)), request.data.get('notes', ''))
    except ArithmeticError:
        return Response({'error': 'actual_cash must be a number'}, status=status.HTTP_400_BAD_REQUEST)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    create_audit_log(request=request, action='status_change', model_name='ShiftSession', object_id=shift.id,
                     object_name=str(shift), changes={'cash_variance': str(shift.cash_variance)})
    return Response(ShiftSessionSerializer(shift).data)


@api_view(['GET', 'POST'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def shift_transactions(request, pk):
    shift = get_object_or_404(ShiftSession, pk=pk)
    if request.method == 'GET':
        return Response(ShiftTransactionSerializer(shift.transactions.all(), many=True).data)
    serializer = ShiftTransactionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    try:
        txn = shift.add_transaction(data['transaction_type'], data['amount'], data['description'],
                                    data.get('reference', ''), request.user)
    except DjangoValidationError as e:
        return error_response(error_message(e))
    return Response(ShiftTransactionSerializer(txn).data, status=status.HTTP_201_CREATED)


# Stats
@api_view(['GET'])
@permission_classes(ACCOUNTING_PERMISSIONS)
def accounting_stats(request):
    _refresh_overdue()
    today = timezone.localdate()
    month_start = today.replace(day=1)
    open_invoices = Invoice.objects.filter(status__in=Invoice.OPEN_STATUSES)

    def outstanding(invoice_type):
        total = open_invoices.filter(invoice_type=invoice_type).aggregate(
            total=Sum(F('total_amount') - F('paid_amount'))
        )['total']
        return total or Decimal('0.00')

    month_revenue = PaymentApplication.objects.filter(
        invoice__invoice_type=Invoice.TYPE_RECEIVABLE, paid_at__date__gte=month_start
    ).aggregate(total=Sum('amount'))['total'] or Decimal('0.00')
    month_expenses = Expense.objects.filter(
        expense_date__gte=month_start
    ).exclude(status=Expense.STATUS_REJECTED).aggregate(total=Sum('total_amount'))['total'] or Decimal('0.00')

    return Response({
        'receivable_outstanding': str(outstanding(Invoice.TYPE_RECEIVABLE)),
        'payable_outstanding': str(outstanding(Invoice.TYPE_PAYABLE)),
        'overdue_count': Invoice.objects.filter(status=Invoice.STATUS_OVERDUE).count(),
        'draft_count': Invoice.objects.filter(status=Invoice.STATUS_DRAFT).count(),
        'month_revenue': str(month_revenue),
        'month_expenses': str(month_expenses),
        'open_shifts': ShiftSession.objects.filter(status=ShiftSession.STATUS_OPEN).count(),
    })
