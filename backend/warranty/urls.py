from django.urls import path
from .views import (
    claim_list_create, lookup_by_serial, lookup_by_order,
    warranty_list_create, warranty_void,
    admin_claim_list, admin_claim_approve, admin_claim_reject, admin_claim_resolve, admin_warranty_stats,
)

urlpatterns = [
    path('warranty/claims/', claim_list_create, name='warranty-claim-list-create'),
    path('warranty/lookup/serial/<str:serial>/', lookup_by_serial, name='warranty-lookup-serial'),
    path('warranty/lookup/order/<str:order_number>/', lookup_by_order, name='warranty-lookup-order'),

    # Backoffice
    path('warranty/warranties/', warranty_list_create, name='warranty-list-create'),
    path('warranty/warranties/<int:pk>/void/', warranty_void, name='warranty-void'),
    path('warranty/admin/claims/', admin_claim_list, name='warranty-admin-claim-list'),
    path('warranty/admin/claims/<int:pk>/approve/', admin_claim_approve, name='warranty-admin-claim-approve'),
    path('warranty/admin/claims/<int:pk>/reject/', admin_claim_reject, name='warranty-admin-claim-reject'),
    path('warranty/admin/claims/<int:pk>/resolve/', admin_claim_resolve, name='warranty-admin-claim-resolve'),
    path('warranty/admin/stats/', admin_warranty_stats, name='warranty-admin-stats'),
]
