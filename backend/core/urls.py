from django.urls import path
from .views import (
    CustomTokenObtainPairView, CustomTokenRefreshView, register, user_me,
    user_list_create, user_detail, user_roles,
    system_config_list_create, system_config_detail,
    audit_log_list, audit_log_detail,
    cache_clear, global_search
)

urlpatterns = [
    # Auth endpoints
    path('auth/register/', register, name='register'),
    path('auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', CustomTokenRefreshView.as_view(), name='token_refresh'),
    path('auth/me/', user_me, name='user-me'),

    # User endpoints
    path('users/', user_list_create, name='user-list-create'),
    path('users/<int:pk>/', user_detail, name='user-detail'),
    path('users/<int:pk>/roles/', user_roles, name='user-roles'),

    # System configuration endpoints
    path('system-configs/', system_config_list_create, name='system-config-list-create'),
    path('system-configs/<str:key>/', system_config_detail, name='system-config-detail'),

    # AuditLog endpoints
    path('audit-logs/', audit_log_list, name='audit-log-list'),
    path('audit-logs/<int:pk>/', audit_log_detail, name='audit-log-detail'),

    path('cache/clear/', cache_clear, name='cache-clear'),
    path('search/', global_search, name='global-search'),
]
