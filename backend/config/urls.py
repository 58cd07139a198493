"""
URL configuration for the retail backoffice project.

Every app mounts its JSON endpoints under `api/v1/`.
"""
from django.contrib import admin
from django.urls import path, include, re_path
from django.conf import settings
from django.views.static import serve

admin.site.site_header = "Retail Backoffice Admin Panel"
admin.site.site_title = "Retail Backoffice Admin Portal"
admin.site.index_title = "Welcome to the Retail Backoffice"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('backend.core.urls')),
    path('api/v1/', include('backend.catalog.urls')),
    path('api/v1/', include('backend.content.urls')),
    path('api/v1/', include('backend.sales.urls')),
    path('api/v1/', include('backend.accounting.urls')),
    path('api/v1/', include('backend.repair.urls')),
    path('api/v1/', include('backend.warranty.urls')),
    path('api/v1/', include('backend.reports.urls')),
    re_path(r'^media/(?P<path>.*)$', serve, {'document_root': settings.MEDIA_ROOT}),
]
