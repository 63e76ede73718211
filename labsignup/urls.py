"""
URL configuration for the labsignup project.

Every API route lives under ``/api/``:

    /api/open/...     public (login, course search)
    /api/secure/...   authenticated TA and student endpoints
    /api/admin/...    admin-only account management
"""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('accounts.urls')),
    path('api/', include('apps.signups.api.urls')),
]
