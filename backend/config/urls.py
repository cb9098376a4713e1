"""
URL Configuration for the storefront copilot backend
"""
from django.contrib import admin
from django.urls import path, include
from django.conf import settings

urlpatterns = [
    path('admin/', admin.site.urls),

    # Auth
    path('api/auth/', include('apps.auth_app.urls')),

    # API endpoints
    path('api/chat/', include('apps.chat.urls')),
    path('api/actions/', include('apps.actions.urls')),
]

# Debug toolbar (only in development)
if settings.DEBUG:
    try:
        import debug_toolbar
        urlpatterns = [
            path('__debug__/', include(debug_toolbar.urls)),
        ] + urlpatterns
    except ImportError:
        pass  # debug_toolbar not installed
