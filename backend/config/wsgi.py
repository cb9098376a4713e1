"""
WSGI config for the storefront copilot backend.

WARNING: WSGI does not support streaming responses properly.
    Use ASGI (config.asgi) for anything serving the chat stream.

    Start with: uvicorn config.asgi:application --reload
"""
import os
from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

application = get_wsgi_application()
