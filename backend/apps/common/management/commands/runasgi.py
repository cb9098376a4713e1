"""
Run the API under uvicorn so chat turns can stream over SSE.

Usage: python manage.py runasgi [--host HOST] [--port PORT] [--no-reload]

The approval expiry sweep runs in celery beat, not in this process:
    celery -A config.celery_app beat
"""
import uvicorn
from django.conf import settings
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = 'Serve the copilot API over ASGI (needed for ?stream=true chat turns)'

    def add_arguments(self, parser):
        parser.add_argument('--host', default='127.0.0.1', help='Host to bind (default: 127.0.0.1)')
        parser.add_argument('--port', type=int, default=8000, help='Port to bind (default: 8000)')
        parser.add_argument('--no-reload', action='store_true', help='Disable auto-reload on code changes')

    def handle(self, *args, **options):
        host = options['host']
        port = options['port']
        reload_flag = settings.DEBUG and not options['no_reload']

        self.stdout.write(self.style.SUCCESS(f'Serving copilot API at http://{host}:{port}'))
        self.stdout.write(
            f'Pending actions expire after {settings.ACTION_EXPIRY_MINUTES} minutes; '
            'start celery beat to sweep them.'
        )

        uvicorn.run(
            'config.asgi:application',
            host=host,
            port=port,
            reload=reload_flag,
            log_level='debug' if settings.DEBUG else 'info',
        )
