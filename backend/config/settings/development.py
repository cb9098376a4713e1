"""
Development settings
"""
from .base import *

DEBUG = True

ALLOWED_HOSTS = env.list('ALLOWED_HOSTS', default=['localhost', '127.0.0.1', '0.0.0.0'])

# Debug toolbar
INSTALLED_APPS += [
    'debug_toolbar',
]

MIDDLEWARE += [
    'debug_toolbar.middleware.DebugToolbarMiddleware',
]

INTERNAL_IPS = [
    '127.0.0.1',
]

# Disable HTTPS redirect in development
SECURE_SSL_REDIRECT = False

# Small corpora are fine to scan in-process locally
TOOL_SEARCH_BACKEND = env('TOOL_SEARCH_BACKEND', default='numpy')

# Run resume/expiry tasks inline when no broker is running
CELERY_TASK_ALWAYS_EAGER = env.bool('CELERY_TASK_ALWAYS_EAGER', default=False)

# Without a bot token, approval requests are only visible through /api/actions/
SLACK_BOT_TOKEN = env('SLACK_BOT_TOKEN', default='')

# Logging
LOGGING = LOGGING.copy()
LOGGING['handlers']['console']['formatter'] = 'verbose'
LOGGING['loggers']['apps']['level'] = 'DEBUG'
