"""
Action URLs
"""
from django.urls import path, include
from rest_framework.routers import SimpleRouter

from .views import ActionViewSet, slack_interactions

router = SimpleRouter()
router.register(r'', ActionViewSet, basename='action')

urlpatterns = [
    # Slack interactivity callback (signed, no JWT)
    path('slack/interactions/', slack_interactions, name='slack-interactions'),
    path('', include(router.urls)),
]
