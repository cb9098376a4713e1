"""
Approval endpoints.

slack_interactions receives Slack's signed button callbacks. ActionViewSet is
the in-app way to see and resolve a user's own actions, for when the Slack
prompt could not be posted.
"""
import json
import logging

from asgiref.sync import async_to_sync
from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from apps.auth_app.models import display_name

from . import slack_messages
from .errors import ActionNotFound, NotifierError, SignatureError
from .models import ActionStatus, PendingAction
from .queue import ConfirmationQueue
from .serializers import PendingActionSerializer
from .signature import verify_signature

logger = logging.getLogger(__name__)

APPROVE_PREFIX = 'approve_'
REJECT_PREFIX = 'reject_'


def get_queue() -> ConfirmationQueue:
    return ConfirmationQueue()


def parse_decision(payload: dict):
    """
    Pull (decision, action_id) out of a block_actions payload.

    Returns (None, None) for anything that is not one of our buttons.
    """
    actions = payload.get('actions') or []
    if not actions:
        return None, None

    clicked = actions[0]
    action_id = clicked.get('action_id', '')
    if action_id.startswith(APPROVE_PREFIX):
        decision = 'approve'
        fallback_id = action_id[len(APPROVE_PREFIX):]
    elif action_id.startswith(REJECT_PREFIX):
        decision = 'reject'
        fallback_id = action_id[len(REJECT_PREFIX):]
    else:
        return None, None

    return decision, clicked.get('value') or fallback_id


def actor_identity(payload: dict) -> str:
    user = payload.get('user') or {}
    return user.get('name') or user.get('username') or user.get('id') or 'unknown'


@csrf_exempt
@require_POST
async def slack_interactions(request):
    """
    Slack interactivity webhook.

    POST /api/actions/slack/interactions/
    Content-Type: application/x-www-form-urlencoded
    payload=<block_actions JSON>

    Verified requests always get 200 so Slack does not retry; losing a
    resolution race is answered with an ephemeral "already resolved" note.
    """
    body = request.body
    try:
        verify_signature(
            settings.SLACK_SIGNING_SECRET,
            request.headers.get('X-Slack-Request-Timestamp'),
            body,
            request.headers.get('X-Slack-Signature'),
            max_age=settings.SLACK_SIGNATURE_MAX_AGE,
        )
    except SignatureError as e:
        logger.warning("slack_signature_rejected", extra={'error': str(e)})
        return JsonResponse({'error': 'Invalid request signature'}, status=401)

    try:
        payload = json.loads(request.POST.get('payload', ''))
    except (json.JSONDecodeError, ValueError):
        return JsonResponse({'error': 'Invalid payload'}, status=400)
    if not isinstance(payload, dict):
        return JsonResponse({'error': 'Invalid payload'}, status=400)

    decision, action_id = parse_decision(payload)
    if decision is None:
        logger.info("slack_interaction_ignored", extra={'type': payload.get('type')})
        return JsonResponse({'ok': True})

    actor = actor_identity(payload)
    queue = get_queue()
    logger.info(
        "slack_decision_received",
        extra={'action_id': action_id, 'decision': decision, 'actor': actor},
    )

    try:
        if decision == 'approve':
            resolution = await queue.approve(action_id, actor)
        else:
            resolution = await queue.reject(action_id, actor)
    except ActionNotFound:
        logger.warning("slack_decision_unknown_action", extra={'action_id': action_id})
        return JsonResponse({'ok': True, 'applied': False, 'status': 'not_found'})

    response_url = payload.get('response_url')
    if not resolution.applied and response_url:
        try:
            await queue.notifier.respond(response_url, slack_messages.already_resolved_text(resolution.status))
        except NotifierError as e:
            logger.warning("slack_response_url_failed", extra={'action_id': action_id, 'error': str(e)})

    return JsonResponse({'ok': True, 'applied': resolution.applied, 'status': resolution.status})


class ActionViewSet(viewsets.ReadOnlyModelViewSet):
    """
    The current user's queued actions.

    GET  /api/actions/?status=pending
    POST /api/actions/{id}/approve/
    POST /api/actions/{id}/reject/
    """
    serializer_class = PendingActionSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = PendingAction.objects.filter(session__user=self.request.user)
        status_param = self.request.query_params.get('status')
        if status_param in ActionStatus.values:
            queryset = queryset.filter(status=status_param)
        session_id = self.request.query_params.get('session_id')
        if session_id:
            queryset = queryset.filter(session_id=session_id)
        return queryset.order_by('-created_at')

    def _resolve(self, decision: str):
        pending = self.get_object()
        queue = get_queue()
        actor = display_name(self.request.user)
        if decision == 'approve':
            resolution = async_to_sync(queue.approve)(pending.id, actor)
        else:
            resolution = async_to_sync(queue.reject)(pending.id, actor)

        pending.refresh_from_db()
        data = PendingActionSerializer(pending).data
        data['applied'] = resolution.applied
        return Response(data, status=200 if resolution.applied else 409)

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        return self._resolve('approve')

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        return self._resolve('reject')
