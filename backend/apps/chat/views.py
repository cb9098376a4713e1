"""
Chat views
"""
import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from django.conf import settings
from django.db.models import Count
from django.http import StreamingHttpResponse
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.renderers import BaseRenderer
from rest_framework.response import Response

from apps.actions.queue import ConfirmationQueue
from apps.actions.serializers import PendingActionSerializer
from apps.common.exceptions import RateLimitedTurn, TurnFailed
from apps.llm.client import MessagesClient
from apps.llm.errors import LLMError, RateLimited

from .models import ChatSession
from .orchestrator import Orchestrator, TurnEvent
from .serializers import (
    ChatMessageSerializer,
    ChatSessionDetailSerializer,
    ChatSessionSerializer,
    CreateMessageSerializer,
)
from .services import ChatService

logger = logging.getLogger(__name__)


class StreamingRenderer(BaseRenderer):
    """Renderer for Server-Sent Events streaming responses."""
    media_type = "text/event-stream"
    format = "stream"

    def render(self, data, accepted_media_type=None, renderer_context=None):
        # StreamingHttpResponse handles rendering; return as-is.
        return data


def build_orchestrator() -> Orchestrator:
    return Orchestrator(MessagesClient.from_settings())


async def turn_events(orchestrator: Orchestrator, session: ChatSession, text: str):
    """Run one turn and close the model client afterwards."""
    try:
        async for event in orchestrator.run_turn(session, text):
            yield event
    finally:
        await orchestrator.client.aclose()


async def sse_stream(orchestrator: Orchestrator, session: ChatSession, text: str):
    """
    SSE frames for one turn. Turn-level failures end the stream with an
    `error` event instead of a broken connection.
    """
    try:
        async for event in turn_events(orchestrator, session, text):
            yield event.to_sse()
    except LLMError as e:
        logger.warning(
            "chat_turn_llm_error",
            extra={'session_id': str(session.id), 'error_type': type(e).__name__, 'error': str(e)},
        )
        data = {'message': e.user_message(), 'type': type(e).__name__}
        if isinstance(e, RateLimited):
            data['retry_after'] = e.retry_after
        yield TurnEvent('error', data).to_sse()
    except Exception:
        logger.exception("chat_turn_failed", extra={'session_id': str(session.id)})
        yield TurnEvent('error', {'message': 'Sorry, something went wrong completing this turn.',
                                  'type': 'internal'}).to_sse()


async def collect_turn(orchestrator: Orchestrator, session: ChatSession, text: str) -> Dict[str, Any]:
    """Run one turn to completion and summarize its events."""
    summary: Dict[str, Any] = {'text': '', 'tool_uses': [], 'tool_results': [], 'outcome': None,
                               'message_id': None, 'usage': None}
    async for event in turn_events(orchestrator, session, text):
        if event.type == 'text':
            summary['text'] += event.data['text']
        elif event.type == 'tool_use':
            summary['tool_uses'].append(event.data)
        elif event.type == 'tool_result':
            summary['tool_results'].append(event.data)
        elif event.type == 'done':
            summary['outcome'] = event.data['outcome']
            summary['message_id'] = event.data['message_id']
            summary['usage'] = event.data['usage']
    return summary


class ChatSessionViewSet(mixins.CreateModelMixin,
                         mixins.ListModelMixin,
                         mixins.RetrieveModelMixin,
                         viewsets.GenericViewSet):
    """
    GET    /api/chat/sessions/                      - list
    POST   /api/chat/sessions/                      - create
    GET    /api/chat/sessions/{id}/                 - session with messages
    GET    /api/chat/sessions/{id}/messages/        - messages
    POST   /api/chat/sessions/{id}/messages/        - send (?stream=true for SSE)
    GET    /api/chat/sessions/{id}/pending-actions/ - actions awaiting approval
    GET    /api/chat/sessions/{id}/debug/           - usage and tool aggregates
    """

    permission_classes = [IsAuthenticated]

    def get_renderers(self):
        """Select renderers based on streaming mode."""
        if (
            self.action == "messages"
            and self.request.method == "POST"
            and self.request.query_params.get("stream") == "true"
        ):
            return [StreamingRenderer()]
        return super().get_renderers()

    def get_queryset(self):
        queryset = ChatSession.objects.filter(user=self.request.user)

        query = self.request.query_params.get('q')
        if query:
            queryset = queryset.filter(title__icontains=query)

        # Annotate message_count to avoid N+1 in serializer
        queryset = queryset.annotate(_message_count=Count('messages'))

        if self.action == 'retrieve':
            queryset = queryset.prefetch_related('messages')
        return queryset

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ChatSessionDetailSerializer
        return ChatSessionSerializer

    def perform_create(self, serializer):
        serializer.instance = ChatService.create_session(
            self.request.user, serializer.validated_data.get('title', ''),
        )

    @action(detail=True, methods=['get', 'post'])
    def messages(self, request, pk=None):
        session = self.get_object()

        if request.method == 'GET':
            messages = ChatService.list_messages(session.id)
            return Response(ChatMessageSerializer(messages, many=True).data)

        serializer = CreateMessageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        text = serializer.validated_data['content']
        orchestrator = build_orchestrator()

        if request.query_params.get('stream') == 'true':
            # DRF recognizes StreamingHttpResponse and skips rendering
            response = StreamingHttpResponse(
                sse_stream(orchestrator, session, text), content_type="text/event-stream",
            )
            response["Cache-Control"] = "no-cache"
            response["X-Accel-Buffering"] = "no"

            # CORS headers, validated against the allowlist
            origin = request.headers.get("Origin", "")
            if origin in getattr(settings, 'CORS_ALLOWED_ORIGINS', []):
                response["Access-Control-Allow-Origin"] = origin
                response["Access-Control-Allow-Credentials"] = "true"
            return response

        try:
            summary = async_to_sync(collect_turn)(orchestrator, session, text)
        except RateLimited as e:
            raise RateLimitedTurn(detail=e.user_message())
        except LLMError as e:
            logger.warning(
                "chat_turn_llm_error",
                extra={'session_id': str(session.id), 'error_type': type(e).__name__, 'error': str(e)},
            )
            raise TurnFailed(detail=e.user_message())

        return Response(summary, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='pending-actions')
    def pending_actions(self, request, pk=None):
        session = self.get_object()
        actions = async_to_sync(ConfirmationQueue().pending_for_session)(session.id)
        return Response(PendingActionSerializer(actions, many=True).data)

    @action(detail=True, methods=['get'])
    def debug(self, request, pk=None):
        return Response(ChatService.debug_summary(self.get_object()))
