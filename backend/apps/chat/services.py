"""
Chat service
"""
import uuid
import logging
from typing import Any, Dict, List, Optional

from django.contrib.auth.models import User
from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from .models import ChatMessage, ChatSession, MessageRole

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 50


def generate_title(text: str, max_chars: int = TITLE_MAX_CHARS) -> str:
    """
    Session title from the first user message.

    Cut on a word boundary with a trailing "..." when the text is too long.
    """
    text = " ".join((text or "").split())
    if len(text) <= max_chars:
        return text

    cut = text[:max_chars]
    if " " in cut:
        cut = cut[:cut.rfind(" ")]
    return cut.rstrip(" .,;:") + "..."


class ChatService:
    """
    Service for chat operations
    """

    @staticmethod
    def create_session(user: User, title: str = "") -> ChatSession:
        """
        Create a new chat session

        Args:
            user: User who owns the session
            title: Optional title (otherwise set from the first message)

        Returns:
            Created ChatSession
        """
        session = ChatSession.objects.create(user=user, title=title)
        logger.info("chat_session_created", extra={'session_id': str(session.id), 'user_id': user.id})
        return session

    @staticmethod
    @transaction.atomic
    def append_message(
        session_id: uuid.UUID,
        role: str,
        content: Dict[str, Any],
        api_interaction: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatMessage:
        """
        Append a message at the end of a session.

        The session row is locked while the next sequence number is taken so
        concurrent writers (a streaming turn and a resumed one) never collide.

        Args:
            session_id: Session to append to
            role: MessageRole value
            content: Role-specific content dict (see ChatMessage)
            api_interaction: Model call metadata for assistant output
            metadata: Free-form annotations

        Returns:
            Created ChatMessage
        """
        session = ChatSession.objects.select_for_update().get(id=session_id)
        last = session.messages.aggregate(last=Max('sequence'))['last']

        message = ChatMessage.objects.create(
            session=session,
            sequence=(last or 0) + 1,
            role=role,
            content=content,
            api_interaction=api_interaction,
            metadata=metadata or {},
        )

        updates = {'updated_at': timezone.now()}
        if role == MessageRole.USER and not session.title:
            updates['title'] = generate_title(content.get('text', ''))
        ChatSession.objects.filter(id=session.id).update(**updates)

        return message

    @staticmethod
    def add_user_message(session_id: uuid.UUID, text: str) -> ChatMessage:
        return ChatService.append_message(session_id, MessageRole.USER, {'text': text})

    @staticmethod
    def list_messages(session_id: uuid.UUID) -> List[ChatMessage]:
        return list(ChatMessage.objects.filter(session_id=session_id).order_by('sequence'))

    @staticmethod
    def latest_user_text(session_id: uuid.UUID) -> str:
        message = (
            ChatMessage.objects
            .filter(session_id=session_id, role=MessageRole.USER)
            .order_by('-sequence')
            .first()
        )
        return message.text if message else ""

    @staticmethod
    def debug_summary(session: ChatSession) -> Dict[str, Any]:
        """
        Aggregate model usage and tool activity for one session.
        """
        from apps.actions.models import ActionStatus

        messages = list(session.messages.all())
        input_tokens = 0
        output_tokens = 0
        latency_ms = 0
        model_calls = 0
        for message in messages:
            interaction = message.api_interaction or {}
            if not interaction:
                continue
            model_calls += 1
            input_tokens += int(interaction.get('input_tokens') or 0)
            output_tokens += int(interaction.get('output_tokens') or 0)
            latency_ms += int(interaction.get('latency_ms') or 0)

        status_counts = {status: 0 for status in ActionStatus.values}
        for status in session.pending_actions.values_list('status', flat=True):
            status_counts[status] += 1

        return {
            'session_id': str(session.id),
            'message_count': len(messages),
            'model_calls': model_calls,
            'input_tokens': input_tokens,
            'output_tokens': output_tokens,
            'total_tokens': input_tokens + output_tokens,
            'total_latency_ms': latency_ms,
            'tool_calls': sum(1 for m in messages if m.role == MessageRole.TOOL_USE),
            'tool_errors': sum(
                1 for m in messages
                if m.role == MessageRole.TOOL_RESULT and m.content.get('is_error')
            ),
            'actions': {
                'pending': status_counts[ActionStatus.PENDING],
                'resolved': sum(count for status, count in status_counts.items()
                                if status != ActionStatus.PENDING),
                'by_status': status_counts,
            },
        }
