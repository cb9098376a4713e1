"""
Chat models - Sessions and Messages
"""
from django.contrib.auth.models import User
from django.db import models

from apps.common.models import TimestampedModel, UUIDModel


class ChatSession(UUIDModel, TimestampedModel):
    """
    One conversation between an admin user and the assistant.

    updated_at is bumped on every appended message so lists sort by activity.
    """
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='chat_sessions')
    title = models.CharField(max_length=255, blank=True, default='')

    class Meta:
        ordering = ['-updated_at']
        indexes = [
            models.Index(fields=['user', '-updated_at'], name='chat_session_user_recent_idx'),
        ]

    def __str__(self):
        return self.title or f"Session {self.id}"


class MessageRole(models.TextChoices):
    USER = 'user', 'User'
    ASSISTANT = 'assistant', 'Assistant'
    TOOL_USE = 'tool_use', 'Tool use'
    TOOL_RESULT = 'tool_result', 'Tool result'


class ChatMessage(UUIDModel):
    """
    Append-only conversation entry.

    content by role:
        user         {"text": str}
        assistant    {"text": str}
        tool_use     {"id": str, "name": str, "input": {...}}
        tool_result  {"tool_use_id": str, "content": str, "is_error": bool}

    sequence is strictly increasing within a session and is the
    conversation order.
    """
    session = models.ForeignKey(ChatSession, on_delete=models.CASCADE, related_name='messages')
    sequence = models.PositiveIntegerField()
    role = models.CharField(max_length=20, choices=MessageRole.choices)
    content = models.JSONField(default=dict)

    # Assistant messages: model, tokens, latency, stop reason, tools offered
    api_interaction = models.JSONField(null=True, blank=True)

    # Free-form annotations (pending action id, tool selection, ...)
    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['session', 'sequence']
        constraints = [
            models.UniqueConstraint(fields=['session', 'sequence'], name='unique_message_sequence'),
        ]

    def __str__(self):
        return f"{self.role} #{self.sequence} in {self.session_id}"

    @property
    def text(self) -> str:
        return self.content.get('text', '') if isinstance(self.content, dict) else ''
