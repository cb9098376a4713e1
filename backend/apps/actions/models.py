"""
Confirmation queue records.

A PendingAction is a write-tool call held for human approval. Status only
moves along

    pending -> approved -> executed | failed
    pending -> rejected | expired

and every transition is a conditional UPDATE on the expected current status
(see queue.py). Rows are never deleted; they are the audit trail.
"""
from django.contrib.auth.models import User
from django.db import models

from apps.common.models import UUIDModel


class ActionStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'
    EXECUTED = 'executed', 'Executed'
    FAILED = 'failed', 'Failed'
    EXPIRED = 'expired', 'Expired'


TERMINAL_STATUSES = frozenset({
    ActionStatus.REJECTED,
    ActionStatus.EXECUTED,
    ActionStatus.FAILED,
    ActionStatus.EXPIRED,
})


class PendingAction(UUIDModel):
    session = models.ForeignKey(
        'chat.ChatSession',
        # Actions are an audit trail; a session that has any cannot be deleted
        on_delete=models.PROTECT,
        related_name='pending_actions',
    )
    # The tool_use message that asked for this call
    message = models.ForeignKey(
        'chat.ChatMessage',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    tool_use_id = models.CharField(max_length=100, blank=True, default='')
    requester = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='requested_actions',
    )

    tool_name = models.CharField(max_length=100)
    tool_input = models.JSONField(default=dict)
    domain = models.CharField(max_length=32, blank=True, default='')

    status = models.CharField(
        max_length=20,
        choices=ActionStatus.choices,
        default=ActionStatus.PENDING,
        db_index=True,
    )

    # Handle to the posted approval prompt, set once notified
    notifier_channel = models.CharField(max_length=64, blank=True, default='')
    notifier_ts = models.CharField(max_length=64, blank=True, default='')

    result = models.JSONField(null=True, blank=True)
    error_message = models.TextField(blank=True, default='')
    resolved_by = models.CharField(max_length=255, blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(db_index=True)

    class Meta:
        ordering = ['created_at']
        indexes = [
            models.Index(fields=['session', 'status'], name='pending_action_session_idx'),
            models.Index(fields=['status', 'expires_at'], name='pending_action_expiry_idx'),
        ]

    def __str__(self):
        return f"{self.tool_name} ({self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_notification(self) -> bool:
        return bool(self.notifier_channel and self.notifier_ts)
