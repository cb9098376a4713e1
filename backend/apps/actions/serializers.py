"""
Serializers for pending actions
"""
from rest_framework import serializers

from .models import PendingAction


class PendingActionSerializer(serializers.ModelSerializer):
    """Audit view of a queued tool call"""
    is_terminal = serializers.BooleanField(read_only=True)

    class Meta:
        model = PendingAction
        fields = [
            'id',
            'session',
            'message',
            'tool_use_id',
            'tool_name',
            'tool_input',
            'domain',
            'status',
            'is_terminal',
            'result',
            'error_message',
            'resolved_by',
            'created_at',
            'resolved_at',
            'expires_at',
        ]
        read_only_fields = fields
