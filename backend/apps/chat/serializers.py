"""
Chat serializers
"""
from rest_framework import serializers

from .models import ChatMessage, ChatSession


class ChatMessageSerializer(serializers.ModelSerializer):
    """Serializer for a persisted conversation entry"""

    class Meta:
        model = ChatMessage
        fields = [
            'id',
            'session',
            'sequence',
            'role',
            'content',
            'api_interaction',
            'metadata',
            'created_at',
        ]
        read_only_fields = fields


class ChatSessionSerializer(serializers.ModelSerializer):
    """Serializer for session lists"""
    message_count = serializers.SerializerMethodField()

    class Meta:
        model = ChatSession
        fields = ['id', 'title', 'message_count', 'created_at', 'updated_at']
        read_only_fields = ['id', 'message_count', 'created_at', 'updated_at']

    def get_message_count(self, obj):
        # Use annotated value when available (set by ViewSet.get_queryset)
        if hasattr(obj, '_message_count'):
            return obj._message_count
        return obj.messages.count()


class ChatSessionDetailSerializer(ChatSessionSerializer):
    """Session with its full message history"""
    messages = ChatMessageSerializer(many=True, read_only=True)

    class Meta(ChatSessionSerializer.Meta):
        fields = ChatSessionSerializer.Meta.fields + ['messages']


class CreateMessageSerializer(serializers.Serializer):
    """Serializer for posting a user message"""
    content = serializers.CharField(max_length=20000, trim_whitespace=True)
