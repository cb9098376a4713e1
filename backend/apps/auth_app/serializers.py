"""
Serializers for authentication and user preferences
"""
from rest_framework import serializers
from django.contrib.auth.models import User
from .models import UserPreferences


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model"""

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name']
        read_only_fields = ['id', 'username']


class UserPreferencesSerializer(serializers.ModelSerializer):

    class Meta:
        model = UserPreferences
        fields = ['slack_user_id', 'show_debug_info', 'created_at', 'updated_at']
        read_only_fields = ['created_at', 'updated_at']

    def to_internal_value(self, data):
        # Member IDs are often pasted from Slack's profile menu with stray whitespace
        if 'slack_user_id' in data and isinstance(data['slack_user_id'], str):
            data = {**data, 'slack_user_id': data['slack_user_id'].strip().upper()}
        return super().to_internal_value(data)


class UserWithPreferencesSerializer(serializers.ModelSerializer):
    """User serializer that includes preferences"""
    preferences = UserPreferencesSerializer(read_only=True)

    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'preferences']
        read_only_fields = ['id', 'username']
