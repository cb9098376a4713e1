"""
Authentication views
"""
from django.contrib.auth import authenticate
from django.contrib.auth.models import User
from rest_framework import generics, serializers
from rest_framework.permissions import IsAuthenticated
from rest_framework_simplejwt.tokens import RefreshToken
from rest_framework_simplejwt.views import TokenObtainPairView

from .models import UserPreferences
from .serializers import UserPreferencesSerializer, UserWithPreferencesSerializer


class EmailTokenObtainPairSerializer(serializers.Serializer):
    """Log in with email (case-insensitive) and password."""
    email = serializers.EmailField(required=True)
    password = serializers.CharField(required=True, write_only=True)

    default_error = 'No active account found with the given credentials'

    def validate(self, attrs):
        account = User.objects.filter(email__iexact=attrs['email']).order_by('id').first()
        if account is None:
            raise serializers.ValidationError(self.default_error)

        user = authenticate(username=account.username, password=attrs['password'])
        if user is None:
            raise serializers.ValidationError(self.default_error)
        if not user.is_active:
            raise serializers.ValidationError('User account is disabled')

        refresh = RefreshToken.for_user(user)
        return {
            'refresh': str(refresh),
            'access': str(refresh.access_token),
        }


class EmailTokenObtainPairView(TokenObtainPairView):
    serializer_class = EmailTokenObtainPairSerializer


class CurrentUserView(generics.RetrieveAPIView):
    """Current user with preferences"""
    serializer_class = UserWithPreferencesSerializer
    permission_classes = [IsAuthenticated]

    def get_object(self):
        return self.request.user


class UserPreferencesView(generics.RetrieveUpdateAPIView):
    """
    GET   /api/auth/preferences/ - current user's preferences
    PATCH /api/auth/preferences/ - update (e.g. {"slack_user_id": "U0123456789"})
    """
    serializer_class = UserPreferencesSerializer
    permission_classes = [IsAuthenticated]

    def get_object(self):
        preferences, _ = UserPreferences.objects.get_or_create(user=self.request.user)
        return preferences
