"""
Per-user settings for the admin copilot
"""
from django.contrib.auth.models import User
from django.core.validators import RegexValidator
from django.db import models
from django.db.models.signals import post_save
from django.dispatch import receiver

slack_user_id_validator = RegexValidator(
    regex=r'^U[A-Z0-9]+$',
    message="Slack user IDs start with 'U' followed by uppercase letters and digits (e.g. U0123456789)",
)


class UserPreferences(models.Model):
    """
    User preferences

    slack_user_id routes this user's approval requests to a Slack DM instead
    of the shared approvals channel.
    """
    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='preferences',
        primary_key=True
    )

    slack_user_id = models.CharField(
        max_length=32,
        blank=True,
        default='',
        validators=[slack_user_id_validator],
        help_text="Slack member ID for approval DMs (blank = shared channel)"
    )

    show_debug_info = models.BooleanField(
        default=False,
        help_text="Show token usage and latency per message in the chat UI"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'user_preferences'
        verbose_name = 'User Preferences'
        verbose_name_plural = 'User Preferences'

    def __str__(self):
        return f"Preferences for {self.user.username}"


def display_name(user) -> str:
    """Name shown to approvers: full name, else username."""
    if user is None:
        return "unknown"
    return user.get_full_name() or user.username


def slack_user_id_for(user) -> str:
    if user is None:
        return ''
    preferences = getattr(user, 'preferences', None)
    return preferences.slack_user_id if preferences else ''


@receiver(post_save, sender=User)
def create_user_preferences(sender, instance, created, **kwargs):
    """
    Auto-create default preferences when user is created
    """
    if created:
        UserPreferences.objects.get_or_create(user=instance)
