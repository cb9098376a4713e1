import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='UserPreferences',
            fields=[
                ('user', models.OneToOneField(
                    on_delete=django.db.models.deletion.CASCADE,
                    primary_key=True,
                    related_name='preferences',
                    serialize=False,
                    to=settings.AUTH_USER_MODEL,
                )),
                ('slack_user_id', models.CharField(
                    blank=True,
                    default='',
                    help_text='Slack member ID for approval DMs (blank = shared channel)',
                    max_length=32,
                    validators=[django.core.validators.RegexValidator(
                        message="Slack user IDs start with 'U' followed by uppercase letters and digits (e.g. U0123456789)",
                        regex='^U[A-Z0-9]+$',
                    )],
                )),
                ('show_debug_info', models.BooleanField(
                    default=False,
                    help_text='Show token usage and latency per message in the chat UI',
                )),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'User Preferences',
                'verbose_name_plural': 'User Preferences',
                'db_table': 'user_preferences',
            },
        ),
    ]
