import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('chat', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='PendingAction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('tool_use_id', models.CharField(blank=True, default='', max_length=100)),
                ('tool_name', models.CharField(max_length=100)),
                ('tool_input', models.JSONField(default=dict)),
                ('domain', models.CharField(blank=True, default='', max_length=32)),
                ('status', models.CharField(
                    choices=[
                        ('pending', 'Pending'),
                        ('approved', 'Approved'),
                        ('rejected', 'Rejected'),
                        ('executed', 'Executed'),
                        ('failed', 'Failed'),
                        ('expired', 'Expired'),
                    ],
                    db_index=True,
                    default='pending',
                    max_length=20,
                )),
                ('notifier_channel', models.CharField(blank=True, default='', max_length=64)),
                ('notifier_ts', models.CharField(blank=True, default='', max_length=64)),
                ('result', models.JSONField(blank=True, null=True)),
                ('error_message', models.TextField(blank=True, default='')),
                ('resolved_by', models.CharField(blank=True, default='', max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('expires_at', models.DateTimeField(db_index=True)),
                ('message', models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+',
                    to='chat.chatmessage',
                )),
                ('requester', models.ForeignKey(
                    null=True,
                    on_delete=django.db.models.deletion.SET_NULL,
                    related_name='requested_actions',
                    to=settings.AUTH_USER_MODEL,
                )),
                ('session', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='pending_actions',
                    to='chat.chatsession',
                )),
            ],
            options={
                'ordering': ['created_at'],
                'indexes': [
                    models.Index(fields=['session', 'status'], name='pending_action_session_idx'),
                    models.Index(fields=['status', 'expires_at'], name='pending_action_expiry_idx'),
                ],
            },
        ),
    ]
