"""
Test doubles and fixtures for the confirmation queue.
"""
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock

from django.contrib.auth.models import User

from apps.actions.errors import NotifierError
from apps.actions.notifier import NotificationRef, Notifier
from apps.actions.queue import ConfirmationQueue
from apps.chat.models import ChatSession
from apps.tools.executor import ToolExecutor
from apps.tools.tests.helpers import FakeStore


class RecordingNotifier(Notifier):
    """
    Records every call as (method, action_id, detail).

    fail_post / fail_update make the corresponding calls raise NotifierError.
    """

    def __init__(self, fail_post: bool = False, fail_update: bool = False):
        self.fail_post = fail_post
        self.fail_update = fail_update
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.channels: List[Optional[str]] = []
        self.responses: List[Tuple[str, str]] = []

    async def request_approval(self, action, requester_name, channel=None):
        self.calls.append(("request_approval", str(action.id), requester_name))
        self.channels.append(channel)
        if self.fail_post:
            raise NotifierError("channel_not_found")
        return NotificationRef(channel=channel or "C0APPROVALS", ts="1700000000.000100")

    async def _update(self, method, action, detail=None):
        self.calls.append((method, str(action.id), detail))
        if self.fail_update:
            raise NotifierError("message_not_found")

    async def show_approved(self, action, approved_by, result_summary=None):
        await self._update("show_approved", action, approved_by)

    async def show_rejected(self, action, rejected_by):
        await self._update("show_rejected", action, rejected_by)

    async def show_expired(self, action):
        await self._update("show_expired", action)

    async def show_failed(self, action, error):
        await self._update("show_failed", action, error)

    async def respond(self, response_url, text):
        self.responses.append((response_url, text))

    def methods(self) -> List[str]:
        return [call[0] for call in self.calls]


def make_user(username="alice", **kwargs) -> User:
    return User.objects.create_user(username=username, email=f"{username}@example.com",
                                    password="pw", **kwargs)


def make_session(user=None, title="Order help") -> ChatSession:
    return ChatSession.objects.create(user=user or make_user(), title=title)


def make_queue(store=None, notifier=None, on_resolved=None) -> ConfirmationQueue:
    return ConfirmationQueue(
        executor=ToolExecutor(store or FakeStore()),
        notifier=notifier or RecordingNotifier(),
        on_resolved=on_resolved or AsyncMock(),
    )
