"""
Approval channel.

The queue talks to a Notifier; SlackNotifier is the production one, posting
Block Kit prompts with chat.postMessage and rewriting them with chat.update
once the action is resolved. NullNotifier is used when Slack is not
configured (actions then stay pending until they expire).
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings

from . import slack_messages
from .errors import NotifierError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationRef:
    """Where an approval prompt was posted, for later edits."""
    channel: str
    ts: str


class Notifier(ABC):

    @abstractmethod
    async def request_approval(self, action, requester_name: str,
                               channel: Optional[str] = None) -> Optional[NotificationRef]:
        """Post the approval prompt. Raises NotifierError."""

    @abstractmethod
    async def show_approved(self, action, approved_by: str, result_summary: Optional[str] = None) -> None:
        ...

    @abstractmethod
    async def show_rejected(self, action, rejected_by: str) -> None:
        ...

    @abstractmethod
    async def show_expired(self, action) -> None:
        ...

    @abstractmethod
    async def show_failed(self, action, error: str) -> None:
        ...

    async def respond(self, response_url: str, text: str) -> None:
        """Ephemeral reply to the clicking user; optional for a channel."""


class NullNotifier(Notifier):

    async def request_approval(self, action, requester_name, channel=None):
        logger.info("approval_notification_skipped", extra={'action_id': str(action.id)})
        return None

    async def show_approved(self, action, approved_by, result_summary=None):
        return None

    async def show_rejected(self, action, rejected_by):
        return None

    async def show_expired(self, action):
        return None

    async def show_failed(self, action, error):
        return None


class SlackClient:
    """Minimal Slack Web API client (bearer bot token)."""

    def __init__(self, bot_token: str, api_url: Optional[str] = None, timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_url = (api_url or settings.SLACK_API_URL).rstrip('/')
        self._headers = {
            'authorization': f'Bearer {bot_token}',
            'content-type': 'application/json; charset=utf-8',
        }
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(headers=self._headers, timeout=self._timeout, transport=self._transport)

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(f"{self.api_url}/{method}", json=payload)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NotifierError(f"Slack {method} failed: {e}") from e

        if not body.get('ok'):
            error = body.get('error') or 'Unknown error'
            logger.error("slack_api_error", extra={'method': method, 'error': error})
            raise NotifierError(f"Slack {method} error: {error}")
        return body

    async def post_message(self, channel: str, blocks: List[Dict[str, Any]],
                           text: Optional[str] = None) -> Dict[str, Any]:
        payload = {'channel': channel, 'blocks': blocks}
        if text:
            payload['text'] = text
        return await self._call('chat.postMessage', payload)

    async def update_message(self, channel: str, ts: str, blocks: List[Dict[str, Any]],
                             text: Optional[str] = None) -> Dict[str, Any]:
        payload = {'channel': channel, 'ts': ts, 'blocks': blocks}
        if text:
            payload['text'] = text
        return await self._call('chat.update', payload)

    async def respond_to_url(self, response_url: str, payload: Dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(response_url, json=payload)
        except httpx.HTTPError as e:
            raise NotifierError(f"Slack response_url failed: {e}") from e
        if response.status_code >= 400:
            raise NotifierError(f"Response URL returned {response.status_code}: {response.text}")


class SlackNotifier(Notifier):
    """
    Posts to the requester's DM channel when one is given, else the shared
    approvals channel.
    """

    def __init__(self, client: Optional[SlackClient] = None, default_channel: Optional[str] = None):
        self.client = client or SlackClient(settings.SLACK_BOT_TOKEN)
        self.default_channel = default_channel or settings.SLACK_APPROVAL_CHANNEL

    async def request_approval(self, action, requester_name, channel=None):
        target = channel or self.default_channel
        if not target:
            raise NotifierError("No Slack channel configured for approvals")

        blocks = slack_messages.build_confirmation_message(
            action.id, action.tool_name, action.tool_input, requester_name, action.domain,
        )
        body = await self.client.post_message(target, blocks, slack_messages.fallback_text(action.tool_name))
        if body.get('ts') and body.get('channel'):
            return NotificationRef(channel=body['channel'], ts=body['ts'])
        return None

    async def _rewrite(self, action, blocks) -> None:
        if not action.has_notification:
            return
        await self.client.update_message(
            action.notifier_channel, action.notifier_ts, blocks,
            slack_messages.fallback_text(action.tool_name),
        )

    async def show_approved(self, action, approved_by, result_summary=None):
        await self._rewrite(action, slack_messages.build_approved_message(action.tool_name, approved_by, result_summary))

    async def show_rejected(self, action, rejected_by):
        await self._rewrite(action, slack_messages.build_rejected_message(action.tool_name, rejected_by))

    async def show_expired(self, action):
        await self._rewrite(action, slack_messages.build_expired_message(action.tool_name))

    async def show_failed(self, action, error):
        await self._rewrite(action, slack_messages.build_failed_message(action.tool_name, error))

    async def respond(self, response_url, text):
        await self.client.respond_to_url(
            response_url, {'response_type': 'ephemeral', 'replace_original': False, 'text': text},
        )


def get_notifier() -> Notifier:
    if settings.SLACK_BOT_TOKEN:
        return SlackNotifier()
    return NullNotifier()
