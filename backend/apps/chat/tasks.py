"""
Celery tasks for chat
"""
import logging

from asgiref.sync import async_to_sync
from celery import shared_task

logger = logging.getLogger(__name__)


async def _drain_resume(action_id: str) -> dict:
    from apps.llm.client import MessagesClient
    from .orchestrator import Orchestrator

    summary = {'events': 0, 'outcome': None}
    async with MessagesClient.from_settings() as client:
        async for event in Orchestrator(client).resume(action_id):
            summary['events'] += 1
            if event.type == 'done':
                summary['outcome'] = event.data.get('outcome')
    return summary


@shared_task(bind=True, max_retries=2, default_retry_delay=5)
def resume_chat_turn(self, action_id: str):
    """
    Continue the chat turn that queued `action_id`, now that it is resolved.

    Enqueued by the confirmation queue after approve, reject or expiry. The
    session's persisted messages carry all state; a repeat run for the same
    action is a no-op.

    Args:
        action_id: PendingAction UUID (string)

    Returns:
        {'events': int, 'outcome': 'done' | 'iteration_cap' | None}
    """
    from apps.llm.errors import LLMError, RateLimited

    try:
        summary = async_to_sync(_drain_resume)(action_id)
    except RateLimited as exc:
        logger.warning("resume_chat_turn_rate_limited", extra={'action_id': action_id})
        raise self.retry(exc=exc, countdown=exc.retry_after)
    except LLMError as exc:
        logger.exception("resume_chat_turn_failed", extra={'action_id': action_id})
        raise self.retry(exc=exc)

    logger.info("resume_chat_turn_completed", extra={'action_id': action_id, **summary})
    return summary
