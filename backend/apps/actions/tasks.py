"""
Celery tasks for the confirmation queue
"""
import logging

from asgiref.sync import async_to_sync
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=2, default_retry_delay=5)
def expire_stale_actions(self):
    """
    Periodic sweep: move overdue PENDING actions to EXPIRED.

    Scheduled by CELERY_BEAT_SCHEDULE every ACTION_EXPIRY_SWEEP_SECONDS. Each
    expired action gets its Slack prompt rewritten and its chat turn resumed.

    Returns:
        Number of actions expired by this run
    """
    from apps.actions.queue import ConfirmationQueue

    try:
        count = async_to_sync(ConfirmationQueue().expire_stale)()
    except Exception as exc:
        logger.exception("expire_stale_actions_failed")
        raise self.retry(exc=exc)

    if count:
        logger.info("expire_stale_actions_completed", extra={'expired': count})
    return count
