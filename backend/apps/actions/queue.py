"""
Confirmation queue: holds write-tool calls until a human approves them.

Every transition is a single conditional UPDATE filtered on the expected
current status, so approve, reject and the expiry sweep can race freely and
exactly one of them wins. Only the winner of PENDING -> APPROVED executes the
tool.

Notifier edits are best-effort; a failed edit is logged and never rolls back
the status change.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.utils import timezone

from apps.auth_app.models import display_name, slack_user_id_for
from apps.tools.executor import ErrorKind, ToolExecutor, ToolResult
from apps.tools.store import get_store

from .errors import ActionNotFound, NotifierError, QueueConflict
from .models import ActionStatus, PendingAction
from .notifier import Notifier, get_notifier

logger = logging.getLogger(__name__)

ResolutionHook = Callable[[PendingAction], Awaitable[None]]


@dataclass
class Resolution:
    """
    What a resolve call did.

    applied=False means another caller (or the sweep) resolved the action
    first; `status` is then whatever it found.
    """
    action_id: str
    applied: bool
    status: str
    summary: str = ""
    tool_result: Optional[ToolResult] = field(default=None, repr=False)


async def schedule_resume(action: PendingAction) -> None:
    """Hand the resolved action to the chat worker that continues the turn."""
    from apps.chat.tasks import resume_chat_turn

    await sync_to_async(resume_chat_turn.delay)(action_id=str(action.id))


@sync_to_async
def _requester_details(requester_id) -> Dict[str, str]:
    if requester_id is None:
        return {'name': display_name(None), 'slack_user_id': ''}
    user = User.objects.select_related('preferences').filter(pk=requester_id).first()
    return {'name': display_name(user), 'slack_user_id': slack_user_id_for(user)}


class ConfirmationQueue:
    """
    Approval state machine for PendingAction rows.

    Collaborators default to the configured ones; tests inject their own.
    `on_resolved` runs after every applied resolution (approve, reject,
    expire) and by default schedules the chat resumption task.
    """

    def __init__(
        self,
        executor: Optional[ToolExecutor] = None,
        notifier: Optional[Notifier] = None,
        on_resolved: Optional[ResolutionHook] = None,
        expiry_minutes: Optional[int] = None,
    ):
        self._executor = executor
        self.notifier = notifier or get_notifier()
        self.on_resolved = on_resolved or schedule_resume
        self.expiry_minutes = expiry_minutes or settings.ACTION_EXPIRY_MINUTES

    @property
    def executor(self) -> ToolExecutor:
        if self._executor is None:
            self._executor = ToolExecutor(get_store())
        return self._executor

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, action_id) -> PendingAction:
        try:
            return await PendingAction.objects.aget(pk=action_id)
        except (PendingAction.DoesNotExist, ValidationError, ValueError):
            raise ActionNotFound(action_id)

    async def pending_for_session(self, session_id) -> List[PendingAction]:
        actions = []
        queryset = PendingAction.objects.filter(
            session_id=session_id, status=ActionStatus.PENDING,
        ).order_by('created_at')
        async for action in queryset:
            actions.append(action)
        return actions

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        session_id,
        requester_id,
        tool_name: str,
        tool_input: Dict[str, Any],
        message_id=None,
        tool_use_id: str = '',
        domain: str = '',
    ) -> PendingAction:
        """
        Create a PENDING action and post the approval prompt.

        The row exists before the notifier is called; if posting fails the
        action stays pending without a notification handle and is left to
        the expiry sweep.
        """
        action = await PendingAction.objects.acreate(
            session_id=session_id,
            message_id=message_id,
            tool_use_id=tool_use_id,
            requester_id=requester_id,
            tool_name=tool_name,
            tool_input=tool_input or {},
            domain=domain,
            expires_at=timezone.now() + timedelta(minutes=self.expiry_minutes),
        )
        logger.info(
            "action_enqueued",
            extra={
                'action_id': str(action.id),
                'session_id': str(session_id),
                'tool_name': tool_name,
            },
        )

        requester = await _requester_details(requester_id)
        dm_channel = requester['slack_user_id'] or None
        try:
            ref = await self.notifier.request_approval(action, requester['name'], channel=dm_channel)
        except NotifierError as e:
            logger.error(
                "approval_notification_failed",
                extra={'action_id': str(action.id), 'error': str(e)},
            )
            return action

        if ref is not None:
            await PendingAction.objects.filter(pk=action.pk).aupdate(
                notifier_channel=ref.channel, notifier_ts=ref.ts,
            )
            action.notifier_channel = ref.channel
            action.notifier_ts = ref.ts
        return action

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def approve(self, action_id, approved_by: str) -> Resolution:
        """
        PENDING -> APPROVED, execute, then APPROVED -> EXECUTED | FAILED.

        An expired-but-unswept action is expired here instead of approved.
        """
        action_id = self._coerce_id(action_id)
        now = timezone.now()
        won = await PendingAction.objects.filter(
            pk=action_id, status=ActionStatus.PENDING, expires_at__gt=now,
        ).aupdate(status=ActionStatus.APPROVED, resolved_by=approved_by, resolved_at=now)

        if not won:
            action = await self.get(action_id)
            if action.status == ActionStatus.PENDING:
                await self._expire_one(action)
                action = await self.get(action_id)
            return self._lost_race(action, ActionStatus.PENDING)

        action = await self.get(action_id)
        logger.info(
            "action_approved",
            extra={'action_id': str(action.id), 'tool_name': action.tool_name, 'approved_by': approved_by},
        )

        result = await self._execute(action)
        if result.success:
            final_status = ActionStatus.EXECUTED
            updates = {
                'result': {'success': True, 'summary': result.summary, 'output': result.output},
            }
        else:
            final_status = ActionStatus.FAILED
            updates = {
                'result': {'success': False, 'summary': result.summary, 'output': result.output},
                'error_message': result.summary,
            }

        updated = await PendingAction.objects.filter(
            pk=action.pk, status=ActionStatus.APPROVED,
        ).aupdate(status=final_status, **updates)
        if not updated:
            # Nothing else moves an APPROVED row; a miss means the row changed under us
            action = await self.get(action_id)
            return self._lost_race(action, ActionStatus.APPROVED)

        action = await self.get(action_id)
        logger.info(
            "action_executed" if result.success else "action_failed",
            extra={'action_id': str(action.id), 'tool_name': action.tool_name, 'status': final_status},
        )

        if result.success:
            await self._notify(self.notifier.show_approved(action, approved_by, result.summary), action)
        else:
            await self._notify(self.notifier.show_failed(action, result.summary), action)
        await self._resolved(action)

        return Resolution(
            action_id=str(action.id),
            applied=True,
            status=final_status,
            summary=result.summary,
            tool_result=result,
        )

    async def reject(self, action_id, rejected_by: str) -> Resolution:
        action_id = self._coerce_id(action_id)
        won = await PendingAction.objects.filter(
            pk=action_id, status=ActionStatus.PENDING,
        ).aupdate(status=ActionStatus.REJECTED, resolved_by=rejected_by, resolved_at=timezone.now())

        action = await self.get(action_id)
        if not won:
            return self._lost_race(action, ActionStatus.PENDING)

        logger.info(
            "action_rejected",
            extra={'action_id': str(action.id), 'tool_name': action.tool_name, 'rejected_by': rejected_by},
        )
        await self._notify(self.notifier.show_rejected(action, rejected_by), action)
        await self._resolved(action)
        return Resolution(action_id=str(action.id), applied=True, status=ActionStatus.REJECTED)

    async def expire_stale(self) -> int:
        """
        Expire every PENDING action past its deadline.

        Returns the number of rows this sweep transitioned.
        """
        now = timezone.now()
        stale_ids = [
            pk async for pk in PendingAction.objects.filter(
                status=ActionStatus.PENDING, expires_at__lt=now,
            ).values_list('pk', flat=True)
        ]
        if not stale_ids:
            return 0

        count = await PendingAction.objects.filter(
            pk__in=stale_ids, status=ActionStatus.PENDING,
        ).aupdate(status=ActionStatus.EXPIRED, resolved_at=now)

        # Rows resolved by a concurrent approve/reject between the two queries are excluded here
        expired = PendingAction.objects.filter(
            pk__in=stale_ids, status=ActionStatus.EXPIRED, resolved_at=now,
        )
        async for action in expired:
            await self._notify(self.notifier.show_expired(action), action)
            await self._resolved(action)

        if count:
            logger.info("actions_expired", extra={'count': count})
        return count

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce_id(action_id):
        if isinstance(action_id, uuid.UUID):
            return action_id
        try:
            return uuid.UUID(str(action_id))
        except ValueError:
            raise ActionNotFound(action_id)

    async def _expire_one(self, action: PendingAction) -> None:
        expired = await PendingAction.objects.filter(
            pk=action.pk, status=ActionStatus.PENDING, expires_at__lte=timezone.now(),
        ).aupdate(status=ActionStatus.EXPIRED, resolved_at=timezone.now())
        if expired:
            action = await self.get(action.pk)
            logger.info("action_expired_on_resolve", extra={'action_id': str(action.id)})
            await self._notify(self.notifier.show_expired(action), action)
            await self._resolved(action)

    def _lost_race(self, action: PendingAction, expected: str) -> Resolution:
        conflict = QueueConflict(action.id, expected, action.status)
        logger.info(
            "action_resolution_conflict",
            extra={'action_id': str(action.id), 'expected': expected, 'actual': action.status, 'error': str(conflict)},
        )
        return Resolution(action_id=str(action.id), applied=False, status=action.status)

    async def _execute(self, action: PendingAction) -> ToolResult:
        try:
            return await self.executor.execute(action.tool_name, action.tool_input)
        except Exception:
            logger.exception(
                "action_execution_crashed",
                extra={'action_id': str(action.id), 'tool_name': action.tool_name},
            )
            return ToolResult(
                tool_name=action.tool_name,
                success=False,
                summary="Error: Action failed due to an internal error.",
                error_kind=ErrorKind.INTERNAL,
            )

    async def _notify(self, call: Awaitable[None], action: PendingAction) -> None:
        try:
            await call
        except NotifierError as e:
            logger.warning(
                "approval_notification_update_failed",
                extra={'action_id': str(action.id), 'error': str(e)},
            )

    async def _resolved(self, action: PendingAction) -> None:
        try:
            await self.on_resolved(action)
        except Exception:
            logger.exception("action_resume_schedule_failed", extra={'action_id': str(action.id)})
