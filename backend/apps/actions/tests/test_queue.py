"""
Tests for the confirmation queue state machine.
"""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

from asgiref.sync import async_to_sync
from django.test import TestCase
from django.utils import timezone

from apps.actions.errors import ActionNotFound
from apps.actions.models import ActionStatus, PendingAction
from apps.tools.store import StoreError
from apps.tools.tests.helpers import ExplodingStore, FakeStore

from .helpers import RecordingNotifier, make_queue, make_session, make_user


class QueueTestCase(TestCase):

    def setUp(self):
        self.user = make_user(first_name="Alice", last_name="Admin")
        self.session = make_session(self.user)
        self.store = FakeStore({"cancel_order": {"message": "Order #1001 cancelled"}})
        self.notifier = RecordingNotifier()
        self.on_resolved = AsyncMock()
        self.queue = make_queue(self.store, self.notifier, self.on_resolved)

    def enqueue(self, tool_name="cancel_order", tool_input=None, **kwargs):
        return async_to_sync(self.queue.enqueue)(
            self.session.id, self.user.id, tool_name,
            tool_input if tool_input is not None else {"order_id": "1001"},
            **kwargs,
        )

    def make_overdue(self, action):
        PendingAction.objects.filter(pk=action.pk).update(expires_at=timezone.now() - timedelta(minutes=1))


# ═══════════════════════════════════════════════════════════════════
# Enqueue
# ═══════════════════════════════════════════════════════════════════

class EnqueueTest(QueueTestCase):

    def test_creates_pending_action_with_expiry(self):
        before = timezone.now()
        action = self.enqueue(tool_use_id="toolu_01", domain="orders")

        action.refresh_from_db()
        self.assertEqual(action.status, ActionStatus.PENDING)
        self.assertEqual(action.tool_use_id, "toolu_01")
        self.assertEqual(action.requester_id, self.user.id)
        self.assertGreaterEqual(action.expires_at, before + timedelta(minutes=29))
        self.assertLessEqual(action.expires_at, timezone.now() + timedelta(minutes=30))

    def test_posts_prompt_and_stores_handle(self):
        action = self.enqueue()

        self.assertEqual(self.notifier.calls, [("request_approval", str(action.id), "Alice Admin")])
        self.assertEqual(self.notifier.channels, [None])
        action.refresh_from_db()
        self.assertEqual(action.notifier_channel, "C0APPROVALS")
        self.assertEqual(action.notifier_ts, "1700000000.000100")
        self.assertTrue(action.has_notification)

    def test_routes_to_requester_dm_when_configured(self):
        self.user.preferences.slack_user_id = "U0123456789"
        self.user.preferences.save()

        action = self.enqueue()

        self.assertEqual(self.notifier.channels, ["U0123456789"])
        action.refresh_from_db()
        self.assertEqual(action.notifier_channel, "U0123456789")

    def test_notifier_failure_leaves_action_pending(self):
        self.queue.notifier = RecordingNotifier(fail_post=True)

        action = self.enqueue()

        action.refresh_from_db()
        self.assertEqual(action.status, ActionStatus.PENDING)
        self.assertFalse(action.has_notification)

    def test_pending_for_session(self):
        first = self.enqueue()
        second = self.enqueue(tool_input={"order_id": "1002"})
        async_to_sync(self.queue.reject)(first.id, "bob")

        pending = async_to_sync(self.queue.pending_for_session)(self.session.id)

        self.assertEqual([a.id for a in pending], [second.id])


# ═══════════════════════════════════════════════════════════════════
# Approve / reject
# ═══════════════════════════════════════════════════════════════════

class ApproveTest(QueueTestCase):

    def test_approve_executes_and_records_result(self):
        action = self.enqueue()

        resolution = async_to_sync(self.queue.approve)(action.id, "bob")

        self.assertTrue(resolution.applied)
        self.assertEqual(resolution.status, ActionStatus.EXECUTED)
        self.assertEqual(self.store.calls_for("cancel_order")[0]["order_id"], "1001")

        action.refresh_from_db()
        self.assertEqual(action.status, ActionStatus.EXECUTED)
        self.assertEqual(action.resolved_by, "bob")
        self.assertIsNotNone(action.resolved_at)
        self.assertTrue(action.result["success"])
        self.assertIn("Order #1001 cancelled", action.result["summary"])

        self.assertEqual(self.notifier.methods(), ["request_approval", "show_approved"])
        self.on_resolved.assert_awaited_once()
        self.assertEqual(self.on_resolved.await_args.args[0].id, action.id)

    def test_store_error_marks_failed(self):
        self.store.responses["cancel_order"] = StoreError("Order is already fulfilled", code="USER_ERROR")
        action = self.enqueue()

        resolution = async_to_sync(self.queue.approve)(action.id, "bob")

        self.assertTrue(resolution.applied)
        self.assertEqual(resolution.status, ActionStatus.FAILED)
        action.refresh_from_db()
        self.assertEqual(action.status, ActionStatus.FAILED)
        self.assertIn("Order is already fulfilled", action.error_message)
        self.assertFalse(action.result["success"])
        self.assertEqual(self.notifier.methods()[-1], "show_failed")
        self.on_resolved.assert_awaited_once()

    def test_internal_store_crash_marks_failed_without_leaking(self):
        self.queue = make_queue(ExplodingStore(), self.notifier, self.on_resolved)
        action = self.enqueue()

        async_to_sync(self.queue.approve)(action.id, "bob")

        action.refresh_from_db()
        self.assertEqual(action.status, ActionStatus.FAILED)
        self.assertNotIn("hunter2", action.error_message)

    def test_duplicate_approve_executes_once(self):
        action = self.enqueue()

        first = async_to_sync(self.queue.approve)(action.id, "bob")
        second = async_to_sync(self.queue.approve)(action.id, "bob")

        self.assertTrue(first.applied)
        self.assertFalse(second.applied)
        self.assertEqual(second.status, ActionStatus.EXECUTED)
        self.assertEqual(len(self.store.calls_for("cancel_order")), 1)
        self.on_resolved.assert_awaited_once()

    def test_approve_after_reject_is_noop(self):
        action = self.enqueue()

        rejected = async_to_sync(self.queue.reject)(action.id, "carol")
        approved = async_to_sync(self.queue.approve)(action.id, "bob")

        self.assertTrue(rejected.applied)
        self.assertFalse(approved.applied)
        self.assertEqual(approved.status, ActionStatus.REJECTED)
        self.assertEqual(self.store.calls, [])
        action.refresh_from_db()
        self.assertEqual(action.status, ActionStatus.REJECTED)
        self.assertEqual(action.resolved_by, "carol")

    def test_reject_after_approve_is_noop(self):
        action = self.enqueue()

        async_to_sync(self.queue.approve)(action.id, "bob")
        rejected = async_to_sync(self.queue.reject)(action.id, "carol")

        self.assertFalse(rejected.applied)
        self.assertEqual(rejected.status, ActionStatus.EXECUTED)
        self.assertEqual(len(self.store.calls), 1)

    def test_concurrent_approve_and_reject_resolve_once(self):
        action = self.enqueue()

        async def race():
            return await asyncio.gather(
                self.queue.approve(action.id, "bob"),
                self.queue.reject(action.id, "carol"),
                self.queue.approve(action.id, "dave"),
            )

        resolutions = async_to_sync(race)()

        self.assertEqual(sum(r.applied for r in resolutions), 1)
        self.assertLessEqual(len(self.store.calls_for("cancel_order")), 1)
        action.refresh_from_db()
        self.assertIn(action.status, (ActionStatus.EXECUTED, ActionStatus.REJECTED))
        executed = action.status == ActionStatus.EXECUTED
        self.assertEqual(len(self.store.calls_for("cancel_order")), 1 if executed else 0)
        self.assertIn(action.resolved_by, ("bob", "dave") if executed else ("carol",))
        self.on_resolved.assert_awaited_once()

    def test_reject_updates_notification(self):
        action = self.enqueue()

        resolution = async_to_sync(self.queue.reject)(action.id, "carol")

        self.assertEqual(resolution.status, ActionStatus.REJECTED)
        self.assertEqual(self.notifier.calls[-1], ("show_rejected", str(action.id), "carol"))
        self.on_resolved.assert_awaited_once()

    def test_overdue_action_expires_instead_of_executing(self):
        action = self.enqueue()
        self.make_overdue(action)

        resolution = async_to_sync(self.queue.approve)(action.id, "bob")

        self.assertFalse(resolution.applied)
        self.assertEqual(resolution.status, ActionStatus.EXPIRED)
        self.assertEqual(self.store.calls, [])
        self.assertEqual(self.notifier.methods()[-1], "show_expired")
        self.on_resolved.assert_awaited_once()

    def test_notifier_update_failure_keeps_transition(self):
        action = self.enqueue()
        self.queue.notifier.fail_update = True

        resolution = async_to_sync(self.queue.approve)(action.id, "bob")

        self.assertTrue(resolution.applied)
        action.refresh_from_db()
        self.assertEqual(action.status, ActionStatus.EXECUTED)
        self.on_resolved.assert_awaited_once()

    def test_resume_hook_failure_does_not_propagate(self):
        self.queue.on_resolved = AsyncMock(side_effect=RuntimeError("broker down"))
        action = self.enqueue()

        resolution = async_to_sync(self.queue.reject)(action.id, "carol")

        self.assertTrue(resolution.applied)

    def test_unknown_action(self):
        with self.assertRaises(ActionNotFound):
            async_to_sync(self.queue.approve)("00000000-0000-0000-0000-000000000000", "bob")
        with self.assertRaises(ActionNotFound):
            async_to_sync(self.queue.reject)("not-a-uuid", "bob")
        with self.assertRaises(ActionNotFound):
            async_to_sync(self.queue.get)("not-a-uuid")


# ═══════════════════════════════════════════════════════════════════
# Expiry sweep
# ═══════════════════════════════════════════════════════════════════

class ExpireStaleTest(QueueTestCase):

    def test_expires_only_overdue_pending_actions(self):
        overdue = self.enqueue()
        fresh = self.enqueue(tool_input={"order_id": "1002"})
        done = self.enqueue(tool_input={"order_id": "1003"})
        async_to_sync(self.queue.reject)(done.id, "carol")
        self.make_overdue(overdue)
        self.make_overdue(done)
        self.on_resolved.reset_mock()

        count = async_to_sync(self.queue.expire_stale)()

        self.assertEqual(count, 1)
        statuses = dict(PendingAction.objects.values_list('id', 'status'))
        self.assertEqual(statuses[overdue.id], ActionStatus.EXPIRED)
        self.assertEqual(statuses[fresh.id], ActionStatus.PENDING)
        self.assertEqual(statuses[done.id], ActionStatus.REJECTED)
        self.assertIn(("show_expired", str(overdue.id), None), self.notifier.calls)
        self.on_resolved.assert_awaited_once()

    def test_second_sweep_is_noop(self):
        action = self.enqueue()
        self.make_overdue(action)

        self.assertEqual(async_to_sync(self.queue.expire_stale)(), 1)
        self.assertEqual(async_to_sync(self.queue.expire_stale)(), 0)

    def test_stale_callback_after_expiry_is_noop(self):
        action = self.enqueue()
        self.make_overdue(action)
        async_to_sync(self.queue.expire_stale)()

        approved = async_to_sync(self.queue.approve)(action.id, "bob")
        rejected = async_to_sync(self.queue.reject)(action.id, "bob")

        self.assertFalse(approved.applied)
        self.assertFalse(rejected.applied)
        self.assertEqual(self.store.calls, [])
        action.refresh_from_db()
        self.assertEqual(action.status, ActionStatus.EXPIRED)

    def test_empty_sweep(self):
        self.assertEqual(async_to_sync(self.queue.expire_stale)(), 0)
