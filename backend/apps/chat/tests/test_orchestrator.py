"""
Tests for the tool-use loop, approval suspension and resumption.
"""
from unittest.mock import AsyncMock

from asgiref.sync import async_to_sync
from django.test import TestCase

from apps.actions.models import ActionStatus, PendingAction
from apps.actions.tests.helpers import RecordingNotifier, make_queue, make_session, make_user
from apps.chat.models import ChatMessage, MessageRole
from apps.chat.orchestrator import Orchestrator, TurnOutcome, iteration_cap_text
from apps.llm.codec import MALFORMED_FRAME
from apps.llm.errors import ProtocolError
from apps.llm.types import StreamError, TextBlock, ToolResultBlock, ToolUseBlock
from apps.tools.domains import Domain
from apps.tools.executor import ToolExecutor
from apps.tools.tests.helpers import FakeStore

from .helpers import FakeSelector, ScriptedClient, error_turn, text_turn, tool_turn


def collect(events_factory):
    async def run():
        return [event async for event in events_factory()]
    return async_to_sync(run)()


class OrchestratorTestCase(TestCase):

    def setUp(self):
        self.user = make_user()
        self.session = make_session(self.user, title="")
        self.store = FakeStore({
            "get_order": {"message": "Order #1001", "order": {"id": "1001", "status": "open"}},
            "cancel_order": {"message": "Order #1001 cancelled"},
        })
        self.selector = FakeSelector()
        self.notifier = RecordingNotifier()
        self.on_resolved = AsyncMock()
        self.queue = make_queue(self.store, self.notifier, self.on_resolved)

    def orchestrator(self, *scripts, max_iterations=None):
        self.client = ScriptedClient(*scripts)
        return Orchestrator(
            self.client,
            selector=self.selector,
            executor=ToolExecutor(self.store),
            queue=self.queue,
            max_iterations=max_iterations,
        )

    def run_turn(self, orchestrator, text):
        return collect(lambda: orchestrator.run_turn(self.session, text))

    def roles(self):
        return list(ChatMessage.objects.filter(session=self.session).values_list('role', flat=True))


# ═══════════════════════════════════════════════════════════════════
# Plain turns
# ═══════════════════════════════════════════════════════════════════

class TextTurnTest(OrchestratorTestCase):

    def test_text_is_relayed_and_persisted(self):
        events = self.run_turn(self.orchestrator(text_turn("Hello there!")), "hi")

        self.assertEqual([e.type for e in events], ["text", "text", "done"])
        self.assertEqual("".join(e.data["text"] for e in events if e.type == "text"), "Hello there!")
        self.assertEqual(events[-1].data["outcome"], TurnOutcome.DONE)
        self.assertEqual(events[-1].data["usage"], {"input_tokens": 12, "output_tokens": 5})

        self.assertEqual(self.roles(), [MessageRole.USER, MessageRole.ASSISTANT])
        assistant = ChatMessage.objects.get(session=self.session, role=MessageRole.ASSISTANT)
        self.assertEqual(assistant.text, "Hello there!")
        self.assertEqual(assistant.api_interaction["model"], "claude-test")
        self.assertEqual(assistant.api_interaction["stop_reason"], "end_turn")
        self.assertEqual(assistant.api_interaction["tools_offered"], ["get_order", "cancel_order"])
        self.assertIn("latency_ms", assistant.api_interaction)
        self.assertEqual(str(assistant.id), events[-1].data["message_id"])

    def test_selection_uses_user_text_and_offers_tools(self):
        self.run_turn(self.orchestrator(text_turn("ok")), "where is order 1001")

        self.assertEqual(self.selector.queries, ["where is order 1001"])
        call = self.client.calls[0]
        self.assertEqual(call["tools"], ["get_order", "cancel_order"])
        self.assertIn("cancel_order", call["system_prompt"])
        self.assertEqual(call["messages"][0].role, "user")
        self.assertEqual(call["messages"][0].content, [TextBlock(text="where is order 1001")])

    def test_first_message_sets_title(self):
        self.run_turn(self.orchestrator(text_turn("ok")), "where is order 1001")

        self.session.refresh_from_db()
        self.assertEqual(self.session.title, "where is order 1001")

    def test_stream_error_aborts_turn(self):
        with self.assertRaises(ProtocolError):
            self.run_turn(self.orchestrator(error_turn()), "hi")

        self.assertEqual(self.roles(), [MessageRole.USER])

    def test_malformed_frame_does_not_end_turn(self):
        script = text_turn("Hello there!")
        script.insert(2, StreamError(message="Malformed event payload: x", error_type=MALFORMED_FRAME))

        events = self.run_turn(self.orchestrator(script), "hi")

        self.assertEqual([e.type for e in events], ["text", "text", "done"])
        self.assertEqual(events[-1].data["outcome"], TurnOutcome.DONE)
        assistant = ChatMessage.objects.get(session=self.session, role=MessageRole.ASSISTANT)
        self.assertEqual(assistant.text, "Hello there!")


# ═══════════════════════════════════════════════════════════════════
# Tool calls
# ═══════════════════════════════════════════════════════════════════

class ReadToolTest(OrchestratorTestCase):

    def test_read_tool_runs_and_loop_continues(self):
        orchestrator = self.orchestrator(
            tool_turn("toolu_01", "get_order", {"order_id": "1001"}, text="Let me look."),
            text_turn("Order 1001 is open."),
        )

        events = self.run_turn(orchestrator, "status of order 1001")

        types = [e.type for e in events]
        self.assertEqual(types[-1], "done")
        self.assertIn("tool_use", types)
        tool_result = next(e for e in events if e.type == "tool_result")
        self.assertFalse(tool_result.data["is_error"])
        self.assertTrue(tool_result.data["content"].startswith("Order #1001"))
        self.assertEqual(self.store.calls, [("get_order", {"order_id": "1001"})])

        self.assertEqual(self.roles(), [
            MessageRole.USER, MessageRole.ASSISTANT, MessageRole.TOOL_USE,
            MessageRole.TOOL_RESULT, MessageRole.ASSISTANT,
        ])

        second_call = self.client.calls[1]["messages"]
        self.assertEqual([m.role for m in second_call], ["user", "assistant", "user"])
        self.assertEqual(second_call[1].content, [
            TextBlock(text="Let me look."),
            ToolUseBlock(id="toolu_01", name="get_order", input={"order_id": "1001"}),
        ])
        self.assertIsInstance(second_call[2].content[0], ToolResultBlock)
        self.assertEqual(second_call[2].content[0].tool_use_id, "toolu_01")

    def test_successful_read_tool_is_learned(self):
        self.run_turn(self.orchestrator(
            tool_turn("toolu_01", "get_order", {"order_id": "1001"}),
            text_turn("done"),
        ), "status of order 1001")

        self.selector.record_success.assert_awaited_once_with("status of order 1001", "get_order", Domain.ORDERS)

    def test_failed_read_tool_is_error_result_not_learned(self):
        from apps.tools.store import StoreError
        self.store.responses["get_order"] = StoreError("Order not found", code="NOT_FOUND")

        events = self.run_turn(self.orchestrator(
            tool_turn("toolu_01", "get_order", {"order_id": "9999"}),
            text_turn("I could not find it."),
        ), "status of order 9999")

        tool_result = next(e for e in events if e.type == "tool_result")
        self.assertTrue(tool_result.data["is_error"])
        self.assertIn("Order not found", tool_result.data["content"])
        self.selector.record_success.assert_not_awaited()
        self.assertEqual(events[-1].data["outcome"], TurnOutcome.DONE)

    def test_unknown_tool_is_error_result(self):
        events = self.run_turn(self.orchestrator(
            tool_turn("toolu_01", "drop_database", {}),
            text_turn("Sorry."),
        ), "hi")

        tool_result = next(e for e in events if e.type == "tool_result")
        self.assertTrue(tool_result.data["is_error"])
        self.assertEqual(self.store.calls, [])

    def test_malformed_tool_json_is_error_result(self):
        events = self.run_turn(self.orchestrator(
            tool_turn("toolu_01", "get_order", raw_json='{"order_id": "10'),
            text_turn("Retrying."),
        ), "hi")

        tool_result = next(e for e in events if e.type == "tool_result")
        self.assertTrue(tool_result.data["is_error"])
        self.assertIn("not valid JSON", tool_result.data["content"])
        self.assertEqual(self.store.calls, [])

    def test_tool_only_response_stores_interaction_on_tool_use(self):
        self.run_turn(self.orchestrator(
            tool_turn("toolu_01", "get_order", {"order_id": "1001"}),
            text_turn("done"),
        ), "hi")

        tool_use = ChatMessage.objects.get(session=self.session, role=MessageRole.TOOL_USE)
        self.assertEqual(tool_use.api_interaction["stop_reason"], "tool_use")
        self.assertEqual(tool_use.api_interaction["input_tokens"], 20)
        self.assertEqual(tool_use.api_interaction["output_tokens"], 8)

    def test_iteration_cap(self):
        orchestrator = self.orchestrator(
            tool_turn("toolu_01", "get_order", {"order_id": "1"}),
            tool_turn("toolu_02", "get_order", {"order_id": "2"}),
            tool_turn("toolu_03", "get_order", {"order_id": "3"}),
            max_iterations=2,
        )

        events = self.run_turn(orchestrator, "loop forever")

        self.assertEqual(len(self.client.calls), 2)
        self.assertEqual(events[-1].type, "done")
        self.assertEqual(events[-1].data["outcome"], TurnOutcome.ITERATION_CAP)
        last = ChatMessage.objects.filter(session=self.session).last()
        self.assertEqual(last.role, MessageRole.ASSISTANT)
        self.assertEqual(last.text, iteration_cap_text(2))
        self.assertTrue(last.metadata["iteration_cap"])


# ═══════════════════════════════════════════════════════════════════
# Approval-gated tools
# ═══════════════════════════════════════════════════════════════════

class WriteToolTest(OrchestratorTestCase):

    def start_cancel(self):
        return self.run_turn(self.orchestrator(
            tool_turn("toolu_02", "cancel_order", {"order_id": "1001"}),
            text_turn("I've asked for approval to cancel order 1001."),
        ), "cancel order 1001")

    def test_write_tool_is_queued_not_executed(self):
        events = self.start_cancel()

        self.assertEqual(self.store.calls, [])
        action = PendingAction.objects.get(session=self.session)
        self.assertEqual(action.status, ActionStatus.PENDING)
        self.assertEqual(action.tool_use_id, "toolu_02")
        self.assertEqual(action.tool_input, {"order_id": "1001"})
        self.assertEqual(action.domain, "orders")
        self.assertEqual(action.requester_id, self.user.id)
        self.assertEqual(action.message.role, MessageRole.TOOL_USE)

        tool_use = next(e for e in events if e.type == "tool_use")
        self.assertTrue(tool_use.data["requires_confirmation"])
        tool_result = next(e for e in events if e.type == "tool_result")
        self.assertFalse(tool_result.data["is_error"])
        self.assertEqual(tool_result.data["action_id"], str(action.id))
        self.assertIn("Awaiting human approval", tool_result.data["content"])

        placeholder = ChatMessage.objects.get(session=self.session, role=MessageRole.TOOL_RESULT)
        self.assertEqual(placeholder.metadata["pending_action_id"], str(action.id))
        self.assertEqual(self.notifier.methods(), ["request_approval"])
        self.assertEqual(events[-1].data["outcome"], TurnOutcome.DONE)

    def test_invalid_write_input_is_not_queued(self):
        events = self.run_turn(self.orchestrator(
            tool_turn("toolu_02", "cancel_order", {"reason": "FRAUD"}),
            text_turn("Which order?"),
        ), "cancel it")

        tool_result = next(e for e in events if e.type == "tool_result")
        self.assertTrue(tool_result.data["is_error"])
        self.assertIn("order_id", tool_result.data["content"])
        self.assertFalse(PendingAction.objects.exists())

    def test_approved_action_resumes_turn(self):
        self.start_cancel()
        action = PendingAction.objects.get(session=self.session)

        resolution = async_to_sync(self.queue.approve)(action.id, "bob")
        self.assertEqual(resolution.status, ActionStatus.EXECUTED)

        resumer = self.orchestrator(text_turn("Order 1001 is cancelled."))
        events = collect(lambda: resumer.resume(action.id))

        self.assertEqual(events[0].type, "tool_result")
        self.assertFalse(events[0].data["is_error"])
        self.assertEqual(events[0].data["action_status"], ActionStatus.EXECUTED)
        self.assertEqual(events[-1].data["outcome"], TurnOutcome.DONE)
        self.assertEqual(len(self.store.calls_for("cancel_order")), 1)

        history = self.client.calls[0]["messages"]
        self.assertEqual(history[-1].role, "user")
        update = history[-1].content[-1]
        self.assertIsInstance(update, TextBlock)
        self.assertTrue(update.text.startswith("Update on tool call toolu_02 (cancel_order): Approved by bob"))
        self.assertIn("Order #1001 cancelled", update.text)
        self.assertEqual(self.selector.queries[-1], "cancel order 1001")

    def test_rejected_action_resumes_with_error_result(self):
        self.start_cancel()
        action = PendingAction.objects.get(session=self.session)
        async_to_sync(self.queue.reject)(action.id, "carol")

        events = collect(lambda: self.orchestrator(text_turn("It was rejected.")).resume(action.id))

        self.assertTrue(events[0].data["is_error"])
        self.assertIn("Rejected by carol", events[0].data["content"])
        self.assertEqual(self.store.calls, [])

    def test_resume_is_idempotent(self):
        self.start_cancel()
        action = PendingAction.objects.get(session=self.session)
        async_to_sync(self.queue.reject)(action.id, "carol")

        collect(lambda: self.orchestrator(text_turn("It was rejected.")).resume(action.id))
        count = ChatMessage.objects.filter(session=self.session).count()
        again = collect(lambda: self.orchestrator(text_turn("again")).resume(action.id))

        self.assertEqual(again, [])
        self.assertEqual(ChatMessage.objects.filter(session=self.session).count(), count)

    def test_resume_of_pending_action_does_nothing(self):
        self.start_cancel()
        action = PendingAction.objects.get(session=self.session)

        events = collect(lambda: self.orchestrator(text_turn("x")).resume(action.id))

        self.assertEqual(events, [])
        self.assertEqual(self.client.calls, [])
