"""
Tool-use loop for one chat turn.

    persist user message
    select tools for the latest user text
    repeat up to MAX_TOOL_ITERATIONS:
        stream a model call, relaying text deltas as they arrive
        persist the assistant text and tool_use blocks
        no tool calls -> done
        read tools run now; write tools are queued for approval and answered
        with an "awaiting approval" placeholder
        persist the tool results
    cap reached -> persist a closing assistant message

The database is the only state shared between a turn and its later
resumption: when an approval resolves, resume() appends the real outcome
and runs the loop again from the persisted history.

Failures inside a tool become error tool_results. Failures of the model call
or persistence propagate as exceptions and end the turn.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings

from apps.actions.models import ActionStatus, PendingAction
from apps.actions.queue import ConfirmationQueue
from apps.llm.accumulator import TurnAccumulator
from apps.llm.client import MessagesClient
from apps.llm.codec import MALFORMED_FRAME
from apps.llm.errors import ProtocolError
from apps.llm.types import StreamError, TextDelta, ToolUseBlock, Usage
from apps.tool_selection.selector import SelectionResult, ToolSelector
from apps.tools.errors import ToolValidationError
from apps.tools.executor import ErrorKind, ToolExecutor, ToolResult
from apps.tools.registry import ToolCatalog
from apps.tools.store import get_store

from .conversation import build_conversation
from .models import ChatMessage, ChatSession, MessageRole
from .prompts import get_system_prompt
from .services import ChatService

logger = logging.getLogger(__name__)


class TurnOutcome:
    DONE = "done"
    ITERATION_CAP = "iteration_cap"


@dataclass
class TurnEvent:
    """One item of the turn's event stream (also the SSE frame)."""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_sse(self) -> str:
        return f"event: {self.type}\ndata: {json.dumps(self.data, default=str)}\n\n"


def awaiting_approval_text(action: PendingAction) -> str:
    return (
        f"Awaiting human approval (action {action.id}). {action.tool_name} has NOT been run yet; "
        "it will run only if an approver accepts it."
    )


def resolution_text(action: PendingAction) -> str:
    """Tool result content describing how a queued action ended."""
    result = action.result or {}
    if action.status == ActionStatus.EXECUTED:
        return f"Approved by {action.resolved_by} and executed. Result: {result.get('summary', '')}"
    if action.status == ActionStatus.FAILED:
        return f"Approved by {action.resolved_by} but failed: {action.error_message}"
    if action.status == ActionStatus.REJECTED:
        return f"Rejected by {action.resolved_by}. The action was not performed."
    if action.status == ActionStatus.EXPIRED:
        return "This request was not approved in time and has expired. The action was not performed."
    return f"Action is {action.status}."


def iteration_cap_text(limit: int) -> str:
    return (
        f"I stopped after {limit} rounds of tool calls without reaching an answer. "
        "Please narrow the request or tell me how to continue."
    )


class Orchestrator:
    """
    Runs chat turns against the Messages API.

    Usage:
        async with MessagesClient.from_settings() as client:
            orchestrator = Orchestrator(client)
            async for event in orchestrator.run_turn(session, "cancel order 1001"):
                ...
    """

    def __init__(
        self,
        client: MessagesClient,
        selector: Optional[ToolSelector] = None,
        executor: Optional[ToolExecutor] = None,
        queue: Optional[ConfirmationQueue] = None,
        max_iterations: Optional[int] = None,
    ):
        self.client = client
        self._selector = selector
        self._executor = executor
        self._queue = queue
        self.max_iterations = max_iterations or settings.MAX_TOOL_ITERATIONS

    @property
    def selector(self) -> ToolSelector:
        if self._selector is None:
            self._selector = ToolSelector()
        return self._selector

    @property
    def executor(self) -> ToolExecutor:
        if self._executor is None:
            self._executor = ToolExecutor(get_store())
        return self._executor

    @property
    def queue(self) -> ConfirmationQueue:
        if self._queue is None:
            self._queue = ConfirmationQueue(executor=self._executor)
        return self._queue

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_turn(self, session: ChatSession, text: str) -> AsyncIterator[TurnEvent]:
        """Persist the user's message and run the loop."""
        message = await sync_to_async(ChatService.add_user_message)(session.id, text)
        logger.info(
            "chat_turn_started",
            extra={'session_id': str(session.id), 'message_id': str(message.id)},
        )
        async for event in self._loop(session, text):
            yield event

    async def resume(self, action_id) -> AsyncIterator[TurnEvent]:
        """
        Continue a turn after its queued action was resolved.

        Appends the real outcome as a tool_result and re-enters the loop.
        Does nothing for an action that is still pending. If the outcome was
        already appended (a retried task) the loop is re-run only when nothing
        was written after it.
        """
        action = await PendingAction.objects.select_related('session').aget(pk=action_id)
        if not action.is_terminal:
            logger.info("chat_resume_skipped_pending", extra={'action_id': str(action.id)})
            return

        existing = await ChatMessage.objects.filter(
            session_id=action.session_id,
            role=MessageRole.TOOL_RESULT,
            metadata__resolved_action_id=str(action.id),
        ).afirst()
        if existing is not None:
            answered = await ChatMessage.objects.filter(
                session_id=action.session_id, sequence__gt=existing.sequence,
            ).aexists()
            if answered:
                logger.info("chat_resume_skipped_duplicate", extra={'action_id': str(action.id)})
                return
            query = await sync_to_async(ChatService.latest_user_text)(action.session_id)
            async for event in self._loop(action.session, query):
                yield event
            return

        content = resolution_text(action)
        is_error = action.status != ActionStatus.EXECUTED
        message = await sync_to_async(ChatService.append_message)(
            action.session_id,
            MessageRole.TOOL_RESULT,
            {'tool_use_id': action.tool_use_id, 'content': content, 'is_error': is_error},
            metadata={'resolved_action_id': str(action.id), 'action_status': action.status},
        )
        logger.info(
            "chat_turn_resumed",
            extra={'session_id': str(action.session_id), 'action_id': str(action.id), 'status': action.status},
        )
        yield TurnEvent('tool_result', {
            'message_id': str(message.id),
            'tool_use_id': action.tool_use_id,
            'name': action.tool_name,
            'content': content,
            'is_error': is_error,
            'action_id': str(action.id),
            'action_status': action.status,
        })

        query = await sync_to_async(ChatService.latest_user_text)(action.session_id)
        async for event in self._loop(action.session, query):
            yield event

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _loop(self, session: ChatSession, query: str) -> AsyncIterator[TurnEvent]:
        selection = await self.selector.select(query)
        specs = [tool.to_spec() for tool in selection.tools]
        system_prompt = get_system_prompt(selection.tools)
        total_usage = Usage()

        for iteration in range(1, self.max_iterations + 1):
            history = build_conversation(await sync_to_async(ChatService.list_messages)(session.id))

            accumulator = TurnAccumulator()
            started = time.monotonic()
            async for event in self.client.stream(history, system_prompt, specs):
                if isinstance(event, StreamError):
                    if event.error_type == MALFORMED_FRAME:
                        logger.warning(
                            "chat_stream_frame_skipped",
                            extra={'session_id': str(session.id), 'error': event.message},
                        )
                        continue
                    raise ProtocolError(f"Stream error ({event.error_type}): {event.message}")
                accumulator.add(event)
                if isinstance(event, TextDelta):
                    yield TurnEvent('text', {'text': event.text})

            latency_ms = int((time.monotonic() - started) * 1000)
            total_usage = total_usage + accumulator.usage
            interaction = {
                'model': accumulator.model or self.client.model,
                'input_tokens': accumulator.usage.input_tokens,
                'output_tokens': accumulator.usage.output_tokens,
                'latency_ms': latency_ms,
                'stop_reason': accumulator.stop_reason.value if accumulator.stop_reason else None,
                'tools_offered': [spec.name for spec in specs],
                'iteration': iteration,
            }

            last_message, tool_use_messages = await self._persist_model_output(
                session, accumulator, interaction, selection,
            )
            tool_uses = accumulator.tool_uses

            if not tool_uses:
                logger.info(
                    "chat_turn_completed",
                    extra={'session_id': str(session.id), 'iterations': iteration},
                )
                yield self._done(TurnOutcome.DONE, last_message, iteration, total_usage)
                return

            for tool_use, message in zip(tool_uses, tool_use_messages):
                tool = ToolCatalog.get(tool_use.name)
                yield TurnEvent('tool_use', {
                    'message_id': str(message.id),
                    'id': tool_use.id,
                    'name': tool_use.name,
                    'input': tool_use.input,
                    'requires_confirmation': bool(tool and tool.requires_confirmation),
                })

            # Results are persisted in tool_use order
            for tool_use, message in zip(tool_uses, tool_use_messages):
                event = await self._dispatch(
                    session, tool_use, message, query, accumulator.invalid_inputs.get(tool_use.id),
                )
                yield event

        message = await sync_to_async(ChatService.append_message)(
            session.id,
            MessageRole.ASSISTANT,
            {'text': iteration_cap_text(self.max_iterations)},
            metadata={'iteration_cap': True},
        )
        logger.warning(
            "chat_turn_iteration_cap",
            extra={'session_id': str(session.id), 'iterations': self.max_iterations},
        )
        yield TurnEvent('text', {'text': message.text})
        yield self._done(TurnOutcome.ITERATION_CAP, message, self.max_iterations, total_usage)

    async def _persist_model_output(self, session, accumulator: TurnAccumulator,
                                    interaction: Dict[str, Any], selection: SelectionResult):
        """
        Store assistant text then each tool_use, in block order.

        api_interaction goes on the first stored row of the model call.
        """
        tool_use_messages: List[ChatMessage] = []
        stored: Optional[ChatMessage] = None
        metadata = {'tool_selection': selection.to_dict()}

        text = accumulator.text
        if text or not accumulator.tool_uses:
            stored = await sync_to_async(ChatService.append_message)(
                session.id, MessageRole.ASSISTANT, {'text': text},
                api_interaction=interaction, metadata=metadata,
            )

        for tool_use in accumulator.tool_uses:
            message = await sync_to_async(ChatService.append_message)(
                session.id,
                MessageRole.TOOL_USE,
                {'id': tool_use.id, 'name': tool_use.name, 'input': tool_use.input},
                api_interaction=interaction if stored is None else None,
                metadata=metadata if stored is None else {},
            )
            stored = stored or message
            tool_use_messages.append(message)

        return stored, tool_use_messages

    async def _dispatch(self, session: ChatSession, tool_use: ToolUseBlock, message: ChatMessage,
                        query: str, invalid_input: Optional[str]) -> TurnEvent:
        tool = ToolCatalog.get(tool_use.name)
        metadata: Dict[str, Any] = {}

        if invalid_input:
            result = ToolResult(tool_name=tool_use.name, success=False, summary=f"Error: {invalid_input}",
                                error_kind=ErrorKind.VALIDATION)
        elif tool is not None and tool.requires_confirmation:
            result, action = await self._enqueue(session, tool, tool_use, message)
            if action is not None:
                metadata = {'pending_action_id': str(action.id), 'awaiting_approval': True}
        else:
            result = await self.executor.execute(tool_use.name, tool_use.input)
            if result.success and tool is not None:
                await self._learn(query, tool)

        stored = await sync_to_async(ChatService.append_message)(
            session.id,
            MessageRole.TOOL_RESULT,
            {'tool_use_id': tool_use.id, 'content': result.summary, 'is_error': result.is_error},
            metadata=metadata,
        )
        data = {
            'message_id': str(stored.id),
            'tool_use_id': tool_use.id,
            'name': tool_use.name,
            'content': result.summary,
            'is_error': result.is_error,
        }
        if metadata:
            data['action_id'] = metadata['pending_action_id']
            data['action_status'] = ActionStatus.PENDING
        return TurnEvent('tool_result', data)

    async def _enqueue(self, session, tool, tool_use: ToolUseBlock, message: ChatMessage):
        """Validate, then queue a write tool; invalid input never reaches an approver."""
        try:
            tool.validate(tool_use.input)
        except ToolValidationError as e:
            return ToolResult(tool_name=tool.name, success=False,
                              summary=f"Invalid input for {tool.name}: {e.message}",
                              error_kind=ErrorKind.VALIDATION), None

        action = await self.queue.enqueue(
            session.id,
            session.user_id,
            tool.name,
            tool_use.input,
            message_id=message.id,
            tool_use_id=tool_use.id,
            domain=tool.domain.value,
        )
        return ToolResult(tool_name=tool.name, success=True, summary=awaiting_approval_text(action)), action

    async def _learn(self, query: str, tool) -> None:
        try:
            await self.selector.record_success(query, tool.name, tool.domain)
        except Exception:
            logger.exception("tool_learning_failed", extra={'tool_name': tool.name})

    @staticmethod
    def _done(outcome: str, message: Optional[ChatMessage], iterations: int, usage: Usage) -> TurnEvent:
        return TurnEvent('done', {
            'outcome': outcome,
            'message_id': str(message.id) if message else None,
            'iterations': iterations,
            'usage': {'input_tokens': usage.input_tokens, 'output_tokens': usage.output_tokens},
        })
