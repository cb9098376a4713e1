"""
Persisted messages -> Messages API conversation.

ChatMessage rows are one block each; the API wants alternating user and
assistant turns. Consecutive rows that map to the same role are merged, so
assistant text plus its tool_use rows become one assistant turn and the
tool_result rows that follow become one user turn.

A tool_use_id can be answered twice: first by the "awaiting approval"
placeholder, later by the real outcome once the action is resolved. The API
allows one tool_result per tool_use, so the later answer is rendered as a
plain user text update.
"""
from typing import Dict, Iterable, List

from apps.llm.types import ContentBlock, TextBlock, ToolResultBlock, ToolUseBlock, WireMessage

from .models import ChatMessage, MessageRole


def resolution_update_text(tool_use_id: str, tool_name: str, content: str) -> str:
    return f"Update on tool call {tool_use_id} ({tool_name}): {content}"


def _append(turns: List[WireMessage], role: str, block: ContentBlock) -> None:
    if turns and turns[-1].role == role:
        turns[-1].content.append(block)
    else:
        turns.append(WireMessage(role=role, content=[block]))


def build_conversation(messages: Iterable[ChatMessage]) -> List[WireMessage]:
    """
    Args:
        messages: Session messages in sequence order

    Returns:
        Alternating user/assistant WireMessages
    """
    turns: List[WireMessage] = []
    tool_names: Dict[str, str] = {}
    answered = set()

    for message in messages:
        content = message.content or {}

        if message.role == MessageRole.USER:
            text = content.get('text', '')
            if text:
                _append(turns, 'user', TextBlock(text=text))

        elif message.role == MessageRole.ASSISTANT:
            text = content.get('text', '')
            if text:
                _append(turns, 'assistant', TextBlock(text=text))

        elif message.role == MessageRole.TOOL_USE:
            tool_names[content['id']] = content.get('name', '')
            _append(turns, 'assistant', ToolUseBlock(
                id=content['id'],
                name=content.get('name', ''),
                input=content.get('input') or {},
            ))

        elif message.role == MessageRole.TOOL_RESULT:
            tool_use_id = content.get('tool_use_id', '')
            result_text = str(content.get('content', ''))
            if tool_use_id in answered or tool_use_id not in tool_names:
                _append(turns, 'user', TextBlock(
                    text=resolution_update_text(tool_use_id, tool_names.get(tool_use_id, 'unknown'), result_text),
                ))
            else:
                answered.add(tool_use_id)
                _append(turns, 'user', ToolResultBlock(
                    tool_use_id=tool_use_id,
                    content=result_text,
                    is_error=bool(content.get('is_error', False)),
                ))

    return turns
