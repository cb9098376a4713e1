"""
Slack Block Kit builders for the approval flow.

Each builder returns a list of block dicts ready for chat.postMessage or
chat.update. Resolution builders replace the original prompt (no buttons).
"""
import json
from typing import Any, Dict, List, Optional

from apps.tools.domains import Domain, emoji_for

MAX_PARAMETERS_CHARS = 2000
MAX_RESULT_CHARS = 2000

Block = Dict[str, Any]


def _header(text: str) -> Block:
    return {"type": "header", "text": {"type": "plain_text", "text": text, "emoji": True}}


def _section(markdown: str) -> Block:
    return {"type": "section", "text": {"type": "mrkdwn", "text": markdown}}


def _context(markdown: str) -> Block:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": markdown}]}


def _button(text: str, action_id: str, value: str, style: str) -> Block:
    return {
        "type": "button",
        "text": {"type": "plain_text", "text": text},
        "action_id": action_id,
        "value": value,
        "style": style,
    }


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return f"{text[:limit]}...\n(truncated)"
    return text


def format_tool_input(tool_input: Any) -> str:
    """Pretty-printed JSON, truncated to fit a Slack section."""
    try:
        formatted = json.dumps(tool_input, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        formatted = str(tool_input)
    return _truncate(formatted, MAX_PARAMETERS_CHARS)


def fallback_text(tool_name: str) -> str:
    return f"AI Action: {tool_name}"


def build_confirmation_message(action_id, tool_name: str, tool_input: Any,
                               requester_name: str, domain: str = "") -> List[Block]:
    """
    header, tool, parameters, requester, divider, Approve/Reject buttons.

    Button action_ids are approve_<id> / reject_<id>; value carries the id.
    """
    action_id = str(action_id)
    emoji = emoji_for(Domain.parse(domain) if domain else None)
    return [
        _header(f"{emoji} AI Action Request"),
        _section(f"*Tool:* `{tool_name}`"),
        _section(f"*Parameters:*\n```\n{format_tool_input(tool_input)}\n```"),
        _context(f"Requested by *{requester_name}* • Just now"),
        {"type": "divider"},
        {
            "type": "actions",
            "elements": [
                _button("Approve", f"approve_{action_id}", action_id, "primary"),
                _button("Reject", f"reject_{action_id}", action_id, "danger"),
            ],
        },
    ]


def build_approved_message(tool_name: str, approved_by: str,
                           result_summary: Optional[str] = None) -> List[Block]:
    blocks = [
        _header("✅ Action Approved"),
        _section(f"*Tool:* `{tool_name}`"),
        _context(f"Approved by *{approved_by}*"),
    ]
    if result_summary:
        blocks.append(_section(f"*Result:*\n```\n{_truncate(result_summary, MAX_RESULT_CHARS)}\n```"))
    return blocks


def build_rejected_message(tool_name: str, rejected_by: str) -> List[Block]:
    return [
        _header("❌ Action Rejected"),
        _section(f"*Tool:* `{tool_name}`"),
        _context(f"Rejected by *{rejected_by}*"),
    ]


def build_expired_message(tool_name: str) -> List[Block]:
    return [
        _header("⏰ Action Expired"),
        _section(f"*Tool:* `{tool_name}`"),
        _context("This action request has expired and was not executed."),
    ]


def build_failed_message(tool_name: str, error: str) -> List[Block]:
    return [
        _header("⚠️ Action Failed"),
        _section(f"*Tool:* `{tool_name}`"),
        _section(f"*Error:*\n```\n{_truncate(error, MAX_RESULT_CHARS)}\n```"),
    ]


def already_resolved_text(status: str) -> str:
    return f"This action was already {status}; nothing was executed."
