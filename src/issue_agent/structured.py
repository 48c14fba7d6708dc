"""Typed payloads exchanged between the reasoning service and the tool executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

import json


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A single tool invocation requested by the reasoning service."""

    call_id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)
    raw_arguments: str = ""
    parse_error: str | None = None


@dataclass(slots=True)
class ToolResult:
    """Outcome of applying a :class:`ToolCall` to the workspace."""

    call_id: str
    name: str
    ok: bool
    payload: dict[str, Any] | None = None
    error: str | None = None

    def to_output(self) -> str:
        """Serialise the result as the text fed back to the model."""
        body: dict[str, Any] = dict(self.payload or {})
        if not self.ok:
            body["ok"] = False
            body["error"] = self.error or "tool failed"
        return json.dumps(body, ensure_ascii=False)


@dataclass(slots=True, frozen=True)
class SystemTurn:
    text: str


@dataclass(slots=True, frozen=True)
class UserTurn:
    text: str


@dataclass(slots=True, frozen=True)
class AssistantTurn:
    text: str


@dataclass(slots=True, frozen=True)
class ToolCallTurn:
    call: ToolCall


@dataclass(slots=True, frozen=True)
class ToolResultTurn:
    result: ToolResult


Turn = Union[SystemTurn, UserTurn, AssistantTurn, ToolCallTurn, ToolResultTurn]


@dataclass(slots=True)
class AssistantReply:
    """Parsed reasoning-service response: zero or more tool calls plus final text."""

    tool_calls: list[ToolCall] = field(default_factory=list)
    final_text: str = ""

    @property
    def is_final(self) -> bool:
        return not self.tool_calls


__all__ = [
    "AssistantReply",
    "AssistantTurn",
    "SystemTurn",
    "ToolCall",
    "ToolCallTurn",
    "ToolResult",
    "ToolResultTurn",
    "Turn",
    "UserTurn",
]
