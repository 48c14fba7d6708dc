"""Client base class shared by all tool-calling language-model integrations."""

from __future__ import annotations

import ast
import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

from ..structured import (
    AssistantReply,
    AssistantTurn,
    SystemTurn,
    ToolCall,
    ToolCallTurn,
    ToolResultTurn,
    Turn,
    UserTurn,
)

__all__ = [
    "ConversationRequest",
    "LLMClient",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMTransportError",
    "parse_tool_arguments",
]


class LLMClientError(RuntimeError):
    """Base error raised for reasoning-service failures."""


class LLMTransportError(LLMClientError):
    """Raised when the underlying transport fails or returns a non-success status."""


class LLMResponseFormatError(LLMClientError):
    """Raised when the service returns a payload that cannot be interpreted."""


@dataclass(slots=True)
class ConversationRequest:
    """Transport-independent request for one conversation turn."""

    turns: Sequence[Turn]
    tools: Sequence[Mapping[str, Any]]
    reasoning_effort: Optional[str] = None

    def to_payload(self, model: str) -> Dict[str, Any]:
        """Render a transport-ready payload for the Responses API."""
        payload: Dict[str, Any] = {
            "model": model,
            "input": [_render_turn(turn) for turn in self.turns],
            "tools": [dict(tool) for tool in self.tools],
        }
        if self.reasoning_effort:
            payload["reasoning"] = {"effort": self.reasoning_effort}
        return payload


def _message(role: str, text: str) -> Dict[str, Any]:
    part_type = "output_text" if role == "assistant" else "input_text"
    return {"role": role, "content": [{"type": part_type, "text": text}]}


def _render_turn(turn: Turn) -> Dict[str, Any]:
    if isinstance(turn, SystemTurn):
        return _message("system", turn.text)
    if isinstance(turn, UserTurn):
        return _message("user", turn.text)
    if isinstance(turn, AssistantTurn):
        return _message("assistant", turn.text)
    if isinstance(turn, ToolCallTurn):
        call = turn.call
        return {
            "type": "function_call",
            "call_id": call.call_id,
            "name": call.name,
            "arguments": call.raw_arguments or json.dumps(dict(call.arguments)),
        }
    if isinstance(turn, ToolResultTurn):
        return {
            "type": "function_call_output",
            "call_id": turn.result.call_id,
            "output": turn.result.to_output(),
        }
    raise TypeError(f"Unsupported conversation turn: {turn!r}")


class LLMClient:
    """High-level helper that sends the conversation and parses the reply."""

    def __init__(self, model: str, *, reasoning_effort: Optional[str] = None) -> None:
        self._model = model
        self._reasoning_effort = reasoning_effort

    @property
    def model(self) -> str:
        """Return the default model name configured for this client."""
        return self._model

    def complete(self, turns: Sequence[Turn], tools: Sequence[Mapping[str, Any]]) -> AssistantReply:
        """Send one request for the current conversation and return the parsed reply.

        Any failure raises :class:`LLMClientError`; there is no retry here.
        """
        request = ConversationRequest(
            turns=list(turns),
            tools=list(tools),
            reasoning_effort=self._reasoning_effort,
        )
        payload = request.to_payload(self._model)
        data = self._raw_invoke(payload)
        return self._parse_reply(data)

    def _raw_invoke(self, payload: Dict[str, Any]) -> Mapping[str, Any]:
        """Perform the transport call. Subclasses must implement."""
        raise NotImplementedError("Subclasses must implement _raw_invoke().")

    @staticmethod
    def _parse_reply(data: Mapping[str, Any]) -> AssistantReply:
        """Split the response ``output`` list into tool calls and final text."""
        output = data.get("output")
        if output is None:
            output = []
        if not isinstance(output, list):
            raise LLMResponseFormatError("Response `output` is not a list.")

        tool_calls: list[ToolCall] = []
        texts: list[str] = []
        for index, item in enumerate(output):
            if not isinstance(item, Mapping):
                continue
            item_type = item.get("type")
            if item_type == "function_call":
                raw_arguments = item.get("arguments")
                arguments, error = parse_tool_arguments(raw_arguments)
                call_id = item.get("call_id") or item.get("id") or f"call_{index}"
                tool_calls.append(
                    ToolCall(
                        call_id=str(call_id),
                        name=str(item.get("name") or ""),
                        arguments=arguments,
                        raw_arguments=raw_arguments if isinstance(raw_arguments, str) else json.dumps(arguments),
                        parse_error=error,
                    )
                )
            elif item_type == "message":
                for part in item.get("content") or []:
                    if isinstance(part, Mapping) and part.get("type") == "output_text":
                        text = part.get("text")
                        if isinstance(text, str):
                            texts.append(text)
        return AssistantReply(tool_calls=tool_calls, final_text="\n".join(texts))


def parse_tool_arguments(raw: Any) -> tuple[Dict[str, Any], Optional[str]]:
    """Parse tool-call arguments leniently.

    Returns the argument mapping and, when the payload could not be read as a
    JSON object, a short description of the problem.
    """
    if isinstance(raw, Mapping):
        return dict(raw), None
    if raw is None:
        return {}, None
    if not isinstance(raw, str):
        return {}, f"arguments must be a JSON object, got {type(raw).__name__}"

    text = _normalise_json_string(raw.strip())
    if not text:
        return {}, None

    candidates = [text]
    repaired = _repair_json_payload(text)
    if repaired and repaired not in candidates:
        candidates.append(repaired)

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except (json.JSONDecodeError, RecursionError):
            value = _coerce_python_literal(candidate)
            if value is None:
                continue
        if isinstance(value, dict):
            return value, None
        return {}, "arguments must be a JSON object"

    return {}, f"arguments are not valid JSON: {text[:200]}"


def _strip_code_fence(payload: str) -> str:
    """Remove Markdown-style code fences that wrap JSON payloads."""
    if not payload.startswith("```"):
        return payload
    fence_header_match = re.match(r"```(?:json)?", payload[:10], re.IGNORECASE)
    if not fence_header_match:
        return payload
    fence_end = payload.find("```", len(fence_header_match.group(0)))
    if fence_end == -1:
        return payload
    content_start = payload.find("\n", len(fence_header_match.group(0)))
    if content_start == -1:
        return payload
    return payload[content_start + 1 : fence_end].strip()


def _normalise_json_string(payload: str) -> str:
    """Normalise typographic quotes that models occasionally emit around keys."""
    if not payload:
        return payload
    translation = {
        0x201C: '"',
        0x201D: '"',
        0x00A0: " ",
        0xFEFF: "",
    }
    return payload.translate(str.maketrans(translation))


def _strip_trailing_commas(payload: str) -> str:
    """Remove trailing commas before closing braces/brackets."""
    return re.sub(r",(\s*[}\]])", r"\1", payload)


def _repair_json_payload(raw: str) -> str | None:
    """Attempt to salvage a JSON object embedded in noisy output."""
    stripped = _strip_code_fence(raw.strip())
    if not stripped:
        return None

    opening_idx = None
    expected: list[str] = []
    in_string = False
    escaped = False
    for index, char in enumerate(stripped):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            if opening_idx is None:
                opening_idx = index
            expected.append("}" if char == "{" else "]")
        elif expected and char == expected[-1]:
            expected.pop()
            if not expected and opening_idx is not None:
                candidate = stripped[opening_idx : index + 1]
                return _strip_trailing_commas(candidate.strip())
    return None


def _coerce_python_literal(candidate: str) -> Any | None:
    """Fall back to Python literal parsing when JSON decoding fails."""
    try:
        literal = ast.literal_eval(candidate)
    except (SyntaxError, ValueError, TypeError, MemoryError, RecursionError):
        return None
    return _normalise_literal(literal)


def _normalise_literal(value: Any) -> Any:
    """Convert Python literals into JSON-compatible structures recursively."""
    if isinstance(value, dict):
        return {str(key): _normalise_literal(sub) for key, sub in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_normalise_literal(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)
