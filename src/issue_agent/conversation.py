"""Bounded tool-calling conversation between the reasoning service and a workspace.

One :class:`AgentConversation` drives a single run: it sends the whole
conversation plus the tool schema, executes any returned tool calls strictly
in order, feeds their results back and stops when a reply carries no tool
calls. Reaching the step budget without such a reply fails the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Sequence

from .errors import BudgetExhaustedError, ConversationOverflowError
from .models.llm_client import LLMClient
from .structured import (
    AssistantTurn,
    SystemTurn,
    ToolCallTurn,
    ToolResultTurn,
    Turn,
    UserTurn,
)
from .tools.executor import TOOL_SCHEMA, ToolExecutor

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 30
DEFAULT_MAX_TURNS = 2000


class ConversationState(str, Enum):
    """Lifecycle states of a conversation run."""

    IDLE = "idle"
    REQUESTING = "requesting"
    DISPATCHING = "dispatching"
    COMPLETED = "completed"
    BUDGET_EXHAUSTED = "budget_exhausted"


@dataclass(slots=True)
class ConversationResult:
    """Summary returned once the reasoning service gives a final answer."""

    summary: str
    steps: int
    tool_calls: int


class AgentConversation:
    """Drive request / dispatch cycles until completion or budget exhaustion."""

    def __init__(
        self,
        client: LLMClient,
        executor: ToolExecutor,
        *,
        max_steps: int = DEFAULT_MAX_STEPS,
        max_turns: int = DEFAULT_MAX_TURNS,
        tools: Sequence[Mapping[str, Any]] = TOOL_SCHEMA,
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self._client = client
        self._executor = executor
        self._max_steps = max_steps
        self._max_turns = max_turns
        self._tools = list(tools)
        self.state = ConversationState.IDLE
        self.turns: List[Turn] = []
        self.steps = 0

    def run(self, system_prompt: str, task_prompt: str) -> ConversationResult:
        """Run the conversation for one task.

        :class:`~issue_agent.models.LLMClientError` from the client propagates
        unchanged; tool failures are returned to the model as results.
        """
        self.turns = [SystemTurn(system_prompt), UserTurn(task_prompt)]
        self.steps = 0
        executed = 0

        while self.steps < self._max_steps:
            self.state = ConversationState.REQUESTING
            self.steps += 1
            LOGGER.debug("Conversation step %d/%d (%d turns)", self.steps, self._max_steps, len(self.turns))
            reply = self._client.complete(self.turns, self._tools)

            if reply.is_final:
                self.state = ConversationState.COMPLETED
                LOGGER.info("Conversation completed after %d step(s), %d tool call(s)", self.steps, executed)
                return ConversationResult(summary=reply.final_text, steps=self.steps, tool_calls=executed)

            self.state = ConversationState.DISPATCHING
            for call in reply.tool_calls:
                self._append(ToolCallTurn(call))
                LOGGER.info(
                    "Tool call %s %s",
                    call.name,
                    self._executor.redact(_describe_arguments(call.arguments)),
                )
                result = self._executor.apply(call)
                self._append(ToolResultTurn(result))
                executed += 1
            if reply.final_text.strip():
                self._append(AssistantTurn(reply.final_text))

        self.state = ConversationState.BUDGET_EXHAUSTED
        LOGGER.warning("Conversation exhausted its budget of %d step(s)", self._max_steps)
        raise BudgetExhaustedError(self._max_steps)

    def _append(self, turn: Turn) -> None:
        if len(self.turns) >= self._max_turns:
            raise ConversationOverflowError(f"Conversation exceeded {self._max_turns} turns.")
        self.turns.append(turn)


def _describe_arguments(arguments: Mapping[str, Any]) -> str:
    parts = []
    for key, value in arguments.items():
        if key == "content" and isinstance(value, str):
            parts.append(f"content=<{len(value)} chars>")
        else:
            parts.append(f"{key}={value!r}")
    return ", ".join(parts)


__all__ = [
    "AgentConversation",
    "ConversationResult",
    "ConversationState",
    "DEFAULT_MAX_STEPS",
    "DEFAULT_MAX_TURNS",
]
