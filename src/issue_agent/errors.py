"""Exception hierarchy for failures that abort a pipeline run."""

from __future__ import annotations


class FatalRunError(RuntimeError):
    """Raised when the current run must be abandoned without publishing."""


class WorkspaceError(FatalRunError):
    """Raised when the workspace cannot be provisioned (for example a failed clone)."""


class PublishError(FatalRunError):
    """Raised when committing or pushing the workspace fails."""


class BudgetExhaustedError(FatalRunError):
    """Raised when the conversation reaches its step budget without a final answer."""

    def __init__(self, steps: int) -> None:
        super().__init__(f"Agent conversation exceeded {steps} step(s) without a final answer.")
        self.steps = steps


class ConversationOverflowError(FatalRunError):
    """Raised when the conversation grows past its hard turn cap."""


__all__ = [
    "BudgetExhaustedError",
    "ConversationOverflowError",
    "FatalRunError",
    "PublishError",
    "WorkspaceError",
]
