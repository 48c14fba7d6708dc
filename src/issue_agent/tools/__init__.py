"""Tool integrations exposed to the agent runtime."""

from .executor import TOOL_NAMES, TOOL_SCHEMA, ToolError, ToolExecutor
from .sandbox import BLOCKED_EXIT_CODE, CommandResult, CommandSandbox
from .stack import StackHints, detect_stack
from .vcs import GitError, GitRepository

__all__ = [
    "BLOCKED_EXIT_CODE",
    "CommandResult",
    "CommandSandbox",
    "GitError",
    "GitRepository",
    "StackHints",
    "TOOL_NAMES",
    "TOOL_SCHEMA",
    "ToolError",
    "ToolExecutor",
    "detect_stack",
]
