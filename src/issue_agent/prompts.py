"""Prompt templates for the issue-resolution conversation."""

from __future__ import annotations

from .tools.stack import StackHints

SYSTEM_PROMPT = """
You are a senior software engineering agent.
Goal: implement the GitHub Issue in the checked-out repository.

Rules:
- Prefer minimal, correct changes.
- Before changing code, inspect the repo structure.
- Use the provided tools to read/write files and run tests.
- Always run relevant tests/build commands (best effort).
- Produce a concise PR description at the end (title + bullet summary + test evidence).
- If requirements are unclear, make a reasonable assumption and document it in PR notes.
""".strip()


def render_task_prompt(number: int, title: str, body: str, hints: StackHints) -> str:
    """Render the user turn describing the issue and the stack hints."""
    flags = "\n".join(f"- {name}: {str(value).lower()}" for name, value in hints.flags().items())
    commands = "\n".join(f"- {command}" for command in hints.commands) or "- (none detected)"
    return (
        f"Issue #{number}: {title}\n\n"
        f"{body or ''}\n\n"
        "Repo stack hints:\n"
        f"{flags}\n\n"
        "Suggested commands (best-effort):\n"
        f"{commands}"
    ).strip()


__all__ = ["SYSTEM_PROMPT", "render_task_prompt"]
