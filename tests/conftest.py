from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from issue_agent.models.llm_client import LLMClient  # noqa: E402
from issue_agent.structured import AssistantReply, ToolCall, Turn  # noqa: E402
from issue_agent.tracker.base import ChangeRequest, WorkItem  # noqa: E402


def run_git(cwd: Path, *args: str) -> subprocess.CompletedProcess[str]:
    """Run ``git`` for fixture setup and fail loudly on errors."""

    return subprocess.run(
        [
            "git",
            "-c",
            "user.email=fixture@example.com",
            "-c",
            "user.name=Fixture",
            *args,
        ],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )


@dataclass(slots=True)
class OriginRepo:
    """A bare remote seeded with a ``main`` branch."""

    bare: Path

    @property
    def url(self) -> str:
        return str(self.bare)

    def branches(self) -> List[str]:
        result = run_git(self.bare, "for-each-ref", "--format=%(refname:short)", "refs/heads")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def commits_ahead(self, branch: str, base: str = "main") -> int:
        result = run_git(self.bare, "rev-list", "--count", f"{base}..{branch}")
        return int(result.stdout.strip())

    def show(self, branch: str, path: str) -> str:
        return run_git(self.bare, "show", f"{branch}:{path}").stdout

    def subject(self, branch: str) -> str:
        return run_git(self.bare, "log", "-1", "--format=%s", branch).stdout.strip()


@pytest.fixture()
def origin_repo(tmp_path: Path) -> OriginRepo:
    """Create a bare repository with a ``main`` branch containing a README."""

    seed = tmp_path / "seed"
    seed.mkdir()
    run_git(seed, "init")
    run_git(seed, "checkout", "-b", "main")
    (seed / "README.md").write_text("# Demo\n", encoding="utf-8")
    (seed / "requirements.txt").write_text("", encoding="utf-8")
    run_git(seed, "add", ".")
    run_git(seed, "commit", "-m", "Initial commit")

    bare = tmp_path / "origin.git"
    run_git(tmp_path, "init", "--bare", str(bare))
    run_git(bare, "symbolic-ref", "HEAD", "refs/heads/main")
    run_git(seed, "remote", "add", "origin", str(bare))
    run_git(seed, "push", "origin", "main")
    return OriginRepo(bare=bare)


class ScriptedClient(LLMClient):
    """Reasoning-service stub that replays prepared replies."""

    def __init__(self, replies: Iterable[AssistantReply | Callable[[Sequence[Turn]], AssistantReply]]) -> None:
        super().__init__("scripted")
        self._replies = list(replies)
        self.requests: List[List[Turn]] = []

    def complete(self, turns: Sequence[Turn], tools: Sequence[Mapping[str, Any]]) -> AssistantReply:
        self.requests.append(list(turns))
        if not self._replies:
            raise AssertionError("ScriptedClient ran out of replies")
        reply = self._replies.pop(0)
        if callable(reply):
            return reply(turns)
        return reply


def tool_call(name: str, call_id: str = "call_1", **arguments: Any) -> ToolCall:
    return ToolCall(call_id=call_id, name=name, arguments=arguments)


@dataclass
class FakeTracker:
    """In-memory tracker recording every interaction in order."""

    items: List[WorkItem] = field(default_factory=list)
    events: List[tuple[str, Any]] = field(default_factory=list)
    comments: List[tuple[int, str]] = field(default_factory=list)
    change_requests: List[dict[str, str]] = field(default_factory=list)
    fail_change_request: bool = False
    on_change_request: Callable[[str], None] | None = None

    def list_eligible(self, label: str) -> List[WorkItem]:
        self.events.append(("list", label))
        return list(self.items)

    def comment(self, number: int, body: str) -> None:
        self.events.append(("comment", number))
        self.comments.append((number, body))

    def open_change_request(self, head: str, base: str, title: str, body: str) -> ChangeRequest:
        from issue_agent.tracker.base import TrackerError

        self.events.append(("change_request", head))
        if self.on_change_request is not None:
            self.on_change_request(head)
        if self.fail_change_request:
            raise TrackerError("validation failed")
        self.change_requests.append({"head": head, "base": base, "title": title, "body": body})
        number = len(self.change_requests)
        return ChangeRequest(number=number, url=f"https://example.test/pull/{number}")


@pytest.fixture()
def fake_tracker() -> FakeTracker:
    return FakeTracker()
