from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import pytest

from conftest import FakeTracker, OriginRepo, ScriptedClient, tool_call
from issue_agent.cli import build_pipeline
from issue_agent.config import load_settings
from issue_agent.conversation import AgentConversation
from issue_agent.pipeline import PipelineState, PublishDecision, TaskPipeline
from issue_agent.structured import AssistantReply, Turn
from issue_agent.tools.executor import ToolExecutor
from issue_agent.tools.sandbox import CommandSandbox
from issue_agent.tracker.base import TrackerError, WorkItem
from issue_agent.workspace import Workspace, WorkspaceProvisioner


def _make_pipeline(
    tmp_path: Path,
    clone_url: str,
    tracker: FakeTracker,
    client: ScriptedClient,
    sleeps: List[float],
    *,
    max_steps: int = 30,
) -> TaskPipeline:
    sandbox = CommandSandbox()
    provisioner = WorkspaceProvisioner(
        workdir=tmp_path / "work",
        repo_name="demo",
        clone_url=clone_url,
        sandbox=sandbox,
    )

    def agent_factory(workspace: Workspace) -> AgentConversation:
        return AgentConversation(client, ToolExecutor(workspace.root, sandbox), max_steps=max_steps)

    return TaskPipeline(
        tracker,
        provisioner,
        agent_factory,
        label="agent",
        poll_interval=60.0,
        cooldown=2.0,
        sleep=sleeps.append,
    )


def _fixing_client(summary: str = "Added fix") -> ScriptedClient:
    return ScriptedClient(
        [
            AssistantReply(tool_calls=[tool_call("write_file", file="fix.txt", content="fixed\n")]),
            AssistantReply(final_text=summary),
        ]
    )


def test_no_matching_items_idles_for_poll_interval(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    sleeps: List[float] = []
    pipeline = _make_pipeline(tmp_path, origin_repo.url, fake_tracker, ScriptedClient([]), sleeps)

    assert pipeline.step() is PipelineState.IDLE
    assert pipeline.step() is PipelineState.SELECTING
    assert sleeps == [60.0]
    assert pipeline.run_once() is None
    assert fake_tracker.events[0] == ("list", "agent")


def test_change_is_committed_pushed_then_proposed(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    pushed_before_proposal: List[bool] = []
    fake_tracker.items = [WorkItem(7, "Add fix", "Please add a fix file."), WorkItem(9, "Later", "")]
    fake_tracker.on_change_request = lambda head: pushed_before_proposal.append(head in origin_repo.branches())
    pipeline = _make_pipeline(tmp_path, origin_repo.url, fake_tracker, _fixing_client(), [])

    outcome = pipeline.run_once()

    branch = "agent/issue-7-add-fix"
    assert outcome is not None
    assert not outcome.failed
    assert outcome.item.number == 7
    assert outcome.decision is PublishDecision.PUBLISHED
    assert outcome.change_request is not None
    assert outcome.change_request.url == "https://example.test/pull/1"
    assert pushed_before_proposal == [True]
    assert origin_repo.commits_ahead(branch) == 1
    assert origin_repo.subject(branch) == "Fix: #7 Add fix"
    assert origin_repo.show(branch, "fix.txt") == "fixed\n"
    assert fake_tracker.change_requests == [
        {"head": branch, "base": "main", "title": "#7 Add fix", "body": "Added fix\n\nCloses #7"}
    ]
    assert fake_tracker.comments == [(7, "Opened PR: https://example.test/pull/1\n\nAdded fix")]
    assert [event[0] for event in fake_tracker.events] == ["list", "change_request", "comment"]


def test_no_change_comments_and_publishes_nothing(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    fake_tracker.items = [WorkItem(3, "Explain the README", "")]
    client = ScriptedClient([AssistantReply(final_text="The README is already accurate.")])
    pipeline = _make_pipeline(tmp_path, origin_repo.url, fake_tracker, client, [])

    outcome = pipeline.run_once()

    assert outcome is not None
    assert outcome.decision is PublishDecision.NO_CHANGE
    assert fake_tracker.comments == [
        (
            3,
            "I couldn't produce any changes for this issue.\n\nModel notes:\nThe README is already accurate.",
        )
    ]
    assert fake_tracker.change_requests == []
    assert origin_repo.branches() == ["main"]


def test_state_transitions_for_a_published_run(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    sleeps: List[float] = []
    fake_tracker.items = [WorkItem(5, "Add fix")]
    pipeline = _make_pipeline(tmp_path, origin_repo.url, fake_tracker, _fixing_client(), sleeps)

    visited = [pipeline.state]
    for _ in range(6):
        visited.append(pipeline.step())

    assert visited == [
        PipelineState.SELECTING,
        PipelineState.PROVISIONING,
        PipelineState.RUNNING,
        PipelineState.EVALUATING,
        PipelineState.PUBLISHING,
        PipelineState.IDLE,
        PipelineState.SELECTING,
    ]
    assert sleeps == [2.0]
    assert pipeline.current_item is None
    assert pipeline.runs == 1


def test_clone_failure_is_fatal_and_silent(tmp_path: Path, fake_tracker: FakeTracker) -> None:
    fake_tracker.items = [WorkItem(4, "Anything")]
    client = ScriptedClient([])
    pipeline = _make_pipeline(tmp_path, str(tmp_path / "missing.git"), fake_tracker, client, [])

    outcome = pipeline.run_once()

    assert outcome is not None
    assert outcome.failed
    assert outcome.error.startswith("WorkspaceError")
    assert client.requests == []
    assert fake_tracker.comments == []
    assert pipeline.state is PipelineState.IDLE


def test_budget_exhaustion_publishes_nothing(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    fake_tracker.items = [WorkItem(6, "Endless")]

    def keep_writing(turns: Sequence[Turn]) -> AssistantReply:
        return AssistantReply(tool_calls=[tool_call("write_file", call_id=f"c{len(turns)}", file="loop.txt", content="x")])

    client = ScriptedClient([keep_writing, keep_writing, keep_writing])
    pipeline = _make_pipeline(tmp_path, origin_repo.url, fake_tracker, client, [], max_steps=2)

    outcome = pipeline.run_once()

    assert outcome is not None
    assert outcome.failed
    assert "BudgetExhaustedError" in outcome.error
    assert len(client.requests) == 2
    assert origin_repo.branches() == ["main"]
    assert fake_tracker.comments == []
    assert fake_tracker.change_requests == []


def test_change_request_failure_after_push_is_fatal(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    fake_tracker.items = [WorkItem(8, "Add fix")]
    fake_tracker.fail_change_request = True
    pipeline = _make_pipeline(tmp_path, origin_repo.url, fake_tracker, _fixing_client(), [])

    outcome = pipeline.run_once()

    assert outcome is not None
    assert outcome.failed
    assert outcome.error.startswith("TrackerError")
    assert "agent/issue-8-add-fix" in origin_repo.branches()
    assert fake_tracker.comments == []


def test_listing_failure_idles_for_poll_interval(tmp_path: Path, origin_repo: OriginRepo) -> None:
    class BrokenTracker(FakeTracker):
        def list_eligible(self, label: str) -> List[WorkItem]:
            raise TrackerError("rate limited")

    sleeps: List[float] = []
    pipeline = _make_pipeline(tmp_path, origin_repo.url, BrokenTracker(), ScriptedClient([]), sleeps)

    assert pipeline.step() is PipelineState.IDLE
    pipeline.step()

    assert sleeps == [60.0]
    assert pipeline.runs == 0


def test_stale_workspace_is_replaced(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    stale = tmp_path / "work" / "demo-2"
    stale.mkdir(parents=True)
    (stale / "leftover.txt").write_text("old", encoding="utf-8")
    fake_tracker.items = [WorkItem(2, "Add fix")]
    pipeline = _make_pipeline(tmp_path, origin_repo.url, fake_tracker, _fixing_client(), [])

    pipeline.run_once()

    assert not (stale / "leftover.txt").exists()
    assert (stale / "README.md").exists()
    assert origin_repo.commits_ahead("agent/issue-2-add-fix") == 1


def test_dangerous_words_in_titles_do_not_block_git(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    fake_tracker.items = [WorkItem(11, "Handle reboot during shutdown")]
    pipeline = _make_pipeline(tmp_path, origin_repo.url, fake_tracker, _fixing_client(), [])

    outcome = pipeline.run_once()

    assert outcome is not None
    assert not outcome.failed
    assert "agent/issue-11-handle-reboot-during-shutdown" in origin_repo.branches()


def test_build_pipeline_wires_settings(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    settings = load_settings(
        environ={
            "GITHUB_OWNER": "acme",
            "GITHUB_REPO": "demo",
            "REPO_CLONE_URL": origin_repo.url,
            "WORKDIR": str(tmp_path / "work"),
        }
    )
    fake_tracker.items = [WorkItem(12, "Add fix")]

    pipeline = build_pipeline(settings, client=_fixing_client("Wired"), tracker=fake_tracker)
    outcome = pipeline.run_once()

    assert outcome is not None
    assert outcome.change_request is not None
    assert (tmp_path / "work" / "demo-12" / "fix.txt").exists()
    assert fake_tracker.change_requests[0]["body"] == "Wired\n\nCloses #12"


def test_malformed_tool_paths_do_not_abort_the_run(tmp_path: Path, origin_repo: OriginRepo, fake_tracker: FakeTracker) -> None:
    fake_tracker.items = [WorkItem(13, "Odd input")]
    client = ScriptedClient(
        [
            AssistantReply(tool_calls=[tool_call("read_file", file="bad\x00name")]),
            AssistantReply(final_text="Could not read the file."),
        ]
    )
    pipeline = _make_pipeline(tmp_path, origin_repo.url, fake_tracker, client, [])

    outcome = pipeline.run_once()

    assert outcome is not None
    assert not outcome.failed
    assert outcome.decision is PublishDecision.NO_CHANGE
    assert pipeline.state is PipelineState.IDLE
