"""Outer control loop that turns labelled issues into pull requests.

The pipeline is an explicit state machine. :meth:`TaskPipeline.step` runs the
handler of the current state exactly once and moves to the next state, so the
loop can be driven one state at a time (tests, ``once``) or indefinitely
(:meth:`TaskPipeline.run_forever`). Only one item is ever in flight.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, Optional

from .conversation import AgentConversation
from .errors import FatalRunError, PublishError
from .models.llm_client import LLMClientError
from .prompts import SYSTEM_PROMPT, render_task_prompt
from .tools.stack import detect_stack
from .tools.vcs import GitError, GitRepository
from .tracker.base import ChangeRequest, IssueTracker, TrackerError, WorkItem
from .tracker.github import MAX_BODY_CHARS
from .workspace import Workspace, WorkspaceProvisioner

LOGGER = logging.getLogger(__name__)

AgentFactory = Callable[[Workspace], AgentConversation]

FATAL_ERRORS = (FatalRunError, LLMClientError, TrackerError, GitError)


class PipelineState(str, Enum):
    """States of the per-run control loop."""

    SELECTING = "selecting"
    PROVISIONING = "provisioning"
    RUNNING = "running"
    EVALUATING = "evaluating"
    PUBLISHING = "publishing"
    REPORTING_NO_CHANGE = "reporting_no_change"
    IDLE = "idle"


class PublishDecision(str, Enum):
    """Whether a completed run produced changes worth publishing."""

    NO_CHANGE = "no_change"
    PUBLISHED = "published"


@dataclass(slots=True)
class RunOutcome:
    """Result of one pipeline run, successful or not."""

    item: WorkItem
    decision: Optional[PublishDecision] = None
    summary: str = ""
    change_request: Optional[ChangeRequest] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class TaskPipeline:
    """Select, provision, run, evaluate and publish one work item at a time."""

    def __init__(
        self,
        tracker: IssueTracker,
        provisioner: WorkspaceProvisioner,
        agent_factory: AgentFactory,
        *,
        label: str,
        remote: str = "origin",
        poll_interval: float = 60.0,
        cooldown: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        history: int = 50,
    ) -> None:
        self._tracker = tracker
        self._provisioner = provisioner
        self._agent_factory = agent_factory
        self._label = label
        self._remote = remote
        self._poll_interval = poll_interval
        self._cooldown = cooldown
        self._sleep = sleep

        self.state = PipelineState.SELECTING
        self.outcomes: Deque[RunOutcome] = deque(maxlen=history)
        self.runs = 0
        self._idle_delay = 0.0
        self._reset_run()

        self._handlers: Dict[PipelineState, Callable[[], PipelineState]] = {
            PipelineState.SELECTING: self._select,
            PipelineState.PROVISIONING: self._provision,
            PipelineState.RUNNING: self._run_agent,
            PipelineState.EVALUATING: self._evaluate,
            PipelineState.PUBLISHING: self._publish,
            PipelineState.REPORTING_NO_CHANGE: self._report_no_change,
            PipelineState.IDLE: self._idle,
        }

    # ------------------------------------------------------------- driving
    def step(self) -> PipelineState:
        """Execute the current state's handler once and return the new state."""
        handler = self._handlers[self.state]
        try:
            self.state = handler()
        except FATAL_ERRORS as error:
            self._fail(error)
        return self.state

    def run_once(self) -> Optional[RunOutcome]:
        """Process at most one item, stopping before the idle delay.

        Returns the run's outcome, or ``None`` when no item was eligible.
        """
        if self.state is PipelineState.IDLE:
            self.state = PipelineState.SELECTING
        recorded = self.runs
        while True:
            self.step()
            if self.state is PipelineState.IDLE:
                break
        if self.runs > recorded:
            return self.outcomes[-1]
        return None

    def run_forever(self) -> None:
        """Step through the state machine indefinitely."""
        LOGGER.info("Pipeline started; watching label %r", self._label)
        while True:
            self.step()

    @property
    def current_item(self) -> Optional[WorkItem]:
        return self._item

    # ------------------------------------------------------------- handlers
    def _select(self) -> PipelineState:
        items = self._tracker.list_eligible(self._label)
        if not items:
            LOGGER.info("No matching issues. Sleeping %.0fs...", self._poll_interval)
            self._idle_delay = self._poll_interval
            return PipelineState.IDLE
        self._item = items[0]
        LOGGER.info("Working on issue #%d: %s", self._item.number, self._item.title)
        return PipelineState.PROVISIONING

    def _provision(self) -> PipelineState:
        item = self._require_item()
        self._workspace, self._repo = self._provisioner.provision(item)
        return PipelineState.RUNNING

    def _run_agent(self) -> PipelineState:
        item = self._require_item()
        workspace = self._require_workspace()
        hints = detect_stack(workspace.root)
        prompt = render_task_prompt(item.number, item.title, item.body, hints)
        conversation = self._agent_factory(workspace)
        result = conversation.run(SYSTEM_PROMPT, prompt)
        self._summary = result.summary
        return PipelineState.EVALUATING

    def _evaluate(self) -> PipelineState:
        repo = self._require_repo()
        if repo.has_changes():
            self._decision = PublishDecision.PUBLISHED
            return PipelineState.PUBLISHING
        self._decision = PublishDecision.NO_CHANGE
        return PipelineState.REPORTING_NO_CHANGE

    def _report_no_change(self) -> PipelineState:
        item = self._require_item()
        LOGGER.info("No changes produced for issue #%d. Commenting on issue and skipping.", item.number)
        body = f"I couldn't produce any changes for this issue.\n\nModel notes:\n{self._summary}"
        self._tracker.comment(item.number, body[:MAX_BODY_CHARS])
        return self._finish()

    def _publish(self) -> PipelineState:
        item = self._require_item()
        workspace = self._require_workspace()
        repo = self._require_repo()

        try:
            repo.commit_all(f"Fix: #{item.number} {item.title}")
        except GitError as error:
            raise PublishError(str(error)) from error
        try:
            repo.push(self._remote, workspace.branch, set_upstream=True)
        except GitError as error:
            raise PublishError(f"git push failed: {error}") from error

        try:
            change_request = self._tracker.open_change_request(
                head=workspace.branch,
                base=workspace.base_branch,
                title=f"#{item.number} {item.title}",
                body=f"{self._summary}\n\nCloses #{item.number}"[:MAX_BODY_CHARS],
            )
        except TrackerError:
            LOGGER.error(
                "Branch %s was pushed but opening the pull request failed; the branch is left for manual cleanup.",
                workspace.branch,
            )
            raise
        self._change_request = change_request
        self._tracker.comment(
            item.number,
            f"Opened PR: {change_request.url}\n\n{self._summary}"[:MAX_BODY_CHARS],
        )
        LOGGER.info("PR opened: %s", change_request.url)
        return self._finish()

    def _idle(self) -> PipelineState:
        if self._idle_delay > 0:
            self._sleep(self._idle_delay)
        self._idle_delay = 0.0
        return PipelineState.SELECTING

    # ------------------------------------------------------------- helpers
    def _finish(self) -> PipelineState:
        item = self._require_item()
        self._record(
            RunOutcome(
                item=item,
                decision=self._decision,
                summary=self._summary,
                change_request=self._change_request,
            )
        )
        self._reset_run()
        self._idle_delay = self._cooldown
        return PipelineState.IDLE

    def _fail(self, error: Exception) -> None:
        failed_state = self.state
        if self._item is None:
            LOGGER.error("Pipeline %s failed: %s", failed_state.value, error)
        else:
            LOGGER.error(
                "Run for issue #%d failed while %s: %s",
                self._item.number,
                failed_state.value,
                error,
            )
            self._record(
                RunOutcome(
                    item=self._item,
                    decision=self._decision,
                    summary=self._summary,
                    change_request=self._change_request,
                    error=f"{type(error).__name__}: {error}",
                )
            )
        self._reset_run()
        self._idle_delay = self._cooldown if failed_state is not PipelineState.SELECTING else self._poll_interval
        self.state = PipelineState.IDLE

    def _record(self, outcome: RunOutcome) -> None:
        self.outcomes.append(outcome)
        self.runs += 1

    def _reset_run(self) -> None:
        self._item: Optional[WorkItem] = None
        self._workspace: Optional[Workspace] = None
        self._repo: Optional[GitRepository] = None
        self._summary = ""
        self._decision: Optional[PublishDecision] = None
        self._change_request: Optional[ChangeRequest] = None

    def _require_item(self) -> WorkItem:
        if self._item is None:
            raise RuntimeError(f"No work item selected in state {self.state.value}")
        return self._item

    def _require_workspace(self) -> Workspace:
        if self._workspace is None:
            raise RuntimeError(f"No workspace provisioned in state {self.state.value}")
        return self._workspace

    def _require_repo(self) -> GitRepository:
        if self._repo is None:
            raise RuntimeError(f"No repository available in state {self.state.value}")
        return self._repo


__all__ = ["PipelineState", "PublishDecision", "RunOutcome", "TaskPipeline"]
