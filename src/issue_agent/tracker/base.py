"""Issue-tracker records and the interface the pipeline depends on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol


class TrackerError(RuntimeError):
    """Raised when the issue tracker rejects or fails a request."""


@dataclass(slots=True, frozen=True)
class WorkItem:
    """One open issue selected for resolution."""

    number: int
    title: str
    body: str = ""


@dataclass(slots=True, frozen=True)
class ChangeRequest:
    """A pull request opened for a work item."""

    number: int
    url: str


class IssueTracker(Protocol):
    """Operations the pipeline needs from the tracker."""

    def list_eligible(self, label: str) -> List[WorkItem]:
        """Return open items carrying ``label``, oldest first, excluding pull requests."""
        ...

    def comment(self, number: int, body: str) -> None:
        ...

    def open_change_request(self, head: str, base: str, title: str, body: str) -> ChangeRequest:
        ...


__all__ = ["ChangeRequest", "IssueTracker", "TrackerError", "WorkItem"]
