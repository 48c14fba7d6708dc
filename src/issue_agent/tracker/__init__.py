"""Issue-tracker integrations."""

from .base import ChangeRequest, IssueTracker, TrackerError, WorkItem
from .github import GithubIssueTracker

__all__ = ["ChangeRequest", "GithubIssueTracker", "IssueTracker", "TrackerError", "WorkItem"]
