"""Clone-and-branch lifecycle for the disposable per-issue workspace."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from .errors import WorkspaceError
from .tools.sandbox import CommandSandbox
from .tools.vcs import GitError, GitRepository
from .tracker.base import WorkItem
from .utils.slug import DEFAULT_SLUG_LENGTH, branch_name

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Workspace:
    """A freshly cloned working copy owned by one pipeline run."""

    root: Path
    branch: str
    base_branch: str


class WorkspaceProvisioner:
    """Create a clean clone on a new branch for each work item."""

    def __init__(
        self,
        *,
        workdir: Path | str,
        repo_name: str,
        clone_url: str,
        sandbox: CommandSandbox,
        base_branch: str = "main",
        branch_prefix: str = "agent/issue-",
        slug_max_length: int = DEFAULT_SLUG_LENGTH,
        user_name: str = "issue-agent",
        user_email: str = "issue-agent@users.noreply.github.com",
    ) -> None:
        self.workdir = Path(workdir)
        self.repo_name = repo_name
        self._clone_url = clone_url
        self._sandbox = sandbox
        self.base_branch = base_branch
        self._branch_prefix = branch_prefix
        self._slug_max_length = slug_max_length
        self._user_name = user_name
        self._user_email = user_email

    def path_for(self, item: WorkItem) -> Path:
        return self.workdir / f"{self.repo_name}-{item.number}"

    def branch_for(self, item: WorkItem) -> str:
        return branch_name(self._branch_prefix, item.number, item.title, max_length=self._slug_max_length)

    def provision(self, item: WorkItem) -> tuple[Workspace, GitRepository]:
        """Remove any stale directory, clone fresh and check out the work branch.

        Raises :class:`WorkspaceError` when the clone or branch creation fails.
        """
        root = self.path_for(item)
        self.workdir.mkdir(parents=True, exist_ok=True)
        if root.exists():
            LOGGER.info("Removing stale workspace %s", root)
            shutil.rmtree(root, ignore_errors=True)
            if root.exists():
                raise WorkspaceError(f"Unable to remove stale workspace {root}")

        try:
            repo = GitRepository.clone(self._clone_url, root, self._sandbox)
        except GitError as error:
            raise WorkspaceError(str(error)) from error

        branch = self.branch_for(item)
        try:
            repo.ensure_identity(self._user_name, self._user_email)
            # The clone usually starts on the default branch already.
            checkout = repo.checkout(self.base_branch, check=False)
            if not checkout.ok:
                LOGGER.warning(
                    "Could not check out base branch %s: %s",
                    self.base_branch,
                    checkout.stderr.strip() or checkout.stdout.strip(),
                )
            repo.create_branch(branch)
        except GitError as error:
            raise WorkspaceError(str(error)) from error

        LOGGER.info("Provisioned workspace %s on branch %s", repo.root, branch)
        return Workspace(root=repo.root, branch=branch, base_branch=self.base_branch), repo


__all__ = ["Workspace", "WorkspaceProvisioner"]
