"""Minimal git helpers.

The helpers below provide just enough structure to clone a working copy,
branch it, detect pending changes and publish a commit. Every command is
executed through the :class:`CommandSandbox` so git output and exit codes are
the only contract relied upon.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import shlex

from .sandbox import CommandResult, CommandSandbox


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""

    def __init__(self, message: str, result: CommandResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str, sandbox: CommandSandbox) -> None:
        self.root = Path(root).resolve()
        self._sandbox = sandbox
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def clone(cls, url: str, destination: Path | str, sandbox: CommandSandbox) -> "GitRepository":
        """Clone ``url`` into ``destination`` and return the new repository."""

        target = Path(destination).resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        command = shlex.join(["git", "clone", url, str(target)])
        result = sandbox.execute(command, target.parent, enforce_deny_list=False)
        if not result.ok:
            message = sandbox.redact(result.stderr.strip() or result.stdout.strip() or "unknown git error")
            raise GitError(f"git clone failed: {message}", result)
        return cls(target, sandbox)

    # ------------------------------------------------------------------ git IO
    def _run_git(self, args: Sequence[str], *, check: bool = True) -> CommandResult:
        command = shlex.join(["git", *args])
        result = self._sandbox.execute(command, self.root, enforce_deny_list=False)
        if check and not result.ok:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            rendered = self._sandbox.redact(" ".join(args))
            raise GitError(f"git {rendered} failed: {self._sandbox.redact(message)}", result)
        return result

    def ensure_identity(self, name: str, email: str) -> None:
        """Configure the commit author when the clone has none."""

        for key, value in (("user.name", name), ("user.email", email)):
            probe = self._run_git(["config", "--get", key], check=False)
            if not probe.ok or not probe.stdout.strip():
                self._run_git(["config", key, value])

    # -------------------------------------------------------------- branches
    def checkout(self, branch: str, *, check: bool = True) -> CommandResult:
        """Check out an existing ``branch``."""

        return self._run_git(["checkout", branch], check=check)

    def create_branch(self, branch: str) -> None:
        """Create ``branch`` from the current ``HEAD`` and switch to it."""

        self._run_git(["checkout", "-b", branch])

    # ------------------------------------------------------------- repo status
    def status_porcelain(self) -> str:
        """Return raw ``git status --porcelain`` output."""

        return self._run_git(["status", "--porcelain"]).stdout

    def has_changes(self) -> bool:
        """Return ``True`` when there are working tree changes."""

        return bool(self.status_porcelain().strip())

    # -------------------------------------------------------------- commits
    def commit_all(self, message: str) -> str | None:
        """Add all changes to the index and create a commit.

        Returns the new commit SHA, or ``None`` when there was nothing to commit.
        """

        self._run_git(["add", "-A"])

        commit = self._run_git(["commit", "-m", message], check=False)
        if not commit.ok:
            output = commit.stderr.strip() or commit.stdout.strip() or ""
            if "nothing to commit" in output.lower():
                return None
            raise GitError(f"git commit failed: {output}", commit)

        rev = self._run_git(["rev-parse", "HEAD"])
        return rev.stdout.strip()

    # -------------------------------------------------------------- remotes
    def push(self, remote: str, branch: str, *, set_upstream: bool = False) -> None:
        """Push ``branch`` to ``remote``."""

        args: List[str] = ["push"]
        if set_upstream:
            args.append("-u")
        args.extend([remote, branch])
        self._run_git(args)


__all__ = ["GitError", "GitRepository"]
