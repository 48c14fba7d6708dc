"""Shell command execution behind a deny-list of dangerous patterns.

The deny-list is an advisory guardrail against obviously destructive model
output. It is not a security boundary: commands that pass the check run with
the full privileges of the agent process.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, Sequence

import logging
import subprocess
import tempfile

LOGGER = logging.getLogger(__name__)

DEFAULT_DENY_PATTERNS: tuple[str, ...] = (
    "rm -rf /",
    "mkfs",
    "dd if=",
    ":(){",
    "shutdown",
    "reboot",
    "chmod -R 777 /",
)
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024
BLOCKED_EXIT_CODE = 126
SPAWN_FAILURE_EXIT_CODE = 127


@dataclass(slots=True)
class CommandResult:
    """Structured outcome of a sandboxed shell command."""

    command: str
    exit_code: int
    stdout: str
    stderr: str
    truncated: bool = False
    blocked: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.blocked


class CommandSandbox:
    """Run shell commands with a deny-list check and bounded output capture."""

    def __init__(
        self,
        *,
        deny_patterns: Iterable[str] | None = None,
        extra_deny_patterns: Sequence[str] = (),
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        redact: Sequence[str] = (),
    ) -> None:
        patterns = list(DEFAULT_DENY_PATTERNS if deny_patterns is None else deny_patterns)
        patterns.extend(pattern for pattern in extra_deny_patterns if pattern)
        self._deny_patterns = tuple(patterns)
        self._max_output_bytes = max(int(max_output_bytes), 1)
        self._redact = tuple(secret for secret in redact if secret)

    @property
    def deny_patterns(self) -> tuple[str, ...]:
        return self._deny_patterns

    def blocked_pattern(self, command: str) -> str | None:
        """Return the first deny-listed pattern contained in ``command``."""
        for pattern in self._deny_patterns:
            if pattern in command:
                return pattern
        return None

    def execute(self, command: str, cwd: Path | str, *, enforce_deny_list: bool = True) -> CommandResult:
        """Run ``command`` through the shell inside ``cwd``.

        Failures are always reported through the returned result; this method
        does not raise for non-zero exits, missing directories or spawn errors.
        Internal callers issuing fixed commands (git) may skip the deny-list,
        whose patterns would otherwise match words in branch names or titles.
        """
        pattern = self.blocked_pattern(command) if enforce_deny_list else None
        if pattern is not None:
            LOGGER.warning("Blocked command matching %r: %s", pattern, self.redact(command))
            return CommandResult(
                command=command,
                exit_code=BLOCKED_EXIT_CODE,
                stdout="",
                stderr=f"Forbidden command pattern: {command}",
                blocked=True,
            )

        workdir = Path(cwd)
        if not workdir.is_dir():
            return CommandResult(
                command=command,
                exit_code=SPAWN_FAILURE_EXIT_CODE,
                stdout="",
                stderr=f"Working directory does not exist: {workdir}",
            )

        LOGGER.debug("Running command in %s: %s", workdir, self.redact(command))
        with tempfile.TemporaryFile() as stdout_handle, tempfile.TemporaryFile() as stderr_handle:
            try:
                process = subprocess.run(  # noqa: S602 - shell execution is the sandbox contract
                    command,
                    shell=True,
                    cwd=workdir,
                    stdin=subprocess.DEVNULL,
                    stdout=stdout_handle,
                    stderr=stderr_handle,
                    check=False,
                )
            except (OSError, ValueError) as error:
                return CommandResult(
                    command=command,
                    exit_code=SPAWN_FAILURE_EXIT_CODE,
                    stdout="",
                    stderr=f"Failed to start command: {error}",
                )
            stdout, stdout_truncated = self._read_capped(stdout_handle)
            stderr, stderr_truncated = self._read_capped(stderr_handle)

        # Shells report signal termination as a negative return code.
        exit_code = process.returncode if process.returncode >= 0 else 128 - process.returncode
        return CommandResult(
            command=command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            truncated=stdout_truncated or stderr_truncated,
        )

    def redact(self, text: str) -> str:
        """Mask configured secrets in ``text`` before it is logged."""
        for secret in self._redact:
            text = text.replace(secret, "***")
        return text

    def _read_capped(self, handle: IO[bytes]) -> tuple[str, bool]:
        handle.seek(0)
        raw = handle.read(self._max_output_bytes + 1)
        truncated = len(raw) > self._max_output_bytes
        if truncated:
            raw = raw[: self._max_output_bytes]
        return raw.decode("utf-8", errors="replace"), truncated


__all__ = [
    "BLOCKED_EXIT_CODE",
    "CommandResult",
    "CommandSandbox",
    "DEFAULT_DENY_PATTERNS",
    "DEFAULT_MAX_OUTPUT_BYTES",
]
