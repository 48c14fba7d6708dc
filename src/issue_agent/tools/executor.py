"""Dispatch model tool calls against a workspace root.

Every tool call is validated against a typed argument model before it touches
the filesystem. Validation failures, missing files, paths escaping the
workspace and failing commands are all reported as unsuccessful
:class:`ToolResult` objects so the conversation can continue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..structured import ToolCall, ToolResult
from .sandbox import CommandResult, CommandSandbox

LOGGER = logging.getLogger(__name__)

DEFAULT_OUTPUT_CHAR_LIMIT = 12000


class ToolError(RuntimeError):
    """Raised inside a tool handler for failures reported back to the model."""


class ToolArguments(BaseModel):
    """Base model for tool arguments; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=False)


class ListFilesArgs(ToolArguments):
    dir: str = "."


class ReadFileArgs(ToolArguments):
    file: str


class WriteFileArgs(ToolArguments):
    file: str
    content: str


class RunArgs(ToolArguments):
    cmd: str
    cwd: Optional[str] = None


TOOL_SCHEMA: List[Dict[str, Any]] = [
    {
        "type": "function",
        "name": "list_files",
        "description": "List files and folders in a directory (non-recursive).",
        "parameters": {
            "type": "object",
            "properties": {"dir": {"type": "string"}},
            "required": ["dir"],
        },
    },
    {
        "type": "function",
        "name": "read_file",
        "description": "Read a UTF-8 text file from the repo.",
        "parameters": {
            "type": "object",
            "properties": {"file": {"type": "string"}},
            "required": ["file"],
        },
    },
    {
        "type": "function",
        "name": "write_file",
        "description": "Write a UTF-8 text file into the repo (overwrite).",
        "parameters": {
            "type": "object",
            "properties": {
                "file": {"type": "string"},
                "content": {"type": "string"},
            },
            "required": ["file", "content"],
        },
    },
    {
        "type": "function",
        "name": "run",
        "description": "Run a shell command inside the repo directory. Use for tests, formatting, building, etc.",
        "parameters": {
            "type": "object",
            "properties": {
                "cmd": {"type": "string"},
                "cwd": {"type": "string"},
            },
            "required": ["cmd"],
        },
    },
]


@dataclass(slots=True)
class _ToolSpec:
    arguments: type[ToolArguments]
    handler: Callable[["ToolExecutor", Any], tuple[bool, dict[str, Any], str | None]]


class ToolExecutor:
    """Apply tool calls to files and commands under ``root``."""

    def __init__(
        self,
        root: Path | str,
        sandbox: CommandSandbox,
        *,
        output_char_limit: int = DEFAULT_OUTPUT_CHAR_LIMIT,
    ) -> None:
        self.root = Path(root).resolve()
        self._sandbox = sandbox
        self._output_char_limit = max(int(output_char_limit), 0)

    def apply(self, call: ToolCall) -> ToolResult:
        """Execute ``call`` and return its structured result."""
        tool = _TOOLS.get(call.name)
        if tool is None:
            return self._failure(call, f"Unknown tool: {call.name}")
        if call.parse_error:
            return self._failure(call, f"Invalid arguments for {call.name}: {call.parse_error}")

        try:
            arguments = tool.arguments.model_validate(dict(call.arguments))
        except ValidationError as error:
            return self._failure(call, f"Invalid arguments for {call.name}: {_describe_validation(error)}")

        try:
            ok, payload, error_text = tool.handler(self, arguments)
        except ToolError as error:
            return self._failure(call, str(error))

        if not ok:
            LOGGER.debug("Tool %s reported failure: %s", call.name, error_text)
        return ToolResult(call_id=call.call_id, name=call.name, ok=ok, payload=payload, error=error_text)

    # ---------------------------------------------------------------- paths
    def resolve(self, relative: str) -> Path:
        """Resolve ``relative`` against the root and reject escapes."""
        if "\x00" in relative:
            raise ToolError(f"Invalid path {relative!r}: embedded null byte")
        try:
            candidate = (self.root / relative).resolve()
        except (OSError, ValueError) as error:
            raise ToolError(f"Invalid path {relative!r}: {error}") from error
        if candidate != self.root and not candidate.is_relative_to(self.root):
            raise ToolError(f"Path escapes the workspace: {relative}")
        return candidate

    # ------------------------------------------------------------- handlers
    def _list_files(self, args: ListFilesArgs) -> tuple[bool, dict[str, Any], str | None]:
        target = self.resolve(args.dir)
        if not target.exists():
            raise ToolError(f"Directory not found: {args.dir}")
        if not target.is_dir():
            raise ToolError(f"Not a directory: {args.dir}")
        try:
            entries = sorted(target.iterdir(), key=lambda item: item.name)
        except OSError as error:
            raise ToolError(f"Failed to list {args.dir}: {error}") from error
        items = [{"name": entry.name, "type": "dir" if entry.is_dir() else "file"} for entry in entries]
        return True, {"dir": args.dir, "items": items}, None

    def _read_file(self, args: ReadFileArgs) -> tuple[bool, dict[str, Any], str | None]:
        target = self.resolve(args.file)
        if not target.exists():
            raise ToolError(f"File not found: {args.file}")
        if target.is_dir():
            raise ToolError(f"Path is a directory: {args.file}")
        try:
            content = target.read_text(encoding="utf-8")
        except UnicodeDecodeError as error:
            raise ToolError(f"Failed to decode {args.file} as UTF-8: {error}") from error
        except (OSError, ValueError) as error:
            raise ToolError(f"Failed to read {args.file}: {error}") from error
        return True, {"file": args.file, "content": content}, None

    def _write_file(self, args: WriteFileArgs) -> tuple[bool, dict[str, Any], str | None]:
        target = self.resolve(args.file)
        if target == self.root or target.is_dir():
            raise ToolError(f"Path is a directory: {args.file}")
        data = args.content.encode("utf-8")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except (OSError, ValueError) as error:
            raise ToolError(f"Failed to write {args.file}: {error}") from error
        return True, {"file": args.file, "bytes": len(data)}, None

    def _run(self, args: RunArgs) -> tuple[bool, dict[str, Any], str | None]:
        cwd = self.root if not args.cwd else self.resolve(args.cwd)
        result = self._sandbox.execute(args.cmd, cwd)
        payload = self._run_payload(result)
        error_text = None if result.ok else self.redact(_describe_command_failure(result))
        return result.ok, payload, error_text

    def redact(self, text: str) -> str:
        """Mask configured secrets before text reaches logs or the model."""
        return self._sandbox.redact(text)

    def _run_payload(self, result: CommandResult) -> dict[str, Any]:
        stdout, stdout_cut = _clip(self.redact(result.stdout), self._output_char_limit)
        stderr, stderr_cut = _clip(self.redact(result.stderr), self._output_char_limit)
        return {
            "cmd": self.redact(result.command),
            "ok": result.ok,
            "code": result.exit_code,
            "stdout": stdout,
            "stderr": stderr,
            "truncated": result.truncated or stdout_cut or stderr_cut,
        }

    def _failure(self, call: ToolCall, message: str) -> ToolResult:
        LOGGER.info("Tool %s failed: %s", call.name, message)
        return ToolResult(call_id=call.call_id, name=call.name, ok=False, error=message)


_TOOLS: Dict[str, _ToolSpec] = {
    "list_files": _ToolSpec(ListFilesArgs, ToolExecutor._list_files),
    "read_file": _ToolSpec(ReadFileArgs, ToolExecutor._read_file),
    "write_file": _ToolSpec(WriteFileArgs, ToolExecutor._write_file),
    "run": _ToolSpec(RunArgs, ToolExecutor._run),
}

TOOL_NAMES = tuple(_TOOLS)


def _clip(text: str, limit: int) -> tuple[str, bool]:
    if len(text) <= limit:
        return text, False
    return text[:limit], True


def _describe_command_failure(result: CommandResult) -> str:
    if result.blocked:
        return result.stderr
    return f"Command exited with code {result.exit_code}"


def _describe_validation(error: ValidationError) -> str:
    problems: list[str] = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "; ".join(problems)


__all__ = [
    "DEFAULT_OUTPUT_CHAR_LIMIT",
    "ListFilesArgs",
    "ReadFileArgs",
    "RunArgs",
    "TOOL_NAMES",
    "TOOL_SCHEMA",
    "ToolError",
    "ToolExecutor",
    "WriteFileArgs",
]
