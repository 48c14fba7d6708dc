"""Best-effort project stack detection used to suggest build and test commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class StackHints:
    """Signals detected in a workspace plus the commands they suggest."""

    is_bun: bool = False
    is_node: bool = False
    is_python: bool = False
    is_dotnet: bool = False
    commands: list[str] = field(default_factory=list)

    def flags(self) -> dict[str, bool]:
        return {
            "bun": self.is_bun,
            "node": self.is_node,
            "python": self.is_python,
            "dotnet": self.is_dotnet,
        }


def detect_stack(repo_root: Path | str) -> StackHints:
    """Inspect marker files at the top of ``repo_root``."""
    root = Path(repo_root)

    def has(name: str) -> bool:
        return (root / name).exists()

    try:
        entries = [entry.name for entry in root.iterdir()]
    except OSError:
        entries = []

    hints = StackHints(
        is_bun=has("bun.lockb"),
        is_node=has("package.json"),
        is_python=has("pyproject.toml") or has("requirements.txt"),
        is_dotnet=any(name.endswith((".sln", ".csproj")) for name in entries),
    )

    if hints.is_bun:
        hints.commands.extend(["bun install", "bun test || true", "bun run build || true"])
    elif hints.is_node:
        hints.commands.extend(["npm ci || npm install", "npm test || true", "npm run build || true"])
    if hints.is_python:
        hints.commands.extend(["python3 -m pip install -r requirements.txt || true", "pytest -q || true"])
    if hints.is_dotnet:
        hints.commands.extend(["dotnet test || true", "dotnet build || true"])
    return hints


__all__ = ["StackHints", "detect_stack"]
