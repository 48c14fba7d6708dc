from pathlib import Path

from issue_agent.prompts import render_task_prompt
from issue_agent.tools.stack import detect_stack


def test_detects_node_and_python(tmp_path: Path) -> None:
    (tmp_path / "package.json").write_text("{}", encoding="utf-8")
    (tmp_path / "pyproject.toml").write_text("", encoding="utf-8")

    hints = detect_stack(tmp_path)

    assert hints.flags() == {"bun": False, "node": True, "python": True, "dotnet": False}
    assert hints.commands[0] == "npm ci || npm install"
    assert "pytest -q || true" in hints.commands


def test_bun_takes_precedence_over_node(tmp_path: Path) -> None:
    (tmp_path / "bun.lockb").write_bytes(b"")
    (tmp_path / "package.json").write_text("{}", encoding="utf-8")

    hints = detect_stack(tmp_path)

    assert hints.commands == ["bun install", "bun test || true", "bun run build || true"]


def test_dotnet_detected_from_solution_file(tmp_path: Path) -> None:
    (tmp_path / "App.sln").write_text("", encoding="utf-8")

    assert detect_stack(tmp_path).is_dotnet


def test_empty_repository_has_no_suggestions(tmp_path: Path) -> None:
    hints = detect_stack(tmp_path)

    assert hints.commands == []
    prompt = render_task_prompt(4, "Fix login", "", hints)
    assert prompt.startswith("Issue #4: Fix login")
    assert "- python: false" in prompt
    assert "- (none detected)" in prompt
