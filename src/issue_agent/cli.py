"""CLI commands for running the issue-resolution agent."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import (
    DEFAULT_CONFIG_NAME,
    ConfigError,
    Settings,
    copy_config_template,
    load_settings,
    write_config,
)
from .conversation import AgentConversation
from .models import LLMClient, ResponsesClient
from .pipeline import TaskPipeline
from .tools.executor import ToolExecutor
from .tools.sandbox import CommandSandbox
from .tracker import GithubIssueTracker, IssueTracker, TrackerError
from .workspace import Workspace, WorkspaceProvisioner

APP_HELP = "Resolve labelled GitHub issues with a tool-calling LLM agent."
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

app = typer.Typer(help=APP_HELP)


def _configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.strip().upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)


def _load(config: str) -> Settings:
    """Load settings, echoing a readable message and exiting on error."""
    config_path = Path(config)
    try:
        settings = load_settings(config_path)
        settings.require_target()
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    _configure_logging(settings.logging.level)
    return settings


def _build_sandbox(settings: Settings) -> CommandSandbox:
    return CommandSandbox(
        extra_deny_patterns=settings.sandbox.extra_deny_patterns,
        max_output_bytes=settings.sandbox.max_output_bytes,
        redact=settings.secrets(),
    )


def _build_client(settings: Settings) -> LLMClient:
    """Create the Responses API client from the model settings."""
    models_cfg = settings.models
    try:
        return ResponsesClient(
            api_key=models_cfg.api_key or None,
            base_url=models_cfg.base_url,
            model=models_cfg.default,
            reasoning_effort=models_cfg.reasoning_effort,
            timeout=float(models_cfg.timeout),
        )
    except ValueError as error:
        typer.echo("No API key given. Set OPENAI_API_KEY or models.api_key in the config.")
        raise typer.Exit(code=1) from error


def _build_tracker(settings: Settings) -> GithubIssueTracker:
    return GithubIssueTracker(
        settings.github.owner,
        settings.github.repo,
        token=settings.github.token or None,
        api_url=settings.github.api_url,
    )


def build_pipeline(
    settings: Settings,
    *,
    client: LLMClient,
    tracker: IssueTracker,
    sandbox: Optional[CommandSandbox] = None,
) -> TaskPipeline:
    """Wire the pipeline, provisioner and conversation factory from ``settings``."""
    sandbox = sandbox or _build_sandbox(settings)
    provisioner = WorkspaceProvisioner(
        workdir=settings.pipeline.workdir,
        repo_name=settings.github.repo,
        clone_url=settings.github.resolved_clone_url(),
        sandbox=sandbox,
        base_branch=settings.git.base_branch,
        branch_prefix=settings.git.branch_prefix,
        slug_max_length=settings.git.slug_max_length,
        user_name=settings.git.user_name,
        user_email=settings.git.user_email,
    )

    def agent_factory(workspace: Workspace) -> AgentConversation:
        executor = ToolExecutor(
            workspace.root,
            sandbox,
            output_char_limit=settings.agent.output_char_limit,
        )
        return AgentConversation(
            client,
            executor,
            max_steps=settings.agent.max_steps,
            max_turns=settings.agent.max_turns,
        )

    return TaskPipeline(
        tracker,
        provisioner,
        agent_factory,
        label=settings.github.label,
        remote=settings.git.remote,
        poll_interval=settings.pipeline.poll_interval_seconds,
        cooldown=settings.pipeline.cooldown_seconds,
    )


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Where to write the configuration file.",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write the default configuration template."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"{config_path} already exists; pass --force to overwrite it.")
        raise typer.Exit(code=1)
    write_config(config_path, copy_config_template())
    typer.echo(f"Wrote default configuration to {config_path}.")


@app.command()
def run(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the agent configuration file.",
    ),
) -> None:
    """Watch the repository and resolve labelled issues indefinitely."""
    settings = _load(config)
    pipeline = build_pipeline(settings, client=_build_client(settings), tracker=_build_tracker(settings))
    typer.echo(
        f"Agent started. Watching {settings.github.owner}/{settings.github.repo} label={settings.github.label}"
    )
    try:
        pipeline.run_forever()
    except KeyboardInterrupt:
        typer.echo("Stopped.")


@app.command()
def once(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the agent configuration file.",
    ),
) -> None:
    """Process at most one eligible issue and exit."""
    settings = _load(config)
    pipeline = build_pipeline(settings, client=_build_client(settings), tracker=_build_tracker(settings))
    outcome = pipeline.run_once()
    if outcome is None:
        typer.echo("No matching issues.")
        return
    if outcome.failed:
        typer.echo(f"Issue #{outcome.item.number} failed: {outcome.error}")
        raise typer.Exit(code=1)
    if outcome.change_request is not None:
        typer.echo(f"Issue #{outcome.item.number}: opened {outcome.change_request.url}")
    else:
        typer.echo(f"Issue #{outcome.item.number}: no changes produced.")


@app.command()
def queue(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the agent configuration file.",
    ),
) -> None:
    """List eligible issues in the order they would be processed."""
    settings = _load(config)
    tracker = _build_tracker(settings)
    try:
        items = tracker.list_eligible(settings.github.label)
    except TrackerError as error:
        typer.echo(f"Failed to list issues: {error}")
        raise typer.Exit(code=1) from error
    if not items:
        typer.echo("No matching issues.")
        return
    for item in items:
        typer.echo(f"- #{item.number} {item.title}")


__all__ = ["app", "build_pipeline"]


if __name__ == "__main__":
    app()
