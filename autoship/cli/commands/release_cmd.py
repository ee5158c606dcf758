from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer

from autoship.cli.context import build_context
from autoship.core.config import Config, RepoConfig
from autoship.core.errors import ErrorCode
from autoship.core.result import Err
from autoship.git.repository import Repository
from autoship.output.console import OutputSink, SelectOption
from autoship.release.contracts import ReleaseRequest
from autoship.release.gh import GhReviewPlatform, ensure_gh_available
from autoship.release.model import parse_release_type
from autoship.release.notes import AnthropicNoteGenerator
from autoship.release.pipeline import ReleasePipeline


def _fail(
    console: OutputSink, message: str, *, hint: str | None = None, kind: str = "invalid_input"
) -> NoReturn:
    console.error(message)
    if hint:
        console.info(hint)
    error: dict[str, object] = {"kind": kind, "message": message, "hint": hint}
    console.emit({"status": "failed", "exit_code": int(ErrorCode.FAILURE), "error": error})
    raise typer.Exit(code=int(ErrorCode.FAILURE))


def _select_repo(console: OutputSink, config: Config) -> str:
    names = config.repo_names()
    if len(names) == 1:
        return names[0]
    if not console.interactive:
        _fail(console, "REPO is required", hint=f"Available: {', '.join(names)}")

    options = [SelectOption(n, f"{n} ({config.repos[n].slug})") for n in names]
    chosen = console.select("Which repository do you want to release?", options, default=names[0])
    if chosen is None:
        console.warning("Release cancelled")
        raise typer.Exit(code=int(ErrorCode.OK))
    return chosen


def _resolve_repo(console: OutputSink, config: Config, name: str | None) -> tuple[str, RepoConfig]:
    if not config.repos:
        _fail(
            console,
            "no repositories configured",
            hint="Add one with: autoship add <name> --owner <owner>",
        )

    selected = name if name is not None else _select_repo(console, config)
    repo = config.repos.get(selected)
    if repo is None:
        _fail(
            console,
            f"unknown repository: {selected}",
            hint=f"Available: {', '.join(config.repo_names())}",
        )
    return selected, repo


def release(
    repo: str | None = typer.Argument(None, help="Configured repository name"),
    release_type: str | None = typer.Option(
        None, "--type", "-t", help="Release type: patch, minor or major"
    ),
    message: str | None = typer.Option(None, "--message", "-m", help="Release message"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip all confirmations"),
    json_output: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    checks_timeout: float | None = typer.Option(
        None, "--checks-timeout", help="Seconds to wait for CI checks"
    ),
    discovery_timeout: float | None = typer.Option(
        None, "--discovery-timeout", help="Seconds to wait for the version PR"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show diagnostic output"),
) -> None:
    """Release a configured repository through changesets."""
    ctx = build_context(json_output=json_output, verbose=verbose)
    console = ctx.console

    parsed_type = parse_release_type(release_type)
    if release_type is not None and parsed_type is None:
        _fail(console, f"invalid --type: {release_type}", hint="Use patch, minor or major")

    timeouts = (("--checks-timeout", checks_timeout), ("--discovery-timeout", discovery_timeout))
    for flag, value in timeouts:
        if value is not None and value <= 0:
            _fail(console, f"invalid {flag}: must be positive")

    name, repo_cfg = _resolve_repo(console, ctx.config, repo)

    gh = ensure_gh_available()
    if isinstance(gh, Err):
        _fail(console, gh.error.message, hint=gh.error.hint, kind=gh.error.kind)

    request = ReleaseRequest(
        repo_name=name,
        release_type=parsed_type,
        message=message,
        assume_yes=yes,
        checks_timeout=checks_timeout,
        discovery_timeout=discovery_timeout,
    )
    settings = ctx.config.release
    pipeline = ReleasePipeline(
        repo=repo_cfg,
        settings=settings,
        request=request,
        git_factory=Repository,
        review=GhReviewPlatform(
            cwd=Path.cwd(), repo_slug=repo_cfg.slug, base_branch=repo_cfg.base_branch
        ),
        notes=AnthropicNoteGenerator(model=settings.note_model),
        sink=console,
    )

    try:
        outcome = pipeline.run()
    except KeyboardInterrupt:
        console.error("Release interrupted")
        raise typer.Exit(code=int(ErrorCode.FAILURE)) from None

    raise typer.Exit(code=int(outcome.exit_code))
