from __future__ import annotations

import typer

from autoship.cli.context import build_context
from autoship.core.config import RepoConfig, save_config
from autoship.core.errors import ErrorCode
from autoship.core.result import Err
from autoship.output.console import Style


def add(
    name: str = typer.Argument(..., help="Short name used with `autoship release`"),
    owner: str | None = typer.Option(None, "--owner", help="GitHub owner or organization"),
    repo: str | None = typer.Option(None, "--repo", help="GitHub repository (default: NAME)"),
    base_branch: str = typer.Option("main", "--base-branch", help="Branch releases start from"),
    package: list[str] = typer.Option(
        [], "--package", help="Changeset package name (repeatable; default: package.json name)"
    ),
) -> None:
    """Add or update a repository in the config."""
    ctx = build_context()
    console = ctx.console

    resolved_owner = (owner or "").strip() or typer.prompt("GitHub owner").strip()
    resolved_repo = (repo or "").strip() or name
    if not resolved_owner:
        console.error("owner is required")
        raise typer.Exit(code=int(ErrorCode.FAILURE))

    entry = RepoConfig(
        owner=resolved_owner,
        repo=resolved_repo,
        base_branch=base_branch.strip() or "main",
        packages=tuple(p.strip() for p in package if p.strip()),
    )
    if name in ctx.config.repos:
        console.warning(f"Replacing existing entry: {name}")

    saved = save_config(ctx.config_path, ctx.config.with_repo(name, entry))
    if isinstance(saved, Err):
        console.error(saved.error.message)
        raise typer.Exit(code=int(ErrorCode.FAILURE))

    console.success(f"Added {name} ({entry.slug}, base {entry.base_branch})")
    console.print(f"config: {ctx.config_path}", Style.DIM)


def list_repos() -> None:
    """List configured repositories."""
    ctx = build_context()
    console = ctx.console

    names = ctx.config.repo_names()
    if not names:
        console.info("No repositories configured. Add one with: autoship add <name> --owner <o>")
        return

    console.header("Repositories")
    for name in names:
        entry = ctx.config.repos[name]
        console.print(f"{name}: {entry.slug} (base {entry.base_branch})", Style.BOLD)
        if entry.packages:
            console.print(f"  packages: {', '.join(entry.packages)}", Style.DIM)
