"""Cross-layer contracts for the release pipeline.

The pipeline depends only on these Protocols; the git/gh/Anthropic
backends and the in-memory test fakes both satisfy them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from autoship.core.config import MergeMethod
from autoship.core.result import Result
from autoship.git.repository import DiffSummary, GitError
from autoship.release.errors import ReleaseError
from autoship.release.model import CheckRun, DiffContext, PullRequest, ReleaseType


class SourceControl(Protocol):
    """Operations on one local clone."""

    def clone_shallow(self, url: str, *, branch: str) -> Result[None, GitError]: ...

    def create_branch(self, name: str) -> Result[None, GitError]: ...

    def stage(self, pathspec: str) -> Result[None, GitError]: ...

    def commit(self, message: str) -> Result[None, GitError]: ...

    def push(self, remote: str, branch: str) -> Result[None, GitError]: ...

    def head_sha(self) -> Result[str, GitError]: ...

    def fetch_tags(self) -> Result[None, GitError]: ...

    def unshallow(self) -> Result[None, GitError]: ...

    def latest_version_tag(self, pattern: str) -> Result[str | None, GitError]: ...

    def log(self, rev_range: str) -> Result[list[str], GitError]: ...

    def recent_commits(self, count: int) -> Result[list[str], GitError]: ...

    def diff(self, from_ref: str, to_ref: str = "HEAD") -> Result[str, GitError]: ...

    def diff_summary(
        self, from_ref: str, to_ref: str = "HEAD"
    ) -> Result[DiffSummary, GitError]: ...


# Builds the gateway for a checkout directory (which may not exist yet).
SourceControlFactory = Callable[[Path], SourceControl]


class ReviewPlatform(Protocol):
    """Pull request operations for the repository being released."""

    def create_pull_request(
        self, *, branch: str, title: str, body: str
    ) -> Result[PullRequest, ReleaseError]: ...

    def get_pull_request(self, number: int) -> Result[PullRequest, ReleaseError]: ...

    def list_check_runs(self, number: int) -> Result[tuple[CheckRun, ...], ReleaseError]: ...

    def merge_pull_request(
        self, number: int, method: MergeMethod
    ) -> Result[None, ReleaseError]: ...

    def find_open_pr_by_head(self, branch: str) -> Result[PullRequest | None, ReleaseError]: ...


class NoteGenerator(Protocol):
    """Produces release suggestions and summaries from a diff context."""

    def suggest_release_type(self, ctx: DiffContext) -> ReleaseType:
        """Never fails; degrades to patch."""
        ...

    def generate_summary(
        self, packages: tuple[str, ...], release_type: ReleaseType, ctx: DiffContext
    ) -> Result[str, ReleaseError]: ...


@dataclass(frozen=True, slots=True)
class ReleaseRequest:
    """Normalized release request shared between the CLI and the pipeline.

    Attributes:
        repo_name: Key of the repository in the user config
        release_type: Explicit bump; None means "decide interactively"
        message: Explicit release message; None means "generate one"
        assume_yes: Skip every confirmation point
        checks_timeout: Override for the checks wait, in seconds
        discovery_timeout: Override for the version PR wait, in seconds
    """

    repo_name: str
    release_type: ReleaseType | None = None
    message: str | None = None
    assume_yes: bool = False
    checks_timeout: float | None = None
    discovery_timeout: float | None = None
