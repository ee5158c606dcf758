"""Collect what changed since the previous release.

With a version tag the commit log, the numstat summary and the raw diff are
read concurrently, each relative to the tag. Without one, the latest N
commit subjects are used and no tag-relative command is run.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from autoship.core.config import (
    DEFAULT_DIFF_MAX_CHARS,
    DEFAULT_FALLBACK_COMMIT_COUNT,
    DEFAULT_TAG_PATTERN,
)
from autoship.core.result import Err, Ok, Result
from autoship.git.repository import GitError
from autoship.output.console import OutputSink
from autoship.release.contracts import SourceControl
from autoship.release.errors import ReleaseError
from autoship.release.model import UNKNOWN_VERSION, DiffContext

TRUNCATION_MARKER = "\n\n... (diff truncated)"


def truncate_diff(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def _git_failed(e: GitError) -> ReleaseError:
    return ReleaseError(
        kind="git_failed",
        message=f"git {e.command} failed",
        hint=e.message or None,
    )


def _since_tag(git: SourceControl, tag: str, max_chars: int) -> Result[DiffContext, ReleaseError]:
    with ThreadPoolExecutor(max_workers=3) as executor:
        commits_f = executor.submit(git.log, f"{tag}..HEAD")
        summary_f = executor.submit(git.diff_summary, tag)
        diff_f = executor.submit(git.diff, tag)
        commits, summary, diff = commits_f.result(), summary_f.result(), diff_f.result()

    if isinstance(commits, Err):
        return Err(_git_failed(commits.error))
    if isinstance(summary, Err):
        return Err(_git_failed(summary.error))
    if isinstance(diff, Err):
        return Err(_git_failed(diff.error))

    return Ok(
        DiffContext(
            commits=tuple(commits.value),
            diff=truncate_diff(diff.value, max_chars),
            files_changed=summary.value.files,
            insertions=summary.value.insertions,
            deletions=summary.value.deletions,
            previous_version=tag,
        )
    )


def _recent(git: SourceControl, count: int) -> Result[DiffContext, ReleaseError]:
    commits = git.recent_commits(count)
    if isinstance(commits, Err):
        return Err(_git_failed(commits.error))
    return Ok(
        DiffContext(
            commits=tuple(commits.value),
            diff="",
            files_changed=(),
            insertions=0,
            deletions=0,
            previous_version=UNKNOWN_VERSION,
        )
    )


def build_diff_context(
    git: SourceControl,
    *,
    sink: OutputSink,
    tag_pattern: str = DEFAULT_TAG_PATTERN,
    max_chars: int = DEFAULT_DIFF_MAX_CHARS,
    fallback_count: int = DEFAULT_FALLBACK_COMMIT_COUNT,
) -> Result[DiffContext, ReleaseError]:
    fetched = git.fetch_tags()
    if isinstance(fetched, Err):
        sink.warning(f"Could not fetch tags: {fetched.error.message}")

    latest = git.latest_version_tag(tag_pattern)
    if isinstance(latest, Err):
        return Err(_git_failed(latest.error))

    # History beyond the shallow clone is needed either way.
    deepened = git.unshallow()
    if isinstance(deepened, Err):
        sink.detail(f"unshallow skipped: {deepened.error.message}")

    tag = latest.value
    if tag is None:
        sink.warning("No version tag found; using recent commits instead")
        return _recent(git, fallback_count)

    sink.detail(f"Latest version: {tag}")
    return _since_tag(git, tag, max_chars)
