from __future__ import annotations

import threading

from autoship.core.result import Err, Ok, Result
from autoship.git.repository import DiffSummary, GitError
from autoship.output.console import MockConsole
from autoship.release.diff_context import TRUNCATION_MARKER, build_diff_context, truncate_diff


class FakeGit:
    """Read-side git fake; records which commands ran."""

    def __init__(
        self,
        *,
        tag: str | None = "v1.2.0",
        commits: list[str] | None = None,
        diff: str = "diff --git a/x b/x\n+1",
        fetch_fails: bool = False,
        log_fails: bool = False,
    ) -> None:
        self.tag = tag
        self.commits = commits if commits is not None else ["feat: oauth", "fix: typo"]
        self.diff_text = diff
        self.fetch_fails = fetch_fails
        self.log_fails = log_fails
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def _record(self, name: str) -> None:
        with self._lock:
            self.calls.append(name)

    def fetch_tags(self) -> Result[None, GitError]:
        self._record("fetch_tags")
        if self.fetch_fails:
            return Err(GitError(command="fetch", message="could not resolve host"))
        return Ok(None)

    def latest_version_tag(self, pattern: str) -> Result[str | None, GitError]:
        self._record(f"latest_version_tag {pattern}")
        return Ok(self.tag)

    def unshallow(self) -> Result[None, GitError]:
        self._record("unshallow")
        return Ok(None)

    def log(self, rev_range: str) -> Result[list[str], GitError]:
        self._record(f"log {rev_range}")
        if self.log_fails:
            return Err(GitError(command="log", message="bad revision"))
        return Ok(list(self.commits))

    def diff_summary(self, from_ref: str, to_ref: str = "HEAD") -> Result[DiffSummary, GitError]:
        self._record(f"diff_summary {from_ref}")
        return Ok(DiffSummary(files=("src/auth.ts",), insertions=12, deletions=4))

    def diff(self, from_ref: str, to_ref: str = "HEAD") -> Result[str, GitError]:
        self._record(f"diff {from_ref}")
        return Ok(self.diff_text)

    def recent_commits(self, count: int) -> Result[list[str], GitError]:
        self._record(f"recent_commits {count}")
        return Ok(list(self.commits))


def test_truncate_diff() -> None:
    assert truncate_diff("abc", 3) == "abc"
    assert truncate_diff("abcdef", 3) == "abc" + TRUNCATION_MARKER
    assert TRUNCATION_MARKER == "\n\n... (diff truncated)"


def test_since_tag() -> None:
    git = FakeGit()
    console = MockConsole()

    result = build_diff_context(git, sink=console, tag_pattern="v*", max_chars=10_000)

    assert isinstance(result, Ok)
    ctx = result.value
    assert ctx.previous_version == "v1.2.0"
    assert ctx.commits == ("feat: oauth", "fix: typo")
    assert ctx.files_changed == ("src/auth.ts",)
    assert (ctx.insertions, ctx.deletions) == (12, 4)
    assert ctx.has_baseline
    assert "log v1.2.0..HEAD" in git.calls
    assert "diff_summary v1.2.0" in git.calls
    assert "diff v1.2.0" in git.calls
    assert "Latest version: v1.2.0" in console.text


def test_diff_is_truncated() -> None:
    git = FakeGit(diff="x" * 50)

    result = build_diff_context(git, sink=MockConsole(), max_chars=20)

    assert isinstance(result, Ok)
    assert result.value.diff == "x" * 20 + TRUNCATION_MARKER


def test_without_tag_uses_recent_commits_only() -> None:
    git = FakeGit(tag=None, commits=["a", "b", "c"])
    console = MockConsole()

    result = build_diff_context(git, sink=console, fallback_count=15)

    assert isinstance(result, Ok)
    ctx = result.value
    assert ctx.previous_version == "unknown"
    assert not ctx.has_baseline
    assert ctx.commits == ("a", "b", "c")
    assert ctx.diff == ""
    assert ctx.files_changed == ()
    assert "recent_commits 15" in git.calls
    assert not any(c.startswith(("log", "diff")) for c in git.calls)
    assert console.has_warning()


def test_tag_fetch_failure_is_a_warning() -> None:
    git = FakeGit(fetch_fails=True)
    console = MockConsole()

    result = build_diff_context(git, sink=console)

    assert isinstance(result, Ok)
    assert console.find("Could not fetch tags")


def test_git_read_failure() -> None:
    git = FakeGit(log_fails=True)

    result = build_diff_context(git, sink=MockConsole())

    assert isinstance(result, Err)
    assert result.error.kind == "git_failed"
    assert result.error.hint == "bad revision"
