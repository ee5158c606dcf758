"""Git repository abstraction (the source control gateway).

A :class:`Repository` wraps one working directory. The release pipeline uses
it to clone the base branch, inspect history since the latest version tag,
and commit + push the changeset record. All operations return Result types.

Usage:
    repo = Repository(work_dir)
    match repo.clone_shallow("https://github.com/acme/widgets.git", branch="main"):
        case Ok(_):
            tag = repo.latest_version_tag("v*")
        case Err(e):
            print(f"Clone failed: {e.message}")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from autoship.core.result import Err, Ok, Result
from autoship.platform.process import ProcessError
from autoship.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
_GIT_CLONE_TIMEOUT_SECONDS = 15 * 60.0
_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push"})

__all__ = [
    "DiffSummary",
    "GitError",
    "Repository",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git subcommand that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


def _empty_files() -> tuple[str, ...]:
    return ()


@dataclass(frozen=True, slots=True)
class DiffSummary:
    """Per-range change totals.

    Attributes:
        files: Changed paths, in the order git reports them
        insertions: Added lines (binary files count as 0)
        deletions: Removed lines (binary files count as 0)
    """

    files: tuple[str, ...] = field(default_factory=_empty_files)
    insertions: int = 0
    deletions: int = 0


def _git_error(command: str, e: ProcessError, fallback: str) -> GitError:
    return GitError(
        command=command,
        message=e.stderr.strip() or e.stdout.strip() or fallback,
        returncode=e.returncode,
    )


def _parse_numstat(output: str) -> DiffSummary:
    files: list[str] = []
    insertions = 0
    deletions = 0
    for line in output.splitlines():
        parts = line.split("\t", 2)
        if len(parts) != 3:
            continue
        added, removed, path = parts
        files.append(path)
        # Binary entries report "-" for both columns
        if added.isdigit():
            insertions += int(added)
        if removed.isdigit():
            deletions += int(removed)
    return DiffSummary(files=tuple(files), insertions=insertions, deletions=deletions)


def _lines(output: str) -> list[str]:
    return [ln.strip() for ln in output.splitlines() if ln.strip()]


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the working tree (it need not exist before clone)
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if this is a valid git repository."""
        return (self.path / ".git").exists()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def clone_shallow(self, url: str, *, branch: str) -> Result[None, GitError]:
        """Clone ``branch`` of ``url`` into :attr:`path` with depth 1."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(GitError(command="clone", message=f"cannot create {self.path.parent}: {e}"))
        result = run_process(
            ["git", "clone", "--depth", "1", "--branch", branch, url, str(self.path)],
            cwd=self.path.parent,
            timeout=_GIT_CLONE_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            return Err(_git_error("clone", result.error, "clone failed"))
        return Ok(None)

    def create_branch(self, name: str) -> Result[None, GitError]:
        """Create ``name`` from HEAD and check it out."""
        result = self._run(["checkout", "-b", name])
        if isinstance(result, Err):
            return Err(_git_error("checkout -b", result.error, "branch creation failed"))
        return Ok(None)

    def stage(self, pathspec: str) -> Result[None, GitError]:
        result = self._run(["add", "--", pathspec])
        if isinstance(result, Err):
            return Err(_git_error("add", result.error, "staging failed"))
        return Ok(None)

    def commit(self, message: str) -> Result[None, GitError]:
        result = self._run(["commit", "-m", message])
        if isinstance(result, Err):
            return Err(_git_error("commit", result.error, "commit failed"))
        return Ok(None)

    def push(self, remote: str, branch: str) -> Result[None, GitError]:
        result = self._run(["push", "--set-upstream", remote, branch])
        if isinstance(result, Err):
            return Err(_git_error("push", result.error, "push failed"))
        return Ok(None)

    def fetch_tags(self) -> Result[None, GitError]:
        result = self._run(["fetch", "--tags", "--force"])
        if isinstance(result, Err):
            return Err(_git_error("fetch --tags", result.error, "fetch failed"))
        return Ok(None)

    def unshallow(self) -> Result[None, GitError]:
        """Fetch the full history if the clone is shallow (no-op otherwise)."""
        probe = self._run(["rev-parse", "--is-shallow-repository"])
        if isinstance(probe, Err):
            return Err(_git_error("rev-parse", probe.error, "rev-parse failed"))
        if probe.value.strip() != "true":
            return Ok(None)

        result = self._run(["fetch", "--unshallow"])
        if isinstance(result, Err):
            return Err(_git_error("fetch --unshallow", result.error, "fetch failed"))
        return Ok(None)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def head_sha(self) -> Result[str, GitError]:
        """Id of the latest commit on the current branch."""
        result = self._run(["rev-parse", "HEAD"])
        if isinstance(result, Err):
            return Err(_git_error("rev-parse", result.error, "rev-parse failed"))
        return Ok(result.value.strip())

    def current_branch(self) -> str | None:
        """Current branch name; None if detached HEAD or error."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Ok(stdout):
                branch = stdout.strip()
                return None if branch == "HEAD" else branch
            case Err(_):
                return None

    def version_tags(self, pattern: str) -> Result[list[str], GitError]:
        """Tags matching ``pattern``, highest version first."""
        result = self._run(["tag", "--list", pattern, "--sort=-v:refname"])
        if isinstance(result, Err):
            return Err(_git_error("tag", result.error, "tag listing failed"))
        return Ok(_lines(result.value))

    def latest_version_tag(self, pattern: str) -> Result[str | None, GitError]:
        tags = self.version_tags(pattern)
        if isinstance(tags, Err):
            return tags
        return Ok(tags.value[0] if tags.value else None)

    def diff_stat(self, from_ref: str, to_ref: str = "HEAD") -> Result[str, GitError]:
        result = self._run(["diff", "--stat", from_ref, to_ref])
        if isinstance(result, Err):
            return Err(_git_error("diff --stat", result.error, "diff failed"))
        return Ok(result.value)

    def diff_summary(self, from_ref: str, to_ref: str = "HEAD") -> Result[DiffSummary, GitError]:
        result = self._run(["diff", "--numstat", from_ref, to_ref])
        if isinstance(result, Err):
            return Err(_git_error("diff --numstat", result.error, "diff failed"))
        return Ok(_parse_numstat(result.value))

    def diff(self, from_ref: str, to_ref: str = "HEAD") -> Result[str, GitError]:
        """Raw unified diff; callers apply their own length cap."""
        result = self._run(["diff", from_ref, to_ref])
        if isinstance(result, Err):
            return Err(_git_error("diff", result.error, "diff failed"))
        return Ok(result.value)

    def log(self, rev_range: str) -> Result[list[str], GitError]:
        """Commit subjects in ``rev_range`` (e.g. ``v1.2.0..HEAD``), newest first."""
        result = self._run(["log", "--format=%s", rev_range])
        if isinstance(result, Err):
            return Err(_git_error("log", result.error, "log failed"))
        return Ok(_lines(result.value))

    def recent_commits(self, count: int) -> Result[list[str], GitError]:
        """The latest ``count`` commit subjects, newest first."""
        result = self._run(["log", f"-{count}", "--format=%s"])
        if isinstance(result, Err):
            return Err(_git_error("log", result.error, "log failed"))
        return Ok(_lines(result.value))

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)
