from __future__ import annotations

import json
from pathlib import Path

import pytest

from autoship.core.config import ReleaseSettings, RepoConfig
from autoship.core.result import Err, Ok, Result
from autoship.git.repository import DiffSummary, GitError
from autoship.output.console import Decision, MockConsole
from autoship.release.contracts import ReleaseRequest
from autoship.release.errors import ReleaseError
from autoship.release.model import (
    CheckRun,
    DiffContext,
    PullRequest,
    ReleaseDecision,
    ReleaseType,
)
from autoship.release.pipeline import (
    ReleasePipeline,
    commit_message,
    pull_request_body,
    pull_request_title,
    release_branch_name,
)

NOW = 1_700_000_000.0


class FakeGit:
    """In-memory checkout; clone writes a package.json into the work area."""

    def __init__(self, path: Path, *, clone_fails: bool = False, tag: str | None = None) -> None:
        self.path = path
        self.clone_fails = clone_fails
        self.tag = tag
        self.calls: list[tuple[str, ...]] = []
        self.staged_files: dict[str, str] = {}
        self.pending: dict[str, str] = {}

    def clone_shallow(self, url: str, *, branch: str) -> Result[None, GitError]:
        self.calls.append(("clone", url, branch))
        if self.clone_fails:
            return Err(GitError(command="clone", message="repository not found", returncode=128))
        self.path.mkdir(parents=True)
        manifest = {"name": "@acme/widgets", "version": "1.2.0"}
        (self.path / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
        for name, text in self.pending.items():
            target = self.path / ".changeset" / name
            target.parent.mkdir(exist_ok=True)
            target.write_text(text, encoding="utf-8")
        return Ok(None)

    def create_branch(self, name: str) -> Result[None, GitError]:
        self.calls.append(("create_branch", name))
        return Ok(None)

    def stage(self, pathspec: str) -> Result[None, GitError]:
        self.calls.append(("stage", pathspec))
        for f in sorted((self.path / ".changeset").glob("*.md")):
            self.staged_files[f.name] = f.read_text(encoding="utf-8")
        return Ok(None)

    def commit(self, message: str) -> Result[None, GitError]:
        self.calls.append(("commit", message))
        return Ok(None)

    def push(self, remote: str, branch: str) -> Result[None, GitError]:
        self.calls.append(("push", remote, branch))
        return Ok(None)

    def head_sha(self) -> Result[str, GitError]:
        return Ok("0" * 40)

    def fetch_tags(self) -> Result[None, GitError]:
        return Ok(None)

    def unshallow(self) -> Result[None, GitError]:
        return Ok(None)

    def latest_version_tag(self, pattern: str) -> Result[str | None, GitError]:
        return Ok(self.tag)

    def log(self, rev_range: str) -> Result[list[str], GitError]:
        self.calls.append(("log", rev_range))
        return Ok(["feat: add oauth"])

    def recent_commits(self, count: int) -> Result[list[str], GitError]:
        self.calls.append(("recent_commits", str(count)))
        return Ok(["feat: add oauth", "chore: deps"])

    def diff(self, from_ref: str, to_ref: str = "HEAD") -> Result[str, GitError]:
        return Ok("+login()")

    def diff_summary(self, from_ref: str, to_ref: str = "HEAD") -> Result[DiffSummary, GitError]:
        return Ok(DiffSummary(files=("src/auth.ts",), insertions=10, deletions=1))


def _pr(number: int, head: str) -> PullRequest:
    return PullRequest(
        number=number,
        url=f"https://github.com/acme/widgets/pull/{number}",
        head_ref=head,
        head_sha="abc",
        state="OPEN",
    )


class FakeReview:
    def __init__(self, *, checks: tuple[CheckRun, ...] | None = None) -> None:
        self.checks = checks if checks is not None else (CheckRun("build", "completed", "success"),)
        self.created: list[dict[str, str]] = []
        self.merged: list[tuple[int, str]] = []
        self.searched: list[str] = []

    def create_pull_request(
        self, *, branch: str, title: str, body: str
    ) -> Result[PullRequest, ReleaseError]:
        self.created.append({"branch": branch, "title": title, "body": body})
        return Ok(_pr(42, branch))

    def get_pull_request(self, number: int) -> Result[PullRequest, ReleaseError]:
        return Ok(_pr(number, "x"))

    def list_check_runs(self, number: int) -> Result[tuple[CheckRun, ...], ReleaseError]:
        return Ok(self.checks)

    def merge_pull_request(self, number: int, method: str) -> Result[None, ReleaseError]:
        self.merged.append((number, method))
        return Ok(None)

    def find_open_pr_by_head(self, branch: str) -> Result[PullRequest | None, ReleaseError]:
        self.searched.append(branch)
        return Ok(_pr(43, branch))


class FakeNotes:
    def __init__(
        self,
        *,
        suggestion: ReleaseType = ReleaseType.MINOR,
        summary: Result[str, ReleaseError] | None = None,
    ) -> None:
        self.suggestion = suggestion
        self.summary: Result[str, ReleaseError] = (
            summary if summary is not None else Ok("Adds OAuth login.")
        )
        self.calls: list[str] = []

    def suggest_release_type(self, ctx: DiffContext) -> ReleaseType:
        self.calls.append("suggest")
        return self.suggestion

    def generate_summary(
        self, packages: tuple[str, ...], release_type: ReleaseType, ctx: DiffContext
    ) -> Result[str, ReleaseError]:
        self.calls.append(f"summary {','.join(packages)} {release_type}")
        return self.summary


class Harness:
    def __init__(
        self,
        tmp_path: Path,
        *,
        request: ReleaseRequest,
        console: MockConsole | None = None,
        review: FakeReview | None = None,
        notes: FakeNotes | None = None,
        clone_fails: bool = False,
        tag: str | None = None,
        pending: dict[str, str] | None = None,
        workarea_root: Path | None = None,
    ) -> None:
        self.console = console or MockConsole()
        self.review = review or FakeReview()
        self.notes = notes or FakeNotes()
        self.gits: list[FakeGit] = []
        self.now = 0.0
        self.root = workarea_root or tmp_path / "work"

        def factory(path: Path) -> FakeGit:
            git = FakeGit(path, clone_fails=clone_fails, tag=tag)
            git.pending = dict(pending or {})
            self.gits.append(git)
            return git

        self.pipeline = ReleasePipeline(
            repo=RepoConfig(owner="acme", repo="widgets"),
            settings=ReleaseSettings(),
            request=request,
            git_factory=factory,
            review=self.review,
            notes=self.notes,
            sink=self.console,
            workarea_root=self.root,
            clock=lambda: NOW,
            monotonic=lambda: self.now,
            sleep=self._sleep,
        )

    def _sleep(self, seconds: float) -> None:
        self.now += seconds

    @property
    def git(self) -> FakeGit:
        return self.gits[0]


def test_helpers() -> None:
    decision = ReleaseDecision(type=ReleaseType.MINOR, message="Add OAuth support " * 5)

    assert release_branch_name(ReleaseType.MINOR, NOW) == "release/minor-1700000000000"
    assert commit_message(ReleaseType.PATCH) == "chore: add patch changeset for release"
    title = pull_request_title(decision)
    assert title == f"chore: minor release - {decision.message[:50]}"
    body = pull_request_body(decision)
    assert body.startswith("## Release Changeset\n\n**Type:** minor\n")
    assert body.endswith("*This PR was created automatically by autoship*")


def test_full_release_with_explicit_inputs(tmp_path: Path) -> None:
    h = Harness(
        tmp_path,
        request=ReleaseRequest(
            repo_name="widgets", release_type=ReleaseType.MINOR, message="Add OAuth support"
        ),
    )

    outcome = h.pipeline.run()

    assert outcome.status == "completed"
    assert outcome.exit_code == 0
    assert len(outcome.visited) == 19
    assert h.notes.calls == []

    git = h.git
    assert git.calls[0] == ("clone", "https://github.com/acme/widgets.git", "main")
    assert ("recent_commits", "15") in git.calls
    assert ("create_branch", "release/minor-1700000000000") in git.calls
    assert ("stage", ".changeset/*") in git.calls
    assert ("commit", "chore: add minor changeset for release") in git.calls
    assert ("push", "origin", "release/minor-1700000000000") in git.calls
    (content,) = git.staged_files.values()
    assert content == '---\n"@acme/widgets": minor\n---\n\nAdd OAuth support\n'

    (created,) = h.review.created
    assert created["branch"] == "release/minor-1700000000000"
    assert created["title"] == "chore: minor release - Add OAuth support"
    assert "**Changes:**\nAdd OAuth support" in created["body"]
    assert h.review.searched == ["changeset-release/main"]
    assert h.review.merged == [(42, "squash"), (43, "squash")]

    assert not git.path.exists()
    emitted = h.console.emitted[-1]
    assert emitted["status"] == "completed"
    release = emitted["release"]
    assert isinstance(release, dict)
    pr_url = "https://github.com/acme/widgets/pull/42"
    assert release["changeset_pr"] == {"number": 42, "url": pr_url}
    assert release["version_pr"]["number"] == 43
    assert "[1/19] Cloning repository" in h.console.messages


def test_tagged_history_is_read_since_tag(tmp_path: Path) -> None:
    h = Harness(
        tmp_path,
        request=ReleaseRequest(repo_name="widgets", release_type=ReleaseType.PATCH, message="Fix"),
        tag="v1.2.0",
    )

    outcome = h.pipeline.run()

    assert outcome.status == "completed"
    assert ("log", "v1.2.0..HEAD") in h.git.calls
    assert outcome.session.context is not None
    assert outcome.session.context.previous_version == "v1.2.0"


def test_generated_type_and_message_with_yes(tmp_path: Path) -> None:
    notes = FakeNotes(suggestion=ReleaseType.MAJOR, summary=Ok("Drops Node 16 support."))
    h = Harness(
        tmp_path, request=ReleaseRequest(repo_name="widgets", assume_yes=True), notes=notes
    )

    outcome = h.pipeline.run()

    assert outcome.status == "completed"
    assert notes.calls == ["suggest", "summary @acme/widgets major"]
    assert outcome.session.release_type == ReleaseType.MAJOR
    assert outcome.session.message == "Drops Node 16 support."
    assert h.console.prompts == []


def test_interactive_type_selection(tmp_path: Path) -> None:
    console = MockConsole(selections=[ReleaseType.PATCH])
    h = Harness(
        tmp_path,
        request=ReleaseRequest(repo_name="widgets", message="Fix login"),
        console=console,
    )

    outcome = h.pipeline.run()

    assert outcome.status == "completed"
    assert outcome.session.release_type == ReleaseType.PATCH
    assert "What type of release is this?" in console.prompts


def test_declined_description_prompts_for_text(tmp_path: Path) -> None:
    console = MockConsole(decisions=[Decision.DECLINE], texts=["Hand-written notes"])
    h = Harness(
        tmp_path,
        request=ReleaseRequest(repo_name="widgets", release_type=ReleaseType.MINOR),
        console=console,
    )

    outcome = h.pipeline.run()

    assert outcome.status == "completed"
    assert outcome.session.message == "Hand-written notes"


def test_note_failure_non_interactive_is_fatal(tmp_path: Path) -> None:
    notes = FakeNotes(summary=Err(ReleaseError(kind="note_failed", message="no api key")))
    h = Harness(
        tmp_path,
        request=ReleaseRequest(repo_name="widgets", release_type=ReleaseType.MINOR),
        console=MockConsole(is_interactive=False),
        notes=notes,
    )

    outcome = h.pipeline.run()

    assert outcome.status == "failed"
    assert outcome.error is not None
    assert outcome.error.kind == "invalid_input"
    assert outcome.visited[-1] == "decide_message"
    assert not h.git.path.exists()


def test_decline_push_pauses_and_cleans_up(tmp_path: Path) -> None:
    console = MockConsole(decisions=[Decision.DECLINE])
    h = Harness(
        tmp_path,
        request=ReleaseRequest(
            repo_name="widgets", release_type=ReleaseType.MINOR, message="Add OAuth support"
        ),
        console=console,
    )

    outcome = h.pipeline.run()

    assert outcome.status == "paused"
    assert outcome.exit_code == 0
    assert outcome.visited[-1] == "confirm_push"
    assert not any(c[0] == "push" for c in h.git.calls)
    assert h.review.created == []
    assert not h.git.path.exists()
    assert console.emitted[-1]["status"] == "paused"


def test_cancel_at_merge_keeps_pr_open(tmp_path: Path) -> None:
    console = MockConsole(decisions=[Decision.CONTINUE, Decision.CONTINUE, Decision.CANCEL])
    h = Harness(
        tmp_path,
        request=ReleaseRequest(
            repo_name="widgets", release_type=ReleaseType.PATCH, message="Fix"
        ),
        console=console,
    )

    outcome = h.pipeline.run()

    assert outcome.status == "paused"
    assert outcome.reason == "Release cancelled"
    assert outcome.visited[-1] == "confirm_merge"
    assert h.review.merged == []
    assert outcome.hint is not None
    assert "https://github.com/acme/widgets/pull/42" in outcome.hint


def test_failed_checks_stop_the_release(tmp_path: Path) -> None:
    review = FakeReview(
        checks=(
            CheckRun("build", "completed", "success"),
            CheckRun("lint", "completed", "failure"),
        )
    )
    h = Harness(
        tmp_path,
        request=ReleaseRequest(
            repo_name="widgets",
            release_type=ReleaseType.MINOR,
            message="Add OAuth support",
            assume_yes=True,
        ),
        review=review,
    )

    outcome = h.pipeline.run()

    assert outcome.status == "failed"
    assert outcome.exit_code == 1
    assert outcome.error is not None
    assert outcome.error.kind == "checks_failed"
    assert outcome.error.details == ("Failed: lint",)
    assert outcome.error.hint == "Please check the PR: https://github.com/acme/widgets/pull/42"
    assert review.merged == []
    assert h.console.find("Failed: lint")
    assert not h.git.path.exists()


def test_checks_timeout(tmp_path: Path) -> None:
    review = FakeReview(checks=(CheckRun("build", "in_progress"),))
    h = Harness(
        tmp_path,
        request=ReleaseRequest(
            repo_name="widgets",
            release_type=ReleaseType.MINOR,
            message="m",
            assume_yes=True,
            checks_timeout=60,
        ),
        review=review,
    )

    outcome = h.pipeline.run()

    assert outcome.status == "failed"
    assert outcome.error is not None
    assert outcome.error.kind == "timeout"
    assert h.now == 60


def test_clone_failure(tmp_path: Path) -> None:
    h = Harness(
        tmp_path,
        request=ReleaseRequest(repo_name="widgets", release_type=ReleaseType.MINOR, message="m"),
        clone_fails=True,
    )

    outcome = h.pipeline.run()

    assert outcome.status == "failed"
    assert outcome.error is not None
    assert outcome.error.kind == "clone_failed"
    assert outcome.visited == ("acquire_workspace",)


def test_unusable_work_area_root_fails_cleanly(tmp_path: Path) -> None:
    blocker = tmp_path / "notadir"
    blocker.write_text("", encoding="utf-8")
    h = Harness(
        tmp_path,
        request=ReleaseRequest(repo_name="widgets", release_type=ReleaseType.MINOR, message="m"),
        workarea_root=blocker / "sub",
    )

    outcome = h.pipeline.run()

    assert outcome.status == "failed"
    assert outcome.error is not None
    assert outcome.error.kind == "workspace_failed"
    assert outcome.visited == ("acquire_workspace",)
    assert h.gits == []
    assert h.console.emitted[-1]["status"] == "failed"


def test_pending_changesets_are_reported(tmp_path: Path) -> None:
    h = Harness(
        tmp_path,
        request=ReleaseRequest(
            repo_name="widgets", release_type=ReleaseType.PATCH, message="Fix", assume_yes=True
        ),
        pending={"brave-cats.md": '---\n"@acme/widgets": minor\n---\n\nEarlier work\n'},
    )

    outcome = h.pipeline.run()

    assert outcome.status == "completed"
    assert h.console.find("1 changeset(s) already pending on main (highest bump: minor)")


def test_interrupt_still_cleans_up(tmp_path: Path) -> None:
    class Interrupting(FakeReview):
        def create_pull_request(
            self, *, branch: str, title: str, body: str
        ) -> Result[PullRequest, ReleaseError]:
            raise KeyboardInterrupt

    h = Harness(
        tmp_path,
        request=ReleaseRequest(
            repo_name="widgets", release_type=ReleaseType.MINOR, message="m", assume_yes=True
        ),
        review=Interrupting(),
    )

    with pytest.raises(KeyboardInterrupt):
        h.pipeline.run()

    assert not h.git.path.exists()
