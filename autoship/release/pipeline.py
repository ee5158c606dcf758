"""The release pipeline: one changeset release, end to end.

Clone the base branch, work out what changed since the last version tag,
decide the bump and the release message, push a changeset on a fresh
branch, get its pull request through CI and merged, then wait for the
release automation's version PR and merge that too. The work area is
removed however the run ends.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from autoship.core.config import ReleaseSettings, RepoConfig
from autoship.core.result import Err, Ok, Result
from autoship.git.repository import GitError
from autoship.output.console import Decision, OutputSink, SelectOption, Style
from autoship.release.changeset import (
    WrittenChangeset,
    pending_changesets,
    render_changeset,
    write_changeset,
)
from autoship.release.contracts import (
    NoteGenerator,
    ReleaseRequest,
    ReviewPlatform,
    SourceControl,
    SourceControlFactory,
)
from autoship.release.diff_context import build_diff_context
from autoship.release.engine import (
    Continue,
    Fatal,
    Paused,
    RunOutcome,
    State,
    Transition,
    run_states,
)
from autoship.release.errors import ReleaseError
from autoship.release.model import (
    DiffContext,
    PackageInfo,
    PullRequest,
    ReleaseDecision,
    ReleaseType,
    combine_release_types,
)
from autoship.release.package import read_package_manifest
from autoship.release.polling import wait_for_checks, wait_for_pull_request
from autoship.release.workarea import WorkArea, default_root

REMOTE = "origin"
TITLE_MESSAGE_CHARS = 50

_LABELS: dict[str, str] = {
    "acquire_workspace": "Cloning repository",
    "identify_package": "Reading package manifest",
    "build_diff_context": "Analyzing changes since last release",
    "decide_type": "Choosing release type",
    "decide_message": "Writing release message",
    "create_branch": "Creating release branch",
    "write_changeset": "Generating changeset",
    "confirm_push": "Confirming push",
    "commit_and_push": "Committing and pushing",
    "open_pull_request": "Creating pull request",
    "confirm_wait": "Confirming CI wait",
    "wait_changeset_checks": "Waiting for CI checks",
    "confirm_merge": "Confirming changeset merge",
    "merge_changeset": "Merging changeset PR",
    "discover_version_pr": "Waiting for version PR",
    "confirm_version": "Confirming version PR",
    "wait_version_checks": "Waiting for version PR checks",
    "confirm_publish": "Confirming publish",
    "merge_version_pr": "Merging version PR",
}


@dataclass(frozen=True, slots=True)
class ReleaseSession:
    """Everything one run has learned so far; each state returns a new copy."""

    repo_name: str
    work_dir: Path | None = None
    package: PackageInfo | None = None
    packages: tuple[str, ...] = ()
    context: DiffContext | None = None
    release_type: ReleaseType | None = None
    message: str | None = None
    branch: str | None = None
    changeset: WrittenChangeset | None = None
    changeset_pr: PullRequest | None = None
    version_pr: PullRequest | None = None

    @property
    def decision(self) -> ReleaseDecision | None:
        if self.release_type is None or self.message is None:
            return None
        return ReleaseDecision(type=self.release_type, message=self.message)

    def summary(self) -> dict[str, object]:
        out: dict[str, object] = {"repo": self.repo_name}
        if self.packages:
            out["packages"] = list(self.packages)
        if self.package is not None:
            out["current_version"] = self.package.version
        if self.context is not None:
            out["previous_version"] = self.context.previous_version
        if self.release_type is not None:
            out["type"] = str(self.release_type)
        if self.message is not None:
            out["message"] = self.message
        if self.branch is not None:
            out["branch"] = self.branch
        if self.changeset is not None:
            out["changeset"] = self.changeset.rel_path
        if self.changeset_pr is not None:
            out["changeset_pr"] = {"number": self.changeset_pr.number, "url": self.changeset_pr.url}
        if self.version_pr is not None:
            out["version_pr"] = {"number": self.version_pr.number, "url": self.version_pr.url}
        return out


def release_branch_name(release_type: ReleaseType, now_seconds: float) -> str:
    return f"release/{release_type}-{int(now_seconds * 1000)}"


def commit_message(release_type: ReleaseType) -> str:
    return f"chore: add {release_type} changeset for release"


def pull_request_title(decision: ReleaseDecision) -> str:
    return f"chore: {decision.type} release - {decision.message[:TITLE_MESSAGE_CHARS]}"


def pull_request_body(decision: ReleaseDecision) -> str:
    return (
        "## Release Changeset\n"
        "\n"
        f"**Type:** {decision.type}\n"
        "\n"
        "**Changes:**\n"
        f"{decision.message}\n"
        "\n"
        "---\n"
        "*This PR was created automatically by autoship*"
    )


def _missing(what: str) -> Fatal:
    return Fatal(ReleaseError(kind="invalid_input", message=f"release state is missing {what}"))


def _git_fatal(e: GitError) -> Fatal:
    return Fatal(ReleaseError(kind="git_failed", message=f"git {e.command} failed", hint=e.message))


class ReleasePipeline:
    """Drives one release of ``repo`` through the named states.

    Gateways and clocks are injected so tests can run the whole flow
    against in-memory fakes without sleeping.
    """

    def __init__(
        self,
        *,
        repo: RepoConfig,
        settings: ReleaseSettings,
        request: ReleaseRequest,
        git_factory: SourceControlFactory,
        review: ReviewPlatform,
        notes: NoteGenerator,
        sink: OutputSink,
        workarea_root: Path | None = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.repo = repo
        self.settings = settings
        self.request = request
        self.review = review
        self.notes = notes
        self.sink = sink
        self._git_factory = git_factory
        self._workarea_root = workarea_root or default_root()
        self._clock = clock
        self._monotonic = monotonic
        self._sleep = sleep
        self._workarea: WorkArea | None = None
        self._git: SourceControl | None = None

    def states(self) -> list[State[ReleaseSession]]:
        return [
            State("acquire_workspace", self._acquire_workspace),
            State("identify_package", self._identify_package),
            State("build_diff_context", self._build_diff_context),
            State("decide_type", self._decide_type),
            State("decide_message", self._decide_message),
            State("create_branch", self._create_branch),
            State("write_changeset", self._write_changeset),
            State("confirm_push", self._confirm_push),
            State("commit_and_push", self._commit_and_push),
            State("open_pull_request", self._open_pull_request),
            State("confirm_wait", self._confirm_wait),
            State("wait_changeset_checks", self._wait_changeset_checks),
            State("confirm_merge", self._confirm_merge),
            State("merge_changeset", self._merge_changeset),
            State("discover_version_pr", self._discover_version_pr),
            State("confirm_version", self._confirm_version),
            State("wait_version_checks", self._wait_version_checks),
            State("confirm_publish", self._confirm_publish),
            State("merge_version_pr", self._merge_version_pr),
        ]

    def run(self) -> RunOutcome[ReleaseSession]:
        self.sink.header(f"Release: {self.repo.repo}")
        outcome = run_states(
            ReleaseSession(repo_name=self.request.repo_name),
            self.states(),
            finalizer=self._release_workspace,
            on_enter=lambda i, n, name: self.sink.step(i, n, _LABELS.get(name, name)),
            on_cleanup_error=lambda e: self.sink.warning(e.pretty()),
        )
        self._report(outcome)
        self.sink.emit({**outcome.to_dict(), "release": outcome.session.summary()})
        return outcome

    def _report(self, outcome: RunOutcome[ReleaseSession]) -> None:
        match outcome.status:
            case "completed":
                self.sink.header("Release Complete!")
                self.sink.success(f"The {outcome.session.release_type} release has been published.")
                self.sink.info("The release workflow will now build and publish the package")
            case "paused":
                self.sink.warning(outcome.reason or "Release stopped")
                if outcome.hint:
                    self.sink.info(outcome.hint)
            case "failed":
                error = outcome.error
                if error is None:
                    return
                self.sink.error(f"Release failed: {error.message}")
                for line in error.details:
                    self.sink.error(f"  {line}")
                if error.hint:
                    self.sink.info(error.hint)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _source(self) -> SourceControl:
        if self._git is None:
            raise RuntimeError("source control used before the work area was acquired")
        return self._git

    def _confirm(
        self, session: ReleaseSession, prompt: str, *, hint: str
    ) -> Transition[ReleaseSession]:
        if self.request.assume_yes:
            return Continue(session)
        match self.sink.confirm(prompt, default=True):
            case Decision.CONTINUE:
                return Continue(session)
            case Decision.DECLINE:
                return Paused(reason="Release stopped by operator", hint=hint)
            case Decision.CANCEL:
                return Paused(reason="Release cancelled", hint=hint)

    def _checks_timeout(self) -> float:
        return self.request.checks_timeout or self.settings.checks_timeout_seconds

    def _await_green(self, pr: PullRequest, *, label: str) -> ReleaseError | None:
        self.sink.info(f"Waiting for checks on {label} #{pr.number}; this may take several minutes")
        waited = wait_for_checks(
            self.review,
            pr.number,
            sink=self.sink,
            timeout=self._checks_timeout(),
            interval=self.settings.checks_interval_seconds,
            clock=self._monotonic,
            sleep=self._sleep,
        )
        if isinstance(waited, Err):
            return waited.error

        summary = waited.value
        if not summary.success:
            return ReleaseError(
                kind="checks_failed",
                message=f"CI checks failed on {label} #{pr.number}",
                hint=f"Please check the PR: {pr.url}",
                details=tuple(f"Failed: {name}" for name in summary.failed_names),
            )
        self.sink.success(f"All CI checks passed on {label} #{pr.number}")
        return None

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    def _acquire_workspace(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        area = WorkArea.allocate(self._workarea_root, self.repo.repo)
        prepared = area.prepare()
        if isinstance(prepared, Err):
            return Fatal(prepared.error)
        self._workarea = area
        git = self._git_factory(area.path)
        self._git = git

        self.sink.detail(f"Cloning {self.repo.resolved_clone_url} to {area.path}")
        cloned = git.clone_shallow(self.repo.resolved_clone_url, branch=self.repo.base_branch)
        if isinstance(cloned, Err):
            return Fatal(
                ReleaseError(
                    kind="clone_failed",
                    message=f"failed to clone {self.repo.slug}@{self.repo.base_branch}",
                    hint=cloned.error.message,
                )
            )
        self.sink.success("Repository cloned")
        return Continue(replace(session, work_dir=area.path))

    def _identify_package(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        if session.work_dir is None:
            return _missing("work area")

        manifest = read_package_manifest(session.work_dir)
        if isinstance(manifest, Err):
            if not self.repo.packages:
                return Fatal(manifest.error)
            self.sink.detail(f"{manifest.error.message}; using configured packages")
            package = None
        else:
            package = manifest.value
            self.sink.detail(f"Package: {package.name} @ {package.version}")

        packages = self.repo.packages or ((package.name,) if package is not None else ())

        pending = pending_changesets(session.work_dir, self.settings.changeset_dir)
        if pending:
            highest = combine_release_types([t for cs in pending for _, t in cs.bumps])
            self.sink.info(
                f"{len(pending)} changeset(s) already pending on {self.repo.base_branch} "
                f"(highest bump: {highest})"
            )

        return Continue(replace(session, package=package, packages=packages))

    def _build_diff_context(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        built = build_diff_context(
            self._source(),
            sink=self.sink,
            tag_pattern=self.settings.tag_pattern,
            max_chars=self.settings.diff_max_chars,
            fallback_count=self.settings.fallback_commit_count,
        )
        if isinstance(built, Err):
            return Fatal(built.error)

        ctx = built.value
        self.sink.success(
            f"Found {len(ctx.commits)} commits, {len(ctx.files_changed)} files changed"
        )
        self.sink.detail(f"Changes: +{ctx.insertions}/-{ctx.deletions} lines")
        return Continue(replace(session, context=ctx))

    def _decide_type(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        if self.request.release_type is not None:
            return Continue(replace(session, release_type=self.request.release_type))
        if session.context is None:
            return _missing("diff context")

        suggested = self.notes.suggest_release_type(session.context)
        self.sink.info(f"Suggested release type: {suggested}")
        if self.request.assume_yes or not self.sink.interactive:
            return Continue(replace(session, release_type=suggested))

        options = [SelectOption(t, f"{t} - {t.description}") for t in ReleaseType]
        chosen = self.sink.select("What type of release is this?", options, default=suggested)
        if chosen is None:
            return Paused(reason="Release cancelled")
        return Continue(replace(session, release_type=chosen))

    def _decide_message(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        if self.request.message is not None and self.request.message.strip():
            return Continue(replace(session, message=self.request.message.strip()))
        if session.context is None or session.release_type is None:
            return _missing("release type")

        generated = self.notes.generate_summary(
            session.packages, session.release_type, session.context
        )
        if isinstance(generated, Err):
            self.sink.warning(generated.error.message)
            if not self.sink.interactive:
                return Fatal(
                    ReleaseError(
                        kind="invalid_input",
                        message="no release message available",
                        hint="Pass --message",
                    )
                )
            typed = self.sink.prompt_text("Describe the changes for this release")
            if typed is None:
                return Paused(reason="Release cancelled")
            return Continue(replace(session, message=typed))

        text = generated.value
        self.sink.info("Generated changeset description:")
        self.sink.print(text, Style.BOLD)
        if self.request.assume_yes or not self.sink.interactive:
            return Continue(replace(session, message=text))

        match self.sink.confirm("Use this description?", default=True):
            case Decision.CONTINUE:
                return Continue(replace(session, message=text))
            case Decision.CANCEL:
                return Paused(reason="Release cancelled")
            case Decision.DECLINE:
                typed = self.sink.prompt_text("Enter your own description")
                if typed is None:
                    return Paused(reason="Release cancelled")
                return Continue(replace(session, message=typed))

    def _create_branch(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        if session.release_type is None:
            return _missing("release type")
        branch = release_branch_name(session.release_type, self._clock())
        created = self._source().create_branch(branch)
        if isinstance(created, Err):
            return _git_fatal(created.error)
        self.sink.success(f"Branch created: {branch}")
        return Continue(replace(session, branch=branch))

    def _write_changeset(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        decision = session.decision
        if session.work_dir is None or decision is None:
            return _missing("release decision")

        written = write_changeset(
            root=session.work_dir,
            changeset_dir=self.settings.changeset_dir,
            decision=decision,
            packages=session.packages,
        )
        if isinstance(written, Err):
            return Fatal(written.error)

        self.sink.success(f"Changeset created: {written.value.id}.md")
        rendered = render_changeset(session.packages, decision.type, decision.message)
        self.sink.print(rendered, Style.DIM)
        return Continue(replace(session, changeset=written.value))

    def _confirm_push(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        return self._confirm(
            session,
            "Push changes and create PR?",
            hint="Nothing was pushed; rerun the release when ready",
        )

    def _commit_and_push(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        if session.release_type is None or session.branch is None:
            return _missing("release branch")
        git = self._source()

        staged = git.stage(f"{self.settings.changeset_dir}/*")
        if isinstance(staged, Err):
            return _git_fatal(staged.error)
        committed = git.commit(commit_message(session.release_type))
        if isinstance(committed, Err):
            return _git_fatal(committed.error)
        pushed = git.push(REMOTE, session.branch)
        if isinstance(pushed, Err):
            return _git_fatal(pushed.error)

        self.sink.success(f"Branch pushed: {session.branch}")
        return Continue(session)

    def _open_pull_request(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        decision = session.decision
        if decision is None or session.branch is None:
            return _missing("release branch")

        created = self.review.create_pull_request(
            branch=session.branch,
            title=pull_request_title(decision),
            body=pull_request_body(decision),
        )
        if isinstance(created, Err):
            return Fatal(created.error)

        pr = created.value
        self.sink.success(f"PR created: #{pr.number}")
        self.sink.info(f"PR URL: {pr.url}")
        return Continue(replace(session, changeset_pr=pr))

    def _confirm_wait(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        url = session.changeset_pr.url if session.changeset_pr else ""
        return self._confirm(
            session,
            "Wait for CI checks to pass?",
            hint=f"You can manually merge the PR when ready: {url}",
        )

    def _wait_changeset_checks(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        pr = session.changeset_pr
        if pr is None:
            return _missing("changeset PR")
        failed = self._await_green(pr, label="PR")
        if failed is not None:
            return Fatal(failed)
        return Continue(session)

    def _confirm_merge(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        url = session.changeset_pr.url if session.changeset_pr else ""
        return self._confirm(
            session,
            "Merge the changeset PR?",
            hint=f"You can manually merge the PR when ready: {url}",
        )

    def _merge_changeset(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        pr = session.changeset_pr
        if pr is None:
            return _missing("changeset PR")
        merged = self.review.merge_pull_request(pr.number, self.settings.merge_method)
        if isinstance(merged, Err):
            return Fatal(merged.error)
        self.sink.success("Changeset PR merged!")
        return Continue(session)

    def _discover_version_pr(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        head = f"{self.settings.automation_branch_prefix}/{self.repo.base_branch}"
        self.sink.info("Waiting for the release automation to open the Version Packages PR")
        found = wait_for_pull_request(
            self.review,
            head,
            sink=self.sink,
            timeout=self.request.discovery_timeout or self.settings.discovery_timeout_seconds,
            interval=self.settings.discovery_interval_seconds,
            clock=self._monotonic,
            sleep=self._sleep,
        )
        if isinstance(found, Err):
            return Fatal(found.error)

        pr = found.value
        self.sink.success(f"Version Packages PR found: #{pr.number}")
        self.sink.info(f"PR URL: {pr.url}")
        return Continue(replace(session, version_pr=pr))

    def _confirm_version(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        url = session.version_pr.url if session.version_pr else ""
        return self._confirm(
            session,
            "Wait for checks and merge the Version Packages PR?",
            hint=f"You can manually merge the Version Packages PR when ready: {url}",
        )

    def _wait_version_checks(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        pr = session.version_pr
        if pr is None:
            return _missing("version PR")
        failed = self._await_green(pr, label="Version Packages PR")
        if failed is not None:
            return Fatal(failed)
        return Continue(session)

    def _confirm_publish(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        url = session.version_pr.url if session.version_pr else ""
        return self._confirm(
            session,
            "Merge the Version Packages PR to publish the release?",
            hint=f"You can manually merge the Version Packages PR when ready: {url}",
        )

    def _merge_version_pr(self, session: ReleaseSession) -> Transition[ReleaseSession]:
        pr = session.version_pr
        if pr is None:
            return _missing("version PR")
        merged = self.review.merge_pull_request(pr.number, self.settings.merge_method)
        if isinstance(merged, Err):
            return Fatal(merged.error)
        self.sink.success("Version Packages PR merged!")
        return Continue(session)

    # ------------------------------------------------------------------
    # Finalizer
    # ------------------------------------------------------------------

    def _release_workspace(self) -> Result[None, ReleaseError]:
        area = self._workarea
        if area is None:
            return Ok(None)
        self.sink.detail(f"Cleaning up {area.path}")
        return area.remove()
