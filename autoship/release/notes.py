"""Release note generation backed by the Anthropic Messages API."""

from __future__ import annotations

from typing import TYPE_CHECKING

import anthropic

from autoship.core.config import DEFAULT_NOTE_MODEL
from autoship.core.result import Err, Ok, Result
from autoship.release.errors import ReleaseError
from autoship.release.model import DiffContext, ReleaseType, parse_release_type
from autoship.release.timeouts import NOTE_TIMEOUT_SECONDS

if TYPE_CHECKING:
    from anthropic import Anthropic

SUMMARY_FILE_LIMIT = 20
SUGGESTION_FILE_LIMIT = 15
SUGGESTION_DIFF_CHARS = 5000

_SUMMARY_MAX_TOKENS = 1024
_SUGGESTION_MAX_TOKENS = 10


def _bullets(items: tuple[str, ...]) -> str:
    return "\n".join(f"- {item}" for item in items)


def _files_block(ctx: DiffContext, limit: int, *, with_tail: bool) -> str:
    lines = list(ctx.files_changed[:limit])
    extra = len(ctx.files_changed) - limit
    if with_tail and extra > 0:
        lines.append(f"... and {extra} more files")
    header = (
        f"Files changed ({len(ctx.files_changed)} files, +{ctx.insertions}/-{ctx.deletions}):"
    )
    return "\n".join([header, *lines])


def summary_prompt(packages: tuple[str, ...], release_type: ReleaseType, ctx: DiffContext) -> str:
    return f"""You are writing a changeset description for a package release.

Package: {", ".join(packages)}
Release type: {release_type}
Previous version: {ctx.previous_version}

Commits since last release:
{_bullets(ctx.commits)}

{_files_block(ctx, SUMMARY_FILE_LIMIT, with_tail=True)}

Code diff:
```
{ctx.diff}
```

Write a concise, clear changeset description (1-3 sentences) that describes what changed in this release.
Focus on user-facing changes and benefits. Be specific about what was added, fixed, or changed.
Do not include markdown formatting, bullet points, or headers. Just write the plain text description."""


def suggestion_prompt(ctx: DiffContext) -> str:
    return f"""Analyze these changes and determine the appropriate semantic version bump.

Commits since {ctx.previous_version}:
{_bullets(ctx.commits)}

{_files_block(ctx, SUGGESTION_FILE_LIMIT, with_tail=False)}

Code diff:
```
{ctx.diff[:SUGGESTION_DIFF_CHARS]}
```

Rules:
- "patch" for bug fixes, small changes, documentation, dependency updates
- "minor" for new features that are backwards compatible
- "major" for breaking changes (API changes, removed features, major refactors)

Respond with ONLY one word: patch, minor, or major"""


def _first_text(response: object) -> str | None:
    for block in getattr(response, "content", ()):
        if getattr(block, "type", None) == "text":
            text = getattr(block, "text", None)
            if isinstance(text, str):
                return text
    return None


class AnthropicNoteGenerator:
    """Note generator using Claude through the ``anthropic`` SDK.

    The client is created on first use, so constructing the generator never
    requires credentials. Pass ``client`` to inject a fake in tests.
    """

    def __init__(self, *, model: str = DEFAULT_NOTE_MODEL, client: Anthropic | None = None) -> None:
        self.model = model
        self._client = client

    def _get_client(self) -> Anthropic:
        if self._client is None:
            self._client = anthropic.Anthropic(timeout=NOTE_TIMEOUT_SECONDS)
        return self._client

    def _complete(self, prompt: str, *, max_tokens: int) -> str | None:
        response = self._get_client().messages.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        return _first_text(response)

    def suggest_release_type(self, ctx: DiffContext) -> ReleaseType:
        if not ctx.commits:
            return ReleaseType.PATCH

        try:
            text = self._complete(suggestion_prompt(ctx), max_tokens=_SUGGESTION_MAX_TOKENS)
        except anthropic.AnthropicError:
            return ReleaseType.PATCH
        return parse_release_type(text) or ReleaseType.PATCH

    def generate_summary(
        self, packages: tuple[str, ...], release_type: ReleaseType, ctx: DiffContext
    ) -> Result[str, ReleaseError]:
        try:
            text = self._complete(
                summary_prompt(packages, release_type, ctx), max_tokens=_SUMMARY_MAX_TOKENS
            )
        except anthropic.AnthropicError as e:
            return Err(
                ReleaseError(
                    kind="note_failed",
                    message=f"release note generation failed: {e}",
                    hint="Set ANTHROPIC_API_KEY or pass --message",
                )
            )

        summary = (text or "").strip()
        if not summary:
            return Err(
                ReleaseError(
                    kind="note_failed",
                    message="release note generation returned no text",
                    hint="Pass --message",
                )
            )
        return Ok(summary)
