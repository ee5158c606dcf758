"""Typed configuration loading and access.

The user config lives in ``~/.autoship/config.json``:

    {
      "repos": {
        "widgets": {"owner": "acme", "repo": "widgets", "base_branch": "main"}
      },
      "release": {"checks_timeout_seconds": 2700}
    }

Every key under ``release`` is optional; missing values fall back to the
defaults below. A key that is present must have the right type, and numbers
must be positive. ``baseBranch`` and ``cloneUrl`` are read as aliases of
``base_branch`` and ``clone_url``.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

from autoship.platform.files import atomic_write_text

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_int, get_number, get_str, get_str_list, get_table

__all__ = [
    "Config",
    "ConfigError",
    "MergeMethod",
    "ReleaseSettings",
    "RepoConfig",
    "config_path",
    "load_config",
    "save_config",
    # Defaults
    "DEFAULT_AUTOMATION_BRANCH_PREFIX",
    "DEFAULT_CHANGESET_DIR",
    "DEFAULT_NOTE_MODEL",
]

MergeMethod = Literal["merge", "squash", "rebase"]
_MERGE_METHODS: tuple[MergeMethod, ...] = ("merge", "squash", "rebase")

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------

DEFAULT_DIFF_MAX_CHARS = 10_000
DEFAULT_FALLBACK_COMMIT_COUNT = 15
DEFAULT_CHECKS_TIMEOUT_SECONDS = 30 * 60.0
DEFAULT_CHECKS_INTERVAL_SECONDS = 15.0
DEFAULT_DISCOVERY_TIMEOUT_SECONDS = 10 * 60.0
DEFAULT_DISCOVERY_INTERVAL_SECONDS = 10.0
DEFAULT_AUTOMATION_BRANCH_PREFIX = "changeset-release"
DEFAULT_CHANGESET_DIR = ".changeset"
DEFAULT_TAG_PATTERN = "v*"
DEFAULT_NOTE_MODEL = "claude-sonnet-4-20250514"

_CONFIG_ENV = "AUTOSHIP_CONFIG"
_HOME_ENV = "AUTOSHIP_HOME"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded, parsed or written."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class RepoConfig:
    """A repository that can be released."""

    owner: str
    repo: str
    base_branch: str = "main"
    clone_url: str | None = None
    # Explicit changeset package names; empty means "read package.json".
    packages: tuple[str, ...] = ()

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def resolved_clone_url(self) -> str:
        return self.clone_url or f"https://github.com/{self.owner}/{self.repo}.git"

    def to_dict(self) -> StrDict:
        out: StrDict = {
            "owner": self.owner,
            "repo": self.repo,
            "base_branch": self.base_branch,
        }
        if self.clone_url:
            out["clone_url"] = self.clone_url
        if self.packages:
            out["packages"] = list(self.packages)
        return out


@dataclass(frozen=True, slots=True)
class ReleaseSettings:
    """Tunables for the release pipeline."""

    diff_max_chars: int = DEFAULT_DIFF_MAX_CHARS
    fallback_commit_count: int = DEFAULT_FALLBACK_COMMIT_COUNT
    checks_timeout_seconds: float = DEFAULT_CHECKS_TIMEOUT_SECONDS
    checks_interval_seconds: float = DEFAULT_CHECKS_INTERVAL_SECONDS
    discovery_timeout_seconds: float = DEFAULT_DISCOVERY_TIMEOUT_SECONDS
    discovery_interval_seconds: float = DEFAULT_DISCOVERY_INTERVAL_SECONDS
    merge_method: MergeMethod = "squash"
    automation_branch_prefix: str = DEFAULT_AUTOMATION_BRANCH_PREFIX
    changeset_dir: str = DEFAULT_CHANGESET_DIR
    tag_pattern: str = DEFAULT_TAG_PATTERN
    note_model: str = DEFAULT_NOTE_MODEL

    def to_dict(self) -> StrDict:
        return {
            "diff_max_chars": self.diff_max_chars,
            "fallback_commit_count": self.fallback_commit_count,
            "checks_timeout_seconds": self.checks_timeout_seconds,
            "checks_interval_seconds": self.checks_interval_seconds,
            "discovery_timeout_seconds": self.discovery_timeout_seconds,
            "discovery_interval_seconds": self.discovery_interval_seconds,
            "merge_method": self.merge_method,
            "automation_branch_prefix": self.automation_branch_prefix,
            "changeset_dir": self.changeset_dir,
            "tag_pattern": self.tag_pattern,
            "note_model": self.note_model,
        }


def _empty_repos() -> dict[str, RepoConfig]:
    return {}


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    repos: dict[str, RepoConfig] = field(default_factory=_empty_repos)
    release: ReleaseSettings = field(default_factory=ReleaseSettings)

    def repo_names(self) -> list[str]:
        return sorted(self.repos)

    def with_repo(self, name: str, repo: RepoConfig) -> Config:
        repos = dict(self.repos)
        repos[name] = repo
        return replace(self, repos=repos)

    def to_dict(self) -> StrDict:
        return {
            "repos": {name: self.repos[name].to_dict() for name in self.repo_names()},
            "release": self.release.to_dict(),
        }


# Spellings written by earlier releases of the tool.
_REPO_KEY_ALIASES = {"base_branch": "baseBranch", "clone_url": "cloneUrl"}
_REPO_STR_KEYS = ("owner", "repo", "base_branch", "clone_url")

_SETTINGS_INT_KEYS = ("diff_max_chars", "fallback_commit_count")
_SETTINGS_SECONDS_KEYS = (
    "checks_timeout_seconds",
    "checks_interval_seconds",
    "discovery_timeout_seconds",
    "discovery_interval_seconds",
)
_SETTINGS_STR_KEYS = (
    "merge_method",
    "automation_branch_prefix",
    "changeset_dir",
    "tag_pattern",
    "note_model",
)


def _repo_key(data: Mapping[str, object], key: str) -> str:
    alias = _REPO_KEY_ALIASES.get(key)
    if key not in data and alias is not None and alias in data:
        return alias
    return key


def _repo_from_dict(name: str, data: Mapping[str, object]) -> Result[RepoConfig, str]:
    keys = {key: _repo_key(data, key) for key in _REPO_STR_KEYS}
    for key in keys.values():
        if key in data and get_str(data, key) is None:
            return Err(f"repos.{name}.{key} must be a non-empty string")

    owner = get_str(data, "owner")
    if owner is None:
        return Err(f"repos.{name}: missing 'owner'")

    packages: tuple[str, ...] = ()
    if "packages" in data:
        names = get_str_list(data, "packages")
        if names is None:
            return Err(f"repos.{name}: 'packages' must be a list of strings")
        packages = tuple(names)

    return Ok(
        RepoConfig(
            owner=owner,
            repo=get_str(data, "repo") or name,
            base_branch=get_str(data, keys["base_branch"]) or "main",
            clone_url=get_str(data, keys["clone_url"]),
            packages=packages,
        )
    )


def _check_settings(data: Mapping[str, object]) -> str | None:
    for key in _SETTINGS_INT_KEYS:
        count = get_int(data, key)
        if key in data and (count is None or count <= 0):
            return f"release.{key} must be a positive integer"
    for key in _SETTINGS_SECONDS_KEYS:
        seconds = get_number(data, key)
        if key in data and (seconds is None or seconds <= 0):
            return f"release.{key} must be a positive number"
    for key in _SETTINGS_STR_KEYS:
        if key in data and get_str(data, key) is None:
            return f"release.{key} must be a non-empty string"
    return None


def _settings_from_dict(data: Mapping[str, object]) -> Result[ReleaseSettings, str]:
    problem = _check_settings(data)
    if problem is not None:
        return Err(problem)

    d = ReleaseSettings()
    method = get_str(data, "merge_method") or d.merge_method
    if method not in _MERGE_METHODS:
        return Err(f"release.merge_method must be one of {', '.join(_MERGE_METHODS)}")

    return Ok(
        ReleaseSettings(
            diff_max_chars=get_int(data, "diff_max_chars") or d.diff_max_chars,
            fallback_commit_count=get_int(data, "fallback_commit_count")
            or d.fallback_commit_count,
            checks_timeout_seconds=get_number(data, "checks_timeout_seconds")
            or d.checks_timeout_seconds,
            checks_interval_seconds=get_number(data, "checks_interval_seconds")
            or d.checks_interval_seconds,
            discovery_timeout_seconds=get_number(data, "discovery_timeout_seconds")
            or d.discovery_timeout_seconds,
            discovery_interval_seconds=get_number(data, "discovery_interval_seconds")
            or d.discovery_interval_seconds,
            merge_method=method,
            automation_branch_prefix=get_str(data, "automation_branch_prefix")
            or d.automation_branch_prefix,
            changeset_dir=get_str(data, "changeset_dir") or d.changeset_dir,
            tag_pattern=get_str(data, "tag_pattern") or d.tag_pattern,
            note_model=get_str(data, "note_model") or d.note_model,
        )
    )


def _section(data: Mapping[str, object], key: str) -> Result[StrDict, str]:
    if key not in data:
        return Ok({})
    table = get_table(data, key)
    if table is None:
        return Err(f"'{key}' must be an object")
    return Ok(table)


def config_from_dict(data: Mapping[str, object]) -> Result[Config, str]:
    repos_tbl = _section(data, "repos")
    if isinstance(repos_tbl, Err):
        return repos_tbl
    release_tbl = _section(data, "release")
    if isinstance(release_tbl, Err):
        return release_tbl

    repos: dict[str, RepoConfig] = {}
    for name, raw in repos_tbl.value.items():
        entry = as_str_dict(raw)
        if entry is None:
            return Err(f"repos.{name} must be an object")
        parsed = _repo_from_dict(name, entry)
        if isinstance(parsed, Err):
            return parsed
        repos[name] = parsed.value

    settings = _settings_from_dict(release_tbl.value)
    if isinstance(settings, Err):
        return settings
    return Ok(Config(repos=repos, release=settings.value))


def config_path() -> Path:
    """Resolve the config file location.

    ``AUTOSHIP_CONFIG`` points at the file itself, ``AUTOSHIP_HOME`` at the
    directory holding ``config.json``.
    """
    explicit = os.environ.get(_CONFIG_ENV)
    if explicit:
        return Path(explicit).expanduser()
    home = os.environ.get(_HOME_ENV)
    base = Path(home).expanduser() if home else Path.home() / ".autoship"
    return base / "config.json"


def load_config(path: Path) -> Result[Config, ConfigError]:
    """Load configuration; a missing file yields the default config."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Ok(Config())
    except (OSError, UnicodeDecodeError) as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    try:
        obj: object = json.loads(raw)
    except json.JSONDecodeError as e:
        return Err(ConfigError(f"Invalid JSON syntax: {e}", path=path))

    data = as_str_dict(obj)
    if data is None:
        return Err(ConfigError("Config root must be a JSON object", path=path))

    parsed = config_from_dict(data)
    if isinstance(parsed, Err):
        return Err(ConfigError(f"Invalid config: {parsed.error}", path=path))
    return parsed


def save_config(path: Path, config: Config) -> Result[None, ConfigError]:
    try:
        atomic_write_text(path, json.dumps(config.to_dict(), indent=2) + "\n")
    except OSError as e:
        return Err(ConfigError(f"Error writing config: {e}", path=path))
    return Ok(None)
