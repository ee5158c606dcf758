"""Console output and operator interaction.

The release pipeline never prints or prompts directly. It receives an
:class:`OutputSink` and talks to it: status lines, confirmations, choice
prompts and the final structured result. Three implementations exist:

- :class:`RichConsole`: interactive terminal (Rich styling, typer prompts)
- :class:`JsonConsole`: quiet mode for automation, emits one JSON object
- :class:`MockConsole`: captures everything and replays scripted answers
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

import typer

__all__ = [
    "Decision",
    "JsonConsole",
    "MockConsole",
    "OutputRecord",
    "OutputSink",
    "RichConsole",
    "SelectOption",
    "Style",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()  # Green, positive message
    ERROR = auto()  # Red, error message
    WARNING = auto()  # Yellow, warning message
    INFO = auto()  # Cyan, informational
    DIM = auto()  # Dimmed/muted text
    BOLD = auto()
    HEADER = auto()  # Section header

    def __str__(self) -> str:
        return self.name.lower()


class Decision(Enum):
    """Operator answer at a confirmation point."""

    CONTINUE = auto()
    DECLINE = auto()
    CANCEL = auto()  # Ctrl-C / EOF at the prompt


@dataclass(frozen=True, slots=True)
class SelectOption[T]:
    value: T
    label: str


class OutputSink(Protocol):
    """Capability the release pipeline uses for all operator-facing I/O."""

    @property
    def interactive(self) -> bool:
        """True if prompts can reach a human."""
        ...

    def print(self, message: str, style: Style = Style.DEFAULT) -> None: ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def header(self, message: str) -> None: ...

    def detail(self, message: str) -> None:
        """Verbose-only diagnostic line."""
        ...

    def step(self, index: int, total: int, message: str) -> None: ...

    def newline(self) -> None: ...

    def confirm(self, prompt: str, *, default: bool = True) -> Decision: ...

    def select[T](
        self, prompt: str, options: Sequence[SelectOption[T]], *, default: T
    ) -> T | None:
        """Pick one option; None means the operator cancelled."""
        ...

    def prompt_text(self, prompt: str) -> str | None:
        """Ask for non-empty free text; None means cancelled or unavailable."""
        ...

    def emit(self, result: Mapping[str, object]) -> None:
        """Publish the final structured result of a command."""
        ...


class RichConsole:
    """Interactive terminal implementation backed by Rich and typer prompts."""

    def __init__(self, *, verbose: bool = True) -> None:
        # Import Rich lazily to keep `autoship --version` fast
        from rich.console import Console

        self._console = Console(highlight=False)
        self._verbose = verbose
        self._style_map = {
            Style.DEFAULT: "",
            Style.SUCCESS: "green",
            Style.ERROR: "red bold",
            Style.WARNING: "yellow",
            Style.INFO: "cyan",
            Style.DIM: "dim",
            Style.BOLD: "bold",
            Style.HEADER: "magenta bold",
        }

    @property
    def interactive(self) -> bool:
        return True

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        rich_style = self._style_map.get(style, "")
        if rich_style:
            self._console.print(message, style=rich_style, markup=False)
        else:
            self._console.print(message, markup=False)

    def success(self, message: str) -> None:
        self._console.print(f"[green]\\[ok][/green] {_escape(message)}")

    def error(self, message: str) -> None:
        self._console.print(f"[red bold]\\[error][/red bold] {_escape(message)}")

    def warning(self, message: str) -> None:
        self._console.print(f"[yellow]\\[warn][/yellow] {_escape(message)}")

    def info(self, message: str) -> None:
        self._console.print(f"[blue]\\[info][/blue] {_escape(message)}")

    def header(self, message: str) -> None:
        self._console.print()
        self._console.rule(_escape(message), style="magenta bold")
        self._console.print()

    def detail(self, message: str) -> None:
        if self._verbose:
            self._console.print(f"  > {message}", style="dim", markup=False)

    def step(self, index: int, total: int, message: str) -> None:
        self._console.print(f"[cyan]\\[{index}/{total}][/cyan] {_escape(message)}")

    def newline(self) -> None:
        self._console.print()

    def confirm(self, prompt: str, *, default: bool = True) -> Decision:
        try:
            answer = typer.confirm(prompt, default=default)
        except typer.Abort:
            return Decision.CANCEL
        return Decision.CONTINUE if answer else Decision.DECLINE

    def select[T](
        self, prompt: str, options: Sequence[SelectOption[T]], *, default: T
    ) -> T | None:
        if not options:
            return None

        default_idx = 1
        for i, opt in enumerate(options, start=1):
            if opt.value == default:
                default_idx = i
            self.print(f"{i:2}. {opt.label}", Style.DIM)

        while True:
            try:
                raw = typer.prompt(prompt, default=str(default_idx))
            except typer.Abort:
                return None
            try:
                idx = int(raw)
            except ValueError:
                self.error("invalid number")
                continue
            if idx < 1 or idx > len(options):
                self.error("out of range")
                continue
            return options[idx - 1].value

    def prompt_text(self, prompt: str) -> str | None:
        while True:
            try:
                raw = typer.prompt(prompt, default="", show_default=False)
            except typer.Abort:
                return None
            text = str(raw).strip()
            if text:
                return text
            self.error("a value is required")

    def emit(self, result: Mapping[str, object]) -> None:
        # The interactive console already narrated the run.
        del result


class JsonConsole:
    """Quiet implementation for automation.

    Status output is suppressed and confirmations always continue. Free-text
    prompts are unavailable. :meth:`emit` prints exactly one JSON document.
    """

    @property
    def interactive(self) -> bool:
        return False

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        del message, style

    def success(self, message: str) -> None:
        del message

    def error(self, message: str) -> None:
        del message

    def warning(self, message: str) -> None:
        del message

    def info(self, message: str) -> None:
        del message

    def header(self, message: str) -> None:
        del message

    def detail(self, message: str) -> None:
        del message

    def step(self, index: int, total: int, message: str) -> None:
        del index, total, message

    def newline(self) -> None:
        pass

    def confirm(self, prompt: str, *, default: bool = True) -> Decision:
        del prompt, default
        return Decision.CONTINUE

    def select[T](
        self, prompt: str, options: Sequence[SelectOption[T]], *, default: T
    ) -> T | None:
        del prompt, options
        return default

    def prompt_text(self, prompt: str) -> str | None:
        del prompt
        return None

    def emit(self, result: Mapping[str, object]) -> None:
        typer.echo(json.dumps(dict(result), sort_keys=True))


def _escape(message: str) -> str:
    from rich.markup import escape

    return escape(message)


@dataclass
class OutputRecord:
    """A single output record for MockConsole."""

    message: str
    style: Style


def _empty_outputs() -> list[OutputRecord]:
    return []


def _empty_decisions() -> list[Decision]:
    return []


def _empty_strs() -> list[str]:
    return []


def _empty_objs() -> list[object]:
    return []


def _empty_results() -> list[dict[str, object]]:
    return []


@dataclass
class MockConsole:
    """Console implementation that captures output for testing.

    Scripted answers are consumed in order: ``decisions`` for
    :meth:`confirm`, ``selections`` for :meth:`select` and ``texts`` for
    :meth:`prompt_text`. When a script runs dry, confirm continues, select
    returns the default and prompt_text returns None.
    """

    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)
    decisions: list[Decision] = field(default_factory=_empty_decisions)
    selections: list[object] = field(default_factory=_empty_objs)
    texts: list[str] = field(default_factory=_empty_strs)
    prompts: list[str] = field(default_factory=_empty_strs)
    emitted: list[dict[str, object]] = field(default_factory=_empty_results)
    is_interactive: bool = True

    @property
    def interactive(self) -> bool:
        return self.is_interactive

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self.outputs.append(OutputRecord(message, style))

    def success(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"[ok] {message}", Style.SUCCESS))

    def error(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"[error] {message}", Style.ERROR))

    def warning(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"[warn] {message}", Style.WARNING))

    def info(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"[info] {message}", Style.INFO))

    def header(self, message: str) -> None:
        self.outputs.append(OutputRecord(message, Style.HEADER))

    def detail(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"> {message}", Style.DIM))

    def step(self, index: int, total: int, message: str) -> None:
        self.outputs.append(OutputRecord(f"[{index}/{total}] {message}", Style.INFO))

    def newline(self) -> None:
        self.outputs.append(OutputRecord("", Style.DEFAULT))

    def confirm(self, prompt: str, *, default: bool = True) -> Decision:
        del default
        self.prompts.append(prompt)
        if self.decisions:
            return self.decisions.pop(0)
        return Decision.CONTINUE

    def select[T](
        self, prompt: str, options: Sequence[SelectOption[T]], *, default: T
    ) -> T | None:
        self.prompts.append(prompt)
        if not self.selections:
            return default
        choice = self.selections.pop(0)
        for opt in options:
            if opt.value == choice:
                return opt.value
        return None

    def prompt_text(self, prompt: str) -> str | None:
        self.prompts.append(prompt)
        if self.texts:
            return self.texts.pop(0)
        return None

    def emit(self, result: Mapping[str, object]) -> None:
        self.emitted.append(dict(result))

    # Test helper methods

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def has_error(self) -> bool:
        return any(o.style == Style.ERROR for o in self.outputs)

    def has_warning(self) -> bool:
        return any(o.style == Style.WARNING for o in self.outputs)

    def find(self, substring: str) -> list[OutputRecord]:
        return [o for o in self.outputs if substring in o.message]
