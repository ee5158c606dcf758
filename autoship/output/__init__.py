"""Output abstraction layer."""

from .console import (
    Decision,
    JsonConsole,
    MockConsole,
    OutputSink,
    RichConsole,
    SelectOption,
    Style,
)

__all__ = [
    "Decision",
    "JsonConsole",
    "MockConsole",
    "OutputSink",
    "RichConsole",
    "SelectOption",
    "Style",
]
