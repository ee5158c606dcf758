from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from autoship.core.config import Config, config_path, load_config
from autoship.core.errors import ErrorCode
from autoship.core.result import Err
from autoship.output.console import JsonConsole, OutputSink, RichConsole


@dataclass(frozen=True, slots=True)
class CLIContext:
    config_path: Path
    config: Config
    console: OutputSink


def build_context(*, json_output: bool = False, verbose: bool = True) -> CLIContext:
    path = config_path()
    config_result = load_config(path)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message} ({path})", err=True)
        raise typer.Exit(code=int(ErrorCode.FAILURE))

    console: OutputSink = JsonConsole() if json_output else RichConsole(verbose=verbose)
    return CLIContext(config_path=path, config=config_result.value, console=console)
