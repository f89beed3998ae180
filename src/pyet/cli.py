"""CLI interface for pyet.

Typer-based command-line interface with Rich output formatting.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.syntax import Syntax

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pyet import __version__
from pyet.compiler import TemplateCompiler
from pyet.exceptions import ConfigError, PyetError
from pyet.options import CompileOptions, load_options

__all__ = ["app"]

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="pyet",
    help="Embedded Python templates: render, inspect and bundle .pyet files.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    handler = RichHandler(console=err_console, show_time=verbose, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(message)s"))

    pyet_logger = logging.getLogger("pyet")
    pyet_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    pyet_logger.handlers = [handler]
    pyet_logger.propagate = False


def _load_data(path: Path | None, assignments: list[str] | None) -> dict[str, Any]:
    """Merge a JSON/TOML data file with ``key=value`` assignments."""
    data: dict[str, Any] = {}
    if path is not None:
        try:
            raw = path.read_text(encoding="utf-8")
            loaded = tomllib.loads(raw) if path.suffix == ".toml" else json.loads(raw)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Failed to load data from {path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Data file {path} must hold an object at the top level")
        data.update(loaded)

    for assignment in assignments or []:
        key, sep, value = assignment.partition("=")
        if not sep or not key:
            raise ConfigError(f"Expected key=value, got {assignment!r}")
        # Values that parse as JSON keep their type; anything else is a string.
        try:
            data[key] = json.loads(value)
        except ValueError:
            data[key] = value
    return data


def _build_options(config: Path | None, **overrides: Any) -> CompileOptions:
    options = load_options(config) if config is not None else CompileOptions()
    changes = {key: value for key, value in overrides.items() if value is not None}
    return options.evolve(**changes)


def _fail(e: PyetError | OSError) -> typer.Exit:
    console.print(f"[red]Error:[/red] {escape(str(e))}")
    return typer.Exit(code=1)


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Embedded Python templates."""
    _setup_logging(verbose)


@app.command()
def version() -> None:
    """Show pyet version."""
    console.print(f"pyet {__version__}")


@app.command()
def render(
    file: Annotated[Path, typer.Argument(help="Template file to render")],
    data_file: Annotated[
        Path | None,
        typer.Option("--data", "-d", help="JSON or TOML file with template data"),
    ] = None,
    assignments: Annotated[
        list[str] | None,
        typer.Option("--set", "-s", help="Data value as key=value (repeatable)"),
    ] = None,
    root: Annotated[
        str | None,
        typer.Option("--root", help="Base directory for absolute includes"),
    ] = None,
    delimiter: Annotated[
        str | None,
        typer.Option("--delimiter", help="Tag delimiter character (default: %)"),
    ] = None,
    strict: Annotated[
        bool | None,
        typer.Option("--strict/--no-strict", help="Only expose data through `locals`"),
    ] = None,
    rm_whitespace: Annotated[
        bool | None,
        typer.Option("--rm-whitespace/--keep-whitespace", help="Strip every line"),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="TOML file with an [options] table"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the result here instead of stdout"),
    ] = None,
) -> None:
    """Render a template file with data."""
    try:
        options = _build_options(
            config,
            filename=str(file),
            root=root,
            delimiter=delimiter,
            strict=strict,
            rm_whitespace=rm_whitespace,
        )
        data = _load_data(data_file, assignments)
        result = TemplateCompiler().render_file(file, data, options)
    except (PyetError, OSError) as e:
        raise _fail(e) from e

    if output is not None:
        output.write_text(result, encoding="utf-8")
        console.print(f"[green]Rendered[/green] {file} -> {output}")
    else:
        sys.stdout.write(result)


@app.command()
def source(
    file: Annotated[Path, typer.Argument(help="Template file to inspect")],
    client: Annotated[
        bool,
        typer.Option("--client", help="Show the standalone distribution program"),
    ] = False,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="TOML file with an [options] table"),
    ] = None,
) -> None:
    """Print the Python program generated for a template."""
    try:
        options = _build_options(config, filename=str(file), client=client or None)
        compiled = TemplateCompiler().compile(None, options)
    except (PyetError, OSError) as e:
        raise _fail(e) from e

    console.print(Syntax(compiled.source, "python", line_numbers=True))


@app.command()
def bundle(
    file: Annotated[Path, typer.Argument(help="Template file to bundle")],
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="Where to write the standalone module"),
    ],
    precompile: Annotated[
        list[str] | None,
        typer.Option("--precompile", "-p", help="Include path to embed (repeatable)"),
    ] = None,
    root: Annotated[
        str | None,
        typer.Option("--root", help="Base directory for absolute includes"),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="TOML file with an [options] table"),
    ] = None,
) -> None:
    """Write a standalone Python module that renders the template."""
    try:
        options = _build_options(
            config,
            filename=str(file),
            root=root,
            client=True,
            precompile=tuple(precompile) if precompile else None,
        )
        program = TemplateCompiler().compile(None, options)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(program.source, encoding="utf-8")
    except (PyetError, OSError) as e:
        raise _fail(e) from e

    console.print(f"[green]Bundled[/green] {file} -> {output}")
    console.print(f"\nUse it with:\n  namespace = runpy.run_path({str(output)!r})")
    console.print("  namespace['__render']({...})")
