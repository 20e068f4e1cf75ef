"""Tagplate CLI

Usage:
    tagplate render page.tpl                    # Render a template file
    tagplate render index@site -c tagplate.yaml # Render through configured paths
    tagplate render '{$x}' --string -d data.yaml
    tagplate compile page.tpl                   # Print compiled code
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from tagplate.engine import Template
from tagplate.exceptions import TemplateError

console = Console(stderr=True)

app = typer.Typer(help="Compile and render tag templates.")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the tagplate CLI.

    Log levels:
    - Normal: Only warnings/errors shown
    - Verbose (-v): INFO level
    - Debug (TAGPLATE_DEBUG=1): DEBUG level - finder, cache and compile traces
    """
    if os.environ.get("TAGPLATE_DEBUG"):
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=console,
        show_time=verbose,
        show_path=bool(os.environ.get("TAGPLATE_DEBUG")),
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("tagplate")
    logger.setLevel(level)
    logger.handlers = [handler]
    logger.propagate = False


def exit_with_error(message: str, exit_code: int = 1) -> NoReturn:
    """Exit the program with an error message."""
    typer.echo(f"Error: {message}", err=True)
    sys.exit(exit_code)


def load_data(path: Optional[Path]) -> dict[str, Any]:
    """Load render variables from a YAML file."""
    if path is None:
        return {}
    if not path.exists():
        exit_with_error(f"Data file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        exit_with_error(f"Data file must contain a mapping: {path}")
    return data


def build_engine(config: Optional[Path]) -> Template:
    if config is None:
        return Template()
    return Template.from_config(config)


@app.command()
def render(
    template: str = typer.Argument(..., help="Template identifier, or source with --string."),
    data: Optional[Path] = typer.Option(None, "-d", "--data", help="YAML file with variables."),
    config: Optional[Path] = typer.Option(None, "-c", "--config", help="Path to tagplate.yaml."),
    string: bool = typer.Option(False, "-s", "--string", help="Treat TEMPLATE as source."),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging."),
) -> None:
    """Render a template to stdout."""
    setup_logging(verbose)
    engine = build_engine(config)
    variables = load_data(data)

    try:
        if string:
            output = engine.render_string(template, variables)
        else:
            output = engine.render(template, variables)
    except TemplateError as e:
        exit_with_error(str(e))

    typer.echo(output, nl=False)


@app.command()
def compile(
    template: str = typer.Argument(..., help="Template identifier, or source with --string."),
    config: Optional[Path] = typer.Option(None, "-c", "--config", help="Path to tagplate.yaml."),
    string: bool = typer.Option(False, "-s", "--string", help="Treat TEMPLATE as source."),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose logging."),
) -> None:
    """Print the compiled code of a template."""
    setup_logging(verbose)
    engine = build_engine(config)

    try:
        code = engine.compile_string(template) if string else engine.compile(template)
    except TemplateError as e:
        exit_with_error(str(e))

    typer.echo(code)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
