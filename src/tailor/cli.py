"""Tailor command-line interface."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import TailorSettings, load_settings
from .context import EvaluationContext
from .engine import CustomizationEngine
from .exceptions import TailorError
from .sources import PrecedenceResolver

app = typer.Typer(
    name="tailor",
    help="Tailor: declarative customization of code-generation templates",
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"Tailor version {__version__}")
        raise typer.Exit


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log rule evaluation details",
    ),
) -> None:
    """Tailor: declarative customization of code-generation templates."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
            force=True,
        )


def _parse_pairs(values: list[str] | None, option: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            msg = f"Expected KEY=VALUE, got '{item}'"
            raise typer.BadParameter(msg, param_hint=option)
        pairs[key.strip()] = value
    return pairs


@app.command()
def validate(
    rules: list[Path] = typer.Argument(..., help="Rule documents to validate"),
) -> None:
    """Validate rule documents without applying them."""
    engine = CustomizationEngine()
    table = Table(title="Rule Documents")
    table.add_column("File", style="cyan")
    table.add_column("Status")
    table.add_column("Rules", justify="right")

    failures: list[tuple[Path, TailorError]] = []
    for path in rules:
        try:
            document = engine.parse_file(path)
        except TailorError as e:
            failures.append((path, e))
            table.add_row(str(path), "[red]invalid[/red]", "-")
            continue
        table.add_row(str(path), "[green]valid[/green]", str(document.rule_count))

    console.print(table)
    for path, error in failures:
        console.print(f"[red]Error:[/red] {escape(str(path))}: {escape(str(error))}")
    if failures:
        raise typer.Exit(1)


@app.command()
def apply(
    template: Path = typer.Argument(..., help="Template file to customize"),
    rules: Path = typer.Argument(..., help="Rule document to apply"),
    generator_version: str | None = typer.Option(
        None,
        "--generator-version",
        help="Generator version seen by version constraints",
    ),
    prop: list[str] | None = typer.Option(
        None,
        "--property",
        "-P",
        help="Project property as KEY=VALUE (repeatable)",
    ),
    env: list[str] | None = typer.Option(
        None,
        "--env",
        "-e",
        help="Environment variable as KEY=VALUE (repeatable, overrides the process environment)",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the result here instead of standard output",
    ),
) -> None:
    """Apply one rule document to one template."""
    properties = _parse_pairs(prop, "--property")
    environment = dict(os.environ)
    environment.update(_parse_pairs(env, "--env"))

    try:
        text = template.read_text(encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error:[/red] Failed to read template {template}: {e}")
        raise typer.Exit(1) from e

    engine = CustomizationEngine()
    properties.setdefault("templateName", template.name)
    try:
        document = engine.parse_file(rules)
        context = EvaluationContext(
            generator_version=generator_version,
            template_content=text,
            project_properties=properties,
            environment_variables=environment,
        )
        result = engine.apply(text, document, context, template_name=template.name)
    except TailorError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if output is None:
        typer.echo(result, nl=False)
        return

    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result, encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error:[/red] Failed to write {output}: {e}")
        raise typer.Exit(1) from e
    console.print(f"[green]✓[/green] Wrote {output}")


@app.command()
def sources(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Settings file (YAML)",
    ),
) -> None:
    """Show which template sources are available and the order they apply in."""
    try:
        settings = load_settings(config) if config is not None else TailorSettings()
    except TailorError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    resolver = PrecedenceResolver(settings, environment=dict(os.environ))

    table = Table(title=f"Template Sources ({settings.generator_name})")
    table.add_column("Precedence", justify="right")
    table.add_column("Source", style="cyan", no_wrap=True)
    table.add_column("Available")
    table.add_column("Reason")
    for category, availability in resolver.report().items():
        table.add_row(
            str(category.precedence),
            category.value,
            "[green]yes[/green]" if availability.available else "[yellow]no[/yellow]",
            escape(availability.reason),
        )
    console.print(table)

    resolved = resolver.resolve_sources()
    console.print("Resolved order: " + ", ".join(c.value for c in resolved))


@app.command()
def version() -> None:
    """Show Tailor version information."""
    console.print(f"Tailor version {__version__}")


if __name__ == "__main__":
    app()
