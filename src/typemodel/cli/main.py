"""typemodel CLI: build the declaration model of a Swift codebase."""
from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..cache.store import CacheStore
from ..config import Settings, load_settings
from ..errors import ConfigurationError, ExitCode, TypeModelError
from ..logging import configure_logging
from ..models.records import Severity
from ..models.types import Type
from ..pipeline.service import PipelineRun, PipelineService

console = Console()
app = typer.Typer(add_completion=False, no_args_is_help=True)

_SEVERITY_STYLE = {Severity.NOTE: "dim", Severity.WARNING: "yellow", Severity.ERROR: "red"}


def _flag(value: bool) -> Optional[bool]:
    return True if value else None


def _resolve_settings(
    config_path: Optional[Path],
    verbose: bool = False,
    quiet: bool = False,
    **overrides,
) -> Settings:
    if verbose:
        overrides["log_level"] = "DEBUG"
    elif quiet:
        overrides["log_level"] = "ERROR"
    settings = load_settings(config_path, **overrides)
    configure_logging(level=settings.log_level)
    return settings


def _run(settings: Settings) -> PipelineRun:
    try:
        return PipelineService(settings).run()
    except ConfigurationError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(int(exc.exit_code)) from exc
    except TypeModelError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(int(ExitCode.OTHER)) from exc


def _settings_or_exit(config_path: Optional[Path], **kwargs) -> Settings:
    try:
        return _resolve_settings(config_path, **kwargs)
    except ConfigurationError as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise typer.Exit(int(exc.exit_code)) from exc


@app.command()
def scan(
    sources: Optional[List[Path]] = typer.Option(None, "--sources", "-s", help="Files or directories to scan"),
    exclude_sources: Optional[List[Path]] = typer.Option(None, "--exclude-sources", help="Paths to skip"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to .typemodel.yml"),
    disable_cache: bool = typer.Option(False, "--disable-cache", help="Neither read nor write the cache"),
    serial_parse: bool = typer.Option(False, "--serial-parse", help="Parse files in-process"),
    parse_documentation: bool = typer.Option(False, "--parse-documentation", help="Keep /// comments"),
    force_parse: Optional[List[str]] = typer.Option(
        None, "--force-parse", help="Extensions parsed even when generated"
    ),
    args: Optional[List[str]] = typer.Option(None, "--args", help="Extra key=value arguments"),
    cache_base_path: Optional[Path] = typer.Option(None, "--cache-base-path", help="Cache directory"),
    as_json: bool = typer.Option(False, "--json", help="Print the model as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
):
    """Parse the sources and print the composed model."""
    settings = _settings_or_exit(
        config,
        verbose=verbose,
        quiet=quiet,
        sources=sources or None,
        exclude_sources=exclude_sources or None,
        disable_cache=_flag(disable_cache),
        serial_parse=_flag(serial_parse),
        parse_documentation=_flag(parse_documentation),
        force_parse=force_parse or None,
        args=args or None,
        cache_path=cache_base_path,
    )
    run = _run(settings)
    model = run.model

    if as_json:
        typer.echo(json.dumps(model.to_dict(), indent=2, sort_keys=False))
        raise typer.Exit(1 if model.has_parse_errors else 0)

    table = Table(title="Types")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Members", justify="right")
    table.add_column("Based")
    table.add_column("Files")
    for type_ in model.all_types():
        table.add_row(
            type_.qualified_name,
            f"{type_.kind.value}{' (external)' if type_.is_external else ''}",
            str(len(type_.members)),
            ", ".join(type_.based),
            ", ".join(Path(f).name for f in type_.files),
        )
    console.print(table)
    _print_diagnostics(run)
    console.print(
        f"{len(run.parsed)} parsed, {len(run.cached)} from cache, {len(run.skipped)} skipped "
        f"in {run.elapsed:.2f}s"
    )
    if model.has_parse_errors:
        raise typer.Exit(1)


@app.command()
def show(
    name: str = typer.Argument(..., help="Qualified type name, e.g. Outer.Inner"),
    sources: Optional[List[Path]] = typer.Option(None, "--sources", "-s", help="Files or directories to scan"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to .typemodel.yml"),
    disable_cache: bool = typer.Option(False, "--disable-cache", help="Neither read nor write the cache"),
    parse_documentation: bool = typer.Option(False, "--parse-documentation", help="Keep /// comments"),
    cache_base_path: Optional[Path] = typer.Option(None, "--cache-base-path", help="Cache directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Show members, annotations and inheritance of one type."""
    settings = _settings_or_exit(
        config,
        verbose=verbose,
        sources=sources or None,
        disable_cache=_flag(disable_cache),
        parse_documentation=_flag(parse_documentation),
        cache_path=cache_base_path,
    )
    model = _run(settings).model
    type_ = model.type(name)
    if type_ is None:
        console.print(f"[yellow]No type named '{name}'[/yellow]")
        raise typer.Exit(1)
    _print_type(type_)


@app.command("cache-stats")
def cache_stats(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to .typemodel.yml"),
    cache_base_path: Optional[Path] = typer.Option(None, "--cache-base-path", help="Cache directory"),
):
    """Show where the cache lives and how big it is."""
    settings = _settings_or_exit(config, cache_path=cache_base_path)
    stats = CacheStore(settings.cache_path).get_stats()
    table = Table(title="Parse Cache")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Directory", stats["cache_dir"])
    table.add_row("Entries", str(stats["entry_count"]))
    table.add_row("Size (bytes)", str(stats["size_bytes"]))
    console.print(table)


@app.command("cache-clear")
def cache_clear(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to .typemodel.yml"),
    cache_base_path: Optional[Path] = typer.Option(None, "--cache-base-path", help="Cache directory"),
):
    """Remove every cached parse result."""
    settings = _settings_or_exit(config, cache_path=cache_base_path)
    removed = CacheStore(settings.cache_path).clear()
    console.print(f"Cleared {removed} cached file(s) from {settings.cache_path}")


def _print_diagnostics(run: PipelineRun) -> None:
    diagnostics = run.model.diagnostics
    if not diagnostics:
        return
    table = Table(title="Diagnostics")
    table.add_column("Severity")
    table.add_column("Kind")
    table.add_column("Location")
    table.add_column("Message")
    for diagnostic in diagnostics:
        location = diagnostic.file or ""
        if diagnostic.line is not None:
            location = f"{location}:{diagnostic.line}"
        style = _SEVERITY_STYLE[diagnostic.severity]
        table.add_row(
            f"[{style}]{diagnostic.severity.value}[/{style}]",
            diagnostic.kind.value,
            location,
            diagnostic.message,
        )
    console.print(table)


def _print_type(type_: Type) -> None:
    header = Table(title=f"{type_.kind.value} {type_.qualified_name}")
    header.add_column("Field", style="cyan")
    header.add_column("Value")
    header.add_row("Access", type_.access_level)
    header.add_row("External", "yes" if type_.is_external else "no")
    header.add_row("Inherited", ", ".join(t.name for t in type_.inherited_types))
    header.add_row("Superclass", type_.superclass or "")
    header.add_row("Implements", ", ".join(type_.implements))
    header.add_row("Based", ", ".join(type_.based))
    header.add_row("Annotations", json.dumps(type_.annotations, sort_keys=True))
    header.add_row("Nested", ", ".join(t.name for t in type_.contained_types))
    header.add_row("Files", ", ".join(type_.files))
    console.print(header)

    members = Table(title="Members")
    members.add_column("Kind")
    members.add_column("Name", style="cyan")
    members.add_column("Type")
    members.add_column("Annotations")
    for member in type_.members:
        members.add_row(
            member.kind.value,
            member.selector_name or member.name,
            member.type_name.name if member.type_name else "",
            json.dumps(member.annotations, sort_keys=True) if member.annotations else "",
        )
    console.print(members)


if __name__ == "__main__":
    app()
