"""tmdrift CLI — drift detection between golden and client content libraries."""

from __future__ import annotations

import asyncio
from uuid import UUID

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tmdrift import __version__

console = Console()


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (default: config file, TMDRIFT_LOG_LEVEL, or WARNING)",
)
@click.pass_context
def main(ctx: click.Context, log_level: str | None):
    """tmdrift — threat-framework library drift detection.

    Compare a golden baseline repository with a client target repository
    and report, per library, which entities and mappings were added,
    removed, or modified.
    """
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


def _parse_uuids(ctx, param, values) -> list[UUID]:
    try:
        return [UUID(v) for v in values]
    except ValueError as e:
        raise click.BadParameter(f"not a UUID: {e}")


def _init(ctx: click.Context, config_path: str | None):
    from tmdrift.config import load_settings
    from tmdrift.errors import DriftError
    from tmdrift.utils.logging import setup_logging

    try:
        settings = load_settings(config_path)
    except DriftError as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        raise SystemExit(2)
    setup_logging(ctx.obj.get("log_level") or settings.log_level)
    return settings


async def _open_index(index_path):
    from tmdrift.index.service import YamlIndexService

    return await YamlIndexService.open(index_path)


# ── Diff ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("baseline", type=click.Path(exists=True, file_okay=False))
@click.argument("target", type=click.Path(exists=True, file_okay=False))
@click.option("--library", "-l", "libraries", multiple=True, required=True,
              callback=_parse_uuids, help="Library UUID to compare (repeatable)")
@click.option("--index", "index_path", default=None, type=click.Path(dir_okay=False),
              help="UUID ↔ id index file")
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False),
              help="YAML settings file")
@click.option("--committed-only", is_flag=True, help="Compare HEAD commits, not working trees")
@click.option("--json-out", default=None, type=click.Path(dir_okay=False),
              help="Write the drift as JSON to this file")
@click.pass_context
def diff(ctx, baseline, target, libraries, index_path, config_path, committed_only, json_out):
    """Compute drift between BASELINE and TARGET repositories."""
    from tmdrift.errors import DriftError

    settings = _init(ctx, config_path)
    index_path = index_path or settings.index_path
    if not index_path:
        console.print("[red]An index file is required (--index or 'index' in config).[/]")
        raise SystemExit(2)

    console.print(f"\n[bold blue]tmdrift[/] — Comparing {baseline} → {target}\n")

    try:
        drift = asyncio.run(
            _compute(
                baseline, target, libraries, index_path, settings,
                include_uncommitted=settings.include_uncommitted and not committed_only,
            )
        )
    except DriftError as e:
        console.print(f"[red]Drift computation failed:[/] {e}")
        raise SystemExit(1)

    _print_drift(drift)

    if json_out:
        with open(json_out, "w", encoding="utf-8") as f:
            f.write(drift.to_json())
        console.print(f"\n[green]Drift written to:[/] {json_out}")


async def _compute(baseline, target, libraries, index_path, settings, include_uncommitted):
    from tmdrift.drift.service import DriftService

    index = await _open_index(index_path)
    service = DriftService(index, options=settings.options, max_workers=settings.max_workers)
    return await service.compute(baseline, target, libraries, include_uncommitted)


def _print_drift(drift) -> None:
    if not drift.has_drift:
        console.print("[green]No drift detected.[/]")
        return

    table = Table(title="Library Drift")
    table.add_column("Library", style="cyan")
    table.add_column("Status")
    table.add_column("Components", justify="right")
    table.add_column("Threats", justify="right")
    table.add_column("SRs", justify="right")
    table.add_column("Test cases", justify="right")
    table.add_column("Properties", justify="right")

    for lib in drift.added_libraries:
        table.add_row(
            lib.library.name or str(lib.library_guid), "[green]added[/]",
            str(len(lib.components)), str(len(lib.threats)),
            str(len(lib.security_requirements)), str(len(lib.test_cases)),
            str(len(lib.properties)),
        )
    for lib in drift.deleted_libraries:
        table.add_row(
            lib.library.name or str(lib.library_guid), "[red]deleted[/]",
            str(len(lib.components)), str(len(lib.threats)),
            str(len(lib.security_requirements)), str(len(lib.test_cases)),
            str(len(lib.properties)),
        )
    for lib in drift.modified_libraries:
        table.add_row(
            lib.name or str(lib.library_guid), "[yellow]modified[/]",
            _diff_counts(lib.components), _diff_counts(lib.threats),
            _diff_counts(lib.security_requirements), _diff_counts(lib.test_cases),
            _diff_counts(lib.properties),
        )
    console.print(table)

    global_drift = drift.global_drift
    if not global_drift.is_empty:
        console.print(Panel(
            f"Component types: {_diff_counts(global_drift.component_types)}\n"
            f"Property types: {_diff_counts(global_drift.property_types)}\n"
            f"Property options: {_diff_counts(global_drift.property_options)}",
            title="Global Drift",
        ))


def _diff_counts(diff) -> str:
    return f"+{len(diff.added)} -{len(diff.removed)} ~{len(diff.modified)}"


# ── Summary ──────────────────────────────────────────────────────────


@main.command()
@click.argument("baseline", type=click.Path(exists=True, file_okay=False))
@click.argument("target", type=click.Path(exists=True, file_okay=False))
@click.option("--library", "-l", "libraries", multiple=True, required=True,
              callback=_parse_uuids, help="Library UUID to compare (repeatable)")
@click.option("--index", "index_path", default=None, type=click.Path(dir_okay=False))
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False))
@click.option("--committed-only", is_flag=True, help="Compare HEAD commits, not working trees")
@click.pass_context
def summary(ctx, baseline, target, libraries, index_path, config_path, committed_only):
    """Show version and release-note changes per library."""
    from tmdrift.drift.summary import summarize_library_changes
    from tmdrift.errors import DriftError

    settings = _init(ctx, config_path)
    index_path = index_path or settings.index_path
    if not index_path:
        console.print("[red]An index file is required (--index or 'index' in config).[/]")
        raise SystemExit(2)

    try:
        drift = asyncio.run(
            _compute(baseline, target, libraries, index_path, settings,
                     include_uncommitted=settings.include_uncommitted and not committed_only)
        )
    except DriftError as e:
        console.print(f"[red]Drift computation failed:[/] {e}")
        raise SystemExit(1)

    rows = summarize_library_changes(drift)
    if not rows:
        console.print("[green]No library changes.[/]")
        return

    table = Table(title=f"Library Changes ({len(rows)})")
    table.add_column("Library", style="cyan")
    table.add_column("Operation")
    table.add_column("Old version", justify="right")
    table.add_column("New version", justify="right")
    table.add_column("Release notes")
    for row in rows:
        table.add_row(
            row.name or str(row.library_guid), row.operation.value,
            row.old_version, row.new_version, row.release_notes[:60],
        )
    console.print(table)


# ── Compare folders ──────────────────────────────────────────────────


@main.command("compare-folders")
@click.argument("baseline_dir", type=click.Path(exists=True, file_okay=False))
@click.argument("target_dir", type=click.Path(exists=True, file_okay=False))
@click.option("--folder", "-f", "folders", multiple=True, help="Limit to this folder (repeatable)")
@click.pass_context
def compare_folders(ctx, baseline_dir, target_dir, folders):
    """Compare two plain directories file by file."""
    from tmdrift.diff.folder_diff import compare_directories
    from tmdrift.errors import DriftError

    _init(ctx, None)
    console.print(f"\n[bold blue]tmdrift[/] — Comparing {baseline_dir} → {target_dir}\n")

    try:
        report = compare_directories(baseline_dir, target_dir, list(folders) or None)
    except DriftError as e:
        console.print(f"[red]Comparison failed:[/] {e}")
        raise SystemExit(1)

    if report.is_empty:
        console.print("[green]No differences.[/]")
        return

    for label, style, paths in (
        ("Added", "green", report.added),
        ("Deleted", "red", report.deleted),
        ("Modified", "yellow", report.modified),
    ):
        if paths:
            console.print(f"[bold {style}]{label} ({len(paths)})[/]")
            for path in paths:
                console.print(f"  {path}")


# ── Classify ─────────────────────────────────────────────────────────


@main.command()
@click.argument("paths", nargs=-1, required=True)
def classify(paths):
    """Show which entity each repository-relative path holds."""
    from tmdrift.diff.path_classifier import classify_path

    table = Table(title="Path Classification")
    table.add_column("Path")
    table.add_column("Entity type", style="cyan")
    table.add_column("Library")
    for path in paths:
        info = classify_path(path)
        table.add_row(path, info.entity_type.value, info.library_key or "-")
    console.print(table)


if __name__ == "__main__":
    main()
