# VERSINDEX CLI - Index Commands
"""
CLI - index コマンド群
インデックスの作成・リフレッシュと状態表示
"""

from pathlib import Path
from typing import List, Optional
import json

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from versindex.cli.main import OutputFormat, get_versindex, print_error, print_success
from versindex.errors import VersindexError

console = Console()
index_app = typer.Typer(help="Index management commands")


def _split_columns(value: Optional[str]) -> List[str]:
    return [c.strip() for c in (value or "").split(",") if c.strip()]


def _parse_options(values: Optional[List[str]]) -> dict:
    options = {}
    for item in values or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Option must be key=value: {item}")
        options[key.strip()] = value.strip()
    return options


def _print_stats(stats, title: str):
    """統計情報をテーブル表示"""
    table = Table(title=title)
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Name", stats.name)
    table.add_row("State", stats.state)
    table.add_row("Index Root Paths", "\n".join(stats.index_root_paths) or "-")
    table.add_row("Indexed Columns", ", ".join(stats.indexed_columns))
    table.add_row("Included Columns", ", ".join(stats.included_columns) or "-")
    table.add_row("Source Root Paths", "\n".join(stats.source_root_paths))
    table.add_row("Source Files", f"{stats.source_file_count:,}")
    table.add_row("Source Size", f"{stats.source_size_bytes:,} bytes")
    table.add_row("Index Files", f"{stats.index_file_count:,}")
    table.add_row("Index Size", f"{stats.index_size_bytes:,} bytes")
    table.add_row("Lineage", "[green]Yes[/green]" if stats.has_lineage else "No")
    table.add_row("Excluded Files", f"{stats.excluded_file_count:,}")
    table.add_row("Signature", stats.signature)

    console.print(table)


@index_app.command("create")
def index_create(
    name: str = typer.Argument(..., help="Index name"),
    paths: List[str] = typer.Argument(..., help="Source data paths (globs allowed)"),
    indexed_columns: str = typer.Option(
        ..., "--indexed-columns", "-i", help="Indexed columns (comma-separated)"
    ),
    included_columns: Optional[str] = typer.Option(
        None, "--included-columns", "-I", help="Included columns (comma-separated)"
    ),
    file_format: str = typer.Option(
        "parquet", "--format", "-f", help="Source file format"
    ),
    option: Optional[List[str]] = typer.Option(
        None, "--option", help="Read option as key=value (repeatable)"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file path"
    ),
    output: OutputFormat = typer.Option(
        OutputFormat.text, "--output", "-o", help="Output format"
    ),
):
    """Create an index over a file-based dataset"""
    from versindex.index.types import IndexConfig

    options = _parse_options(option)

    try:
        versindex = get_versindex(config)
        dataset = versindex.read(paths, file_format, options)
        index_config = IndexConfig(
            index_name=name,
            indexed_columns=_split_columns(indexed_columns),
            included_columns=_split_columns(included_columns),
        )
        stats = versindex.create_index(dataset, index_config)

        if output == OutputFormat.json:
            console.print_json(json.dumps(stats.to_dict()))
        else:
            print_success(f"Index '{stats.name}' created")
            _print_stats(stats, "Index Statistics")

    except VersindexError as e:
        print_error(e.message)
        raise typer.Exit(1)
    except Exception as e:
        print_error(f"Index creation failed: {e}")
        raise typer.Exit(1)


@index_app.command("refresh")
def index_refresh(
    name: str = typer.Argument(..., help="Index name"),
    mode: str = typer.Option(
        "incremental", "--mode", "-m", help="Refresh mode: incremental, quick, full"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file path"
    ),
    output: OutputFormat = typer.Option(
        OutputFormat.text, "--output", "-o", help="Output format"
    ),
):
    """Refresh an index after its source data changed"""

    try:
        versindex = get_versindex(config)
        result = versindex.refresh_index(name, mode)

        if output == OutputFormat.json:
            console.print_json(json.dumps(result.to_dict()))
            return

        if not result.changed:
            print_success(f"Index '{result.index_name}' is up to date")
            return

        console.print(Panel.fit(
            f"[green]✓ Index refreshed[/green]\n\n"
            f"[bold]Refresh:[/bold]\n"
            f"  Requested mode: {result.requested_mode}\n"
            f"  Action:         {result.action.value}\n"
            f"  Version:        {result.version_id}\n"
            f"  Deleted files:  {len(result.plan.deleted_files):,}\n"
            f"  Appended files: {len(result.plan.appended_files):,}\n"
            f"  Duration:       {result.duration_ms:.0f}ms",
            title=f"Refresh {result.index_name}",
            border_style="green"
        ))

    except VersindexError as e:
        print_error(e.message)
        raise typer.Exit(1)
    except Exception as e:
        print_error(f"Index refresh failed: {e}")
        raise typer.Exit(1)


@index_app.command("stats")
def index_stats(
    name: str = typer.Argument(..., help="Index name"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file path"
    ),
    output: OutputFormat = typer.Option(
        OutputFormat.text, "--output", "-o", help="Output format"
    ),
):
    """Show statistics of an index"""

    try:
        versindex = get_versindex(config)
        stats = versindex.index_stats(name)

        if output == OutputFormat.json:
            console.print_json(json.dumps(stats.to_dict()))
        else:
            _print_stats(stats, f"Index Statistics: {stats.name}")

    except VersindexError as e:
        print_error(e.message)
        raise typer.Exit(1)


@index_app.command("list")
def index_list(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file path"
    ),
    output: OutputFormat = typer.Option(
        OutputFormat.text, "--output", "-o", help="Output format"
    ),
):
    """List all indexes"""

    try:
        versindex = get_versindex(config)
        all_stats = versindex.indexes()

        if output == OutputFormat.json:
            console.print_json(json.dumps([s.to_dict() for s in all_stats]))
            return

        if not all_stats:
            console.print("[dim]No indexes found[/dim]")
            return

        table = Table(title="Indexes")
        table.add_column("Name", style="cyan")
        table.add_column("State")
        table.add_column("Active Versions")
        table.add_column("Source Files", justify="right")
        table.add_column("Lineage")

        for stats in all_stats:
            versions = ", ".join(Path(p).name for p in stats.index_root_paths)
            table.add_row(
                stats.name,
                stats.state,
                versions,
                f"{stats.source_file_count:,}",
                "Yes" if stats.has_lineage else "No",
            )

        console.print(table)

    except VersindexError as e:
        print_error(e.message)
        raise typer.Exit(1)


@index_app.command("signature")
def index_signature(
    paths: List[str] = typer.Argument(..., help="Source data paths (globs allowed)"),
    file_format: str = typer.Option(
        "parquet", "--format", "-f", help="Source file format"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file path"
    ),
    output: OutputFormat = typer.Option(
        OutputFormat.text, "--output", "-o", help="Output format"
    ),
):
    """Compute the signature of a dataset"""

    try:
        versindex = get_versindex(config)
        dataset = versindex.read(paths, file_format)
        sig = versindex.signature(dataset)
        file_count = len(dataset.location.all_files())

        if output == OutputFormat.json:
            console.print_json(json.dumps({"signature": sig, "file_count": file_count}))
        else:
            console.print(f"{sig}  ({file_count:,} file(s))")

    except VersindexError as e:
        print_error(e.message)
        raise typer.Exit(1)
