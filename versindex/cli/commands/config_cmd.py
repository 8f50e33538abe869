# VERSINDEX CLI - Config Commands
"""
CLI - config コマンド群
設定ファイルの生成・表示
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.panel import Panel
from rich.table import Table

from versindex.cli.main import find_config, print_error, print_success, print_warning

console = Console()
config_app = typer.Typer(help="Configuration commands")


# デフォルト設定テンプレート
DEFAULT_CONFIG = """# VERSINDEX Configuration File
# Versioned indexes with change detection over file-based datasets

# ======================================
# Storage
# ======================================

# Root directory for indexes (<system_path>/<index_name>/v__=<id>)
system_path: ./indexes

# ======================================
# Sources
# ======================================

# File formats handled by the default source (comma-separated)
supported_formats: csv,json,orc,parquet

# Number of threads used to stat source files
parallel_workers: 4

# ======================================
# Index
# ======================================

# Add a source file id column to index rows.
# Required to rewrite index data without deleted files on refresh.
lineage_enabled: false

# ======================================
# Logging
# ======================================

log_level: INFO
"""


@config_app.command("init")
def config_init(
    output_path: Path = typer.Option(
        Path("./versindex.yaml"),
        "--output", "-o",
        help="Output path for config file",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite existing file"
    ),
):
    """Initialize a new configuration file"""

    if output_path.exists() and not force:
        print_warning(f"Config file already exists: {output_path}")
        console.print("Use --force to overwrite")
        raise typer.Exit(1)

    try:
        # 親ディレクトリを作成
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, "w", encoding="utf-8") as f:
            f.write(DEFAULT_CONFIG)

        print_success(f"Configuration file created: {output_path}")
        console.print("\nThen create your first index:")
        console.print("  [cyan]versindex index create my_index ./data -i id[/cyan]")

    except OSError as e:
        print_error(f"Failed to create config file: {e}")
        raise typer.Exit(1)


@config_app.command("show")
def config_show(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file path"
    ),
    resolved: bool = typer.Option(
        False, "--resolved", "-r", help="Show parsed values instead of the file"
    ),
):
    """Show current configuration"""

    config_path = find_config(config)

    if config_path is None:
        print_warning("No configuration file found")
        console.print("\nCreate one with:")
        console.print("  [cyan]versindex config init[/cyan]")
        raise typer.Exit(1)

    try:
        if resolved:
            from versindex.api import ConfigManager

            cfg = ConfigManager.from_yaml(config_path).config

            table = Table(title="Configuration")
            table.add_column("Setting", style="cyan")
            table.add_column("Value")
            table.add_row("System Path", str(cfg.system_path))
            table.add_row("Supported Formats", cfg.supported_formats)
            table.add_row("Lineage", str(cfg.lineage_enabled))
            table.add_row("Parallel Workers", str(cfg.parallel_workers))
            table.add_row("Log Level", cfg.log_level)
            console.print(table)
            return

        with open(config_path, encoding="utf-8") as f:
            content = f.read()

        syntax = Syntax(content, "yaml", theme="monokai", line_numbers=True)
        console.print(Panel(
            syntax,
            title=str(config_path),
            border_style="cyan",
        ))

    except Exception as e:
        print_error(f"Failed to read config file: {e}")
        raise typer.Exit(1)
