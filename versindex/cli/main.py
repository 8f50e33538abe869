# VERSINDEX CLI - Main Application
"""
CLI (Command Line Interface)
メインアプリケーション構造
"""

from pathlib import Path
from typing import Optional
from enum import Enum

import typer
from rich.console import Console
from rich.panel import Panel

# === アプリケーション初期化 ===

app = typer.Typer(
    name="versindex",
    help="VERSINDEX - Versioned indexes with change detection over file-based datasets",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


# === 出力フォーマット ===

class OutputFormat(str, Enum):
    """出力フォーマット"""
    text = "text"
    json = "json"


# === ユーティリティ関数 ===

CONFIG_SEARCH_PATHS = [
    Path("./versindex.yaml"),
    Path("./versindex.yml"),
    Path("./config/versindex.yaml"),
]


def find_config(config_path: Optional[Path] = None) -> Optional[Path]:
    """設定ファイルを探索"""
    for path in [config_path, *CONFIG_SEARCH_PATHS]:
        if path and path.exists():
            return path
    return None


def get_versindex(config_path: Optional[Path] = None):
    """Versindexインスタンスを取得

    Args:
        config_path: 設定ファイルパス（Noneの場合はデフォルト）

    Returns:
        Versindex: 初期化済みインスタンス
    """
    from versindex.api import Versindex

    path = find_config(config_path)
    if path is not None:
        return Versindex(path)

    # デフォルト設定
    return Versindex()


def print_error(message: str):
    """エラーメッセージを表示"""
    console.print(f"[red]✗ Error:[/red] {message}")


def print_success(message: str):
    """成功メッセージを表示"""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str):
    """警告メッセージを表示"""
    console.print(f"[yellow]⚠[/yellow] {message}")


# === 共通オプション ===

@app.callback()
def main_callback(
    log_level: str = typer.Option(
        "WARNING", "--log-level", "-L", help="Log level (DEBUG, INFO, WARNING, ERROR)"
    ),
):
    """VERSINDEX command line interface"""
    from versindex.utils.logging import setup_logging

    setup_logging(log_level)


# === バージョンコマンド ===

@app.command()
def version():
    """Show version information"""
    from versindex import __version__

    console.print(Panel.fit(
        f"[bold cyan]VERSINDEX[/bold cyan] v{__version__}\n"
        "[dim]Versioned indexes with change detection over file-based datasets[/dim]",
        border_style="cyan"
    ))


# === サブコマンド ===

def attach_commands():
    """サブコマンドをアタッチ"""
    from versindex.cli.commands import config_app, index_app

    app.add_typer(index_app, name="index")
    app.add_typer(config_app, name="config")


# コマンドをアタッチ
attach_commands()
