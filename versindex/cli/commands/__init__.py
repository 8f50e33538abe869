# VERSINDEX CLI Commands
"""
コマンドモジュールのエクスポート
"""

from versindex.cli.commands.index import index_app
from versindex.cli.commands.config_cmd import config_app

__all__ = [
    "index_app",
    "config_app",
]
