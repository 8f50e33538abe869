# Versindex Config Manager
"""
versindex.api.config - 設定マネージャー
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from versindex.api.base import VersindexConfig
from versindex.errors import ConfigurationError
from versindex.index.constants import DEFAULT_SUPPORTED_FORMATS

DEFAULT_CONFIG_FILE = "versindex.yaml"


class ConfigManager:
    """設定マネージャー"""

    def __init__(self, config_path: str | Path | None = None):
        self.config_path = Path(config_path) if config_path else None
        self._config: VersindexConfig | None = None

    @classmethod
    def from_yaml(cls, path: str | Path) -> ConfigManager:
        """YAMLファイルから読み込み"""
        manager = cls(path)
        manager.load()
        return manager

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> ConfigManager:
        """辞書から作成"""
        manager = cls()
        manager._config = cls._parse_config(config_dict)
        return manager

    @classmethod
    def from_config(cls, config: VersindexConfig) -> ConfigManager:
        """VersindexConfigから作成"""
        manager = cls()
        manager._config = config
        return manager

    def load(self) -> VersindexConfig:
        """設定を読み込み"""
        if not self.config_path or not self.config_path.exists():
            self._config = VersindexConfig()
            return self._config

        try:
            with open(self.config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in {self.config_path}: {e}",
                cause=e,
                path=str(self.config_path),
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file must contain a mapping: {self.config_path}",
                path=str(self.config_path),
            )

        self._config = self._parse_config(data)
        return self._config

    def save(self, path: str | Path | None = None) -> None:
        """設定を保存"""
        if self._config is None:
            return

        save_path = Path(path) if path else self.config_path
        if save_path is None:
            raise ConfigurationError("No path specified for saving config")

        save_path.parent.mkdir(parents=True, exist_ok=True)

        data = self._config_to_dict(self._config)
        with open(save_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    @staticmethod
    def _parse_config(data: dict[str, Any]) -> VersindexConfig:
        """設定をパース"""
        # supported_formats はリストでも文字列でも可
        formats_raw = data.get("supported_formats", DEFAULT_SUPPORTED_FORMATS)
        if isinstance(formats_raw, (list, tuple)):
            formats_raw = ",".join(str(f) for f in formats_raw)

        try:
            parallel_workers = int(data.get("parallel_workers", 4))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"parallel_workers must be an integer: {data.get('parallel_workers')!r}",
                cause=e,
            ) from e
        if parallel_workers < 1:
            raise ConfigurationError(
                f"parallel_workers must be at least 1: {parallel_workers}"
            )

        return VersindexConfig(
            system_path=Path(data.get("system_path", "./indexes")),
            supported_formats=str(formats_raw),
            lineage_enabled=bool(data.get("lineage_enabled", False)),
            parallel_workers=parallel_workers,
            log_level=str(data.get("log_level", "INFO")).upper(),
        )

    @staticmethod
    def _config_to_dict(config: VersindexConfig) -> dict[str, Any]:
        """VersindexConfigを辞書に変換"""
        return {
            "system_path": str(config.system_path),
            "supported_formats": config.supported_formats,
            "lineage_enabled": config.lineage_enabled,
            "parallel_workers": config.parallel_workers,
            "log_level": config.log_level,
        }

    @property
    def config(self) -> VersindexConfig:
        """設定を取得"""
        if self._config is None:
            self._config = self.load()
        return self._config


def load_config(path: str | Path | None = None) -> VersindexConfig:
    """設定を読み込むヘルパー関数"""
    manager = ConfigManager(path)
    return manager.load()
