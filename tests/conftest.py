"""Shared fixtures for versindex tests."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, List

import pyarrow as pa
import pyarrow.parquet as pq
import pytest


@pytest.fixture
def write_parquet() -> Callable[..., Path]:
    """Parquetファイルを書き込むヘルパー

    ``mtime_ms`` を指定すると更新日時を固定する。
    """
    def _write(path: Path, rows: List[Dict[str, Any]], mtime_ms: int | None = None) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        pq.write_table(pa.Table.from_pylist(rows), path)
        if mtime_ms is not None:
            os.utime(path, ns=(mtime_ms * 1_000_000, mtime_ms * 1_000_000))
        return path
    return _write


@pytest.fixture
def sample_rows() -> Callable[[int, int], List[Dict[str, Any]]]:
    """サンプル行を作成するヘルパー"""
    def _rows(start: int = 0, count: int = 3) -> List[Dict[str, Any]]:
        return [
            {"id": i, "name": f"name-{i}", "amount": float(i) * 1.5}
            for i in range(start, start + count)
        ]
    return _rows
