"""Source Data Signature.

ソースファイルのメタデータからデータセット全体のシグネチャを計算する。

Features:
    - ファイル単位のフィンガープリント（サイズ・更新日時・パス）
    - パス順ソート後のハッシュチェーンによる決定的なシグネチャ
    - ファイル内容は読まない（メタデータのみ）
"""

from __future__ import annotations

import hashlib
from typing import Iterable

from versindex.errors import ValidationError
from versindex.index.types import FileInfo


def md5_hex(value: str) -> str:
    """MD5ハッシュ（16進文字列）を計算

    Args:
        value: 入力文字列

    Returns:
        32文字の16進文字列
    """
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def fingerprint(file: FileInfo) -> str:
    """ファイルのフィンガープリントを計算

    (size, modified_time, path) の順に連結した文字列。ファイル内容は読まないため、
    サイズ・更新日時・パスが同一で内容だけ異なるファイルは区別できない。

    Args:
        file: ファイル情報

    Returns:
        フィンガープリント
    """
    return f"{file.size}{file.modified_time}{file.path}"


def signature(files: Iterable[FileInfo]) -> str:
    """データセットのシグネチャを計算

    パスでソートした後、``acc = md5(acc + fingerprint(file))`` を左から畳み込む。
    列挙順に依存しない決定的な結果を返す。空集合の場合は ``md5("")``。

    Args:
        files: ファイル情報（順不同）

    Returns:
        シグネチャ

    Raises:
        ValidationError: 同一パスが複数含まれる場合
    """
    ordered = sorted(files, key=lambda f: f.path)
    if not ordered:
        return md5_hex("")

    for prev, cur in zip(ordered, ordered[1:]):
        if prev.path == cur.path:
            raise ValidationError(
                f"Duplicate path in file set: {cur.path}",
                field="path",
                value=cur.path,
            )

    acc = ""
    for file in ordered:
        acc = md5_hex(acc + fingerprint(file))
    return acc
