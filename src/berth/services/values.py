"""valuesファイルとコマンドライン上書きを1つのドキュメントに統合するサービス。"""

import copy
import logging
from pathlib import Path
from typing import Any

import yaml

from berth.models.errors import ParseError, TopLevelNotMappingError, ValueFileNotFoundError

logger = logging.getLogger(__name__)

_ASSIGNMENT_FORMAT = "must be the format x.y.z=foo"


def is_assignment(source: str) -> bool:
    """ソースが `a.b.c=value` 形式の上書き指定かどうかを判定する。"""
    return "=" in source


def parse_assignment(source: str) -> dict[str, Any]:
    """`a.b.c=value` 形式の文字列をネストしたマッピングに変換する。

    値は常に文字列として扱う（YAMLとしての型解釈は行わない）。

    Args:
        source: `x.y.z=foo` 形式の文字列。

    Returns:
        葉が1つだけのネストしたマッピング。

    Raises:
        ParseError: `=` を含まない、またはキーが空の場合。
    """
    key_path, sep, value = source.partition("=")
    if not sep:
        raise ParseError(source, f"Failed to split YAML string: {source}, {_ASSIGNMENT_FORMAT}")
    if not key_path:
        raise ParseError(source, f"Failed to find yaml key for string {source}, {_ASSIGNMENT_FORMAT}.")

    *parents, leaf = key_path.split(".")
    document: dict[str, Any] = {leaf: value}
    for key in reversed(parents):
        document = {key: document}
    return document


def read_values_file(path: str) -> dict[str, Any]:
    """valuesファイルを読み込みトップレベルのマッピングを返す。

    Raises:
        ValueFileNotFoundError: ファイルが存在しない場合。
        ParseError: YAMLとして不正な場合。
        TopLevelNotMappingError: トップレベルがマッピングでない場合。
    """
    logger.debug("Loading values file: %s", path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ValueFileNotFoundError(path) from None
    except OSError as e:
        raise ParseError(path, str(e)) from e
    except yaml.YAMLError as e:
        raise ParseError(path, str(e)) from e

    if not isinstance(data, dict):
        raise TopLevelNotMappingError(path)
    return data


def merge_values(existing: dict[str, Any], new: dict[str, Any]) -> None:
    """newの内容をexistingへ再帰的にマージする（existingを直接更新する）。

    - マッピング同士はキー単位で再帰マージ
    - シーケンス同士は既存要素の後ろに連結
    - それ以外（型が異なる場合を含む）は新しい値で置換
    """
    for key, new_value in new.items():
        if key not in existing:
            existing[key] = copy.deepcopy(new_value)
            continue

        current = existing[key]
        if isinstance(current, dict) and isinstance(new_value, dict):
            merge_values(current, new_value)
        elif isinstance(current, list) and isinstance(new_value, list):
            current.extend(copy.deepcopy(new_value))
        else:
            existing[key] = copy.deepcopy(new_value)


class ValueConsolidator:
    """順序付きのvaluesソースを1つのドキュメントに統合する。"""

    def load_source(self, source: str) -> dict[str, Any]:
        """単一ソース（上書き指定またはファイルパス）を読み込む。"""
        if is_assignment(source):
            return parse_assignment(source)
        return read_values_file(source)

    def consolidate(self, sources: list[str]) -> dict[str, Any]:
        """ソースを先頭から順にマージする。後のソースが優先される。

        空のソース一覧に対する扱いは呼び出し側で決める。

        Args:
            sources: valuesファイルパスまたは `a.b.c=value` 形式の文字列のリスト。

        Returns:
            統合されたvaluesドキュメント。
        """
        consolidated: dict[str, Any] = {}
        for source in sources:
            merge_values(consolidated, self.load_source(source))
        logger.debug("Consolidated values:\n%s", yaml.safe_dump(consolidated, sort_keys=False))
        return consolidated

    @staticmethod
    def resolve_sources(sources: list[str]) -> list[str]:
        """ファイルソースを絶対パスに解決する。上書き指定はそのまま残す。"""
        return [source if is_assignment(source) else str(Path(source).resolve()) for source in sources]
