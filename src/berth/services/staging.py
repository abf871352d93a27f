"""テンプレートツリーを無視ルールに従ってステージングディレクトリへコピーするサービス。"""

import logging
import shutil
from pathlib import Path

import pathspec

from berth.config import IGNORE_FILENAME
from berth.models.errors import FileOperationError

logger = logging.getLogger(__name__)


def load_ignore_rules(template_dir: Path) -> pathspec.PathSpec | None:
    """テンプレート直下の無視ファイルを読み込む。存在しなければNoneを返す。

    Raises:
        FileOperationError: 無視ファイルが読み込めない場合。
    """
    ignore_file = template_dir / IGNORE_FILENAME
    if not ignore_file.is_file():
        return None

    logger.debug("Using ignore file: %s", ignore_file)
    try:
        lines = ignore_file.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        raise FileOperationError(ignore_file, str(e)) from e
    return pathspec.GitIgnoreSpec.from_lines(lines)


class IgnoreAwareCopier:
    """無視ルールを考慮してディレクトリツリーを複製する。

    ディレクトリ自体が無視パターンに一致しても必ず降りて作成する。
    無視判定の対象はファイルのみ。
    """

    def stage(
        self,
        source_dir: Path,
        dest_dir: Path,
        ignore_rules: pathspec.PathSpec | None = None,
    ) -> None:
        """source_dirの内容をdest_dirへコピーする。

        失敗時は途中までコピーされた内容をそのまま残す。

        Args:
            source_dir: コピー元のテンプレートディレクトリ。
            dest_dir: コピー先ディレクトリ。
            ignore_rules: gitignore形式の無視ルール。Noneなら全ファイルをコピーする。

        Raises:
            FileOperationError: ファイル操作に失敗した場合。
        """
        logger.debug("Copying files: src=%s dest=%s", source_dir, dest_dir)
        self._copy_tree(source_dir, source_dir, dest_dir, ignore_rules)

    def _copy_tree(
        self,
        root: Path,
        current: Path,
        dest: Path,
        ignore_rules: pathspec.PathSpec | None,
    ) -> None:
        try:
            dest.mkdir(parents=True, exist_ok=True)
            entries = sorted(current.iterdir())
        except OSError as e:
            raise FileOperationError(current, str(e)) from e

        for entry in entries:
            target = dest / entry.name
            if entry.is_dir():
                self._copy_tree(root, entry, target, ignore_rules)
                continue
            if not entry.is_file():
                continue

            # パターンはテンプレートルートからの相対パスで評価する
            relative = entry.relative_to(root).as_posix()
            if ignore_rules is not None and ignore_rules.match_file(relative):
                logger.debug("Ignoring file: %s", relative)
                continue

            logger.debug("Copying file: %s to %s", entry, target)
            try:
                shutil.copyfile(entry, target)
            except OSError as e:
                raise FileOperationError(entry, str(e)) from e
