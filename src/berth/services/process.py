"""外部プロセス（docker-compose）の実行を行うサービス。"""

import logging
import shlex
import subprocess
from pathlib import Path

import yaml
from pydantic import ValidationError

from berth.config import BerthConfig
from berth.models.app import ComposeDocument
from berth.models.errors import ComposeParseError

logger = logging.getLogger(__name__)

# 実行ファイルが見つからない場合に返す終了コード（シェルと同じ）
COMMAND_NOT_FOUND_EXIT_CODE = 127


class ProcessRunner:
    """外部プログラムを起動し、終了まで待機する。

    標準出力は1行ずつロガーへ流し、標準エラーは端末へそのまま通す。
    タイムアウトやキャンセルの仕組みは持たない。
    """

    def run(self, args: list[str]) -> int:
        """コマンドを実行して終了コードを返す。

        Args:
            args: 実行するコマンドと引数のリスト。

        Returns:
            終了コード。実行ファイルが見つからない場合は127。
        """
        logger.debug("[EXEC] %s", shlex.join(args))
        try:
            proc = subprocess.Popen(
                args,
                stdout=subprocess.PIPE,
                stderr=None,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            logger.error("Could not start %s: %s", args[0], e)
            return COMMAND_NOT_FOUND_EXIT_CODE

        if proc.stdout is not None:
            with proc.stdout:
                for line in proc.stdout:
                    logger.info("%s", line.rstrip("\n"))
        return proc.wait()

    def run_silent(self, args: list[str]) -> int:
        """出力を捨ててコマンドを実行し、終了コードを返す。"""
        logger.debug("Running command: %s", shlex.join(args))
        try:
            completed = subprocess.run(args, capture_output=True, check=False)
        except OSError:
            return COMMAND_NOT_FOUND_EXIT_CODE
        return completed.returncode


def load_compose_document(compose_path: Path) -> ComposeDocument | None:
    """composeファイルを読み込む。空ファイルの場合はNoneを返す。

    Raises:
        ComposeParseError: YAMLとして不正、またはトップレベルがマッピングでない場合。
    """
    try:
        content = compose_path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except (OSError, yaml.YAMLError) as e:
        raise ComposeParseError(str(compose_path), str(e)) from e

    if data is None:
        return None
    if not isinstance(data, dict):
        raise ComposeParseError(str(compose_path), "Expected top-level YAML structure to be a mapping.")
    try:
        return ComposeDocument.model_validate(data)
    except ValidationError as e:
        raise ComposeParseError(str(compose_path), str(e)) from e


class ComposeClient:
    """docker-composeのサブコマンド呼び出しをまとめる。"""

    def __init__(self, config: BerthConfig, runner: ProcessRunner | None = None) -> None:
        self._config = config
        self._runner = runner or ProcessRunner()
        self._program = shlex.split(config.compose_command)

    def _command(self, compose_path: Path, *subcommand: str) -> list[str]:
        return [*self._program, "-f", str(compose_path), *subcommand]

    def _execute(self, args: list[str]) -> int:
        if self._config.no_run:
            logger.info("[NO-RUN] %s", shlex.join(args))
            return 0
        return self._runner.run(args)

    def is_installed(self) -> bool:
        """composeコマンドが利用可能かを確認する。"""
        return self._runner.run_silent([*self._program, "version"]) == 0

    def has_services(self, compose_path: Path) -> bool:
        """composeファイルにサービス定義が1つ以上あるかを返す。"""
        document = load_compose_document(compose_path)
        return document is not None and document.has_services

    def up(self, compose_path: Path) -> tuple[list[str], int]:
        """`up -d` を実行し、(コマンド, 終了コード) を返す。"""
        args = self._command(compose_path, "up", "-d")
        return args, self._execute(args)

    def down(self, compose_path: Path) -> tuple[list[str], int]:
        """`down` を実行し、(コマンド, 終了コード) を返す。"""
        args = self._command(compose_path, "down")
        return args, self._execute(args)

    def pull(self, compose_path: Path) -> tuple[list[str], int]:
        """`pull --ignore-pull-failures` を実行し、(コマンド, 終了コード) を返す。"""
        args = self._command(compose_path, "pull", "--ignore-pull-failures")
        return args, self._execute(args)
