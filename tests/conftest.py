"""テスト共通フィクスチャ。"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from berth.config import BerthConfig
from berth.services.lifecycle import LifecycleOrchestrator
from berth.services.process import ComposeClient, ProcessRunner
from berth.storage.service import ApplicationStore


class RecordingRunner(ProcessRunner):
    """実際にはプロセスを起動せず、呼び出しを記録するランナー。

    exit_codesにサブコマンド名（up, down, pull, version）を渡すと、その終了コードを返す。
    fail_onにパス文字列の一部を渡すと、そのcomposeファイルに対する呼び出しのみ失敗させる。
    """

    def __init__(self, exit_codes: dict[str, int] | None = None, fail_on: str | None = None) -> None:
        self.exit_codes = exit_codes or {}
        self.fail_on = fail_on
        self.calls: list[list[str]] = []

    def _exit_code(self, args: list[str]) -> int:
        self.calls.append(list(args))
        subcommand = args[3] if len(args) > 3 and args[1] == "-f" else args[-1]
        code = self.exit_codes.get(subcommand, 0)
        if self.fail_on is not None and self.fail_on not in " ".join(args):
            return 0
        return code

    def run(self, args: list[str]) -> int:
        return self._exit_code(args)

    def run_silent(self, args: list[str]) -> int:
        return self._exit_code(args)

    def subcommands(self) -> list[str]:
        """記録された呼び出しのサブコマンド名一覧。"""
        return [call[3] for call in self.calls if len(call) > 3 and call[1] == "-f"]


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """テスト用の一時ホームディレクトリ。"""
    return tmp_path / "berth-home"


@pytest.fixture
def config_dir() -> Path:
    """テンプレートとvaluesのフィクスチャディレクトリ。"""
    return Path(__file__).parent.parent / "config"


@pytest.fixture
def templates_dir(config_dir: Path) -> Path:
    return config_dir / "templates"


@pytest.fixture
def values_dir(config_dir: Path) -> Path:
    return config_dir / "values"


@pytest.fixture
def berth_config(tmp_home: Path) -> BerthConfig:
    """テスト用BerthConfig。"""
    return BerthConfig(home_dir=tmp_home, log_level="DEBUG")


@pytest.fixture
def store(tmp_home: Path) -> ApplicationStore:
    """テスト用ApplicationStore。"""
    return ApplicationStore(tmp_home)


@pytest.fixture
def runner() -> RecordingRunner:
    """すべて成功する記録用ランナー。"""
    return RecordingRunner()


@pytest.fixture
def orchestrator(berth_config: BerthConfig, store: ApplicationStore, runner: RecordingRunner) -> LifecycleOrchestrator:
    """記録用ランナーを使うLifecycleOrchestrator。"""
    return LifecycleOrchestrator(berth_config, store=store, compose=ComposeClient(berth_config, runner=runner))


@pytest.fixture
def make_orchestrator(
    tmp_home: Path, store: ApplicationStore
) -> Callable[..., tuple[LifecycleOrchestrator, RecordingRunner]]:
    """終了コードや設定を変えたLifecycleOrchestratorを作るファクトリ。"""

    def _make(
        exit_codes: dict[str, int] | None = None,
        fail_on: str | None = None,
        **config_overrides: Any,
    ) -> tuple[LifecycleOrchestrator, RecordingRunner]:
        config = BerthConfig(home_dir=tmp_home, **config_overrides)
        recording = RecordingRunner(exit_codes=exit_codes, fail_on=fail_on)
        compose = ComposeClient(config, runner=recording)
        return LifecycleOrchestrator(config, store=store, compose=compose), recording

    return _make
