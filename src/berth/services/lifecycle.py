"""アプリケーションのインストール・アップグレード・削除を行うサービス。"""

from __future__ import annotations

import logging
import shlex
import shutil
import time
from pathlib import Path
from typing import Any

import yaml
from coolname import generate_slug
from pydantic import ValidationError

from berth.config import COMPOSE_FILENAME, DESCRIPTOR_FILENAME, TEMPLATE_SUFFIX, BerthConfig
from berth.models.app import AppDescriptor, ApplicationRecord
from berth.models.errors import (
    ApplicationExistsError,
    ApplicationNotFoundError,
    ApplicationNotInstalledError,
    BerthError,
    ComposeFileNotFoundError,
    DescriptorNotFoundError,
    DescriptorParseError,
    ExternalCommandError,
    FileOperationError,
    MissingIdError,
    NoValueFilesError,
    TemplateDirNotFoundError,
    TemplateFileNotFoundError,
)
from berth.services.process import ComposeClient
from berth.services.staging import IgnoreAwareCopier, load_ignore_rules
from berth.services.template import TemplateRenderer
from berth.services.values import ValueConsolidator
from berth.storage.service import ApplicationStore

logger = logging.getLogger(__name__)

_NO_VALUES_INSTALL = "You cannot install an application with no values file."
_NO_VALUES_UPGRADE = "You cannot upgrade an application with no values file."
_NO_VALUES_TEMPLATE = "You cannot create a template with no values file. Use -v <values path> to specify values file."


def find_compose_files(root: Path) -> list[Path]:
    """root配下のcomposeファイルをパス順で返す。"""
    return sorted(p for p in root.rglob(COMPOSE_FILENAME) if p.is_file())


def find_template_files(root: Path) -> list[Path]:
    """root配下のテンプレートファイルをパス順で返す。"""
    return sorted(p for p in root.rglob(f"*{TEMPLATE_SUFFIX}") if p.is_file())


def load_descriptor(path: Path) -> AppDescriptor:
    """アプリケーション記述子を読み込む。

    Raises:
        DescriptorNotFoundError: ファイルが存在しない場合。
        DescriptorParseError: YAMLとして不正、またはname/versionが欠けている場合。
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise DescriptorNotFoundError(path) from None
    except (OSError, yaml.YAMLError) as e:
        raise DescriptorParseError(str(path), str(e)) from e

    try:
        return AppDescriptor.model_validate(data)
    except ValidationError as e:
        raise DescriptorParseError(str(path), str(e)) from e


class LifecycleOrchestrator:
    """ステージング・描画・永続化・compose実行を組み合わせてライフサイクルを管理する。

    1回の install / upgrade でのレコード状態は STARTING から RUNNING または
    ERROR へのみ遷移する。
    """

    def __init__(
        self,
        config: BerthConfig,
        store: ApplicationStore | None = None,
        compose: ComposeClient | None = None,
        consolidator: ValueConsolidator | None = None,
        copier: IgnoreAwareCopier | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self._config = config
        self._store = store or ApplicationStore(config.home_dir)
        self._compose = compose or ComposeClient(config)
        self._consolidator = consolidator or ValueConsolidator()
        self._copier = copier or IgnoreAwareCopier()
        self._renderer = renderer or TemplateRenderer()

    @property
    def store(self) -> ApplicationStore:
        return self._store

    def is_compose_installed(self) -> bool:
        """composeコマンドが使えるかを返す。no_run時は常にTrue。"""
        return self._config.no_run or self._compose.is_installed()

    @staticmethod
    def generate_id() -> str:
        """人が読める3語のランダムIDを生成する。"""
        return str(generate_slug(3))

    # ----------------------------------------------------------------
    # 事前条件チェック
    # ----------------------------------------------------------------

    def _validate_template_dir(self, template_dir: Path) -> None:
        """テンプレートディレクトリに記述子とcomposeファイルがあることを確認する。"""
        if not template_dir.is_dir():
            raise TemplateDirNotFoundError(template_dir)
        descriptor = template_dir / DESCRIPTOR_FILENAME
        if not descriptor.is_file():
            raise DescriptorNotFoundError(descriptor)
        if not find_compose_files(template_dir):
            raise ComposeFileNotFoundError(template_dir, COMPOSE_FILENAME)

    def _prepare(self, template_dir: Path, value_files: list[str], no_values_message: str) -> dict[str, Any]:
        """valuesの統合とテンプレートの検証を行う。ファイルシステムは変更しない。"""
        if not value_files:
            raise NoValueFilesError(no_values_message)
        values = self._consolidator.consolidate(value_files)
        self._validate_template_dir(template_dir)
        return values

    # ----------------------------------------------------------------
    # install / upgrade
    # ----------------------------------------------------------------

    def install(
        self,
        template_dir: Path,
        value_files: list[str],
        app_id: str | None = None,
    ) -> ApplicationRecord:
        """テンプレートからアプリケーションをインストールする。

        Args:
            template_dir: テンプレートのソースディレクトリ。
            value_files: valuesファイルパスまたは `a.b.c=value` 形式の上書き指定。
            app_id: アプリケーションID。省略時はランダムに生成する。

        Returns:
            RUNNING状態のアプリケーションレコード。

        Raises:
            ApplicationExistsError: 同じIDが既にステージされている場合。
            NoValueFilesError: valuesが1つも指定されていない場合。
            ExternalCommandError: `up` が失敗した場合（レコードはERRORになる）。
        """
        app_id = app_id or self.generate_id()
        logger.info("Installing application with ID: %s", app_id)

        app_dir = self._store.get_app_dir(app_id)
        if app_dir.exists():
            raise ApplicationExistsError(app_id)

        values = self._prepare(template_dir, value_files, _NO_VALUES_INSTALL)
        return self._deploy(app_id, template_dir, value_files, values)

    def upgrade(
        self,
        app_id: str | None,
        template_dir: Path,
        value_files: list[str] | None = None,
    ) -> ApplicationRecord:
        """既存アプリケーションをテンプレートから再構築する。

        value_filesが空の場合は前回保存したvaluesを使う。

        Raises:
            MissingIdError: IDが指定されていない場合。
            ApplicationNotInstalledError: ステージングディレクトリが存在しない場合。
            NoValueFilesError: 指定も保存済みのvaluesもない場合。
            ExternalCommandError: `up` が失敗した場合（レコードはERRORになる）。
        """
        if not app_id:
            raise MissingIdError("upgrade")

        app_dir = self._store.get_app_dir(app_id)
        if not app_dir.exists():
            raise ApplicationNotInstalledError(app_id)

        resolved = list(value_files or [])
        if not resolved:
            try:
                resolved = list(self._store.get_by_id(app_id).value_file_paths)
            except ApplicationNotFoundError:
                resolved = []
            if resolved:
                logger.info("No values given, reusing stored values: %s", ", ".join(resolved))

        logger.info("Upgrading application with ID: %s", app_id)
        values = self._prepare(template_dir, resolved, _NO_VALUES_UPGRADE)

        # 差分は取らずに作り直す
        logger.debug("Removing staged directory: %s", app_dir)
        try:
            shutil.rmtree(app_dir)
        except OSError as e:
            raise FileOperationError(app_dir, str(e)) from e

        return self._deploy(app_id, template_dir, resolved, values)

    def _deploy(
        self,
        app_id: str,
        template_dir: Path,
        value_files: list[str],
        values: dict[str, Any],
    ) -> ApplicationRecord:
        """ステージングからcompose upまでを実行する。"""
        app_dir = self._store.get_app_dir(app_id)
        try:
            app_dir.mkdir(parents=True)
        except OSError as e:
            raise FileOperationError(app_dir, str(e)) from e
        self._copier.stage(template_dir, app_dir, load_ignore_rules(template_dir))

        descriptor = load_descriptor(app_dir / DESCRIPTOR_FILENAME)
        resolved_sources = ValueConsolidator.resolve_sources(value_files)

        # ここから先でプロセスが落ちるとレコードはSTARTINGのまま残る
        record = ApplicationRecord(
            id=app_id,
            version=descriptor.version,
            timestamp=int(time.time()),
            state="STARTING",
            app_name=descriptor.name,
            compose_root_path=str(app_dir),
            value_file_paths=resolved_sources,
        )
        self._store.upsert(record)

        try:
            self._render_templates(app_dir, values)
            compose_files = find_compose_files(app_dir)
            if self._config.always_pull:
                self._pull(compose_files)
            self._up(app_id, compose_files)
        except BerthError:
            self._store.update_state(app_id, "ERROR")
            raise

        record = record.model_copy(update={"state": "RUNNING"})
        self._store.upsert(record)
        logger.info("Application %s (%s %s) is running", app_id, record.app_name, record.version)
        return record

    def _render_templates(self, app_dir: Path, values: dict[str, Any]) -> None:
        """ステージ済みのテンプレートを描画結果で置き換える。ファイル名は変えない。"""
        for template_path in find_template_files(app_dir):
            rendered = self._renderer.render(template_path, values)
            try:
                template_path.unlink()
                template_path.write_text(rendered, encoding="utf-8")
            except OSError as e:
                raise FileOperationError(template_path, str(e)) from e

    def _pull(self, compose_files: list[Path]) -> None:
        logger.info("Always pull is enabled. Pulling latest images. Will ignore failures of local images.")
        for compose_path in compose_files:
            args, exit_code = self._compose.pull(compose_path)
            if exit_code != 0:
                logger.warning("%s failed with exit code %d, continuing", shlex.join(args), exit_code)

    def _up(self, app_id: str, compose_files: list[Path]) -> None:
        for compose_path in compose_files:
            if not self._compose.has_services(compose_path):
                # サブcomposeファイルとして有効なケース
                logger.debug("Compose file %s has been skipped due to having no services defined.", compose_path)
                continue

            args, exit_code = self._compose.up(compose_path)
            if exit_code != 0:
                logger.error("docker-compose up has failed for app %s", app_id)
                raise ExternalCommandError(
                    f"docker-compose up failed for {compose_path} of application '{app_id}' (exit code {exit_code})",
                    args,
                    exit_code,
                )

    # ----------------------------------------------------------------
    # delete / list / template
    # ----------------------------------------------------------------

    def delete(self, app_ids: list[str] | None = None, delete_all: bool = False) -> list[str]:
        """アプリケーションを停止して削除する。

        明示的なID指定の場合、全IDの存在を先に確認し、1つでも存在しなければ
        何も削除しない。`down` の失敗はログに残してERRORへ遷移させるが、
        処理は止めない。

        Args:
            app_ids: 削除対象のID一覧。
            delete_all: Trueの場合は全アプリケーションを対象にする。

        Returns:
            削除したIDの一覧。

        Raises:
            MissingIdError: IDもdelete_allも指定されていない場合。
            ApplicationNotFoundError: 存在しないIDが含まれる場合。
        """
        if delete_all:
            targets = [record.id for record in self._store.list_applications()]
        else:
            targets = list(dict.fromkeys(app_ids or []))
            if not targets:
                raise MissingIdError("delete")
            missing = [app_id for app_id in targets if not self._store.exists(app_id)]
            if missing:
                raise ApplicationNotFoundError(*missing)

        for app_id in targets:
            logger.info("Deleting application %s", app_id)
            app_dir = self._store.get_app_dir(app_id)
            if app_dir.exists():
                for compose_path in find_compose_files(app_dir):
                    args, exit_code = self._compose.down(compose_path)
                    if exit_code != 0:
                        logger.warning(
                            "docker-compose down has failed for app %s. Some containers may still persist. (%s)",
                            app_id,
                            shlex.join(args),
                        )
                        self._store.update_state(app_id, "ERROR")
            self._store.delete_by_id(app_id)
        return targets

    def list_applications(self) -> list[ApplicationRecord]:
        """インストール済みのアプリケーション一覧を返す。"""
        return self._store.list_applications()

    def template(
        self,
        template_path: Path,
        value_files: list[str],
        output_file: Path | None = None,
    ) -> str:
        """ストアやcomposeを使わずにテンプレートを1つ描画する。

        Args:
            template_path: テンプレートファイル。
            value_files: valuesファイルパスまたは上書き指定。
            output_file: 指定された場合は描画結果を書き出す。

        Returns:
            描画結果。
        """
        if not template_path.is_file():
            raise TemplateFileNotFoundError()
        if not value_files:
            raise NoValueFilesError(_NO_VALUES_TEMPLATE)

        values = self._consolidator.consolidate(value_files)
        rendered = self._renderer.render(template_path, values)
        if output_file is not None:
            try:
                output_file.write_text(rendered, encoding="utf-8")
            except OSError as e:
                raise FileOperationError(output_file, str(e)) from e
        return rendered
