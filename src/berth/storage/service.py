"""ローカルファイルシステムベースのアプリケーションストア。"""

import json
import logging
import os
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path

from filelock import FileLock
from pydantic import TypeAdapter, ValidationError

from berth.config import STORE_FILENAME
from berth.models.app import ApplicationRecord, ApplicationState
from berth.models.errors import ApplicationNotFoundError, BerthError, StorageError, StoreParseError

logger = logging.getLogger(__name__)

_RECORDS_ADAPTER = TypeAdapter(list[ApplicationRecord])


class ApplicationStore:
    """アプリケーション情報を1つのJSON配列ファイルに永続化する。

    変更のたびにファイル全体を読み込み、メモリ上で更新し、一時ファイル経由で
    置き換える。読み込みから書き込みまではプロセス間の排他ロックで保護する。
    """

    def __init__(self, home_dir: Path) -> None:
        self._home_dir = home_dir
        self._store_file = home_dir / STORE_FILENAME
        self._lock = FileLock(str(home_dir / f"{STORE_FILENAME}.lock"))

    @property
    def home_dir(self) -> Path:
        return self._home_dir

    @property
    def store_file(self) -> Path:
        return self._store_file

    def get_app_dir(self, app_id: str) -> Path:
        """アプリケーションのステージングディレクトリを返す。"""
        # ディレクトリトラバーサル防止
        safe_id = Path(app_id).name
        if not safe_id or safe_id != app_id or safe_id.startswith("."):
            raise StorageError(f"Invalid application ID: {app_id}")
        # ストア自身のファイル名とは衝突させない
        if safe_id in (STORE_FILENAME, f"{STORE_FILENAME}.lock"):
            raise StorageError(f"Invalid application ID: {app_id}")
        return self._home_dir / safe_id

    def _read(self) -> list[ApplicationRecord]:
        if not self._store_file.exists():
            return []
        try:
            content = self._store_file.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Could not open file '{self._store_file}': {e}") from e
        try:
            return _RECORDS_ADAPTER.validate_json(content)
        except ValidationError as e:
            raise StoreParseError(str(self._store_file), f"Could not parse JSON: {e}") from e

    def _write(self, records: list[ApplicationRecord]) -> None:
        data = json.dumps([r.model_dump() for r in records], indent=2)
        # 同一ディレクトリに書き出してからrenameで置き換える
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self._home_dir, prefix=".config-", suffix=".json")
        except OSError as e:
            raise StorageError(f"Could not create file in '{self._home_dir}': {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp_path, self._store_file)
        except OSError as e:
            Path(tmp_path).unlink(missing_ok=True)
            raise StorageError(f"Could not write file '{self._store_file}': {e}") from e

    def _ensure_home(self) -> None:
        try:
            self._home_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create directory '{self._home_dir}': {e}") from e

    def list_applications(self) -> list[ApplicationRecord]:
        """保存されている全アプリケーションを返す。ファイルがなければ空リスト。

        Raises:
            StoreParseError: ストアファイルが壊れている場合。
        """
        return self._read()

    def get_by_id(self, app_id: str) -> ApplicationRecord:
        """IDでアプリケーションを取得する。

        Raises:
            ApplicationNotFoundError: 存在しない場合。
        """
        for record in self._read():
            if record.id == app_id:
                return record
        raise ApplicationNotFoundError(app_id)

    def exists(self, app_id: str) -> bool:
        """アプリケーションが存在するかを返す。読み込みエラーも「存在しない」とみなす。"""
        try:
            self.get_by_id(app_id)
        except BerthError:
            return False
        return True

    def upsert(self, record: ApplicationRecord) -> None:
        """同じIDの既存レコードを取り除いてから末尾に追加する。"""
        self._ensure_home()
        with self._lock:
            records = [r for r in self._read() if r.id != record.id]
            records.append(record)
            self._write(records)
        logger.debug("Persisted application %s (state=%s)", record.id, record.state)

    def _modify(self, app_id: str, modify: Callable[[ApplicationRecord], ApplicationRecord]) -> None:
        self._ensure_home()
        with self._lock:
            records = self._read()
            found = False
            for index, record in enumerate(records):
                if record.id == app_id:
                    records[index] = modify(record)
                    found = True
            if not found:
                raise ApplicationNotFoundError(app_id)
            self._write(records)

    def update_state(self, app_id: str, new_state: ApplicationState) -> None:
        """指定IDのレコードのstateのみを更新する。

        Raises:
            ApplicationNotFoundError: 存在しない場合。
        """
        self._modify(app_id, lambda record: record.model_copy(update={"state": new_state}))
        logger.debug("Application %s state changed to %s", app_id, new_state)

    def delete_by_id(self, app_id: str) -> None:
        """レコードを削除し、ステージングディレクトリがあればそれも削除する。

        Raises:
            ApplicationNotFoundError: 存在しない場合。
        """
        app_dir = self.get_app_dir(app_id)
        self._ensure_home()
        with self._lock:
            records = self._read()
            remaining = [r for r in records if r.id != app_id]
            if len(remaining) == len(records):
                raise ApplicationNotFoundError(app_id)
            self._write(remaining)

        if app_dir.exists():
            try:
                shutil.rmtree(app_dir)
            except OSError as e:
                raise StorageError(f"Could not remove directory '{app_dir}': {e}") from e
        logger.debug("Deleted application %s", app_id)
