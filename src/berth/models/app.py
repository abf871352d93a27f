"""アプリケーション関連のデータモデル。"""

from typing import Any, Literal

from pydantic import BaseModel, Field

ApplicationState = Literal["STARTING", "RUNNING", "ERROR"]


class ApplicationRecord(BaseModel):
    """ストアに永続化されるアプリケーション情報。"""

    id: str
    version: str
    timestamp: int
    state: ApplicationState
    app_name: str
    compose_root_path: str
    value_file_paths: list[str] = Field(default_factory=list)


class AppDescriptor(BaseModel):
    """テンプレート直下のアプリケーション記述子。未知のキーは無視する。"""

    # version: 1.0 のような数値表記も文字列として受け付ける
    model_config = {"coerce_numbers_to_str": True}

    name: str
    version: str


class ComposeDocument(BaseModel):
    """composeファイルのうちservicesの有無だけを見るための部分モデル。"""

    services: dict[str, Any] | list[Any] | None = None

    @property
    def has_services(self) -> bool:
        return bool(self.services)
