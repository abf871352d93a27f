"""アプリケーションモデルのユニットテスト。"""

import pytest
from pydantic import ValidationError

from berth.models.app import AppDescriptor, ApplicationRecord, ComposeDocument


class TestApplicationRecord:
    def test_roundtrip_json(self) -> None:
        record = ApplicationRecord(
            id="brave-blue-otter",
            version="1.0.0",
            timestamp=1700000000,
            state="RUNNING",
            app_name="app1",
            compose_root_path="/home/user/.berth/brave-blue-otter",
            value_file_paths=["/tmp/values.yaml", "a.b=c"],
        )
        restored = ApplicationRecord.model_validate_json(record.model_dump_json())
        assert restored == record

    def test_value_file_paths_default_empty(self) -> None:
        """古いストアのレコードにvalue_file_pathsがなくても読み込める。"""
        record = ApplicationRecord.model_validate(
            {
                "id": "x",
                "version": "1",
                "timestamp": 1,
                "state": "STARTING",
                "app_name": "a",
                "compose_root_path": "/x",
            }
        )
        assert record.value_file_paths == []

    def test_invalid_state_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ApplicationRecord(
                id="x",
                version="1",
                timestamp=1,
                state="STOPPED",  # type: ignore[arg-type]
                app_name="a",
                compose_root_path="/x",
            )


class TestAppDescriptor:
    def test_extra_keys_ignored(self) -> None:
        descriptor = AppDescriptor.model_validate({"name": "app1", "version": "1.0.0", "maintainer": "ops"})
        assert descriptor.name == "app1"
        assert descriptor.version == "1.0.0"

    def test_numeric_version_coerced_to_string(self) -> None:
        descriptor = AppDescriptor.model_validate({"name": "app1", "version": 1.5})
        assert descriptor.version == "1.5"

    def test_missing_name_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppDescriptor.model_validate({"version": "1.0.0"})


class TestComposeDocument:
    def test_has_services(self) -> None:
        assert ComposeDocument.model_validate({"services": {"web": {"image": "nginx"}}}).has_services

    def test_empty_services(self) -> None:
        assert not ComposeDocument.model_validate({"services": {}}).has_services

    def test_missing_services(self) -> None:
        assert not ComposeDocument.model_validate({"networks": {"backend": {}}}).has_services

    def test_null_services(self) -> None:
        assert not ComposeDocument.model_validate({"services": None}).has_services
