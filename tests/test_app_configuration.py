from pathlib import Path

import pytest
import yaml

from reportcord.configuration.ai_settings import AISettings
from reportcord.configuration.app_configuration import AppConfig


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    config_payload = {
        "ai_settings": {
            "base_url": "http://localhost:8000/v1",
            "api_key": "sk-test",
            "model_name": "test-model",
            "temperature": 0.5,
            "max_tokens": 256,
        },
        "report": {"authority": 2, "max_report_time_minutes": 15},
        "cleanup": {"interval_seconds": 120},
        "notifications": {"channel_id": "123456"},
        "database": {"path": "./tmp/test.db"},
    }
    config_path.write_text(yaml.safe_dump(config_payload), encoding="utf-8")

    config = AppConfig(config_path)

    assert config.get("report") == {"authority": 2, "max_report_time_minutes": 15}
    assert config.report_defaults == {"authority": 2, "max_report_time_minutes": 15}
    assert config.cleanup_interval == pytest.approx(120.0)
    assert config.notification_channel_id == 123456
    assert config.database_path == Path("./tmp/test.db")

    ai_settings = config.ai_settings
    assert ai_settings.base_url == "http://localhost:8000/v1"
    assert ai_settings.api_key == "sk-test"
    assert ai_settings.model_name == "test-model"
    assert ai_settings.temperature == pytest.approx(0.5)
    assert ai_settings.max_tokens == 256


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    assert config.report_defaults == {}
    assert config.cleanup_interval == pytest.approx(600.0)
    assert config.notification_channel_id is None
    assert config.database_path == Path("./data/reportcord.db")


def test_app_config_non_mapping_yaml_is_ignored(config_path: Path) -> None:
    config_path.write_text("- just\n- a list\n", encoding="utf-8")
    assert AppConfig(config_path).data == {}


def test_app_config_reload_picks_up_changes(config_path: Path) -> None:
    config_path.write_text(yaml.safe_dump({"cleanup": {"interval_seconds": 30}}), encoding="utf-8")
    config = AppConfig(config_path)
    assert config.cleanup_interval == pytest.approx(30.0)

    config_path.write_text(yaml.safe_dump({"cleanup": {"interval_seconds": 90}}), encoding="utf-8")
    config.reload()
    assert config.cleanup_interval == pytest.approx(90.0)


def test_ai_settings_defaults(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    settings = AISettings()

    assert settings.base_url is None
    assert settings.api_key is None
    assert settings.model_name == "gpt-4o-mini"
    assert settings.temperature == pytest.approx(0.2)
    assert settings.max_tokens == 1024
    assert settings.as_dict() == {}


def test_ai_settings_api_key_falls_back_to_environment(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    assert AISettings({}).api_key == "sk-env"
    assert AISettings({"api_key": "sk-config"}).api_key == "sk-config"
