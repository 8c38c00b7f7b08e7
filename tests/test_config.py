"""Tests for Settings loading: YAML, env overrides, and keeping the credential out of config."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from snapsight.core.config import (
    ConfigLoader,
    ProxySettings,
    Settings,
    get_config,
    load_api_key,
)

pytestmark = [pytest.mark.fast]


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "snapsight.yml"
    path.write_text(text)
    return path


def test_defaults_match_documented_constants():
    settings = Settings()
    assert settings.capture.max_size == 800
    assert settings.capture.quality == 0.8
    assert settings.capture.jpeg_quality == 80
    assert settings.capture.crop_mode == "square"
    assert settings.upload.timeout_seconds == 30
    assert settings.upload.transport == "multipart"
    assert settings.proxy.max_tokens == 300
    assert settings.proxy.model == "gpt-4o"
    assert settings.camera.default_facing_mode == "rear"
    assert settings.log_level == "INFO"


def test_load_from_yaml(tmp_path):
    path = _write(
        tmp_path,
        """
capture:
  max_size: 640
  quality: 0.5
upload:
  transport: json
  endpoint: http://example.test/api/vision
proxy:
  api_base: https://llm.example.test/v1/
log_level: debug
""",
    )
    settings = ConfigLoader(env={}).load_from_yaml(path, apply_env_override=False)
    assert settings.capture.max_size == 640
    assert settings.capture.jpeg_quality == 50
    assert settings.upload.transport == "json"
    assert settings.proxy.api_base == "https://llm.example.test/v1"
    assert settings.log_level == "DEBUG"


def test_empty_yaml_gives_defaults(tmp_path):
    path = _write(tmp_path, "")
    assert ConfigLoader(env={}).load_from_yaml(path, apply_env_override=False) == Settings()


def test_missing_yaml_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigLoader(env={}).load_from_yaml(tmp_path / "nope.yml", apply_env_override=False)


def test_env_overrides_yaml(tmp_path):
    path = _write(tmp_path, "upload:\n  endpoint: http://from-yaml/api/vision\n")
    env = {
        "SNAPSIGHT_CONFIG": str(path),
        "SNAPSIGHT_UPLOAD_ENDPOINT": "http://from-env/api/vision",
        "SNAPSIGHT_VISION_MODEL": "mock",
        "SNAPSIGHT_LOG_LEVEL": "warning",
    }
    settings = ConfigLoader(env=env).load_default()
    assert settings.upload.endpoint == "http://from-env/api/vision"
    assert settings.proxy.vision_model == "mock"
    assert settings.log_level == "WARNING"


def test_load_default_without_file_uses_env(tmp_path):
    env = {"SNAPSIGHT_CONFIG": str(tmp_path / "absent.yml"), "SNAPSIGHT_VISION_MODEL": "mock"}
    settings = ConfigLoader(env=env).load_default()
    assert settings.proxy.vision_model == "mock"
    assert settings.capture == Settings().capture


@pytest.mark.parametrize(
    "section, data",
    [
        ("capture", {"capture": {"quality": 1.5}}),
        ("capture", {"capture": {"max_size": 0}}),
        ("upload", {"upload": {"transport": "carrier-pigeon"}}),
        ("camera", {"camera": {"default_facing_mode": "sideways"}}),
    ],
)
def test_invalid_values_rejected(section, data):
    with pytest.raises(ValidationError, match=section):
        Settings.model_validate(data)


def test_api_key_never_on_settings(tmp_path):
    path = _write(tmp_path, "proxy:\n  api_key: sk-should-be-ignored\n")
    settings = ConfigLoader(env={"OPENAI_API_KEY": "sk-env"}).load_from_yaml(path, apply_env_override=True)
    assert "sk-should-be-ignored" not in settings.model_dump_json()
    assert "sk-env" not in settings.model_dump_json()
    assert not hasattr(settings.proxy, "api_key")


@pytest.mark.parametrize(
    "env, expected",
    [({"OPENAI_API_KEY": "sk-abc"}, "sk-abc"), ({"OPENAI_API_KEY": "  "}, None), ({}, None)],
)
def test_load_api_key(env, expected):
    assert load_api_key(env) == expected


def test_get_config_caches_and_explicit_path_replaces(tmp_path, monkeypatch):
    monkeypatch.delenv("SNAPSIGHT_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    first = get_config()
    assert get_config() is first

    path = _write(tmp_path, "proxy:\n  max_tokens: 50\n")
    loaded = get_config(path)
    assert loaded.proxy.max_tokens == 50
    assert get_config() is loaded


def test_proxy_settings_strip_trailing_slash():
    assert ProxySettings(api_base="https://api.example.test/v1///").api_base == "https://api.example.test/v1"
