"""Application configuration (Pydantic v2). Load from snapsight.yml with optional env override."""

import os
from pathlib import Path
from typing import Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator


DEFAULT_CONFIG_ENV_VAR = "SNAPSIGHT_CONFIG"
DEFAULT_CONFIG_FILENAME = "snapsight.yml"
API_KEY_ENV_VAR = "OPENAI_API_KEY"

# Env var -> (section, field) applied on top of the default config.
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "SNAPSIGHT_UPLOAD_ENDPOINT": ("upload", "endpoint"),
    "SNAPSIGHT_VISION_MODEL": ("proxy", "vision_model"),
    "SNAPSIGHT_LOG_LEVEL": (None, "log_level"),
}


class CameraSettings(BaseModel):
    """Device acquisition: facing-mode fallback and preview mirroring."""

    model_config = {"extra": "ignore"}

    default_facing_mode: Literal["rear", "front"] = "rear"
    mirror_front_camera: bool = True
    allow_any_device: bool = True
    ideal_width: int = 1280
    ideal_height: int = 720
    # OpenCV device index per facing mode (desktop backend only).
    device_indices: dict[str, int] = Field(default_factory=lambda: {"rear": 0, "front": 1})


class CaptureSettings(BaseModel):
    """Still frame crop, downscale and JPEG encoding."""

    model_config = {"extra": "ignore"}

    crop_mode: Literal["square", "full"] = "square"
    max_size: int = Field(default=800, gt=0)
    quality: float = Field(default=0.8, gt=0.0, le=1.0)

    @property
    def jpeg_quality(self) -> int:
        """Map 0..1 canvas-style quality onto Pillow's 1..95 JPEG scale."""
        return max(1, min(95, int(round(self.quality * 100))))


class UploadSettings(BaseModel):
    """Upload client: proxy endpoint, transport and in-flight policy."""

    model_config = {"extra": "ignore"}

    endpoint: str = "http://localhost:8000/api/vision"
    transport: Literal["multipart", "json"] = "multipart"
    timeout_seconds: float = Field(default=30.0, gt=0)
    concurrency: Literal["disallow", "supersede"] = "disallow"


class ProxySettings(BaseModel):
    """Analysis proxy: remote model request shape and input limits."""

    model_config = {"extra": "ignore"}

    vision_model: str = "openai"
    model: str = "gpt-4o"
    api_base: str = "https://api.openai.com/v1"
    prompt: str = "What's in this image? Describe what you see briefly."
    max_tokens: int = Field(default=300, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_upload_bytes: int = 5 * 1024 * 1024
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class Settings(BaseModel):
    """
    Config loaded from YAML.

    Each component is constructed with its own section (settings.camera, settings.capture, ...);
    nothing below the entry points reads a global.
    """

    model_config = {"extra": "ignore"}

    camera: CameraSettings = Field(default_factory=CameraSettings)
    capture: CaptureSettings = Field(default_factory=CaptureSettings)
    upload: UploadSettings = Field(default_factory=UploadSettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)
    log_level: str = "INFO"
    forensics_dir: str = "logs/forensics"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: object) -> str:
        if v is None or v == "":
            return "INFO"
        return str(v).upper()


_config: Settings | None = None


class ConfigLoader:
    """
    Helper responsible for loading Settings from YAML and environment.

    - load_from_yaml(path, apply_env_override): read a YAML file and optionally apply env overrides.
    - load_default(): resolve the default config path from SNAPSIGHT_CONFIG / snapsight.yml and
      apply SNAPSIGHT_* overrides when present.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def _apply_env(self, data: dict) -> dict:
        for var, (section, field) in ENV_OVERRIDES.items():
            value = self._env.get(var)
            if not value:
                continue
            if section is None:
                data[field] = value
            else:
                data.setdefault(section, {})
                data[section][field] = value
        return data

    def load_from_yaml(self, path: Path, apply_env_override: bool) -> Settings:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f)
        if not data:
            data = {}
        if apply_env_override:
            data = self._apply_env(data)
        return Settings.model_validate(data)

    def load_default(self) -> Settings:
        """
        Load the default Settings, using SNAPSIGHT_CONFIG or snapsight.yml.

        When no explicit config_path is provided, SNAPSIGHT_* environment variables override
        the YAML values or the defaults.
        """
        path_str = self._env.get(DEFAULT_CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILENAME
        path = Path(path_str)
        if path.exists():
            return self.load_from_yaml(path, apply_env_override=True)
        return Settings.model_validate(self._apply_env({}))

    def load_api_key(self) -> str | None:
        """Read the remote vision API credential. Never stored on Settings."""
        key = self._env.get(API_KEY_ENV_VAR, "").strip()
        return key or None


_loader = ConfigLoader()


def get_config(config_path: str | Path | None = None) -> Settings:
    """
    Return singleton config for entry points (API dependencies, CLI).

    - If config_path is given, load from it (without env overrides) and update the cache.
    - Otherwise, return the cached config if available, or load via ConfigLoader.load_default().
    """
    global _config
    if config_path is not None:
        _config = _loader.load_from_yaml(Path(config_path), apply_env_override=False)
        return _config
    if _config is not None:
        return _config
    _config = _loader.load_default()
    return _config


def load_api_key(env: Mapping[str, str] | None = None) -> str | None:
    """Return OPENAI_API_KEY from env (or os.environ), or None when unset."""
    return ConfigLoader(env).load_api_key()


def reset_config() -> None:
    """Clear cached config (for tests)."""
    global _config
    _config = None
