"""Configuration helpers for the try-on studio service."""

from dataclasses import dataclass
from pathlib import Path
import os
from typing import Optional

DEFAULT_TRUSTED_IMAGE_ORIGIN = "https://firebasestorage.googleapis.com"
DEFAULT_ANALYSIS_MODEL = "gemini-2.0-flash-exp"
DEFAULT_IMAGE_MODEL = "gemini-2.0-flash-preview-image-generation"

_TRUTHY = {"1", "true", "yes", "on"}


def _as_bool(value: object, default: bool) -> bool:
    if value is None or value == "":
        return default
    return str(value).strip().lower() in _TRUTHY


@dataclass
class TryOnConfig:
    """Configuration values for the try-on studio.

    Everything has a local default so the service boots without any
    environment set up; secrets are expected to arrive through the runtime
    environment in deployed setups.
    """

    firebase_project_id: str = "tryon-studio-local"
    auth_mode: str = "firebase"
    auth_shared_secret: Optional[str] = None
    trusted_image_origin: str = DEFAULT_TRUSTED_IMAGE_ORIGIN
    gemini_api_key: Optional[str] = None
    analysis_model: str = DEFAULT_ANALYSIS_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    generation_workers: int = 4
    generation_timeout_seconds: float = 60.0
    http_timeout_seconds: float = 10.0
    max_photo_bytes: int = 10 * 1024 * 1024
    store_backend: str = "memory"
    store_path: Optional[str] = None
    seed_catalog: bool = True
    fail_trials_without_photo: bool = False
    environment: str | None = None

    @classmethod
    def from_env(cls) -> "TryOnConfig":
        """Build a config from environment variables or an environment YAML file.

        Environment specific YAML lives in ``config/environments/<env>.yaml`` by
        default and is merged with environment variables; an environment
        variable always wins over the file.
        """

        env_name = os.getenv("APP_ENV")
        config_path = os.getenv("APP_CONFIG_PATH")
        config_dir = Path(os.getenv("TRYON_CONFIG_DIR", "config/environments"))
        yaml_config: dict = {}

        if config_path:
            path = Path(config_path)
        elif env_name:
            path = config_dir / f"{env_name}.yaml"
        else:
            path = None

        if path and path.exists():
            yaml_config = cls._load_yaml_config(path)

        def get_value(key: str, default: Optional[str] = None) -> Optional[str]:
            env_key = key.upper()
            return os.getenv(env_key, yaml_config.get(key, default))

        defaults = cls()
        return cls(
            firebase_project_id=str(
                get_value("firebase_project_id") or defaults.firebase_project_id
            ),
            auth_mode=str(get_value("auth_mode") or defaults.auth_mode).lower(),
            auth_shared_secret=get_value("auth_shared_secret"),
            trusted_image_origin=str(
                get_value("trusted_image_origin") or defaults.trusted_image_origin
            ).rstrip("/"),
            gemini_api_key=get_value("gemini_api_key"),
            analysis_model=str(get_value("analysis_model") or defaults.analysis_model),
            image_model=str(get_value("image_model") or defaults.image_model),
            generation_workers=int(get_value("generation_workers") or defaults.generation_workers),
            generation_timeout_seconds=float(
                get_value("generation_timeout_seconds") or defaults.generation_timeout_seconds
            ),
            http_timeout_seconds=float(
                get_value("http_timeout_seconds") or defaults.http_timeout_seconds
            ),
            max_photo_bytes=int(get_value("max_photo_bytes") or defaults.max_photo_bytes),
            store_backend=str(get_value("store_backend") or defaults.store_backend).lower(),
            store_path=get_value("store_path"),
            seed_catalog=_as_bool(get_value("seed_catalog"), defaults.seed_catalog),
            fail_trials_without_photo=_as_bool(
                get_value("fail_trials_without_photo"), defaults.fail_trials_without_photo
            ),
            environment=env_name,
        )

    @staticmethod
    def _load_yaml_config(path: Path) -> dict:
        """Parse a minimal YAML/INI-style config without external dependencies."""

        config: dict[str, str] = {}
        for line in path.read_text().splitlines():
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            value = raw_value.strip()
            if (value.startswith("\"") and value.endswith("\"")) or (
                value.startswith("'") and value.endswith("'")
            ):
                value = value[1:-1]
            config[key.strip()] = value
        return config
