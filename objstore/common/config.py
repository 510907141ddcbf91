from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_FILE = Path(".env")

DEFAULT_EXPIRATION_SECONDS = 28800  # 8 hours
DEFAULT_CHUNK_SIZE = 64 * 1024


def _load_env_file() -> None:
    if not ENV_FILE.exists():
        return
    for raw_line in ENV_FILE.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _invalid(message: str) -> Exception:
    # imported here: the storage package imports this module at load time
    from objstore.infra.storage.errors import ConfigurationError

    return ConfigurationError(message)


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "y", "on"}


def _as_int(name: str, value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise _invalid(f"{name} must be a positive integer, got {value!r}.") from exc


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class Settings:
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None
    AWS_REGION: str | None = None
    OBJSTORE_ENDPOINT_URL: str | None = None
    OBJSTORE_ADDRESSING_STYLE: str = "path"
    OBJSTORE_USE_SSL: bool = True
    OBJSTORE_EXPIRATION_SECONDS: int = DEFAULT_EXPIRATION_SECONDS
    OBJSTORE_CHUNK_SIZE: int = DEFAULT_CHUNK_SIZE
    OBJSTORE_LOG_LEVEL: str = "INFO"

    def __post_init__(self) -> None:
        if self.OBJSTORE_EXPIRATION_SECONDS <= 0:
            raise _invalid("OBJSTORE_EXPIRATION_SECONDS must be a positive integer.")
        if self.OBJSTORE_CHUNK_SIZE <= 0:
            raise _invalid("OBJSTORE_CHUNK_SIZE must be a positive integer.")

    @property
    def has_credentials(self) -> bool:
        return bool(self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY)

    @classmethod
    def from_environment(cls) -> "Settings":
        _load_env_file()
        region = _blank_to_none(
            os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")
        )
        return cls(
            AWS_ACCESS_KEY_ID=_blank_to_none(os.environ.get("AWS_ACCESS_KEY_ID")),
            AWS_SECRET_ACCESS_KEY=_blank_to_none(
                os.environ.get("AWS_SECRET_ACCESS_KEY")
            ),
            AWS_REGION=region,
            OBJSTORE_ENDPOINT_URL=_blank_to_none(
                os.environ.get("OBJSTORE_ENDPOINT_URL")
            ),
            OBJSTORE_ADDRESSING_STYLE=os.environ.get(
                "OBJSTORE_ADDRESSING_STYLE", cls.OBJSTORE_ADDRESSING_STYLE
            ),
            OBJSTORE_USE_SSL=_as_bool(
                os.environ.get("OBJSTORE_USE_SSL"), cls.OBJSTORE_USE_SSL
            ),
            OBJSTORE_EXPIRATION_SECONDS=_as_int(
                "OBJSTORE_EXPIRATION_SECONDS",
                os.environ.get("OBJSTORE_EXPIRATION_SECONDS"),
                cls.OBJSTORE_EXPIRATION_SECONDS,
            ),
            OBJSTORE_CHUNK_SIZE=_as_int(
                "OBJSTORE_CHUNK_SIZE",
                os.environ.get("OBJSTORE_CHUNK_SIZE"),
                cls.OBJSTORE_CHUNK_SIZE,
            ),
            OBJSTORE_LOG_LEVEL=os.environ.get(
                "OBJSTORE_LOG_LEVEL", cls.OBJSTORE_LOG_LEVEL
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_environment()
