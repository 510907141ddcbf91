from __future__ import annotations

import pytest

from objstore.common import config as config_module
from objstore.common.config import Settings, get_settings

ENV_VARS = (
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_REGION",
    "AWS_DEFAULT_REGION",
    "OBJSTORE_ENDPOINT_URL",
    "OBJSTORE_ADDRESSING_STYLE",
    "OBJSTORE_USE_SSL",
    "OBJSTORE_EXPIRATION_SECONDS",
    "OBJSTORE_CHUNK_SIZE",
    "OBJSTORE_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep the host environment and any .env file out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "ENV_FILE", tmp_path / ".env")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def settings() -> Settings:
    return Settings(OBJSTORE_CHUNK_SIZE=4)
