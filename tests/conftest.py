from __future__ import annotations

import pytest

from resumable_store.common import config as config_module
from resumable_store.common.config import get_settings

_SETTINGS_ENV = (
    "STORAGE_BACKEND",
    "STORAGE_TYPE_NAME",
    "STORAGE_PRESIGN_EXPIRES_SECONDS",
    "S3_BUCKET",
    "S3_PREFIX",
    "S3_ENDPOINT_URL",
    "S3_REGION",
    "S3_ACCESS_KEY_ID",
    "S3_SECRET_ACCESS_KEY",
    "S3_USE_SSL",
    "S3_ADDRESSING_STYLE",
    "S3_AUTO_CREATE_BUCKET",
    "UPLOAD_ID_ATTRIBUTE",
    "ENABLE_METRICS",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    for name in _SETTINGS_ENV:
        # setenv first so teardown also drops values loaded from .env files
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setattr(config_module, "ENV_FILE", tmp_path / ".env")
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]
