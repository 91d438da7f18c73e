"""Pytest configuration and fixtures for storagekit.

Every test starts from a clean process state: empty backend registry, empty
factory cache, fresh config cache, only the built-in config schemas, and no
STORAGE_* variables inherited from the environment.
"""

import os
from collections.abc import Iterator

import pytest

from storagekit.core.config import register_builtin_configs, reset_storage_config
from storagekit.core.config_registry import reset_config_registry
from storagekit.infrastructure.storage.factory import reset_all


@pytest.fixture(autouse=True)
def clean_storage_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset registries and caches around each test."""
    for name in list(os.environ):
        if name.upper().startswith("STORAGE_"):
            monkeypatch.delenv(name, raising=False)
    reset_all()
    reset_storage_config()
    reset_config_registry()
    register_builtin_configs()
    yield
    reset_all()
    reset_storage_config()
    reset_config_registry()
    register_builtin_configs()


@pytest.fixture
def s3_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Valid S3 environment pointing at a MinIO-style endpoint."""
    env = {
        "STORAGE_BACKEND": "s3",
        "STORAGE_S3_ENDPOINT": "http://localhost:9000",
        "STORAGE_S3_REGION": "us-east-1",
        "STORAGE_S3_BUCKET": "test-bucket",
        "STORAGE_S3_ACCESS_KEY_ID": "minioadmin",
        "STORAGE_S3_SECRET_ACCESS_KEY": "minioadmin-secret",
    }
    for name, value in env.items():
        monkeypatch.setenv(name, value)
    return env


@pytest.fixture
def local_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> str:
    """Local backend rooted in a temporary directory."""
    root = str(tmp_path / "uploads")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_LOCAL_PATH", root)
    return root
