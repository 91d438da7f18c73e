"""Storage configuration (settings and environment).

Uses pydantic-settings with .env support. Nothing is parsed at import time:
the first call to get_storage_config() validates the common settings plus
the schema registered for the selected STORAGE_BACKEND, and caches the
resulting immutable snapshot. Unknown backends validate to an empty backend
config; they fail later, when the registry cannot resolve them.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, TypeVar, overload
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from storagekit.core.config_registry import get_backend_config_schema, register_backend_config
from storagekit.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "local"
DEFAULT_MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_QUOTA_BYTES = 1024 * 1024 * 1024  # 1GB
DEFAULT_SIGNED_URL_EXPIRATION_SECONDS = 15 * 60

_SETTINGS_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    case_sensitive=False,
    # An empty variable means unset, e.g. STORAGE_S3_FORCE_PATH_STYLE=""
    env_ignore_empty=True,
    frozen=True,
)

T = TypeVar("T", bound=BaseModel)
S = TypeVar("S", bound=BaseSettings)


def _require_secret(value: SecretStr) -> SecretStr:
    if not value.get_secret_value():
        raise ValueError("must not be empty")
    return value


class CommonStorageSettings(BaseSettings):
    """Settings shared by every backend."""

    storage_backend: str = Field(default=DEFAULT_BACKEND, min_length=1)
    storage_max_file_size_bytes: int = Field(default=DEFAULT_MAX_FILE_SIZE_BYTES, gt=0)
    storage_quota_bytes: int = Field(default=DEFAULT_QUOTA_BYTES, gt=0)
    storage_signed_url_expiration_seconds: int = Field(
        default=DEFAULT_SIGNED_URL_EXPIRATION_SECONDS, gt=0
    )

    model_config = _SETTINGS_CONFIG


class LocalStorageSettings(BaseSettings):
    """Local filesystem backend settings."""

    storage_local_path: str = Field(default="./storage/uploads", min_length=1)
    # Prefix for signed URLs (e.g. https://api.example.com); relative URLs when unset
    storage_local_base_url: str | None = None

    model_config = _SETTINGS_CONFIG


class S3StorageSettings(BaseSettings):
    """S3-compatible backend settings (AWS S3, MinIO).

    The endpoint is optional for AWS. Setting it (MinIO, Spaces) switches
    the client to path-style addressing unless STORAGE_S3_FORCE_PATH_STYLE
    says otherwise.
    """

    storage_s3_endpoint: str | None = None
    storage_s3_region: str = Field(min_length=1)
    storage_s3_bucket: str = Field(min_length=1)
    storage_s3_access_key_id: str = Field(min_length=1)
    storage_s3_secret_access_key: SecretStr
    storage_s3_force_path_style: bool | None = None

    model_config = _SETTINGS_CONFIG

    @field_validator("storage_s3_endpoint")
    @classmethod
    def _validate_endpoint(cls, value: str | None) -> str | None:
        if value is None:
            return value
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("must be a valid http(s) URL")
        return value

    @field_validator("storage_s3_secret_access_key")
    @classmethod
    def _validate_secret(cls, value: SecretStr) -> SecretStr:
        return _require_secret(value)

    @property
    def use_path_style(self) -> bool:
        if self.storage_s3_force_path_style is not None:
            return self.storage_s3_force_path_style
        return bool(self.storage_s3_endpoint)


class AzureStorageSettings(BaseSettings):
    """Azure Blob Storage settings."""

    storage_azure_account_name: str = Field(min_length=1)
    storage_azure_access_key: SecretStr
    storage_azure_container: str = Field(min_length=1)

    model_config = _SETTINGS_CONFIG

    @field_validator("storage_azure_access_key")
    @classmethod
    def _validate_secret(cls, value: SecretStr) -> SecretStr:
        return _require_secret(value)


class GcsStorageSettings(BaseSettings):
    """Google Cloud Storage settings. Without a key file, application default credentials apply."""

    storage_gcs_project_id: str = Field(min_length=1)
    storage_gcs_bucket: str = Field(min_length=1)
    storage_gcs_key_file_path: str | None = None

    model_config = _SETTINGS_CONFIG


class AliyunStorageSettings(BaseSettings):
    """Aliyun OSS settings."""

    storage_aliyun_region: str = Field(min_length=1)
    storage_aliyun_bucket: str = Field(min_length=1)
    storage_aliyun_access_key_id: str = Field(min_length=1)
    storage_aliyun_secret_access_key: SecretStr

    model_config = _SETTINGS_CONFIG

    @field_validator("storage_aliyun_secret_access_key")
    @classmethod
    def _validate_secret(cls, value: SecretStr) -> SecretStr:
        return _require_secret(value)


class EmptyBackendSettings(BaseModel):
    """Backend config for identifiers with no registered schema."""

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True)
class StorageConfig:
    """Validated, immutable configuration snapshot."""

    storage_backend: str
    max_file_size_bytes: int
    quota_bytes: int
    signed_url_expiration_seconds: int
    backend: BaseModel


def register_builtin_configs() -> None:
    """Register the schemas for the built-in backend identifiers.

    azure, gcs and aliyun only validate configuration; their backends are
    supplied by third parties through register_backend().
    """
    register_backend_config("local", LocalStorageSettings)
    register_backend_config("s3", S3StorageSettings)
    register_backend_config("azure", AzureStorageSettings)
    register_backend_config("gcs", GcsStorageSettings)
    register_backend_config("aliyun", AliyunStorageSettings)


register_builtin_configs()


# Rule phrasing for pydantic error types; anything else falls back to pydantic's message.
_RULES: dict[str, str] = {
    "missing": "field is required",
    "string_too_short": "must not be empty",
    "int_parsing": "must be an integer",
    "int_from_float": "must be an integer",
    "int_type": "must be an integer",
    "bool_parsing": "must be a boolean",
}


def _issues_from(error: ValidationError) -> list[dict[str, str]]:
    """Convert a ValidationError into field/rule pairs. Input values are never included."""
    issues: list[dict[str, str]] = []
    for err in error.errors(include_url=False):
        field = ".".join(str(part) for part in err["loc"]).upper() or "(unknown)"
        ctx: dict[str, Any] = err.get("ctx") or {}
        if err["type"] == "greater_than":
            rule = f"must be greater than {ctx.get('gt')}"
        elif err["type"] == "value_error" and "error" in ctx:
            rule = str(ctx["error"])
        else:
            rule = _RULES.get(err["type"], err["msg"])
        issues.append({"field": field, "message": rule})
    return issues


def _load_storage_config() -> StorageConfig:
    issues: list[dict[str, str]] = []
    common: CommonStorageSettings | None = None
    try:
        common = CommonStorageSettings()
        backend_id = common.storage_backend
    except ValidationError as e:
        issues.extend(_issues_from(e))
        backend_id = os.environ.get("STORAGE_BACKEND") or DEFAULT_BACKEND

    backend_settings: BaseModel = EmptyBackendSettings()
    schema = get_backend_config_schema(backend_id)
    if schema is not None:
        try:
            backend_settings = schema()
        except ValidationError as e:
            issues.extend(_issues_from(e))

    if issues or common is None:
        message = "Invalid storage configuration: " + "; ".join(
            f"{issue['field']}: {issue['message']}" for issue in issues
        )
        raise ConfigurationError(message, issues=issues, backend=backend_id)

    logger.debug("Storage configuration loaded (backend=%s)", backend_id)
    return StorageConfig(
        storage_backend=common.storage_backend,
        max_file_size_bytes=common.storage_max_file_size_bytes,
        quota_bytes=common.storage_quota_bytes,
        signed_url_expiration_seconds=common.storage_signed_url_expiration_seconds,
        backend=backend_settings,
    )


@lru_cache(maxsize=1)
def get_storage_config() -> StorageConfig:
    """Return the storage configuration, validating it on first call.

    Raises:
        ConfigurationError: Every invalid field, joined with "; ".
    """
    return _load_storage_config()


def reset_storage_config() -> None:
    """Discard the cached snapshot so the next access re-reads the environment. Tests only."""
    get_storage_config.cache_clear()


def load_backend_settings(schema: type[S], backend: str) -> S:
    """Validate one backend's settings from the environment, outside the cached snapshot.

    Used when a backend is resolved that is not the one STORAGE_BACKEND selects.

    Raises:
        ConfigurationError: With every invalid field.
    """
    try:
        return schema()
    except ValidationError as e:
        issues = _issues_from(e)
        message = f"Invalid {backend} storage configuration: " + "; ".join(
            f"{issue['field']}: {issue['message']}" for issue in issues
        )
        raise ConfigurationError(message, issues=issues, backend=backend) from None


@overload
def get_backend_config() -> BaseModel: ...


@overload
def get_backend_config(expected: type[T]) -> T: ...


def get_backend_config(expected: type[T] | None = None) -> BaseModel:
    """Return the backend-specific settings of the active backend.

    Args:
        expected: Optional settings class the caller requires (e.g. S3StorageSettings).

    Raises:
        ConfigurationError: Config is invalid, or the active backend does not
            use the expected settings class.
    """
    config = get_storage_config()
    if expected is not None and not isinstance(config.backend, expected):
        raise ConfigurationError(
            f"Active storage backend {config.storage_backend!r} is not configured "
            f"with {expected.__name__}",
            backend=config.storage_backend,
        )
    return config.backend
