"""S3-compatible object storage (AWS S3, MinIO, etc.) with presigned URLs."""

from __future__ import annotations

import asyncio
import inspect
import logging
import socket
from collections.abc import AsyncIterator, Callable
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    ConnectionClosedError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
)
from botocore.exceptions import ConnectionError as BotoConnectionError

from storagekit.core.config import (
    DEFAULT_SIGNED_URL_EXPIRATION_SECONDS,
    S3StorageSettings,
    StorageConfig,
    get_storage_config,
    load_backend_settings,
)
from storagekit.domain.exceptions import (
    ConfigurationError,
    StorageError,
    StorageFileNotFoundError,
    StorageKitException,
)
from storagekit.infrastructure.storage.protocol import (
    SignedUrl,
    SignedUrlMethod,
    UploadBody,
    UploadResult,
)
from storagekit.shared.telemetry.tracing import add_span_attributes, traced
from storagekit.shared.utils.datetime import expires_after

logger = logging.getLogger(__name__)

# (client, client_method, params, expires_in) -> url; may also return an awaitable
Presigner = Callable[[Any, str, dict[str, Any], int], Any]

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})
_AUTH_ERROR_CODES = frozenset({
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "InvalidToken",
    "ExpiredToken",
    "InvalidClientTokenId",
})
_NETWORK_ERRORS: tuple[type[BaseException], ...] = (
    EndpointConnectionError,
    BotoConnectionError,
    ConnectionClosedError,
    ReadTimeoutError,
    ConnectionError,
    socket.gaierror,
)
_AUTH_ERRORS: tuple[type[BaseException], ...] = (NoCredentialsError, PartialCredentialsError)


def _default_presigner(
    client: Any, client_method: str, params: dict[str, Any], expires_in: int
) -> str:
    """Sign locally with the client's credentials; makes no network call."""
    return client.generate_presigned_url(
        client_method, Params=params, ExpiresIn=expires_in
    )


def _error_code(exc: BaseException) -> str | None:
    """S3 error code from a botocore ClientError (or anything shaped like one)."""
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return None
    code = (response.get("Error") or {}).get("Code")
    return str(code) if code else None


def _is_not_found(exc: BaseException) -> bool:
    return _error_code(exc) in _NOT_FOUND_CODES


def _is_network_error(exc: BaseException) -> bool:
    return isinstance(exc, _NETWORK_ERRORS)


def _is_auth_error(exc: BaseException) -> bool:
    return isinstance(exc, _AUTH_ERRORS) or _error_code(exc) in _AUTH_ERROR_CODES


class S3BodyStream:
    """Async chunk iterator over a botocore StreamingBody.

    The body holds a pooled HTTP connection until closed. aclose() releases
    it whether or not any chunk was read; exhausting the stream or a read
    error releases it too.
    """

    def __init__(self, service: S3StorageService, key: str, body: Any) -> None:
        self._service = service
        self._key = key
        self._body = body
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> S3BodyStream:
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            chunk = await asyncio.to_thread(self._body.read, self._service.CHUNK_SIZE)
        except Exception as e:
            self._release()
            raise self._service._translate_error(e, self._key, "download") from e
        if not chunk:
            self._release()
            raise StopAsyncIteration
        return chunk

    async def aclose(self) -> None:
        self._release()

    async def __aenter__(self) -> S3BodyStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._release()

    def _release(self) -> None:
        if not self._closed:
            self._closed = True
            self._body.close()

    def __del__(self) -> None:
        # Abandoned streams (e.g. client disconnect before the first chunk)
        if not getattr(self, "_closed", True):
            self._release()


class S3StorageService:
    """S3-compatible storage with presigned URLs.

    Uses boto3 (sync) via asyncio.to_thread for the async API. Compatible
    with AWS S3, MinIO, DigitalOcean Spaces. The client is injected (and
    shared by all concurrent operations); the presigner is injectable so
    signing can be tested without credentials.

    Every botocore failure is translated: not-found errors become
    StorageFileNotFoundError (or False / success for exists and delete),
    everything else becomes StorageError with a cause category. Exception
    text never reaches the message or details, so credentials cannot leak.
    """

    CHUNK_SIZE = 64 * 1024  # 64KB
    BACKEND_NAME = "s3"

    def __init__(
        self,
        client: Any,
        bucket: str,
        signed_url_expiration: int = DEFAULT_SIGNED_URL_EXPIRATION_SECONDS,
        presigner: Presigner | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            client: boto3 S3 client.
            bucket: Target bucket; must be non-empty.
            signed_url_expiration: Default signed URL lifetime in seconds.
            presigner: Optional signer replacing client.generate_presigned_url.

        Raises:
            ConfigurationError: Empty bucket or non-positive expiration.
        """
        if not bucket or not bucket.strip():
            raise ConfigurationError(
                "S3 bucket name is required",
                issues=[{"field": "bucket", "message": "must not be empty"}],
                backend=self.BACKEND_NAME,
            )
        if signed_url_expiration <= 0:
            raise ConfigurationError(
                "Signed URL expiration must be greater than 0",
                issues=[{"field": "signed_url_expiration", "message": "must be greater than 0"}],
                backend=self.BACKEND_NAME,
            )
        self._client = client
        self.bucket = bucket
        self.default_expiration = signed_url_expiration
        self._presigner = presigner or _default_presigner

    @traced("storage.s3.upload", attributes={"storage.backend": "s3"})
    async def upload(
        self,
        key: str,
        body: UploadBody,
        content_type: str,
        metadata: dict[str, str] | None = None,
        content_length: int | None = None,
    ) -> UploadResult:
        """Upload body as-is (no intermediate buffering of file-like bodies)."""
        params: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": bytes(body) if isinstance(body, bytearray) else body,
            "ContentType": content_type,
        }
        if metadata:
            params["Metadata"] = dict(metadata)
        if content_length is not None:
            params["ContentLength"] = content_length
        try:
            response = await asyncio.to_thread(self._client.put_object, **params)
        except Exception as e:
            raise self._translate_error(e, key, "upload") from e
        return UploadResult(key=key, etag=(response or {}).get("ETag"))

    @traced("storage.s3.download", attributes={"storage.backend": "s3"})
    async def download(self, key: str) -> AsyncIterator[bytes]:
        """Fetch the object and return a chunk stream over its body."""
        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self.bucket, Key=key
            )
        except Exception as e:
            raise self._translate_error(e, key, "download") from e
        body = (response or {}).get("Body")
        if body is None:
            raise StorageFileNotFoundError(key)
        return S3BodyStream(self, key, body)

    @traced("storage.s3.delete", attributes={"storage.backend": "s3"})
    async def delete(self, key: str) -> None:
        """Delete object. Missing objects are not an error."""
        try:
            await asyncio.to_thread(
                self._client.delete_object, Bucket=self.bucket, Key=key
            )
        except Exception as e:
            if _is_not_found(e):
                logger.debug("S3 delete of missing key %s treated as success", key)
                return
            raise self._translate_error(e, key, "delete") from e

    @traced("storage.s3.exists", attributes={"storage.backend": "s3"})
    async def exists(self, key: str) -> bool:
        """HeadObject; not-found means False."""
        try:
            await asyncio.to_thread(
                self._client.head_object, Bucket=self.bucket, Key=key
            )
        except Exception as e:
            if _is_not_found(e):
                return False
            raise self._translate_error(e, key, "exists") from e
        return True

    @traced("storage.s3.get_signed_url", attributes={"storage.backend": "s3"})
    async def get_signed_url(
        self,
        key: str,
        method: SignedUrlMethod | str = SignedUrlMethod.GET,
        expires_in: int | None = None,
        content_type: str | None = None,
    ) -> SignedUrl:
        """Return a presigned GET or PUT URL. The object is not checked for existence."""
        details: dict[str, Any] = {
            "key": key,
            "backend": self.BACKEND_NAME,
            "operation": "get_signed_url",
        }
        raw_method = method.value if isinstance(method, SignedUrlMethod) else str(method).upper()
        try:
            signed_method = SignedUrlMethod(raw_method)
        except ValueError:
            raise StorageError(
                f"Unsupported signed URL method: {raw_method}", details
            ) from None
        expires = self.default_expiration if expires_in is None else expires_in
        if expires <= 0:
            raise StorageError("Signed URL expiration must be greater than 0", details)

        params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if signed_method is SignedUrlMethod.PUT:
            client_method = "put_object"
            if content_type:
                params["ContentType"] = content_type
        else:
            client_method = "get_object"

        try:
            url = self._presigner(self._client, client_method, params, expires)
            if inspect.isawaitable(url):
                url = await url
        except Exception as e:
            raise self._translate_error(e, key, "get_signed_url") from e
        return SignedUrl(url=url, expires_at=expires_after(expires))

    def _translate_error(
        self, exc: BaseException, key: str, operation: str
    ) -> StorageKitException:
        """Map a botocore/transport failure onto the storage exception taxonomy."""
        if _is_not_found(exc):
            return StorageFileNotFoundError(key)

        details: dict[str, Any] = {
            "key": key,
            "backend": self.BACKEND_NAME,
            "operation": operation,
        }
        if _is_network_error(exc):
            cause, message = "network", "Storage service unavailable"
        elif _is_auth_error(exc):
            cause, message = "auth", "Storage authentication failed"
        else:
            cause, message = "generic", "Storage operation failed"
            code = _error_code(exc)
            if code:
                details["error_code"] = code
        details["cause"] = cause

        add_span_attributes(**{"storage.error_cause": cause})
        logger.error(
            "S3 %s failed for key %s (cause=%s, error=%s)",
            operation,
            key,
            cause,
            type(exc).__name__,
        )
        return StorageError(message, details)


def create_s3_backend(
    settings: S3StorageSettings | None = None,
    config: StorageConfig | None = None,
) -> S3StorageService:
    """Create an S3StorageService from environment configuration.

    Custom endpoints (MinIO) switch to path-style addressing; without one the
    client keeps boto3's default (virtual-hosted) addressing.

    Args:
        settings: S3 settings; defaults to the active config, or a fresh
            validation of STORAGE_S3_* when another backend is active.
        config: Storage config snapshot; defaults to get_storage_config().

    Raises:
        ConfigurationError: Missing or invalid S3 configuration.
    """
    config = config if config is not None else get_storage_config()
    if settings is None:
        if isinstance(config.backend, S3StorageSettings):
            settings = config.backend
        else:
            settings = load_backend_settings(S3StorageSettings, "s3")

    addressing_style = "path" if settings.use_path_style else "auto"
    client_kwargs: dict[str, Any] = {
        "region_name": settings.storage_s3_region,
        "aws_access_key_id": settings.storage_s3_access_key_id,
        "aws_secret_access_key": settings.storage_s3_secret_access_key.get_secret_value(),
        "config": Config(
            signature_version="s3v4",
            s3={"addressing_style": addressing_style},
        ),
    }
    if settings.storage_s3_endpoint:
        client_kwargs["endpoint_url"] = settings.storage_s3_endpoint

    client = boto3.client("s3", **client_kwargs)
    logger.info(
        "S3 storage backend configured (bucket=%s, endpoint=%s, addressing=%s)",
        settings.storage_s3_bucket,
        settings.storage_s3_endpoint or "aws",
        addressing_style,
    )
    return S3StorageService(
        client,
        settings.storage_s3_bucket,
        signed_url_expiration=config.signed_url_expiration_seconds,
    )
