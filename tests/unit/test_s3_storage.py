"""Tests for S3StorageService with a mocked boto3 client (no network)."""

import gc
import io
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from storagekit.core.config import S3StorageSettings, get_storage_config
from storagekit.domain.exceptions import (
    ConfigurationError,
    StorageError,
    StorageFileNotFoundError,
)
from storagekit.infrastructure.storage.protocol import SignedUrlMethod, StorageProtocol
from storagekit.infrastructure.storage.s3_storage import S3StorageService, create_s3_backend
from storagekit.shared.utils.datetime import utc_now

SECRET = "sk-very-secret-value"


def _client_error(code: str, operation: str = "GetObject", message: str = "boom") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def service(client: MagicMock) -> S3StorageService:
    return S3StorageService(client, "bucket", signed_url_expiration=900)


async def _collect(stream) -> bytes:
    return b"".join([chunk async for chunk in stream])


class TestConstruction:
    def test_satisfies_protocol(self, service: S3StorageService) -> None:
        assert isinstance(service, StorageProtocol)

    def test_empty_bucket_rejected(self, client: MagicMock) -> None:
        with pytest.raises(ConfigurationError, match="bucket"):
            S3StorageService(client, "")

    def test_non_positive_expiration_rejected(self, client: MagicMock) -> None:
        with pytest.raises(ConfigurationError):
            S3StorageService(client, "bucket", signed_url_expiration=0)


class TestUpload:
    async def test_upload_bytes(self, service: S3StorageService, client: MagicMock) -> None:
        client.put_object.return_value = {"ETag": '"abc"'}
        result = await service.upload("a/b.txt", b"hello", "text/plain")
        assert result.key == "a/b.txt"
        assert result.etag == '"abc"'
        client.put_object.assert_called_once_with(
            Bucket="bucket", Key="a/b.txt", Body=b"hello", ContentType="text/plain"
        )

    async def test_upload_metadata_and_length(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.put_object.return_value = {}
        await service.upload(
            "k", bytearray(b"xy"), "application/octet-stream", {"owner": "u1"}, content_length=2
        )
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Body"] == b"xy"
        assert isinstance(kwargs["Body"], bytes)
        assert kwargs["Metadata"] == {"owner": "u1"}
        assert kwargs["ContentLength"] == 2

    async def test_upload_file_like_passed_through(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.put_object.return_value = {"ETag": "e"}
        body = io.BytesIO(b"streamed")
        await service.upload("k", body, "application/octet-stream")
        assert client.put_object.call_args.kwargs["Body"] is body

    async def test_upload_failure_is_sanitized(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.put_object.side_effect = _client_error(
            "AccessDenied", "PutObject", message=f"secret={SECRET}"
        )
        with pytest.raises(StorageError) as exc_info:
            await service.upload("k", b"x", "text/plain")
        exc = exc_info.value
        assert exc.message == "Storage operation failed"
        assert exc.details == {
            "key": "k",
            "backend": "s3",
            "operation": "upload",
            "error_code": "AccessDenied",
            "cause": "generic",
        }
        assert SECRET not in str(exc.to_dict())
        assert SECRET not in exc.message


class TestDownload:
    async def test_download_streams_chunks(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        body = MagicMock()
        body.read.side_effect = [b"hel", b"lo", b""]
        client.get_object.return_value = {"Body": body}
        stream = await service.download("k")
        assert await _collect(stream) == b"hello"
        body.close.assert_called_once()

    async def test_download_empty_object(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        body = MagicMock()
        body.read.return_value = b""
        client.get_object.return_value = {"Body": body}
        assert await _collect(await service.download("empty")) == b""

    @pytest.mark.parametrize("code", ["NoSuchKey", "NotFound", "404"])
    async def test_download_missing_key(
        self, service: S3StorageService, client: MagicMock, code: str
    ) -> None:
        client.get_object.side_effect = _client_error(code)
        with pytest.raises(StorageFileNotFoundError) as exc_info:
            await service.download("missing.txt")
        assert exc_info.value.key == "missing.txt"

    async def test_download_without_body_is_not_found(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.get_object.return_value = {}
        with pytest.raises(StorageFileNotFoundError):
            await service.download("k")

    async def test_network_error(self, service: S3StorageService, client: MagicMock) -> None:
        client.get_object.side_effect = EndpointConnectionError(endpoint_url="http://localhost:9000")
        with pytest.raises(StorageError) as exc_info:
            await service.download("k")
        assert exc_info.value.message == "Storage service unavailable"
        assert exc_info.value.details["cause"] == "network"

    async def test_auth_error(self, service: S3StorageService, client: MagicMock) -> None:
        client.get_object.side_effect = NoCredentialsError()
        with pytest.raises(StorageError) as exc_info:
            await service.download("k")
        assert exc_info.value.message == "Storage authentication failed"
        assert exc_info.value.details["cause"] == "auth"

    async def test_auth_error_code(self, service: S3StorageService, client: MagicMock) -> None:
        client.get_object.side_effect = _client_error("SignatureDoesNotMatch")
        with pytest.raises(StorageError) as exc_info:
            await service.download("k")
        assert exc_info.value.details["cause"] == "auth"


    async def test_aclose_before_first_chunk_releases_body(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        body = MagicMock()
        client.get_object.return_value = {"Body": body}
        stream = await service.download("k")
        await stream.aclose()
        body.close.assert_called_once()
        body.read.assert_not_called()

    async def test_stop_after_first_chunk_releases_body(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        body = MagicMock()
        body.read.side_effect = [b"first", b"second", b""]
        client.get_object.return_value = {"Body": body}
        async with await service.download("k") as stream:
            async for chunk in stream:
                assert chunk == b"first"
                break
        body.close.assert_called_once()
        assert body.read.call_count == 1

    async def test_abandoned_stream_releases_body(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        body = MagicMock()
        client.get_object.return_value = {"Body": body}
        stream = await service.download("k")
        del stream
        gc.collect()
        body.close.assert_called_once()

    async def test_read_error_releases_body_and_translates(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        body = MagicMock()
        body.read.side_effect = ReadTimeoutError(endpoint_url="http://localhost:9000")
        client.get_object.return_value = {"Body": body}
        stream = await service.download("k")
        with pytest.raises(StorageError) as exc_info:
            await _collect(stream)
        assert exc_info.value.details["cause"] == "network"
        body.close.assert_called_once()
        assert [chunk async for chunk in stream] == []


class FakeS3Client:
    """In-memory stand-in for the boto3 calls the backend makes."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def put_object(self, Bucket: str, Key: str, Body, ContentType: str, **kwargs) -> dict:
        data = Body if isinstance(Body, bytes) else Body.read()
        self.objects[Key] = data
        return {"ETag": f'"{len(data)}"'}

    def get_object(self, Bucket: str, Key: str) -> dict:
        if Key not in self.objects:
            raise _client_error("NoSuchKey")
        return {"Body": io.BytesIO(self.objects[Key])}

    def head_object(self, Bucket: str, Key: str) -> dict:
        if Key not in self.objects:
            raise _client_error("404", "HeadObject")
        return {"ContentLength": len(self.objects[Key])}

    def delete_object(self, Bucket: str, Key: str) -> dict:
        self.objects.pop(Key, None)
        return {}


class TestObjectLifecycle:
    """upload -> exists -> download -> delete -> exists against stateful client."""

    @pytest.fixture
    def stateful(self) -> S3StorageService:
        return S3StorageService(FakeS3Client(), "bucket")

    async def test_lifecycle(self, stateful: S3StorageService) -> None:
        assert await stateful.exists("docs/a.txt") is False
        await stateful.upload("docs/a.txt", io.BytesIO(b"payload"), "text/plain")
        assert await stateful.exists("docs/a.txt") is True
        assert await _collect(await stateful.download("docs/a.txt")) == b"payload"
        await stateful.delete("docs/a.txt")
        assert await stateful.exists("docs/a.txt") is False
        with pytest.raises(StorageFileNotFoundError):
            await stateful.download("docs/a.txt")

    async def test_delete_twice(self, stateful: S3StorageService) -> None:
        await stateful.upload("k", b"x", "text/plain")
        await stateful.delete("k")
        await stateful.delete("k")
        assert await stateful.exists("k") is False


class TestDeleteAndExists:
    async def test_delete_twice_with_not_found_on_second_call(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.delete_object.side_effect = [{}, _client_error("NoSuchKey", "DeleteObject")]
        await service.delete("k")
        await service.delete("k")
        assert client.delete_object.call_count == 2

    async def test_delete(self, service: S3StorageService, client: MagicMock) -> None:
        await service.delete("k")
        client.delete_object.assert_called_once_with(Bucket="bucket", Key="k")

    async def test_delete_missing_is_success(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.delete_object.side_effect = _client_error("NoSuchKey", "DeleteObject")
        await service.delete("missing")

    async def test_delete_other_error_raises(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.delete_object.side_effect = _client_error("AccessDenied", "DeleteObject")
        with pytest.raises(StorageError):
            await service.delete("k")

    async def test_exists_true(self, service: S3StorageService, client: MagicMock) -> None:
        client.head_object.return_value = {"ContentLength": 1}
        assert await service.exists("k") is True

    async def test_exists_false_on_404(self, service: S3StorageService, client: MagicMock) -> None:
        client.head_object.side_effect = _client_error("404", "HeadObject")
        assert await service.exists("k") is False

    async def test_exists_propagates_other_errors(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.head_object.side_effect = _client_error("InternalError", "HeadObject")
        with pytest.raises(StorageError):
            await service.exists("k")


class TestSignedUrl:
    async def test_get_url_with_default_expiration(self, client: MagicMock) -> None:
        presigner = MagicMock(return_value="https://signed/get")
        service = S3StorageService(client, "bucket", signed_url_expiration=900, presigner=presigner)
        before = utc_now()
        signed = await service.get_signed_url("k")
        assert signed.url == "https://signed/get"
        presigner.assert_called_once_with(client, "get_object", {"Bucket": "bucket", "Key": "k"}, 900)
        assert before + timedelta(seconds=899) <= signed.expires_at
        assert signed.expires_at <= utc_now() + timedelta(seconds=901)
        assert signed.expires_at_iso.endswith("+00:00")

    async def test_put_url_includes_content_type(self, client: MagicMock) -> None:
        presigner = MagicMock(return_value="https://signed/put")
        service = S3StorageService(client, "bucket", presigner=presigner)
        await service.get_signed_url("k", "put", expires_in=60, content_type="image/png")
        presigner.assert_called_once_with(
            client, "put_object", {"Bucket": "bucket", "Key": "k", "ContentType": "image/png"}, 60
        )

    async def test_async_presigner(self, client: MagicMock) -> None:
        async def presigner(_client, _method, _params, _expires):
            return "https://async"

        service = S3StorageService(client, "bucket", presigner=presigner)
        signed = await service.get_signed_url("k", SignedUrlMethod.GET)
        assert signed.url == "https://async"

    async def test_default_presigner_uses_client(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.generate_presigned_url.return_value = "https://s3/k?sig"
        signed = await service.get_signed_url("k", expires_in=30)
        assert signed.url == "https://s3/k?sig"
        client.generate_presigned_url.assert_called_once_with(
            "get_object", Params={"Bucket": "bucket", "Key": "k"}, ExpiresIn=30
        )

    async def test_signed_url_for_missing_key_still_issued(
        self, service: S3StorageService, client: MagicMock
    ) -> None:
        client.generate_presigned_url.return_value = "https://s3/nope"
        await service.get_signed_url("nope")
        client.head_object.assert_not_called()

    async def test_invalid_method(self, service: S3StorageService) -> None:
        with pytest.raises(StorageError, match="Unsupported signed URL method"):
            await service.get_signed_url("k", "DELETE")

    async def test_non_positive_expiry(self, service: S3StorageService) -> None:
        with pytest.raises(StorageError, match="greater than 0"):
            await service.get_signed_url("k", expires_in=0)

    async def test_presigner_failure_sanitized(self, client: MagicMock) -> None:
        presigner = MagicMock(side_effect=NoCredentialsError())
        service = S3StorageService(client, "bucket", presigner=presigner)
        with pytest.raises(StorageError) as exc_info:
            await service.get_signed_url("k")
        assert exc_info.value.details["cause"] == "auth"


class TestCreateS3Backend:
    def test_path_style_for_custom_endpoint(self, s3_env: dict[str, str]) -> None:
        with patch("storagekit.infrastructure.storage.s3_storage.boto3.client") as boto_client:
            backend = create_s3_backend()
        _, kwargs = boto_client.call_args
        assert boto_client.call_args.args == ("s3",)
        assert kwargs["endpoint_url"] == "http://localhost:9000"
        assert kwargs["region_name"] == "us-east-1"
        assert kwargs["aws_access_key_id"] == "minioadmin"
        assert kwargs["aws_secret_access_key"] == "minioadmin-secret"
        assert kwargs["config"].s3 == {"addressing_style": "path"}
        assert kwargs["config"].signature_version == "s3v4"
        assert backend.bucket == "test-bucket"
        assert backend.default_expiration == get_storage_config().signed_url_expiration_seconds

    def test_aws_without_endpoint(self, s3_env: dict[str, str], monkeypatch) -> None:
        monkeypatch.delenv("STORAGE_S3_ENDPOINT")
        with patch("storagekit.infrastructure.storage.s3_storage.boto3.client") as boto_client:
            create_s3_backend()
        kwargs = boto_client.call_args.kwargs
        assert "endpoint_url" not in kwargs
        assert kwargs["config"].s3 == {"addressing_style": "auto"}

    def test_explicit_settings(self) -> None:
        settings = S3StorageSettings(
            storage_s3_region="eu-west-1",
            storage_s3_bucket="explicit",
            storage_s3_access_key_id="id",
            storage_s3_secret_access_key="secret",
        )
        with patch("storagekit.infrastructure.storage.s3_storage.boto3.client"):
            backend = create_s3_backend(settings=settings)
        assert backend.bucket == "explicit"

    def test_missing_settings_when_other_backend_active(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid s3 storage configuration"):
            create_s3_backend()
