"""Tests for tracing and logging setup."""

import logging
from collections.abc import Iterator
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import StatusCode

from storagekit.infrastructure.storage.protocol import SignedUrlMethod
from storagekit.shared.telemetry.logging import setup_logging
from storagekit.shared.telemetry.tracing import traced


@pytest.fixture
def span() -> Iterator[MagicMock]:
    """Patch the tracer so traced() hands out a mock span."""
    span = MagicMock()
    tracer = MagicMock()
    tracer.start_as_current_span.return_value.__enter__.return_value = span
    with patch("storagekit.shared.telemetry.tracing.trace.get_tracer", return_value=tracer):
        yield span


class TestTraced:
    async def test_returns_result_and_records_safe_kwargs(self, span: MagicMock) -> None:
        @traced("storage.test.sign", attributes={"storage.backend": "test"})
        async def sign(key: str, method: SignedUrlMethod, expires_in: int) -> str:
            return f"{key}:{method.value}"

        assert await sign("secret/key.txt", method=SignedUrlMethod.PUT, expires_in=60) == (
            "secret/key.txt:PUT"
        )
        span.set_attribute.assert_any_call("arg.method", "PUT")
        span.set_attribute.assert_any_call("arg.expires_in", "60")
        recorded = [call.args[1] for call in span.set_attribute.call_args_list]
        assert "secret/key.txt" not in recorded
        assert span.set_status.call_args.args[0].status_code is StatusCode.OK

    async def test_error_status_uses_type_name_only(self, span: MagicMock) -> None:
        @traced("storage.test.fail")
        async def fail(key: str) -> None:
            raise ValueError("token=abc123")

        with pytest.raises(ValueError):
            await fail(key="k")
        status = span.set_status.call_args.args[0]
        assert status.status_code is StatusCode.ERROR
        assert status.description == "ValueError"
        span.record_exception.assert_called_once()

    def test_rejects_sync_functions(self) -> None:
        with pytest.raises(TypeError):

            @traced("storage.test.sync")
            def sync() -> None:
                return None

    async def test_works_without_sdk(self) -> None:
        @traced("storage.test.noop")
        async def noop() -> int:
            return 1

        assert await noop() == 1


@pytest.fixture
def restore_levels() -> Iterator[None]:
    loggers = [logging.getLogger("storagekit"), logging.getLogger("botocore")]
    levels = [logger.level for logger in loggers]
    yield
    for logger, level in zip(loggers, levels):
        logger.setLevel(level)


@pytest.mark.usefixtures("restore_levels")
class TestSetupLogging:
    def test_debug_keeps_botocore_at_info(self) -> None:
        setup_logging(debug=True)
        assert logging.getLogger("storagekit").level == logging.DEBUG
        assert logging.getLogger("botocore").level == logging.INFO

    def test_default_level_is_info(self) -> None:
        setup_logging()
        assert logging.getLogger("storagekit").level == logging.INFO
        assert logging.getLogger("botocore").level == logging.INFO
