"""Span decorator for storage operations.

Only opentelemetry-api is used; spans are no-ops until the application
installs an SDK tracer provider.
"""

import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from functools import wraps
from typing import Any, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

R = TypeVar("R")

# Kwarg names recorded as span attributes. Keys, bodies and metadata are never recorded.
_SAFE_SPAN_ATTR_KEYS = frozenset({
    "method", "expires_in", "content_type", "content_length", "identifier",
    "operation", "backend",
})


def _record_safe_kwargs(span: trace.Span, kwargs: dict[str, Any]) -> None:
    for key, value in kwargs.items():
        if key.lower() in _SAFE_SPAN_ATTR_KEYS and value is not None:
            span.set_attribute(f"arg.{key}", value.value if isinstance(value, Enum) else str(value))


def traced(
    operation_name: str,
    attributes: dict[str, str | int | float | bool] | None = None,
) -> Callable[[Callable[..., Awaitable[R]]], Callable[..., Awaitable[R]]]:
    """Run a coroutine function inside a span named operation_name.

    On failure the span status is ERROR described by the exception type
    name only, so exception text never reaches the status.
    """

    def decorator(func: Callable[..., Awaitable[R]]) -> Callable[..., Awaitable[R]]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"traced() requires a coroutine function: {func.__qualname__}")
        tracer = trace.get_tracer(func.__module__)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> R:
            with tracer.start_as_current_span(
                operation_name,
                attributes=attributes,
                record_exception=False,
                set_status_on_exception=False,
            ) as span:
                _record_safe_kwargs(span, kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, type(e).__name__))
                    span.record_exception(e)
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        return wrapper

    return decorator


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Add attributes to the current span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, value)
