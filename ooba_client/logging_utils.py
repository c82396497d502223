"""
Centralized logging and error handling utilities for the Oobabooga client.

This module provides decorators and helpers that standardize logging and error
classification across the client, so every failure leaves the library as an
``OobaboogaError`` and every operation is logged the same way.

Features:
- Structured logging with contextual information
- Uniform error classification for HTTP, decode and transport failures
- Performance timing for operations
"""

from __future__ import annotations

import functools
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from .exceptions import (
    ErrorKind,
    MalformedFrameError,
    OobaboogaError,
    RequestRejectedError,
    ServerError,
    TransportFailureError,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

DEFAULT_EXCERPT_LENGTH = 500

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO", renderer: str = "console") -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        level: Minimum log level name
        renderer: "console" for coloured dev output, "json" for JSON lines
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level '{level}'")
    if renderer not in ("console", "json"):
        raise ValueError(f"logging.renderer must be 'console' or 'json', got '{renderer}'")

    logging.basicConfig(level=numeric_level, format="%(message)s")
    logging.getLogger().setLevel(numeric_level)

    final_processor = (
        structlog.processors.JSONRenderer()
        if renderer == "json"
        else structlog.dev.ConsoleRenderer(colors=True)
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            final_processor,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def excerpt(text: str | bytes | None, limit: int = DEFAULT_EXCERPT_LENGTH) -> str:
    """Shorten a body or payload for error messages."""
    if text is None:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class ErrorClassifier:
    """Maps observed failures onto the single ``OobaboogaError`` family."""

    def __init__(self, excerpt_length: int = DEFAULT_EXCERPT_LENGTH):
        self.excerpt_length = excerpt_length

    @staticmethod
    def classify_error(error: BaseException) -> ErrorKind | None:
        """
        Classify an exception.

        Args:
            error: The exception to classify

        Returns:
            The matching error kind, or None when the exception is not a
            client-level failure (programming errors, cancellation)
        """
        if isinstance(error, OobaboogaError):
            return error.kind
        if isinstance(error, httpx.HTTPStatusError):
            return ErrorKind.REQUEST_REJECTED
        if isinstance(error, ValidationError | json.JSONDecodeError):
            return ErrorKind.MALFORMED_FRAME
        # OSError covers TimeoutError and ConnectionError
        if isinstance(error, httpx.RequestError | httpx.StreamError | OSError):
            return ErrorKind.TRANSPORT_FAILURE
        return None

    def request_rejected(
        self,
        status_code: int,
        body: str | bytes | None,
        *,
        endpoint: str | None = None,
        reason: str | None = None,
    ) -> RequestRejectedError:
        """Build the error for a non-success (or non-stream) response."""
        body_excerpt = excerpt(body, self.excerpt_length)
        message = reason or f"Request rejected with status {status_code}"
        if body_excerpt:
            message = f"{message}: {body_excerpt}"
        error = RequestRejectedError(
            message,
            endpoint=endpoint,
            status_code=status_code,
            response_body=body_excerpt,
        )
        self._log(error)
        return error

    def malformed_frame(
        self,
        payload: str | bytes | None,
        reason: str,
        *,
        endpoint: str | None = None,
    ) -> MalformedFrameError:
        """Build the error for a payload that does not match its shape."""
        payload_excerpt = excerpt(payload, self.excerpt_length)
        error = MalformedFrameError(
            f"Malformed payload: {reason}",
            endpoint=endpoint,
            payload_excerpt=payload_excerpt,
        )
        self._log(error)
        return error

    def server_error(
        self,
        payload: str,
        detail: Any,
        *,
        endpoint: str | None = None,
    ) -> ServerError:
        """Build the error for an error object pushed into the stream."""
        if isinstance(detail, dict):
            detail = detail.get("message") or json.dumps(detail)
        error = ServerError(
            f"Server reported an error mid-stream: {detail}",
            endpoint=endpoint,
            payload_excerpt=excerpt(payload, self.excerpt_length),
        )
        self._log(error)
        return error

    def transport_failure(
        self,
        cause: BaseException | str,
        *,
        endpoint: str | None = None,
    ) -> TransportFailureError:
        """Build the error for a connection-level failure."""
        if isinstance(cause, BaseException):
            detail = f"{type(cause).__name__}: {cause}"
        else:
            detail = cause
        error = TransportFailureError(
            f"Transport failure: {detail}", endpoint=endpoint
        )
        self._log(error)
        return error

    def wrap(
        self,
        error: Exception,
        *,
        endpoint: str | None = None,
    ) -> Exception:
        """
        Convert a raw exception into its client-level equivalent.

        Exceptions that are already ``OobaboogaError`` and exceptions with no
        client-level meaning are returned unchanged.
        """
        kind = self.classify_error(error)
        if kind is None or isinstance(error, OobaboogaError):
            return error
        if kind is ErrorKind.REQUEST_REJECTED:
            response = error.response  # type: ignore[attr-defined]
            return self.request_rejected(
                response.status_code, response.text, endpoint=endpoint
            )
        if kind is ErrorKind.MALFORMED_FRAME:
            return self.malformed_frame(None, str(error), endpoint=endpoint)
        return self.transport_failure(error, endpoint=endpoint)

    @staticmethod
    def _log(error: OobaboogaError) -> None:
        logger.error("Client operation failed", **error.to_dict())


def log_operation(
    operation: str,
    *,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator that logs start, completion and failure of an async call.

    Args:
        operation: Name recorded as the ``operation`` field
        log_timing: Whether to add ``duration_ms`` to the final record
        context: Extra fields bound onto every record
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            op_logger = logger.bind(
                operation=operation, function=func.__name__, **(context or {})
            )
            op_logger.debug("Operation started")
            start_time = time.perf_counter()

            def timing() -> dict[str, float]:
                if not log_timing:
                    return {}
                return {"duration_ms": round((time.perf_counter() - start_time) * 1000, 2)}

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                op_logger.error(
                    "Operation failed",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    **timing(),
                )
                raise
            op_logger.info("Operation completed successfully", **timing())
            return result

        return wrapper
    return decorator


def handle_client_errors(
    operation: str,
    *,
    endpoint: str | None = None,
    classifier: ErrorClassifier | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator that funnels raw exceptions into ``OobaboogaError``.

    Args:
        operation: Description of the operation for error context
        endpoint: Endpoint path recorded on the error
        classifier: Classifier to use; a default one is created if omitted

    Returns:
        Decorated function with uniform error handling
    """
    active_classifier = classifier or ErrorClassifier()

    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except OobaboogaError:
                raise
            except Exception as e:
                wrapped = active_classifier.wrap(e, endpoint=endpoint)
                if wrapped is e:
                    raise
                logger.debug(
                    "Converted exception", operation=operation,
                    original_error_type=type(e).__name__,
                )
                raise wrapped from e

        return wrapper
    return decorator


def log_client_operation(
    operation: str,
    *,
    endpoint: str | None = None,
    log_timing: bool = True,
    classifier: ErrorClassifier | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """Combined logging and error handling decorator for client calls."""
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        logged = log_operation(
            operation, log_timing=log_timing, context={"endpoint": endpoint}
        )(func)
        return handle_client_errors(
            operation, endpoint=endpoint, classifier=classifier
        )(logged)
    return decorator
