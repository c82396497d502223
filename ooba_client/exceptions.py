"""
Error types for the Oobabooga client.

Every failure surfaced by the client is an ``OobaboogaError`` so callers need a
single ``except`` clause. The ``kind`` attribute tells the failures apart:
- request_rejected: the server answered with a non-success status
- malformed_frame: a stream frame (or response body) had an unexpected shape
- transport_failure: connection drop, timeout, DNS or TLS problems
- server_error: the server pushed an error object into the event stream

Cancellation is not represented here; ``asyncio.CancelledError`` propagates
untouched.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Failure categories reported by the client."""
    REQUEST_REJECTED = "request_rejected"
    MALFORMED_FRAME = "malformed_frame"
    TRANSPORT_FAILURE = "transport_failure"
    SERVER_ERROR = "server_error"


class OobaboogaError(Exception):
    """Base client error with rich context."""

    kind: ErrorKind = ErrorKind.TRANSPORT_FAILURE

    def __init__(
        self,
        message: str,
        *,
        endpoint: str | None = None,
        status_code: int | None = None,
        response_body: str | None = None,
        payload_excerpt: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.endpoint = endpoint
        self.status_code = status_code
        self.response_body = response_body
        self.payload_excerpt = payload_excerpt

    def to_dict(self) -> dict:
        """Structured view used for logging."""
        data = {"kind": self.kind.value, "message": self.message}
        for key in ("endpoint", "status_code", "response_body", "payload_excerpt"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


class RequestRejectedError(OobaboogaError):
    """Non-success HTTP status returned before any output was produced."""

    kind = ErrorKind.REQUEST_REJECTED


class MalformedFrameError(OobaboogaError):
    """Payload did not match the expected chat or completion shape."""

    kind = ErrorKind.MALFORMED_FRAME


class TransportFailureError(OobaboogaError):
    """Connection-level failure."""

    kind = ErrorKind.TRANSPORT_FAILURE


class ServerError(OobaboogaError):
    """Error object reported by the server inside the event stream."""

    kind = ErrorKind.SERVER_ERROR
