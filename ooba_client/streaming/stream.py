"""
Lazy, cancellable sequence of fragments for one streaming call.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any, Generic, TypeVar

import httpx
import structlog

from ..exceptions import OobaboogaError
from ..logging_utils import ErrorClassifier
from ..models import StreamingSettings
from .models import (
    END_OF_STREAM,
    ChatFragment,
    CompletionFragment,
    StreamMode,
    StreamSession,
    StreamState,
)
from .parser import FrameReader, PayloadDecoder

EVENT_STREAM_CONTENT_TYPE = "text/event-stream"

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class FragmentStream(Generic[T]):
    """
    Async iterator over the caller-visible fragments of one streaming call.

    Nothing is sent until the first item is requested. Each pull reads at
    most one network chunk and decodes the frames it completes. Closing the
    stream (``aclose``, leaving ``async with``, or cancelling the consuming
    task) closes the HTTP response and ends the session as CANCELLED.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        endpoint: str,
        payload: dict[str, Any],
        mode: StreamMode,
        *,
        settings: StreamingSettings | None = None,
        classifier: ErrorClassifier | None = None,
    ):
        self._http = http_client
        self._payload = {**payload, "stream": True}
        self.settings = settings or StreamingSettings()
        self.classifier = classifier or ErrorClassifier(
            self.settings.error_excerpt_length
        )
        self.session = StreamSession(mode=mode, endpoint=endpoint)
        self._decoder = PayloadDecoder(mode, self.classifier, endpoint)
        self._iterator: AsyncGenerator[T] | None = None
        self._log = logger.bind(
            stream_id=self.session.stream_id,
            endpoint=endpoint,
            mode=mode.value,
        )

    @property
    def state(self) -> StreamState:
        return self.session.state

    def __aiter__(self) -> FragmentStream[T]:
        return self

    async def __anext__(self) -> T:
        if self._iterator is None:
            if self.session.state.is_terminal:
                raise StopAsyncIteration
            self._iterator = self._run()
        return await self._iterator.__anext__()

    async def aclose(self) -> None:
        """Stop the stream and release the connection."""
        if self._iterator is not None:
            await self._iterator.aclose()
        elif not self.session.state.is_terminal:
            self.session.finish(StreamState.CANCELLED)

    async def __aenter__(self) -> FragmentStream[T]:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def collect(self) -> list[T]:
        """Consume the remaining stream into a list."""
        return [item async for item in self]

    async def _run(self) -> AsyncGenerator[T]:
        session = self.session
        session.mark_started()
        self._log.debug("Stream started")

        try:
            async with self._http.stream(
                "POST", session.endpoint, json=self._payload
            ) as response:
                await self._check_response(response)
                session.state = StreamState.READING

                reader = FrameReader(response.aiter_text())
                frames = reader.frames()
                try:
                    async for frame in frames:
                        session.frames_read += 1
                        decoded = self._decoder.decode(frame)

                        if decoded is END_OF_STREAM:
                            session.finish(StreamState.DONE)
                            break

                        visible = self._visible(decoded)
                        if visible is None:
                            session.fragments_suppressed += 1
                            continue

                        session.record_emit(decoded.content)
                        yield visible
                finally:
                    await frames.aclose()

                if not session.state.is_terminal:
                    self._handle_end_of_body(reader)
                session.usage = self._decoder.last_usage
                session.finish(StreamState.DONE)

        except OobaboogaError:
            session.finish(StreamState.FAILED)
            self._log.debug("Stream failed", **session.get_stats())
            raise
        except Exception as e:
            wrapped = self.classifier.wrap(e, endpoint=session.endpoint)
            session.finish(StreamState.FAILED)
            if wrapped is e:
                raise
            raise wrapped from e
        finally:
            if not session.state.is_terminal:
                session.finish(StreamState.CANCELLED)
                self._log.info("Stream cancelled", **session.get_stats())
            elif session.state is StreamState.DONE:
                self._log.info("Stream completed", **session.get_stats())

    async def _check_response(self, response: httpx.Response) -> None:
        """Reject error statuses and non-stream bodies before reading frames."""
        endpoint = self.session.endpoint
        if not response.is_success:
            body = await response.aread()
            raise self.classifier.request_rejected(
                response.status_code, body, endpoint=endpoint
            )

        if self.settings.require_event_stream:
            content_type = response.headers.get("content-type", "")
            if content_type and EVENT_STREAM_CONTENT_TYPE not in content_type.lower():
                body = await response.aread()
                raise self.classifier.request_rejected(
                    response.status_code,
                    body,
                    endpoint=endpoint,
                    reason=(
                        "Expected streaming response, got "
                        f"content-type '{content_type}'"
                    ),
                )

    def _handle_end_of_body(self, reader: FrameReader) -> None:
        """Apply the dangling-frame policy once the body ends without [DONE]."""
        if reader.dangling is None:
            return

        self.session.truncated = True
        self._log.warning(
            "Discarding incomplete trailing frame",
            dangling_length=len(reader.dangling),
            strict=self.settings.strict_termination,
        )
        if self.settings.strict_termination:
            raise self.classifier.transport_failure(
                "stream ended inside an incomplete frame",
                endpoint=self.session.endpoint,
            )

    def _visible(
        self, decoded: ChatFragment | CompletionFragment | None
    ) -> ChatFragment | str | None:
        if decoded is None:
            return None
        if decoded.finish_reason is not None:
            self.session.finish_reason = decoded.finish_reason
        if isinstance(decoded, CompletionFragment):
            return decoded.text
        if not decoded.content:
            return None
        return decoded
