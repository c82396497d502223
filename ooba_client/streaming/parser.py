"""
Event-stream frame reader and payload decoder.

FrameReader turns a chunked text source into complete frames; PayloadDecoder
turns one frame's payload into a chat or completion fragment.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, AsyncIterator

from pydantic import ValidationError

from ..logging_utils import ErrorClassifier
from ..schemas import ChatCompletionChunk, CompletionChunk, StreamErrorBody
from .models import (
    END_OF_STREAM,
    ChatFragment,
    CompletionFragment,
    EndOfStream,
    Frame,
    StreamMode,
)

FRAME_DELIMITER = "\n\n"


class FrameReader:
    """Buffers text chunks and yields complete event-stream frames in order."""

    def __init__(self, source: AsyncIterator[str]):
        self._source = source
        self._buffer = ""
        self._pending_cr = ""
        self._scan_from = 0
        self.dangling: str | None = None
        self.stats = {
            'chunks': 0,
            'frames': 0,
            'ignored_blocks': 0,
        }

    @property
    def buffered(self) -> str:
        """Read-ahead data not yet part of a complete frame."""
        return self._buffer

    async def frames(self) -> AsyncGenerator[Frame]:
        """
        Yield frames as soon as their terminating blank line arrives.

        Every complete frame in a chunk is yielded before the next chunk is
        requested. Non-blank data left over when the source ends is kept in
        ``dangling`` and never yielded.
        """
        try:
            async for chunk in self._source:
                if not chunk:
                    continue
                self.stats['chunks'] += 1
                self._append(chunk)

                for frame in self._drain():
                    yield frame
        finally:
            aclose = getattr(self._source, "aclose", None)
            if aclose is not None:
                await aclose()

        leftover = self._buffer + self._pending_cr
        self._buffer = ""
        self._pending_cr = ""
        if leftover.strip():
            self.dangling = leftover

    def _append(self, chunk: str) -> None:
        text = self._pending_cr + chunk
        self._pending_cr = ""
        # A trailing CR may be the first half of a CRLF split across chunks
        if text.endswith("\r"):
            text, self._pending_cr = text[:-1], "\r"
        self._buffer += text.replace("\r\n", "\n")

    def _drain(self) -> list[Frame]:
        frames: list[Frame] = []
        while True:
            index = self._buffer.find(FRAME_DELIMITER, self._scan_from)
            if index == -1:
                # Next search only needs to revisit the last character
                self._scan_from = max(0, len(self._buffer) - 1)
                return frames

            block = self._buffer[:index]
            self._buffer = self._buffer[index + len(FRAME_DELIMITER):]
            self._scan_from = 0

            frame = self.parse_block(block)
            if frame is None:
                self.stats['ignored_blocks'] += 1
                continue
            self.stats['frames'] += 1
            frames.append(frame)

    @staticmethod
    def parse_block(block: str) -> Frame | None:
        """Parse one blank-line delimited block; None if it carries no data."""
        data_lines: list[str] = []
        event = None
        event_id = None

        for line in block.split("\n"):
            if not line or line.startswith(":"):
                continue
            field_name, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]

            if field_name == "data":
                data_lines.append(value)
            elif field_name == "event":
                event = value
            elif field_name == "id":
                event_id = value

        if not data_lines:
            return None
        data = "\n".join(data_lines)
        if not data.strip():
            return None
        return Frame(data=data, event=event, id=event_id)


class PayloadDecoder:
    """Decodes frame payloads for one stream mode."""

    def __init__(
        self,
        mode: StreamMode,
        classifier: ErrorClassifier | None = None,
        endpoint: str | None = None,
    ):
        self.mode = mode
        self.classifier = classifier or ErrorClassifier()
        self.endpoint = endpoint
        self.last_usage = None

    def decode(
        self, frame: Frame
    ) -> ChatFragment | CompletionFragment | EndOfStream | None:
        """
        Decode one frame.

        Returns:
            END_OF_STREAM for the sentinel, None for a usage-only trailer
            without choices, otherwise a fragment

        Raises:
            MalformedFrameError: payload is not the expected shape
            ServerError: payload is an error object
        """
        if frame.is_sentinel:
            return END_OF_STREAM

        payload = frame.data
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise self.classifier.malformed_frame(
                payload, f"invalid JSON ({e.msg})", endpoint=self.endpoint
            ) from e
        except (ValueError, RecursionError) as e:
            # Oversized integers and pathological nesting fail outside the JSON grammar
            raise self.classifier.malformed_frame(
                payload, f"unparseable JSON ({type(e).__name__})", endpoint=self.endpoint
            ) from e

        if isinstance(data, dict) and "error" in data and "choices" not in data:
            self._raise_server_error(payload, data)

        if self.mode is StreamMode.CHAT:
            return self._decode_chat(payload, data)
        return self._decode_completion(payload, data)

    def _raise_server_error(self, payload: str, data: dict) -> None:
        try:
            body = StreamErrorBody.model_validate(data)
        except ValidationError as e:
            raise self.classifier.malformed_frame(
                payload, "unrecognized error object", endpoint=self.endpoint
            ) from e
        raise self.classifier.server_error(payload, body.error, endpoint=self.endpoint)

    def _decode_chat(self, payload: str, data: object) -> ChatFragment | None:
        try:
            chunk = ChatCompletionChunk.model_validate(data)
        except ValidationError as e:
            raise self.classifier.malformed_frame(
                payload,
                f"not a chat delta ({e.error_count()} validation errors)",
                endpoint=self.endpoint,
            ) from e

        if chunk.usage is not None:
            self.last_usage = chunk.usage
        if not chunk.choices:
            return None

        # Only the first choice is used; parallel choices are not merged
        choice = chunk.choices[0]
        return ChatFragment(
            content=choice.delta.content or "",
            role=choice.delta.role,
            finish_reason=choice.finish_reason,
            index=choice.index,
        )

    def _decode_completion(self, payload: str, data: object) -> CompletionFragment | None:
        try:
            chunk = CompletionChunk.model_validate(data)
        except ValidationError as e:
            raise self.classifier.malformed_frame(
                payload,
                f"not a completion token ({e.error_count()} validation errors)",
                endpoint=self.endpoint,
            ) from e

        if chunk.usage is not None:
            self.last_usage = chunk.usage
        if not chunk.choices:
            return None

        choice = chunk.choices[0]
        return CompletionFragment(
            text=choice.text,
            finish_reason=choice.finish_reason,
            index=choice.index,
        )
