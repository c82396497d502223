"""
Streaming-specific dataclasses.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum

from ..schemas import Usage

SENTINEL = "[DONE]"


class StreamMode(Enum):
    """Payload shape expected on a stream."""
    CHAT = "chat"
    COMPLETION = "completion"


class StreamState(Enum):
    """Lifecycle of one streaming call."""
    START = "start"
    AWAITING_STATUS = "awaiting_status"
    READING = "reading"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.DONE, StreamState.FAILED, StreamState.CANCELLED)


@dataclass(frozen=True)
class Frame:
    """One complete event-stream message."""
    data: str
    event: str | None = None
    id: str | None = None

    @property
    def is_sentinel(self) -> bool:
        return self.data.strip() == SENTINEL


@dataclass(frozen=True)
class EndOfStream:
    """Signal produced when the sentinel payload is decoded."""
    raw: str = SENTINEL


END_OF_STREAM = EndOfStream()


@dataclass(frozen=True)
class ChatFragment:
    """Incremental piece of a streamed chat reply."""
    content: str = ""
    role: str | None = None
    finish_reason: str | None = None
    index: int = 0

    @property
    def is_role_only(self) -> bool:
        return not self.content and self.role is not None


@dataclass(frozen=True)
class CompletionFragment:
    """Incremental token of a streamed text completion."""
    text: str
    finish_reason: str | None = None
    index: int = 0

    @property
    def content(self) -> str:
        return self.text


@dataclass
class StreamSession:
    """Mutable per-call state; never shared between calls."""
    mode: StreamMode
    endpoint: str
    stream_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: StreamState = StreamState.START
    frames_read: int = 0
    fragments_emitted: int = 0
    fragments_suppressed: int = 0
    finish_reason: str | None = None
    usage: Usage | None = None
    truncated: bool = False
    text: str = ""
    started_at: float | None = None
    first_fragment_at: float | None = None
    finished_at: float | None = None

    def mark_started(self) -> None:
        self.started_at = time.perf_counter()
        self.state = StreamState.AWAITING_STATUS

    def record_emit(self, content: str) -> None:
        if self.first_fragment_at is None:
            self.first_fragment_at = time.perf_counter()
        self.fragments_emitted += 1
        self.text += content

    def finish(self, state: StreamState) -> None:
        if self.state.is_terminal:
            return
        self.state = state
        self.finished_at = time.perf_counter()

    @property
    def duration_ms(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.perf_counter()
        return round((end - self.started_at) * 1000, 2)

    def get_stats(self) -> dict[str, object]:
        """Snapshot for logging and monitoring."""
        first_fragment_ms = None
        if self.started_at is not None and self.first_fragment_at is not None:
            first_fragment_ms = round(
                (self.first_fragment_at - self.started_at) * 1000, 2
            )
        return {
            "stream_id": self.stream_id,
            "mode": self.mode.value,
            "state": self.state.value,
            "frames_read": self.frames_read,
            "fragments_emitted": self.fragments_emitted,
            "fragments_suppressed": self.fragments_suppressed,
            "finish_reason": self.finish_reason,
            "truncated": self.truncated,
            "duration_ms": self.duration_ms,
            "first_fragment_ms": first_fragment_ms,
        }
