"""
Streaming pipeline for event-stream responses.

- FrameReader: chunked text to complete frames
- PayloadDecoder: frame payload to chat or completion fragment
- FragmentStream: lazy, cancellable sequence for one call
"""

from .models import (
    ChatFragment,
    CompletionFragment,
    Frame,
    StreamMode,
    StreamSession,
    StreamState,
)
from .parser import FrameReader, PayloadDecoder
from .stream import FragmentStream

__all__ = [
    "ChatFragment",
    "CompletionFragment",
    "Frame",
    "FragmentStream",
    "FrameReader",
    "PayloadDecoder",
    "StreamMode",
    "StreamSession",
    "StreamState",
]
