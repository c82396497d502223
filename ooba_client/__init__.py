"""
Async client for text-generation-webui's OpenAI-compatible API.

This package provides:
- Streaming chat and completion as lazy, cancellable fragment sequences
- Single-response chat and completion calls
- One error type (OobaboogaError) for every failure
- YAML and environment based configuration
"""

from __future__ import annotations

from .client import OobaboogaClient
from .config import Configuration
from .exceptions import (
    ErrorKind,
    MalformedFrameError,
    OobaboogaError,
    RequestRejectedError,
    ServerError,
    TransportFailureError,
)
from .models import (
    ChatCompletionOptions,
    ChatMessage,
    ClientConfig,
    CompletionOptions,
    MessageRole,
    StreamingSettings,
)
from .schemas import ChatCompletionResponse, CompletionResponse
from .streaming import ChatFragment, FragmentStream, StreamState

__all__ = [
    "ChatCompletionOptions",
    "ChatCompletionResponse",
    "ChatFragment",
    "ChatMessage",
    "ClientConfig",
    "CompletionOptions",
    "CompletionResponse",
    "Configuration",
    # Errors
    "ErrorKind",
    "FragmentStream",
    "MalformedFrameError",
    "MessageRole",
    # Client
    "OobaboogaClient",
    "OobaboogaError",
    "RequestRejectedError",
    "ServerError",
    "StreamState",
    "StreamingSettings",
    "TransportFailureError",
]
