"""
Request-side dataclasses for the Oobabooga client.

This module provides:
- Chat message structures
- Sampling options for chat and plain completion requests
- Client connection settings
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"
COMPLETIONS_PATH = "/v1/completions"
MODELS_PATH = "/v1/models"


class MessageRole(Enum):
    """OpenAI-compatible message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """OpenAI-compatible message structure."""
    role: MessageRole | str
    content: str

    def to_dict(self) -> dict[str, str]:
        role = self.role.value if isinstance(self.role, MessageRole) else self.role
        return {"role": role, "content": self.content}


@dataclass
class CompletionOptions:
    """Sampling options shared by chat and plain completion requests."""
    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    repetition_penalty: float | None = None
    seed: int | None = None
    stop: list[str] | None = None

    def validate(self) -> None:
        """Reject out-of-range sampling values."""
        if self.max_tokens is not None and self.max_tokens < 1:
            raise ValueError("max_tokens must be at least 1")
        if self.temperature is not None and self.temperature < 0:
            raise ValueError("temperature must be non-negative")
        if self.top_p is not None and not 0 < self.top_p <= 1:
            raise ValueError("top_p must be in (0, 1]")
        if self.top_k is not None and self.top_k < 0:
            raise ValueError("top_k must be non-negative")
        if self.repetition_penalty is not None and self.repetition_penalty <= 0:
            raise ValueError("repetition_penalty must be positive")

    def to_payload(self) -> dict[str, Any]:
        """Serialize set fields into a request body fragment."""
        self.validate()
        payload: dict[str, Any] = {}
        for name in (
            "model", "max_tokens", "temperature", "top_p", "top_k",
            "repetition_penalty", "seed",
        ):
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        if self.stop:
            payload["stop"] = list(self.stop)
        return payload


@dataclass
class ChatCompletionOptions(CompletionOptions):
    """Chat options, including text-generation-webui extensions."""
    mode: str | None = None
    character: str | None = None
    instruction_template: str | None = None

    def validate(self) -> None:
        super().validate()
        if self.mode is not None and self.mode not in ("chat", "instruct", "chat-instruct"):
            raise ValueError(
                f"mode must be one of chat, instruct, chat-instruct, got '{self.mode}'"
            )

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        for name in ("mode", "character", "instruction_template"):
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        return payload


@dataclass(frozen=True)
class StreamingSettings:
    """Tuning for the streaming pipeline."""
    strict_termination: bool = False
    require_event_stream: bool = True
    error_excerpt_length: int = 500


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings for one inference server."""
    base_url: str = "http://127.0.0.1:5000"
    api_key: str | None = None

    # Request defaults applied when per-call options leave them unset
    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None

    # Connection settings
    max_connections: int = 10
    max_keepalive: int = 5
    keepalive_expiry: float = 5.0
    connect_timeout: float = 10.0
    read_timeout: float = 120.0
    write_timeout: float = 10.0
    pool_timeout: float = 10.0

    streaming: StreamingSettings = field(default_factory=StreamingSettings)

    def apply_defaults(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Fill request-level defaults into a payload without overriding it."""
        for name in ("model", "max_tokens", "temperature"):
            value = getattr(self, name)
            if value is not None and name not in payload:
                payload[name] = value
        return payload
