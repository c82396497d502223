# ooba_client/schemas.py
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for server payloads; unknown fields are tolerated."""
    model_config = ConfigDict(extra="ignore")


class Usage(WireModel):
    """Token usage statistics."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ResponseMessage(WireModel):
    role: str = "assistant"
    content: str | None = None


class ChatCompletionChoice(WireModel):
    index: int = 0
    message: ResponseMessage
    finish_reason: str | None = None


class ChatCompletionResponse(WireModel):
    """Non-streaming chat completion body."""
    id: str = ""
    object: str = "chat.completion"
    created: int = 0
    model: str = ""
    choices: list[ChatCompletionChoice] = Field(min_length=1)
    usage: Usage | None = None

    @property
    def content(self) -> str:
        return self.choices[0].message.content or ""


class CompletionChoice(WireModel):
    index: int = 0
    text: str
    finish_reason: str | None = None


class CompletionResponse(WireModel):
    """Non-streaming text completion body."""
    id: str = ""
    object: str = "text_completion"
    created: int = 0
    model: str = ""
    choices: list[CompletionChoice] = Field(min_length=1)
    usage: Usage | None = None

    @property
    def text(self) -> str:
        return self.choices[0].text


class ChatDelta(WireModel):
    role: str | None = None
    content: str | None = None


class ChatChunkChoice(WireModel):
    index: int = 0
    delta: ChatDelta
    finish_reason: str | None = None


class ChatCompletionChunk(WireModel):
    """One chat-delta frame of a streamed chat completion."""
    id: str = ""
    model: str = ""
    choices: list[ChatChunkChoice]
    usage: Usage | None = None


class CompletionChunkChoice(WireModel):
    index: int = 0
    text: str
    finish_reason: str | None = None


class CompletionChunk(WireModel):
    """One token frame of a streamed text completion."""
    id: str = ""
    model: str = ""
    choices: list[CompletionChunkChoice]
    usage: Usage | None = None


class StreamErrorBody(WireModel):
    """Error object some servers push into the stream instead of a chunk."""
    error: dict[str, Any] | str


class ModelInfo(WireModel):
    id: str
    object: str = "model"
    owned_by: str | None = None


class ModelList(WireModel):
    object: str = "list"
    data: list[ModelInfo] = Field(default_factory=list)
