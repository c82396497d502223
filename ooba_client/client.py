"""
HTTP client for a local text-generation-webui server (OpenAI-compatible API).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from .exceptions import OobaboogaError
from .logging_utils import ErrorClassifier, log_client_operation
from .models import (
    CHAT_COMPLETIONS_PATH,
    COMPLETIONS_PATH,
    MODELS_PATH,
    ChatCompletionOptions,
    ChatMessage,
    ClientConfig,
    CompletionOptions,
)
from .schemas import ChatCompletionResponse, CompletionResponse, ModelList
from .streaming.models import ChatFragment, StreamMode
from .streaming.stream import FragmentStream

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

MessageInput = ChatMessage | Mapping[str, Any]


class OobaboogaClient:
    """Async client for chat and text completion, streaming or not."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config: ClientConfig = config or ClientConfig()
        self.classifier = ErrorClassifier(self.config.streaming.error_excerpt_length)

        headers = {"Accept": "application/json, text/event-stream"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=self.config.base_url,
            headers=headers,
            timeout=httpx.Timeout(
                connect=self.config.connect_timeout,
                read=self.config.read_timeout,
                write=self.config.write_timeout,
                pool=self.config.pool_timeout,
            ),
            limits=httpx.Limits(
                max_connections=self.config.max_connections,
                max_keepalive_connections=self.config.max_keepalive,
                keepalive_expiry=self.config.keepalive_expiry,
            ),
            transport=transport,
        )

    def stream_chat_completion(
        self,
        messages: Iterable[MessageInput],
        options: ChatCompletionOptions | None = None,
    ) -> FragmentStream[ChatFragment]:
        """Stream a chat reply as fragments with non-empty content.

        The request is sent when the first fragment is requested.
        """
        payload = self._chat_payload(messages, options)
        return FragmentStream(
            self.client,
            CHAT_COMPLETIONS_PATH,
            payload,
            StreamMode.CHAT,
            settings=self.config.streaming,
            classifier=self.classifier,
        )

    def stream_completion(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> FragmentStream[str]:
        """Stream a plain completion as text tokens."""
        payload = self._completion_payload(prompt, options)
        return FragmentStream(
            self.client,
            COMPLETIONS_PATH,
            payload,
            StreamMode.COMPLETION,
            settings=self.config.streaming,
            classifier=self.classifier,
        )

    @log_client_operation("chat_completion", endpoint=CHAT_COMPLETIONS_PATH)
    async def chat_completion(
        self,
        messages: Iterable[MessageInput],
        options: ChatCompletionOptions | None = None,
    ) -> ChatCompletionResponse:
        """Get a complete chat reply in one response."""
        payload = self._chat_payload(messages, options)
        return await self._request(
            "POST", CHAT_COMPLETIONS_PATH, ChatCompletionResponse, payload
        )

    @log_client_operation("complete", endpoint=COMPLETIONS_PATH)
    async def complete(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> CompletionResponse:
        """Get a complete text completion in one response."""
        payload = self._completion_payload(prompt, options)
        return await self._request("POST", COMPLETIONS_PATH, CompletionResponse, payload)

    @log_client_operation("list_models", endpoint=MODELS_PATH)
    async def list_models(self) -> list[str]:
        """Return the ids of the models the server reports."""
        models = await self._request("GET", MODELS_PATH, ModelList)
        return [model.id for model in models.data]

    async def is_available(self) -> bool:
        """Check whether the server answers on the models endpoint."""
        try:
            await self.list_models()
        except OobaboogaError as e:
            logger.debug("Server unavailable", base_url=self.config.base_url, kind=e.kind.value)
            return False
        return True

    async def _request(
        self,
        method: str,
        path: str,
        response_model: type[M],
        payload: dict[str, Any] | None = None,
    ) -> M:
        try:
            response = await self.client.request(method, path, json=payload)
        except httpx.RequestError as e:
            raise self.classifier.transport_failure(e, endpoint=path) from e

        if not response.is_success:
            raise self.classifier.request_rejected(
                response.status_code, response.text, endpoint=path
            )

        try:
            return response_model.model_validate_json(response.content)
        except (ValidationError, RecursionError) as e:
            raise self.classifier.malformed_frame(
                response.text,
                f"unexpected {response_model.__name__} body",
                endpoint=path,
            ) from e

    def _chat_payload(
        self,
        messages: Iterable[MessageInput],
        options: ChatCompletionOptions | None,
    ) -> dict[str, Any]:
        wire_messages = [self._message_to_dict(m) for m in messages]
        if not wire_messages:
            raise ValueError("At least one chat message is required")

        payload = (options or ChatCompletionOptions()).to_payload()
        self.config.apply_defaults(payload)
        payload["messages"] = wire_messages
        return payload

    def _completion_payload(
        self,
        prompt: str,
        options: CompletionOptions | None,
    ) -> dict[str, Any]:
        if not isinstance(prompt, str):
            raise TypeError(f"prompt must be a string, got {type(prompt).__name__}")

        payload = (options or CompletionOptions()).to_payload()
        self.config.apply_defaults(payload)
        payload["prompt"] = prompt
        return payload

    @staticmethod
    def _message_to_dict(message: MessageInput) -> dict[str, Any]:
        if isinstance(message, ChatMessage):
            return message.to_dict()
        if "role" not in message or "content" not in message:
            raise ValueError("Chat messages need 'role' and 'content' keys")
        return dict(message)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> OobaboogaClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
