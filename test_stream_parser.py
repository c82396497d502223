#!/usr/bin/env python3
"""
Tests for the event-stream frame reader and payload decoder.
"""

import json

import pytest

from ooba_client.exceptions import ErrorKind, MalformedFrameError, OobaboogaError, ServerError
from ooba_client.streaming.models import (
    END_OF_STREAM,
    ChatFragment,
    CompletionFragment,
    Frame,
    StreamMode,
)
from ooba_client.streaming.parser import FrameReader, PayloadDecoder


async def text_source(chunks):
    for chunk in chunks:
        yield chunk


async def read_all(chunks):
    reader = FrameReader(text_source(chunks))
    frames = [frame async for frame in reader.frames()]
    return reader, frames


def chat_payload(content=None, role=None, finish_reason=None):
    delta = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    return json.dumps({
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]
    })


CHAT_BODY = (
    'data: {"choices": [{"index": 0, "delta": {"role": "assistant"}}]}\n\n'
    'data: {"choices": [{"index": 0, "delta": {"content": "Hello"}}]}\n\n'
    'data: {"choices": [{"index": 0, "delta": {"content": " world"}}]}\n\n'
    'data: {"choices": [{"index": 0, "delta": {"content": "!"}}]}\n\n'
    "data: [DONE]\n\n"
)


class TestFrameReader:
    """Frame assembly from chunked text."""

    @pytest.mark.asyncio
    async def test_multiple_frames_in_one_chunk(self):
        reader, frames = await read_all([CHAT_BODY])
        assert len(frames) == 5
        assert frames[-1].data == "[DONE]"
        assert frames[-1].is_sentinel
        assert reader.dangling is None
        assert reader.stats["chunks"] == 1
        assert reader.stats["frames"] == 5

    @pytest.mark.asyncio
    async def test_split_position_does_not_change_frames(self):
        _, expected = await read_all([CHAT_BODY])
        for split in range(1, len(CHAT_BODY)):
            _, frames = await read_all([CHAT_BODY[:split], CHAT_BODY[split:]])
            assert frames == expected, f"split at {split}"

    @pytest.mark.asyncio
    async def test_one_character_chunks(self):
        _, expected = await read_all([CHAT_BODY])
        _, frames = await read_all(list(CHAT_BODY))
        assert frames == expected

    @pytest.mark.asyncio
    async def test_crlf_delimiters_split_between_cr_and_lf(self):
        body = "data: first\r\n\r\ndata: second\r\n\r\n"
        split = body.index("\n")  # right after the first CR
        _, frames = await read_all([body[:split], body[split:]])
        assert [f.data for f in frames] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_comments_and_blank_segments_are_ignored(self):
        body = ": keep-alive\n\n   \n\ndata: payload\n\ndata:\n\n"
        reader, frames = await read_all([body])
        assert [f.data for f in frames] == ["payload"]
        assert reader.stats["ignored_blocks"] == 3

    @pytest.mark.asyncio
    async def test_multiple_data_lines_are_joined(self):
        _, frames = await read_all(["data: line one\ndata: line two\n\n"])
        assert frames == [Frame(data="line one\nline two")]

    @pytest.mark.asyncio
    async def test_event_and_id_fields(self):
        _, frames = await read_all(["event: token\nid: 7\nretry: 10\ndata: x\n\n"])
        assert frames == [Frame(data="x", event="token", id="7")]

    @pytest.mark.asyncio
    async def test_dangling_trailing_data_is_not_emitted(self):
        body = 'data: {"choices": [{"text": "a"}]}\n\ndata: {"choices": [{"te'
        reader, frames = await read_all([body])
        assert len(frames) == 1
        assert reader.dangling == 'data: {"choices": [{"te'
        assert reader.buffered == ""

    @pytest.mark.asyncio
    async def test_trailing_whitespace_is_not_dangling(self):
        reader, frames = await read_all(["data: a\n\n", "\n  "])
        assert [f.data for f in frames] == ["a"]
        assert reader.dangling is None

    @pytest.mark.asyncio
    async def test_partial_frame_stays_buffered(self):
        reader = FrameReader(text_source(["data: a\n\ndata: b"]))
        frames = reader.frames()
        first = await frames.__anext__()
        assert first.data == "a"
        assert reader.buffered == "data: b"
        await frames.aclose()


class TestPayloadDecoder:
    """Payload decoding per mode."""

    def test_sentinel(self):
        decoder = PayloadDecoder(StreamMode.CHAT)
        assert decoder.decode(Frame(data="[DONE]")) is END_OF_STREAM
        assert decoder.decode(Frame(data=" [DONE] ")) is END_OF_STREAM

    def test_sentinel_is_case_sensitive(self):
        decoder = PayloadDecoder(StreamMode.CHAT)
        with pytest.raises(MalformedFrameError):
            decoder.decode(Frame(data="[done]"))

    def test_chat_content(self):
        decoder = PayloadDecoder(StreamMode.CHAT)
        fragment = decoder.decode(Frame(data=chat_payload(content="Hello")))
        assert fragment == ChatFragment(content="Hello")

    def test_chat_role_only(self):
        decoder = PayloadDecoder(StreamMode.CHAT)
        fragment = decoder.decode(Frame(data=chat_payload(role="assistant")))
        assert fragment.content == ""
        assert fragment.role == "assistant"
        assert fragment.is_role_only

    def test_chat_finish_reason(self):
        decoder = PayloadDecoder(StreamMode.CHAT)
        fragment = decoder.decode(Frame(data=chat_payload(content="", finish_reason="stop")))
        assert fragment.finish_reason == "stop"
        assert not fragment.is_role_only

    def test_only_first_choice_is_used(self):
        decoder = PayloadDecoder(StreamMode.CHAT)
        payload = json.dumps({"choices": [
            {"index": 0, "delta": {"content": "first"}},
            {"index": 1, "delta": {"content": "second"}},
        ]})
        assert decoder.decode(Frame(data=payload)).content == "first"

    def test_completion_text(self):
        decoder = PayloadDecoder(StreamMode.COMPLETION)
        fragment = decoder.decode(Frame(data='{"choices": [{"text": " world"}]}'))
        assert fragment == CompletionFragment(text=" world")

    def test_invalid_json_is_malformed(self):
        decoder = PayloadDecoder(StreamMode.CHAT, endpoint="/v1/chat/completions")
        with pytest.raises(MalformedFrameError) as exc_info:
            decoder.decode(Frame(data="{not json"))
        error = exc_info.value
        assert error.kind is ErrorKind.MALFORMED_FRAME
        assert error.payload_excerpt == "{not json"
        assert error.endpoint == "/v1/chat/completions"

    @pytest.mark.parametrize("payload", [
        "[" * 100000 + "]" * 100000,
        '{"choices": [{"text": "x", "index": ' + "9" * 5000 + "}]}",
    ], ids=["deep_nesting", "oversized_integer"])
    def test_unparseable_json_is_malformed(self, payload):
        decoder = PayloadDecoder(StreamMode.COMPLETION, endpoint="/v1/completions")
        with pytest.raises(MalformedFrameError) as exc_info:
            decoder.decode(Frame(data=payload))
        assert exc_info.value.kind is ErrorKind.MALFORMED_FRAME
        assert exc_info.value.endpoint == "/v1/completions"

    def test_wrong_shape_for_mode_is_malformed(self):
        chat_decoder = PayloadDecoder(StreamMode.CHAT)
        with pytest.raises(MalformedFrameError):
            chat_decoder.decode(Frame(data='{"choices": [{"text": "x"}]}'))

        completion_decoder = PayloadDecoder(StreamMode.COMPLETION)
        with pytest.raises(MalformedFrameError):
            completion_decoder.decode(Frame(data=chat_payload(content="x")))

    def test_non_object_payload_is_malformed(self):
        decoder = PayloadDecoder(StreamMode.COMPLETION)
        with pytest.raises(OobaboogaError):
            decoder.decode(Frame(data="[1, 2, 3]"))

    def test_error_object_is_server_error(self):
        decoder = PayloadDecoder(StreamMode.CHAT)
        with pytest.raises(ServerError) as exc_info:
            decoder.decode(Frame(data='{"error": {"message": "model not loaded"}}'))
        assert "model not loaded" in str(exc_info.value)
        assert exc_info.value.kind is ErrorKind.SERVER_ERROR

    def test_string_error_object_is_server_error(self):
        decoder = PayloadDecoder(StreamMode.COMPLETION)
        with pytest.raises(ServerError, match="CUDA out of memory"):
            decoder.decode(Frame(data='{"error": "CUDA out of memory"}'))

    def test_unrecognized_error_object_is_malformed(self):
        decoder = PayloadDecoder(StreamMode.COMPLETION)
        with pytest.raises(MalformedFrameError):
            decoder.decode(Frame(data='{"error": null}'))

    def test_usage_only_trailer(self):
        decoder = PayloadDecoder(StreamMode.COMPLETION)
        payload = '{"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 5, "total_tokens": 8}}'
        assert decoder.decode(Frame(data=payload)) is None
        assert decoder.last_usage.total_tokens == 8
