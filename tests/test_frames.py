import json

import pytest

from geppetto.chat.frames import FrameDecoder, classify_completion_frame, classify_web_ui_frame, iter_payloads
from geppetto.chat.types import ContentDelta, Finish, RoleDelta
from geppetto.errors import ProtocolViolation, StreamDecodeError, TransportError


def _completion_frame(delta: dict, finish_reason: str | None = None) -> dict:
    return {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]}


FRAMES = [
    _completion_frame({"role": "assistant"}),
    _completion_frame({"content": "Hello"}),
    _completion_frame({"content": ", wörld 🌍"}),
    _completion_frame({}, finish_reason="stop"),
]
BODY = "".join(f"data: {json.dumps(frame, ensure_ascii=False)}\n\n" for frame in FRAMES).encode() + b"data: [DONE]\n\n"


def _decode(chunks: list[bytes]) -> list[object]:
    decoder = FrameDecoder()
    payloads: list[object] = []
    for chunk in chunks:
        payloads.extend(decoder.feed(chunk))
    decoder.close()
    return payloads


def test_decoder_yields_every_frame_in_one_chunk() -> None:
    assert _decode([BODY]) == FRAMES


@pytest.mark.parametrize("split", range(1, len(BODY)))
def test_decoder_is_independent_of_chunk_boundaries(split: int) -> None:
    assert _decode([BODY[:split], BODY[split:]]) == FRAMES


def test_decoder_handles_byte_by_byte_stream() -> None:
    assert _decode([BODY[index : index + 1] for index in range(len(BODY))]) == FRAMES


def test_decoder_stops_at_done_sentinel() -> None:
    decoder = FrameDecoder()
    payloads = decoder.feed(b'data: {"a": 1}\n\ndata: [DONE]\n\ndata: {"b": 2}\n\n')

    assert payloads == [{"a": 1}]
    assert decoder.done
    assert decoder.feed(b'data: {"c": 3}\n\n') == []


def test_decoder_skips_parts_without_data_prefix() -> None:
    payloads = _decode([b': keep-alive\n\nevent: ping\n\ndata: {"a": 1}\n\n'])

    assert payloads == [{"a": 1}]


def test_decoder_retries_partial_json_after_next_chunk() -> None:
    decoder = FrameDecoder()

    assert decoder.feed(b'data: {"content": "hel') == []
    assert decoder.feed(b'lo"}\n\n') == [{"content": "hello"}]
    decoder.close()


def test_decoder_raises_stream_decode_error_on_unresolved_partial_frame() -> None:
    decoder = FrameDecoder()
    decoder.feed(b'data: {"content": "never finish')

    with pytest.raises(StreamDecodeError) as exc_info:
        decoder.close()
    assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)


@pytest.mark.asyncio
async def test_iter_payloads_reads_async_chunks() -> None:
    async def chunks():
        yield BODY[:7]
        yield BODY[7:40]
        yield BODY[40:]

    payloads = [payload async for payload in iter_payloads(chunks())]

    assert payloads == FRAMES


def test_classify_completion_frames() -> None:
    frames = [classify_completion_frame(payload) for payload in FRAMES]

    assert frames == [
        RoleDelta("assistant"),
        ContentDelta(text="Hello", message_id="chatcmpl-1"),
        ContentDelta(text=", wörld 🌍", message_id="chatcmpl-1"),
        Finish("stop"),
    ]


def test_classify_completion_frame_prefers_content_over_role() -> None:
    frame = classify_completion_frame(_completion_frame({"role": "assistant", "content": "hi"}))

    assert frame == ContentDelta(text="hi", message_id="chatcmpl-1")


@pytest.mark.parametrize(
    "payload",
    [
        {"choices": []},
        {"choices": [{"delta": {"tool_calls": []}, "finish_reason": None}]},
        {"choices": [{"delta": {"role": "robot"}, "finish_reason": None}]},
        {"unexpected": True},
        ["not", "an", "object"],
    ],
)
def test_classify_completion_frame_rejects_unknown_shapes(payload: object) -> None:
    with pytest.raises(ProtocolViolation):
        classify_completion_frame(payload)


def _web_frame(role: str, text: str, error: object = None) -> dict:
    return {
        "message": {"id": "msg-1", "author": {"role": role}, "content": {"content_type": "text", "parts": [text]}},
        "conversation_id": "conv-1",
        "error": error,
    }


def test_classify_web_ui_assistant_frame_is_cumulative_content() -> None:
    frame = classify_web_ui_frame(_web_frame("assistant", "Hello wor"))

    assert frame == ContentDelta(text="Hello wor", message_id="msg-1", conversation_id="conv-1", cumulative=True)


def test_classify_web_ui_user_frame_is_role_delta() -> None:
    assert classify_web_ui_frame(_web_frame("user", "echo")) == RoleDelta("user")


def test_classify_web_ui_error_frame_raises_transport_error() -> None:
    with pytest.raises(TransportError):
        classify_web_ui_frame(_web_frame("assistant", "", error="too many requests"))


def test_classify_web_ui_frame_without_message_is_protocol_violation() -> None:
    with pytest.raises(ProtocolViolation):
        classify_web_ui_frame({"conversation_id": "conv-1", "error": None})
