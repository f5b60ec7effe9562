"""
Tests unitaires pour la réécriture du flux SSE.

Pourquoi: les chunks réseau ne respectent pas les frontières d'événements et
le raisonnement doit être encadré exactement une fois.
"""
import json
import logging
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from nim_proxy.proxy.stream import (
    StreamTransformer,
    stream_generator,
    format_event,
    DONE_EVENT,
    STREAMING_ERROR_TYPES,
)


def decode(event: bytes):
    """Retourne le payload JSON d'un événement (ou la chaîne [DONE])."""
    text = event.decode("utf-8")
    assert text.startswith("data: ")
    assert text.endswith("\n\n")
    payload = text[len("data: "):-2]
    if payload == "[DONE]":
        return payload
    return json.loads(payload)


def contents(events):
    """Contenus des deltas, dans l'ordre (hors [DONE])."""
    result = []
    for event in events:
        data = decode(event)
        if data == "[DONE]":
            continue
        result.append(data["choices"][0]["delta"]["content"])
    return result


def run(transformer, chunks):
    events = []
    for chunk in chunks:
        events.extend(transformer.feed(chunk))
    events.extend(transformer.finish())
    return events


class TestFormatEvent:

    def test_event_framing(self):
        assert format_event({"a": 1}) == b'data: {"a": 1}\n\n'

    def test_non_ascii_kept(self):
        assert "é".encode("utf-8") in format_event({"content": "é"})


class TestReasoningHidden:
    """Affichage du raisonnement désactivé."""

    def test_reasoning_discarded(self, make_sse, make_delta):
        transformer = StreamTransformer(show_reasoning=False)
        events = run(transformer, [
            make_sse(make_delta(reasoning="thinking...")),
            make_sse(make_delta(content="Hello")),
            make_sse("[DONE]"),
        ])

        assert contents(events) == ["", "Hello"]
        assert events[-1] == DONE_EVENT
        for event in events[:-1]:
            assert "reasoning_content" not in decode(event)["choices"][0]["delta"]

    def test_content_always_present(self, make_sse):
        transformer = StreamTransformer(show_reasoning=False)
        chunk = {"id": "x", "choices": [{"index": 0, "delta": {"role": "assistant"}}]}
        events = transformer.feed(make_sse(chunk))

        assert decode(events[0])["choices"][0]["delta"] == {"role": "assistant", "content": ""}

    def test_no_closing_marker_at_done(self, make_sse, make_delta):
        transformer = StreamTransformer(show_reasoning=False)
        events = run(transformer, [make_sse(make_delta(reasoning="r")), make_sse("[DONE]")])

        assert len(events) == 2
        assert "</think>" not in b"".join(events).decode("utf-8")


class TestReasoningShown:
    """Affichage du raisonnement activé: balises <think>."""

    def test_bracketing_sequence(self, make_sse, make_delta):
        transformer = StreamTransformer(show_reasoning=True)
        events = run(transformer, [
            make_sse(make_delta(reasoning="a")),
            make_sse(make_delta(reasoning="b")),
            make_sse(make_delta(content="c")),
            make_sse("[DONE]"),
        ])

        texts = contents(events)
        assert texts == ["<think>\na", "b", "</think>\n\n", "c"]
        joined = "".join(texts)
        assert joined.count("<think>") == 1
        assert joined.count("</think>") == 1
        assert events[-1] == DONE_EVENT

    def test_closing_marker_is_its_own_event(self, make_sse, make_delta):
        transformer = StreamTransformer(show_reasoning=True)
        transformer.feed(make_sse(make_delta(reasoning="a")))
        events = transformer.feed(make_sse(make_delta(content="c")))

        assert len(events) == 2
        closing = decode(events[0])
        assert closing["id"] == "chatcmpl-1"
        assert closing["object"] == "chat.completion.chunk"
        assert closing["choices"] == [
            {"index": 0, "delta": {"content": "</think>\n\n"}, "finish_reason": None}
        ]
        assert decode(events[1])["choices"][0]["delta"]["content"] == "c"
        assert transformer.state.reasoning_open is False

    def test_reasoning_and_content_in_same_delta(self, make_sse, make_delta):
        transformer = StreamTransformer(show_reasoning=True)
        events = transformer.feed(make_sse(make_delta(content="x", reasoning="r")))

        assert contents(events) == ["<think>\nrx"]
        assert transformer.state.reasoning_open is True

    def test_done_closes_open_reasoning(self, make_sse, make_delta):
        transformer = StreamTransformer(show_reasoning=True)
        events = run(transformer, [make_sse(make_delta(reasoning="a")), make_sse("[DONE]")])

        assert contents(events) == ["<think>\na", "</think>\n\n"]
        assert decode(events[1]) == {"choices": [{"index": 0, "delta": {"content": "</think>\n\n"}}]}
        assert events[-1] == DONE_EVENT
        assert transformer.state.reasoning_open is False

    def test_end_without_done_closes_reasoning(self, make_sse, make_delta):
        transformer = StreamTransformer(show_reasoning=True)
        events = run(transformer, [make_sse(make_delta(reasoning="a"))])

        assert contents(events) == ["<think>\na", "</think>\n\n"]
        assert DONE_EVENT not in events

    def test_empty_content_does_not_close(self, make_sse, make_delta):
        transformer = StreamTransformer(show_reasoning=True)
        transformer.feed(make_sse(make_delta(reasoning="a")))
        events = transformer.feed(make_sse(make_delta(content="")))

        assert contents(events) == [""]
        assert transformer.state.reasoning_open is True

    def test_reasoning_reopens_after_close(self, make_sse, make_delta):
        transformer = StreamTransformer(show_reasoning=True)
        events = run(transformer, [
            make_sse(make_delta(reasoning="a")),
            make_sse(make_delta(content="b")),
            make_sse(make_delta(reasoning="c")),
            make_sse("[DONE]"),
        ])

        assert contents(events) == ["<think>\na", "</think>\n\n", "b", "<think>\nc", "</think>\n\n"]


class TestFraming:
    """Découpage des lignes et robustesse."""

    def _stream(self, make_sse, make_delta):
        return b"".join([
            make_sse(make_delta(reasoning="Réflexion 思考")),
            b": keep-alive\n\n",
            make_sse(make_delta(content="Bonjour 👋")),
            make_sse({"id": "u", "choices": [], "usage": {"total_tokens": 3}}),
            make_sse("[DONE]"),
        ])

    @pytest.mark.parametrize("show_reasoning", [False, True])
    def test_byte_by_byte_equals_whole(self, make_sse, make_delta, show_reasoning):
        data = self._stream(make_sse, make_delta)

        whole = run(StreamTransformer(show_reasoning), [data])
        split = run(StreamTransformer(show_reasoning), [data[i:i + 1] for i in range(len(data))])

        assert split == whole
        assert whole[-1] == DONE_EVENT

    @pytest.mark.parametrize("size", [2, 3, 7, 13, 64])
    def test_fixed_size_chunks_equal_whole(self, make_sse, make_delta, size):
        data = self._stream(make_sse, make_delta)

        whole = run(StreamTransformer(True), [data])
        split = run(StreamTransformer(True), [data[i:i + size] for i in range(0, len(data), size)])

        assert split == whole

    def test_split_inside_multibyte_character(self, make_sse, make_delta):
        data = make_sse(make_delta(content="é"))
        cut = data.index("é".encode("utf-8")) + 1
        transformer = StreamTransformer()

        first = transformer.feed(data[:cut])
        second = transformer.feed(data[cut:])

        assert first == []
        assert contents(second) == ["é"]

    def test_incomplete_line_held_back(self, make_sse, make_delta):
        data = make_sse(make_delta(content="hi"))
        transformer = StreamTransformer()

        assert transformer.feed(data[:10]) == []
        assert transformer.state.buffer == data[:10].decode("utf-8")
        assert contents(transformer.feed(data[10:])) == ["hi"]

    def test_crlf_line_endings(self, make_delta):
        data = ("data: " + json.dumps(make_delta(content="x")) + "\r\n\r\ndata: [DONE]\r\n\r\n").encode()
        events = run(StreamTransformer(), [data])

        assert contents(events) == ["x"]
        assert events[-1] == DONE_EVENT

    def test_data_prefix_without_space(self, make_delta):
        data = ("data:" + json.dumps(make_delta(content="x")) + "\n\n").encode()
        assert contents(StreamTransformer().feed(data)) == ["x"]

    def test_non_data_lines_ignored(self):
        data = b": ping\nevent: message\nid: 4\nretry: 100\n\n"
        assert run(StreamTransformer(), [data]) == []

    def test_malformed_line_dropped(self, make_sse, make_delta, caplog):
        transformer = StreamTransformer()
        with caplog.at_level(logging.WARNING, logger="nim_proxy.proxy.stream"):
            events = run(transformer, [
                b"data: {not json\n\n",
                make_sse(make_delta(content="ok")),
                make_sse("[DONE]"),
            ])

        assert contents(events) == ["ok"]
        assert events[-1] == DONE_EVENT
        assert "JSON invalide" in caplog.text

    def test_done_in_content_is_not_termination(self, make_sse, make_delta):
        events = run(StreamTransformer(), [make_sse(make_delta(content="[DONE]"))])

        assert contents(events) == ["[DONE]"]
        assert DONE_EVENT not in events

    def test_payload_without_delta_forwarded(self, make_sse):
        chunk = {"id": "u", "choices": [], "usage": {"prompt_tokens": 1, "completion_tokens": 2, "total_tokens": 3}}
        events = StreamTransformer(True).feed(make_sse(chunk))

        assert decode(events[0]) == chunk

    def test_trailing_line_without_newline(self, make_delta):
        data = ("data: " + json.dumps(make_delta(content="tail"))).encode()
        transformer = StreamTransformer()

        assert transformer.feed(data) == []
        assert contents(transformer.finish()) == ["tail"]

    def test_state_is_per_instance(self, make_sse, make_delta):
        first = StreamTransformer(True)
        second = StreamTransformer(True)
        first.feed(make_sse(make_delta(reasoning="a")))

        assert first.state.reasoning_open is True
        assert second.state.reasoning_open is False


# Helper pour créer un async iterator
def async_iter(items):
    """Crée un async iterator à partir d'une liste."""
    async def _iter():
        for item in items:
            yield item
    return _iter()


def mock_response(chunks_iter):
    response = MagicMock()
    response.status_code = 200
    response.aiter_bytes = MagicMock(return_value=chunks_iter)
    response.aclose = AsyncMock()
    return response


class TestStreamGenerator:
    """Tests du générateur async."""

    @pytest.mark.asyncio
    async def test_forwards_events_and_closes_response(self, make_sse, make_delta):
        data = make_sse(make_delta(content="Hello")) + make_sse("[DONE]")
        response = mock_response(async_iter([data[:15], data[15:]]))

        events = [e async for e in stream_generator(response, StreamTransformer())]

        assert contents(events) == ["Hello"]
        assert events[-1] == DONE_EVENT
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closing_marker_when_upstream_ends(self, make_sse, make_delta):
        response = mock_response(async_iter([make_sse(make_delta(reasoning="r"))]))

        events = [e async for e in stream_generator(response, StreamTransformer(True))]

        assert contents(events) == ["<think>\nr", "</think>\n\n"]

    @pytest.mark.asyncio
    async def test_read_error_ends_stream_quietly(self, make_sse, make_delta, caplog):
        async def failing_stream():
            yield make_sse(make_delta(reasoning="r"))
            raise httpx.ReadError("Connection reset by peer")

        response = mock_response(failing_stream())

        with caplog.at_level(logging.ERROR, logger="nim_proxy.proxy.stream"):
            events = [e async for e in stream_generator(response, StreamTransformer(True))]

        # Rien n'est émis après l'erreur, pas même la fermeture </think>
        assert contents(events) == ["<think>\nr"]
        assert STREAMING_ERROR_TYPES["read_error"] in caplog.text
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_ends_stream_quietly(self, make_sse, make_delta):
        async def timeout_stream():
            yield make_sse(make_delta(content="Hi"))
            raise httpx.ReadTimeout("Read timeout")

        response = mock_response(timeout_stream())
        events = [e async for e in stream_generator(response, StreamTransformer())]

        assert contents(events) == ["Hi"]
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_client_disconnect_closes_upstream(self, make_sse, make_delta):
        chunks = [make_sse(make_delta(content=str(i))) for i in range(5)]
        response = mock_response(async_iter(chunks))

        generator = stream_generator(response, StreamTransformer())
        first = await generator.__anext__()
        await generator.aclose()

        assert contents([first]) == ["0"]
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_error_ends_stream_quietly(self, make_sse, make_delta, caplog):
        async def dropped_stream():
            yield make_sse(make_delta(reasoning="r"))
            raise httpx.ConnectError("Connection refused")

        response = mock_response(dropped_stream())

        with caplog.at_level(logging.ERROR, logger="nim_proxy.proxy.stream"):
            events = [e async for e in stream_generator(response, StreamTransformer(True))]

        assert contents(events) == ["<think>\nr"]
        assert DONE_EVENT not in events
        assert STREAMING_ERROR_TYPES["connect_error"] in caplog.text
        response.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unexpected_error_ends_stream_quietly(self, make_sse, make_delta, caplog):
        async def broken_stream():
            yield make_sse(make_delta(content="Hi"))
            raise RuntimeError("boom")

        response = mock_response(broken_stream())

        with caplog.at_level(logging.ERROR, logger="nim_proxy.proxy.stream"):
            events = [e async for e in stream_generator(response, StreamTransformer())]

        assert contents(events) == ["Hi"]
        assert DONE_EVENT not in events
        assert STREAMING_ERROR_TYPES["unknown"] in caplog.text
        assert "boom" in caplog.text
        response.aclose.assert_awaited_once()
