import json

import pytest

from stream_bridge.generation import DecoderClosedError, StreamDecoder


SAMPLE_OBJECTS = [
    {"candidates": [{"content": {"parts": [{"text": "Héllo 🌍"}]}}]},
    {"text": 'a "nested" } brace {'},
    {"candidates": [{"content": {"parts": [{"inlineData": {"data": "iVBORw0=", "mimeType": "image/png"}}]}}]},
]


def _sample_bytes() -> bytes:
    # Upstream bodies arrive as a JSON array with newlines between objects.
    body = "[" + ",\r\n".join(json.dumps(obj, ensure_ascii=False) for obj in SAMPLE_OBJECTS) + "]"
    return body.encode("utf-8")


def _values(objects):
    return [obj.value for obj in objects]


def _decode_all(chunks):
    decoder = StreamDecoder()
    objects = []
    for chunk in chunks:
        objects.extend(decoder.feed(chunk))
    objects.extend(decoder.finalize())
    return _values(objects)


def test_whole_input_yields_every_object():
    assert _decode_all([_sample_bytes()]) == SAMPLE_OBJECTS


def test_any_single_split_point_matches_whole_input():
    data = _sample_bytes()
    expected = _decode_all([data])
    for cut in range(1, len(data)):
        assert _decode_all([data[:cut], data[cut:]]) == expected, f"split at byte {cut}"


def test_one_byte_chunks_yield_same_objects():
    data = _sample_bytes()
    chunks = [data[i : i + 1] for i in range(len(data))]
    assert _decode_all(chunks) == SAMPLE_OBJECTS


@pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 64])
def test_n_concatenated_objects_without_noise(chunk_size):
    objects = [{"n": i, "s": "}{" * i} for i in range(25)]
    data = "".join(json.dumps(obj) for obj in objects).encode("utf-8")
    chunks = [data[i : i + chunk_size] for i in range(0, len(data), chunk_size)]
    assert _decode_all(chunks) == objects


def test_quoted_brace_and_escaped_quotes_stay_in_one_object():
    decoder = StreamDecoder()
    objects = decoder.feed('{"text":"a \\"nested\\" } brace"}')
    assert len(objects) == 1
    assert objects[0].value["text"] == 'a "nested" } brace'
    assert decoder.buffer.text == ""


def test_text_before_first_brace_is_discarded():
    decoder = StreamDecoder()
    assert decoder.feed("data: noise without objects ") == []
    assert decoder.buffer.text == ""
    objects = decoder.feed('garbage {"a": 1} tail')
    assert _values(objects) == [{"a": 1}]
    assert decoder.buffer.text == ""


def test_malformed_span_is_skipped_and_scanning_resumes():
    decoder = StreamDecoder()
    objects = decoder.feed('{"a": 1,}{"b": 2}')
    assert _values(objects) == [{"b": 2}]
    assert decoder.malformed_spans == 1


def test_incomplete_object_is_retained_until_closed():
    decoder = StreamDecoder()
    assert decoder.feed('{"a": {"b": ') == []
    assert decoder.buffer.text == '{"a": {"b": '
    assert decoder.buffer.depth == 2
    assert _values(decoder.feed("[1, 2]}}")) == [{"a": {"b": [1, 2]}}]


def test_failed_feed_leaves_buffer_and_text_decoder_untouched(monkeypatch):
    decoder = StreamDecoder()
    assert decoder.feed(b'{"a":"\xc3') == []
    before = decoder.buffer.copy()

    def boom(buf):
        raise RuntimeError("scanner failure")

    monkeypatch.setattr(StreamDecoder, "_scan", staticmethod(boom))
    with pytest.raises(RuntimeError):
        decoder.feed(b'\xa9"}')
    assert decoder.buffer == before

    monkeypatch.undo()
    assert _values(decoder.feed(b'\xa9"}')) == [{"a": "é"}]


def test_finalize_reports_trailing_data_without_raising():
    decoder = StreamDecoder()
    assert _values(decoder.feed('{"a": 1}{"b": ')) == [{"a": 1}]
    assert decoder.finalize() == []
    assert decoder.trailing_data == '{"b":'


def test_finalize_recovers_complete_inner_objects_from_truncated_stream():
    decoder = StreamDecoder()
    assert decoder.feed('{"candidates":[{"content":{"parts":[{"text":"hi"}]}}]') == []
    residual = decoder.finalize()
    assert len(residual) == 1
    assert residual[0].residual is True
    assert residual[0].value == {"content": {"parts": [{"text": "hi"}]}}
    assert decoder.trailing_data is not None


def test_feed_after_finalize_raises():
    decoder = StreamDecoder()
    decoder.finalize()
    assert decoder.closed
    with pytest.raises(DecoderClosedError):
        decoder.feed("{}")
