import json
from concurrent.futures import ThreadPoolExecutor

import httpx
import pytest

from stream_bridge.generation import (
    ArtifactCache,
    ArtifactStorage,
    BridgeSettings,
    ConfigurationError,
    DecodeSession,
    GenerationClient,
    GenerationOptions,
    InMemoryArtifactRepository,
    StoragePaths,
    TransportError,
    collect_batch,
)


SETTINGS = BridgeSettings(api_key="test-key", base_url="https://upstream.test/v1beta/models/m:streamGenerateContent")


def _client(handler) -> GenerationClient:
    return GenerationClient(SETTINGS, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_request_body_for_text_and_image():
    body = GenerationOptions(prompt="a cat", aspect_ratio="16:9", image_size="2k").to_request_body()
    assert body["contents"] == [{"role": "user", "parts": [{"text": "a cat"}]}]
    config = body["generationConfig"]
    assert config["responseModalities"] == ["TEXT", "IMAGE"]
    assert config["imageConfig"] == {"aspectRatio": "16:9", "imageSize": "2k"}
    assert config["maxOutputTokens"] == 2048


def test_request_body_for_text_only_has_no_image_config():
    config = GenerationOptions(prompt="hi", modality="TEXT").to_request_body()["generationConfig"]
    assert config["responseModalities"] == ["TEXT"]
    assert "imageConfig" not in config


@pytest.mark.parametrize("kwargs", [{"prompt": "  "}, {"prompt": "x", "modality": "VIDEO"}, {"prompt": "x", "max_tokens": 0}])
def test_invalid_options_are_rejected(kwargs):
    with pytest.raises(ValueError):
        GenerationOptions(**kwargs)


def test_iter_chunks_streams_body_into_batch(tmp_path):
    seen = {}
    pieces = [
        b'[{"candidates":[{"content":{"parts":[{"text":"Hel',
        b'lo"}]}}]},\r\n{"candidates":[{"content":{"parts":[{"text":" World"}]}}]}]',
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        seen["key"] = request.headers["x-goog-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=iter(pieces))

    cache = ArtifactCache(ArtifactStorage(StoragePaths(tmp_path), fsync=False), InMemoryArtifactRepository())
    with ThreadPoolExecutor(max_workers=1) as executor:
        result = collect_batch(DecodeSession(cache, executor), _client(handler).iter_chunks(GenerationOptions("hi")))

    assert result.success is True
    assert result.text == "Hello World"
    assert seen["key"] == "test-key"
    assert seen["body"]["contents"][0]["parts"][0]["text"] == "hi"


def test_error_status_becomes_transport_error():
    def handler(request):
        return httpx.Response(500, content=b"upstream exploded")

    with pytest.raises(TransportError) as excinfo:
        list(_client(handler).iter_chunks(GenerationOptions("hi")))
    assert excinfo.value.status_code == 500
    assert "API Error: 500 - upstream exploded" in str(excinfo.value)


def test_read_timeout_is_reported_as_stall():
    def handler(request):
        raise httpx.ReadTimeout("no bytes", request=request)

    with pytest.raises(TransportError) as excinfo:
        list(_client(handler).iter_chunks(GenerationOptions("hi")))
    assert "stalled" in str(excinfo.value)


def test_connection_error_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError):
        list(_client(handler).iter_chunks(GenerationOptions("hi")))


def test_missing_api_key_is_a_configuration_error():
    client = GenerationClient(BridgeSettings(api_key=""), http_client=httpx.Client())
    assert client.configured is False
    with pytest.raises(ConfigurationError):
        list(client.iter_chunks(GenerationOptions("hi")))
