import json

import httpx
import pytest

from catalog_sync.errors import ExtractionBackendError
from catalog_sync.services.extraction_backend import OllamaBackend, parse_json_object, strip_code_fences

pytestmark = pytest.mark.unit


def _backend(settings, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaBackend(settings, client=client)


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_json_object_rejects_bad_payloads():
    with pytest.raises(ExtractionBackendError):
        parse_json_object("not json at all")
    with pytest.raises(ExtractionBackendError):
        parse_json_object("[1, 2, 3]")


@pytest.mark.asyncio
async def test_extract_structured_posts_generate_request(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": '```json\n{"name": "KazNU"}\n```', "eval_count": 12})

    result = await _backend(settings, handler).extract_structured("Extract this")

    assert result == {"name": "KazNU"}
    assert seen["path"] == "/api/generate"
    assert seen["body"]["model"] == settings.EXTRACTION_MODEL
    assert seen["body"]["prompt"] == "Extract this"
    assert seen["body"]["stream"] is False
    assert seen["body"]["options"]["temperature"] == settings.EXTRACTION_TEMPERATURE


@pytest.mark.asyncio
async def test_generate_maps_http_error_status(settings):
    backend = _backend(settings, lambda request: httpx.Response(500, text="model not loaded"))

    with pytest.raises(ExtractionBackendError) as exc_info:
        await backend.generate("prompt")

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "model not loaded"


@pytest.mark.asyncio
async def test_generate_maps_timeout(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ExtractionBackendError, match="timed out"):
        await _backend(settings, handler).generate("prompt")


@pytest.mark.asyncio
async def test_generate_requires_response_text(settings):
    backend = _backend(settings, lambda request: httpx.Response(200, json={"done": True}))

    with pytest.raises(ExtractionBackendError):
        await backend.generate("prompt")


@pytest.mark.asyncio
async def test_list_models_and_health(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "llama3:8b"}, {"name": "qwen2:7b"}, {}]})

    backend = _backend(settings, handler)

    assert await backend.list_models() == ["llama3:8b", "qwen2:7b"]
    assert await backend.check_health() is True


@pytest.mark.asyncio
async def test_health_is_false_when_unreachable(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    backend = _backend(settings, handler)

    assert await backend.check_health() is False
    with pytest.raises(ExtractionBackendError):
        await backend.list_models()
