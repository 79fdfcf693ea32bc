import json

import httpx
import pytest

from app.clients.ollama import OllamaClient
from app.errors import StageTimeoutError, UpstreamModelError


def make_client(handler) -> OllamaClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://ollama.test")
    return OllamaClient(base_url="http://ollama.test", model="llava:test", name="analysis", http_client=http)


@pytest.mark.asyncio
async def test_generate_posts_prompt_and_images():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"model": "llava:test", "response": '  {"bodyType": "mesomorph"} ', "done": True})

    client = make_client(handler)
    reply = await client.generate("describe", ["data:image/jpeg;base64,QUJD"])
    await client.aclose()

    assert reply == '{"bodyType": "mesomorph"}'
    assert seen["path"] == "/api/generate"
    assert seen["body"] == {"model": "llava:test", "prompt": "describe", "stream": False, "images": ["QUJD"]}


@pytest.mark.asyncio
async def test_text_only_request_has_no_images_key():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "{}"})

    await make_client(handler).generate("text only")

    assert "images" not in seen["body"]


@pytest.mark.asyncio
async def test_http_error_status_is_upstream_error():
    client = make_client(lambda request: httpx.Response(500, text="model crashed"))

    with pytest.raises(UpstreamModelError) as exc_info:
        await client.generate("x")

    assert exc_info.value.message == "Ollama error: 500 Internal Server Error"
    assert exc_info.value.stage == "analysis"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"response": ""}, {"response": "   "}, {"done": True}, ["not", "an", "object"]])
async def test_empty_reply_is_upstream_error(payload):
    client = make_client(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(UpstreamModelError):
        await client.generate("x")


@pytest.mark.asyncio
async def test_non_json_envelope_is_upstream_error():
    client = make_client(lambda request: httpx.Response(200, text="<html>proxy error</html>"))

    with pytest.raises(UpstreamModelError):
        await client.generate("x")


@pytest.mark.asyncio
async def test_timeout_is_stage_timeout():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(StageTimeoutError):
        await make_client(handler).generate("x")


@pytest.mark.asyncio
async def test_connection_failure_is_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamModelError):
        await make_client(handler).generate("x")
