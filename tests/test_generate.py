import json

import httpx
import pytest

from plume_server.handlers.generate import (
    GenerationStatusError,
    GenerationUnavailableError,
    create_generation_client,
    run_generate,
)
from plume_server.schemas.jobs import GeneratePayload


def payload(**extra):
    return GeneratePayload.model_validate({"userId": "U1", "batchId": "B1", **extra})


def mock_client(handler):
    return httpx.AsyncClient(base_url="http://generation.local", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_run_generate_posts_batch_request():
    seen = []

    def reply(request):
        seen.append(request)
        return httpx.Response(200, request=request, json={})

    async with mock_client(reply) as client:
        result = await run_generate(payload(brandProfileId="P1"), client)

    assert result == {"ok": True}
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/v1/batches/B1/generate"
    assert json.loads(seen[0].content) == {"user_id": "U1", "brand_profile_id": "P1"}


@pytest.mark.asyncio
async def test_run_generate_omits_missing_brand_profile():
    seen = []

    def reply(request):
        seen.append(request)
        return httpx.Response(200, request=request, json={})

    async with mock_client(reply) as client:
        await run_generate(payload(), client)

    assert json.loads(seen[0].content) == {"user_id": "U1"}


@pytest.mark.asyncio
async def test_run_generate_raises_on_error_status():
    def reply(request):
        return httpx.Response(503, request=request, text="busy")

    async with mock_client(reply) as client:
        with pytest.raises(GenerationStatusError) as exc_info:
            await run_generate(payload(), client)

    assert exc_info.value.status_code == 503
    assert exc_info.value.text == "busy"


@pytest.mark.asyncio
async def test_run_generate_raises_when_unreachable():
    def reply(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with mock_client(reply) as client:
        with pytest.raises(GenerationUnavailableError):
            await run_generate(payload(), client)


@pytest.mark.asyncio
async def test_generation_client_sends_bearer_token():
    client = create_generation_client("http://generation.local", api_key="secret", timeout=5.0)
    try:
        assert client.headers["Authorization"] == "Bearer secret"
        assert client.timeout.read == 5.0
    finally:
        await client.aclose()
