"""OCR provider client: credentials, timeout/cancellation and response handling."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from pdf_vision_mcp.config import EnvCredentialProvider, ProviderConfig
from pdf_vision_mcp.errors import (
    InvalidArgument,
    MissingCredential,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderTransportError,
)
from pdf_vision_mcp.ocr_client import OcrProviderClient
from pdf_vision_mcp.providers.mistral import MistralProvider


@pytest.mark.asyncio
async def test_missing_api_key_fails_without_network_call(fake_mistral) -> None:
    client = OcrProviderClient(credentials=EnvCredentialProvider({}), transport=fake_mistral.transport())

    with pytest.raises(MissingCredential) as exc:
        await client.analyze(b"png", ProviderConfig(type="mistral"))

    assert str(exc.value) == "Mistral OCR provider requires MISTRAL_API_KEY."
    assert exc.value.code == "MissingCredential"
    assert fake_mistral.calls == 0


@pytest.mark.asyncio
async def test_blank_api_key_counts_as_missing(fake_mistral) -> None:
    client = OcrProviderClient(
        credentials=EnvCredentialProvider({"MISTRAL_API_KEY": "   "}),
        transport=fake_mistral.transport(),
    )

    with pytest.raises(MissingCredential):
        await client.analyze(b"png", ProviderConfig())

    assert fake_mistral.calls == 0


@pytest.mark.asyncio
async def test_timeout_aborts_transport_once(fake_mistral, credentials) -> None:
    fake_mistral.hang = True
    client = OcrProviderClient(credentials=credentials, transport=fake_mistral.transport())

    with pytest.raises(ProviderTimeoutError) as exc:
        await client.analyze(
            b"png",
            ProviderConfig(
                type="mistral",
                timeout_ms=10,
                endpoint="https://api.mistral.ai/v1/chat/completions",
            ),
        )

    assert str(exc.value) == "OCR request timed out after 10ms."
    assert exc.value.code == "Timeout"
    assert exc.value.timeout_ms == 10
    assert fake_mistral.calls == 1
    assert fake_mistral.cancelled == 1


@pytest.mark.asyncio
async def test_successful_response_returns_text_and_sends_bearer(fake_mistral, credentials) -> None:
    client = OcrProviderClient(credentials=credentials, transport=fake_mistral.transport())

    result = await client.analyze(b"\x89PNG", ProviderConfig(type="mistral", model="mistral-large-2512"))

    assert result.to_dict() == {"provider": "mistral", "text": "Extracted text"}
    request = fake_mistral.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.mistral.ai/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer test-key"

    body = fake_mistral.last_body()
    assert body["model"] == "mistral-large-2512"
    content = body["messages"][0]["content"]
    assert content[0]["type"] == "text"
    assert content[1]["image_url"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_endpoint_override_and_default_model(fake_mistral, credentials) -> None:
    client = OcrProviderClient(credentials=credentials, transport=fake_mistral.transport())

    await client.analyze(b"png", ProviderConfig(endpoint="https://proxy.example.test/v1/chat", prompt="Read it"))

    assert str(fake_mistral.requests[0].url) == "https://proxy.example.test/v1/chat"
    body = fake_mistral.last_body()
    assert body["model"] == "mistral-large-latest"
    assert body["messages"][0]["content"][0]["text"] == "Read it"


@pytest.mark.asyncio
async def test_content_chunks_are_joined(credentials) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        content = [
            {"type": "text", "text": "Hello "},
            {"type": "image_url", "image_url": "ignored"},
            {"type": "text", "text": "world"},
        ]
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    client = OcrProviderClient(credentials=credentials, transport=httpx.MockTransport(handler))

    result = await client.analyze(b"png", ProviderConfig())
    assert result.text == "Hello world"


@pytest.mark.asyncio
async def test_non_2xx_status_raises_response_error(credentials) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"message": "Unauthorized"})

    client = OcrProviderClient(credentials=credentials, transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderResponseError) as exc:
        await client.analyze(b"png", ProviderConfig())

    assert exc.value.status_code == 401
    assert "Unauthorized" in exc.value.body
    assert str(exc.value) == "OCR provider returned HTTP 401."


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"choices": []},
        {"choices": [{"message": {}}]},
        {"choices": [{"message": {"content": 42}}]},
        ["not", "an", "object"],
    ],
)
@pytest.mark.asyncio
async def test_body_without_text_raises_response_error(credentials, payload) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    client = OcrProviderClient(credentials=credentials, transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderResponseError) as exc:
        await client.analyze(b"png", ProviderConfig())

    assert str(exc.value) == "OCR provider response did not contain text."
    assert exc.value.status_code == 200


@pytest.mark.asyncio
async def test_invalid_json_raises_response_error(credentials) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>gateway</html>")

    client = OcrProviderClient(credentials=credentials, transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderResponseError) as exc:
        await client.analyze(b"png", ProviderConfig())

    assert "invalid json" in exc.value.message.lower()


@pytest.mark.asyncio
async def test_undecodable_body_raises_response_error(credentials) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b'{"choices": "\xff\xfe\xfa"}')

    client = OcrProviderClient(credentials=credentials, transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderResponseError) as exc:
        await client.analyze(b"png", ProviderConfig())

    assert exc.value.code == "ProviderResponseError"
    assert exc.value.status_code == 200
    assert "invalid json" in exc.value.message.lower()


@pytest.mark.asyncio
async def test_transport_error_is_wrapped_with_cause(credentials) -> None:
    calls = {"n": 0}

    def handler(_request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        raise httpx.ConnectError("connection refused")

    client = OcrProviderClient(credentials=credentials, transport=httpx.MockTransport(handler))

    with pytest.raises(ProviderTransportError) as exc:
        await client.analyze(b"png", ProviderConfig())

    assert exc.value.message.startswith("OCR provider request failed")
    assert isinstance(exc.value.cause, httpx.ConnectError)
    assert exc.value.__cause__ is exc.value.cause
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_unknown_provider_is_invalid_argument(fake_mistral, credentials) -> None:
    client = OcrProviderClient(credentials=credentials, transport=fake_mistral.transport())

    with pytest.raises(InvalidArgument) as exc:
        await client.analyze(b"png", ProviderConfig(type="tesseract"))

    assert "mistral" in exc.value.hint
    assert fake_mistral.calls == 0


@pytest.mark.asyncio
async def test_partial_registry_override_falls_back_for_lookup_and_status(fake_mistral) -> None:
    class ProxyMistral(MistralProvider):
        name = "proxy"
        credential_env = "PROXY_OCR_KEY"

    client = OcrProviderClient(
        credentials=EnvCredentialProvider({"MISTRAL_API_KEY": "test-key"}),
        transport=fake_mistral.transport(),
        providers={"proxy": ProxyMistral},
    )

    assert client.has_credential(ProviderConfig(type="mistral")) is True
    assert client.has_credential(ProviderConfig(type="proxy")) is False
    assert client.has_credential(ProviderConfig(type="tesseract")) is False

    result = await client.analyze(b"png", ProviderConfig(type="mistral"))
    assert result.provider == "mistral"
    with pytest.raises(MissingCredential, match="PROXY_OCR_KEY"):
        await client.analyze(b"png", ProviderConfig(type="proxy"))
    assert fake_mistral.calls == 1


@pytest.mark.asyncio
async def test_mistral_ocr_provider_joins_page_markdown(credentials) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"pages": [{"index": 0, "markdown": "# Title"}, {"index": 1, "markdown": "Body"}]})

    client = OcrProviderClient(credentials=credentials, transport=httpx.MockTransport(handler))

    result = await client.analyze(b"png", ProviderConfig(type="mistral-ocr"))

    assert result.provider == "mistral-ocr"
    assert result.text == "# Title\n\nBody"
    assert str(seen[0].url) == "https://api.mistral.ai/v1/ocr"
    body = json.loads(seen[0].content)
    assert body["model"] == "mistral-ocr-latest"
    assert body["document"]["type"] == "image_url"


@pytest.mark.asyncio
async def test_caller_cancellation_propagates_to_transport(fake_mistral, credentials) -> None:
    fake_mistral.hang = True
    client = OcrProviderClient(credentials=credentials, transport=fake_mistral.transport())

    task = asyncio.create_task(client.analyze(b"png", ProviderConfig(timeout_ms=60_000)))
    while fake_mistral.calls == 0:
        await asyncio.sleep(0)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert fake_mistral.cancelled == 1


@pytest.mark.asyncio
async def test_timeout_only_cancels_its_own_request(credentials) -> None:
    cancelled: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        model = json.loads(request.content)["model"]
        if model == "slow":
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(model)
                raise
        await asyncio.sleep(0.02)
        return httpx.Response(200, json={"choices": [{"message": {"content": model}}]})

    client = OcrProviderClient(credentials=credentials, transport=httpx.MockTransport(handler))

    slow, fast = await asyncio.gather(
        client.analyze(b"png", ProviderConfig(model="slow", timeout_ms=10)),
        client.analyze(b"png", ProviderConfig(model="fast", timeout_ms=5_000)),
        return_exceptions=True,
    )

    assert isinstance(slow, ProviderTimeoutError)
    assert fast.text == "fast"
    assert cancelled == ["slow"]
