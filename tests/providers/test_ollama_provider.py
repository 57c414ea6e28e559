from __future__ import annotations

import json

import httpx
import pytest

from src.providers.embeddings import EmbeddingProvider, EmbeddingProviderError
from src.providers.embeddings.ollama import OllamaEmbeddingProvider

BASE_URL = "http://ollama.test"


def _provider(handler, **kwargs) -> OllamaEmbeddingProvider:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return OllamaEmbeddingProvider(base_url=BASE_URL, client=client, **kwargs)


@pytest.mark.asyncio
async def test_embed_request_shape_and_response():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"embeddings": [[0.1, 0.2], [0.3, 0.4]]})

    provider = _provider(handler, model="nomic-embed-text")
    vectors = await provider.embed_documents(["a", "b"])

    assert captured["path"] == "/api/embed"
    assert captured["payload"] == {"model": "nomic-embed-text", "input": ["a", "b"]}
    assert vectors == [[0.1, 0.2], [0.3, 0.4]]
    assert isinstance(provider, EmbeddingProvider)
    assert provider.provider_name == "ollama"


@pytest.mark.asyncio
async def test_client_error_is_not_retryable():
    provider = _provider(lambda request: httpx.Response(400, text="bad model"))

    with pytest.raises(EmbeddingProviderError) as exc_info:
        await provider.embed_documents(["a"])
    assert exc_info.value.status_code == 400
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [429, 500, 503])
async def test_rate_limit_and_server_errors_are_retryable(status):
    provider = _provider(lambda request: httpx.Response(status, text="busy"))

    with pytest.raises(EmbeddingProviderError) as exc_info:
        await provider.embed_documents(["a"])
    assert exc_info.value.status_code == status
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_transport_error_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    provider = _provider(handler)
    with pytest.raises(EmbeddingProviderError) as exc_info:
        await provider.embed_documents(["a"])
    assert exc_info.value.status_code is None
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_wrong_vector_count_is_provider_error():
    provider = _provider(lambda request: httpx.Response(200, json={"embeddings": [[1.0]]}))
    with pytest.raises(EmbeddingProviderError):
        await provider.embed_documents(["a", "b"])


@pytest.mark.asyncio
async def test_dimension_mismatch_rejected():
    provider = _provider(
        lambda request: httpx.Response(200, json={"embeddings": [[1.0, 2.0]]}), dims=3
    )
    with pytest.raises(EmbeddingProviderError) as exc_info:
        await provider.embed_documents(["a"])
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_empty_input_rejected():
    provider = _provider(lambda request: httpx.Response(200, json={"embeddings": []}))
    with pytest.raises(ValueError):
        await provider.embed_documents([])


@pytest.mark.asyncio
async def test_health_check():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/version"
        return httpx.Response(200, json={"version": "0.5.0"})

    assert await _provider(handler).health_check() is True
    assert (
        await _provider(lambda request: httpx.Response(503)).health_check() is False
    )
