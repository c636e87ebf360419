from __future__ import annotations

import pytest

from src.thumbforge.generation.generation_errors import (
    ConfigurationError,
    InvalidRequestError,
    ProviderError,
)
from src.thumbforge.generation.prompt_enhancer import FALLBACK_NOTE, PromptEnhancer
from tests.mocks.http_clients import DummyAsyncClient, DummyHTTPResponse, install_client


def rewrite_response(text: str) -> DummyHTTPResponse:
    return DummyHTTPResponse(200, json_data={"choices": [{"message": {"content": text}}]})


@pytest.mark.asyncio
async def test_rewrite_returns_model_output(monkeypatch) -> None:
    client = install_client(
        monkeypatch,
        DummyAsyncClient(post_queue=[rewrite_response("  Shocked gamer face, neon glow, bold 'I WON' text  ")]),
    )

    rewrite = await PromptEnhancer(api_key="or-key").rewrite("gamer wins")

    assert rewrite.original_prompt == "gamer wins"
    assert rewrite.rewritten_prompt == "Shocked gamer face, neon glow, bold 'I WON' text"
    assert rewrite.note is None
    body = client.requests[0]["json"]
    assert body["model"] == "google/gemini-2.5-flash"
    assert body["messages"][1] == {"role": "user", "content": "Rewrite: gamer wins"}


@pytest.mark.asyncio
async def test_reference_image_is_attached(monkeypatch) -> None:
    client = install_client(monkeypatch, DummyAsyncClient(post_queue=[rewrite_response("styled")]))

    await PromptEnhancer(api_key="or-key").rewrite(
        "match this", reference_image_url="https://media.test/reference-images/ref.png"
    )

    messages = client.requests[0]["json"]["messages"]
    assert "reference" in messages[0]["content"]
    assert messages[1]["content"][1] == {
        "type": "image_url",
        "image_url": {"url": "https://media.test/reference-images/ref.png"},
    }


@pytest.mark.asyncio
async def test_missing_key_uses_fallback_text(monkeypatch) -> None:
    client = install_client(monkeypatch, DummyAsyncClient())

    rewrite = await PromptEnhancer(api_key="").rewrite("cooking show")

    assert "cooking show" in rewrite.rewritten_prompt
    assert rewrite.rewritten_prompt.startswith("Enhanced YouTube Thumbnail:")
    assert rewrite.note == FALLBACK_NOTE
    assert client.requests == []


@pytest.mark.asyncio
async def test_empty_model_output_falls_back_to_original(monkeypatch) -> None:
    install_client(monkeypatch, DummyAsyncClient(post_queue=[rewrite_response("   ")]))

    rewrite = await PromptEnhancer(api_key="or-key").rewrite("keep me")

    assert rewrite.rewritten_prompt == "keep me"


@pytest.mark.asyncio
async def test_non_object_message_falls_back_to_original(monkeypatch) -> None:
    install_client(
        monkeypatch,
        DummyAsyncClient(post_queue=[DummyHTTPResponse(200, json_data={"choices": [{"message": "oops"}]})]),
    )

    rewrite = await PromptEnhancer(api_key="or-key").rewrite("keep me")

    assert rewrite.rewritten_prompt == "keep me"


@pytest.mark.asyncio
async def test_blank_prompt_is_invalid() -> None:
    with pytest.raises(InvalidRequestError):
        await PromptEnhancer(api_key="or-key").rewrite("  ")


@pytest.mark.asyncio
async def test_rejected_key_is_configuration_error(monkeypatch) -> None:
    install_client(monkeypatch, DummyAsyncClient(post_queue=[DummyHTTPResponse(401, text="unauthorized")]))

    with pytest.raises(ConfigurationError):
        await PromptEnhancer(api_key="stale").rewrite("anything")


@pytest.mark.asyncio
async def test_upstream_failure_is_provider_error(monkeypatch) -> None:
    install_client(monkeypatch, DummyAsyncClient(post_queue=[DummyHTTPResponse(503, text="overloaded")]))

    with pytest.raises(ProviderError) as exc_info:
        await PromptEnhancer(api_key="or-key").rewrite("anything")

    assert exc_info.value.retryable
