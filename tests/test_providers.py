import json
from unittest.mock import AsyncMock

import httpx
import pytest

from reelforge import providers
from reelforge.config import VendorCredentials, settings
from reelforge.errors import EmptyVendorResponseError, VendorConfigurationError, VendorHTTPError


def _deepseek(transport=None, api_key="test-key"):
    return providers.OpenAICompatibleTextProvider(
        vendor="deepseek",
        base_url="https://api.deepseek.com/v1",
        api_key=api_key,
        model="deepseek-chat",
        key_env="DEEPSEEK_API_KEY",
        transport=transport,
    )


def _inline_image_response():
    return {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": "iVBORw0"}}]}}]}


def _text_only_response(text="I cannot draw that."):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def test_factories_return_mocks_in_mock_mode(monkeypatch):
    monkeypatch.setattr(settings, "provider_mode", "mock")
    assert isinstance(providers.get_text_provider("deepseek"), providers.EchoTextProvider)
    assert isinstance(providers.get_translator(), providers.MockTranslator)
    assert isinstance(providers.get_image_provider("gemini"), providers.MockImageProvider)
    assert isinstance(providers.get_style_analyzer(), providers.MockStyleAnalyzer)
    assert isinstance(providers.get_video_provider("doubao"), providers.MockVideoProvider)


def test_text_provider_routing_in_live_mode(monkeypatch):
    monkeypatch.setattr(settings, "provider_mode", "live")
    creds = VendorCredentials(deepseek_api_key="k", volcengine_access_key="ak", volcengine_secret_key="sk")

    deepseek = providers.get_text_provider("deepseek", creds)
    assert isinstance(deepseek, providers.OpenAICompatibleTextProvider)
    assert deepseek.vendor == "deepseek"
    assert deepseek.api_key == "k"

    signed = providers.get_text_provider("volcengine", creds)
    assert isinstance(signed, providers.VolcengineSignedTextProvider)
    assert signed.access_key == "ak"

    assert isinstance(providers.get_text_provider("gemini", creds), providers.GeminiTextProvider)
    assert isinstance(providers.get_text_provider("mock", creds), providers.EchoTextProvider)


def test_live_translator_wraps_text_provider(monkeypatch):
    monkeypatch.setattr(settings, "provider_mode", "live")
    translator = providers.get_translator("ark")
    assert isinstance(translator, providers.LLMTranslator)
    assert translator.provider.vendor == "volcengine-ark"


def test_unknown_provider_name_is_rejected(monkeypatch):
    monkeypatch.setattr(settings, "provider_mode", "live")
    with pytest.raises(ValueError):
        providers.get_text_provider("nope")
    with pytest.raises(ValueError):
        providers.get_video_provider("runway")


# ---------------------------------------------------------------------------
# Wire behaviour
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_missing_credentials_raise_configuration_error():
    calls = []
    transport = httpx.MockTransport(lambda request: calls.append(request) or httpx.Response(200, json={}))
    provider = _deepseek(transport=transport, api_key=None)

    with pytest.raises(VendorConfigurationError) as exc_info:
        await provider.complete("hi")

    assert exc_info.value.missing == ["DEEPSEEK_API_KEY"]
    assert calls == []


@pytest.mark.asyncio
async def test_chat_completion_request_and_response():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer test-key"
        body = json.loads(request.content)
        assert body["model"] == "deepseek-chat"
        assert body["messages"][0] == {"role": "system", "content": "be brief"}
        assert body["messages"][1] == {"role": "user", "content": "hello"}
        return httpx.Response(200, json={"choices": [{"message": {"content": "  world  "}}]})

    provider = _deepseek(transport=httpx.MockTransport(handler))
    assert await provider.complete("hello", system_prompt="be brief") == "world"


@pytest.mark.asyncio
async def test_non_2xx_keeps_vendor_body():
    transport = httpx.MockTransport(lambda request: httpx.Response(429, text='{"error": "rate limited"}'))
    provider = _deepseek(transport=transport)

    with pytest.raises(VendorHTTPError) as exc_info:
        await provider.complete("hello")

    assert exc_info.value.status_code == 429
    assert "rate limited" in exc_info.value.body


@pytest.mark.asyncio
async def test_transport_failure_has_no_status():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = _deepseek(transport=httpx.MockTransport(handler))
    with pytest.raises(VendorHTTPError) as exc_info:
        await provider.complete("hello")
    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_missing_choice_is_empty_response():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []}))
    with pytest.raises(EmptyVendorResponseError):
        await _deepseek(transport=transport).complete("hello")


@pytest.mark.asyncio
async def test_gemini_text_merges_system_prompt():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith(":generateContent")
        body = json.loads(request.content)
        assert body["contents"][0]["parts"][0]["text"] == "SYSTEM\n\nUSER"
        return httpx.Response(200, json=_text_only_response("答复"))

    provider = providers.GeminiTextProvider(api_key="k", transport=httpx.MockTransport(handler))
    assert await provider.complete("USER", system_prompt="SYSTEM") == "答复"


@pytest.mark.asyncio
async def test_volcengine_request_is_signed():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"].startswith("HMAC-SHA256 Credential=AK/")
        assert "/cn-beijing/ml_maas/request" in request.headers["Authorization"]
        assert request.headers["X-Date"].endswith("Z")
        assert json.loads(request.content)["endpoint_id"] == "ep-1"
        return httpx.Response(200, json={"choices": [{"message": {"content": "描述"}}]})

    provider = providers.VolcengineSignedTextProvider(
        access_key="AK", secret_key="SK", endpoint_id="ep-1", transport=httpx.MockTransport(handler)
    )
    assert await provider.complete("写一个描述") == "描述"


@pytest.mark.asyncio
async def test_volcengine_missing_secret_lists_all_missing_keys():
    provider = providers.VolcengineSignedTextProvider(access_key="AK", secret_key=None, endpoint_id=None)
    with pytest.raises(VendorConfigurationError) as exc_info:
        await provider.complete("hi")
    assert exc_info.value.missing == ["VOLCENGINE_SECRET_KEY", "VOLCENGINE_ENDPOINT_ID"]


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_gemini_image_returns_inline_data_url():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=_inline_image_response()))
    provider = providers.GeminiImageProvider(api_key="k", transport=transport)
    assert await provider.generate_image("a cat") == "data:image/png;base64,iVBORw0"


@pytest.mark.asyncio
async def test_gemini_image_extracts_markdown_data_url():
    text = "Here it is: ![img](data:image/jpeg;base64,/9j/4AAQ)"
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=_text_only_response(text)))
    provider = providers.GeminiImageProvider(api_key="k", transport=transport)
    assert await provider.generate_image("a cat") == "data:image/jpeg;base64,/9j/4AAQ"


@pytest.mark.asyncio
async def test_gemini_image_retries_empty_generations():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(200, json=_text_only_response())
        return httpx.Response(200, json=_inline_image_response())

    provider = providers.GeminiImageProvider(
        api_key="k", retry_delay_seconds=0, transport=httpx.MockTransport(handler)
    )
    assert (await provider.generate_image("a cat")).startswith("data:image/png")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_gemini_image_gives_up_after_three_empty_attempts():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"candidates": []})

    provider = providers.GeminiImageProvider(
        api_key="k", retry_delay_seconds=0, transport=httpx.MockTransport(handler)
    )
    with pytest.raises(EmptyVendorResponseError):
        await provider.generate_image("a cat")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_gemini_image_does_not_retry_http_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, text="upstream exploded")

    provider = providers.GeminiImageProvider(
        api_key="k", retry_delay_seconds=0, transport=httpx.MockTransport(handler)
    )
    with pytest.raises(VendorHTTPError):
        await provider.generate_image("a cat")
    assert len(calls) == 1


@pytest.mark.parametrize(
    "ratio, size",
    [("16:9", "1792x1024"), ("9:16", "1024x1792"), ("1:1", "1024x1024"), ("3:4", "1024x1792")],
)
def test_dalle_size_follows_aspect_ratio(ratio, size):
    assert providers.OpenAIImageProvider.size_for(ratio) == size


@pytest.mark.asyncio
async def test_mock_image_is_deterministic():
    provider = providers.MockImageProvider()
    first = await provider.generate_image("同一个提示词", aspect_ratio="9:16")
    assert first == await provider.generate_image("同一个提示词", aspect_ratio="9:16")
    assert "720x1280" in first


# ---------------------------------------------------------------------------
# Translation and analysis
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_translate_many_matches_positionally():
    text_provider = AsyncMock()
    text_provider.complete.return_value = '```json\n[{"translation": "你好"}, {"translation": "世界"}]\n```'
    translator = providers.LLMTranslator(provider=text_provider)

    result = await translator.translate_many(["Hello", "World", "Extra"], direction="en-zh")
    assert result == ["你好", "世界", ""]


@pytest.mark.asyncio
async def test_style_analyzer_sends_inline_image_part():
    def handler(request: httpx.Request) -> httpx.Response:
        parts = json.loads(request.content)["contents"][0]["parts"]
        assert parts[0]["inline_data"] == {"mime_type": "image/jpeg", "data": "QUJD"}
        assert "人物" in parts[1]["text"]
        return httpx.Response(200, json=_text_only_response("短发女孩"))

    analyzer = providers.GeminiStyleAnalyzer(api_key="k", transport=httpx.MockTransport(handler))
    assert await analyzer.analyze("character", "data:image/jpeg;base64,QUJD") == "短发女孩"


@pytest.mark.asyncio
async def test_style_analyzer_preset_is_text_only():
    def handler(request: httpx.Request) -> httpx.Response:
        parts = json.loads(request.content)["contents"][0]["parts"]
        assert len(parts) == 1
        assert "水墨" in parts[0]["text"]
        return httpx.Response(200, json=_text_only_response("水墨风格"))

    analyzer = providers.GeminiStyleAnalyzer(api_key="k", transport=httpx.MockTransport(handler))
    assert await analyzer.analyze("preset", {"name": "水墨"}) == "水墨风格"


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_doubao_submits_then_polls_until_done():
    polls = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            body = json.loads(request.content)
            assert body["content"][0] == {"type": "text", "text": "镜头缓缓推进"}
            assert body["content"][1] == {"type": "image_url", "image_url": {"url": "https://img/1.png"}}
            assert body["ratio"] == "adaptive"
            return httpx.Response(200, json={"id": "task-1"})
        polls.append(request)
        assert request.url.path.endswith("/generations/tasks/task-1")
        if len(polls) < 2:
            return httpx.Response(200, json={"id": "task-1", "status": "running"})
        return httpx.Response(
            200, json={"id": "task-1", "status": "succeeded", "content": {"video_url": "https://v/1.mp4"}}
        )

    provider = providers.DoubaoVideoProvider(
        api_key="k", poll_interval_seconds=0, transport=httpx.MockTransport(handler)
    )
    result = await provider.generate_video(prompt="镜头缓缓推进", image_url="https://img/1.png")
    assert result["video_url"] == "https://v/1.mp4"
    assert result["job_id"] == "task-1"
    assert len(polls) == 2


@pytest.mark.asyncio
async def test_doubao_failed_task_raises_http_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "task-2"})
        return httpx.Response(200, json={"status": "failed", "error": {"message": "sensitive content"}})

    provider = providers.DoubaoVideoProvider(
        api_key="k", poll_interval_seconds=0, transport=httpx.MockTransport(handler)
    )
    with pytest.raises(VendorHTTPError) as exc_info:
        await provider.generate_video(prompt="x")
    assert "sensitive content" in exc_info.value.body


@pytest.mark.asyncio
async def test_doubao_success_without_url_is_empty_response():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "task-3"})
        return httpx.Response(200, json={"status": "succeeded", "content": {}})

    provider = providers.DoubaoVideoProvider(
        api_key="k", poll_interval_seconds=0, transport=httpx.MockTransport(handler)
    )
    with pytest.raises(EmptyVendorResponseError):
        await provider.generate_video(prompt="x")


@pytest.mark.asyncio
async def test_doubao_times_out_after_max_polls():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "task-4"})
        return httpx.Response(200, json={"status": "queued"})

    provider = providers.DoubaoVideoProvider(
        api_key="k", poll_interval_seconds=0, max_poll_attempts=3, transport=httpx.MockTransport(handler)
    )
    with pytest.raises(VendorHTTPError) as exc_info:
        await provider.generate_video(prompt="x")
    assert "timed out" in exc_info.value.body


@pytest.mark.asyncio
@pytest.mark.parametrize("submit_body", [["task-5"], "task-5"])
async def test_doubao_non_object_submission_is_empty_response(submit_body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=submit_body)

    provider = providers.DoubaoVideoProvider(
        api_key="k", poll_interval_seconds=0, transport=httpx.MockTransport(handler)
    )
    with pytest.raises(EmptyVendorResponseError):
        await provider.generate_video(prompt="x")


@pytest.mark.asyncio
async def test_doubao_non_object_poll_is_empty_response():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "task-6"})
        return httpx.Response(200, json=[{"status": "succeeded"}])

    provider = providers.DoubaoVideoProvider(
        api_key="k", poll_interval_seconds=0, transport=httpx.MockTransport(handler)
    )
    with pytest.raises(EmptyVendorResponseError):
        await provider.generate_video(prompt="x")
