"""Vendor adapters for text, image, translation, style analysis and video."""

from __future__ import annotations

import asyncio
import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from .config import VendorCredentials, settings
from .errors import EmptyVendorResponseError, VendorConfigurationError, VendorHTTPError
from .instrumentation import get_logger
from .prompts import (
    STYLE_INSTRUCTIONS,
    TranslationDirection,
    TranslationKind,
    batch_translation_prompt,
    preset_prompt,
    translation_prompt,
    translation_system,
)
from .serialization import decode_model_json
from .signing import VolcengineSigner

logger = get_logger()

_MARKDOWN_IMAGE = re.compile(r"!\[.*?\]\((data:image/[^;]+;base64,[^)]+)\)")
_DATA_URL = re.compile(r"(data:image/[^;]+;base64,[^\s)]+)")


# ============================================================================
# Shared request/response contract
# ============================================================================


@dataclass(slots=True)
class VendorRequest:
    method: str
    url: str
    headers: dict[str, str]
    payload: Any = None
    content: bytes | None = None


class VendorAdapter:
    """Base for HTTP adapters: ``build_request`` / ``parse_response`` / ``map_error``.

    Subclasses are slotted dataclasses that declare ``vendor``, ``timeout`` and
    ``transport``; ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    vendor: str
    timeout: float
    transport: httpx.AsyncBaseTransport | None

    def credentials(self) -> dict[str, str | None]:
        return {}

    def require_credentials(self) -> None:
        missing = [name for name, value in self.credentials().items() if not value]
        if missing:
            raise VendorConfigurationError(self.vendor, missing)

    def map_error(self, response: httpx.Response) -> VendorHTTPError:
        return VendorHTTPError(self.vendor, response.status_code, response.text)

    async def send(self, request: VendorRequest) -> Any:
        client_kwargs: dict[str, object] = {"timeout": self.timeout}
        if self.transport is not None:
            client_kwargs["transport"] = self.transport
        elif settings.httpx_proxies:
            client_kwargs["proxy"] = settings.httpx_proxies

        try:
            async with httpx.AsyncClient(**client_kwargs) as client:
                response = await client.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    json=request.payload if request.content is None else None,
                    content=request.content,
                )
        except httpx.HTTPError as exc:
            logger.error(f"{self.vendor} request failed: {exc}")
            raise VendorHTTPError(self.vendor, None, str(exc)) from exc

        if not response.is_success:
            error = self.map_error(response)
            logger.error(f"{self.vendor} API error: {response.status_code} - {error.body[:500]}")
            raise error

        try:
            return response.json()
        except ValueError as exc:
            raise EmptyVendorResponseError(self.vendor, "response body is not JSON") from exc


def _bearer_headers(api_key: str | None) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


def _first_choice_content(vendor: str, data: Any) -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise EmptyVendorResponseError(vendor) from exc
    if not isinstance(content, str) or not content.strip():
        raise EmptyVendorResponseError(vendor)
    return content.strip()


def _candidate_parts(data: Any) -> list[dict[str, Any]]:
    try:
        parts = data["candidates"][0]["content"]["parts"]
    except (KeyError, IndexError, TypeError):
        return []
    return [part for part in parts or [] if isinstance(part, dict)]


# ============================================================================
# Text Providers
# ============================================================================


class TextProvider(Protocol):
    """Protocol for chat-style text generation."""

    name: str

    async def complete(
        self, prompt: str, *, system_prompt: str | None = None, temperature: float = 0.7
    ) -> str:  # pragma: no cover - protocol
        ...


@dataclass(slots=True)
class EchoTextProvider:
    """Deterministic provider for tests and mock mode."""

    name: str = "mock"

    async def complete(
        self, prompt: str, *, system_prompt: str | None = None, temperature: float = 0.7
    ) -> str:
        return f"[{self.name}::temp={temperature}] {prompt.strip()}"


@dataclass(slots=True)
class OpenAICompatibleTextProvider(VendorAdapter):
    """Chat-completions envelope with bearer auth (DeepSeek, OpenAI, Ark, proxies)."""

    vendor: str
    base_url: str
    api_key: str | None
    model: str | None
    key_env: str = "API_KEY"
    model_env: str | None = None
    default_system_prompt: str = "你是一个专业的AI助手。"
    max_tokens: int | None = None
    timeout: float = 120.0
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def name(self) -> str:
        return self.vendor

    def credentials(self) -> dict[str, str | None]:
        creds = {self.key_env: self.api_key}
        if self.model_env:
            creds[self.model_env] = self.model
        return creds

    def build_request(self, prompt: str, system_prompt: str | None, temperature: float) -> VendorRequest:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt or self.default_system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
        }
        if self.max_tokens:
            payload["max_tokens"] = self.max_tokens
        return VendorRequest(
            method="POST",
            url=f"{self.base_url.rstrip('/')}/chat/completions",
            headers=_bearer_headers(self.api_key),
            payload=payload,
        )

    def parse_response(self, data: Any) -> str:
        return _first_choice_content(self.vendor, data)

    async def complete(
        self, prompt: str, *, system_prompt: str | None = None, temperature: float = 0.7
    ) -> str:
        self.require_credentials()
        logger.info(f"[{self.vendor}] Calling {self.model} with prompt: {prompt[:100]}...")
        data = await self.send(self.build_request(prompt, system_prompt, temperature))
        return self.parse_response(data)


@dataclass(slots=True)
class GeminiTextProvider(VendorAdapter):
    """Gemini ``generateContent`` through the Juguang proxy."""

    api_key: str | None
    model: str = "gemini-2.5-flash-preview"
    base_url: str = "https://ai.juguang.chat/v1beta"
    vendor: str = "gemini"
    timeout: float = 120.0
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def name(self) -> str:
        return self.vendor

    def credentials(self) -> dict[str, str | None]:
        return {"JUGUANG_API_KEY": self.api_key}

    def build_request(self, prompt: str, system_prompt: str | None, temperature: float) -> VendorRequest:
        full_prompt = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
        return VendorRequest(
            method="POST",
            url=f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent",
            headers=_bearer_headers(self.api_key),
            payload={
                "contents": [{"parts": [{"text": full_prompt}]}],
                "generationConfig": {"temperature": temperature},
            },
        )

    def parse_response(self, data: Any) -> str:
        for part in _candidate_parts(data):
            text = part.get("text")
            if isinstance(text, str) and text.strip():
                return text.strip()
        raise EmptyVendorResponseError(self.vendor)

    async def complete(
        self, prompt: str, *, system_prompt: str | None = None, temperature: float = 0.7
    ) -> str:
        self.require_credentials()
        logger.info(f"[{self.vendor}] Calling {self.model} with prompt: {prompt[:100]}...")
        data = await self.send(self.build_request(prompt, system_prompt, temperature))
        return self.parse_response(data)


@dataclass(slots=True)
class VolcengineSignedTextProvider(VendorAdapter):
    """Volcengine MaaS chat endpoint authenticated with HMAC request signing."""

    access_key: str | None
    secret_key: str | None
    endpoint_id: str | None
    region: str = "cn-beijing"
    host: str = "maas-api.ml-platform-cn-beijing.volces.com"
    path: str = "/api/v1/chat"
    vendor: str = "volcengine"
    timeout: float = 120.0
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def name(self) -> str:
        return self.vendor

    def credentials(self) -> dict[str, str | None]:
        return {
            "VOLCENGINE_ACCESS_KEY": self.access_key,
            "VOLCENGINE_SECRET_KEY": self.secret_key,
            "VOLCENGINE_ENDPOINT_ID": self.endpoint_id,
        }

    def build_request(self, prompt: str, system_prompt: str | None, temperature: float) -> VendorRequest:
        body = json.dumps(
            {
                "endpoint_id": self.endpoint_id,
                "messages": [
                    {"role": "system", "content": system_prompt or "你是一个专业的AI助手。"},
                    {"role": "user", "content": prompt},
                ],
                "temperature": temperature,
            },
            ensure_ascii=False,
        ).encode("utf-8")
        headers = {"Host": self.host, "Content-Type": "application/json"}
        signer = VolcengineSigner(
            access_key=self.access_key or "", secret_key=self.secret_key or "", region=self.region
        )
        headers.update(signer.sign("POST", self.path, headers, body))
        return VendorRequest(method="POST", url=f"https://{self.host}{self.path}", headers=headers, content=body)

    def parse_response(self, data: Any) -> str:
        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise VendorHTTPError(self.vendor, 200, message or json.dumps(error, ensure_ascii=False))
        return _first_choice_content(self.vendor, data)

    async def complete(
        self, prompt: str, *, system_prompt: str | None = None, temperature: float = 0.7
    ) -> str:
        self.require_credentials()
        logger.info(f"[{self.vendor}] Calling endpoint {self.endpoint_id} with prompt: {prompt[:100]}...")
        data = await self.send(self.build_request(prompt, system_prompt, temperature))
        return self.parse_response(data)


def get_text_provider(
    provider_name: str | None = None, credentials: VendorCredentials | None = None
) -> TextProvider:
    """Factory function to get a text provider by name."""
    name = (provider_name or settings.text_provider).lower()
    if settings.provider_mode == "mock" or name == "mock":
        return EchoTextProvider()

    creds = credentials or settings.credentials
    if name == "deepseek":
        return OpenAICompatibleTextProvider(
            vendor="deepseek",
            base_url="https://api.deepseek.com/v1",
            api_key=creds.deepseek_api_key,
            model="deepseek-chat",
            key_env="DEEPSEEK_API_KEY",
        )
    if name == "openai":
        return OpenAICompatibleTextProvider(
            vendor="openai",
            base_url="https://api.openai.com/v1",
            api_key=creds.openai_api_key,
            model="gpt-4o-mini",
            key_env="OPENAI_API_KEY",
            default_system_prompt="You are a helpful assistant.",
            max_tokens=2000,
        )
    if name == "third_party":
        return OpenAICompatibleTextProvider(
            vendor="third_party",
            base_url="https://ai.da520.online/v1",
            api_key=creds.third_party_api_key,
            model="gemini-2.0-flash-exp",
            key_env="THIRD_PARTY_API_KEY",
        )
    if name == "ark":
        return OpenAICompatibleTextProvider(
            vendor="volcengine-ark",
            base_url="https://ark.cn-beijing.volces.com/api/v3",
            api_key=creds.volcengine_access_key,
            model=creds.volcengine_translate_endpoint_id,
            key_env="VOLCENGINE_ACCESS_KEY",
            model_env="VOLCENGINE_TRANSLATE_ENDPOINT_ID",
        )
    if name == "gemini":
        return GeminiTextProvider(api_key=creds.juguang_api_key)
    if name == "volcengine":
        return VolcengineSignedTextProvider(
            access_key=creds.volcengine_access_key,
            secret_key=creds.volcengine_secret_key,
            endpoint_id=creds.volcengine_endpoint_id,
            region=creds.volcengine_region,
        )
    raise ValueError(f"Unknown text provider '{provider_name}'")


# ============================================================================
# Translation
# ============================================================================


class Translator(Protocol):
    """Protocol for translation between the native and foreign language."""

    name: str

    async def translate(
        self, text: str, *, kind: TranslationKind, direction: TranslationDirection
    ) -> str:  # pragma: no cover - protocol
        ...

    async def translate_many(
        self, texts: list[str], *, direction: TranslationDirection
    ) -> list[str]:  # pragma: no cover - protocol
        ...


@dataclass(slots=True)
class LLMTranslator:
    """Translator built on top of any text provider."""

    provider: TextProvider
    temperature: float = 0.3

    @property
    def name(self) -> str:
        return f"translator:{self.provider.name}"

    async def translate(self, text: str, *, kind: TranslationKind, direction: TranslationDirection) -> str:
        result = await self.provider.complete(
            translation_prompt(text, kind, direction),
            system_prompt=translation_system(kind, direction),
            temperature=self.temperature,
        )
        result = result.strip()
        if not result:
            raise EmptyVendorResponseError(self.name, "empty translation")
        return result

    async def translate_many(self, texts: list[str], *, direction: TranslationDirection) -> list[str]:
        """Translate fragments in one call; results are matched positionally."""
        if not texts:
            return []
        raw = await self.provider.complete(
            batch_translation_prompt(texts, direction),
            system_prompt=translation_system("segments", direction),
            temperature=self.temperature,
        )
        items = decode_model_json(raw, expect=list)
        translations: list[str] = []
        for index in range(len(texts)):
            item = items[index] if index < len(items) else None
            if isinstance(item, dict):
                item = item.get("translation")
            translations.append(item.strip() if isinstance(item, str) else "")
        return translations


@dataclass(slots=True)
class MockTranslator:
    name: str = "mock_translator"

    async def translate(self, text: str, *, kind: TranslationKind, direction: TranslationDirection) -> str:
        return f"[{direction}] {text}"

    async def translate_many(self, texts: list[str], *, direction: TranslationDirection) -> list[str]:
        return [f"[{direction}] {text}" for text in texts]


def get_translator(provider_name: str | None = None) -> Translator:
    name = (provider_name or settings.translation_provider).lower()
    if settings.provider_mode == "mock" or name == "mock":
        return MockTranslator()
    return LLMTranslator(provider=get_text_provider(name))


# ============================================================================
# Image Providers
# ============================================================================


class ImageProvider(Protocol):
    """Protocol for text-to-image generation."""

    name: str

    async def generate_image(self, prompt: str, *, aspect_ratio: str = "16:9") -> str:  # pragma: no cover
        """Return an image URL or a ``data:`` URL."""
        ...


@dataclass(slots=True)
class GeminiImageProvider(VendorAdapter):
    """Gemini image model through the Juguang proxy.

    The model sometimes answers 200 with no image at all. Those empty
    generations are retried; HTTP and configuration errors are not.
    """

    api_key: str | None
    model: str = "gemini-2.5-flash-image-preview"
    base_url: str = "https://ai.juguang.chat/v1beta"
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0
    vendor: str = "gemini-image"
    timeout: float = 180.0
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def name(self) -> str:
        return self.vendor

    def credentials(self) -> dict[str, str | None]:
        return {"JUGUANG_API_KEY": self.api_key}

    def build_request(self, prompt: str, aspect_ratio: str) -> VendorRequest:
        return VendorRequest(
            method="POST",
            url=f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent",
            headers=_bearer_headers(self.api_key),
            payload={"contents": [{"parts": [{"text": f"{prompt}\n\nAspect ratio: {aspect_ratio}"}]}]},
        )

    def parse_response(self, data: Any) -> str:
        parts = _candidate_parts(data)
        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data")
            if isinstance(inline, dict) and inline.get("data"):
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return f"data:{mime_type};base64,{inline['data']}"

        for part in parts:
            text = part.get("text")
            if not isinstance(text, str):
                continue
            match = _MARKDOWN_IMAGE.search(text) or _DATA_URL.search(text)
            if match:
                return match.group(1)
            logger.warning(f"[{self.vendor}] Text-only answer: {text[:200]}")

        raise EmptyVendorResponseError(self.vendor, "no image data in response")

    async def generate_image(self, prompt: str, *, aspect_ratio: str = "16:9") -> str:
        self.require_credentials()
        logger.info(f"[{self.vendor}] Generating image with prompt: {prompt[:100]}...")
        for attempt in range(1, self.max_attempts + 1):
            try:
                data = await self.send(self.build_request(prompt, aspect_ratio))
                image = self.parse_response(data)
            except EmptyVendorResponseError:
                if attempt >= self.max_attempts:
                    raise
                logger.warning(f"[{self.vendor}] No image data (attempt {attempt}/{self.max_attempts}), retrying")
                await asyncio.sleep(self.retry_delay_seconds)
                continue
            logger.info(f"[{self.vendor}] Image generated on attempt {attempt}/{self.max_attempts}")
            return image
        raise EmptyVendorResponseError(self.vendor, "no image data in response")  # pragma: no cover


@dataclass(slots=True)
class OpenAIImageProvider:
    """DALL-E 3 through the OpenAI SDK."""

    api_key: str | None
    model: str = "dall-e-3"
    name: str = "openai-image"

    async def generate_image(self, prompt: str, *, aspect_ratio: str = "16:9") -> str:
        from openai import APIConnectionError, APIStatusError, AsyncOpenAI

        if not self.api_key:
            raise VendorConfigurationError(self.name, ["OPENAI_API_KEY"])

        client = AsyncOpenAI(api_key=self.api_key)
        logger.info(f"调用 DALL-E 3 生成图片: {prompt[:50]}...")
        try:
            response = await client.images.generate(
                model=self.model,
                prompt=prompt,
                size=self.size_for(aspect_ratio),
                quality="standard",
                n=1,
            )
        except APIStatusError as exc:
            raise VendorHTTPError(self.name, exc.status_code, exc.response.text) from exc
        except APIConnectionError as exc:
            raise VendorHTTPError(self.name, None, str(exc)) from exc

        image_url = response.data[0].url if response.data else None
        if not image_url:
            raise EmptyVendorResponseError(self.name, "no image URL in response")
        return image_url

    @staticmethod
    def size_for(aspect_ratio: str) -> str:
        # DALL-E 3 只支持特定尺寸
        try:
            left, right = (int(part) for part in aspect_ratio.split(":", 1))
        except ValueError:
            return "1024x1024"
        if left == right:
            return "1024x1024"
        return "1792x1024" if left > right else "1024x1792"


@dataclass(slots=True)
class MockImageProvider:
    """Placeholder images for tests and mock mode."""

    name: str = "mock_image"

    async def generate_image(self, prompt: str, *, aspect_ratio: str = "16:9") -> str:
        digest = hashlib.md5(prompt.encode()).hexdigest()[:8]
        width, height = _mock_dimensions(aspect_ratio)
        return f"https://placehold.co/{width}x{height}/1a1a1a/white?text=Shot+{digest}"


def _mock_dimensions(aspect_ratio: str) -> tuple[int, int]:
    presets = {
        "16:9": (1280, 720),
        "9:16": (720, 1280),
        "4:3": (1024, 768),
        "3:4": (768, 1024),
        "1:1": (768, 768),
    }
    return presets.get(aspect_ratio, presets["16:9"])


def get_image_provider(provider_name: str | None = None) -> ImageProvider:
    name = (provider_name or settings.image_provider).lower()
    if settings.provider_mode == "mock" or name == "mock":
        return MockImageProvider()
    creds = settings.credentials
    if name == "gemini":
        return GeminiImageProvider(
            api_key=creds.juguang_api_key,
            max_attempts=settings.image_retry.max_attempts,
            retry_delay_seconds=settings.image_retry.delay_seconds,
        )
    if name == "openai":
        return OpenAIImageProvider(api_key=creds.openai_api_key)
    raise ValueError(f"Unknown image provider '{provider_name}'")


# ============================================================================
# Style Analysis
# ============================================================================


class StyleAnalyzer(Protocol):
    """Protocol for character/style image and preset analysis."""

    name: str

    async def analyze(self, kind: str, payload: str | dict[str, Any]) -> str:  # pragma: no cover
        ...


@dataclass(slots=True)
class GeminiStyleAnalyzer(VendorAdapter):
    """Multimodal analysis with ``inline_data`` image parts."""

    api_key: str | None
    model: str = "gemini-2.5-flash-preview"
    base_url: str = "https://ai.juguang.chat/v1beta"
    vendor: str = "gemini-vision"
    timeout: float = 120.0
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def name(self) -> str:
        return self.vendor

    def credentials(self) -> dict[str, str | None]:
        return {"JUGUANG_API_KEY": self.api_key}

    def build_request(self, kind: str, payload: str | dict[str, Any]) -> VendorRequest:
        if kind == "preset":
            info = payload if isinstance(payload, dict) else {"description": payload}
            parts: list[dict[str, Any]] = [{"text": preset_prompt(info)}]
        else:
            mime_type, data = _split_data_url(str(payload))
            parts = [
                {"inline_data": {"mime_type": mime_type, "data": data}},
                {"text": STYLE_INSTRUCTIONS[kind]},
            ]
        return VendorRequest(
            method="POST",
            url=f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent",
            headers=_bearer_headers(self.api_key),
            payload={"contents": [{"role": "user", "parts": parts}]},
        )

    def parse_response(self, data: Any) -> str:
        for part in _candidate_parts(data):
            text = part.get("text")
            if isinstance(text, str) and text.strip():
                return text.strip()
        raise EmptyVendorResponseError(self.vendor)

    async def analyze(self, kind: str, payload: str | dict[str, Any]) -> str:
        if kind not in STYLE_INSTRUCTIONS:
            raise ValueError(f"Unsupported analysis type '{kind}'")
        self.require_credentials()
        data = await self.send(self.build_request(kind, payload))
        return self.parse_response(data)


def _split_data_url(value: str) -> tuple[str, str]:
    """Return ``(mime_type, base64_data)`` for a data URL or bare base64 string."""
    if value.startswith("data:") and "," in value:
        header, data = value.split(",", 1)
        mime_type = header[5:].split(";", 1)[0] or "image/png"
        return mime_type, data
    return "image/png", value


@dataclass(slots=True)
class MockStyleAnalyzer:
    name: str = "mock_analyzer"

    async def analyze(self, kind: str, payload: str | dict[str, Any]) -> str:
        return f"Mock {kind} analysis"


def get_style_analyzer(provider_name: str | None = None) -> StyleAnalyzer:
    name = (provider_name or settings.analysis_provider).lower()
    if settings.provider_mode == "mock" or name == "mock":
        return MockStyleAnalyzer()
    if name == "gemini":
        return GeminiStyleAnalyzer(api_key=settings.credentials.juguang_api_key)
    raise ValueError(f"Unknown analysis provider '{provider_name}'")


# ============================================================================
# Video Generation Providers
# ============================================================================


class VideoGenerationProvider(Protocol):
    """Protocol for video generation providers."""

    name: str

    async def generate_video(
        self,
        *,
        prompt: str,
        image_url: str | None = None,
        aspect_ratio: str = "16:9",
        duration_seconds: int = 5,
    ) -> dict[str, str]:
        """Generate video and return metadata including ``video_url``."""
        ...


_DONE_STATUSES = {"completed", "success", "done", "succeeded"}
_FAILED_STATUSES = {"failed", "error", "failure", "cancelled"}


@dataclass(slots=True)
class DoubaoVideoProvider(VendorAdapter):
    """Doubao (豆包) Seedance task API: submit a job, then poll until it finishes.

    Reference: https://www.volcengine.com/docs/82379/1520757
    """

    api_key: str | None
    base_url: str = "https://ark.cn-beijing.volces.com/api/v3/contents"
    model: str = "doubao-seedance-1-0-pro-fast-251015"
    poll_interval_seconds: float = 5.0
    max_poll_attempts: int = 60
    vendor: str = "doubao"
    timeout: float = 300.0
    transport: httpx.AsyncBaseTransport | None = None

    @property
    def name(self) -> str:
        return self.vendor

    def credentials(self) -> dict[str, str | None]:
        return {"DOUBAO_API_KEY": self.api_key}

    def build_request(
        self, prompt: str, image_url: str | None, aspect_ratio: str, duration_seconds: int
    ) -> VendorRequest:
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        if image_url:
            content.append({"type": "image_url", "image_url": {"url": image_url}})
        payload: dict[str, Any] = {
            "model": self.model,
            "content": content,
            "ratio": "adaptive" if image_url else aspect_ratio,
            "duration": max(1, int(duration_seconds)),
            "watermark": False,
        }
        return VendorRequest(
            method="POST",
            url=f"{self.base_url.rstrip('/')}/generations/tasks",
            headers=_bearer_headers(self.api_key),
            payload=payload,
        )

    def poll_request(self, task_id: str) -> VendorRequest:
        return VendorRequest(
            method="GET",
            url=f"{self.base_url.rstrip('/')}/generations/tasks/{task_id}",
            headers=_bearer_headers(self.api_key),
        )

    def parse_response(self, data: Any) -> dict[str, str] | None:
        """Return the finished result, ``None`` while the task is still running."""
        if not isinstance(data, dict):
            raise EmptyVendorResponseError(self.vendor, f"unexpected task payload: {data!r}")
        status = str(data.get("status") or "").lower()
        if status in _DONE_STATUSES:
            content = data.get("content") if isinstance(data.get("content"), dict) else {}
            video_url = content.get("video_url") or content.get("videoUrl") or data.get("video_url") or ""
            if not video_url:
                raise EmptyVendorResponseError(self.vendor, "task succeeded without video_url")
            return {
                "video_url": video_url,
                "status": "completed",
                "job_id": str(data.get("id") or ""),
                "provider": self.vendor,
                "last_frame_url": content.get("last_frame_url") or "",
            }
        if status in _FAILED_STATUSES:
            error = data.get("error") or {}
            message = (error.get("message") if isinstance(error, dict) else str(error)) or "Unknown error"
            raise VendorHTTPError(self.vendor, 200, f"video generation failed: {message}")
        return None

    async def generate_video(
        self,
        *,
        prompt: str,
        image_url: str | None = None,
        aspect_ratio: str = "16:9",
        duration_seconds: int = 5,
    ) -> dict[str, str]:
        self.require_credentials()
        submission = await self.send(self.build_request(prompt, image_url, aspect_ratio, duration_seconds))
        if not isinstance(submission, dict):
            raise EmptyVendorResponseError(self.vendor, f"unexpected submission payload: {submission!r}")
        task_id = submission.get("id") or submission.get("task_id")
        if not task_id:
            raise EmptyVendorResponseError(self.vendor, f"no task id in response: {submission}")

        for _ in range(self.max_poll_attempts):
            await asyncio.sleep(self.poll_interval_seconds)
            result = self.parse_response(await self.send(self.poll_request(task_id)))
            if result is not None:
                result["job_id"] = result["job_id"] or task_id
                return result
            logger.debug(f"Doubao task {task_id} still running, waiting...")

        raise VendorHTTPError(
            self.vendor,
            None,
            f"video task {task_id} timed out after {self.max_poll_attempts} polls",
        )


@dataclass(slots=True)
class MockVideoProvider:
    """Mock video provider; image-to-video echoes the source image."""

    name: str = "mock_video"

    async def generate_video(
        self,
        *,
        prompt: str,
        image_url: str | None = None,
        aspect_ratio: str = "16:9",
        duration_seconds: int = 5,
    ) -> dict[str, str]:
        job_id = hashlib.md5(prompt.encode()).hexdigest()[:12]
        return {
            "video_url": image_url or f"https://mock.video/{job_id}.mp4",
            "status": "completed",
            "job_id": job_id,
            "provider": self.name,
        }


def get_video_provider(provider_name: str | None = None) -> VideoGenerationProvider:
    """Factory function to get video provider by name."""
    name = (provider_name or settings.video_provider).lower()
    if settings.provider_mode == "mock" or name == "mock":
        return MockVideoProvider()
    if name == "doubao":
        return DoubaoVideoProvider(
            api_key=settings.credentials.doubao_api_key,
            poll_interval_seconds=settings.video_poll.interval_seconds,
            max_poll_attempts=settings.video_poll.max_attempts,
        )
    raise ValueError(f"Unknown video provider '{provider_name}'")


@dataclass(slots=True)
class ProviderSet:
    """The adapters one service instance talks to."""

    splitter: TextProvider = field(default_factory=get_text_provider)
    describer: TextProvider = field(default_factory=lambda: get_text_provider(settings.description_provider))
    translator: Translator = field(default_factory=get_translator)
    images: ImageProvider = field(default_factory=get_image_provider)
    videos: VideoGenerationProvider = field(default_factory=get_video_provider)
    analyzer: StyleAnalyzer = field(default_factory=get_style_analyzer)

