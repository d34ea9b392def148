"""Reelforge 的配置模型。"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


TextProviderName = Literal["deepseek", "openai", "gemini", "volcengine", "ark", "third_party", "mock"]
ImageProviderName = Literal["gemini", "openai", "mock"]
VideoProviderName = Literal["doubao", "mock"]


class VendorCredentials(BaseModel):
    """外部 AI 供应商的凭证集合，显式注入到各个适配器中。"""

    deepseek_api_key: str | None = None
    openai_api_key: str | None = None
    juguang_api_key: str | None = None
    third_party_api_key: str | None = None
    volcengine_access_key: str | None = None
    volcengine_secret_key: str | None = None
    volcengine_endpoint_id: str | None = None
    volcengine_translate_endpoint_id: str | None = None
    volcengine_region: str = "cn-beijing"
    doubao_api_key: str | None = None


class ImageRetrySettings(BaseModel):
    """图片生成在空响应时的重试策略。"""

    max_attempts: int = 3
    delay_seconds: float = 1.0


class VideoPollSettings(BaseModel):
    interval_seconds: float = 5.0
    max_attempts: int = 60


class Settings(BaseSettings):
    """全局应用程序设置。"""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="APP_ENV"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", alias="LOG_LEVEL")
    api_title: str = "Reelforge API"
    api_version: str = "0.3.0"

    # 数据库配置
    database_url: str | None = Field(default=None, alias="DATABASE_URL")

    # 导出目录
    export_directory: Path = Field(default=Path("exports"), alias="EXPORT_DIRECTORY")

    cors_origins: list[str] | str = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    # 供应商模式: mock 模式下所有适配器都返回确定性的假数据
    provider_mode: Literal["live", "mock"] = Field(default="live", alias="PROVIDER_MODE")

    # 各能力使用的供应商
    text_provider: TextProviderName = Field(default="deepseek", alias="TEXT_PROVIDER")
    description_provider: TextProviderName = Field(default="volcengine", alias="DESCRIPTION_PROVIDER")
    translation_provider: TextProviderName = Field(default="ark", alias="TRANSLATION_PROVIDER")
    analysis_provider: Literal["gemini", "mock"] = Field(default="gemini", alias="ANALYSIS_PROVIDER")
    image_provider: ImageProviderName = Field(default="gemini", alias="IMAGE_PROVIDER")
    video_provider: VideoProviderName = Field(default="doubao", alias="VIDEO_PROVIDER")

    deepseek_api_key: str | None = Field(default=None, alias="DEEPSEEK_API_KEY")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    juguang_api_key: str | None = Field(
        default=None,
        alias="JUGUANG_API_KEY",
        validation_alias=AliasChoices("JUGUANG_API_KEY", "GEMINI_API_KEY"),
    )
    third_party_api_key: str | None = Field(default=None, alias="THIRD_PARTY_API_KEY")
    volcengine_access_key: str | None = Field(default=None, alias="VOLCENGINE_ACCESS_KEY")
    volcengine_secret_key: str | None = Field(default=None, alias="VOLCENGINE_SECRET_KEY")
    volcengine_endpoint_id: str | None = Field(default=None, alias="VOLCENGINE_ENDPOINT_ID")
    volcengine_translate_endpoint_id: str | None = Field(default=None, alias="VOLCENGINE_TRANSLATE_ENDPOINT_ID")
    volcengine_region: str = Field(default="cn-beijing", alias="VOLCENGINE_REGION")
    doubao_api_key: str | None = Field(default=None, alias="DOUBAO_API_KEY")

    image_retry: ImageRetrySettings = ImageRetrySettings()
    video_poll: VideoPollSettings = VideoPollSettings()

    # 内存中保留的批处理记录上限
    batch_registry_limit: int = Field(default=200, alias="BATCH_REGISTRY_LIMIT")

    # 每个项目保留的动态条数
    activity_log_size: int = Field(default=200, alias="ACTIVITY_LOG_SIZE")

    http_proxy: str | None = Field(default=None, alias="HTTP_PROXY")
    https_proxy: str | None = Field(default=None, alias="HTTPS_PROXY")

    @model_validator(mode="after")
    def normalize_lists(self) -> "Settings":
        if isinstance(self.cors_origins, str):
            values = [item.strip() for item in self.cors_origins.split(",") if item.strip()]
            self.cors_origins = values or ["*"]
        return self

    @model_validator(mode="after")
    def validate_production_mode(self) -> "Settings":
        """生产环境禁止使用 mock 供应商。"""
        if self.environment == "production" and self.provider_mode == "mock":
            raise ValueError(
                "Production cannot run with mock providers. "
                "Set PROVIDER_MODE=live and provide the vendor API keys."
            )
        return self

    @property
    def credentials(self) -> VendorCredentials:
        """返回当前配置的凭证快照。"""
        return VendorCredentials(
            deepseek_api_key=self.deepseek_api_key,
            openai_api_key=self.openai_api_key,
            juguang_api_key=self.juguang_api_key,
            third_party_api_key=self.third_party_api_key,
            volcengine_access_key=self.volcengine_access_key,
            volcengine_secret_key=self.volcengine_secret_key,
            volcengine_endpoint_id=self.volcengine_endpoint_id,
            volcengine_translate_endpoint_id=self.volcengine_translate_endpoint_id,
            volcengine_region=self.volcengine_region,
            doubao_api_key=self.doubao_api_key,
        )

    @property
    def httpx_proxies(self) -> str | None:
        """返回 httpx 客户端的代理 URL (首选 HTTPS)。"""
        return self.https_proxy or self.http_proxy


@lru_cache
def get_settings() -> Settings:
    """返回缓存的设置实例。"""
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
