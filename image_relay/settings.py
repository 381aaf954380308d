from __future__ import annotations

from functools import lru_cache
from typing import ClassVar

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .schema import DoubaoProviderConfig, OpenAIProviderConfig


class Settings(BaseSettings):
    """Environment-backed configuration.

    Provider lists are JSON arrays, e.g.
    ``OPENAI_CONFIGS='[{"api_key": "sk-...", "url": "https://api.openai.com/v1"}]'``.
    List order is fail-over priority.
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(env_nested_delimiter="__")

    max_prompt_length: int = Field(default=400, ge=100, le=2000, description="Maximum prompt length in characters")
    show_usage: bool = Field(default=True, description="Append token usage to image results when the provider reports it")

    enable_openai: bool = Field(default=False, description="Enable OpenAI-compatible configurations")
    enable_doubao: bool = Field(default=False, description="Enable Doubao configurations")

    openai_configs: list[OpenAIProviderConfig] = Field(default_factory=list, description="OpenAI-compatible endpoints in priority order")
    doubao_configs: list[DoubaoProviderConfig] = Field(default_factory=list, description="Doubao accounts in priority order")

    log_level: str = Field(default="INFO", description="loguru sink level")

    @property
    def use_openai(self) -> bool:
        """OpenAI is used when enabled and at least one configuration is present."""
        return bool(self.enable_openai and self.openai_configs)

    @property
    def use_doubao(self) -> bool:
        """Doubao is used when enabled and at least one configuration is present."""
        return bool(self.enable_doubao and self.doubao_configs)


@lru_cache
def get_settings() -> Settings:
    return Settings()
