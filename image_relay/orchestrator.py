from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from loguru import logger
from pydantic import ValidationError

from .adapters import DoubaoAdapter, ImageAdapter, OpenAIAdapter
from .adapters.openai import validate_image_quality, validate_image_size
from .capabilities import CapabilityRegistry
from .exceptions import (
    AllConfigurationsFailedError,
    ConfigurationError,
    InvalidRequestError,
    ProviderError,
    TaskTimeoutError,
    UnsupportedOperationError,
)
from .schema import (
    BaseProviderConfig,
    ImageEditOptions,
    ImageElement,
    ImageGenerationOptions,
    ImageGenerationResponse,
    ImageVariationOptions,
)
from .settings import Settings, get_settings
from .shard import constants as C
from .shard.enums import ImageOperation, ProviderType
from .utils.retry import format_retry_errors, retry_with_configs, should_retry, with_retry_delay

# Adapter call for one attempt: (adapter, config, effective model) -> response
AttemptCall = Callable[[ImageAdapter, BaseProviderConfig, str | None], Awaitable[ImageGenerationResponse]]


def _retry_within_config(error: BaseException) -> bool:
    """Whether ``error`` may be retried on the same configuration.

    Unsupported or invalid requests, poll timeouts and errors the provider
    flags as permanent end the attempt on this config at once; anything else
    goes through the HTTP-status policy.
    """
    if isinstance(error, (UnsupportedOperationError, InvalidRequestError, ConfigurationError, TaskTimeoutError)):
        return False
    if isinstance(error, ProviderError) and error.retryable is False:
        return False
    return should_retry(error)


class ImageOrchestrator:
    """Routes image requests across configured providers with fail-over.

    Owns the configuration snapshot and the adapter registry; each request is
    tried per configuration in priority order, with bounded backoff retries
    inside each configuration.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        registry: CapabilityRegistry | None = None,
        adapters: Iterable[ImageAdapter] | None = None,
        retry_base_delay: float = C.RETRY_BASE_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.registry = registry or CapabilityRegistry()
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._adapters: dict[ProviderType, ImageAdapter] = {}
        self._configs: list[BaseProviderConfig] = []
        self._next_index: dict[ProviderType, int] = {}

        if adapters is None:
            adapters = [
                OpenAIAdapter(show_usage=self.settings.show_usage),
                DoubaoAdapter(show_usage=self.settings.show_usage),
            ]
        for adapter in adapters:
            self.add_adapter(adapter)

        self.load_configs()

    # ------------------------------------------------------------------
    # Adapters and configurations
    # ------------------------------------------------------------------
    def add_adapter(self, adapter: ImageAdapter) -> None:
        """Register ``adapter`` for its provider tag, replacing any previous one."""
        adapter.bind_registry(self.registry)
        self._adapters[adapter.provider] = adapter

    def get_adapter(self, provider: ProviderType | str) -> ImageAdapter | None:
        return self._adapters.get(provider)  # type: ignore[call-overload]

    def load_configs(self, configs: Iterable[BaseProviderConfig] | None = None) -> None:
        """Replace the configuration snapshot.

        With no argument the snapshot comes from settings, for enabled
        providers only. Indexes are assigned per provider type from a counter
        that is never reset, so an index is never reused across reloads.
        """
        if configs is None:
            source: list[BaseProviderConfig] = []
            if self.settings.use_openai:
                source.extend(self.settings.openai_configs)
            if self.settings.use_doubao:
                source.extend(self.settings.doubao_configs)
        else:
            source = list(configs)

        loaded: list[BaseProviderConfig] = []
        for config in source:
            provider = ProviderType(config.type)  # type: ignore[attr-defined]
            index = self._next_index.get(provider, 0)
            self._next_index[provider] = index + 1
            loaded.append(config.model_copy(update={"index": index}))

        self._configs = loaded
        for adapter in self._adapters.values():
            adapter.clear_model_cache()
        logger.info(f"Loaded {len(loaded)} provider configuration(s)")

    def get_all_configs(self) -> list[BaseProviderConfig]:
        """Configurations whose provider has a registered adapter, in priority order."""
        return [c for c in self._configs if c.type in self._adapters]  # type: ignore[attr-defined]

    async def get_configs(self, model: str | None = None, fallback_to_default: bool = True) -> list[BaseProviderConfig]:
        all_configs = self.get_all_configs()
        if not model:
            return all_configs

        compatible: list[BaseProviderConfig] = []
        for config in all_configs:
            adapter = self._adapters[config.type]  # type: ignore[attr-defined]
            try:
                if await adapter.supports_model(config, model):
                    compatible.append(config)
            except Exception as e:
                logger.warning(f"Model support check failed for {config.cache_key}: {e}")

        if compatible:
            return compatible
        if fallback_to_default:
            logger.info(f"No configuration supports model {model}; falling back to all configurations")
            return all_configs
        return []

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def _check_prompt(self, prompt: str) -> None:
        limit = self.settings.max_prompt_length
        if len(prompt) > limit:
            raise InvalidRequestError(f"Prompt is too long; keep it within {limit} characters")

    async def _run(self, operation: ImageOperation, model: str | None, call: AttemptCall) -> list[ImageElement]:
        configs = await self.get_configs(model)
        if not configs:
            raise ConfigurationError("No configuration available")

        async def attempt(config: BaseProviderConfig, i: int) -> list[ImageElement]:
            adapter = self._adapters.get(config.type)  # type: ignore[attr-defined]
            if adapter is None:
                raise ConfigurationError(f"Adapter '{config.type}' is not available")  # type: ignore[attr-defined]

            async def once() -> list[ImageElement]:
                effective = model
                if model and not await adapter.supports_model(config, model):
                    logger.info(f"Config {config.cache_key} does not support model {model}; using its default model")
                    effective = None
                response = await call(adapter, config, effective)
                return adapter.to_common_elements(response)

            return await with_retry_delay(
                once,
                config.retry_count,
                self.retry_base_delay,
                sleep=self._sleep,
                retry_if=_retry_within_config,
            )

        result = await retry_with_configs(configs, attempt)
        if not result.success or result.result is None:
            raise AllConfigurationsFailedError(f"{operation.label} failed: {format_retry_errors(result)}", result)
        return result.result

    async def generate_image(self, prompt: str, options: Mapping[str, Any] | None = None) -> list[ImageElement]:
        self._check_prompt(prompt)
        try:
            base = ImageGenerationOptions.model_validate({**(options or {}), "prompt": prompt})
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid generation options: {e}") from e

        async def call(adapter: ImageAdapter, config: BaseProviderConfig, model: str | None) -> ImageGenerationResponse:
            return await adapter.generate_image(config, base.model_copy(update={"model": model}))

        return await self._run(ImageOperation.GENERATE, base.model, call)

    async def edit_image(self, images: list[bytes], prompt: str, options: Mapping[str, Any] | None = None) -> list[ImageElement]:
        self._check_prompt(prompt)
        if not images:
            raise InvalidRequestError("Image editing needs at least one input image")
        try:
            base = ImageEditOptions.model_validate({**(options or {}), "images": images, "prompt": prompt})
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid edit options: {e}") from e

        async def call(adapter: ImageAdapter, config: BaseProviderConfig, model: str | None) -> ImageGenerationResponse:
            return await adapter.edit_image(config, base.model_copy(update={"model": model}))

        return await self._run(ImageOperation.EDIT, base.model, call)

    async def create_variation(self, image: bytes, options: Mapping[str, Any] | None = None) -> list[ImageElement]:
        try:
            base = ImageVariationOptions.model_validate({**(options or {}), "image": image})
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid variation options: {e}") from e

        async def call(adapter: ImageAdapter, config: BaseProviderConfig, model: str | None) -> ImageGenerationResponse:
            return await adapter.create_variation(config, base.model_copy(update={"model": model}))

        return await self._run(ImageOperation.VARIATION, base.model, call)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    async def get_available_models(self) -> list[str]:
        """Union of models across usable configurations, in first-seen order."""
        seen: dict[str, None] = {}
        for config in self.get_all_configs():
            adapter = self._adapters[config.type]  # type: ignore[attr-defined]
            try:
                models = await adapter.get_models(config)
            except Exception as e:
                logger.warning(f"Model listing failed for {config.cache_key}: {e}")
                continue
            for model in models:
                seen.setdefault(model, None)
        return list(seen)

    def get_model_registry(self) -> dict[str, list[str]]:
        return self.registry.snapshot()

    def get_available_configs(self) -> list[str]:
        return [f"Config {i + 1} ({c.type})" for i, c in enumerate(self.get_all_configs())]  # type: ignore[attr-defined]

    def get_config_count(self) -> int:
        return len(self.get_all_configs())

    def is_enabled(self) -> bool:
        enabled = self.settings.enable_openai or self.settings.enable_doubao
        return bool(enabled and self.get_all_configs())

    @staticmethod
    def validate_image_size(size: str, model: str) -> bool:
        return validate_image_size(size, model)

    @staticmethod
    def validate_image_quality(quality: str, model: str) -> bool:
        return validate_image_quality(quality, model)


__all__ = ["ImageOrchestrator"]
