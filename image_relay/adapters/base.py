from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, PrivateAttr

from ..capabilities import CapabilityRegistry, ModelCache
from ..schema import (
    BaseProviderConfig,
    ImageEditOptions,
    ImageElement,
    ImageGenerationOptions,
    ImageGenerationResponse,
    ImageVariationOptions,
)
from ..shard.enums import ProviderType
from ..utils.image_utils import is_data_url, to_data_url


class ImageAdapter(ABC, BaseModel):
    """Abstract base for provider adapters.

    Subclasses implement the three image operations plus a raw ``list_models``;
    model lookups go through the adapter's own ModelCache.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    provider: ProviderType
    registry: CapabilityRegistry | None = None
    show_usage: bool = True

    _model_cache: ModelCache = PrivateAttr()

    def model_post_init(self, __context: Any) -> None:
        self._model_cache = ModelCache(
            self.provider,
            lambda config: self.list_models(config),
            lambda: self.get_default_models(),
            self.registry,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    @abstractmethod
    async def generate_image(self, config: BaseProviderConfig, options: ImageGenerationOptions) -> ImageGenerationResponse:
        raise NotImplementedError

    @abstractmethod
    async def edit_image(self, config: BaseProviderConfig, options: ImageEditOptions) -> ImageGenerationResponse:
        raise NotImplementedError

    @abstractmethod
    async def create_variation(self, config: BaseProviderConfig, options: ImageVariationOptions) -> ImageGenerationResponse:
        raise NotImplementedError

    @abstractmethod
    async def list_models(self, config: BaseProviderConfig) -> list[str]:
        """Fetch the model list from the provider. Uncached; may raise."""
        raise NotImplementedError

    @abstractmethod
    def get_default_models(self) -> list[str]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Cached capability lookups
    # ------------------------------------------------------------------
    def bind_registry(self, registry: CapabilityRegistry) -> None:
        self.registry = registry
        self._model_cache.registry = registry

    async def get_models(self, config: BaseProviderConfig) -> list[str]:
        return await self._model_cache.get_models(config)

    async def supports_model(self, config: BaseProviderConfig, model: str) -> bool:
        return await self._model_cache.supports_model(config, model)

    def clear_model_cache(self, config: BaseProviderConfig | None = None) -> None:
        if config is None:
            self._model_cache.clear()
        else:
            self._model_cache.invalidate(config)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------
    def to_common_elements(self, response: ImageGenerationResponse) -> list[ImageElement]:
        """Turn a response into image elements, plus a token footer when enabled."""
        elements: list[ImageElement] = []
        for item in response.data:
            if item.url:
                elements.append(ImageElement.image(item.url))
            elif item.b64_json:
                src = item.b64_json if is_data_url(item.b64_json) else to_data_url(item.b64_json, "image/png")
                elements.append(ImageElement.image(src))

        if response.usage is not None and self.show_usage:
            elements.extend(
                [
                    ImageElement.text_item("\n\n\n"),
                    ImageElement.text_item(f"Input tokens: {response.usage.input_tokens}\n"),
                    ImageElement.text_item(f"Output tokens: {response.usage.output_tokens}"),
                ]
            )
        return elements


__all__ = ["ImageAdapter"]
