from __future__ import annotations

from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, TypeVar

import openai
from loguru import logger
from openai import AsyncOpenAI

from ..exceptions import (
    InvalidRequestError,
    PermanentProviderError,
    TransientProviderError,
    UnsupportedOperationError,
)
from ..schema import (
    ImageEditOptions,
    ImageGenerationOptions,
    ImageGenerationResponse,
    ImageVariationOptions,
    OpenAIProviderConfig,
)
from ..shard import constants as C
from ..shard.enums import OpenAIModel, ProviderType
from ..utils.error_helpers import get_error_message
from .base import ImageAdapter

R = TypeVar("R")


class OpenAIStyle(StrEnum):
    VIVID = "vivid"
    NATURAL = "natural"


VALID_SIZES: dict[str, tuple[str, ...]] = {
    OpenAIModel.DALL_E_2: ("256x256", "512x512", "1024x1024"),
    OpenAIModel.DALL_E_3: ("1024x1024", "1792x1024", "1024x1792"),
    OpenAIModel.GPT_IMAGE_1: ("1024x1024", "1536x1024", "1024x1536", "auto"),
}

VALID_QUALITIES: dict[str, tuple[str, ...]] = {
    OpenAIModel.DALL_E_2: ("standard",),
    OpenAIModel.DALL_E_3: ("standard", "hd"),
    OpenAIModel.GPT_IMAGE_1: ("auto", "high", "medium", "low"),
}

# Models advertised when the endpoint's /models listing is unavailable.
DEFAULT_MODELS: tuple[str, ...] = (
    OpenAIModel.DALL_E_2.value,
    OpenAIModel.DALL_E_3.value,
    OpenAIModel.GPT_IMAGE_1.value,
    "ideogram",
    "flux",
    "stable-diffusion",
)


def validate_image_size(size: str, model: str) -> bool:
    return size in VALID_SIZES.get(model, ())


def validate_image_quality(quality: str, model: str) -> bool:
    return quality in VALID_QUALITIES.get(model, ())


class OpenAIAdapter(ImageAdapter):
    """Adapter for OpenAI-compatible ``/images`` endpoints.

    Gates request fields by model: dall-e-3 forces ``n=1`` and is the only model
    that takes ``style``; gpt-image-1 alone takes background, moderation and
    output format controls. SDK-level retries are disabled.
    """

    def __init__(self, **data: Any) -> None:
        data.setdefault("name", "openai")
        super().__init__(provider=ProviderType.OPENAI, **data)

    # Client management
    def _client(self, config: OpenAIProviderConfig) -> AsyncOpenAI:
        return AsyncOpenAI(
            base_url=config.url,
            api_key=config.api_key,
            default_headers=config.headers or None,
            timeout=config.timeout_seconds,
            max_retries=0,
        )

    async def _call(self, call: Callable[[], Awaitable[R]]) -> R:
        """Run an SDK call and translate its errors into ProviderError subclasses."""
        try:
            return await call()
        except openai.APIStatusError as e:
            message = get_error_message(e)
            status = e.status_code
            logger.warning(f"OpenAI API returned {status}: {message}")
            if status in C.NO_RETRY_STATUSES:
                raise PermanentProviderError(message, status_code=status) from e
            raise TransientProviderError(message, status_code=status) from e
        except openai.APIConnectionError as e:
            # Also covers APITimeoutError.
            raise TransientProviderError(f"OpenAI connection error: {e}") from e

    @staticmethod
    def _to_response(result: Any) -> ImageGenerationResponse:
        payload = result.model_dump() if hasattr(result, "model_dump") else result
        return ImageGenerationResponse.model_validate(payload)

    # Request builders
    def build_generation_request(self, config: OpenAIProviderConfig, options: ImageGenerationOptions) -> dict[str, Any]:
        model = options.model or config.default_model or OpenAIModel.DALL_E_3.value

        params: dict[str, Any] = {
            "model": model,
            "prompt": options.prompt,
            "n": 1 if model == OpenAIModel.DALL_E_3 else (options.n or 1),
        }

        size = options.size
        if not size and config.default_size and validate_image_size(config.default_size, model):
            size = config.default_size
        if size:
            params["size"] = size
        if options.response_format:
            params["response_format"] = options.response_format

        quality = options.quality
        if not quality and config.default_quality and validate_image_quality(config.default_quality, model):
            quality = config.default_quality

        if model == OpenAIModel.DALL_E_3:
            style = options.style or config.default_style
            if quality:
                params["quality"] = quality
            if style and style in {s.value for s in OpenAIStyle}:
                params["style"] = style

        if model == OpenAIModel.GPT_IMAGE_1:
            if options.background:
                params["background"] = options.background
            if options.moderation:
                params["moderation"] = options.moderation
            if options.output_compression is not None:
                params["output_compression"] = options.output_compression
            output_format = options.output_format or config.default_format
            if output_format:
                params["output_format"] = output_format
            if quality:
                params["quality"] = quality

        if options.user:
            params["user"] = options.user
        return params

    def build_edit_request(self, config: OpenAIProviderConfig, options: ImageEditOptions) -> dict[str, Any]:
        model = options.model or config.default_edit_model or OpenAIModel.DALL_E_2.value
        if model == OpenAIModel.DALL_E_3:
            raise UnsupportedOperationError("dall-e-3 does not support image editing; use dall-e-2 or gpt-image-1")
        if not options.images:
            raise InvalidRequestError("At least one image is required for editing")

        if len(options.images) == 1:
            image: Any = ("image.png", options.images[0], "image/png")
        else:
            image = [(f"image_{i}.png", data, "image/png") for i, data in enumerate(options.images)]

        params: dict[str, Any] = {"model": model, "prompt": options.prompt, "image": image}
        if options.mask:
            params["mask"] = ("mask.png", options.mask, "image/png")
        if options.n:
            params["n"] = options.n
        if options.size:
            params["size"] = options.size
        if options.response_format:
            params["response_format"] = options.response_format

        if model == OpenAIModel.GPT_IMAGE_1:
            if options.background:
                params["background"] = options.background
            if options.output_compression is not None:
                params["output_compression"] = options.output_compression
            if options.output_format:
                params["output_format"] = options.output_format
            if options.quality:
                params["quality"] = options.quality

        if options.user:
            params["user"] = options.user
        return params

    def build_variation_request(self, options: ImageVariationOptions) -> dict[str, Any]:
        model = options.model or OpenAIModel.DALL_E_2.value
        if model != OpenAIModel.DALL_E_2:
            raise UnsupportedOperationError(f"Image variations are only supported by dall-e-2, not {model}")

        params: dict[str, Any] = {"model": model, "image": ("image.png", options.image, "image/png")}
        if options.n:
            params["n"] = options.n
        if options.size:
            params["size"] = options.size
        if options.response_format:
            params["response_format"] = options.response_format
        if options.user:
            params["user"] = options.user
        return params

    # API operations
    async def generate_image(self, config: OpenAIProviderConfig, options: ImageGenerationOptions) -> ImageGenerationResponse:  # type: ignore[override]
        params = self.build_generation_request(config, options)
        logger.debug(f"OpenAI generate via config {config.index} model={params['model']}")
        async with self._client(config) as client:
            result = await self._call(lambda: client.images.generate(**params))
        return self._to_response(result)

    async def edit_image(self, config: OpenAIProviderConfig, options: ImageEditOptions) -> ImageGenerationResponse:  # type: ignore[override]
        params = self.build_edit_request(config, options)
        logger.debug(f"OpenAI edit via config {config.index} model={params['model']}")
        async with self._client(config) as client:
            result = await self._call(lambda: client.images.edit(**params))
        return self._to_response(result)

    async def create_variation(self, config: OpenAIProviderConfig, options: ImageVariationOptions) -> ImageGenerationResponse:  # type: ignore[override]
        params = self.build_variation_request(options)
        async with self._client(config) as client:
            result = await self._call(lambda: client.images.create_variation(**params))
        return self._to_response(result)

    async def list_models(self, config: OpenAIProviderConfig) -> list[str]:  # type: ignore[override]
        async with self._client(config) as client:
            page = await self._call(lambda: client.models.list())
        known = set(DEFAULT_MODELS)
        return [m.id for m in page.data if m.id in known]

    def get_default_models(self) -> list[str]:
        return list(DEFAULT_MODELS)


__all__ = [
    "OpenAIAdapter",
    "DEFAULT_MODELS",
    "validate_image_size",
    "validate_image_quality",
]
