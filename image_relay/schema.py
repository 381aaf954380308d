from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .shard import constants as C
from .shard.enums import DoubaoModel, ElementKind, ProviderType

T = TypeVar("T")

# ------------------------------ Provider configs ----------------------------- #


class DoubaoLogoInfo(BaseModel):
    """Watermark options forwarded verbatim to Doubao as ``logo_info``."""

    add_logo: bool = Field(default=False, description="Whether to add a watermark.")
    position: Literal[0, 1, 2, 3] = Field(default=0, description="0 bottom-right, 1 bottom-left, 2 top-left, 3 top-right.")
    language: Literal[0, 1] = Field(default=0, description="0 Chinese, 1 English.")
    opacity: float = Field(default=0.3, ge=0, le=1, description="Watermark opacity.")
    logo_text_content: str = Field(default="", description="Custom watermark text.")


class BaseProviderConfig(BaseModel):
    """Fields shared by every provider configuration.

    ``index`` is assigned by the orchestrator when a snapshot is loaded; values
    supplied by the config source are overwritten.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(default=C.NO_CONFIG_INDEX, description="Stable index assigned at load time.")
    url: str
    headers: dict[str, str] = Field(default_factory=dict, description="Extra request headers.")
    timeout: int = Field(default=80, ge=5, le=120, description="Per-call timeout in seconds.")
    retry_count: int = Field(default=C.DEFAULT_RETRY_COUNT, ge=0, le=10, description="Retries within this config before failing over.")

    @property
    def cache_key(self) -> str:
        return f"{self.type}_{self.index}"  # type: ignore[attr-defined]

    @property
    def timeout_seconds(self) -> float:
        return float(self.timeout) if self.timeout else C.DEFAULT_TIMEOUT_SECONDS


class OpenAIProviderConfig(BaseProviderConfig):
    """One OpenAI-compatible endpoint with its credentials and defaults."""

    type: Literal["openai"] = "openai"
    url: str = "https://api.openai.com/v1"
    api_key: str
    default_model: str | None = None
    default_edit_model: str | None = None
    default_size: str | None = "1024x1024"
    default_quality: str | None = "standard"
    default_style: str | None = "vivid"
    default_format: str | None = "png"

    @field_validator("url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class DoubaoProviderConfig(BaseProviderConfig):
    """One Doubao (Volcengine visual) account with its signing credentials."""

    type: Literal["doubao"] = "doubao"
    url: str = "https://visual.volcengineapi.com"
    access_key: str
    secret_key: str
    region: str = "cn-north-1"
    service: str = "cv"
    default_model: str = DoubaoModel.T2I_V30.value
    default_edit_model: str = DoubaoModel.SEEDEDIT_V30.value
    default_size: str = "1328x1328"
    logo_info: DoubaoLogoInfo | None = None


# ------------------------------- Request options ----------------------------- #


class ImageGenerationOptions(BaseModel):
    """Text-to-image options. Adapters forward only the fields their model honours."""

    prompt: str
    model: str | None = None
    size: str | None = None
    quality: str | None = None
    style: str | None = None
    n: int | None = Field(default=None, ge=1)
    background: Literal["transparent", "opaque", "auto"] | None = None
    moderation: Literal["low", "auto"] | None = None
    output_compression: int | None = Field(default=None, ge=0, le=100)
    output_format: Literal["png", "jpeg", "webp"] | None = None
    response_format: Literal["url", "b64_json"] | None = None
    user: str | None = None
    # Doubao-only knobs
    use_pre_llm: bool | None = None
    seed: int | None = None
    scale: float | None = None
    width: int | None = None
    height: int | None = None
    return_url: bool | None = None
    logo_info: DoubaoLogoInfo | None = None


class ImageEditOptions(BaseModel):
    """Image(s) + prompt → image(s). ``images`` are raw, already decoded bytes."""

    images: list[bytes]
    prompt: str
    mask: bytes | None = None
    model: str | None = None
    n: int | None = Field(default=None, ge=1)
    size: str | None = None
    quality: str | None = None
    background: Literal["transparent", "opaque", "auto"] | None = None
    output_compression: int | None = Field(default=None, ge=0, le=100)
    output_format: Literal["png", "jpeg", "webp"] | None = None
    response_format: Literal["url", "b64_json"] | None = None
    user: str | None = None
    seed: int | None = None
    scale: float | None = None


class ImageVariationOptions(BaseModel):
    """Variation of a single input image."""

    image: bytes
    model: str | None = None
    n: int | None = Field(default=None, ge=1)
    size: str | None = None
    response_format: Literal["url", "b64_json"] | None = None
    user: str | None = None


# ------------------------------ Common response ------------------------------ #


class ImageData(BaseModel):
    url: str | None = None
    b64_json: str | None = None
    revised_prompt: str | None = None


class InputTokensDetails(BaseModel):
    text_tokens: int = 0
    image_tokens: int = 0


class Usage(BaseModel):
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    input_tokens_details: InputTokensDetails | None = None


class ImageGenerationResponse(BaseModel):
    """Provider-neutral image response; every adapter returns this shape."""

    model_config = ConfigDict(extra="ignore")

    created: int
    data: list[ImageData] = Field(default_factory=list)
    background: str | None = None
    output_format: str | None = None
    size: str | None = None
    quality: str | None = None
    usage: Usage | None = None


class ImageElement(BaseModel):
    """Uniform renderable item handed to the result sink."""

    kind: ElementKind
    src: str | None = Field(default=None, description="Remote URL or data URL for image elements.")
    text: str | None = Field(default=None, description="Text for text elements.")

    @classmethod
    def image(cls, src: str) -> ImageElement:
        return cls(kind=ElementKind.IMAGE, src=src)

    @classmethod
    def text_item(cls, text: str) -> ImageElement:
        return cls(kind=ElementKind.TEXT, text=text)

    @property
    def is_data_url(self) -> bool:
        return bool(self.src and self.src.startswith("data:"))


# -------------------------------- Fail-over log ------------------------------ #


class AttemptError(BaseModel):
    """One failed attempt: the zero-based attempt index and the error message."""

    config_index: int
    error: str


class RetryResult(BaseModel, Generic[T]):
    """Outcome of trying an operation across an ordered list of configurations."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool = False
    result: T | None = None
    errors: list[AttemptError] = Field(default_factory=list)
    used_config_index: int | None = None


# ------------------------------ Public tool output --------------------------- #


class ImageDescriptor(BaseModel):
    """Lightweight image metadata for structured tool outputs (no blobs)."""

    url: str | None = Field(default=None, description="Remote URL when the provider returned one.")
    mimeType: str | None = Field(default=None, description="MIME type for embedded images.")
    embedded: bool = Field(default=False, description="True when the image is returned as an ImageContent block.")


class ImageToolStructured(BaseModel):
    """Public structured output for image tools without binary payloads."""

    ok: bool = Field(default=True, description="True on success.")
    image_count: int = Field(default=0, description="Number of images returned.")
    images: list[ImageDescriptor] = Field(default_factory=list, description="Lightweight metadata for returned images.")
    notes: list[str] = Field(default_factory=list, description="Text items such as token usage.")


class ModelsResponse(BaseModel):
    """Response for the list_models tool."""

    ok: bool = Field(default=True)
    models: list[str] = Field(default_factory=list, description="Models available across configured providers.")
    by_provider: dict[str, list[str]] = Field(default_factory=dict, description="Known models per provider type.")
    configs: list[str] = Field(default_factory=list, description="Labels of usable configurations.")


__all__ = [
    "DoubaoLogoInfo",
    "BaseProviderConfig",
    "OpenAIProviderConfig",
    "DoubaoProviderConfig",
    "ProviderType",
    "ImageGenerationOptions",
    "ImageEditOptions",
    "ImageVariationOptions",
    "ImageData",
    "Usage",
    "ImageGenerationResponse",
    "ImageElement",
    "AttemptError",
    "RetryResult",
    "ImageDescriptor",
    "ImageToolStructured",
    "ModelsResponse",
]
