from __future__ import annotations

import os
import sys
from typing import Any

import pytest
from pydantic import Field

# Add repository root to sys.path for `import image_relay.*` in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from image_relay.adapters.base import ImageAdapter  # noqa: E402
from image_relay.schema import ImageData, ImageGenerationResponse  # noqa: E402
from image_relay.settings import Settings  # noqa: E402
from image_relay.shard.enums import ProviderType  # noqa: E402

# 1x1 PNG
PNG_B64 = "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR4nGMAAQAABQAB/9k3WQAAAABJRU5ErkJggg=="


def ok_response(url: str = "https://img.example/1.png") -> ImageGenerationResponse:
    return ImageGenerationResponse(created=1700000000, data=[ImageData(url=url)])


class FakeAdapter(ImageAdapter):
    """Scriptable adapter: per config index, a queue of exceptions or responses."""

    default_models: list[str] = Field(default_factory=lambda: ["fake-default"])
    models_by_index: dict[int, list[str]] = Field(default_factory=dict)
    outcomes: dict[int, list[Any]] = Field(default_factory=dict)
    calls: list[tuple[str, int, str | None]] = Field(default_factory=list)
    list_error: Exception | None = None

    def __init__(self, **data: Any) -> None:
        data.setdefault("name", "fake")
        data.setdefault("provider", ProviderType.OPENAI)
        super().__init__(**data)

    async def _next(self, op: str, config: Any, model: str | None) -> ImageGenerationResponse:
        self.calls.append((op, config.index, model))
        queue = self.outcomes.get(config.index) or []
        outcome = queue.pop(0) if queue else ok_response(f"https://img.example/{config.index}.png")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def generate_image(self, config, options):  # type: ignore[override]
        return await self._next("generate", config, options.model)

    async def edit_image(self, config, options):  # type: ignore[override]
        return await self._next("edit", config, options.model)

    async def create_variation(self, config, options):  # type: ignore[override]
        return await self._next("variation", config, options.model)

    async def list_models(self, config):  # type: ignore[override]
        if self.list_error is not None:
            raise self.list_error
        return list(self.models_by_index.get(config.index, self.default_models))

    def get_default_models(self) -> list[str]:
        return list(self.default_models)


@pytest.fixture
def fake_adapter_cls() -> type[FakeAdapter]:
    return FakeAdapter


@pytest.fixture
def settings() -> Settings:
    return Settings(max_prompt_length=400, show_usage=True, enable_openai=True, enable_doubao=False, openai_configs=[], doubao_configs=[])


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
