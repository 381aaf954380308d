from __future__ import annotations

from image_relay.capabilities import CapabilityRegistry
from image_relay.schema import ImageData, ImageGenerationResponse, OpenAIProviderConfig, Usage
from image_relay.shard.enums import ElementKind, ProviderType


def _response(usage: Usage | None = None) -> ImageGenerationResponse:
    return ImageGenerationResponse(
        created=1,
        data=[
            ImageData(url="https://cdn.example/a.png"),
            ImageData(b64_json="QUJD"),
            ImageData(b64_json="data:image/jpeg;base64,/9j/"),
            ImageData(),
        ],
        usage=usage,
    )


def test_to_common_elements_maps_urls_and_base64(fake_adapter_cls):
    elements = fake_adapter_cls().to_common_elements(_response())

    assert [e.kind for e in elements] == [ElementKind.IMAGE] * 3
    assert [e.src for e in elements] == [
        "https://cdn.example/a.png",
        "data:image/png;base64,QUJD",
        "data:image/jpeg;base64,/9j/",
    ]


def test_usage_footer_when_enabled(fake_adapter_cls):
    elements = fake_adapter_cls(show_usage=True).to_common_elements(_response(Usage(input_tokens=12, output_tokens=34)))

    texts = [e.text for e in elements if e.kind == ElementKind.TEXT]
    assert texts == ["\n\n\n", "Input tokens: 12\n", "Output tokens: 34"]


def test_usage_footer_hidden_when_disabled(fake_adapter_cls):
    elements = fake_adapter_cls(show_usage=False).to_common_elements(_response(Usage(input_tokens=12, output_tokens=34)))
    assert all(e.kind == ElementKind.IMAGE for e in elements)


async def test_cached_lookups_and_registry_binding(fake_adapter_cls):
    adapter = fake_adapter_cls(models_by_index={0: ["m1", "m2"], 1: ["m3"]})
    registry = CapabilityRegistry()
    adapter.bind_registry(registry)

    cfg0 = OpenAIProviderConfig(api_key="k", index=0)
    cfg1 = OpenAIProviderConfig(api_key="k", index=1)

    assert await adapter.get_models(cfg0) == ["m1", "m2"]
    assert await adapter.supports_model(cfg1, "m3") is True
    assert await adapter.supports_model(cfg1, "m1") is False
    assert registry.get(ProviderType.OPENAI) == ["m1", "m2", "m3"]

    adapter.models_by_index = {0: ["m4"], 1: ["m5"]}
    adapter.clear_model_cache(cfg0)
    assert await adapter.get_models(cfg0) == ["m4"]
    assert await adapter.get_models(cfg1) == ["m3"]

    adapter.clear_model_cache()
    assert await adapter.get_models(cfg1) == ["m5"]


async def test_failing_listing_falls_back_to_defaults(fake_adapter_cls):
    adapter = fake_adapter_cls(default_models=["fallback"], list_error=RuntimeError("listing unavailable"))
    assert await adapter.get_models(OpenAIProviderConfig(api_key="k", index=0)) == ["fallback"]
