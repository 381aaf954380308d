from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest

from image_relay.adapters.openai import OpenAIAdapter, validate_image_quality, validate_image_size
from image_relay.exceptions import PermanentProviderError, TransientProviderError, UnsupportedOperationError
from image_relay.schema import ImageEditOptions, ImageGenerationOptions, ImageVariationOptions, OpenAIProviderConfig

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24

RESPONSE = {
    "created": 1700000000,
    "data": [{"b64_json": "QUJD", "revised_prompt": "a cat, photo"}],
    "usage": {"total_tokens": 30, "input_tokens": 10, "output_tokens": 20},
}


class DummyImages:
    def __init__(self, result=RESPONSE, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def _respond(self, op: str, kwargs: dict):
        self.calls.append((op, kwargs))
        if self.error is not None:
            raise self.error
        return self.result

    async def generate(self, **kwargs):
        return await self._respond("generate", kwargs)

    async def edit(self, **kwargs):
        return await self._respond("edit", kwargs)

    async def create_variation(self, **kwargs):
        return await self._respond("variation", kwargs)


class DummyModels:
    def __init__(self, ids: list[str]) -> None:
        self.ids = ids

    async def list(self):
        return SimpleNamespace(data=[SimpleNamespace(id=i) for i in self.ids])


class DummyClient:
    def __init__(self, images: DummyImages | None = None, model_ids: list[str] | None = None) -> None:
        self.images = images or DummyImages()
        self.models = DummyModels(model_ids or [])
        self.closed = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed += 1


def _config(**overrides) -> OpenAIProviderConfig:
    data = {"api_key": "sk-test", "index": 0}
    data.update(overrides)
    return OpenAIProviderConfig(**data)


def _adapter(monkeypatch, client: DummyClient) -> OpenAIAdapter:
    adapter = OpenAIAdapter()
    monkeypatch.setattr(adapter, "_client", lambda config: client)
    return adapter


def _status_error(status: int, message: str) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/images/generations")
    response = httpx.Response(status, request=request)
    return openai.APIStatusError(message, response=response, body={"message": message})


# ------------------------------ generation ------------------------------ #


def test_dalle3_forces_single_image_and_applies_valid_defaults():
    params = OpenAIAdapter().build_generation_request(_config(), ImageGenerationOptions(prompt="p", n=4, model="dall-e-3"))

    assert params == {
        "model": "dall-e-3",
        "prompt": "p",
        "n": 1,
        "size": "1024x1024",
        "quality": "standard",
        "style": "vivid",
    }


def test_default_model_is_dalle3():
    params = OpenAIAdapter().build_generation_request(_config(), ImageGenerationOptions(prompt="p"))
    assert params["model"] == "dall-e-3"

    params = OpenAIAdapter().build_generation_request(_config(default_model="gpt-image-1"), ImageGenerationOptions(prompt="p"))
    assert params["model"] == "gpt-image-1"


def test_gpt_image_1_gates_its_own_fields():
    options = ImageGenerationOptions(
        prompt="p",
        model="gpt-image-1",
        n=2,
        style="natural",
        quality="high",
        background="transparent",
        moderation="low",
        output_compression=80,
        output_format="webp",
    )
    params = OpenAIAdapter().build_generation_request(_config(), options)

    assert params["n"] == 2
    assert params["quality"] == "high"
    assert params["background"] == "transparent"
    assert params["moderation"] == "low"
    assert params["output_compression"] == 80
    assert params["output_format"] == "webp"
    assert "style" not in params


def test_invalid_config_defaults_are_skipped():
    # "standard" is not a gpt-image-1 quality and 1792x1024 is not a gpt-image-1 size.
    config = _config(default_size="1792x1024", default_quality="standard")
    params = OpenAIAdapter().build_generation_request(config, ImageGenerationOptions(prompt="p", model="gpt-image-1"))

    assert "size" not in params
    assert "quality" not in params
    assert params["output_format"] == "png"


def test_dalle2_ignores_style_quality_and_gpt_fields():
    options = ImageGenerationOptions(prompt="p", model="dall-e-2", style="vivid", quality="hd", background="opaque", n=3)
    params = OpenAIAdapter().build_generation_request(_config(), options)

    assert params == {"model": "dall-e-2", "prompt": "p", "n": 3, "size": "1024x1024"}


async def test_generate_calls_sdk_and_normalises_response(monkeypatch):
    client = DummyClient()
    adapter = _adapter(monkeypatch, client)

    resp = await adapter.generate_image(_config(), ImageGenerationOptions(prompt="a cat", model="dall-e-2", user="u1"))

    assert resp.created == 1700000000
    assert resp.data[0].b64_json == "QUJD"
    assert resp.usage is not None and resp.usage.output_tokens == 20
    op, kwargs = client.images.calls[0]
    assert op == "generate"
    assert kwargs["user"] == "u1"
    assert client.closed == 1


# -------------------------------- editing ------------------------------- #


async def test_edit_sends_single_and_multiple_files(monkeypatch):
    client = DummyClient()
    adapter = _adapter(monkeypatch, client)

    await adapter.edit_image(_config(), ImageEditOptions(images=[PNG], prompt="p", mask=PNG))
    await adapter.edit_image(_config(), ImageEditOptions(images=[PNG, PNG], prompt="p", model="gpt-image-1", quality="low"))

    single = client.images.calls[0][1]
    assert single["model"] == "dall-e-2"
    assert single["image"] == ("image.png", PNG, "image/png")
    assert single["mask"] == ("mask.png", PNG, "image/png")

    multi = client.images.calls[1][1]
    assert [name for name, _, _ in multi["image"]] == ["image_0.png", "image_1.png"]
    assert multi["quality"] == "low"


def test_edit_drops_gpt_fields_for_dalle2():
    params = OpenAIAdapter().build_edit_request(
        _config(), ImageEditOptions(images=[PNG], prompt="p", quality="high", background="transparent")
    )
    assert "quality" not in params
    assert "background" not in params


async def test_edit_with_dalle3_is_unsupported(monkeypatch):
    client = DummyClient()
    adapter = _adapter(monkeypatch, client)

    with pytest.raises(UnsupportedOperationError):
        await adapter.edit_image(_config(), ImageEditOptions(images=[PNG], prompt="p", model="dall-e-3"))
    with pytest.raises(UnsupportedOperationError):
        await adapter.edit_image(_config(default_edit_model="dall-e-3"), ImageEditOptions(images=[PNG], prompt="p"))
    assert client.images.calls == []


# ------------------------------- variations ----------------------------- #


async def test_variation_only_for_dalle2(monkeypatch):
    client = DummyClient()
    adapter = _adapter(monkeypatch, client)

    await adapter.create_variation(_config(), ImageVariationOptions(image=PNG, n=2, size="512x512"))
    assert client.images.calls[0][1] == {
        "model": "dall-e-2",
        "image": ("image.png", PNG, "image/png"),
        "n": 2,
        "size": "512x512",
    }

    for model in ("dall-e-3", "gpt-image-1"):
        with pytest.raises(UnsupportedOperationError):
            await adapter.create_variation(_config(), ImageVariationOptions(image=PNG, model=model))


# ------------------------------ model listing --------------------------- #


async def test_list_models_keeps_known_ids(monkeypatch):
    client = DummyClient(model_ids=["gpt-4o", "dall-e-3", "whisper-1", "gpt-image-1"])
    adapter = _adapter(monkeypatch, client)

    assert await adapter.list_models(_config()) == ["dall-e-3", "gpt-image-1"]
    assert "stable-diffusion" in adapter.get_default_models()


# ----------------------------- error translation ------------------------ #


@pytest.mark.parametrize(
    "status,cls",
    [(400, PermanentProviderError), (401, PermanentProviderError), (429, TransientProviderError), (500, TransientProviderError)],
)
async def test_status_errors_are_translated(monkeypatch, status, cls):
    client = DummyClient(images=DummyImages(error=_status_error(status, "upstream said no")))
    adapter = _adapter(monkeypatch, client)

    with pytest.raises(cls) as exc:
        await adapter.generate_image(_config(), ImageGenerationOptions(prompt="p"))
    assert exc.value.status_code == status
    assert str(exc.value) == "upstream said no"
    assert client.closed == 1


async def test_connection_errors_are_transient(monkeypatch):
    request = httpx.Request("POST", "https://api.openai.com/v1/images/generations")
    client = DummyClient(images=DummyImages(error=openai.APIConnectionError(request=request)))
    adapter = _adapter(monkeypatch, client)

    with pytest.raises(TransientProviderError) as exc:
        await adapter.generate_image(_config(), ImageGenerationOptions(prompt="p"))
    assert exc.value.status_code is None


def test_client_uses_config_and_disables_sdk_retries():
    config = _config(url="https://proxy.example/v1/", headers={"X-Team": "art"}, timeout=30)
    client = OpenAIAdapter()._client(config)

    assert str(client.base_url).rstrip("/") == "https://proxy.example/v1"
    assert client.max_retries == 0
    assert client.api_key == "sk-test"


def test_size_and_quality_tables():
    assert validate_image_size("256x256", "dall-e-2")
    assert not validate_image_size("256x256", "dall-e-3")
    assert validate_image_size("auto", "gpt-image-1")
    assert not validate_image_size("1024x1024", "flux")
    assert validate_image_quality("hd", "dall-e-3")
    assert not validate_image_quality("hd", "dall-e-2")
    assert validate_image_quality("medium", "gpt-image-1")
