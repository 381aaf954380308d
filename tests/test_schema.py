from __future__ import annotations

import pytest
from pydantic import ValidationError

from image_relay.exceptions import (
    AllConfigurationsFailedError,
    ConfigurationError,
    ImageGenerationError,
    PermanentProviderError,
    TaskFailedError,
    TaskTimeoutError,
    TransientProviderError,
)
from image_relay.schema import (
    DoubaoLogoInfo,
    DoubaoProviderConfig,
    ImageElement,
    ImageGenerationOptions,
    ImageToolStructured,
    OpenAIProviderConfig,
    RetryResult,
)
from image_relay.shard.enums import ElementKind


def test_openai_config_defaults():
    """Test that an OpenAI config fills in endpoint and request defaults."""
    config = OpenAIProviderConfig(api_key="sk-test")

    assert config.type == "openai"
    assert config.url == "https://api.openai.com/v1"
    assert config.index == -1
    assert config.retry_count == 2
    assert config.timeout == 80
    assert config.default_size == "1024x1024"
    assert config.default_quality == "standard"
    assert config.default_style == "vivid"


def test_openai_config_strips_trailing_slash():
    assert OpenAIProviderConfig(api_key="k", url="https://proxy.example/v1///").url == "https://proxy.example/v1"


def test_doubao_config_defaults():
    config = DoubaoProviderConfig(access_key="ak", secret_key="sk")

    assert config.url == "https://visual.volcengineapi.com"
    assert config.region == "cn-north-1"
    assert config.service == "cv"
    assert config.default_model == "high_aes_general_v30l_zt2i"
    assert config.default_edit_model == "seededit_v3.0"
    assert config.logo_info is None


def test_configs_are_frozen_and_keyed():
    config = OpenAIProviderConfig(api_key="k", index=3)

    with pytest.raises(ValidationError):
        config.api_key = "other"  # type: ignore[misc]
    assert config.cache_key == "openai_3"
    assert config.model_copy(update={"index": 4}).cache_key == "openai_4"


@pytest.mark.parametrize("field,value", [("timeout", 4), ("timeout", 121), ("retry_count", -1), ("retry_count", 11)])
def test_config_bounds(field, value):
    with pytest.raises(ValidationError):
        OpenAIProviderConfig(api_key="k", **{field: value})


def test_config_type_tag_is_fixed():
    assert DoubaoProviderConfig(access_key="ak", secret_key="sk").type == "doubao"
    with pytest.raises(ValidationError):
        OpenAIProviderConfig(api_key="k", type="doubao")


def test_logo_info_validation():
    assert DoubaoLogoInfo().model_dump() == {
        "add_logo": False,
        "position": 0,
        "language": 0,
        "opacity": 0.3,
        "logo_text_content": "",
    }
    with pytest.raises(ValidationError):
        DoubaoLogoInfo(position=4)
    with pytest.raises(ValidationError):
        DoubaoLogoInfo(opacity=1.5)


def test_generation_options_validation():
    assert ImageGenerationOptions(prompt="p").model is None
    with pytest.raises(ValidationError):
        ImageGenerationOptions(prompt="p", n=0)
    with pytest.raises(ValidationError):
        ImageGenerationOptions(prompt="p", output_format="bmp")


def test_image_element_helpers():
    image = ImageElement.image("data:image/png;base64,QUJD")
    text = ImageElement.text_item("Input tokens: 1\n")

    assert image.kind == ElementKind.IMAGE
    assert image.is_data_url is True
    assert ImageElement.image("https://cdn.example/a.png").is_data_url is False
    assert text.kind == ElementKind.TEXT
    assert text.src is None


def test_structured_output_defaults():
    structured = ImageToolStructured()
    assert structured.ok is True
    assert structured.image_count == 0
    assert structured.images == []


def test_exception_codes_and_messages():
    assert ConfigurationError("none").code == "configuration_error"
    assert str(ConfigurationError("none")) == "none"
    assert ImageGenerationError("x", code="custom").code == "custom"

    permanent = PermanentProviderError("bad key", status_code=401, provider_code=50400)
    assert permanent.retryable is False
    assert permanent.status_code == 401
    assert permanent.provider_code == 50400
    assert TransientProviderError("busy").retryable is True

    assert TaskFailedError("gone").code == "task_failed"
    assert isinstance(TaskTimeoutError("processing timeout"), TimeoutError)

    result = RetryResult()
    failed = AllConfigurationsFailedError("Image edit failed: x", result)
    assert failed.result is result
    assert failed.user_message == "Image edit failed: x"
    assert failed.code == "all_configurations_failed"
