from __future__ import annotations

import asyncio
import base64
import json
import time
from typing import Any, NamedTuple

import httpx
from loguru import logger

from ..exceptions import (
    InvalidRequestError,
    PermanentProviderError,
    ProviderError,
    TaskFailedError,
    TaskTimeoutError,
    TransientProviderError,
    UnsupportedOperationError,
)
from ..schema import (
    DoubaoProviderConfig,
    ImageData,
    ImageEditOptions,
    ImageGenerationOptions,
    ImageGenerationResponse,
    ImageVariationOptions,
)
from ..shard import constants as C
from ..shard.enums import DoubaoAction, DoubaoModel, ProviderType, TaskState, TaskStatus
from ..utils.image_utils import detect_image_mime
from ..utils.signer import RequestSigner
from .base import ImageAdapter


class DoubaoErrorInfo(NamedTuple):
    message: str
    retryable: bool


ERROR_TABLE: dict[int, DoubaoErrorInfo] = {
    50411: DoubaoErrorInfo("Input image failed content moderation; use a different image", False),
    50511: DoubaoErrorInfo("Output image failed content moderation; try generating again", True),
    50412: DoubaoErrorInfo("Input text failed content moderation; revise the prompt", False),
    50512: DoubaoErrorInfo("Output text failed content moderation", False),
    50413: DoubaoErrorInfo("Input text contains sensitive or copyrighted terms; revise the prompt", False),
    50429: DoubaoErrorInfo("QPS limit exceeded; retry later", True),
    50430: DoubaoErrorInfo("Concurrency limit exceeded; retry later", True),
    50500: DoubaoErrorInfo("Internal service error; retry later", True),
    50501: DoubaoErrorInfo("Algorithm service error; retry later", True),
    100006: DoubaoErrorInfo("Request signature expired; check the system clock", False),
    100010: DoubaoErrorInfo("Request signature mismatch; check the access key and secret key", False),
}

HTTP_FALLBACK_MESSAGES: dict[int, str] = {
    401: "API key verification failed; check the configuration",
    403: "API access denied; check the account permissions",
    404: "API endpoint not found; check the configured URL",
    500: "Server internal error; retry later",
}

_EDIT_MIMES = ("image/jpeg", "image/png")


def format_doubao_error(code: int | None, message: str | None = None) -> str:
    """Map a Doubao result code to a caller-facing message."""
    if code is not None and code in ERROR_TABLE:
        return f"{ERROR_TABLE[code].message} (code {code})"
    if code is not None and code in HTTP_FALLBACK_MESSAGES:
        return HTTP_FALLBACK_MESSAGES[code]
    return f"Doubao API error: {message or 'unknown error'} (code {code})"


def build_doubao_error(code: int | None, message: str | None, *, status_code: int | None = None, stage: str = "request") -> ProviderError:
    """Build the ProviderError for a failed Doubao call.

    The error table decides permanence for known codes; unknown codes fall
    back to the HTTP status.
    """
    text = f"Doubao {stage} failed: {format_doubao_error(code, message)}"
    info = ERROR_TABLE.get(code) if code is not None else None
    if info is not None:
        retryable = info.retryable
    else:
        retryable = status_code not in C.NO_RETRY_STATUSES
    cls = TransientProviderError if retryable else PermanentProviderError
    return cls(text, status_code=status_code, retryable=retryable, provider_code=code)


def transition(status: str | None) -> TaskState:
    """Next task state for a polled status. Unknown statuses keep polling."""
    if status == TaskStatus.DONE:
        return TaskState.COMPLETED
    if status in (TaskStatus.NOT_FOUND, TaskStatus.EXPIRED):
        return TaskState.FAILED
    return TaskState.POLLING


def encode_body(body: dict[str, Any]) -> bytes:
    """Compact JSON with null fields dropped; these are the bytes that get signed."""
    clean = {k: v for k, v in body.items() if v is not None}
    return json.dumps(clean, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def parse_size(size: str | None) -> tuple[int, int] | None:
    if not size:
        return None
    parts = size.lower().split("x")
    if len(parts) != 2:
        return None
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if width <= 0 or height <= 0:
        return None
    return width, height


def to_standard_response(data: dict[str, Any]) -> ImageGenerationResponse:
    """URLs first, then base64 payloads."""
    items = [ImageData(url=url) for url in data.get("image_urls") or []]
    items.extend(ImageData(b64_json=b64) for b64 in data.get("binary_data_base64") or [])
    return ImageGenerationResponse(created=int(time.time()), data=items)


class DoubaoAdapter(ImageAdapter):
    """Adapter for the Volcengine visual API (Doubao Seedream / SeedEdit).

    Text-to-image is a single signed ``CVProcess`` call. Editing submits an
    async task and polls ``CVSync2AsyncGetResult`` until a terminal status.
    """

    poll_interval: float = C.POLL_INTERVAL_SECONDS
    poll_max_attempts: int = C.POLL_MAX_ATTEMPTS

    def __init__(self, **data: Any) -> None:
        data.setdefault("name", "doubao")
        super().__init__(provider=ProviderType.DOUBAO, **data)

    # Transport
    def _http_client(self, config: DoubaoProviderConfig) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=config.timeout_seconds, headers=config.headers or None)

    def _signer(self, config: DoubaoProviderConfig) -> RequestSigner:
        return RequestSigner(config.access_key, config.secret_key, config.region, config.service)

    async def _post(self, config: DoubaoProviderConfig, action: DoubaoAction, body: dict[str, Any], *, stage: str) -> dict[str, Any]:
        """Sign and send one action call; return the ``data`` object on success."""
        url = f"{config.url}?Action={action.value}&Version={C.DOUBAO_API_VERSION}"
        payload = encode_body(body)
        headers = self._signer(config).sign("POST", url, payload)
        logger.debug(f"Doubao {action.value} via config {config.index}")

        async with self._http_client(config) as client:
            try:
                response = await client.post(url, content=payload, headers=headers)
            except httpx.TimeoutException as e:
                raise TransientProviderError(f"Doubao {stage} timed out: {e}") from e
            except httpx.TransportError as e:
                raise TransientProviderError(f"Doubao {stage} connection error: {e}") from e

        try:
            result = response.json()
        except ValueError:
            result = {}
        if not isinstance(result, dict):
            result = {}

        code = result.get("code")
        message = result.get("message")
        meta_error = (result.get("ResponseMetadata") or {}).get("Error") or {}
        if code is None and meta_error:
            code = meta_error.get("CodeN")
            message = meta_error.get("Message") or message

        status = response.status_code
        if status == httpx.codes.OK and code == C.DOUBAO_SUCCESS_CODE:
            return result.get("data") or {}

        logger.warning(f"Doubao {action.value} failed: http={status} code={code} message={message}")
        if code is None:
            code = status
        raise build_doubao_error(
            code,
            message,
            status_code=None if status == httpx.codes.OK else status,
            stage=stage,
        )

    # Request builders
    def build_generation_body(self, config: DoubaoProviderConfig, options: ImageGenerationOptions, model: str) -> dict[str, Any]:
        width, height = options.width, options.height
        if width is None or height is None:
            dims = parse_size(options.size) or parse_size(config.default_size) or (1328, 1328)
            width = width if width is not None else dims[0]
            height = height if height is not None else dims[1]

        logo = options.logo_info or config.logo_info
        return {
            "req_key": model,
            "prompt": options.prompt,
            "use_pre_llm": options.use_pre_llm,
            "seed": options.seed if options.seed is not None else -1,
            "scale": options.scale if options.scale is not None else 2.5,
            "width": width,
            "height": height,
            "return_url": options.return_url if options.return_url is not None else True,
            "logo_info": logo.model_dump() if logo is not None else None,
        }

    def build_edit_body(self, options: ImageEditOptions, model: str) -> dict[str, Any]:
        return {
            "req_key": model,
            "prompt": options.prompt,
            "seed": options.seed if options.seed is not None else -1,
            "scale": options.scale if options.scale is not None else 0.5,
            "binary_data_base64": [base64.b64encode(data).decode("ascii") for data in options.images],
        }

    def build_query_body(self, config: DoubaoProviderConfig, task_id: str, model: str) -> dict[str, Any]:
        req_json: dict[str, Any] = {"return_url": True}
        if config.logo_info is not None:
            req_json["logo_info"] = config.logo_info.model_dump()
        return {
            "req_key": model,
            "task_id": task_id,
            "req_json": json.dumps(req_json, ensure_ascii=False, separators=(",", ":")),
        }

    # Async task
    async def submit_task(self, config: DoubaoProviderConfig, body: dict[str, Any]) -> str:
        data = await self._post(config, DoubaoAction.SUBMIT_TASK, body, stage="task submit")
        task_id = data.get("task_id")
        if not task_id:
            raise TransientProviderError("Doubao task submit failed: response carried no task_id")
        logger.debug(f"Doubao task {task_id} submitted")
        return str(task_id)

    async def query_task(self, config: DoubaoProviderConfig, task_id: str, model: str) -> dict[str, Any]:
        return await self._post(config, DoubaoAction.GET_RESULT, self.build_query_body(config, task_id, model), stage="task query")

    async def poll_task(self, config: DoubaoProviderConfig, task_id: str, model: str) -> dict[str, Any]:
        """Poll until the task reaches a terminal state or the attempt ceiling."""
        state = TaskState.SUBMITTED
        data: dict[str, Any] = {}
        status: str | None = None
        for attempt in range(self.poll_max_attempts):
            data = await self.query_task(config, task_id, model)
            status = data.get("status")
            state = transition(status)
            logger.debug(f"Doubao task {task_id} poll {attempt + 1}: status={status} -> {state}")

            if state.is_terminal:
                break
            if attempt < self.poll_max_attempts - 1:
                await asyncio.sleep(self.poll_interval)
        else:
            state = TaskState.TIMED_OUT

        if state is TaskState.COMPLETED:
            return data
        if state is TaskState.FAILED:
            if status == TaskStatus.NOT_FOUND:
                raise TaskFailedError(f"Doubao task {task_id} not found; check the task id", provider_code=status)
            raise TaskFailedError(f"Doubao task {task_id} expired; resubmit the task", provider_code=status)

        logger.warning(f"Doubao task {task_id} {state} after {self.poll_max_attempts} polls")
        raise TaskTimeoutError(f"Doubao task {task_id} processing timeout after {self.poll_max_attempts} polls")

    # API operations
    async def generate_image(self, config: DoubaoProviderConfig, options: ImageGenerationOptions) -> ImageGenerationResponse:  # type: ignore[override]
        model = options.model or config.default_model or DoubaoModel.T2I_V30.value
        if model == DoubaoModel.SEEDEDIT_V30:
            raise UnsupportedOperationError(
                f"{DoubaoModel.SEEDEDIT_V30.value} only supports image editing; use {DoubaoModel.T2I_V30.value} for text-to-image"
            )
        if model != DoubaoModel.T2I_V30:
            raise UnsupportedOperationError(f"Doubao model {model} is not supported for text-to-image")

        body = self.build_generation_body(config, options, model)
        data = await self._post(config, DoubaoAction.PROCESS, body, stage="text-to-image")
        return to_standard_response(data)

    async def edit_image(self, config: DoubaoProviderConfig, options: ImageEditOptions) -> ImageGenerationResponse:  # type: ignore[override]
        model = options.model or config.default_edit_model or DoubaoModel.SEEDEDIT_V30.value
        if model != DoubaoModel.SEEDEDIT_V30:
            raise UnsupportedOperationError(
                f"Doubao model {model} does not support image editing; use {DoubaoModel.SEEDEDIT_V30.value}"
            )
        if not options.images:
            raise InvalidRequestError("Image editing needs at least one input image")
        for data in options.images:
            if detect_image_mime(data) not in _EDIT_MIMES:
                raise InvalidRequestError("Doubao image editing only supports JPEG and PNG input")

        task_id = await self.submit_task(config, self.build_edit_body(options, model))
        result = await self.poll_task(config, task_id, model)
        return to_standard_response(result)

    async def create_variation(self, config: DoubaoProviderConfig, options: ImageVariationOptions) -> ImageGenerationResponse:  # type: ignore[override]
        raise UnsupportedOperationError("Doubao does not support image variations; use image editing instead")

    async def list_models(self, config: DoubaoProviderConfig) -> list[str]:  # type: ignore[override]
        # The visual API has no listing endpoint.
        return self.get_default_models()

    def get_default_models(self) -> list[str]:
        return [DoubaoModel.T2I_V30.value, DoubaoModel.SEEDEDIT_V30.value]


__all__ = [
    "DoubaoAdapter",
    "ERROR_TABLE",
    "format_doubao_error",
    "build_doubao_error",
    "transition",
    "encode_body",
    "parse_size",
    "to_standard_response",
]
