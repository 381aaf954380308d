"""Exception hierarchy shared by adapters, the orchestrator and the MCP surface.

Every exception carries a stable ``code`` and a ``user_message`` that is safe
to surface to callers verbatim. ``str(exc)`` equals ``user_message`` so the
fail-over loop can record messages without special casing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .shard import constants as C

if TYPE_CHECKING:
    from .schema import RetryResult


class ImageGenerationError(Exception):
    """Base class for all errors raised by this package."""

    code: str = C.ERROR_CODE_PROVIDER_ERROR

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.user_message = message
        if code is not None:
            self.code = code


class ConfigurationError(ImageGenerationError):
    """No eligible configuration exists for the request."""

    code = C.ERROR_CODE_CONFIGURATION


class InvalidRequestError(ImageGenerationError):
    """Caller input rejected before any provider is contacted."""

    code = C.ERROR_CODE_INVALID_REQUEST


class UnsupportedOperationError(ImageGenerationError):
    """The provider or model does not offer the requested operation."""

    code = C.ERROR_CODE_UNSUPPORTED_OPERATION


class CapabilityLookupError(ImageGenerationError):
    """Fetching a provider's model list failed."""

    code = C.ERROR_CODE_CAPABILITY_LOOKUP


class ProviderError(ImageGenerationError):
    """A provider call failed.

    ``status_code`` is the HTTP status when the failure came with one and drives
    the generic retry policy. ``retryable`` and ``provider_code`` reflect the
    provider's own classification when it has one.
    """

    code = C.ERROR_CODE_PROVIDER_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool | None = None,
        provider_code: Any = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.status_code = status_code
        self.retryable = retryable
        self.provider_code = provider_code


class PermanentProviderError(ProviderError):
    """Bad credentials, bad request or a moderation rejection."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)


class TransientProviderError(ProviderError):
    """Rate limiting, provider internal errors or network blips."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)


class TaskFailedError(PermanentProviderError):
    """An async provider task reached a terminal failure status."""

    code = C.ERROR_CODE_TASK_FAILED


class TaskTimeoutError(ProviderError, TimeoutError):
    """An async provider task did not finish within the poll ceiling."""

    code = C.ERROR_CODE_TASK_TIMEOUT


class AllConfigurationsFailedError(ImageGenerationError):
    """Every eligible configuration failed; ``result`` holds the attempt log."""

    code = C.ERROR_CODE_ALL_FAILED

    def __init__(self, message: str, result: RetryResult[Any]) -> None:
        super().__init__(message)
        self.result = result


__all__ = [
    "ImageGenerationError",
    "ConfigurationError",
    "InvalidRequestError",
    "UnsupportedOperationError",
    "CapabilityLookupError",
    "ProviderError",
    "PermanentProviderError",
    "TransientProviderError",
    "TaskFailedError",
    "TaskTimeoutError",
    "AllConfigurationsFailedError",
]
