"""Project constants for provider routing, retries and capability caching.

Provider-agnostic defaults live here; provider-specific tables (error codes,
model lists, size/quality validity) stay with the adapter that owns them.
"""

from __future__ import annotations

from typing import Final

# ----------------------------- Capability cache ----------------------------- #

# Model lists fetched from a provider stay fresh for this long.
MODEL_CACHE_TTL_SECONDS: Final[float] = 5 * 60

# ---------------------------------- Retries --------------------------------- #

# HTTP statuses treated as permanent client errors; never retried within a config.
NO_RETRY_STATUSES: Final[frozenset[int]] = frozenset({400, 401, 403, 404, 422})

# Default retries per configuration when a config omits ``retry_count``.
DEFAULT_RETRY_COUNT: Final[int] = 2

# First backoff delay in seconds; doubles on each retry.
RETRY_BASE_DELAY_SECONDS: Final[float] = 1.0

# Config index recorded when no configuration was available to attempt.
NO_CONFIG_INDEX: Final[int] = -1

# ---------------------------------- Network --------------------------------- #

# Per-call timeout (seconds) used when a configuration leaves it unset.
DEFAULT_TIMEOUT_SECONDS: Final[float] = 60.0

# -------------------------------- Doubao task -------------------------------- #

DOUBAO_API_VERSION: Final[str] = "2022-08-31"
DOUBAO_SUCCESS_CODE: Final[int] = 10000
POLL_INTERVAL_SECONDS: Final[float] = 2.0
POLL_MAX_ATTEMPTS: Final[int] = 30

# --------------------------------- Rendering -------------------------------- #

DEFAULT_MIME: Final[str] = "image/png"

# ------------------------------- Error codes -------------------------------- #

ERROR_CODE_CONFIGURATION: Final[str] = "configuration_error"
ERROR_CODE_INVALID_REQUEST: Final[str] = "invalid_request"
ERROR_CODE_PROVIDER_ERROR: Final[str] = "provider_error"
ERROR_CODE_TASK_FAILED: Final[str] = "task_failed"
ERROR_CODE_TASK_TIMEOUT: Final[str] = "task_timeout"
ERROR_CODE_UNSUPPORTED_OPERATION: Final[str] = "unsupported_operation"
ERROR_CODE_CAPABILITY_LOOKUP: Final[str] = "capability_lookup_error"
ERROR_CODE_ALL_FAILED: Final[str] = "all_configurations_failed"
