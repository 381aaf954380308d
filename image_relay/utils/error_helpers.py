from __future__ import annotations

from typing import Any

_CAPABILITY_TIP = " Tip: Use the 'list_models' tool to check which providers and models your configurations expose."


def _looks_like_auth_or_capability_issue(text: str) -> bool:
    """Best-effort detection for auth/capability issues from provider errors."""
    if not text:
        return False
    lower = text.lower()

    keywords = [
        # auth/credentials
        "api key",
        "apikey",
        "invalid key",
        "unauthorized",
        "forbidden",
        "permission",
        "access denied",
        "credentials",
        "signature",
        "auth",
        "401",
        "403",
        # billing/quota
        "billing",
        "quota",
        # routing/model mapping
        "no configuration available",
        "not supported",
        "unsupported model",
        "does not support",
    ]

    return any(k in lower for k in keywords)


def augment_with_capability_tip(message: str) -> str:
    """Append a capability tip to the message when appropriate."""
    if not message:
        return message
    if _CAPABILITY_TIP.strip() in message:
        return message
    if _looks_like_auth_or_capability_issue(message):
        return message.rstrip() + _CAPABILITY_TIP
    return message


def get_status_code(error: BaseException) -> int | None:
    """Return the HTTP status attached to an error, if any.

    Looks at ``status_code`` / ``status`` on the error and on its ``response``,
    which covers this package's ProviderError, openai's APIStatusError and
    httpx's HTTPStatusError.
    """
    for holder in (error, getattr(error, "response", None)):
        if holder is None:
            continue
        for attr in ("status_code", "status"):
            value = getattr(holder, attr, None)
            if isinstance(value, int) and not isinstance(value, bool) and value:
                return value
    return None


def get_error_message(error: BaseException | Any) -> str:
    """Extract the most specific human-readable message from an error.

    Prefers an OpenAI-style ``{"error": {"message": ...}}`` body over the
    exception text.
    """
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        inner = body.get("error", body)
        if isinstance(inner, dict) and isinstance(inner.get("message"), str) and inner["message"]:
            return inner["message"]
    text = str(error)
    return text or type(error).__name__


__all__ = [
    "augment_with_capability_tip",
    "get_status_code",
    "get_error_message",
]
