"""Shared HTTP helpers for the provider adapters.

Centralises URL/exception sanitisation so that API keys are never logged
in plain text, regardless of which adapter raises the error.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Any

import httpx

from .errors import ProviderError

logger = logging.getLogger(__name__)

# Regex to strip API keys/tokens from URLs before logging.
_TOKEN_RE = re.compile(r"(apikey|api_key|token|key)=[^&\s]+", re.IGNORECASE)

# ── Once-per-provider error suppression ─────────────────────────
# 401/403/426 responses typically mean the key is invalid or the
# endpoint is not available on the user's plan.  Warn once, then
# suppress to avoid log spam on every ticker of a holdings fan-out.
_WARNED_PROVIDERS: set[str] = set()
_warned_lock = threading.Lock()

_PLAN_LIMITED_CODES: frozenset[int] = frozenset({401, 403, 426})


def sanitize_url(url: str) -> str:
    """Remove apikey/token query params from a URL for safe logging."""
    return _TOKEN_RE.sub(r"\1=***", url)


def sanitize_exc(exc: BaseException) -> str:
    """Strip API keys/tokens from exception text for safe logging."""
    return _TOKEN_RE.sub(r"\1=***", str(exc) or type(exc).__name__)


def _is_plan_limited_error(exc: BaseException) -> bool:
    return (
        isinstance(exc, httpx.HTTPStatusError)
        and exc.response.status_code in _PLAN_LIMITED_CODES
    )


def log_fetch_warning(label: str, exc: BaseException) -> None:
    """Log a fetch failure, suppressing repeated plan-limited errors.

    On the first 401/403/426 for a given *label* the error is logged at
    WARNING with a note that further occurrences will be suppressed;
    later ones go to DEBUG.  Every other error is logged at WARNING.
    """
    msg = sanitize_exc(exc)
    if _is_plan_limited_error(exc):
        with _warned_lock:
            already_warned = label in _WARNED_PROVIDERS
            _WARNED_PROVIDERS.add(label)
        if not already_warned:
            code = exc.response.status_code  # type: ignore[attr-defined]
            logger.warning(
                "%s fetch failed (HTTP %d) – key rejected or endpoint not on "
                "your plan; suppressing further warnings: %s",
                label, code, msg,
            )
        else:
            logger.debug("%s fetch failed (plan-limited, suppressed): %s", label, msg)
    else:
        logger.warning("%s fetch failed: %s", label, msg)


def raise_for_status(r: httpx.Response) -> None:
    """``raise_for_status`` with the request URL sanitised in the message."""
    try:
        r.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise httpx.HTTPStatusError(
            message=f"HTTP {r.status_code} from {sanitize_url(str(r.url))}",
            request=exc.request,
            response=exc.response,
        ) from None


def safe_json(r: httpx.Response, provider: str) -> Any:
    """Parse a JSON response; raise ``ProviderError`` with a sanitised URL."""
    ct = r.headers.get("content-type", "")
    try:
        return r.json()
    except ValueError:
        raise ProviderError(
            f"{provider} returned non-JSON (content-type={ct!r}, "
            f"status={r.status_code}, url={sanitize_url(str(r.url))})",
            provider=provider,
        ) from None
