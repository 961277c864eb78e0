"""Quota / rate-limit detection shared by the generation adapters.

Providers report exhausted quotas in different ways (HTTP 429, vendor
error codes, or only a message).  These helpers normalise the checks so
every adapter classifies the same signals as failover triggers.
"""

from __future__ import annotations

_QUOTA_KEYWORDS = ("quota", "rate limit", "limit", "resource_exhausted", "insufficient balance")


def is_quota_message(text: str | None) -> bool:
    """Return ``True`` if *text* mentions quota exhaustion or rate limiting."""
    if not text:
        return False
    lowered = text.lower()
    return any(keyword in lowered for keyword in _QUOTA_KEYWORDS)


def is_quota_status(status_code: int | None) -> bool:
    return status_code == 429
