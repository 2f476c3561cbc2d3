"""Classify upstream failures that mean "temporarily unavailable"."""

from __future__ import annotations

RATE_LIMIT_STATUS_CODES: frozenset[int] = frozenset({429, 503, 529})

_RATE_LIMIT_PATTERNS: tuple[str, ...] = (
    "rate limit",
    "rate_limit",
    "ratelimit",
    "too many requests",
    "resource_exhausted",
    "quota",
    "overloaded",
    "try again later",
    "usage limit",
)


def matched_rate_limit_pattern(message: str | None) -> str | None:
    if not message:
        return None
    lowered = message.lower()
    for pattern in _RATE_LIMIT_PATTERNS:
        if pattern in lowered:
            return pattern
    return None


def is_rate_limit_failure(status_code: int | None = None, message: str | None = None) -> bool:
    """Return True when a failed call should put its resource on cooldown."""

    if status_code is not None and status_code in RATE_LIMIT_STATUS_CODES:
        return True
    return matched_rate_limit_pattern(message) is not None


__all__ = ["RATE_LIMIT_STATUS_CODES", "is_rate_limit_failure", "matched_rate_limit_pattern"]
