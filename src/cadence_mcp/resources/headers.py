"""Extract rate-limit reset timing from upstream response headers."""

from __future__ import annotations

import re
import time
from email.utils import parsedate_to_datetime
from typing import Mapping

# 2020-01-01T00:00:00Z; smaller values are durations, not timestamps
_MIN_RESET_TIMESTAMP = 1_577_836_800

_DURATION_RE = re.compile(r"(?:(\d+)h)?(?:(\d+)m)?(?:(\d+(?:\.\d+)?)s)?")


def _parse_float(value: str) -> float | None:
    try:
        return float(value.strip())
    except ValueError:
        return None


def parse_duration_ms(value: str) -> int | None:
    """Parse durations such as ``"1s"``, ``"2m30s"`` or ``"1h"`` into milliseconds."""

    match = _DURATION_RE.fullmatch(value.strip())
    if match is None:
        return None
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    seconds = float(match.group(3) or 0)
    total = int((hours * 3600 + minutes * 60 + seconds) * 1000)
    return total if total > 0 else None


def parse_reset_time(headers: Mapping[str, str] | None, now: int | None = None) -> int | None:
    """Return the epoch-millisecond instant a rate limit lifts, if the headers say.

    Hints are tried in priority order and the first one that parses wins:
    ``x-ratelimit-reset`` (unix seconds), ``x-ratelimit-reset-requests``
    (duration), ``retry-after-ms`` and ``retry-after`` (seconds or HTTP date).
    """

    if not headers:
        return None
    current = int(time.time() * 1000) if now is None else now
    normalized = {str(key).lower(): str(value) for key, value in headers.items() if value is not None}

    reset = normalized.get("x-ratelimit-reset")
    if reset:
        try:
            timestamp = int(reset.strip())
        except ValueError:
            timestamp = None
        if timestamp is not None and timestamp > _MIN_RESET_TIMESTAMP:
            return timestamp * 1000

    reset_requests = normalized.get("x-ratelimit-reset-requests")
    if reset_requests:
        duration = parse_duration_ms(reset_requests)
        if duration is not None:
            return current + duration

    retry_after_ms = normalized.get("retry-after-ms")
    if retry_after_ms:
        millis = _parse_float(retry_after_ms)
        if millis is not None and millis > 0:
            return current + int(millis)

    retry_after = normalized.get("retry-after")
    if retry_after:
        seconds = _parse_float(retry_after)
        if seconds is not None and seconds > 0:
            return current + int(seconds * 1000)
        try:
            parsed = parsedate_to_datetime(retry_after.strip())
        except (TypeError, ValueError, IndexError):
            parsed = None
        if parsed is not None and parsed.tzinfo is not None:
            instant = int(parsed.timestamp() * 1000)
            if instant > current:
                return instant

    return None


__all__ = ["parse_duration_ms", "parse_reset_time"]
