"""Availability tracking and selection across interchangeable resources."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Mapping, Sequence

from .headers import parse_reset_time
from .models import RateRecord, Resource

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MS = 60_000
MAX_WAIT_MS = 300_000


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


def _iso(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


class ResourcePool:
    """Track temporarily unavailable resources and pick usable alternatives.

    One instance is owned by the composition root and handed to whoever
    needs it; nothing here is module-global. State lives in memory only and
    is dropped by :meth:`reset` when a fresh logical session begins.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], int] | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        default_cooldown_ms: int = DEFAULT_COOLDOWN_MS,
        max_wait_ms: int = MAX_WAIT_MS,
        wait_enabled: Callable[[], bool] | None = None,
    ) -> None:
        self._clock = clock or _wall_clock_ms
        self._sleep = sleep or asyncio.sleep
        self._default_cooldown_ms = default_cooldown_ms
        self._max_wait_ms = max_wait_ms
        self._wait_enabled = wait_enabled or (lambda: True)
        self._records: dict[str, RateRecord] = {}

    @property
    def max_wait_ms(self) -> int:
        return self._max_wait_ms

    def mark_unavailable(
        self,
        resource_id: str,
        reason: str,
        *,
        until: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> RateRecord:
        """Record (or overwrite) an unavailability window for ``resource_id``.

        ``until`` is an explicit epoch-millisecond reset instant; otherwise the
        reset is read from ``headers`` and falls back to the default cooldown.
        """

        now = self._clock()
        reset_at = until
        if reset_at is None:
            reset_at = parse_reset_time(headers, now=now)
        if reset_at is None:
            reset_at = now + self._default_cooldown_ms

        record = RateRecord(resource_id=resource_id, reset_at=reset_at, reason=reason)
        self._records[resource_id] = record
        logger.info(
            "Resource marked unavailable",
            extra={
                "resource_id": resource_id,
                "reason": reason,
                "reset_at": _iso(reset_at),
                "wait_ms": reset_at - now,
            },
        )
        return record

    def clear(self, resource_id: str) -> bool:
        if self._records.pop(resource_id, None) is None:
            return False
        logger.info("Cleared resource unavailability", extra={"resource_id": resource_id})
        return True

    def is_unavailable(self, resource_id: str) -> bool:
        record = self._records.get(resource_id)
        if record is None:
            return False
        if self._clock() >= record.reset_at:
            del self._records[resource_id]
            logger.info("Resource unavailability expired", extra={"resource_id": resource_id})
            return False
        return True

    def clear_expired(self) -> int:
        now = self._clock()
        expired = [key for key, record in self._records.items() if record.reset_at <= now]
        for key in expired:
            del self._records[key]
            logger.info("Cleared expired resource unavailability", extra={"resource_id": key})
        return len(expired)

    def record_for(self, resource_id: str) -> RateRecord | None:
        if not self.is_unavailable(resource_id):
            return None
        return self._records[resource_id]

    def unavailable(self) -> list[RateRecord]:
        self.clear_expired()
        return list(self._records.values())

    def select_next(
        self,
        exclude: str | None,
        pool: Sequence[Resource],
        capabilities: Iterable[str] | None = None,
    ) -> Resource | None:
        """Return the first usable pool member in definition order."""

        self.clear_expired()
        required = list(capabilities or [])
        for resource in pool:
            if resource.id == exclude or not resource.enabled:
                continue
            if self.is_unavailable(resource.id):
                continue
            if not resource.satisfies(required):
                continue
            logger.info(
                "Found alternative resource",
                extra={"from": exclude, "to": resource.id, "model": resource.model},
            )
            return resource

        logger.info(
            "No alternative resource available",
            extra={"current": exclude, "unavailable": sorted(self._records)},
        )
        return None

    def all_unavailable(self, pool: Sequence[Resource]) -> bool:
        if not pool:
            return False
        return all(self.is_unavailable(resource.id) for resource in pool)

    def earliest_recovery(self, pool: Sequence[Resource] | None = None) -> int | None:
        """Smallest reset instant among recorded members (all records if no pool)."""

        self.clear_expired()
        if pool is None:
            candidates = list(self._records.values())
        else:
            candidates = [self._records[r.id] for r in pool if r.id in self._records]
        if not candidates:
            return None
        return min(record.reset_at for record in candidates)

    async def wait_for_recovery(
        self,
        pool: Sequence[Resource],
        capabilities: Iterable[str] | None = None,
    ) -> Resource | None:
        """Sleep until the soonest-recovering member is usable, within the ceiling.

        Returns ``None`` straight away when nothing is recorded, when waiting is
        disabled, or when the soonest recovery is further away than the ceiling.
        The sleep cannot be cancelled from here; callers race it if they must.
        """

        required = list(capabilities or [])
        waiting = [
            (self._records[resource.id], resource)
            for resource in pool
            if resource.enabled
            and resource.satisfies(required)
            and self.is_unavailable(resource.id)
        ]
        if not waiting:
            return None

        record, resource = min(waiting, key=lambda item: item[0].reset_at)
        remaining = record.reset_at - self._clock()
        if not self._wait_enabled():
            logger.info("Waiting for resource recovery is disabled", extra={"resource_id": resource.id})
            return None
        if remaining <= 0 or remaining >= self._max_wait_ms:
            logger.info(
                "Soonest resource recovery is beyond the wait ceiling",
                extra={"resource_id": resource.id, "wait_ms": remaining, "max_wait_ms": self._max_wait_ms},
            )
            return None

        logger.info(
            "All resources unavailable, waiting for recovery",
            extra={"resource_id": resource.id, "wait_ms": remaining},
        )
        await self._sleep(remaining / 1000)
        self.clear(resource.id)
        return resource

    async def acquire(
        self,
        pool: Sequence[Resource],
        *,
        exclude: str | None = None,
        capabilities: Iterable[str] | None = None,
    ) -> Resource | None:
        """Select a usable resource, waiting out the shortest cooldown if all are blocked."""

        required = list(capabilities or [])
        selected = self.select_next(exclude, pool, required)
        if selected is not None:
            return selected

        matching = [r for r in pool if r.enabled and r.satisfies(required)]
        if matching and all(self.is_unavailable(r.id) for r in matching):
            return await self.wait_for_recovery(matching, required)
        return None

    def reset(self) -> None:
        self._records.clear()
        logger.info("Reset all resource availability tracking")


__all__ = ["DEFAULT_COOLDOWN_MS", "MAX_WAIT_MS", "ResourcePool"]
