from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Protocol

from tripbudget.config import settings
from tripbudget.db.models import Vacation, VacationDraft

logger = logging.getLogger(__name__)


class VacationStore(Protocol):
    async def find_all(self) -> list[Vacation]: ...

    async def create(self, draft: VacationDraft) -> Vacation: ...

    async def update(self, vacation_id: str, patch: dict[str, Any]) -> Vacation | None: ...

    async def delete(self, vacation_id: str) -> bool: ...


class VacationCache:
    """Short-lived read-through cache in front of the vacation store.

    Reads within ``ttl`` seconds of the last fetch are served from the
    snapshot. Every successful write refreshes the snapshot before returning,
    so a caller always observes its own writes. The snapshot and its
    timestamp are guarded by a single lock and replaced together.

    If a fetch fails the last good snapshot keeps being served regardless of
    age. With no snapshot yet ``list()`` does not raise: it returns an empty
    list and keeps the failure in ``last_error``. Callers must check
    ``last_error`` to tell an unreachable store from one with no vacations.
    ``last_error`` is cleared by the next successful fetch.
    """

    def __init__(
        self,
        store: VacationStore,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.ttl = settings.vacation_cache_ttl_ms / 1000 if ttl is None else ttl
        self.last_error: Exception | None = None
        self._clock = clock
        self._lock = asyncio.Lock()
        self._snapshot: list[Vacation] | None = None
        self._fetched_at: float | None = None

    async def list(self, force_refresh: bool = False) -> list[Vacation]:
        async with self._lock:
            if not force_refresh and self._is_fresh():
                return list(self._snapshot)
            return await self._refresh()

    async def get(self, vacation_id: str) -> Vacation | None:
        for vacation in await self.list():
            if vacation.id == vacation_id:
                return vacation
        return None

    async def create(self, draft: VacationDraft) -> Vacation:
        async with self._lock:
            vacation = await self.store.create(draft)
            await self._refresh()
            return vacation

    async def update(self, vacation_id: str, patch: dict[str, Any]) -> Vacation | None:
        async with self._lock:
            vacation = await self.store.update(vacation_id, patch)
            if vacation is None:
                logger.info("Nothing to update", extra={"vacation_id": vacation_id})
                return None
            await self._refresh()
            return vacation

    async def delete(self, vacation_id: str) -> bool:
        async with self._lock:
            deleted = await self.store.delete(vacation_id)
            if not deleted:
                logger.info("Nothing to delete", extra={"vacation_id": vacation_id})
                return False
            await self._refresh()
            return True

    def invalidate(self) -> None:
        self._fetched_at = None

    def _is_fresh(self) -> bool:
        if self._snapshot is None or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.ttl

    async def _refresh(self) -> list[Vacation]:
        started = self._clock()
        try:
            vacations = await self.store.find_all()
        except Exception as e:
            self.last_error = e
            self._fetched_at = None
            if self._snapshot is not None:
                logger.warning("Vacation fetch failed, serving last snapshot", exc_info=True)
                return list(self._snapshot)
            logger.error("Vacation fetch failed with no snapshot to fall back on", exc_info=True)
            return []

        self._snapshot, self._fetched_at = list(vacations), self._clock()
        self.last_error = None
        logger.debug(
            "Loaded %d vacations",
            len(vacations),
            extra={"latency_ms": round((self._fetched_at - started) * 1000, 1)},
        )
        return list(self._snapshot)
