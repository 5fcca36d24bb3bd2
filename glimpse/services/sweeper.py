"""Periodic cleanup of expired state.

Every check done here is also done lazily on read, so a stopped or slow
sweeper only delays storage reclamation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from .matching import LikeMatchingEngine
from .profile_store import ProfileStore
from .quota_policy import QuotaPolicy

LOGGER = logging.getLogger("uvicorn.error")


class ExpirySweeper:
    def __init__(
        self,
        profile_store: ProfileStore,
        matching: LikeMatchingEngine,
        quota: QuotaPolicy,
        *,
        interval_seconds: float = 60.0,
    ) -> None:
        self._profiles = profile_store
        self._matching = matching
        self._quota = quota
        self._interval = max(1.0, float(interval_seconds))
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> Dict[str, int]:
        stats = {
            "profiles_purged": await self._profiles.purge_expired(),
            "likes_expired": await self._matching.expire_stale_likes(),
            "registrations_expired": await self._quota.expire_lapsed_registrations(),
        }
        if any(stats.values()):
            LOGGER.info("Expiry sweep: %s", stats)
        return stats

    def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Expiry sweep failed; retrying next interval")
            await asyncio.sleep(self._interval)


__all__ = ["ExpirySweeper"]
