"""Process-wide gate that keeps remote syncs from overlapping."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from typing import AsyncIterator, Deque

from .telemetry import get_telemetry

logger = logging.getLogger(__name__)


class SyncGate:
    """Bounded-wait mutual exclusion flag for the sync engine.

    Waiters poll at a fixed interval and are granted in arrival order. A
    waiter that is still blocked after ``max_attempts`` polls force-clears
    the flag and proceeds, so a wedged holder can never block syncing for
    the rest of the process lifetime.
    """

    def __init__(self, poll_interval: float = 2.0, max_attempts: int = 15) -> None:
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._held = False
        self._waiters: Deque[object] = deque()
        self.forced_releases = 0

    @property
    def held(self) -> bool:
        return self._held

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    def _grant(self) -> bool:
        self._held = True
        return True

    async def acquire(self) -> bool:
        if not self._held and not self._waiters:
            return self._grant()

        ticket = object()
        self._waiters.append(ticket)
        logger.info("Sync already in progress; waiting for the gate")
        try:
            for attempt in range(1, self._max_attempts + 1):
                if not self._held and self._waiters[0] is ticket:
                    return self._grant()
                logger.debug(
                    "Waiting for sync gate (%d/%d)", attempt, self._max_attempts
                )
                await asyncio.sleep(self._poll_interval)
            if not self._held and self._waiters[0] is ticket:
                return self._grant()
            self.forced_releases += 1
            logger.warning(
                "Timed out waiting for sync gate after %d attempts; forcing release",
                self._max_attempts,
                extra={"event": "gate.force_release"},
            )
            get_telemetry().track_system_event(
                "sync_gate_forced",
                source="sync_gate",
                reason=f"{self._max_attempts} attempts x {self._poll_interval}s",
            )
            self._held = False
            return self._grant()
        finally:
            self._waiters.remove(ticket)

    def release(self) -> None:
        self._held = False

    @asynccontextmanager
    async def guarded(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()


__all__ = ["SyncGate"]
