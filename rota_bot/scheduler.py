"""Periodic leaderboard maintenance on top of APScheduler."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .leaderboard import LeaderboardManager
from .telemetry import get_telemetry, track_duration

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[str], Awaitable[None]]


class LeaderboardScheduler:
    """Run automatic resets and refresh the posted leaderboard messages.

    ``refresh`` is awaited once per guild with a leaderboard after the reset
    check; the Discord adapter uses it to edit or repost the ranking embed.
    """

    def __init__(
        self,
        leaderboard: LeaderboardManager,
        refresh: Optional[RefreshCallback] = None,
        *,
        interval_minutes: int = 10,
        initial_delay_seconds: float = 5,
    ) -> None:
        self.leaderboard = leaderboard
        self.refresh = refresh
        self.interval_minutes = interval_minutes
        self.initial_delay_seconds = initial_delay_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None

    async def tick(self) -> None:
        with track_duration("leaderboard_tick"):
            await self._tick()

    async def _tick(self) -> None:
        telemetry = get_telemetry()
        try:
            reset = await self.leaderboard.run_due_resets()
        except Exception:  # pragma: no cover - logged and retried next tick
            logger.exception("Leaderboard reset check failed")
            telemetry.track_error("LeaderboardResetError", command="scheduler.tick")
            return
        if reset:
            telemetry.track_system_event(
                "leaderboard_reset", source="scheduler", reason=",".join(reset)
            )
        if self.refresh is None:
            return
        for guild_id in self.leaderboard.guild_ids:
            try:
                await self.refresh(guild_id)
            except Exception:
                logger.exception("Failed to refresh leaderboard for guild %s", guild_id)
                telemetry.track_error(
                    "LeaderboardRefreshError",
                    command="scheduler.refresh",
                    error_details=f"guild={guild_id}",
                )

    def start(self) -> None:
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.tick,
            "interval",
            minutes=self.interval_minutes,
            id="leaderboard_refresh",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.tick,
            "date",
            run_date=datetime.now() + timedelta(seconds=self.initial_delay_seconds),
            id="leaderboard_initial",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "Leaderboard scheduler started (every %s minutes)", self.interval_minutes
        )

    def shutdown(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None


__all__ = ["LeaderboardScheduler"]
