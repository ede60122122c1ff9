"""Recruitment leaderboard with weekly or monthly resets."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .models import (
    Document,
    LeaderboardKind,
    LeaderboardResult,
    LeaderboardState,
    RankingEntry,
)
from .persistence import FastPathWriter

logger = logging.getLogger(__name__)


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def next_reset(kind: LeaderboardKind, now: datetime) -> int:
    """Epoch milliseconds of the next reset boundary after ``now``.

    Weekly boards reset on Monday at midnight, monthly boards on the first
    day of the month at midnight, both in local time.
    """

    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if kind is LeaderboardKind.WEEKLY:
        days_ahead = (7 - now.weekday()) % 7 or 7
        return _to_ms(midnight + timedelta(days=days_ahead))
    if now.month == 12:
        first = midnight.replace(year=now.year + 1, month=1, day=1)
    else:
        first = midnight.replace(month=now.month + 1, day=1)
    return _to_ms(first)


class LeaderboardManager:
    """Owns the ``placar`` document and its reset schedule."""

    def __init__(
        self,
        writer: FastPathWriter,
        *,
        default_kind: LeaderboardKind = LeaderboardKind.WEEKLY,
        ranking_size: int = 10,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._writer = writer
        self._default_kind = default_kind
        self._ranking_size = ranking_size
        self._clock = clock
        self._data: Dict[str, dict] = writer.load_document(Document.LEADERBOARD.value)

    def reload(self) -> None:
        self._data = self._writer.load_document(Document.LEADERBOARD.value)

    @property
    def guild_ids(self) -> List[str]:
        return list(self._data)

    def _now_ms(self) -> int:
        return _to_ms(self._clock())

    async def _save(self, message: str) -> bool:
        return await self._writer.persist_and_sync(
            Document.LEADERBOARD.value, self._data, message
        )

    def ensure_guild(self, guild_id: str) -> LeaderboardState:
        guild_id = str(guild_id)
        if guild_id not in self._data:
            state = LeaderboardState(
                kind=self._default_kind,
                channel_id=None,
                message_id=None,
                last_reset=self._now_ms(),
                next_reset=next_reset(self._default_kind, self._clock()),
            )
            self._data[guild_id] = state.to_dict()
            self._writer.persist(
                Document.LEADERBOARD.value,
                self._data,
                f"Inicialização do placar para servidor {guild_id}",
            )
        return LeaderboardState.from_dict(self._data[guild_id])

    def state(self, guild_id: str) -> LeaderboardState:
        return self.ensure_guild(guild_id)

    def _store(self, guild_id: str, state: LeaderboardState) -> None:
        self._data[str(guild_id)] = state.to_dict()

    async def configure(self, guild_id: str, kind: str) -> LeaderboardResult:
        try:
            board_kind = LeaderboardKind(kind)
        except ValueError:
            return LeaderboardResult(
                success=False, error='Tipo inválido. Use "semanal" ou "mensal".'
            )
        state = self.ensure_guild(guild_id)
        state.kind = board_kind
        state.next_reset = next_reset(board_kind, self._clock())
        self._store(guild_id, state)
        await self._save(
            f"Configuração do placar alterada para {board_kind.value} no servidor {guild_id}"
        )
        return LeaderboardResult(success=True, kind=board_kind)

    async def reset(self, guild_id: str) -> bool:
        state = self.ensure_guild(guild_id)
        logger.info("Resetting leaderboard for guild %s (%s)", guild_id, state.kind.value)
        state.recruitments = {}
        state.last_reset = self._now_ms()
        state.next_reset = next_reset(state.kind, self._clock())
        self._store(guild_id, state)
        await self._save(f"Placar resetado ({state.kind.value})")
        return True

    async def add_recruitment(self, guild_id: str, recruiter_id: str, recruit_name: str) -> int:
        """Credit ``recruiter_id`` with one recruitment; return the new count."""

        state = self.ensure_guild(guild_id)
        if self._now_ms() >= state.next_reset:
            await self.reset(guild_id)
            state = self.ensure_guild(guild_id)

        entry = state.recruitments.setdefault(
            str(recruiter_id), {"count": 0, "ultimoRecrutamento": None}
        )
        entry["count"] += 1
        entry["ultimoRecrutamento"] = {"nome": recruit_name, "timestamp": self._now_ms()}
        self._store(guild_id, state)
        await self._save(f"Recrutamento adicionado: {recruit_name} por {recruiter_id}")
        return entry["count"]

    def ranking(self, guild_id: str, limit: Optional[int] = None) -> List[RankingEntry]:
        state = self.ensure_guild(guild_id)
        ordered = sorted(
            state.recruitments.items(), key=lambda item: item[1].get("count", 0), reverse=True
        )
        return [
            RankingEntry(user_id=user_id, count=data.get("count", 0), last_recruit=data.get("ultimoRecrutamento"))
            for user_id, data in ordered[: limit or self._ranking_size]
        ]

    def due_resets(self) -> List[str]:
        now = self._now_ms()
        return [
            guild_id
            for guild_id, data in self._data.items()
            if now >= int(data.get("proximoReset", 0))
        ]

    async def run_due_resets(self) -> List[str]:
        due = self.due_resets()
        for guild_id in due:
            logger.info("Automatic leaderboard reset for guild %s", guild_id)
            await self.reset(guild_id)
        return due

    async def set_channel(self, guild_id: str, channel_id: Optional[str]) -> None:
        state = self.ensure_guild(guild_id)
        state.channel_id = str(channel_id) if channel_id else None
        self._store(guild_id, state)
        await self._save(f"Canal do placar configurado: {channel_id}")

    async def set_message(self, guild_id: str, message_id: Optional[str]) -> None:
        state = self.ensure_guild(guild_id)
        state.message_id = str(message_id) if message_id else None
        self._store(guild_id, state)
        await self._save(f"Nova mensagem do placar criada: {message_id}")


__all__ = ["LeaderboardManager", "next_reset"]
