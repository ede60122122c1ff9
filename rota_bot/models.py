"""Core data models for the recruitment bot.

Documents are stored as plain JSON mappings so the files stay readable and
compatible with earlier deployments; these types are the typed views the
service hands to the Discord layer.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Document(str, Enum):
    """Names of the JSON documents mirrored to the remote repository."""

    REQUESTS = "pedidos"
    CONFIG = "config"
    ROLES = "cargos"
    SERVERS = "servidores"
    LEADERBOARD = "placar"


class RequestStatus(str, Enum):
    PENDING = "pendente"
    APPROVED = "aprovado"
    REJECTED = "reprovado"


class LeaderboardKind(str, Enum):
    WEEKLY = "semanal"
    MONTHLY = "mensal"

    @property
    def label(self) -> str:
        return "Semanal" if self is LeaderboardKind.WEEKLY else "Mensal"

    @property
    def reset_description(self) -> str:
        if self is LeaderboardKind.WEEKLY:
            return "toda segunda-feira às 00h"
        return "todo dia 1º do mês às 00h"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class JoinRequest:
    user_id: str
    name: str
    request_id: str
    timestamp: int
    status: RequestStatus = RequestStatus.PENDING
    reason: Optional[str] = None
    responsible: Optional[str] = None
    role_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "nome": self.name,
            "id": self.request_id,
            "timestamp": self.timestamp,
            "status": self.status.value,
        }
        if self.reason is not None:
            payload["motivo"] = self.reason
        if self.responsible is not None:
            payload["responsavel"] = self.responsible
        if self.role_id is not None:
            payload["cargo"] = self.role_id
        return payload

    @staticmethod
    def from_dict(user_id: str, data: Dict[str, Any]) -> "JoinRequest":
        return JoinRequest(
            user_id=str(user_id),
            name=str(data.get("nome", "")),
            request_id=str(data.get("id", "")),
            timestamp=int(data.get("timestamp", 0)),
            status=RequestStatus(data.get("status", RequestStatus.PENDING.value)),
            reason=data.get("motivo"),
            responsible=data.get("responsavel"),
            role_id=data.get("cargo"),
        )


@dataclass
class ChannelConfig:
    request_channel: Optional[int] = None
    approval_channel: Optional[int] = None
    results_channel: Optional[int] = None
    leaderboard_channel: Optional[int] = None

    @property
    def complete(self) -> bool:
        return all(
            value is not None
            for value in (self.request_channel, self.approval_channel, self.results_channel)
        )

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ChannelConfig":
        def _id(key: str) -> Optional[int]:
            value = data.get(key)
            return int(value) if value else None

        return ChannelConfig(
            request_channel=_id("pedirTagId"),
            approval_channel=_id("aprovarTagId"),
            results_channel=_id("resultadosId"),
            leaderboard_channel=_id("placarId"),
        )


@dataclass(frozen=True)
class GuildInfo:
    """Snapshot of a guild recorded in the authorization document."""

    id: str
    name: str
    owner_id: str
    owner_tag: str
    member_count: int
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "ownerId": self.owner_id,
            "ownerTag": self.owner_tag,
            "memberCount": self.member_count,
            "createdAt": self.created_at,
        }


@dataclass
class RankingEntry:
    user_id: str
    count: int
    last_recruit: Optional[Dict[str, Any]] = None


@dataclass
class LeaderboardResult:
    success: bool
    kind: Optional[LeaderboardKind] = None
    error: Optional[str] = None


@dataclass
class LeaderboardState:
    kind: LeaderboardKind
    channel_id: Optional[str]
    message_id: Optional[str]
    last_reset: int
    next_reset: int
    recruitments: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "configuracao": self.kind.value,
            "canalId": self.channel_id,
            "mensagemId": self.message_id,
            "recrutamentos": self.recruitments,
            "ultimoReset": self.last_reset,
            "proximoReset": self.next_reset,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "LeaderboardState":
        return LeaderboardState(
            kind=LeaderboardKind(data.get("configuracao", LeaderboardKind.WEEKLY.value)),
            channel_id=data.get("canalId"),
            message_id=data.get("mensagemId"),
            last_reset=int(data.get("ultimoReset", 0)),
            next_reset=int(data.get("proximoReset", 0)),
            recruitments=dict(data.get("recrutamentos", {})),
        )


__all__ = [
    "ChannelConfig",
    "Document",
    "GuildInfo",
    "JoinRequest",
    "LeaderboardKind",
    "LeaderboardResult",
    "LeaderboardState",
    "RankingEntry",
    "RequestStatus",
    "now_ms",
]
