"""High-level recruitment service orchestrating documents and persistence."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from .config import Settings
from .leaderboard import LeaderboardManager
from .models import (
    ChannelConfig,
    Document,
    GuildInfo,
    JoinRequest,
    LeaderboardKind,
    RequestStatus,
    now_ms,
)
from .nicknames import nickname_for, top_formatted_role
from .persistence import FastPathWriter

logger = logging.getLogger(__name__)


class RecruitmentService:
    """Facade used by the Discord adapter.

    Every mutation updates the in-memory document and hands the whole
    document to the fast-path writer, which saves it locally and mirrors it
    to the remote repository in the background.
    """

    def __init__(self, settings: Settings, writer: Optional[FastPathWriter] = None) -> None:
        self.settings = settings
        self.writer = writer or FastPathWriter.from_settings(settings)
        self._roles: Dict[str, Dict[str, str]] = {}
        self._requests: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._config: Dict[str, Dict[str, Any]] = {}
        self._servers: Dict[str, Dict[str, Any]] = {}
        self.load()
        self.leaderboard = LeaderboardManager(
            self.writer,
            default_kind=LeaderboardKind(settings.leaderboard_default_kind),
            ranking_size=settings.leaderboard_ranking_size,
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------
    def load(self) -> None:
        """(Re)load every document from local storage."""

        logger.info("Loading documents from %s", self.writer.store.root)
        self._roles = self.writer.load_document(Document.ROLES.value)
        self._requests = self.writer.load_document(Document.REQUESTS.value)
        self._config = self.writer.load_document(Document.CONFIG.value)
        self._servers = self.writer.load_document(Document.SERVERS.value)
        self._servers.setdefault("autorizados", {})
        self._servers.setdefault("pendentes", {})

    def _save(self, document: Document, message: str) -> bool:
        payload = {
            Document.ROLES: self._roles,
            Document.REQUESTS: self._requests,
            Document.CONFIG: self._config,
            Document.SERVERS: self._servers,
        }[document]
        return self.writer.persist(document.value, payload, message)

    def _guild_roles(self, guild_id: str) -> Dict[str, str]:
        return self._roles.setdefault(str(guild_id), {})

    def _guild_requests(self, guild_id: str) -> Dict[str, Dict[str, Any]]:
        return self._requests.setdefault(str(guild_id), {})

    def _guild_config(self, guild_id: str) -> Dict[str, Any]:
        return self._config.setdefault(str(guild_id), {})

    def ensure_guild(self, guild_id: str, guild_name: str, *, reason: str) -> None:
        """Create per-guild entries in every document and persist them."""

        self._guild_config(guild_id)
        self._guild_roles(guild_id)
        self._guild_requests(guild_id)
        self._save(Document.CONFIG, f"{reason}: {guild_name}")
        self._save(Document.ROLES, f"Inicialização de cargos para servidor: {guild_name}")
        self._save(Document.REQUESTS, f"Inicialização de pedidos para servidor: {guild_name}")

    # ------------------------------------------------------------------
    # Server authorization
    # ------------------------------------------------------------------
    def is_bot_admin(self, user_id: Any) -> bool:
        return str(user_id) == self.settings.owner_id

    def is_authorized(self, guild_id: Any) -> bool:
        return str(guild_id) in self._servers["autorizados"]

    def is_pending(self, guild_id: Any) -> bool:
        return str(guild_id) in self._servers["pendentes"]

    def authorized_servers(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._servers["autorizados"])

    def pending_servers(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._servers["pendentes"])

    def add_pending(self, info: GuildInfo) -> None:
        self._servers["pendentes"][info.id] = {**info.to_dict(), "requestedAt": now_ms()}
        self._save(Document.SERVERS, f"Nova solicitação de servidor: {info.name}")

    def authorize(self, info: GuildInfo) -> None:
        if self.is_authorized(info.id):
            raise ValueError(f"O servidor **{info.name}** já está autorizado.")
        self._servers["autorizados"][info.id] = {**info.to_dict(), "authorizedAt": now_ms()}
        self._servers["pendentes"].pop(info.id, None)
        self._save(Document.SERVERS, f"Servidor autorizado: {info.name}")
        self.ensure_guild(info.id, info.name, reason="Servidor autorizado")

    def deny(self, guild_id: Any) -> Optional[Dict[str, Any]]:
        removed = self._servers["pendentes"].pop(str(guild_id), None)
        self._save(Document.SERVERS, f"Servidor negado: {guild_id}")
        return removed

    # ------------------------------------------------------------------
    # Channel configuration
    # ------------------------------------------------------------------
    def configure_channels(
        self,
        guild_id: Any,
        guild_name: str,
        *,
        request_channel: int,
        approval_channel: int,
        results_channel: int,
        leaderboard_channel: Optional[int] = None,
        reason: str = "Configuração atualizada para servidor",
    ) -> ChannelConfig:
        config = self._guild_config(guild_id)
        config["pedirTagId"] = str(request_channel)
        config["aprovarTagId"] = str(approval_channel)
        config["resultadosId"] = str(results_channel)
        if leaderboard_channel is not None:
            config["placarId"] = str(leaderboard_channel)
        self._save(Document.CONFIG, f"{reason} {guild_name}")
        return ChannelConfig.from_dict(config)

    def channel_config(self, guild_id: Any) -> ChannelConfig:
        return ChannelConfig.from_dict(self._config.get(str(guild_id), {}))

    def is_configured(self, guild_id: Any) -> bool:
        return self.channel_config(guild_id).complete

    # ------------------------------------------------------------------
    # Role formats
    # ------------------------------------------------------------------
    def role_formats(self, guild_id: Any) -> Dict[str, str]:
        return dict(self._roles.get(str(guild_id), {}))

    def add_role_format(self, guild_id: Any, role_id: Any, role_name: str, fmt: str) -> None:
        roles = self._guild_roles(guild_id)
        if str(role_id) in roles:
            raise ValueError(
                f"O cargo **{role_name}** já possui configuração (`{roles[str(role_id)]}`). "
                "Use `/editar-cargo` para alterar."
            )
        roles[str(role_id)] = fmt
        self._save(Document.ROLES, f"Novo cargo adicionado: {role_name} - {fmt}")

    def edit_role_format(self, guild_id: Any, role_id: Any, role_name: str, fmt: str) -> str:
        roles = self._guild_roles(guild_id)
        previous = roles.get(str(role_id))
        if previous is None:
            raise ValueError(
                f"O cargo **{role_name}** não possui configuração. Use `/adicionar-cargo` primeiro."
            )
        roles[str(role_id)] = fmt
        self._save(Document.ROLES, f"Cargo editado: {role_name} - {previous} → {fmt}")
        return previous

    def remove_role_format(self, guild_id: Any, role_id: Any, role_name: str) -> str:
        roles = self._guild_roles(guild_id)
        removed = roles.pop(str(role_id), None)
        if removed is None:
            raise ValueError(f"O cargo **{role_name}** não possui configuração.")
        self._save(Document.ROLES, f"Cargo removido: {role_name} - {removed}")
        return removed

    # ------------------------------------------------------------------
    # Join requests
    # ------------------------------------------------------------------
    def get_request(self, guild_id: Any, user_id: Any) -> Optional[JoinRequest]:
        data = self._requests.get(str(guild_id), {}).get(str(user_id))
        if data is None:
            return None
        return JoinRequest.from_dict(str(user_id), data)

    def pending_count(self, guild_id: Any) -> int:
        return sum(
            1
            for data in self._requests.get(str(guild_id), {}).values()
            if data.get("status") == RequestStatus.PENDING.value
        )

    def submit_request(self, guild_id: Any, user_id: Any, name: str, request_id: str) -> JoinRequest:
        name = (name or "").strip()
        request_id = (request_id or "").strip()
        if len(name) < 2:
            raise ValueError("O nome deve ter pelo menos 2 caracteres.")
        if not request_id:
            raise ValueError("O ID não pode estar vazio.")
        existing = self.get_request(guild_id, user_id)
        if existing is not None and existing.status is RequestStatus.PENDING:
            raise ValueError("Você já possui uma solicitação pendente. Aguarde a análise.")

        request = JoinRequest(
            user_id=str(user_id), name=name, request_id=request_id, timestamp=now_ms()
        )
        self._guild_requests(guild_id)[str(user_id)] = request.to_dict()
        self._save(Document.REQUESTS, f"Novo pedido: {name} - ID: {request_id}")
        return request

    def _require_request(self, guild_id: Any, user_id: Any) -> Dict[str, Any]:
        data = self._requests.get(str(guild_id), {}).get(str(user_id))
        if data is None:
            raise ValueError("Não foi encontrada uma solicitação para este usuário.")
        return data

    def approve_request(
        self, guild_id: Any, user_id: Any, role_id: Any, responsible_id: Any
    ) -> JoinRequest:
        data = self._require_request(guild_id, user_id)
        data["status"] = RequestStatus.APPROVED.value
        data["cargo"] = str(role_id)
        data["responsavel"] = str(responsible_id)
        self._save(Document.REQUESTS, f"Pedido aprovado: {data.get('nome')} - ID: {data.get('id')}")
        return JoinRequest.from_dict(str(user_id), data)

    def reject_request(
        self, guild_id: Any, user_id: Any, reason: str, responsible_id: Any
    ) -> JoinRequest:
        data = self._require_request(guild_id, user_id)
        data["status"] = RequestStatus.REJECTED.value
        data["motivo"] = reason
        data["responsavel"] = str(responsible_id)
        self._save(Document.REQUESTS, f"Pedido reprovado: {data.get('nome')} - ID: {data.get('id')}")
        return JoinRequest.from_dict(str(user_id), data)

    # ------------------------------------------------------------------
    # Nicknames
    # ------------------------------------------------------------------
    def nickname_for_member(
        self, guild_id: Any, user_id: Any, username: str, roles: Iterable[Any]
    ) -> Optional[str]:
        formats = self._roles.get(str(guild_id), {})
        role_id = top_formatted_role(roles, formats)
        role_format = formats.get(role_id) if role_id else None
        request = self._requests.get(str(guild_id), {}).get(str(user_id))
        return nickname_for(request, username, role_format, limit=self.settings.nickname_limit)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    def status_summary(self, guild_id: Any) -> Dict[str, Any]:
        config = self.channel_config(guild_id)
        return {
            "channels": config,
            "configured": config.complete,
            "role_count": len(self._roles.get(str(guild_id), {})),
            "pending_requests": self.pending_count(guild_id),
        }

    def list_guild_ids(self) -> List[str]:
        return list(self._servers["autorizados"])


__all__ = ["RecruitmentService"]
