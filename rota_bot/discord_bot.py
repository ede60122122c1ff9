"""Discord bot entry point for the recruitment assistant."""

import asyncio
import atexit
import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import discord
from discord import app_commands
from discord.ext import commands

from .config import Settings, get_settings
from .models import GuildInfo, LeaderboardKind, LeaderboardState, RankingEntry
from .nicknames import roles_changed
from .scheduler import LeaderboardScheduler
from .service import RecruitmentService
from .telemetry import get_telemetry
from .telemetry_decorator import track_command

logger = logging.getLogger(__name__)

COLOR_PRIMARY = 0x5865F2
COLOR_SUCCESS = 0x57F287
COLOR_ERROR = 0xED4245
COLOR_WARNING = 0xFEE75C
COLOR_INFO = 0x5DADE2

REQUEST_BUTTON_ID = "abrir_modal_tag"
REQUEST_MODAL_ID = "modal_pedir_tag"

_BUTTON_ACTIONS = ("authorize_server", "deny_server", "aprovar", "reprovar")
_MEDALS = ("🥇", "🥈", "🥉")


def parse_button_id(custom_id: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split a persistent button id into ``(action, target_id)``.

    Returns ``None`` for ids this bot does not route (including the request
    panel button, which carries no target).
    """

    if not custom_id:
        return None
    for action in _BUTTON_ACTIONS:
        prefix = f"{action}_"
        if custom_id.startswith(prefix):
            target = custom_id[len(prefix):]
            if target.isdigit():
                return action, target
    return None


def guild_info(guild: discord.Guild, owner: Optional[discord.abc.User]) -> GuildInfo:
    return GuildInfo(
        id=str(guild.id),
        name=guild.name,
        owner_id=str(guild.owner_id),
        owner_tag=str(owner) if owner is not None else "desconhecido",
        member_count=guild.member_count or 0,
        created_at=guild.created_at.isoformat(),
    )


def _error_embed(title: str, description: str) -> discord.Embed:
    return discord.Embed(title=f"❌ {title}", description=description, color=COLOR_ERROR)


def _unauthorized_embed() -> discord.Embed:
    return discord.Embed(
        title="⚠️ Servidor Não Autorizado",
        description=(
            "Este servidor ainda não foi autorizado a usar o bot.\n\n"
            "O dono do bot foi notificado e analisará a solicitação em breve."
        ),
        color=COLOR_WARNING,
    )


def build_ranking_embed(
    state: LeaderboardState,
    entries: Iterable[RankingEntry],
    *,
    display_name: Callable[[str], Optional[str]] = lambda user_id: None,
) -> discord.Embed:
    """Render the leaderboard ranking as an embed."""

    entries = list(entries)
    next_reset = datetime.fromtimestamp(state.next_reset / 1000)
    embed = discord.Embed(
        title=f"📊 Placar de Recrutamentos — {state.kind.label}",
        color=COLOR_PRIMARY,
    )
    embed.set_footer(
        text=(
            "📌 Atualizado automaticamente • Próximo reset: "
            f"{next_reset.strftime('%d/%m/%Y')}"
        )
    )
    if not entries:
        embed.description = (
            "🤔 Nenhum recrutamento registrado ainda.\n\nSeja o primeiro a recrutar alguém!"
        )
        return embed

    lines = []
    for position, entry in enumerate(entries, start=1):
        medal = _MEDALS[position - 1] if position <= len(_MEDALS) else "🏅"
        name = display_name(entry.user_id)
        who = f"<@{entry.user_id}>" if name else f"Usuário {entry.user_id}"
        plural = "recrutamento" if entry.count == 1 else "recrutamentos"
        lines.append(f"{medal} **{position}º Lugar** — {who} → **{entry.count}** {plural}")
    embed.description = "\n".join(lines)

    leader = entries[0]
    if leader.last_recruit:
        timestamp = int(leader.last_recruit.get("timestamp", 0)) // 1000
        embed.add_field(
            name="🎯 Último Recrutamento do Líder",
            value=f"**{leader.last_recruit.get('nome')}** • <t:{timestamp}:R>",
            inline=False,
        )
    return embed


def _request_panel() -> Tuple[discord.Embed, discord.ui.View]:
    embed = discord.Embed(
        title="🏷️ Solicitar TAG",
        description=(
            "Clique no botão abaixo para solicitar sua TAG.\n\n"
            "Informe seu nome e seu ID; a equipe analisará o pedido."
        ),
        color=COLOR_PRIMARY,
    )
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            style=discord.ButtonStyle.primary,
            label="Pedir TAG",
            emoji="📩",
            custom_id=REQUEST_BUTTON_ID,
        )
    )
    return embed, view


def _decision_view(prefix_yes: str, prefix_no: str, target: str, labels: Tuple[str, str]) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(
        discord.ui.Button(
            style=discord.ButtonStyle.success,
            label=labels[0],
            emoji="✅",
            custom_id=f"{prefix_yes}_{target}",
        )
    )
    view.add_item(
        discord.ui.Button(
            style=discord.ButtonStyle.danger,
            label=labels[1],
            emoji="❌",
            custom_id=f"{prefix_no}_{target}",
        )
    )
    return view


class RequestTagModal(discord.ui.Modal):
    """Collects the in-game name and id of a member asking for a tag."""

    name = discord.ui.TextInput(label="📝 Nome", min_length=2, max_length=32)
    game_id = discord.ui.TextInput(label="🆔 ID", max_length=20)

    def __init__(self, handler: Callable[[discord.Interaction, str, str], Any]) -> None:
        super().__init__(title="🏷️ Solicitar TAG", custom_id=REQUEST_MODAL_ID)
        self._handler = handler

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self._handler(interaction, str(self.name.value), str(self.game_id.value))


class RejectReasonModal(discord.ui.Modal):
    """Asks the reviewer why a request is being rejected."""

    reason = discord.ui.TextInput(
        label="📝 Motivo da Reprovação",
        style=discord.TextStyle.paragraph,
        max_length=500,
    )

    def __init__(
        self,
        user_id: str,
        responsible_id: str,
        handler: Callable[[discord.Interaction, str, str, str], Any],
    ) -> None:
        super().__init__(
            title="❌ Motivo da Reprovação",
            custom_id=f"reprovar_modal_{user_id}_{responsible_id}",
        )
        self._user_id = user_id
        self._responsible_id = responsible_id
        self._handler = handler

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await self._handler(
            interaction, self._user_id, self._responsible_id, str(self.reason.value)
        )


def _log_loop_exception(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    exc = context.get("exception")
    logger.error(
        "Unhandled error in event loop: %s",
        context.get("message"),
        exc_info=exc,
        extra={"event": "process.unhandled"},
    )
    get_telemetry().track_error(
        type(exc).__name__ if exc else "LoopError",
        command="event_loop",
        error_details=str(context.get("message")),
    )


def build_bot(
    settings: Optional[Settings] = None,
    intents: Optional[discord.Intents] = None,
    *,
    service: Optional[RecruitmentService] = None,
) -> commands.Bot:
    settings = settings or get_settings()
    intents = intents or discord.Intents.default()
    intents.members = True
    app_id_raw = os.environ.get("DISCORD_APP_ID")
    application_id: Optional[int] = None
    if app_id_raw:
        try:
            application_id = int(app_id_raw)
        except ValueError:
            logger.warning("Invalid DISCORD_APP_ID: %s", app_id_raw)
    bot = commands.Bot(command_prefix="/", intents=intents, application_id=application_id)
    service = service or RecruitmentService(settings)
    setattr(bot, "recruitment_service", service)
    leaderboard = service.leaderboard
    scheduler: Optional[LeaderboardScheduler] = None

    def _shutdown_scheduler() -> None:  # pragma: no cover - process shutdown hook
        if scheduler is not None:
            scheduler.shutdown()

    atexit.register(_shutdown_scheduler)

    async def _setup_hook() -> None:
        asyncio.get_running_loop().set_exception_handler(_log_loop_exception)

    bot.setup_hook = _setup_hook  # type: ignore[method-assign]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _reply(interaction: discord.Interaction, embed: discord.Embed, *, ephemeral: bool = True) -> None:
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=ephemeral)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=ephemeral)

    async def _require_authorized(interaction: discord.Interaction) -> bool:
        if interaction.guild_id is not None and service.is_authorized(interaction.guild_id):
            return True
        await _reply(interaction, _unauthorized_embed())
        return False

    async def _require_admin(interaction: discord.Interaction) -> bool:
        permissions = getattr(interaction.user, "guild_permissions", None)
        if permissions is not None and permissions.administrator:
            return True
        await _reply(
            interaction,
            _error_embed("Acesso Negado", "Este comando requer permissão de administrador."),
        )
        return False

    async def _require_owner(interaction: discord.Interaction) -> bool:
        if service.is_bot_admin(interaction.user.id):
            return True
        await _reply(
            interaction,
            _error_embed("Acesso Negado", "Você não possui permissão para autorizar servidores."),
        )
        return False

    async def _fetch_member(guild: discord.Guild, user_id: str) -> Optional[discord.Member]:
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except discord.HTTPException:
            return None

    async def _send_to(guild: discord.Guild, channel_id: Optional[int], **kwargs: Any) -> Optional[discord.Message]:
        if channel_id is None:
            logger.debug("Skipping post in %s; channel not configured", guild.name)
            return None
        channel = guild.get_channel(channel_id)
        if channel is None:
            logger.warning("Failed to locate channel %s in %s", channel_id, guild.name)
            return None
        try:
            return await channel.send(**kwargs)
        except discord.HTTPException:
            logger.exception("Failed to send message to channel %s", channel_id)
            return None

    async def _apply_nickname(member: discord.Member) -> None:
        nick = service.nickname_for_member(
            member.guild.id, member.id, member.name, member.roles
        )
        if nick is None or nick == member.nick:
            return
        try:
            await member.edit(nick=nick)
            logger.info("Nickname for %s set to %s", member, nick)
        except discord.Forbidden:
            logger.warning(
                "Missing permission to rename %s",
                member,
                extra={"event": "nickname.forbidden"},
            )
        except discord.HTTPException:
            logger.exception("Failed to update nickname for %s", member)

    async def _refresh_leaderboard(guild_id: str) -> None:
        guild = bot.get_guild(int(guild_id))
        if guild is None:
            return
        state = leaderboard.state(guild_id)
        channel_id = state.channel_id or service.channel_config(guild_id).leaderboard_channel
        if not channel_id:
            return
        channel = guild.get_channel(int(channel_id))
        if channel is None:
            logger.warning("Leaderboard channel %s missing in %s", channel_id, guild.name)
            return

        def _display(user_id: str) -> Optional[str]:
            member = guild.get_member(int(user_id))
            return member.display_name if member else None

        embed = build_ranking_embed(state, leaderboard.ranking(guild_id), display_name=_display)
        if state.message_id:
            try:
                message = await channel.fetch_message(int(state.message_id))
                await message.edit(embed=embed)
                return
            except discord.NotFound:
                logger.info("Leaderboard message vanished in %s; posting a new one", guild.name)
        message = await channel.send(embed=embed)
        await leaderboard.set_message(guild_id, str(message.id))

    async def _send_authorization_request(guild: discord.Guild) -> None:
        owner = guild.owner
        if owner is None:
            try:
                owner = await bot.fetch_user(guild.owner_id)
            except discord.HTTPException:
                owner = None
        info = guild_info(guild, owner)
        service.add_pending(info)
        embed = discord.Embed(
            title="🔐 Nova Solicitação de Autorização",
            description="Um novo servidor está solicitando autorização para usar o bot.",
            color=COLOR_WARNING,
        )
        embed.add_field(name="🏠 Nome do Servidor", value=info.name, inline=True)
        embed.add_field(name="🆔 ID do Servidor", value=info.id, inline=True)
        embed.add_field(name="👑 Dono do Servidor", value=f"{info.owner_tag} ({info.owner_id})", inline=False)
        embed.add_field(name="👥 Membros", value=str(info.member_count), inline=True)
        view = _decision_view(
            "authorize_server", "deny_server", info.id, ("Aprovar Servidor", "Negar Servidor")
        )
        try:
            bot_owner = await bot.fetch_user(int(settings.owner_id))
            await bot_owner.send(embed=embed, view=view)
            logger.info("Authorization request sent for %s (%s)", guild.name, guild.id)
        except discord.HTTPException:
            logger.exception("Failed to send authorization request for %s", guild.name)

    # ------------------------------------------------------------------
    # Component flows
    # ------------------------------------------------------------------
    async def _handle_server_decision(interaction: discord.Interaction, action: str, guild_id: str) -> None:
        if not await _require_owner(interaction):
            return
        guild = bot.get_guild(int(guild_id))
        if guild is None:
            await _reply(
                interaction,
                _error_embed("Servidor não Encontrado", "O servidor não foi encontrado ou o bot foi removido dele."),
            )
            return
        if action == "deny_server":
            service.deny(guild_id)
            embed = discord.Embed(
                title="❌ Servidor Negado",
                description=f"A solicitação do servidor **{guild.name}** foi negada.",
                color=COLOR_ERROR,
            )
            await interaction.response.send_message(embed=embed)
            logger.info("Server %s denied by %s", guild.id, interaction.user)
            return
        try:
            service.authorize(guild_info(guild, guild.owner))
        except ValueError as exc:
            await _reply(interaction, _error_embed("Servidor já Autorizado", str(exc)))
            return
        leaderboard.ensure_guild(guild_id)
        embed = discord.Embed(
            title="✅ Servidor Autorizado",
            description=f"O servidor **{guild.name}** foi autorizado com sucesso!",
            color=COLOR_SUCCESS,
        )
        await interaction.response.send_message(embed=embed)
        logger.info("Server %s authorized by %s", guild.id, interaction.user)

    async def _submit_request(interaction: discord.Interaction, name: str, request_id: str) -> None:
        if not await _require_authorized(interaction):
            return
        guild = interaction.guild
        try:
            request = service.submit_request(guild.id, interaction.user.id, name, request_id)
        except ValueError as exc:
            await _reply(interaction, _error_embed("Solicitação Inválida", str(exc)))
            return
        await interaction.response.send_message(
            f"✅ **Solicitação Enviada com Sucesso!**\n\n📝 **Nome:** {request.name}\n"
            f"🆔 **ID:** {request.request_id}\n\nAguarde a análise da equipe.",
            ephemeral=True,
        )
        embed = discord.Embed(
            title="📥 Nova Solicitação de TAG",
            description="Uma nova solicitação de tag foi enviada para análise.",
            color=COLOR_INFO,
        )
        embed.add_field(name="👤 Usuário", value=f"{interaction.user.mention} ({interaction.user})", inline=False)
        embed.add_field(name="📝 Nome Informado", value=f"`{request.name}`", inline=True)
        embed.add_field(name="🆔 ID Informado", value=f"`{request.request_id}`", inline=True)
        embed.set_footer(text=f"ID do Usuário: {interaction.user.id}")
        view = _decision_view("aprovar", "reprovar", str(interaction.user.id), ("Aprovar", "Reprovar"))
        await _send_to(guild, service.channel_config(guild.id).approval_channel, embed=embed, view=view)
        if isinstance(interaction.user, discord.Member):
            await _apply_nickname(interaction.user)

    async def _approve_with_role(
        interaction: discord.Interaction, user_id: str, responsible_id: str, role_id: str
    ) -> None:
        guild = interaction.guild
        member = await _fetch_member(guild, user_id)
        role = guild.get_role(int(role_id))
        if member is None or role is None:
            await _reply(interaction, _error_embed("Erro", "Erro ao processar aprovação."))
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            await member.add_roles(role, reason=f"Aprovado por {interaction.user}")
        except discord.HTTPException:
            logger.exception("Failed to grant role %s to %s", role, member)
            await _reply(interaction, _error_embed("Erro", "Não foi possível conceder o cargo."))
            return
        request = service.approve_request(guild.id, user_id, role_id, responsible_id)
        await _apply_nickname(member)
        recruit_name = request.name or member.display_name
        count = await leaderboard.add_recruitment(str(guild.id), responsible_id, recruit_name)

        embed = discord.Embed(title="✅ Candidato Aprovado", color=COLOR_SUCCESS)
        embed.add_field(name="👤 Novo Membro", value=f"{member.mention} ({member})", inline=False)
        embed.add_field(name="🏷️ Cargo Concedido", value=role.mention, inline=True)
        embed.add_field(name="👮‍♂️ Responsável", value=f"<@{responsible_id}>", inline=True)
        embed.add_field(
            name="📝 Formato Aplicado",
            value=f"`{service.role_formats(guild.id).get(role_id, '-')}`",
            inline=False,
        )
        embed.add_field(name="🏆 Recrutamentos do Responsável", value=str(count), inline=True)
        await _send_to(guild, service.channel_config(guild.id).results_channel, embed=embed)
        try:
            await member.send(
                embed=discord.Embed(
                    title="✅ Solicitação de TAG - Aprovada",
                    description=f"Sua solicitação no servidor **{guild.name}** foi aprovada!",
                    color=COLOR_SUCCESS,
                )
            )
        except discord.HTTPException:
            logger.info("Could not DM %s about approval", member)
        await interaction.followup.send(
            f"✅ **{member.display_name}** aprovado com o cargo {role.name}.", ephemeral=True
        )

    async def _reject_with_reason(
        interaction: discord.Interaction, user_id: str, responsible_id: str, reason: str
    ) -> None:
        if not await _require_authorized(interaction):
            return
        guild = interaction.guild
        member = await _fetch_member(guild, user_id)
        if member is None:
            await _reply(interaction, _error_embed("Erro", "Erro ao processar reprovação."))
            return
        try:
            service.reject_request(guild.id, user_id, reason, responsible_id)
        except ValueError as exc:
            await _reply(interaction, _error_embed("Solicitação não Encontrada", str(exc)))
            return
        await interaction.response.send_message(
            f"✅ **Reprovação Registrada**\n\nA reprovação de **{member.display_name}** "
            f"foi registrada com sucesso.\n\n📝 **Motivo:** {reason}",
            ephemeral=True,
        )
        embed = discord.Embed(title="❌ Candidato Reprovado", color=COLOR_ERROR)
        embed.add_field(name="👤 Candidato", value=f"{member.mention} ({member})", inline=False)
        embed.add_field(name="👮‍♂️ Responsável", value=f"<@{responsible_id}>", inline=True)
        embed.add_field(name="📝 Motivo", value=reason, inline=False)
        await _send_to(guild, service.channel_config(guild.id).results_channel, embed=embed)
        try:
            await member.send(
                embed=discord.Embed(
                    title="❌ Solicitação de TAG - Reprovada",
                    description=f"Sua solicitação no servidor **{guild.name}** foi reprovada.\n\n📝 {reason}",
                    color=COLOR_ERROR,
                )
            )
        except discord.HTTPException:
            logger.info("Could not DM %s about rejection", member)

    async def _handle_review(interaction: discord.Interaction, action: str, user_id: str) -> None:
        if not await _require_authorized(interaction):
            return
        guild = interaction.guild
        member = await _fetch_member(guild, user_id)
        if member is None:
            await _reply(interaction, _error_embed("Membro não Encontrado", "O membro não foi encontrado no servidor."))
            return
        if service.get_request(guild.id, user_id) is None:
            await _reply(
                interaction,
                _error_embed("Solicitação não Encontrada", "Não foi encontrada uma solicitação para este usuário."),
            )
            return
        responsible_id = str(interaction.user.id)
        if action == "reprovar":
            await interaction.response.send_modal(
                RejectReasonModal(user_id, responsible_id, _reject_with_reason)
            )
            return

        options = []
        for role_id, fmt in service.role_formats(guild.id).items():
            role = guild.get_role(int(role_id))
            if role is None:
                continue
            options.append(
                discord.SelectOption(label=role.name, value=role_id, description=f"Formato: {fmt}", emoji="🏷️")
            )
        if not options:
            await _reply(
                interaction,
                _error_embed("Nenhum Cargo Configurado", "Nenhum cargo foi configurado ainda.\n\nUse `/adicionar-cargo` primeiro."),
            )
            return
        select = discord.ui.Select(
            custom_id=f"cargo_{user_id}_{responsible_id}",
            placeholder="🎯 Selecione o cargo para aprovar",
            options=options[: settings.select_option_limit],
        )

        async def _on_select(select_interaction: discord.Interaction) -> None:
            await _approve_with_role(select_interaction, user_id, responsible_id, select.values[0])

        select.callback = _on_select
        view = discord.ui.View(timeout=300)
        view.add_item(select)
        embed = discord.Embed(
            title="🎯 Selecionar Cargo",
            description=f"Selecione o cargo apropriado para **{member.display_name}**",
            color=COLOR_PRIMARY,
        )
        await interaction.response.send_message(embed=embed, view=view, ephemeral=True)

    async def _open_request_modal(interaction: discord.Interaction) -> None:
        if not await _require_authorized(interaction):
            return
        if not service.is_configured(interaction.guild_id):
            await _reply(
                interaction,
                _error_embed("Sistema não Configurado", "Um administrador precisa usar `/configurar-canais` primeiro."),
            )
            return
        await interaction.response.send_modal(RequestTagModal(_submit_request))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    @bot.event
    async def on_ready() -> None:
        nonlocal scheduler
        logger.info("Recruitment bot connected as %s", bot.user)
        service.writer.clear_stale_locks()
        for guild in bot.guilds:
            if service.is_authorized(guild.id):
                leaderboard.ensure_guild(str(guild.id))
        get_telemetry().track_system_event("bot_ready", source="discord")
        try:
            synced = await bot.tree.sync()
            logger.info("Synced %d commands", len(synced))
        except Exception as exc:  # pragma: no cover - logging only
            logger.exception("Failed to sync commands: %s", exc)
        if scheduler is None:
            scheduler = LeaderboardScheduler(
                leaderboard,
                _refresh_leaderboard,
                interval_minutes=settings.leaderboard_refresh_minutes,
                initial_delay_seconds=settings.leaderboard_initial_delay,
            )
            scheduler.start()

    @bot.event
    async def on_guild_join(guild: discord.Guild) -> None:
        logger.info("Joined guild %s (%s)", guild.name, guild.id)
        if service.is_authorized(guild.id):
            leaderboard.ensure_guild(str(guild.id))
            return
        if not service.is_pending(guild.id):
            await _send_authorization_request(guild)

    @bot.event
    async def on_member_update(before: discord.Member, after: discord.Member) -> None:
        if not service.is_authorized(after.guild.id):
            return
        if roles_changed([role.id for role in before.roles], [role.id for role in after.roles]):
            await _apply_nickname(after)

    @bot.event
    async def on_interaction(interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        data = interaction.data or {}
        if data.get("component_type") != discord.ComponentType.button.value:
            return
        custom_id = data.get("custom_id")
        if custom_id == REQUEST_BUTTON_ID:
            await _open_request_modal(interaction)
            return
        parsed = parse_button_id(custom_id)
        if parsed is None:
            return
        action, target = parsed
        if action in ("authorize_server", "deny_server"):
            await _handle_server_decision(interaction, action, target)
        else:
            await _handle_review(interaction, action, target)

    @bot.tree.error
    async def on_app_command_error(
        interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        logger.error(
            "Command %s failed",
            interaction.command.name if interaction.command else "?",
            exc_info=error,
            extra={"event": "command.failed"},
        )
        await _reply(interaction, _error_embed("Erro", "Ocorreu um erro ao executar o comando."))

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------
    @app_commands.command(name="configurar-canais", description="Configura os canais do sistema de tags")
    @track_command
    @app_commands.describe(
        pedir_tag="Canal onde os membros pedem a tag",
        aprovar_tag="Canal onde a equipe aprova os pedidos",
        resultados="Canal de resultados",
        placar="Canal do placar de recrutamentos",
    )
    async def configurar_canais(
        interaction: discord.Interaction,
        pedir_tag: discord.TextChannel,
        aprovar_tag: discord.TextChannel,
        resultados: discord.TextChannel,
        placar: Optional[discord.TextChannel] = None,
    ) -> None:
        if not await _require_authorized(interaction) or not await _require_admin(interaction):
            return
        guild = interaction.guild
        service.configure_channels(
            guild.id,
            guild.name,
            request_channel=pedir_tag.id,
            approval_channel=aprovar_tag.id,
            results_channel=resultados.id,
            leaderboard_channel=placar.id if placar else None,
        )
        if placar is not None:
            await leaderboard.set_channel(str(guild.id), str(placar.id))
        embed, view = _request_panel()
        await pedir_tag.send(embed=embed, view=view)
        await _reply(
            interaction,
            discord.Embed(
                title="✅ Canais Configurados",
                description=(
                    f"📩 Solicitações: {pedir_tag.mention}\n⚖️ Aprovação: {aprovar_tag.mention}\n"
                    f"📊 Resultados: {resultados.mention}"
                ),
                color=COLOR_SUCCESS,
            ),
        )

    @app_commands.command(name="criar-canais", description="Cria automaticamente os canais do sistema")
    @track_command
    async def criar_canais(interaction: discord.Interaction) -> None:
        if not await _require_authorized(interaction) or not await _require_admin(interaction):
            return
        guild = interaction.guild
        await interaction.response.defer(ephemeral=True, thinking=True)
        created = {}
        for key, name in (
            ("request", "pedir-tag"),
            ("approval", "aprovar-tag"),
            ("results", "resultados-rec"),
            ("leaderboard", "placar"),
        ):
            created[key] = await guild.create_text_channel(name)
        service.configure_channels(
            guild.id,
            guild.name,
            request_channel=created["request"].id,
            approval_channel=created["approval"].id,
            results_channel=created["results"].id,
            leaderboard_channel=created["leaderboard"].id,
            reason="Canais criados automaticamente para servidor",
        )
        await leaderboard.set_channel(str(guild.id), str(created["leaderboard"].id))
        embed, view = _request_panel()
        await created["request"].send(embed=embed, view=view)
        await _refresh_leaderboard(str(guild.id))
        await interaction.followup.send(
            embed=discord.Embed(
                title="✅ Canais Criados",
                description="\n".join(channel.mention for channel in created.values()),
                color=COLOR_SUCCESS,
            ),
            ephemeral=True,
        )

    @app_commands.command(name="status-sistema", description="Mostra o status do sistema de tags")
    @track_command
    async def status_sistema(interaction: discord.Interaction) -> None:
        if not await _require_authorized(interaction):
            return
        summary = service.status_summary(interaction.guild_id)
        channels = summary["channels"]

        def _mention(channel_id: Optional[int]) -> str:
            return f"<#{channel_id}>" if channel_id else "não configurado"

        embed = discord.Embed(
            title="📋 Status do Sistema",
            color=COLOR_SUCCESS if summary["configured"] else COLOR_WARNING,
        )
        embed.add_field(name="📩 Solicitações", value=_mention(channels.request_channel), inline=True)
        embed.add_field(name="⚖️ Aprovação", value=_mention(channels.approval_channel), inline=True)
        embed.add_field(name="📊 Resultados", value=_mention(channels.results_channel), inline=True)
        embed.add_field(name="🏷️ Cargos Configurados", value=str(summary["role_count"]), inline=True)
        embed.add_field(name="⏳ Pedidos Pendentes", value=str(summary["pending_requests"]), inline=True)
        failure = service.writer.engine.last_failure
        embed.add_field(
            name="💾 Backup Remoto",
            value="ok" if failure is None else f"falha: {failure.kind.value}",
            inline=True,
        )
        await _reply(interaction, embed)

    @app_commands.command(name="adicionar-cargo", description="Adiciona um formato de apelido para um cargo")
    @track_command
    @app_commands.describe(cargo="Cargo a configurar", formato="Prefixo aplicado ao apelido, ex.: [REC]")
    async def adicionar_cargo(interaction: discord.Interaction, cargo: discord.Role, formato: str) -> None:
        if not await _require_authorized(interaction) or not await _require_admin(interaction):
            return
        try:
            service.add_role_format(interaction.guild_id, cargo.id, cargo.name, formato)
        except ValueError as exc:
            await _reply(interaction, _error_embed("Cargo já Configurado", str(exc)))
            return
        await _reply(
            interaction,
            discord.Embed(
                title="✅ Cargo Adicionado",
                description=f"{cargo.mention} → `{formato}`",
                color=COLOR_SUCCESS,
            ),
        )

    @app_commands.command(name="editar-cargo", description="Altera o formato de apelido de um cargo")
    @track_command
    @app_commands.describe(cargo="Cargo a editar", formato="Novo formato")
    async def editar_cargo(interaction: discord.Interaction, cargo: discord.Role, formato: str) -> None:
        if not await _require_authorized(interaction) or not await _require_admin(interaction):
            return
        try:
            previous = service.edit_role_format(interaction.guild_id, cargo.id, cargo.name, formato)
        except ValueError as exc:
            await _reply(interaction, _error_embed("Cargo não Configurado", str(exc)))
            return
        await _reply(
            interaction,
            discord.Embed(
                title="✏️ Cargo Editado",
                description=f"{cargo.mention}: `{previous}` → `{formato}`",
                color=COLOR_SUCCESS,
            ),
        )

    @app_commands.command(name="listar-cargos", description="Lista os cargos com formato configurado")
    @track_command
    async def listar_cargos(interaction: discord.Interaction) -> None:
        if not await _require_authorized(interaction):
            return
        formats = service.role_formats(interaction.guild_id)
        lines: List[str] = [f"<@&{role_id}> → `{fmt}`" for role_id, fmt in formats.items()]
        await _reply(
            interaction,
            discord.Embed(
                title="🏷️ Cargos Configurados",
                description="\n".join(lines) or "Nenhum cargo configurado.",
                color=COLOR_INFO,
            ),
        )

    @app_commands.command(name="remover-cargo", description="Remove o formato de apelido de um cargo")
    @track_command
    @app_commands.describe(cargo="Cargo a remover")
    async def remover_cargo(interaction: discord.Interaction, cargo: discord.Role) -> None:
        if not await _require_authorized(interaction) or not await _require_admin(interaction):
            return
        try:
            removed = service.remove_role_format(interaction.guild_id, cargo.id, cargo.name)
        except ValueError as exc:
            await _reply(interaction, _error_embed("Cargo não Configurado", str(exc)))
            return
        await _reply(
            interaction,
            discord.Embed(
                title="🗑️ Cargo Removido",
                description=f"{cargo.mention} (`{removed}`)",
                color=COLOR_SUCCESS,
            ),
        )

    @app_commands.command(name="listar-servidores", description="Lista servidores autorizados e pendentes")
    @track_command
    async def listar_servidores(interaction: discord.Interaction) -> None:
        if not await _require_owner(interaction):
            return
        embed = discord.Embed(title="🌐 Servidores", color=COLOR_INFO)
        for title, entries in (
            ("✅ Autorizados", service.authorized_servers()),
            ("⏳ Pendentes", service.pending_servers()),
        ):
            value = "\n".join(f"{data.get('name')} (`{gid}`)" for gid, data in entries.items())
            embed.add_field(name=title, value=value or "nenhum", inline=False)
        await _reply(interaction, embed)

    @app_commands.command(name="autorizar-servidor", description="Autoriza um servidor manualmente")
    @track_command
    @app_commands.describe(servidor_id="ID do servidor")
    async def autorizar_servidor(interaction: discord.Interaction, servidor_id: str) -> None:
        if not await _require_owner(interaction):
            return
        guild = bot.get_guild(int(servidor_id)) if servidor_id.isdigit() else None
        if guild is None:
            await _reply(
                interaction,
                _error_embed("Servidor não Encontrado", "O bot não está neste servidor."),
            )
            return
        try:
            service.authorize(guild_info(guild, guild.owner))
        except ValueError as exc:
            await _reply(interaction, _error_embed("Servidor já Autorizado", str(exc)))
            return
        leaderboard.ensure_guild(str(guild.id))
        await _reply(
            interaction,
            discord.Embed(
                title="✅ Servidor Autorizado",
                description=f"O servidor **{guild.name}** foi autorizado com sucesso!",
                color=COLOR_SUCCESS,
            ),
        )

    @app_commands.command(name="config-placar", description="Define se o placar é semanal ou mensal")
    @track_command
    @app_commands.describe(tipo="Periodicidade do placar")
    @app_commands.choices(
        tipo=[
            app_commands.Choice(name="Semanal", value=LeaderboardKind.WEEKLY.value),
            app_commands.Choice(name="Mensal", value=LeaderboardKind.MONTHLY.value),
        ]
    )
    async def config_placar(interaction: discord.Interaction, tipo: app_commands.Choice[str]) -> None:
        if not await _require_authorized(interaction) or not await _require_admin(interaction):
            return
        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await leaderboard.configure(str(interaction.guild_id), tipo.value)
        if not result.success:
            await _reply(interaction, _error_embed("Configuração Inválida", result.error or ""))
            return
        await _refresh_leaderboard(str(interaction.guild_id))
        await _reply(
            interaction,
            discord.Embed(
                title="✅ Placar Configurado",
                description=f"Placar {result.kind.label}: reset {result.kind.reset_description}.",
                color=COLOR_SUCCESS,
            ),
        )

    bot.tree.add_command(configurar_canais)
    bot.tree.add_command(criar_canais)
    bot.tree.add_command(status_sistema)
    bot.tree.add_command(adicionar_cargo)
    bot.tree.add_command(editar_cargo)
    bot.tree.add_command(listar_cargos)
    bot.tree.add_command(remover_cargo)
    bot.tree.add_command(listar_servidores)
    bot.tree.add_command(autorizar_servidor)
    bot.tree.add_command(config_placar)
    return bot


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    token = os.environ.get("DISCORD_TOKEN")
    if not token:
        raise RuntimeError("DISCORD_TOKEN environment variable must be set")
    bot = build_bot(get_settings())
    bot.run(token)


__all__ = ["build_bot", "build_ranking_embed", "guild_info", "main", "parse_button_id"]
