"""Tests covering the recruitment service orchestration."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from rota_bot.models import GuildInfo, RequestStatus
from rota_bot.persistence import FastPathWriter
from rota_bot.service import RecruitmentService
from rota_bot.storage import SnapshotStore


def build_service(settings, engine):
    """Helper that initialises a fresh :class:`RecruitmentService`."""

    writer = FastPathWriter(SnapshotStore(settings.data_dir), engine)
    return RecruitmentService(settings, writer)


def _guild(guild_id="100", name="Rota"):
    return GuildInfo(
        id=guild_id,
        name=name,
        owner_id="9",
        owner_tag="dono#0001",
        member_count=12,
        created_at="2024-01-01T00:00:00+00:00",
    )


@pytest.fixture
def service(settings, recording_engine):
    return build_service(settings, recording_engine)


def test_documents_start_empty_with_server_sections(service):
    assert service.authorized_servers() == {}
    assert service.pending_servers() == {}
    assert not service.is_authorized("100")


def test_authorization_flow(service, settings):
    info = _guild()
    service.add_pending(info)
    assert service.is_pending("100")

    service.authorize(info)
    assert service.is_authorized("100")
    assert not service.is_pending("100")

    stored = service.writer.load_document("servidores")
    assert stored["autorizados"]["100"]["name"] == "Rota"
    assert "authorizedAt" in stored["autorizados"]["100"]
    assert service.writer.load_document("config") == {"100": {}}
    assert service.writer.load_document("pedidos") == {"100": {}}

    with pytest.raises(ValueError):
        service.authorize(info)


def test_deny_removes_pending(service):
    service.add_pending(_guild("200", "Outro"))
    removed = service.deny("200")
    assert removed["name"] == "Outro"
    assert not service.is_pending("200")
    assert service.deny("200") is None


def test_bot_admin_matches_owner(service, settings):
    assert service.is_bot_admin(int(settings.owner_id))
    assert not service.is_bot_admin("1")


def test_role_format_lifecycle(service):
    service.add_role_format("100", 10, "Recruta", "[R]")
    assert service.role_formats("100") == {"10": "[R]"}

    with pytest.raises(ValueError, match="editar-cargo"):
        service.add_role_format("100", 10, "Recruta", "[X]")

    assert service.edit_role_format("100", 10, "Recruta", "[RC]") == "[R]"
    with pytest.raises(ValueError):
        service.edit_role_format("100", 11, "Outro", "[O]")

    assert service.remove_role_format("100", 10, "Recruta") == "[RC]"
    with pytest.raises(ValueError):
        service.remove_role_format("100", 10, "Recruta")
    assert service.writer.load_document("cargos") == {"100": {}}


def test_channel_configuration(service):
    assert not service.is_configured("100")
    config = service.configure_channels(
        "100", "Rota", request_channel=1, approval_channel=2, results_channel=3
    )
    assert config.complete
    assert config.leaderboard_channel is None
    assert service.is_configured("100")
    assert service.writer.load_document("config")["100"] == {
        "pedirTagId": "1",
        "aprovarTagId": "2",
        "resultadosId": "3",
    }


@pytest.mark.parametrize(
    "name, request_id",
    [("A", "123"), ("  ", "123"), ("Ana", ""), ("Ana", "   ")],
)
def test_submit_request_validation(service, name, request_id):
    with pytest.raises(ValueError):
        service.submit_request("100", 5, name, request_id)
    assert service.pending_count("100") == 0


def test_request_review_flow(service):
    request = service.submit_request("100", 5, "  Ana  ", " 42 ")
    assert request.name == "Ana"
    assert request.request_id == "42"
    assert service.pending_count("100") == 1

    with pytest.raises(ValueError, match="pendente"):
        service.submit_request("100", 5, "Ana", "42")

    approved = service.approve_request("100", 5, 10, 77)
    assert approved.status is RequestStatus.APPROVED
    assert approved.role_id == "10"
    assert approved.responsible == "77"
    assert service.pending_count("100") == 0

    resubmitted = service.submit_request("100", 5, "Ana B", "43")
    assert resubmitted.status is RequestStatus.PENDING

    rejected = service.reject_request("100", 5, "ID inválido", 78)
    assert rejected.status is RequestStatus.REJECTED
    stored = service.writer.load_document("pedidos")["100"]["5"]
    assert stored["motivo"] == "ID inválido"
    assert stored["status"] == "reprovado"

    with pytest.raises(ValueError):
        service.approve_request("100", 999, 10, 77)


def test_nickname_for_member_uses_highest_formatted_role(service):
    service.add_role_format("100", 10, "Recruta", "[R]")
    service.add_role_format("100", 20, "Elite", "[E]")
    service.submit_request("100", 5, "Ana", "42")
    roles = [SimpleNamespace(id=10, position=1), SimpleNamespace(id=20, position=4)]

    assert service.nickname_for_member("100", 5, "ana_discord", roles) == "[E] Ana (42)"
    assert service.nickname_for_member("100", 6, "outro", []) is None


def test_status_summary(service):
    service.add_role_format("100", 10, "Recruta", "[R]")
    service.submit_request("100", 5, "Ana", "42")
    summary = service.status_summary("100")
    assert summary["role_count"] == 1
    assert summary["pending_requests"] == 1
    assert summary["configured"] is False


def test_reload_reads_documents_from_disk(service, settings, recording_engine):
    service.add_role_format("100", 10, "Recruta", "[R]")
    fresh = build_service(settings, recording_engine)
    assert fresh.role_formats("100") == {"10": "[R]"}


@pytest.mark.asyncio
async def test_mutations_schedule_background_syncs(service, recording_engine):
    service.submit_request("100", 5, "Ana", "42")
    service.add_role_format("100", 10, "Recruta", "[R]")
    await service.writer.drain()

    assert recording_engine.messages == [
        "Novo pedido: Ana - ID: 42",
        "Novo cargo adicionado: Recruta - [R]",
    ]
