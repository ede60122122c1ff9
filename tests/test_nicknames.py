"""Tests for nickname formatting rules."""
from __future__ import annotations

from types import SimpleNamespace

from rota_bot.nicknames import (
    build_nick,
    nickname_for,
    roles_changed,
    top_formatted_role,
    truncate_nick,
)


def _role(role_id, position):
    return SimpleNamespace(id=role_id, position=position)


def test_build_nick_combinations():
    assert build_nick("[REC]", "Ana", "123") == "[REC] Ana (123)"
    assert build_nick("[REC]", "Ana", None) == "[REC] Ana"
    assert build_nick(None, "Ana", "123") == "Ana (123)"
    assert build_nick(None, "Ana", None) is None


def test_truncate_keeps_short_names():
    assert truncate_nick("[REC] Ana (123)") == "[REC] Ana (123)"
    assert truncate_nick(None) is None


def test_truncate_preserves_id_suffix():
    nick = "[RECRUTADOR] Maximiliano de Albuquerque (4815162342)"
    result = truncate_nick(nick)
    assert len(result) <= 32
    assert result.endswith(" (4815162342)")
    assert result.startswith("[RECRUTADOR] Max")


def test_truncate_without_id_suffix_cuts_plainly():
    result = truncate_nick("x" * 40, limit=10)
    assert result == "x" * 10


def test_top_formatted_role_picks_highest_position():
    roles = [_role(1, 5), _role(2, 9), _role(3, 20)]
    formats = {"1": "[A]", "2": "[B]"}
    assert top_formatted_role(roles, formats) == "2"
    assert top_formatted_role(roles, {}) is None


def test_roles_changed():
    assert roles_changed([1, 2], [2, 1]) is False
    assert roles_changed([1, 2], [1]) is True


def test_nickname_for_prefers_request_name():
    request = {"nome": "Carlos", "id": "77"}
    assert nickname_for(request, "discord_user", "[M]") == "[M] Carlos (77)"
    assert nickname_for(None, "discord_user", "[M]") == "[M] discord_user"
    assert nickname_for(None, "discord_user", None) is None
