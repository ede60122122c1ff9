"""Nickname formatting rules applied to recruited members."""
from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

DISCORD_NICKNAME_LIMIT = 32

_ID_TAIL = re.compile(r"\s\(\d+\)$")


def build_nick(role_format: Optional[str], base_name: str, request_id: Optional[str]) -> Optional[str]:
    """Combine the role format, base name and request id into a nickname.

    Returns ``None`` when there is nothing to apply (no format and no id).
    """

    if role_format:
        if request_id:
            return f"{role_format} {base_name} ({request_id})"
        return f"{role_format} {base_name}"
    if request_id:
        return f"{base_name} ({request_id})"
    return None


def truncate_nick(nick: Optional[str], limit: int = DISCORD_NICKNAME_LIMIT) -> Optional[str]:
    """Fit ``nick`` into ``limit`` characters, keeping a trailing `` (<id>)``."""

    if not nick or len(nick) <= limit:
        return nick
    match = _ID_TAIL.search(nick)
    tail = match.group(0) if match else ""
    base = nick[: len(nick) - len(tail)] if tail else nick
    remaining = limit - len(tail)
    if remaining <= 0:
        return nick[:limit]
    return base[:remaining].strip() + tail


def top_formatted_role(roles: Iterable[Any], formats: Mapping[str, str]) -> Optional[str]:
    """Return the id of the highest positioned role that has a format."""

    candidates = [role for role in roles if str(role.id) in formats]
    if not candidates:
        return None
    top = max(candidates, key=lambda role: role.position)
    return str(top.id)


def roles_changed(before: Iterable[Any], after: Iterable[Any]) -> bool:
    return {str(item) for item in before} != {str(item) for item in after}


def nickname_for(
    request: Optional[Mapping[str, Any]],
    username: str,
    role_format: Optional[str],
    *,
    limit: int = DISCORD_NICKNAME_LIMIT,
) -> Optional[str]:
    """Compute the nickname a member should carry, or ``None`` to leave it."""

    base_name = request.get("nome") if request and request.get("nome") else username
    request_id = request.get("id") if request and request.get("id") else None
    return truncate_nick(build_nick(role_format, base_name, request_id), limit)


__all__ = [
    "DISCORD_NICKNAME_LIMIT",
    "build_nick",
    "nickname_for",
    "roles_changed",
    "top_formatted_role",
    "truncate_nick",
]
