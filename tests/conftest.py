"""Shared fixtures for the recruitment bot tests."""
from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import List

import pytest

from rota_bot.config import SettingsLoader
from rota_bot.gate import SyncGate
from rota_bot.telemetry import TelemetryCollector, set_telemetry


@pytest.fixture(autouse=True)
def telemetry(tmp_path):
    collector = TelemetryCollector(tmp_path / "telemetry.db")
    set_telemetry(collector)
    yield collector
    set_telemetry(None)


@pytest.fixture
def settings(tmp_path):
    base = SettingsLoader().load()
    return replace(
        base,
        data_dir=tmp_path / "data",
        git_token="test-token",
        gate_poll_interval=0.005,
        gate_max_attempts=400,
    )


@pytest.fixture
def bare_remote(tmp_path, monkeypatch):
    from git import Repo

    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    path = tmp_path / "remote.git"
    Repo.init(path, bare=True)
    return path


@pytest.fixture
def git_settings(settings, bare_remote):
    return replace(settings, remote_url_override=str(bare_remote))


class RecordingEngine:
    """Stand-in for the remote sync engine that records overlap."""

    def __init__(self, gate: SyncGate | None = None, *, delay: float = 0.01, result: bool = True) -> None:
        self.gate = gate or SyncGate(poll_interval=0.002, max_attempts=1000)
        self.delay = delay
        self.result = result
        self.messages: List[str] = []
        self.active = 0
        self.max_active = 0
        self.last_failure = None
        self.lock_clears = 0
        self.closed = False

    async def sync(self, message: str) -> bool:
        await self.gate.acquire()
        try:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.messages.append(message)
            await asyncio.sleep(self.delay)
            return self.result
        finally:
            self.active -= 1
            self.gate.release()

    def clear_stale_locks(self):
        self.lock_clears += 1
        return []

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def recording_engine():
    return RecordingEngine()
