"""Tests for the write-now, sync-later persistence path."""
from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import replace

import pytest
from git import Repo

from rota_bot.persistence import FastPathWriter, default_message
from rota_bot.storage import SnapshotStore
from rota_bot.sync import RemoteSyncEngine


@pytest.fixture
def writer(tmp_path, recording_engine):
    return FastPathWriter(SnapshotStore(tmp_path / "data"), recording_engine)


def test_default_message_names_the_file():
    assert default_message("config") == "Atualização automática: config.json"


@pytest.mark.asyncio
async def test_persist_writes_before_background_sync_runs(writer, recording_engine):
    assert writer.load_document("config") == {}

    assert writer.persist("config", {"a": 1}, "msg") is True

    assert writer.load_document("config") == {"a": 1}
    assert recording_engine.messages == []
    assert writer.pending == 1

    await writer.drain()
    assert recording_engine.messages == ["msg"]
    assert writer.pending == 0


@pytest.mark.asyncio
async def test_persist_uses_default_message(writer, recording_engine):
    writer.persist("cargos", {})
    await writer.drain()
    assert recording_engine.messages == ["Atualização automática: cargos.json"]


def test_persist_without_running_loop_skips_sync(writer, recording_engine, caplog):
    with caplog.at_level(logging.WARNING, logger="rota_bot.persistence"):
        assert writer.persist("config", {"a": 1}) is True

    assert writer.load_document("config") == {"a": 1}
    assert recording_engine.messages == []
    assert any(getattr(r, "event", None) == "persist.sync_skipped" for r in caplog.records)


@pytest.mark.asyncio
async def test_last_write_wins_regardless_of_sync_outcome(writer, recording_engine):
    recording_engine.result = False
    for value in range(5):
        writer.persist("placar", {"count": value})
    await writer.drain()

    assert writer.load_document("placar") == {"count": 4}
    assert len(recording_engine.messages) == 5


@pytest.mark.asyncio
async def test_sync_bodies_never_overlap(writer, recording_engine):
    for index, name in enumerate(["pedidos", "config", "cargos", "servidores", "placar"] * 2):
        writer.persist(name, {"n": index})
    await writer.drain()

    assert recording_engine.max_active == 1
    assert len(recording_engine.messages) == 10


@pytest.mark.asyncio
async def test_deferred_syncs_run_once_each_in_submission_order(writer, recording_engine):
    gate = recording_engine.gate
    await gate.acquire()

    writer.persist("config", {"a": 1}, "config change")
    writer.persist("cargos", {"b": 2}, "roles change")
    await asyncio.sleep(0.02)
    assert gate.waiting == 2
    assert recording_engine.messages == []

    gate.release()
    await writer.drain()

    assert recording_engine.messages == ["config change", "roles change"]
    assert recording_engine.max_active == 1
    assert gate.forced_releases == 0


@pytest.mark.asyncio
async def test_local_write_failure_returns_false_and_skips_sync(tmp_path, recording_engine, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")
    writer = FastPathWriter(SnapshotStore(blocker / "data"), recording_engine)

    with caplog.at_level(logging.ERROR, logger="rota_bot.persistence"):
        assert writer.persist("config", {"a": 1}) is False
        assert await writer.persist_and_sync("config", {"a": 1}) is False

    assert writer.pending == 0
    assert recording_engine.messages == []
    events = [getattr(r, "event", None) for r in caplog.records]
    assert events.count("persist.local_failed") == 2


@pytest.mark.asyncio
async def test_persist_and_sync_returns_engine_result(writer, recording_engine):
    assert await writer.persist_and_sync("config", {"a": 1}, "sync now") is True
    recording_engine.result = False
    assert await writer.persist_and_sync("config", {"a": 2}) is False
    assert recording_engine.messages == ["sync now", "Atualização automática: config.json"]
    assert writer.load_document("config") == {"a": 2}


@pytest.mark.asyncio
async def test_persistence_metrics_record_path(writer, telemetry):
    writer.persist("config", {"a": 1})
    await writer.persist_and_sync("config", {"a": 2})
    await writer.drain()

    paths = [event.tags["path"] for event in telemetry._metrics_buffer if event.name == "config" and "path" in event.tags]
    assert paths == ["fast", "sync"]


@pytest.mark.asyncio
async def test_aclose_drains_and_closes_engine(writer, recording_engine):
    writer.persist("config", {"a": 1})
    await writer.aclose()
    assert recording_engine.messages == ["Atualização automática: config.json"]
    assert recording_engine.closed


def test_clear_stale_locks_delegates_to_engine(writer, recording_engine):
    writer.clear_stale_locks()
    assert recording_engine.lock_clears == 1


@pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")
@pytest.mark.asyncio
async def test_burst_of_writes_collapses_into_remote_commits(git_settings, bare_remote):
    store = SnapshotStore(git_settings.data_dir)
    writer = FastPathWriter(store, RemoteSyncEngine(git_settings, store))

    writer.persist("config", {"g": {"pedirTagId": "1"}}, "Configuração atualizada")
    writer.persist("cargos", {"g": {"10": "[R]"}}, "Novo cargo adicionado")
    await writer.aclose()

    commits = list(Repo(bare_remote).iter_commits("main"))
    assert 1 <= len(commits) <= 2
    names = sorted(blob.name for blob in commits[0].tree.blobs)
    assert names == ["cargos.json", "config.json"]


@pytest.mark.asyncio
async def test_from_settings_builds_store_and_engine(settings):
    writer = FastPathWriter.from_settings(replace(settings, git_token=None))
    assert writer.store.root == settings.data_dir
    assert isinstance(writer.engine, RemoteSyncEngine)
    await writer.aclose()


@pytest.mark.asyncio
async def test_unavailable_telemetry_database_does_not_break_persistence(settings, tmp_path, monkeypatch, caplog):
    from rota_bot.locks import LockJanitor
    from rota_bot.telemetry import get_telemetry, set_telemetry

    set_telemetry(None)
    monkeypatch.setenv("ROTA_TELEMETRY_DB", str(tmp_path / "missing" / "telemetry.db"))
    engine = RemoteSyncEngine(settings, SnapshotStore(settings.data_dir))
    engine._sync_blocking = lambda message: True
    writer = FastPathWriter(SnapshotStore(settings.data_dir), engine)
    lock = tmp_path / ".git" / "index.lock"
    lock.parent.mkdir()
    lock.write_text("", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="rota_bot.telemetry"):
        assert writer.persist("config", {"a": 1}) is True
        await writer.drain()
        assert await writer.persist_and_sync("config", {"a": 2}, "msg") is True
        assert LockJanitor(tmp_path / ".git", ["index.lock"]).clear_stale_locks() == [lock]
    await writer.aclose()

    assert writer.load_document("config") == {"a": 2}
    assert get_telemetry().available is False
    events = [getattr(r, "event", None) for r in caplog.records]
    assert "telemetry.unavailable" in events
