"""Tests for the Git-backed remote sync engine."""
from __future__ import annotations

import asyncio
import logging
import shutil
import threading
from dataclasses import replace

import pytest
import git
from git import GitCommandError, InvalidGitRepositoryError, Repo

from rota_bot.storage import SnapshotStore
from rota_bot.sync import (
    RemoteSyncEngine,
    SyncConfigurationError,
    SyncFailureKind,
    classify_failure,
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


def _remote_messages(bare_remote):
    remote = Repo(bare_remote)
    if "main" not in [head.name for head in remote.heads]:
        return []
    return [commit.message.strip() for commit in remote.iter_commits("main")]


@pytest.fixture
def engine_factory(git_settings):
    engines = []

    def _make(settings=None):
        settings = settings or git_settings
        engine = RemoteSyncEngine(settings, SnapshotStore(settings.data_dir))
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.close()


@pytest.mark.parametrize(
    "exc, expected",
    [
        (SyncConfigurationError("GITHUB_TOKEN is not configured"), SyncFailureKind.CONFIGURATION),
        (InvalidGitRepositoryError("/tmp/data"), SyncFailureKind.NOT_A_REPOSITORY),
        (
            GitCommandError(["git", "push"], 128, stderr="fatal: Authentication failed for 'https://github.com/x'"),
            SyncFailureKind.AUTHENTICATION,
        ),
        (
            GitCommandError(["git", "push"], 1, stderr="! [remote rejected] main -> main (protected branch hook declined)"),
            SyncFailureKind.REMOTE_REJECTED,
        ),
        (
            GitCommandError(["git", "add"], 128, stderr="fatal: not a git repository (or any of the parent directories): .git"),
            SyncFailureKind.NOT_A_REPOSITORY,
        ),
        (GitCommandError(["git", "push"], 128, stderr="fatal: unable to access: Could not resolve host"), SyncFailureKind.TRANSIENT),
        (TimeoutError("timed out"), SyncFailureKind.TRANSIENT),
    ],
)
def test_classify_failure(exc, expected):
    assert classify_failure(exc) is expected


@pytest.mark.asyncio
async def test_missing_token_is_a_configuration_failure(settings, caplog):
    settings = replace(settings, git_token=None)
    store = SnapshotStore(settings.data_dir)
    store.save("config", {"a": 1})
    engine = RemoteSyncEngine(settings, store)

    with caplog.at_level(logging.ERROR, logger="rota_bot.sync"):
        assert await engine.sync("msg") is False

    assert engine.last_failure.kind is SyncFailureKind.CONFIGURATION
    assert not engine.gate.held
    assert not engine.initialized
    failed = [r for r in caplog.records if getattr(r, "event", None) == "sync.failed"]
    assert failed and failed[0].failure_kind == "configuration"
    engine.close()


def test_failure_detail_redacts_token(settings):
    settings = replace(settings, git_token="sekret-value")
    engine = RemoteSyncEngine(settings, SnapshotStore(settings.data_dir))
    failure = engine._record_failure(RuntimeError("push to https://sekret-value@github.com failed"))
    assert "sekret-value" not in failure.detail
    engine.close()


@requires_git
@pytest.mark.asyncio
async def test_sync_pushes_and_is_idempotent(engine_factory, git_settings, bare_remote, telemetry):
    engine = engine_factory()
    engine._store.save("config", {"a": 1})

    assert await engine.sync("Atualização automática: config.json") is True
    assert engine.initialized
    assert await engine.sync("second call") is False
    assert _remote_messages(bare_remote) == ["Atualização automática: config.json"]

    tree = Repo(bare_remote).commit("main").tree
    assert "config.json" in [blob.name for blob in tree.blobs]
    author = Repo(bare_remote).commit("main").author
    assert author.name == git_settings.committer_name

    telemetry.flush()
    summary = telemetry.get_sync_summary(hours=1)
    assert summary["outcomes"] == {"pushed": 1, "noop": 1}


@requires_git
@pytest.mark.asyncio
async def test_sync_without_documents_does_not_commit(engine_factory, bare_remote):
    engine = engine_factory()
    assert await engine.sync("nothing") is False
    assert engine.last_failure is None
    assert _remote_messages(bare_remote) == []


@requires_git
@pytest.mark.asyncio
async def test_sync_stages_every_document_on_disk(engine_factory, bare_remote):
    engine = engine_factory()
    engine._store.save("config", {"a": 1})
    engine._store.save("cargos", {"1": {"2": "[R]"}})
    engine._store.save("not-tracked", {"x": 1})

    assert await engine.sync("Atualização automática: config.json") is True

    names = sorted(blob.name for blob in Repo(bare_remote).commit("main").tree.blobs)
    assert names == ["cargos.json", "config.json"]


@requires_git
@pytest.mark.asyncio
async def test_sync_clears_stale_lock_before_commit(engine_factory, bare_remote):
    engine = engine_factory()
    engine._store.save("config", {"a": 1})
    assert await engine.sync("first") is True

    lock = engine.workdir / ".git" / "index.lock"
    lock.write_text("", encoding="utf-8")
    engine._store.save("config", {"a": 2})

    assert await engine.sync("second") is True
    assert not lock.exists()
    assert _remote_messages(bare_remote) == ["second", "first"]


@requires_git
@pytest.mark.asyncio
async def test_new_working_directory_continues_remote_history(engine_factory, git_settings, tmp_path, bare_remote):
    first = engine_factory()
    first._store.save("config", {"a": 1})
    first._store.save("cargos", {"g": {}})
    assert await first.sync("from first") is True

    other_settings = replace(git_settings, data_dir=tmp_path / "other")
    second = engine_factory(other_settings)
    second._store.save("config", {"a": 2})
    assert await second.sync("from second") is True

    remote = Repo(bare_remote)
    assert _remote_messages(bare_remote) == ["from second", "from first"]
    names = sorted(blob.name for blob in remote.commit("main").tree.blobs)
    assert names == ["cargos.json", "config.json"]
    assert b'"a": 2' in (remote.commit("main").tree / "config.json").data_stream.read()


@requires_git
@pytest.mark.asyncio
async def test_lost_repository_is_reinitialised(engine_factory, bare_remote, caplog):
    engine = engine_factory()
    engine._store.save("config", {"a": 1})
    assert await engine.sync("first") is True

    shutil.rmtree(engine.workdir / ".git")
    with caplog.at_level(logging.ERROR, logger="rota_bot.sync"):
        assert await engine.sync("lost") is False
    assert engine.last_failure.kind is SyncFailureKind.NOT_A_REPOSITORY
    assert not engine.initialized

    engine._store.save("config", {"a": 3})
    assert await engine.sync("recovered") is True
    assert engine.initialized
    assert _remote_messages(bare_remote) == ["recovered", "first"]


@requires_git
@pytest.mark.asyncio
async def test_unreachable_remote_keeps_local_snapshot(engine_factory, git_settings, tmp_path):
    settings = replace(git_settings, remote_url_override=str(tmp_path / "missing.git"))
    engine = engine_factory(settings)
    engine._store.save("config", {"a": 1})

    assert await engine.sync("msg") is False
    assert engine.last_failure is not None
    assert not engine.gate.held
    assert engine._store.load("config") == {"a": 1}


@requires_git
@pytest.mark.asyncio
async def test_check_connectivity(engine_factory, git_settings, bare_remote, tmp_path):
    engine = engine_factory()
    engine._store.save("config", {"a": 1})
    assert await engine.sync("seed") is True
    assert await engine.check_connectivity() is True

    broken = engine_factory(
        replace(git_settings, data_dir=tmp_path / "broken", remote_url_override=str(tmp_path / "nope.git"))
    )
    assert await broken.check_connectivity() is False
    assert broken.last_failure is not None


@pytest.mark.asyncio
async def test_forced_gate_moves_past_a_wedged_git_call(settings, caplog):
    settings = replace(settings, gate_poll_interval=0.01, gate_max_attempts=5)
    engine = RemoteSyncEngine(settings, SnapshotStore(settings.data_dir))
    unblock = threading.Event()

    def fake_sync(message):
        if message == "stuck":
            unblock.wait(timeout=5)
        return True

    engine._sync_blocking = fake_sync
    with caplog.at_level(logging.WARNING, logger="rota_bot.sync"):
        stuck = asyncio.create_task(engine.sync("stuck"))
        await asyncio.sleep(0.05)
        assert await asyncio.wait_for(engine.sync("second"), timeout=1) is True

    assert "sync.worker_abandoned" in [getattr(r, "event", None) for r in caplog.records]
    assert not engine.gate.held

    unblock.set()
    assert await stuck is True
    assert not engine.gate.held
    engine.close()


@pytest.mark.asyncio
async def test_abandoned_job_does_not_release_the_new_holder(settings):
    settings = replace(settings, gate_poll_interval=0.01, gate_max_attempts=5)
    engine = RemoteSyncEngine(settings, SnapshotStore(settings.data_dir))
    unblock_first = threading.Event()
    unblock_second = threading.Event()

    def fake_sync(message):
        {"first": unblock_first, "second": unblock_second}[message].wait(timeout=5)
        return True

    engine._sync_blocking = fake_sync
    first = asyncio.create_task(engine.sync("first"))
    await asyncio.sleep(0.02)
    second = asyncio.create_task(engine.sync("second"))
    await asyncio.sleep(0.15)

    unblock_first.set()
    assert await first is True
    assert engine.gate.held

    unblock_second.set()
    assert await second is True
    assert not engine.gate.held
    engine.close()


@requires_git
@pytest.mark.asyncio
async def test_network_calls_are_bounded_by_the_git_timeout(engine_factory, git_settings, bare_remote, monkeypatch):
    settings = replace(git_settings, git_timeout_seconds=7.5)
    fetch_timeouts = []
    push_timeouts = []
    real_fetch = git.remote.Remote.fetch
    real_execute = git.cmd.Git.execute

    def spy_fetch(self, *args, **kwargs):
        fetch_timeouts.append(kwargs.get("kill_after_timeout"))
        return real_fetch(self, *args, **kwargs)

    def spy_execute(self, command, *args, **kwargs):
        if "push" in command:
            push_timeouts.append(kwargs.get("kill_after_timeout"))
        return real_execute(self, command, *args, **kwargs)

    monkeypatch.setattr(git.remote.Remote, "fetch", spy_fetch)
    monkeypatch.setattr(git.cmd.Git, "execute", spy_execute)

    engine = engine_factory(settings)
    engine._store.save("config", {"a": 1})
    assert await engine.sync("seed") is True
    assert await engine.check_connectivity() is True

    assert fetch_timeouts == [7.5, 7.5]
    assert push_timeouts == [7.5]
