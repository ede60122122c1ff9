"""Write-now, sync-later persistence used by every command handler."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional, Set

from .config import Settings, get_settings
from .storage import SnapshotIOError, SnapshotStore
from .sync import RemoteSyncEngine
from .telemetry import get_telemetry

logger = logging.getLogger(__name__)


def default_message(name: str) -> str:
    return f"Atualização automática: {SnapshotStore.file_name(name)}"


class FastPathWriter:
    """Commit snapshots to disk immediately and mirror them in the background.

    ``persist`` returns as soon as the local file is written; the remote sync
    is scheduled as a tracked task on the running loop. ``persist_and_sync``
    awaits the sync instead and reports whether it pushed.
    """

    def __init__(self, store: SnapshotStore, engine: RemoteSyncEngine) -> None:
        self._store = store
        self._engine = engine
        self._tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FastPathWriter":
        settings = settings or get_settings()
        store = SnapshotStore(settings.data_dir)
        return cls(store, RemoteSyncEngine(settings, store))

    @property
    def store(self) -> SnapshotStore:
        return self._store

    @property
    def engine(self) -> RemoteSyncEngine:
        return self._engine

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def load_document(self, name: str) -> Dict[str, Any]:
        return self._store.load(name)

    def clear_stale_locks(self) -> None:
        self._engine.clear_stale_locks()

    def _write_local(self, name: str, data: Mapping[str, Any], path: str) -> bool:
        try:
            self._store.save(name, data)
        except SnapshotIOError as exc:
            logger.error(
                "Failed to save %s locally: %s",
                name,
                exc,
                extra={"event": "persist.local_failed", "document": name},
            )
            get_telemetry().track_persist(name, path=path, success=False)
            return False
        logger.info("Saved %s locally", self._store.file_name(name))
        get_telemetry().track_persist(name, path=path, success=True)
        return True

    def persist(
        self, name: str, data: Mapping[str, Any], message: Optional[str] = None
    ) -> bool:
        """Write ``data`` to disk and schedule a background sync."""

        if not self._write_local(name, data, path="fast"):
            return False
        commit_message = message or default_message(name)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "No running event loop; skipping background sync for %s",
                name,
                extra={"event": "persist.sync_skipped", "document": name},
            )
            return True
        task = loop.create_task(self._background_sync(name, commit_message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def persist_and_sync(
        self, name: str, data: Mapping[str, Any], message: Optional[str] = None
    ) -> bool:
        """Write ``data`` to disk, then wait for the remote sync result."""

        if not self._write_local(name, data, path="sync"):
            return False
        pushed = await self._engine.sync(message or default_message(name))
        logger.info(
            "Synchronous sync for %s %s", name, "pushed" if pushed else "did not push"
        )
        return pushed

    async def _background_sync(self, name: str, message: str) -> bool:
        pushed = await self._engine.sync(message)
        if pushed:
            logger.info("Background sync pushed %s", name)
        else:
            logger.info(
                "Background sync for %s did not push",
                name,
                extra={"event": "persist.background_not_pushed", "document": name},
            )
        return pushed

    async def drain(self) -> None:
        """Wait until every scheduled background sync has finished."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        self._engine.close()


__all__ = ["FastPathWriter", "default_message"]
