"""Removal of stale Git lock files left behind by interrupted runs."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from .telemetry import get_telemetry

logger = logging.getLogger(__name__)


class LockJanitor:
    """Best-effort cleanup of well-known lock files in a ``.git`` directory.

    Deleting these files is only safe while no Git operation is running in
    the same working directory; the sync gate guarantees that for this
    process, and the janitor runs right before each guarded sync.
    """

    def __init__(self, git_dir: Path, lock_files: Iterable[str]) -> None:
        self._git_dir = Path(git_dir)
        self._lock_files = tuple(lock_files)

    @property
    def lock_paths(self) -> List[Path]:
        return [self._git_dir / relative for relative in self._lock_files]

    def clear_stale_locks(self) -> List[Path]:
        """Delete each known lock file; return the ones actually removed."""

        removed: List[Path] = []
        for path in self.lock_paths:
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(
                    "Could not remove lock %s: %s",
                    path,
                    exc,
                    extra={"event": "locks.clear_failed", "lock_path": str(path)},
                )
                continue
            logger.info("Removed stale lock %s", path)
            removed.append(path)
        if removed:
            get_telemetry().track_system_event(
                "stale_locks_cleared",
                source="lock_janitor",
                reason=", ".join(p.name for p in removed),
            )
        return removed


__all__ = ["LockJanitor"]
