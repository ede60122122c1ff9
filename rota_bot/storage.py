"""JSON snapshot storage for the bot's documents."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

logger = logging.getLogger(__name__)


class SnapshotIOError(OSError):
    """Raised when a document snapshot cannot be written to disk."""


class SnapshotStore:
    """Reads and writes named JSON documents under a single directory.

    The store does no locking of its own. Concurrent writers to the same
    document name race at the filesystem level and the last write wins.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    @staticmethod
    def file_name(name: str) -> str:
        return name if name.endswith(".json") else f"{name}.json"

    def path_for(self, name: str) -> Path:
        return self._root / self.file_name(name)

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def existing(self, names: Iterable[str]) -> List[str]:
        """Return the file names of the documents currently on disk."""

        return [self.file_name(name) for name in names if self.exists(name)]

    def load(self, name: str) -> Dict[str, Any]:
        """Return the parsed document, or an empty mapping if unavailable."""

        path = self.path_for(name)
        if not path.exists():
            logger.info("Document %s does not exist yet; starting empty", path.name)
            return {}
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning(
                "Failed to load %s; starting empty: %s",
                path.name,
                exc,
                extra={"event": "snapshot.load_failed", "document": path.name},
            )
            return {}
        if not isinstance(data, dict):
            logger.warning(
                "Document %s is not a JSON object; starting empty",
                path.name,
                extra={"event": "snapshot.load_failed", "document": path.name},
            )
            return {}
        return data

    def save(self, name: str, data: Mapping[str, Any]) -> Path:
        """Serialise ``data`` and overwrite the document on disk."""

        path = self.path_for(name)
        try:
            payload = json.dumps(data, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise SnapshotIOError(f"Document {path.name} is not JSON serialisable: {exc}") from exc
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(payload, encoding="utf-8")
        except OSError as exc:
            raise SnapshotIOError(f"Failed to write {path}: {exc}") from exc
        logger.debug("Wrote %s (%d bytes)", path.name, len(payload))
        return path


__all__ = ["SnapshotIOError", "SnapshotStore"]
