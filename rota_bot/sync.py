"""Mirror document snapshots to a remote Git repository.

The engine owns the Git working directory that holds the JSON documents.
Each call to :meth:`RemoteSyncEngine.sync` stages whatever known documents
are on disk, commits them if anything changed, and pushes the branch. Calls
are serialised through a :class:`~rota_bot.gate.SyncGate`; the blocking Git
work runs on a dedicated worker thread so the event loop keeps serving
Discord interactions meanwhile.

Failures never escape :meth:`sync`. They are classified, logged with a
remediation hint and reported as ``False``; the local snapshots are left
untouched, so a broken remote degrades to local-only persistence.
"""
from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from .config import Settings
from .gate import SyncGate
from .locks import LockJanitor
from .storage import SnapshotStore
from .telemetry import get_telemetry

logger = logging.getLogger(__name__)


class SyncConfigurationError(RuntimeError):
    """Raised when the remote cannot be configured (e.g. missing token)."""


class SyncFailureKind(str, Enum):
    AUTHENTICATION = "authentication"
    REMOTE_REJECTED = "remote_rejected"
    NOT_A_REPOSITORY = "not_a_repository"
    CONFIGURATION = "configuration"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class SyncFailure:
    kind: SyncFailureKind
    detail: str


_REMEDIATION = {
    SyncFailureKind.AUTHENTICATION: "check that GITHUB_TOKEN is valid and has repo scope",
    SyncFailureKind.REMOTE_REJECTED: "check branch protection rules and token permissions",
    SyncFailureKind.NOT_A_REPOSITORY: "the repository will be reinitialised on the next sync",
    SyncFailureKind.CONFIGURATION: "set GITHUB_TOKEN in the environment",
    SyncFailureKind.TRANSIENT: "the next document change will retry the sync",
}

# Fallback only: used when GitPython gives no structured signal.
_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "invalid username or password",
    "http basic: access denied",
)
_REJECTED_MARKERS = (
    "remote rejected",
    "[rejected]",
    "non-fast-forward",
    "protected branch",
)
_NOT_A_REPO_MARKERS = ("not a git repository",)


def _failure_text(exc: BaseException) -> str:
    parts = [str(exc)]
    stderr = getattr(exc, "stderr", None)
    if stderr:
        parts.append(str(stderr))
    return " ".join(parts).lower()


def classify_failure(exc: BaseException) -> SyncFailureKind:
    """Map an exception raised during a sync onto a failure kind."""

    if isinstance(exc, SyncConfigurationError):
        return SyncFailureKind.CONFIGURATION
    if isinstance(exc, (InvalidGitRepositoryError, NoSuchPathError)):
        return SyncFailureKind.NOT_A_REPOSITORY
    text = _failure_text(exc)
    if any(marker in text for marker in _AUTH_MARKERS):
        return SyncFailureKind.AUTHENTICATION
    if any(marker in text for marker in _REJECTED_MARKERS):
        return SyncFailureKind.REMOTE_REJECTED
    if any(marker in text for marker in _NOT_A_REPO_MARKERS):
        return SyncFailureKind.NOT_A_REPOSITORY
    return SyncFailureKind.TRANSIENT


class RemoteSyncEngine:
    """Stage, commit and push the known documents to the configured remote."""

    def __init__(
        self,
        settings: Settings,
        store: SnapshotStore,
        *,
        gate: Optional[SyncGate] = None,
        janitor: Optional[LockJanitor] = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._workdir = store.root
        self._gate = gate or SyncGate(
            poll_interval=settings.gate_poll_interval,
            max_attempts=settings.gate_max_attempts,
        )
        self._janitor = janitor or LockJanitor(self._workdir / ".git", settings.lock_files)
        self._repo: Optional[Repo] = None
        self._initialized = False
        self._executor = self._new_executor()
        self.last_failure: Optional[SyncFailure] = None

    @property
    def gate(self) -> SyncGate:
        return self._gate

    @property
    def janitor(self) -> LockJanitor:
        return self._janitor

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def workdir(self) -> Path:
        return self._workdir

    def clear_stale_locks(self) -> List[Path]:
        return self._janitor.clear_stale_locks()

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="rota-sync")

    def _abandon_worker(self) -> None:
        """Leave a wedged Git call behind and continue on a fresh worker."""

        logger.warning(
            "Sync gate was forced; abandoning the previous Git worker",
            extra={"event": "sync.worker_abandoned"},
        )
        self._executor.shutdown(wait=False)
        self._executor = self._new_executor()
        self._initialized = False
        self._repo = None

    async def _acquire_gate(self) -> None:
        forced_before = self._gate.forced_releases
        await self._gate.acquire()
        if self._gate.forced_releases != forced_before:
            self._abandon_worker()

    def _release_gate(self, worker: ThreadPoolExecutor) -> None:
        # An abandoned job no longer owns the gate.
        if worker is self._executor:
            self._gate.release()

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def sync(self, message: str) -> bool:
        """Run one stage-commit-push cycle; ``True`` only if a push happened."""

        await self._acquire_gate()
        worker = self._executor
        started = time.time()
        outcome = "failed"
        failure: Optional[SyncFailure] = None
        logger.info("Starting sync: %s", message)
        try:
            pushed = await self._run(self._sync_blocking, message)
            outcome = "pushed" if pushed else "noop"
            self.last_failure = None
            return pushed
        except Exception as exc:
            failure = self._record_failure(exc)
            return False
        finally:
            self._release_gate(worker)
            duration_ms = (time.time() - started) * 1000
            get_telemetry().track_sync(
                outcome,
                duration_ms=duration_ms,
                failure_kind=failure.kind.value if failure else None,
                commit_message=message,
            )
            logger.info("Sync finished (%s) in %.0fms", outcome, duration_ms)

    async def check_connectivity(self) -> bool:
        """Initialise the repository if needed and fetch the primary branch."""

        await self._acquire_gate()
        worker = self._executor
        try:
            await self._run(self._fetch_blocking)
        except Exception as exc:
            self._record_failure(exc)
            return False
        finally:
            self._release_gate(worker)
        logger.info("Connectivity with %s OK", self._settings.git_host)
        return True

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        if self._repo is not None:
            self._repo.close()
            self._repo = None

    def _record_failure(self, exc: BaseException) -> SyncFailure:
        kind = classify_failure(exc)
        failure = SyncFailure(kind=kind, detail=self._redact(_failure_text(exc)))
        self.last_failure = failure
        if kind is SyncFailureKind.NOT_A_REPOSITORY:
            self._initialized = False
            if self._repo is not None:
                self._repo.close()
            self._repo = None
        logger.error(
            "Sync failed (%s): %s; %s",
            kind.value,
            self._redact(str(exc)),
            _REMEDIATION[kind],
            extra={"event": "sync.failed", "failure_kind": kind.value},
        )
        return failure

    def _redact(self, text: str) -> str:
        token = self._settings.git_token
        if token:
            return text.replace(token, "***")
        return text

    # Blocking helpers below run on the worker thread only.

    def _sync_blocking(self, message: str) -> bool:
        repo = self._ensure_repository()
        self._janitor.clear_stale_locks()

        files = self._store.existing(self._settings.documents)
        if not files:
            logger.info("No documents on disk; nothing to sync")
            return False

        repo.git.add("--", *files)
        changed = self._staged_changes(repo, files)
        if not changed:
            logger.info("No document changes to commit")
            return False

        logger.info("Committing %d document(s): %s", len(changed), ", ".join(changed))
        repo.git.commit("-m", message)
        logger.info("Committed %s", repo.head.commit.hexsha[:10])

        branch = self._settings.git_branch
        repo.git.push(
            "--set-upstream",
            self._settings.git_remote_name,
            f"{branch}:{branch}",
            kill_after_timeout=self._settings.git_timeout_seconds,
        )
        logger.info("Pushed %s to %s", branch, self._settings.git_remote_name)
        return True

    def _fetch_blocking(self) -> None:
        repo = self._ensure_repository()
        repo.remote(self._settings.git_remote_name).fetch(
            self._settings.git_branch, kill_after_timeout=self._settings.git_timeout_seconds
        )

    @staticmethod
    def _staged_changes(repo: Repo, files: List[str]) -> List[str]:
        if not repo.head.is_valid():
            return list(files)
        output = repo.git.diff("--cached", "--name-only", "--", *files)
        return [line for line in output.splitlines() if line.strip()]

    def _ensure_repository(self) -> Repo:
        if self._initialized and self._repo is not None:
            return self._repo
        self._repo = self._initialize()
        self._initialized = True
        logger.info("Git repository ready at %s", self._workdir)
        return self._repo

    def _initialize(self) -> Repo:
        settings = self._settings
        if not settings.git_token:
            raise SyncConfigurationError("GITHUB_TOKEN is not configured")

        logger.info("Initialising Git repository in %s", self._workdir)
        self._janitor.clear_stale_locks()
        try:
            repo = Repo(self._workdir)
            logger.info("Using existing Git repository")
        except (InvalidGitRepositoryError, NoSuchPathError):
            self._workdir.mkdir(parents=True, exist_ok=True)
            repo = Repo.init(self._workdir)
            logger.info("Created new Git repository")
        repo.git.update_environment(GIT_TERMINAL_PROMPT="0")

        with repo.config_writer() as config:
            config.set_value("user", "name", settings.committer_name)
            config.set_value("user", "email", settings.committer_email)

        remote_name = settings.git_remote_name
        if remote_name in [remote.name for remote in repo.remotes]:
            repo.delete_remote(repo.remote(remote_name))
        remote = repo.create_remote(remote_name, settings.remote_url)
        logger.info("Configured remote %s for %s", remote_name, settings.git_repository)

        branch = settings.git_branch
        try:
            remote.fetch(branch, kill_after_timeout=settings.git_timeout_seconds)
        except GitCommandError as exc:
            logger.warning(
                "Fetch of %s failed; starting a local %s branch: %s",
                branch,
                branch,
                self._redact(str(exc)),
                extra={"event": "sync.fetch_failed"},
            )
            self._attach_branch(repo, branch, tracking=None)
        else:
            self._attach_branch(repo, branch, tracking=remote.refs[branch])
        return repo

    @staticmethod
    def _attach_branch(repo: Repo, branch: str, tracking: Any) -> None:
        """Point HEAD at ``branch`` without touching the working tree.

        The working tree holds the live snapshots, so they must survive
        whatever the remote branch contains; the next commit records them
        on top of the fetched history.
        """

        if branch in repo.heads:
            head = repo.heads[branch]
        elif tracking is not None:
            head = repo.create_head(branch, tracking.commit)
        else:
            repo.git.symbolic_ref("HEAD", f"refs/heads/{branch}")
            logger.info("Using orphan branch %s", branch)
            return
        if tracking is not None:
            head.set_tracking_branch(tracking)
        if repo.head.is_detached or repo.head.reference != head:
            repo.head.reference = head
        repo.head.reset(index=True, working_tree=False)
        logger.info("Using branch %s", branch)


__all__ = [
    "RemoteSyncEngine",
    "SyncConfigurationError",
    "SyncFailure",
    "SyncFailureKind",
    "classify_failure",
]
