"""Configuration loading utilities for the recruitment bot."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml


DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    documents: tuple[str, ...]
    data_dir: Path
    git_branch: str
    git_remote_name: str
    git_host: str
    git_repository: str
    git_token: Optional[str]
    committer_name: str
    committer_email: str
    lock_files: tuple[str, ...]
    gate_poll_interval: float
    gate_max_attempts: int
    leaderboard_default_kind: str
    leaderboard_refresh_minutes: float
    leaderboard_initial_delay: float
    leaderboard_ranking_size: int
    owner_id: str
    nickname_limit: int
    select_option_limit: int
    git_timeout_seconds: float = 30.0
    remote_url_override: Optional[str] = None

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Settings":
        git_cfg = data.get("git", {})
        committer = git_cfg.get("committer", {})
        gate_cfg = data.get("gate", {})
        board_cfg = data.get("leaderboard", {})
        discord_cfg = data.get("discord", {})
        branch = str(git_cfg.get("branch", "main"))
        lock_files = tuple(
            str(item).format(branch=branch)
            for item in git_cfg.get("lock_files", ["index.lock"])
        )
        return Settings(
            documents=tuple(str(name) for name in data["documents"]),
            data_dir=Path(data.get("data_dir", ".")),
            git_branch=branch,
            git_remote_name=str(git_cfg.get("remote_name", "origin")),
            git_host=str(git_cfg.get("host", "github.com")),
            git_repository=str(git_cfg["default_repository"]),
            git_token=None,
            committer_name=str(committer.get("name", "rota-bot")),
            committer_email=str(committer.get("email", "rota-bot@localhost")),
            lock_files=lock_files,
            gate_poll_interval=float(gate_cfg.get("poll_interval_seconds", 2.0)),
            gate_max_attempts=int(gate_cfg.get("max_attempts", 15)),
            leaderboard_default_kind=str(board_cfg.get("default_kind", "semanal")),
            leaderboard_refresh_minutes=float(board_cfg.get("refresh_minutes", 10)),
            leaderboard_initial_delay=float(board_cfg.get("initial_delay_seconds", 5)),
            leaderboard_ranking_size=int(board_cfg.get("ranking_size", 10)),
            owner_id=str(discord_cfg.get("owner_id", "")),
            nickname_limit=int(discord_cfg.get("nickname_limit", 32)),
            select_option_limit=int(discord_cfg.get("select_option_limit", 25)),
            git_timeout_seconds=float(git_cfg.get("timeout_seconds", 30)),
        )

    def with_env(self, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Return a copy with environment overrides applied."""

        env = os.environ if env is None else env
        overrides: Dict[str, Any] = {"git_token": env.get("GITHUB_TOKEN") or None}
        if env.get("REPO_URL"):
            overrides["git_repository"] = env["REPO_URL"]
        if env.get("ROTA_DATA_DIR"):
            overrides["data_dir"] = Path(env["ROTA_DATA_DIR"]).expanduser()
        if env.get("ROTA_OWNER_ID"):
            overrides["owner_id"] = env["ROTA_OWNER_ID"]
        if env.get("ROTA_GIT_BRANCH"):
            branch = env["ROTA_GIT_BRANCH"]
            overrides["git_branch"] = branch
            overrides["lock_files"] = tuple(
                item.replace(f"refs/heads/{self.git_branch}.lock", f"refs/heads/{branch}.lock")
                for item in self.lock_files
            )
        return replace(self, **overrides)

    @property
    def remote_url(self) -> str:
        """HTTPS remote embedding the bearer credential."""

        if self.remote_url_override:
            return self.remote_url_override
        return f"https://{self.git_token}@{self.git_host}/{self.git_repository}"


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or DEFAULT_SETTINGS_PATH
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        self._cache = Settings.from_dict(data)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings with environment overrides."""

    return SettingsLoader().load().with_env()


__all__ = ["Settings", "SettingsLoader", "get_settings"]
