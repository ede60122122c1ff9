"""Tests for settings loading and environment overrides."""
from __future__ import annotations

from pathlib import Path

from rota_bot.config import SettingsLoader


def test_default_settings_load():
    settings = SettingsLoader().load()
    assert settings.documents == ("pedidos", "config", "cargos", "servidores", "placar")
    assert settings.git_branch == "main"
    assert settings.lock_files == (
        "index.lock",
        "refs/heads/main.lock",
        "HEAD.lock",
        "config.lock",
    )
    assert settings.gate_poll_interval == 2.0
    assert settings.gate_max_attempts == 15
    assert settings.git_timeout_seconds == 30.0
    assert settings.git_token is None


def test_loader_caches_until_forced(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "documents: [config]\ngit:\n  default_repository: org/one.git\n", encoding="utf-8"
    )
    loader = SettingsLoader(path)
    first = loader.load()
    path.write_text(
        "documents: [config]\ngit:\n  default_repository: org/two.git\n", encoding="utf-8"
    )

    assert loader.load() is first
    assert loader.load(force=True).git_repository == "org/two.git"
    assert first.committer_name == "rota-bot"


def test_environment_overrides():
    base = SettingsLoader().load()
    settings = base.with_env(
        {
            "GITHUB_TOKEN": "tok",
            "REPO_URL": "org/repo.git",
            "ROTA_DATA_DIR": "/srv/rota",
            "ROTA_OWNER_ID": "55",
            "ROTA_GIT_BRANCH": "backup",
        }
    )
    assert settings.git_token == "tok"
    assert settings.git_repository == "org/repo.git"
    assert settings.data_dir == Path("/srv/rota")
    assert settings.owner_id == "55"
    assert settings.git_branch == "backup"
    assert "refs/heads/backup.lock" in settings.lock_files
    assert settings.remote_url == "https://tok@github.com/org/repo.git"


def test_empty_token_is_treated_as_missing():
    settings = SettingsLoader().load().with_env({"GITHUB_TOKEN": ""})
    assert settings.git_token is None
    assert settings.git_repository == "SasoriAutoPecas/bot-rota.git"
