"""Tests for environment configuration."""
import logging
import pytest
from issue_label_watcher.infrastructure.settings import (
    SettingsError,
    WatcherSettings,
    get_connection_string,
    repo_env_key,
)


def _env(**values):
    env = {"GITHUB_TOKEN": "ghp_test"}
    env.update(values)
    return env


def test_repo_env_key():
    """Test repository names map onto environment variable fragments."""
    assert repo_env_key("dotnet/runtime") == "DOTNET_RUNTIME"
    assert repo_env_key("my-org/my.repo") == "MY_ORG_MY_REPO"


def test_token_is_required():
    """Test that a missing token is a configuration error."""
    with pytest.raises(SettingsError):
        WatcherSettings.from_env({})


def test_repositories_and_per_repository_options():
    """Test parsing of the repository list and its per-repository keys."""
    settings = WatcherSettings.from_env(_env(
        ILW_REPOS="dotnet/runtime; Owner/Repo;;dotnet/RUNTIME;invalid",
        ILW_REPO_DOTNET_RUNTIME_LABELS="area-System.Net;bug;BUG",
        ILW_REPO_DOTNET_RUNTIME_WATCH_PULL_REQUESTS="true",
        ILW_REPO_OWNER_REPO_WATCH_PINNED_ISSUES="1",
    ))

    runtime, repo = settings.repositories
    assert runtime.full_name == "dotnet/runtime"
    assert runtime.labels == ("area-System.Net", "bug")
    assert runtime.watch_pull_requests is True
    assert runtime.watch_pinned is False
    assert repo.full_name == "Owner/Repo"
    assert repo.labels == ()
    assert repo.watch_pinned is True


def test_defaults():
    """Test values used when nothing optional is set."""
    settings = WatcherSettings.from_env(_env())

    assert settings.repositories == ()
    assert settings.page_size == 10
    assert settings.label_page_size == 10
    assert settings.include_already_viewed_in_email is False
    assert settings.state_backend == "file"
    assert settings.state_path == "ilw_state.json"
    assert settings.smtp_enabled is False
    assert settings.debug_logging is False


def test_page_sizes_are_clamped():
    """Test page sizes outside the upstream limits."""
    assert WatcherSettings.from_env(_env(ILW_CHUNK_SIZE="500")).page_size == 100
    assert WatcherSettings.from_env(_env(ILW_CHUNK_SIZE="1")).page_size == 5
    assert WatcherSettings.from_env(_env(ILW_LABEL_CHUNK_SIZE="0")).label_page_size == 1


def test_malformed_values_are_rejected():
    """Test malformed integers and unknown backends."""
    with pytest.raises(SettingsError):
        WatcherSettings.from_env(_env(ILW_CHUNK_SIZE="ten"))
    with pytest.raises(SettingsError):
        WatcherSettings.from_env(_env(ILW_STATE_BACKEND="redis"))


def test_smtp_and_policy_flags():
    """Test notification settings."""
    settings = WatcherSettings.from_env(_env(
        SMTP_SERVER="smtp.example.com",
        SMTP_PORT="2525",
        SMTP_FROM="watcher@example.com",
        SMTP_TO="me@example.com",
        ILW_INCLUDE_ALREADY_VIEWED_IN_EMAIL="yes",
        ILW_STATE_BACKEND="Postgres",
    ))

    assert settings.smtp_enabled is True
    assert settings.smtp_port == 2525
    assert settings.include_already_viewed_in_email is True
    assert settings.state_backend == "postgres"


def test_connection_string():
    """Test the PostgreSQL connection string defaults."""
    assert get_connection_string({}) == (
        "host=localhost port=5432 dbname=issue_label_watcher user=postgres password=postgres"
    )
    assert "host=db" in get_connection_string({"POSTGRES_HOST": "db"})


def test_print_configuration(caplog):
    """Test the configuration summary lists repositories and labels."""
    settings = WatcherSettings.from_env(_env(
        ILW_REPOS="o/n",
        ILW_REPO_O_N_LABELS="bug",
        ILW_REPO_O_N_WATCH_PINNED_ISSUES="true",
    ))

    with caplog.at_level(logging.INFO):
        settings.print_configuration(logging.getLogger("test"))

    assert "o/n: 1 (pinned)" in caplog.text
    assert "        bug" in caplog.text
