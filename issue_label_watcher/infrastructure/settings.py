"""Settings loaded from environment variables."""
import logging
import os
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple
from issue_label_watcher.domain.models import WatchedRepository


logger = logging.getLogger(__name__)

MIN_PAGE_SIZE = 5
MAX_PAGE_SIZE = 100

_TRUE_VALUES = {"1", "true", "yes", "on"}


class SettingsError(ValueError):
    """Raised when required configuration is missing or malformed."""
    pass


def repo_env_key(full_name: str) -> str:
    """Environment key fragment for a repository: ``dotnet/runtime`` -> ``DOTNET_RUNTIME``."""
    return re.sub(r"[^A-Z0-9]", "_", full_name.upper())


def _split(value: Optional[str]) -> List[str]:
    """Split a ``;``-separated list, dropping blanks and case-insensitive duplicates."""
    items: List[str] = []
    seen = set()
    for item in (value or "").split(";"):
        item = item.strip()
        if item and item.lower() not in seen:
            seen.add(item.lower())
            items.append(item)
    return items


def _get_bool(environ: Mapping[str, str], key: str, default: bool = False) -> bool:
    value = environ.get(key)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _get_int(environ: Mapping[str, str], key: str, default: int) -> int:
    value = environ.get(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise SettingsError(f"{key} must be an integer, got {value!r}")


def _get_float(environ: Mapping[str, str], key: str, default: float) -> float:
    value = environ.get(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise SettingsError(f"{key} must be a number, got {value!r}")


def _clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))


@dataclass(frozen=True)
class WatcherSettings:
    """Immutable watcher configuration."""
    github_token: str
    repositories: Tuple[WatchedRepository, ...]
    page_size: int = 10
    label_page_size: int = 10
    include_already_viewed_in_email: bool = False
    overlap_hours: float = 1.0
    request_timeout: int = 60
    state_backend: str = "file"
    state_path: str = "ilw_state.json"
    postgres_connection_string: str = ""
    smtp_server: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_from: Optional[str] = None
    smtp_to: Optional[str] = None
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    debug_logging: bool = False

    @property
    def smtp_enabled(self) -> bool:
        return bool(self.smtp_server and self.smtp_from and self.smtp_to)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'WatcherSettings':
        """Build settings from environment variables.

        Raises:
            SettingsError: If GITHUB_TOKEN is missing or a value is malformed
        """
        environ = os.environ if environ is None else environ

        github_token = environ.get("GITHUB_TOKEN")
        if not github_token:
            raise SettingsError("GITHUB_TOKEN environment variable is required")

        state_backend = environ.get("ILW_STATE_BACKEND", "file").strip().lower()
        if state_backend not in ("file", "postgres"):
            raise SettingsError(f"ILW_STATE_BACKEND must be 'file' or 'postgres', got {state_backend!r}")

        return cls(
            github_token=github_token,
            repositories=tuple(_parse_repositories(environ)),
            page_size=_clamp(_get_int(environ, "ILW_CHUNK_SIZE", 10), MIN_PAGE_SIZE, MAX_PAGE_SIZE),
            label_page_size=_clamp(_get_int(environ, "ILW_LABEL_CHUNK_SIZE", 10), 1, MAX_PAGE_SIZE),
            include_already_viewed_in_email=_get_bool(environ, "ILW_INCLUDE_ALREADY_VIEWED_IN_EMAIL"),
            overlap_hours=_get_float(environ, "ILW_OVERLAP_HOURS", 1.0),
            request_timeout=_get_int(environ, "ILW_REQUEST_TIMEOUT", 60),
            state_backend=state_backend,
            state_path=environ.get("ILW_STATE_PATH", "ilw_state.json"),
            postgres_connection_string=get_connection_string(environ),
            smtp_server=environ.get("SMTP_SERVER") or None,
            smtp_port=_get_int(environ, "SMTP_PORT", 0) or None,
            smtp_from=environ.get("SMTP_FROM") or None,
            smtp_to=environ.get("SMTP_TO") or None,
            smtp_username=environ.get("SMTP_USERNAME") or None,
            smtp_password=environ.get("SMTP_PASSWORD") or None,
            debug_logging=bool(environ.get("ILW_DEBUG_LOGGING")),
        )

    def print_configuration(self, log: logging.Logger = logger) -> None:
        """Log the watched repositories and their labels."""
        lines = [f"Repositories: {len(self.repositories)}"]
        for repository in self.repositories:
            flags = []
            if repository.watch_pinned:
                flags.append("pinned")
            if repository.watch_pull_requests:
                flags.append("pull requests")
            suffix = f" ({', '.join(flags)})" if flags else ""
            lines.append(f"    {repository.full_name}: {len(repository.labels)}{suffix}")
            for label in repository.labels:
                lines.append(f"        {label}")
        log.info("\n".join(lines))


def _parse_repositories(environ: Mapping[str, str]) -> List[WatchedRepository]:
    repositories: List[WatchedRepository] = []
    for full_name in _split(environ.get("ILW_REPOS")):
        owner, _, name = full_name.partition("/")
        if not owner or not name:
            logger.warning(f"Ignoring repository '{full_name}', expected owner/name")
            continue

        key = repo_env_key(full_name)
        repositories.append(WatchedRepository(
            owner=owner,
            name=name,
            labels=tuple(_split(environ.get(f"ILW_REPO_{key}_LABELS"))),
            watch_pinned=_get_bool(environ, f"ILW_REPO_{key}_WATCH_PINNED_ISSUES"),
            watch_pull_requests=_get_bool(environ, f"ILW_REPO_{key}_WATCH_PULL_REQUESTS"),
        ))
    return repositories


def get_connection_string(environ: Optional[Mapping[str, str]] = None) -> str:
    """Build PostgreSQL connection string from environment variables."""
    environ = os.environ if environ is None else environ
    host = environ.get("POSTGRES_HOST", "localhost")
    port = environ.get("POSTGRES_PORT", "5432")
    database = environ.get("POSTGRES_DB", "issue_label_watcher")
    user = environ.get("POSTGRES_USER", "postgres")
    password = environ.get("POSTGRES_PASSWORD", "postgres")

    return f"host={host} port={port} dbname={database} user={user} password={password}"
