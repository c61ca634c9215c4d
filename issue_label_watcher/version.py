"""Installed package version."""
from importlib.metadata import PackageNotFoundError, version

DISTRIBUTION_NAME = "issue-label-watcher"


def get_version() -> str:
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "0.0.0+local"


def user_agent() -> str:
    return f"issue-label-watcher-{get_version()}"
