"""Builds infrastructure adapters from settings."""
import logging
from issue_label_watcher.domain.notifier_interface import INotifier
from issue_label_watcher.domain.state_interface import IStateStorage
from issue_label_watcher.infrastructure.json_file_state_storage import JsonFileStateStorage
from issue_label_watcher.infrastructure.notifiers import LogNotifier, SmtpNotifier
from issue_label_watcher.infrastructure.settings import WatcherSettings


logger = logging.getLogger(__name__)


def build_storage(settings: WatcherSettings) -> IStateStorage:
    if settings.state_backend == "postgres":
        # Imported lazily so the file backend works without a PostgreSQL client library.
        from issue_label_watcher.infrastructure.postgres_state_storage import PostgresStateStorage
        return PostgresStateStorage(settings.postgres_connection_string)
    return JsonFileStateStorage(settings.state_path)


def build_notifier(settings: WatcherSettings) -> INotifier:
    if settings.smtp_enabled:
        return SmtpNotifier(
            server=settings.smtp_server,
            sender=settings.smtp_from,
            recipient=settings.smtp_to,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
        )
    logger.warning("SMTP is not configured, notifications will only be logged")
    return LogNotifier()
