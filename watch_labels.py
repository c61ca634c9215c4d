"""Main entry point for the issue label watcher.

Runs one watch pass using the application service. The mode is the first
argument: ``recent`` (default) looks back to shortly before the previous run,
``all`` walks the full history. Scheduling is left to cron or a similar timer.
"""
import asyncio
import logging
import sys
from datetime import timedelta
from dotenv import load_dotenv
from issue_label_watcher.application.issue_fetcher import IssueFetcher
from issue_label_watcher.application.label_completion import LabelCompletion
from issue_label_watcher.application.label_discovery import LabelDiscovery
from issue_label_watcher.application.pagination import PaginationEngine
from issue_label_watcher.application.watcher_service import LabelWatcherService
from issue_label_watcher.infrastructure.github_client import GitHubGraphQLClient
from issue_label_watcher.infrastructure.factory import build_notifier, build_storage
from issue_label_watcher.infrastructure.settings import SettingsError, WatcherSettings
from issue_label_watcher.version import get_version, user_agent

# Load environment variables from .env or env file
load_dotenv('.env') or load_dotenv('env')


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

MODES = ("recent", "all")


def build_service(settings: WatcherSettings) -> LabelWatcherService:
    """Wire infrastructure components into the application service."""
    github_client = GitHubGraphQLClient(
        settings.github_token,
        user_agent=user_agent(),
        request_timeout=settings.request_timeout,
    )
    engine = PaginationEngine(github_client)
    fetcher = IssueFetcher(
        engine=engine,
        discovery=LabelDiscovery(engine),
        label_completion=LabelCompletion(
            github_client,
            label_page_size=settings.label_page_size,
            max_items=max(settings.page_size, sum(
                len(r.labels) for r in settings.repositories) * settings.page_size * 2),
            item_step=settings.page_size,
        ),
        page_size=settings.page_size,
        label_page_size=settings.label_page_size,
    )
    return LabelWatcherService(
        github_client=github_client,
        fetcher=fetcher,
        storage=build_storage(settings),
        notifier=build_notifier(settings),
        repositories=settings.repositories,
        version=get_version(),
        include_already_viewed_in_email=settings.include_already_viewed_in_email,
        overlap=timedelta(hours=settings.overlap_hours),
    )


async def main():
    """Execute one watch run."""
    mode = sys.argv[1] if len(sys.argv) > 1 else "recent"
    if mode not in MODES:
        logger.error(f"Unknown mode '{mode}', expected one of: {', '.join(MODES)}")
        sys.exit(2)

    try:
        settings = WatcherSettings.from_env()
    except SettingsError as e:
        logger.error(str(e))
        sys.exit(1)

    if settings.debug_logging:
        logging.getLogger("issue_label_watcher").setLevel(logging.DEBUG)
    settings.print_configuration(logger)

    watcher = build_service(settings)

    try:
        if mode == "all":
            metrics = await watcher.find_and_notify_all_labelled_issues()
        else:
            metrics = await watcher.find_and_notify_recent_labelled_issues()

        # Log results
        logger.info("=" * 50)
        logger.info("Watch Metrics:")
        logger.info(f"  Repositories watched: {metrics.repositories_watched}")
        logger.info(f"  Issues fetched: {metrics.issues_fetched}")
        logger.info(f"  Issues notified: {metrics.issues_notified}")
        logger.info(f"  Duration: {metrics.duration_seconds:.2f} seconds")
        logger.info(f"  Results returned: {metrics.results_returned}")
        logger.info("=" * 50)

    except Exception as e:
        logger.error(f"Watch run failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await watcher.close()


if __name__ == "__main__":
    asyncio.run(main())
