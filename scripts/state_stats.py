"""Display statistics about the persisted watcher state."""
import sys
from datetime import datetime, timezone
from dotenv import load_dotenv
from issue_label_watcher.infrastructure.factory import build_storage
from issue_label_watcher.infrastructure.settings import WatcherSettings

# Load environment variables from .env or env file
load_dotenv('.env') or load_dotenv('env')


def print_section(title: str):
    """Print a section header."""
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def display_statistics(state, configured=()):
    """Display counts of notified issues per repository."""
    print_section("Overall Statistics")
    print(f"Repositories with state: {len(state.issues_by_repo)}")
    print(f"Issues notified: {state.total_issues:,}")

    if state.last_run_time is not None:
        age = datetime.now(timezone.utc) - state.last_run_time
        print(f"Last run: {state.last_run_time.isoformat()} ({age.total_seconds() / 3600:.1f} hours ago)")
    else:
        print("Last run: never")

    print_section("Notified Issues by Repository")
    print(f"{'Repository':<45} {'Issues':>10}")
    print("-" * 60)
    ranked = sorted(state.issues_by_repo.items(), key=lambda item: len(item[1]), reverse=True)
    for full_name, numbers in ranked:
        print(f"{full_name:<45} {len(numbers):>10,}")

    known = {name.lower() for name in state.issues_by_repo}
    unseen = [r.full_name for r in configured if r.full_name.lower() not in known]
    if unseen:
        print_section("Configured Repositories Without State")
        for full_name in unseen:
            print(full_name)


if __name__ == "__main__":
    try:
        settings = WatcherSettings.from_env()
        storage = build_storage(settings)
        try:
            display_statistics(storage.load(), settings.repositories)
        finally:
            storage.close()
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)
