"""Export the seen-issue state to CSV, one row per notified issue number."""
import sys
import csv
import logging
from dotenv import load_dotenv
from issue_label_watcher.infrastructure.settings import SettingsError, WatcherSettings
from issue_label_watcher.infrastructure.factory import build_storage

# Load environment variables from .env or env file
load_dotenv('.env') or load_dotenv('env')


logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def export_to_csv(storage, output_file: str = "seen_issues.csv") -> int:
    """Export the persisted seen-sets to a CSV file.

    Args:
        storage: State storage to read from
        output_file: Path to output CSV file

    Returns:
        Number of rows written
    """
    state = storage.load()

    with open(output_file, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(['repository', 'issue_number'])

        row_count = 0
        for full_name in sorted(state.issues_by_repo):
            for number in sorted(state.issues_by_repo[full_name], key=lambda n: (len(n), n)):
                writer.writerow([full_name, number])
                row_count += 1

    logger.info(f"Exported {row_count} issue numbers to {output_file}")
    return row_count


if __name__ == "__main__":
    output_file = sys.argv[1] if len(sys.argv) > 1 else "seen_issues.csv"
    try:
        storage = build_storage(WatcherSettings.from_env())
        try:
            export_to_csv(storage, output_file)
        finally:
            storage.close()
    except (SettingsError, OSError) as e:
        logger.error(f"Error exporting state: {e}")
        sys.exit(1)
