"""Database initialization script.

Creates the table that holds the watcher's persisted state.
"""
import sys
import psycopg2
import logging
from dotenv import load_dotenv
from issue_label_watcher.infrastructure.settings import get_connection_string

# Load environment variables from .env or env file
load_dotenv('.env') or load_dotenv('env')


logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def create_schema(conn) -> None:
    """Create database schema.

    Schema design considerations:
    - One row per named state document, so "recent" and "all" runs (or
      several watcher deployments) can share a database
    - content holds the same JSON document the file backend writes
    - updated_at tracks the last successful save
    """
    cursor = conn.cursor()

    try:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS watcher_state (
                name VARCHAR(255) PRIMARY KEY,
                content JSONB NOT NULL,
                created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.commit()
        logger.info("Database schema created successfully")

    except Exception as e:
        conn.rollback()
        logger.error(f"Error creating schema: {e}")
        raise
    finally:
        cursor.close()


def main():
    """Initialize the database."""
    try:
        conn_string = get_connection_string()
        logger.info("Connecting to database...")

        conn = psycopg2.connect(conn_string)
        conn.autocommit = False

        create_schema(conn)

        conn.close()
        logger.info("Database initialization completed successfully")

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
