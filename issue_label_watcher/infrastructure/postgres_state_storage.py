"""PostgreSQL implementation of the persisted state storage."""
import json
import logging
import psycopg2
from issue_label_watcher.domain.models import PersistedState
from issue_label_watcher.domain.state_interface import IStateStorage


logger = logging.getLogger(__name__)

# Arbitrary fixed key shared by every watcher process using the same database.
RUN_LOCK_KEY = 0x494C57


class PostgresStateStorage(IStateStorage):
    """PostgreSQL implementation of state storage.

    The state is kept as one JSON document per name in the ``watcher_state``
    table, written with an UPSERT. A session-level advisory lock keeps two
    runs from working on the same state at once.
    """

    def __init__(self, connection_string: str, state_name: str = "state", connection=None):
        """Initialize PostgreSQL connection.

        Args:
            connection_string: PostgreSQL connection string
            state_name: Name of the state document
            connection: Existing DB-API connection to use instead of connecting
        """
        self._connection_string = connection_string
        self._state_name = state_name
        self._conn = connection if connection is not None else psycopg2.connect(connection_string)
        self._conn.autocommit = False
        logger.info("Connected to PostgreSQL database")

    def load(self) -> PersistedState:
        """Load the state document, or an empty state if none is stored."""
        cursor = self._conn.cursor()
        try:
            cursor.execute(
                "SELECT content FROM watcher_state WHERE name = %s",
                (self._state_name,)
            )
            row = cursor.fetchone()
            self._conn.commit()
        finally:
            cursor.close()

        if row is None:
            logger.info("No persisted state found, starting empty")
            return PersistedState()

        content = row[0]
        document = json.loads(content) if isinstance(content, str) else content
        state = PersistedState.from_document(document)
        logger.info(f"Loaded state with {state.total_issues} seen issues")
        return state

    def save(self, state: PersistedState) -> None:
        """Save the state document using an UPSERT."""
        cursor = self._conn.cursor()

        try:
            cursor.execute(
                """
                INSERT INTO watcher_state (name, content, updated_at)
                VALUES (%s, %s, CURRENT_TIMESTAMP)
                ON CONFLICT (name)
                DO UPDATE SET
                    content = EXCLUDED.content,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (self._state_name, json.dumps(state.to_document()))
            )
            self._conn.commit()
            logger.info(f"Saved state with {state.total_issues} seen issues")

        except Exception as e:
            self._conn.rollback()
            logger.error(f"Error saving state: {e}")
            raise
        finally:
            cursor.close()

    def acquire_run_lock(self) -> bool:
        cursor = self._conn.cursor()
        try:
            cursor.execute("SELECT pg_try_advisory_lock(%s)", (RUN_LOCK_KEY,))
            acquired = bool(cursor.fetchone()[0])
            self._conn.commit()
            return acquired
        finally:
            cursor.close()

    def release_run_lock(self) -> None:
        cursor = self._conn.cursor()
        try:
            cursor.execute("SELECT pg_advisory_unlock(%s)", (RUN_LOCK_KEY,))
            self._conn.commit()
        finally:
            cursor.close()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            logger.info("Closed PostgreSQL connection")
