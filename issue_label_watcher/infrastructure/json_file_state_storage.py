"""JSON file implementation of the persisted state storage."""
import json
import logging
import os
import tempfile
from pathlib import Path
from issue_label_watcher.domain.models import PersistedState
from issue_label_watcher.domain.state_interface import IStateStorage


logger = logging.getLogger(__name__)


class JsonFileStateStorage(IStateStorage):
    """Keeps the state document in a local JSON file.

    Writes go to a temporary file in the same directory that then replaces the
    original, so a crash mid-write never leaves a truncated document.
    """

    def __init__(self, path: str):
        self._path = Path(path)

    def load(self) -> PersistedState:
        if not self._path.exists():
            logger.info(f"No state file at {self._path}, starting empty")
            return PersistedState()

        with open(self._path, 'r', encoding='utf-8') as f:
            state = PersistedState.from_document(json.load(f))
        logger.info(f"Loaded state with {state.total_issues} seen issues from {self._path}")
        return state

    def save(self, state: PersistedState) -> None:
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=directory, prefix=f".{self._path.name}.")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(state.to_document(), f, indent=2)
            os.replace(temp_path, self._path)
        except Exception:
            os.unlink(temp_path)
            raise
        logger.info(f"Saved state with {state.total_issues} seen issues to {self._path}")

    def close(self) -> None:
        pass
