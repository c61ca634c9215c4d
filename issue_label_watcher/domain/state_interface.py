"""State storage interface (port) for the persisted dedup state.

This is the port in hexagonal architecture that the infrastructure layer implements.
"""
from abc import ABC, abstractmethod
from issue_label_watcher.domain.models import PersistedState


class IStateStorage(ABC):
    """Abstract interface for persisted state storage."""

    @abstractmethod
    def load(self) -> PersistedState:
        """Load the persisted state.

        An absent document yields an empty state with no last run time.
        """
        pass

    @abstractmethod
    def save(self, state: PersistedState) -> None:
        """Save the state, replacing whatever was stored before."""
        pass

    def acquire_run_lock(self) -> bool:
        """Take the single-writer lock for one run.

        Backends without a lock rely on the scheduler for mutual exclusion.
        """
        return True

    def release_run_lock(self) -> None:
        """Release the lock taken by ``acquire_run_lock``."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close any open connections."""
        pass
