"""Notifier interface (port) for delivering rendered notifications."""
from abc import ABC, abstractmethod


class INotifier(ABC):
    """Abstract interface for notification delivery."""

    @abstractmethod
    def notify(self, subject: str, html_body: str) -> None:
        """Deliver one HTML notification.

        Args:
            subject: Message subject
            html_body: Rendered HTML document
        """
        pass
