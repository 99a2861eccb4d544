"""
Protocol definitions for the collaborators the error pipeline talks to.
"""

from enum import Enum
from typing import Iterable, Optional, Protocol


class NotificationTier(str, Enum):
    """Visual weight of a user notification."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    SUCCESS = "success"
    LOADING = "loading"


class KeyValueStorage(Protocol):
    """Durable local key-value storage holding JSON text."""

    def get_item(self, key: str) -> Optional[str]:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def remove_item(self, key: str) -> None:
        ...

    def keys(self) -> Iterable[str]:
        ...


class Notifier(Protocol):
    """Transient, non-blocking user-visible message channel."""

    def notify(self, message: str, duration: float, tier: NotificationTier) -> None:
        """Show `message` for `duration` seconds with styling `tier`."""
        ...


class Navigator(Protocol):
    """Moves the user to another view or reloads the current one."""

    def navigate(self, location: str) -> None:
        ...

    def reload(self) -> None:
        ...
