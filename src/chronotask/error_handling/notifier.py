"""
Notification surface and navigation targets used by the error pipeline.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from chronotask.models.protocols import NotificationTier

logger = logging.getLogger(__name__)

_TIER_LEVELS = {
    NotificationTier.INFO: logging.INFO,
    NotificationTier.SUCCESS: logging.INFO,
    NotificationTier.LOADING: logging.INFO,
    NotificationTier.WARNING: logging.WARNING,
    NotificationTier.ERROR: logging.ERROR,
    NotificationTier.CRITICAL: logging.CRITICAL,
}


@dataclass
class Notification:
    message: str
    duration: float
    tier: NotificationTier
    timestamp: datetime = field(default_factory=datetime.now)


class LoggingNotifier:
    """Default notifier: writes notifications to the application log."""

    def notify(self, message: str, duration: float, tier: NotificationTier) -> None:
        logger.log(_TIER_LEVELS.get(tier, logging.INFO), f"[{tier.value}] {message}")


class RecordingNotifier:
    """Keeps every notification so a UI (or a test) can render them."""

    def __init__(self, max_items: int = 50):
        self.max_items = max_items
        self.notifications: List[Notification] = []

    def notify(self, message: str, duration: float, tier: NotificationTier) -> None:
        self.notifications.append(Notification(message, duration, tier))
        if len(self.notifications) > self.max_items:
            self.notifications = self.notifications[-self.max_items :]

    @property
    def last(self):
        return self.notifications[-1] if self.notifications else None

    def clear(self) -> None:
        self.notifications.clear()


class RecordingNavigator:
    """Tracks the current view location for a client without a browser."""

    def __init__(self, location: str = "/"):
        self.location = location
        self.history: List[str] = [location]
        self.reload_count = 0

    def navigate(self, location: str) -> None:
        logger.info(f"Navigating to {location}")
        self.location = location
        self.history.append(location)

    def reload(self) -> None:
        logger.info(f"Reloading {self.location}")
        self.reload_count += 1
