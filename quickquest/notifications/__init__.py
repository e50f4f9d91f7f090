"""
Account email notifications.
"""

from quickquest.notifications.dispatcher import NotificationDispatcher
from quickquest.notifications.notifier import (
    LogNotifier,
    NotificationError,
    Notifier,
    ResendNotifier,
    build_notifier,
)

__all__ = [
    "NotificationDispatcher",
    "LogNotifier",
    "NotificationError",
    "Notifier",
    "ResendNotifier",
    "build_notifier",
]
