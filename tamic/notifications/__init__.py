# Notifications
"""Outbound email notifications."""

from tamic.notifications.email import (
    FunctionsNotifier,
    INotifier,
    NullNotifier,
    RecordingNotifier,
)

__all__ = ["FunctionsNotifier", "INotifier", "NullNotifier", "RecordingNotifier"]
