"""
Notifications

CONTRACT:
    Input:  ValidSignal
    Output: delivery flag

Formatting helpers and the sink contract. Transport is out of scope.
"""

from signal_engine.services.notifications.sink import (
    LoggingNotificationSink,
    NotificationSink,
    format_signal_message,
)

__all__ = [
    "NotificationSink",
    "LoggingNotificationSink",
    "format_signal_message",
]
