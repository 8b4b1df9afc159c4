"""
Signal notification sinks.

Delivery channels (chat bots, push services) live in the host
application; this module defines the contract and a logging sink.
"""

import logging
from abc import ABC, abstractmethod

from signal_engine.schemas.signal import Direction, ValidSignal

logger = logging.getLogger(__name__)


def format_price(price: float) -> str:
    if price >= 1000:
        return f"{price:,.0f}"
    elif price >= 1:
        return f"{price:,.2f}"
    return f"{price:.6f}"


def format_signal_message(signal: ValidSignal) -> str:
    """One-line summary of a valid signal."""
    side = "LONG" if signal.direction == Direction.LONG else "SHORT"
    message = (
        f"{signal.symbol} {signal.timeframe.value} {side} "
        f"entry {format_price(signal.entry)} "
        f"SL {format_price(signal.stop_loss)} "
        f"TP {format_price(signal.take_profit)} "
        f"R:R {signal.risk_reward:.2f} "
        f"confluence {signal.confluence_score:.0f}"
    )
    if signal.counter_trend:
        message += " (counter-trend)"
    return message


class NotificationSink(ABC):
    """Receives every VALID_SIGNAL the service produces."""

    @abstractmethod
    async def send(self, signal: ValidSignal) -> bool:
        """Deliver a signal. Returns False when delivery failed."""
        pass


class LoggingNotificationSink(NotificationSink):
    """Writes signals to the application log."""

    def __init__(self, level: int = logging.INFO):
        self.level = level
        self.sent = 0

    async def send(self, signal: ValidSignal) -> bool:
        logger.log(self.level, format_signal_message(signal))
        self.sent += 1
        return True
