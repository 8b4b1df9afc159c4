"""
Confluence Signal Engine

Turns OHLCV candles into risk-validated trade signals.
"""

__version__ = "0.1.0"
