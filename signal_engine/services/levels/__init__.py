"""
Support / Resistance Levels

CONTRACT:
    Input:  highs, lows, closes + AnalysisConfig
    Output: SupportResistance

RESPONSIBILITIES:
    - Cluster pivot highs/lows into horizontal levels
    - Score strength and confidence by touches and timespan
    - Flag levels broken by recent closes
    - Score round-number (psychological) levels near price
"""

from signal_engine.services.levels.clustering import (
    analyze_support_resistance,
    cluster_levels,
    psychological_levels,
)

__all__ = [
    "analyze_support_resistance",
    "cluster_levels",
    "psychological_levels",
]
