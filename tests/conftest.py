"""
Shared fixtures.
"""

import numpy as np
import pytest

from signal_engine.schemas.analysis import AnalysisConfig
from signal_engine.schemas.risk import RiskConfig


@pytest.fixture
def analysis_config():
    return AnalysisConfig()


@pytest.fixture
def risk_config():
    return RiskConfig()


@pytest.fixture
def trending_closes():
    """Steady uptrend with a small oscillation."""
    x = np.arange(300)
    return 100 + x * 0.2 + np.sin(x / 3.0)
