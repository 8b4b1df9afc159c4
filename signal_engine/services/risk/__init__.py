"""
Risk Validation Engine

CONTRACT:
    Input:  account balance + entry/stop + RiskConfig
    Output: PositionSize, TakeProfitPlan, StopLossValidation,
            BreakevenDecision, TradingStreak, RiskAssessment

RESPONSIBILITIES:
    - Size positions from risk percent and stop distance
    - Enforce leverage and capital limits
    - Place take profit at a risk-reward multiple
    - Validate stop placement against support/resistance
    - Trail stops to breakeven
    - Detect losing streaks and drawdown

All rules are deterministic and auditable.

CRITICAL: Risk rules are NON-NEGOTIABLE.
If a rule fails, the trade cannot proceed.
"""

from signal_engine.services.risk.interface import RiskServiceInterface, RiskValidationInput
from signal_engine.services.risk.service import RiskManager, get_risk_manager

__all__ = [
    "RiskServiceInterface",
    "RiskValidationInput",
    "RiskManager",
    "get_risk_manager",
]
