"""
CONTRACT 4: Risk Validation Engine

Input: balance + entry/stop + RiskConfig
Output: PositionSize / TakeProfitPlan / StopLossValidation / BreakevenDecision / TradingStreak

This module performs DETERMINISTIC risk checks.
A trade that violates a rule is rejected, never adjusted silently.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


# =============================================================================
# ENUMS
# =============================================================================


class TradeDirection(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class CheckStatus(str, Enum):
    VALID = "valid"
    WARNING = "warning"
    ERROR = "error"


class BreakevenAction(str, Enum):
    HOLD = "hold"
    MOVE_TO_BREAKEVEN = "move_to_breakeven"


# =============================================================================
# INPUT: Risk Configuration
# =============================================================================


class RiskConfig(BaseModel):
    """Risk rules. All percentages are 0-100."""

    max_risk_per_trade: float = Field(default=2.0, gt=0, le=100, description="% of balance")
    absolute_max_risk: float = Field(default=3.0, gt=0, le=100, description="Hard cap, % of balance")
    max_leverage: float = Field(default=20.0, ge=1)
    min_risk_reward: float = Field(default=2.0, gt=0)
    min_risk_reward_counter_trend: float = Field(default=2.5, gt=0)
    counter_trend_risk_multiplier: float = Field(default=0.7, gt=0, le=1)
    max_consecutive_losses: int = Field(default=3, ge=1)
    emergency_stop_percent: float = Field(default=20.0, gt=0, le=100)
    max_stop_risk_percent: float = Field(default=10.0, gt=0, description="Per-unit stop distance, % of entry")
    max_stop_distance_percent: float = Field(default=3.0, gt=0)
    min_stop_distance_percent: float = Field(default=0.5, ge=0)
    default_stop_percent: float = Field(default=2.0, gt=0)
    level_margin_percent: float = Field(
        default=0.1,
        ge=0,
        description="Stop must clear support/resistance by this much",
    )
    breakeven_profit_threshold: float = Field(default=40.0, gt=0, description="Move in the trade direction, % of entry")


class TradeRecord(BaseModel):
    """Closed trade, newest last."""

    pnl: float
    symbol: Optional[str] = None


# =============================================================================
# OUTPUT
# =============================================================================


class PositionSize(BaseModel):
    direction: TradeDirection
    position_size: float = Field(..., gt=0, description="Units of the instrument")
    position_value: float = Field(..., gt=0)
    required_capital: float = Field(..., gt=0, description="Margin at the given leverage")
    leverage: float = Field(..., gt=0)
    risk_amount: float = Field(..., gt=0)
    risk_percent: float = Field(..., gt=0)
    price_risk: float = Field(..., gt=0)
    price_risk_percent: float = Field(..., gt=0)
    warnings: list[str] = Field(default_factory=list)


class TakeProfitPlan(BaseModel):
    direction: TradeDirection
    take_profit: float
    risk_distance: float = Field(..., gt=0)
    reward_distance: float = Field(..., gt=0)
    risk_reward: float = Field(..., gt=0)


class StopLossCheck(BaseModel):
    check: str
    status: CheckStatus
    message: str


class StopLossValidation(BaseModel):
    is_valid: bool
    direction: TradeDirection
    risk_percent: float
    checks: list[StopLossCheck] = Field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [c.message for c in self.checks if c.status == CheckStatus.WARNING]

    @property
    def errors(self) -> list[str]:
        return [c.message for c in self.checks if c.status == CheckStatus.ERROR]


class BreakevenDecision(BaseModel):
    action: BreakevenAction
    profit_percent: float = Field(..., description="Move in the trade direction, % of entry")
    required_percent: float
    stop_loss: float = Field(..., description="Stop to use from now on")
    previous_stop_loss: float
    message: str


class StreakRecommendation(BaseModel):
    type: str
    message: str
    action: str


class TradingStreak(BaseModel):
    consecutive_losses: int = Field(..., ge=0)
    drawdown_percent: float
    should_pause: bool
    emergency_stop: bool
    recommendations: list[StreakRecommendation] = Field(default_factory=list)


class RiskAssessment(BaseModel):
    """Full validation of one proposed trade."""

    position: PositionSize
    stop_loss: StopLossValidation
    effective_risk_percent: float = Field(..., gt=0)
    warnings: list[str] = Field(default_factory=list)
