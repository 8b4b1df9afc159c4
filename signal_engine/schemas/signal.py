"""
CONTRACT 3: Confluence & Signals

Input: AnalysisResult
Output: Signal (VALID_SIGNAL | NEUTRAL_SIGNAL | REJECTED_SIGNAL | FILTERED_SIGNAL)

A VALID_SIGNAL is only ever built with consistent levels: stop loss and
take profit on opposite sides of entry and a risk-reward ratio at or above
the configured minimum.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, Field, model_validator

from signal_engine.schemas.market import Timeframe


# =============================================================================
# ENUMS
# =============================================================================


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"
    NEUTRAL = "neutral"


class AlertLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CAUTION = "caution"


class SignalRecommendation(str, Enum):
    TRADE = "TRADE"
    WAIT = "WAIT"
    AVOID = "AVOID"


# =============================================================================
# CONFLUENCE
# =============================================================================


class ConfluenceFactor(BaseModel):
    """
    One contribution to the confluence score.

    weight is signed: positive is bullish evidence, negative bearish.
    Factors with directional=False (volatility state) adjust the score
    without voting on direction.
    """

    name: str
    weight: float
    directional: bool = True
    evidence: dict[str, Any] = Field(default_factory=dict)


class ConfluenceResult(BaseModel):
    score: float = Field(..., ge=0, le=100)
    factors: list[ConfluenceFactor] = Field(default_factory=list)
    direction: Direction
    bullish_votes: int = Field(default=0, ge=0)
    bearish_votes: int = Field(default=0, ge=0)


# =============================================================================
# LEVELS
# =============================================================================


class SignalLevels(BaseModel):
    """Entry, stop loss and take profit chosen for a direction."""

    direction: Direction
    entry: float = Field(..., gt=0)
    stop_loss: float = Field(..., gt=0)
    take_profit: float = Field(..., gt=0)
    risk_reward: float = Field(..., gt=0)
    stop_source: str
    target_source: str


class Alert(BaseModel):
    level: AlertLevel
    message: str


class FailedFilter(BaseModel):
    name: str
    reason: str


# =============================================================================
# SIGNALS
# =============================================================================


class SignalBase(BaseModel):
    symbol: str
    timeframe: Timeframe
    current_price: float = Field(..., gt=0)
    confluence_score: float = Field(..., ge=0, le=100)
    generated_at: datetime


class ValidSignal(SignalBase):
    """Actionable trade with sized position."""

    type: Literal["VALID_SIGNAL"] = "VALID_SIGNAL"
    recommendation: SignalRecommendation = SignalRecommendation.TRADE

    direction: Direction
    entry: float = Field(..., gt=0)
    stop_loss: float = Field(..., gt=0)
    take_profit: float = Field(..., gt=0)
    risk_reward: float = Field(..., gt=0)
    min_risk_reward: float = Field(..., gt=0)

    position_size: float = Field(..., gt=0)
    leverage: float = Field(..., gt=0)
    max_leverage: float = Field(..., gt=0)
    required_capital: float = Field(..., ge=0)
    risk_amount: float = Field(..., ge=0)
    risk_percent: float = Field(..., gt=0)

    counter_trend: bool = False
    stop_source: str
    target_source: str
    factors: list[ConfluenceFactor] = Field(default_factory=list)
    alerts: list[Alert] = Field(default_factory=list)
    valid_until: datetime

    @model_validator(mode="after")
    def check_levels(self) -> "ValidSignal":
        if self.direction == Direction.LONG:
            ordered = self.stop_loss < self.entry < self.take_profit
        elif self.direction == Direction.SHORT:
            ordered = self.take_profit < self.entry < self.stop_loss
        else:
            raise ValueError("valid signal needs a long or short direction")
        if not ordered:
            raise ValueError(
                f"inconsistent levels for {self.direction.value}: "
                f"stop {self.stop_loss}, entry {self.entry}, target {self.take_profit}"
            )
        if self.risk_reward < self.min_risk_reward:
            raise ValueError(f"risk-reward {self.risk_reward} below minimum {self.min_risk_reward}")
        if self.leverage > self.max_leverage:
            raise ValueError(f"leverage {self.leverage} above maximum {self.max_leverage}")
        return self


class NeutralSignal(SignalBase):
    """Not enough aligned evidence for a trade."""

    type: Literal["NEUTRAL_SIGNAL"] = "NEUTRAL_SIGNAL"
    recommendation: SignalRecommendation = SignalRecommendation.WAIT
    reason: str
    factors: list[ConfluenceFactor] = Field(default_factory=list)


class RejectedSignal(SignalBase):
    """Setup found but levels or risk checks failed."""

    type: Literal["REJECTED_SIGNAL"] = "REJECTED_SIGNAL"
    recommendation: SignalRecommendation = SignalRecommendation.AVOID
    direction: Direction
    reason: str
    details: list[str] = Field(default_factory=list)


class FilteredSignal(SignalBase):
    """Setup passed risk checks but was removed by market-condition filters."""

    type: Literal["FILTERED_SIGNAL"] = "FILTERED_SIGNAL"
    recommendation: SignalRecommendation = SignalRecommendation.WAIT
    direction: Direction
    counter_trend: bool = False
    failed_filters: list[FailedFilter] = Field(..., min_length=1)


Signal = Annotated[
    Union[ValidSignal, NeutralSignal, RejectedSignal, FilteredSignal],
    Field(discriminator="type"),
]


# =============================================================================
# REQUESTS & REPORTS
# =============================================================================


class SignalRequest(BaseModel):
    symbol: str = Field(..., min_length=1)
    timeframe: Timeframe = Timeframe.H1
    periods: int = Field(default=300, ge=50, le=5000)
    account_balance: Optional[float] = Field(default=None, gt=0)
    leverage: Optional[float] = Field(default=None, gt=0)
    force_refresh: bool = False


class TimeframeBreakdown(BaseModel):
    timeframe: Timeframe
    signal_type: str
    direction: Direction
    confluence_score: float = Field(..., ge=0, le=100)
    weight: float = Field(..., gt=0)
    error: Optional[str] = None


class MultiTimeframeSignal(BaseModel):
    """Agreement of one symbol's signals across timeframes."""

    symbol: str
    direction: Direction
    agreement_percent: float = Field(..., ge=0, le=100)
    weighted_confluence: float = Field(..., ge=0, le=100)
    valid_timeframes: int = Field(..., ge=0)
    breakdown: list[TimeframeBreakdown] = Field(default_factory=list)
    signal: Optional[Signal] = None
    generated_at: datetime


class ScanFailure(BaseModel):
    symbol: str
    error_type: str
    message: str


class ScanStats(BaseModel):
    symbols_scanned: int = 0
    valid_signals: int = 0
    high_confidence: int = 0
    average_confluence: float = 0.0


class ScanReport(BaseModel):
    """Batch scan output. Signals sorted by confluence, strongest first."""

    timeframe: Timeframe
    signals: list[Signal] = Field(default_factory=list)
    failures: list[ScanFailure] = Field(default_factory=list)
    stats: ScanStats = Field(default_factory=ScanStats)
    scanned_at: datetime
