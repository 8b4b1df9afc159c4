"""
CONTRACT 2: Technical Analysis

Input: list[Candle] + AnalysisConfig
Output: AnalysisResult

Indicators, pivots, divergences, support/resistance levels, Fibonacci
levels and chart patterns. Everything here is derived fresh from the
candle series on every call.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from signal_engine.schemas.market import Timeframe


# =============================================================================
# ENUMS
# =============================================================================


class PivotKind(str, Enum):
    PEAK = "peak"
    VALLEY = "valley"


class DivergenceType(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"


class DivergenceSubtype(str, Enum):
    CLASSIC = "classic"  # Reversal
    HIDDEN = "hidden"  # Continuation


class LevelType(str, Enum):
    SUPPORT = "support"
    RESISTANCE = "resistance"


class VolatilityState(str, Enum):
    SQUEEZE = "squeeze"
    EXPANSION = "expansion"
    NORMAL = "normal"


class SwingDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class FibonacciKind(str, Enum):
    RETRACEMENT = "retracement"
    EXTENSION = "extension"


class PatternType(str, Enum):
    TRIANGLE = "triangle"
    HEAD_AND_SHOULDERS = "head_and_shoulders"
    INVERSE_HEAD_AND_SHOULDERS = "inverse_head_and_shoulders"
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"


class Bias(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


# =============================================================================
# CONFIG
# =============================================================================


class AnalysisConfig(BaseModel):
    """Tunable parameters for every analysis component."""

    # RSI
    rsi_period: int = Field(default=14, ge=2)
    rsi_overbought: float = Field(default=70.0, ge=50, le=100)
    rsi_oversold: float = Field(default=30.0, ge=0, le=50)

    # BBWP
    bbwp_period: int = Field(default=20, ge=2)
    bbwp_std_dev: float = Field(default=2.0, gt=0)
    bbwp_lookback: int = Field(default=252, ge=2)
    bbwp_squeeze: float = Field(default=20.0, ge=0, le=100)
    bbwp_expansion: float = Field(default=80.0, ge=0, le=100)

    # Fibonacci
    fibonacci_lookback: int = Field(default=100, ge=10)

    # Pivots
    pivot_lookback: int = Field(default=3, ge=1)

    # Divergence
    divergence_min_period: int = Field(default=5, ge=1)
    divergence_max_lookback: int = Field(default=60, ge=2)
    divergence_match_window: int = Field(default=3, ge=0)
    divergence_strength_threshold: float = Field(default=60.0, ge=0, le=100)
    divergence_max_results: int = Field(default=5, ge=1)
    hidden_divergence_factor: float = Field(default=0.8, gt=0, le=1)

    # Support / Resistance
    level_tolerance_percent: float = Field(default=0.5, gt=0, description="Cluster width, % of price")
    level_min_touches: int = Field(default=2, ge=1)
    level_break_window: int = Field(default=10, ge=1)
    level_break_tolerance: float = Field(default=0.002, ge=0, description="Fraction of level price")
    psychological_range: float = Field(default=0.1, gt=0, description="Fraction of current price")

    # Patterns
    min_pattern_bars: int = Field(default=20, ge=5)
    max_pattern_bars: int = Field(default=150, ge=10)
    pattern_min_confidence: float = Field(default=50.0, ge=0, le=100)
    pattern_max_results: int = Field(default=10, ge=1)
    triangle_pivots: int = Field(default=3, ge=2)
    horizontal_threshold: float = Field(
        default=0.001,
        gt=0,
        description="Max |slope| per bar, as a fraction of mean price, for a flat trendline",
    )
    min_convergence: float = Field(default=2.0, ge=0, description="% narrowing")
    max_convergence: float = Field(default=20.0, gt=0, description="% narrowing")
    shoulder_tolerance: float = Field(default=0.03, gt=0)
    peak_similarity: float = Field(default=0.02, gt=0)
    min_retrace: float = Field(default=0.02, ge=0)
    max_retrace: float = Field(default=0.25, gt=0)
    min_double_separation: int = Field(default=5, ge=1)

    # Confluence
    confluence_threshold: float = Field(default=60.0, ge=0, le=100)
    sr_proximity_percent: float = Field(default=2.0, gt=0)
    min_sr_strength: float = Field(default=50.0, ge=0, le=100)
    golden_pocket_proximity_percent: float = Field(default=1.0, gt=0)
    min_pattern_confidence: float = Field(default=50.0, ge=0, le=100)

    # ATR
    atr_period: int = Field(default=14, ge=1)


# =============================================================================
# OUTPUT: Pivots & Divergences
# =============================================================================


class Pivot(BaseModel):
    """Local extremum in a series."""

    index: int = Field(..., ge=0)
    value: float
    kind: PivotKind


class Divergence(BaseModel):
    """Disagreement between price pivots and RSI pivots."""

    type: DivergenceType
    subtype: DivergenceSubtype
    strength: float = Field(..., ge=0, le=100)
    price_pivots: list[Pivot] = Field(..., min_length=2, max_length=2)
    indicator_pivots: list[Pivot] = Field(
        ...,
        min_length=2,
        max_length=2,
        description="RSI pivots, indexed in price-series space",
    )
    bars_between: int = Field(..., ge=1)
    confirmed: bool = False


# =============================================================================
# OUTPUT: Support / Resistance
# =============================================================================


class Level(BaseModel):
    """Clustered horizontal price level."""

    price: float = Field(..., gt=0)
    type: LevelType
    strength: float = Field(..., ge=0, le=100)
    touches: int = Field(..., ge=1)
    first_touch_index: int = Field(..., ge=0)
    last_touch_index: int = Field(..., ge=0)
    timespan: int = Field(..., ge=0, description="Bars between first and last touch")
    broken: bool = False
    confidence: float = Field(..., ge=0, le=100)


class PsychologicalLevel(BaseModel):
    """Round-number level near the current price."""

    price: float = Field(..., gt=0)
    type: LevelType
    strength: float = Field(..., ge=0, le=100)
    roundness: float = Field(..., ge=0, le=1)


class TradingRange(BaseModel):
    lower: float
    upper: float
    width_percent: float


class SupportResistance(BaseModel):
    """Clustered levels plus a trading recommendation."""

    levels: list[Level] = Field(default_factory=list, description="Sorted by strength, strongest first")
    psychological: list[PsychologicalLevel] = Field(default_factory=list)
    nearest_support: Optional[Level] = None
    nearest_resistance: Optional[Level] = None
    trend: str = Field(default="neutral", description="uptrend / downtrend / neutral")
    trading_range: Optional[TradingRange] = None


# =============================================================================
# OUTPUT: Volatility & Fibonacci
# =============================================================================


class BBWPPoint(BaseModel):
    """Bollinger Band Width Percentile at one bar."""

    value: float = Field(..., ge=0, le=100, description="Percentile of current band width")
    band_width: float = Field(..., ge=0)
    squeeze: bool
    expansion: bool
    status: VolatilityState


class Swing(BaseModel):
    direction: SwingDirection
    high: float
    low: float
    start_index: int
    end_index: int


class FibonacciLevel(BaseModel):
    ratio: float
    price: float
    kind: FibonacciKind
    golden_pocket: bool = False
    distance: float = Field(..., ge=0, description="Absolute distance to current price")
    support: bool = False
    resistance: bool = False


class FibonacciResult(BaseModel):
    swing: Optional[Swing] = None
    levels: list[FibonacciLevel] = Field(default_factory=list, description="Sorted by distance")

    @property
    def retracements(self) -> list[FibonacciLevel]:
        return [lvl for lvl in self.levels if lvl.kind == FibonacciKind.RETRACEMENT]

    @property
    def extensions(self) -> list[FibonacciLevel]:
        return [lvl for lvl in self.levels if lvl.kind == FibonacciKind.EXTENSION]

    @property
    def golden_pocket(self) -> list[FibonacciLevel]:
        return [lvl for lvl in self.levels if lvl.golden_pocket]


# =============================================================================
# OUTPUT: Patterns
# =============================================================================


class Trendline(BaseModel):
    """Least-squares line through pivots."""

    slope: float
    intercept: float
    r_squared: float = Field(..., ge=0, le=1)
    start_index: int
    end_index: int

    def value_at(self, index: float) -> float:
        return self.slope * index + self.intercept


class FormationWindow(BaseModel):
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)

    @property
    def bars(self) -> int:
        return self.end - self.start


class PatternTargets(BaseModel):
    breakout: Optional[float] = None
    upside: Optional[float] = None
    downside: Optional[float] = None


class TradeSetup(BaseModel):
    entry: float
    stop_loss: float
    take_profit: float


class Pattern(BaseModel):
    """Detected chart pattern."""

    type: PatternType
    subtype: str
    bias: Bias
    confidence: float = Field(..., ge=0, le=100)
    formation_window: FormationWindow
    targets: PatternTargets
    setup: Optional[TradeSetup] = None
    key_levels: dict[str, float] = Field(default_factory=dict)
    upper_line: Optional[Trendline] = None
    lower_line: Optional[Trendline] = None
    convergence_percent: Optional[float] = None


# =============================================================================
# OUTPUT: AnalysisResult
# =============================================================================


class ComponentFailure(BaseModel):
    """Non-fatal failure of one analysis component."""

    component: str
    error_type: str
    message: str


class AnalysisSummary(BaseModel):
    """Overall trend read used to classify signals as trend or counter-trend."""

    score: float = Field(..., ge=0, le=100)
    trend: Bias
    key_points: list[str] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    """Full technical analysis of one candle series."""

    symbol: str
    timeframe: Timeframe
    timestamp: datetime
    candle_count: int = Field(..., ge=0)
    current_price: float = Field(..., gt=0)

    rsi: list[float] = Field(default_factory=list, description="One value per post-seed candle")
    atr: Optional[float] = None
    divergences: list[Divergence] = Field(default_factory=list)
    support_resistance: Optional[SupportResistance] = None
    fibonacci: Optional[FibonacciResult] = None
    bbwp: list[BBWPPoint] = Field(default_factory=list)
    patterns: list[Pattern] = Field(default_factory=list)
    summary: Optional[AnalysisSummary] = None

    failures: list[ComponentFailure] = Field(default_factory=list)

    @property
    def current_rsi(self) -> Optional[float]:
        return self.rsi[-1] if self.rsi else None

    @property
    def current_bbwp(self) -> Optional[BBWPPoint]:
        return self.bbwp[-1] if self.bbwp else None

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)
