"""
Signal Service Implementation

Orchestrates the complete signal pipeline:
    Market Data → Indicators → Confluence → Levels → Risk → Filters

This is the main entry point for generating trade signals.
"""

import asyncio
import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence, TypeVar

from signal_engine.core.config import settings
from signal_engine.schemas.analysis import (
    AnalysisConfig,
    AnalysisResult,
    AnalysisSummary,
    Bias,
    ComponentFailure,
    DivergenceType,
    LevelType,
)
from signal_engine.schemas.market import Candle, Timeframe
from signal_engine.schemas.risk import RiskAssessment
from signal_engine.schemas.signal import (
    Alert,
    AlertLevel,
    ConfluenceResult,
    Direction,
    FailedFilter,
    FilteredSignal,
    MultiTimeframeSignal,
    NeutralSignal,
    RejectedSignal,
    Signal,
    SignalLevels,
    SignalRequest,
    TimeframeBreakdown,
    ValidSignal,
)
from signal_engine.services.base import (
    InsufficientDataError,
    InvalidLevelsError,
    InvalidParameterError,
)
from signal_engine.services.cache import MemorySignalCache, SignalCache, make_cache_key
from signal_engine.services.data_ingestion import MarketDataProvider, MockMarketDataProvider
from signal_engine.services.indicators import IndicatorEngine, detect_divergences
from signal_engine.services.indicators.calculations import OHLCVData
from signal_engine.services.levels import analyze_support_resistance
from signal_engine.services.notifications import NotificationSink
from signal_engine.services.risk import RiskManager, get_risk_manager
from signal_engine.services.scanner.patterns import recognize_patterns
from signal_engine.services.strategy.confluence import score_confluence
from signal_engine.services.strategy.interface import StrategyServiceInterface
from signal_engine.services.strategy.levels import calculate_signal_levels

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Multi-timeframe
TIMEFRAME_WEIGHTS = {
    Timeframe.M1: 0.5,
    Timeframe.M5: 1.0,
    Timeframe.M15: 1.2,
    Timeframe.H1: 1.5,
    Timeframe.H4: 2.0,
    Timeframe.D1: 1.8,
}
MANDATORY_TIMEFRAMES = (Timeframe.M5, Timeframe.M15, Timeframe.H1, Timeframe.H4)
MIN_VALID_TIMEFRAMES = 3
MAJORITY_RATIO = 0.6

# Filters
MAX_BBWP = 90.0
RSI_EXTREME_HIGH = 80.0
RSI_EXTREME_LOW = 20.0
MIN_CONFLUENCE_COUNTER_TREND = 70.0
MIN_RISK_PERCENT = 0.1

# Alerts
MODERATE_CONFLUENCE = 80.0
RSI_ALERT_HIGH = 75.0
RSI_ALERT_LOW = 25.0

# Summary
SUMMARY_BULLISH = 75.0
SUMMARY_BEARISH = 25.0
SUMMARY_DIVERGENCE_STRENGTH = 50.0
SUMMARY_LEVEL_STRENGTH = 70.0


def _get_default_analysis_config() -> AnalysisConfig:
    """Analysis parameters from application settings."""
    return AnalysisConfig(
        confluence_threshold=settings.confluence_threshold,
        divergence_strength_threshold=settings.divergence_strength_threshold,
    )


def build_summary(analysis: AnalysisResult, config: AnalysisConfig) -> AnalysisSummary:
    """
    Overall trend read of an analysis.

    Baseline 50: RSI extremes ±15, first strong divergence ±25, strong
    nearby levels ±10 each, BBWP squeeze +20. Above 75 is bullish, below
    25 bearish.
    """
    score = 50.0
    key_points = []
    price = analysis.current_price

    rsi_value = analysis.current_rsi
    if rsi_value is not None:
        if rsi_value >= config.rsi_overbought:
            score -= 15
            key_points.append(f"RSI overbought ({rsi_value:.1f})")
        elif rsi_value <= config.rsi_oversold:
            score += 15
            key_points.append(f"RSI oversold ({rsi_value:.1f})")

    strong = [d for d in analysis.divergences if d.strength > SUMMARY_DIVERGENCE_STRENGTH]
    if strong:
        divergence = strong[0]
        score += 25 if divergence.type == DivergenceType.BULLISH else -25
        key_points.append(f"{divergence.subtype.value} {divergence.type.value} divergence ({divergence.strength:.0f})")

    if analysis.support_resistance is not None:
        for level in analysis.support_resistance.levels:
            if level.strength <= SUMMARY_LEVEL_STRENGTH:
                continue
            if abs(level.price - price) / price >= config.sr_proximity_percent / 100:
                continue
            score += 10 if level.type == LevelType.SUPPORT else -10
            key_points.append(f"Strong {level.type.value} at {level.price:.4f}")

    bbwp = analysis.current_bbwp
    if bbwp is not None and bbwp.squeeze:
        score += 20
        key_points.append("Volatility squeeze")

    score = max(0.0, min(100.0, score))
    if score > SUMMARY_BULLISH:
        trend = Bias.BULLISH
    elif score < SUMMARY_BEARISH:
        trend = Bias.BEARISH
    else:
        trend = Bias.NEUTRAL
    return AnalysisSummary(score=score, trend=trend, key_points=key_points)


def is_counter_trend(direction: Direction, summary: Optional[AnalysisSummary]) -> bool:
    if summary is None:
        return False
    return (direction == Direction.LONG and summary.trend == Bias.BEARISH) or (
        direction == Direction.SHORT and summary.trend == Bias.BULLISH
    )


@dataclass
class SignalStats:
    """Counters of generated signals."""

    generated: int = 0
    valid: int = 0
    neutral: int = 0
    rejected: int = 0
    filtered: int = 0
    long: int = 0
    short: int = 0
    counter_trend: int = 0
    confluence_buckets: dict[str, int] = field(
        default_factory=lambda: {"0-59": 0, "60-79": 0, "80-100": 0}
    )

    def record(self, signal: Signal) -> None:
        self.generated += 1
        if isinstance(signal, ValidSignal):
            self.valid += 1
            if signal.direction == Direction.LONG:
                self.long += 1
            else:
                self.short += 1
            if signal.counter_trend:
                self.counter_trend += 1
        elif isinstance(signal, NeutralSignal):
            self.neutral += 1
        elif isinstance(signal, RejectedSignal):
            self.rejected += 1
        else:
            self.filtered += 1

        if signal.confluence_score >= 80:
            self.confluence_buckets["80-100"] += 1
        elif signal.confluence_score >= 60:
            self.confluence_buckets["60-79"] += 1
        else:
            self.confluence_buckets["0-59"] += 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class SignalService(StrategyServiceInterface):
    """
    Signal Service.

    Runs the full pipeline. The analysis core is synchronous and pure;
    only candle fetching, caching and notification are async.
    Component failures degrade the analysis instead of failing it.
    """

    def __init__(
        self,
        market_data: Optional[MarketDataProvider] = None,
        cache: Optional[SignalCache] = None,
        notifier: Optional[NotificationSink] = None,
        analysis_config: Optional[AnalysisConfig] = None,
        risk_manager: Optional[RiskManager] = None,
    ):
        self._market_data = market_data
        self._cache = cache
        self._risk_manager = risk_manager
        self.notifier = notifier
        self.config = analysis_config or _get_default_analysis_config()
        self.indicators = IndicatorEngine(self.config)
        self.stats = SignalStats()

    @property
    def market_data(self) -> MarketDataProvider:
        """Lazy load market data provider."""
        if self._market_data is None:
            self._market_data = MockMarketDataProvider(seed=settings.mock_data_seed)
        return self._market_data

    @property
    def cache(self) -> SignalCache:
        """Lazy load signal cache."""
        if self._cache is None:
            self._cache = MemorySignalCache(settings.cache_max_entries)
        return self._cache

    @property
    def risk_manager(self) -> RiskManager:
        """Lazy load risk manager."""
        if self._risk_manager is None:
            self._risk_manager = get_risk_manager()
        return self._risk_manager

    # =========================================================================
    # ANALYSIS
    # =========================================================================

    def _run_component(
        self,
        component: str,
        func: Callable[[], T],
        default: T,
        failures: list[ComponentFailure],
    ) -> T:
        try:
            return func()
        except Exception as e:
            logger.warning(f"Component {component} failed: {e}")
            failures.append(
                ComponentFailure(component=component, error_type=type(e).__name__, message=str(e))
            )
            return default

    def analyze(self, symbol: str, timeframe: Timeframe, candles: Sequence[Candle]) -> AnalysisResult:
        if len(candles) < settings.min_candles:
            raise InsufficientDataError(
                self.name,
                f"{symbol} has {len(candles)} candles, need {settings.min_candles}",
                required=settings.min_candles,
                available=len(candles),
            )

        data = OHLCVData.from_candles(candles)
        config = self.config
        failures: list[ComponentFailure] = []

        rsi_values = self._run_component(
            "rsi", lambda: self.indicators.compute_rsi(data.closes), [], failures
        )
        divergences = []
        if rsi_values:
            divergences = self._run_component(
                "divergence",
                lambda: detect_divergences(data.closes, rsi_values, config=config),
                [],
                failures,
            )
        support_resistance = self._run_component(
            "support_resistance",
            lambda: analyze_support_resistance(data.highs, data.lows, data.closes, config),
            None,
            failures,
        )
        fibonacci = self._run_component(
            "fibonacci",
            lambda: self.indicators.compute_fibonacci(data.closes, data.highs, data.lows),
            None,
            failures,
        )
        bbwp = self._run_component(
            "bbwp", lambda: self.indicators.compute_bbwp(data.closes), [], failures
        )
        patterns = self._run_component(
            "patterns",
            lambda: recognize_patterns(data.highs, data.lows, data.closes, data.volumes, config),
            [],
            failures,
        )
        atr_value = self._run_component(
            "atr",
            lambda: self.indicators.compute_atr(data.highs, data.lows, data.closes),
            None,
            failures,
        )

        analysis = AnalysisResult(
            symbol=symbol,
            timeframe=timeframe,
            timestamp=candles[-1].timestamp,
            candle_count=len(candles),
            current_price=float(data.closes[-1]),
            rsi=rsi_values,
            atr=atr_value,
            divergences=divergences,
            support_resistance=support_resistance,
            fibonacci=fibonacci,
            bbwp=bbwp,
            patterns=patterns,
            failures=failures,
        )
        analysis.summary = build_summary(analysis, config)
        return analysis

    # =========================================================================
    # SIGNAL CONSTRUCTION
    # =========================================================================

    def _apply_filters(
        self,
        analysis: AnalysisResult,
        confluence: ConfluenceResult,
        levels: SignalLevels,
        counter_trend: bool,
        min_rr: float,
    ) -> list[FailedFilter]:
        failed = []
        bbwp = analysis.current_bbwp
        rsi_value = analysis.current_rsi

        if bbwp is not None and bbwp.value > MAX_BBWP:
            failed.append(FailedFilter(name="high_volatility", reason=f"BBWP {bbwp.value:.1f} above {MAX_BBWP}"))

        if rsi_value is not None and (rsi_value > RSI_EXTREME_HIGH or rsi_value < RSI_EXTREME_LOW):
            failed.append(FailedFilter(name="extreme_rsi", reason=f"RSI {rsi_value:.1f} in extreme zone"))

        if levels.risk_reward < min_rr:
            failed.append(FailedFilter(
                name="insufficient_risk_reward",
                reason=f"R:R {levels.risk_reward:.2f} below {min_rr}",
            ))

        min_confluence = MIN_CONFLUENCE_COUNTER_TREND if counter_trend else self.config.confluence_threshold
        if confluence.score < min_confluence:
            failed.append(FailedFilter(
                name="insufficient_confluence",
                reason=f"Confluence {confluence.score:.1f} below {min_confluence}",
            ))

        if counter_trend and bbwp is not None and bbwp.expansion:
            failed.append(FailedFilter(
                name="countertrend_in_high_volatility",
                reason="Counter-trend signal during volatility expansion",
            ))

        return failed

    def _build_alerts(
        self,
        analysis: AnalysisResult,
        confluence: ConfluenceResult,
        assessment: RiskAssessment,
        counter_trend: bool,
    ) -> list[Alert]:
        alerts = []
        if confluence.score < MODERATE_CONFLUENCE:
            alerts.append(Alert(
                level=AlertLevel.WARNING,
                message=f"Moderate confluence ({confluence.score:.0f}), consider a smaller position",
            ))

        rsi_value = analysis.current_rsi
        if rsi_value is not None and (rsi_value > RSI_ALERT_HIGH or rsi_value < RSI_ALERT_LOW):
            alerts.append(Alert(level=AlertLevel.CAUTION, message=f"RSI in extreme zone ({rsi_value:.1f})"))

        bbwp = analysis.current_bbwp
        if bbwp is not None and bbwp.expansion:
            alerts.append(Alert(level=AlertLevel.INFO, message="High volatility, expect wider swings"))

        if counter_trend:
            alerts.append(Alert(level=AlertLevel.WARNING, message="Counter-trend signal, risk reduced"))

        for warning in assessment.warnings:
            alerts.append(Alert(level=AlertLevel.WARNING, message=warning))
        return alerts

    def build_signal(
        self,
        analysis: AnalysisResult,
        account_balance: Optional[float] = None,
        leverage: Optional[float] = None,
    ) -> Signal:
        signal = self._build_signal(
            analysis,
            account_balance or settings.default_account_balance,
            leverage or settings.default_leverage,
        )
        self.stats.record(signal)
        logger.info(f"{analysis.symbol} {analysis.timeframe.value}: {signal.type} ({signal.confluence_score:.1f})")
        return signal

    def _build_signal(self, analysis: AnalysisResult, account_balance: float, leverage: float) -> Signal:
        now = datetime.now(timezone.utc)
        price = analysis.current_price
        risk_config = self.risk_manager.config
        base = {
            "symbol": analysis.symbol,
            "timeframe": analysis.timeframe,
            "current_price": price,
            "generated_at": now,
        }

        confluence = score_confluence(
            price,
            analysis.current_rsi,
            analysis.divergences,
            analysis.current_bbwp,
            analysis.fibonacci,
            analysis.support_resistance,
            analysis.patterns,
            self.config,
        )
        base["confluence_score"] = confluence.score

        if confluence.direction == Direction.NEUTRAL:
            if confluence.score <= self.config.confluence_threshold:
                reason = f"Confluence {confluence.score:.1f} at or below {self.config.confluence_threshold}"
            else:
                reason = "Bullish and bearish factors are split"
            return NeutralSignal(reason=reason, factors=confluence.factors, **base)

        direction = confluence.direction
        counter_trend = is_counter_trend(direction, analysis.summary)
        min_rr = risk_config.min_risk_reward_counter_trend if counter_trend else risk_config.min_risk_reward

        try:
            levels = calculate_signal_levels(
                direction,
                price,
                analysis.support_resistance,
                analysis.fibonacci,
                analysis.patterns,
                analysis.atr,
                risk_config,
                min_rr,
            )
        except (InvalidLevelsError, InvalidParameterError) as e:
            logger.warning(f"{analysis.symbol}: levels rejected: {e}")
            return RejectedSignal(direction=direction, reason="invalid_levels", details=[e.message], **base)

        risk_percent = risk_config.max_risk_per_trade
        if counter_trend:
            risk_percent = max(MIN_RISK_PERCENT, risk_percent * risk_config.counter_trend_risk_multiplier)

        sr = analysis.support_resistance
        try:
            assessment = self.risk_manager.assess_trade(
                account_balance,
                levels.entry,
                levels.stop_loss,
                risk_percent,
                leverage,
                support=sr.nearest_support.price if sr and sr.nearest_support else None,
                resistance=sr.nearest_resistance.price if sr and sr.nearest_resistance else None,
            )
        except InvalidParameterError as e:
            logger.warning(f"{analysis.symbol}: risk rejected: {e}")
            return RejectedSignal(
                direction=direction,
                reason=e.details.get("reason", "risk_validation_failed"),
                details=[e.message],
                **base,
            )

        failed = self._apply_filters(analysis, confluence, levels, counter_trend, min_rr)
        if failed:
            return FilteredSignal(direction=direction, counter_trend=counter_trend, failed_filters=failed, **base)

        position = assessment.position
        return ValidSignal(
            direction=direction,
            entry=levels.entry,
            stop_loss=levels.stop_loss,
            take_profit=levels.take_profit,
            risk_reward=levels.risk_reward,
            min_risk_reward=min_rr,
            position_size=position.position_size,
            leverage=position.leverage,
            max_leverage=risk_config.max_leverage,
            required_capital=position.required_capital,
            risk_amount=position.risk_amount,
            risk_percent=position.risk_percent,
            counter_trend=counter_trend,
            stop_source=levels.stop_source,
            target_source=levels.target_source,
            factors=confluence.factors,
            alerts=self._build_alerts(analysis, confluence, assessment, counter_trend),
            valid_until=now + timedelta(minutes=settings.signal_valid_minutes),
            **base,
        )

    def generate_from_candles(
        self,
        symbol: str,
        timeframe: Timeframe,
        candles: Sequence[Candle],
        account_balance: Optional[float] = None,
        leverage: Optional[float] = None,
    ) -> Signal:
        """Synchronous pipeline over supplied candles, no cache."""
        return self.build_signal(self.analyze(symbol, timeframe, candles), account_balance, leverage)

    # =========================================================================
    # ASYNC ENTRY POINTS
    # =========================================================================

    async def generate_signal(
        self,
        symbol: str,
        timeframe: Timeframe = Timeframe.H1,
        periods: Optional[int] = None,
        account_balance: Optional[float] = None,
        leverage: Optional[float] = None,
        force_refresh: bool = False,
    ) -> Signal:
        symbol = symbol.upper()
        periods = periods or settings.analysis_periods
        key = make_cache_key(symbol, timeframe, periods)

        if not force_refresh:
            cached = await self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit: {key}")
                return cached

        logger.info(f"Stage 1: Fetching {periods} {timeframe.value} candles for {symbol}")
        candles = await self.market_data.get_candles(symbol, timeframe, periods)

        logger.info(f"Stage 2: Analyzing {symbol}")
        analysis = self.analyze(symbol, timeframe, candles)
        if analysis.is_partial:
            logger.info(f"Partial analysis for {symbol}: {[f.component for f in analysis.failures]}")

        logger.info(f"Stage 3: Building signal for {symbol}")
        signal = self.build_signal(analysis, account_balance, leverage)
        await self.cache.set(key, signal, settings.signal_cache_ttl)

        if isinstance(signal, ValidSignal) and self.notifier is not None:
            try:
                await self.notifier.send(signal)
            except Exception as e:
                logger.warning(f"Notification failed for {symbol}: {e}")

        return signal

    async def execute(self, input_data: SignalRequest) -> Signal:
        return await self.generate_signal(
            input_data.symbol,
            input_data.timeframe,
            input_data.periods,
            input_data.account_balance,
            input_data.leverage,
            input_data.force_refresh,
        )

    async def generate_multi_timeframe_signal(
        self,
        symbol: str,
        timeframes: Optional[Sequence[Timeframe]] = None,
        primary: Timeframe = Timeframe.H1,
        periods: Optional[int] = None,
        account_balance: Optional[float] = None,
    ) -> MultiTimeframeSignal:
        timeframes = list(timeframes or MANDATORY_TIMEFRAMES)
        results = await asyncio.gather(
            *(self.generate_signal(symbol, tf, periods, account_balance) for tf in timeframes),
            return_exceptions=True,
        )

        breakdown = []
        signals = {}
        for tf, result in zip(timeframes, results):
            weight = TIMEFRAME_WEIGHTS.get(tf, 1.0)
            if isinstance(result, Exception):
                logger.warning(f"{symbol} {tf.value} failed: {result}")
                breakdown.append(TimeframeBreakdown(
                    timeframe=tf,
                    signal_type="ERROR",
                    direction=Direction.NEUTRAL,
                    confluence_score=0,
                    weight=weight,
                    error=str(result),
                ))
                continue
            if isinstance(result, BaseException):
                raise result

            signals[tf] = result
            breakdown.append(TimeframeBreakdown(
                timeframe=tf,
                signal_type=result.type,
                direction=getattr(result, "direction", Direction.NEUTRAL),
                confluence_score=result.confluence_score,
                weight=weight,
            ))

        if len(signals) < MIN_VALID_TIMEFRAMES:
            raise InsufficientDataError(
                self.name,
                f"{symbol}: only {len(signals)} of {len(timeframes)} timeframes analyzed",
                required=MIN_VALID_TIMEFRAMES,
                available=len(signals),
            )

        valid = [b for b in breakdown if b.error is None]
        votes = [b for b in valid if b.direction != Direction.NEUTRAL]
        longs = sum(1 for b in votes if b.direction == Direction.LONG)
        shorts = len(votes) - longs

        direction = Direction.NEUTRAL
        agreement = 0.0
        if votes:
            count = max(longs, shorts)
            agreement = count / len(votes) * 100
            if longs != shorts and count >= math.ceil(MAJORITY_RATIO * len(votes)):
                direction = Direction.LONG if longs > shorts else Direction.SHORT

        total_weight = sum(b.weight for b in valid)
        weighted = sum(b.confluence_score * b.weight for b in valid) / total_weight

        chosen = signals.get(primary)
        if direction != Direction.NEUTRAL:
            agreeing = [
                (tf, s) for tf, s in signals.items()
                if getattr(s, "direction", Direction.NEUTRAL) == direction
            ]
            agreeing.sort(key=lambda item: (item[0] != primary, -item[1].confluence_score))
            chosen = agreeing[0][1]

        return MultiTimeframeSignal(
            symbol=symbol.upper(),
            direction=direction,
            agreement_percent=round(agreement, 2),
            weighted_confluence=round(weighted, 2),
            valid_timeframes=len(valid),
            breakdown=breakdown,
            signal=chosen,
            generated_at=datetime.now(timezone.utc),
        )

    def get_stats(self) -> dict[str, Any]:
        return self.stats.to_dict()

    async def health_check(self) -> bool:
        """Check that every dependency is healthy."""
        checks = [
            await self.market_data.health_check(),
            await self.risk_manager.health_check(),
        ]
        return all(checks)


# Singleton instance
_signal_service: Optional[SignalService] = None


def get_signal_service() -> SignalService:
    """Get or create signal service instance."""
    global _signal_service
    if _signal_service is None:
        _signal_service = SignalService()
    return _signal_service
