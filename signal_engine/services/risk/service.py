"""
Risk Validation Engine Implementation

Position sizing and trade guardrails.
All rules are deterministic and auditable.
"""

import logging
from collections.abc import Mapping
from typing import Optional, Sequence, Union

from signal_engine.core.config import settings
from signal_engine.schemas.risk import (
    BreakevenAction,
    BreakevenDecision,
    CheckStatus,
    PositionSize,
    RiskAssessment,
    RiskConfig,
    StopLossCheck,
    StopLossValidation,
    StreakRecommendation,
    TakeProfitPlan,
    TradeDirection,
    TradeRecord,
    TradingStreak,
)
from signal_engine.services.base import InvalidParameterError
from signal_engine.services.risk.interface import RiskServiceInterface, RiskValidationInput

logger = logging.getLogger(__name__)

HIGH_RISK_PERCENT = 3.0
HIGH_LEVERAGE = 15.0
EXTREME_LEVERAGE = 20.0


def _get_default_risk_config() -> RiskConfig:
    """Risk rules from application settings."""
    return RiskConfig(
        max_risk_per_trade=settings.default_max_risk_per_trade,
        max_leverage=settings.default_max_leverage,
        min_risk_reward=settings.default_min_risk_reward,
        max_consecutive_losses=settings.default_max_consecutive_losses,
        emergency_stop_percent=settings.default_emergency_stop_percent,
    )


def _trade_pnl(trade: Union[TradeRecord, Mapping]) -> float:
    if isinstance(trade, Mapping):
        return float(trade["pnl"])
    return trade.pnl


class RiskManager(RiskServiceInterface):
    """
    Risk Validation Engine.

    Sizes positions and validates stops, targets and trading streaks.
    A rule violation raises InvalidParameterError; nothing is adjusted
    silently.
    """

    def __init__(self, config: Optional[RiskConfig] = None):
        self.config = config or _get_default_risk_config()

    @property
    def name(self) -> str:
        return "RiskManager"

    def _fail(self, message: str, reason: str, **details) -> InvalidParameterError:
        return InvalidParameterError(self.name, message, {"reason": reason, **details})

    @staticmethod
    def _direction(entry_price: float, stop_loss: float) -> TradeDirection:
        return TradeDirection.LONG if stop_loss < entry_price else TradeDirection.SHORT

    # =========================================================================
    # POSITION SIZING
    # =========================================================================

    def calculate_position_size(
        self,
        account_balance: float,
        entry_price: float,
        stop_loss: float,
        risk_percent: Optional[float] = None,
        leverage: float = 10.0,
    ) -> PositionSize:
        if account_balance <= 0:
            raise self._fail(f"Account balance must be positive, got {account_balance}", "invalid_balance")
        if entry_price <= 0 or stop_loss <= 0:
            raise self._fail("Entry and stop loss must be positive", "invalid_price")
        if leverage <= 0 or leverage > self.config.max_leverage:
            raise self._fail(
                f"Leverage {leverage}x outside 0-{self.config.max_leverage}x",
                "invalid_leverage",
                leverage=leverage,
            )
        if entry_price == stop_loss:
            raise self._fail("Stop loss equals entry, no direction", "no_direction")

        risk_percent = risk_percent or self.config.max_risk_per_trade
        if risk_percent <= 0:
            raise self._fail(f"Risk percent must be positive, got {risk_percent}", "invalid_risk")

        risk_amount = account_balance * risk_percent / 100
        price_risk = abs(entry_price - stop_loss)
        position_size = risk_amount / price_risk
        position_value = position_size * entry_price
        required_capital = position_value / leverage

        if required_capital > account_balance:
            raise self._fail(
                f"Required capital {required_capital:.2f} exceeds balance {account_balance:.2f}",
                "insufficient_capital",
                required_capital=required_capital,
            )

        warnings = []
        if risk_percent >= HIGH_RISK_PERCENT:
            warnings.append(f"High risk: {risk_percent}% of balance per trade")
        if leverage >= HIGH_LEVERAGE:
            warnings.append(f"High leverage: {leverage}x speeds up liquidation")
        if leverage >= EXTREME_LEVERAGE:
            warnings.append(f"Maximum leverage: {leverage}x is extremely dangerous")

        return PositionSize(
            direction=self._direction(entry_price, stop_loss),
            position_size=position_size,
            position_value=position_value,
            required_capital=required_capital,
            leverage=leverage,
            risk_amount=risk_amount,
            risk_percent=risk_percent,
            price_risk=price_risk,
            price_risk_percent=price_risk / entry_price * 100,
            warnings=warnings,
        )

    def calculate_take_profit(
        self, entry_price: float, stop_loss: float, risk_reward: Optional[float] = None
    ) -> TakeProfitPlan:
        risk_reward = risk_reward or self.config.min_risk_reward
        if risk_reward < self.config.min_risk_reward:
            raise self._fail(
                f"Risk-reward {risk_reward} below minimum {self.config.min_risk_reward}",
                "risk_reward_too_low",
            )
        if entry_price <= 0 or stop_loss <= 0 or entry_price == stop_loss:
            raise self._fail("Entry and stop loss must be positive and distinct", "invalid_price")

        direction = self._direction(entry_price, stop_loss)
        risk_distance = abs(entry_price - stop_loss)
        reward_distance = risk_distance * risk_reward
        if direction == TradeDirection.LONG:
            take_profit = entry_price + reward_distance
        else:
            take_profit = entry_price - reward_distance

        return TakeProfitPlan(
            direction=direction,
            take_profit=take_profit,
            risk_distance=risk_distance,
            reward_distance=reward_distance,
            risk_reward=risk_reward,
        )

    # =========================================================================
    # STOP MANAGEMENT
    # =========================================================================

    def validate_stop_loss(
        self,
        entry_price: float,
        stop_loss: float,
        support: Optional[float] = None,
        resistance: Optional[float] = None,
    ) -> StopLossValidation:
        if entry_price <= 0 or stop_loss <= 0 or entry_price == stop_loss:
            raise self._fail("Entry and stop loss must be positive and distinct", "invalid_price")

        direction = self._direction(entry_price, stop_loss)
        margin = self.config.level_margin_percent / 100
        checks = []

        if direction == TradeDirection.LONG and support is not None:
            if stop_loss > support * (1 - margin):
                checks.append(StopLossCheck(
                    check="support",
                    status=CheckStatus.WARNING,
                    message=f"Stop {stop_loss} is not clearly below support {support}",
                ))
            else:
                checks.append(StopLossCheck(
                    check="support", status=CheckStatus.VALID, message="Stop is below support"
                ))

        if direction == TradeDirection.SHORT and resistance is not None:
            if stop_loss < resistance * (1 + margin):
                checks.append(StopLossCheck(
                    check="resistance",
                    status=CheckStatus.WARNING,
                    message=f"Stop {stop_loss} is not clearly above resistance {resistance}",
                ))
            else:
                checks.append(StopLossCheck(
                    check="resistance", status=CheckStatus.VALID, message="Stop is above resistance"
                ))

        risk_percent = abs(entry_price - stop_loss) / entry_price * 100
        if risk_percent > self.config.max_stop_risk_percent:
            checks.append(StopLossCheck(
                check="distance",
                status=CheckStatus.ERROR,
                message=f"Stop risk {risk_percent:.2f}% exceeds {self.config.max_stop_risk_percent}%",
            ))
        else:
            checks.append(StopLossCheck(
                check="distance", status=CheckStatus.VALID, message=f"Stop risk {risk_percent:.2f}%"
            ))

        return StopLossValidation(
            is_valid=not any(c.status == CheckStatus.ERROR for c in checks),
            direction=direction,
            risk_percent=risk_percent,
            checks=checks,
        )

    def move_stop_to_breakeven(
        self,
        entry_price: float,
        current_price: float,
        stop_loss: float,
        profit_threshold: Optional[float] = None,
    ) -> BreakevenDecision:
        if entry_price <= 0 or current_price <= 0 or stop_loss <= 0:
            raise self._fail("Prices must be positive", "invalid_price")

        threshold = profit_threshold or self.config.breakeven_profit_threshold
        if self._direction(entry_price, stop_loss) == TradeDirection.LONG:
            profit_percent = (current_price - entry_price) / entry_price * 100
        else:
            profit_percent = (entry_price - current_price) / entry_price * 100

        if profit_percent < threshold:
            return BreakevenDecision(
                action=BreakevenAction.HOLD,
                profit_percent=profit_percent,
                required_percent=threshold,
                stop_loss=stop_loss,
                previous_stop_loss=stop_loss,
                message=f"Profit {profit_percent:.2f}%, waiting for {threshold}% to protect",
            )

        return BreakevenDecision(
            action=BreakevenAction.MOVE_TO_BREAKEVEN,
            profit_percent=profit_percent,
            required_percent=threshold,
            stop_loss=entry_price,
            previous_stop_loss=stop_loss,
            message=f"Move stop loss to breakeven ({entry_price})",
        )

    # =========================================================================
    # ACCOUNT GUARDRAILS
    # =========================================================================

    def check_trading_streak(
        self,
        trades: Sequence[Union[TradeRecord, Mapping]],
        account_balance: float,
        initial_balance: float,
    ) -> TradingStreak:
        if initial_balance <= 0:
            raise self._fail(f"Initial balance must be positive, got {initial_balance}", "invalid_balance")

        consecutive_losses = 0
        for trade in reversed(trades):
            if _trade_pnl(trade) < 0:
                consecutive_losses += 1
            else:
                break

        drawdown = (initial_balance - account_balance) / initial_balance * 100

        recommendations = []
        if consecutive_losses >= self.config.max_consecutive_losses:
            recommendations.append(StreakRecommendation(
                type="warning",
                message=f"{consecutive_losses} consecutive losses. Pause and review the strategy",
                action="pause_trading",
            ))
        if drawdown >= self.config.emergency_stop_percent:
            recommendations.append(StreakRecommendation(
                type="critical",
                message=f"Critical drawdown {drawdown:.2f}%. Stop trading now",
                action="emergency_stop",
            ))

        return TradingStreak(
            consecutive_losses=consecutive_losses,
            drawdown_percent=drawdown,
            should_pause=any(r.action == "pause_trading" for r in recommendations),
            emergency_stop=any(r.action == "emergency_stop" for r in recommendations),
            recommendations=recommendations,
        )

    # =========================================================================
    # FULL TRADE VALIDATION
    # =========================================================================

    def assess_trade(
        self,
        account_balance: float,
        entry_price: float,
        stop_loss: float,
        risk_percent: Optional[float] = None,
        leverage: float = 10.0,
        support: Optional[float] = None,
        resistance: Optional[float] = None,
    ) -> RiskAssessment:
        """
        Run every rule for one trade.

        Raises:
            InvalidParameterError: details["reason"] names the failed rule
        """
        risk_percent = risk_percent or self.config.max_risk_per_trade
        if risk_percent > self.config.absolute_max_risk:
            raise self._fail(
                f"Risk {risk_percent}% exceeds absolute maximum {self.config.absolute_max_risk}%",
                "risk_too_high",
            )

        if entry_price <= 0:
            raise self._fail("Entry must be positive", "invalid_price")
        stop_distance = abs(entry_price - stop_loss) / entry_price * 100
        if stop_distance > self.config.max_stop_distance_percent:
            raise self._fail(
                f"Stop distance {stop_distance:.2f}% exceeds {self.config.max_stop_distance_percent}%",
                "stop_too_far",
            )

        position = self.calculate_position_size(
            account_balance, entry_price, stop_loss, risk_percent, leverage
        )

        validation = self.validate_stop_loss(entry_price, stop_loss, support, resistance)
        if not validation.is_valid:
            raise self._fail("; ".join(validation.errors), "invalid_stop_loss")

        effective_risk = position.risk_amount / account_balance * 100
        if effective_risk > self.config.absolute_max_risk:
            raise self._fail(
                f"Position risk {effective_risk:.2f}% exceeds {self.config.absolute_max_risk}%",
                "position_risk_too_high",
            )

        return RiskAssessment(
            position=position,
            stop_loss=validation,
            effective_risk_percent=effective_risk,
            warnings=position.warnings + validation.warnings,
        )

    async def execute(self, input_data: RiskValidationInput) -> RiskAssessment:
        """Validate trade against risk rules."""
        assessment = self.assess_trade(
            input_data.account_balance,
            input_data.entry_price,
            input_data.stop_loss,
            input_data.risk_percent,
            input_data.leverage,
            input_data.support,
            input_data.resistance,
        )
        logger.info(
            f"Risk approved: {assessment.position.direction.value} size "
            f"{assessment.position.position_size:.6f}, risk {assessment.effective_risk_percent:.2f}%"
        )
        return assessment

    async def health_check(self) -> bool:
        """Risk service is always healthy (pure computation)."""
        return True


# Singleton instance
_risk_manager: Optional[RiskManager] = None


def get_risk_manager() -> RiskManager:
    """Get or create risk manager instance."""
    global _risk_manager
    if _risk_manager is None:
        _risk_manager = RiskManager()
    return _risk_manager
