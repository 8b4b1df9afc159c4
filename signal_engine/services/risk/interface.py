"""
Risk Validation Service Interface

Defines the contract for the risk validation layer.
"""

from abc import abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from signal_engine.services.base import BaseService
from signal_engine.schemas.risk import (
    BreakevenDecision,
    PositionSize,
    RiskAssessment,
    StopLossValidation,
    TakeProfitPlan,
    TradeRecord,
    TradingStreak,
)


@dataclass
class RiskValidationInput:
    """Input for risk validation of a single trade."""

    account_balance: float
    entry_price: float
    stop_loss: float
    risk_percent: Optional[float] = None
    leverage: float = 10.0
    support: Optional[float] = None
    resistance: Optional[float] = None


class RiskServiceInterface(BaseService[RiskValidationInput, RiskAssessment]):
    """
    Risk Validation Service Contract.

    INPUT: RiskValidationInput
        - account_balance, entry_price, stop_loss
        - risk_percent: % of balance to risk (defaults to config max)
        - leverage: must not exceed config max
        - support / resistance: optional, for stop placement checks

    OUTPUT: RiskAssessment
        - position: size, margin, risk amount
        - stop_loss: validation checks
        - warnings

    VALIDATION RULES (in order):
        1. Requested risk <= absolute max risk
        2. Stop distance <= max stop distance
        3. Position sizing (balance, leverage, capital)
        4. Stop loss placement
        5. Position risk <= absolute max risk

    If ANY rule fails, InvalidParameterError is raised (no exceptions).
    """

    @property
    def name(self) -> str:
        return "RiskService"

    @abstractmethod
    async def execute(self, input_data: RiskValidationInput) -> RiskAssessment:
        """Validate trade against risk rules."""
        pass

    @abstractmethod
    def calculate_position_size(
        self,
        account_balance: float,
        entry_price: float,
        stop_loss: float,
        risk_percent: Optional[float] = None,
        leverage: float = 10.0,
    ) -> PositionSize:
        """Size a position so that hitting the stop loses risk_percent of balance."""
        pass

    @abstractmethod
    def calculate_take_profit(
        self, entry_price: float, stop_loss: float, risk_reward: Optional[float] = None
    ) -> TakeProfitPlan:
        """Target at the given risk-reward multiple."""
        pass

    @abstractmethod
    def validate_stop_loss(
        self,
        entry_price: float,
        stop_loss: float,
        support: Optional[float] = None,
        resistance: Optional[float] = None,
    ) -> StopLossValidation:
        """Check stop placement."""
        pass

    @abstractmethod
    def move_stop_to_breakeven(
        self,
        entry_price: float,
        current_price: float,
        stop_loss: float,
        profit_threshold: Optional[float] = None,
    ) -> BreakevenDecision:
        """Decide whether to trail the stop to entry."""
        pass

    @abstractmethod
    def check_trading_streak(
        self,
        trades: Sequence[TradeRecord],
        account_balance: float,
        initial_balance: float,
    ) -> TradingStreak:
        """Consecutive losses and drawdown."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Risk service is always healthy (pure computation)."""
        pass
