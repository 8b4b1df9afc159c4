"""
Base Service Interface

All services inherit from this base class.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class BaseService(ABC, Generic[InputT, OutputT]):
    """
    Base class for all services.

    Each service:
    - Has a defined input type
    - Has a defined output type
    - Can check its health
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Service name for logging."""
        pass

    @abstractmethod
    async def execute(self, input_data: InputT) -> OutputT:
        """
        Execute the service's main function.

        Args:
            input_data: Validated input conforming to InputT schema

        Returns:
            Output conforming to OutputT schema

        Raises:
            ServiceError: If execution fails
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if service is healthy and can process requests."""
        pass


class ServiceError(Exception):
    """Base exception for service errors."""

    def __init__(self, service_name: str, message: str, details: dict = None):
        self.service_name = service_name
        self.message = message
        self.details = details or {}
        super().__init__(f"[{service_name}] {message}")


class InsufficientDataError(ServiceError):
    """Input series is shorter than the calculation needs."""

    def __init__(self, service_name: str, message: str, required: int, available: int):
        super().__init__(
            service_name,
            message,
            {"required": required, "available": available},
        )
        self.required = required
        self.available = available


class InvalidParameterError(ServiceError):
    """A numeric input or configured limit is out of range."""
    pass


class InvalidLevelsError(ServiceError):
    """Stop loss or take profit sits on the wrong side of entry."""
    pass


class CalculationError(ServiceError):
    """A calculation produced a non-finite or inconsistent result."""
    pass


class MarketDataError(ServiceError):
    """Market data provider failed to return candles."""
    pass
