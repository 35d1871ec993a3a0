"""
Route execution errors.

Every error raised by the route engine derives from RouteExecutionError and
carries enough context (route id, step index, failing sub-action) for a caller
to resume the route manually. Only PlanningServiceError can be recoverable.
"""

from typing import Any, Dict, Optional


class RouteExecutionError(Exception):
    """Base exception for route execution errors."""

    recoverable: bool = False
    report: Any = None  # ExecutionReport of the aborted execution, when raised by the orchestrator

    def __init__(
        self,
        message: str,
        *,
        route_id: Optional[int] = None,
        step_index: Optional[int] = None,
        action: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.route_id = route_id
        self.step_index = step_index
        self.action = action
        self.details = details or {}

    def with_context(
        self,
        *,
        route_id: Optional[int] = None,
        step_index: Optional[int] = None,
        action: Optional[str] = None,
    ) -> "RouteExecutionError":
        """Fill in context fields that are not already set. Returns self."""
        if self.route_id is None:
            self.route_id = route_id
        if self.step_index is None:
            self.step_index = step_index
        if self.action is None:
            self.action = action
        return self

    def __str__(self) -> str:
        parts = []
        if self.route_id is not None:
            parts.append(f"route={self.route_id}")
        if self.step_index is not None:
            parts.append(f"step={self.step_index}")
        if self.action:
            parts.append(f"action={self.action}")
        if not parts:
            return self.message
        return f"{self.message} ({', '.join(parts)})"


class InvalidSequenceError(RouteExecutionError):
    """The step sequence was driven out of order."""
    pass


class InvalidRouteError(InvalidSequenceError):
    """The route cannot be executed (e.g. it has no transactions)."""
    pass


class UnknownChainError(RouteExecutionError):
    """No chain metadata is available for a chain id."""

    def __init__(self, chain_id: int, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message or f"Unknown chain {chain_id}", **kwargs)
        self.chain_id = chain_id


class WalletError(RouteExecutionError):
    """The wallet provider failed a request."""

    def __init__(self, message: str, *, code: Optional[int] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = code


class UnrecognizedChainError(WalletError):
    """The wallet does not know the requested chain."""

    def __init__(self, chain_id: int, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message or f"Wallet does not recognize chain {chain_id}", **kwargs)
        self.chain_id = chain_id


class WalletRejectionError(WalletError):
    """The user or wallet declined a switch, add or signature request."""
    pass


class ReceiptError(RouteExecutionError):
    """A submitted transaction reverted or its confirmation was not observed."""

    def __init__(
        self,
        message: str,
        *,
        tx_hash: Optional[str] = None,
        chain_id: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash
        self.chain_id = chain_id


class PlanningServiceError(RouteExecutionError):
    """The planning service could not provide the next step.

    Transport failures, rate limits and server errors are recoverable: fetching
    the next step is idempotent, so the same request can simply be repeated.
    """

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = True,
        status_code: Optional[int] = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.recoverable = recoverable
        self.status_code = status_code
