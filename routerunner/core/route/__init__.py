"""
Route Execution

Executes planned cross-chain routes one user transaction at a time:
- RouteExecutor: lazy step sequence, advanced with each confirmed hash
- StepTransaction: approval and send requests for one step
- WalletOrchestrator: drives steps through a connected wallet
- ChainRegistry: chain metadata for add-network requests

Usage:
    from routerunner.core.route import (
        ChainRegistry,
        SocketPlanningService,
        WalletOrchestrator,
    )
    from routerunner.providers.wallet_rpc import JsonRpcWalletProvider

    orchestrator = WalletOrchestrator(
        JsonRpcWalletProvider(),
        SocketPlanningService(),
        ChainRegistry(),
    )
    report = await orchestrator.execute(route)
"""

from .models import (
    AddChainParameters,
    ApprovalData,
    ChainMetadata,
    ExecutionPhase,
    ExecutionReport,
    ExecutionState,
    NativeCurrency,
    Route,
    StepDescriptor,
    StepResult,
    TransactionKind,
    TransactionRequest,
    UserTxType,
)

from .errors import (
    InvalidRouteError,
    InvalidSequenceError,
    PlanningServiceError,
    ReceiptError,
    RouteExecutionError,
    UnknownChainError,
    UnrecognizedChainError,
    WalletError,
    WalletRejectionError,
)

from .chain_registry import ChainRegistry
from .executor import RouteExecutor, StepSequence
from .orchestrator import ExecutionObserver, WalletOrchestrator
from .planning import PlanningService, SocketPlanningService
from .retry import RetryConfig, RetryStrategy
from .step import StepTransaction
from .tx_builder import TransactionBuilder
from .wallet import NetworkLockRegistry, WalletProvider, get_network_locks

__all__ = [
    # Models
    "AddChainParameters",
    "ApprovalData",
    "ChainMetadata",
    "ExecutionPhase",
    "ExecutionReport",
    "ExecutionState",
    "NativeCurrency",
    "Route",
    "StepDescriptor",
    "StepResult",
    "TransactionKind",
    "TransactionRequest",
    "UserTxType",
    # Errors
    "InvalidRouteError",
    "InvalidSequenceError",
    "PlanningServiceError",
    "ReceiptError",
    "RouteExecutionError",
    "UnknownChainError",
    "UnrecognizedChainError",
    "WalletError",
    "WalletRejectionError",
    # Engine
    "ChainRegistry",
    "RouteExecutor",
    "StepSequence",
    "StepTransaction",
    "TransactionBuilder",
    "WalletOrchestrator",
    "ExecutionObserver",
    # Collaborators
    "PlanningService",
    "SocketPlanningService",
    "WalletProvider",
    "NetworkLockRegistry",
    "get_network_locks",
    "RetryConfig",
    "RetryStrategy",
]
