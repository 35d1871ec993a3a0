"""
Route execution models and types.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from eth_utils import to_hex
from pydantic import BaseModel, ConfigDict, Field, model_validator


def parse_amount(value: Any) -> int:
    """Parse a wei amount given as int, decimal string or 0x-hex string."""
    if value is None or value == "":
        return 0
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


class UserTxType(str, Enum):
    """Kinds of user transactions in a route."""
    FUND_MOVR = "fund-movr"      # Bridge / fund movement
    DEX_SWAP = "dex-swap"
    CLAIM = "claim"
    APPROVE = "approve"          # Approval-only step


class TransactionKind(str, Enum):
    APPROVE = "approve"
    SEND = "send"


class ApprovalData(BaseModel):
    """Allowance the route needs before a step can move tokens."""

    required: bool = Field(True, alias="approvalRequired")
    spender: str = Field(..., alias="allowanceTarget", description="Address to approve")
    owner: str = Field(..., description="Token owner (the sender)")
    amount: Union[str, int] = Field(..., alias="minimumApprovalAmount", description="Amount in smallest units")
    token: str = Field(..., alias="approvalTokenAddress", description="ERC-20 token contract")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def amount_int(self) -> int:
        return parse_amount(self.amount)


class StepDescriptor(BaseModel):
    """One planned user transaction, as returned by the planning service."""

    user_tx_type: UserTxType = Field(UserTxType.FUND_MOVR, alias="userTxType")
    tx_target: str = Field(..., alias="txTarget", description="Contract the transaction is sent to")
    chain_id: int = Field(..., alias="chainId")
    tx_data: str = Field("0x", alias="txData", description="Calldata")
    tx_type: Optional[str] = Field(None, alias="txType")
    value: Union[str, int] = Field("0", description="Native token amount to send")
    user_tx_index: int = Field(..., alias="userTxIndex", ge=0)
    total_user_tx: int = Field(..., alias="totalUserTx", ge=1)
    active_route_id: Optional[int] = Field(None, alias="activeRouteId")
    approval_data: Optional[ApprovalData] = Field(None, alias="approvalData")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="after")
    def _index_within_total(self) -> "StepDescriptor":
        if self.user_tx_index >= self.total_user_tx:
            raise ValueError(
                f"userTxIndex {self.user_tx_index} out of range for totalUserTx {self.total_user_tx}"
            )
        return self

    @property
    def value_wei(self) -> int:
        return parse_amount(self.value)

    @property
    def is_last(self) -> bool:
        return self.user_tx_index + 1 >= self.total_user_tx


class Route(BaseModel):
    """A planned route: the ordered user transactions of an active route."""

    active_route_id: int = Field(..., alias="activeRouteId")
    user_txs: List[StepDescriptor] = Field(default_factory=list, alias="userTxs")
    total_user_tx: int = Field(..., alias="totalUserTx", ge=1)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def step_at(self, user_tx_index: int) -> Optional[StepDescriptor]:
        """Return the cached step for an index, if the route carries one."""
        for step in self.user_txs:
            if step.user_tx_index == user_tx_index:
                return step
        return None

    def resume_from(self, user_tx_index: int) -> "Route":
        """Build a route whose first known step is the given index."""
        remaining = [step for step in self.user_txs if step.user_tx_index >= user_tx_index]
        return self.model_copy(update={"user_txs": remaining})


@dataclass(frozen=True)
class TransactionRequest:
    """A transaction payload ready to be signed by the wallet."""
    kind: TransactionKind
    chain_id: int
    to: str
    data: str
    value: int = 0
    from_address: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the hex-encoded wallet payload."""
        tx = {
            "to": self.to,
            "data": self.data,
            "value": hex(self.value),
            "chainId": hex(self.chain_id),
        }
        if self.from_address:
            tx["from"] = self.from_address
        return tx


class NativeCurrency(BaseModel):
    name: str
    symbol: str
    decimals: int = 18

    model_config = ConfigDict(frozen=True)


class AddChainParameters(BaseModel):
    """Payload for a wallet's add-network request."""

    chain_id: str = Field(..., alias="chainId", description="0x-prefixed hex chain id")
    chain_name: str = Field(..., alias="chainName")
    native_currency: NativeCurrency = Field(..., alias="nativeCurrency")
    rpc_urls: List[str] = Field(default_factory=list, alias="rpcUrls")
    block_explorer_urls: Optional[List[str]] = Field(None, alias="blockExplorerUrls")
    icon_urls: Optional[List[str]] = Field(None, alias="iconUrls")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChainMetadata(BaseModel):
    """Reference data for a chain, as listed by the planning service."""

    chain_id: int = Field(..., alias="chainId")
    name: str
    native_currency: NativeCurrency = Field(..., alias="currency")
    rpc_urls: List[str] = Field(default_factory=list, alias="rpcs")
    explorer_urls: List[str] = Field(default_factory=list, alias="explorers")
    icon_url: Optional[str] = Field(None, alias="icon")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_add_chain_parameters(self) -> AddChainParameters:
        return AddChainParameters(
            chain_id=to_hex(self.chain_id),
            chain_name=self.name,
            native_currency=self.native_currency,
            rpc_urls=list(self.rpc_urls),
            block_explorer_urls=list(self.explorer_urls) or None,
            icon_urls=[self.icon_url] if self.icon_url else None,
        )


@dataclass
class ExecutionState:
    """Mutable progress of one route execution, owned by a RouteExecutor."""
    route: Route
    next_step: Optional[StepDescriptor] = None
    current_step: Optional[StepDescriptor] = None
    last_hash: Optional[str] = None
    completed: bool = False
    advancing: bool = False
    yielded: int = 0
    advanced: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def awaiting_hash(self) -> bool:
        return self.current_step is not None


class ExecutionPhase(str, Enum):
    """Orchestrator lifecycle for one route execution."""
    IDLE = "idle"
    STEP_PENDING = "step_pending"
    APPROVING = "approving"
    SENDING = "sending"
    CONFIRMING = "confirming"
    NEXT_STEP_PENDING = "next_step_pending"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class StepResult:
    """Outcome of one executed step."""
    user_tx_index: int
    chain_id: int
    approval_hash: Optional[str] = None
    send_hash: Optional[str] = None
    chain_switches: int = 0
    confirmed: bool = False  # send receipt observed


@dataclass
class ExecutionReport:
    """Summary of a route execution.

    On abort, `failed_step` is the step that was executing and `resume_from`
    is the first step whose send has not been confirmed. The two differ when
    the failure came after the send landed (e.g. the planning service could
    not accept the confirmed hash); `resume_from` is None when every send of
    the route is already on-chain.
    """
    route_id: int
    phase: ExecutionPhase = ExecutionPhase.IDLE
    steps: List[StepResult] = field(default_factory=list)
    failed_step: Optional[int] = None
    resume_from: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.phase == ExecutionPhase.COMPLETED

    @property
    def last_hash(self) -> Optional[str]:
        """Hash of the last confirmed send."""
        for result in reversed(self.steps):
            if result.confirmed:
                return result.send_hash
        return None

    @property
    def failed_after_confirmation(self) -> bool:
        return self.failed_step is not None and self.resume_from != self.failed_step
