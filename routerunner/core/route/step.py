"""A single user-facing transaction within a route."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from .models import StepDescriptor, TransactionRequest, UserTxType
from .tx_builder import TransactionBuilder

if TYPE_CHECKING:  # pragma: no cover
    from .planning import PlanningService


class StepTransaction:
    """Translates a StepDescriptor into the requests needed to execute it.

    The request builders are pure: calling them repeatedly for the same
    descriptor returns equal requests.
    """

    def __init__(self, descriptor: StepDescriptor, active_route_id: int) -> None:
        self.descriptor = descriptor
        self.active_route_id = active_route_id

    @property
    def chain_id(self) -> int:
        return self.descriptor.chain_id

    @property
    def user_tx_index(self) -> int:
        return self.descriptor.user_tx_index

    @property
    def total_user_tx(self) -> int:
        return self.descriptor.total_user_tx

    @property
    def user_tx_type(self) -> UserTxType:
        return self.descriptor.user_tx_type

    @property
    def needs_approval(self) -> bool:
        approval = self.descriptor.approval_data
        return approval is not None and approval.required

    def get_approve_transaction(self) -> Optional[TransactionRequest]:
        """Approval request for the step, or None when no approval is needed."""
        if not self.needs_approval:
            return None
        approval = self.descriptor.approval_data
        return TransactionBuilder.build_erc20_approve(
            chain_id=self.chain_id,
            owner_address=approval.owner,
            token_address=approval.token,
            spender_address=approval.spender,
            amount=approval.amount_int,
        )

    def get_send_transaction(self) -> TransactionRequest:
        return TransactionBuilder.build_send(self.descriptor)

    async def fetch_next_step(
        self,
        planning: "PlanningService",
        confirmed_hash: str,
    ) -> Optional[StepDescriptor]:
        """Ask the planning service for the step that follows this one."""
        return await planning.fetch_next_step(
            self.active_route_id,
            self.user_tx_index,
            confirmed_hash,
        )

    def __repr__(self) -> str:
        return (
            f"StepTransaction(route={self.active_route_id}, "
            f"index={self.user_tx_index}/{self.total_user_tx}, chain={self.chain_id})"
        )
