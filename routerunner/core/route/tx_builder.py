"""
Transaction builder for the requests a route step submits.
"""

from .models import StepDescriptor, TransactionKind, TransactionRequest


ERC20_APPROVE_SELECTOR = "0x095ea7b3"  # approve(address,uint256)

# Maximum uint256 for unlimited approval
MAX_UINT256 = 2**256 - 1


def _encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, "064x")


def _encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    addr = address.lower().replace("0x", "")
    return addr.zfill(64)


def _normalize_calldata(data: str) -> str:
    if not data:
        return "0x"
    return data if data.startswith("0x") else f"0x{data}"


class TransactionBuilder:
    """Builds wallet requests from step descriptors."""

    @staticmethod
    def build_erc20_approve(
        chain_id: int,
        owner_address: str,
        token_address: str,
        spender_address: str,
        amount: int = MAX_UINT256,
    ) -> TransactionRequest:
        """
        Build an ERC20 approval transaction.

        Args:
            chain_id: The chain ID
            owner_address: The token owner (sender)
            token_address: The ERC20 token contract
            spender_address: The address being approved to spend
            amount: The amount to approve (default: unlimited)

        Returns:
            TransactionRequest ready to be signed
        """
        # Encode: approve(address spender, uint256 amount)
        calldata = (
            ERC20_APPROVE_SELECTOR +
            _encode_address(spender_address) +
            _encode_uint256(amount)
        )

        return TransactionRequest(
            kind=TransactionKind.APPROVE,
            chain_id=chain_id,
            to=token_address.lower(),
            data=calldata,
            value=0,
            from_address=owner_address.lower(),
        )

    @staticmethod
    def build_send(step: StepDescriptor) -> TransactionRequest:
        """Build the main transaction of a step."""
        return TransactionRequest(
            kind=TransactionKind.SEND,
            chain_id=step.chain_id,
            to=step.tx_target.lower(),
            data=_normalize_calldata(step.tx_data),
            value=step.value_wei,
        )
