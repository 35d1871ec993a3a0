"""
JSON-RPC wallet provider.

Talks to a wallet that exposes the EIP-1193 method set over HTTP JSON-RPC
(a signing node, a wallet bridge or a dev chain with unlocked accounts).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, List, Optional

import httpx

from ..config import settings
from ..core.route.errors import (
    ReceiptError,
    UnrecognizedChainError,
    WalletError,
    WalletRejectionError,
)
from ..core.route.models import AddChainParameters, TransactionRequest
from ..core.route.wallet import WalletProvider


# EIP-1193 / EIP-3085 provider error codes
USER_REJECTED_CODE = 4001
UNAUTHORIZED_CODE = 4100
UNRECOGNIZED_CHAIN_CODE = 4902


class JsonRpcWalletProvider(WalletProvider):
    """WalletProvider over a JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        *,
        from_address: Optional[str] = None,
        poll_interval: Optional[float] = None,
        confirmation_timeout: Optional[float] = None,
        timeout_s: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.rpc_url = rpc_url or settings.wallet_rpc_url
        self.from_address = from_address
        self._poll_interval = poll_interval or settings.receipt_poll_interval_seconds
        self._confirmation_timeout = (
            confirmation_timeout
            if confirmation_timeout is not None
            else settings.confirmation_timeout_seconds
        )
        self._client = httpx.AsyncClient(
            timeout=timeout_s or settings.request_timeout_seconds,
            transport=transport,
        )
        self._request_id = 0
        self._logger = logger or logging.getLogger(__name__)

    @property
    def connection_id(self) -> str:
        return f"{self.rpc_url}#{self.from_address or ''}"

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        """Make a JSON-RPC call, mapping provider errors onto wallet errors."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise WalletError(f"Wallet RPC {method} failed: {exc}", details={"method": method}) from exc

        result = response.json()
        error = result.get("error")
        if error:
            raise self._map_error(method, params, error)
        return result.get("result")

    def _map_error(self, method: str, params: List[Any], error: Any) -> WalletError:
        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message", str(error)) if isinstance(error, dict) else str(error)

        if code == UNRECOGNIZED_CHAIN_CODE and method == "wallet_switchEthereumChain":
            chain_id = int(params[0]["chainId"], 16)
            return UnrecognizedChainError(chain_id, code=code, details={"method": method})
        if code in (USER_REJECTED_CODE, UNAUTHORIZED_CODE):
            return WalletRejectionError(f"Wallet rejected {method}: {message}", code=code, details={"method": method})
        return WalletError(f"Wallet RPC error on {method}: {message}", code=code, details={"method": method})

    async def get_current_network(self) -> int:
        chain_id = await self._rpc_call("eth_chainId", [])
        return int(chain_id, 16) if isinstance(chain_id, str) else int(chain_id)

    async def switch_network(self, chain_id: int) -> None:
        await self._rpc_call("wallet_switchEthereumChain", [{"chainId": hex(chain_id)}])

    async def add_network(self, params: AddChainParameters) -> None:
        await self._rpc_call("wallet_addEthereumChain", [params.to_payload()])

    async def send_transaction(self, tx: TransactionRequest) -> str:
        payload = tx.to_dict()
        if "from" not in payload and self.from_address:
            payload["from"] = self.from_address
        tx_hash = await self._rpc_call("eth_sendTransaction", [payload])
        self._logger.info("Transaction submitted: %s (%s on chain %s)", tx_hash, tx.kind.value, tx.chain_id)
        return tx_hash

    async def wait_for_confirmation(self, tx_hash: str, chain_id: int) -> None:
        started = time.monotonic()

        while True:
            timeout = self._confirmation_timeout
            if timeout is not None and time.monotonic() - started > timeout:
                raise ReceiptError(
                    f"Confirmation timeout after {timeout}s",
                    tx_hash=tx_hash,
                    chain_id=chain_id,
                )

            try:
                receipt = await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
            except WalletError as e:
                self._logger.warning("Error checking transaction status: %s", e)
                receipt = None

            if receipt:
                # 0x1 = success, 0x0 = revert
                status = int(receipt.get("status") or "0x1", 16)
                if status == 0:
                    raise ReceiptError(
                        "Transaction reverted",
                        tx_hash=tx_hash,
                        chain_id=chain_id,
                        details={"block_number": receipt.get("blockNumber")},
                    )
                self._logger.info(
                    "Transaction confirmed: %s (block %s)",
                    tx_hash,
                    int(receipt.get("blockNumber") or "0x0", 16),
                )
                return

            await asyncio.sleep(self._poll_interval)

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()
