"""
Wallet provider interface and wallet-network locking.

A wallet's active network is shared by every route executed through the same
wallet connection. NetworkLockRegistry hands out one lock per connection so
that a chain check, a switch and the submission that depends on it happen
without another route switching the wallet in between.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .models import AddChainParameters, TransactionRequest


class WalletProvider(ABC):
    """Capabilities the orchestrator needs from a connected wallet."""

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Identity of the wallet connection (used to key the network lock)."""
        pass

    @abstractmethod
    async def get_current_network(self) -> int:
        pass

    @abstractmethod
    async def switch_network(self, chain_id: int) -> None:
        """Switch networks; raises UnrecognizedChainError if the wallet lacks the chain."""
        pass

    @abstractmethod
    async def add_network(self, params: AddChainParameters) -> None:
        pass

    @abstractmethod
    async def send_transaction(self, tx: TransactionRequest) -> str:
        """Sign and broadcast a transaction, returning its hash."""
        pass

    @abstractmethod
    async def wait_for_confirmation(self, tx_hash: str, chain_id: int) -> None:
        """Block until the transaction is mined; raises ReceiptError on revert."""
        pass


class NetworkLockRegistry:
    """Per-wallet-connection locks around the wallet's active network."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_key(self, connection_id: str) -> str:
        return connection_id.lower()

    def get_lock(self, wallet: WalletProvider) -> asyncio.Lock:
        key = self._get_key(wallet.connection_id)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


_network_locks: Optional[NetworkLockRegistry] = None


def get_network_locks() -> NetworkLockRegistry:
    """Get the process-wide network lock registry."""
    global _network_locks
    if _network_locks is None:
        _network_locks = NetworkLockRegistry()
    return _network_locks
