"""Chain metadata registry backed by the planning service's supported chains."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import httpx
from pydantic import ValidationError

from ...config import settings
from ...providers.socket import SocketApiError, SocketProvider
from .errors import UnknownChainError
from .models import ChainMetadata


class ChainRegistry:
    """Chain metadata lookup with caching.

    The registry either wraps a fixed list of chains or fetches the supported
    chains from the Socket API on demand and refreshes them after the TTL.

    Usage:
        registry = ChainRegistry()
        chain = await registry.resolve_chain(42161)
        params = chain.to_add_chain_parameters()
    """

    def __init__(
        self,
        *,
        provider: Optional[SocketProvider] = None,
        chains: Optional[Iterable[ChainMetadata]] = None,
        cache_ttl_seconds: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._cache_ttl = (
            cache_ttl_seconds if cache_ttl_seconds is not None else settings.chain_cache_ttl_seconds
        )
        self._chains: Dict[int, ChainMetadata] = {}
        self._last_refresh: Optional[datetime] = None
        self._static = chains is not None

        if chains is not None:
            self._provider = provider
            self._chains = {chain.chain_id: chain for chain in chains}
        else:
            self._provider = provider or SocketProvider()

    async def ensure_loaded(self) -> bool:
        """Ensure chain data is loaded and fresh. Returns True if data is available."""
        if self._needs_refresh():
            try:
                await self._refresh()
            except Exception as exc:
                if not self._chains:
                    raise
                self._logger.warning("Failed to refresh chain registry, using cached data: %s", exc)
        return bool(self._chains)

    def _needs_refresh(self) -> bool:
        if self._static:
            return False
        if not self._chains or self._last_refresh is None:
            return True
        elapsed = (datetime.now() - self._last_refresh).total_seconds()
        return elapsed > self._cache_ttl

    async def _refresh(self) -> None:
        chains_data = await self._provider.get_supported_chains()
        self._process_chains(chains_data)
        self._last_refresh = datetime.now()
        self._logger.info("Chain registry refreshed: %d chains", len(self._chains))

    def _process_chains(self, chains_data: List[Dict[str, Any]]) -> None:
        new_chains: Dict[int, ChainMetadata] = {}
        for raw in chains_data:
            try:
                chain = ChainMetadata.model_validate(raw)
            except ValidationError as exc:
                self._logger.debug("Skipping malformed chain entry %s: %s", raw.get("chainId"), exc)
                continue
            new_chains[chain.chain_id] = chain
        self._chains = new_chains

    async def resolve_chain(self, chain_id: int) -> ChainMetadata:
        """Resolve a chain id, raising UnknownChainError if it is not listed."""
        try:
            await self.ensure_loaded()
        except (httpx.HTTPError, SocketApiError) as exc:
            raise UnknownChainError(
                chain_id,
                f"Chain metadata unavailable for {chain_id}: {exc}",
                action="resolve_chain",
            ) from exc
        chain = self._chains.get(chain_id)
        if chain is None:
            raise UnknownChainError(chain_id, action="resolve_chain")
        return chain

    def get_chain(self, chain_id: int) -> Optional[ChainMetadata]:
        return self._chains.get(chain_id)

    def is_chain_supported(self, chain_id: int) -> bool:
        return chain_id in self._chains

    def list_chains(self) -> List[ChainMetadata]:
        return sorted(self._chains.values(), key=lambda chain: chain.chain_id)

    @property
    def chain_count(self) -> int:
        return len(self._chains)
