"""
Tests for ChainRegistry lookups and caching.
"""

from datetime import datetime, timedelta

import httpx
import pytest
from unittest.mock import AsyncMock

from routerunner.core.route.chain_registry import ChainRegistry
from routerunner.core.route.errors import UnknownChainError
from routerunner.core.route.models import ChainMetadata


ARBITRUM_RAW = {
    "chainId": 42161,
    "name": "Arbitrum",
    "icon": "https://icons.example/arbitrum.svg",
    "isL1": False,
    "currency": {
        "address": "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee",
        "name": "Ether",
        "symbol": "ETH",
        "decimals": 18,
    },
    "rpcs": ["https://arb1.arbitrum.io/rpc"],
    "explorers": ["https://arbiscan.io"],
}

POLYGON_RAW = {
    "chainId": 137,
    "name": "Polygon",
    "currency": {"name": "MATIC", "symbol": "MATIC", "decimals": 18},
    "rpcs": ["https://polygon-rpc.com"],
    "explorers": [],
}


def make_provider(chains=None):
    provider = AsyncMock()
    provider.get_supported_chains = AsyncMock(return_value=chains if chains is not None else [ARBITRUM_RAW, POLYGON_RAW])
    return provider


class TestStaticRegistry:
    @pytest.mark.asyncio
    async def test_resolve_known_chain(self):
        registry = ChainRegistry(chains=[ChainMetadata.model_validate(ARBITRUM_RAW)])

        chain = await registry.resolve_chain(42161)

        assert chain.name == "Arbitrum"
        assert registry.is_chain_supported(42161)
        assert registry.get_chain(1) is None

    @pytest.mark.asyncio
    async def test_resolve_unknown_chain(self):
        registry = ChainRegistry(chains=[])

        with pytest.raises(UnknownChainError) as exc_info:
            await registry.resolve_chain(999)

        assert exc_info.value.chain_id == 999
        assert exc_info.value.action == "resolve_chain"


class TestProviderRegistry:
    @pytest.mark.asyncio
    async def test_loads_once_within_ttl(self):
        provider = make_provider()
        registry = ChainRegistry(provider=provider, cache_ttl_seconds=3600)

        await registry.resolve_chain(42161)
        await registry.resolve_chain(137)

        provider.get_supported_chains.assert_awaited_once()
        assert [c.chain_id for c in registry.list_chains()] == [137, 42161]

    @pytest.mark.asyncio
    async def test_malformed_entries_skipped(self):
        provider = make_provider([ARBITRUM_RAW, {"chainId": 5, "name": "Broken"}])
        registry = ChainRegistry(provider=provider)

        await registry.ensure_loaded()

        assert registry.chain_count == 1
        assert registry.is_chain_supported(42161)

    @pytest.mark.asyncio
    async def test_stale_data_kept_when_refresh_fails(self):
        provider = make_provider()
        registry = ChainRegistry(provider=provider, cache_ttl_seconds=60)
        await registry.ensure_loaded()

        registry._last_refresh = datetime.now() - timedelta(seconds=120)
        provider.get_supported_chains = AsyncMock(side_effect=httpx.ConnectError("down"))

        chain = await registry.resolve_chain(137)

        assert chain.name == "Polygon"
        provider.get_supported_chains.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unavailable_metadata_is_unknown_chain(self):
        provider = make_provider()
        provider.get_supported_chains = AsyncMock(side_effect=httpx.ConnectError("down"))
        registry = ChainRegistry(provider=provider)

        with pytest.raises(UnknownChainError) as exc_info:
            await registry.resolve_chain(42161)

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_add_chain_parameters_payload():
    chain = ChainMetadata.model_validate(ARBITRUM_RAW)

    payload = chain.to_add_chain_parameters().to_payload()

    assert payload == {
        "chainId": "0xa4b1",
        "chainName": "Arbitrum",
        "nativeCurrency": {"name": "Ether", "symbol": "ETH", "decimals": 18},
        "rpcUrls": ["https://arb1.arbitrum.io/rpc"],
        "blockExplorerUrls": ["https://arbiscan.io"],
        "iconUrls": ["https://icons.example/arbitrum.svg"],
    }


def test_add_chain_parameters_omit_empty_optionals():
    chain = ChainMetadata.model_validate(POLYGON_RAW)

    payload = chain.to_add_chain_parameters().to_payload()

    assert "blockExplorerUrls" not in payload
    assert "iconUrls" not in payload
