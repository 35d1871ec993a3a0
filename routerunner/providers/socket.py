"""Async client for the Socket (Bungee) route API."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings


class SocketApiError(RuntimeError):
    """The API answered but reported an unsuccessful call."""

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.payload = payload or {}


class SocketProvider:
    """Thin client for the Socket v2 active-route endpoints."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: Optional[int] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        # Try explicit args → settings → environment
        self.api_key = (
            api_key
            or settings.socket_api_key
            or os.environ.get("SOCKET_API_KEY", "")
        )
        configured = base_url or settings.socket_base_url
        self.base_urls: List[str] = [url.rstrip("/") for url in configured.split(",") if url.strip()]
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
        }
        if self.api_key:
            headers["API-KEY"] = self.api_key
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged_headers = {**self._headers(), **(headers or {})}
        last_error: Optional[Exception] = None

        for index, base_url in enumerate(self.base_urls):
            try:
                async with httpx.AsyncClient(
                    base_url=base_url,
                    timeout=self.timeout_s,
                    transport=self._transport,
                ) as client:
                    resp = await client.request(method, path, headers=merged_headers, **kwargs)
                    resp.raise_for_status()
                    return resp
            except httpx.HTTPStatusError as exc:
                # Fall back to the next host only when a route is missing there.
                if exc.response.status_code in (404, 405) and index < len(self.base_urls) - 1:
                    last_error = exc
                    continue
                raise
            except httpx.RequestError as exc:
                last_error = exc
                continue

        if last_error:
            raise last_error
        raise RuntimeError("All Socket hosts failed without a specific error")

    async def _get_result(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        cleaned: Dict[str, Any] = {k: v for k, v in (params or {}).items() if v is not None}
        resp = await self._request("GET", path, params=cleaned)
        payload = resp.json()
        if not payload.get("success", False):
            raise SocketApiError(
                payload.get("message") or f"Socket call {path} was not successful",
                payload,
            )
        return payload.get("result")

    async def get_supported_chains(self) -> List[Dict[str, Any]]:
        """List chains supported by the planning service."""
        return await self._get_result("/v2/supported/chains") or []

    async def submit_tx_hash(self, active_route_id: int, user_tx_index: int, tx_hash: str) -> Any:
        """Report the hash of a submitted user transaction."""
        return await self._get_result(
            "/v2/route/prepare",
            {"activeRouteId": active_route_id, "userTxIndex": user_tx_index, "txHash": tx_hash},
        )

    async def get_tx_status(self, active_route_id: int, user_tx_index: int, tx_hash: str) -> str:
        """Status of a submitted user transaction: PENDING, COMPLETED or FAILED."""
        result = await self._get_result(
            "/v2/route/status",
            {"activeRouteId": active_route_id, "userTxIndex": user_tx_index, "txHash": tx_hash},
        )
        return str(result or "").upper()

    async def build_next_tx(self, active_route_id: int) -> Optional[Dict[str, Any]]:
        """Build the next pending user transaction of an active route."""
        return await self._get_result("/v2/route/build-next-tx", {"activeRouteId": active_route_id})
