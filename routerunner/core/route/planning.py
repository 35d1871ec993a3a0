"""
Planning service interface.

The planning service is authoritative for which transaction comes next in an
active route. Fetching the next step is idempotent for a given
(active_route_id, user_tx_index, confirmed_hash).
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from pydantic import ValidationError

from ...config import settings
from ...providers.socket import SocketApiError, SocketProvider
from .errors import PlanningServiceError
from .models import StepDescriptor


class PlanningService(ABC):
    """Source of the next step of an active route."""

    @abstractmethod
    async def fetch_next_step(
        self,
        active_route_id: int,
        user_tx_index: int,
        confirmed_hash: str,
    ) -> Optional[StepDescriptor]:
        """Return the step after `user_tx_index`, or None when the route is done."""
        pass


def _planning_error(exc: Exception, action: str) -> PlanningServiceError:
    """Map a transport or API failure onto PlanningServiceError."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return PlanningServiceError(
            f"Planning service returned HTTP {status} during {action}",
            recoverable=status == 429 or status >= 500,
            status_code=status,
            action=action,
        )
    if isinstance(exc, httpx.RequestError):
        return PlanningServiceError(
            f"Planning service unreachable during {action}: {exc}",
            recoverable=True,
            action=action,
        )
    if isinstance(exc, ValidationError):
        return PlanningServiceError(
            f"Planning service returned a malformed step during {action}: {exc}",
            recoverable=False,
            action=action,
        )
    return PlanningServiceError(
        f"Planning service rejected {action}: {exc}",
        recoverable=False,
        action=action,
    )


class SocketPlanningService(PlanningService):
    """PlanningService backed by the Socket active-route API.

    For each confirmed step the hash is reported, the step status is polled
    until the service marks it COMPLETED, and the next transaction is built.
    """

    def __init__(
        self,
        provider: Optional[SocketProvider] = None,
        *,
        status_check_interval: Optional[float] = None,
        status_check_timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._provider = provider or SocketProvider()
        self._interval = status_check_interval or settings.status_check_interval_seconds
        self._timeout = (
            status_check_timeout
            if status_check_timeout is not None
            else settings.status_check_timeout_seconds
        )
        self._logger = logger or logging.getLogger(__name__)

    async def fetch_next_step(
        self,
        active_route_id: int,
        user_tx_index: int,
        confirmed_hash: str,
    ) -> Optional[StepDescriptor]:
        try:
            await self._provider.submit_tx_hash(active_route_id, user_tx_index, confirmed_hash)
        except (httpx.HTTPError, SocketApiError) as exc:
            raise _planning_error(exc, "submit_tx_hash") from exc

        await self._wait_for_completion(active_route_id, user_tx_index, confirmed_hash)

        try:
            raw = await self._provider.build_next_tx(active_route_id)
            if not raw:
                return None
            step = StepDescriptor.model_validate(raw)
        except (httpx.HTTPError, SocketApiError, ValidationError) as exc:
            raise _planning_error(exc, "build_next_tx") from exc

        if step.user_tx_index <= user_tx_index:
            # The service hands back the step we just finished: nothing left.
            return None
        return step

    async def _wait_for_completion(
        self,
        active_route_id: int,
        user_tx_index: int,
        tx_hash: str,
    ) -> None:
        started = time.monotonic()
        while True:
            try:
                status = await self._provider.get_tx_status(active_route_id, user_tx_index, tx_hash)
            except (httpx.HTTPError, SocketApiError) as exc:
                raise _planning_error(exc, "get_tx_status") from exc

            if status == "COMPLETED":
                return
            if status == "FAILED":
                raise PlanningServiceError(
                    f"Planning service reports step {user_tx_index} failed",
                    recoverable=False,
                    route_id=active_route_id,
                    step_index=user_tx_index,
                    action="get_tx_status",
                    details={"tx_hash": tx_hash},
                )

            if self._timeout is not None and time.monotonic() - started > self._timeout:
                raise PlanningServiceError(
                    f"Step {user_tx_index} still {status or 'PENDING'} after {self._timeout}s",
                    recoverable=True,
                    route_id=active_route_id,
                    step_index=user_tx_index,
                    action="get_tx_status",
                )

            self._logger.debug(
                "Route %s step %s status %s, checking again in %.1fs",
                active_route_id,
                user_tx_index,
                status,
                self._interval,
            )
            await asyncio.sleep(self._interval)
