"""
Route executor.

Drives an active route one step at a time. `start(route)` returns a lazy,
single-consumer async sequence of StepTransaction objects; after a step's send
transaction is confirmed the caller hands its hash to `advance(hash)`, which
asks the planning service for the next step and unblocks the sequence.

Usage:
    executor = RouteExecutor(SocketPlanningService())
    async for step in executor.start(route):
        tx_hash = ...  # submit step.get_send_transaction() and wait for it
        await executor.advance(tx_hash)
"""

from __future__ import annotations

import logging
from typing import Optional

from .errors import InvalidRouteError, InvalidSequenceError, PlanningServiceError
from .models import ExecutionState, Route, StepDescriptor
from .planning import PlanningService
from .retry import RetryStrategy
from .step import StepTransaction


class StepSequence:
    """Async iterator over the steps of one execution.

    At most one step is outstanding: after a step is yielded the next
    `__anext__` waits until the executor has been advanced past it.
    """

    def __init__(self, executor: "RouteExecutor", state: ExecutionState) -> None:
        self._executor = executor
        self._state = state
        self._closed = False

    def __aiter__(self) -> "StepSequence":
        return self

    async def __anext__(self) -> StepTransaction:
        state = self._check_active()
        if state.awaiting_hash:
            await state.advanced.wait()
            state = self._check_active()

        if state.completed or state.next_step is None:
            raise StopAsyncIteration

        descriptor = state.next_step
        state.next_step = None
        state.current_step = descriptor
        state.yielded += 1
        state.advanced.clear()
        return StepTransaction(descriptor, state.route.active_route_id)

    def _check_active(self) -> ExecutionState:
        if self._closed:
            raise StopAsyncIteration
        if self._executor.state is not self._state:
            raise InvalidSequenceError(
                "Step sequence was superseded by a newer start()",
                route_id=self._state.route.active_route_id,
            )
        return self._state

    async def aclose(self) -> None:
        """Stop consuming the sequence. Broadcast transactions are not undone."""
        self._closed = True
        self._executor._abandon(self._state)

    @property
    def completed(self) -> bool:
        return self._state.completed


class RouteExecutor:
    """Produces the steps of a route, advancing only on confirmed hashes."""

    def __init__(
        self,
        planning: PlanningService,
        *,
        retry: Optional[RetryStrategy] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._planning = planning
        self._logger = logger or logging.getLogger(__name__)
        self._retry = retry or RetryStrategy(logger=self._logger)
        self._state: Optional[ExecutionState] = None

    @property
    def state(self) -> Optional[ExecutionState]:
        return self._state

    def start(self, route: Route) -> StepSequence:
        """Begin executing a route from its first known step."""
        if not route.user_txs:
            raise InvalidRouteError(
                "Route has no user transactions",
                route_id=route.active_route_id,
            )

        first = min(route.user_txs, key=lambda step: step.user_tx_index)
        self._state = ExecutionState(route=route, next_step=first)
        self._logger.info(
            "Starting route %s at step %d of %d",
            route.active_route_id,
            first.user_tx_index,
            route.total_user_tx,
        )
        return StepSequence(self, self._state)

    async def advance(self, tx_hash: str) -> None:
        """Record the confirmed hash of the current step and stage the next one."""
        state = self._state
        if state is None or state.current_step is None:
            raise InvalidSequenceError(
                "advance() called with no outstanding step",
                route_id=state.route.active_route_id if state else None,
                action="advance",
            )
        if state.advancing:
            raise InvalidSequenceError(
                "advance() already in progress for this step",
                route_id=state.route.active_route_id,
                step_index=state.current_step.user_tx_index,
                action="advance",
            )

        current = state.current_step
        route_id = state.route.active_route_id
        step = StepTransaction(current, route_id)

        state.advancing = True
        try:
            fetched = await self._retry.execute(
                lambda: step.fetch_next_step(self._planning, tx_hash)
            )
            next_step = self._resolve_next(state, current, fetched)
        except PlanningServiceError as exc:
            raise exc.with_context(
                route_id=route_id,
                step_index=current.user_tx_index,
                action="fetch_next_step",
            )
        finally:
            state.advancing = False

        if self._state is not state:
            # Superseded or abandoned while the fetch was in flight.
            return

        state.last_hash = tx_hash
        state.current_step = None
        state.next_step = next_step
        state.completed = next_step is None
        state.advanced.set()

        if state.completed:
            self._logger.info("Route %s completed after step %d", route_id, current.user_tx_index)
        else:
            self._logger.info(
                "Route %s advanced: step %d confirmed (%s), next step %d on chain %d",
                route_id,
                current.user_tx_index,
                tx_hash,
                next_step.user_tx_index,
                next_step.chain_id,
            )

    def _resolve_next(
        self,
        state: ExecutionState,
        current: StepDescriptor,
        fetched: Optional[StepDescriptor],
    ) -> Optional[StepDescriptor]:
        expected = current.user_tx_index + 1
        total = current.total_user_tx

        if fetched is not None:
            if fetched.user_tx_index != expected:
                raise PlanningServiceError(
                    f"Planning service returned step {fetched.user_tx_index}, expected {expected}",
                    recoverable=False,
                )
            if expected >= total:
                raise PlanningServiceError(
                    f"Planning service returned step {expected} past the end of a {total}-step route",
                    recoverable=False,
                )
            return fetched

        if expected >= total:
            return None

        cached = state.route.step_at(expected)
        if cached is None:
            raise PlanningServiceError(
                f"No step {expected} available although the route has {total} transactions",
                recoverable=False,
            )
        return cached

    def _abandon(self, state: ExecutionState) -> None:
        if self._state is state:
            self._logger.info(
                "Route %s abandoned after %d step(s)",
                state.route.active_route_id,
                state.yielded,
            )
            self._state = None
        state.advanced.set()
