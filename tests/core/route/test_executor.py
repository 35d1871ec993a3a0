"""
Tests for the RouteExecutor step sequence.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from routerunner.core.route.errors import (
    InvalidRouteError,
    InvalidSequenceError,
    PlanningServiceError,
)
from routerunner.core.route.executor import RouteExecutor
from routerunner.core.route.models import Route, StepDescriptor
from routerunner.core.route.planning import PlanningService
from routerunner.core.route.retry import RetryConfig, RetryStrategy


def make_step(index: int, total: int, chain_id: int = 137, target: str = "0xaaaa") -> StepDescriptor:
    return StepDescriptor(
        tx_target=target,
        chain_id=chain_id,
        tx_data=f"0x{index:02x}",
        user_tx_index=index,
        total_user_tx=total,
    )


def make_route(total: int, known: int = 1, route_id: int = 501) -> Route:
    return Route(
        active_route_id=route_id,
        user_txs=[make_step(i, total) for i in range(known)],
        total_user_tx=total,
    )


class FakePlanning(PlanningService):
    """Serves next steps from a dict keyed by index, optionally failing first."""

    def __init__(
        self,
        steps: Optional[Dict[int, Optional[StepDescriptor]]] = None,
        failures: int = 0,
        recoverable: bool = True,
    ):
        self.steps = steps or {}
        self.failures = failures
        self.recoverable = recoverable
        self.calls: List[Tuple[int, int, str]] = []

    async def fetch_next_step(self, active_route_id, user_tx_index, confirmed_hash):
        self.calls.append((active_route_id, user_tx_index, confirmed_hash))
        if self.failures:
            self.failures -= 1
            raise PlanningServiceError("service unavailable", recoverable=self.recoverable)
        return self.steps.get(user_tx_index + 1)


def no_delay_retry(max_attempts: int = 3) -> RetryStrategy:
    return RetryStrategy(RetryConfig(max_attempts=max_attempts, initial_delay_seconds=0, jitter=False))


def make_executor(planning: PlanningService, attempts: int = 3) -> RouteExecutor:
    return RouteExecutor(planning, retry=no_delay_retry(attempts))


class TestSequence:
    @pytest.mark.asyncio
    async def test_yields_every_step_in_order(self):
        total = 4
        planning = FakePlanning({i: make_step(i, total) for i in range(1, total)})
        executor = make_executor(planning)

        indices = []
        async for step in executor.start(make_route(total)):
            indices.append(step.user_tx_index)
            await executor.advance(f"0xhash{step.user_tx_index}")

        assert indices == [0, 1, 2, 3]
        assert executor.state.completed is True
        assert executor.state.last_hash == "0xhash3"
        assert planning.calls == [
            (501, 0, "0xhash0"),
            (501, 1, "0xhash1"),
            (501, 2, "0xhash2"),
            (501, 3, "0xhash3"),
        ]

    @pytest.mark.asyncio
    async def test_single_step_route_completes(self):
        executor = make_executor(FakePlanning())
        sequence = executor.start(make_route(1))

        step = await sequence.__anext__()
        await executor.advance("0xdone")

        assert step.user_tx_index == 0
        with pytest.raises(StopAsyncIteration):
            await sequence.__anext__()
        with pytest.raises(StopAsyncIteration):
            await sequence.__anext__()
        assert sequence.completed is True

    @pytest.mark.asyncio
    async def test_next_element_waits_for_advance(self):
        planning = FakePlanning({1: make_step(1, 2)})
        executor = make_executor(planning)
        sequence = executor.start(make_route(2))

        await sequence.__anext__()
        pending = asyncio.create_task(sequence.__anext__())
        await asyncio.sleep(0)
        assert not pending.done()

        await executor.advance("0x0")
        step = await asyncio.wait_for(pending, timeout=1)

        assert step.user_tx_index == 1

    def test_empty_route_rejected(self):
        executor = make_executor(FakePlanning())

        with pytest.raises(InvalidRouteError):
            executor.start(Route(active_route_id=1, user_txs=[], total_user_tx=1))

    @pytest.mark.asyncio
    async def test_resumed_route_starts_at_first_unresolved_step(self):
        total = 3
        planning = FakePlanning({2: make_step(2, total)})
        executor = make_executor(planning)
        route = make_route(total, known=3).resume_from(1)

        indices = []
        async for step in executor.start(route):
            indices.append(step.user_tx_index)
            await executor.advance("0x")

        assert indices == [1, 2]


class TestAdvanceMisuse:
    @pytest.mark.asyncio
    async def test_advance_before_start(self):
        executor = make_executor(FakePlanning())

        with pytest.raises(InvalidSequenceError):
            await executor.advance("0x1")

    @pytest.mark.asyncio
    async def test_advance_before_first_step_yielded(self):
        executor = make_executor(FakePlanning())
        executor.start(make_route(2))

        with pytest.raises(InvalidSequenceError):
            await executor.advance("0x1")

    @pytest.mark.asyncio
    async def test_advance_twice_for_same_step(self):
        planning = FakePlanning({1: make_step(1, 2)})
        executor = make_executor(planning)
        sequence = executor.start(make_route(2))
        await sequence.__anext__()

        await executor.advance("0x1")
        with pytest.raises(InvalidSequenceError):
            await executor.advance("0x1")

        assert len(planning.calls) == 1

    @pytest.mark.asyncio
    async def test_restart_supersedes_old_sequence(self):
        executor = make_executor(FakePlanning({1: make_step(1, 2)}))
        old = executor.start(make_route(2))
        executor.start(make_route(2))

        with pytest.raises(InvalidSequenceError):
            await old.__anext__()

    @pytest.mark.asyncio
    async def test_abandoned_sequence_stops(self):
        executor = make_executor(FakePlanning({1: make_step(1, 2)}))
        sequence = executor.start(make_route(2))
        await sequence.__anext__()

        await sequence.aclose()

        with pytest.raises(StopAsyncIteration):
            await sequence.__anext__()
        with pytest.raises(InvalidSequenceError):
            await executor.advance("0x1")


class TestPlanningAuthority:
    @pytest.mark.asyncio
    async def test_service_step_overrides_cached_entry(self):
        redescribed = make_step(1, 2, chain_id=42161, target="0xbbbb")
        executor = make_executor(FakePlanning({1: redescribed}))
        sequence = executor.start(make_route(2, known=2))

        await sequence.__anext__()
        await executor.advance("0x1")
        step = await sequence.__anext__()

        assert step.chain_id == 42161
        assert step.descriptor.tx_target == "0xbbbb"

    @pytest.mark.asyncio
    async def test_cached_entry_used_when_service_returns_nothing(self):
        executor = make_executor(FakePlanning({}))
        sequence = executor.start(make_route(2, known=2))

        await sequence.__anext__()
        await executor.advance("0x1")
        step = await sequence.__anext__()

        assert step.user_tx_index == 1

    @pytest.mark.asyncio
    async def test_missing_step_is_an_error(self):
        executor = make_executor(FakePlanning({}))
        sequence = executor.start(make_route(3, known=1))
        await sequence.__anext__()

        with pytest.raises(PlanningServiceError) as exc_info:
            await executor.advance("0x1")

        assert exc_info.value.recoverable is False
        assert exc_info.value.step_index == 0
        assert exc_info.value.route_id == 501

    @pytest.mark.asyncio
    async def test_out_of_order_step_is_an_error(self):
        executor = make_executor(FakePlanning({1: make_step(2, 3)}))
        sequence = executor.start(make_route(3))
        await sequence.__anext__()

        with pytest.raises(PlanningServiceError):
            await executor.advance("0x1")

    @pytest.mark.asyncio
    async def test_step_past_total_is_an_error(self):
        executor = make_executor(FakePlanning({1: make_step(1, 5)}))
        sequence = executor.start(make_route(1))
        await sequence.__anext__()

        with pytest.raises(PlanningServiceError):
            await executor.advance("0x1")


class TestPlanningRetries:
    @pytest.mark.asyncio
    async def test_recoverable_errors_are_retried(self):
        planning = FakePlanning({1: make_step(1, 2)}, failures=2)
        executor = make_executor(planning, attempts=3)
        sequence = executor.start(make_route(2))
        await sequence.__anext__()

        await executor.advance("0x1")

        assert planning.calls == [(501, 0, "0x1")] * 3
        assert (await sequence.__anext__()).user_tx_index == 1

    @pytest.mark.asyncio
    async def test_unrecoverable_error_not_retried(self):
        planning = FakePlanning({1: make_step(1, 2)}, failures=1, recoverable=False)
        executor = make_executor(planning, attempts=3)
        sequence = executor.start(make_route(2))
        await sequence.__anext__()

        with pytest.raises(PlanningServiceError):
            await executor.advance("0x1")

        assert len(planning.calls) == 1

    @pytest.mark.asyncio
    async def test_advance_can_be_repeated_after_exhausted_retries(self):
        planning = FakePlanning({1: make_step(1, 2)}, failures=2)
        executor = make_executor(planning, attempts=2)
        sequence = executor.start(make_route(2))
        await sequence.__anext__()

        with pytest.raises(PlanningServiceError) as exc_info:
            await executor.advance("0x1")
        assert exc_info.value.action == "fetch_next_step"

        await executor.advance("0x1")
        assert (await sequence.__anext__()).user_tx_index == 1
