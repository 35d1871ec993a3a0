"""
Wallet orchestrator.

Executes a route end-to-end against a connected wallet: for every step it makes
sure the wallet is on the step's chain, submits and confirms the approval when
one is needed, submits and confirms the send transaction, then feeds the
confirmed hash back to the RouteExecutor to unlock the next step.

Approval and send are strictly sequential: the send is never submitted while
the approval is still pending.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Dict, Optional, Set, TypeVar

import structlog

from .chain_registry import ChainRegistry
from .errors import InvalidSequenceError, RouteExecutionError, UnrecognizedChainError
from .executor import RouteExecutor
from .models import ExecutionPhase, ExecutionReport, Route, StepResult
from .planning import PlanningService
from .retry import RetryStrategy
from .step import StepTransaction
from .wallet import NetworkLockRegistry, WalletProvider, get_network_locks

T = TypeVar("T")


class ExecutionObserver:
    """Progress notifications for a route execution.

    Every method is optional; the defaults do nothing. Each notification fires
    at most once per step.
    """

    def on_tx(self, step: StepTransaction) -> None:
        pass

    def on_tx_done(self, step: StepTransaction) -> None:
        pass

    def on_approve(self, step: StepTransaction) -> None:
        pass

    def on_approve_submitted(self, step: StepTransaction, tx_hash: str) -> None:
        pass

    def on_approve_confirmed(self, step: StepTransaction, tx_hash: str) -> None:
        pass

    def on_send(self, step: StepTransaction) -> None:
        pass

    def on_send_submitted(self, step: StepTransaction, tx_hash: str) -> None:
        pass

    def on_send_confirmed(self, step: StepTransaction, tx_hash: str) -> None:
        pass

    def on_chain_switch(self, from_chain_id: int, to_chain_id: int) -> None:
        pass

    def on_chain_switch_done(self, chain_id: int) -> None:
        pass


class WalletOrchestrator:
    """Drives routes to completion through one wallet connection."""

    TRANSITIONS: Dict[ExecutionPhase, Set[ExecutionPhase]] = {
        ExecutionPhase.IDLE: {
            ExecutionPhase.STEP_PENDING,
            ExecutionPhase.ABORTED,
        },
        ExecutionPhase.STEP_PENDING: {
            ExecutionPhase.APPROVING,
            ExecutionPhase.SENDING,
            ExecutionPhase.ABORTED,
        },
        ExecutionPhase.APPROVING: {
            ExecutionPhase.SENDING,
            ExecutionPhase.ABORTED,
        },
        ExecutionPhase.SENDING: {
            ExecutionPhase.CONFIRMING,
            ExecutionPhase.ABORTED,
        },
        ExecutionPhase.CONFIRMING: {
            ExecutionPhase.NEXT_STEP_PENDING,
            ExecutionPhase.ABORTED,
        },
        ExecutionPhase.NEXT_STEP_PENDING: {
            ExecutionPhase.STEP_PENDING,
            ExecutionPhase.COMPLETED,
            ExecutionPhase.ABORTED,
        },
        ExecutionPhase.COMPLETED: set(),
        ExecutionPhase.ABORTED: set(),
    }

    def __init__(
        self,
        wallet: WalletProvider,
        planning: PlanningService,
        chains: ChainRegistry,
        *,
        network_locks: Optional[NetworkLockRegistry] = None,
        retry: Optional[RetryStrategy] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._wallet = wallet
        self._planning = planning
        self._chains = chains
        self._locks = network_locks or get_network_locks()
        self._retry = retry
        self._logger = logger or logging.getLogger(__name__)

    async def execute(
        self,
        route: Route,
        observer: Optional[ExecutionObserver] = None,
    ) -> ExecutionReport:
        """Execute every step of a route. Raises on the first fatal error.

        Steps confirmed before a failure stay on-chain; resume with a fresh
        execution of `route.resume_from(report.resume_from)`. When the failed
        step's own send was confirmed, `resume_from` points past it and the
        following step must be re-fetched with that step's hash first.
        """
        observer = observer or ExecutionObserver()
        executor = RouteExecutor(self._planning, retry=self._retry, logger=self._logger)
        report = ExecutionReport(route_id=route.active_route_id)
        step: Optional[StepTransaction] = None

        structlog.contextvars.bind_contextvars(route_id=route.active_route_id)
        sequence = None
        try:
            sequence = executor.start(route)
            async for step in sequence:
                structlog.contextvars.bind_contextvars(step_index=step.user_tx_index)
                self._transition(report, ExecutionPhase.STEP_PENDING)
                await self._execute_step(executor, step, observer, report)

            self._transition(report, ExecutionPhase.COMPLETED)
            self._logger.info(
                "Route %s completed: %d step(s) executed",
                route.active_route_id,
                len(report.steps),
            )
            return report
        except RouteExecutionError as exc:
            exc.with_context(
                route_id=route.active_route_id,
                step_index=step.user_tx_index if step else None,
            )
            self._abort(report, step, exc)
            exc.report = report
            raise
        except Exception as exc:
            self._abort(report, step, exc)
            raise
        finally:
            if sequence is not None and report.phase != ExecutionPhase.COMPLETED:
                await sequence.aclose()
            structlog.contextvars.unbind_contextvars("route_id", "step_index")

    async def _execute_step(
        self,
        executor: RouteExecutor,
        step: StepTransaction,
        observer: ExecutionObserver,
        report: ExecutionReport,
    ) -> StepResult:
        result = StepResult(user_tx_index=step.user_tx_index, chain_id=step.chain_id)
        report.steps.append(result)
        lock = self._locks.get_lock(self._wallet)

        observer.on_tx(step)

        approve_tx = step.get_approve_transaction()
        if approve_tx is not None:
            self._transition(report, ExecutionPhase.APPROVING)
            async with lock:
                await self._ensure_chain(step, observer, result)
                observer.on_approve(step)
                result.approval_hash = await self._guard(
                    "approve", step, self._wallet.send_transaction(approve_tx)
                )
            observer.on_approve_submitted(step, result.approval_hash)
            await self._guard(
                "confirm_approval",
                step,
                self._wallet.wait_for_confirmation(result.approval_hash, step.chain_id),
            )
            observer.on_approve_confirmed(step, result.approval_hash)

        self._transition(report, ExecutionPhase.SENDING)
        send_tx = step.get_send_transaction()
        async with lock:
            # The wallet may have been switched while the approval confirmed.
            await self._ensure_chain(step, observer, result)
            observer.on_send(step)
            result.send_hash = await self._guard(
                "send", step, self._wallet.send_transaction(send_tx)
            )
        observer.on_send_submitted(step, result.send_hash)

        self._transition(report, ExecutionPhase.CONFIRMING)
        await self._guard(
            "confirm_send",
            step,
            self._wallet.wait_for_confirmation(result.send_hash, step.chain_id),
        )
        result.confirmed = True
        observer.on_send_confirmed(step, result.send_hash)

        self._transition(report, ExecutionPhase.NEXT_STEP_PENDING)
        await self._guard("advance", step, executor.advance(result.send_hash))
        observer.on_tx_done(step)
        return result

    async def _ensure_chain(
        self,
        step: StepTransaction,
        observer: ExecutionObserver,
        result: StepResult,
    ) -> bool:
        """Switch the wallet to the step's chain. Returns True if a switch happened.

        Callers hold the wallet's network lock.
        """
        target = step.chain_id
        current = await self._guard("get_network", step, self._wallet.get_current_network())
        if current == target:
            return False

        notify = result.chain_switches == 0
        if notify:
            observer.on_chain_switch(current, target)
        self._logger.info("Switching wallet network %s -> %s", current, target)

        try:
            await self._guard("switch_network", step, self._wallet.switch_network(target))
        except UnrecognizedChainError:
            chain = await self._guard("resolve_chain", step, self._chains.resolve_chain(target))
            self._logger.info("Wallet does not know chain %s, adding %s", target, chain.name)
            await self._guard(
                "add_network", step, self._wallet.add_network(chain.to_add_chain_parameters())
            )
            await self._guard("switch_network", step, self._wallet.switch_network(target))

        result.chain_switches += 1
        if notify:
            observer.on_chain_switch_done(target)
        return True

    async def _guard(self, action: str, step: StepTransaction, awaitable: Awaitable[T]) -> T:
        """Await a sub-action, tagging route errors with where they happened."""
        try:
            return await awaitable
        except RouteExecutionError as exc:
            raise exc.with_context(
                route_id=step.active_route_id,
                step_index=step.user_tx_index,
                action=action,
            )

    def _transition(self, report: ExecutionReport, phase: ExecutionPhase) -> None:
        allowed = self.TRANSITIONS.get(report.phase, set())
        if phase not in allowed:
            raise InvalidSequenceError(
                f"Invalid execution transition {report.phase.value} -> {phase.value}",
                route_id=report.route_id,
            )
        self._logger.debug("Route %s: %s -> %s", report.route_id, report.phase.value, phase.value)
        report.phase = phase

    def _abort(
        self,
        report: ExecutionReport,
        step: Optional[StepTransaction],
        error: Exception,
    ) -> None:
        if report.phase in (ExecutionPhase.COMPLETED, ExecutionPhase.ABORTED):
            return
        report.phase = ExecutionPhase.ABORTED
        report.error = str(error)
        if step is not None:
            report.failed_step = step.user_tx_index
            report.resume_from = step.user_tx_index
            last = report.steps[-1] if report.steps else None
            if last is not None and last.user_tx_index == step.user_tx_index and last.confirmed:
                # Never point a resume at a send that already landed.
                following = step.user_tx_index + 1
                report.resume_from = following if following < step.total_user_tx else None
        self._logger.error(
            "Route %s aborted at step %s (resume from %s): %s",
            report.route_id,
            report.failed_step,
            report.resume_from,
            error,
        )
