"""Payflow Sweeper - Sweep scheduler.

Runs the single-wallet sweep over every merchant wallet, once or on a
repeating timer.

Wallets are swept strictly one at a time: concurrent sweeps from one
wallet would race on its nonce, and concurrent signing requests against
one sub-organization are not independent. Repeating runs are single-flight;
a tick that fires while the previous iteration is still running is
skipped, never queued.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from payflow.core.exceptions import DirectoryError
from payflow.schemas.merchant import MerchantAccount, SourceWallet
from payflow.services.sweeper_service import SweeperService, SweepOutcome, SweepOutcomeKind

logger = logging.getLogger(__name__)

AccountsProvider = Callable[[], Awaitable[list[MerchantAccount]]]


@dataclass
class SweepReport:
    """Outcomes of one pass over all wallets."""

    outcomes: list[SweepOutcome] = field(default_factory=list)

    def add(self, outcome: SweepOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def successful(self) -> list[SweepOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def skipped(self) -> list[SweepOutcome]:
        return [o for o in self.outcomes if o.skipped]

    @property
    def failed(self) -> list[SweepOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def total_swept(self) -> Decimal:
        return sum((o.amount for o in self.successful if o.amount is not None), Decimal("0"))


@dataclass
class ScheduleStats:
    """Cumulative statistics of one scheduler run."""

    interval: float
    iterations: int = 0
    ticks_skipped: int = 0
    successful: int = 0
    total_swept: Decimal = Decimal("0")
    skipped: int = 0
    failed: int = 0

    @property
    def skipped_or_failed(self) -> int:
        return self.skipped + self.failed

    def record(self, report: SweepReport) -> None:
        self.successful += len(report.successful)
        self.total_swept += report.total_swept
        self.skipped += len(report.skipped)
        self.failed += len(report.failed)


class SchedulerEventType(str, Enum):
    """Scheduler lifecycle events."""

    ITERATION_STARTED = "iteration_started"
    ITERATION_COMPLETED = "iteration_completed"
    ITERATION_SKIPPED = "iteration_skipped"
    ITERATION_FAILED = "iteration_failed"
    STOPPED = "stopped"


@dataclass
class SchedulerEvent:
    """Event passed to the on_event callback."""

    type: SchedulerEventType
    iteration: int
    stats: ScheduleStats
    report: SweepReport | None = None
    error: Exception | None = None


EventCallback = Callable[[SchedulerEvent], None]


class SchedulerService:
    """Sweep all merchant wallets to one treasury.

    Usage:
        scheduler = SchedulerService(sweeper, treasury.address, token, "sepolia", threshold)
        report = await scheduler.run_once(await custody.list_accounts())

        handle = scheduler.start(custody.list_accounts, interval=300)
        ...
        handle.stop()
        stats = await handle.wait()
    """

    def __init__(
        self,
        sweeper: SweeperService,
        destination_address: str,
        token_address: str,
        network: str,
        threshold: Decimal,
        min_gas: Decimal | None = None,
    ) -> None:
        self._sweeper = sweeper
        self.destination_address = destination_address
        self.token_address = token_address
        self.network = network
        self.threshold = threshold
        self.min_gas = min_gas

    async def run_once(self, accounts: list[MerchantAccount]) -> SweepReport:
        """Sweep every wallet of every account exactly once, sequentially.

        A failing wallet never aborts the pass.
        """
        report = SweepReport()
        for account in accounts:
            for wallet in account.wallets:
                outcome = await self._sweep_wallet(account, wallet)
                self._log_outcome(account, wallet, outcome)
                report.add(outcome)
        return report

    async def _sweep_wallet(self, account: MerchantAccount, wallet: SourceWallet) -> SweepOutcome:
        if not wallet.address:
            return SweepOutcome(
                kind=SweepOutcomeKind.ADDRESS_UNAVAILABLE,
                source_address=None,
                isolation_context=account.isolation_context,
                wallet_id=wallet.wallet_id,
                message="Address not available",
            )

        try:
            return await self._sweeper.sweep(
                source_address=wallet.address,
                isolation_context=account.isolation_context,
                wallet_id=wallet.wallet_id,
                destination_address=self.destination_address,
                token_address=self.token_address,
                network=self.network,
                threshold=self.threshold,
                min_gas=self.min_gas,
                signing_key_id=wallet.sign_with,
            )
        except Exception as e:
            logger.error(f"Error processing wallet {wallet.address}: {e}", exc_info=True)
            return SweepOutcome(
                kind=SweepOutcomeKind.UNEXPECTED_ERROR,
                source_address=wallet.address,
                isolation_context=account.isolation_context,
                wallet_id=wallet.wallet_id,
                message=str(e),
            )

    @staticmethod
    def _log_outcome(account: MerchantAccount, wallet: SourceWallet, outcome: SweepOutcome) -> None:
        label = f"{account.name} - {wallet.name}"
        if outcome.succeeded:
            logger.info(f"{label}: swept {outcome.amount} USDC (tx={outcome.tx_hash})")
        elif outcome.failed:
            logger.warning(f"{label}: {outcome.kind.value}: {outcome.message}")
        else:
            logger.debug(f"{label}: skipped ({outcome.kind.value})")

    def start(
        self,
        accounts_provider: AccountsProvider,
        interval: float,
        on_event: EventCallback | None = None,
    ) -> "ScheduleHandle":
        """Start repeating sweeps; the first iteration runs immediately.

        Args:
            accounts_provider: Re-resolved at the start of every iteration
            interval: Seconds between iteration starts
            on_event: Called synchronously for every SchedulerEvent

        Returns:
            Handle to stop and await the run
        """
        if interval <= 0:
            raise ValueError("Interval must be a positive number of seconds")
        handle = ScheduleHandle(self, accounts_provider, interval, on_event)
        handle._start()
        return handle


class ScheduleHandle:
    """Running repeating sweep.

    stop() is cooperative: the in-flight iteration always finishes (a
    transfer is never abandoned between broadcast and confirmation), then
    a STOPPED event with cumulative stats is emitted.
    """

    def __init__(
        self,
        scheduler: SchedulerService,
        accounts_provider: AccountsProvider,
        interval: float,
        on_event: EventCallback | None,
    ) -> None:
        self._scheduler = scheduler
        self._accounts_provider = accounts_provider
        self._interval = interval
        self._on_event = on_event
        self.stats = ScheduleStats(interval=interval)
        self._stop_requested = asyncio.Event()
        self._inflight: asyncio.Task | None = None
        self._runner: asyncio.Task | None = None

    def _start(self) -> None:
        self._runner = asyncio.create_task(self._run())

    @property
    def iteration_running(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def done(self) -> bool:
        return self._runner is not None and self._runner.done()

    def stop(self) -> None:
        """Request a cooperative stop."""
        if not self._stop_requested.is_set():
            logger.info("Stop requested; finishing in-flight iteration")
        self._stop_requested.set()

    async def wait(self) -> ScheduleStats:
        """Wait for the run to end and return cumulative stats.

        Cancelling the caller does not cancel the run.
        """
        await asyncio.shield(self._runner)
        return self.stats

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        tick = 0
        try:
            while not self._stop_requested.is_set():
                tick += 1
                self._tick(tick)
                next_tick += self._interval
                try:
                    await asyncio.wait_for(
                        self._stop_requested.wait(),
                        timeout=max(0.0, next_tick - loop.time()),
                    )
                except asyncio.TimeoutError:
                    pass
        finally:
            if self._inflight is not None:
                await asyncio.shield(self._inflight)
            self._emit(SchedulerEvent(SchedulerEventType.STOPPED, self.stats.iterations, self.stats))
            logger.info(
                f"Scheduled sweep stopped: {self.stats.iterations} iteration(s), "
                f"{self.stats.successful} successful, {self.stats.total_swept} USDC swept"
            )

    def _tick(self, tick: int) -> None:
        # Single-flight guard
        if self.iteration_running:
            self.stats.ticks_skipped += 1
            logger.warning(
                f"Tick #{tick} skipped: iteration #{self.stats.iterations} still running"
            )
            self._emit(
                SchedulerEvent(
                    SchedulerEventType.ITERATION_SKIPPED, self.stats.iterations, self.stats
                )
            )
            return
        self._inflight = asyncio.create_task(self._iteration())

    async def _iteration(self) -> None:
        self.stats.iterations += 1
        iteration = self.stats.iterations
        logger.info(f"Sweep iteration #{iteration} started")
        self._emit(SchedulerEvent(SchedulerEventType.ITERATION_STARTED, iteration, self.stats))

        try:
            accounts = await self._accounts_provider()
        except DirectoryError as e:
            logger.error(f"Iteration #{iteration}: {e.message}; retrying next interval")
            self._emit(
                SchedulerEvent(SchedulerEventType.ITERATION_FAILED, iteration, self.stats, error=e)
            )
            return
        except Exception as e:
            logger.error(f"Error in sweep iteration #{iteration}: {e}", exc_info=True)
            self._emit(
                SchedulerEvent(SchedulerEventType.ITERATION_FAILED, iteration, self.stats, error=e)
            )
            return

        report = await self._scheduler.run_once(accounts)
        self.stats.record(report)
        logger.info(
            f"Iteration #{iteration} summary: {len(report.successful)} successful sweep(s), "
            f"{report.total_swept} USDC"
        )
        self._emit(
            SchedulerEvent(
                SchedulerEventType.ITERATION_COMPLETED, iteration, self.stats, report=report
            )
        )

    def _emit(self, event: SchedulerEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception:
            logger.exception(f"Scheduler event handler failed for {event.type.value}")
