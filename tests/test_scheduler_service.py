import asyncio
from decimal import Decimal

import pytest

from conftest import TOKEN, TREASURY, WALLET_A, WALLET_B, WALLET_C, FakeChainClient, FakeSigner
from payflow.core.exceptions import DirectoryError
from payflow.schemas.merchant import MerchantAccount, SourceWallet
from payflow.services.scheduler_service import SchedulerEventType, SchedulerService
from payflow.services.sweeper_service import SweeperService, SweepOutcome, SweepOutcomeKind


def _accounts() -> list[MerchantAccount]:
    return [
        MerchantAccount(
            isolation_context="sub-org-1",
            name="Alice",
            wallets=[
                SourceWallet(wallet_id="w-a", name="Alice Wallet", address=WALLET_A),
                SourceWallet(wallet_id="w-x", name="Broken Wallet", address=None),
            ],
        ),
        MerchantAccount(
            isolation_context="sub-org-2",
            name="Bob",
            wallets=[
                SourceWallet(wallet_id="w-b", name="Bob Wallet", address=WALLET_B),
                SourceWallet(wallet_id="w-c", name="Bob Savings", address=WALLET_C),
            ],
        ),
    ]


def _scheduler(sweeper) -> SchedulerService:
    return SchedulerService(sweeper, TREASURY, TOKEN, "sepolia", Decimal("0.03"))


class RecordingSweeper:
    """Sweeper stand-in that tracks call order and concurrency."""

    def __init__(self, raise_for: str | None = None, delay: float = 0.0) -> None:
        self.raise_for = raise_for
        self.delay = delay
        self.order: list[str] = []
        self.active = 0
        self.max_active = 0

    async def sweep(self, source_address, isolation_context, wallet_id, **kwargs) -> SweepOutcome:
        self.order.append(source_address)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if source_address == self.raise_for:
                raise RuntimeError("wallet exploded")
            return SweepOutcome(
                kind=SweepOutcomeKind.NO_BALANCE,
                source_address=source_address,
                isolation_context=isolation_context,
                wallet_id=wallet_id,
            )
        finally:
            self.active -= 1


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


# -------------------------------------------------------------------------
# run_once
# -------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_once_is_sequential_and_isolated():
    sweeper = RecordingSweeper(raise_for=WALLET_B, delay=0.01)

    report = await _scheduler(sweeper).run_once(_accounts())

    assert sweeper.order == [WALLET_A, WALLET_B, WALLET_C]
    assert sweeper.max_active == 1
    assert [o.kind for o in report.outcomes] == [
        SweepOutcomeKind.NO_BALANCE,
        SweepOutcomeKind.ADDRESS_UNAVAILABLE,
        SweepOutcomeKind.UNEXPECTED_ERROR,
        SweepOutcomeKind.NO_BALANCE,
    ]
    assert report.outcomes[1].message == "Address not available"
    assert report.outcomes[2].message == "wallet exploded"
    assert len(report.skipped) == 2
    assert len(report.failed) == 2


@pytest.mark.asyncio
async def test_run_once_totals():
    chain = FakeChainClient()
    chain.native.update({WALLET_A: Decimal("0.01"), WALLET_B: Decimal("0.01"), WALLET_C: Decimal("0.01")})
    chain.tokens.update({WALLET_A: Decimal("1.5"), WALLET_B: Decimal("0.01"), WALLET_C: Decimal("2")})
    scheduler = _scheduler(SweeperService(chain, FakeSigner(), confirmation_timeout=1.0))

    report = await scheduler.run_once(_accounts())

    assert len(report.successful) == 2
    assert report.total_swept == Decimal("3.5")
    assert len(chain.sent) == 2


@pytest.mark.asyncio
async def test_run_once_signs_with_linked_key_or_address():
    chain = FakeChainClient()
    chain.native.update({WALLET_A: Decimal("0.01"), WALLET_B: Decimal("0.01")})
    chain.tokens.update({WALLET_A: Decimal("1"), WALLET_B: Decimal("1")})
    signer = FakeSigner()
    scheduler = _scheduler(SweeperService(chain, signer, confirmation_timeout=1.0))
    accounts = [
        MerchantAccount(
            isolation_context="sub-org-1",
            name="Alice",
            wallets=[
                SourceWallet(wallet_id="w-a", address=WALLET_A, signing_key_id="key-1"),
                SourceWallet(wallet_id="w-b", address=WALLET_B),
            ],
        )
    ]

    await scheduler.run_once(accounts)

    assert [(ctx, sign_with) for ctx, sign_with, _ in signer.calls] == [
        ("sub-org-1", "key-1"),
        ("sub-org-1", WALLET_B),
    ]


@pytest.mark.asyncio
async def test_run_once_without_accounts():
    report = await _scheduler(RecordingSweeper()).run_once([])

    assert report.outcomes == []
    assert report.total_swept == Decimal("0")


# -------------------------------------------------------------------------
# start / stop
# -------------------------------------------------------------------------


def test_start_rejects_non_positive_interval():
    scheduler = _scheduler(RecordingSweeper())

    async def provider():
        return []

    with pytest.raises(ValueError):
        scheduler.start(provider, 0)


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped_not_queued():
    release = asyncio.Event()
    calls = 0

    async def provider():
        nonlocal calls
        calls += 1
        await release.wait()
        return []

    events = []
    handle = _scheduler(RecordingSweeper()).start(provider, 0.01, events.append)

    await _wait_until(lambda: handle.stats.ticks_skipped >= 2)
    assert handle.iteration_running
    assert handle.stats.iterations == 1

    handle.stop()
    release.set()
    stats = await handle.wait()

    assert calls == 1
    assert stats.iterations == 1
    assert stats.ticks_skipped >= 2
    types = [e.type for e in events]
    assert types[0] == SchedulerEventType.ITERATION_STARTED
    assert SchedulerEventType.ITERATION_SKIPPED in types
    assert types[-2:] == [SchedulerEventType.ITERATION_COMPLETED, SchedulerEventType.STOPPED]


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_iteration():
    sweeper = RecordingSweeper(delay=0.05)

    async def provider():
        return _accounts()

    events = []
    handle = _scheduler(sweeper).start(provider, 60, events.append)

    await _wait_until(lambda: sweeper.order)
    handle.stop()
    stats = await handle.wait()

    assert handle.done
    assert not handle.iteration_running
    assert sweeper.order == [WALLET_A, WALLET_B, WALLET_C]
    assert stats.iterations == 1
    assert stats.skipped == 3
    assert stats.failed == 1
    assert events[-1].type == SchedulerEventType.STOPPED
    assert events[-1].stats.iterations == 1


@pytest.mark.asyncio
async def test_directory_failure_is_retried_next_interval():
    attempts = 0

    async def provider():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise DirectoryError("Failed to list merchants")
        return []

    events = []
    handle = _scheduler(RecordingSweeper()).start(provider, 0.01, events.append)

    await _wait_until(lambda: handle.stats.iterations >= 2)
    handle.stop()
    stats = await handle.wait()

    types = [e.type for e in events]
    assert SchedulerEventType.ITERATION_FAILED in types
    assert SchedulerEventType.ITERATION_COMPLETED in types
    failed = next(e for e in events if e.type == SchedulerEventType.ITERATION_FAILED)
    assert isinstance(failed.error, DirectoryError)
    assert stats.iterations >= 2


@pytest.mark.asyncio
async def test_event_handler_errors_do_not_stop_the_run():
    async def provider():
        return []

    def on_event(event):
        raise RuntimeError("handler broke")

    handle = _scheduler(RecordingSweeper()).start(provider, 0.01, on_event)

    await _wait_until(lambda: handle.stats.iterations >= 2)
    handle.stop()
    stats = await handle.wait()

    assert stats.iterations >= 2
