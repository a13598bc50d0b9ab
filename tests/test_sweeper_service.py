from decimal import Decimal

import pytest

from conftest import TOKEN, TREASURY, WALLET_A, FakeChainClient, FakeSigner, never_confirms
from payflow.blockchain.base import TransactionStatus
from payflow.blockchain.ethereum import serialize_unsigned
from payflow.core.exceptions import ChainError, SigningRejected, SigningUnavailable
from payflow.services.sweeper_service import (
    SweeperService,
    SweepOutcomeKind,
    SweepStatus,
)


def _sweeper(chain: FakeChainClient, signer: FakeSigner) -> SweeperService:
    return SweeperService(chain, signer, confirmation_timeout=1.0)


async def _sweep(sweeper: SweeperService, threshold: str = "0.03", **kwargs):
    params = {
        "source_address": WALLET_A,
        "isolation_context": "sub-org-1",
        "wallet_id": "wallet-1",
        "destination_address": TREASURY,
        "token_address": TOKEN,
        "network": "sepolia",
        "threshold": Decimal(threshold),
    }
    params.update(kwargs)
    return await sweeper.sweep(**params)


def _fund(chain: FakeChainClient, usdc: str, eth: str = "0.01") -> None:
    chain.native[WALLET_A] = Decimal(eth)
    chain.tokens[WALLET_A] = Decimal(usdc)


@pytest.mark.asyncio
async def test_balance_below_threshold_is_skipped(chain, signer):
    _fund(chain, usdc="0.02")

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.BELOW_THRESHOLD
    assert outcome.status == SweepStatus.SKIPPED
    assert outcome.tx_hash is None
    assert chain.built == []
    assert signer.calls == []


@pytest.mark.asyncio
async def test_balance_equal_to_threshold_is_swept(chain, signer):
    _fund(chain, usdc="0.03")

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.SUCCESS
    assert outcome.amount == Decimal("0.03")


@pytest.mark.asyncio
async def test_full_balance_swept_to_destination(chain, signer):
    _fund(chain, usdc="0.05")

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.SUCCESS
    assert outcome.succeeded
    assert outcome.amount == Decimal("0.05")
    assert outcome.tx_hash == "0x" + format(1, "064x")

    [tx] = chain.built
    assert tx.to == TOKEN
    assert int(tx.data[74:], 16) == 50_000
    assert tx.data[10:74].endswith(TREASURY[2:])

    [(context, sign_with, unsigned)] = signer.calls
    assert context == "sub-org-1"
    assert sign_with == WALLET_A
    assert unsigned == serialize_unsigned(tx)
    assert chain.sent == [unsigned + "ff"]


@pytest.mark.asyncio
async def test_unknown_confirmation_still_reports_hash(chain, signer):
    _fund(chain, usdc="0.05")
    chain.confirm_error = never_confirms()

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.CONFIRMATION_UNKNOWN
    assert outcome.amount == Decimal("0.05")
    assert outcome.tx_hash is not None
    assert len(chain.sent) == 1


@pytest.mark.asyncio
async def test_reverted_transaction_is_failure(chain, signer):
    _fund(chain, usdc="0.05")
    chain.receipt_status = TransactionStatus.FAILED

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.TRANSACTION_FAILED
    assert outcome.failed
    assert outcome.tx_hash is not None


@pytest.mark.asyncio
async def test_insufficient_gas_is_skipped(chain, signer):
    _fund(chain, usdc="5", eth="0.0001")

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.INSUFFICIENT_GAS
    assert outcome.skipped
    assert chain.built == []


@pytest.mark.asyncio
async def test_custom_min_gas(chain, signer):
    _fund(chain, usdc="5", eth="0.0001")

    outcome = await _sweep(_sweeper(chain, signer), min_gas=Decimal("0.00005"))

    assert outcome.kind == SweepOutcomeKind.SUCCESS


@pytest.mark.asyncio
async def test_zero_balance_is_skipped(chain, signer):
    _fund(chain, usdc="0")

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.NO_BALANCE
    assert outcome.message == "No USDC balance"


@pytest.mark.asyncio
async def test_balance_read_failure_is_not_a_zero_balance(chain, signer):
    chain.balance_error = ChainError("node down")

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.BALANCE_UNAVAILABLE
    assert outcome.failed


@pytest.mark.asyncio
async def test_second_sweep_finds_nothing(chain, signer):
    _fund(chain, usdc="0.05")
    sweeper = _sweeper(chain, signer)

    first = await _sweep(sweeper)
    chain.tokens[WALLET_A] = Decimal("0")
    second = await _sweep(sweeper)

    assert first.succeeded
    assert second.kind == SweepOutcomeKind.NO_BALANCE
    assert len(chain.sent) == 1


@pytest.mark.asyncio
async def test_policy_rejection(chain, signer):
    _fund(chain, usdc="0.05")
    signer.error = SigningRejected("Signing denied: policy")

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.SIGNING_REJECTED
    assert outcome.amount == Decimal("0.05")
    assert outcome.tx_hash is None
    assert chain.sent == []


@pytest.mark.asyncio
async def test_signer_unavailable(chain, signer):
    _fund(chain, usdc="0.05")
    signer.error = SigningUnavailable("Signer unreachable")

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.SIGNING_UNAVAILABLE
    assert chain.sent == []


@pytest.mark.asyncio
async def test_linked_signing_key_is_used(chain, signer):
    _fund(chain, usdc="0.05")

    await _sweep(_sweeper(chain, signer), signing_key_id="key-123")

    assert signer.calls[0][1] == "key-123"


@pytest.mark.asyncio
async def test_network_mismatch(chain, signer):
    _fund(chain, usdc="0.05")

    outcome = await _sweep(_sweeper(chain, signer), network="mainnet")

    assert outcome.kind == SweepOutcomeKind.NETWORK_MISMATCH
    assert chain.built == []


@pytest.mark.asyncio
async def test_unexpected_error_becomes_outcome(chain, signer):
    _fund(chain, usdc="0.05")
    chain.balance_error = RuntimeError("boom")

    outcome = await _sweep(_sweeper(chain, signer))

    assert outcome.kind == SweepOutcomeKind.UNEXPECTED_ERROR
    assert outcome.message == "boom"
    assert outcome.to_dict()["status"] == "failed"
