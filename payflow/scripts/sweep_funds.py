"""Sweep Funds Script - Consolidate merchant wallet balances into the treasury.

Usage:
    # Sweep every merchant wallet once
    uv run python -m payflow.scripts.sweep_funds --action once

    # Sweep repeatedly (Ctrl+C finishes the current iteration, then stops)
    uv run python -m payflow.scripts.sweep_funds --action schedule --interval 60

    # Show balances of the treasury and all merchant wallets
    uv run python -m payflow.scripts.sweep_funds --action balance

    # List merchants with their wallets
    uv run python -m payflow.scripts.sweep_funds --action list

    # Show decoded restrictions of all merchants (or one with --sub-org)
    uv run python -m payflow.scripts.sweep_funds --action policies

    # Send gas (or USDC) from the treasury to a merchant wallet
    uv run python -m payflow.scripts.sweep_funds --action fund --to 0x... --asset ETH --amount 0.001
    uv run python -m payflow.scripts.sweep_funds --action fund --sub-org <id> --wallet-id <id> --asset USDC --amount 5

    # Restrict a merchant to USDC transfers to the treasury
    uv run python -m payflow.scripts.sweep_funds --action restrict --sub-org <id>

Options:
    --action: once, schedule, balance, list, policies, restrict, fund
    --interval: Seconds between scheduled iterations (default: SWEEP_INTERVAL_SECONDS)
    --sub-org: Merchant sub-organization ID (restrict, policies, fund)
    --wallet-id: Merchant wallet to fund (with --sub-org)
    --to: Wallet address to fund
    --asset: ETH or USDC (default: ETH)
    --amount: Amount to send
"""

import argparse
import asyncio
import logging
import signal
import sys
from decimal import Decimal, InvalidOperation

from payflow.core.config import get_settings
from payflow.core.exceptions import ChainError, ConfigError, PayflowError
from payflow.services.context import SweepContext, build_context
from payflow.services.scheduler_service import SchedulerEvent, SchedulerEventType, SweepReport
from payflow.utils.amount import format_amount
from payflow.utils.helpers import explorer_tx_url, format_address

logger = logging.getLogger(__name__)


def print_report(context: SweepContext, report: SweepReport) -> None:
    """Print a sweep summary."""
    print("\n" + "=" * 50)
    print("Sweep Summary")
    print("=" * 50)
    print(f"Total wallets processed: {len(report.outcomes)}")
    print(f"Successful sweeps: {len(report.successful)}")
    print(f"Skipped: {len(report.skipped)}")
    print(f"Failed: {len(report.failed)}")
    if report.total_swept > 0:
        print(f"Total USDC swept: {format_amount(report.total_swept)} USDC")

    for outcome in report.outcomes:
        status_icon = {"success": "✅", "skipped": "⏭️ ", "failed": "❌"}[outcome.status.value]
        print(f"  {status_icon} {format_address(outcome.source_address)}: {outcome.kind.value}")
        if outcome.amount is not None:
            print(f"      Amount: {outcome.amount} USDC")
        if url := explorer_tx_url(context.network.explorer_url, outcome.tx_hash):
            print(f"      TX: {url}")
        if outcome.message and not outcome.succeeded:
            print(f"      Reason: {outcome.message}")


async def once_action(context: SweepContext) -> None:
    """Sweep every merchant wallet once."""
    scheduler = await context.scheduler()
    print(f"\nNetwork: {context.network.name}")
    print(f"Treasury: {scheduler.destination_address}")
    print(f"Sweep threshold: {scheduler.threshold} USDC\n")

    accounts = await context.custody.list_accounts()
    if not accounts:
        print("ℹ️  No merchants found")
        return

    wallet_count = sum(len(a.wallets) for a in accounts)
    print(f"Checking {wallet_count} wallet(s) across {len(accounts)} merchant(s)")
    report = await scheduler.run_once(accounts)
    print_report(context, report)


async def schedule_action(context: SweepContext, interval: float) -> None:
    """Sweep repeatedly until SIGINT/SIGTERM."""
    scheduler = await context.scheduler()
    print(f"\nScheduled sweep every {interval}s on {context.network.name}")
    print(f"Treasury: {format_address(scheduler.destination_address)}")
    print(f"Threshold: {scheduler.threshold} USDC")
    print("Press Ctrl+C to stop\n")

    def on_event(event: SchedulerEvent) -> None:
        if event.type == SchedulerEventType.ITERATION_COMPLETED and event.report is not None:
            swept = event.report.total_swept
            if event.report.successful:
                print(
                    f"✅ Iteration #{event.iteration}: {len(event.report.successful)} "
                    f"sweep(s), {format_amount(swept)} USDC"
                )
            else:
                print(f"Iteration #{event.iteration}: No funds to sweep")
        elif event.type == SchedulerEventType.ITERATION_SKIPPED:
            print(f"⏭️  Tick skipped: iteration #{event.iteration} still running")
        elif event.type == SchedulerEventType.ITERATION_FAILED:
            print(f"❌ Iteration #{event.iteration} failed: {event.error}")

    handle = scheduler.start(context.custody.list_accounts, interval, on_event)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle.stop)

    stats = await handle.wait()

    print("\n" + "=" * 50)
    print("Scheduled Sweep Job Summary")
    print("=" * 50)
    print(f"Total iterations: {stats.iterations}")
    print(f"Ticks skipped: {stats.ticks_skipped}")
    print(f"Successful sweeps: {stats.successful}")
    print(f"Skipped/Failed: {stats.skipped_or_failed}")
    if stats.total_swept > 0:
        print(f"Total USDC swept: {format_amount(stats.total_swept)} USDC")


async def balance_action(context: SweepContext) -> None:
    """Show ETH and USDC balances of the treasury and merchant wallets."""
    treasury = await context.treasury.get_or_create()
    wallets = [("Treasury", treasury.address)]
    for account in await context.custody.list_accounts():
        for wallet in account.wallets:
            if wallet.address:
                wallets.append((f"{account.name} - {wallet.name}", wallet.address))

    print(f"\nBalances on {context.network.name}")
    print("=" * 50)
    for label, address in wallets:
        try:
            eth = await context.chain.get_native_balance(address)
            usdc = await context.chain.get_token_balance(context.token_address, address)
            print(f"{label} ({format_address(address)}) | ETH: {eth:.4f} | USDC: {usdc:.2f}")
        except ChainError as e:
            print(f"{label} ({format_address(address)}) | balance unavailable: {e.message}")


async def list_action(context: SweepContext) -> None:
    """List merchants with their wallets and addresses."""
    accounts = await context.custody.list_accounts()
    if not accounts:
        print("ℹ️  No merchants found")
        return

    print(f"\nFound {len(accounts)} merchant(s)")
    for idx, account in enumerate(accounts, start=1):
        print("\n" + "=" * 50)
        print(f"{idx}. {account.name}")
        print(f"   Sub-Organization ID: {account.isolation_context}")
        print(f"   Policies: {len(account.restrictions)}")
        print(f"   Wallets: {len(account.wallets)}")
        for wallet in account.wallets:
            print(f"   - {wallet.name} ({wallet.wallet_id}): {wallet.address or 'N/A'}")


async def policies_action(context: SweepContext, sub_org_id: str | None = None) -> None:
    """Show decoded restrictions of all merchants, or of one sub-organization."""
    if sub_org_id:
        accounts = [await context.custody.get_account(sub_org_id)]
    else:
        accounts = await context.custody.list_accounts()
    total = sum(len(a.restrictions) for a in accounts)
    print(f"\nTotal policies found: {total}")

    for account in accounts:
        if not account.restrictions:
            continue
        print("\n" + "=" * 50)
        print(f"Merchant: {account.name}")
        print(f"Sub-Organization ID: {account.isolation_context}")
        for idx, view in enumerate(context.policies.describe(account), start=1):
            restriction = view.restriction
            print(f"\nPolicy #{idx}: {restriction.name}")
            print(f"   Policy ID: {restriction.restriction_id}")
            print(f"   Effect: {restriction.effect}")
            for line in view.lines:
                print(f"   - {line}")
            if restriction.consensus:
                print(f"   Consensus: {restriction.consensus}")
            if restriction.notes:
                print(f"   Notes: {restriction.notes}")


async def restrict_action(context: SweepContext, sub_org_id: str) -> None:
    """Create the USDC-only restriction for one merchant."""
    treasury = await context.treasury.get_or_create()
    restriction_id = await context.policies.create_sweep_restriction(
        isolation_context=sub_org_id,
        destination_address=treasury.address,
        token_address=context.token_address,
        threshold=context.settings.sweep_threshold_usdc,
    )
    print(f"✅ Policy created: {restriction_id}")
    print("   1. Only USDC token transfers allowed")
    print(f"   2. Only to treasury address: {format_address(treasury.address)}")
    print("   3. All other transactions blocked")


async def fund_action(context: SweepContext, args: argparse.Namespace) -> int:
    """Send ETH or USDC from the treasury to a merchant wallet."""
    if not args.amount:
        print("Error: --amount is required for fund action")
        return 1
    try:
        amount = Decimal(args.amount)
    except InvalidOperation:
        print(f"Error: Invalid amount: {args.amount}")
        return 1

    if args.to:
        destination = args.to
    elif args.sub_org and args.wallet_id:
        account = await context.custody.get_account(args.sub_org)
        wallet = next((w for w in account.wallets if w.wallet_id == args.wallet_id), None)
        if wallet is None or not wallet.address:
            print(f"Error: Wallet {args.wallet_id} has no address in {account.name}")
            return 1
        destination = wallet.address
    else:
        print("Error: --to or --sub-org with --wallet-id is required for fund action")
        return 1

    treasury = await context.treasury.get_or_create()
    eth = await context.chain.get_native_balance(treasury.address)
    usdc = await context.chain.get_token_balance(context.token_address, treasury.address)
    print(f"\nTreasury: {treasury.address}")
    print(f"   ETH: {eth:.6f} | USDC: {usdc:.2f}")
    print(f"Sending {amount} {args.asset} to {destination}")

    result = await context.funding.fund(treasury, destination, args.asset, amount)
    print(f"Transaction hash: {result.tx_hash}")
    if url := explorer_tx_url(context.network.explorer_url, result.tx_hash):
        print(f"   TX: {url}")
    if result.confirmed:
        print("✅ Transfer confirmed")
    elif result.status is None:
        print(f"⚠️  Confirmation unknown: {result.message}")
    else:
        print("❌ Transfer failed on-chain")
        return 1
    return 0


async def main(args: argparse.Namespace) -> int:
    """Main entry point."""
    settings = get_settings()
    try:
        context = build_context(settings)
    except ConfigError as e:
        print(f"Error: {e.message} {e.details or ''}")
        return 1

    try:
        if args.action == "once":
            await once_action(context)
        elif args.action == "schedule":
            await schedule_action(context, args.interval or settings.sweep_interval_seconds)
        elif args.action == "balance":
            await balance_action(context)
        elif args.action == "list":
            await list_action(context)
        elif args.action == "policies":
            await policies_action(context, args.sub_org)
        elif args.action == "restrict":
            if not args.sub_org:
                print("Error: --sub-org is required for restrict action")
                return 1
            await restrict_action(context, args.sub_org)
        elif args.action == "fund":
            return await fund_action(context, args)
        else:
            print(f"Unknown action: {args.action}")
            return 1
    except PayflowError as e:
        print(f"Error: {e.message}")
        return 1
    finally:
        await context.close()
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Treasury sweep script")
    parser.add_argument(
        "--action",
        type=str,
        choices=["once", "schedule", "balance", "list", "policies", "restrict", "fund"],
        required=True,
        help="Action to perform",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between scheduled iterations",
    )
    parser.add_argument(
        "--sub-org",
        type=str,
        help="Merchant sub-organization ID",
    )
    parser.add_argument(
        "--wallet-id",
        type=str,
        help="Merchant wallet ID to fund (with --sub-org)",
    )
    parser.add_argument(
        "--to",
        type=str,
        help="Wallet address to fund",
    )
    parser.add_argument(
        "--asset",
        type=str,
        choices=["ETH", "USDC"],
        default="ETH",
        help="Asset to send (default: ETH)",
    )
    parser.add_argument(
        "--amount",
        type=str,
        help="Amount to send",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    sys.exit(asyncio.run(main(args)))
