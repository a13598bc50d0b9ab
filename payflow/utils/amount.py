"""Amount utilities for token and native balances."""

from decimal import ROUND_DOWN, Decimal

# USDC uses 6 decimals on every supported network
USDC_DECIMALS = 6
ETH_DECIMALS = 18


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a human-readable amount to base units (e.g., wei).

    Truncates anything below the smallest unit, so a sweep can never ask
    for more than the wallet holds.

    Example: to_base_units(Decimal("0.05"), 6) -> 50000
    """
    quantum = Decimal(1).scaleb(-decimals)
    return int(amount.quantize(quantum, rounding=ROUND_DOWN).scaleb(decimals))


def from_base_units(amount: int, decimals: int) -> Decimal:
    """Convert base units to a human-readable Decimal.

    Example: from_base_units(50000, 6) -> Decimal("0.05")
    """
    return Decimal(amount) / Decimal(10**decimals)


def format_amount(amount: Decimal, places: int = USDC_DECIMALS) -> str:
    """Fixed-point display of an amount (e.g., totals in summaries)."""
    return f"{amount:.{places}f}"
