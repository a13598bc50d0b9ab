"""Display helpers shared by scripts and services."""


def format_address(address: str | None) -> str:
    """Shorten an address for display.

    Example: 0x1234567890abcdef... -> 0x1234...cdef
    """
    if not address:
        return "N/A"
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def explorer_tx_url(explorer_url: str | None, tx_hash: str | None) -> str | None:
    """Block explorer link for a transaction, if the network has an explorer."""
    if not explorer_url or not tx_hash:
        return None
    return f"{explorer_url.rstrip('/')}/tx/{tx_hash}"
