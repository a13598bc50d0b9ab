"""Transfer restriction predicates.

Compiles "only token T, only to destination D" into the custody backend's
condition language and decodes it back for audit display:

    eth.tx.to == '<token>'
    && eth.tx.data[2..10] == 'a9059cbb'
    && eth.tx.data[10..74] == '<destination left-padded to 32 bytes>'

The calldata slice offsets count hex characters of the ``0x``-prefixed
input, so ``[2..10]`` is the 4-byte selector and ``[10..74]`` the first
32-byte argument slot.
"""

import re
from dataclasses import dataclass, field

from payflow.core.exceptions import InvalidAddress

# ERC-20 transfer(address,uint256)
TRANSFER_SELECTOR = "a9059cbb"

CONJUNCTION = " && "

SLOT_HEX_LENGTH = 64

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")
_TARGET_RE = re.compile(r"^eth\.tx\.to\s*==\s*'(0x[0-9a-fA-F]{40})'$")
_SELECTOR_RE = re.compile(r"^eth\.tx\.data\[2\.\.10\]\s*==\s*'([0-9a-fA-F]{8})'$")
_ARGUMENT_RE = re.compile(r"^eth\.tx\.data\[10\.\.74\]\s*==\s*'([0-9a-fA-F]{64})'$")


@dataclass
class PredicateClauses:
    """Decoded restriction.

    Fields are None when the corresponding clause is absent; clauses that
    match no known shape are kept verbatim in ``unrecognized``.
    """

    token_address: str | None = None
    destination_address: str | None = None
    function_selector: str | None = None
    unrecognized: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        """True if all three clauses decoded and nothing else was present."""
        return (
            self.token_address is not None
            and self.destination_address is not None
            and self.function_selector is not None
            and not self.unrecognized
        )


def normalize_address(address: str) -> str:
    """Lower-case and validate a 20-byte hex address.

    Raises:
        InvalidAddress: If the value is not 0x + 40 hex chars
    """
    if not isinstance(address, str):
        raise InvalidAddress(repr(address))
    normalized = address.strip().lower()
    if not _ADDRESS_RE.match(normalized):
        raise InvalidAddress(address)
    return normalized


def pad_address(address: str) -> str:
    """Left-pad an address to a 32-byte calldata slot (64 hex chars, no 0x)."""
    return normalize_address(address)[2:].rjust(SLOT_HEX_LENGTH, "0")


def compile_predicate(token_address: str, destination_address: str) -> str:
    """Compile a token + destination restriction.

    Args:
        token_address: ERC-20 contract the transaction must target
        destination_address: Only allowed transfer recipient

    Returns:
        Predicate string in the custody condition language

    Raises:
        InvalidAddress: If either address is malformed
    """
    token = normalize_address(token_address)
    destination = pad_address(destination_address)
    return CONJUNCTION.join(
        [
            f"eth.tx.to == '{token}'",
            f"eth.tx.data[2..10] == '{TRANSFER_SELECTOR}'",
            f"eth.tx.data[10..74] == '{destination}'",
        ]
    )


def decompile_predicate(predicate: str | None) -> PredicateClauses:
    """Decode a predicate produced by compile_predicate().

    Never raises: unknown clauses land in ``unrecognized`` so display of
    backend-side variants degrades instead of failing.
    """
    result = PredicateClauses()
    if not predicate:
        return result

    for clause in (part.strip() for part in predicate.split("&&")):
        if not clause:
            continue

        if match := _TARGET_RE.match(clause):
            if result.token_address is None:
                result.token_address = match.group(1).lower()
                continue
        elif match := _SELECTOR_RE.match(clause):
            if result.function_selector is None:
                result.function_selector = match.group(1).lower()
                continue
        elif match := _ARGUMENT_RE.match(clause):
            slot = match.group(1).lower()
            # Address slots carry 12 zero bytes of padding
            if result.destination_address is None and slot[:24] == "0" * 24:
                result.destination_address = "0x" + slot[24:]
                continue

        result.unrecognized.append(clause)

    return result


def describe_predicate(predicate: str | None) -> list[str]:
    """Human-readable lines for a restriction condition."""
    if not predicate:
        return []

    clauses = decompile_predicate(predicate)
    lines: list[str] = []
    if clauses.token_address:
        lines.append(f"Transaction target: token contract {clauses.token_address}")
    if clauses.function_selector:
        label = "ERC-20 transfer()" if clauses.function_selector == TRANSFER_SELECTOR else "unknown"
        lines.append(f"Function selector: 0x{clauses.function_selector} ({label})")
    if clauses.destination_address:
        lines.append(f"Transfer destination: {clauses.destination_address}")
    for clause in clauses.unrecognized:
        lines.append(f"Unrecognized clause: {clause}")
    return lines


def encode_transfer_call(destination_address: str, amount_raw: int) -> str:
    """ERC-20 transfer(address,uint256) calldata.

    Uses the same selector and slot layout the predicate checks.

    Args:
        destination_address: Transfer recipient
        amount_raw: Amount in token base units

    Returns:
        0x-prefixed calldata hex
    """
    if amount_raw < 0 or amount_raw >= 2**256:
        raise ValueError(f"Amount out of uint256 range: {amount_raw}")
    amount_slot = format(amount_raw, "x").rjust(SLOT_HEX_LENGTH, "0")
    return "0x" + TRANSFER_SELECTOR + pad_address(destination_address) + amount_slot
