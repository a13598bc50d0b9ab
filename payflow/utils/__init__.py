"""Payflow utility functions.

Predicate codec, amount conversion and display helpers.
"""

from payflow.utils.amount import from_base_units, to_base_units
from payflow.utils.helpers import explorer_tx_url, format_address
from payflow.utils.predicate import (
    TRANSFER_SELECTOR,
    PredicateClauses,
    compile_predicate,
    decompile_predicate,
    describe_predicate,
    encode_transfer_call,
)

__all__ = [
    "TRANSFER_SELECTOR",
    "PredicateClauses",
    "compile_predicate",
    "decompile_predicate",
    "describe_predicate",
    "encode_transfer_call",
    "explorer_tx_url",
    "format_address",
    "from_base_units",
    "to_base_units",
]
