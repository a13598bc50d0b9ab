from decimal import Decimal

import pytest

from payflow.core.exceptions import InvalidAddress
from payflow.utils.amount import format_amount, from_base_units, to_base_units
from payflow.utils.predicate import (
    TRANSFER_SELECTOR,
    compile_predicate,
    decompile_predicate,
    describe_predicate,
    encode_transfer_call,
    normalize_address,
    pad_address,
)

TOKEN = "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238"
TREASURY = "0xAbCdEf0123456789aBcDeF0123456789AbCdEf01"


def test_compile_matches_condition_language():
    predicate = compile_predicate(TOKEN, TREASURY)

    assert predicate == (
        "eth.tx.to == '0x1c7d4b196cb0c7b01d743fbc6116a902379c7238'"
        " && eth.tx.data[2..10] == 'a9059cbb'"
        " && eth.tx.data[10..74] == '000000000000000000000000abcdef0123456789abcdef0123456789abcdef01'"
    )


def test_compile_is_case_insensitive():
    assert compile_predicate(TOKEN.upper().replace("0X", "0x"), TREASURY) == compile_predicate(
        TOKEN.lower(), TREASURY.lower()
    )


@pytest.mark.parametrize(
    "token,destination",
    [
        (TOKEN, TREASURY),
        (TOKEN, "0x" + "00" * 20),
        (TOKEN, "0x" + "00" * 19 + "01"),
        (TOKEN, "0x" + "ff" * 20),
        ("0x" + "00" * 20, "0x" + "FF" * 20),
        ("0x" + "Ff" * 20, "0x" + "00" * 19 + "01"),
        (TREASURY.upper().replace("0X", "0x"), TOKEN),
    ],
)
def test_decompile_recovers_inputs(token, destination):
    clauses = decompile_predicate(compile_predicate(token, destination))

    assert clauses.token_address == token.lower()
    assert clauses.destination_address == destination.lower()
    assert clauses.function_selector == TRANSFER_SELECTOR
    assert clauses.unrecognized == []
    assert clauses.is_complete


@pytest.mark.parametrize("value", [None, ""])
def test_decompile_empty(value):
    clauses = decompile_predicate(value)

    assert clauses.token_address is None
    assert clauses.destination_address is None
    assert clauses.function_selector is None
    assert not clauses.is_complete


def test_decompile_keeps_unknown_clauses():
    predicate = compile_predicate(TOKEN, TREASURY) + " && eth.tx.value == 0"

    clauses = decompile_predicate(predicate)

    assert clauses.token_address == TOKEN.lower()
    assert clauses.unrecognized == ["eth.tx.value == 0"]
    assert not clauses.is_complete


def test_decompile_partial_predicate():
    clauses = decompile_predicate(f"eth.tx.to == '{TOKEN}'")

    assert clauses.token_address == TOKEN.lower()
    assert clauses.destination_address is None
    assert clauses.function_selector is None


def test_decompile_rejects_non_address_slot():
    slot = "1" * 64
    clauses = decompile_predicate(f"eth.tx.data[10..74] == '{slot}'")

    assert clauses.destination_address is None
    assert clauses.unrecognized == [f"eth.tx.data[10..74] == '{slot}'"]


def test_decompile_duplicate_clause_is_unrecognized():
    clause = f"eth.tx.to == '{TOKEN}'"

    clauses = decompile_predicate(f"{clause} && {clause}")

    assert clauses.token_address == TOKEN.lower()
    assert clauses.unrecognized == [clause]


def test_describe_predicate_lines():
    lines = describe_predicate(compile_predicate(TOKEN, TREASURY))

    assert lines == [
        f"Transaction target: token contract {TOKEN.lower()}",
        "Function selector: 0xa9059cbb (ERC-20 transfer())",
        f"Transfer destination: {TREASURY.lower()}",
    ]
    assert describe_predicate(None) == []


@pytest.mark.parametrize(
    "address",
    ["", "0x123", "1c7d4b196cb0c7b01d743fbc6116a902379c7238", "0x" + "g" * 40, None],
)
def test_invalid_addresses_rejected(address):
    with pytest.raises(InvalidAddress):
        normalize_address(address)
    with pytest.raises(InvalidAddress):
        compile_predicate(TOKEN, address)


def test_pad_address():
    assert pad_address(TREASURY) == "0" * 24 + TREASURY[2:].lower()


def test_transfer_calldata_matches_predicate_slots():
    data = encode_transfer_call(TREASURY, 50_000)

    assert data[2:10] == TRANSFER_SELECTOR
    assert data[10:74] == pad_address(TREASURY)
    assert int(data[74:], 16) == 50_000


def test_transfer_calldata_rejects_negative_amount():
    with pytest.raises(ValueError):
        encode_transfer_call(TREASURY, -1)


def test_base_unit_conversion_truncates():
    assert to_base_units(Decimal("0.05"), 6) == 50_000
    assert to_base_units(Decimal("1.2345679"), 6) == 1_234_567
    assert from_base_units(50_000, 6) == Decimal("0.05")
    assert format_amount(Decimal("0.05")) == "0.050000"
