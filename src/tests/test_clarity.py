import pytest

from utils.c32 import c32address, c32address_decode, c32decode, c32encode
from utils.clarity import (
    BoolCV,
    BufferCV,
    ClarityDecodeError,
    ContractPrincipalCV,
    IntCV,
    ListCV,
    OptionalCV,
    ResponseCV,
    StandardPrincipalCV,
    StringAsciiCV,
    StringUtf8CV,
    TupleCV,
    UIntCV,
    cv_to_hex,
    hex_to_cv,
)

HASH160 = bytes.fromhex("a46ff88886c2ef9762d970b4d2c63678835bd39d")


def test_buffer_encoding():
    assert cv_to_hex(BufferCV(b"hi")) == "0x02000000026869"
    value = hex_to_cv("0x02000000026869")
    assert isinstance(value, BufferCV)
    assert value.buffer == b"hi"
    assert value.text() == "hi"


def test_memo_buffer_text_accepts_unprefixed_hex():
    assert hex_to_cv("02000000026869").text() == "hi"


def test_integer_encoding():
    assert cv_to_hex(UIntCV(1)) == "0x01" + "00" * 15 + "01"
    assert cv_to_hex(IntCV(-1)) == "0x00" + "ff" * 16
    assert hex_to_cv(cv_to_hex(IntCV(-42))) == IntCV(-42)
    assert UIntCV(7).repr == "u7"
    assert IntCV(-7).repr == "-7"


def test_integer_range_checked():
    with pytest.raises(ValueError):
        UIntCV(-1)
    with pytest.raises(ValueError):
        IntCV(2**127)


def test_response_repr_matches_api():
    assert cv_to_hex(ResponseCV(BoolCV(True))) == "0x0703"
    assert hex_to_cv("0x0703").repr == "(ok true)"
    assert hex_to_cv(cv_to_hex(ResponseCV(UIntCV(3), ok=False))).repr == "(err u3)"


def test_optional_and_list():
    assert cv_to_hex(OptionalCV()) == "0x09"
    value = hex_to_cv(cv_to_hex(OptionalCV(ListCV([UIntCV(1), UIntCV(2)]))))
    assert value.repr == "(some (list u1 u2))"


def test_tuple_keys_are_sorted_on_the_wire():
    value = TupleCV({"b": UIntCV(2), "a": StringAsciiCV("x")})
    encoded = cv_to_hex(value)
    decoded = hex_to_cv(encoded)
    assert list(decoded.data) == ["a", "b"]
    assert decoded.repr == '(tuple (a "x") (b u2))'


def test_utf8_string():
    value = hex_to_cv(cv_to_hex(StringUtf8CV("héllo")))
    assert value.data == "héllo"
    assert value.repr == 'u"héllo"'


def test_principals():
    principal = StandardPrincipalCV(22, HASH160)
    assert principal.address.startswith("SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PY")
    assert cv_to_hex(principal) == "0x0516" + HASH160.hex()
    decoded = hex_to_cv(cv_to_hex(principal))
    assert decoded.address == principal.address
    assert StandardPrincipalCV.from_address(principal.address) == principal

    contract = ContractPrincipalCV(26, HASH160, "send-many-memo")
    assert contract.contract_id.endswith(".send-many-memo")
    assert ContractPrincipalCV.from_contract_id(contract.contract_id) == contract
    assert hex_to_cv(cv_to_hex(contract)).repr == f"'{contract.contract_id}"


@pytest.mark.parametrize(
    "hex_value",
    [
        "0x",
        "0xff",
        "0x0200000005aa",
        "0x0703ff",
        "0xzz",
        # non-ascii byte in a string-ascii
        "0x0d0000000180",
        # principal version out of the c32 range
        "0x0520" + "00" * 20,
    ],
)
def test_malformed_input(hex_value):
    with pytest.raises(ClarityDecodeError):
        hex_to_cv(hex_value)


def test_c32_encoding_keeps_leading_zero_bytes():
    data = b"\x00\x00\x01\x02"
    encoded = c32encode(data)
    assert encoded.startswith("00")
    assert c32decode(encoded) == data


def test_c32_address_checksum():
    address = c32address(26, HASH160)
    assert address.startswith("ST")
    assert c32address_decode(address) == (26, HASH160)
    corrupted = address[:-1] + ("0" if address[-1] != "0" else "1")
    with pytest.raises(ValueError):
        c32address_decode(corrupted)
