"""Clarity value codec.

Converts between typed Clarity values and their consensus wire encoding,
as found in ``contract_log.value.hex`` of API events and in ``tx_result``.

    >>> cv_to_hex(BufferCV(b"hi"))
    '0x02000000026869'
    >>> hex_to_cv("0x02000000026869").text()
    'hi'
"""
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Optional

from eth_utils import decode_hex, encode_hex

from utils.c32 import c32address, c32address_decode


class ClarityDecodeError(ValueError):
    pass


class ClarityType(IntEnum):
    INT = 0x00
    UINT = 0x01
    BUFFER = 0x02
    BOOL_TRUE = 0x03
    BOOL_FALSE = 0x04
    PRINCIPAL_STANDARD = 0x05
    PRINCIPAL_CONTRACT = 0x06
    RESPONSE_OK = 0x07
    RESPONSE_ERR = 0x08
    OPTIONAL_NONE = 0x09
    OPTIONAL_SOME = 0x0A
    LIST = 0x0B
    TUPLE = 0x0C
    STRING_ASCII = 0x0D
    STRING_UTF8 = 0x0E


INT128_MIN = -(2**127)
INT128_MAX = 2**127 - 1
UINT128_MAX = 2**128 - 1


class ClarityValue:
    type_id: ClarityType

    @property
    def repr(self) -> str:
        raise NotImplementedError

    def serialize(self) -> bytes:
        return bytes([self.type_id]) + self._serialize_body()

    def _serialize_body(self) -> bytes:
        return b""

    def __str__(self) -> str:
        return self.repr


@dataclass(frozen=True)
class IntCV(ClarityValue):
    value: int
    type_id = ClarityType.INT

    def __post_init__(self):
        if not INT128_MIN <= self.value <= INT128_MAX:
            raise ValueError(f"int out of 128-bit range: {self.value}")

    @property
    def repr(self) -> str:
        return str(self.value)

    def _serialize_body(self) -> bytes:
        return self.value.to_bytes(16, byteorder="big", signed=True)


@dataclass(frozen=True)
class UIntCV(ClarityValue):
    value: int
    type_id = ClarityType.UINT

    def __post_init__(self):
        if not 0 <= self.value <= UINT128_MAX:
            raise ValueError(f"uint out of 128-bit range: {self.value}")

    @property
    def repr(self) -> str:
        return f"u{self.value}"

    def _serialize_body(self) -> bytes:
        return self.value.to_bytes(16, byteorder="big", signed=False)


@dataclass(frozen=True)
class BufferCV(ClarityValue):
    buffer: bytes
    type_id = ClarityType.BUFFER

    @property
    def repr(self) -> str:
        return encode_hex(self.buffer)

    def text(self, encoding: str = "utf-8") -> str:
        return self.buffer.decode(encoding, errors="replace")

    def _serialize_body(self) -> bytes:
        return struct.pack(">I", len(self.buffer)) + self.buffer


@dataclass(frozen=True)
class BoolCV(ClarityValue):
    value: bool

    @property
    def type_id(self) -> ClarityType:
        return ClarityType.BOOL_TRUE if self.value else ClarityType.BOOL_FALSE

    @property
    def repr(self) -> str:
        return "true" if self.value else "false"


@dataclass(frozen=True)
class StandardPrincipalCV(ClarityValue):
    version: int
    hash160: bytes
    type_id = ClarityType.PRINCIPAL_STANDARD

    @classmethod
    def from_address(cls, address: str) -> "StandardPrincipalCV":
        version, hash160 = c32address_decode(address)
        return cls(version, hash160)

    @property
    def address(self) -> str:
        return c32address(self.version, self.hash160)

    @property
    def repr(self) -> str:
        return f"'{self.address}"

    def _serialize_body(self) -> bytes:
        return bytes([self.version]) + self.hash160


@dataclass(frozen=True)
class ContractPrincipalCV(ClarityValue):
    version: int
    hash160: bytes
    contract_name: str
    type_id = ClarityType.PRINCIPAL_CONTRACT

    @classmethod
    def from_contract_id(cls, contract_id: str) -> "ContractPrincipalCV":
        address, _, name = contract_id.partition(".")
        if not name:
            raise ValueError(f"Invalid contract id: {contract_id!r}")
        version, hash160 = c32address_decode(address)
        return cls(version, hash160, name)

    @property
    def contract_id(self) -> str:
        return f"{c32address(self.version, self.hash160)}.{self.contract_name}"

    @property
    def repr(self) -> str:
        return f"'{self.contract_id}"

    def _serialize_body(self) -> bytes:
        name = self.contract_name.encode("ascii")
        return bytes([self.version]) + self.hash160 + bytes([len(name)]) + name


@dataclass(frozen=True)
class ResponseCV(ClarityValue):
    value: ClarityValue
    ok: bool = True

    @property
    def type_id(self) -> ClarityType:
        return ClarityType.RESPONSE_OK if self.ok else ClarityType.RESPONSE_ERR

    @property
    def repr(self) -> str:
        return f"({'ok' if self.ok else 'err'} {self.value.repr})"

    def _serialize_body(self) -> bytes:
        return self.value.serialize()


@dataclass(frozen=True)
class OptionalCV(ClarityValue):
    value: Optional[ClarityValue] = None

    @property
    def type_id(self) -> ClarityType:
        if self.value is None:
            return ClarityType.OPTIONAL_NONE
        return ClarityType.OPTIONAL_SOME

    @property
    def repr(self) -> str:
        if self.value is None:
            return "none"
        return f"(some {self.value.repr})"

    def _serialize_body(self) -> bytes:
        return b"" if self.value is None else self.value.serialize()


@dataclass(frozen=True)
class ListCV(ClarityValue):
    items: List[ClarityValue] = field(default_factory=list)
    type_id = ClarityType.LIST

    @property
    def repr(self) -> str:
        return "(list " + " ".join(item.repr for item in self.items) + ")"

    def _serialize_body(self) -> bytes:
        return struct.pack(">I", len(self.items)) + b"".join(
            item.serialize() for item in self.items
        )


@dataclass(frozen=True)
class TupleCV(ClarityValue):
    data: Dict[str, ClarityValue] = field(default_factory=dict)
    type_id = ClarityType.TUPLE

    @property
    def repr(self) -> str:
        entries = " ".join(
            f"({name} {self.data[name].repr})" for name in sorted(self.data)
        )
        return f"(tuple {entries})"

    def _serialize_body(self) -> bytes:
        body = struct.pack(">I", len(self.data))
        # keys are serialized in lexicographic order
        for name in sorted(self.data):
            encoded = name.encode("ascii")
            body += bytes([len(encoded)]) + encoded + self.data[name].serialize()
        return body


@dataclass(frozen=True)
class StringAsciiCV(ClarityValue):
    data: str
    type_id = ClarityType.STRING_ASCII

    @property
    def repr(self) -> str:
        return f'"{self.data}"'

    def _serialize_body(self) -> bytes:
        encoded = self.data.encode("ascii")
        return struct.pack(">I", len(encoded)) + encoded


@dataclass(frozen=True)
class StringUtf8CV(ClarityValue):
    data: str
    type_id = ClarityType.STRING_UTF8

    @property
    def repr(self) -> str:
        return f'u"{self.data}"'

    def _serialize_body(self) -> bytes:
        encoded = self.data.encode("utf-8")
        return struct.pack(">I", len(encoded)) + encoded


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def read(self, size: int) -> bytes:
        end = self.pos + size
        if end > len(self.data):
            raise ClarityDecodeError(
                f"Unexpected end of data: wanted {size} bytes at offset {self.pos}"
            )
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def read_u8(self) -> int:
        return self.read(1)[0]

    def read_u32(self) -> int:
        return struct.unpack(">I", self.read(4))[0]

    def read_ascii(self, size: int) -> str:
        try:
            return self.read(size).decode("ascii")
        except UnicodeDecodeError as e:
            raise ClarityDecodeError(f"Invalid ascii string: {e}")

    def read_version(self) -> int:
        version = self.read_u8()
        if version >= 32:
            raise ClarityDecodeError(f"Invalid principal version: {version}")
        return version


def _deserialize(reader: _Reader) -> ClarityValue:
    type_byte = reader.read_u8()
    try:
        type_id = ClarityType(type_byte)
    except ValueError:
        raise ClarityDecodeError(f"Unknown clarity type prefix: 0x{type_byte:02x}")

    if type_id == ClarityType.INT:
        return IntCV(int.from_bytes(reader.read(16), byteorder="big", signed=True))
    if type_id == ClarityType.UINT:
        return UIntCV(int.from_bytes(reader.read(16), byteorder="big", signed=False))
    if type_id == ClarityType.BUFFER:
        return BufferCV(reader.read(reader.read_u32()))
    if type_id == ClarityType.BOOL_TRUE:
        return BoolCV(True)
    if type_id == ClarityType.BOOL_FALSE:
        return BoolCV(False)
    if type_id == ClarityType.PRINCIPAL_STANDARD:
        version = reader.read_version()
        return StandardPrincipalCV(version, reader.read(20))
    if type_id == ClarityType.PRINCIPAL_CONTRACT:
        version = reader.read_version()
        hash160 = reader.read(20)
        name = reader.read_ascii(reader.read_u8())
        return ContractPrincipalCV(version, hash160, name)
    if type_id in (ClarityType.RESPONSE_OK, ClarityType.RESPONSE_ERR):
        return ResponseCV(_deserialize(reader), ok=type_id == ClarityType.RESPONSE_OK)
    if type_id == ClarityType.OPTIONAL_NONE:
        return OptionalCV(None)
    if type_id == ClarityType.OPTIONAL_SOME:
        return OptionalCV(_deserialize(reader))
    if type_id == ClarityType.LIST:
        count = reader.read_u32()
        return ListCV([_deserialize(reader) for _ in range(count)])
    if type_id == ClarityType.TUPLE:
        count = reader.read_u32()
        data = {}
        for _ in range(count):
            name = reader.read_ascii(reader.read_u8())
            data[name] = _deserialize(reader)
        return TupleCV(data)
    if type_id == ClarityType.STRING_ASCII:
        return StringAsciiCV(reader.read_ascii(reader.read_u32()))
    try:
        return StringUtf8CV(reader.read(reader.read_u32()).decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ClarityDecodeError(f"Invalid utf-8 string: {e}")


def cv_to_hex(value: ClarityValue) -> str:
    return encode_hex(value.serialize())


def hex_to_cv(hex_string: str) -> ClarityValue:
    try:
        data = decode_hex(hex_string)
    except ValueError as e:
        raise ClarityDecodeError(f"Invalid hex: {e}")
    reader = _Reader(data)
    value = _deserialize(reader)
    if reader.pos != len(data):
        raise ClarityDecodeError(
            f"Trailing bytes after clarity value: {len(data) - reader.pos}"
        )
    return value
