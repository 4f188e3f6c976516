import hashlib

C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

ADDRESS_VERSION_MAINNET_SINGLE_SIG = 22
ADDRESS_VERSION_MAINNET_MULTI_SIG = 20
ADDRESS_VERSION_TESTNET_SINGLE_SIG = 26
ADDRESS_VERSION_TESTNET_MULTI_SIG = 21


def _checksum(version: int, data: bytes) -> bytes:
    first = hashlib.sha256(bytes([version]) + data).digest()
    return hashlib.sha256(first).digest()[:4]


def c32encode(data: bytes) -> str:
    """Crockford base32 of ``data``, one '0' kept per leading zero byte."""
    number = int.from_bytes(data, byteorder="big")
    digits = []
    while number > 0:
        number, rem = divmod(number, 32)
        digits.append(C32_ALPHABET[rem])
    leading_zero_bytes = len(data) - len(data.lstrip(b"\x00"))
    return "0" * leading_zero_bytes + "".join(reversed(digits))


def c32normalize(text: str) -> str:
    return text.upper().replace("O", "0").replace("L", "1").replace("I", "1")


def c32decode(text: str) -> bytes:
    text = c32normalize(text)
    number = 0
    for char in text:
        index = C32_ALPHABET.find(char)
        if index < 0:
            raise ValueError(f"Invalid c32 character: {char!r}")
        number = number * 32 + index
    leading_zero_bytes = len(text) - len(text.lstrip("0"))
    body = number.to_bytes((number.bit_length() + 7) // 8, byteorder="big")
    return b"\x00" * leading_zero_bytes + body


def c32address(version: int, hash160: bytes) -> str:
    if not 0 <= version < 32:
        raise ValueError(f"Invalid address version: {version}")
    if len(hash160) != 20:
        raise ValueError(f"Invalid hash160 length: {len(hash160)}")
    payload = c32encode(hash160 + _checksum(version, hash160))
    return f"S{C32_ALPHABET[version]}{payload}"


def c32address_decode(address: str) -> tuple[int, bytes]:
    if len(address) < 5 or address[0].upper() != "S":
        raise ValueError(f"Invalid c32 address: {address!r}")
    version = C32_ALPHABET.find(c32normalize(address[1]))
    if version < 0:
        raise ValueError(f"Invalid c32 address version: {address!r}")
    decoded = c32decode(address[2:])
    data, checksum = decoded[:-4], decoded[-4:]
    if _checksum(version, data) != checksum:
        raise ValueError(f"Invalid c32 address checksum: {address!r}")
    return version, data
