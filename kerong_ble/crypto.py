"""
Kerong BLE Lock - Packet Codec and Cipher
"""

from typing import Iterable, Union

from .constants import STX, ETX, HEADER_SIZE
from .errors import ProtocolError
from .models import Frame, Response

ByteLike = Union[bytes, bytearray, Iterable[int]]


def frame_checksum(header: ByteLike, data: ByteLike = b"") -> int:
    """
    Low byte of the sum of all header and data bytes

    e.g. a byte sum of 0x125D gives a checksum of 0x5D.
    """
    return (sum(header) + sum(data)) & 0xFF


def xor_transform(data: ByteLike, key: int) -> bytes:
    """
    XOR every byte with the session random code (protocol 4.3f)

    Applying it twice with the same key gives back the input.
    """
    return bytes((b ^ key) % 256 for b in data)


def build_packet(cmd: int, data: ByteLike = b"") -> bytes:
    """
    Build a command frame

    Format: STX(0xF5) CMD ASK(0x00) LEN ETX(0x5F) SUM DATA[LEN]

    Args:
        cmd: Command code
        data: Command data (max 255 bytes)

    Returns:
        Frame bytes ready to write

    Raises:
        ValueError: If cmd or a data byte is outside 0..255, or data is too long
    """
    try:
        data = bytes(data)
    except ValueError as exc:
        raise ValueError(f"Frame data must be bytes 0..255: {exc}") from None

    if not 0 <= cmd <= 0xFF:
        raise ValueError(f"Command out of range: {cmd}")
    if len(data) > 0xFF:
        raise ValueError(f"Frame data too long: {len(data)} bytes")

    return Frame(cmd, data).to_bytes()


def parse_packet(raw: ByteLike) -> Response:
    """
    Split a notification into its header fields and payload

    The lock link is trusted: STX/ETX and the checksum are not checked
    here (see verify_checksum).

    Returns:
        Response with cmd, status (ASK byte), data_length and payload

    Raises:
        ProtocolError: If the frame is shorter than the 6-byte header
    """
    raw = bytes(raw)
    if len(raw) < HEADER_SIZE:
        raise ProtocolError(f"Frame too short ({len(raw)} bytes): {raw.hex()}")

    data_length = raw[3]
    payload = raw[HEADER_SIZE:HEADER_SIZE + data_length]

    return Response(
        cmd=raw[1],
        status=raw[2],
        data_length=data_length,
        payload=payload,
        raw=raw,
    )


def verify_checksum(raw: ByteLike) -> bool:
    """Check the header markers and SUM byte of a complete frame"""
    raw = bytes(raw)
    if len(raw) < HEADER_SIZE or raw[0] != STX or raw[4] != ETX:
        return False
    data = raw[HEADER_SIZE:]
    if len(data) != raw[3]:
        return False
    return raw[5] == frame_checksum(raw[:5], data)


# Protocol-level names
encode = build_packet
decode = parse_packet
