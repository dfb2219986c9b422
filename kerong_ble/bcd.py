"""
Kerong BLE Lock - BCD helpers

Validity windows and log timestamps are sent as packed BCD:
one byte per field, tens in the high nibble, units in the low nibble.
Phone numbers and user ids use the same packing, 12 digits in 6 bytes.
"""

from datetime import datetime
from typing import Sequence

from .constants import ID_DIGITS

INVALID_DATETIME_PREFIX = "Invalid date/time"


def dec_to_bcd(value: int) -> int:
    """Pack 0..99 as tens << 4 | units"""
    if not 0 <= value <= 99:
        raise ValueError(f"BCD value out of range: {value}")
    return ((value // 10) << 4) | (value % 10)


def bcd_to_dec(byte: int) -> int:
    high = (byte >> 4) & 0x0F
    low = byte & 0x0F
    return high * 10 + low


def date_to_bcd(moment: datetime) -> bytes:
    """YY MM DD hh mm"""
    return bytes([
        dec_to_bcd(moment.year % 100),
        dec_to_bcd(moment.month),
        dec_to_bcd(moment.day),
        dec_to_bcd(moment.hour),
        dec_to_bcd(moment.minute),
    ])


def parse_datetime(data: Sequence[int]) -> str:
    """
    Render 5 BCD bytes as "YYYY-MM-DD hh:mm"

    Out-of-range fields give an "Invalid date/time (..)" string carrying
    the raw bytes instead of raising.
    """
    if len(data) < 5:
        return _invalid_datetime(data)

    year = 2000 + bcd_to_dec(data[0])
    month = bcd_to_dec(data[1])
    day = bcd_to_dec(data[2])
    hour = bcd_to_dec(data[3])
    minute = bcd_to_dec(data[4])

    if not 1 <= month <= 12 or not 1 <= day <= 31 or hour > 23 or minute > 59:
        return _invalid_datetime(data)

    return f"{year}-{month:02d}-{day:02d} {hour:02d}:{minute:02d}"


def is_invalid_datetime(text: str) -> bool:
    return text.startswith(INVALID_DATETIME_PREFIX)


def _invalid_datetime(data: Sequence[int]) -> str:
    return f"{INVALID_DATETIME_PREFIX} ({':'.join(f'{b:02x}' for b in data)})"


def digits_to_bytes(value) -> bytes:
    """
    Pack a phone number / user id into 6 bytes

    "15814015470" -> 01 58 14 01 54 70
    """
    digits = str(value).strip()
    if not digits.isdigit() or len(digits) > ID_DIGITS:
        raise ValueError(f"Expected up to {ID_DIGITS} digits, got {value!r}")
    return bytes.fromhex(digits.zfill(ID_DIGITS))


def bytes_to_digits(data: Sequence[int]) -> str:
    """Inverse of digits_to_bytes, leading zeros stripped"""
    return bytes(data).hex().lstrip("0")
