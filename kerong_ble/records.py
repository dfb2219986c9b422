"""
Kerong BLE Lock - User listing and log parsing
"""

import logging
from typing import List, Optional

from .bcd import bcd_to_dec, bytes_to_digits, parse_datetime
from .constants import AUTH_TYPE_ADMIN, RECORD_SIZE
from .errors import ProtocolError
from .models import LogEntry, Response, ResponseStatus, UserRecord

_LOGGER = logging.getLogger(__name__)

LOG_ENTRY_SIZE = 12


def parse_user_record(chunk: bytes) -> UserRecord:
    """
    Parse one 24-byte user record

    Layout:
        byte 0:      user type
        bytes 1-6:   user id (12 packed digits)
        bytes 7-12:  password (6 ASCII characters)
        bytes 13-17: valid from (BCD YY MM DD hh mm)
        bytes 18-22: valid to (BCD YY MM DD hh mm)
        byte 23:     low byte of the sum of bytes 0-22
    """
    chunk = bytes(chunk)
    if len(chunk) != RECORD_SIZE:
        raise ProtocolError(f"User record must be {RECORD_SIZE} bytes, got {len(chunk)}")

    checksum = chunk[23]
    return UserRecord(
        type_code=chunk[0],
        user_id=bytes_to_digits(chunk[1:7]),
        password=chunk[7:13].decode("latin-1").replace("\x00", ""),
        valid_from=parse_datetime(chunk[13:18]),
        valid_to=parse_datetime(chunk[18:23]),
        checksum=checksum,
        valid=checksum == sum(chunk[:23]) & 0xFF,
        raw=chunk,
    )


def parse_user_records(data: bytes) -> List[UserRecord]:
    """Split a reassembled listing into records, dropping an incomplete tail"""
    users = []
    for offset in range(0, len(data), RECORD_SIZE):
        chunk = data[offset:offset + RECORD_SIZE]
        if len(chunk) < RECORD_SIZE:
            _LOGGER.debug("Dropping %d trailing bytes of user listing", len(chunk))
            break
        users.append(parse_user_record(chunk))
    return users


class FragmentReassembler:
    """
    Collects the 0x6C user listing

    The lock sends the listing as PARTIAL (0x24) fragments followed by one
    SUCCESS (0x10) fragment. The buffer is emptied after the final
    fragment whether or not parsing succeeds.
    """

    def __init__(self):
        self._buffer = bytearray()

    @property
    def buffer(self) -> bytes:
        """Copy of the bytes received so far for the listing in progress"""
        return bytes(self._buffer)

    def clear(self):
        self._buffer.clear()

    def feed(self, status: int, payload: bytes) -> Optional[List[UserRecord]]:
        """
        Add one fragment

        Returns:
            Parsed records after the final fragment, otherwise None

        Raises:
            ValueError: If status is neither PARTIAL nor SUCCESS
        """
        if status == ResponseStatus.PARTIAL:
            self._buffer.extend(payload)
            _LOGGER.debug("Received user listing part: %d bytes", len(payload))
            return None

        if status != ResponseStatus.SUCCESS:
            raise ValueError(f"Not a listing fragment status: 0x{status:02X}")

        self._buffer.extend(payload)
        _LOGGER.debug("Last user listing part received: %d bytes", len(payload))
        try:
            return parse_user_records(bytes(self._buffer))
        finally:
            self._buffer.clear()


def parse_log_entry(response: Response) -> LogEntry:
    """
    Decode a single 0x72 log entry

    Payload: type(1) phone(6) date BCD YY MM DD (3) time BCD hh mm (2)
    """
    data = response.payload
    if len(data) < LOG_ENTRY_SIZE:
        raise ProtocolError(f"Log entry too short ({len(data)} bytes): {data.hex()}")

    year = 2000 + bcd_to_dec(data[7])
    month = bcd_to_dec(data[8])
    day = bcd_to_dec(data[9])
    hour = bcd_to_dec(data[10])
    minute = bcd_to_dec(data[11])

    return LogEntry(
        is_admin=data[0] == AUTH_TYPE_ADMIN,
        phone=bytes_to_digits(data[1:7]),
        date=f"{year}-{month:02d}-{day:02d}",
        time=f"{hour:02d}:{minute:02d}",
        raw=bytes(data),
    )
