"""
Kerong BLE Lock driver
Python implementation for Kerong Bluetooth locks such as the KR-T153-BT

Usage:
    from kerong_ble import KerongLock, scan_locks

    locks = await scan_locks()

    async with KerongLock(config={
        "PAIRING_PASSWORD": "9155",        # code on the back of the lock
        "ADMIN_PHONE": "15814015470",
        "ADMIN_PASSWORD": "000000",
    }) as lock:
        await lock.connect(locks[0].device)
        await lock.pair_and_authenticate()
        password = await lock.create_user("1000", start, end)
        battery = await lock.get_battery_level()
        await lock.system_exit()
"""

from .sdk import (
    KerongLock,
    scan_locks,
    open_lock_session,
    battery_percentage,
)

from .models import (
    Frame,
    Response,
    ResponseStatus,
    UserType,
    SessionState,
    UserRecord,
    LogEntry,
    BatteryLevel,
    CommandResult,
    ScannedLock,
    LockConfig,
)

from .constants import (
    SERVICE_UUID,
    WRITE_CHAR,
    NOTIFY_CHAR,
    NAME_PREFIX,
    Command,
)

from .crypto import (
    build_packet,
    parse_packet,
    encode,
    decode,
    frame_checksum,
    verify_checksum,
    xor_transform,
)

from .bcd import (
    dec_to_bcd,
    bcd_to_dec,
    date_to_bcd,
    parse_datetime,
)

from .records import (
    FragmentReassembler,
    parse_user_records,
)

from .session import LockSession

from .transport import (
    LockTransport,
    BleakTransport,
)

from .errors import (
    LockError,
    ConfigurationError,
    NotAuthenticatedError,
    TransportError,
    LockTimeoutError,
    ProtocolError,
    DeviceStatusError,
    RequestPendingError,
    SessionClosedError,
)

__version__ = "1.0.0"
__all__ = [
    # Main SDK
    "KerongLock",
    "scan_locks",
    "open_lock_session",
    "battery_percentage",
    "LockSession",
    # Models
    "Frame",
    "Response",
    "ResponseStatus",
    "UserType",
    "SessionState",
    "UserRecord",
    "LogEntry",
    "BatteryLevel",
    "CommandResult",
    "ScannedLock",
    "LockConfig",
    # Constants
    "SERVICE_UUID",
    "WRITE_CHAR",
    "NOTIFY_CHAR",
    "NAME_PREFIX",
    "Command",
    # Codec
    "build_packet",
    "parse_packet",
    "encode",
    "decode",
    "frame_checksum",
    "verify_checksum",
    "xor_transform",
    "dec_to_bcd",
    "bcd_to_dec",
    "date_to_bcd",
    "parse_datetime",
    "FragmentReassembler",
    "parse_user_records",
    # Transport
    "LockTransport",
    "BleakTransport",
    # Errors
    "LockError",
    "ConfigurationError",
    "NotAuthenticatedError",
    "TransportError",
    "LockTimeoutError",
    "ProtocolError",
    "DeviceStatusError",
    "RequestPendingError",
    "SessionClosedError",
]
