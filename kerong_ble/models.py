"""
Kerong BLE Lock - Data Models
"""

from enum import IntEnum
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from bleak.backends.device import BLEDevice

from .constants import (
    STX, ETX, DEFAULT_BATTERY_MIN_MV, DEFAULT_BATTERY_MAX_MV,
)
from .errors import ConfigurationError, DeviceStatusError


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class ResponseStatus(IntEnum):
    """ASK byte values seen in lock responses"""
    REQUEST = 0x00      # Outbound frames
    SUCCESS = 0x10
    PARTIAL = 0x24      # Part of a multi-fragment answer, more follow

    @classmethod
    def lookup(cls, code: int) -> Optional["ResponseStatus"]:
        try:
            return cls(code)
        except ValueError:
            return None


class UserType(IntEnum):
    """
    User / code types stored in the lock

    The high bit marks a code whose validity window has passed.
    """
    PERIODIC = 0x02
    ONCE = 0x03
    EXPIRED_PERIODIC = 0x82
    EXPIRED_ONCE = 0x83

    @classmethod
    def lookup(cls, code: int) -> Optional["UserType"]:
        try:
            return cls(code)
        except ValueError:
            return None


USER_TYPE_NAMES = {
    UserType.PERIODIC: "Periodic user",
    UserType.ONCE: "Once code/user",
    UserType.EXPIRED_PERIODIC: "Expired periodic code",
    UserType.EXPIRED_ONCE: "Expired once code",
}


def user_type_name(code: int) -> str:
    user_type = UserType.lookup(code)
    if user_type is None:
        return f"Unknown (0x{code:02X})"
    return USER_TYPE_NAMES[user_type]


class SessionState(IntEnum):
    """Primary session states, driven by inbound notifications"""
    IDLE = 0
    CONNECTED = 1
    PAIRING = 2
    AWAITING_RANDOM_CODE = 3
    AUTHENTICATING = 4
    AUTHENTICATED = 5


# ═══════════════════════════════════════════════════════════════════════════════
# FRAMES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Frame:
    """
    Outbound command frame

    Wire layout: STX CMD ASK LEN ETX SUM DATA...
    SUM is the low byte of the sum of every other byte in the frame.
    """
    cmd: int
    data: bytes = b""
    ask: int = 0x00

    @property
    def stx(self) -> int:
        return STX

    @property
    def etx(self) -> int:
        return ETX

    @property
    def data_length(self) -> int:
        return len(self.data)

    @property
    def checksum(self) -> int:
        header = (self.stx, self.cmd, self.ask, self.data_length, self.etx)
        return (sum(header) + sum(self.data)) & 0xFF

    def to_bytes(self) -> bytes:
        return bytes([
            self.stx, self.cmd, self.ask, self.data_length, self.etx, self.checksum,
        ]) + bytes(self.data)


@dataclass
class Response:
    """Inbound notification frame"""
    cmd: int
    status: int
    data_length: int
    payload: bytes = b""
    raw: bytes = b""

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.SUCCESS

    @property
    def status_name(self) -> str:
        status = ResponseStatus.lookup(self.status)
        if status is None:
            return f"UNKNOWN(0x{self.status:02X})"
        return status.name

    def __str__(self):
        return f"cmd=0x{self.cmd:02X} status={self.status_name} len={self.data_length}"


# ═══════════════════════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class ScannedLock:
    """A discovered lock from BLE scanning"""
    device: BLEDevice
    name: str
    address: str
    rssi: int

    def __str__(self):
        return f"🔒 {self.name} [{self.address}] RSSI:{self.rssi}"


@dataclass
class UserRecord:
    """One 24-byte user record from a 0x6C listing"""

    type_code: int = 0
    user_id: str = ""
    password: str = ""
    valid_from: str = ""
    valid_to: str = ""
    checksum: int = 0
    valid: bool = False
    raw: bytes = b""

    @property
    def user_type(self) -> Optional[UserType]:
        return UserType.lookup(self.type_code)

    @property
    def type_name(self) -> str:
        return user_type_name(self.type_code)

    def __str__(self):
        flag = "✓" if self.valid else "✗ checksum"
        return (
            f"{self.type_name} {self.user_id} pw={self.password} "
            f"{self.valid_from} → {self.valid_to} {flag}"
        )

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "type": self.type_name,
            "typeCode": self.type_code,
            "userId": self.user_id,
            "password": self.password,
            "validFrom": self.valid_from,
            "validTo": self.valid_to,
            "raw": self.raw.hex(),
        }


@dataclass
class LogEntry:
    """Single access log entry (0x72)"""

    is_admin: bool = False
    phone: str = ""
    date: str = ""
    time: str = ""
    raw: bytes = b""

    @property
    def actor(self) -> str:
        return "Admin" if self.is_admin else "User"

    def __str__(self):
        return f"[{self.date} {self.time}] {self.actor} {self.phone}"

    def to_dict(self) -> dict:
        return {
            "type": self.actor,
            "phone": self.phone,
            "date": self.date,
            "time": self.time,
        }


@dataclass
class BatteryLevel:
    """Battery reading (0x60)"""

    voltage_mv: int = 0
    percentage: float = 0.0
    raw: bytes = b""

    @property
    def voltage_string(self) -> str:
        return f"{self.voltage_mv}mV"

    def __str__(self):
        return f"🔋 {self.voltage_string} ({self.percentage}%)"

    def to_dict(self) -> dict:
        return {
            "voltage": self.voltage_mv,
            "voltageString": self.voltage_string,
            "percentage": self.percentage,
            "raw": self.raw.hex(),
        }


@dataclass
class CommandResult:
    """Outcome of a command the lock acknowledges with a bare status byte"""

    cmd: int
    status: int

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.SUCCESS

    def raise_for_status(self) -> "CommandResult":
        if not self.ok:
            raise DeviceStatusError(f"Command 0x{self.cmd:02X} failed", self.status)
        return self


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════════

def _millivolts(key: str, value: Any, default: int) -> Union[int, float]:
    """Battery bound from config; empty or zero means the default"""
    if not value:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number of millivolts, got {value!r}") from None
    return int(number) if number.is_integer() else number


@dataclass
class LockConfig:
    """
    Per-lock session configuration

    PAIRING_PASSWORD is the 4-digit code printed on the back of the lock.
    ADMIN_PHONE is a numeric string of up to 12 digits.
    """

    pairing_password: str = ""
    admin_phone: str = ""
    admin_password: str = ""
    battery_min_mv: Union[int, float] = DEFAULT_BATTERY_MIN_MV
    battery_max_mv: Union[int, float] = DEFAULT_BATTERY_MAX_MV
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]] = None) -> "LockConfig":
        """
        Build a config from a mapping with case-insensitive keys

        Unknown keys are upper-cased and kept in ``extra``.
        """
        normalized = {str(k).upper(): v for k, v in (values or {}).items()}

        config = cls(
            pairing_password=str(normalized.pop("PAIRING_PASSWORD", "") or ""),
            admin_phone=str(normalized.pop("ADMIN_PHONE", "") or ""),
            admin_password=str(normalized.pop("ADMIN_PASSWORD", "") or ""),
            battery_min_mv=_millivolts(
                "BATTERY_MIN_MV", normalized.pop("BATTERY_MIN_MV", None), DEFAULT_BATTERY_MIN_MV
            ),
            battery_max_mv=_millivolts(
                "BATTERY_MAX_MV", normalized.pop("BATTERY_MAX_MV", None), DEFAULT_BATTERY_MAX_MV
            ),
        )
        config.extra = normalized
        return config

    def to_dict(self) -> dict:
        """Upper-case view, password fields masked"""
        result = {
            "PAIRING_PASSWORD": "***" if self.pairing_password else "",
            "ADMIN_PHONE": self.admin_phone,
            "ADMIN_PASSWORD": "***" if self.admin_password else "",
            "BATTERY_MIN_MV": self.battery_min_mv,
            "BATTERY_MAX_MV": self.battery_max_mv,
        }
        result.update(self.extra)
        return result
