"""
Kerong BLE Lock - Main SDK Class
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .bcd import date_to_bcd, digits_to_bytes
from .constants import (
    NAME_PREFIX, AUTH_TYPE_ADMIN, PASSWORD_LENGTH, Command,
    WRITE_RETRIES, WRITE_RETRY_DELAY, BATTERY_TIMEOUT, EXIT_GRACE_PERIOD,
    DELETE_SETTLE_DELAY, USER_COMMAND_DELAY,
)
from .crypto import build_packet, parse_packet, xor_transform
from .errors import (
    ConfigurationError, NotAuthenticatedError, ProtocolError,
    TransportError, LockTimeoutError, DeviceStatusError,
)
from .models import (
    BatteryLevel, CommandResult, LockConfig, LogEntry, Response,
    ResponseStatus, ScannedLock, SessionState, UserRecord, UserType,
)
from .records import parse_log_entry
from .session import LockSession
from .transport import BleakTransport, LockTransport

_LOGGER = logging.getLogger(__name__)

RETRYABLE_WRITE_ERRORS = (BleakError, OSError, asyncio.TimeoutError, TransportError)


def battery_percentage(voltage_mv: int, min_mv: float, max_mv: float) -> float:
    """Linear charge estimate between min_mv and max_mv, clamped to 0-100"""
    if max_mv <= min_mv:
        return 100.0 if voltage_mv >= max_mv else 0.0
    percentage = (voltage_mv - min_mv) / (max_mv - min_mv) * 100
    return round(min(100.0, max(0.0, percentage)), 1)


def _hex(data: bytes) -> str:
    return " ".join(f"{b:02x}" for b in data)


class KerongLock:
    """
    Kerong BLE Lock driver (e.g. KR-T153-BT)

    All traffic goes over one write/notify characteristic pair. Answers
    arrive as notifications; handle_notification dispatches them by
    command code and resolves whichever request is waiting.

    Usage:
        lock = KerongLock()
        locks = await lock.scan()
        await lock.connect(locks[0].device)

        lock.configure(PAIRING_PASSWORD="9155", ADMIN_PHONE="15814015470",
                       ADMIN_PASSWORD="000000")
        await lock.pair_and_authenticate()

        password = await lock.create_user("1000", start, end)
        print(await lock.get_battery_level())

        await lock.system_exit()

    Or use context manager:
        async with KerongLock(config=config) as lock:
            await lock.connect(device)
            ...
    """

    def __init__(
        self,
        config: Optional[Union[LockConfig, Mapping[str, Any]]] = None,
        transport: Optional[LockTransport] = None,
        battery_timeout: float = BATTERY_TIMEOUT,
    ):
        """
        Initialize driver

        Args:
            config: LockConfig or a mapping with PAIRING_PASSWORD etc.
            transport: Transport to use; connect() builds a BleakTransport if omitted
            battery_timeout: Seconds to wait for a battery answer
        """
        self._transport = transport
        self._battery_timeout = battery_timeout
        self._session = LockSession()
        self._tasks: set = set()
        self._log_listeners: List[Callable[[LogEntry], None]] = []
        self._handlers: Dict[int, Callable[[Response], None]] = {
            Command.PAIR: self._on_pair,
            Command.RANDOM_CODE: self._on_random_code,
            Command.AUTHENTICATE: self._on_authenticate,
            Command.BATTERY: self._on_battery,
            Command.READ_USERS: self._on_user_list,
            Command.CREATE_USER: self._on_password,
            Command.DELETE_ALL_USERS: self._on_delete_all,
            Command.READ_LOGS: self._on_log,
        }
        if config is not None:
            self.configure(config)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    # ─────────────────────────────────────────────────────────────────────────
    # PROPERTIES
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def session(self) -> LockSession:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.is_connected

    @property
    def is_authenticated(self) -> bool:
        return self._session.authenticated

    @property
    def random_code(self) -> Optional[int]:
        """XOR key issued by the lock for this session (for debugging)"""
        return self._session.random_code

    @property
    def config(self) -> LockConfig:
        return self._session.config

    @property
    def users(self) -> List[UserRecord]:
        """Records from the last completed listing"""
        return list(self._session.users)

    @property
    def logs(self) -> List[LogEntry]:
        return list(self._session.logs)

    @property
    def user_buffer(self) -> bytes:
        """Bytes of a user listing still being received"""
        return self._session.reassembler.buffer

    # ─────────────────────────────────────────────────────────────────────────
    # CONFIGURATION
    # ─────────────────────────────────────────────────────────────────────────

    def configure(self, config: Optional[Union[LockConfig, Mapping[str, Any]]] = None, **values):
        """
        Set the session configuration

        Keys are case-insensitive: PAIRING_PASSWORD, ADMIN_PHONE,
        ADMIN_PASSWORD, BATTERY_MIN_MV, BATTERY_MAX_MV. Other keys are
        kept as-is (upper-cased) in ``config.extra``.
        """
        if isinstance(config, LockConfig):
            self._session.config = config
        else:
            merged = dict(config or {})
            merged.update(values)
            self._session.config = LockConfig.from_mapping(merged)

    def add_log_listener(self, callback: Callable[[LogEntry], None]) -> Callable[[], None]:
        """
        Call ``callback`` for every log entry received

        Returns:
            Function that removes the listener
        """
        self._log_listeners.append(callback)
        return lambda: self._log_listeners.remove(callback)

    # ─────────────────────────────────────────────────────────────────────────
    # SCANNING
    # ─────────────────────────────────────────────────────────────────────────

    @staticmethod
    async def scan(timeout: float = 5.0, callback=None) -> List[ScannedLock]:
        """
        Scan for Kerong locks (advertised name starts with "SN:")

        Args:
            timeout: Scan duration in seconds
            callback: Optional function called for each discovered lock
                      callback(lock: ScannedLock)

        Returns:
            List of discovered locks
        """
        found: List[ScannedLock] = []
        seen: set = set()

        def detection_callback(device: BLEDevice, adv_data):
            if device.address in seen:
                return

            name = device.name or adv_data.local_name or ""
            if not name.startswith(NAME_PREFIX):
                return

            seen.add(device.address)
            lock = ScannedLock(
                device=device,
                name=name,
                address=device.address,
                rssi=adv_data.rssi or -100,
            )
            found.append(lock)

            if callback:
                callback(lock)

        scanner = BleakScanner(detection_callback=detection_callback)
        await scanner.start()
        await asyncio.sleep(timeout)
        await scanner.stop()

        return found

    # ─────────────────────────────────────────────────────────────────────────
    # CONNECTION
    # ─────────────────────────────────────────────────────────────────────────

    async def connect(self, device: Optional[Union[BLEDevice, str]] = None) -> str:
        """
        Connect to a lock and subscribe to its notifications

        Args:
            device: BLEDevice from scanning or an address. May be omitted
                    when a transport was passed to the constructor.

        Returns:
            Device name, e.g. "SN:0000000799"

        Raises:
            TransportError: If the connection fails
        """
        if device is not None:
            self._transport = BleakTransport(device)
        if self._transport is None:
            raise TransportError("No device or transport to connect to")

        await self._transport.connect(self.handle_notification)
        self._session.state = SessionState.CONNECTED
        _LOGGER.info("Connected to %s", self._transport.name)
        return self._transport.name

    async def disconnect(self):
        """Disconnect without the shutdown command and reset the session"""
        try:
            if self._transport is not None and self._transport.is_connected:
                await self._transport.disconnect()
        finally:
            self._reset()

    async def system_exit(self):
        """
        Put the lock back to sleep and disconnect (protocol 4.19)

        Sends 0x6F, waits EXIT_GRACE_PERIOD, then disconnects and resets
        the session whether or not the lock acknowledged. A failed write
        is re-raised after the reset.
        """
        try:
            await self._write(build_packet(Command.SYSTEM_EXIT))
            await asyncio.sleep(EXIT_GRACE_PERIOD)
        finally:
            await self.disconnect()
        _LOGGER.info("Lock released and Bluetooth disconnected")

    def _reset(self):
        self._session.reset()
        for task in list(self._tasks):
            task.cancel()
        _LOGGER.debug("Session reset")

    # ─────────────────────────────────────────────────────────────────────────
    # WRITING
    # ─────────────────────────────────────────────────────────────────────────

    async def _write(self, packet: bytes, retries: int = WRITE_RETRIES):
        """
        Write a frame, retrying failed writes

        Raises:
            TransportError: After the last attempt fails
        """
        if self._transport is None:
            raise TransportError("Not connected")

        for attempt in range(1, retries + 1):
            try:
                _LOGGER.debug("Writing packet: %s", _hex(packet))
                await self._transport.write(packet)
                return
            except RETRYABLE_WRITE_ERRORS as exc:
                _LOGGER.error("Write error (attempt %d): %s", attempt, exc)
                if attempt == retries:
                    if isinstance(exc, TransportError):
                        raise
                    raise TransportError(f"Write failed after {retries} attempts: {exc}") from exc
                await asyncio.sleep(WRITE_RETRY_DELAY)

    def _write_soon(self, packet: bytes):
        """Write from inside the notification handler without blocking it"""
        task = asyncio.ensure_future(self._write(packet))
        self._tasks.add(task)
        task.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.error("Handshake write failed: %s", exc)
            self._session.state = SessionState.CONNECTED
            self._session.auth.fail(exc)

    def _require_authenticated(self):
        if not self._session.authenticated:
            raise NotAuthenticatedError("Please authenticate first.")

    # ─────────────────────────────────────────────────────────────────────────
    # AUTHENTICATION
    # ─────────────────────────────────────────────────────────────────────────

    async def pair_and_authenticate(self, timeout: Optional[float] = None) -> bool:
        """
        Pair with the 4-digit code and authenticate as admin

        Sends the pairing packet (0x0F). The rest of the handshake runs in
        the notification handler:
            0x0F ack  -> ask for the random code (0x20)
            0x20 code -> send admin phone + password XOR'ed with it (0x21)
            0x21      -> authenticated flag

        Args:
            timeout: Seconds to wait for the handshake, None waits forever

        Returns:
            True if the lock accepted the admin credentials

        Raises:
            ConfigurationError: If PAIRING_PASSWORD is not configured
            TransportError: If a handshake write fails
            LockTimeoutError: If timeout expires first
        """
        config = self._session.config
        if not config.pairing_password:
            raise ConfigurationError("PAIRING_PASSWORD is missing or empty!")

        pairing = build_packet(Command.PAIR, config.pairing_password.encode("ascii"))
        future = self._session.auth.open()
        self._session.authenticated = False
        self._session.state = SessionState.PAIRING

        try:
            await self._write(pairing)
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise LockTimeoutError(f"No authentication answer after {timeout} seconds") from None
        finally:
            # Still parked here means no handler finished the handshake
            if self._session.auth.discard(future):
                self._session.state = SessionState.CONNECTED

    def _admin_auth_payload(self) -> bytes:
        """[0x01][admin phone, 6 bytes][admin password ASCII] (protocol 4.3c)"""
        config = self._session.config
        return (
            bytes([AUTH_TYPE_ADMIN])
            + digits_to_bytes(config.admin_phone or "0")
            + config.admin_password.encode("ascii")
        )

    # ─────────────────────────────────────────────────────────────────────────
    # COMMANDS
    # ─────────────────────────────────────────────────────────────────────────

    async def get_battery_level(self) -> BatteryLevel:
        """
        Read battery voltage (0x60)

        Only one battery request may be outstanding at a time.

        Raises:
            RequestPendingError: If a battery request is already running
            LockTimeoutError: If no answer arrives within battery_timeout
            TransportError: If the write fails
        """
        _LOGGER.debug("Requesting battery status")
        future = self._session.battery.open()

        try:
            await self._write(build_packet(Command.BATTERY))
            return await asyncio.wait_for(future, self._battery_timeout)
        except asyncio.TimeoutError:
            raise LockTimeoutError(
                f"Timeout after {self._battery_timeout:g} seconds"
            ) from None
        finally:
            self._session.battery.discard(future)

    async def create_user(
        self,
        user_id: Union[str, int],
        start: datetime,
        end: datetime,
        once: bool = False,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Create a user code (0x68)

        Args:
            user_id: Numeric id, up to 12 digits (usually a phone number)
            start: Start of the validity window
            end: End of the validity window
            once: One-time code instead of a periodic one
            timeout: Seconds to wait for the password, None waits forever

        Returns:
            The 6-character password generated by the lock

        Raises:
            NotAuthenticatedError: Before pair_and_authenticate succeeded
            RequestPendingError: If a request for this user id is running
            TransportError: If the write fails
            LockTimeoutError: If timeout expires first
        """
        self._require_authenticated()

        user_type = UserType.ONCE if once else UserType.PERIODIC
        user_id = str(user_id)
        data = bytes([user_type]) + digits_to_bytes(user_id) + date_to_bcd(start) + date_to_bcd(end)

        passwords = self._session.passwords
        future = passwords.open(user_id)

        try:
            await self._write(build_packet(Command.CREATE_USER, data))
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise LockTimeoutError(f"No password for user {user_id} after {timeout} seconds") from None
        finally:
            passwords.discard(user_id, future)

    async def delete_all_users(self, timeout: Optional[float] = None) -> CommandResult:
        """
        Remove all users from the lock (0x6B)

        Returns:
            CommandResult; call raise_for_status() to turn a refusal into
            DeviceStatusError

        Raises:
            NotAuthenticatedError: Before pair_and_authenticate succeeded
        """
        self._require_authenticated()
        _LOGGER.info("Deleting all users")
        return await self._request(self._session.delete, Command.DELETE_ALL_USERS, timeout)

    async def replace_users(
        self,
        users: Iterable[Tuple[Union[str, int], datetime, datetime]],
        once: bool = False,
    ) -> Dict[str, str]:
        """
        Delete every user, then create the given ones

        The lock needs a pause after 0x6B and between successive 0x68
        commands.

        Args:
            users: (user_id, start, end) tuples

        Returns:
            {user_id: password}

        Raises:
            DeviceStatusError: If the lock refuses the delete
        """
        (await self.delete_all_users()).raise_for_status()
        await asyncio.sleep(DELETE_SETTLE_DELAY)

        passwords = {}
        for index, (user_id, start, end) in enumerate(users):
            if index:
                await asyncio.sleep(USER_COMMAND_DELAY)
            passwords[str(user_id)] = await self.create_user(user_id, start, end, once=once)
        return passwords

    async def get_users(self, timeout: Optional[float] = None) -> List[UserRecord]:
        """
        Read all user records (0x6C)

        The lock answers in fragments which are reassembled before parsing.

        Raises:
            DeviceStatusError: If the lock answers with an error status
        """
        _LOGGER.debug("Requesting user data")
        return await self._request(self._session.user_list, Command.READ_USERS, timeout)

    async def get_logs(self):
        """
        Ask for log entries (0x72)

        Entries arrive as notifications; they are collected in ``logs``
        and passed to listeners registered with add_log_listener.
        """
        _LOGGER.debug("Requesting logs")
        await self._write(build_packet(Command.READ_LOGS))

    async def _request(self, slot, cmd: int, timeout: Optional[float]):
        future = slot.open()
        try:
            await self._write(build_packet(cmd))
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise LockTimeoutError(f"No answer to 0x{cmd:02X} after {timeout} seconds") from None
        finally:
            slot.discard(future)

    # ─────────────────────────────────────────────────────────────────────────
    # NOTIFICATIONS
    # ─────────────────────────────────────────────────────────────────────────

    def handle_notification(self, data: bytes):
        """
        Dispatch one notification from the lock

        Never raises: corrupt frames and handler errors are logged and dropped.
        """
        try:
            response = parse_packet(data)
        except ProtocolError as exc:
            _LOGGER.warning("Dropping corrupt notification: %s", exc)
            return

        _LOGGER.debug("Received response: %s", _hex(response.raw))

        handler = self._handlers.get(response.cmd)
        if handler is None:
            _LOGGER.debug("Unhandled response %s", response)
            return

        try:
            handler(response)
        except Exception:  # pylint: disable=broad-except
            _LOGGER.exception("Error handling %s", response)

    def _on_pair(self, response: Response):
        session = self._session
        if not response.ok:
            _LOGGER.warning("Pairing refused: status=0x%02X", response.status)
            session.state = SessionState.CONNECTED
            session.auth.resolve(False)
            return

        _LOGGER.info("Pairing successful, asking for a random code")
        session.state = SessionState.AWAITING_RANDOM_CODE
        self._write_soon(build_packet(Command.RANDOM_CODE))

    def _on_random_code(self, response: Response):
        session = self._session
        if not response.ok:
            _LOGGER.warning("Random code refused: status=0x%02X", response.status)
            session.state = SessionState.CONNECTED
            session.auth.resolve(False)
            return

        session.random_code = response.raw[-1]
        _LOGGER.debug("Random code: 0x%02x", session.random_code)

        try:
            plain = self._admin_auth_payload()
        except (ValueError, UnicodeEncodeError) as exc:
            session.state = SessionState.CONNECTED
            session.auth.fail(ConfigurationError(f"Invalid admin credentials: {exc}"))
            return

        encrypted = xor_transform(plain, session.random_code)
        _LOGGER.debug("Encrypted auth data: %s", _hex(encrypted))
        session.state = SessionState.AUTHENTICATING
        self._write_soon(build_packet(Command.AUTHENTICATE, encrypted))

    def _on_authenticate(self, response: Response):
        session = self._session
        session.authenticated = response.ok
        if session.authenticated:
            session.state = SessionState.AUTHENTICATED
            _LOGGER.info("Authentication status: Authenticated")
        else:
            session.state = SessionState.CONNECTED
            _LOGGER.warning("Authentication status: Error 0x%02x", response.status)
        session.auth.resolve(session.authenticated)

    def _on_battery(self, response: Response):
        if not response.ok:
            _LOGGER.debug("Battery response with status 0x%02X ignored", response.status)
            return

        raw = response.raw
        voltage = (raw[8] << 8) | raw[9]
        config = self._session.config
        level = BatteryLevel(
            voltage_mv=voltage,
            percentage=battery_percentage(voltage, config.battery_min_mv, config.battery_max_mv),
            raw=raw,
        )
        if not self._session.battery.resolve(level):
            _LOGGER.warning("Stray battery response dropped: %s", level)

    def _on_user_list(self, response: Response):
        session = self._session
        if response.status not in (ResponseStatus.PARTIAL, ResponseStatus.SUCCESS):
            _LOGGER.warning("User listing failed: status=0x%02X", response.status)
            session.reassembler.clear()
            session.user_list.fail(DeviceStatusError("User listing failed", response.status))
            return

        users = session.reassembler.feed(response.status, response.payload)
        if users is None:
            return

        _LOGGER.debug("All users: %s", users)
        session.users = users
        session.user_list.resolve(users)

    def _on_password(self, response: Response):
        if not response.ok:
            _LOGGER.warning("Create user failed: status=0x%02X", response.status)
            return

        password = response.raw[6:6 + PASSWORD_LENGTH].decode("latin-1")
        user_id = self._session.passwords.resolve(password)
        if user_id is None:
            _LOGGER.warning("Duplicate or unexpected password response: %s", _hex(response.raw))
        else:
            _LOGGER.debug("Created password for user %s", user_id)

    def _on_delete_all(self, response: Response):
        result = CommandResult(response.cmd, response.status)
        if result.ok:
            _LOGGER.info("All users deleted.")
        else:
            _LOGGER.warning("Error during deleting: status=0x%02x", response.status)
        self._session.delete.resolve(result)

    def _on_log(self, response: Response):
        if not response.ok:
            return

        entry = parse_log_entry(response)
        _LOGGER.debug("Log received: %s", entry)
        self._session.logs.append(entry)
        for listener in list(self._log_listeners):
            listener(entry)


# ═══════════════════════════════════════════════════════════════════════════════
# CONVENIENCE FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════════

async def scan_locks(timeout: float = 5.0, callback=None) -> List[ScannedLock]:
    """
    Scan for Kerong locks

    Args:
        timeout: Scan duration in seconds
        callback: Optional function called for each discovered lock

    Returns:
        List of discovered locks
    """
    return await KerongLock.scan(timeout, callback)


async def open_lock_session(
    device: Union[BLEDevice, str],
    config: Union[LockConfig, Mapping[str, Any]],
) -> KerongLock:
    """
    Connect, pair and authenticate in one call

    Returns:
        Authenticated KerongLock; call system_exit() when done

    Raises:
        NotAuthenticatedError: If the lock rejects the admin credentials
    """
    lock = KerongLock(config=config)
    await lock.connect(device)
    try:
        if not await lock.pair_and_authenticate():
            raise NotAuthenticatedError("Lock rejected the admin credentials")
    except BaseException:
        await lock.disconnect()
        raise
    return lock
