"""
Kerong BLE Handler — bridges WebSocket commands to lock operations.

All protocol logic lives in kerong_ble/. This module wraps the driver
with a JSON-message interface suitable for the WebSocket server.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from bleak.backends.device import BLEDevice

from kerong_ble import KerongLock, LockError, scan_locks
from kerong_ble.models import LogEntry

_LOGGER = logging.getLogger(__name__)


class BLEHandler:
    """Manages a single lock session and translates WS commands."""

    def __init__(self, send: Callable, lock: Optional[KerongLock] = None):
        """
        Args:
            send: async callable that pushes a JSON-serialisable dict
                  back to the WebSocket client.
            lock: driver to use (a fresh KerongLock by default)
        """
        self._send = send
        self._lock = lock or KerongLock()
        self._lock.add_log_listener(self._on_log_entry)
        self._pending_logs: list = []
        # Keep scanned devices so we can look up by address
        self._scanned: Dict[str, BLEDevice] = {}

    @property
    def lock(self) -> KerongLock:
        return self._lock

    # ── helpers ────────────────────────────────────────────────────────────

    async def _emit(self, msg: dict):
        await self._send(msg)

    async def _log(self, message: str, level: str = "info"):
        _LOGGER.log(logging.getLevelName(level.upper()), message)
        await self._emit({"type": "log", "message": message, "level": level})

    async def _error(self, message: str):
        _LOGGER.error(message)
        await self._emit({"type": "error", "message": message})

    async def _status(self):
        await self._emit({
            "type": "status",
            "connected": self._lock.is_connected,
            "authenticated": self._lock.is_authenticated,
            "state": self._lock.state.name,
        })

    def _on_log_entry(self, entry: LogEntry):
        # Called from the notification handler; flushed by the next action
        self._pending_logs.append(entry.to_dict())

    @staticmethod
    def _parse_date(value: str) -> datetime:
        return datetime.fromisoformat(value)

    # ── public dispatch ───────────────────────────────────────────────────

    async def handle(self, msg: dict):
        """Route an incoming WS message to the right handler."""
        if not isinstance(msg, dict):
            await self._error("Invalid message: expected a JSON object")
            return

        action = msg.get("action")
        try:
            if action == "scan":
                await self.scan()
            elif action == "connect":
                await self.connect(msg["address"])
            elif action == "configure":
                await self.configure(msg.get("config", {}))
            elif action == "pair":
                await self.pair()
            elif action == "battery":
                await self.battery()
            elif action == "create_user":
                await self.create_user(
                    msg["userId"], msg["start"], msg["end"], once=msg.get("once", False)
                )
            elif action == "delete_all_users":
                await self.delete_all_users()
            elif action == "get_users":
                await self.get_users()
            elif action == "get_logs":
                await self.get_logs()
            elif action == "system_exit":
                await self.system_exit()
            elif action == "disconnect":
                await self.disconnect()
            else:
                await self._error(f"Unknown action: {action}")
        except LockError as exc:
            await self._error(f"{type(exc).__name__}: {exc}")
        except (KeyError, TypeError, ValueError) as exc:
            await self._error(f"Bad request for {action}: {exc}")
        except Exception as exc:  # pylint: disable=broad-except
            _LOGGER.exception("Unexpected error during %s", action)
            await self._error(f"{action} failed: {exc}")

        if self._pending_logs:
            logs, self._pending_logs = self._pending_logs, []
            await self._emit({"type": "logs", "data": logs})

    # ── scan ──────────────────────────────────────────────────────────────

    async def scan(self):
        await self._log("Scanning for locks…")
        self._scanned.clear()

        locks = await scan_locks(timeout=5.0)
        found = []
        for lock in locks:
            self._scanned[lock.address] = lock.device
            found.append({"name": lock.name, "address": lock.address, "rssi": lock.rssi})

        await self._log(f"Found {len(found)} lock(s)")
        await self._emit({"type": "devices", "devices": found})

    # ── connect / configure / pair ────────────────────────────────────────

    async def connect(self, address: str):
        # Disconnect previous if any
        if self._lock.is_connected:
            await self._lock.disconnect()

        device = self._scanned.get(address)
        if device is None:
            await self._error(f"Device {address} not in scan results — scan first")
            return

        await self._log(f"Connecting to {device.name or address}…")
        name = await self._lock.connect(device)
        await self._log(f"Connected to {name}")
        await self._status()

    async def configure(self, config: dict):
        self._lock.configure(config)
        await self._log("Configuration stored")
        await self._emit({"type": "config", "data": self._lock.config.to_dict()})

    async def pair(self):
        await self._log("Sending pairing code (0x0F)…")
        if await self._lock.pair_and_authenticate(timeout=10.0):
            await self._log("Authentication successful ✓")
        else:
            await self._error("Authentication failed")
        await self._status()

    # ── commands ──────────────────────────────────────────────────────────

    async def battery(self):
        level = await self._lock.get_battery_level()
        await self._emit({"type": "battery", "data": level.to_dict()})

    async def create_user(self, user_id: str, start: str, end: str, once: bool = False):
        await self._log(f"Creating user {user_id}…")
        password = await self._lock.create_user(
            user_id, self._parse_date(start), self._parse_date(end), once=once, timeout=10.0
        )
        await self._emit({"type": "user_created", "userId": str(user_id), "password": password})

    async def delete_all_users(self):
        result = await self._lock.delete_all_users(timeout=10.0)
        if result.ok:
            await self._log("All users deleted ✓")
        else:
            await self._error(f"Error during deleting: status=0x{result.status:02X}")

    async def get_users(self):
        users = await self._lock.get_users(timeout=10.0)
        await self._log(f"Read {len(users)} user(s) ✓")
        await self._emit({"type": "users", "data": [user.to_dict() for user in users]})

    async def get_logs(self):
        await self._lock.get_logs()
        await self._log("Log request sent")

    # ── disconnect ────────────────────────────────────────────────────────

    async def system_exit(self):
        await self._lock.system_exit()
        await self._log("Lock released and disconnected")
        await self._status()

    async def disconnect(self, silent: bool = False):
        await self._lock.disconnect()
        if not silent:
            await self._log("Disconnected")
            await self._status()
