"""
Kerong BLE Lock - Transport

The protocol engine only needs to write frames and receive notifications.
LockTransport is that boundary; BleakTransport implements it over GATT.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

from bleak import BleakClient
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .constants import NOTIFY_CHAR, WRITE_CHAR
from .errors import TransportError

_LOGGER = logging.getLogger(__name__)

NotificationCallback = Callable[[bytes], None]


class LockTransport(ABC):
    """Write/notify channel to one lock."""

    @abstractmethod
    async def connect(self, callback: NotificationCallback) -> None:
        """Connect and deliver every notification to ``callback`` in arrival order."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the lock."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Check if currently connected."""

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Write one frame to the lock."""

    @property
    def name(self) -> str:
        return ""


class BleakTransport(LockTransport):
    """GATT transport on the fff0 service (write fff2, notify fff1)."""

    def __init__(self, device: Union[BLEDevice, str], timeout: float = 10.0):
        """
        Args:
            device: BLEDevice from scanning, or a MAC address / UUID
            timeout: Connection timeout in seconds
        """
        self._device = device
        self._timeout = timeout
        self._client: Optional[BleakClient] = None

    @property
    def name(self) -> str:
        if isinstance(self._device, BLEDevice):
            return self._device.name or self._device.address
        return str(self._device)

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    async def connect(self, callback: NotificationCallback) -> None:
        def on_notify(_sender, data: bytearray):
            callback(bytes(data))

        client = BleakClient(self._device, timeout=self._timeout)
        try:
            await client.connect()
            await client.start_notify(NOTIFY_CHAR, on_notify)
        except (BleakError, OSError, asyncio.TimeoutError) as exc:
            if client.is_connected:
                await client.disconnect()
            raise TransportError(f"Failed to connect: {exc}") from exc
        self._client = client

        _LOGGER.debug("Connected to %s", self.name)

    async def disconnect(self) -> None:
        if self._client and self._client.is_connected:
            try:
                await self._client.stop_notify(NOTIFY_CHAR)
            except (BleakError, OSError) as exc:
                _LOGGER.debug("stop_notify failed: %s", exc)
            await self._client.disconnect()
        self._client = None

    async def write(self, data: bytes) -> None:
        if not self.is_connected:
            raise TransportError("Not connected")
        await self._client.write_gatt_char(WRITE_CHAR, data, response=True)
