"""Shared fixtures: an in-memory transport standing in for the lock."""
import asyncio

import pytest
import pytest_asyncio
from bleak.exc import BleakError

from kerong_ble import KerongLock, LockTransport, TransportError
from kerong_ble.models import Frame

CONFIG = {
    "PAIRING_PASSWORD": "9155",
    "ADMIN_PHONE": "15814015470",
    "ADMIN_PASSWORD": "000000",
}


class FakeTransport(LockTransport):
    """Records written frames; tests push notifications with notify()."""

    def __init__(self, fail_writes: int = 0):
        self.writes = []
        self.fail_writes = fail_writes
        self.write_attempts = 0
        self.disconnects = 0
        # Set to an asyncio.Event to hold writes until it is set
        self.gate = None
        self._callback = None
        self._connected = False

    @property
    def name(self) -> str:
        return "SN:0000000799"

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self, callback):
        self._callback = callback
        self._connected = True

    async def disconnect(self):
        self._connected = False
        self.disconnects += 1

    async def write(self, data: bytes):
        self.write_attempts += 1
        if self.gate is not None:
            await self.gate.wait()
        if not self._connected:
            raise TransportError("Not connected")
        if self.fail_writes:
            self.fail_writes -= 1
            raise BleakError("GATT write failed")
        self.writes.append(bytes(data))

    def notify(self, data: bytes):
        self._callback(bytes(data))


def reply(cmd: int, status: int = 0x10, data: bytes = b"") -> bytes:
    """Inbound frame as the lock would send it."""
    return Frame(cmd, bytes(data), ask=status).to_bytes()


async def settle(rounds: int = 10):
    """Let scheduled writes and waiting callers run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def authenticate(lock: KerongLock, transport: FakeTransport, code: int = 0x7A) -> bool:
    """Drive the pairing handshake to completion."""
    task = asyncio.ensure_future(lock.pair_and_authenticate())
    await settle()
    transport.notify(reply(0x0F))
    await settle()
    transport.notify(reply(0x20, data=bytes([0x00, code])))
    await settle()
    transport.notify(reply(0x21))
    return await task


@pytest.fixture(autouse=True)
def fast_timing(monkeypatch):
    monkeypatch.setattr("kerong_ble.sdk.WRITE_RETRY_DELAY", 0)
    monkeypatch.setattr("kerong_ble.sdk.EXIT_GRACE_PERIOD", 0)
    monkeypatch.setattr("kerong_ble.sdk.DELETE_SETTLE_DELAY", 0)
    monkeypatch.setattr("kerong_ble.sdk.USER_COMMAND_DELAY", 0)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest_asyncio.fixture
async def lock(transport):
    lock = KerongLock(config=CONFIG, transport=transport, battery_timeout=0.05)
    await lock.connect()
    return lock


@pytest_asyncio.fixture
async def authed_lock(lock, transport):
    assert await authenticate(lock, transport)
    transport.writes.clear()
    return lock
