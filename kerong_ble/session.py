"""
Kerong BLE Lock - Session state

Everything the protocol engine mutates lives in one LockSession owned by
the driver instance. Requests that expect an asynchronous notification
park an asyncio.Future here; the notification handler resolves it.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .errors import RequestPendingError, SessionClosedError
from .models import LockConfig, LogEntry, SessionState, UserRecord
from .records import FragmentReassembler

_LOGGER = logging.getLogger(__name__)


class PendingSlot:
    """
    Single-flight correlation slot

    At most one future is outstanding. ``resolve`` and ``fail`` act on it
    once and return False when nothing is waiting.
    """

    def __init__(self, name: str):
        self.name = name
        self._future: Optional[asyncio.Future] = None

    @property
    def pending(self) -> bool:
        return self._future is not None and not self._future.done()

    def open(self) -> asyncio.Future:
        if self.pending:
            raise RequestPendingError(f"There is already a {self.name} request running.")
        self._future = asyncio.get_running_loop().create_future()
        return self._future

    def resolve(self, result: Any) -> bool:
        future, self._future = self._future, None
        if future is None or future.done():
            return False
        future.set_result(result)
        return True

    def fail(self, exc: BaseException) -> bool:
        future, self._future = self._future, None
        if future is None or future.done():
            return False
        future.set_exception(exc)
        return True

    def discard(self, future: Optional[asyncio.Future] = None) -> bool:
        """
        Forget the waiting future (timeout, write failure, cancelled caller)

        Returns:
            True if the slot was still holding it
        """
        if self._future is None or (future is not None and future is not self._future):
            return False
        self._future = None
        return True


class PasswordRequests:
    """
    Pending user creations keyed by user id, in call order

    The 0x68 answer carries no user id, so an answer goes to the oldest
    pending id that has no recorded password yet.
    """

    def __init__(self):
        self._pending: Dict[str, asyncio.Future] = {}
        self.latest_passwords: Dict[str, str] = {}

    def __len__(self):
        return len(self._pending)

    def __contains__(self, user_id):
        return str(user_id) in self._pending

    def open(self, user_id: str) -> asyncio.Future:
        user_id = str(user_id)
        current = self._pending.get(user_id)
        if current is not None and not current.done():
            raise RequestPendingError(f"A password request for user {user_id} is already running.")
        # A new request for the same id expects a fresh password
        self.latest_passwords.pop(user_id, None)
        future = asyncio.get_running_loop().create_future()
        self._pending[user_id] = future
        return future

    def discard(self, user_id: str, future: Optional[asyncio.Future] = None):
        """Drop the pending request for user_id, only if it is still ``future``"""
        user_id = str(user_id)
        if future is None or self._pending.get(user_id) is future:
            self._pending.pop(user_id, None)

    def resolve(self, password: str) -> Optional[str]:
        """
        Hand a password to the first pending id without one

        Returns:
            The user id that received it, or None if nothing matched
        """
        for user_id, future in list(self._pending.items()):
            if future.done():
                # Caller gave up (cancelled or timed out)
                del self._pending[user_id]
                continue

            if user_id in self.latest_passwords:
                _LOGGER.warning(
                    "Duplicate or unexpected password response for user %s", user_id
                )
                continue

            self.latest_passwords[user_id] = password
            del self._pending[user_id]
            future.set_result(password)
            return user_id

        return None

    def fail_all(self, exc: BaseException):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()


class LockSession:
    """Connection, authentication and correlation state for one lock"""

    def __init__(self, config: Optional[LockConfig] = None):
        self._clear(config)

    def _clear(self, config: Optional[LockConfig] = None):
        self.config = config or LockConfig()
        self.state = SessionState.IDLE
        self.authenticated = False
        self.random_code: Optional[int] = None

        self.auth = PendingSlot("authentication")
        self.battery = PendingSlot("battery")
        self.delete = PendingSlot("delete")
        self.user_list = PendingSlot("user listing")
        self.passwords = PasswordRequests()

        self.reassembler = FragmentReassembler()
        self.users: List[UserRecord] = []
        self.logs: List[LogEntry] = []

    def reset(self):
        """Back to an empty session; anything still waiting gets SessionClosedError"""
        closed = SessionClosedError("Session closed")
        for slot in (self.auth, self.battery, self.delete, self.user_list):
            slot.fail(closed)
        self.passwords.fail_all(closed)
        self._clear()
