"""
Per-party mutual exclusion for payment operations.

Payment calls for the same party must not interleave their
read-allocate-write cycles, or two payments could both see the same amount
due and overpay an entry.  Within one process ``PartyLockRegistry`` hands out
one lock per party; across processes the payment service additionally takes
``SELECT ... FOR UPDATE`` on the party row and the party's optimistic
version counter rejects any stale write that slips through.

Calls for different parties never wait on each other.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from settlement_kernel.exceptions import PartyLockTimeoutError
from settlement_kernel.logging_config import get_logger

logger = get_logger("services.locking")


class _PartyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class PartyLockRegistry:
    """
    One non-reentrant lock per party id.

    A party's lock exists only while some call holds it or waits for it,
    so the registry never holds more entries than there are in-flight
    payment operations.
    """

    def __init__(self, timeout_seconds: float = 10.0):
        self._timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[str, _PartyLock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: str) -> _PartyLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _PartyLock()
            entry.users += 1
            return entry

    def _checkin(self, key: str, entry: _PartyLock) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, party_id: UUID | str, timeout_seconds: float | None = None) -> Iterator[None]:
        """
        Hold the party's lock for the body of the ``with`` block.

        Raises:
            PartyLockTimeoutError: not acquired within the timeout.
        """
        timeout = self._timeout_seconds if timeout_seconds is None else timeout_seconds
        key = str(party_id)
        entry = self._checkout(key)
        try:
            if not entry.lock.acquire(timeout=timeout):
                logger.warning(
                    "party_lock_timeout",
                    extra={"party_id": key, "timeout_seconds": timeout},
                )
                raise PartyLockTimeoutError(key, timeout)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)

    def is_locked(self, party_id: UUID | str) -> bool:
        with self._guard:
            entry = self._locks.get(str(party_id))
            return entry is not None and entry.lock.locked()


_default_registry = PartyLockRegistry()


def default_lock_registry() -> PartyLockRegistry:
    """The process-wide registry shared by payment services that are not given one."""
    return _default_registry
