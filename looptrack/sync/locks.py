"""Per-owner critical sections.

Every read-modify-write of a user's streak state, and every Push batch, runs
while holding that user's lock. Locks are re-entrant so that a Push batch can
call into instance actions that take the same lock again.
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Set

from dotenv import load_dotenv

from looptrack.errors import StoreUnavailableError

load_dotenv()

logger = logging.getLogger(__name__)

SYNC_LOCK_TIMEOUT_SEC = float(os.getenv("SYNC_LOCK_TIMEOUT_SEC", "10"))


class _OwnerLock:
    """A re-entrant lock plus the number of callers using or waiting on it."""

    def __init__(self):
        self.lock = threading.RLock()
        self.users = 0


class OwnerLockRegistry:
    """Hands out one re-entrant lock per owner id.

    An owner's entry exists only while some caller holds or waits on its lock.
    """

    def __init__(self, timeout: float = SYNC_LOCK_TIMEOUT_SEC):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[str, _OwnerLock] = {}

    def _checkout(self, owner_id: str) -> _OwnerLock:
        with self._guard:
            entry = self._locks.get(owner_id)
            if entry is None:
                entry = _OwnerLock()
                self._locks[owner_id] = entry
            entry.users += 1
            return entry

    def _checkin(self, owner_id: str, entry: _OwnerLock) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[owner_id]

    def tracked_owners(self) -> Set[str]:
        with self._guard:
            return set(self._locks)

    @contextmanager
    def hold(self, owner_id: str, timeout: Optional[float] = None) -> Iterator[None]:
        """Run the body as the single writer for `owner_id`.

        Raises:
            StoreUnavailableError: if the lock is not acquired within the timeout
        """
        entry = self._checkout(owner_id)
        try:
            wait = self.timeout if timeout is None else timeout
            if not entry.lock.acquire(timeout=wait):
                logger.warning(f"Timed out after {wait}s waiting for writer lock of user {owner_id}")
                raise StoreUnavailableError(f"User {owner_id} is busy; retry the request")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(owner_id, entry)


owner_locks = OwnerLockRegistry()
