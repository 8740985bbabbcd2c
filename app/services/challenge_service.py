from app.db.models.challenge import PendingCeremony
from app.core.errors import SessionNotFound
from datetime import datetime, timezone
from typing import Dict, Optional
import threading
import logging

logger = logging.getLogger(__name__)

class PendingCeremonyStore:
    """
    One pending ceremony per user handle.

    put() overwrites whatever was there, so a second begin call invalidates
    the first challenge. take_and_clear() pops under the lock: of several
    concurrent finish calls for one handle, exactly one gets the entry.
    """

    def __init__(self):
        self._pending: Dict[bytes, PendingCeremony] = {}
        self._lock = threading.Lock()

    def put(self, user_handle: bytes, ceremony: PendingCeremony) -> None:
        with self._lock:
            replaced = self._pending.get(user_handle)
            self._pending[user_handle] = ceremony
        if replaced is not None:
            logger.debug(f"Replaced pending {replaced.challenge_type.value} ceremony for {user_handle!r}")

    def take_and_clear(self, user_handle: bytes) -> PendingCeremony:
        with self._lock:
            ceremony = self._pending.pop(user_handle, None)
        if ceremony is None:
            raise SessionNotFound()
        return ceremony

    def peek(self, user_handle: bytes) -> Optional[PendingCeremony]:
        with self._lock:
            return self._pending.get(user_handle)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            expired = [handle for handle, c in self._pending.items() if c.is_expired(now)]
            for handle in expired:
                del self._pending[handle]
        if expired:
            logger.info(f"Purged {len(expired)} expired pending ceremonies")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
