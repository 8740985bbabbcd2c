from app.db.models.user import User, Credential
from app.core.errors import CeremonyVerificationError
from typing import Dict, Optional
import threading
import logging

logger = logging.getLogger(__name__)

class UserStore:
    """
    Process-wide username -> User mapping.

    Users are created on first reference and never removed. The store lock
    covers only the dictionary; each user's credential list is guarded by
    the user's own lock.
    """

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()

    def get(self, username: str) -> Optional[User]:
        with self._lock:
            return self._users.get(username)

    def get_or_create(self, username: str) -> User:
        with self._lock:
            user = self._users.get(username)
            if user is None:
                user = User(
                    user_id=username.encode('utf-8'),
                    name=username,
                    display_name=username,
                )
                self._users[username] = user
                logger.info(f"Created user {username}")
            return user

    def add_credential(self, user: User, credential: Credential) -> None:
        with user.lock:
            if any(c.credential_id == credential.credential_id for c in user.credentials):
                logger.warning(f"Credential already registered for user {user.name}")
                raise CeremonyVerificationError("Failed to finish registration.")
            user.credentials.append(credential)
            total = len(user.credentials)
        logger.info(f"Added credential to user {user.name} (now {total})")

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def __contains__(self, username: str) -> bool:
        with self._lock:
            return username in self._users
