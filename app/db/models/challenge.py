# --- File: app/db/models/challenge.py ---
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
import enum

class ChallengeType(enum.Enum):
    REGISTRATION = "REGISTRATION"
    AUTHENTICATION = "AUTHENTICATION"

@dataclass
class PendingCeremony:
    """An issued challenge waiting for its finish call."""
    challenge: bytes
    challenge_type: ChallengeType
    user_handle: bytes
    user_verification: str = "preferred"
    allowed_credential_ids: List[bytes] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or datetime.now(timezone.utc))
