# In-memory user and passkey records. Nothing here outlives the process.
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
import threading

from webauthn.helpers.structs import AuthenticatorTransport


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Credential:
    credential_id: bytes
    public_key: bytes
    sign_count: int = 0
    transports: List[AuthenticatorTransport] = field(default_factory=list)
    aaguid: str = ""
    attestation_format: str = "none"
    device_type: str = "single_device"
    backed_up: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    last_used_at: Optional[datetime] = None


@dataclass(eq=False)
class User:
    user_id: bytes  # WebAuthn user handle
    name: str
    display_name: str
    credentials: List[Credential] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def credential_ids(self) -> List[bytes]:
        with self.lock:
            return [cred.credential_id for cred in self.credentials]

    def find_credential(self, credential_id: bytes) -> Optional[Credential]:
        with self.lock:
            for cred in self.credentials:
                if cred.credential_id == credential_id:
                    return cred
        return None
