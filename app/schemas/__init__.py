# --- File: app/schemas/__init__.py ---
from .passkey import (
    UsernameRequest,
    CredentialOptionsResponse,
    StatusResponse
)

__all__ = [
    "UsernameRequest",
    "CredentialOptionsResponse",
    "StatusResponse"
]
