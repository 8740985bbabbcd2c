# --- File: app/core/errors.py ---
"""
Error taxonomy for the passkey ceremonies.

Every error carries the HTTP status it maps to and a short plain-text
message that is safe to return to the caller. Library details stay in
the logs.
"""


class PasskeyError(Exception):
    status_code = 500
    default_message = "Internal server error."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InputError(PasskeyError):
    """Missing or malformed username or request body."""
    status_code = 400
    default_message = "Invalid request."


class SessionNotFound(PasskeyError):
    """Finish call without a matching pending ceremony."""
    status_code = 400
    default_message = "Users session data not found."


class CeremonyVerificationError(PasskeyError):
    """The client's response failed verification. Terminal for the attempt."""
    status_code = 500
    default_message = "Ceremony verification failed."


class EngineInitializationError(PasskeyError):
    """Relying party configuration is unusable; the server must not start."""
    default_message = "Invalid relying party configuration."
