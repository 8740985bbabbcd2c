from webauthn import (
    generate_registration_options, verify_registration_response,
    generate_authentication_options, verify_authentication_response,
    options_to_json,
)
from webauthn.helpers import (
    bytes_to_base64url, parse_registration_credential_json, parse_authentication_credential_json,
)
from webauthn.helpers.structs import (
    AttestationConveyancePreference, AuthenticatorSelectionCriteria, PublicKeyCredentialDescriptor,
    ResidentKeyRequirement, UserVerificationRequirement,
)
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple, Union
from urllib.parse import urlsplit
import json
import logging

from app.core.config import Settings
from app.core.errors import CeremonyVerificationError, EngineInitializationError, InputError
from app.db.models.challenge import ChallengeType, PendingCeremony
from app.db.models.user import Credential, User

logger = logging.getLogger(__name__)

CredentialJSON = Union[str, bytes, Dict[str, Any]]


def options_to_dict(options) -> Dict[str, Any]:
    """Serialise py_webauthn options into the JSON shape browsers expect."""
    return json.loads(options_to_json(options))


def _pretty(value: Dict[str, Any]) -> str:
    return json.dumps(value, indent=2)


class RelyingParty:
    """
    WebAuthn ceremony engine for a single relying party identity.

    begin_* produce the options for the browser together with the
    PendingCeremony the caller must keep until the matching finish_* call.
    finish_* never touch the stores; the caller consumes the pending
    ceremony before calling them and persists whatever they return.
    """

    def __init__(
        self,
        rp_id: str,
        rp_name: str,
        origins: List[str],
        timeout_ms: int = 300000,
        user_verification: str = "preferred",
        attestation: str = "none",
    ):
        self.rp_id = rp_id
        self.rp_name = rp_name
        self.origins = list(origins or [])
        self.timeout_ms = timeout_ms
        try:
            self.user_verification = UserVerificationRequirement(user_verification)
            self.attestation = AttestationConveyancePreference(attestation)
        except ValueError as e:
            raise EngineInitializationError(f"Invalid relying party configuration: {e}") from e
        self._validate()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RelyingParty":
        return cls(
            rp_id=settings.RP_ID,
            rp_name=settings.RP_NAME,
            origins=settings.RP_ORIGINS,
            timeout_ms=settings.CEREMONY_TIMEOUT_MS,
            user_verification=settings.USER_VERIFICATION,
            attestation=settings.ATTESTATION,
        )

    def _validate(self) -> None:
        rp_id = self.rp_id or ""
        if not rp_id or any(ch in rp_id for ch in "/:@ "):
            raise EngineInitializationError(f"Invalid RP ID: {self.rp_id!r}")
        if not self.rp_name:
            raise EngineInitializationError("RP display name is required.")
        if not self.origins:
            raise EngineInitializationError("At least one RP origin is required.")
        if self.timeout_ms <= 0:
            raise EngineInitializationError("Ceremony timeout must be positive.")
        for origin in self.origins:
            parts = urlsplit(origin)
            if parts.scheme not in ("http", "https") or not parts.hostname:
                raise EngineInitializationError(f"Invalid RP origin: {origin!r}")
            host = parts.hostname
            if host != rp_id and not host.endswith("." + rp_id):
                raise EngineInitializationError(
                    f"RP origin {origin!r} does not belong to RP ID {rp_id!r}"
                )

    def _new_pending(self, challenge: bytes, challenge_type: ChallengeType, user: User,
                     allowed: List[bytes] = None) -> PendingCeremony:
        now = datetime.now(timezone.utc)
        return PendingCeremony(
            challenge=challenge,
            challenge_type=challenge_type,
            user_handle=user.user_id,
            user_verification=self.user_verification.value,
            allowed_credential_ids=list(allowed or []),
            created_at=now,
            expires_at=now + timedelta(milliseconds=self.timeout_ms),
        )

    def _check_pending(self, user: User, pending: PendingCeremony, expected: ChallengeType) -> None:
        if pending.challenge_type != expected:
            logger.warning(
                f"Ceremony type mismatch for {user.name}: pending {pending.challenge_type.value}, "
                f"got {expected.value}"
            )
            raise CeremonyVerificationError("Session does not match this ceremony.")
        if pending.user_handle != user.user_id:
            raise CeremonyVerificationError("Session does not belong to this user.")
        if pending.is_expired():
            logger.warning(f"Expired {expected.value} session for {user.name}")
            raise CeremonyVerificationError("Session has expired.")

    #
    # Registration
    #

    def begin_registration(self, user: User) -> Tuple[Dict[str, Any], PendingCeremony]:
        with user.lock:
            credentials = list(user.credentials)
        registration_options = generate_registration_options(
            rp_id=self.rp_id,
            rp_name=self.rp_name,
            user_id=user.user_id,
            user_name=user.name,
            user_display_name=user.display_name,
            timeout=self.timeout_ms,
            attestation=self.attestation,
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=self.user_verification,
            ),
            exclude_credentials=[
                PublicKeyCredentialDescriptor(id=cred.credential_id, transports=cred.transports or None)
                for cred in credentials
            ],
        )
        pending = self._new_pending(registration_options.challenge, ChallengeType.REGISTRATION, user)
        options = options_to_dict(registration_options)
        logger.debug(f"Create registration credential:\n{_pretty(options)}")
        return options, pending

    def finish_registration(self, user: User, pending: PendingCeremony,
                            credential_json: CredentialJSON) -> Credential:
        self._check_pending(user, pending, ChallengeType.REGISTRATION)

        try:
            parsed_credential = parse_registration_credential_json(_as_json(credential_json))
        except Exception as e:
            logger.warning(f"Unparsable registration response for {user.name}: {e}")
            raise InputError("Could not parse incoming credential.") from e

        try:
            reg_verification = verify_registration_response(
                credential=parsed_credential,
                expected_challenge=pending.challenge,
                expected_rp_id=self.rp_id,
                expected_origin=self.origins,
                require_user_verification=pending.user_verification == "required",
            )
        except Exception as e:
            logger.warning(f"Registration verification failed for {user.name}: {e}")
            raise CeremonyVerificationError("Failed to finish registration.") from e

        if reg_verification.credential_id in user.credential_ids():
            logger.warning(
                f"Credential {bytes_to_base64url(reg_verification.credential_id)} "
                f"already registered for {user.name}"
            )
            raise CeremonyVerificationError("Failed to finish registration.")

        credential = Credential(
            credential_id=reg_verification.credential_id,
            public_key=reg_verification.credential_public_key,
            sign_count=reg_verification.sign_count,
            transports=list(parsed_credential.response.transports or []),
            aaguid=reg_verification.aaguid,
            attestation_format=_enum_value(reg_verification.fmt),
            device_type=_enum_value(reg_verification.credential_device_type),
            backed_up=reg_verification.credential_backed_up,
        )
        logger.debug(f"Verified registration credential:\n{_pretty(_describe(credential))}")
        return credential

    #
    # Authentication
    #

    def begin_authentication(self, user: User) -> Tuple[Dict[str, Any], PendingCeremony]:
        with user.lock:
            credentials = list(user.credentials)
        auth_options = generate_authentication_options(
            rp_id=self.rp_id,
            timeout=self.timeout_ms,
            allow_credentials=[
                PublicKeyCredentialDescriptor(id=cred.credential_id, transports=cred.transports or None)
                for cred in credentials
            ],
            user_verification=self.user_verification,
        )
        pending = self._new_pending(
            auth_options.challenge, ChallengeType.AUTHENTICATION, user,
            allowed=[cred.credential_id for cred in credentials],
        )
        options = options_to_dict(auth_options)
        logger.debug(f"Created assertion credential:\n{_pretty(options)}")
        return options, pending

    def finish_authentication(self, user: User, pending: PendingCeremony,
                              credential_json: CredentialJSON) -> Credential:
        self._check_pending(user, pending, ChallengeType.AUTHENTICATION)

        try:
            parsed_credential = parse_authentication_credential_json(_as_json(credential_json))
        except Exception as e:
            logger.warning(f"Unparsable authentication response for {user.name}: {e}")
            raise InputError("Could not parse incoming credential.") from e

        stored = user.find_credential(parsed_credential.raw_id)
        # Only credentials named in the issued allow-list may answer it.
        if stored is None or parsed_credential.raw_id not in pending.allowed_credential_ids:
            logger.warning(f"Credential {parsed_credential.id} is not registered for {user.name}")
            raise CeremonyVerificationError("Failed to finish authentication.")

        user_handle = parsed_credential.response.user_handle
        if user_handle and user_handle != user.user_id:
            logger.warning(f"User handle mismatch for {user.name}")
            raise CeremonyVerificationError("Failed to finish authentication.")

        try:
            auth_verification = verify_authentication_response(
                credential=parsed_credential,
                expected_challenge=pending.challenge,
                expected_rp_id=self.rp_id,
                expected_origin=self.origins,
                credential_public_key=stored.public_key,
                credential_current_sign_count=stored.sign_count,
                require_user_verification=pending.user_verification == "required",
            )
        except Exception as e:
            logger.warning(f"Authentication verification failed for {user.name}: {e}")
            raise CeremonyVerificationError("Failed to finish authentication.") from e

        with user.lock:
            stored.sign_count = max(stored.sign_count, auth_verification.new_sign_count)
            stored.backed_up = auth_verification.credential_backed_up
            stored.last_used_at = datetime.now(timezone.utc)
        logger.debug(f"Validated credential:\n{_pretty(_describe(stored))}")
        return stored


def _as_json(credential_json: CredentialJSON) -> Union[str, Dict[str, Any]]:
    if isinstance(credential_json, bytes):
        return credential_json.decode('utf-8')
    return credential_json


def _enum_value(value) -> str:
    return getattr(value, "value", value)


def _describe(credential: Credential) -> Dict[str, Any]:
    return {
        "id": bytes_to_base64url(credential.credential_id),
        "signCount": credential.sign_count,
        "transports": [_enum_value(t) for t in credential.transports],
        "aaguid": credential.aaguid,
        "fmt": credential.attestation_format,
        "deviceType": credential.device_type,
        "backedUp": credential.backed_up,
    }
