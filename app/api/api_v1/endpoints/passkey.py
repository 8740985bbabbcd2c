# --- File: app/api/api_v1/endpoints/passkey.py ---
from fastapi import APIRouter, Body, Depends, Query
from typing import Any, Dict
import logging

from app.core.errors import InputError, PasskeyError
from app.db.base import get_ceremony_store, get_relying_party, get_user_store
from app.schemas.passkey import CredentialOptionsResponse, StatusResponse, UsernameRequest
from app.services.challenge_service import PendingCeremonyStore
from app.services.passkey_service import RelyingParty
from app.services.user_service import UserStore

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_username(username: str) -> str:
    if not username or not username.strip():
        raise InputError("Username is required.")
    return username


#
# Registration
#

@router.post("/passkey/registerStart", response_model=CredentialOptionsResponse, summary="Start passkey registration")
def begin_registration(
    request: UsernameRequest,
    users: UserStore = Depends(get_user_store),
    ceremonies: PendingCeremonyStore = Depends(get_ceremony_store),
    rp: RelyingParty = Depends(get_relying_party),
):
    username = _require_username(request.username)
    user = users.get_or_create(username)
    try:
        options, pending = rp.begin_registration(user)
    except PasskeyError:
        raise
    except Exception as e:
        logger.exception(f"Registration start failed for {username}: {e}")
        raise PasskeyError("Failed to start registration.") from e

    ceremonies.put(user.user_id, pending)
    logger.info(f"Registration started for {username}")
    return CredentialOptionsResponse(publicKey=options)


@router.post("/passkey/registerFinish", response_model=StatusResponse, summary="Finish passkey registration")
def finish_registration(
    credential: Dict[str, Any] = Body(...),
    username: str = Query(""),
    users: UserStore = Depends(get_user_store),
    ceremonies: PendingCeremonyStore = Depends(get_ceremony_store),
    rp: RelyingParty = Depends(get_relying_party),
):
    username = _require_username(username)
    user = users.get_or_create(username)
    pending = ceremonies.take_and_clear(user.user_id)

    new_credential = rp.finish_registration(user, pending, credential)
    users.add_credential(user, new_credential)
    logger.info(f"Registration finished for {username}")
    return StatusResponse(status="registration successful")


#
# Authentication
#

@router.post("/passkey/loginStart", response_model=CredentialOptionsResponse, summary="Start passkey login")
def begin_authentication(
    request: UsernameRequest,
    users: UserStore = Depends(get_user_store),
    ceremonies: PendingCeremonyStore = Depends(get_ceremony_store),
    rp: RelyingParty = Depends(get_relying_party),
):
    username = _require_username(request.username)
    user = users.get_or_create(username)
    try:
        options, pending = rp.begin_authentication(user)
    except PasskeyError:
        raise
    except Exception as e:
        logger.exception(f"Authentication start failed for {username}: {e}")
        raise PasskeyError("Failed to start authentication.") from e

    ceremonies.put(user.user_id, pending)
    logger.info(f"Authentication started for {username}")
    return CredentialOptionsResponse(publicKey=options)


@router.post("/passkey/loginFinish", response_model=StatusResponse, summary="Finish passkey login")
def finish_authentication(
    credential: Dict[str, Any] = Body(...),
    username: str = Query(""),
    users: UserStore = Depends(get_user_store),
    ceremonies: PendingCeremonyStore = Depends(get_ceremony_store),
    rp: RelyingParty = Depends(get_relying_party),
):
    username = _require_username(username)
    user = users.get_or_create(username)
    pending = ceremonies.take_and_clear(user.user_id)

    rp.finish_authentication(user, pending, credential)
    logger.info(f"Authentication finished for {username}")
    return StatusResponse(status="authentication successful")
