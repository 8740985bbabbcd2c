# --- File: app/db/base.py ---
from fastapi import Request
from app.services.user_service import UserStore
from app.services.challenge_service import PendingCeremonyStore
from app.services.passkey_service import RelyingParty

# Stores and the relying party are built once by create_app() and hung on
# app.state; these dependencies hand them to the endpoints.
def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store

def get_ceremony_store(request: Request) -> PendingCeremonyStore:
    return request.app.state.ceremony_store

def get_relying_party(request: Request) -> RelyingParty:
    return request.app.state.relying_party
