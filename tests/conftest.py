import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.services.challenge_service import PendingCeremonyStore
from app.services.passkey_service import RelyingParty
from app.services.user_service import UserStore
from main import create_app

from soft_authenticator import SoftAuthenticator

ORIGIN = "http://localhost:8080"


@pytest.fixture
def settings():
    return Settings(
        RP_ID="localhost",
        RP_NAME="FIDO2 Example",
        RP_ORIGINS=[ORIGIN],
        STATIC_DIR="",
        _env_file=None,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def relying_party():
    return RelyingParty(rp_id="localhost", rp_name="FIDO2 Example", origins=[ORIGIN])


@pytest.fixture
def user_store():
    return UserStore()


@pytest.fixture
def ceremony_store():
    return PendingCeremonyStore()


@pytest.fixture
def authenticator():
    return SoftAuthenticator(rp_id="localhost", origin=ORIGIN)
