# --- File: main.py ---
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from typing import Optional
import logging
import os
import uvicorn

from app.core.config import Settings, settings as default_settings
from app.core.errors import PasskeyError
from app.api.api_v1.endpoints import passkey
from app.services.user_service import UserStore
from app.services.challenge_service import PendingCeremonyStore
from app.services.passkey_service import RelyingParty

logger = logging.getLogger(__name__)


async def passkey_error_handler(request: Request, exc: PasskeyError):
    return PlainTextResponse(exc.message, status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Plain-text 400s, no JSON error envelope.
    for error in exc.errors():
        if "username" in error.get("loc", ()):
            return PlainTextResponse("Username is required.", status_code=400)
    return PlainTextResponse("Invalid request body.", status_code=400)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings

    # Fails fast on an inconsistent RP ID / origin configuration.
    relying_party = RelyingParty.from_settings(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_STR}/openapi.json"
    )
    app.state.settings = settings
    app.state.relying_party = relying_party
    app.state.user_store = UserStore()
    app.state.ceremony_store = PendingCeremonyStore()

    @app.middleware("http")
    async def log_every_request(request: Request, call_next):
        """Logs every request, OPTIONS preflights included."""
        logger.debug(f"REQUEST {request.method} {request.url} headers={dict(request.headers)}")
        response = await call_next(request)
        # CORSMiddleware only answers requests that carry Origin; every response gets these.
        if "*" in settings.CORS_ALLOW_ORIGINS:
            response.headers.setdefault("Access-Control-Allow-Origin", "*")
        response.headers.setdefault("Access-Control-Allow-Methods", ", ".join(settings.CORS_ALLOW_METHODS))
        response.headers.setdefault("Access-Control-Allow-Headers", ", ".join(settings.CORS_ALLOW_HEADERS))
        logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

    # CORS must come after the logger if you want to see both.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ALLOW_ORIGINS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    app.add_exception_handler(PasskeyError, passkey_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.get("/health", summary="Health Check")
    def read_root():
        return {"status": "Backend is running"}

    app.include_router(passkey.router, prefix=settings.API_STR, tags=["Passkeys"])

    if settings.STATIC_DIR and os.path.isdir(settings.STATIC_DIR):
        app.mount("/", StaticFiles(directory=settings.STATIC_DIR, html=True), name="static")

    logger.info(
        f"Relying party {relying_party.rp_name!r} ready: rp_id={relying_party.rp_id} "
        f"origins={relying_party.origins}"
    )
    return app


logging.basicConfig(
    level=default_settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=default_settings.HOST,
        port=default_settings.PORT,
        ssl_certfile=default_settings.TLS_CERT_FILE,
        ssl_keyfile=default_settings.TLS_KEY_FILE,
    )
