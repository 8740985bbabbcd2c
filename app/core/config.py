from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Core Project Settings
    PROJECT_NAME: str = "FIDO2 Example"
    API_STR: str = "/api"
    LOG_LEVEL: str = "INFO"

    # Relying party identity. Every origin's host must be RP_ID or a subdomain of it.
    RP_ID: str = "localhost"
    RP_NAME: str = "FIDO2 Example"
    RP_ORIGINS: List[str] = ["http://localhost:8080"]
    CEREMONY_TIMEOUT_MS: int = 300000
    USER_VERIFICATION: str = "preferred"
    ATTESTATION: str = "none"

    CORS_ALLOW_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_METHODS: List[str] = ["GET", "POST", "OPTIONS"]
    CORS_ALLOW_HEADERS: List[str] = ["Content-Type", "Authorization"]

    # Server
    STATIC_DIR: str = "web"
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    TLS_CERT_FILE: Optional[str] = None
    TLS_KEY_FILE: Optional[str] = None

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'

settings = Settings()
