from pydantic import BaseModel, Field
from typing import Dict, Any

class UsernameRequest(BaseModel):
    username: str = Field(min_length=1)

class CredentialOptionsResponse(BaseModel):
    """Creation or request options, wrapped the way navigator.credentials expects."""
    public_key: Dict[str, Any] = Field(alias="publicKey")

    class Config:
        populate_by_name = True

class StatusResponse(BaseModel):
    status: str
